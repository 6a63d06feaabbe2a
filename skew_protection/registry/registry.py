"""Deployment registry.

The registry is the single source of truth for which deployment is currently
production. It never infers that from a load balancer: the rollout
controller owns it and every routing decision is derived from it.

Writers are serialised with a lock and publish a fresh ``RegistrySnapshot``
by reassigning one attribute. Readers call ``snapshot`` without locking.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from skew_protection.config import settings
from skew_protection.errors import (
    DeploymentNotFoundError,
    DuplicateIdentifierError,
    InvalidStateError,
)
from skew_protection.models import Deployment, DeploymentStatus, utcnow
from skew_protection.registry.snapshot import RegistrySnapshot

logger = logging.getLogger(__name__)


class DeploymentRegistry:
    """Tracks deployments and publishes immutable routing snapshots.

    Example:
        ```python
        registry = DeploymentRegistry()
        registry.register(Deployment(identifier="v1", target="http://v1:3000"))
        registry.promote("v1")
        registry.snapshot.active.identifier  # "v1"
        ```
    """

    def __init__(self, drain_grace_period_seconds: Optional[float] = None):
        """Initialize an empty registry.

        Args:
            drain_grace_period_seconds: How long a draining deployment is kept
                for clients still holding its token. Defaults to
                settings.drain_grace_period_seconds.
        """
        if drain_grace_period_seconds is None:
            drain_grace_period_seconds = settings.drain_grace_period_seconds
        self.drain_grace_period = timedelta(seconds=drain_grace_period_seconds)
        self._lock = threading.Lock()
        self._snapshot = RegistrySnapshot()

    @property
    def snapshot(self) -> RegistrySnapshot:
        """Current snapshot. Safe to read from any thread or task."""
        return self._snapshot

    def get(self, identifier: str) -> Deployment:
        """Get a deployment by identifier.

        Raises:
            DeploymentNotFoundError: If the identifier is unknown.
        """
        return self._require(self._snapshot, identifier)

    def list(self) -> List[Deployment]:
        """List all deployments ordered by creation time."""
        return list(self._snapshot.deployments)

    def draining(self) -> List[Deployment]:
        return [
            d for d in self._snapshot.deployments if d.status == DeploymentStatus.DRAINING
        ]

    def register(self, deployment: Deployment) -> Deployment:
        """Add a deployment in the provisioning state.

        Args:
            deployment: Deployment to add. Its status and lifecycle
                timestamps are reset; identifier, target and created_at are
                kept.

        Returns:
            The registered deployment.

        Raises:
            DuplicateIdentifierError: If the identifier was registered before,
                including retired and abandoned deployments.
        """
        with self._lock:
            current = self._snapshot
            if current.get(deployment.identifier) is not None:
                raise DuplicateIdentifierError(
                    f"Deployment {deployment.identifier} is already registered",
                    identifier=deployment.identifier,
                )
            registered = deployment.transition(
                DeploymentStatus.PROVISIONING,
                weight=0,
                promoted_at=None,
                drained_at=None,
                retired_at=None,
                failure_reason=None,
            )
            self._publish(current.deployments + (registered,))

        logger.info(
            f"Registered deployment {registered.identifier} -> {registered.target}"
        )
        return registered

    def promote(self, identifier: str, now: Optional[datetime] = None) -> Deployment:
        """Make a deployment active and demote the previous active one.

        Both changes land in the same snapshot, so no reader ever observes
        two active deployments or none.

        Raises:
            DeploymentNotFoundError: If the identifier is unknown.
            InvalidStateError: If the deployment is not provisioning or draining.
        """
        now = now or utcnow()
        with self._lock:
            current = self._snapshot
            target = self._require(current, identifier)
            if target.status not in (
                DeploymentStatus.PROVISIONING,
                DeploymentStatus.DRAINING,
            ):
                raise InvalidStateError(
                    f"Cannot promote deployment {identifier} from status "
                    f"{target.status.value}",
                    identifier=identifier,
                )

            promoted = target.transition(
                DeploymentStatus.ACTIVE, weight=100, promoted_at=now, drained_at=None
            )
            demoted: Optional[Deployment] = None
            updated = []
            for deployment in current.deployments:
                if deployment.identifier == identifier:
                    updated.append(promoted)
                elif deployment.status == DeploymentStatus.ACTIVE:
                    demoted = deployment.transition(
                        DeploymentStatus.DRAINING, weight=0, drained_at=now
                    )
                    updated.append(demoted)
                else:
                    updated.append(deployment)
            self._publish(updated)

        if demoted is not None:
            logger.info(
                f"Promoted deployment {identifier}; {demoted.identifier} is now draining"
            )
        else:
            logger.info(f"Promoted deployment {identifier}")
        return promoted

    def retire(
        self,
        identifier: str,
        outstanding_tokens: int = 0,
        now: Optional[datetime] = None,
    ) -> Deployment:
        """Retire a draining deployment.

        Retirement is allowed once no client holds a token for the deployment
        or once its drain grace period has elapsed, whichever comes first.

        Args:
            identifier: Deployment to retire.
            outstanding_tokens: Number of affinity tokens still in use.
            now: Current time, defaults to utcnow().

        Raises:
            DeploymentNotFoundError: If the identifier is unknown.
            InvalidStateError: If the deployment is active, not draining, or
                still has outstanding tokens within its grace period.
        """
        now = now or utcnow()
        with self._lock:
            current = self._snapshot
            deployment = self._require(current, identifier)
            if deployment.status == DeploymentStatus.ACTIVE:
                raise InvalidStateError(
                    f"Cannot retire deployment {identifier}: it is the active deployment",
                    identifier=identifier,
                )
            if deployment.status != DeploymentStatus.DRAINING:
                raise InvalidStateError(
                    f"Cannot retire deployment {identifier} from status "
                    f"{deployment.status.value}",
                    identifier=identifier,
                )
            if not self._is_drained(deployment, outstanding_tokens, now):
                raise InvalidStateError(
                    f"Cannot retire deployment {identifier}: {outstanding_tokens} "
                    f"affinity tokens outstanding until "
                    f"{(deployment.drained_at + self.drain_grace_period).isoformat()}",
                    identifier=identifier,
                )
            retired = deployment.transition(
                DeploymentStatus.RETIRED, weight=0, retired_at=now
            )
            self._publish(self._replace(current.deployments, retired))

        logger.info(f"Retired deployment {identifier}")
        return retired

    def abandon(
        self, identifier: str, reason: str, now: Optional[datetime] = None
    ) -> Deployment:
        """Mark a provisioning deployment as a failed rollout.

        The deployment becomes retired without ever having been routable;
        the active deployment is not touched.

        Raises:
            DeploymentNotFoundError: If the identifier is unknown.
            InvalidStateError: If the deployment is not provisioning.
        """
        now = now or utcnow()
        with self._lock:
            current = self._snapshot
            deployment = self._require(current, identifier)
            if deployment.status != DeploymentStatus.PROVISIONING:
                raise InvalidStateError(
                    f"Cannot abandon deployment {identifier} from status "
                    f"{deployment.status.value}",
                    identifier=identifier,
                )
            abandoned = deployment.transition(
                DeploymentStatus.RETIRED, retired_at=now, failure_reason=reason
            )
            self._publish(self._replace(current.deployments, abandoned))

        logger.warning(f"Abandoned deployment {identifier}: {reason}")
        return abandoned

    def retirement_eligible(
        self,
        identifier: str,
        outstanding_tokens: int = 0,
        now: Optional[datetime] = None,
    ) -> bool:
        """Check whether ``retire`` would currently succeed."""
        deployment = self.get(identifier)
        return deployment.status == DeploymentStatus.DRAINING and self._is_drained(
            deployment, outstanding_tokens, now or utcnow()
        )

    def grace_period_elapsed(self, deployment: Deployment, now: datetime) -> bool:
        return (
            deployment.drained_at is not None
            and now - deployment.drained_at >= self.drain_grace_period
        )

    def _is_drained(
        self, deployment: Deployment, outstanding_tokens: int, now: datetime
    ) -> bool:
        return outstanding_tokens <= 0 or self.grace_period_elapsed(deployment, now)

    def _publish(self, deployments: Iterable[Deployment]) -> None:
        # Caller holds the lock.
        self._snapshot = RegistrySnapshot.build(
            list(deployments), version=self._snapshot.version + 1
        )

    @staticmethod
    def _replace(
        deployments: Iterable[Deployment], replacement: Deployment
    ) -> List[Deployment]:
        return [
            replacement if d.identifier == replacement.identifier else d
            for d in deployments
        ]

    @staticmethod
    def _require(snapshot: RegistrySnapshot, identifier: str) -> Deployment:
        deployment = snapshot.get(identifier)
        if deployment is None:
            raise DeploymentNotFoundError(
                f"Deployment {identifier} not found", identifier=identifier
            )
        return deployment
