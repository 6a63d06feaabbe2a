"""Rollout controller.

The controller owns the deployment lifecycle:

    provisioning -> active -> draining -> retired

It registers a new deployment, waits for it to become healthy, promotes it
(the previous active deployment starts draining) and later retires draining
deployments once no client still needs them or their grace period is over.

Only one rollout or promotion runs at a time; a second attempt fails
immediately with RolloutInProgressError instead of queueing. A failed
rollout never disturbs the deployment that is already serving traffic.
"""

import asyncio
import logging
import uuid
from collections import deque
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Deque, List, Optional

from pydantic import BaseModel, Field

from skew_protection.config import settings
from skew_protection.errors import (
    InvalidStateError,
    RolloutInProgressError,
    SkewProtectionError,
)
from skew_protection.models import Deployment, DeploymentStatus, utcnow
from skew_protection.registry import DeploymentRegistry
from skew_protection.rollout.health import HealthChecker, wait_until_healthy
from skew_protection.tokens import TokenTracker

logger = logging.getLogger(__name__)


class RolloutStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RolloutRecord(BaseModel):
    """History entry for one rollout or promotion attempt."""

    rollout_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    identifier: str = Field(..., description="Deployment being promoted")
    status: RolloutStatus = Field(default=RolloutStatus.IN_PROGRESS)
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = Field(default=None)
    error: Optional[str] = Field(default=None)

    def finish(self, status: RolloutStatus, error: Optional[str] = None) -> None:
        self.status = status
        self.error = error
        self.completed_at = utcnow()


class RolloutController:
    """Orchestrates promotion and retirement of deployments."""

    def __init__(
        self,
        registry: DeploymentRegistry,
        health_checker: HealthChecker,
        token_tracker: TokenTracker,
        rollout_timeout_seconds: Optional[float] = None,
        health_check_initial_interval_seconds: Optional[float] = None,
        health_check_max_interval_seconds: Optional[float] = None,
        history_size: int = 100,
    ):
        """Initialize the controller.

        Args:
            registry: Registry whose snapshots the router reads.
            health_checker: Decides when a deployment may be promoted.
            token_tracker: Source of outstanding affinity token counts.
            rollout_timeout_seconds: Bound on waiting for health, defaults to
                settings.rollout_timeout_seconds.
            health_check_initial_interval_seconds: First backoff delay.
            health_check_max_interval_seconds: Backoff ceiling.
            history_size: Number of rollout records kept.
        """
        self.registry = registry
        self.health_checker = health_checker
        self.token_tracker = token_tracker
        self.rollout_timeout = rollout_timeout_seconds or settings.rollout_timeout_seconds
        self.health_check_initial_interval = (
            health_check_initial_interval_seconds
            or settings.health_check_initial_interval_seconds
        )
        self.health_check_max_interval = (
            health_check_max_interval_seconds or settings.health_check_max_interval_seconds
        )
        self._lock = asyncio.Lock()
        self._history: Deque[RolloutRecord] = deque(maxlen=history_size)

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    def rollouts(self) -> List[RolloutRecord]:
        """Rollout history, oldest first."""
        return list(self._history)

    def list(self) -> List[Deployment]:
        return self.registry.list()

    def register(self, identifier: str, target: str) -> Deployment:
        """Register a deployment without promoting it."""
        return self.registry.register(Deployment(identifier=identifier, target=target))

    async def start_rollout(self, identifier: str, target: str) -> Deployment:
        """Register, health check and promote a new deployment.

        Args:
            identifier: Content-derived identifier of the new build.
            target: Endpoint serving the new build.

        Returns:
            The promoted (active) deployment.

        Raises:
            RolloutInProgressError: If another rollout is running.
            DuplicateIdentifierError: If the identifier was registered before.
            HealthCheckTimeoutError: If the deployment never became healthy;
                it is abandoned and the active deployment keeps serving.
        """
        async with self._exclusive():
            logger.info(f"Starting rollout of {identifier} -> {target}")
            self.register(identifier, target)
            return await self._promote_when_healthy(identifier)

    async def promote(self, identifier: str) -> Deployment:
        """Promote a registered deployment once it is healthy.

        Promoting a draining deployment rolls back to it.

        Raises:
            RolloutInProgressError: If another rollout is running.
            DeploymentNotFoundError: If the identifier is unknown.
            InvalidStateError: If the deployment is neither provisioning nor draining.
            HealthCheckTimeoutError: If the deployment never became healthy.
        """
        async with self._exclusive():
            deployment = self.registry.get(identifier)
            if deployment.status not in (
                DeploymentStatus.PROVISIONING,
                DeploymentStatus.DRAINING,
            ):
                raise InvalidStateError(
                    f"Cannot promote deployment {identifier} from status "
                    f"{deployment.status.value}",
                    identifier=identifier,
                )
            return await self._promote_when_healthy(identifier)

    async def retire(
        self, identifier: str, now: Optional[datetime] = None
    ) -> Deployment:
        """Retire a draining deployment.

        Raises:
            DeploymentNotFoundError: If the identifier is unknown.
            InvalidStateError: If the deployment is not draining or clients
                still hold its tokens within the grace period.
        """
        deployment = self.registry.get(identifier)
        outstanding = 0
        if deployment.status == DeploymentStatus.DRAINING:
            outstanding = await self.token_tracker.outstanding(identifier)
        retired = self.registry.retire(identifier, outstanding_tokens=outstanding, now=now)
        await self.token_tracker.forget(identifier)
        return retired

    async def retire_drained(self, now: Optional[datetime] = None) -> List[Deployment]:
        """Retire every draining deployment that is eligible.

        Returns:
            The deployments retired by this sweep.
        """
        retired = []
        for deployment in self.registry.draining():
            identifier = deployment.identifier
            outstanding = await self.token_tracker.outstanding(identifier)
            if not self.registry.retirement_eligible(identifier, outstanding, now):
                logger.debug(
                    f"Deployment {identifier} still draining: {outstanding} tokens outstanding"
                )
                continue
            try:
                retired.append(
                    self.registry.retire(identifier, outstanding_tokens=outstanding, now=now)
                )
            except InvalidStateError as e:
                # Promoted back between the eligibility check and the retire.
                logger.info(f"Skipping retirement of {identifier}: {e}")
                continue
            await self.token_tracker.forget(identifier)
        return retired

    async def run_drain_monitor(self, interval: Optional[float] = None) -> None:
        """Sweep draining deployments every ``interval`` seconds until cancelled."""
        interval = interval or settings.drain_poll_interval_seconds
        logger.info(f"Drain monitor started (interval {interval}s)")
        while True:
            try:
                retired = await self.retire_drained()
                if retired:
                    logger.info(
                        f"Drain monitor retired {[d.identifier for d in retired]}"
                    )
            except Exception as e:
                logger.error(f"Drain sweep failed: {e}", exc_info=True)
            await asyncio.sleep(interval)

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        if self._lock.locked():
            raise RolloutInProgressError("Another rollout is already in progress")
        async with self._lock:
            yield

    async def _promote_when_healthy(self, identifier: str) -> Deployment:
        # Caller holds the rollout lock.
        deployment = self.registry.get(identifier)
        record = RolloutRecord(identifier=identifier)
        self._history.append(record)

        try:
            await wait_until_healthy(
                self.health_checker,
                deployment,
                timeout=self.rollout_timeout,
                initial_interval=self.health_check_initial_interval,
                max_interval=self.health_check_max_interval,
            )
            promoted = self.registry.promote(identifier)
        except SkewProtectionError as e:
            record.finish(RolloutStatus.FAILED, error=e.message)
            current = self.registry.get(identifier)
            if current.status == DeploymentStatus.PROVISIONING:
                self.registry.abandon(identifier, reason=e.message)
            logger.error(f"Rollout of {identifier} failed: {e.message}")
            raise

        record.finish(RolloutStatus.SUCCEEDED)
        logger.info(f"Rollout of {identifier} succeeded")
        return promoted
