"""Deployment model.

A deployment is one backend build (identified by a content-derived
identifier such as a build hash) together with the endpoint that serves it
and its position in the rollout lifecycle:

    provisioning -> active -> draining -> retired

Deployments are immutable; every transition produces a new instance via
``model_copy`` so that registry snapshots can share them safely.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# Identifiers double as affinity token prefixes, so they must be safe for
# both header and cookie transport and must not contain the token separator.
IDENTIFIER_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"


class DeploymentStatus(str, Enum):
    """Lifecycle status of a deployment."""

    PROVISIONING = "provisioning"
    ACTIVE = "active"
    DRAINING = "draining"
    RETIRED = "retired"


ROUTABLE_STATUSES = frozenset({DeploymentStatus.ACTIVE, DeploymentStatus.DRAINING})


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class Deployment(BaseModel):
    """A backend deployment tracked by the registry.

    Attributes:
        identifier: Content-derived identifier (e.g. a build hash).
        target: Opaque reference to the backend endpoint, usually a base URL.
        status: Current lifecycle status.
        weight: Share of default (unpinned) traffic, 0-100.
        created_at: When the deployment was registered.
        promoted_at: When the deployment last became active.
        drained_at: When the deployment last left the active status.
        retired_at: When the deployment stopped being routable.
        failure_reason: Set when a rollout of this deployment was abandoned.
    """

    model_config = ConfigDict(frozen=True)

    identifier: str = Field(
        ..., pattern=IDENTIFIER_PATTERN, description="Content-derived deployment identifier"
    )
    target: str = Field(..., min_length=1, description="Backend endpoint reference")
    status: DeploymentStatus = Field(
        default=DeploymentStatus.PROVISIONING, description="Lifecycle status"
    )
    weight: int = Field(default=0, ge=0, le=100, description="Default traffic share")
    created_at: datetime = Field(default_factory=utcnow, description="Registration time")
    promoted_at: Optional[datetime] = Field(default=None)
    drained_at: Optional[datetime] = Field(default=None)
    retired_at: Optional[datetime] = Field(default=None)
    failure_reason: Optional[str] = Field(default=None)

    @property
    def routable(self) -> bool:
        """Whether requests may be forwarded to this deployment."""
        return self.status in ROUTABLE_STATUSES

    def transition(self, status: DeploymentStatus, **changes) -> "Deployment":
        """Return a copy of this deployment moved to ``status``."""
        return self.model_copy(update={"status": status, **changes})
