"""Routing rule and routing decision models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RoutingRule(BaseModel):
    """A single entry of the ordered rule set.

    A rule with ``match`` set forwards requests whose affinity signal names
    that deployment. The default rule has no ``match`` and always comes last.
    """

    model_config = ConfigDict(frozen=True)

    priority: int = Field(..., description="Evaluation order, lower first")
    deployment_id: str = Field(..., description="Deployment the rule forwards to")
    match: Optional[str] = Field(
        default=None, description="Affinity signal value this rule matches"
    )

    @property
    def is_default(self) -> bool:
        return self.match is None

    def matches(self, signal: Optional[str]) -> bool:
        """Check whether the rule applies to a request carrying ``signal``."""
        return self.is_default or (signal is not None and signal == self.match)


class RouteReason(str, Enum):
    """Why a request was routed where it was."""

    AFFINITY = "affinity"
    DEFAULT = "default"
    STALE_AFFINITY = "stale_affinity"
    UNAVAILABLE = "unavailable"


class RoutingDecision(BaseModel):
    """Outcome of routing a single request.

    Attributes:
        deployment_id: Deployment chosen, None when nothing is routable.
        target: Endpoint of the chosen deployment.
        reason: Which branch of the routing policy applied.
        stale_token: The request presented a token that can no longer be
            honoured; the response must clear it.
        issue_token: The response should carry a fresh token for
            ``deployment_id``.
        snapshot_version: Version of the registry snapshot used.
    """

    model_config = ConfigDict(frozen=True)

    deployment_id: Optional[str] = None
    target: Optional[str] = None
    reason: RouteReason
    stale_token: bool = False
    issue_token: bool = False
    snapshot_version: int = 0

    @property
    def routable(self) -> bool:
        return self.target is not None
