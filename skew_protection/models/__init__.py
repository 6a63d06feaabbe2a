"""Data models for deployments and routing."""

from .deployment import (
    IDENTIFIER_PATTERN,
    ROUTABLE_STATUSES,
    Deployment,
    DeploymentStatus,
    utcnow,
)
from .routing import RouteReason, RoutingDecision, RoutingRule

__all__ = [
    "IDENTIFIER_PATTERN",
    "ROUTABLE_STATUSES",
    "Deployment",
    "DeploymentStatus",
    "utcnow",
    "RouteReason",
    "RoutingDecision",
    "RoutingRule",
]
