"""Rollout orchestration: health checks and the deployment lifecycle."""

from .controller import RolloutController, RolloutRecord, RolloutStatus
from .health import HealthChecker, HttpHealthChecker, wait_until_healthy

__all__ = [
    "RolloutController",
    "RolloutRecord",
    "RolloutStatus",
    "HealthChecker",
    "HttpHealthChecker",
    "wait_until_healthy",
]
