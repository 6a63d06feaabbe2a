"""Pytest configuration and fixtures.

This module makes the skew_protection package importable from a source
checkout and provides the fixtures shared by the unit tests.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add the project root to Python path so skew_protection imports work
# without installing the package
project_dir = Path(__file__).parent.parent
if str(project_dir) not in sys.path:
    sys.path.insert(0, str(project_dir))

from skew_protection import runtime  # noqa: E402
from skew_protection.models import Deployment  # noqa: E402
from skew_protection.registry import DeploymentRegistry  # noqa: E402
from skew_protection.rollout import HealthChecker  # noqa: E402

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class StaticHealthChecker(HealthChecker):
    """Health checker returning a fixed answer and counting calls."""

    def __init__(self, healthy: bool = True):
        self.healthy = healthy
        self.calls = 0

    async def check(self, deployment: Deployment) -> bool:
        self.calls += 1
        return self.healthy


@pytest.fixture(autouse=True)
def reset_runtime():
    """Forget process-wide service instances before and after each test."""
    runtime.reset_services()
    yield
    runtime.reset_services()


@pytest.fixture
def registry():
    """Create an empty registry with a 300 second drain grace period."""
    return DeploymentRegistry(drain_grace_period_seconds=300)


@pytest.fixture
def make_deployment():
    """Factory for deployments with deterministic creation times."""

    def _make(identifier: str, minutes: int = 0, target: str = None) -> Deployment:
        return Deployment(
            identifier=identifier,
            target=target or f"http://{identifier}.internal:3000",
            created_at=T0 + timedelta(minutes=minutes),
        )

    return _make


@pytest.fixture
def two_versions(registry, make_deployment):
    """Registry where v1 was promoted and then replaced by v2 (v1 draining)."""
    registry.register(make_deployment("v1", minutes=0))
    registry.promote("v1", now=T0 + timedelta(minutes=1))
    registry.register(make_deployment("v2", minutes=2))
    registry.promote("v2", now=T0 + timedelta(minutes=3))
    return registry


@pytest.fixture
def t0():
    """Reference time used by the deterministic fixtures."""
    return T0


@pytest.fixture
def health_checker():
    """Health checker that always reports healthy."""
    return StaticHealthChecker(healthy=True)


@pytest.fixture
def unhealthy_checker():
    """Health checker that never reports healthy."""
    return StaticHealthChecker(healthy=False)
