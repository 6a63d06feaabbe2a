"""Unit tests for the deployment registry.

This module tests registration, promotion, retirement and abandonment, the
snapshot swap on every transition, and the single-active invariant under
concurrent readers.
"""

import threading
from datetime import timedelta
from unittest.mock import patch

import pytest

from skew_protection.errors import (
    DeploymentNotFoundError,
    DuplicateIdentifierError,
    InvalidStateError,
)
from skew_protection.models import Deployment, DeploymentStatus
from skew_protection.registry import DeploymentRegistry


class TestRegister:
    """Test DeploymentRegistry.register."""

    def test_register_adds_provisioning_deployment(self, registry, make_deployment):
        registered = registry.register(make_deployment("v1"))

        assert registered.status == DeploymentStatus.PROVISIONING
        assert registry.get("v1") == registered
        assert registry.snapshot.active is None

    def test_register_resets_lifecycle_fields(self, registry):
        registered = registry.register(
            Deployment(identifier="v1", target="t", status=DeploymentStatus.ACTIVE, weight=100)
        )
        assert registered.status == DeploymentStatus.PROVISIONING
        assert registered.weight == 0

    def test_register_duplicate_raises(self, registry, make_deployment):
        registry.register(make_deployment("v1"))
        with pytest.raises(DuplicateIdentifierError) as exc_info:
            registry.register(make_deployment("v1", minutes=5))
        assert exc_info.value.identifier == "v1"

    def test_register_retired_identifier_raises(self, two_versions, make_deployment, t0):
        two_versions.retire("v1", now=t0 + timedelta(hours=1))
        with pytest.raises(DuplicateIdentifierError):
            two_versions.register(make_deployment("v1", minutes=10))

    def test_register_swaps_snapshot(self, registry, make_deployment):
        before = registry.snapshot
        registry.register(make_deployment("v1"))
        after = registry.snapshot

        assert after is not before
        assert after.version == before.version + 1
        assert before.deployments == ()

    def test_register_logs_info(self, registry, make_deployment):
        with patch("skew_protection.registry.registry.logger") as mock_logger:
            registry.register(make_deployment("v1"))
        assert "Registered deployment v1" in mock_logger.info.call_args[0][0]


class TestPromote:
    """Test DeploymentRegistry.promote."""

    def test_first_promotion(self, registry, make_deployment):
        registry.register(make_deployment("v1"))
        promoted = registry.promote("v1")

        assert promoted.status == DeploymentStatus.ACTIVE
        assert promoted.weight == 100
        assert promoted.promoted_at is not None
        assert registry.snapshot.active.identifier == "v1"

    def test_promotion_demotes_previous_active(self, two_versions):
        v1 = two_versions.get("v1")
        v2 = two_versions.get("v2")

        assert v1.status == DeploymentStatus.DRAINING
        assert v1.weight == 0
        assert v1.drained_at is not None
        assert v2.status == DeploymentStatus.ACTIVE
        assert two_versions.snapshot.active.identifier == "v2"

    def test_promote_draining_deployment_rolls_back(self, two_versions):
        two_versions.promote("v1")

        assert two_versions.get("v1").status == DeploymentStatus.ACTIVE
        assert two_versions.get("v1").drained_at is None
        assert two_versions.get("v2").status == DeploymentStatus.DRAINING

    def test_promote_unknown_raises(self, registry):
        with pytest.raises(DeploymentNotFoundError):
            registry.promote("missing")

    def test_promote_active_raises(self, two_versions):
        with pytest.raises(InvalidStateError):
            two_versions.promote("v2")

    def test_promote_retired_raises(self, two_versions, t0):
        two_versions.retire("v1", now=t0 + timedelta(hours=1))
        with pytest.raises(InvalidStateError):
            two_versions.promote("v1")

    def test_failed_promote_leaves_snapshot(self, two_versions):
        before = two_versions.snapshot
        with pytest.raises(InvalidStateError):
            two_versions.promote("v2")
        assert two_versions.snapshot is before

    def test_exactly_one_active_after_each_promotion(self, registry, make_deployment):
        for i in range(5):
            registry.register(make_deployment(f"v{i}", minutes=i))
            registry.promote(f"v{i}")
            active = [
                d for d in registry.list() if d.status == DeploymentStatus.ACTIVE
            ]
            assert [d.identifier for d in active] == [f"v{i}"]


class TestRetire:
    """Test DeploymentRegistry.retire."""

    def test_retire_without_outstanding_tokens(self, two_versions):
        retired = two_versions.retire("v1", outstanding_tokens=0)

        assert retired.status == DeploymentStatus.RETIRED
        assert retired.retired_at is not None
        assert two_versions.snapshot.get("v1").routable is False

    def test_retire_with_outstanding_tokens_within_grace_raises(self, two_versions, t0):
        # v1 started draining at t0 + 3 minutes; grace period is 300 seconds.
        with pytest.raises(InvalidStateError) as exc_info:
            two_versions.retire(
                "v1", outstanding_tokens=4, now=t0 + timedelta(minutes=5)
            )
        assert "4 affinity tokens outstanding" in str(exc_info.value)
        assert two_versions.get("v1").status == DeploymentStatus.DRAINING

    def test_retire_with_outstanding_tokens_after_grace(self, two_versions, t0):
        retired = two_versions.retire(
            "v1", outstanding_tokens=4, now=t0 + timedelta(minutes=8)
        )
        assert retired.status == DeploymentStatus.RETIRED

    def test_retire_active_raises(self, two_versions):
        with pytest.raises(InvalidStateError) as exc_info:
            two_versions.retire("v2")
        assert "active deployment" in str(exc_info.value)

    def test_retire_provisioning_raises(self, registry, make_deployment):
        registry.register(make_deployment("v1"))
        with pytest.raises(InvalidStateError):
            registry.retire("v1")

    def test_retire_twice_raises(self, two_versions):
        two_versions.retire("v1")
        with pytest.raises(InvalidStateError):
            two_versions.retire("v1")

    def test_retire_unknown_raises(self, registry):
        with pytest.raises(DeploymentNotFoundError):
            registry.retire("missing")

    def test_retirement_eligible(self, two_versions, t0):
        assert two_versions.retirement_eligible("v1", outstanding_tokens=0)
        assert not two_versions.retirement_eligible(
            "v1", outstanding_tokens=1, now=t0 + timedelta(minutes=4)
        )
        assert two_versions.retirement_eligible(
            "v1", outstanding_tokens=1, now=t0 + timedelta(minutes=8)
        )
        assert not two_versions.retirement_eligible("v2")


class TestAbandon:
    """Test DeploymentRegistry.abandon."""

    def test_abandon_provisioning(self, two_versions, make_deployment):
        two_versions.register(make_deployment("v3", minutes=10))
        abandoned = two_versions.abandon("v3", reason="health check timed out")

        assert abandoned.status == DeploymentStatus.RETIRED
        assert abandoned.failure_reason == "health check timed out"
        assert two_versions.snapshot.active.identifier == "v2"
        assert two_versions.get("v1").status == DeploymentStatus.DRAINING

    def test_abandon_active_raises(self, two_versions):
        with pytest.raises(InvalidStateError):
            two_versions.abandon("v2", reason="nope")


class TestListing:
    """Test list, get and draining."""

    def test_list_ordered_by_creation_time(self, registry, make_deployment):
        registry.register(make_deployment("late", minutes=10))
        registry.register(make_deployment("early", minutes=1))
        registry.register(make_deployment("middle", minutes=5))

        assert [d.identifier for d in registry.list()] == ["early", "middle", "late"]

    def test_get_unknown_raises(self, registry):
        with pytest.raises(DeploymentNotFoundError) as exc_info:
            registry.get("missing")
        assert exc_info.value.identifier == "missing"

    def test_draining(self, two_versions):
        assert [d.identifier for d in two_versions.draining()] == ["v1"]

    def test_default_grace_period_from_settings(self):
        with patch("skew_protection.registry.registry.settings") as mock_settings:
            mock_settings.drain_grace_period_seconds = 42
            registry = DeploymentRegistry()
        assert registry.drain_grace_period == timedelta(seconds=42)


class TestConcurrentReaders:
    """Readers never observe a half-promoted registry."""

    def test_promote_is_atomic_for_readers(self, registry, make_deployment):
        registry.register(make_deployment("v0"))
        registry.promote("v0")

        stop = threading.Event()
        violations = []

        def reader():
            while not stop.is_set():
                snapshot = registry.snapshot
                active = [
                    d for d in snapshot.deployments if d.status == DeploymentStatus.ACTIVE
                ]
                default = snapshot.default_rule
                if len(active) != 1 or default is None:
                    violations.append(snapshot.version)
                elif default.deployment_id != active[0].identifier:
                    violations.append(snapshot.version)

        readers = [threading.Thread(target=reader) for _ in range(4)]
        for thread in readers:
            thread.start()
        try:
            for i in range(1, 60):
                registry.register(make_deployment(f"v{i}", minutes=i))
                registry.promote(f"v{i}")
        finally:
            stop.set()
            for thread in readers:
                thread.join()

        assert violations == []
        assert registry.snapshot.active.identifier == "v59"
