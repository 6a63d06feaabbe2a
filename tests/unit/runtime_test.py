"""Unit tests for the process-wide service accessors."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from skew_protection import runtime
from skew_protection.api.routers.proxy import AffinityProxy
from skew_protection.registry import DeploymentRegistry
from skew_protection.rollout import HttpHealthChecker, RolloutController
from skew_protection.tokens import InMemoryTokenTracker


class TestAccessors:
    def test_instances_are_cached(self):
        assert runtime.get_registry() is runtime.get_registry()
        assert runtime.get_token_tracker() is runtime.get_token_tracker()
        assert runtime.get_controller() is runtime.get_controller()

    def test_controller_shares_registry_and_tracker(self):
        controller = runtime.get_controller()

        assert controller.registry is runtime.get_registry()
        assert controller.token_tracker is runtime.get_token_tracker()
        assert isinstance(controller.health_checker, HttpHealthChecker)

    def test_proxy_shares_registry_and_tracker(self):
        proxy = runtime.get_proxy()

        assert isinstance(proxy, AffinityProxy)
        assert proxy.router.registry is runtime.get_registry()
        assert proxy.token_tracker is runtime.get_token_tracker()

    def test_setters_override(self):
        registry = DeploymentRegistry()
        tracker = InMemoryTokenTracker()
        controller = RolloutController(registry, MagicMock(), tracker)

        runtime.set_registry(registry)
        runtime.set_token_tracker(tracker)
        runtime.set_controller(controller)

        assert runtime.get_registry() is registry
        assert runtime.get_token_tracker() is tracker
        assert runtime.get_controller() is controller

    def test_reset_services(self):
        registry = runtime.get_registry()
        runtime.reset_services()
        assert runtime.get_registry() is not registry


class TestCloseServices:
    @pytest.mark.asyncio
    async def test_close_services(self):
        mock_proxy = MagicMock()
        mock_proxy.aclose = AsyncMock()
        mock_tracker = MagicMock()
        mock_tracker.close = AsyncMock()
        runtime.set_proxy(mock_proxy)
        runtime.set_token_tracker(mock_tracker)

        await runtime.close_services()

        mock_proxy.aclose.assert_awaited_once()
        mock_tracker.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_services_with_nothing_created(self):
        await runtime.close_services()
