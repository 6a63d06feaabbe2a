"""Process-wide service instances.

The API resolves the registry, token tracker, controller and proxy through
these accessors so tests (and embedders) can swap any of them with the
matching ``set_*`` function.
"""

import logging
from typing import TYPE_CHECKING, Optional

import httpx

from skew_protection.config import settings
from skew_protection.registry import DeploymentRegistry
from skew_protection.rollout import HttpHealthChecker, RolloutController
from skew_protection.routing import RequestRouter
from skew_protection.tokens import TokenTracker, create_token_tracker

if TYPE_CHECKING:
    from skew_protection.api.routers.proxy import AffinityProxy

logger = logging.getLogger(__name__)

_registry: Optional[DeploymentRegistry] = None
_token_tracker: Optional[TokenTracker] = None
_controller: Optional[RolloutController] = None
_proxy: Optional["AffinityProxy"] = None


def get_registry() -> DeploymentRegistry:
    global _registry
    if _registry is None:
        _registry = DeploymentRegistry()
    return _registry


def set_registry(registry: DeploymentRegistry) -> None:
    global _registry
    _registry = registry


def get_token_tracker() -> TokenTracker:
    global _token_tracker
    if _token_tracker is None:
        _token_tracker = create_token_tracker(settings)
    return _token_tracker


def set_token_tracker(tracker: TokenTracker) -> None:
    global _token_tracker
    _token_tracker = tracker


def get_controller() -> RolloutController:
    """Get the rollout controller, creating it on first use."""
    global _controller
    if _controller is None:
        _controller = RolloutController(
            registry=get_registry(),
            health_checker=HttpHealthChecker(),
            token_tracker=get_token_tracker(),
        )
    return _controller


def set_controller(controller: RolloutController) -> None:
    global _controller
    _controller = controller


def get_proxy() -> "AffinityProxy":
    """Get the proxy, creating it (and its HTTP client) on first use."""
    global _proxy
    if _proxy is None:
        from skew_protection.api.routers.proxy import AffinityProxy

        _proxy = AffinityProxy(
            router=RequestRouter(get_registry()),
            token_tracker=get_token_tracker(),
            client=httpx.AsyncClient(timeout=settings.proxy_timeout_seconds),
        )
    return _proxy


def set_proxy(proxy: "AffinityProxy") -> None:
    global _proxy
    _proxy = proxy


async def close_services() -> None:
    """Release the proxy client and the token tracker."""
    if _proxy is not None:
        await _proxy.aclose()
    if _token_tracker is not None:
        await _token_tracker.close()
    logger.info("Services closed")


def reset_services() -> None:
    """Forget every instance so the next accessor call builds a fresh one."""
    global _registry, _token_tracker, _controller, _proxy
    _registry = None
    _token_tracker = None
    _controller = None
    _proxy = None
