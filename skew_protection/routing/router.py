"""Per-request routing decision.

``decide`` is a pure function of a registry snapshot and the affinity signal
a request carries. It holds no state and never raises for stale or unknown
signals, so any number of requests can be routed concurrently against the
same snapshot.

Policy:
1. A signal naming an active or draining deployment routes there.
2. No signal routes to the active deployment and asks for a token to be issued.
3. A signal naming a retired, unknown or malformed deployment routes to the
   active deployment, flags the token as stale and asks for a fresh one.
"""

import logging
from typing import Mapping, Optional

from skew_protection.config import settings
from skew_protection.models import RouteReason, RoutingDecision
from skew_protection.registry import DeploymentRegistry, RegistrySnapshot
from skew_protection.routing.tokens import parse_token

logger = logging.getLogger(__name__)


def decide(snapshot: RegistrySnapshot, signal: Optional[str]) -> RoutingDecision:
    """Route a request carrying ``signal`` against ``snapshot``.

    Args:
        snapshot: Registry snapshot to evaluate the rules of.
        signal: Raw affinity token presented by the client, if any.

    Returns:
        The routing decision.
    """
    token = parse_token(signal)
    requested = token.deployment_id if token is not None else None
    presented = bool(signal)

    for rule in snapshot.rules:
        if not rule.matches(requested):
            continue
        deployment = snapshot.get(rule.deployment_id)
        if not rule.is_default:
            return RoutingDecision(
                deployment_id=deployment.identifier,
                target=deployment.target,
                reason=RouteReason.AFFINITY,
                snapshot_version=snapshot.version,
            )
        return RoutingDecision(
            deployment_id=deployment.identifier,
            target=deployment.target,
            reason=RouteReason.STALE_AFFINITY if presented else RouteReason.DEFAULT,
            stale_token=presented,
            issue_token=True,
            snapshot_version=snapshot.version,
        )

    return RoutingDecision(
        reason=RouteReason.UNAVAILABLE,
        stale_token=presented,
        snapshot_version=snapshot.version,
    )


class RequestRouter:
    """Extracts the affinity signal from a request and routes it.

    The router only reads the registry; it never changes deployment state.
    """

    def __init__(
        self,
        registry: DeploymentRegistry,
        header_name: Optional[str] = None,
        cookie_name: Optional[str] = None,
    ):
        self.registry = registry
        self.header_name = header_name or settings.affinity_header_name
        self.cookie_name = cookie_name or settings.affinity_cookie_name

    def extract_signal(
        self,
        headers: Mapping[str, str],
        cookies: Optional[Mapping[str, str]] = None,
    ) -> Optional[str]:
        """Return the affinity signal, preferring the header over the cookie."""
        value = headers.get(self.header_name) or headers.get(self.header_name.lower())
        if not value and cookies:
            value = cookies.get(self.cookie_name)
        return value.strip() if value else None

    def decide(self, signal: Optional[str]) -> RoutingDecision:
        # Read the snapshot reference once; the whole decision uses it.
        decision = decide(self.registry.snapshot, signal)
        if decision.stale_token:
            logger.debug(
                f"Stale affinity signal {signal!r}, routing to {decision.deployment_id}"
            )
        return decision

    def route(
        self,
        headers: Mapping[str, str],
        cookies: Optional[Mapping[str, str]] = None,
    ) -> RoutingDecision:
        """Route a request given its headers and cookies."""
        return self.decide(self.extract_signal(headers, cookies))
