"""Outstanding affinity token accounting.

The rollout controller asks the tracker how many clients still hold a token
for a draining deployment. A token counts as outstanding while it has been
presented within the idle timeout; clients that went away simply age out.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Callable, Dict, Optional

from skew_protection.config import Settings, settings
from skew_protection.routing.tokens import AffinityToken

logger = logging.getLogger(__name__)

# Bare tokens carry no session, they are tracked as a single holder.
ANONYMOUS_SESSION = "anonymous"


class TokenTracker(ABC):
    """Base class for token trackers."""

    async def initialize(self) -> None:
        """Acquire any resources the tracker needs."""

    async def close(self) -> None:
        """Release resources acquired by initialize()."""

    @abstractmethod
    async def touch(self, token: AffinityToken) -> None:
        """Record that ``token`` was presented just now.

        Sessions of the same deployment idle beyond the timeout are dropped
        as a side effect, so storage stays bounded by recent traffic.
        """

    @abstractmethod
    async def outstanding(self, deployment_id: str) -> int:
        """Count tokens for ``deployment_id`` seen within the idle timeout."""

    @abstractmethod
    async def forget(self, deployment_id: str) -> None:
        """Drop every token recorded for ``deployment_id``."""


class InMemoryTokenTracker(TokenTracker):
    """Process-local tracker, suitable for a single router instance."""

    def __init__(
        self,
        idle_timeout_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.idle_timeout = (
            idle_timeout_seconds
            if idle_timeout_seconds is not None
            else settings.token_idle_timeout_seconds
        )
        self._clock = clock
        self._last_seen: Dict[str, Dict[str, float]] = defaultdict(dict)

    def sessions(self, deployment_id: str) -> int:
        """Number of sessions currently stored for ``deployment_id``."""
        return len(self._last_seen.get(deployment_id, ()))

    async def touch(self, token: AffinityToken) -> None:
        session = token.session_id or ANONYMOUS_SESSION
        now = self._clock()
        sessions = self._last_seen[token.deployment_id]
        # Re-insert so each map stays ordered by last sighting.
        sessions.pop(session, None)
        sessions[session] = now
        self._prune(sessions, now)

    async def outstanding(self, deployment_id: str) -> int:
        sessions = self._last_seen.get(deployment_id)
        if not sessions:
            return 0
        self._prune(sessions, self._clock())
        return len(sessions)

    def _prune(self, sessions: Dict[str, float], now: float) -> None:
        """Drop sessions idle for longer than the timeout, oldest first."""
        cutoff = now - self.idle_timeout
        while sessions:
            oldest = next(iter(sessions))
            if sessions[oldest] >= cutoff:
                break
            del sessions[oldest]

    async def forget(self, deployment_id: str) -> None:
        self._last_seen.pop(deployment_id, None)


def create_token_tracker(config: Optional[Settings] = None) -> TokenTracker:
    """Build the tracker selected by ``token_tracker_backend``.

    Args:
        config: Settings to use, defaults to the module singleton.

    Returns:
        An uninitialized tracker.
    """
    config = config or settings
    if config.token_tracker_backend == "redis":
        from skew_protection.tokens.redis_tracker import RedisTokenTracker

        return RedisTokenTracker(
            config=config.redis_config,
            idle_timeout_seconds=config.token_idle_timeout_seconds,
            key_prefix=config.redis_key_prefix,
        )
    logger.info("Tracking affinity tokens in memory")
    return InMemoryTokenTracker(idle_timeout_seconds=config.token_idle_timeout_seconds)
