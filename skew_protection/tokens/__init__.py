"""Outstanding affinity token tracking."""

from .tracker import (
    ANONYMOUS_SESSION,
    InMemoryTokenTracker,
    TokenTracker,
    create_token_tracker,
)

__all__ = [
    "ANONYMOUS_SESSION",
    "InMemoryTokenTracker",
    "TokenTracker",
    "create_token_tracker",
]
