"""Request routing: affinity tokens and the per-request decision."""

from .tokens import AffinityToken, issue_token, parse_token
from .router import RequestRouter, decide
from .affinity import apply_affinity

__all__ = [
    "AffinityToken",
    "issue_token",
    "parse_token",
    "RequestRouter",
    "decide",
    "apply_affinity",
]
