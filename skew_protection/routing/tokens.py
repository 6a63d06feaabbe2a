"""Affinity token encoding.

A token is ``<deployment_id>.<session_id>``. The session part lets the
tracker count distinct clients still pinned to a deployment; a bare
``<deployment_id>`` is accepted too, e.g. when the asset loader stamps the
build identifier into a header.
"""

import re
import uuid
from dataclasses import dataclass
from typing import Optional

from skew_protection.models import IDENTIFIER_PATTERN

TOKEN_SEPARATOR = "."

_IDENTIFIER_RE = re.compile(IDENTIFIER_PATTERN)
_SESSION_RE = re.compile(r"^[A-Za-z0-9]{1,64}$")


@dataclass(frozen=True)
class AffinityToken:
    """Parsed affinity token."""

    deployment_id: str
    session_id: Optional[str] = None

    def encode(self) -> str:
        if self.session_id is None:
            return self.deployment_id
        return f"{self.deployment_id}{TOKEN_SEPARATOR}{self.session_id}"


def parse_token(raw: Optional[str]) -> Optional[AffinityToken]:
    """Parse a raw header or cookie value.

    Args:
        raw: Value presented by the client.

    Returns:
        The token, or None if the value is empty or malformed.
    """
    if not raw:
        return None
    deployment_id, separator, session_id = raw.strip().partition(TOKEN_SEPARATOR)
    if not _IDENTIFIER_RE.match(deployment_id):
        return None
    if separator and not _SESSION_RE.match(session_id):
        return None
    return AffinityToken(deployment_id=deployment_id, session_id=session_id or None)


def issue_token(deployment_id: str) -> AffinityToken:
    """Mint a new token pinning a fresh session to ``deployment_id``."""
    return AffinityToken(deployment_id=deployment_id, session_id=uuid.uuid4().hex[:16])
