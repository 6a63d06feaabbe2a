"""Stamping and clearing affinity tokens on responses."""

from typing import Optional

from starlette.responses import Response

from skew_protection.config import settings
from skew_protection.models import RoutingDecision
from skew_protection.routing.tokens import AffinityToken


def apply_affinity(
    response: Response,
    decision: RoutingDecision,
    issued: Optional[AffinityToken] = None,
    cookie_name: Optional[str] = None,
    header_name: Optional[str] = None,
    max_age: Optional[int] = None,
) -> None:
    """Write the affinity outcome of ``decision`` onto ``response``.

    A freshly issued token replaces whatever cookie the client had. A stale
    token with nothing to replace it (no active deployment) is expired.

    Args:
        response: Response to modify.
        decision: Routing decision for the request.
        issued: Token minted for this request, if any.
        cookie_name: Cookie name, defaults to settings.affinity_cookie_name.
        header_name: Header echoing the token, defaults to
            settings.affinity_header_name.
        max_age: Cookie lifetime, defaults to settings.affinity_cookie_max_age.
    """
    cookie_name = cookie_name or settings.affinity_cookie_name
    header_name = header_name or settings.affinity_header_name

    if issued is not None:
        value = issued.encode()
        response.set_cookie(
            cookie_name,
            value,
            max_age=max_age if max_age is not None else settings.affinity_cookie_max_age,
            httponly=False,  # the asset loader reads it
            samesite="lax",
        )
        response.headers[header_name] = value
    elif decision.stale_token:
        response.delete_cookie(cookie_name, samesite="lax")
