"""Reverse proxy entry point.

Every request that is not an admin or health route lands here. The proxy
routes it with the RequestRouter, forwards it to the chosen deployment,
records the affinity token it carried and stamps (or clears) the token on
the way back.
"""

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse, Response

from skew_protection.models import RouteReason, RoutingDecision
from skew_protection.routing import (
    AffinityToken,
    RequestRouter,
    apply_affinity,
    issue_token,
    parse_token,
)
from skew_protection.runtime import get_proxy
from skew_protection.tokens import TokenTracker

logger = logging.getLogger(__name__)

router = APIRouter()

# Headers that describe a single hop and must not be forwarded.
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "host",
        "content-length",
    }
)

# httpx hands back decoded bodies, so encoding headers no longer apply.
STRIPPED_RESPONSE_HEADERS = HOP_BY_HOP_HEADERS | {"content-encoding"}

DEPLOYMENT_HEADER = "X-Served-By-Deployment"


class AffinityProxy:
    """Forwards requests to the deployment picked by the router."""

    def __init__(
        self,
        router: RequestRouter,
        token_tracker: TokenTracker,
        client: httpx.AsyncClient,
    ):
        self.router = router
        self.token_tracker = token_tracker
        self.client = client

    async def handle(self, request: Request) -> Response:
        """Route, forward and stamp a single request."""
        signal = self.router.extract_signal(request.headers, request.cookies)
        decision = self.router.decide(signal)

        if not decision.routable:
            response = JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={
                    "error": "Service unavailable",
                    "detail": "No active deployment",
                    "type": "NoActiveDeployment",
                },
            )
            self.stamp(response, decision)
            return response

        issued = issue_token(decision.deployment_id) if decision.issue_token else None
        presented = parse_token(signal) if decision.reason == RouteReason.AFFINITY else None

        try:
            upstream = await self.forward(request, decision.target)
        except httpx.RequestError as e:
            logger.error(
                f"Upstream {decision.deployment_id} at {decision.target} failed: {e}"
            )
            response = JSONResponse(
                status_code=status.HTTP_502_BAD_GATEWAY,
                content={
                    "error": "Bad gateway",
                    "detail": f"Deployment {decision.deployment_id} is unreachable",
                    "type": type(e).__name__,
                },
            )
        else:
            response = Response(content=upstream.content, status_code=upstream.status_code)
            for name, value in upstream.headers.multi_items():
                if name.lower() not in STRIPPED_RESPONSE_HEADERS:
                    response.headers.append(name, value)

        tracked = issued or presented
        if tracked is not None:
            await self.record(tracked)

        self.stamp(response, decision, issued)
        response.headers[DEPLOYMENT_HEADER] = decision.deployment_id
        return response

    async def record(self, token: AffinityToken) -> None:
        """Track ``token`` while its deployment is still routable.

        A deployment retired while the request was in flight must not keep
        sessions in the tracker, so its entries are dropped again.
        """
        await self.token_tracker.touch(token)
        deployment = self.router.registry.snapshot.get(token.deployment_id)
        if deployment is None or not deployment.routable:
            logger.debug(f"Dropping tokens for retired deployment {token.deployment_id}")
            await self.token_tracker.forget(token.deployment_id)

    def stamp(
        self,
        response: Response,
        decision: RoutingDecision,
        issued: Optional[AffinityToken] = None,
    ) -> None:
        """Apply the affinity outcome using the router's header and cookie names."""
        apply_affinity(
            response,
            decision,
            issued,
            cookie_name=self.router.cookie_name,
            header_name=self.router.header_name,
        )

    async def forward(self, request: Request, target: str) -> httpx.Response:
        """Send ``request`` to ``target`` and return the upstream response."""
        url = f"{target.rstrip('/')}{request.url.path}"
        if request.url.query:
            url = f"{url}?{request.url.query}"

        headers = [
            (name, value)
            for name, value in request.headers.items()
            if name.lower() not in HOP_BY_HOP_HEADERS
        ]
        if request.client is not None:
            headers.append(("x-forwarded-for", request.client.host))
        host = request.headers.get("host")
        if host:
            headers.append(("x-forwarded-host", host))

        return await self.client.request(
            request.method,
            url,
            headers=headers,
            content=await request.body(),
        )

    async def aclose(self) -> None:
        await self.client.aclose()


@router.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"],
    include_in_schema=False,
)
async def proxy(request: Request, path: str) -> Response:
    """Forward any other request to the routed deployment."""
    return await get_proxy().handle(request)
