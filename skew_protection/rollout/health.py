"""Deployment health checks.

A deployment may only be promoted once its target answers its health check.
Polling is a bounded retry loop: exponential backoff between attempts and an
overall deadline, after which the rollout is considered failed.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    retry_if_result,
    stop_after_delay,
    wait_exponential,
)

from skew_protection.config import settings
from skew_protection.errors import HealthCheckTimeoutError
from skew_protection.models import Deployment

logger = logging.getLogger(__name__)


class HealthChecker(ABC):
    """Reports whether a deployment is ready to serve traffic."""

    @abstractmethod
    async def check(self, deployment: Deployment) -> bool:
        """Return True if ``deployment`` is healthy."""


class HttpHealthChecker(HealthChecker):
    """Polls ``<target><health_check_path>`` and expects a 200."""

    def __init__(
        self,
        path: Optional[str] = None,
        request_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the checker.

        Args:
            path: Health check path, defaults to settings.health_check_path.
            request_timeout: Per-request timeout in seconds, defaults to
                settings.health_check_request_timeout_seconds.
            transport: Optional httpx transport (used in tests).
        """
        self.path = path or settings.health_check_path
        self.request_timeout = (
            request_timeout or settings.health_check_request_timeout_seconds
        )
        self._transport = transport

    def health_url(self, deployment: Deployment) -> str:
        return f"{deployment.target.rstrip('/')}{self.path}"

    async def check(self, deployment: Deployment) -> bool:
        url = self.health_url(deployment)
        try:
            async with httpx.AsyncClient(
                timeout=self.request_timeout, transport=self._transport
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            logger.debug(f"Health check for {deployment.identifier} at {url} failed: {e}")
            return False

        healthy = response.status_code == 200
        if not healthy:
            logger.debug(
                f"Health check for {deployment.identifier} returned {response.status_code}"
            )
        return healthy


async def wait_until_healthy(
    checker: HealthChecker,
    deployment: Deployment,
    timeout: Optional[float] = None,
    initial_interval: Optional[float] = None,
    max_interval: Optional[float] = None,
) -> None:
    """Poll ``checker`` until ``deployment`` is healthy.

    Args:
        checker: Health checker to poll.
        deployment: Deployment being rolled out.
        timeout: Overall deadline in seconds, defaults to
            settings.rollout_timeout_seconds.
        initial_interval: First backoff delay, defaults to
            settings.health_check_initial_interval_seconds.
        max_interval: Backoff ceiling, defaults to
            settings.health_check_max_interval_seconds.

    Raises:
        HealthCheckTimeoutError: If the deployment is still unhealthy when
            the deadline passes.
    """
    timeout = timeout or settings.rollout_timeout_seconds
    initial_interval = initial_interval or settings.health_check_initial_interval_seconds
    max_interval = max_interval or settings.health_check_max_interval_seconds

    retrying = AsyncRetrying(
        stop=stop_after_delay(timeout),
        wait=wait_exponential(multiplier=initial_interval, max=max_interval),
        retry=(
            retry_if_result(lambda healthy: healthy is not True)
            | retry_if_exception_type(Exception)
        ),
    )

    # The deadline covers in-flight checks and backoff sleeps too.
    try:
        await asyncio.wait_for(retrying(checker.check, deployment), timeout)
    except (RetryError, asyncio.TimeoutError):
        attempts = retrying.statistics.get("attempt_number", 0)
        logger.warning(
            f"Deployment {deployment.identifier} not healthy after {attempts} "
            f"attempts within {timeout}s"
        )
        raise HealthCheckTimeoutError(
            f"Deployment {deployment.identifier} did not become healthy within {timeout}s",
            identifier=deployment.identifier,
        ) from None

    logger.info(f"Deployment {deployment.identifier} is healthy")
