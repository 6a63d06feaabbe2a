"""Main FastAPI application.

This module sets up the FastAPI application with middleware, routers, and
lifecycle management. Admin routes live under ADMIN_PREFIX, /health reports
on the service itself and every other path is proxied to the deployment the
router picks.
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI

from skew_protection.api.middleware import setup_cors, setup_error_handlers
from skew_protection.api.routers import deployments, proxy, rollouts
from skew_protection.runtime import close_services, get_controller, get_token_tracker

logger = logging.getLogger(__name__)

ADMIN_PREFIX = "/_skew"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan (startup and shutdown).

    Args:
        app: FastAPI application instance.
    """
    # Startup
    logger.info("Starting skew protection service...")
    tracker = get_token_tracker()
    try:
        await tracker.initialize()
    except Exception as e:
        logger.error(f"Failed to initialize token tracker: {e}", exc_info=True)
        raise

    monitor = asyncio.create_task(get_controller().run_drain_monitor())

    yield

    # Shutdown
    logger.info("Shutting down skew protection service...")
    monitor.cancel()
    with suppress(asyncio.CancelledError):
        await monitor
    try:
        await close_services()
    except Exception as e:
        logger.error(f"Error closing services: {e}", exc_info=True)


# Create FastAPI app
app = FastAPI(
    title="Skew Protection",
    description="Deployment-skew-aware routing: registry, router and rollout controller",
    version="1.0.0",
    lifespan=lifespan,
)

# Set up middleware
setup_cors(app)
setup_error_handlers(app)


@app.get("/health")
async def health():
    """Health check endpoint for the routing service itself."""
    snapshot = get_controller().registry.snapshot
    active = snapshot.active
    return {
        "status": "healthy",
        "active_deployment": active.identifier if active is not None else None,
        "snapshot_version": snapshot.version,
    }


# Include routers; the proxy catch-all must stay last.
app.include_router(
    deployments.router, prefix=f"{ADMIN_PREFIX}/deployments", tags=["deployments"]
)
app.include_router(rollouts.router, prefix=f"{ADMIN_PREFIX}/rollouts", tags=["rollouts"])
app.include_router(proxy.router)


# Allow running the service directly with: python -m skew_protection.api.api
# For production, use: uvicorn skew_protection.api.api:app --host 0.0.0.0 --port 8000
if __name__ == "__main__":
    import uvicorn

    from skew_protection.config import settings

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(
        "skew_protection.api.api:app",
        host=settings.host,
        port=settings.port,
    )
