"""Deployment router for the administrative operation set.

- GET /_skew/deployments - List deployments (creation order)
- POST /_skew/deployments - Register a deployment (provisioning)
- POST /_skew/deployments/retire-drained - Retire every eligible draining deployment
- GET /_skew/deployments/{identifier} - Get one deployment
- POST /_skew/deployments/{identifier}/promote - Health-gated promotion
- POST /_skew/deployments/{identifier}/retire - Retire a draining deployment

Control plane errors propagate to the handlers installed by
setup_error_handlers and are rendered with their own status codes.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from skew_protection.api.middleware.auth import verify_api_key
from skew_protection.models import IDENTIFIER_PATTERN, Deployment
from skew_protection.runtime import get_controller

logger = logging.getLogger(__name__)

router = APIRouter()


class RegisterDeploymentRequest(BaseModel):
    """Request model for registering a deployment."""

    identifier: str = Field(
        ...,
        pattern=IDENTIFIER_PATTERN,
        description="Content-derived identifier, e.g. the build hash",
    )
    target: str = Field(
        ..., min_length=1, description="Backend endpoint serving this build"
    )


class DeploymentListResponse(BaseModel):
    """Response model for listing deployments."""

    snapshot_version: int = Field(..., description="Registry snapshot version")
    active: Optional[str] = Field(
        default=None, description="Identifier of the active deployment"
    )
    deployments: List[Deployment] = Field(
        default_factory=list, description="Deployments ordered by creation time"
    )


class RetireDrainedResponse(BaseModel):
    """Response model for a drain sweep."""

    retired: List[Deployment] = Field(
        default_factory=list, description="Deployments retired by this sweep"
    )


@router.get("", response_model=DeploymentListResponse)
async def list_deployments(
    api_key: str = Depends(verify_api_key),
) -> DeploymentListResponse:
    """List deployments from a single registry snapshot."""
    snapshot = get_controller().registry.snapshot
    active = snapshot.active
    return DeploymentListResponse(
        snapshot_version=snapshot.version,
        active=active.identifier if active is not None else None,
        deployments=list(snapshot.deployments),
    )


@router.post("", response_model=Deployment, status_code=status.HTTP_201_CREATED)
async def register_deployment(
    request: RegisterDeploymentRequest,
    api_key: str = Depends(verify_api_key),
) -> Deployment:
    """Register a deployment in the provisioning state."""
    return get_controller().register(request.identifier, request.target)


@router.post("/retire-drained", response_model=RetireDrainedResponse)
async def retire_drained(
    api_key: str = Depends(verify_api_key),
) -> RetireDrainedResponse:
    """Retire every draining deployment whose clients are gone or whose grace period is over."""
    retired = await get_controller().retire_drained()
    return RetireDrainedResponse(retired=retired)


@router.get("/{identifier}", response_model=Deployment)
async def get_deployment(
    identifier: str,
    api_key: str = Depends(verify_api_key),
) -> Deployment:
    return get_controller().registry.get(identifier)


@router.post("/{identifier}/promote", response_model=Deployment)
async def promote_deployment(
    identifier: str,
    api_key: str = Depends(verify_api_key),
) -> Deployment:
    """Promote a provisioning (or draining, for rollback) deployment once healthy."""
    deployment = await get_controller().promote(identifier)
    logger.info(f"Promoted {identifier} via admin API")
    return deployment


@router.post("/{identifier}/retire", response_model=Deployment)
async def retire_deployment(
    identifier: str,
    api_key: str = Depends(verify_api_key),
) -> Deployment:
    """Retire a draining deployment."""
    deployment = await get_controller().retire(identifier)
    logger.info(f"Retired {identifier} via admin API")
    return deployment
