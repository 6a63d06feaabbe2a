"""Rollout router.

- POST /_skew/rollouts - Register, health check and promote a new deployment
- GET /_skew/rollouts - Rollout history
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from skew_protection.api.middleware.auth import verify_api_key
from skew_protection.models import IDENTIFIER_PATTERN, Deployment
from skew_protection.rollout import RolloutRecord
from skew_protection.runtime import get_controller

logger = logging.getLogger(__name__)

router = APIRouter()


class StartRolloutRequest(BaseModel):
    """Request model for starting a rollout."""

    identifier: str = Field(
        ...,
        pattern=IDENTIFIER_PATTERN,
        description="Content-derived identifier of the new build",
    )
    target: str = Field(..., min_length=1, description="Endpoint serving the new build")


@router.post("", response_model=Deployment, status_code=status.HTTP_201_CREATED)
async def start_rollout(
    request: StartRolloutRequest,
    api_key: str = Depends(verify_api_key),
) -> Deployment:
    """Roll out a new deployment.

    Blocks until the deployment is active or the rollout failed. A failed
    rollout answers 504 and leaves the current active deployment serving.
    """
    deployment = await get_controller().start_rollout(request.identifier, request.target)
    logger.info(f"Rolled out {deployment.identifier} via admin API")
    return deployment


@router.get("", response_model=List[RolloutRecord])
async def list_rollouts(
    api_key: str = Depends(verify_api_key),
) -> List[RolloutRecord]:
    return get_controller().rollouts()
