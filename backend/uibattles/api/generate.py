"""Generation submission API router."""

import logging

from fastapi import APIRouter, Depends
from starlette.requests import Request

from uibattles.api.deps import (
    client_address,
    get_current_user_id,
    get_generation_service,
    get_rate_limiter,
)
from uibattles.schemas.generation import GenerateRequest, GenerateResponse
from uibattles.services.errors import RateLimitExceededError
from uibattles.services.generation import GenerationService
from uibattles.services.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", status_code=202)
def submit_generation(
    body: GenerateRequest,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    service: GenerationService = Depends(get_generation_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> GenerateResponse:
    """Queue a generation for every requested model and return its id at once."""
    if not limiter.hit(client_address(request)):
        raise RateLimitExceededError("Rate limit exceeded. Please try again later.")
    generation_id = service.enqueue(
        prompt=body.prompt,
        name=body.name,
        models=body.models,
        api_key=body.api_key,
        user_id=user_id,
    )
    return GenerateResponse(id=generation_id)
