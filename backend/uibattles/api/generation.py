"""Generation status, abort, retry and detail API router."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from uibattles.api.deps import get_current_user_id, get_generation_service
from uibattles.db import get_session
from uibattles.schemas.generation import (
    GenerationDetail,
    GenerationStatus,
    RetryRequest,
    SuccessResponse,
)
from uibattles.services.gallery import GalleryService
from uibattles.services.generation import GenerationService

router = APIRouter()


@router.get("/{generation_id}/status")
def generation_status(
    generation_id: uuid.UUID,
    user_id: str = Depends(get_current_user_id),
    service: GenerationService = Depends(get_generation_service),
) -> GenerationStatus:
    """Poll the generation and its items. Only the owner may poll."""
    return service.get_owned_status(generation_id, user_id)


@router.post("/{generation_id}/abort")
def abort_generation(
    generation_id: uuid.UUID,
    user_id: str = Depends(get_current_user_id),
    service: GenerationService = Depends(get_generation_service),
) -> SuccessResponse:
    service.abort(generation_id, user_id)
    return SuccessResponse()


@router.post("/item/{item_id}/retry")
def retry_item(
    item_id: uuid.UUID,
    body: RetryRequest,
    user_id: str = Depends(get_current_user_id),
    service: GenerationService = Depends(get_generation_service),
) -> SuccessResponse:
    service.retry_item(item_id, user_id, body.api_key)
    return SuccessResponse()


@router.get("/{generation_id}")
def generation_detail(
    generation_id: uuid.UUID,
    db: Session = Depends(get_session),
) -> GenerationDetail:
    return GalleryService().get_generation_detail(db, generation_id)
