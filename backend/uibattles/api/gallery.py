"""Public gallery, likes and views API router."""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from uibattles.api.deps import get_current_user_id, get_like_service, get_optional_user_id
from uibattles.db import get_session
from uibattles.schemas.gallery import GalleryPage, LikeStatus, SortOption, ViewCountResponse
from uibattles.services.gallery import DEFAULT_LIMIT, GALLERY_MAX_LIMIT, GalleryService
from uibattles.services.likes import LikeService

router = APIRouter()


@router.get("")
def list_generations(
    cursor: str | None = Query(default=None),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1),
    search: str | None = Query(default=None),
    sort: SortOption = Query(default="recent"),
    viewer_id: str | None = Depends(get_optional_user_id),
    db: Session = Depends(get_session),
) -> GalleryPage:
    return GalleryService().list_generations(
        db,
        cursor=cursor,
        limit=min(limit, GALLERY_MAX_LIMIT),
        search=search,
        sort=sort,
        viewer_id=viewer_id,
    )


@router.get("/{generation_id}/like")
def like_status(
    generation_id: uuid.UUID,
    user_id: str | None = Depends(get_optional_user_id),
    likes: LikeService = Depends(get_like_service),
) -> LikeStatus:
    return likes.get_like_status(generation_id, user_id)


@router.post("/{generation_id}/like")
def toggle_like(
    generation_id: uuid.UUID,
    user_id: str = Depends(get_current_user_id),
    likes: LikeService = Depends(get_like_service),
) -> LikeStatus:
    return likes.toggle_like(generation_id, user_id)


@router.post("/{generation_id}/view")
def record_view(
    generation_id: uuid.UUID,
    likes: LikeService = Depends(get_like_service),
) -> ViewCountResponse:
    return ViewCountResponse(view_count=likes.increment_view(generation_id))
