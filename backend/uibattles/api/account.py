"""Signed-in user's own generations."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from uibattles.api.deps import get_current_user_id
from uibattles.db import get_session
from uibattles.schemas.gallery import AccountGenerationsPage
from uibattles.services.gallery import DEFAULT_LIMIT, GALLERY_MAX_LIMIT, GalleryService

router = APIRouter()


@router.get("/generations")
def my_generations(
    cursor: str | None = Query(default=None),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_session),
) -> AccountGenerationsPage:
    return GalleryService().list_user_generations(
        db, user_id, cursor=cursor, limit=min(limit, GALLERY_MAX_LIMIT)
    )
