"""Like and view counters for generations."""

import logging
import uuid

from uibattles.schemas.gallery import LikeStatus
from uibattles.services.errors import NotFoundError
from uibattles.services.store import GenerationStore

logger = logging.getLogger(__name__)


class LikeService:
    def __init__(self, store: GenerationStore) -> None:
        self._store = store

    def toggle_like(self, generation_id: uuid.UUID, user_id: str) -> LikeStatus:
        """Like the generation, or remove the like if the user already gave one."""
        if self._store.get_likes_count(generation_id) is None:
            raise NotFoundError("Generation not found")
        existing = self._store.get_like(generation_id, user_id)
        if existing is not None:
            count = self._store.remove_like(existing.id, generation_id)
        else:
            count = self._store.add_like(generation_id, user_id)
        return LikeStatus(liked=existing is None, likes_count=count or 0)

    def get_like_status(self, generation_id: uuid.UUID, user_id: str | None) -> LikeStatus:
        count = self._store.get_likes_count(generation_id)
        if count is None:
            raise NotFoundError("Generation not found")
        if user_id is None:
            return LikeStatus(liked=False, likes_count=count)
        return LikeStatus(liked=self._store.get_like(generation_id, user_id) is not None, likes_count=count)

    def increment_view(self, generation_id: uuid.UUID) -> int:
        """Count one view; every call counts, there is no per-viewer dedup."""
        count = self._store.increment_view_count(generation_id)
        if count is None:
            raise NotFoundError("Generation not found")
        return count
