"""Generation store: typed single-row reads and writes against generation tables.

Every method opens and closes its own session, so the store can be shared by the
request handlers and the executor threads. No business rules live here.
"""

import logging
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from uibattles.models.generation import Generation
from uibattles.models.generation_item import GenerationItem
from uibattles.models.generation_like import GenerationLike

logger = logging.getLogger(__name__)

UNFINISHED_GENERATION_STATUSES = ("pending", "in_progress")


class GenerationStore:
    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # ── Generations ───────────────────────────────────────────────────────────

    def insert_generation(self, *, name: str, prompt: str, user_id: str) -> Generation:
        generation = Generation(id=uuid.uuid4(), name=name, prompt=prompt, user_id=user_id, status="pending")
        with self._session() as db:
            db.add(generation)
            db.commit()
        return generation

    def get_generation(self, generation_id: uuid.UUID) -> Generation | None:
        with self._session() as db:
            return db.query(Generation).filter(Generation.id == generation_id).first()

    def update_generation(self, generation_id: uuid.UUID, **fields: Any) -> None:
        with self._session() as db:
            db.query(Generation).filter(Generation.id == generation_id).update(fields)
            db.commit()

    def set_abort_requested(self, generation_id: uuid.UUID) -> None:
        self.update_generation(generation_id, abort_requested=True)

    def abort_requested(self, generation_id: uuid.UUID) -> bool:
        with self._session() as db:
            row = db.query(Generation.abort_requested).filter(Generation.id == generation_id).first()
            return bool(row is not None and row[0])

    def list_unfinished_generations(self) -> list[Generation]:
        with self._session() as db:
            return (
                db.query(Generation)
                .filter(Generation.status.in_(UNFINISHED_GENERATION_STATUSES))
                .order_by(Generation.created_at.asc())
                .all()
            )

    # ── Items ─────────────────────────────────────────────────────────────────

    def insert_items(self, generation_id: uuid.UUID, model_ids: list[str]) -> list[GenerationItem]:
        items = [
            GenerationItem(
                id=uuid.uuid4(),
                generation_id=generation_id,
                position=position,
                model_id=model_id,
                model_name=model_id,
                status="pending",
            )
            for position, model_id in enumerate(model_ids)
        ]
        with self._session() as db:
            db.add_all(items)
            db.commit()
        return items

    def get_item(self, item_id: uuid.UUID) -> GenerationItem | None:
        with self._session() as db:
            return db.query(GenerationItem).filter(GenerationItem.id == item_id).first()

    def get_items(self, generation_id: uuid.UUID) -> list[GenerationItem]:
        with self._session() as db:
            return (
                db.query(GenerationItem)
                .filter(GenerationItem.generation_id == generation_id)
                .order_by(GenerationItem.position.asc())
                .all()
            )

    def update_item(self, item_id: uuid.UUID, **fields: Any) -> None:
        with self._session() as db:
            db.query(GenerationItem).filter(GenerationItem.id == item_id).update(fields)
            db.commit()

    def reset_item(self, item_id: uuid.UUID) -> None:
        self.update_item(item_id, status="pending", html=None, error=None, started_at=None, completed_at=None)

    # ── Likes and views ───────────────────────────────────────────────────────

    def get_like(self, generation_id: uuid.UUID, user_id: str) -> GenerationLike | None:
        with self._session() as db:
            return (
                db.query(GenerationLike)
                .filter(GenerationLike.generation_id == generation_id, GenerationLike.user_id == user_id)
                .first()
            )

    def get_likes_count(self, generation_id: uuid.UUID) -> int | None:
        with self._session() as db:
            row = db.query(Generation.likes_count).filter(Generation.id == generation_id).first()
            return None if row is None else row[0]

    def add_like(self, generation_id: uuid.UUID, user_id: str) -> int | None:
        """Insert a like row and bump likes_count in one transaction. Returns the new count."""
        with self._session() as db:
            db.add(GenerationLike(id=uuid.uuid4(), generation_id=generation_id, user_id=user_id))
            db.query(Generation).filter(Generation.id == generation_id).update(
                {Generation.likes_count: Generation.likes_count + 1}
            )
            try:
                db.commit()
            except IntegrityError:
                # A concurrent toggle inserted the same (generation, user) row first.
                db.rollback()
                logger.warning("like for generation %s by %s already exists", generation_id, user_id)
        return self.get_likes_count(generation_id)

    def remove_like(self, like_id: uuid.UUID, generation_id: uuid.UUID) -> int | None:
        """Delete a like row and drop likes_count in one transaction. Returns the new count."""
        with self._session() as db:
            deleted = db.query(GenerationLike).filter(GenerationLike.id == like_id).delete()
            if deleted:
                db.query(Generation).filter(Generation.id == generation_id, Generation.likes_count > 0).update(
                    {Generation.likes_count: Generation.likes_count - 1}
                )
            db.commit()
        return self.get_likes_count(generation_id)

    def increment_view_count(self, generation_id: uuid.UUID) -> int | None:
        with self._session() as db:
            db.query(Generation).filter(Generation.id == generation_id).update(
                {Generation.view_count: Generation.view_count + 1}
            )
            db.commit()
            row = db.query(Generation.view_count).filter(Generation.id == generation_id).first()
            return None if row is None else row[0]
