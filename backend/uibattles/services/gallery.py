"""Gallery service: keyset-paginated listings of generations."""

import uuid
from typing import Any

from sqlalchemy import and_, exists, func, or_
from sqlalchemy.orm import Session

from uibattles.models.generation import Generation
from uibattles.models.generation_item import GenerationItem
from uibattles.models.generation_like import GenerationLike
from uibattles.models.user import User
from uibattles.schemas.gallery import (
    AccountGenerationsPage,
    AccountGenerationSummary,
    GalleryPage,
    GenerationCard,
    PreviewSchema,
    SortOption,
)
from uibattles.schemas.generation import (
    CreatorSchema,
    GenerationDetail,
    GenerationItemDetail,
)
from uibattles.services.errors import NotFoundError

DEFAULT_LIMIT = 20
GALLERY_MAX_LIMIT = 50

_SORT_COLUMNS: dict[str, Any] = {
    "recent": Generation.created_at,
    "popular": Generation.view_count,
    "most_liked": Generation.likes_count,
}


def _parse_cursor(cursor: str | uuid.UUID | None) -> uuid.UUID | None:
    if cursor is None or isinstance(cursor, uuid.UUID):
        return cursor
    try:
        return uuid.UUID(cursor)
    except ValueError:
        return None


def _after_cursor(db: Session, column: Any, cursor: str | uuid.UUID | None) -> Any | None:
    """Return the keyset condition for rows after *cursor*, or None for a first page.

    Rows are ordered by (column, id) descending, so ties on the sort key never
    drop or repeat a row across pages. Unknown cursors are ignored.
    """
    cursor_id = _parse_cursor(cursor)
    if cursor_id is None:
        return None
    row = db.query(column).filter(Generation.id == cursor_id).first()
    if row is None:
        return None
    value = row[0]
    return or_(column < value, and_(column == value, Generation.id < cursor_id))


class GalleryService:
    def list_generations(
        self,
        db: Session,
        *,
        cursor: str | uuid.UUID | None = None,
        limit: int = DEFAULT_LIMIT,
        search: str | None = None,
        sort: SortOption = "recent",
        viewer_id: str | None = None,
    ) -> GalleryPage:
        """Return one page of generations that have at least one completed item.

        Sorted by *sort* descending; *search* is a case-insensitive substring of the
        name; *cursor* is the id of the last generation of the previous page. Each
        card carries a preview, its item count and, with *viewer_id*, whether the
        viewer liked it.
        """
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        column = _SORT_COLUMNS.get(sort, Generation.created_at)
        has_completed = exists().where(
            GenerationItem.generation_id == Generation.id,
            GenerationItem.status == "completed",
        )
        query = db.query(Generation).filter(has_completed)

        condition = _after_cursor(db, column, cursor)
        if condition is not None:
            query = query.filter(condition)
        if search:
            query = query.filter(Generation.name.icontains(search, autoescape=True))

        rows: list[Generation] = query.order_by(column.desc(), Generation.id.desc()).limit(limit + 1).all()
        has_more = len(rows) > limit
        page = rows[:limit]
        next_cursor = page[-1].id if has_more else None
        if not page:
            return GalleryPage(generations=[], next_cursor=next_cursor, has_more=has_more)

        ids = [g.id for g in page]
        previews = self._first_previews(db, ids)
        counts: dict[uuid.UUID, int] = dict(
            db.query(GenerationItem.generation_id, func.count(GenerationItem.id))
            .filter(GenerationItem.generation_id.in_(ids))
            .group_by(GenerationItem.generation_id)
            .all()
        )
        liked: set[uuid.UUID] = set()
        if viewer_id:
            liked = {
                gid
                for (gid,) in db.query(GenerationLike.generation_id)
                .filter(GenerationLike.generation_id.in_(ids), GenerationLike.user_id == viewer_id)
                .all()
            }

        cards = [
            GenerationCard(
                id=g.id,
                name=g.name,
                created_at=g.created_at,
                item_count=counts.get(g.id, 0),
                view_count=g.view_count or 0,
                likes_count=g.likes_count or 0,
                preview=previews.get(g.id),
                user_liked=g.id in liked,
            )
            for g in page
        ]
        return GalleryPage(generations=cards, next_cursor=next_cursor, has_more=has_more)

    def _first_previews(self, db: Session, ids: list[uuid.UUID]) -> dict[uuid.UUID, PreviewSchema]:
        """Earliest completed item per generation, in one query."""
        rows = (
            db.query(GenerationItem.id, GenerationItem.generation_id, GenerationItem.model_name, GenerationItem.html)
            .filter(GenerationItem.generation_id.in_(ids), GenerationItem.status == "completed")
            .order_by(GenerationItem.position.asc(), GenerationItem.created_at.asc())
            .all()
        )
        previews: dict[uuid.UUID, PreviewSchema] = {}
        for item_id, generation_id, model_name, html in rows:
            if generation_id not in previews:
                previews[generation_id] = PreviewSchema(id=item_id, model_name=model_name, html=html or "")
        return previews

    def list_user_generations(
        self,
        db: Session,
        user_id: str,
        *,
        cursor: str | uuid.UUID | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> AccountGenerationsPage:
        """Return the user's own generations of any status, newest first."""
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        query = db.query(Generation).filter(Generation.user_id == user_id)
        condition = _after_cursor(db, Generation.created_at, cursor)
        if condition is not None:
            query = query.filter(condition)
        rows = query.order_by(Generation.created_at.desc(), Generation.id.desc()).limit(limit + 1).all()
        has_more = len(rows) > limit
        page = rows[:limit]
        return AccountGenerationsPage(
            generations=[AccountGenerationSummary.model_validate(g) for g in page],
            next_cursor=page[-1].id if has_more else None,
            has_more=has_more,
        )

    def get_generation_detail(self, db: Session, generation_id: uuid.UUID) -> GenerationDetail:
        generation = db.query(Generation).filter(Generation.id == generation_id).first()
        if generation is None:
            raise NotFoundError("Generation not found")
        creator = db.query(User).filter(User.id == generation.user_id).first()
        items = (
            db.query(GenerationItem)
            .filter(GenerationItem.generation_id == generation_id)
            .order_by(GenerationItem.position.asc())
            .all()
        )
        return GenerationDetail(
            id=generation.id,
            name=generation.name,
            prompt=generation.prompt,
            created_at=generation.created_at,
            view_count=generation.view_count,
            likes_count=generation.likes_count,
            creator=CreatorSchema.model_validate(creator) if creator is not None else None,
            items=[GenerationItemDetail.model_validate(item) for item in items],
        )
