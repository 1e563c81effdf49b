"""Pydantic schemas for the public gallery, likes, views and account listings."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from uibattles.schemas.generation import GenerationStatusValue

SortOption = Literal["recent", "popular", "most_liked"]


class PreviewSchema(BaseModel):
    id: uuid.UUID
    model_name: str
    html: str


class GenerationCard(BaseModel):
    id: uuid.UUID
    name: str
    created_at: datetime
    item_count: int
    view_count: int
    likes_count: int
    preview: PreviewSchema | None
    user_liked: bool = False


class GalleryPage(BaseModel):
    generations: list[GenerationCard]
    next_cursor: uuid.UUID | None
    has_more: bool


class AccountGenerationSummary(BaseModel):
    id: uuid.UUID
    name: str
    status: GenerationStatusValue
    created_at: datetime

    model_config = {"from_attributes": True}


class AccountGenerationsPage(BaseModel):
    generations: list[AccountGenerationSummary]
    next_cursor: uuid.UUID | None
    has_more: bool


class LikeStatus(BaseModel):
    liked: bool
    likes_count: int


class ViewCountResponse(BaseModel):
    success: bool = True
    view_count: int
