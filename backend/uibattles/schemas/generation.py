"""Pydantic schemas for generation endpoints."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

GenerationStatusValue = Literal["pending", "in_progress", "completed", "aborted"]
ItemStatusValue = Literal["pending", "generating", "completed", "error", "aborted"]


class GenerateRequest(BaseModel):
    prompt: str = Field(..., min_length=1, max_length=2000)
    name: str = Field(..., min_length=1, max_length=100)
    models: list[str] = Field(..., min_length=1, max_length=5, description="OpenRouter model ids")
    api_key: str = Field(..., min_length=1, description="Caller's OpenRouter API key, never stored")


class GenerateResponse(BaseModel):
    id: uuid.UUID


class RetryRequest(BaseModel):
    api_key: str = Field(..., min_length=1)


class GenerationItemStatus(BaseModel):
    id: uuid.UUID
    model_id: str
    model_name: str
    status: ItemStatusValue
    error: str | None
    started_at: datetime | None
    completed_at: datetime | None

    model_config = {"from_attributes": True}


class GenerationStatus(BaseModel):
    id: uuid.UUID
    name: str
    prompt: str
    user_id: str
    status: GenerationStatusValue
    started_at: datetime | None
    completed_at: datetime | None
    abort_requested: bool
    items: list[GenerationItemStatus]


class CreatorSchema(BaseModel):
    id: str
    name: str
    image: str | None

    model_config = {"from_attributes": True}


class GenerationItemDetail(BaseModel):
    id: uuid.UUID
    model_id: str
    model_name: str
    status: ItemStatusValue
    html: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class GenerationDetail(BaseModel):
    id: uuid.UUID
    name: str
    prompt: str
    created_at: datetime
    view_count: int
    likes_count: int
    creator: CreatorSchema | None
    items: list[GenerationItemDetail]


class SuccessResponse(BaseModel):
    success: bool = True


class ErrorResponse(BaseModel):
    error: str
    detail: str | None = None
