"""Model catalog API router."""

from typing import Any

from fastapi import APIRouter, Depends

from uibattles.api.deps import get_model_catalog
from uibattles.services.model_catalog import ModelCatalog

router = APIRouter()


@router.get("")
def list_models(catalog: ModelCatalog = Depends(get_model_catalog)) -> dict[str, list[dict[str, Any]]]:
    """Chat-capable OpenRouter models, cached for an hour."""
    return {"data": catalog.chat_models()}
