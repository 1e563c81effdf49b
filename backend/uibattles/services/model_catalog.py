"""Cached catalog of chat-capable OpenRouter models."""

import logging
import os
import threading
import time
from collections.abc import Callable
from typing import Any

import httpx

logger = logging.getLogger(__name__)

MODELS_URL = "https://openrouter.ai/api/v1/models"
CACHE_TTL_SECONDS = 60 * 60


class ModelCatalogError(Exception):
    """Raised when the model list cannot be fetched."""


def _is_chat_model(model: dict[str, Any]) -> bool:
    architecture = model.get("architecture") or {}
    modality = str(architecture.get("modality") or "").lower()
    return not modality or "text" in modality


class ModelCatalog:
    def __init__(
        self,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._cached: list[dict[str, Any]] | None = None
        self._expires_at = 0.0

    def chat_models(self) -> list[dict[str, Any]]:
        """Return chat-capable models, refetching once the cached list has expired."""
        with self._lock:
            if self._cached is not None and self._clock() < self._expires_at:
                return self._cached
            models = self._fetch()
            self._cached = [m for m in models if isinstance(m, dict) and _is_chat_model(m)]
            self._expires_at = self._clock() + self._ttl_seconds
            return self._cached

    def _fetch(self) -> list[Any]:
        try:
            response = httpx.get(
                MODELS_URL,
                headers={
                    "HTTP-Referer": os.environ.get("APP_ORIGIN", "http://localhost:8000"),
                    "X-Title": "UI Battles",
                },
                timeout=30,
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ModelCatalogError(f"Failed to fetch models: {exc}") from exc
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise ModelCatalogError("Failed to fetch models: unexpected response shape")
        logger.info("fetched %d models from OpenRouter", len(data))
        return data
