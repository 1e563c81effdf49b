"""FastAPI application entry point."""

import logging
import os

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S")

# Apply the same format to Uvicorn's loggers so they also show timestamps.
for _uvicorn_logger in ("uvicorn", "uvicorn.error", "uvicorn.access"):
    _log = logging.getLogger(_uvicorn_logger)
    _log.handlers.clear()
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S"))
    _log.addHandler(_handler)
    _log.propagate = False

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from uibattles.db import create_tables, get_session_factory
from uibattles.schemas.generation import ErrorResponse
from uibattles.services.background import BackgroundRunner
from uibattles.services.errors import (
    AuthenticationRequiredError,
    InvalidStateError,
    NotFoundError,
    RateLimitExceededError,
    UnauthorizedError,
)
from uibattles.services.executor import GenerationExecutor
from uibattles.services.generation import GenerationService
from uibattles.services.likes import LikeService
from uibattles.services.model_catalog import ModelCatalog, ModelCatalogError
from uibattles.services.rate_limit import RateLimiter
from uibattles.services.store import GenerationStore

logger = logging.getLogger(__name__)

app = FastAPI(title="UI Battles")

app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])

app.add_middleware(
    CORSMiddleware,
    allow_origins=[os.environ.get("APP_ORIGIN", "http://localhost:8000")],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)
app.add_middleware(
    SessionMiddleware,
    secret_key=os.environ.get("SESSION_SECRET", "dev-secret-change-me"),
)


@app.on_event("startup")
def startup() -> None:
    create_tables()
    store = GenerationStore(get_session_factory())
    runner = BackgroundRunner()
    service = GenerationService(store, GenerationExecutor(store), runner)

    app.state.runner = runner
    app.state.generation_service = service
    app.state.like_service = LikeService(store)
    app.state.rate_limiter = RateLimiter()
    app.state.model_catalog = ModelCatalog()

    settled = service.recover_interrupted()
    if settled:
        logger.warning("settled %d generation(s) interrupted by the last shutdown", settled)


@app.on_event("shutdown")
def shutdown() -> None:
    app.state.runner.shutdown()


# (exception, status, error code) for domain errors; anything else is a 500.
_ERROR_STATUSES: list[tuple[type[Exception], int, str]] = [
    (NotFoundError, 404, "not_found"),
    (UnauthorizedError, 403, "unauthorized"),
    (InvalidStateError, 400, "invalid_state"),
    (AuthenticationRequiredError, 401, "authentication_required"),
    (RateLimitExceededError, 429, "rate_limited"),
    (ModelCatalogError, 502, "model_catalog_error"),
]


def _domain_error_handler(status_code: int, error: str):  # type: ignore[no-untyped-def]
    async def _handle(request: Request, exc: Exception) -> JSONResponse:
        headers = {"Retry-After": "60"} if status_code == 429 else None
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(error=error, detail=str(exc)).model_dump(),
            headers=headers,
        )

    return _handle


for _exc_type, _status_code, _error in _ERROR_STATUSES:
    app.add_exception_handler(_exc_type, _domain_error_handler(_status_code, _error))


@app.exception_handler(Exception)
async def _global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error="internal_error", detail=str(exc)).model_dump(),
    )


@app.get("/healthz")
def healthz() -> dict[str, bool]:
    return {"ok": True}


# Import and register routers after app is defined to avoid circular imports.
from uibattles.api import account, auth, gallery, generate, generation, models  # noqa: E402

app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(generate.router, prefix="/api/generate", tags=["generation"])
app.include_router(generation.router, prefix="/api/generation", tags=["generation"])
app.include_router(gallery.router, prefix="/api/generations", tags=["gallery"])
app.include_router(account.router, prefix="/api/account", tags=["account"])
app.include_router(models.router, prefix="/api/models", tags=["models"])
