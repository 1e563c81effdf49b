"""FastAPI dependencies: the signed-in user and the app-scoped services."""

from starlette.requests import Request

from uibattles.services.errors import AuthenticationRequiredError
from uibattles.services.generation import GenerationService
from uibattles.services.likes import LikeService
from uibattles.services.model_catalog import ModelCatalog
from uibattles.services.rate_limit import RateLimiter


def get_optional_user_id(request: Request) -> str | None:
    user_id = request.session.get("user_id")
    return str(user_id) if user_id else None


def get_current_user_id(request: Request) -> str:
    user_id = get_optional_user_id(request)
    if user_id is None:
        raise AuthenticationRequiredError("Authentication required")
    return user_id


def get_generation_service(request: Request) -> GenerationService:
    return request.app.state.generation_service


def get_like_service(request: Request) -> LikeService:
    return request.app.state.like_service


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_model_catalog(request: Request) -> ModelCatalog:
    return request.app.state.model_catalog


def client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"
