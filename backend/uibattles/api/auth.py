"""Google OAuth 2.0 sign-in; the user id is kept in the session cookie."""

import logging
import os
from urllib.parse import urlsplit

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2 import id_token
from google_auth_oauthlib.flow import Flow
from sqlalchemy.orm import Session
from starlette.requests import Request

from uibattles.db import get_session
from uibattles.models.user import User

logger = logging.getLogger(__name__)

router = APIRouter()

SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]


def _redirect_uri() -> str:
    return os.environ.get("GOOGLE_REDIRECT_URI", "http://localhost:8000/auth/callback")


def _build_flow(state: str | None = None) -> Flow:
    flow = Flow.from_client_secrets_file(
        os.environ.get("GOOGLE_CREDENTIALS_PATH", "credentials.json"),
        scopes=SCOPES,
        state=state,
    )
    flow.redirect_uri = _redirect_uri()
    return flow


def _upsert_user(db: Session, claims: dict[str, object]) -> User:
    user_id = str(claims["sub"])
    name = str(claims.get("name") or claims.get("email") or "Anonymous")
    email = claims.get("email")
    image = claims.get("picture")
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        user = User(id=user_id, name=name)
        db.add(user)
    user.email = str(email) if email else None
    user.image = str(image) if image else None
    db.commit()
    return user


def _safe_redirect(target: str) -> str:
    """Return *target* if it is a same-site path, else "/"."""
    # Browsers read "\\" as "/" and drop tabs and newlines, so both can turn a path into "//host".
    if not target.startswith("/") or target.startswith("//") or "\\" in target or any(c.isspace() for c in target):
        return "/"
    parts = urlsplit(target)
    if parts.scheme or parts.netloc:
        return "/"
    return target


@router.get("/login")
def login(request: Request, redirect: str = "/") -> RedirectResponse:
    flow = _build_flow()
    authorization_url, state = flow.authorization_url(prompt="select_account")
    request.session["oauth_state"] = state
    request.session["post_login_redirect"] = _safe_redirect(redirect)
    return RedirectResponse(authorization_url)


@router.get("/callback")
def callback(request: Request, db: Session = Depends(get_session)) -> RedirectResponse:
    state = request.session.pop("oauth_state", None)
    flow = _build_flow(state=state)
    scheme = _redirect_uri().split("://")[0]
    callback_url = str(request.url).replace("http://", f"{scheme}://", 1)
    flow.fetch_token(authorization_response=callback_url)
    claims = id_token.verify_oauth2_token(
        flow.credentials.id_token,
        GoogleRequest(),
        flow.client_config["client_id"],
    )
    user = _upsert_user(db, claims)
    request.session["user_id"] = user.id
    logger.info("user %s signed in", user.id)
    return RedirectResponse(request.session.pop("post_login_redirect", "/"))


@router.post("/logout")
def logout(request: Request) -> dict[str, bool]:
    request.session.clear()
    return {"success": True}
