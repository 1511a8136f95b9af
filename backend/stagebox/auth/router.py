"""Auth router for cookie sessions.

Endpoints:
    POST /api/auth/login    - Check credentials and set the session cookie
    POST /api/auth/logout   - Clear the session cookie
    GET  /api/auth/session  - Report the signed-in user
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field

from stagebox.config import get_config
from stagebox.errors import AuthenticationError, RateLimitedError, ValidationError
from stagebox.metadata.service import MetadataStore

from .dependencies import SessionUser, require_session
from .rate_limit import get_login_limiter
from .service import UserService
from .tokens import get_token_codec

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginRequest(BaseModel):
    """Request body for login. Both fields are checked by the route."""
    username: Optional[str] = None
    password: Optional[str] = None


class LoginResponse(BaseModel):
    id: int
    username: str


class SessionResponse(BaseModel):
    user_id: int = Field(..., serialization_alias="userId")


def _client_identity(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@router.post("/login", response_model=LoginResponse)
def login(body: LoginRequest, request: Request, response: Response) -> LoginResponse:
    """Sign in with username and password.

    The attempt is counted against the caller's address before the
    credentials are looked at.

    Raises:
        429: Too many attempts from this address in the current window.
        400: Username or password missing.
        401: Unknown user or wrong password.
    """
    identity = _client_identity(request)
    if not get_login_limiter().allow(identity):
        raise RateLimitedError()

    if not body.username or not body.password:
        raise ValidationError("Missing username or password")

    user = UserService(MetadataStore.get_instance()).authenticate(body.username, body.password)
    if user is None:
        logger.info("Failed login from %s", identity)
        raise AuthenticationError("Invalid username or password")

    config = get_config()
    max_age = config.auth.session_days * 24 * 60 * 60
    token = get_token_codec().sign_session(user.id, max_age)
    response.set_cookie(
        config.auth.cookie_name,
        token,
        max_age=max_age,
        httponly=True,
        samesite="lax",
        secure=config.is_production,
        path="/",
    )
    logger.info("User %s signed in", user.id)
    return LoginResponse(id=user.id, username=user.username)


@router.post("/logout")
def logout(response: Response) -> dict:
    """Clear the session cookie."""
    response.delete_cookie(get_config().auth.cookie_name, path="/")
    return {"success": True}


@router.get("/session", response_model=SessionResponse)
def session(user: SessionUser = Depends(require_session)) -> SessionResponse:
    return SessionResponse(user_id=user.user_id)
