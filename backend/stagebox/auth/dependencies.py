"""FastAPI dependencies for session and admin authentication."""
import hmac
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, Request

from stagebox.config import get_config
from stagebox.errors import AuthenticationError, UpstreamError

from .tokens import TokenType, get_token_codec

logger = logging.getLogger(__name__)


@dataclass
class SessionUser:
    user_id: int


def require_session(request: Request) -> SessionUser:
    """Resolve the session cookie into the signed-in user, or fail with 401.

    Only tokens of type ``session`` are accepted; a file capability placed
    in the cookie is rejected.
    """
    cookie_name = get_config().auth.cookie_name
    token = request.cookies.get(cookie_name)
    if not token:
        raise AuthenticationError()
    payload = get_token_codec().verify_typed(token, TokenType.SESSION)
    if payload is None:
        raise AuthenticationError()
    user_id = payload.get("sub")
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        raise AuthenticationError()
    return SessionUser(user_id=user_id)


def require_admin_key(authorization: Optional[str] = Header(None)) -> None:
    """Require ``Authorization: Bearer <admin api key>``."""
    api_key = get_config().secrets.admin.api_key
    if not api_key:
        raise UpstreamError("Admin API key not configured")
    expected = f"Bearer {api_key}".encode("utf-8")
    supplied = (authorization or "").encode("utf-8")
    if not hmac.compare_digest(supplied, expected):
        logger.warning("Rejected admin request with a bad API key")
        raise AuthenticationError("Unauthorized")
