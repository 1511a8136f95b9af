"""Compact signed tokens for sessions and file capabilities.

Tokens are HS256 JWTs built with python-jose. The algorithm is fixed by
this module; a token whose header names anything else is rejected rather
than verified with a different algorithm.

The body is the caller's payload plus ``exp`` (epoch seconds). Tokens are
stateless: nothing is stored server side, so validity is exactly
"signature matches and not expired". Expiry is checked here against the
codec's clock, not by jose, so that tests can move time.

Two payload shapes are in use:

    {"sub": <user id>, "type": "session"}   cookie-carried login session
    {"file": <storage key>, "type": "file"} URL-carried file capability

Callers must use ``verify_typed`` so that one kind is never accepted where
the other is expected.
"""
from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from jose import JWTError, jwt

from stagebox.config import get_config

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

# Session subjects are integer user ids, and expiry runs on the injected clock.
_DECODE_OPTIONS = {"verify_exp": False, "verify_sub": False}


class TokenType(str, Enum):
    SESSION = "session"
    FILE = "file"


class TokenCodec:
    """Signs and verifies expiring HS256 tokens.

    Args:
        secret: Server-wide signing secret. Must not be empty.
        clock: Returns the current time in epoch seconds; injectable for tests.
    """

    def __init__(self, secret: str, clock: Callable[[], float] = time.time) -> None:
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._secret = secret
        self._clock = clock

    def sign(self, payload: Mapping[str, Any], ttl_seconds: int) -> str:
        """Return a token carrying *payload* that expires in *ttl_seconds*."""
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        body = dict(payload)
        body["exp"] = int(self._clock()) + int(ttl_seconds)
        return jwt.encode(body, self._secret, algorithm=ALGORITHM)

    def verify(self, token: str) -> Optional[Dict[str, Any]]:
        """Return the payload of a valid token, or None.

        Never raises on malformed input. The returned dict is the payload as
        passed to ``sign`` (the ``exp`` claim is consumed here).
        """
        if not isinstance(token, str) or not token:
            return None
        try:
            payload = jwt.decode(token, self._secret, algorithms=[ALGORITHM], options=_DECODE_OPTIONS)
        except JWTError as exc:
            logger.debug("Rejected token: %s", exc)
            return None

        exp = payload.pop("exp", None)
        if exp is not None:
            if not isinstance(exp, (int, float)) or isinstance(exp, bool):
                return None
            # jose treats exp == now as still valid; here it has expired.
            if exp <= self._clock():
                return None
        return payload

    def verify_typed(self, token: str, expected: TokenType) -> Optional[Dict[str, Any]]:
        """Like ``verify`` but also requires ``payload["type"] == expected``."""
        payload = self.verify(token)
        if payload is None:
            return None
        if payload.get("type") != expected.value:
            logger.debug("Rejected token of type %r where %r was expected", payload.get("type"), expected.value)
            return None
        return payload

    # ------------------------------------------------------------------
    # Payload helpers
    # ------------------------------------------------------------------

    def sign_session(self, user_id: int, ttl_seconds: int) -> str:
        return self.sign({"sub": user_id, "type": TokenType.SESSION.value}, ttl_seconds)

    def sign_file(self, storage_key: str, ttl_seconds: int) -> str:
        return self.sign({"file": storage_key, "type": TokenType.FILE.value}, ttl_seconds)


_codec: Optional[TokenCodec] = None


def get_token_codec() -> TokenCodec:
    """Return the process-wide codec keyed with the configured secret."""
    global _codec
    if _codec is None:
        _codec = TokenCodec(get_config().secrets.jwt.secret_key)
    return _codec


def set_token_codec(codec: Optional[TokenCodec]) -> None:
    global _codec
    _codec = codec
