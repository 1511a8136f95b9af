"""File gateway: turns a capability or direct request into a byte stream.

Bytes come from the media service's ``GET /files/{name}`` and are relayed
chunk by chunk; nothing is buffered in full. Every failure past
authorization (unreachable peer, non-success status, broken read) is
reported to the client as a 404.
"""
import logging
from enum import Enum
from typing import AsyncIterator, Dict, Optional

import httpx
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from stagebox.auth.tokens import TokenCodec, TokenType
from stagebox.errors import ForbiddenError, NotFoundError, ValidationError
from stagebox.media.schemas import WAVEFORM_SUFFIX, mime_type_for, waveform_key

from .client import MediaServiceClient

logger = logging.getLogger(__name__)

PROPAGATED_HEADERS = ("content-length", "etag", "last-modified", "content-range")


class Variant(str, Enum):
    """Which file behind a storage key to serve."""
    ORIGINAL = "audio"
    WAVEFORM = "waveform"

    @classmethod
    def from_query(cls, value: Optional[str]) -> "Variant":
        """Map the direct flow's ``type`` query value; anything but ``waveform`` is the original."""
        return cls.WAVEFORM if value == cls.WAVEFORM.value else cls.ORIGINAL


class FileUnavailableError(NotFoundError):
    default_message = "File not found"


def target_name(storage_key: str, variant: Variant) -> str:
    """Name of the stored file to fetch for *variant*."""
    if variant is Variant.WAVEFORM and not storage_key.endswith(WAVEFORM_SUFFIX):
        return waveform_key(storage_key)
    return storage_key


class FileGateway:
    """Authorize and relay file reads.

    Args:
        codec: Token codec used to check capability tokens.
        client: Media service client the bytes are fetched through.
    """

    def __init__(self, codec: TokenCodec, client: MediaServiceClient) -> None:
        self.codec = codec
        self.client = client

    def resolve_capability(self, token: Optional[str], variant: Variant) -> str:
        """Return the stored file name a capability token grants.

        Raises:
            ValidationError: No token supplied.
            ForbiddenError: Token invalid, expired or not a file capability.
        """
        if not token:
            raise ValidationError("Missing token")
        payload = self.codec.verify_typed(token, TokenType.FILE)
        if payload is None:
            raise ForbiddenError("Invalid or expired token")
        storage_key = payload.get("file")
        if not isinstance(storage_key, str) or not storage_key:
            raise ForbiddenError("Invalid or expired token")
        return target_name(storage_key, variant)

    @staticmethod
    def resolve_direct(file_name: Optional[str], variant: Variant) -> str:
        if not file_name:
            raise ValidationError("File parameter is required")
        return target_name(file_name, variant)

    @staticmethod
    def response_headers(name: str, upstream: httpx.Response) -> Dict[str, str]:
        content_type = mime_type_for(name)
        headers = {"content-type": content_type}
        for header in PROPAGATED_HEADERS:
            value = upstream.headers.get(header)
            if value is not None:
                headers[header] = value
        if content_type.startswith("video/"):
            headers["accept-ranges"] = "bytes"
        return headers

    async def serve(self, name: str, range_header: Optional[str] = None) -> StreamingResponse:
        """Open *name* on the media service and relay it.

        Raises:
            FileUnavailableError: The file could not be fetched.
        """
        try:
            upstream = await self.client.open_file(name, range_header)
        except httpx.HTTPError as exc:
            logger.warning("Media service unreachable for %s: %s", name, exc)
            raise FileUnavailableError() from exc

        if upstream.status_code not in (200, 206):
            logger.info("Media service returned %s for %s", upstream.status_code, name)
            await upstream.aclose()
            raise FileUnavailableError()

        headers = self.response_headers(name, upstream)
        return StreamingResponse(
            _relay(upstream, name),
            status_code=upstream.status_code,
            headers=headers,
            media_type=headers["content-type"],
            background=BackgroundTask(upstream.aclose),
        )


async def _relay(upstream: httpx.Response, name: str) -> AsyncIterator[bytes]:
    # Headers are already sent once this runs, so a broken read can only end the body early.
    try:
        async for chunk in upstream.aiter_raw():
            yield chunk
    except (httpx.HTTPError, httpx.StreamError) as exc:
        logger.warning("Read of %s aborted: %s", name, exc)
    finally:
        await upstream.aclose()
