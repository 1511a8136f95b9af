"""HTTP client for the media service.

The primary app never touches the storage root itself; it uploads,
fetches and deletes stored files through this client.
"""
import logging
from typing import BinaryIO, Optional
from urllib.parse import quote

import httpx

from stagebox.config import get_config
from stagebox.errors import PayloadTooLargeError, UpstreamError, ValidationError

logger = logging.getLogger(__name__)


class MediaServiceError(UpstreamError):
    default_message = "Media service request failed"


def _error_text(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.reason_phrase or f"HTTP {resp.status_code}"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return resp.reason_phrase or f"HTTP {resp.status_code}"


class MediaServiceClient:
    """Thin async wrapper over the media service's HTTP API.

    Args:
        base_url: Media service root, e.g. ``http://localhost:4001``.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests plug in an ASGI or mock transport).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def upload(self, filename: str, fileobj: BinaryIO, content_type: Optional[str] = None) -> str:
        """Send a file to the media service and return its storage key.

        Raises:
            PayloadTooLargeError: The media service refused the size.
            ValidationError: The media service found no file in the request.
            MediaServiceError: Any other failure, including transport errors.
        """
        files = {"file": (filename, fileobj, content_type or "application/octet-stream")}
        try:
            resp = await self._client.post("/upload", files=files)
        except httpx.HTTPError as exc:
            logger.error("Media service upload failed: %s", exc)
            raise MediaServiceError("Media service upload failed", details=str(exc)) from exc

        if resp.status_code == 413:
            raise PayloadTooLargeError()
        if resp.status_code == 400:
            raise ValidationError(_error_text(resp))
        if resp.status_code >= 300:
            logger.error("Media service upload failed (%s): %s", resp.status_code, resp.text[:500])
            raise MediaServiceError("Media service upload failed", details=_error_text(resp))

        return resp.json()["storageKey"]

    async def delete_file(self, storage_key: str) -> None:
        """Ask the media service to remove a stored file and its waveform.

        Raises:
            MediaServiceError: Transport failure or non-success response.
        """
        try:
            resp = await self._client.request(
                "DELETE",
                "/delete-media",
                json={"fileName": storage_key},
            )
        except httpx.HTTPError as exc:
            raise MediaServiceError("Media service delete failed", details=str(exc)) from exc

        if resp.status_code >= 300:
            raise MediaServiceError("Media service delete failed", details=_error_text(resp))

    async def open_file(self, name: str, range_header: Optional[str] = None) -> httpx.Response:
        """Start fetching a stored file; the caller must close the response.

        Raises:
            httpx.HTTPError: The media service could not be reached.
        """
        headers = {"range": range_header} if range_header else None
        request = self._client.build_request("GET", f"/files/{quote(name, safe='')}", headers=headers)
        return await self._client.send(request, stream=True)

    async def aclose(self) -> None:
        await self._client.aclose()


_client: Optional[MediaServiceClient] = None


def get_media_client() -> MediaServiceClient:
    global _client
    if _client is None:
        cfg = get_config().media_service
        _client = MediaServiceClient(cfg.base_url, timeout=cfg.timeout_seconds)
    return _client


def set_media_client(client: Optional[MediaServiceClient]) -> None:
    global _client
    _client = client


async def close_media_client() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
