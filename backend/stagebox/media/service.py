"""Media storage service.

Owns the storage root. Files are stored flat under it:

    <root>/<storage key>        original upload
    <root>/<storage key>.dat    waveform data (audio uploads only)

A storage key is ``{epoch millis}_{sanitized original name}``. Two uploads
of the same name within the same millisecond would collide; that window
is accepted as-is.

The service is pure storage: it never creates metadata records. Callers
persist a record only after ``ingest`` has returned, which for audio means
the waveform already exists.
"""
from __future__ import annotations

import asyncio
import logging
import re
import time
from pathlib import Path
from typing import AsyncIterable, Callable, Optional, Union

from starlette.concurrency import run_in_threadpool

from stagebox.config import get_config
from stagebox.errors import NotFoundError, PayloadTooLargeError, ValidationError

from .schemas import MediaKind, kind_for_filename, waveform_key
from .waveform import WaveformGenerator

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")
FALLBACK_NAME = "upload.bin"


class UploadTooLargeError(PayloadTooLargeError):
    pass


class StorageKeyError(ValidationError):
    default_message = "Invalid file name"


class StoredFileNotFoundError(NotFoundError):
    default_message = "File not found"


async def _single_chunk(data: bytes):
    yield data


class MediaStorageService:
    """Service for storing uploads and their derived waveform files."""

    _instance: Optional["MediaStorageService"] = None
    CHUNK_SIZE = 1024 * 1024

    def __init__(
        self,
        root: Union[str, Path],
        max_upload_bytes: int,
        waveform: Optional[WaveformGenerator] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._root = Path(root)
        self.max_upload_bytes = max_upload_bytes
        self.waveform = waveform or WaveformGenerator()
        self._clock = clock

    @classmethod
    def get_instance(cls) -> "MediaStorageService":
        """Get or create the singleton built from the current config."""
        if cls._instance is None:
            cfg = get_config()
            cls._instance = cls(
                root=cfg.storage.root,
                max_upload_bytes=cfg.media.max_upload_bytes,
                waveform=WaveformGenerator(
                    tool=cfg.media.waveform_tool,
                    pixels_per_second=cfg.media.pixels_per_second,
                    timeout_seconds=cfg.media.waveform_timeout_seconds,
                ),
            )
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance (for testing)."""
        cls._instance = None

    @property
    def root(self) -> Path:
        return self._root

    # ------------------------------------------------------------------
    # Keys and paths
    # ------------------------------------------------------------------

    @staticmethod
    def sanitize_filename(name: str) -> str:
        base = re.split(r"[\\/]", name or "")[-1]
        cleaned = _UNSAFE_CHARS.sub("_", base).replace("..", "_")
        if not cleaned.strip("."):
            return FALLBACK_NAME
        return cleaned

    def make_storage_key(self, original_name: str) -> str:
        millis = int(self._clock() * 1000)
        return f"{millis}_{self.sanitize_filename(original_name)}"

    def resolve(self, storage_key: str) -> Path:
        """Map a storage key to its path, refusing anything outside the root."""
        if (
            not storage_key
            or "/" in storage_key
            or "\\" in storage_key
            or "\x00" in storage_key
            or storage_key in (".", "..")
            or ".." in storage_key
        ):
            raise StorageKeyError(details=f"unsafe file name: {storage_key!r}")
        return self._root / storage_key

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    def check_declared_size(self, declared_size: Optional[int]) -> None:
        if declared_size is not None and declared_size > self.max_upload_bytes:
            raise UploadTooLargeError(
                details=f"{declared_size} bytes exceeds the limit of {self.max_upload_bytes} bytes"
            )

    async def ingest(
        self,
        data: Union[bytes, AsyncIterable[bytes]],
        original_name: str,
        declared_size: Optional[int] = None,
    ) -> str:
        """Store an upload and, for audio, derive its waveform.

        Args:
            data: The file content, whole or as an async stream of chunks.
            original_name: Client-supplied file name.
            declared_size: Size announced by the transport, if any.

        Returns:
            The storage key.

        Raises:
            UploadTooLargeError: Declared or actual size exceeds the ceiling.
            WaveformError: Waveform derivation failed; nothing is left on disk.
        """
        self.check_declared_size(declared_size)

        chunks = _single_chunk(data) if isinstance(data, (bytes, bytearray)) else data
        storage_key = self.make_storage_key(original_name)
        path = self.resolve(storage_key)
        self._root.mkdir(parents=True, exist_ok=True)

        try:
            size = await self._write(path, chunks)
            if kind_for_filename(storage_key) is MediaKind.AUDIO:
                await self.waveform.generate(path, self.resolve(waveform_key(storage_key)))
        except (Exception, asyncio.CancelledError):
            self._discard(storage_key)
            raise

        logger.info("Stored %s (%d bytes)", storage_key, size)
        return storage_key

    async def _write(self, path: Path, chunks: AsyncIterable[bytes]) -> int:
        """Stream *chunks* to *path*; disk I/O runs in the threadpool."""
        size = 0
        out = await run_in_threadpool(path.open, "wb")
        try:
            async for chunk in chunks:
                size += len(chunk)
                if size > self.max_upload_bytes:
                    raise UploadTooLargeError(
                        details=f"upload exceeds the limit of {self.max_upload_bytes} bytes"
                    )
                await run_in_threadpool(out.write, chunk)
        finally:
            await run_in_threadpool(out.close)
        return size

    def _discard(self, storage_key: str) -> None:
        for key in (storage_key, waveform_key(storage_key)):
            try:
                (self._root / key).unlink(missing_ok=True)
            except OSError as exc:
                logger.error("Could not remove %s after failed ingest: %s", key, exc)

    # ------------------------------------------------------------------
    # Read / delete
    # ------------------------------------------------------------------

    def locate(self, storage_key: str) -> Path:
        """Return the path of an existing stored file."""
        path = self.resolve(storage_key)
        if not path.is_file():
            raise StoredFileNotFoundError()
        return path

    def delete_file(self, storage_key: str) -> None:
        """Remove a stored file and its waveform sibling.

        The original must exist. Failure to remove the ``.dat`` sibling is
        logged and otherwise ignored.
        """
        path = self.resolve(storage_key)
        try:
            path.unlink()
        except FileNotFoundError as exc:
            raise StoredFileNotFoundError() from exc

        dat_path = self._root / waveform_key(storage_key)
        try:
            dat_path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove waveform %s: %s", dat_path.name, exc)

        logger.info("Deleted %s", storage_key)

    def reset(self) -> int:
        """Delete every file under the storage root and return the count."""
        if not self._root.exists():
            return 0
        count = 0
        for entry in self._root.iterdir():
            if entry.is_file():
                entry.unlink()
                count += 1
        logger.info("Reset storage root %s (%d files removed)", self._root, count)
        return count
