"""Media service endpoints.

These routes hold the storage root and are meant for the primary app
only; the media service should listen on a private interface.

Endpoints:
    POST   /upload        - Store a multipart ``file``, derive waveform for audio
    DELETE /delete-media  - Remove a stored file and its waveform sibling
    GET    /files/{name}  - Serve stored bytes (range requests supported)
    POST   /reset         - Admin: wipe the storage root
"""
import logging
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import FileResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from stagebox.auth.dependencies import require_admin_key
from stagebox.errors import NotFoundError, ValidationError

from .schemas import (
    WAVEFORM_SUFFIX,
    DeleteFileRequest,
    DeleteFileResponse,
    ResetResponse,
    UploadResponse,
    mime_type_for,
)
from .service import MediaStorageService, StorageKeyError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["media"])


def _declared_size(request: Request) -> Optional[int]:
    value = request.headers.get("content-length")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError("Invalid Content-Length header") from None


async def _iter_upload(upload: UploadFile, chunk_size: int) -> AsyncIterator[bytes]:
    while True:
        chunk = await upload.read(chunk_size)
        if not chunk:
            break
        yield chunk


@router.post("/upload", response_model=UploadResponse, status_code=201)
async def upload_file(request: Request) -> UploadResponse:
    """Store an uploaded file.

    The Content-Length header is checked against the ceiling before the
    multipart body is parsed, so oversized uploads are refused without
    being buffered.

    Raises:
        413: Upload exceeds the configured ceiling.
        400: No ``file`` part in the form.
        500: Storing or waveform derivation failed.
    """
    service = MediaStorageService.get_instance()
    service.check_declared_size(_declared_size(request))

    form = await request.form()
    try:
        upload = form.get("file")
        if not isinstance(upload, UploadFile):
            raise ValidationError("No file uploaded")

        storage_key = await service.ingest(
            _iter_upload(upload, service.CHUNK_SIZE),
            upload.filename or "",
            declared_size=upload.size,
        )
    finally:
        await form.close()

    return UploadResponse(storage_key=storage_key)


@router.delete("/delete-media", response_model=DeleteFileResponse)
async def delete_media(payload: Optional[DeleteFileRequest] = None) -> DeleteFileResponse:
    """Delete a stored file; its ``.dat`` sibling is removed when present."""
    file_name = payload.fileName if payload else None
    if not file_name:
        raise ValidationError("Missing fileName")

    logger.info("Deleting media %s", file_name)
    await run_in_threadpool(MediaStorageService.get_instance().delete_file, file_name)
    return DeleteFileResponse(deleted=file_name)


@router.get("/files/{file_name}")
async def serve_file(file_name: str) -> FileResponse:
    """Serve stored bytes with a content type inferred from the extension."""
    service = MediaStorageService.get_instance()
    message = "Waveform data not found" if file_name.endswith(WAVEFORM_SUFFIX) else "File not found"
    try:
        path = service.locate(file_name)
        stat_result = path.stat()
    except (StorageKeyError, NotFoundError, OSError):
        logger.info("File not found: %s", file_name)
        raise NotFoundError(message) from None

    return FileResponse(path, media_type=mime_type_for(file_name), stat_result=stat_result)


@router.post("/reset", response_model=ResetResponse, dependencies=[Depends(require_admin_key)])
async def reset_storage() -> ResetResponse:
    """Delete every stored file. Admin API key required."""
    count = await run_in_threadpool(MediaStorageService.get_instance().reset)
    return ResetResponse(deleted_count=count)
