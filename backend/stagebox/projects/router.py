"""Project media routes.

Endpoints:
    GET    /api/project/{project_id}/media               - List media, newest first
    POST   /api/project/{project_id}/media               - Upload a file and create its record
    DELETE /api/project/{project_id}/media               - Delete every media item of the project
    GET    /api/project/{project_id}/media/{media_id}    - Get one media record
    DELETE /api/project/{project_id}/media/{media_id}    - Delete one media item
"""
import logging
from pathlib import PurePosixPath
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from starlette.datastructures import UploadFile

from stagebox.auth.dependencies import SessionUser, require_session
from stagebox.config import get_config
from stagebox.errors import NotFoundError, PayloadTooLargeError, ValidationError
from stagebox.gateway.client import MediaServiceError, get_media_client
from stagebox.media.schemas import kind_for_filename
from stagebox.metadata.schemas import MediaCreate, MediaRecord
from stagebox.metadata.service import MetadataStore

from .deletion import DeletionCoordinator, DeletionResult
from .schemas import DeleteMediaResponse, DeleteProjectMediaResponse, parse_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/project/{project_id}/media", tags=["projects"])


def get_coordinator() -> DeletionCoordinator:
    return DeletionCoordinator(MetadataStore.get_instance(), get_media_client())


def _to_response(result: DeletionResult) -> DeleteMediaResponse:
    return DeleteMediaResponse(
        media_id=result.media_id,
        metadata_deleted=result.metadata_deleted,
        storage_deleted=result.storage_deleted,
        storage_error=result.storage_error,
    )


def _form_text(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


@router.get("", response_model=List[MediaRecord])
def list_media(project_id: str) -> List[MediaRecord]:
    pid = parse_id(project_id, "project id")
    return MetadataStore.get_instance().list_media(pid)


@router.post("", response_model=MediaRecord, status_code=201)
async def upload_media(
    project_id: str,
    request: Request,
    user: SessionUser = Depends(require_session),
) -> MediaRecord:
    """Upload a file to the media service and record it in the project.

    Form fields: ``file`` (required), ``title`` (defaults to the file
    name without extension), ``description``.

    The record is created only after the media service has stored the
    file; if the record cannot be written the stored file is removed
    again.

    Raises:
        400: Bad project id or no file.
        413: Upload exceeds the configured ceiling.
        500: Media service failure.
    """
    pid = parse_id(project_id, "project id")

    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > get_config().media.max_upload_bytes:
        raise PayloadTooLargeError()

    form = await request.form()
    try:
        upload = form.get("file")
        if not isinstance(upload, UploadFile) or not upload.filename:
            raise ValidationError("No file uploaded")

        client = get_media_client()
        storage_key = await client.upload(upload.filename, upload.file, upload.content_type)

        entry = MediaCreate(
            project_id=pid,
            title=_form_text(form.get("title")) or PurePosixPath(upload.filename).stem,
            description=_form_text(form.get("description")),
            storage_key=storage_key,
            kind=kind_for_filename(upload.filename),
        )
        try:
            record = MetadataStore.get_instance().create_media(entry)
        except Exception:
            logger.exception("Failed to record media %s; removing stored file", storage_key)
            try:
                await client.delete_file(storage_key)
            except MediaServiceError as exc:
                logger.warning("Could not remove stored file %s: %s", storage_key, exc.details or exc.message)
            raise
    finally:
        await form.close()

    logger.info("User %s uploaded media %s to project %s", user.user_id, record.id, pid)
    return record


@router.delete("", response_model=DeleteProjectMediaResponse)
async def delete_project_media(
    project_id: str,
    user: SessionUser = Depends(require_session),
    coordinator: DeletionCoordinator = Depends(get_coordinator),
) -> DeleteProjectMediaResponse:
    pid = parse_id(project_id, "project id")
    results = await coordinator.delete_project_media(pid)
    return DeleteProjectMediaResponse(
        deleted=len(results),
        results=[_to_response(r) for r in results],
    )


@router.get("/{media_id}", response_model=MediaRecord)
def get_media(project_id: str, media_id: str) -> MediaRecord:
    pid = parse_id(project_id, "project id")
    mid = parse_id(media_id, "media id")
    record = MetadataStore.get_instance().get_media(mid)
    if record is None or record.project_id != pid:
        raise NotFoundError("Media not found")
    return record


@router.delete("/{media_id}", response_model=DeleteMediaResponse)
async def delete_media(
    project_id: str,
    media_id: str,
    user: SessionUser = Depends(require_session),
    coordinator: DeletionCoordinator = Depends(get_coordinator),
) -> DeleteMediaResponse:
    """Delete a media item: comments, record, then the stored file.

    Succeeds once the metadata is gone; ``storageDeleted`` is false when
    the media service could not remove the file.
    """
    pid = parse_id(project_id, "project id")
    mid = parse_id(media_id, "media id")
    result = await coordinator.delete(mid, pid)
    logger.info("User %s deleted media %s", user.user_id, mid)
    return _to_response(result)
