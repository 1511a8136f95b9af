"""File gateway routes.

Endpoints:
    GET /api/project/{project_id}/media/audio?token=            - Original file via capability
    GET /api/project/{project_id}/media/waveform?token=         - Waveform data via capability
    GET /api/project/{project_id}/media/file?file=&type=        - Direct fetch for signed-in users
    GET /api/project/{project_id}/media/{media_id}/signed-url   - Mint capability links

These must be registered before the project media router so that
``audio``, ``waveform`` and ``file`` are not taken for a media id.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from stagebox.auth.dependencies import SessionUser, require_session
from stagebox.auth.tokens import get_token_codec
from stagebox.config import get_config
from stagebox.errors import NotFoundError
from stagebox.metadata.service import MetadataStore
from stagebox.projects.schemas import parse_id

from .client import get_media_client
from .service import FileGateway, Variant
from .signing import SignedURLIssuer, SignedUrls

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/project/{project_id}/media", tags=["gateway"])


def get_gateway() -> FileGateway:
    return FileGateway(get_token_codec(), get_media_client())


@router.get("/audio", response_class=StreamingResponse)
async def capability_audio(
    request: Request,
    token: Optional[str] = Query(None),
    gateway: FileGateway = Depends(get_gateway),
):
    """Stream the original file a capability token names.

    Raises:
        400: No token.
        403: Token invalid, expired or not a file capability.
        404: File could not be fetched.
    """
    name = gateway.resolve_capability(token, Variant.ORIGINAL)
    return await gateway.serve(name, request.headers.get("range"))


@router.get("/waveform", response_class=StreamingResponse)
async def capability_waveform(
    request: Request,
    token: Optional[str] = Query(None),
    gateway: FileGateway = Depends(get_gateway),
):
    """Stream the waveform data of the file a capability token names."""
    name = gateway.resolve_capability(token, Variant.WAVEFORM)
    return await gateway.serve(name, request.headers.get("range"))


@router.get("/file", response_class=StreamingResponse)
async def direct_file(
    request: Request,
    file: Optional[str] = Query(None),
    file_type: Optional[str] = Query(None, alias="type"),
    user: SessionUser = Depends(require_session),
    gateway: FileGateway = Depends(get_gateway),
):
    """Stream a stored file by key; ``type=waveform`` selects the ``.dat`` sibling."""
    name = gateway.resolve_direct(file, Variant.from_query(file_type))
    return await gateway.serve(name, request.headers.get("range"))


@router.get("/{media_id}/signed-url", response_model=SignedUrls)
def signed_url(
    project_id: str,
    media_id: str,
    request: Request,
    user: SessionUser = Depends(require_session),
) -> SignedUrls:
    pid = parse_id(project_id, "project id")
    mid = parse_id(media_id, "media id")
    record = MetadataStore.get_instance().get_media(mid)
    if record is None or record.project_id != pid:
        raise NotFoundError("Media not found")

    issuer = SignedURLIssuer(get_token_codec(), get_config().links.expiry_days)
    base_url = f"{str(request.base_url).rstrip('/')}/api/project/{pid}/media"
    return issuer.issue(record.storage_key, base_url)
