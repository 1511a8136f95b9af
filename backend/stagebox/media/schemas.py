"""Pydantic schemas and file-type tables for media storage.

Media kinds are decided by file extension, never by the client-declared
MIME type:

- AUDIO: mp3, wav, flac, ogg  (these get a waveform ``.dat`` sibling)
- VIDEO: mp4, mov, avi, h264, m4v, mkv, webm
- IMAGE: everything else

Content types served back to clients come from ``MIME_TYPES``; unknown
extensions are served as ``application/octet-stream``.
"""
from enum import Enum
from pathlib import PurePosixPath
from typing import Optional

from pydantic import BaseModel, Field

WAVEFORM_SUFFIX = ".dat"
DEFAULT_MIME_TYPE = "application/octet-stream"


class MediaKind(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"
    IMAGE = "image"


AUDIO_EXTENSIONS = {".mp3", ".wav", ".flac", ".ogg"}
VIDEO_EXTENSIONS = {".mp4", ".mov", ".avi", ".h264", ".m4v", ".mkv", ".webm"}

MIME_TYPES = {
    # Audio
    ".mp3":  "audio/mpeg",
    ".wav":  "audio/wav",
    ".flac": "audio/flac",
    ".ogg":  "audio/ogg",
    ".m4a":  "audio/mp4",
    ".aac":  "audio/aac",
    # Video
    ".mp4":  "video/mp4",
    ".mov":  "video/quicktime",
    ".avi":  "video/x-msvideo",
    ".mkv":  "video/x-matroska",
    ".webm": "video/webm",
    ".m4v":  "video/mp4",
    ".wmv":  "video/x-ms-wmv",
    # Waveform data
    ".dat":  DEFAULT_MIME_TYPE,
    # Images
    ".jpg":  "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png":  "image/png",
    ".gif":  "image/gif",
    ".webp": "image/webp",
    ".svg":  "image/svg+xml",
}


def extension_of(filename: str) -> str:
    return PurePosixPath(filename).suffix.lower()


def kind_for_filename(filename: str) -> MediaKind:
    ext = extension_of(filename)
    if ext in AUDIO_EXTENSIONS:
        return MediaKind.AUDIO
    if ext in VIDEO_EXTENSIONS:
        return MediaKind.VIDEO
    return MediaKind.IMAGE


def mime_type_for(filename: str) -> str:
    return MIME_TYPES.get(extension_of(filename), DEFAULT_MIME_TYPE)


def waveform_key(storage_key: str) -> str:
    """Storage key of the waveform derived from *storage_key*."""
    return storage_key + WAVEFORM_SUFFIX


# =============================================================================
# Request/Response Models
# =============================================================================


class UploadResponse(BaseModel):
    storage_key: str = Field(..., serialization_alias="storageKey", description="Key the file was stored under")


class DeleteFileRequest(BaseModel):
    fileName: Optional[str] = Field(None, description="Storage key to delete")


class DeleteFileResponse(BaseModel):
    success: bool = True
    deleted: str = Field(..., description="Storage key that was removed")


class ResetResponse(BaseModel):
    success: bool = True
    deleted_count: int = Field(..., serialization_alias="deletedCount")
