"""Pydantic schemas for metadata records."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from stagebox.media.schemas import MediaKind


class MediaRecord(BaseModel):
    """A media item in a project; points at exactly one stored file."""
    model_config = ConfigDict(populate_by_name=True)

    id:          int
    project_id:  int           = Field(..., serialization_alias="projectId")
    title:       str
    description: Optional[str] = None
    storage_key: str           = Field(..., serialization_alias="storageKey")
    kind:        MediaKind
    uploaded_at: datetime      = Field(..., serialization_alias="uploadedAt")


class MediaCreate(BaseModel):
    project_id:  int
    title:       str
    description: Optional[str] = None
    storage_key: str
    kind:        MediaKind


class Comment(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id:         int
    media_id:   int             = Field(..., serialization_alias="mediaId")
    user_id:    int             = Field(..., serialization_alias="userId")
    text:       str
    time:       Optional[float] = None
    created_at: datetime        = Field(..., serialization_alias="createdAt")


class User(BaseModel):
    id:            int
    username:      str
    password_hash: str
    created_at:    datetime
