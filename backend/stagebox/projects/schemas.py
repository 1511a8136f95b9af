"""Request/response models and path helpers for project media routes."""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from stagebox.errors import ValidationError


def parse_id(value: str, label: str = "id") -> int:
    """Parse a positive integer path segment, or fail with 400."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label}") from None
    if parsed <= 0:
        raise ValidationError(f"Invalid {label}")
    return parsed


class DeleteMediaResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success:          bool          = True
    media_id:         int           = Field(..., serialization_alias="mediaId")
    metadata_deleted: bool          = Field(..., serialization_alias="metadataDeleted")
    storage_deleted:  bool          = Field(..., serialization_alias="storageDeleted")
    storage_error:    Optional[str] = Field(None, serialization_alias="storageError")


class DeleteProjectMediaResponse(BaseModel):
    success: bool = True
    deleted: int
    results: List[DeleteMediaResponse]
