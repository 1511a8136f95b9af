"""Deletion cascade for media records.

Order per record:
    1. delete the record's comments
    2. delete the record
    3. ask the media service to remove the stored file and its waveform

Step 3 is best-effort. Once the metadata is gone the delete has happened
from the user's point of view; a storage failure is logged and reported
in the result, never raised.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from stagebox.errors import NotFoundError
from stagebox.gateway.client import MediaServiceClient, MediaServiceError
from stagebox.metadata.service import MetadataStore

logger = logging.getLogger(__name__)


class MediaNotFoundError(NotFoundError):
    default_message = "Media not found"


@dataclass
class DeletionResult:
    media_id: int
    metadata_deleted: bool
    storage_deleted: bool
    storage_error: Optional[str] = None


class DeletionCoordinator:
    def __init__(self, store: MetadataStore, media_client: MediaServiceClient) -> None:
        self.store = store
        self.media_client = media_client

    async def delete(self, media_id: int, project_id: Optional[int] = None) -> DeletionResult:
        """Run the cascade for one record.

        Args:
            media_id: Record to delete.
            project_id: When given, the record must belong to this project.

        Raises:
            MediaNotFoundError: No such record (in that project).
        """
        record = self.store.get_media(media_id)
        if record is None or (project_id is not None and record.project_id != project_id):
            raise MediaNotFoundError()

        removed = self.store.delete_comments_for_media(media_id)
        deleted = self.store.delete_media(media_id)
        logger.info("Deleted media %s (%d comments)", media_id, removed)

        try:
            await self.media_client.delete_file(record.storage_key)
        except MediaServiceError as exc:
            error = str(exc.details or exc.message)
            logger.warning("Stored file %s for media %s not removed: %s", record.storage_key, media_id, error)
            return DeletionResult(media_id, deleted, False, error)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unexpected error removing stored file %s for media %s", record.storage_key, media_id)
            return DeletionResult(media_id, deleted, False, str(exc))

        return DeletionResult(media_id, deleted, True)

    async def delete_project_media(self, project_id: int) -> List[DeletionResult]:
        """Run the cascade for every record of a project.

        Raises:
            MediaNotFoundError: The project has no media.
        """
        records = self.store.list_media(project_id)
        if not records:
            raise MediaNotFoundError("No media found for this project")

        results = []
        for record in records:
            results.append(await self.delete(record.id, project_id))
        storage_failures = sum(1 for r in results if not r.storage_deleted)
        logger.info(
            "Deleted %d media for project %s (%d storage failures)",
            len(results), project_id, storage_failures,
        )
        return results
