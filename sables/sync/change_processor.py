"""Applies individual Drive file changes to the indexes."""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from sables.drive.client import DOCS_MIME_TYPE, SHEETS_MIME_TYPE, SLIDES_MIME_TYPE, DriveClient
from sables.drive.extractor import ContentExtractor
from sables.indexing.service import IndexingService
from sables.models.audit_log import AuditLog, ResourceType

logger = logging.getLogger(__name__)

SUPPORTED_MIME_TYPES = {DOCS_MIME_TYPE, SHEETS_MIME_TYPE, SLIDES_MIME_TYPE}

CHANGE_FIELDS = (
    "id, name, mimeType, createdTime, modifiedTime, size, parents, "
    "webViewLink, description, trashed, headRevisionId"
)


@dataclass
class ChangeResult:
    """Outcome of processing one change notification."""

    success: bool
    action: str
    id: str
    skipped: bool = False
    reason: str | None = None
    error: str | None = None


class ChangeProcessor:
    """
    Turns change, removal and exists notifications into index updates.

    Never raises: every entry point returns a ChangeResult so a single bad
    file cannot stall the feed.
    """

    def __init__(
        self,
        db: AsyncSession,
        drive_client: DriveClient,
        content_extractor: ContentExtractor,
        indexing_service: IndexingService,
    ):
        self.db = db
        self.drive_client = drive_client
        self.content_extractor = content_extractor
        self.indexing_service = indexing_service

    async def process_resource_change(
        self, resource_id: str, resource_data: dict[str, Any] | None = None
    ) -> ChangeResult:
        """Fetch, extract and index a changed file.

        Args:
            resource_id: Drive file ID
            resource_data: File metadata if the caller already has it

        Returns:
            ChangeResult with action "indexed", "removed" (file trashed) or
            "skipped"
        """
        logger.info(f"Processing change for resource {resource_id}")
        await self.record_change(resource_id, "change")

        file = resource_data
        if not file:
            try:
                file = await self.drive_client.get_file(resource_id, CHANGE_FIELDS)
            except Exception as e:
                logger.error(f"Error getting metadata for file {resource_id}: {e}")
                return ChangeResult(
                    success=False, action="change", id=resource_id,
                    error="Failed to get file metadata",
                )

        if file.get("trashed"):
            logger.info(f"File {resource_id} is in the trash, removing")
            return await self._remove(resource_id)

        mime_type = file.get("mimeType")
        if mime_type not in SUPPORTED_MIME_TYPES:
            logger.info(f"Skipping file {resource_id} with unsupported MIME type: {mime_type}")
            return ChangeResult(
                success=True, action="skipped", id=resource_id,
                skipped=True, reason="Unsupported MIME type",
            )

        document = dict(file)
        document.setdefault("id", resource_id)
        if file.get("headRevisionId"):
            document["revision_id"] = file["headRevisionId"]

        try:
            extracted = await self.content_extractor.extract_content(resource_id, mime_type)
            document["content"] = extracted.content
            document["metadata"] = extracted.metadata
        except Exception as e:
            logger.error(f"Error extracting content from file {resource_id}: {e}")

        try:
            result = await self.indexing_service.index_document(document)
        except Exception as e:
            logger.error(f"Error indexing document {resource_id}: {e}")
            return ChangeResult(
                success=False, action="change", id=resource_id,
                error="Failed to index document",
            )

        logger.info(f"Indexed document {resource_id} (version {result.version})")
        return ChangeResult(success=True, action="indexed", id=resource_id)

    async def process_resource_removal(self, resource_id: str) -> ChangeResult:
        logger.info(f"Processing removal for resource {resource_id}")
        await self.record_change(resource_id, "remove")
        return await self._remove(resource_id)

    async def _remove(self, resource_id: str) -> ChangeResult:
        try:
            await self.indexing_service.remove_document(resource_id)
        except Exception as e:
            logger.error(f"Error removing document {resource_id} from index: {e}")
            return ChangeResult(
                success=False, action="remove", id=resource_id,
                error="Failed to remove document from index",
            )
        return ChangeResult(success=True, action="removed", id=resource_id)

    async def process_resource_exists(self, resource_id: str) -> ChangeResult:
        """Index the file unless it is already known."""
        logger.info(f"Processing exists notification for resource {resource_id}")
        await self.record_change(resource_id, "exists")

        try:
            indexed = await self.indexing_service.is_indexed(resource_id)
        except Exception as e:
            logger.error(f"Error checking index for {resource_id}: {e}")
            return ChangeResult(success=False, action="exists", id=resource_id, error=str(e))

        if indexed:
            logger.debug(f"Document {resource_id} already exists in index")
            return ChangeResult(success=True, action="exists", id=resource_id)
        return await self.process_resource_change(resource_id)

    async def record_change(self, resource_id: str, change_type: str) -> None:
        """Write an audit log entry. Failures are logged and ignored."""
        try:
            self.db.add(
                AuditLog(
                    action=f"drive_{change_type}",
                    resource_type=ResourceType.DOCUMENT.value,
                    resource_id=resource_id,
                    details={"source": "google_drive", "change_type": change_type},
                )
            )
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Error recording change in audit log for {resource_id}: {e}")


def make_change_processor(db: AsyncSession, drive_client: DriveClient, search_index=None) -> ChangeProcessor:
    """Wire a ChangeProcessor to a session and the shared clients."""
    return ChangeProcessor(
        db=db,
        drive_client=drive_client,
        content_extractor=ContentExtractor(drive_client),
        indexing_service=IndexingService(db, search_index),
    )
