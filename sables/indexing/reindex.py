"""Full discovery-and-index pass over a Drive folder tree."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sables.drive.client import DriveClient
from sables.drive.discovery import DiscoveryOptions, DocumentDiscovery, FolderStructure
from sables.drive.extractor import ContentExtractor
from sables.indexing.search_index import SearchIndex
from sables.indexing.service import BulkIndexResult, IndexingService
from sables.models.folder import Folder

logger = logging.getLogger(__name__)


async def sync_folders(db: AsyncSession, structure: FolderStructure) -> int:
    """Upsert discovered folders, parents before children. Returns the count."""
    rows = await db.execute(
        select(Folder).where(Folder.google_drive_id.in_(list(structure.folder_map)))
    )
    existing = {folder.google_drive_id: folder for folder in rows.scalars().all()}

    pending = [(node, None) for node in structure.root_folders]
    while pending:
        node, parent = pending.pop(0)
        folder = existing.get(node.id)
        if folder is None:
            folder = Folder(google_drive_id=node.id)
            db.add(folder)
            existing[node.id] = folder
        folder.name = node.name
        path = node.documents[0].get("folder_path") if node.documents else None
        folder.path = path or node.name
        folder.parent_folder_id = parent.id if parent is not None else None
        await db.flush()
        pending.extend((child, folder) for child in node.subfolders)

    await db.commit()
    return len(structure.folder_map)


async def reindex_folder(
    db: AsyncSession,
    drive_client: DriveClient,
    folder_id: str,
    options: DiscoveryOptions | None = None,
    search_index: SearchIndex | None = None,
) -> BulkIndexResult:
    """
    Discover every document under ``folder_id``, extract it and bulk index.

    Documents whose content cannot be extracted are still indexed with
    their metadata. The discovered folder tree is recorded in ``folders``.
    """
    discovery = DocumentDiscovery(drive_client)
    extractor = ContentExtractor(drive_client)
    indexing = IndexingService(db, search_index)

    await indexing.initialize()
    documents = await discovery.discover_documents(folder_id, options)
    logger.info(f"Extracting content for {len(documents)} documents")

    for document in documents:
        try:
            extracted = await extractor.extract_content(document["id"], document["mimeType"])
        except Exception as e:
            logger.warning(f"Indexing {document['id']} without content: {e}")
            continue
        document["content"] = extracted.content
        document["metadata"] = extracted.metadata

    result = await indexing.bulk_index_documents(documents)

    try:
        folders = await sync_folders(db, discovery.build_folder_structure(documents))
        logger.debug(f"Recorded {folders} folders")
    except Exception as e:
        await db.rollback()
        logger.error(f"Error recording folders for {folder_id}: {e}")

    logger.info(
        f"Reindex of {folder_id} finished: {result.successful}/{result.total} indexed, "
        f"{result.failed} failed"
    )
    return result
