"""Document search and maintenance API."""

import logging
from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sables.api.deps import get_optional_user, require_admin
from sables.config import get_settings
from sables.drive.client import DriveClient, get_drive_client
from sables.drive.discovery import DiscoveryOptions
from sables.indexing.reindex import reindex_folder
from sables.indexing.service import IndexingService, SearchParams
from sables.models.document import Document
from sables.models.user import User
from sables.schemas.document import (
    DocumentResponse,
    DocumentSearchHit,
    DocumentSearchRequest,
    DocumentSearchResponse,
    ReindexRequest,
)
from sables.services.database import async_session_maker, get_db

logger = logging.getLogger(__name__)

router = APIRouter()
settings = get_settings()


async def run_reindex(drive_client: DriveClient, folder_id: str, options: DiscoveryOptions) -> None:
    """Background task: full reindex with its own session."""
    async with async_session_maker() as db:
        try:
            await reindex_folder(db, drive_client, folder_id, options)
        except Exception as e:
            logger.error(f"Reindex of {folder_id} failed: {e}")


@router.post("/search", response_model=DocumentSearchResponse)
async def search_documents(
    body: DocumentSearchRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User | None, Depends(get_optional_user)],
) -> DocumentSearchResponse:
    """Full-text search, filtered to what the caller may see."""
    params = SearchParams(
        search_text=body.search_text,
        mime_type=body.mime_type,
        category=body.category.value if body.category else None,
        tags=body.tags,
        player_references=body.player_references,
        access_level=body.access_level.value if body.access_level else None,
        date_start=body.date_start,
        date_end=body.date_end,
        page=body.page,
        limit=body.limit,
    )
    try:
        results = await IndexingService(db).search_documents(params, user)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Search failed: {str(e)}",
        )
    return DocumentSearchResponse(
        total=results.total,
        page=results.page,
        limit=results.limit,
        hits=[DocumentSearchHit(**asdict(hit)) for hit in results.hits],
    )


@router.get("/{google_drive_id}", response_model=DocumentResponse)
async def get_document(
    google_drive_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User | None, Depends(get_optional_user)],
) -> Document:
    result = await db.execute(
        select(Document).where(Document.google_drive_id == google_drive_id)
    )
    document = result.scalar_one_or_none()
    if document is None or not document.is_accessible_by(user):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return document


@router.post("/reindex", status_code=status.HTTP_202_ACCEPTED)
async def reindex(
    body: ReindexRequest,
    background_tasks: BackgroundTasks,
    drive_client: Annotated[DriveClient, Depends(get_drive_client)],
    _admin: Annotated[User, Depends(require_admin)],
) -> dict:
    """Queue a discovery and bulk index of a folder tree."""
    folder_id = body.folder_id or settings.drive_root_folder_id
    if not folder_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No folder_id given and no root folder configured",
        )
    options = DiscoveryOptions(
        recursive=body.recursive,
        include_shared_with_me=body.include_shared_with_me,
        max_results=body.max_results,
    )
    background_tasks.add_task(run_reindex, drive_client, folder_id, options)
    return {"status": "queued", "folder_id": folder_id}


@router.delete("/{google_drive_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    google_drive_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    _admin: Annotated[User, Depends(require_admin)],
) -> None:
    """Remove a document from the database and the search index."""
    result = await IndexingService(db).remove_document(google_drive_id)
    if not result.removed_from_database and not result.removed_from_index:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
