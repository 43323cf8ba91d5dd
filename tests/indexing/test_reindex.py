"""Tests for the discover-extract-index pass."""

import pytest
from sqlalchemy import select

from sables.drive.client import DOCS_MIME_TYPE, FOLDER_MIME_TYPE
from sables.drive.discovery import DiscoveryOptions
from sables.indexing.reindex import reindex_folder
from sables.models.document import Document
from sables.models.folder import Folder

FILES = {
    "root": {"id": "root", "name": "Sables 2026"},
    "forwards": {"id": "forwards", "name": "Forwards", "parents": ["root"]},
    "doc1": {
        "id": "doc1",
        "name": "Training Plan Week 3",
        "mimeType": DOCS_MIME_TYPE,
        "modifiedTime": "2026-03-02T10:30:00.000Z",
        "parents": ["root"],
    },
    "doc2": {
        "id": "doc2",
        "name": "Match Report",
        "mimeType": DOCS_MIME_TYPE,
        "modifiedTime": "2026-03-01T18:00:00.000Z",
        "parents": ["root"],
    },
    "doc3": {
        "id": "doc3",
        "name": "Scrum Drills",
        "mimeType": DOCS_MIME_TYPE,
        "modifiedTime": "2026-02-27T08:00:00.000Z",
        "parents": ["forwards"],
    },
}

CHILDREN = {
    "root": (["doc1", "doc2"], ["forwards"]),
    "forwards": (["doc3"], []),
}


@pytest.fixture
def drive(mock_drive_client):
    async def list_all_files(q: str, **options):
        folder_id = q.split("'")[1]
        documents, folders = CHILDREN[folder_id]
        return [FILES[i] for i in (folders if FOLDER_MIME_TYPE in q else documents)]

    async def download_file(file_id: str, mime_type=None):
        if file_id == "doc2":
            raise RuntimeError("export failed")
        return b"Player: Tendai Mupfumira\nScrum work #forwards"

    mock_drive_client.get_file.side_effect = lambda file_id, *args: FILES[file_id]
    mock_drive_client.list_all_files.side_effect = list_all_files
    mock_drive_client.download_file.side_effect = download_file
    return mock_drive_client


@pytest.mark.asyncio
async def test_reindex_folder(db_session, drive, mock_search_index):
    result = await reindex_folder(
        db_session, drive, "root", DiscoveryOptions(include_shared_with_me=False)
    )

    assert result.total == 3
    assert result.successful == 3
    assert result.failed == 0
    mock_search_index.ensure_index.assert_awaited_once()

    rows = await db_session.execute(select(Document).order_by(Document.google_drive_id))
    doc1, doc2, doc3 = rows.scalars().all()
    assert doc1.content_index.startswith("Player: Tendai Mupfumira")
    assert doc1.folder_path == "Sables 2026"
    assert doc1.tags == ["forwards"]
    assert doc1.metadata_["related_players"] == ["Tendai Mupfumira"]
    assert doc2.title == "Match Report"
    assert doc2.content_index is None
    assert doc3.folder_path == "Sables 2026/Forwards"


@pytest.mark.asyncio
async def test_reindex_records_folder_tree(db_session, drive, mock_search_index):
    await reindex_folder(db_session, drive, "root", DiscoveryOptions(include_shared_with_me=False))

    rows = await db_session.execute(select(Folder))
    folders = {folder.google_drive_id: folder for folder in rows.scalars().all()}
    assert set(folders) == {"root", "forwards"}
    assert folders["root"].parent_folder_id is None
    assert folders["root"].path == "Sables 2026"
    assert folders["forwards"].parent_folder_id == folders["root"].id
    assert folders["forwards"].path == "Sables 2026/Forwards"


@pytest.mark.asyncio
async def test_reindex_twice_updates_folders_in_place(db_session, drive, mock_search_index):
    options = DiscoveryOptions(include_shared_with_me=False)
    await reindex_folder(db_session, drive, "root", options)
    await reindex_folder(db_session, drive, "root", options)

    rows = await db_session.execute(select(Folder))
    assert len(rows.scalars().all()) == 2


@pytest.mark.asyncio
async def test_reindex_propagates_index_failure(db_session, drive, mock_search_index):
    mock_search_index.ensure_index.side_effect = Exception("cluster unavailable")

    with pytest.raises(Exception, match="cluster unavailable"):
        await reindex_folder(db_session, drive, "root")

    drive.list_all_files.assert_not_awaited()
