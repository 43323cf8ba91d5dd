"""Tests for folder traversal and document discovery."""

from unittest.mock import AsyncMock

import pytest

from sables.drive.client import DOCS_MIME_TYPE, FOLDER_MIME_TYPE, SHEETS_MIME_TYPE
from sables.drive.discovery import DiscoveryOptions, DocumentDiscovery


FOLDERS = {
    "root": {"id": "root", "name": "Sables", "parents": []},
    "training": {"id": "training", "name": "Training", "parents": ["root"]},
    "drills": {"id": "drills", "name": "Drills", "parents": ["training"]},
}
DOCUMENTS = {
    "root": [{"id": "d1", "name": "Team Policy", "mimeType": DOCS_MIME_TYPE}],
    "training": [{"id": "d2", "name": "Week 3 Plan", "mimeType": DOCS_MIME_TYPE}],
    "drills": [{"id": "d3", "name": "Lineout Drills", "mimeType": SHEETS_MIME_TYPE}],
}
SUBFOLDERS = {
    "root": [{"id": "training", "mimeType": FOLDER_MIME_TYPE}],
    "training": [{"id": "drills", "mimeType": FOLDER_MIME_TYPE}, {"id": "root", "mimeType": FOLDER_MIME_TYPE}],
    "drills": [],
}


async def _list_all_files(q: str, **options):
    folder_id = q.split("'")[1]
    if f"mimeType = '{FOLDER_MIME_TYPE}'" in q:
        return SUBFOLDERS[folder_id]
    return DOCUMENTS[folder_id]


@pytest.fixture
def discovery(mock_drive_client):
    mock_drive_client.get_file.side_effect = lambda file_id, *args: FOLDERS[file_id]
    mock_drive_client.list_all_files.side_effect = _list_all_files
    return DocumentDiscovery(mock_drive_client)


@pytest.mark.asyncio
async def test_discover_walks_tree_with_folder_paths(discovery):
    documents = await discovery.discover_documents(
        "root", DiscoveryOptions(include_shared_with_me=False)
    )

    paths = {doc["id"]: doc["folder_path"] for doc in documents}
    assert paths == {
        "d1": "Sables",
        "d2": "Sables/Training",
        "d3": "Sables/Training/Drills",
    }
    assert documents[2]["folder"] == {"id": "drills", "name": "Drills", "parent_id": "training"}


@pytest.mark.asyncio
async def test_discover_visits_each_folder_once(discovery, mock_drive_client):
    await discovery.discover_documents("root", DiscoveryOptions(include_shared_with_me=False))

    visited = [call.args[0] for call in mock_drive_client.get_file.call_args_list]
    assert visited == ["root", "training", "drills"]


@pytest.mark.asyncio
async def test_non_recursive_discovery_stays_in_folder(discovery):
    documents = await discovery.discover_documents(
        "root", DiscoveryOptions(recursive=False, include_shared_with_me=False)
    )

    assert [doc["id"] for doc in documents] == ["d1"]


@pytest.mark.asyncio
async def test_discover_appends_shared_documents_and_truncates(discovery, mock_drive_client):
    mock_drive_client.list_files.return_value = {
        "files": [{"id": "s1", "name": "Shared Fixture List", "mimeType": DOCS_MIME_TYPE}]
    }

    documents = await discovery.discover_documents("root", DiscoveryOptions(max_results=4))

    assert [doc["id"] for doc in documents] == ["d1", "d2", "d3", "s1"]
    assert documents[-1]["shared"] is True

    truncated = await discovery.discover_documents("root", DiscoveryOptions(max_results=2))
    assert len(truncated) == 2


@pytest.mark.asyncio
async def test_failing_folder_is_skipped(discovery, mock_drive_client):
    original = mock_drive_client.get_file.side_effect

    def get_file(file_id, *args):
        if file_id == "training":
            raise RuntimeError("403 forbidden")
        return original(file_id)

    mock_drive_client.get_file.side_effect = get_file

    documents = await discovery.discover_documents(
        "root", DiscoveryOptions(include_shared_with_me=False)
    )

    assert [doc["id"] for doc in documents] == ["d1"]


@pytest.mark.asyncio
async def test_build_folder_structure_nests_by_folder_parent(discovery):
    documents = await discovery.discover_documents(
        "root", DiscoveryOptions(include_shared_with_me=False)
    )

    structure = discovery.build_folder_structure(documents)

    assert [node.id for node in structure.root_folders] == ["root"]
    training = structure.folder_map["training"]
    assert [node.id for node in structure.folder_map["root"].subfolders] == ["training"]
    assert [node.id for node in training.subfolders] == ["drills"]
    assert [doc["id"] for doc in training.documents] == ["d2"]


@pytest.mark.asyncio
async def test_get_document_details_with_content(mock_drive_client):
    mock_drive_client.get_file = AsyncMock(return_value={
        "id": "d2",
        "name": "Week 3 Plan",
        "mimeType": DOCS_MIME_TYPE,
        "description": "Conditioning block",
    })
    mock_drive_client.download_file = AsyncMock(return_value=b"Warm up then scrums")

    details = await DocumentDiscovery(mock_drive_client).get_document_details("d2", include_content=True)

    assert details["description"] == "Conditioning block"
    assert details["content"] == "Warm up then scrums"
    mock_drive_client.download_file.assert_awaited_once_with("d2", "text/plain")
