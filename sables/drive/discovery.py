"""Document discovery over the Drive folder tree."""

import logging
from dataclasses import dataclass, field
from typing import Any

from sables.drive.client import (
    DOCS_MIME_TYPE,
    FOLDER_MIME_TYPE,
    SHEETS_MIME_TYPE,
    SLIDES_MIME_TYPE,
    DriveClient,
)

logger = logging.getLogger(__name__)

GOOGLE_DOC_TYPES = [DOCS_MIME_TYPE, SHEETS_MIME_TYPE, SLIDES_MIME_TYPE]

DETAIL_FIELDS = "id, name, mimeType, createdTime, modifiedTime, size, parents, webViewLink, description"

# Text export used when fetching document content
CONTENT_EXPORT_TYPES = {
    DOCS_MIME_TYPE: "text/plain",
    SHEETS_MIME_TYPE: "text/csv",
    SLIDES_MIME_TYPE: "text/plain",
}


@dataclass
class DiscoveryOptions:
    recursive: bool = True
    include_shared_with_me: bool = True
    document_types: list[str] = field(default_factory=lambda: list(GOOGLE_DOC_TYPES))
    max_results: int = 1000


@dataclass
class FolderNode:
    """A folder in the discovered tree."""

    id: str
    name: str
    parent_id: str | None = None
    subfolders: list["FolderNode"] = field(default_factory=list)
    documents: list[dict] = field(default_factory=list)


@dataclass
class FolderStructure:
    root_folders: list[FolderNode]
    folder_map: dict[str, FolderNode]


def _type_filter(document_types: list[str]) -> str:
    if not document_types:
        return ""
    clauses = " or ".join(f"mimeType = '{t}'" for t in document_types)
    return f" and ({clauses})"


def _document_entry(file: dict) -> dict[str, Any]:
    entry = {
        "id": file["id"],
        "name": file.get("name", ""),
        "mimeType": file.get("mimeType", ""),
        "createdTime": file.get("createdTime"),
        "modifiedTime": file.get("modifiedTime"),
        "size": file.get("size"),
        "parents": file.get("parents", []),
        "webViewLink": file.get("webViewLink"),
    }
    # Absent keys must not clear what the metadata store already holds
    for key in ("description", "headRevisionId"):
        if key in file:
            entry[key] = file[key]
    return entry


class DocumentDiscovery:
    """Walks Drive folders and collects Google Docs, Sheets and Slides."""

    def __init__(self, drive_client: DriveClient):
        self.drive_client = drive_client

    async def discover_documents(
        self, folder_id: str, options: DiscoveryOptions | None = None
    ) -> list[dict]:
        """Discover documents under a folder.

        Args:
            folder_id: Drive folder to start from
            options: Traversal options, defaults when omitted

        Returns:
            Drive file dicts, each with its ``folder`` and ``folder_path``,
            truncated to ``options.max_results``
        """
        options = options or DiscoveryOptions()
        documents: list[dict] = []
        processed_folders: set[str] = set()

        await self.traverse_folder(folder_id, documents, processed_folders, options)

        if options.include_shared_with_me:
            await self.find_shared_documents(documents, options)

        logger.info(
            f"Discovered {len(documents)} documents under {folder_id} "
            f"({len(processed_folders)} folders)"
        )
        return documents[: options.max_results]

    async def traverse_folder(
        self,
        folder_id: str,
        documents: list[dict],
        processed_folders: set[str],
        options: DiscoveryOptions,
        parent_path: str = "",
    ) -> None:
        """Collect documents from a folder and, if recursive, its subfolders.

        Each folder is visited once. A failing folder is logged and skipped.
        """
        if folder_id in processed_folders:
            return
        processed_folders.add(folder_id)

        try:
            folder = await self.drive_client.get_file(folder_id)
            folder_name = folder.get("name", "")
            folder_path = f"{parent_path}/{folder_name}" if parent_path else folder_name
            parents = folder.get("parents") or []
            folder_ref = {
                "id": folder.get("id", folder_id),
                "name": folder_name,
                "parent_id": parents[0] if parents else None,
            }

            files = await self.drive_client.list_all_files(
                q=f"'{folder_id}' in parents and trashed = false"
                + _type_filter(options.document_types),
            )
            for file in files:
                entry = _document_entry(file)
                entry["folder"] = folder_ref
                entry["folder_path"] = folder_path
                documents.append(entry)
            logger.debug(f"Folder {folder_path}: {len(files)} documents")

            if options.recursive:
                subfolders = await self.drive_client.list_all_files(
                    q=f"'{folder_id}' in parents and mimeType = '{FOLDER_MIME_TYPE}' "
                    "and trashed = false",
                )
                for subfolder in subfolders:
                    await self.traverse_folder(
                        subfolder["id"], documents, processed_folders, options, folder_path
                    )
        except Exception as e:
            logger.error(f"Error traversing folder {folder_id}: {e}")

    async def find_shared_documents(self, documents: list[dict], options: DiscoveryOptions) -> None:
        """Append documents shared with the account."""
        try:
            response = await self.drive_client.list_files(
                q="sharedWithMe = true and trashed = false" + _type_filter(options.document_types),
            )
            shared = response.get("files", [])
            for file in shared:
                entry = _document_entry(file)
                entry["shared"] = True
                documents.append(entry)
            logger.debug(f"Found {len(shared)} shared documents")
        except Exception as e:
            logger.error(f"Error finding shared documents: {e}")

    def build_folder_structure(self, documents: list[dict]) -> FolderStructure:
        """Group discovered documents into a folder tree.

        A folder nests under its parent when the parent was also discovered;
        otherwise it is a root.
        """
        folder_map: dict[str, FolderNode] = {}

        for doc in documents:
            folder = doc.get("folder")
            if not folder:
                continue
            node = folder_map.get(folder["id"])
            if node is None:
                node = FolderNode(
                    id=folder["id"],
                    name=folder.get("name", ""),
                    parent_id=folder.get("parent_id"),
                )
                folder_map[node.id] = node
            node.documents.append(doc)

        root_folders: list[FolderNode] = []
        for node in folder_map.values():
            parent = folder_map.get(node.parent_id) if node.parent_id else None
            if parent is not None and parent is not node:
                parent.subfolders.append(node)
            else:
                root_folders.append(node)

        return FolderStructure(root_folders=root_folders, folder_map=folder_map)

    async def get_document_details(self, document_id: str, include_content: bool = False) -> dict:
        """Get document metadata and, optionally, its text content."""
        try:
            document = await self.drive_client.get_file(document_id, DETAIL_FIELDS)
            result = _document_entry(document)
            result["description"] = document.get("description")

            if include_content:
                export_type = CONTENT_EXPORT_TYPES.get(document.get("mimeType", ""))
                content = await self.drive_client.download_file(document_id, export_type)
                result["content"] = content.decode("utf-8", errors="replace")

            return result
        except Exception as e:
            logger.error(f"Error getting document details for {document_id}: {e}")
            raise
