"""Content extraction from exported Google documents."""

import csv
import io
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from markdownify import markdownify as md

from sables.drive.client import DOCS_MIME_TYPE, SHEETS_MIME_TYPE, SLIDES_MIME_TYPE, DriveClient

logger = logging.getLogger(__name__)

EXPORT_FORMATS: dict[str, dict[str, str]] = {
    DOCS_MIME_TYPE: {
        "text": "text/plain",
        "html": "text/html",
        "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    },
    SHEETS_MIME_TYPE: {
        "csv": "text/csv",
        "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "html": "text/html",
    },
    SLIDES_MIME_TYPE: {
        "text": "text/plain",
        "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "pdf": "application/pdf",
    },
}

# Format used when the caller does not ask for one
DEFAULT_FORMATS = {SHEETS_MIME_TYPE: "csv"}

TAG_PATTERN = re.compile(r"#([a-zA-Z0-9_]+)")
PLAYER_PATTERN = re.compile(r"Player:[ \t]*([A-Za-z][A-Za-z ]*)")
DATE_PATTERN = re.compile(r"\d{1,2}/\d{1,2}/\d{2,4}|\d{1,2}-\d{1,2}-\d{2,4}")

TITLE_PATTERN = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)
HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$", re.MULTILINE)
LINK_PATTERN = re.compile(r"(?<!!)\[([^\]]*)\]\(([^)\s]+)(?:\s+\"[^\"]*\")?\)")
AUTOLINK_PATTERN = re.compile(r"<((?:https?|mailto):[^>\s]+)>")
IMAGE_PATTERN = re.compile(r"!\[[^\]]*\]\([^)]*\)")

CONTEXT_LENGTH = 100
MAX_CONTEXTS = 5


class UnsupportedExportError(ValueError):
    """The requested export format is not available for the MIME type."""

    def __init__(self, mime_type: str, fmt: str):
        self.mime_type = mime_type
        self.format = fmt
        super().__init__(f"Unsupported export format '{fmt}' for MIME type '{mime_type}'")


@dataclass
class ExtractedContent:
    id: str
    name: str
    mime_type: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)


def get_export_format(mime_type: str, fmt: str = "text") -> str | None:
    """Resolve the export MIME type for a document type.

    Falls back to the type's ``text`` export when ``fmt`` is unknown, and
    returns None when neither exists.
    """
    formats = EXPORT_FORMATS.get(mime_type)
    if not formats:
        return None
    return formats.get(fmt) or formats.get("text")


def html_to_text(html: str) -> str:
    """Convert exported HTML to markdown-flavoured plain text."""
    return md(html, heading_style="ATX", strip=["script", "style"]).strip()


def extract_metadata_from_text(text: str) -> dict[str, Any]:
    """Count words and pull tags, player names and dates out of text."""
    metadata: dict[str, Any] = {
        "word_count": 0,
        "character_count": 0,
        "tags": [],
        "player_references": [],
        "date_references": [],
    }
    if not text:
        return metadata

    metadata["character_count"] = len(text)
    metadata["word_count"] = len(text.split())
    metadata["tags"] = TAG_PATTERN.findall(text)
    metadata["player_references"] = [
        name.strip() for name in PLAYER_PATTERN.findall(text) if name.strip()
    ]
    metadata["date_references"] = DATE_PATTERN.findall(text)
    return metadata


def extract_metadata_from_html(html: str) -> dict[str, Any]:
    """Title, headings, links and image count, plus the text metadata."""
    title_match = TITLE_PATTERN.search(html or "")
    text = html_to_text(html or "")

    metadata: dict[str, Any] = {
        "title": title_match.group(1).strip() if title_match else "",
        "headings": [
            {"level": len(hashes), "text": heading}
            for hashes, heading in HEADING_PATTERN.findall(text)
        ],
        "links": [
            {"text": link_text.strip(), "url": url}
            for link_text, url in LINK_PATTERN.findall(text)
        ],
        "images": len(IMAGE_PATTERN.findall(text)),
    }
    metadata["links"].extend({"text": url, "url": url} for url in AUTOLINK_PATTERN.findall(text))

    metadata.update(extract_metadata_from_text(text))
    return metadata


def extract_metadata_from_csv(content: str) -> dict[str, Any]:
    """Row count (non-blank rows), column count and header names."""
    metadata: dict[str, Any] = {"row_count": 0, "column_count": 0, "headers": []}
    if not content:
        return metadata

    rows = [
        row for row in csv.reader(io.StringIO(content))
        if any(cell.strip() for cell in row)
    ]
    metadata["row_count"] = len(rows)
    if rows:
        headers = [cell.strip() for cell in rows[0]]
        metadata["headers"] = headers
        metadata["column_count"] = len(headers)
    return metadata


def extract_contexts(content: str, term: str, context_length: int = CONTEXT_LENGTH) -> list[str]:
    """Snippets around each whole-word mention of ``term`` (at most five)."""
    contexts = []
    pattern = re.compile(rf"\b{re.escape(term)}\b", re.IGNORECASE)
    for match in pattern.finditer(content):
        start = max(0, match.start() - context_length)
        end = min(len(content), match.end() + context_length)
        snippet = content[start:end]
        if start > 0:
            snippet = "..." + snippet
        if end < len(content):
            snippet = snippet + "..."
        contexts.append(snippet)
        if len(contexts) >= MAX_CONTEXTS:
            break
    return contexts


def extract_player_information(content: str, player_names: list[str]) -> dict[str, dict]:
    """Mention counts and context snippets for each named player found."""
    player_info: dict[str, dict] = {}
    if not content or not player_names:
        return player_info

    for name in player_names:
        pattern = re.compile(rf"\b{re.escape(name)}\b", re.IGNORECASE)
        mentions = len(pattern.findall(content))
        if mentions:
            player_info[name] = {
                "mentions": mentions,
                "contexts": extract_contexts(content, name),
            }
    return player_info


class ContentExtractor:
    """Exports Drive documents and derives searchable text and metadata."""

    def __init__(self, drive_client: DriveClient):
        self.drive_client = drive_client

    async def extract_content(
        self, file_id: str, mime_type: str, fmt: str | None = None
    ) -> ExtractedContent:
        """Export a document and extract its content.

        Args:
            file_id: Drive file ID
            mime_type: The file's Google MIME type
            fmt: Desired export format key (text, html, csv, ...). Defaults to
                csv for Sheets and text otherwise

        Returns:
            ExtractedContent with text content and derived metadata

        Raises:
            UnsupportedExportError: No export exists for this type/format
        """
        fmt = fmt or DEFAULT_FORMATS.get(mime_type, "text")
        export_format = get_export_format(mime_type, fmt)
        if not export_format:
            raise UnsupportedExportError(mime_type, fmt)

        try:
            file = await self.drive_client.get_file(file_id)
            raw = await self.drive_client.download_file(file_id, export_format)
        except Exception as e:
            logger.error(f"Error extracting content from {file_id}: {e}")
            raise

        metadata: dict[str, Any] = {}
        if export_format == "text/plain":
            content = raw.decode("utf-8", errors="replace")
            metadata = extract_metadata_from_text(content)
        elif export_format == "text/html":
            html = raw.decode("utf-8", errors="replace")
            content = html_to_text(html)
            metadata = extract_metadata_from_html(html)
        elif export_format == "text/csv":
            content = raw.decode("utf-8", errors="replace")
            metadata = extract_metadata_from_csv(content)
        else:
            content = f"Binary content ({export_format})"

        metadata.update(
            original_size=file.get("size"),
            modified_time=file.get("modifiedTime"),
            created_time=file.get("createdTime"),
        )
        logger.debug(f"Extracted {len(content)} chars from {file_id} as {export_format}")

        return ExtractedContent(
            id=file_id,
            name=file.get("name", ""),
            mime_type=file.get("mimeType", mime_type),
            content=content,
            metadata=metadata,
        )
