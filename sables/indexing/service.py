"""Dual-store indexing: relational metadata plus the Elasticsearch index."""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sables.config import get_settings
from sables.indexing.search_index import SearchIndex, get_search_index
from sables.models.document import AccessLevel, Document, DocumentCategory, DocumentType
from sables.models.search_query import SearchQuery
from sables.models.user import User

settings = get_settings()
logger = logging.getLogger(__name__)

# Ordered (category, hints). First match wins.
FOLDER_CATEGORY_HINTS = [
    (DocumentCategory.CONTRACTS, ("contract", "agreement")),
    (DocumentCategory.MEDICAL, ("medical", "health")),
    (DocumentCategory.TRAINING, ("training", "practice")),
    (DocumentCategory.MATCHES, ("match", "game")),
    (DocumentCategory.PLAYERS, ("player", "roster")),
    (DocumentCategory.ADMINISTRATION, ("admin", "management")),
]
NAME_CATEGORY_HINTS = [
    (DocumentCategory.CONTRACTS, ("contract", "agreement")),
    (DocumentCategory.MEDICAL, ("medical", "health", "injury")),
    (DocumentCategory.TRAINING, ("training", "practice", "drill")),
    (DocumentCategory.MATCHES, ("match", "game")),
    (DocumentCategory.PLAYERS, ("player", "roster")),
    (DocumentCategory.ADMINISTRATION, ("admin", "management")),
]
DOCUMENT_TYPE_HINTS = [
    (DocumentType.CONTRACT, ("contract", "agreement")),
    (DocumentType.MEDICAL, ("medical", "health", "injury")),
    (DocumentType.PERFORMANCE, ("performance", "stats", "statistics", "analysis", "fitness")),
    (DocumentType.TRAINING, ("training", "practice", "drill")),
    (DocumentType.MATCH, ("match", "game", "fixture")),
    (DocumentType.ADMINISTRATIVE, ("admin", "management", "policy", "minutes", "budget")),
]
VERSUS_PATTERN = re.compile(r"\bvs\b")


# =============================================================================
# Results
# =============================================================================


@dataclass
class IndexResult:
    id: str
    db_id: int | None
    indexed: bool
    created: bool
    version: int


@dataclass
class BulkIndexResult:
    total: int
    successful: int = 0
    failed: int = 0
    errors: list[dict] = field(default_factory=list)


@dataclass
class RemovalResult:
    id: str
    removed_from_database: bool
    removed_from_index: bool


@dataclass
class SearchParams:
    """Full-text query plus optional filters."""

    search_text: str | None = None
    mime_type: str | None = None
    category: str | None = None
    tags: list[str] = field(default_factory=list)
    player_references: list[str] = field(default_factory=list)
    access_level: str | None = None
    date_start: datetime | None = None
    date_end: datetime | None = None
    page: int = 1
    limit: int = 10


@dataclass
class SearchHit:
    id: str
    name: str
    mime_type: str | None
    modified_time: str | None
    tags: list[str]
    category: str | None
    folder_path: str | None
    score: float | None
    highlights: dict[str, list[str]] = field(default_factory=dict)


@dataclass
class SearchResults:
    total: int
    page: int
    limit: int
    hits: list[SearchHit]


# =============================================================================
# Helpers
# =============================================================================


def parse_drive_time(value: str | datetime | None) -> datetime | None:
    """Parse an RFC 3339 Drive timestamp into a naive UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def get_file_extension(filename: str | None) -> str:
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


def _first_hint(text: str, hints: list[tuple[Any, tuple[str, ...]]]):
    for value, words in hints:
        if any(word in text for word in words):
            return value
    return None


def determine_category(document: dict[str, Any]) -> DocumentCategory:
    """Infer a category from the folder path, then the document name."""
    explicit = document.get("category")
    if explicit:
        return DocumentCategory(explicit)

    folder_path = (document.get("folder_path") or "").lower()
    if folder_path:
        category = _first_hint(folder_path, FOLDER_CATEGORY_HINTS)
        if category:
            return category

    name = (document.get("name") or "").lower()
    category = _first_hint(name, NAME_CATEGORY_HINTS)
    if category:
        return category
    if VERSUS_PATTERN.search(name):
        return DocumentCategory.MATCHES
    return DocumentCategory.GENERAL


def determine_document_type(document: dict[str, Any]) -> DocumentType:
    """Infer the document type from its name."""
    name = (document.get("name") or "").lower()
    doc_type = _first_hint(name, DOCUMENT_TYPE_HINTS)
    if doc_type:
        return doc_type
    if VERSUS_PATTERN.search(name):
        return DocumentType.MATCH
    return DocumentType.OTHER


def build_access_filter(user: User | None) -> dict[str, Any] | None:
    """Elasticsearch filter limiting results to what ``user`` may read.

    Admins see everything (None). Anonymous callers see public documents.
    Members also see documents they created, whatever the access level.
    """
    if user is not None and user.is_admin:
        return None
    if user is None:
        return {"term": {"access_level": AccessLevel.PUBLIC.value}}
    return {
        "bool": {
            "should": [
                {"term": {"access_level": AccessLevel.PUBLIC.value}},
                {"term": {"access_level": AccessLevel.TEAM.value}},
                {
                    "bool": {
                        "filter": [
                            {"term": {"access_level": AccessLevel.SPECIFIC.value}},
                            {"term": {"allowed_users": str(user.id)}},
                        ]
                    }
                },
                {"term": {"created_by": str(user.id)}},
            ],
            "minimum_should_match": 1,
        }
    }


def build_search_query(params: SearchParams, user: User | None = None) -> dict[str, Any]:
    """Build the bool query for ``params``, including the access filter."""
    if params.search_text:
        must: dict[str, Any] = {
            "multi_match": {
                "query": params.search_text,
                "fields": ["name^3", "content", "folder_path"],
            }
        }
    else:
        must = {"match_all": {}}

    filters: list[dict[str, Any]] = []
    if params.mime_type:
        filters.append({"term": {"mime_type": params.mime_type}})
    if params.category:
        filters.append({"term": {"category": params.category}})
    if params.tags:
        filters.append({"terms": {"tags": params.tags}})
    if params.player_references:
        filters.append({"terms": {"player_references": params.player_references}})
    if params.access_level:
        filters.append({"term": {"access_level": params.access_level}})
    if params.date_start or params.date_end:
        date_range: dict[str, str] = {}
        if params.date_start:
            date_range["gte"] = params.date_start.isoformat()
        if params.date_end:
            date_range["lte"] = params.date_end.isoformat()
        filters.append({"range": {"modified_time": date_range}})

    access_filter = build_access_filter(user)
    if access_filter:
        filters.append(access_filter)

    return {"bool": {"must": must, "filter": filters}}


class IndexingService:
    """
    Keeps the documents table and the Elasticsearch index in step.

    Input documents are Drive file dicts (id, name, mimeType, createdTime,
    modifiedTime, size, webViewLink, description) optionally enriched with
    content, folder_path, metadata, category, access_level and
    allowed_users.
    """

    def __init__(self, db: AsyncSession, search_index: SearchIndex | None = None):
        self.db = db
        self.search_index = search_index or get_search_index()

    async def initialize(self) -> None:
        try:
            created = await self.search_index.ensure_index()
            logger.info(f"Indexing service initialized (index created: {created})")
        except Exception as e:
            logger.error(f"Error initializing indexing service: {e}")
            raise

    async def close(self) -> None:
        await self.search_index.close()
        logger.info("Indexing service closed")

    # =========================================================================
    # Payload builders
    # =========================================================================

    def _search_payload(self, document: dict[str, Any], record: Document | None = None) -> dict[str, Any]:
        metadata = document.get("metadata") or {}
        category = record.category if record else determine_category(document)
        access_level = record.access_level if record else AccessLevel(document.get("access_level") or "team")
        allowed_users = record.allowed_users if record else document.get("allowed_users") or []
        created_by = record.created_by_id if record else document.get("created_by")
        return {
            "id": document["id"],
            "name": document.get("name", ""),
            "content": document.get("content") or "",
            "mime_type": document.get("mimeType"),
            "created_time": document.get("createdTime"),
            "modified_time": document.get("modifiedTime"),
            "tags": metadata.get("tags", []),
            "category": DocumentCategory(category).value,
            "player_references": metadata.get("player_references", []),
            "folder_path": (record.folder_path if record else document.get("folder_path")) or "",
            "access_level": AccessLevel(access_level).value,
            "allowed_users": [str(u) for u in allowed_users],
            "created_by": str(created_by) if created_by is not None else None,
        }

    def _apply_fields(self, record: Document, document: dict[str, Any]) -> None:
        metadata = document.get("metadata") or {}
        name = document.get("name", "")
        record.title = name
        if "description" in document:
            record.description = document["description"] or ""
        record.google_drive_link = document.get("webViewLink")
        record.mime_type = document.get("mimeType", "")
        record.file_extension = get_file_extension(name)
        record.size = int(document.get("size") or 0)
        parents = document.get("parents") or []
        record.folder_id = parents[0] if parents else record.folder_id
        record.folder_path = document.get("folder_path") or record.folder_path or ""
        record.category = determine_category({**document, "folder_path": record.folder_path})
        if document.get("access_level"):
            record.access_level = AccessLevel(document["access_level"])
        if document.get("allowed_users") is not None:
            record.allowed_users = list(document["allowed_users"])
        record.tags = list(metadata.get("tags", []))
        record.metadata_ = {
            "player_related": bool(metadata.get("player_references")),
            "related_players": list(metadata.get("player_references", [])),
            "event_related": bool(metadata.get("date_references")),
            "related_events": list(metadata.get("related_events", [])),
            "document_type": determine_document_type(document).value,
            "custom_fields": dict(metadata.get("custom_fields", {})),
        }
        if document.get("content") is not None:
            record.content_index = document["content"]
        record.last_synced_at = datetime.utcnow()

    def _upsert(self, document: dict[str, Any], existing: Document | None) -> tuple[Document, bool]:
        """Insert or update a row. Returns (record, created)."""
        modified = parse_drive_time(document.get("modifiedTime")) or datetime.utcnow()
        created_by = document.get("created_by")
        revision_id = document.get("revision_id") or document.get("headRevisionId")

        if existing is None:
            record = Document(
                google_drive_id=document["id"],
                created_by_id=created_by,
                created_at=parse_drive_time(document.get("createdTime")) or modified,
                updated_at=modified,
                access_level=AccessLevel.TEAM,
                allowed_users=[],
                version=1,
                version_history=[
                    {
                        "version": 1,
                        "updated_at": modified.isoformat(),
                        "updated_by": created_by,
                        "google_drive_revision_id": revision_id,
                    }
                ],
            )
            self._apply_fields(record, document)
            self.db.add(record)
            return record, True

        self._apply_fields(existing, document)
        if existing.updated_at is None or modified > existing.updated_at:
            existing.add_version(
                updated_by=created_by,
                revision_id=revision_id,
                updated_at=modified,
            )
            existing.updated_at = modified
        return existing, False

    # =========================================================================
    # Indexing
    # =========================================================================

    async def index_document(self, document: dict[str, Any]) -> IndexResult:
        """
        Upsert one document into both stores.

        The version is bumped only when Drive's modifiedTime moved forward.

        Args:
            document: Drive file dict, see class docstring

        Returns:
            IndexResult for the document
        """
        drive_id = document["id"]
        try:
            result = await self.db.execute(
                select(Document).where(Document.google_drive_id == drive_id)
            )
            record, created = self._upsert(document, result.scalar_one_or_none())
            await self.db.commit()

            await self.search_index.index_document(drive_id, self._search_payload(document, record))

            logger.info(f"Indexed document: {record.title} ({drive_id}) v{record.version}")
            return IndexResult(
                id=drive_id,
                db_id=record.id,
                indexed=True,
                created=created,
                version=record.version,
            )
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Error indexing document {drive_id}: {e}")
            raise

    async def bulk_index_documents(self, documents: list[dict[str, Any]]) -> BulkIndexResult:
        """Index documents in batches: one DB pass and one bulk request each."""
        results = BulkIndexResult(total=len(documents))
        batch_size = settings.index_batch_size

        for start in range(0, len(documents), batch_size):
            batch = documents[start:start + batch_size]
            ids = [doc["id"] for doc in batch]
            try:
                existing_rows = await self.db.execute(
                    select(Document).where(Document.google_drive_id.in_(ids))
                )
                existing = {row.google_drive_id: row for row in existing_rows.scalars().all()}

                records: dict[str, Document] = {}
                for doc in batch:
                    record, _ = self._upsert(doc, existing.get(doc["id"]))
                    existing[doc["id"]] = record
                    records[doc["id"]] = record
                await self.db.commit()

                success, errors = await self.search_index.bulk_index(
                    (doc["id"], self._search_payload(doc, records[doc["id"]])) for doc in batch
                )
            except Exception as e:
                await self.db.rollback()
                logger.error(f"Error bulk indexing batch starting at {start}: {e}")
                raise

            results.successful += success
            results.failed += len(errors)
            results.errors.extend(errors)
            logger.info(f"Indexed batch of {len(batch)} documents ({len(errors)} failed)")

        return results

    async def remove_document(self, google_drive_id: str) -> RemovalResult:
        """Delete a document from both stores."""
        try:
            result = await self.db.execute(
                select(Document).where(Document.google_drive_id == google_drive_id)
            )
            record = result.scalar_one_or_none()
            if record is not None:
                await self.db.delete(record)
                await self.db.commit()

            removed_from_index = await self.search_index.delete_document(google_drive_id)
            logger.info(
                f"Removed document {google_drive_id} "
                f"(database: {record is not None}, index: {removed_from_index})"
            )
            return RemovalResult(
                id=google_drive_id,
                removed_from_database=record is not None,
                removed_from_index=removed_from_index,
            )
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Error removing document {google_drive_id}: {e}")
            raise

    async def is_indexed(self, google_drive_id: str) -> bool:
        result = await self.db.execute(
            select(Document.id).where(Document.google_drive_id == google_drive_id)
        )
        return result.scalar_one_or_none() is not None

    # =========================================================================
    # Search
    # =========================================================================

    async def search_documents(self, params: SearchParams, user: User | None = None) -> SearchResults:
        """
        Full-text search with filters, access control and highlighting.

        Args:
            params: Query text, filters and pagination
            user: Caller, used for access control (None = anonymous)

        Returns:
            SearchResults ordered by score, then most recently modified
        """
        page = max(1, params.page)
        limit = max(1, params.limit)
        try:
            response = await self.search_index.search(
                query=build_search_query(params, user),
                highlight={
                    "fields": {
                        "content": {"fragment_size": 150, "number_of_fragments": 3},
                        "name": {"fragment_size": 150, "number_of_fragments": 1},
                    }
                },
                from_=(page - 1) * limit,
                size=limit,
                sort=[
                    {"_score": {"order": "desc"}},
                    {"modified_time": {"order": "desc"}},
                ],
            )
        except Exception as e:
            logger.error(f"Error searching documents: {e}")
            raise

        hits = []
        for hit in response["hits"]["hits"]:
            source = hit.get("_source", {})
            hits.append(
                SearchHit(
                    id=source.get("id", hit.get("_id")),
                    name=source.get("name", ""),
                    mime_type=source.get("mime_type"),
                    modified_time=source.get("modified_time"),
                    tags=source.get("tags", []),
                    category=source.get("category"),
                    folder_path=source.get("folder_path"),
                    score=hit.get("_score"),
                    highlights=hit.get("highlight", {}),
                )
            )

        total = response["hits"]["total"]
        total = total["value"] if isinstance(total, dict) else int(total)
        await self._log_search(params, user, total, response.get("took"))

        return SearchResults(total=total, page=page, limit=limit, hits=hits)

    async def _log_search(
        self, params: SearchParams, user: User | None, result_count: int, took_ms: int | None
    ) -> None:
        filters = {
            key: value
            for key, value in {
                "mime_type": params.mime_type,
                "category": params.category,
                "tags": params.tags,
                "player_references": params.player_references,
                "access_level": params.access_level,
                "date_start": params.date_start.isoformat() if params.date_start else None,
                "date_end": params.date_end.isoformat() if params.date_end else None,
            }.items()
            if value
        }
        try:
            self.db.add(
                SearchQuery(
                    user_id=user.id if user else None,
                    query_text=params.search_text or "",
                    filters=filters,
                    result_count=result_count,
                    took_ms=took_ms,
                )
            )
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.warning(f"Failed to log search query: {e}")
