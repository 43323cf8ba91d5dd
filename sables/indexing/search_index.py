"""Elasticsearch full-text index for Drive documents."""

import logging
from typing import Any, Iterable

from elasticsearch import AsyncElasticsearch, NotFoundError
from elasticsearch.helpers import async_bulk

from sables.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

INDEX_MAPPINGS = {
    "properties": {
        "id": {"type": "keyword"},
        "name": {"type": "text", "fields": {"keyword": {"type": "keyword"}}},
        "content": {"type": "text"},
        "mime_type": {"type": "keyword"},
        "created_time": {"type": "date"},
        "modified_time": {"type": "date"},
        "tags": {"type": "keyword"},
        "category": {"type": "keyword"},
        "player_references": {"type": "keyword"},
        "folder_path": {"type": "text", "fields": {"keyword": {"type": "keyword"}}},
        "access_level": {"type": "keyword"},
        "allowed_users": {"type": "keyword"},
        "created_by": {"type": "keyword"},
    }
}


class SearchIndex:
    """
    Thin async wrapper around a single Elasticsearch index.

    Documents are keyed by their Google Drive file ID.
    """

    def __init__(self, client: AsyncElasticsearch | None = None, index_name: str | None = None):
        self.client = client or AsyncElasticsearch(settings.elasticsearch_url)
        self.index_name = index_name or settings.elasticsearch_index

    async def ensure_index(self) -> bool:
        """Create the index with its mapping if missing.

        Returns:
            True when the index was created
        """
        if await self.client.indices.exists(index=self.index_name):
            return False

        logger.info(f"Creating Elasticsearch index: {self.index_name}")
        await self.client.indices.create(index=self.index_name, mappings=INDEX_MAPPINGS)
        return True

    async def index_document(self, doc_id: str, body: dict[str, Any]) -> None:
        await self.client.index(index=self.index_name, id=doc_id, document=body)
        logger.debug(f"Indexed {doc_id} in {self.index_name}")

    async def bulk_index(self, documents: Iterable[tuple[str, dict[str, Any]]]) -> tuple[int, list[dict]]:
        """
        Index many documents in one bulk request.

        Args:
            documents: (doc_id, body) pairs

        Returns:
            (success count, per-item errors as {"id", "error"})
        """
        actions = [
            {"_op_type": "index", "_index": self.index_name, "_id": doc_id, "_source": body}
            for doc_id, body in documents
        ]
        if not actions:
            return 0, []

        success, raw_errors = await async_bulk(
            self.client, actions, raise_on_error=False, raise_on_exception=False
        )
        errors = []
        for item in raw_errors:
            op = item.get("index") or next(iter(item.values()), {})
            errors.append({"id": op.get("_id"), "error": op.get("error")})
        return success, errors

    async def delete_document(self, doc_id: str) -> bool:
        """Delete a document. Returns False when it was not indexed."""
        try:
            response = await self.client.delete(index=self.index_name, id=doc_id)
        except NotFoundError:
            logger.debug(f"{doc_id} not present in {self.index_name}")
            return False
        return response["result"] == "deleted"

    async def search(self, **body: Any) -> dict[str, Any]:
        """Run a search against the index. ``body`` takes search API keywords."""
        response = await self.client.search(index=self.index_name, **body)
        return response.body

    async def close(self) -> None:
        await self.client.close()


# Singleton instance
_search_index: SearchIndex | None = None


def get_search_index() -> SearchIndex:
    """Get or create the shared search index."""
    global _search_index
    if _search_index is None:
        _search_index = SearchIndex()
    return _search_index
