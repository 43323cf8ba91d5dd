"""Document schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from sables.models.document import AccessLevel, DocumentCategory


class DocumentSearchRequest(BaseModel):
    """Full-text search with optional filters."""

    search_text: str | None = None
    mime_type: str | None = None
    category: DocumentCategory | None = None
    tags: list[str] = Field(default_factory=list)
    player_references: list[str] = Field(default_factory=list)
    access_level: AccessLevel | None = None
    date_start: datetime | None = None
    date_end: datetime | None = None
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)


class DocumentSearchHit(BaseModel):
    id: str
    name: str
    mime_type: str | None = None
    modified_time: str | None = None
    tags: list[str] = Field(default_factory=list)
    category: str | None = None
    folder_path: str | None = None
    score: float | None = None
    highlights: dict[str, list[str]] = Field(default_factory=dict)


class DocumentSearchResponse(BaseModel):
    total: int
    page: int
    limit: int
    hits: list[DocumentSearchHit]


class DocumentResponse(BaseModel):
    """Stored document metadata."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    google_drive_id: str
    google_drive_link: str | None = None
    title: str
    description: str
    mime_type: str
    file_extension: str
    size: int
    folder_path: str
    category: DocumentCategory
    access_level: AccessLevel
    tags: list[str]
    version: int
    version_history: list[dict]
    metadata: dict = Field(validation_alias="metadata_")
    created_at: datetime
    updated_at: datetime
    last_synced_at: datetime


class ReindexRequest(BaseModel):
    """Discover and index everything under a folder."""

    folder_id: str | None = None  # Defaults to the configured root folder
    recursive: bool = True
    include_shared_with_me: bool = True
    max_results: int = Field(1000, ge=1, le=10000)
