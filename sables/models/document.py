"""Document model mirroring a Google Drive file plus search metadata."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import String, DateTime, Text, Integer, BigInteger, ForeignKey, JSON, Enum as SQLEnum, Index
from sqlalchemy.orm import Mapped, mapped_column

from sables.services.database import Base

if TYPE_CHECKING:
    from sables.models.user import User


class DocumentCategory(str, Enum):
    """Team filing category."""

    CONTRACTS = "contracts"
    MEDICAL = "medical"
    TRAINING = "training"
    MATCHES = "matches"
    PLAYERS = "players"
    ADMINISTRATION = "administration"
    GENERAL = "general"


class AccessLevel(str, Enum):
    """Who may see a document."""

    PUBLIC = "public"  # Anyone, including anonymous
    TEAM = "team"  # Any signed-in team member
    ADMIN = "admin"  # Admins only
    SPECIFIC = "specific"  # Users listed in allowed_users


class DocumentType(str, Enum):
    """Finer-grained document kind inferred from the title."""

    CONTRACT = "contract"
    MEDICAL = "medical"
    PERFORMANCE = "performance"
    TRAINING = "training"
    MATCH = "match"
    ADMINISTRATIVE = "administrative"
    OTHER = "other"


class Document(Base):
    """A Drive document tracked by the metadata store."""

    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(primary_key=True)

    # Drive identity
    google_drive_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    google_drive_link: Mapped[str | None] = mapped_column(Text, nullable=True)
    title: Mapped[str] = mapped_column(String(500))
    description: Mapped[str] = mapped_column(Text, default="")
    mime_type: Mapped[str] = mapped_column(String(255))
    file_extension: Mapped[str] = mapped_column(String(20), default="")
    size: Mapped[int] = mapped_column(BigInteger, default=0)
    folder_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    folder_path: Mapped[str] = mapped_column(Text, default="")

    # Ownership and access
    created_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    category: Mapped[DocumentCategory] = mapped_column(
        SQLEnum(DocumentCategory, values_callable=lambda e: [m.value for m in e]),
        default=DocumentCategory.GENERAL,
        index=True,
    )
    access_level: Mapped[AccessLevel] = mapped_column(
        SQLEnum(AccessLevel, values_callable=lambda e: [m.value for m in e]),
        default=AccessLevel.TEAM,
        index=True,
    )
    allowed_users: Mapped[list[int]] = mapped_column(JSON, default=list)
    tags: Mapped[list[str]] = mapped_column(JSON, default=list)

    # Versioning: [{version, updated_at, updated_by, google_drive_revision_id}]
    version: Mapped[int] = mapped_column(Integer, default=1)
    version_history: Mapped[list[dict]] = mapped_column(JSON, default=list)

    # Search metadata: player/event relations, document type, custom fields
    metadata_: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    content_index: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps (Drive times, not row times)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    last_synced_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_documents_category_updated", "category", "updated_at"),
    )

    def is_accessible_by(self, user: "User | None") -> bool:
        """Check whether a user may read this document."""
        if user is None:
            return self.access_level == AccessLevel.PUBLIC
        if user.is_admin:
            return True
        if self.access_level in (AccessLevel.PUBLIC, AccessLevel.TEAM):
            return True
        if self.created_by_id is not None and self.created_by_id == user.id:
            return True
        if self.access_level == AccessLevel.SPECIFIC:
            return user.id in (self.allowed_users or [])
        return False

    def add_version(
        self,
        updated_by: int | None = None,
        revision_id: str | None = None,
        updated_at: datetime | None = None,
    ) -> int:
        """Bump the version and record it in the history."""
        self.version = (self.version or 1) + 1
        # Reassign so the JSON column is flagged dirty
        self.version_history = [
            *(self.version_history or []),
            {
                "version": self.version,
                "updated_at": (updated_at or datetime.utcnow()).isoformat(),
                "updated_by": updated_by,
                "google_drive_revision_id": revision_id,
            },
        ]
        return self.version
