"""Folder model mirroring the Drive folder tree."""

from datetime import datetime

from sqlalchemy import String, DateTime, Text, ForeignKey, JSON, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from sables.models.document import AccessLevel
from sables.services.database import Base


class Folder(Base):
    """A Drive folder and its position in the tree."""

    __tablename__ = "folders"

    id: Mapped[int] = mapped_column(primary_key=True)
    google_drive_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(500))
    parent_folder_id: Mapped[int | None] = mapped_column(
        ForeignKey("folders.id"), nullable=True, index=True
    )
    path: Mapped[str] = mapped_column(Text, index=True)
    access_level: Mapped[AccessLevel] = mapped_column(
        SQLEnum(AccessLevel, values_callable=lambda e: [m.value for m in e]),
        default=AccessLevel.TEAM,
    )
    allowed_users: Mapped[list[int]] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
