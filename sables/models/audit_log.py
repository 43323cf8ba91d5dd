"""Audit log model."""

from datetime import datetime
from enum import Enum

from sqlalchemy import String, DateTime, ForeignKey, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from sables.services.database import Base


class AuditAction(str, Enum):
    """Recorded action. Drive actions come from the sync pipeline."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    DRIVE_CHANGE = "drive_change"
    DRIVE_REMOVE = "drive_remove"
    DRIVE_EXISTS = "drive_exists"


class ResourceType(str, Enum):
    DOCUMENT = "document"
    FOLDER = "folder"
    EVENT = "event"
    USER = "user"
    SYSTEM = "system"


class AuditLog(Base):
    """Append-only record of who did what to which resource."""

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    action: Mapped[str] = mapped_column(String(50), index=True)
    resource_type: Mapped[str] = mapped_column(String(50))
    resource_id: Mapped[str] = mapped_column(String(255), index=True)
    details: Mapped[dict] = mapped_column(JSON, default=dict)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (
        Index("ix_audit_logs_resource", "resource_type", "resource_id"),
    )
