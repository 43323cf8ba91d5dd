"""In-app notification model."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import String, DateTime, Text, ForeignKey, Boolean, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sables.services.database import Base

if TYPE_CHECKING:
    from sables.models.user import User


class NotificationType(str, Enum):
    DOCUMENT = "document"
    EVENT = "event"
    REMINDER = "reminder"
    SYSTEM = "system"


class Notification(Base):
    """A notification queued for a user."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    notification_type: Mapped[NotificationType] = mapped_column(
        SQLEnum(NotificationType, values_callable=lambda e: [m.value for m in e]),
        default=NotificationType.SYSTEM,
    )
    title: Mapped[str] = mapped_column(String(255))
    message: Mapped[str] = mapped_column(Text)
    related_document_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    related_event_id: Mapped[int | None] = mapped_column(ForeignKey("events.id"), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    read_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    user: Mapped["User"] = relationship(back_populates="notifications")
