"""Team calendar event model."""

from datetime import datetime
from enum import Enum

from sqlalchemy import String, DateTime, Text, ForeignKey, JSON, Enum as SQLEnum, Index
from sqlalchemy.orm import Mapped, mapped_column

from sables.services.database import Base


class EventType(str, Enum):
    """Kind of team event."""

    TRAINING = "training"
    MATCH = "match"
    MEETING = "meeting"
    MEDICAL = "medical"
    OTHER = "other"


class EventStatus(str, Enum):
    """Lifecycle of an event."""

    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Event(Base):
    """A calendar event mirrored from Google Calendar."""

    __tablename__ = "events"

    id: Mapped[int] = mapped_column(primary_key=True)
    google_event_id: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True, index=True
    )
    calendar_id: Mapped[str] = mapped_column(String(255), default="primary")
    title: Mapped[str] = mapped_column(String(500))
    description: Mapped[str] = mapped_column(Text, default="")
    location: Mapped[str | None] = mapped_column(String(500), nullable=True)
    event_type: Mapped[EventType] = mapped_column(
        SQLEnum(EventType, values_callable=lambda e: [m.value for m in e]),
        default=EventType.OTHER,
    )
    status: Mapped[EventStatus] = mapped_column(
        SQLEnum(EventStatus, values_callable=lambda e: [m.value for m in e]),
        default=EventStatus.SCHEDULED,
        index=True,
    )
    start_time: Mapped[datetime] = mapped_column(DateTime, index=True)
    end_time: Mapped[datetime] = mapped_column(DateTime)
    attendees: Mapped[list[str]] = mapped_column(JSON, default=list)
    related_documents: Mapped[list[str]] = mapped_column(JSON, default=list)
    created_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        Index("ix_events_status_start", "status", "start_time"),
    )
