"""Drive sync bookkeeping: change-feed cursor and push channels."""

from datetime import datetime
from enum import Enum

from sqlalchemy import String, DateTime, Text, Integer, Boolean, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from sables.services.database import Base


class ChannelKind(str, Enum):
    FILE = "file"  # files.watch on a single file
    CHANGES = "changes"  # changes.watch on the whole feed


class DriveSyncState(Base):
    """Persisted Changes API page token."""

    __tablename__ = "drive_sync_state"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, default="changes")
    page_token: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_poll_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    poll_count: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class DriveWatchChannel(Base):
    """A registered Drive push-notification channel."""

    __tablename__ = "drive_watch_channels"

    id: Mapped[int] = mapped_column(primary_key=True)
    channel_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    resource_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    resource_uri: Mapped[str | None] = mapped_column(Text, nullable=True)
    kind: Mapped[ChannelKind] = mapped_column(
        SQLEnum(ChannelKind, values_callable=lambda e: [m.value for m in e]),
        default=ChannelKind.FILE,
    )
    file_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    token: Mapped[str | None] = mapped_column(String(255), nullable=True)
    expiration: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    last_message_number: Mapped[int] = mapped_column(Integer, default=0)
    active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
