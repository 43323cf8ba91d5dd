"""User model."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import String, DateTime, Text, Boolean, Integer, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sables.services.database import Base

if TYPE_CHECKING:
    from sables.models.conversation import AgentConversation
    from sables.models.notification import Notification


class UserRole(str, Enum):
    """Team role, which drives document access."""

    ADMIN = "admin"
    PLAYER = "player"
    COACH = "coach"
    STAFF = "staff"


class PlayerStatus(str, Enum):
    """Availability of a player."""

    ACTIVE = "active"
    INJURED = "injured"
    RESERVE = "reserve"
    INACTIVE = "inactive"


class User(Base):
    """Team member (admin, player, coach or staff)."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, values_callable=lambda e: [m.value for m in e]),
        default=UserRole.PLAYER,
        index=True,
    )

    # Player info
    position: Mapped[str | None] = mapped_column(String(100), nullable=True)
    jersey_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    player_status: Mapped[PlayerStatus | None] = mapped_column(
        SQLEnum(PlayerStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=True,
    )

    # Google OAuth tokens (Calendar / Gmail on the user's behalf)
    google_access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    google_refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Preferences
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    email_notifications: Mapped[bool] = mapped_column(Boolean, default=True)
    timezone: Mapped[str] = mapped_column(String(50), default="Africa/Harare")

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Relationships
    conversations: Mapped[list["AgentConversation"]] = relationship(back_populates="user")
    notifications: Mapped[list["Notification"]] = relationship(back_populates="user")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
