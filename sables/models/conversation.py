"""Agent conversation models."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import String, DateTime, Text, ForeignKey, JSON, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sables.services.database import Base

if TYPE_CHECKING:
    from sables.models.user import User


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class MessageSender(str, Enum):
    USER = "user"
    AGENT = "agent"


class ActionType(str, Enum):
    """Side effect the agent performed for a message."""

    DOCUMENT_RETRIEVAL = "document_retrieval"
    EMAIL_SEND = "email_send"
    EVENT_CREATE = "event_create"
    EVENT_UPDATE = "event_update"
    NOTIFICATION_CREATE = "notification_create"
    SEARCH = "search"


class ActionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class AgentConversation(Base):
    """A chat session between a user and the agent."""

    __tablename__ = "agent_conversations"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    status: Mapped[ConversationStatus] = mapped_column(
        SQLEnum(ConversationStatus, values_callable=lambda e: [m.value for m in e]),
        default=ConversationStatus.ACTIVE,
        index=True,
    )
    intent: Mapped[str | None] = mapped_column(String(50), nullable=True)
    context: Mapped[dict] = mapped_column(JSON, default=dict)

    started_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
    ended_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    user: Mapped["User"] = relationship(back_populates="conversations")
    messages: Mapped[list["AgentMessage"]] = relationship(
        back_populates="conversation",
        order_by="AgentMessage.id",
        cascade="all, delete-orphan",
    )


class AgentMessage(Base):
    """One message within a conversation."""

    __tablename__ = "agent_messages"

    id: Mapped[int] = mapped_column(primary_key=True)
    conversation_id: Mapped[int] = mapped_column(
        ForeignKey("agent_conversations.id"), index=True
    )
    sender: Mapped[MessageSender] = mapped_column(
        SQLEnum(MessageSender, values_callable=lambda e: [m.value for m in e])
    )
    content: Mapped[str] = mapped_column(Text)
    related_documents: Mapped[list[str]] = mapped_column(JSON, default=list)
    related_events: Mapped[list[str]] = mapped_column(JSON, default=list)
    # [{type, status, details}]
    actions: Mapped[list[dict]] = mapped_column(JSON, default=list)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    conversation: Mapped["AgentConversation"] = relationship(back_populates="messages")
