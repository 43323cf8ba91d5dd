"""Database models."""

from sables.models.user import User, UserRole, PlayerStatus
from sables.models.document import Document, DocumentCategory, AccessLevel, DocumentType
from sables.models.folder import Folder
from sables.models.event import Event, EventType, EventStatus
from sables.models.notification import Notification, NotificationType
from sables.models.audit_log import AuditLog, AuditAction, ResourceType
from sables.models.search_query import SearchQuery
from sables.models.conversation import (
    AgentConversation,
    AgentMessage,
    ConversationStatus,
    MessageSender,
    ActionType,
    ActionStatus,
)
from sables.models.drive_sync import DriveSyncState, DriveWatchChannel, ChannelKind

__all__ = [
    "User",
    "UserRole",
    "PlayerStatus",
    "Document",
    "DocumentCategory",
    "AccessLevel",
    "DocumentType",
    "Folder",
    "Event",
    "EventType",
    "EventStatus",
    "Notification",
    "NotificationType",
    "AuditLog",
    "AuditAction",
    "ResourceType",
    "SearchQuery",
    "AgentConversation",
    "AgentMessage",
    "ConversationStatus",
    "MessageSender",
    "ActionType",
    "ActionStatus",
    "DriveSyncState",
    "DriveWatchChannel",
    "ChannelKind",
]
