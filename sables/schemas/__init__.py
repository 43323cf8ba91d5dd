"""Pydantic schemas for API validation."""

from sables.schemas.drive import (
    WebhookChannel,
    WebhookStatus,
    PollingStatus,
    PollingIntervalUpdate,
    PollResultResponse,
    WatchFileRequest,
    ChangeResultResponse,
    SyncStatus,
)
from sables.schemas.document import (
    DocumentSearchRequest,
    DocumentSearchHit,
    DocumentSearchResponse,
    DocumentResponse,
    ReindexRequest,
)
from sables.schemas.agent import (
    AgentQueryRequest,
    AgentQueryResponse,
    ConversationHistory,
    ConversationSummary,
    CompleteConversationResponse,
)
