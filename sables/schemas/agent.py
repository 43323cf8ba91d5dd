"""Agent schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class AgentQueryRequest(BaseModel):
    query: str = Field(..., min_length=1)
    conversation_id: int | None = None


class RelatedDocument(BaseModel):
    id: str
    title: str
    link: str | None = None


class RelatedEvent(BaseModel):
    id: int
    title: str
    start_time: datetime


class AgentQueryResponse(BaseModel):
    response: str
    conversation_id: int
    intent: str
    related_documents: list[RelatedDocument] = Field(default_factory=list)
    related_events: list[RelatedEvent] = Field(default_factory=list)
    actions: list[dict] = Field(default_factory=list)


class ConversationMessage(BaseModel):
    sender: str
    content: str
    timestamp: datetime
    related_documents: list[str] = Field(default_factory=list)
    related_events: list[str] = Field(default_factory=list)
    actions: list[dict] = Field(default_factory=list)


class ConversationHistory(BaseModel):
    conversation_id: int | None = None
    messages: list[ConversationMessage]


class LastMessage(BaseModel):
    sender: str
    content: str
    timestamp: datetime


class ConversationSummary(BaseModel):
    id: int
    started_at: datetime
    ended_at: datetime | None = None
    status: str
    intent: str | None = None
    message_count: int
    last_message: LastMessage | None = None


class CompleteConversationResponse(BaseModel):
    success: bool
    conversation_id: int
