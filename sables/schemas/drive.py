"""Drive sync schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class WebhookChannel(BaseModel):
    """A registered push channel."""

    channel_id: str
    resource_id: str | None = None
    kind: str
    file_id: str | None = None
    expiration: datetime | None = None
    last_message_number: int = 0


class WebhookStatus(BaseModel):
    active_channels: int
    channels: list[WebhookChannel]


class PollingStatus(BaseModel):
    is_polling: bool
    last_poll_time: datetime | None = None
    poll_count: int
    interval_seconds: int
    page_token: str | None = None
    last_error: str | None = None


class PollingIntervalUpdate(BaseModel):
    interval_seconds: int = Field(..., gt=0)


class PollResultResponse(BaseModel):
    changes_seen: int
    processed: int
    failed: int
    page_token: str


class WatchFileRequest(BaseModel):
    file_id: str


class ChangeResultResponse(BaseModel):
    success: bool
    action: str
    id: str
    skipped: bool = False
    reason: str | None = None
    error: str | None = None


class JobStatus(BaseModel):
    id: str
    name: str
    next_run: str | None = None
    trigger: str


class SyncStatus(BaseModel):
    """Combined view of push channels, polling and scheduled jobs."""

    webhook: WebhookStatus
    polling: PollingStatus
    jobs: list[JobStatus]
