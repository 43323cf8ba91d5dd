"""Drive sync API: webhook receiver, channels and polling controls."""

import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from sables.api.deps import require_admin
from sables.drive.client import DriveClient, get_drive_client
from sables.models.user import User
from sables.scheduler.jobs import get_job_status
from sables.schemas.drive import (
    ChangeResultResponse,
    PollingIntervalUpdate,
    PollingStatus,
    PollResultResponse,
    SyncStatus,
    WatchFileRequest,
    WebhookChannel,
    WebhookStatus,
)
from sables.services.database import async_session_maker, get_db
from sables.sync.change_processor import make_change_processor
from sables.sync.polling import PollingService, get_polling_service
from sables.sync.webhook import (
    AcceptedNotification,
    InvalidChannelTokenError,
    UnknownChannelError,
    WebhookHandler,
    WebhookNotification,
    dispatch_notification,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def process_notification(
    accepted: AcceptedNotification,
    drive_client: DriveClient,
    polling_service: PollingService,
) -> None:
    """Background task: apply a notification with its own session."""
    async with async_session_maker() as db:
        processor = make_change_processor(db, drive_client)
        await dispatch_notification(accepted, processor, polling_service)


def _channel_response(channel) -> WebhookChannel:
    return WebhookChannel(
        channel_id=channel.channel_id,
        resource_id=channel.resource_id,
        kind=channel.kind.value,
        file_id=channel.file_id,
        expiration=channel.expiration,
        last_message_number=channel.last_message_number or 0,
    )


# =============================================================================
# Webhook
# =============================================================================


@router.post("/webhook")
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Annotated[AsyncSession, Depends(get_db)],
    drive_client: Annotated[DriveClient, Depends(get_drive_client)],
    polling_service: Annotated[PollingService, Depends(get_polling_service)],
) -> dict:
    """Receive a Drive push notification.

    Acknowledges as soon as the channel and token check out; the change is
    applied in the background.
    """
    notification = WebhookNotification.from_headers(request.headers)
    handler = WebhookHandler(db)
    try:
        accepted = await handler.accept(notification)
    except UnknownChannelError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Channel not found")
    except InvalidChannelTokenError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid signature")

    if accepted is None:
        return {"status": "duplicate"}

    background_tasks.add_task(process_notification, accepted, drive_client, polling_service)
    return {"status": "ok"}


@router.get("/webhook/status", response_model=WebhookStatus)
async def webhook_status(db: Annotated[AsyncSession, Depends(get_db)]) -> WebhookStatus:
    """List active push channels."""
    return WebhookStatus(**await WebhookHandler(db).get_status())


@router.post("/webhook/channels/changes", response_model=WebhookChannel, status_code=status.HTTP_201_CREATED)
async def open_changes_channel(
    db: Annotated[AsyncSession, Depends(get_db)],
    drive_client: Annotated[DriveClient, Depends(get_drive_client)],
    polling_service: Annotated[PollingService, Depends(get_polling_service)],
    _admin: Annotated[User, Depends(require_admin)],
) -> WebhookChannel:
    handler = WebhookHandler(db, drive_client)
    try:
        channel = await handler.watch_changes(polling_service.page_token)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to open change channel: {str(e)}",
        )
    return _channel_response(channel)


@router.post("/webhook/channels/files", response_model=WebhookChannel, status_code=status.HTTP_201_CREATED)
async def open_file_channel(
    body: WatchFileRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    drive_client: Annotated[DriveClient, Depends(get_drive_client)],
    _admin: Annotated[User, Depends(require_admin)],
) -> WebhookChannel:
    handler = WebhookHandler(db, drive_client)
    try:
        channel = await handler.watch_file(body.file_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to watch file: {str(e)}",
        )
    return _channel_response(channel)


@router.delete("/webhook/channels/{channel_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_channel(
    channel_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    drive_client: Annotated[DriveClient, Depends(get_drive_client)],
    _admin: Annotated[User, Depends(require_admin)],
) -> None:
    if not await WebhookHandler(db, drive_client).unregister_channel(channel_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Channel not found")


# =============================================================================
# Polling
# =============================================================================


@router.get("/sync/status", response_model=SyncStatus)
async def sync_status(
    db: Annotated[AsyncSession, Depends(get_db)],
    polling_service: Annotated[PollingService, Depends(get_polling_service)],
) -> SyncStatus:
    """Push channels, polling state and scheduled jobs in one view."""
    return SyncStatus(
        webhook=WebhookStatus(**await WebhookHandler(db).get_status()),
        polling=PollingStatus(**polling_service.get_status()),
        jobs=get_job_status(),
    )


@router.post("/sync/poll", response_model=PollResultResponse)
async def poll_now(
    polling_service: Annotated[PollingService, Depends(get_polling_service)],
    _admin: Annotated[User, Depends(require_admin)],
) -> PollResultResponse:
    """Run a poll cycle immediately."""
    try:
        result = await polling_service.poll_for_changes()
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to poll for changes: {str(e)}",
        )
    return PollResultResponse(
        changes_seen=result.changes_seen,
        processed=result.processed,
        failed=result.failed,
        page_token=result.page_token,
    )


@router.post("/sync/start", response_model=PollingStatus)
async def start_polling(
    polling_service: Annotated[PollingService, Depends(get_polling_service)],
    _admin: Annotated[User, Depends(require_admin)],
) -> PollingStatus:
    try:
        await polling_service.start_polling()
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to start polling: {str(e)}",
        )
    return PollingStatus(**polling_service.get_status())


@router.post("/sync/stop", response_model=PollingStatus)
async def stop_polling(
    polling_service: Annotated[PollingService, Depends(get_polling_service)],
    _admin: Annotated[User, Depends(require_admin)],
) -> PollingStatus:
    polling_service.stop_polling()
    return PollingStatus(**polling_service.get_status())


@router.put("/sync/interval", response_model=PollingStatus)
async def update_interval(
    body: PollingIntervalUpdate,
    polling_service: Annotated[PollingService, Depends(get_polling_service)],
    _admin: Annotated[User, Depends(require_admin)],
) -> PollingStatus:
    polling_service.update_polling_interval(body.interval_seconds)
    return PollingStatus(**polling_service.get_status())


@router.post("/files/{file_id}/process", response_model=ChangeResultResponse)
async def process_file(
    file_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    drive_client: Annotated[DriveClient, Depends(get_drive_client)],
    _admin: Annotated[User, Depends(require_admin)],
) -> ChangeResultResponse:
    """Re-fetch and re-index a single file."""
    result = await make_change_processor(db, drive_client).process_resource_change(file_id)
    return ChangeResultResponse(**vars(result))
