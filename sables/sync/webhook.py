"""Drive push notifications: channel registry and notification dispatch."""

import hashlib
import hmac
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sables.config import get_settings
from sables.drive.client import DriveClient
from sables.models.drive_sync import ChannelKind, DriveWatchChannel
from sables.sync.change_processor import ChangeProcessor, ChangeResult

settings = get_settings()
logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/api/v1/drive/webhook"
RENEWAL_WINDOW = timedelta(hours=2)


class UnknownChannelError(LookupError):
    """Notification for a channel we never registered (or already closed)."""


class InvalidChannelTokenError(PermissionError):
    """Channel token does not match the expected signature."""


@dataclass
class WebhookNotification:
    """The X-Goog-* headers of one push notification."""

    channel_id: str | None
    resource_id: str | None
    resource_state: str | None
    message_number: int | None = None
    channel_token: str | None = None
    resource_uri: str | None = None
    changed: str | None = None

    @classmethod
    def from_headers(cls, headers: Any) -> "WebhookNotification":
        raw_number = headers.get("x-goog-message-number")
        try:
            message_number = int(raw_number) if raw_number else None
        except ValueError:
            message_number = None
        return cls(
            channel_id=headers.get("x-goog-channel-id"),
            resource_id=headers.get("x-goog-resource-id"),
            resource_state=(headers.get("x-goog-resource-state") or "").lower() or None,
            message_number=message_number,
            channel_token=headers.get("x-goog-channel-token"),
            resource_uri=headers.get("x-goog-resource-uri"),
            changed=headers.get("x-goog-changed"),
        )


@dataclass
class AcceptedNotification:
    """A verified, non-duplicate notification ready for processing."""

    notification: WebhookNotification
    kind: ChannelKind
    file_id: str | None


def sign_channel_id(channel_id: str, secret: str) -> str:
    """HMAC-SHA256 of the channel ID, used as the channel token."""
    return hmac.new(secret.encode(), channel_id.encode(), hashlib.sha256).hexdigest()


def generate_channel_id() -> str:
    return str(uuid.uuid4())


class WebhookHandler:
    """
    Verifies incoming notifications against the persisted channel registry
    and manages Drive watch channels.
    """

    def __init__(
        self,
        db: AsyncSession,
        drive_client: DriveClient | None = None,
        secret_token: str | None = None,
    ):
        self.db = db
        self.drive_client = drive_client
        self.secret_token = settings.webhook_secret_token if secret_token is None else secret_token

    # =========================================================================
    # Verification
    # =========================================================================

    def channel_token(self, channel_id: str) -> str | None:
        if not self.secret_token:
            return None
        return sign_channel_id(channel_id, self.secret_token)

    def verify_token(self, channel_id: str, token: str | None) -> bool:
        """Constant-time check of a channel token. Always true without a secret."""
        if not self.secret_token:
            return True
        if not token:
            return False
        expected = sign_channel_id(channel_id, self.secret_token)
        return hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8"))

    async def get_channel(self, channel_id: str) -> DriveWatchChannel | None:
        result = await self.db.execute(
            select(DriveWatchChannel).where(
                DriveWatchChannel.channel_id == channel_id,
                DriveWatchChannel.active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def accept(self, notification: WebhookNotification) -> AcceptedNotification | None:
        """
        Validate a notification before it is acknowledged.

        Returns:
            The accepted notification, or None when it is a replay of a
            message number already seen on this channel

        Raises:
            UnknownChannelError: Channel is not registered
            InvalidChannelTokenError: Token check failed
        """
        channel = await self.get_channel(notification.channel_id) if notification.channel_id else None
        if channel is None:
            logger.warning(f"Received notification for unknown channel ID: {notification.channel_id}")
            raise UnknownChannelError(notification.channel_id)

        if not self.verify_token(channel.channel_id, notification.channel_token):
            logger.warning(f"Invalid token on notification for channel {channel.channel_id}")
            raise InvalidChannelTokenError(channel.channel_id)

        if notification.message_number is not None:
            # Compare-and-set so concurrent deliveries of one message accept once
            result = await self.db.execute(
                update(DriveWatchChannel)
                .where(
                    DriveWatchChannel.id == channel.id,
                    or_(
                        DriveWatchChannel.last_message_number.is_(None),
                        DriveWatchChannel.last_message_number < notification.message_number,
                    ),
                )
                .values(last_message_number=notification.message_number)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            if result.rowcount == 0:
                logger.info(
                    f"Dropping stale notification {notification.message_number} on channel "
                    f"{channel.channel_id}"
                )
                return None
            await self.db.refresh(channel, ["last_message_number"])

        logger.info(
            f"Received webhook notification: {notification.resource_state} for resource "
            f"{notification.resource_id} (message {notification.message_number})"
        )
        return AcceptedNotification(
            notification=notification,
            kind=channel.kind,
            file_id=channel.file_id,
        )

    # =========================================================================
    # Channel registry
    # =========================================================================

    async def register_channel(
        self,
        channel_id: str,
        resource_id: str | None,
        kind: ChannelKind = ChannelKind.FILE,
        file_id: str | None = None,
        expiration: datetime | None = None,
        resource_uri: str | None = None,
    ) -> DriveWatchChannel:
        channel = DriveWatchChannel(
            channel_id=channel_id,
            resource_id=resource_id,
            resource_uri=resource_uri,
            kind=kind,
            file_id=file_id,
            token=self.channel_token(channel_id),
            expiration=expiration,
            last_message_number=0,
            active=True,
        )
        self.db.add(channel)
        await self.db.commit()
        logger.info(f"Registered webhook channel {channel_id} for resource {resource_id}")
        return channel

    async def unregister_channel(self, channel_id: str, stop: bool = True) -> bool:
        """Deactivate a channel and, optionally, stop it at Google."""
        channel = await self.get_channel(channel_id)
        if channel is None:
            return False

        if stop and self.drive_client and channel.resource_id:
            try:
                await self.drive_client.stop_channel(channel.channel_id, channel.resource_id)
            except Exception as e:
                logger.warning(f"Could not stop channel {channel_id} at Google: {e}")

        channel.active = False
        await self.db.commit()
        logger.info(f"Unregistered webhook channel {channel_id}")
        return True

    async def get_status(self) -> dict[str, Any]:
        result = await self.db.execute(
            select(DriveWatchChannel)
            .where(DriveWatchChannel.active.is_(True))
            .order_by(DriveWatchChannel.created_at)
        )
        channels = result.scalars().all()
        return {
            "active_channels": len(channels),
            "channels": [
                {
                    "channel_id": c.channel_id,
                    "resource_id": c.resource_id,
                    "kind": c.kind.value,
                    "file_id": c.file_id,
                    "expiration": c.expiration,
                    "last_message_number": c.last_message_number or 0,
                }
                for c in channels
            ],
        }

    # =========================================================================
    # Opening and renewing channels
    # =========================================================================

    def _webhook_url(self) -> str:
        if not settings.webhook_base_url:
            raise ValueError("webhook_base_url is not configured")
        return settings.webhook_base_url.rstrip("/") + WEBHOOK_PATH

    @staticmethod
    def _expiration_from(response: dict, fallback: datetime) -> datetime:
        raw = response.get("expiration")
        if raw:
            return datetime.utcfromtimestamp(int(raw) / 1000)
        return fallback

    async def watch_changes(self, page_token: str | None = None) -> DriveWatchChannel:
        """Open a push channel on the whole change feed and register it."""
        if self.drive_client is None:
            raise ValueError("A Drive client is required to open channels")

        page_token = page_token or await self.drive_client.get_start_page_token()
        channel_id = generate_channel_id()
        expires = datetime.utcnow() + timedelta(hours=settings.webhook_channel_ttl_hours)
        response = await self.drive_client.watch_changes(
            page_token,
            self._webhook_url(),
            channel_id,
            expiration_ms=int((expires - datetime(1970, 1, 1)).total_seconds() * 1000),
            token=self.channel_token(channel_id),
        )
        return await self.register_channel(
            channel_id,
            response.get("resourceId"),
            kind=ChannelKind.CHANGES,
            expiration=self._expiration_from(response, expires),
            resource_uri=response.get("resourceUri"),
        )

    async def watch_file(self, file_id: str) -> DriveWatchChannel:
        """Open a push channel on one file and register it."""
        if self.drive_client is None:
            raise ValueError("A Drive client is required to open channels")

        channel_id = generate_channel_id()
        expires = datetime.utcnow() + timedelta(hours=settings.webhook_channel_ttl_hours)
        response = await self.drive_client.watch_file(
            file_id,
            self._webhook_url(),
            channel_id,
            expiration_ms=int((expires - datetime(1970, 1, 1)).total_seconds() * 1000),
            token=self.channel_token(channel_id),
        )
        return await self.register_channel(
            channel_id,
            response.get("resourceId"),
            kind=ChannelKind.FILE,
            file_id=file_id,
            expiration=self._expiration_from(response, expires),
            resource_uri=response.get("resourceUri"),
        )

    async def renew_expiring_channels(self, within: timedelta = RENEWAL_WINDOW) -> int:
        """Replace channels expiring soon. Returns the number renewed."""
        cutoff = datetime.utcnow() + within
        result = await self.db.execute(
            select(DriveWatchChannel).where(
                DriveWatchChannel.active.is_(True),
                DriveWatchChannel.expiration.is_not(None),
                DriveWatchChannel.expiration <= cutoff,
            )
        )
        renewed = 0
        for channel in result.scalars().all():
            try:
                if channel.kind == ChannelKind.CHANGES:
                    await self.watch_changes()
                else:
                    await self.watch_file(channel.file_id)
                await self.unregister_channel(channel.channel_id)
                renewed += 1
            except Exception as e:
                logger.error(f"Failed to renew channel {channel.channel_id}: {e}")
        if renewed:
            logger.info(f"Renewed {renewed} expiring webhook channels")
        return renewed


async def dispatch_notification(
    accepted: AcceptedNotification,
    processor: ChangeProcessor,
    polling_service: Any = None,
) -> ChangeResult | None:
    """
    Act on an accepted notification.

    Change-feed channels carry no file ID, so any change on them runs a
    poll cycle. File channels route by resource state.
    """
    notification = accepted.notification
    state = notification.resource_state
    file_id = accepted.file_id or notification.resource_id

    try:
        if state == "sync":
            logger.info(f"Received sync notification for channel {notification.channel_id}")
            return None

        if accepted.kind == ChannelKind.CHANGES:
            if state in ("change", "update", "add", "remove", "trash", "untrash"):
                if polling_service is None:
                    logger.warning("Change-feed notification received without a polling service")
                    return None
                await polling_service.poll_for_changes()
            else:
                logger.warning(f"Unknown resource state: {state}")
            return None

        if state in ("change", "update", "add", "untrash"):
            return await processor.process_resource_change(file_id)
        if state in ("remove", "trash"):
            return await processor.process_resource_removal(file_id)
        if state == "exists":
            return await processor.process_resource_exists(file_id)

        logger.warning(f"Unknown resource state: {state}")
        return None
    except Exception as e:
        logger.error(f"Error processing {state} notification for resource {file_id}: {e}")
        return None
