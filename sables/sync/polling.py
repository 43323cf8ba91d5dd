"""Polling fallback over the Drive Changes API."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sables.config import get_settings
from sables.drive.client import DriveClient, get_drive_client
from sables.models.drive_sync import DriveSyncState
from sables.services.database import async_session_maker
from sables.sync.change_processor import ChangeProcessor, make_change_processor

settings = get_settings()
logger = logging.getLogger(__name__)

POLL_JOB_ID = "drive_change_poll"
MIN_POLLING_INTERVAL = 60  # seconds
DEFAULT_POLLING_INTERVAL = 15 * 60
SYNC_STATE_NAME = "changes"


@dataclass
class PollResult:
    changes_seen: int
    processed: int
    failed: int
    page_token: str


class PollingService:
    """
    Periodically drains the Drive change feed.

    The page token lives in ``drive_sync_state`` so restarts resume where
    the last cycle stopped.
    """

    def __init__(
        self,
        drive_client: DriveClient,
        scheduler: AsyncIOScheduler,
        session_factory: Callable[[], Any] = async_session_maker,
        interval_seconds: int = DEFAULT_POLLING_INTERVAL,
        processor_factory: Callable[[AsyncSession], ChangeProcessor] | None = None,
    ):
        self.drive_client = drive_client
        self.scheduler = scheduler
        self.session_factory = session_factory
        self.interval_seconds = max(MIN_POLLING_INTERVAL, interval_seconds)
        self.processor_factory = processor_factory or (
            lambda db: make_change_processor(db, self.drive_client)
        )

        self.page_token: str | None = None
        self.is_polling = False
        self.last_poll_time: datetime | None = None
        self.poll_count = 0
        self.last_error: str | None = None
        self._lock = asyncio.Lock()

    # =========================================================================
    # Page token persistence
    # =========================================================================

    async def _load_state(self, db: AsyncSession) -> DriveSyncState:
        result = await db.execute(
            select(DriveSyncState).where(DriveSyncState.name == SYNC_STATE_NAME)
        )
        state = result.scalar_one_or_none()
        if state is None:
            state = DriveSyncState(name=SYNC_STATE_NAME, poll_count=0)
            db.add(state)
        return state

    async def _ensure_page_token(self) -> str:
        async with self.session_factory() as db:
            state = await self._load_state(db)
            if not state.page_token:
                state.page_token = await self.drive_client.get_start_page_token()
                logger.info(f"Initialized page token: {state.page_token}")
                await db.commit()
            self.page_token = state.page_token
            self.poll_count = state.poll_count or 0
            self.last_poll_time = state.last_poll_at
        return self.page_token

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start_polling(self) -> None:
        """Load the page token and schedule the poll job. Idempotent."""
        if self.is_polling:
            logger.info("Polling already running")
            return

        try:
            await self._ensure_page_token()
        except Exception as e:
            logger.error(f"Error starting polling: {e}")
            raise

        self.scheduler.add_job(
            self._scheduled_poll,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=POLL_JOB_ID,
            name="Drive change polling",
            replace_existing=True,
            next_run_time=datetime.now(timezone.utc),
        )
        self.is_polling = True
        logger.info(f"Started Drive change polling (interval: {self.interval_seconds}s)")

    def stop_polling(self) -> None:
        if self.scheduler.get_job(POLL_JOB_ID):
            self.scheduler.remove_job(POLL_JOB_ID)
        self.is_polling = False
        logger.info("Stopped Drive change polling")

    async def _scheduled_poll(self) -> None:
        """Job entry point: poll, and on failure retry sooner."""
        try:
            await self.poll_for_changes()
        except Exception as e:
            self.last_error = str(e)
            retry_in = self.retry_delay_seconds()
            logger.error(f"Drive change poll failed, retrying in {retry_in}s: {e}")
            job = self.scheduler.get_job(POLL_JOB_ID)
            if job is not None:
                job.modify(next_run_time=datetime.now(timezone.utc) + timedelta(seconds=retry_in))

    def retry_delay_seconds(self) -> int:
        return int(min(MIN_POLLING_INTERVAL, self.interval_seconds / 3))

    # =========================================================================
    # Polling
    # =========================================================================

    async def poll_for_changes(self) -> PollResult:
        """
        Run one poll cycle.

        Reads every page of the change feed, keeps the latest change per
        file, applies them, then stores the new start page token.

        Returns:
            PollResult with counts and the stored page token
        """
        async with self._lock:
            if not self.page_token:
                await self._ensure_page_token()

            logger.info(f"Polling for changes with page token: {self.page_token}")
            latest: dict[str, dict] = {}
            changes_seen = 0
            token = self.page_token
            while True:
                response = await self.drive_client.list_changes(token)
                for change in response.get("changes", []):
                    changes_seen += 1
                    file_id = change.get("fileId")
                    if file_id:
                        # Re-insert so dict order follows the latest change
                        latest.pop(file_id, None)
                        latest[file_id] = change

                if response.get("nextPageToken"):
                    token = response["nextPageToken"]
                    continue
                new_token = response.get("newStartPageToken") or token
                break

            processed = failed = 0
            async with self.session_factory() as db:
                if latest:
                    logger.info(f"Found {changes_seen} changes across {len(latest)} files")
                    processor = self.processor_factory(db)
                    for file_id, change in latest.items():
                        if await self.process_change(processor, change):
                            processed += 1
                        else:
                            failed += 1
                else:
                    logger.debug("No changes found")

                state = await self._load_state(db)
                state.page_token = new_token
                state.last_poll_at = datetime.utcnow()
                state.poll_count = (state.poll_count or 0) + 1
                state.last_error = None
                last_poll_at, poll_count = state.last_poll_at, state.poll_count
                await db.commit()

            self.page_token = new_token
            self.last_poll_time = last_poll_at
            self.poll_count = poll_count
            self.last_error = None

            return PollResult(
                changes_seen=changes_seen,
                processed=processed,
                failed=failed,
                page_token=new_token,
            )

    async def process_change(self, processor: ChangeProcessor, change: dict) -> bool:
        """Apply one change entry. Returns False when it failed."""
        file_id = change["fileId"]
        file = change.get("file")
        try:
            if change.get("removed") or (file and file.get("trashed")):
                result = await processor.process_resource_removal(file_id)
            elif file:
                result = await processor.process_resource_change(file_id, file)
            else:
                logger.debug(f"Change for {file_id} has no file data, skipping")
                return True
        except Exception as e:
            logger.error(f"Error processing change for file {file_id}: {e}")
            return False
        return result.success

    # =========================================================================
    # Status and tuning
    # =========================================================================

    def get_status(self) -> dict[str, Any]:
        return {
            "is_polling": self.is_polling,
            "last_poll_time": self.last_poll_time,
            "poll_count": self.poll_count,
            "interval_seconds": self.interval_seconds,
            "page_token": self.page_token,
            "last_error": self.last_error,
        }

    def update_polling_interval(self, seconds: int) -> int:
        """Change the interval (minimum 60s) and reschedule a running job."""
        if seconds < MIN_POLLING_INTERVAL:
            logger.warning(
                f"Polling interval {seconds}s is too short, using {MIN_POLLING_INTERVAL}s instead"
            )
            seconds = MIN_POLLING_INTERVAL

        self.interval_seconds = seconds
        if self.is_polling and self.scheduler.get_job(POLL_JOB_ID):
            self.scheduler.reschedule_job(POLL_JOB_ID, trigger=IntervalTrigger(seconds=seconds))
        logger.info(f"Updated polling interval to {seconds}s")
        return seconds


# Singleton instance
_polling_service: PollingService | None = None


def get_polling_service() -> PollingService:
    """Get or create the shared polling service."""
    global _polling_service
    if _polling_service is None:
        from sables.scheduler.jobs import scheduler

        _polling_service = PollingService(
            drive_client=get_drive_client(),
            scheduler=scheduler,
            interval_seconds=settings.drive_polling_interval_seconds,
        )
    return _polling_service
