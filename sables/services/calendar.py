"""Team calendar: Google Calendar writes mirrored into the events table."""

import asyncio
import logging
from datetime import datetime, timedelta

from googleapiclient.errors import HttpError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sables.config import get_settings
from sables.models.event import Event, EventStatus, EventType
from sables.models.user import User
from sables.services.google_auth import build_user_service

settings = get_settings()
logger = logging.getLogger(__name__)


def _event_body(event: Event) -> dict:
    body = {
        "summary": event.title,
        "description": event.description or "",
        "start": {"dateTime": event.start_time.isoformat(), "timeZone": settings.timezone},
        "end": {"dateTime": event.end_time.isoformat(), "timeZone": settings.timezone},
    }
    if event.location:
        body["location"] = event.location
    if event.attendees:
        body["attendees"] = [{"email": email} for email in event.attendees]
    return body


def guess_event_type(title: str) -> EventType:
    lowered = title.lower()
    if "training" in lowered or "practice" in lowered:
        return EventType.TRAINING
    if "match" in lowered or " vs " in f" {lowered} ":
        return EventType.MATCH
    if "meeting" in lowered:
        return EventType.MEETING
    if "medical" in lowered or "physio" in lowered:
        return EventType.MEDICAL
    return EventType.OTHER


class CalendarService:
    """Creates, updates and cancels team events."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _push(self, user: User | None, event: Event, method: str) -> None:
        """Mirror an event change to Google Calendar when the user is connected."""
        if user is None or not user.google_access_token:
            logger.debug(f"Skipping Google Calendar sync for event {event.id}: no credentials")
            return

        service = build_user_service(user, "calendar", "v3")
        events = service.events()
        try:
            if method == "insert":
                request = events.insert(calendarId=event.calendar_id, body=_event_body(event))
            elif method == "update":
                request = events.update(
                    calendarId=event.calendar_id, eventId=event.google_event_id, body=_event_body(event)
                )
            else:
                request = events.delete(calendarId=event.calendar_id, eventId=event.google_event_id)
            response = await asyncio.to_thread(request.execute)
        except HttpError as e:
            logger.error(f"Google Calendar {method} failed for event {event.id}: {e}")
            raise

        if method == "insert" and response:
            event.google_event_id = response.get("id")

    async def create_event(
        self,
        user: User | None,
        title: str,
        start_time: datetime,
        end_time: datetime | None = None,
        description: str = "",
        location: str | None = None,
        attendees: list[str] | None = None,
    ) -> Event:
        event = Event(
            calendar_id=settings.calendar_id,
            title=title,
            description=description,
            location=location,
            event_type=guess_event_type(title),
            status=EventStatus.SCHEDULED,
            start_time=start_time,
            end_time=end_time or start_time + timedelta(hours=1),
            attendees=attendees or [],
            created_by_id=user.id if user else None,
        )
        self.db.add(event)
        await self.db.flush()
        await self._push(user, event, "insert")
        await self.db.commit()
        logger.info(f"Created event {event.id}: {title} at {start_time}")
        return event

    async def update_event(
        self,
        user: User | None,
        event: Event,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        title: str | None = None,
    ) -> Event:
        if start_time is not None:
            duration = event.end_time - event.start_time
            event.start_time = start_time
            event.end_time = end_time or start_time + duration
        elif end_time is not None:
            event.end_time = end_time
        if title:
            event.title = title
        if event.google_event_id:
            await self._push(user, event, "update")
        await self.db.commit()
        logger.info(f"Updated event {event.id}")
        return event

    async def cancel_event(self, user: User | None, event: Event) -> Event:
        if event.google_event_id:
            await self._push(user, event, "delete")
        event.status = EventStatus.CANCELLED
        await self.db.commit()
        logger.info(f"Cancelled event {event.id}")
        return event

    async def list_upcoming(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 10,
    ) -> list[Event]:
        start = start or datetime.utcnow()
        query = (
            select(Event)
            .where(Event.status == EventStatus.SCHEDULED, Event.start_time >= start)
            .order_by(Event.start_time)
            .limit(limit)
        )
        if end is not None:
            query = query.where(Event.start_time <= end)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_event(self, title_hint: str | None = None) -> Event | None:
        """Next scheduled event whose title contains ``title_hint``."""
        query = select(Event).where(
            Event.status == EventStatus.SCHEDULED,
            Event.start_time >= datetime.utcnow() - timedelta(hours=1),
        )
        if title_hint:
            query = query.where(Event.title.ilike(f"%{title_hint}%"))
        result = await self.db.execute(query.order_by(Event.start_time).limit(1))
        return result.scalar_one_or_none()
