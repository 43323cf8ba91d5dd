"""Agent interface: turns a chat query into an answer and side effects."""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sables.agent.intents import AgentIntent, classify_intent, extract_entities, resolve_datetime
from sables.indexing.service import IndexingService, SearchParams
from sables.models.conversation import (
    ActionStatus,
    ActionType,
    AgentConversation,
    AgentMessage,
    ConversationStatus,
    MessageSender,
)
from sables.models.document import Document
from sables.models.event import Event
from sables.models.notification import NotificationType
from sables.models.user import User, UserRole
from sables.services.calendar import CalendarService
from sables.services.email import EmailService
from sables.services.google_auth import GoogleNotConnectedError
from sables.services.notifications import NotificationService

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 5
SEARCH_KEYWORDS = re.compile(
    r"\b(?:find|search(?: for)?|look for|get|retrieve|documents?|files?|about|related to|containing"
    r"|show me|me|any|all|please)\b",
    re.IGNORECASE,
)
EVENT_KEYWORDS = re.compile(
    r"\b(?:schedule|create event|new event|add to calendar|an?|appointment|event|for|on|at)\b",
    re.IGNORECASE,
)
EMAIL_SUBJECT_PATTERN = re.compile(r"\b(?:about|regarding|subject)\s+(.+?)(?:\s+saying\b|:|$)", re.IGNORECASE)
EMAIL_BODY_PATTERN = re.compile(r"(?:\bsaying\b|:)\s*(.+)$", re.IGNORECASE | re.DOTALL)
NOTIFY_MESSAGE_PATTERN = re.compile(r"\b(?:that|to say|about)\s+(.+)$", re.IGNORECASE | re.DOTALL)
SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")

HELP_MESSAGE = (
    "I can help you with:\n"
    "- Finding documents (\"find training plans for this week\")\n"
    "- Summarising or describing a document (\"summarize \\\"Match Report\\\"\")\n"
    "- Player information (\"player info for Tendai Mupfumira\")\n"
    "- Scheduling, rescheduling, cancelling and listing events\n"
    "- Sending emails (\"send email to coach@sables.co.zw about kit saying ...\")\n"
    "- Notifying the team (\"notify the team that training moves to 4pm\")"
)
UNKNOWN_MESSAGE = (
    "I'm not sure what you'd like me to do. Try asking me to find a document, "
    "schedule an event or send a message, or say \"help\" to see what I can do."
)
ERROR_MESSAGES = {
    AgentIntent.DOCUMENT_SEARCH: "I encountered an error while searching for documents. Please try again later.",
    AgentIntent.DOCUMENT_SUMMARY: "I encountered an error while summarising the document. Please try again later.",
    AgentIntent.DOCUMENT_DETAILS: "I encountered an error while fetching document details. Please try again later.",
    AgentIntent.PLAYER_INFO: "I encountered an error while looking up player information. Please try again later.",
}
DEFAULT_ERROR_MESSAGE = "Sorry, something went wrong while handling your request. Please try again later."


@dataclass
class HandlerResult:
    message: str
    documents: list[dict] = field(default_factory=list)
    events: list[Event] = field(default_factory=list)
    actions: list[dict] = field(default_factory=list)


@dataclass
class AgentResponse:
    response: str
    conversation_id: int
    intent: str
    related_documents: list[dict] = field(default_factory=list)
    related_events: list[dict] = field(default_factory=list)
    actions: list[dict] = field(default_factory=list)


def _action(action_type: ActionType, status: ActionStatus, **details: Any) -> dict:
    return {"type": action_type.value, "status": status.value, "details": details}


def _document_ref(document: Document) -> dict:
    return {
        "id": document.google_drive_id,
        "title": document.title,
        "link": document.google_drive_link,
    }


def _event_ref(event: Event) -> dict:
    return {"id": event.id, "title": event.title, "start_time": event.start_time}


def _clean(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip(" ?.!,:;\"'")


class AgentInterface:
    """
    Rule-based agent over documents, calendar, email and notifications.

    Each intent maps to one handler. Handler errors become an apologetic
    reply instead of propagating.
    """

    def __init__(
        self,
        db: AsyncSession,
        indexing_service: IndexingService | None = None,
        calendar_service: CalendarService | None = None,
        email_service: EmailService | None = None,
        notification_service: NotificationService | None = None,
    ):
        self.db = db
        self.indexing_service = indexing_service or IndexingService(db)
        self.calendar_service = calendar_service or CalendarService(db)
        self.email_service = email_service or EmailService()
        self.notification_service = notification_service or NotificationService(db)

        self._handlers: dict[AgentIntent, Callable[..., Awaitable[HandlerResult]]] = {
            AgentIntent.DOCUMENT_SEARCH: self.handle_document_search,
            AgentIntent.DOCUMENT_SUMMARY: self.handle_document_summary,
            AgentIntent.DOCUMENT_DETAILS: self.handle_document_details,
            AgentIntent.PLAYER_INFO: self.handle_player_info,
            AgentIntent.EVENT_CREATE: self.handle_event_create,
            AgentIntent.EVENT_UPDATE: self.handle_event_update,
            AgentIntent.EVENT_CANCEL: self.handle_event_cancel,
            AgentIntent.EVENT_LIST: self.handle_event_list,
            AgentIntent.EMAIL_SEND: self.handle_email_send,
            AgentIntent.NOTIFICATION_CREATE: self.handle_notification_create,
            AgentIntent.HELP: self.handle_help,
            AgentIntent.UNKNOWN: self.handle_unknown,
        }

    # =========================================================================
    # Conversation
    # =========================================================================

    async def _load_conversation(self, conversation_id: int) -> AgentConversation | None:
        result = await self.db.execute(
            select(AgentConversation)
            .options(selectinload(AgentConversation.messages))
            .where(AgentConversation.id == conversation_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_create_conversation(
        self, user_id: int, conversation_id: int | None = None
    ) -> AgentConversation:
        """Reuse the given or active conversation, or start a new one."""
        if conversation_id is not None:
            conversation = await self._load_conversation(conversation_id)
            if conversation is not None and conversation.user_id == user_id:
                if conversation.status == ConversationStatus.ACTIVE:
                    return conversation
                return await self._create_conversation(user_id)

        result = await self.db.execute(
            select(AgentConversation)
            .options(selectinload(AgentConversation.messages))
            .where(
                AgentConversation.user_id == user_id,
                AgentConversation.status == ConversationStatus.ACTIVE,
            )
            .order_by(AgentConversation.started_at.desc(), AgentConversation.id.desc())
            .limit(1)
        )
        conversation = result.scalar_one_or_none()
        if conversation is not None:
            return conversation
        return await self._create_conversation(user_id)

    async def _create_conversation(self, user_id: int) -> AgentConversation:
        conversation = AgentConversation(
            user_id=user_id, status=ConversationStatus.ACTIVE, context={}, messages=[]
        )
        self.db.add(conversation)
        await self.db.flush()
        logger.info(f"Started conversation {conversation.id} for user {user_id}")
        return conversation

    # =========================================================================
    # Entry point
    # =========================================================================

    async def process_query(
        self, user_id: int, query: str, conversation_id: int | None = None
    ) -> AgentResponse:
        """
        Answer a query within a conversation.

        Args:
            user_id: The asking user
            query: Free-text request
            conversation_id: Conversation to continue, if any

        Returns:
            AgentResponse with the reply and anything it touched
        """
        user = await self.db.get(User, user_id)
        conversation = await self.get_or_create_conversation(user_id, conversation_id)
        conv_id = conversation.id

        conversation.messages.append(AgentMessage(sender=MessageSender.USER, content=query))
        intent = classify_intent(query)
        conversation.intent = intent.value
        await self.db.commit()

        try:
            result = await self._handlers[intent](query, user, conversation)
        except Exception as e:
            logger.error(f"Agent handler {intent.value} failed: {e}")
            await self.db.rollback()
            conversation = await self._load_conversation(conv_id)
            result = HandlerResult(message=ERROR_MESSAGES.get(intent, DEFAULT_ERROR_MESSAGE))

        conversation.messages.append(
            AgentMessage(
                sender=MessageSender.AGENT,
                content=result.message,
                related_documents=[doc["id"] for doc in result.documents],
                related_events=[str(event.id) for event in result.events],
                actions=result.actions,
            )
        )
        await self.db.commit()

        return AgentResponse(
            response=result.message,
            conversation_id=conv_id,
            intent=intent.value,
            related_documents=result.documents,
            related_events=[_event_ref(event) for event in result.events],
            actions=result.actions,
        )

    # =========================================================================
    # Document helpers
    # =========================================================================

    async def _documents_by_drive_id(self, drive_ids: list[str]) -> dict[str, Document]:
        if not drive_ids:
            return {}
        result = await self.db.execute(
            select(Document).where(Document.google_drive_id.in_(drive_ids))
        )
        return {doc.google_drive_id: doc for doc in result.scalars().all()}

    async def _resolve_document(
        self, query: str, user: User | None, conversation: AgentConversation
    ) -> tuple[Document | None, str | None]:
        """
        Find the document a query refers to.

        Uses a quoted or named document first, then the most recent
        document mentioned in the conversation.

        Returns:
            (document, name that was asked for)
        """
        names = extract_entities(query, ["document"])["documents"]
        if names:
            name = _clean(names[0])
            results = await self.indexing_service.search_documents(
                SearchParams(search_text=name, limit=1), user
            )
            if not results.hits:
                return None, name
            documents = await self._documents_by_drive_id([results.hits[0].id])
            return documents.get(results.hits[0].id), name

        for message in reversed(conversation.messages):
            if message.related_documents:
                documents = await self._documents_by_drive_id([message.related_documents[0]])
                document = documents.get(message.related_documents[0])
                if document is not None and document.is_accessible_by(user):
                    return document, None
                return None, None
        return None, None

    # =========================================================================
    # Document handlers
    # =========================================================================

    async def handle_document_search(
        self, query: str, user: User | None, conversation: AgentConversation
    ) -> HandlerResult:
        search_terms = _clean(SEARCH_KEYWORDS.sub(" ", query))
        results = await self.indexing_service.search_documents(
            SearchParams(search_text=search_terms or None, page=1, limit=SEARCH_LIMIT), user
        )

        if results.total == 0:
            return HandlerResult(
                message=(
                    f"I couldn't find any documents matching \"{search_terms}\". "
                    "Would you like to try a different search term?"
                )
            )

        rows = await self._documents_by_drive_id([hit.id for hit in results.hits])
        plural = "" if results.total == 1 else "s"
        lines = [f"I found {results.total} document{plural} matching \"{search_terms}\":", ""]
        documents = []
        for i, hit in enumerate(results.hits, start=1):
            row = rows.get(hit.id)
            title = row.title if row else hit.name
            line = f"{i}. {title}"
            description = row.description if row else ""
            if description:
                suffix = "..." if len(description) > 100 else ""
                line += f" - {description[:100]}{suffix}"
            lines.append(line)
            documents.append(
                _document_ref(row) if row else {"id": hit.id, "title": hit.name, "link": None}
            )

        message = "\n".join(lines)
        if results.total > len(results.hits):
            message += f"\n\nThere are {results.total - len(results.hits)} more results. Would you like to see more?"
        return HandlerResult(
            message=message,
            documents=documents,
            actions=[_action(ActionType.SEARCH, ActionStatus.COMPLETED, query=search_terms, total=results.total)],
        )

    async def handle_document_summary(
        self, query: str, user: User | None, conversation: AgentConversation
    ) -> HandlerResult:
        document, name = await self._resolve_document(query, user, conversation)
        if document is None:
            if name:
                return HandlerResult(message=f"I couldn't find a document called \"{name}\".")
            return HandlerResult(
                message=(
                    "Which document would you like me to summarize? "
                    "Please provide the document name or search for it first."
                )
            )

        content = (document.content_index or "").strip()
        if not content:
            message = f"I don't have the content of \"{document.title}\" indexed yet."
        else:
            sentences = SENTENCE_SPLIT.split(content)
            summary = " ".join(sentences[:3])
            if len(summary) > 500:
                summary = summary[:500].rstrip() + "..."
            message = f"Summary of \"{document.title}\":\n\n{summary}"

        players = (document.metadata_ or {}).get("related_players") or []
        if players:
            message += f"\n\nPlayers mentioned: {', '.join(players)}"
        return HandlerResult(
            message=message,
            documents=[_document_ref(document)],
            actions=[_action(ActionType.DOCUMENT_RETRIEVAL, ActionStatus.COMPLETED, id=document.google_drive_id)],
        )

    async def handle_document_details(
        self, query: str, user: User | None, conversation: AgentConversation
    ) -> HandlerResult:
        document, name = await self._resolve_document(query, user, conversation)
        if document is None:
            if name:
                return HandlerResult(message=f"I couldn't find a document called \"{name}\".")
            return HandlerResult(
                message="Which document would you like details about? Please give me its name."
            )

        metadata = document.metadata_ or {}
        lines = [
            f"Details for \"{document.title}\":",
            f"- Category: {document.category.value}",
            f"- Type: {metadata.get('document_type', 'other')}",
            f"- Last updated: {document.updated_at:%d %B %Y}",
            f"- Version: {document.version}",
        ]
        if document.folder_path:
            lines.append(f"- Folder: {document.folder_path}")
        if document.tags:
            lines.append(f"- Tags: {', '.join(document.tags)}")
        if document.google_drive_link:
            lines.append(f"- Link: {document.google_drive_link}")
        return HandlerResult(
            message="\n".join(lines),
            documents=[_document_ref(document)],
            actions=[_action(ActionType.DOCUMENT_RETRIEVAL, ActionStatus.COMPLETED, id=document.google_drive_id)],
        )

    async def handle_player_info(
        self, query: str, user: User | None, conversation: AgentConversation
    ) -> HandlerResult:
        players = extract_entities(query, ["player"])["players"]
        if not players:
            return HandlerResult(message="Which player would you like information about? Please give their full name.")

        name = players[0]
        result = await self.db.execute(
            select(User).where(func.lower(User.name) == name.lower(), User.role == UserRole.PLAYER)
        )
        player = result.scalar_one_or_none()

        lines = [f"{name}:"]
        if player is not None:
            if player.position:
                lines.append(f"- Position: {player.position}")
            if player.jersey_number is not None:
                lines.append(f"- Jersey: #{player.jersey_number}")
            if player.player_status is not None:
                lines.append(f"- Status: {player.player_status.value}")
        else:
            lines.append("- Not on the current squad list")

        results = await self.indexing_service.search_documents(
            SearchParams(search_text=name, limit=SEARCH_LIMIT), user
        )
        rows = await self._documents_by_drive_id([hit.id for hit in results.hits])
        documents = [_document_ref(rows[hit.id]) for hit in results.hits if hit.id in rows]
        if documents:
            lines.append(f"- Mentioned in {results.total} document{'' if results.total == 1 else 's'}:")
            lines.extend(f"  - {doc['title']}" for doc in documents)
        return HandlerResult(message="\n".join(lines), documents=documents)

    # =========================================================================
    # Calendar handlers
    # =========================================================================

    def _event_title(self, query: str, entities: dict[str, list[str]]) -> str:
        quoted = extract_entities(query, ["document"])["documents"]
        if quoted:
            return _clean(quoted[0])
        text = query
        for phrase in entities.get("dates", []) + entities.get("times", []) + entities.get("emails", []):
            text = text.replace(phrase, " ")
        title = _clean(EVENT_KEYWORDS.sub(" ", text))
        return title[:1].upper() + title[1:] if title else "Team event"

    async def handle_event_create(
        self, query: str, user: User | None, conversation: AgentConversation
    ) -> HandlerResult:
        entities = extract_entities(query, ["date", "time", "email"])
        start = resolve_datetime(entities["dates"], entities["times"])
        if start is None:
            return HandlerResult(
                message=(
                    "When should I schedule it? Please include a date and time, "
                    "for example \"tomorrow at 3pm\"."
                )
            )

        title = self._event_title(query, entities)
        try:
            event = await self.calendar_service.create_event(
                user, title, start, attendees=entities["emails"]
            )
        except Exception as e:
            logger.error(f"Failed to create event {title}: {e}")
            return HandlerResult(
                message=f"I couldn't add \"{title}\" to the calendar. Please try again later.",
                actions=[_action(ActionType.EVENT_CREATE, ActionStatus.FAILED, title=title, error=str(e))],
            )

        return HandlerResult(
            message=f"I've scheduled \"{event.title}\" for {event.start_time:%A %d %B %Y at %H:%M}.",
            events=[event],
            actions=[_action(ActionType.EVENT_CREATE, ActionStatus.COMPLETED, event_id=event.id)],
        )

    async def handle_event_update(
        self, query: str, user: User | None, conversation: AgentConversation
    ) -> HandlerResult:
        quoted = extract_entities(query, ["document"])["documents"]
        hint = _clean(quoted[0]) if quoted else None
        event = await self.calendar_service.find_event(hint)
        if event is None:
            target = f" matching \"{hint}\"" if hint else ""
            return HandlerResult(message=f"I couldn't find an upcoming event{target}.")

        entities = extract_entities(query, ["date", "time"])
        start = resolve_datetime(entities["dates"], entities["times"])
        if start is None:
            return HandlerResult(
                message=f"When should \"{event.title}\" move to? Please include a new date or time.",
                events=[event],
            )

        await self.calendar_service.update_event(user, event, start_time=start)
        return HandlerResult(
            message=f"I've moved \"{event.title}\" to {event.start_time:%A %d %B %Y at %H:%M}.",
            events=[event],
            actions=[_action(ActionType.EVENT_UPDATE, ActionStatus.COMPLETED, event_id=event.id)],
        )

    async def handle_event_cancel(
        self, query: str, user: User | None, conversation: AgentConversation
    ) -> HandlerResult:
        quoted = extract_entities(query, ["document"])["documents"]
        hint = _clean(quoted[0]) if quoted else None
        event = await self.calendar_service.find_event(hint)
        if event is None:
            target = f" matching \"{hint}\"" if hint else ""
            return HandlerResult(message=f"I couldn't find an upcoming event{target} to cancel.")

        await self.calendar_service.cancel_event(user, event)
        return HandlerResult(
            message=f"I've cancelled \"{event.title}\" on {event.start_time:%A %d %B %Y}.",
            events=[event],
            actions=[_action(ActionType.EVENT_UPDATE, ActionStatus.COMPLETED, event_id=event.id, status="cancelled")],
        )

    async def handle_event_list(
        self, query: str, user: User | None, conversation: AgentConversation
    ) -> HandlerResult:
        now = datetime.utcnow()
        lowered = query.lower()
        if "today" in lowered:
            end, period = now.replace(hour=23, minute=59, second=59), "today"
        elif "next month" in lowered or "month" in lowered:
            end, period = now + timedelta(days=30), "in the next month"
        else:
            end, period = now + timedelta(days=7), "in the next 7 days"

        events = await self.calendar_service.list_upcoming(start=now, end=end)
        if not events:
            return HandlerResult(message=f"There are no events scheduled {period}.")

        lines = [f"Upcoming events {period}:"]
        for event in events:
            line = f"- {event.start_time:%a %d %b %H:%M} {event.title}"
            if event.location:
                line += f" ({event.location})"
            lines.append(line)
        return HandlerResult(message="\n".join(lines), events=events)

    # =========================================================================
    # Messaging handlers
    # =========================================================================

    async def handle_email_send(
        self, query: str, user: User | None, conversation: AgentConversation
    ) -> HandlerResult:
        recipients = extract_entities(query, ["email"])["emails"]
        if not recipients:
            return HandlerResult(message="Who should I send the email to? Please include an email address.")
        if user is None:
            return HandlerResult(message="I couldn't identify your account to send email from.")

        quoted = extract_entities(query, ["document"])["documents"]
        subject_match = EMAIL_SUBJECT_PATTERN.search(query)
        subject = _clean(subject_match.group(1)) if subject_match else f"Message from {user.name}"
        body_match = EMAIL_BODY_PATTERN.search(query)
        if quoted:
            body = quoted[0]
        elif body_match:
            body = body_match.group(1).strip()
        else:
            body = subject

        try:
            message_id = await self.email_service.send_email(user, recipients, subject, body)
        except GoogleNotConnectedError:
            return HandlerResult(
                message="I can't send email until you connect your Google account.",
                actions=[_action(ActionType.EMAIL_SEND, ActionStatus.FAILED, to=recipients, error="not connected")],
            )
        except Exception as e:
            logger.error(f"Failed to send email for user {user.id}: {e}")
            return HandlerResult(
                message="I couldn't send the email. Please try again later.",
                actions=[_action(ActionType.EMAIL_SEND, ActionStatus.FAILED, to=recipients, error=str(e))],
            )

        return HandlerResult(
            message=f"I've sent \"{subject}\" to {', '.join(recipients)}.",
            actions=[
                _action(ActionType.EMAIL_SEND, ActionStatus.COMPLETED, to=recipients, subject=subject, message_id=message_id)
            ],
        )

    async def handle_notification_create(
        self, query: str, user: User | None, conversation: AgentConversation
    ) -> HandlerResult:
        lowered = query.lower()
        recipients_query = select(User).where(User.is_active.is_(True))
        if re.search(r"\b(?:team|everyone|squad|all)\b", lowered):
            if "player" in lowered:
                recipients_query = recipients_query.where(User.role == UserRole.PLAYER)
        else:
            names = [name.lower() for name in extract_entities(query, ["player"])["players"]]
            if not names:
                return HandlerResult(message="Who should I notify? Name the players or say \"the team\".")
            recipients_query = recipients_query.where(func.lower(User.name).in_(names))

        result = await self.db.execute(recipients_query)
        recipients = [u for u in result.scalars().all() if user is None or u.id != user.id]
        if not recipients:
            return HandlerResult(message="I couldn't find anyone to notify.")

        quoted = extract_entities(query, ["document"])["documents"]
        message_match = NOTIFY_MESSAGE_PATTERN.search(query)
        if quoted:
            text = quoted[0]
        elif message_match:
            text = message_match.group(1).strip()
        else:
            text = query
        title = f"Message from {user.name}" if user else "Team notification"

        notifications = await self.notification_service.notify_users(
            [u.id for u in recipients], title, text, NotificationType.SYSTEM
        )
        return HandlerResult(
            message=f"I've notified {len(notifications)} {'person' if len(notifications) == 1 else 'people'}.",
            actions=[_action(ActionType.NOTIFICATION_CREATE, ActionStatus.COMPLETED, count=len(notifications))],
        )

    # =========================================================================
    # Fallbacks
    # =========================================================================

    async def handle_help(self, query: str, user: User | None, conversation: AgentConversation) -> HandlerResult:
        return HandlerResult(message=HELP_MESSAGE)

    async def handle_unknown(self, query: str, user: User | None, conversation: AgentConversation) -> HandlerResult:
        return HandlerResult(message=UNKNOWN_MESSAGE)
