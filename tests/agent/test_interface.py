"""Tests for the agent interface handlers."""

from datetime import datetime, time, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select

from sables.agent.interface import ERROR_MESSAGES, HELP_MESSAGE, UNKNOWN_MESSAGE, AgentInterface
from sables.agent.intents import AgentIntent
from sables.models.conversation import AgentConversation
from sables.models.document import Document
from sables.models.event import Event, EventStatus, EventType
from sables.models.notification import Notification


@pytest.fixture
def email_service():
    service = MagicMock()
    service.send_email = AsyncMock(return_value="msg-1")
    return service


@pytest.fixture
def agent(db_session, mock_search_index, email_service):
    return AgentInterface(db_session, email_service=email_service)


@pytest.fixture
async def scrum_document(db_session):
    document = Document(
        google_drive_id="file123",
        title="Scrum Drills",
        description="Forward pack scrum progressions",
        mime_type="application/vnd.google-apps.document",
        google_drive_link="https://docs.google.com/document/d/file123/edit",
        content_index="Scrum basics. Bind low. Drive forward. Reset fast.",
        metadata_={"related_players": ["Tendai Mupfumira"]},
    )
    db_session.add(document)
    await db_session.commit()
    return document


@pytest.fixture
async def lineout_session(db_session):
    start = datetime.utcnow().replace(microsecond=0) + timedelta(days=2)
    event = Event(
        title="Lineout session",
        location="Harare Sports Club",
        event_type=EventType.TRAINING,
        status=EventStatus.SCHEDULED,
        start_time=start,
        end_time=start + timedelta(minutes=90),
    )
    db_session.add(event)
    await db_session.commit()
    return event


def _search_response(*sources):
    return {
        "took": 2,
        "hits": {
            "total": {"value": len(sources), "relation": "eq"},
            "hits": [{"_id": s["id"], "_score": 1.0, "_source": s} for s in sources],
        },
    }


class TestConversation:
    @pytest.mark.asyncio
    async def test_help_starts_conversation(self, agent, admin_user):
        response = await agent.process_query(admin_user.id, "help")

        assert response.response == HELP_MESSAGE
        assert response.intent == AgentIntent.HELP.value
        assert response.conversation_id is not None

    @pytest.mark.asyncio
    async def test_active_conversation_is_reused(self, agent, admin_user):
        first = await agent.process_query(admin_user.id, "help")
        second = await agent.process_query(admin_user.id, "xyzzy")

        assert second.conversation_id == first.conversation_id
        assert second.response == UNKNOWN_MESSAGE

        conversation = await agent._load_conversation(first.conversation_id)
        assert [m.sender.value for m in conversation.messages] == ["user", "agent", "user", "agent"]
        assert conversation.intent == AgentIntent.UNKNOWN.value

    @pytest.mark.asyncio
    async def test_other_users_conversation_is_not_reused(self, agent, admin_user, player_user):
        first = await agent.process_query(admin_user.id, "help")
        second = await agent.process_query(player_user.id, "help", first.conversation_id)

        assert second.conversation_id != first.conversation_id

    @pytest.mark.asyncio
    async def test_handler_error_becomes_reply(self, agent, admin_user, mock_search_index, db_session):
        user_id = admin_user.id
        mock_search_index.search.side_effect = Exception("cluster unavailable")

        response = await agent.process_query(user_id, "find documents about scrum drills")

        assert response.response == ERROR_MESSAGES[AgentIntent.DOCUMENT_SEARCH]
        result = await db_session.execute(
            select(AgentConversation).where(AgentConversation.id == response.conversation_id)
        )
        assert result.scalar_one() is not None
        conversation = await agent._load_conversation(response.conversation_id)
        assert len(conversation.messages) == 2


class TestDocumentHandlers:
    @pytest.mark.asyncio
    async def test_search_without_results(self, agent, admin_user):
        response = await agent.process_query(admin_user.id, "find documents about scrum drills")

        assert response.response.startswith('I couldn\'t find any documents matching "scrum drills"')
        assert response.related_documents == []

    @pytest.mark.asyncio
    async def test_search_lists_documents(self, agent, admin_user, scrum_document, mock_search_index):
        mock_search_index.search.return_value = _search_response({"id": "file123", "name": "Scrum Drills"})

        response = await agent.process_query(admin_user.id, "find documents about scrum drills")

        assert response.response.startswith('I found 1 document matching "scrum drills":')
        assert "1. Scrum Drills - Forward pack scrum progressions" in response.response
        assert response.related_documents[0]["id"] == "file123"
        assert response.actions[0]["type"] == "search"
        assert response.actions[0]["details"]["total"] == 1

    @pytest.mark.asyncio
    async def test_summary_uses_last_mentioned_document(
        self, agent, admin_user, scrum_document, mock_search_index
    ):
        mock_search_index.search.return_value = _search_response({"id": "file123", "name": "Scrum Drills"})
        found = await agent.process_query(admin_user.id, "find documents about scrum drills")

        response = await agent.process_query(admin_user.id, "summarize it", found.conversation_id)

        assert response.intent == AgentIntent.DOCUMENT_SUMMARY.value
        assert response.response.startswith(
            'Summary of "Scrum Drills":\n\nScrum basics. Bind low. Drive forward.'
        )
        assert "Players mentioned: Tendai Mupfumira" in response.response

    @pytest.mark.asyncio
    async def test_summary_of_unknown_document(self, agent, admin_user):
        response = await agent.process_query(admin_user.id, 'summarize "Budget 2026"')

        assert response.response == 'I couldn\'t find a document called "Budget 2026".'

    @pytest.mark.asyncio
    async def test_summary_without_reference_asks(self, agent, admin_user):
        response = await agent.process_query(admin_user.id, "summarize it")

        assert response.response.startswith("Which document would you like me to summarize?")

    @pytest.mark.asyncio
    async def test_player_info(self, agent, admin_user, player_user):
        response = await agent.process_query(admin_user.id, "player info for Tendai Mupfumira")

        assert response.intent == AgentIntent.PLAYER_INFO.value
        lines = response.response.splitlines()
        assert lines[0] == "Tendai Mupfumira:"
        assert "- Position: Flanker" in lines
        assert "- Jersey: #7" in lines

    @pytest.mark.asyncio
    async def test_unknown_player(self, agent, admin_user):
        response = await agent.process_query(admin_user.id, "player info for Brandon Mudzekenyedzi")

        assert "- Not on the current squad list" in response.response


class TestCalendarHandlers:
    @pytest.mark.asyncio
    async def test_create_event(self, agent, admin_user, db_session):
        response = await agent.process_query(admin_user.id, "schedule training on Friday at 5pm")

        assert response.intent == AgentIntent.EVENT_CREATE.value
        assert response.response.startswith('I\'ve scheduled "Training" for Friday')
        assert response.actions[0]["status"] == "completed"

        event = (await db_session.execute(select(Event))).scalar_one()
        assert event.title == "Training"
        assert event.event_type == EventType.TRAINING
        assert event.start_time.weekday() == 4
        assert event.start_time.hour == 17
        assert event.end_time - event.start_time == timedelta(hours=1)
        assert event.created_by_id == admin_user.id
        assert event.google_event_id is None
        assert response.related_events[0]["id"] == event.id

    @pytest.mark.asyncio
    async def test_create_event_needs_a_time(self, agent, admin_user, db_session):
        response = await agent.process_query(admin_user.id, "schedule a meeting")

        assert response.response.startswith("When should I schedule it?")
        assert (await db_session.execute(select(Event))).first() is None

    @pytest.mark.asyncio
    async def test_list_events(self, agent, admin_user, lineout_session):
        response = await agent.process_query(admin_user.id, "show upcoming events")

        assert response.response.startswith("Upcoming events in the next 7 days:")
        assert "Lineout session (Harare Sports Club)" in response.response
        assert response.related_events[0]["title"] == "Lineout session"

    @pytest.mark.asyncio
    async def test_list_events_when_empty(self, agent, admin_user):
        response = await agent.process_query(admin_user.id, "show upcoming events")

        assert response.response == "There are no events scheduled in the next 7 days."

    @pytest.mark.asyncio
    async def test_cancel_event(self, agent, admin_user, lineout_session):
        response = await agent.process_query(admin_user.id, 'cancel event "Lineout"')

        assert response.response.startswith('I\'ve cancelled "Lineout session"')
        assert lineout_session.status == EventStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_unknown_event(self, agent, admin_user):
        response = await agent.process_query(admin_user.id, 'cancel event "Lineout"')

        assert response.response == 'I couldn\'t find an upcoming event matching "Lineout" to cancel.'

    @pytest.mark.asyncio
    async def test_reschedule_event_keeps_duration(self, agent, admin_user, lineout_session):
        response = await agent.process_query(admin_user.id, 'reschedule "Lineout" to tomorrow at 6pm')

        assert response.intent == AgentIntent.EVENT_UPDATE.value
        assert response.response.startswith('I\'ve moved "Lineout session"')
        tomorrow = datetime.now().date() + timedelta(days=1)
        assert lineout_session.start_time == datetime.combine(tomorrow, time(18, 0))
        assert lineout_session.end_time - lineout_session.start_time == timedelta(minutes=90)


class TestMessagingHandlers:
    @pytest.mark.asyncio
    async def test_send_email(self, agent, admin_user, email_service):
        response = await agent.process_query(
            admin_user.id,
            "send email to coach@sables.co.zw about kit collection saying Bring your boots",
        )

        email_service.send_email.assert_awaited_once_with(
            admin_user, ["coach@sables.co.zw"], "kit collection", "Bring your boots"
        )
        assert response.response == 'I\'ve sent "kit collection" to coach@sables.co.zw.'
        assert response.actions[0]["details"]["message_id"] == "msg-1"

    @pytest.mark.asyncio
    async def test_send_email_without_google_account(self, db_session, mock_search_index, admin_user):
        agent = AgentInterface(db_session)

        response = await agent.process_query(
            admin_user.id, "send email to coach@sables.co.zw about kit"
        )

        assert response.response == "I can't send email until you connect your Google account."
        assert response.actions[0]["status"] == "failed"

    @pytest.mark.asyncio
    async def test_send_email_needs_recipient(self, agent, admin_user, email_service):
        response = await agent.process_query(admin_user.id, "send email about kit")

        assert response.response.startswith("Who should I send the email to?")
        email_service.send_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_notify_team_skips_sender(self, agent, admin_user, player_user, db_session):
        response = await agent.process_query(
            admin_user.id, "notify the team that training moves to 4pm"
        )

        assert response.response == "I've notified 1 person."
        notification = (await db_session.execute(select(Notification))).scalar_one()
        assert notification.user_id == player_user.id
        assert notification.title == "Message from Team Manager"
        assert notification.message == "training moves to 4pm"

    @pytest.mark.asyncio
    async def test_notify_named_player(self, agent, admin_user, player_user, db_session):
        response = await agent.process_query(
            admin_user.id, "notify Tendai Mupfumira that physio is at 8am"
        )

        assert response.response == "I've notified 1 person."
        notification = (await db_session.execute(select(Notification))).scalar_one()
        assert notification.user_id == player_user.id
