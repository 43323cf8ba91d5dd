"""Tests for the audited agent service and conversation queries."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select

from sables.agent.service import AgentService, ConversationNotFoundError
from sables.models.audit_log import AuditLog


@pytest.fixture
def agent_service(db_session, mock_search_index):
    return AgentService(db_session)


async def _audit_types(db_session) -> list[str]:
    result = await db_session.execute(select(AuditLog).order_by(AuditLog.id))
    return [log.details["interaction_type"] for log in result.scalars().all()]


class TestProcessQuery:
    @pytest.mark.asyncio
    async def test_query_and_response_are_audited(self, agent_service, admin_user, db_session):
        response = await agent_service.process_query(admin_user.id, "help")

        result = await db_session.execute(select(AuditLog).order_by(AuditLog.id))
        logs = result.scalars().all()
        assert [log.details["interaction_type"] for log in logs] == ["query", "response"]
        assert logs[0].action == "read"
        assert logs[0].details["content"] == "help"
        assert logs[1].details["intent"] == "help"
        assert logs[1].details["conversation_id"] == response.conversation_id
        assert all(log.resource_id == "agent" for log in logs)

    @pytest.mark.asyncio
    async def test_failure_is_audited_and_raised(self, db_session, admin_user):
        user_id = admin_user.id
        interface = MagicMock()
        interface.process_query = AsyncMock(side_effect=RuntimeError("boom"))
        service = AgentService(db_session, agent_interface=interface)

        with pytest.raises(RuntimeError):
            await service.process_query(user_id, "help")

        assert await _audit_types(db_session) == ["query", "error"]


class TestConversations:
    @pytest.mark.asyncio
    async def test_history_without_conversations(self, agent_service, admin_user):
        history = await agent_service.get_conversation_history(admin_user.id)

        assert history == {"conversation_id": None, "messages": []}

    @pytest.mark.asyncio
    async def test_history_of_latest_conversation(self, agent_service, admin_user):
        first = await agent_service.process_query(admin_user.id, "help")
        await agent_service.process_query(admin_user.id, "xyzzy")

        history = await agent_service.get_conversation_history(admin_user.id)

        assert history["conversation_id"] == first.conversation_id
        assert [m["sender"] for m in history["messages"]] == ["user", "agent", "user", "agent"]
        assert history["messages"][2]["content"] == "xyzzy"

    @pytest.mark.asyncio
    async def test_history_limit_keeps_latest(self, agent_service, admin_user):
        response = await agent_service.process_query(admin_user.id, "help")
        await agent_service.process_query(admin_user.id, "xyzzy")

        history = await agent_service.get_conversation_history(
            admin_user.id, response.conversation_id, limit=2
        )

        assert [m["content"] for m in history["messages"]][0] == "xyzzy"
        assert len(history["messages"]) == 2

    @pytest.mark.asyncio
    async def test_history_of_someone_elses_conversation(self, agent_service, admin_user, player_user):
        response = await agent_service.process_query(admin_user.id, "help")

        with pytest.raises(ConversationNotFoundError):
            await agent_service.get_conversation_history(player_user.id, response.conversation_id)

    @pytest.mark.asyncio
    async def test_history_of_unknown_conversation(self, agent_service, admin_user):
        with pytest.raises(ConversationNotFoundError):
            await agent_service.get_conversation_history(admin_user.id, 999)

    @pytest.mark.asyncio
    async def test_user_conversations(self, agent_service, admin_user):
        response = await agent_service.process_query(admin_user.id, "help")

        conversations = await agent_service.get_user_conversations(admin_user.id)

        assert len(conversations) == 1
        assert conversations[0]["id"] == response.conversation_id
        assert conversations[0]["status"] == "active"
        assert conversations[0]["intent"] == "help"
        assert conversations[0]["message_count"] == 2
        assert conversations[0]["last_message"]["sender"] == "agent"

    @pytest.mark.asyncio
    async def test_complete_then_new_conversation(self, agent_service, admin_user):
        first = await agent_service.process_query(admin_user.id, "help")

        result = await agent_service.complete_conversation(admin_user.id, first.conversation_id)
        second = await agent_service.process_query(admin_user.id, "help", first.conversation_id)

        assert result == {"success": True, "conversation_id": first.conversation_id}
        assert second.conversation_id != first.conversation_id
        conversations = await agent_service.get_user_conversations(admin_user.id)
        assert {c["status"] for c in conversations} == {"active", "completed"}

    @pytest.mark.asyncio
    async def test_complete_someone_elses_conversation(self, agent_service, admin_user, player_user):
        response = await agent_service.process_query(admin_user.id, "help")

        with pytest.raises(ConversationNotFoundError):
            await agent_service.complete_conversation(player_user.id, response.conversation_id)
