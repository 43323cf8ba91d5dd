"""Agent service: audited query processing and conversation history."""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sables.agent.interface import AgentInterface, AgentResponse
from sables.models.audit_log import AuditAction, AuditLog, ResourceType
from sables.models.conversation import AgentConversation, ConversationStatus

logger = logging.getLogger(__name__)


class ConversationNotFoundError(LookupError):
    """Conversation does not exist or belongs to another user."""


def _message_dict(message) -> dict[str, Any]:
    return {
        "sender": message.sender.value,
        "content": message.content,
        "timestamp": message.timestamp,
        "related_documents": message.related_documents or [],
        "related_events": message.related_events or [],
        "actions": message.actions or [],
    }


class AgentService:
    """Wraps AgentInterface with audit logging and conversation queries."""

    def __init__(self, db: AsyncSession, agent_interface: AgentInterface | None = None):
        self.db = db
        self.agent_interface = agent_interface or AgentInterface(db)

    async def process_query(
        self, user_id: int, query: str, conversation_id: int | None = None
    ) -> AgentResponse:
        await self.log_agent_interaction(user_id, "query", query)
        try:
            response = await self.agent_interface.process_query(user_id, query, conversation_id)
        except Exception as e:
            logger.error(f"Error processing query for user {user_id}: {e}")
            await self.db.rollback()
            await self.log_agent_interaction(user_id, "error", str(e))
            raise

        await self.log_agent_interaction(
            user_id,
            "response",
            response.response,
            {
                "conversation_id": response.conversation_id,
                "intent": response.intent,
                "related_documents": [doc["id"] for doc in response.related_documents],
                "related_events": [event["id"] for event in response.related_events],
                "actions": response.actions,
            },
        )
        return response

    async def _get_owned_conversation(self, user_id: int, conversation_id: int) -> AgentConversation:
        result = await self.db.execute(
            select(AgentConversation)
            .options(selectinload(AgentConversation.messages))
            .where(AgentConversation.id == conversation_id)
        )
        conversation = result.scalar_one_or_none()
        if conversation is None or conversation.user_id != user_id:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    async def get_conversation_history(
        self, user_id: int, conversation_id: int | None = None, limit: int = 20
    ) -> dict[str, Any]:
        """
        Last ``limit`` messages of a conversation.

        Without a conversation ID the user's most recent one is used.

        Raises:
            ConversationNotFoundError: ID unknown or not the user's
        """
        if conversation_id is not None:
            conversation = await self._get_owned_conversation(user_id, conversation_id)
        else:
            result = await self.db.execute(
                select(AgentConversation)
                .options(selectinload(AgentConversation.messages))
                .where(AgentConversation.user_id == user_id)
                .order_by(AgentConversation.started_at.desc(), AgentConversation.id.desc())
                .limit(1)
            )
            conversation = result.scalar_one_or_none()
            if conversation is None:
                return {"conversation_id": None, "messages": []}

        messages = conversation.messages[-limit:] if limit > 0 else []
        return {
            "conversation_id": conversation.id,
            "messages": [_message_dict(message) for message in messages],
        }

    async def get_user_conversations(self, user_id: int, limit: int = 10) -> list[dict[str, Any]]:
        result = await self.db.execute(
            select(AgentConversation)
            .options(selectinload(AgentConversation.messages))
            .where(AgentConversation.user_id == user_id)
            .order_by(AgentConversation.started_at.desc(), AgentConversation.id.desc())
            .limit(limit)
        )
        conversations = []
        for conversation in result.scalars().all():
            last = conversation.messages[-1] if conversation.messages else None
            conversations.append(
                {
                    "id": conversation.id,
                    "started_at": conversation.started_at,
                    "ended_at": conversation.ended_at,
                    "status": conversation.status.value,
                    "intent": conversation.intent,
                    "message_count": len(conversation.messages),
                    "last_message": {
                        "sender": last.sender.value,
                        "content": last.content,
                        "timestamp": last.timestamp,
                    } if last else None,
                }
            )
        return conversations

    async def complete_conversation(self, user_id: int, conversation_id: int) -> dict[str, Any]:
        conversation = await self._get_owned_conversation(user_id, conversation_id)
        conversation.status = ConversationStatus.COMPLETED
        conversation.ended_at = datetime.utcnow()
        await self.db.commit()
        logger.info(f"Completed conversation {conversation_id} for user {user_id}")
        return {"success": True, "conversation_id": conversation_id}

    async def log_agent_interaction(
        self, user_id: int, interaction_type: str, content: str, metadata: dict | None = None
    ) -> None:
        """Audit an agent interaction. Failures are logged, never raised."""
        action = AuditAction.READ if interaction_type == "query" else AuditAction.CREATE
        try:
            self.db.add(
                AuditLog(
                    user_id=user_id,
                    action=action.value,
                    resource_type=ResourceType.SYSTEM.value,
                    resource_id="agent",
                    details={"interaction_type": interaction_type, "content": content, **(metadata or {})},
                )
            )
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Error logging agent interaction: {e}")
