"""Agent API: chat queries and conversation history."""

from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from sables.agent.service import AgentService, ConversationNotFoundError
from sables.api.deps import get_current_user
from sables.models.user import User
from sables.schemas.agent import (
    AgentQueryRequest,
    AgentQueryResponse,
    CompleteConversationResponse,
    ConversationHistory,
    ConversationSummary,
)
from sables.services.database import get_db

router = APIRouter()


def get_agent_service(db: Annotated[AsyncSession, Depends(get_db)]) -> AgentService:
    return AgentService(db)


@router.post("/query", response_model=AgentQueryResponse)
async def query_agent(
    body: AgentQueryRequest,
    user: Annotated[User, Depends(get_current_user)],
    agent: Annotated[AgentService, Depends(get_agent_service)],
) -> AgentQueryResponse:
    """Send a message to the agent."""
    try:
        response = await agent.process_query(user.id, body.query, body.conversation_id)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to process query: {str(e)}",
        )
    return AgentQueryResponse(**asdict(response))


@router.get("/conversations", response_model=list[ConversationSummary])
async def list_conversations(
    user: Annotated[User, Depends(get_current_user)],
    agent: Annotated[AgentService, Depends(get_agent_service)],
    limit: int = Query(10, ge=1, le=100),
) -> list[dict]:
    return await agent.get_user_conversations(user.id, limit)


@router.get("/conversations/history", response_model=ConversationHistory)
async def conversation_history(
    user: Annotated[User, Depends(get_current_user)],
    agent: Annotated[AgentService, Depends(get_agent_service)],
    conversation_id: int | None = None,
    limit: int = Query(20, ge=1, le=200),
) -> dict:
    """Recent messages of a conversation, or of the latest one."""
    try:
        return await agent.get_conversation_history(user.id, conversation_id, limit)
    except ConversationNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")


@router.post("/conversations/{conversation_id}/complete", response_model=CompleteConversationResponse)
async def complete_conversation(
    conversation_id: int,
    user: Annotated[User, Depends(get_current_user)],
    agent: Annotated[AgentService, Depends(get_agent_service)],
) -> dict:
    try:
        return await agent.complete_conversation(user.id, conversation_id)
    except ConversationNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
