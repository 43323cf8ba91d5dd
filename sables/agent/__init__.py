"""Rule-based document and team-operations agent."""

from sables.agent.intents import AgentIntent, classify_intent, extract_entities
from sables.agent.interface import AgentInterface, AgentResponse
from sables.agent.service import AgentService, ConversationNotFoundError

__all__ = [
    "AgentIntent",
    "classify_intent",
    "extract_entities",
    "AgentInterface",
    "AgentResponse",
    "AgentService",
    "ConversationNotFoundError",
]
