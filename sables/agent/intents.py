"""Rule-based intent classification and entity extraction for agent queries."""

import logging
import re
from datetime import date, datetime, time, timedelta
from enum import Enum

logger = logging.getLogger(__name__)


class AgentIntent(str, Enum):
    DOCUMENT_SEARCH = "document_search"
    DOCUMENT_SUMMARY = "document_summary"
    DOCUMENT_DETAILS = "document_details"
    PLAYER_INFO = "player_info"
    EVENT_CREATE = "event_create"
    EVENT_UPDATE = "event_update"
    EVENT_CANCEL = "event_cancel"
    EVENT_LIST = "event_list"
    EMAIL_SEND = "email_send"
    NOTIFICATION_CREATE = "notification_create"
    HELP = "help"
    UNKNOWN = "unknown"


# Order matters: on a tied score the earlier intent wins
INTENT_PATTERNS: dict[AgentIntent, list[str]] = {
    AgentIntent.DOCUMENT_SEARCH: [
        "find", "search", "look for", "get", "retrieve", "documents", "files",
        "about", "related to", "containing", "with", "where",
    ],
    AgentIntent.DOCUMENT_SUMMARY: [
        "summarize", "summary", "brief", "overview", "key points", "main points",
    ],
    AgentIntent.DOCUMENT_DETAILS: [
        "details", "information", "specifics", "tell me about", "describe",
    ],
    AgentIntent.PLAYER_INFO: [
        "player", "team member", "athlete", "rugby player", "position", "jersey",
    ],
    AgentIntent.EVENT_CREATE: [
        "schedule", "create event", "new event", "add to calendar", "appointment",
    ],
    AgentIntent.EVENT_UPDATE: [
        "update event", "change event", "reschedule", "modify event",
    ],
    AgentIntent.EVENT_CANCEL: [
        "cancel event", "delete event", "remove event",
    ],
    AgentIntent.EVENT_LIST: [
        "list events", "show calendar", "upcoming events", "schedule",
    ],
    AgentIntent.EMAIL_SEND: [
        "send email", "email", "message", "send message",
    ],
    AgentIntent.NOTIFICATION_CREATE: [
        "notify", "alert", "reminder", "send notification",
    ],
    AgentIntent.HELP: [
        "help", "assist", "support", "how to", "what can you do", "capabilities",
    ],
}

MIN_INTENT_SCORE = 2

TOKEN_PATTERN = re.compile(r"[a-z0-9']+")
SUFFIXES = ("ing", "ed", "es", "s", "e")

DATE_PATTERNS = [
    re.compile(r"\b\d{1,2}[/-]\d{1,2}[/-]\d{4}\b"),
    re.compile(
        r"\b(?:January|February|March|April|May|June|July|August|September|October|November|December)"
        r"\s+\d{1,2}(?:st|nd|rd|th)?,?\s+\d{4}\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b(?:today|tomorrow|next week|next month)\b", re.IGNORECASE),
    re.compile(r"\b(?:Monday|Tuesday|Wednesday|Thursday|Friday|Saturday|Sunday)\b", re.IGNORECASE),
]
TIME_PATTERNS = [
    re.compile(r"\b\d{1,2}:\d{2}\s*(?:am|pm)\b", re.IGNORECASE),
    re.compile(r"\b(?<!:)\d{1,2}\s*(?:am|pm)\b", re.IGNORECASE),
    re.compile(r"\b\d{1,2}:\d{2}\b(?!\s*(?:am|pm))", re.IGNORECASE),
    re.compile(r"\b(?:noon|midnight)\b", re.IGNORECASE),
]
# Lookahead so "Find Tendai Mupfumira" still yields "Tendai Mupfumira"
PLAYER_NAME_PATTERN = re.compile(r"\b(?=([A-Z][a-z]+ [A-Z][a-z]+)\b)")
QUOTED_PATTERN = re.compile(r'"([^"]+)"')
DOCUMENT_KEYWORD_PATTERN = re.compile(
    r"\b(?:document|file|doc)\s+(?:titled|named|called)\s+\"?([^\"?.!]+)\"?", re.IGNORECASE
)
EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")

# Capitalised pairs that are not people
NON_NAME_WORDS = {
    "find", "search", "show", "tell", "send", "schedule", "create", "cancel",
    "update", "list", "please", "summarize", "notify", "email", "the", "what",
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
    "january", "february", "march", "april", "may", "june", "july", "august",
    "september", "october", "november", "december", "team", "training", "match",
}


def stem(token: str) -> str:
    """Strip one common plural or verb suffix, keeping at least three letters."""
    for suffix in SUFFIXES:
        if token.endswith(suffix) and len(token) - len(suffix) >= 3:
            return token[: -len(suffix)]
    return token


def tokenize(text: str) -> list[str]:
    return TOKEN_PATTERN.findall(text.lower())


def score_intents(query: str) -> dict[AgentIntent, int]:
    """
    Score every intent against a query.

    A pattern found as a whole phrase scores 2. Otherwise each of its
    tokens whose stem appears among the query's stems scores 1.
    """
    query_lower = query.lower()
    query_stems = {stem(token) for token in tokenize(query_lower)}

    scores: dict[AgentIntent, int] = {}
    for intent, patterns in INTENT_PATTERNS.items():
        score = 0
        for pattern in patterns:
            if re.search(rf"\b{re.escape(pattern)}\b", query_lower):
                score += 2
                continue
            score += sum(1 for token in tokenize(pattern) if stem(token) in query_stems)
        scores[intent] = score
    return scores


def classify_intent(query: str) -> AgentIntent:
    """Pick the best-scoring intent, or UNKNOWN below the minimum score."""
    scores = score_intents(query)
    best_intent = AgentIntent.UNKNOWN
    best_score = 0
    for intent, score in scores.items():
        if score > best_score:
            best_intent, best_score = intent, score

    if best_score < MIN_INTENT_SCORE:
        best_intent = AgentIntent.UNKNOWN
    logger.debug(f"Classified query as {best_intent.value} (score {best_score})")
    return best_intent


def _find_all(patterns: list[re.Pattern], text: str) -> list[str]:
    found: list[str] = []
    for pattern in patterns:
        for match in pattern.finditer(text):
            value = match.group(0).strip()
            if value not in found:
                found.append(value)
    return found


def extract_entities(query: str, entity_types: list[str]) -> dict[str, list[str]]:
    """
    Pull entities out of a query.

    Args:
        query: The user's query
        entity_types: Any of "date", "time", "player", "document", "email"

    Returns:
        Dict keyed by plural entity name (dates, times, players, documents,
        emails) for each requested type
    """
    entities: dict[str, list[str]] = {}

    if "date" in entity_types:
        entities["dates"] = _find_all(DATE_PATTERNS, query)

    if "time" in entity_types:
        entities["times"] = _find_all(TIME_PATTERNS, query)

    if "player" in entity_types:
        players: list[str] = []
        for name in PLAYER_NAME_PATTERN.findall(query):
            if name in players or any(word.lower() in NON_NAME_WORDS for word in name.split()):
                continue
            players.append(name)
        entities["players"] = players

    if "document" in entity_types:
        documents = QUOTED_PATTERN.findall(query)
        for name in DOCUMENT_KEYWORD_PATTERN.findall(query):
            name = name.strip()
            if name and name not in documents:
                documents.append(name)
        entities["documents"] = documents

    if "email" in entity_types:
        entities["emails"] = EMAIL_PATTERN.findall(query)

    return entities


# =============================================================================
# Date and time resolution
# =============================================================================

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
RELATIVE_DAYS = {"today": 0, "tomorrow": 1, "next week": 7, "next month": 30}
DEFAULT_EVENT_HOUR = 9


def _resolve_date(value: str, today: date) -> date | None:
    lowered = value.lower()
    if lowered in RELATIVE_DAYS:
        return today + timedelta(days=RELATIVE_DAYS[lowered])
    if lowered in WEEKDAYS:
        days_ahead = (WEEKDAYS.index(lowered) - today.weekday()) % 7 or 7
        return today + timedelta(days=days_ahead)

    numeric = re.fullmatch(r"(\d{1,2})[/-](\d{1,2})[/-](\d{4})", value)
    if numeric:
        day, month, year = (int(part) for part in numeric.groups())
        try:
            return date(year, month, day)
        except ValueError:
            return None

    cleaned = re.sub(r"(\d)(st|nd|rd|th)", r"\1", value).replace(",", "")
    try:
        return datetime.strptime(" ".join(cleaned.split()), "%B %d %Y").date()
    except ValueError:
        return None


def _resolve_time(value: str) -> time | None:
    lowered = value.lower().replace(" ", "")
    if lowered == "noon":
        return time(12, 0)
    if lowered == "midnight":
        return time(0, 0)

    match = re.fullmatch(r"(\d{1,2})(?::(\d{2}))?(am|pm)?", lowered)
    if not match:
        return None
    hour, minute, meridiem = int(match.group(1)), int(match.group(2) or 0), match.group(3)
    if meridiem == "pm" and hour < 12:
        hour += 12
    elif meridiem == "am" and hour == 12:
        hour = 0
    if hour > 23 or minute > 59:
        return None
    return time(hour, minute)


def resolve_datetime(dates: list[str], times: list[str], now: datetime | None = None) -> datetime | None:
    """
    Turn extracted date/time phrases into a datetime.

    Numeric dates are read day first (12/08/2025 is 12 August). A time
    without a date means today, or tomorrow if that time has passed. A
    date without a time defaults to 09:00.
    """
    now = now or datetime.now()
    resolved_date = next(
        (d for d in (_resolve_date(value, now.date()) for value in dates) if d), None
    )
    resolved_time = next((t for t in (_resolve_time(value) for value in times) if t), None)

    if resolved_date is None and resolved_time is None:
        return None
    if resolved_date is None:
        candidate = datetime.combine(now.date(), resolved_time)
        return candidate if candidate > now else candidate + timedelta(days=1)
    return datetime.combine(resolved_date, resolved_time or time(DEFAULT_EVENT_HOUR, 0))
