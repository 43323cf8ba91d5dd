"""Tests for intent classification, entity extraction and date resolution."""

from datetime import datetime

import pytest

from sables.agent.intents import (
    AgentIntent,
    classify_intent,
    extract_entities,
    resolve_datetime,
    score_intents,
    stem,
)

# Monday 2 March 2026, 18:00
NOW = datetime(2026, 3, 2, 18, 0)


@pytest.fixture(autouse=True)
async def setup_database():
    """Pure functions, no database needed."""
    yield


class TestClassification:
    @pytest.mark.parametrize(
        "query,expected",
        [
            ("find documents about scrum drills", AgentIntent.DOCUMENT_SEARCH),
            ('summarize "Match Report"', AgentIntent.DOCUMENT_SUMMARY),
            ("player info for Tendai Mupfumira", AgentIntent.PLAYER_INFO),
            ("show upcoming events", AgentIntent.EVENT_LIST),
            ("cancel event training on Friday", AgentIntent.EVENT_CANCEL),
            ("send email to coach@sables.co.zw about kit", AgentIntent.EMAIL_SEND),
            ("notify the team that training moves to 4pm", AgentIntent.NOTIFICATION_CREATE),
            ("help", AgentIntent.HELP),
            ("what can you do", AgentIntent.HELP),
            ("xyzzy", AgentIntent.UNKNOWN),
        ],
    )
    def test_classify(self, query, expected):
        assert classify_intent(query) == expected

    def test_tie_goes_to_earlier_intent(self):
        scores = score_intents("schedule training on Friday at 5pm")

        assert scores[AgentIntent.EVENT_CREATE] == scores[AgentIntent.EVENT_LIST]
        assert classify_intent("schedule training on Friday at 5pm") == AgentIntent.EVENT_CREATE

    def test_phrases_match_whole_words_only(self):
        # "getaway" must not count as "get"
        assert score_intents("getaway")[AgentIntent.DOCUMENT_SEARCH] == 0

    def test_single_stem_match_is_unknown(self):
        assert score_intents("the schedules")[AgentIntent.EVENT_LIST] == 1
        assert classify_intent("the schedules") == AgentIntent.UNKNOWN
        assert classify_intent("the calendar") == AgentIntent.UNKNOWN

    def test_stem(self):
        assert stem("drills") == "drill"
        assert stem("training") == "train"
        assert stem("is") == "is"


class TestEntities:
    def test_dates_and_times(self):
        entities = extract_entities(
            "training on 12/08/2026 at 7:30 pm, then Friday at 10am or noon", ["date", "time"]
        )

        assert entities["dates"] == ["12/08/2026", "Friday"]
        assert entities["times"] == ["7:30 pm", "10am", "noon"]

    def test_month_name_date(self):
        entities = extract_entities("match on March 5th, 2026", ["date"])
        assert entities["dates"] == ["March 5th, 2026"]

    def test_players_skip_non_names(self):
        entities = extract_entities("Find Tendai Mupfumira and Brandon Mudzekenyedzi", ["player"])
        assert entities["players"] == ["Tendai Mupfumira", "Brandon Mudzekenyedzi"]

    def test_documents(self):
        entities = extract_entities(
            'compare "Match Report" with the document titled Budget 2026', ["document"]
        )
        assert entities["documents"] == ["Match Report", "Budget 2026"]

    def test_emails(self):
        entities = extract_entities("email coach@sables.co.zw and physio@sables.co.zw", ["email"])
        assert entities["emails"] == ["coach@sables.co.zw", "physio@sables.co.zw"]

    def test_only_requested_types(self):
        assert set(extract_entities("tomorrow at 5pm", ["time"])) == {"times"}


class TestResolveDatetime:
    def test_numeric_dates_are_day_first(self):
        assert resolve_datetime(["12/08/2026"], ["7:30 pm"], NOW) == datetime(2026, 8, 12, 19, 30)

    def test_month_name_and_noon(self):
        assert resolve_datetime(["March 5th, 2026"], ["noon"], NOW) == datetime(2026, 3, 5, 12, 0)

    def test_date_without_time_defaults_to_nine(self):
        assert resolve_datetime(["tomorrow"], [], NOW) == datetime(2026, 3, 3, 9, 0)

    def test_weekdays_are_always_ahead(self):
        assert resolve_datetime(["Friday"], [], NOW) == datetime(2026, 3, 6, 9, 0)
        assert resolve_datetime(["Monday"], [], NOW) == datetime(2026, 3, 9, 9, 0)

    def test_time_only_rolls_to_tomorrow_when_past(self):
        assert resolve_datetime([], ["8pm"], NOW) == datetime(2026, 3, 2, 20, 0)
        assert resolve_datetime([], ["5pm"], NOW) == datetime(2026, 3, 3, 17, 0)

    def test_invalid_date_is_ignored(self):
        assert resolve_datetime(["31/02/2026"], [], NOW) is None
        assert resolve_datetime(["31/02/2026", "tomorrow"], ["12am"], NOW) == datetime(2026, 3, 3, 0, 0)

    def test_nothing_to_resolve(self):
        assert resolve_datetime([], [], NOW) is None
