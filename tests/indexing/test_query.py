"""Tests for category inference and search query building."""

from datetime import datetime

import pytest

from sables.indexing.service import (
    SearchParams,
    build_access_filter,
    build_search_query,
    determine_category,
    determine_document_type,
    get_file_extension,
    parse_drive_time,
)
from sables.models.document import DocumentCategory, DocumentType
from sables.models.user import User, UserRole


@pytest.fixture(autouse=True)
async def setup_database():
    """Pure functions, no database needed."""
    yield


class TestCategory:
    @pytest.mark.parametrize(
        "folder_path,name,expected",
        [
            ("Sables/Contracts", "Anything", DocumentCategory.CONTRACTS),
            ("Sables/Medical Records", "Notes", DocumentCategory.MEDICAL),
            ("", "Injury report", DocumentCategory.MEDICAL),
            ("", "Scrum drill card", DocumentCategory.TRAINING),
            ("", "Zimbabwe vs Namibia", DocumentCategory.MATCHES),
            ("", "Canvas order", DocumentCategory.GENERAL),
            ("Sables/Misc", "Player roster 2026", DocumentCategory.PLAYERS),
        ],
    )
    def test_inference(self, folder_path, name, expected):
        assert determine_category({"folder_path": folder_path, "name": name}) == expected

    def test_folder_wins_over_name(self):
        document = {"folder_path": "Admin", "name": "Training schedule"}
        assert determine_category(document) == DocumentCategory.ADMINISTRATION

    def test_explicit_category(self):
        assert determine_category({"category": "medical", "name": "Match"}) == DocumentCategory.MEDICAL


class TestDocumentType:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("Fitness stats", DocumentType.PERFORMANCE),
            ("Player contract", DocumentType.CONTRACT),
            ("Board minutes", DocumentType.ADMINISTRATIVE),
            ("Sables vs Kenya", DocumentType.MATCH),
            ("Holiday list", DocumentType.OTHER),
        ],
    )
    def test_inference(self, name, expected):
        assert determine_document_type({"name": name}) == expected


class TestHelpers:
    def test_file_extension(self):
        assert get_file_extension("Budget.XLSX") == "xlsx"
        assert get_file_extension("Training Plan") == ""
        assert get_file_extension(None) == ""

    def test_parse_drive_time_normalizes_to_naive_utc(self):
        assert parse_drive_time("2026-03-02T10:30:00.000Z") == datetime(2026, 3, 2, 10, 30)
        assert parse_drive_time("2026-03-02T12:30:00+02:00") == datetime(2026, 3, 2, 10, 30)
        assert parse_drive_time(None) is None


class TestAccessFilter:
    def test_admin_sees_everything(self):
        assert build_access_filter(User(id=1, role=UserRole.ADMIN)) is None

    def test_anonymous_sees_public(self):
        assert build_access_filter(None) == {"term": {"access_level": "public"}}

    def test_member_sees_public_team_and_own_specific(self):
        access = build_access_filter(User(id=12, role=UserRole.PLAYER))

        should = access["bool"]["should"]
        assert {"term": {"access_level": "team"}} in should
        specific = should[2]["bool"]["filter"]
        assert {"term": {"allowed_users": "12"}} in specific

    def test_member_sees_own_documents(self):
        access = build_access_filter(User(id=12, role=UserRole.PLAYER))

        assert {"term": {"created_by": "12"}} in access["bool"]["should"]


class TestSearchQuery:
    def test_match_all_without_text(self):
        query = build_search_query(SearchParams(), User(id=1, role=UserRole.ADMIN))
        assert query == {"bool": {"must": {"match_all": {}}, "filter": []}}

    def test_filters(self):
        params = SearchParams(
            search_text="lineout",
            mime_type="application/vnd.google-apps.document",
            tags=["lineout"],
            player_references=["Tendai Mupfumira"],
            date_start=datetime(2026, 1, 1),
        )

        query = build_search_query(params, None)

        assert query["bool"]["must"]["multi_match"]["query"] == "lineout"
        assert query["bool"]["must"]["multi_match"]["fields"][0] == "name^3"
        filters = query["bool"]["filter"]
        assert {"terms": {"tags": ["lineout"]}} in filters
        assert {"terms": {"player_references": ["Tendai Mupfumira"]}} in filters
        assert {"range": {"modified_time": {"gte": "2026-01-01T00:00:00"}}} in filters
        assert filters[-1] == {"term": {"access_level": "public"}}
