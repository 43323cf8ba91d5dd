"""Pytest configuration and fixtures."""

from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

import sables.models  # noqa: F401
from sables.drive.client import DriveClient
from sables.indexing.search_index import SearchIndex
from sables.models.user import User, UserRole
from sables.services.database import Base, get_db
from sables.main import app


# Create in-memory SQLite for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get a test database session."""
    async with TestSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory():
    """Session factory for services that open their own sessions."""
    return TestSessionLocal


@pytest.fixture
def override_get_db(db_session: AsyncSession):
    """Override the get_db dependency."""
    async def _override_get_db():
        yield db_session
    return _override_get_db


@pytest.fixture
def mock_search_index():
    """SearchIndex with every Elasticsearch call mocked out."""
    index = MagicMock(spec=SearchIndex)
    index.ensure_index = AsyncMock(return_value=False)
    index.index_document = AsyncMock()
    index.bulk_index = AsyncMock(side_effect=lambda pairs: (len(list(pairs)), []))
    index.delete_document = AsyncMock(return_value=True)
    index.search = AsyncMock(return_value={
        "took": 3,
        "hits": {"total": {"value": 0, "relation": "eq"}, "hits": []},
    })
    index.close = AsyncMock()
    with patch("sables.indexing.service.get_search_index", return_value=index):
        yield index


@pytest.fixture
def mock_drive_client():
    """DriveClient with every Drive API call mocked out."""
    drive = MagicMock(spec=DriveClient)
    drive.get_file = AsyncMock()
    drive.list_files = AsyncMock(return_value={"files": []})
    drive.list_all_files = AsyncMock(return_value=[])
    drive.download_file = AsyncMock(return_value=b"")
    drive.watch_file = AsyncMock()
    drive.watch_changes = AsyncMock()
    drive.stop_channel = AsyncMock()
    drive.list_changes = AsyncMock()
    drive.get_start_page_token = AsyncMock(return_value="1")
    return drive


@pytest.fixture
async def client(override_get_db) -> AsyncGenerator[AsyncClient, None]:
    """Get async test client."""
    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


async def _create_user(db: AsyncSession, **data) -> User:
    user = User(**data)
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await _create_user(
        db_session, email="manager@sables.co.zw", name="Team Manager", role=UserRole.ADMIN
    )


@pytest.fixture
async def player_user(db_session: AsyncSession) -> User:
    return await _create_user(
        db_session,
        email="tendai@sables.co.zw",
        name="Tendai Mupfumira",
        role=UserRole.PLAYER,
        position="Flanker",
        jersey_number=7,
    )


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    return {"X-User-ID": str(admin_user.id)}


@pytest.fixture
def player_headers(player_user: User) -> dict:
    return {"X-User-ID": str(player_user.id)}


@pytest.fixture
def sample_drive_file():
    """A Google Doc as returned by files.get."""
    return {
        "id": "file123",
        "name": "Training Plan Week 3",
        "mimeType": "application/vnd.google-apps.document",
        "createdTime": "2026-03-01T08:00:00.000Z",
        "modifiedTime": "2026-03-02T10:30:00.000Z",
        "size": "2048",
        "parents": ["folder1"],
        "webViewLink": "https://docs.google.com/document/d/file123/edit",
        "headRevisionId": "rev1",
    }
