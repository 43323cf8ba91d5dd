"""Tests for the Drive sync API."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select

from sables.drive.client import get_drive_client
from sables.main import app
from sables.models.drive_sync import ChannelKind, DriveWatchChannel
from sables.sync import webhook as webhook_module
from sables.sync.change_processor import ChangeResult
from sables.sync.polling import PollingService, get_polling_service
from sables.sync.webhook import sign_channel_id


@pytest.fixture
def polling_service(mock_drive_client, session_factory):
    return PollingService(
        drive_client=mock_drive_client,
        scheduler=MagicMock(),
        session_factory=session_factory,
    )


@pytest.fixture
def drive_overrides(client, mock_drive_client, polling_service):
    app.dependency_overrides[get_drive_client] = lambda: mock_drive_client
    app.dependency_overrides[get_polling_service] = lambda: polling_service
    return client


@pytest.fixture
async def file_channel(db_session):
    channel = DriveWatchChannel(
        channel_id="chan1",
        resource_id="opaque-res",
        kind=ChannelKind.FILE,
        file_id="file123",
        token=sign_channel_id("chan1", "s3cret"),
        last_message_number=0,
        active=True,
    )
    db_session.add(channel)
    await db_session.commit()
    return channel


def _headers(channel_id="chan1", state="update", number="1", token=None) -> dict:
    headers = {
        "X-Goog-Channel-ID": channel_id,
        "X-Goog-Resource-ID": "opaque-res",
        "X-Goog-Resource-State": state,
        "X-Goog-Message-Number": number,
    }
    if token is not None:
        headers["X-Goog-Channel-Token"] = token
    return headers


class TestWebhook:
    @pytest.mark.asyncio
    async def test_unknown_channel(self, drive_overrides):
        response = await drive_overrides.post("/api/v1/drive/webhook", headers=_headers("nope"))

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_bad_token(self, drive_overrides, file_channel, monkeypatch):
        monkeypatch.setattr(webhook_module.settings, "webhook_secret_token", "s3cret")

        response = await drive_overrides.post(
            "/api/v1/drive/webhook", headers=_headers(token="forged")
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_non_ascii_token(self, drive_overrides, file_channel, monkeypatch):
        monkeypatch.setattr(webhook_module.settings, "webhook_secret_token", "s3cret")

        response = await drive_overrides.post(
            "/api/v1/drive/webhook", headers=_headers(token=b"forg\xe9d")
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_accepted_notification_is_processed_in_background(
        self, drive_overrides, file_channel, monkeypatch, mock_drive_client, polling_service
    ):
        monkeypatch.setattr(webhook_module.settings, "webhook_secret_token", "s3cret")

        with patch("sables.api.drive.process_notification", new_callable=AsyncMock) as process:
            response = await drive_overrides.post(
                "/api/v1/drive/webhook",
                headers=_headers(token=sign_channel_id("chan1", "s3cret")),
            )

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        process.assert_awaited_once()
        accepted, drive_client, polling = process.await_args.args
        assert accepted.file_id == "file123"
        assert accepted.notification.resource_state == "update"
        assert drive_client is mock_drive_client
        assert polling is polling_service
        assert file_channel.last_message_number == 1

    @pytest.mark.asyncio
    async def test_replayed_notification(self, drive_overrides, file_channel):
        with patch("sables.api.drive.process_notification", new_callable=AsyncMock) as process:
            first = await drive_overrides.post("/api/v1/drive/webhook", headers=_headers(number="4"))
            second = await drive_overrides.post("/api/v1/drive/webhook", headers=_headers(number="4"))

        assert first.json() == {"status": "ok"}
        assert second.json() == {"status": "duplicate"}
        assert process.await_count == 1

    @pytest.mark.asyncio
    async def test_webhook_status(self, drive_overrides, file_channel):
        response = await drive_overrides.get("/api/v1/drive/webhook/status")

        assert response.status_code == 200
        data = response.json()
        assert data["active_channels"] == 1
        assert data["channels"][0]["channel_id"] == "chan1"
        assert data["channels"][0]["kind"] == "file"


class TestChannels:
    @pytest.mark.asyncio
    async def test_requires_admin(self, drive_overrides, player_headers):
        response = await drive_overrides.post(
            "/api/v1/drive/webhook/channels/files",
            json={"file_id": "file123"},
            headers=player_headers,
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_requires_identity(self, drive_overrides):
        response = await drive_overrides.post("/api/v1/drive/webhook/channels/changes")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_watch_file(self, drive_overrides, admin_headers, mock_drive_client, monkeypatch):
        monkeypatch.setattr(webhook_module.settings, "webhook_base_url", "https://hooks.sables.co.zw")
        mock_drive_client.watch_file.return_value = {"resourceId": "res-9", "expiration": "1893456000000"}

        response = await drive_overrides.post(
            "/api/v1/drive/webhook/channels/files",
            json={"file_id": "file123"},
            headers=admin_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["kind"] == "file"
        assert data["file_id"] == "file123"
        assert data["resource_id"] == "res-9"
        assert mock_drive_client.watch_file.await_args.args[1] == (
            "https://hooks.sables.co.zw/api/v1/drive/webhook"
        )

    @pytest.mark.asyncio
    async def test_watch_without_base_url(self, drive_overrides, admin_headers, monkeypatch):
        monkeypatch.setattr(webhook_module.settings, "webhook_base_url", "")

        response = await drive_overrides.post(
            "/api/v1/drive/webhook/channels/changes", headers=admin_headers
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_watch_failure_at_google(self, drive_overrides, admin_headers, mock_drive_client, monkeypatch):
        monkeypatch.setattr(webhook_module.settings, "webhook_base_url", "https://hooks.sables.co.zw")
        mock_drive_client.watch_changes.side_effect = Exception("quota exceeded")

        response = await drive_overrides.post(
            "/api/v1/drive/webhook/channels/changes", headers=admin_headers
        )

        assert response.status_code == 502
        assert "quota exceeded" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_close_channel(self, drive_overrides, admin_headers, file_channel, mock_drive_client, db_session):
        response = await drive_overrides.delete(
            "/api/v1/drive/webhook/channels/chan1", headers=admin_headers
        )

        assert response.status_code == 204
        mock_drive_client.stop_channel.assert_awaited_once_with("chan1", "opaque-res")
        result = await db_session.execute(select(DriveWatchChannel.active))
        assert result.scalar_one() is False

    @pytest.mark.asyncio
    async def test_close_unknown_channel(self, drive_overrides, admin_headers):
        response = await drive_overrides.delete(
            "/api/v1/drive/webhook/channels/nope", headers=admin_headers
        )

        assert response.status_code == 404


class TestPolling:
    @pytest.mark.asyncio
    async def test_sync_status(self, drive_overrides, file_channel):
        with patch("sables.api.drive.get_job_status", return_value=[]):
            response = await drive_overrides.get("/api/v1/drive/sync/status")

        assert response.status_code == 200
        data = response.json()
        assert data["webhook"]["active_channels"] == 1
        assert data["polling"]["is_polling"] is False
        assert data["polling"]["interval_seconds"] == 15 * 60
        assert data["jobs"] == []

    @pytest.mark.asyncio
    async def test_start_and_stop(self, drive_overrides, admin_headers, polling_service):
        polling_service.scheduler.get_job.return_value = MagicMock()

        started = await drive_overrides.post("/api/v1/drive/sync/start", headers=admin_headers)
        stopped = await drive_overrides.post("/api/v1/drive/sync/stop", headers=admin_headers)

        assert started.status_code == 200
        assert started.json()["is_polling"] is True
        assert started.json()["page_token"] == "1"
        polling_service.scheduler.add_job.assert_called_once()
        assert stopped.json()["is_polling"] is False

    @pytest.mark.asyncio
    async def test_start_requires_admin(self, drive_overrides, player_headers):
        response = await drive_overrides.post("/api/v1/drive/sync/start", headers=player_headers)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_interval_is_clamped(self, drive_overrides, admin_headers):
        response = await drive_overrides.put(
            "/api/v1/drive/sync/interval", json={"interval_seconds": 5}, headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["interval_seconds"] == 60

    @pytest.mark.asyncio
    async def test_interval_must_be_positive(self, drive_overrides, admin_headers):
        response = await drive_overrides.put(
            "/api/v1/drive/sync/interval", json={"interval_seconds": 0}, headers=admin_headers
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_poll_now(self, drive_overrides, admin_headers, mock_drive_client):
        mock_drive_client.list_changes.return_value = {"changes": [], "newStartPageToken": "2"}

        response = await drive_overrides.post("/api/v1/drive/sync/poll", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {"changes_seen": 0, "processed": 0, "failed": 0, "page_token": "2"}

    @pytest.mark.asyncio
    async def test_poll_now_feed_error(self, drive_overrides, admin_headers, mock_drive_client):
        mock_drive_client.list_changes.side_effect = Exception("backend error")

        response = await drive_overrides.post("/api/v1/drive/sync/poll", headers=admin_headers)

        assert response.status_code == 502


class TestProcessFile:
    @pytest.mark.asyncio
    async def test_process_file(self, drive_overrides, admin_headers, mock_drive_client):
        processor = MagicMock()
        processor.process_resource_change = AsyncMock(
            return_value=ChangeResult(success=True, action="updated", id="file123")
        )

        with patch("sables.api.drive.make_change_processor", return_value=processor):
            response = await drive_overrides.post(
                "/api/v1/drive/files/file123/process", headers=admin_headers
            )

        assert response.status_code == 200
        assert response.json()["action"] == "updated"
        assert response.json()["success"] is True
        processor.process_resource_change.assert_awaited_once_with("file123")
