"""Google Drive v3 client.

Thin async wrapper over the googleapiclient Drive service. The SDK is
blocking, so every ``execute()`` runs on a worker thread.
"""

import asyncio
import io
import logging
from typing import Any

import httplib2
from google.oauth2 import service_account
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from sables.config import Settings, get_settings

logger = logging.getLogger(__name__)

DRIVE_SCOPES = [
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/drive.metadata",
]

DEFAULT_FIELDS = (
    "id, name, mimeType, createdTime, modifiedTime, size, parents, "
    "webViewLink, description, headRevisionId"
)
LIST_FIELDS = f"nextPageToken, files({DEFAULT_FIELDS})"
CHANGE_FIELDS = (
    "nextPageToken, newStartPageToken, "
    f"changes(fileId, removed, time, file({DEFAULT_FIELDS}, trashed))"
)

# Google-native MIME types
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
DOCS_MIME_TYPE = "application/vnd.google-apps.document"
SHEETS_MIME_TYPE = "application/vnd.google-apps.spreadsheet"
SLIDES_MIME_TYPE = "application/vnd.google-apps.presentation"


class DriveClient:
    """Async facade over a Drive v3 service resource.

    ``httplib2.Http`` is not thread-safe, so when credentials are given each
    threaded ``execute()`` gets its own authorized transport.
    """

    def __init__(self, service: Any, credentials: Any = None):
        self.service = service
        self.credentials = credentials

    def _execute_sync(self, request: Any) -> Any:
        if self.credentials is None:
            return request.execute()
        return request.execute(http=AuthorizedHttp(self.credentials, http=httplib2.Http()))

    async def _execute(self, request: Any) -> Any:
        return await asyncio.to_thread(self._execute_sync, request)

    # =========================================================================
    # Files
    # =========================================================================

    async def list_files(self, **options: Any) -> dict:
        """List one page of files.

        Defaults to non-trashed files, 100 per page, with the standard
        fields. Any Drive ``files.list`` parameter in ``options`` overrides
        the defaults.

        Returns:
            The raw response with ``files`` and optional ``nextPageToken``
        """
        params = {
            "pageSize": 100,
            "fields": LIST_FIELDS,
            "q": "trashed = false",
            **options,
        }
        try:
            return await self._execute(self.service.files().list(**params))
        except HttpError as e:
            logger.error(f"Error listing files: {e}")
            raise

    async def list_all_files(self, q: str = "trashed = false", **options: Any) -> list[dict]:
        """List every file matching ``q``, following page tokens."""
        files: list[dict] = []
        page_token = None
        while True:
            params = dict(options, q=q)
            if page_token:
                params["pageToken"] = page_token
            response = await self.list_files(**params)
            files.extend(response.get("files", []))
            page_token = response.get("nextPageToken")
            if not page_token:
                return files

    async def get_file(self, file_id: str, fields: str = DEFAULT_FIELDS) -> dict:
        try:
            return await self._execute(self.service.files().get(fileId=file_id, fields=fields))
        except HttpError as e:
            logger.error(f"Error getting file {file_id}: {e}")
            raise

    async def download_file(self, file_id: str, mime_type: str | None = None) -> bytes:
        """Download file content.

        Google-native files must be exported, so pass the target
        ``mime_type``. Without it the binary content is downloaded as is.
        """
        try:
            if mime_type:
                request = self.service.files().export(fileId=file_id, mimeType=mime_type)
            else:
                request = self.service.files().get_media(fileId=file_id)
            content = await self._execute(request)
        except HttpError as e:
            logger.error(f"Error downloading file {file_id}: {e}")
            raise

        if isinstance(content, str):
            return content.encode("utf-8")
        return content

    async def create_file(
        self,
        metadata: dict,
        content: bytes | None = None,
        mime_type: str | None = None,
    ) -> dict:
        try:
            media = None
            if content is not None:
                media = MediaIoBaseUpload(
                    io.BytesIO(content),
                    mimetype=mime_type or "application/octet-stream",
                    resumable=False,
                )
            request = self.service.files().create(
                body=metadata, media_body=media, fields=DEFAULT_FIELDS
            )
            created = await self._execute(request)
            logger.info(f"Created Drive file {created.get('id')} ({metadata.get('name')})")
            return created
        except HttpError as e:
            logger.error(f"Error creating file {metadata.get('name')}: {e}")
            raise

    async def update_file_metadata(self, file_id: str, metadata: dict) -> dict:
        try:
            return await self._execute(
                self.service.files().update(fileId=file_id, body=metadata, fields=DEFAULT_FIELDS)
            )
        except HttpError as e:
            logger.error(f"Error updating metadata for {file_id}: {e}")
            raise

    async def update_file_content(self, file_id: str, content: bytes, mime_type: str) -> dict:
        try:
            media = MediaIoBaseUpload(io.BytesIO(content), mimetype=mime_type, resumable=False)
            return await self._execute(
                self.service.files().update(fileId=file_id, media_body=media, fields=DEFAULT_FIELDS)
            )
        except HttpError as e:
            logger.error(f"Error updating content for {file_id}: {e}")
            raise

    # =========================================================================
    # Revisions and permissions
    # =========================================================================

    async def list_revisions(self, file_id: str) -> list[dict]:
        try:
            response = await self._execute(
                self.service.revisions().list(
                    fileId=file_id,
                    fields="revisions(id, modifiedTime, lastModifyingUser)",
                )
            )
            return response.get("revisions", [])
        except HttpError as e:
            logger.error(f"Error listing revisions for {file_id}: {e}")
            raise

    async def list_permissions(self, file_id: str) -> list[dict]:
        try:
            response = await self._execute(
                self.service.permissions().list(
                    fileId=file_id,
                    fields="permissions(id, type, role, emailAddress)",
                )
            )
            return response.get("permissions", [])
        except HttpError as e:
            logger.error(f"Error listing permissions for {file_id}: {e}")
            raise

    async def create_permission(self, file_id: str, permission: dict) -> dict:
        try:
            return await self._execute(
                self.service.permissions().create(fileId=file_id, body=permission, fields="id")
            )
        except HttpError as e:
            logger.error(f"Error creating permission on {file_id}: {e}")
            raise

    async def delete_permission(self, file_id: str, permission_id: str) -> None:
        try:
            await self._execute(
                self.service.permissions().delete(fileId=file_id, permissionId=permission_id)
            )
        except HttpError as e:
            logger.error(f"Error deleting permission {permission_id} on {file_id}: {e}")
            raise

    # =========================================================================
    # Push notifications and the change feed
    # =========================================================================

    @staticmethod
    def _channel_body(
        channel_id: str, webhook_url: str, expiration_ms: int | None, token: str | None
    ) -> dict:
        body: dict[str, Any] = {"id": channel_id, "type": "web_hook", "address": webhook_url}
        if expiration_ms:
            body["expiration"] = str(expiration_ms)
        if token:
            body["token"] = token
        return body

    async def watch_file(
        self,
        file_id: str,
        webhook_url: str,
        channel_id: str,
        expiration_ms: int | None = None,
        token: str | None = None,
    ) -> dict:
        """Open a push channel for a single file."""
        try:
            body = self._channel_body(channel_id, webhook_url, expiration_ms, token)
            return await self._execute(self.service.files().watch(fileId=file_id, body=body))
        except HttpError as e:
            logger.error(f"Error watching file {file_id}: {e}")
            raise

    async def watch_changes(
        self,
        page_token: str,
        webhook_url: str,
        channel_id: str,
        expiration_ms: int | None = None,
        token: str | None = None,
    ) -> dict:
        """Open a push channel on the whole change feed."""
        try:
            body = self._channel_body(channel_id, webhook_url, expiration_ms, token)
            return await self._execute(
                self.service.changes().watch(pageToken=page_token, body=body)
            )
        except HttpError as e:
            logger.error(f"Error watching changes: {e}")
            raise

    async def stop_channel(self, channel_id: str, resource_id: str) -> None:
        try:
            await self._execute(
                self.service.channels().stop(body={"id": channel_id, "resourceId": resource_id})
            )
        except HttpError as e:
            logger.error(f"Error stopping channel {channel_id}: {e}")
            raise

    async def list_changes(self, page_token: str, include_removed: bool = True) -> dict:
        """Get one page of the change feed starting at ``page_token``."""
        try:
            return await self._execute(
                self.service.changes().list(
                    pageToken=page_token,
                    includeRemoved=include_removed,
                    fields=CHANGE_FIELDS,
                    pageSize=100,
                )
            )
        except HttpError as e:
            logger.error(f"Error listing changes: {e}")
            raise

    async def get_start_page_token(self) -> str:
        try:
            response = await self._execute(self.service.changes().getStartPageToken())
            return response["startPageToken"]
        except HttpError as e:
            logger.error(f"Error getting start page token: {e}")
            raise


def build_drive_client(settings: Settings | None = None) -> DriveClient:
    """Create a DriveClient from the service-account key file."""
    settings = settings or get_settings()
    credentials = service_account.Credentials.from_service_account_file(
        settings.google_service_account_file,
        scopes=DRIVE_SCOPES,
    )
    if settings.google_delegated_user:
        credentials = credentials.with_subject(settings.google_delegated_user)

    service = build("drive", "v3", credentials=credentials, cache_discovery=False)
    return DriveClient(service, credentials=credentials)


_drive_client: DriveClient | None = None


def get_drive_client() -> DriveClient:
    """Get or create the shared DriveClient."""
    global _drive_client
    if _drive_client is None:
        _drive_client = build_drive_client()
    return _drive_client
