"""Per-user Google API clients (Calendar, Gmail)."""

import logging
from typing import Any

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

from sables.config import get_settings
from sables.models.user import User

settings = get_settings()
logger = logging.getLogger(__name__)


class GoogleNotConnectedError(RuntimeError):
    """The user has not granted Google access."""


def build_user_service(user: User, api: str, version: str) -> Any:
    """Create a Google API service acting as ``user``."""
    if not user.google_access_token:
        raise GoogleNotConnectedError(f"User {user.id} has not connected a Google account")

    credentials = Credentials(
        token=user.google_access_token,
        refresh_token=user.google_refresh_token,
        token_uri="https://oauth2.googleapis.com/token",
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
    )
    return build(api, version, credentials=credentials, cache_discovery=False)
