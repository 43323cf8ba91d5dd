"""Outbound email through the Gmail API."""

import asyncio
import base64
import logging
from email.mime.text import MIMEText

from googleapiclient.errors import HttpError

from sables.models.user import User
from sables.services.google_auth import build_user_service

logger = logging.getLogger(__name__)


def build_raw_message(to: list[str], subject: str, body: str, sender: str | None = None) -> str:
    """RFC 2822 message encoded for the Gmail ``raw`` field."""
    message = MIMEText(body)
    message["to"] = ", ".join(to)
    message["subject"] = subject
    if sender:
        message["from"] = sender
    return base64.urlsafe_b64encode(message.as_bytes()).decode()


class EmailService:
    """Sends mail as the requesting user."""

    async def send_email(self, user: User, to: list[str], subject: str, body: str) -> str:
        """
        Send an email from the user's Gmail account.

        Returns:
            The Gmail message ID
        """
        service = build_user_service(user, "gmail", "v1")
        raw = build_raw_message(to, subject, body, sender=user.email)
        try:
            request = service.users().messages().send(userId="me", body={"raw": raw})
            sent = await asyncio.to_thread(request.execute)
        except HttpError as e:
            logger.error(f"Failed to send email for user {user.id}: {e}")
            raise
        logger.info(f"Sent email {sent.get('id')} to {len(to)} recipients")
        return sent.get("id", "")
