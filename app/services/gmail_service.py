"""
Gmail mail source.

Wraps the Gmail REST API (google-api-python-client) behind the small
MailSource interface the scan pipeline depends on:

- list_candidate_messages(query, max_results) -> [MessageRef], newest first
- get_message(message_id) -> RawEmail

Gmail's messages.list returns messages in reverse chronological order; the
pipeline still re-checks the order against internalDate before resolution.
"""

import base64
import logging
from datetime import datetime, timezone
from typing import List, Optional, Protocol

import httplib2
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build

from app import config
from app.services.detection_models import MessageRef, RawEmail
from app.services.text_cleaner import build_body_excerpt

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
]

# Gmail caps messages.list pages at 500
_MAX_PAGE_SIZE = 500


class MailSource(Protocol):
    """What the scan pipeline needs from a mailbox."""

    def list_candidate_messages(self, query: str, max_results: int) -> List[MessageRef]:
        """Message ids matching `query`, newest first."""
        ...

    def get_message(self, message_id: str) -> RawEmail:
        ...


def parse_internal_date(internal_date: Optional[str]) -> Optional[datetime]:
    """Gmail internalDate (epoch milliseconds, as a string) -> naive UTC datetime."""
    if not internal_date:
        return None
    try:
        millis = int(internal_date)
    except (TypeError, ValueError):
        return None
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).replace(tzinfo=None)


def _decode(data: str) -> str:
    """Decode a base64url body part."""
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4)).decode("utf-8", errors="ignore")


def extract_bodies(payload: dict) -> tuple[str, str]:
    """
    Collect text/plain and text/html content from a message payload.

    Handles multipart and simple messages.

    Returns:
        (plain_text, html)
    """
    plain_parts: List[str] = []
    html_parts: List[str] = []

    def walk(part: dict):
        """Recursively extract body from message parts."""
        if "parts" in part:
            for child in part["parts"]:
                walk(child)
            return

        data = part.get("body", {}).get("data", "")
        if not data:
            return

        mime_type = part.get("mimeType", "")
        if mime_type == "text/plain":
            plain_parts.append(_decode(data))
        elif mime_type == "text/html":
            html_parts.append(_decode(data))

    walk(payload)
    return "".join(plain_parts), "".join(html_parts)


class GmailMailSource:
    """MailSource backed by the Gmail API for one access token."""

    def __init__(self, access_token: str, timeout: Optional[float] = None, service=None):
        if service is None:
            credentials = Credentials(token=access_token)
            http = AuthorizedHttp(
                credentials,
                http=httplib2.Http(timeout=timeout or config.GMAIL_HTTP_TIMEOUT),
            )
            service = build("gmail", "v1", http=http, cache_discovery=False)
        self.service = service

    def list_candidate_messages(self, query: str, max_results: int) -> List[MessageRef]:
        """
        List message ids for a search query.

        Args:
            query: Gmail search query
            max_results: Upper bound on ids returned

        Returns:
            MessageRef list in Gmail's order (newest first)
        """
        refs: List[MessageRef] = []
        page_token = None

        while len(refs) < max_results:
            response = self.service.users().messages().list(
                userId="me",
                q=query,
                maxResults=min(_MAX_PAGE_SIZE, max_results - len(refs)),
                pageToken=page_token,
            ).execute()

            for message in response.get("messages", []):
                refs.append(MessageRef(id=message["id"], thread_id=message["threadId"]))

            page_token = response.get("nextPageToken")
            if not page_token:
                break

        logger.info(f"Gmail query returned {len(refs)} candidate messages")
        return refs[:max_results]

    def get_message(self, message_id: str) -> RawEmail:
        """
        Fetch one message as subject / sender / body excerpt.

        Args:
            message_id: Gmail message ID

        Returns:
            RawEmail with at most 2000 characters of plain-text body
        """
        msg = self.service.users().messages().get(
            userId="me",
            id=message_id,
            format="full",
        ).execute()

        payload = msg.get("payload", {})

        # Extract headers
        subject = sender = None
        for header in payload.get("headers", []):
            if header["name"] == "Subject":
                subject = header["value"]
            if header["name"] == "From":
                sender = header["value"]

        plain_text, html = extract_bodies(payload)

        return RawEmail(
            subject=subject or "",
            sender=sender or "",
            body_excerpt=build_body_excerpt(plain_text, html),
            thread_id=msg.get("threadId", ""),
            message_id=msg.get("id", message_id),
            received_at=parse_internal_date(msg.get("internalDate")),
        )
