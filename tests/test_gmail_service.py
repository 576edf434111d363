"""
Tests for the Gmail mail source, credential provider and body cleaning.
"""

import base64
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from app.models import Profile
from app.services import credentials as credentials_module
from app.services import db_service
from app.services.credentials import GmailCredentialProvider, TokenRefreshError
from app.services.gmail_service import GmailMailSource, extract_bodies, parse_internal_date
from app.services.text_cleaner import build_body_excerpt, html_to_text


def encode(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


class TestExtractBodies:

    def test_multipart(self):
        payload = {
            "mimeType": "multipart/alternative",
            "parts": [
                {"mimeType": "text/plain", "body": {"data": encode("Total $9.99")}},
                {"mimeType": "text/html", "body": {"data": encode("<p>Total $9.99</p>")}},
                {"mimeType": "image/png", "body": {"attachmentId": "a1"}},
            ],
        }
        assert extract_bodies(payload) == ("Total $9.99", "<p>Total $9.99</p>")

    def test_nested_parts(self):
        payload = {
            "parts": [
                {"parts": [{"mimeType": "text/html", "body": {"data": encode("<b>Hi</b>")}}]},
            ],
        }
        assert extract_bodies(payload) == ("", "<b>Hi</b>")

    def test_single_part(self):
        payload = {"mimeType": "text/plain", "body": {"data": encode("Renews on 2026-04-01")}}
        assert extract_bodies(payload) == ("Renews on 2026-04-01", "")


class TestParseInternalDate:

    def test_epoch_millis(self):
        assert parse_internal_date("1772323200000") == datetime(2026, 3, 1)

    @pytest.mark.parametrize("value", [None, "", "not-a-number"])
    def test_missing_or_invalid(self, value):
        assert parse_internal_date(value) is None


class TestGmailMailSource:

    def test_list_paginates(self):
        service = MagicMock()
        messages = service.users.return_value.messages.return_value
        messages.list.return_value.execute.side_effect = [
            {"messages": [{"id": "m1", "threadId": "t1"}], "nextPageToken": "p2"},
            {"messages": [{"id": "m2", "threadId": "t2"}]},
        ]

        refs = GmailMailSource("token", service=service).list_candidate_messages("subject:receipt", 10)

        assert [(ref.id, ref.thread_id) for ref in refs] == [("m1", "t1"), ("m2", "t2")]
        second_call = messages.list.call_args_list[1]
        assert second_call.kwargs["pageToken"] == "p2"
        assert second_call.kwargs["maxResults"] == 9

    def test_list_stops_at_max_results(self):
        service = MagicMock()
        messages = service.users.return_value.messages.return_value
        messages.list.return_value.execute.return_value = {
            "messages": [{"id": f"m{i}", "threadId": f"t{i}"} for i in range(3)],
            "nextPageToken": "more",
        }

        refs = GmailMailSource("token", service=service).list_candidate_messages("q", 3)

        assert len(refs) == 3
        assert messages.list.call_count == 1

    def test_get_message(self):
        service = MagicMock()
        service.users.return_value.messages.return_value.get.return_value.execute.return_value = {
            "id": "m1",
            "threadId": "t1",
            "internalDate": "1772323200000",
            "payload": {
                "headers": [
                    {"name": "Subject", "value": "Your Netflix receipt"},
                    {"name": "From", "value": "Netflix <billing@netflix.com>"},
                ],
                "mimeType": "text/html",
                "body": {"data": encode("<p>Total</p><p>$15.99</p>")},
            },
        }

        email = GmailMailSource("token", service=service).get_message("m1")

        assert email.subject == "Your Netflix receipt"
        assert email.sender == "Netflix <billing@netflix.com>"
        assert email.body_excerpt == "Total\n$15.99"
        assert email.thread_id == "t1"
        assert email.received_at == datetime(2026, 3, 1)


class TestBodyExcerpt:

    def test_prefers_plain_text(self):
        assert build_body_excerpt("Plain  body", "<p>Html body</p>") == "Plain body"

    def test_falls_back_to_html(self):
        html = "<html><head><style>p {}</style></head><body><p>Amount: $5</p><script>x()</script></body></html>"
        assert build_body_excerpt("", html) == "Amount: $5"

    def test_truncated(self):
        assert len(build_body_excerpt("x" * 5000)) == 2000

    def test_table_cells_separated(self):
        text = html_to_text("<table><tr><td>Next billing date</td></tr><tr><td>March 15, 2026</td></tr></table>")
        assert text == "Next billing date\nMarch 15, 2026"


class FakeCredentials:
    """Stands in for google.oauth2.credentials.Credentials."""
    fail = False

    def __init__(self, token=None, refresh_token=None, **kwargs):
        self.token = token
        self.refresh_token = refresh_token
        self.expiry = None

    def refresh(self, request):
        if self.fail:
            raise credentials_module.RefreshError("invalid_grant")
        self.token = "new-access-token"
        self.expiry = datetime(2030, 1, 1)


@pytest.fixture
def fake_credentials(monkeypatch):
    FakeCredentials.fail = False
    monkeypatch.setattr(credentials_module, "Credentials", FakeCredentials)
    return FakeCredentials


def add_profile(db, expiry, refresh_token="refresh-token"):
    profile = Profile(
        id="user-1",
        gmail_connected=True,
        gmail_access_token="old-access-token",
        gmail_refresh_token=refresh_token,
        gmail_token_expiry=expiry,
    )
    db.add(profile)
    db.commit()
    return profile


class TestGmailCredentialProvider:

    def test_valid_token_reused(self, db, fake_credentials):
        profile = add_profile(db, db_service.utcnow() + timedelta(hours=1))

        assert GmailCredentialProvider(db, profile).get_access_token() == "old-access-token"

    def test_expired_token_refreshed_and_saved(self, db, fake_credentials):
        profile = add_profile(db, db_service.utcnow() - timedelta(minutes=5))

        token = GmailCredentialProvider(db, profile).get_access_token()

        assert token == "new-access-token"
        assert profile.gmail_access_token == "new-access-token"
        assert profile.gmail_refresh_token == "refresh-token"
        assert profile.gmail_token_expiry == datetime(2030, 1, 1)

    def test_token_inside_margin_is_refreshed(self, db, fake_credentials):
        profile = add_profile(db, db_service.utcnow() + timedelta(seconds=30))

        assert GmailCredentialProvider(db, profile).get_access_token() == "new-access-token"

    def test_refresh_failure(self, db, fake_credentials):
        fake_credentials.fail = True
        profile = add_profile(db, db_service.utcnow() - timedelta(minutes=5))

        with pytest.raises(TokenRefreshError):
            GmailCredentialProvider(db, profile).get_access_token()

        assert profile.gmail_access_token == "old-access-token"

    def test_no_refresh_token(self, db, fake_credentials):
        profile = add_profile(db, db_service.utcnow() - timedelta(minutes=5), refresh_token=None)

        with pytest.raises(TokenRefreshError):
            GmailCredentialProvider(db, profile).get_access_token()
