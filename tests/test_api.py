"""
API tests with the database, mail source and credentials overridden.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_catalog, get_credential_provider_factory, get_mail_source_factory
from app.database import get_db
from app.models import Profile, Subscription
from app.services import db_service
from main import app

USER_ID = "user-1"
HEADERS = {"X-User-Id": USER_ID}


@pytest.fixture
def mailbox(make_email):
    """Emails the fake mail source will return; tests append to it."""
    renews_on = date.today() + timedelta(days=10)
    return [
        make_email(
            "m-netflix",
            "Your Netflix payment receipt",
            "Netflix <billing@netflix.com>",
            f"We received $15.99.\nNext billing date: {renews_on.isoformat()}",
        )
    ]


@pytest.fixture
def token_fails():
    return {"value": False}


@pytest.fixture
def client(session_factory, catalog, mailbox, token_fails, mail_source_cls, credential_provider_cls):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_catalog] = lambda: catalog
    app.dependency_overrides[get_mail_source_factory] = (
        lambda: lambda token: mail_source_cls(mailbox)
    )
    app.dependency_overrides[get_credential_provider_factory] = (
        lambda: lambda db, profile: credential_provider_cls(fail=token_fails["value"])
    )

    yield TestClient(app)

    app.dependency_overrides.clear()


def add_subscription(db, name, status, amount="9.99", cycle="monthly", currency="USD", user_id=USER_ID, renews_on=None):
    subscription = Subscription(
        user_id=user_id,
        name=name,
        amount=Decimal(amount),
        currency=currency,
        billing_cycle=cycle,
        status=status,
        next_billing_date=renews_on,
    )
    db.add(subscription)
    db.commit()
    return subscription


class TestHealthAndAuth:

    def test_health_check(self, client):
        assert client.get("/").json() == {"status": "ok"}

    def test_missing_user_header(self, client):
        response = client.get("/api/v1/subscriptions")
        assert response.status_code == 401

    def test_gmail_status_not_connected(self, client):
        response = client.get("/api/v1/auth/gmail/status", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["connected"] is False

    def test_gmail_status_connected(self, client, connected_profile):
        data = client.get("/api/v1/auth/gmail/status", headers=HEADERS).json()

        assert data["connected"] is True
        assert data["has_refresh_token"] is True
        assert data["token_expiry"] is not None

    def test_disconnect(self, client, db, connected_profile):
        response = client.delete("/api/v1/auth/gmail", headers=HEADERS)

        assert response.json()["success"] is True
        db.expire_all()
        profile = db.get(Profile, USER_ID)
        assert profile.gmail_connected is False
        assert profile.gmail_access_token is None

    def test_callback_without_code(self, client):
        response = client.get("/api/v1/auth/gmail/callback")

        assert response.status_code == 400
        assert response.json()["error"] == "missing_params"


class TestScanEndpoints:

    def test_scan_requires_connection(self, client):
        response = client.post("/api/v1/gmail/scan", headers=HEADERS)

        assert response.status_code == 400
        assert response.json()["detail"] == "Gmail not connected"

    def test_scan_success(self, client, db, connected_profile):
        response = client.post("/api/v1/gmail/scan", headers=HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["emails_scanned"] == 1
        assert data["subscriptions_found"] == 1

        pending = client.get("/api/v1/subscriptions/pending", headers=HEADERS).json()
        assert [sub["name"] for sub in pending] == ["Netflix"]
        assert pending[0]["confidence_score"] == 62
        assert pending[0]["source"] == "gmail"

    def test_scan_in_progress(self, client, db, connected_profile):
        db_service.start_scan_log(db, USER_ID)

        response = client.post("/api/v1/gmail/scan", headers=HEADERS)

        assert response.status_code == 409

    def test_token_refresh_failure(self, client, connected_profile, token_fails):
        token_fails["value"] = True

        response = client.post("/api/v1/gmail/scan", headers=HEADERS)

        assert response.status_code == 400
        assert response.json()["detail"] == "Token refresh failed"

        logs = client.get("/api/v1/gmail/scan-logs", headers=HEADERS).json()
        assert logs[0]["status"] == "failed"
        assert logs[0]["error_message"] == "Token refresh failed"

    def test_scan_logs(self, client, connected_profile):
        client.post("/api/v1/gmail/scan", headers=HEADERS)

        logs = client.get("/api/v1/gmail/scan-logs", headers=HEADERS).json()

        assert len(logs) == 1
        assert logs[0]["status"] == "success"
        assert logs[0]["subscriptions_found"] == 1

    def test_scan_all(self, client, connected_profile):
        response = client.post("/api/v1/gmail/scan-all")

        assert response.status_code == 200
        results = response.json()["results"]
        assert len(results) == 1
        assert results[0]["user_id"] == USER_ID
        assert results[0]["success"] is True
        assert results[0]["subscriptions_found"] == 1

    def test_scan_all_reports_failures(self, client, connected_profile, token_fails):
        token_fails["value"] = True

        results = client.post("/api/v1/gmail/scan-all", json={"user_id": USER_ID}).json()["results"]

        assert results[0]["success"] is False
        assert results[0]["error"]


class TestSubscriptionEndpoints:

    def test_list_is_scoped_to_user(self, client, db):
        add_subscription(db, "Netflix", "active")
        add_subscription(db, "Hulu", "active", user_id="someone-else")

        names = [sub["name"] for sub in client.get("/api/v1/subscriptions", headers=HEADERS).json()]

        assert names == ["Netflix"]

    def test_list_orders_by_renewal_date(self, client, db):
        add_subscription(db, "Undated", "active")
        add_subscription(db, "Later", "active", renews_on=date(2026, 5, 1))
        add_subscription(db, "Sooner", "active", renews_on=date(2026, 4, 1))

        names = [sub["name"] for sub in client.get("/api/v1/subscriptions", headers=HEADERS).json()]

        assert names == ["Sooner", "Later", "Undated"]

    def test_status_filter(self, client, db):
        add_subscription(db, "Netflix", "active")
        add_subscription(db, "Hulu", "cancelled")

        response = client.get("/api/v1/subscriptions?status=cancelled", headers=HEADERS)

        assert [sub["name"] for sub in response.json()] == ["Hulu"]

    def test_invalid_status_filter(self, client):
        response = client.get("/api/v1/subscriptions?status=bogus", headers=HEADERS)
        assert response.status_code == 422

    def test_approve(self, client, db):
        sub = add_subscription(db, "Netflix", "pending_review")

        response = client.post(f"/api/v1/subscriptions/{sub.id}/approve", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["status"] == "active"

    def test_dismiss(self, client, db):
        sub = add_subscription(db, "Netflix", "pending_review")

        response = client.post(f"/api/v1/subscriptions/{sub.id}/dismiss", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["status"] == "dismissed"

    def test_review_requires_pending(self, client, db):
        sub = add_subscription(db, "Netflix", "active")

        response = client.post(f"/api/v1/subscriptions/{sub.id}/approve", headers=HEADERS)

        assert response.status_code == 409

    def test_review_unknown_subscription(self, client):
        response = client.post("/api/v1/subscriptions/999/dismiss", headers=HEADERS)
        assert response.status_code == 404

    def test_get_single(self, client, db):
        sub = add_subscription(db, "Netflix", "active", amount="15.99")

        data = client.get(f"/api/v1/subscriptions/{sub.id}", headers=HEADERS).json()

        assert data["name"] == "Netflix"
        assert data["amount"] == 15.99
        assert data["category"] is None

    def test_get_other_users_subscription(self, client, db):
        sub = add_subscription(db, "Netflix", "active", user_id="someone-else")

        response = client.get(f"/api/v1/subscriptions/{sub.id}", headers=HEADERS)

        assert response.status_code == 404

    def test_summary(self, client, db):
        add_subscription(db, "Netflix", "active", amount="15.99")
        add_subscription(db, "Spotify", "active", amount="120.00", cycle="yearly", currency="EUR")
        add_subscription(db, "Hulu", "pending_review", amount="8.00")
        add_subscription(db, "Max", "cancelled", amount="20.00")

        data = client.get("/api/v1/subscriptions/summary", headers=HEADERS).json()

        assert data["currency_totals"] == {"USD": 15.99, "EUR": 10.0}
        assert data["monthly_total"] == 25.99
        assert data["annual_total"] == 311.88
        assert data["active_count"] == 2
        assert data["pending_count"] == 1


class TestReminderEndpoint:

    def test_send_reminders(self, client, db):
        db.add(Profile(id=USER_ID))
        db.commit()
        add_subscription(db, "Netflix", "active", renews_on=date.today() + timedelta(days=3))

        response = client.post("/api/v1/reminders/send")

        assert response.status_code == 200
        assert response.json() == {"success": True, "users_processed": 1, "reminders_created": 1}
