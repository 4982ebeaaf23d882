"""
API tests through the FastAPI test client.

Tests cover request identity, error mapping and the main flows end to end.
"""

import pytest
from datetime import date, timedelta
from unittest.mock import MagicMock, patch

from tests.factories import PeriodFactory, DemandFactory, SubscriptionFactory, SettingsFactory


@pytest.fixture(autouse=True)
def quiet_notifications():
    """No pushes or alerts leave the test process."""
    notifier = MagicMock()
    with patch("services.period_service.get_notifier", return_value=notifier), \
            patch("services.materialization_service.get_notifier", return_value=notifier), \
            patch("services.fulfillment_service.get_notifier", return_value=notifier), \
            patch("services.materialization_service.send_operator_alert"), \
            patch("services.cycle_service.send_operator_alert"):
        yield notifier


@pytest.fixture
def current_period(fake_db):
    """Open period covering today."""
    period = PeriodFactory.create(available_stock=100, unit_price=5.0, is_ordering_open=True)
    fake_db.set_table_data("weeks", [period])
    fake_db.set_table_data("app_settings", [SettingsFactory.create()])
    return period


def as_actor(actor_id):
    return {"X-User-Id": actor_id}


class TestHealth:
    """Tests for the root and health endpoints."""

    def test_health_reports_counts(self, test_client, current_period):
        response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json()["database"]["weeks_count"] == 1

    def test_root(self, test_client):
        assert test_client.get("/").json()["name"] == "Weekly Allocation API"


class TestPeriodRoutes:
    """Tests for /api/periods."""

    def test_current_period(self, test_client, current_period):
        response = test_client.get("/api/periods/current")

        assert response.status_code == 200
        assert response.json()["id"] == current_period["id"]

    def test_no_current_period(self, test_client):
        response = test_client.get("/api/periods/current")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NO_CURRENT_PERIOD"

    def test_availability(self, test_client, fake_db, current_period):
        fake_db.set_table_data("orders", [
            DemandFactory.create(user_id="a", week_id=current_period["id"], quantity=30),
        ])

        response = test_client.get(
            f"/api/periods/{current_period['id']}/availability",
            headers=as_actor("b")
        )

        assert response.json()["available"] == 70


class TestOrderRoutes:
    """Tests for /api/orders."""

    def test_actor_header_required(self, test_client, current_period):
        response = test_client.post("/api/orders", json={"quantity": 30})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "ACTOR_REQUIRED"

    def test_place_order_defaults_to_current_period(self, test_client, current_period):
        response = test_client.post("/api/orders", json={"quantity": 30}, headers=as_actor("a"))

        assert response.status_code == 201
        assert response.json()["week_id"] == current_period["id"]
        assert response.json()["quantity"] == 30

    def test_invalid_quantity_rejected(self, test_client, current_period):
        response = test_client.post("/api/orders", json={"quantity": 25}, headers=as_actor("a"))

        assert response.status_code == 422

    def test_insufficient_stock_carries_available(self, test_client, current_period):
        test_client.post("/api/orders", json={"quantity": 30}, headers=as_actor("a"))

        response = test_client.post("/api/orders", json={"quantity": 80}, headers=as_actor("b"))

        assert response.status_code == 409
        body = response.json()["error"]
        assert body["code"] == "INSUFFICIENT_STOCK"
        assert body["details"]["available"] == 70
        assert body["retryable"] is False

    def test_modify_and_cancel(self, test_client, fake_db, current_period):
        order_id = test_client.post("/api/orders", json={"quantity": 30}, headers=as_actor("a")).json()["id"]

        modified = test_client.patch(f"/api/orders/{order_id}", json={"quantity": 50}, headers=as_actor("a"))
        assert modified.status_code == 200
        assert modified.json()["quantity"] == 50

        forbidden = test_client.delete(f"/api/orders/{order_id}", headers=as_actor("b"))
        assert forbidden.status_code == 403

        deleted = test_client.delete(f"/api/orders/{order_id}", headers=as_actor("a"))
        assert deleted.status_code == 204
        assert fake_db.rows("orders") == []

    def test_list_and_current(self, test_client, current_period):
        test_client.post("/api/orders", json={"quantity": 30}, headers=as_actor("a"))

        listed = test_client.get("/api/orders", headers=as_actor("a")).json()
        current = test_client.get("/api/orders/current", headers=as_actor("a")).json()

        assert listed["total"] == 1
        assert current["quantity"] == 30


class TestSubscriptionRoutes:
    """Tests for /api/subscriptions."""

    def test_create_and_cancel(self, test_client, fake_db, current_period):
        created = test_client.post(
            "/api/subscriptions",
            json={"quantity": 20, "period_count": 3, "start_now": True},
            headers=as_actor("a")
        )

        assert created.status_code == 201
        assert created.json()["weeks_remaining"] == 2
        assert len(fake_db.rows("orders")) == 1

        cancelled = test_client.delete(f"/api/subscriptions/{created.json()['id']}", headers=as_actor("a"))

        assert cancelled.status_code == 204
        assert fake_db.rows("orders") == []

    def test_capacity_error_carries_remaining(self, test_client, fake_db, current_period):
        fake_db.set_table_data("subscriptions", [SubscriptionFactory.create(quantity=30) for _ in range(3)] + [
            SubscriptionFactory.create(quantity=20),
        ])

        response = test_client.post(
            "/api/subscriptions",
            json={"quantity": 30, "period_count": 2},
            headers=as_actor("a")
        )

        assert response.status_code == 409
        assert response.json()["error"]["details"]["remaining"] == 10

    def test_availability_summary(self, test_client, current_period):
        response = test_client.get("/api/subscriptions/availability")

        assert response.json()["can_subscribe"] is True
        assert response.json()["max_allowed"] == 30


class TestAdminRoutes:
    """Tests for /api/admin."""

    def test_declare_stock_materializes(self, test_client, fake_db):
        period = PeriodFactory.create(available_stock=0)
        fake_db.set_table_data("weeks", [period])
        fake_db.set_table_data("subscriptions", SubscriptionFactory.create_batch([30, 30, 20]))

        response = test_client.put(f"/api/admin/periods/{period['id']}/stock", json={"available_stock": 50})

        assert response.status_code == 200
        body = response.json()
        assert body["period"]["is_ordering_open"] is True
        assert body["subscriptions"]["trims_applied"] == 3

    def test_api_key_enforced_when_configured(self, test_client, current_period):
        with patch("routes.deps.settings") as mock_settings:
            mock_settings.api_key = "secret"

            denied = test_client.get("/api/admin/subscriptions/preview?stock=50")
            allowed = test_client.get(
                "/api/admin/subscriptions/preview?stock=50",
                headers={"X-API-Key": "secret"}
            )

        assert denied.status_code == 401
        assert allowed.status_code == 200

    def test_deliver_then_pickup(self, test_client, fake_db, current_period):
        order_id = test_client.post("/api/orders", json={"quantity": 30}, headers=as_actor("a")).json()["id"]

        delivered = test_client.post(f"/api/admin/periods/{current_period['id']}/deliver")
        paid = test_client.post(f"/api/admin/orders/{order_id}/payment")
        picked = test_client.post(f"/api/orders/{order_id}/pickup", headers=as_actor("a"))

        assert delivered.json()["records_delivered"] == 1
        assert paid.json()["status"] == "delivered"
        assert picked.json()["status"] == "completed"

    def test_declare_stock_on_superseded_period(self, test_client, fake_db, current_period):
        past = PeriodFactory.create(week_start=date.fromisoformat(current_period["week_start"]) - timedelta(days=7))
        fake_db.set_table_data("weeks", [past, current_period])

        response = test_client.put(f"/api/admin/periods/{past['id']}/stock", json={"available_stock": 50})

        assert response.status_code == 409
        assert response.json()["error"]["details"]["reason"] == "not_current"
        assert fake_db.row("weeks", past["id"])["is_ordering_open"] is False

    def test_declare_stock_on_missing_period(self, test_client, fake_db):
        response = test_client.put("/api/admin/periods/missing/stock", json={"available_stock": 50})

        assert response.status_code == 404


class TestCronRoutes:
    """Tests for /api/cron."""

    def test_cron_secret_enforced_when_configured(self, test_client, fake_db):
        with patch("routes.deps.settings") as mock_settings:
            mock_settings.cron_secret = "tick"

            denied = test_client.post("/api/cron/advance-cycle")
            allowed = test_client.post("/api/cron/advance-cycle", headers={"Authorization": "Bearer tick"})

        assert denied.status_code == 401
        assert allowed.status_code == 200
        assert allowed.json()["available_stock"] == 0

    def test_transaction_failure_is_503(self, test_client, fake_db):
        fake_db.fail_on("weeks", "insert")

        response = test_client.post("/api/cron/advance-cycle")

        assert response.status_code == 503
        assert response.json()["error"]["retryable"] is True


class TestSettingsRoutes:
    """Tests for /api/settings."""

    def test_get_and_patch(self, test_client, fake_db):
        fake_db.set_table_data("app_settings", [SettingsFactory.create()])

        assert test_client.get("/api/settings").json()["max_subscription_quantity"] == 120

        response = test_client.patch("/api/settings", json={"max_subscription_quantity": 200})

        assert response.json()["max_subscription_quantity"] == 200
