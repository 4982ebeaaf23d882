"""
Unit tests for MaterializationService and fair_trim.

Tests cover rationing, the one-shot materialize step, preview and rollback.
"""

import pytest
from datetime import date
from unittest.mock import MagicMock, patch

from models.allocation import TrimCandidate
from models.period import PeriodStockDeclaration
from services.materialization_service import fair_trim, get_materialization_service
from services.period_service import get_period_service
from exceptions import TransactionFailure
from tests.factories import PeriodFactory, SubscriptionFactory, DemandFactory


WEEK = date(2026, 3, 2)


def candidates(*quantities):
    return [
        TrimCandidate(subscription_id=f"sub-{i}", user_id=f"user-{i}", quantity=q)
        for i, q in enumerate(quantities)
    ]


@pytest.fixture
def notifier():
    """Capture notifications sent by materialization."""
    mock = MagicMock()
    with patch("services.materialization_service.get_notifier", return_value=mock):
        with patch("services.period_service.get_notifier", return_value=mock):
            yield mock


# ===================
# FAIR TRIM TESTS
# ===================

class TestFairTrim:
    """Tests for the rationing algorithm."""

    def test_no_trim_when_stock_suffices(self):
        outcome = fair_trim(candidates(30, 20), 50)

        assert outcome.quantities == [30, 20]
        assert outcome.reductions == 0
        assert outcome.residual_deficit == 0

    def test_trims_largest_first(self):
        """Scenario: 30, 30, 20 against 50 ends at 20, 20, 10."""
        outcome = fair_trim(candidates(30, 30, 20), 50)

        assert outcome.quantities == [20, 20, 10]
        assert sum(outcome.quantities) == 50
        assert outcome.reductions == 3
        assert outcome.residual_deficit == 0

    def test_ties_at_peak_prefer_smallest_original(self):
        """Among equal current quantities, the smaller request is cut first."""
        outcome = fair_trim(candidates(20, 30), 30)

        # 30 -> 20 first, then the tie at 20 is broken toward the original 20
        assert outcome.quantities == [10, 20]

    def test_equal_requests_trimmed_in_enumeration_order(self):
        outcome = fair_trim(candidates(30, 30), 50)

        assert outcome.quantities == [20, 30]

    def test_never_below_one_bundle(self):
        """When every order is at 10, the residual deficit is reported."""
        outcome = fair_trim(candidates(10, 10, 20), 20)

        assert outcome.quantities == [10, 10, 10]
        assert outcome.residual_deficit == 10

    def test_zero_stock_floors_everyone(self):
        outcome = fair_trim(candidates(30, 50), 0)

        assert outcome.quantities == [10, 10]
        assert outcome.residual_deficit == 20

    def test_empty_candidates(self):
        outcome = fair_trim([], 100)

        assert outcome.quantities == []
        assert outcome.residual_deficit == 0

    def test_sum_fits_whenever_floor_allows(self):
        for quantities, stock in [((50, 40, 30), 70), ((100, 10), 60), ((30, 30, 30, 30), 40)]:
            outcome = fair_trim(candidates(*quantities), stock)
            if stock >= 10 * len(quantities):
                assert sum(outcome.quantities) <= stock
                assert outcome.residual_deficit == 0

    @pytest.mark.parametrize("quantities,stock", [
        ((30, 30, 20), 50),
        ((50, 40, 10, 30), 60),
        ((20, 30, 30, 10), 40),
        ((100, 90, 80), 100),
        ((40, 20, 40, 20), 70),
    ])
    def test_larger_request_never_ends_smaller(self, quantities, stock):
        outcome = fair_trim(candidates(*quantities), stock)

        for i, original_i in enumerate(quantities):
            for j, original_j in enumerate(quantities):
                if original_i < original_j:
                    assert outcome.quantities[i] <= outcome.quantities[j]

    def test_never_increases_a_quantity(self):
        quantities = (50, 40, 10, 30)
        outcome = fair_trim(candidates(*quantities), 60)

        assert all(final <= original for final, original in zip(outcome.quantities, quantities))
        assert all(final % 10 == 0 for final in outcome.quantities)


# ===================
# MATERIALIZE TESTS
# ===================

class TestMaterialize:
    """Tests for materialize."""

    def test_creates_one_order_per_subscription(self, fake_db, notifier):
        period = PeriodFactory.create(week_start=WEEK, available_stock=100, unit_price=5.0)
        subs = SubscriptionFactory.create_batch([30, 20])
        fake_db.set_table_data("weeks", [period])
        fake_db.set_table_data("subscriptions", subs)

        summary = get_materialization_service().materialize(period["id"])

        orders = fake_db.rows("orders")
        assert summary.records_created == 2
        assert summary.trims_applied == 0
        assert summary.total_quantity_committed == 50
        assert sorted(o["quantity"] for o in orders) == [20, 30]
        assert all(o["status"] == "pending" and o["week_id"] == period["id"] for o in orders)
        assert {o["subscription_id"] for o in orders} == {s["id"] for s in subs}
        assert fake_db.row("weeks", period["id"])["subscriptions_processed"] is True

    def test_totals_use_period_price(self, fake_db, notifier):
        period = PeriodFactory.create(week_start=WEEK, available_stock=100, unit_price=6.5)
        fake_db.set_table_data("weeks", [period])
        fake_db.set_table_data("subscriptions", SubscriptionFactory.create_batch([30]))

        get_materialization_service().materialize(period["id"])

        assert fake_db.rows("orders")[0]["total"] == 19.5

    def test_decrements_weeks_remaining(self, fake_db, notifier):
        period = PeriodFactory.create(week_start=WEEK, available_stock=100)
        sub = SubscriptionFactory.create(quantity=20, period=4, weeks_remaining=3)
        fake_db.set_table_data("weeks", [period])
        fake_db.set_table_data("subscriptions", [sub])

        get_materialization_service().materialize(period["id"])

        stored = fake_db.row("subscriptions", sub["id"])
        assert stored["weeks_remaining"] == 2
        assert stored["status"] == "active"
        assert stored["next_delivery"] == "2026-03-09"

    def test_last_period_completes_subscription(self, fake_db, notifier):
        """Scenario: weeks_remaining 1 yields one order, then completed."""
        period = PeriodFactory.create(week_start=WEEK, available_stock=100)
        sub = SubscriptionFactory.create(quantity=20, period=2, weeks_remaining=1)
        fake_db.set_table_data("weeks", [period])
        fake_db.set_table_data("subscriptions", [sub])

        summary = get_materialization_service().materialize(period["id"])

        stored = fake_db.row("subscriptions", sub["id"])
        assert summary.records_created == 1
        assert stored["weeks_remaining"] == 0
        assert stored["status"] == "completed"

    def test_ignores_inactive_and_exhausted_subscriptions(self, fake_db, notifier):
        period = PeriodFactory.create(week_start=WEEK, available_stock=100)
        fake_db.set_table_data("weeks", [period])
        fake_db.set_table_data("subscriptions", [
            SubscriptionFactory.create(status="cancelled"),
            SubscriptionFactory.create(status="completed", weeks_remaining=0),
            SubscriptionFactory.create(weeks_remaining=0),
        ])

        summary = get_materialization_service().materialize(period["id"])

        assert summary.records_created == 0
        assert fake_db.rows("orders") == []

    def test_trims_and_notifies(self, fake_db, notifier, operator_alerts):
        """Scenario: 30, 30, 20 against stock 50."""
        period = PeriodFactory.create(week_start=WEEK, available_stock=50)
        subs = SubscriptionFactory.create_batch([30, 30, 20])
        fake_db.set_table_data("weeks", [period])
        fake_db.set_table_data("subscriptions", subs)

        summary = get_materialization_service().materialize(period["id"])

        by_sub = {o["subscription_id"]: o["quantity"] for o in fake_db.rows("orders")}
        assert [by_sub[s["id"]] for s in subs] == [20, 20, 10]
        assert summary.trims_applied == 3
        assert summary.total_quantity_committed == 50
        assert notifier.notify_trimmed.call_count == 3
        notifier.notify_trimmed.assert_any_call(subs[2]["user_id"], 20, 10)
        operator_alerts["materialization"].assert_not_called()

    def test_trim_does_not_change_subscription_quantity(self, fake_db, notifier):
        """A trim applies to one period only."""
        period = PeriodFactory.create(week_start=WEEK, available_stock=10)
        sub = SubscriptionFactory.create(quantity=30)
        fake_db.set_table_data("weeks", [period])
        fake_db.set_table_data("subscriptions", [sub])

        get_materialization_service().materialize(period["id"])

        assert fake_db.rows("orders")[0]["quantity"] == 10
        assert fake_db.row("subscriptions", sub["id"])["quantity"] == 30

    def test_residual_deficit_alerts_operator(self, fake_db, notifier, operator_alerts):
        period = PeriodFactory.create(week_start=WEEK, available_stock=10)
        fake_db.set_table_data("weeks", [period])
        fake_db.set_table_data("subscriptions", SubscriptionFactory.create_batch([10, 10]))

        summary = get_materialization_service().materialize(period["id"])

        assert summary.residual_deficit == 10
        operator_alerts["materialization"].assert_called_once()
        assert operator_alerts["materialization"].call_args.args[0] == "residual_deficit"

    def test_second_call_is_noop(self, fake_db, notifier):
        period = PeriodFactory.create(week_start=WEEK, available_stock=100)
        sub = SubscriptionFactory.create(quantity=20, weeks_remaining=3)
        fake_db.set_table_data("weeks", [period])
        fake_db.set_table_data("subscriptions", [sub])

        service = get_materialization_service()
        service.materialize(period["id"])
        second = service.materialize(period["id"])

        assert second.already_processed is True
        assert second.records_created == 0
        assert len(fake_db.rows("orders")) == 1
        assert fake_db.row("subscriptions", sub["id"])["weeks_remaining"] == 2

    def test_skips_subscription_already_ordered_this_period(self, fake_db, notifier):
        """A subscription started mid-period already has its order."""
        period = PeriodFactory.create(week_start=WEEK, available_stock=100)
        started = SubscriptionFactory.create(quantity=20, weeks_remaining=3)
        other = SubscriptionFactory.create(quantity=30, weeks_remaining=3)
        fake_db.set_table_data("weeks", [period])
        fake_db.set_table_data("subscriptions", [started, other])
        fake_db.set_table_data("orders", [
            DemandFactory.create(
                user_id=started["user_id"],
                week_id=period["id"],
                quantity=20,
                subscription_id=started["id"],
            ),
        ])

        summary = get_materialization_service().materialize(period["id"])

        assert summary.records_created == 1
        assert fake_db.row("subscriptions", started["id"])["weeks_remaining"] == 3
        assert fake_db.row("subscriptions", other["id"])["weeks_remaining"] == 2

    def test_failure_rolls_everything_back(self, fake_db, notifier):
        period = PeriodFactory.create(week_start=WEEK, available_stock=100)
        subs = SubscriptionFactory.create_batch([30, 20], weeks_remaining=3)
        fake_db.set_table_data("weeks", [period])
        fake_db.set_table_data("subscriptions", subs)
        fake_db.fail_on("subscriptions", "update", after=1)

        with pytest.raises(TransactionFailure):
            get_materialization_service().materialize(period["id"])

        assert fake_db.rows("orders") == []
        assert fake_db.row("weeks", period["id"])["subscriptions_processed"] is False
        assert [fake_db.row("subscriptions", s["id"])["weeks_remaining"] for s in subs] == [3, 3]
        notifier.notify_trimmed.assert_not_called()

    def test_retry_after_failure_succeeds(self, fake_db, notifier):
        period = PeriodFactory.create(week_start=WEEK, available_stock=100)
        fake_db.set_table_data("weeks", [period])
        fake_db.set_table_data("subscriptions", SubscriptionFactory.create_batch([30, 20]))
        fake_db.fail_on("orders", "insert")

        service = get_materialization_service()
        with pytest.raises(TransactionFailure):
            service.materialize(period["id"])

        summary = service.materialize(period["id"])

        assert summary.records_created == 2


# ===================
# DECLARE STOCK INTEGRATION
# ===================

class TestDeclareStockMaterializes:
    """Materialization runs once, on the first positive declaration."""

    def test_redeclaring_does_not_rematerialize(self, fake_db, notifier):
        """Scenario: declare 50, then 100; no second set of orders."""
        period = PeriodFactory.create(week_start=WEEK, available_stock=0)
        fake_db.set_table_data("weeks", [period])
        fake_db.set_table_data("subscriptions", SubscriptionFactory.create_batch([30, 30, 20]))

        service = get_period_service()
        first = service.declare_stock(period["id"], PeriodStockDeclaration(available_stock=50))
        second = service.declare_stock(period["id"], PeriodStockDeclaration(available_stock=100))

        orders = fake_db.rows("orders")
        assert first.subscriptions.records_created == 3
        assert second.subscriptions is None
        assert len(orders) == 3
        assert sum(o["quantity"] for o in orders) == 50
        assert second.period.available_stock == 100

    def test_zero_stock_does_not_materialize(self, fake_db, notifier):
        period = PeriodFactory.create(week_start=WEEK, available_stock=0)
        fake_db.set_table_data("weeks", [period])
        fake_db.set_table_data("subscriptions", SubscriptionFactory.create_batch([30]))

        response = get_period_service().declare_stock(period["id"], PeriodStockDeclaration(available_stock=0))

        assert response.subscriptions is None
        assert response.period.subscriptions_processed is False
        assert fake_db.rows("orders") == []


# ===================
# PREVIEW TESTS
# ===================

class TestPreview:
    """Tests for preview."""

    def test_preview_matches_materialization(self, fake_db):
        fake_db.set_table_data("subscriptions", SubscriptionFactory.create_batch([30, 30, 20]))

        preview = get_materialization_service().preview(50)

        assert preview.subscriber_count == 3
        assert preview.total_demand == 80
        assert preview.will_trim is True
        assert preview.deficit == 30
        assert preview.residual_deficit == 0
        assert preview.remaining_for_one_time_orders == 0
        assert [s.trimmed_quantity for s in preview.subscriptions] == [20, 20, 10]

    def test_preview_leftover_for_one_time_orders(self, fake_db):
        fake_db.set_table_data("subscriptions", SubscriptionFactory.create_batch([30, 20]))

        preview = get_materialization_service().preview(120)

        assert preview.will_trim is False
        assert preview.remaining_for_one_time_orders == 70

    def test_preview_writes_nothing(self, fake_db):
        subs = SubscriptionFactory.create_batch([30, 30])
        fake_db.set_table_data("subscriptions", subs)

        get_materialization_service().preview(10)

        assert fake_db.rows("orders") == []
        assert fake_db.rows("subscriptions") == subs
