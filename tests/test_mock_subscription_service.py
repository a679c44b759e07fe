"""Tests for the in-memory subscription simulator."""

import threading
from datetime import timedelta
from decimal import Decimal

import pytest

from billing_broker.domain.errors import InvalidArgument, InvalidState, NotFound
from billing_broker.services.mock_subscription_service import MockSubscriptionService


def test_create_initializes_monthly_subscription(store, start):
    sub = store.create("user-12345678-abcd", "monthly")

    assert sub.customer_id == "cus_mock_user-123"
    assert sub.subscription_id.startswith("sub_mock_user-123_")
    assert sub.plan == "monthly"
    assert sub.status == "active"
    assert sub.cancel_at_period_end is False
    assert sub.current_price == Decimal("9.99")
    assert sub.original_price == Decimal("9.99")
    assert sub.discount_percent == 0
    assert sub.has_retention_discount is False
    assert sub.upgrade_scheduled is False
    assert sub.current_period_end == start + timedelta(days=30)


def test_create_annual_uses_year_period(store, start):
    sub = store.create("u1", "annual")

    assert sub.current_price == Decimal("99.99")
    assert sub.current_period_end == start + timedelta(days=365)


def test_create_is_idempotent(store, clock):
    first = store.create("u1", "monthly")
    clock.advance(days=3)
    second = store.create("u1", "monthly")

    assert second.subscription_id == first.subscription_id
    assert second.customer_id == first.customer_id
    assert second.current_period_end == first.current_period_end
    assert list(store.list_all()) == ["u1"]


def test_create_does_not_reset_discount_for_same_plan(store):
    store.create("u1", "monthly")
    store.apply_retention_discount("u1")

    sub = store.create("u1", "monthly")

    assert sub.current_price == Decimal("6.99")
    assert sub.has_retention_discount is True


def test_create_with_other_plan_updates_existing_record(store, clock, start):
    first = store.create("u1", "monthly")
    clock.advance(days=10)

    sub = store.create("u1", "annual")

    assert sub.subscription_id == first.subscription_id
    assert sub.plan == "annual"
    assert sub.original_price == Decimal("99.99")
    assert sub.current_price == Decimal("99.99")
    assert sub.current_period_end == start + timedelta(days=10 + 365)
    assert len(store.list_all()) == 1


def test_plan_change_resets_price_but_keeps_discount_flags(store):
    store.create("u1", "monthly")
    store.apply_retention_discount("u1")

    sub = store.create("u1", "annual")

    assert sub.current_price == Decimal("99.99")
    assert sub.has_retention_discount is True
    assert sub.discount_percent == 30


@pytest.mark.parametrize("plan", [" annual ", "monthly\n", "Monthly"])
def test_create_rejects_padded_or_recased_plan(store, plan):
    with pytest.raises(InvalidArgument):
        store.create("u1", plan)

    assert store.list_all() == {}


@pytest.mark.parametrize("plan", ["weekly", "", None, 12])
def test_create_rejects_unknown_plan(store, plan):
    with pytest.raises(InvalidArgument) as excinfo:
        store.create("u1", plan)

    assert "monthly, annual" in str(excinfo.value)
    assert store.list_all() == {}


@pytest.mark.parametrize("user_id", ["", "   ", None, 42])
def test_operations_reject_invalid_user_id(store, user_id):
    with pytest.raises(InvalidArgument):
        store.create(user_id, "monthly")
    with pytest.raises(InvalidArgument):
        store.get(user_id)
    with pytest.raises(InvalidArgument):
        store.restore(user_id)
    assert store.list_all() == {}


def test_get_returns_none_for_unknown_user(store):
    assert store.get("nobody") is None


def test_returned_records_are_copies(store):
    sub = store.create("u1", "monthly")
    sub.plan = "annual"
    sub.cancel_at_period_end = True

    stored = store.get("u1")
    assert stored.plan == "monthly"
    assert stored.cancel_at_period_end is False

    snapshot = store.list_all()
    snapshot["u1"].status = "past_due"
    snapshot.pop("u1")
    assert store.get("u1").status == "active"


@pytest.mark.parametrize(
    "operation",
    [
        lambda s: s.cancel("ghost", False),
        lambda s: s.cancel("ghost", True),
        lambda s: s.apply_retention_discount("ghost"),
        lambda s: s.upgrade_to_annual("ghost"),
        lambda s: s.mark_past_due("ghost"),
    ],
)
def test_operations_require_existing_subscription(store, operation):
    with pytest.raises(NotFound):
        operation(store)


def test_cancel_without_offer_is_idempotent(store):
    store.create("u1", "monthly")

    first = store.cancel("u1", accept_retention_offer=False)
    second = store.cancel("u1", accept_retention_offer=False)

    assert first.cancel_at_period_end is True
    assert first.status == "active"
    assert second == first


def test_retention_offer_clears_cancellation(store):
    store.create("u1", "monthly")
    store.cancel("u1", accept_retention_offer=False)

    sub = store.cancel("u1", accept_retention_offer=True)

    assert sub.cancel_at_period_end is False
    assert sub.has_retention_discount is True
    assert sub.discount_percent == 30
    assert sub.current_price == Decimal("6.99")
    assert sub.original_price == Decimal("9.99")
    assert sub.status == "active"


def test_retention_offer_reactivates_past_due(store):
    store.create("u1", "monthly")
    store.mark_past_due("u1")

    assert store.cancel("u1", accept_retention_offer=True).status == "active"


def test_retention_offer_is_idempotent_once_applied(store):
    store.create("u1", "monthly")
    store.cancel("u1", accept_retention_offer=True)
    store.cancel("u1", accept_retention_offer=False)

    sub = store.cancel("u1", accept_retention_offer=True)

    # Already discounted, so the pending cancellation stays in place.
    assert sub.cancel_at_period_end is True
    assert sub.current_price == Decimal("6.99")


def test_apply_retention_discount_clears_pending_cancellation(store):
    store.create("u1", "annual")
    store.cancel("u1", accept_retention_offer=False)

    sub = store.apply_retention_discount("u1")

    assert sub.cancel_at_period_end is False
    assert sub.current_price == Decimal("69.99")
    assert sub.original_price == Decimal("99.99")
    assert sub.discount_percent == 30
    assert store.apply_retention_discount("u1") == sub


def test_discount_percent_tracks_retention_flag(store):
    sub = store.create("u1", "monthly")
    assert (sub.discount_percent > 0) == sub.has_retention_discount

    sub = store.apply_retention_discount("u1")
    assert (sub.discount_percent > 0) == sub.has_retention_discount


def test_restore_missing_subscription_creates_default(store):
    sub = store.restore("newcomer")

    assert sub.plan == "monthly"
    assert sub.status == "active"
    assert sub.cancel_at_period_end is False
    assert store.get("newcomer") == sub


def test_restore_active_subscription_is_noop(store):
    created = store.create("u1", "annual")

    assert store.restore("u1") == created


def test_restore_clears_scheduled_cancellation(store):
    store.create("u1", "monthly")
    store.cancel("u1", accept_retention_offer=False)

    sub = store.restore("u1")

    assert sub.cancel_at_period_end is False
    assert sub.status == "active"


def test_restore_reactivates_past_due(store):
    store.create("u1", "monthly")
    assert store.mark_past_due("u1").status == "past_due"

    assert store.restore("u1").status == "active"


def test_upgrade_layers_annual_period_onto_current_one(store):
    created = store.create("u1", "monthly")

    sub = store.upgrade_to_annual("u1")

    assert sub.plan == "annual"
    assert sub.original_price == Decimal("99.99")
    assert sub.current_price == Decimal("99.99")
    assert sub.current_period_end == created.current_period_end + timedelta(days=365)
    assert sub.upgrade_scheduled is True
    assert sub.upgrade_scheduled_date == created.current_period_end


def test_upgrade_keeps_retention_discount(store):
    store.create("u1", "monthly")
    store.apply_retention_discount("u1")

    sub = store.upgrade_to_annual("u1")

    assert sub.plan == "annual"
    assert sub.current_price == Decimal("69.99")
    assert store.upgrade_to_annual("u1") == sub


def test_upgrade_rejects_unknown_plan(store):
    store.create("u1", "monthly")
    # Only reachable by corrupting the record, which the store never does itself.
    store._subscriptions["u1"].plan = "lifetime"

    with pytest.raises(InvalidState):
        store.upgrade_to_annual("u1")
    assert store.get("u1").plan == "lifetime"


def test_delete_reports_whether_record_existed(store):
    store.create("u1", "monthly")

    assert store.delete("u1") is True
    assert store.delete("u1") is False
    assert store.get("u1") is None


def test_instances_are_isolated(clock):
    first = MockSubscriptionService(clock=clock)
    second = MockSubscriptionService(clock=clock)
    first.create("u1", "monthly")

    assert second.get("u1") is None


def test_concurrent_creates_leave_one_record(store):
    barrier = threading.Barrier(8)
    results = []

    def create():
        barrier.wait()
        results.append(store.create("u1", "monthly").subscription_id)

    threads = [threading.Thread(target=create) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(set(results)) == 1
    assert list(store.list_all()) == ["u1"]


def test_end_to_end_lifecycle(store):
    sub = store.create("u1", "monthly")
    assert sub.plan == "monthly"
    assert sub.current_price == Decimal("9.99")
    assert sub.cancel_at_period_end is False

    sub = store.cancel("u1", accept_retention_offer=False)
    assert sub.cancel_at_period_end is True
    assert sub.status == "active"

    sub = store.cancel("u1", accept_retention_offer=True)
    assert sub.has_retention_discount is True
    assert sub.current_price == Decimal("6.99")
    assert sub.cancel_at_period_end is False

    period_end = sub.current_period_end
    sub = store.upgrade_to_annual("u1")
    assert sub.plan == "annual"
    assert sub.current_price == Decimal("69.99")
    assert sub.current_period_end == period_end + timedelta(days=365)
