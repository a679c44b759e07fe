"""In-memory stand-in for the payments provider's subscriptions.

Used during development and tests when Stripe is not configured. Records live
only as long as the process; every method returns a copy so callers never hold
a reference into the store.
"""

from __future__ import annotations

import logging
import secrets
import threading
from datetime import timedelta
from typing import Any, Dict, Optional

from ..core.clock import Clock, SystemClock
from ..domain.errors import InvalidArgument, InvalidState, NotFound
from ..domain.models.pricing import ANNUAL, DEFAULT_PRICE_TABLE, MONTHLY, RETENTION_DISCOUNT_PERCENT, PriceTable
from ..domain.models.subscription import STATUS_ACTIVE, STATUS_PAST_DUE, Subscription

logger = logging.getLogger(__name__)

_TRACKED_FIELDS = (
    "plan",
    "status",
    "cancel_at_period_end",
    "current_price",
    "original_price",
    "discount_percent",
    "has_retention_discount",
    "current_period_end",
)


class MockSubscriptionService:
    """Simulates provider subscription semantics keyed by user ID."""

    def __init__(self, price_table: Optional[PriceTable] = None, clock: Optional[Clock] = None) -> None:
        self._prices = price_table or DEFAULT_PRICE_TABLE
        self._clock = clock or SystemClock()
        self._subscriptions: Dict[str, Subscription] = {}
        self._lock = threading.Lock()

    @property
    def price_table(self) -> PriceTable:
        return self._prices

    def create(self, user_id: str, plan: str) -> Subscription:
        """
        Create a subscription, or return the existing one.

        Calling again with the same plan is a no-op. Calling with a different
        plan switches the stored record to that plan at full price and restarts
        its period from now; discount flags are left as they were.

        Raises:
            InvalidArgument: If the user ID is empty or the plan is unknown
        """
        user_id = self._validate_user_id(user_id)
        plan = self.validate_plan(plan)
        with self._lock:
            return self._create_locked(user_id, plan).copy()

    def get(self, user_id: str) -> Optional[Subscription]:
        """Return the user's subscription, or None when there is none."""
        user_id = self._validate_user_id(user_id)
        with self._lock:
            subscription = self._subscriptions.get(user_id)
            return subscription.copy() if subscription else None

    def cancel(self, user_id: str, accept_retention_offer: bool) -> Subscription:
        """
        Cancel at period end, or keep the user with a retention discount.

        Raises:
            InvalidArgument: If the user ID is empty
            NotFound: If the user has no subscription
        """
        user_id = self._validate_user_id(user_id)
        with self._lock:
            subscription = self._require(user_id)
            if accept_retention_offer:
                if subscription.has_retention_discount:
                    logger.info("Retention discount already applied for user %s", user_id)
                    return subscription.copy()
                before = subscription.copy()
                self._apply_discount(subscription)
                subscription.status = STATUS_ACTIVE
                self._log_transition("retention offer accepted", user_id, before, subscription)
                return subscription.copy()

            if subscription.cancel_at_period_end:
                logger.info("Subscription already scheduled for cancellation for user %s", user_id)
                return subscription.copy()
            before = subscription.copy()
            subscription.cancel_at_period_end = True
            # Still paid up until the period ends.
            subscription.status = STATUS_ACTIVE
            self._log_transition("cancellation scheduled", user_id, before, subscription)
            return subscription.copy()

    def apply_retention_discount(self, user_id: str) -> Subscription:
        """
        Apply the retention discount and drop any pending cancellation.

        Raises:
            InvalidArgument: If the user ID is empty
            NotFound: If the user has no subscription
        """
        user_id = self._validate_user_id(user_id)
        with self._lock:
            subscription = self._require(user_id)
            if subscription.has_retention_discount:
                logger.info("Retention discount already applied for user %s", user_id)
                return subscription.copy()
            before = subscription.copy()
            self._apply_discount(subscription)
            self._log_transition("retention discount applied", user_id, before, subscription)
            return subscription.copy()

    def restore(self, user_id: str) -> Subscription:
        """
        Undo a scheduled cancellation or reactivate a past-due subscription.

        A user without any subscription gets a fresh monthly one.
        """
        user_id = self._validate_user_id(user_id)
        with self._lock:
            subscription = self._subscriptions.get(user_id)
            if subscription is None:
                logger.info("No subscription for user %s, creating default on restore", user_id)
                return self._create_locked(user_id, MONTHLY).copy()

            if subscription.status == STATUS_ACTIVE and not subscription.cancel_at_period_end:
                logger.info("Subscription already active for user %s", user_id)
                return subscription.copy()

            before = subscription.copy()
            subscription.cancel_at_period_end = False
            subscription.status = STATUS_ACTIVE
            self._log_transition("subscription restored", user_id, before, subscription)
            return subscription.copy()

    def upgrade_to_annual(self, user_id: str) -> Subscription:
        """
        Move a monthly subscription to the annual plan.

        The stored record switches plan and price immediately; the new period
        is layered on top of the current one, and the old period end is kept
        as the date the upgrade shows up on the bill.

        Raises:
            InvalidArgument: If the user ID is empty
            NotFound: If the user has no subscription
            InvalidState: If the current plan cannot be upgraded
        """
        user_id = self._validate_user_id(user_id)
        with self._lock:
            subscription = self._require(user_id)
            if subscription.plan == ANNUAL:
                logger.info("Subscription already annual for user %s", user_id)
                return subscription.copy()
            if subscription.plan != MONTHLY:
                raise InvalidState(
                    f"Cannot upgrade from {subscription.plan} plan. "
                    "Only monthly subscriptions can be upgraded."
                )

            before = subscription.copy()
            pricing = self._prices[ANNUAL]
            previous_period_end = subscription.current_period_end
            subscription.plan = ANNUAL
            subscription.original_price = pricing.original
            subscription.current_price = (
                pricing.discounted if subscription.has_retention_discount else pricing.original
            )
            subscription.current_period_end = previous_period_end + timedelta(days=pricing.period_days)
            subscription.upgrade_scheduled = True
            subscription.upgrade_scheduled_date = previous_period_end
            self._log_transition("upgraded to annual", user_id, before, subscription)
            return subscription.copy()

    def mark_past_due(self, user_id: str) -> Subscription:
        """Flag a failed renewal payment, as the provider does on invoice failure."""
        user_id = self._validate_user_id(user_id)
        with self._lock:
            subscription = self._require(user_id)
            if subscription.status == STATUS_PAST_DUE:
                return subscription.copy()
            before = subscription.copy()
            subscription.status = STATUS_PAST_DUE
            self._log_transition("payment failed", user_id, before, subscription)
            return subscription.copy()

    def delete(self, user_id: str) -> bool:
        user_id = self._validate_user_id(user_id)
        with self._lock:
            deleted = self._subscriptions.pop(user_id, None) is not None
        if deleted:
            logger.info("Deleted mock subscription for user %s", user_id)
        return deleted

    def list_all(self) -> Dict[str, Subscription]:
        with self._lock:
            return {user_id: sub.copy() for user_id, sub in self._subscriptions.items()}

    # Internal helpers -------------------------------------------------------
    def _create_locked(self, user_id: str, plan: str) -> Subscription:
        pricing = self._prices[plan]
        existing = self._subscriptions.get(user_id)
        if existing is not None:
            if existing.plan != plan:
                before = existing.copy()
                existing.plan = plan
                existing.original_price = pricing.original
                existing.current_price = pricing.original
                existing.current_period_end = self._clock.now() + timedelta(days=pricing.period_days)
                self._log_transition("plan changed on create", user_id, before, existing)
            else:
                logger.info("Subscription already exists for user %s, returning it", user_id)
            return existing

        now = self._clock.now()
        prefix = user_id[:8]
        subscription = Subscription(
            customer_id=f"cus_mock_{prefix}",
            subscription_id=f"sub_mock_{prefix}_{int(now.timestamp() * 1000)}{secrets.token_hex(2)}",
            plan=plan,
            status=STATUS_ACTIVE,
            current_period_end=now + timedelta(days=pricing.period_days),
            current_price=pricing.original,
            original_price=pricing.original,
        )
        self._subscriptions[user_id] = subscription
        logger.info(
            "Created mock subscription %s for user %s (plan=%s, period_end=%s)",
            subscription.subscription_id,
            user_id,
            plan,
            subscription.current_period_end.isoformat(),
        )
        return subscription

    def _apply_discount(self, subscription: Subscription) -> None:
        pricing = self._prices[subscription.plan]
        subscription.current_price = pricing.discounted
        subscription.original_price = pricing.original
        subscription.discount_percent = RETENTION_DISCOUNT_PERCENT
        subscription.has_retention_discount = True
        subscription.cancel_at_period_end = False

    def _require(self, user_id: str) -> Subscription:
        subscription = self._subscriptions.get(user_id)
        if subscription is None:
            raise NotFound("No subscription found")
        return subscription

    @staticmethod
    def _validate_user_id(user_id: Any) -> str:
        if not isinstance(user_id, str) or not user_id.strip():
            raise InvalidArgument("A non-empty user ID is required")
        return user_id

    def validate_plan(self, plan: Any) -> str:
        """Return the plan unchanged if the price table knows it, else raise InvalidArgument."""
        if plan not in self._prices:
            expected = ", ".join(self._prices.plans())
            raise InvalidArgument(f'Invalid plan "{plan}". Expected one of: {expected}')
        return plan

    @staticmethod
    def _log_transition(action: str, user_id: str, before: Subscription, after: Subscription) -> None:
        changes = {
            field: (getattr(before, field), getattr(after, field))
            for field in _TRACKED_FIELDS
            if getattr(before, field) != getattr(after, field)
        }
        logger.info(
            "Mock subscription %s for user %s: %s",
            action,
            user_id,
            ", ".join(f"{name} {old!s} -> {new!s}" for name, (old, new) in changes.items()) or "no changes",
        )
