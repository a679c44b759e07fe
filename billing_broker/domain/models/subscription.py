"""Subscription domain model mirrored from the payments provider."""

from __future__ import annotations

import copy
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

STATUS_ACTIVE = "active"
STATUS_PAST_DUE = "past_due"
STATUS_TRIALING = "trialing"

TIER_FREE = "free"
TIER_PREMIUM = "premium"

PREMIUM_STATUSES = frozenset({STATUS_ACTIVE, STATUS_TRIALING, STATUS_PAST_DUE})


class Subscription:
    """
    Subscription record for a single user.

    Attributes:
        customer_id: Provider customer ID, derived from the user ID
        subscription_id: Provider subscription ID, for display and correlation
        plan: Billing cadence (monthly or annual)
        status: Subscription status (active, past_due)
        current_period_end: End of the current paid billing period
        cancel_at_period_end: Whether the subscription will stop renewing
        current_price: Price charged at next renewal, discount applied
        original_price: Undiscounted price of the plan
        discount_percent: Active discount, 0 when none
        has_retention_discount: Whether a retention offer was accepted
        upgrade_scheduled: Whether a monthly to annual upgrade happened
        upgrade_scheduled_date: Period end at which the upgrade is billed
    """

    def __init__(
        self,
        customer_id: str,
        subscription_id: str,
        plan: str,
        status: str,
        current_period_end: datetime,
        current_price: Decimal,
        original_price: Decimal,
        cancel_at_period_end: bool = False,
        discount_percent: int = 0,
        has_retention_discount: bool = False,
        upgrade_scheduled: bool = False,
        upgrade_scheduled_date: Optional[datetime] = None,
    ):
        self.customer_id = customer_id
        self.subscription_id = subscription_id
        self.plan = plan
        self.status = status
        self.current_period_end = current_period_end
        self.current_price = current_price
        self.original_price = original_price
        self.cancel_at_period_end = cancel_at_period_end
        self.discount_percent = discount_percent
        self.has_retention_discount = has_retention_discount
        self.upgrade_scheduled = upgrade_scheduled
        self.upgrade_scheduled_date = upgrade_scheduled_date

    def tier(self) -> str:
        """Entitlement granted by this subscription."""
        return tier_for_status(self.status)

    def copy(self) -> "Subscription":
        return copy.copy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "customerId": self.customer_id,
            "subscriptionId": self.subscription_id,
            "plan": self.plan,
            "status": self.status,
            "currentPeriodEnd": self.current_period_end.isoformat(),
            "cancelAtPeriodEnd": self.cancel_at_period_end,
            "currentPrice": float(self.current_price),
            "originalPrice": float(self.original_price),
            "discountPercent": self.discount_percent,
            "hasRetentionDiscount": self.has_retention_discount,
            "upgradeScheduled": self.upgrade_scheduled,
            "upgradeScheduledDate": (
                self.upgrade_scheduled_date.isoformat() if self.upgrade_scheduled_date else None
            ),
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Subscription):
            return NotImplemented
        return vars(self) == vars(other)

    def __repr__(self) -> str:
        return (
            f"<Subscription id={self.subscription_id} plan={self.plan} "
            f"status={self.status} cancel_at_period_end={self.cancel_at_period_end}>"
        )


def tier_for_status(status: Optional[str]) -> str:
    """Map a provider subscription status to the user-facing tier.

    A subscription flagged to cancel at period end keeps its status until the
    period lapses, so it stays premium until the provider reports it canceled.
    """
    return TIER_PREMIUM if status in PREMIUM_STATUSES else TIER_FREE
