"""Domain models for the billing broker."""

from .pricing import DEFAULT_PRICE_TABLE, PlanPricing, PriceTable
from .profile import Profile
from .subscription import Subscription, tier_for_status

__all__ = [
    "DEFAULT_PRICE_TABLE",
    "PlanPricing",
    "PriceTable",
    "Profile",
    "Subscription",
    "tier_for_status",
]
