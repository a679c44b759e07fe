from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Protocol

from ..models import Profile


class ProfileStore(Protocol):
    """External record of each user's tier and chosen plan."""

    def get_profile(self, user_id: str) -> Optional[Profile]:
        ...

    def update_tier(self, user_id: str, tier: str, plan: Optional[str] = None) -> bool:
        ...


class NotificationSender(Protocol):
    """Sends purchase confirmations after a checkout completes."""

    def send_purchase_confirmation(
        self,
        to_email: str,
        plan: str,
        current_period_end: Optional[datetime],
    ) -> bool:
        ...


class BillingGateway(Protocol):
    """Real payments provider used when the simulator is disabled."""

    def is_configured(self) -> bool:
        ...

    def create_checkout_session(
        self, user_id: str, plan: str, email: Optional[str] = None
    ) -> Dict[str, Any]:
        ...

    def create_portal_session(self, customer_id: str, return_url: Optional[str] = None) -> Dict[str, Any]:
        ...

    def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        ...

    def find_subscription_for_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        ...

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        ...
