"""Subscription billing orchestration across the provider, profiles and email."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..domain.errors import InvalidArgument, InvalidState, NotFound
from ..domain.models.subscription import TIER_FREE, TIER_PREMIUM, Subscription, tier_for_status
from ..domain.ports.billing import BillingGateway, NotificationSender, ProfileStore
from .mock_subscription_service import MockSubscriptionService

logger = logging.getLogger(__name__)


class BillingService:
    """Routes billing requests to the simulator or Stripe and mirrors the tier."""

    def __init__(
        self,
        mock_subscriptions: MockSubscriptionService,
        gateway: BillingGateway,
        profile_store: ProfileStore,
        notifier: NotificationSender,
        frontend_url: str,
        use_mock: bool,
    ) -> None:
        self.mock_subscriptions = mock_subscriptions
        self.gateway = gateway
        self.profile_store = profile_store
        self.notifier = notifier
        self.frontend_url = frontend_url.rstrip("/")
        self.use_mock = use_mock

    # Checkout ---------------------------------------------------------------
    def create_checkout_session(
        self, user_id: str, plan: str, email: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Start a checkout for the given plan.

        With the simulator enabled the subscription is created immediately and
        the returned URL points straight at the success page.

        Raises:
            InvalidArgument: If the user ID or plan is invalid
            GatewayError: If Stripe rejects the request
        """
        user_id = _require_user_id(user_id)
        plan = self.mock_subscriptions.validate_plan(plan)
        if not self.use_mock:
            return self.gateway.create_checkout_session(user_id, plan, email=email)

        subscription = self.create_mock_subscription(user_id, plan, email=email)
        session_id = f"cs_mock_{secrets.token_hex(8)}"
        return {
            "sessionId": session_id,
            "url": f"{self.frontend_url}?session_id={session_id}&plan={subscription.plan}",
            "mock": True,
        }

    def create_portal_session(self, user_id: str, return_url: Optional[str] = None) -> Dict[str, Any]:
        user_id = _require_user_id(user_id)
        if self.use_mock:
            if self.mock_subscriptions.get(user_id) is None:
                raise NotFound("No subscription found")
            return {"url": return_url or self.frontend_url, "mock": True}

        subscription = self.gateway.find_subscription_for_user(user_id)
        if not subscription or not subscription.get("customer"):
            raise NotFound("No subscription found")
        return self.gateway.create_portal_session(subscription["customer"], return_url=return_url)

    def update_tier_from_session(self, session_id: str) -> Dict[str, Any]:
        """
        Grant premium straight from a completed checkout session.

        Lets the frontend confirm a purchase without waiting for the webhook.

        Raises:
            InvalidArgument: If the session ID is missing or carries no user ID
            InvalidState: If the session is unpaid or the simulator is enabled
        """
        if not isinstance(session_id, str) or not session_id.strip():
            raise InvalidArgument("A checkout session ID is required")
        if self.use_mock:
            raise InvalidState("Checkout sessions are not used while mock subscriptions are enabled")

        session = self.gateway.retrieve_checkout_session(session_id)
        if session.get("payment_status") != "paid":
            raise InvalidState(f"Checkout session {session_id} has not been paid")
        metadata = session.get("metadata") or {}
        user_id = metadata.get("userId")
        if not user_id:
            raise InvalidArgument("Missing userId in checkout session metadata")

        updated = self._sync_tier(user_id, TIER_PREMIUM, plan=metadata.get("plan"))
        return {"success": updated, "userId": user_id, "tier": TIER_PREMIUM}

    # Subscription lookup and lifecycle --------------------------------------
    def get_subscription(self, user_id: str) -> Optional[Dict[str, Any]]:
        user_id = _require_user_id(user_id)
        if self.use_mock:
            subscription = self.mock_subscriptions.get(user_id)
            return subscription.to_dict() if subscription else None

        provider_subscription = self.gateway.find_subscription_for_user(user_id)
        if provider_subscription is None:
            return None
        return _provider_subscription_to_dict(provider_subscription)

    def has_premium_tier(self, user_id: str) -> bool:
        """Whether the profile store still grants premium, for mismatch reporting."""
        try:
            profile = self.profile_store.get_profile(user_id)
        except Exception:
            logger.exception("Failed to read profile for user %s", user_id)
            return False
        return profile is not None and profile.tier == TIER_PREMIUM

    def create_mock_subscription(
        self, user_id: str, plan: str, email: Optional[str] = None
    ) -> Subscription:
        self._require_mock()
        existing = self.mock_subscriptions.get(user_id)
        subscription = self.mock_subscriptions.create(user_id, plan)
        self._sync_tier(user_id, subscription.tier(), plan=subscription.plan)
        if existing is None:
            self._send_confirmation(user_id, subscription, email)
        return subscription

    def cancel_subscription(self, user_id: str, accept_offer: bool) -> Subscription:
        self._require_mock()
        subscription = self.mock_subscriptions.cancel(user_id, accept_offer)
        self._sync_tier(user_id, subscription.tier(), plan=subscription.plan)
        return subscription

    def apply_retention_discount(self, user_id: str) -> Subscription:
        self._require_mock()
        subscription = self.mock_subscriptions.apply_retention_discount(user_id)
        self._sync_tier(user_id, subscription.tier(), plan=subscription.plan)
        return subscription

    def restore_subscription(self, user_id: str) -> Subscription:
        self._require_mock()
        subscription = self.mock_subscriptions.restore(user_id)
        self._sync_tier(user_id, subscription.tier(), plan=subscription.plan)
        return subscription

    def upgrade_to_annual(self, user_id: str) -> Subscription:
        self._require_mock()
        subscription = self.mock_subscriptions.upgrade_to_annual(user_id)
        self._sync_tier(user_id, subscription.tier(), plan=subscription.plan)
        return subscription

    # Webhooks ---------------------------------------------------------------
    def handle_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Apply a Stripe webhook event to the profile store.

        Raises:
            InvalidArgument: If the event is malformed, badly signed, or a
                completed checkout carries no user ID
        """
        event = self.gateway.construct_event(payload, signature)
        event_type = event["type"]
        data = (event.get("data") or {}).get("object") or {}
        logger.info("Webhook event received: %s", event_type)

        if event_type == "checkout.session.completed":
            self._handle_checkout_completed(data)
        elif event_type == "customer.subscription.updated":
            self._handle_subscription_changed(data, tier_for_status(data.get("status")))
        elif event_type == "customer.subscription.deleted":
            self._handle_subscription_changed(data, TIER_FREE)
        elif event_type == "invoice.payment_failed":
            self._handle_payment_failed(data)
        else:
            logger.debug("Ignoring webhook event %s", event_type)

        return {"received": True, "type": event_type}

    def _handle_checkout_completed(self, session: Dict[str, Any]) -> None:
        metadata = session.get("metadata") or {}
        user_id = metadata.get("userId")
        if not user_id:
            raise InvalidArgument("Missing userId in metadata")

        plan = metadata.get("plan")
        logger.info("Checkout completed for user %s (plan=%s)", user_id, plan)
        self._sync_tier(user_id, TIER_PREMIUM, plan=plan)

        email = (session.get("customer_details") or {}).get("email") or session.get("customer_email")
        if email and plan:
            self._notify(email, plan, None)

    def _handle_payment_failed(self, invoice: Dict[str, Any]) -> None:
        logger.warning(
            "Payment failed for subscription %s (customer %s)",
            invoice.get("subscription"),
            invoice.get("customer"),
        )
        if not self.use_mock:
            return

        user_id = _invoice_user_id(invoice)
        if not user_id:
            logger.warning("Failed invoice %s carries no userId metadata; skipping", invoice.get("id"))
            return
        try:
            subscription = self.mock_subscriptions.mark_past_due(user_id)
        except NotFound:
            logger.warning("No mock subscription for user %s; ignoring failed payment", user_id)
            return
        self._sync_tier(user_id, subscription.tier(), plan=subscription.plan)

    def _handle_subscription_changed(self, subscription: Dict[str, Any], tier: str) -> None:
        user_id = (subscription.get("metadata") or {}).get("userId")
        if not user_id:
            logger.warning("Subscription %s carries no userId metadata; skipping", subscription.get("id"))
            return
        self._sync_tier(user_id, tier)

    # Collaborators ----------------------------------------------------------
    def _sync_tier(self, user_id: str, tier: str, plan: Optional[str] = None) -> bool:
        """Propagate the tier; failures are logged and never undo billing state."""
        try:
            updated = self.profile_store.update_tier(user_id, tier, plan=plan)
        except Exception:
            logger.exception("Failed to update tier to %s for user %s", tier, user_id)
            return False
        if updated:
            logger.info("Tier for user %s set to %s", user_id, tier)
        else:
            logger.warning("No profile updated for user %s; the profile may not exist", user_id)
        return updated

    def _send_confirmation(self, user_id: str, subscription: Subscription, email: Optional[str]) -> None:
        if not email:
            try:
                profile = self.profile_store.get_profile(user_id)
            except Exception:
                logger.exception("Failed to read profile for user %s", user_id)
                profile = None
            email = profile.email if profile else None
        if not email:
            logger.info("No email known for user %s; skipping purchase confirmation", user_id)
            return
        self._notify(email, subscription.plan, subscription.current_period_end)

    def _notify(self, email: str, plan: str, current_period_end: Optional[datetime]) -> None:
        try:
            self.notifier.send_purchase_confirmation(email, plan, current_period_end)
        except Exception:
            logger.exception("Failed to send purchase confirmation to %s", email)

    def _require_mock(self) -> None:
        if not self.use_mock:
            raise InvalidState("This operation is only available while mock subscriptions are enabled")


def _require_user_id(user_id: Any) -> str:
    if not isinstance(user_id, str) or not user_id.strip():
        raise InvalidArgument("A non-empty user ID is required")
    return user_id


def _invoice_user_id(invoice: Dict[str, Any]) -> Optional[str]:
    # Newer API versions nest the subscription details under "parent".
    for details in (
        invoice.get("subscription_details"),
        (invoice.get("parent") or {}).get("subscription_details"),
    ):
        user_id = ((details or {}).get("metadata") or {}).get("userId")
        if user_id:
            return user_id
    return None


def _provider_subscription_to_dict(subscription: Dict[str, Any]) -> Dict[str, Any]:
    """Shape a Stripe subscription like a simulator record for the frontend."""
    items = (subscription.get("items") or {}).get("data") or [{}]
    first_item = items[0]
    price = first_item.get("price") or {}
    recurring = price.get("recurring") or {}
    # Newer API versions report the period on the subscription item.
    period_end = subscription.get("current_period_end") or first_item.get("current_period_end")
    unit_amount = price.get("unit_amount")
    discount = subscription.get("discount") or {}
    percent_off = (discount.get("coupon") or {}).get("percent_off") or 0
    current_price = unit_amount / 100 if unit_amount is not None else None
    if current_price is not None and percent_off:
        current_price = round(current_price * (100 - percent_off) / 100, 2)
    return {
        "customerId": subscription.get("customer"),
        "subscriptionId": subscription.get("id"),
        "plan": (subscription.get("metadata") or {}).get("plan")
        or ("annual" if recurring.get("interval") == "year" else "monthly"),
        "status": subscription.get("status"),
        "currentPeriodEnd": (
            datetime.fromtimestamp(period_end, tz=timezone.utc).isoformat() if period_end else None
        ),
        "cancelAtPeriodEnd": bool(subscription.get("cancel_at_period_end")),
        "currentPrice": current_price,
        "originalPrice": unit_amount / 100 if unit_amount is not None else None,
        "discountPercent": int(percent_off),
        "hasRetentionDiscount": bool(percent_off),
        "upgradeScheduled": False,
        "upgradeScheduledDate": None,
    }
