"""Stripe payment integration service."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional

import stripe

from ..domain.errors import GatewayError, InvalidArgument
from ..domain.ports.billing import BillingGateway

logger = logging.getLogger(__name__)

_PLACEHOLDER_MARKER = "placeholder"


class StripeService(BillingGateway):
    """Manages Stripe API integration for checkout, portal and webhooks."""

    def __init__(
        self,
        secret_key: Optional[str],
        price_ids: Mapping[str, Optional[str]],
        frontend_url: str,
        webhook_secret: Optional[str] = None,
        allow_unverified_webhooks: bool = True,
    ) -> None:
        self._price_ids = dict(price_ids)
        self._frontend_url = frontend_url.rstrip("/")
        self._webhook_secret = webhook_secret
        self._allow_unverified_webhooks = allow_unverified_webhooks
        stripe.api_key = secret_key or None

    def is_configured(self) -> bool:
        return bool(stripe.api_key)

    def price_id_for(self, plan: str) -> str:
        if plan not in self._price_ids:
            expected = ", ".join(self._price_ids)
            raise InvalidArgument(f'Invalid plan "{plan}". Expected one of: {expected}')
        price_id = self._price_ids[plan]
        if not price_id or _PLACEHOLDER_MARKER in price_id:
            raise GatewayError(
                f"Price ID not configured for plan: {plan}. "
                f"Please set STRIPE_PRICE_{plan.upper()} in the environment"
            )
        return price_id

    def create_checkout_session(
        self, user_id: str, plan: str, email: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Create a Stripe checkout session for a subscription.

        Args:
            user_id: User ID, carried in the session and subscription metadata
            plan: Plan name (monthly or annual)
            email: Optional email to pre-fill on the checkout page

        Returns:
            Dict with the session ID and hosted checkout URL

        Raises:
            GatewayError: If Stripe is not configured or the API call fails
        """
        self._ensure_configured()
        price_id = self.price_id_for(plan)
        metadata = {"userId": user_id, "plan": plan, "tier": "premium"}
        params: Dict[str, Any] = {
            "mode": "subscription",
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": f"{self._frontend_url}?session_id={{CHECKOUT_SESSION_ID}}&plan={plan}",
            "cancel_url": self._frontend_url,
            "metadata": metadata,
            "subscription_data": {"metadata": metadata},
        }
        if email:
            params["customer_email"] = email

        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.StripeError as exc:
            raise self._gateway_error("create checkout session", exc) from exc

        logger.info("Checkout session %s created for user %s (plan=%s)", session.id, user_id, plan)
        return {"sessionId": session.id, "url": session.url}

    def create_portal_session(self, customer_id: str, return_url: Optional[str] = None) -> Dict[str, Any]:
        """Create a billing portal session so the customer can manage payment details."""
        self._ensure_configured()
        try:
            session = stripe.billing_portal.Session.create(
                customer=customer_id,
                return_url=return_url or self._frontend_url,
            )
        except stripe.StripeError as exc:
            raise self._gateway_error("create billing portal session", exc) from exc
        return {"url": session.url}

    def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        self._ensure_configured()
        try:
            session = stripe.checkout.Session.retrieve(session_id)
        except stripe.StripeError as exc:
            raise self._gateway_error("retrieve checkout session", exc) from exc
        return session.to_dict()

    def find_subscription_for_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Return the most recent Stripe subscription tagged with the user ID, if any."""
        self._ensure_configured()
        try:
            result = stripe.Subscription.search(
                query=f"metadata['userId']:'{_search_literal(user_id)}'",
                limit=1,
            )
        except stripe.StripeError as exc:
            raise self._gateway_error("search subscriptions", exc) from exc
        if not result.data:
            return None
        return result.data[0].to_dict()

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Parse a webhook payload, verifying its signature when a secret is set.

        Without a webhook secret the payload is only accepted outside production
        (e.g. when the Stripe CLI forwards events locally).

        Raises:
            InvalidArgument: If the payload is malformed or the signature is invalid
            GatewayError: If verification is required but no secret is configured
        """
        if self._webhook_secret:
            try:
                event = stripe.Webhook.construct_event(payload, signature or "", self._webhook_secret).to_dict()
            except stripe.SignatureVerificationError as exc:
                logger.warning("Webhook signature verification failed: %s", exc)
                raise InvalidArgument("Invalid webhook signature") from exc
            except ValueError as exc:
                raise InvalidArgument(f"Invalid webhook payload: {exc}") from exc
        elif not self._allow_unverified_webhooks:
            raise GatewayError("Webhook secret not configured")
        else:
            logger.warning("No webhook secret configured; parsing event without signature verification")
            try:
                event = json.loads(payload)
            except ValueError as exc:
                raise InvalidArgument(f"Invalid webhook payload: {exc}") from exc
        if not isinstance(event, dict) or "type" not in event:
            raise InvalidArgument("Invalid webhook payload: missing event type")
        return event

    def _ensure_configured(self) -> None:
        if not stripe.api_key:
            raise GatewayError("Stripe not configured. Please set STRIPE_SECRET_KEY first.")

    @staticmethod
    def _gateway_error(action: str, exc: stripe.StripeError) -> GatewayError:
        message = getattr(exc, "user_message", None) or str(exc)
        logger.error("Failed to %s: %s", action, message)
        return GatewayError(f"Failed to {action}: {message}")


def _search_literal(value: str) -> str:
    """Escape a value for use inside a quoted Stripe search query string."""
    return value.replace("\\", "\\\\").replace("'", "\\'")
