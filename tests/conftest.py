"""
Pytest configuration and shared fakes for the billing broker tests.
"""
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from billing_broker.core.app_factory import create_application
from billing_broker.core.clock import FrozenClock
from billing_broker.core.config import Settings
from billing_broker.domain.errors import NotFound
from billing_broker.domain.models import Profile
from billing_broker.services.billing_service import BillingService
from billing_broker.services.mock_subscription_service import MockSubscriptionService

START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeProfileStore:
    """In-memory profile store recording every tier update."""

    def __init__(self) -> None:
        self.profiles: Dict[str, Profile] = {}
        self.updates: List[Tuple[str, str, Optional[str]]] = []
        self.fail = False

    def add(self, user_id: str, email: Optional[str] = None, tier: str = "free") -> Profile:
        profile = Profile(
            user_id=user_id,
            email=email,
            full_name=None,
            tier=tier,
            plan=None,
            updated_at=START,
        )
        self.profiles[user_id] = profile
        return profile

    def get_profile(self, user_id: str) -> Optional[Profile]:
        return self.profiles.get(user_id)

    def update_tier(self, user_id: str, tier: str, plan: Optional[str] = None) -> bool:
        if self.fail:
            raise RuntimeError("profile store unavailable")
        self.updates.append((user_id, tier, plan))
        profile = self.profiles.get(user_id)
        if profile is None:
            return False
        profile.tier = tier
        if plan is not None:
            profile.plan = plan
        return True


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: List[Tuple[str, str, Optional[datetime]]] = []
        self.fail = False

    def send_purchase_confirmation(self, to_email: str, plan: str, current_period_end: Optional[datetime]) -> bool:
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append((to_email, plan, current_period_end))
        return True


class FakeGateway:
    """Stands in for Stripe; returns canned provider objects."""

    def __init__(self) -> None:
        self.checkout_sessions: Dict[str, Dict[str, Any]] = {}
        self.subscriptions: Dict[str, Dict[str, Any]] = {}
        self.checkouts: List[Tuple[str, str, Optional[str]]] = []
        self.portals: List[Tuple[str, Optional[str]]] = []

    def is_configured(self) -> bool:
        return True

    def create_checkout_session(self, user_id: str, plan: str, email: Optional[str] = None) -> Dict[str, Any]:
        self.checkouts.append((user_id, plan, email))
        return {"sessionId": "cs_test_123", "url": "https://checkout.stripe.test/cs_test_123"}

    def create_portal_session(self, customer_id: str, return_url: Optional[str] = None) -> Dict[str, Any]:
        self.portals.append((customer_id, return_url))
        return {"url": f"https://billing.stripe.test/{customer_id}"}

    def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        if session_id not in self.checkout_sessions:
            raise NotFound(f"No such checkout session: {session_id}")
        return self.checkout_sessions[session_id]

    def find_subscription_for_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self.subscriptions.get(user_id)

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        return json.loads(payload)


@pytest.fixture
def start() -> datetime:
    return START


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(START)


@pytest.fixture
def store(clock: FrozenClock) -> MockSubscriptionService:
    return MockSubscriptionService(clock=clock)


@pytest.fixture
def profiles() -> FakeProfileStore:
    return FakeProfileStore()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def billing(store, gateway, profiles, notifier) -> BillingService:
    return BillingService(
        mock_subscriptions=store,
        gateway=gateway,
        profile_store=profiles,
        notifier=notifier,
        frontend_url="http://localhost:3000",
        use_mock=True,
    )


@pytest.fixture
def stripe_billing(store, gateway, profiles, notifier) -> BillingService:
    return BillingService(
        mock_subscriptions=store,
        gateway=gateway,
        profile_store=profiles,
        notifier=notifier,
        frontend_url="http://localhost:3000",
        use_mock=False,
    )


@pytest.fixture
def settings(monkeypatch, tmp_path) -> Settings:
    """Settings for a mock-mode app with a throwaway profile database."""
    for key in ("STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET", "STRIPE_PRICE_MONTHLY", "STRIPE_PRICE_ANNUAL"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("MOCK_SUBSCRIPTIONS", "true")
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "profiles.db"))
    monkeypatch.setenv("SMTP_HOST", "")
    return Settings()


@pytest.fixture
def test_app(settings: Settings, clock: FrozenClock) -> FastAPI:
    return create_application(settings, clock=clock)


@pytest.fixture
def client(test_app: FastAPI):
    with TestClient(test_app) as test_client:
        yield test_client
