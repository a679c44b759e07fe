from dataclasses import dataclass

from .config import Settings
from ..infrastructure.persistence.sqlite import SQLiteProfileStore
from ..services.billing_service import BillingService
from ..services.email_service import EmailService
from ..services.mock_subscription_service import MockSubscriptionService
from ..services.stripe_service import StripeService


@dataclass(slots=True)
class ApplicationContainer:
    """Dependency registry shared across the FastAPI application lifecycle."""

    settings: Settings
    profile_store: SQLiteProfileStore
    mock_subscription_service: MockSubscriptionService
    stripe_service: StripeService
    email_service: EmailService
    billing_service: BillingService
