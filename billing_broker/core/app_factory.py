from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .clock import Clock, SystemClock
from .config import Settings
from .container import ApplicationContainer
from .logging import configure_logging
from ..infrastructure.persistence.sqlite import SQLiteProfileStore
from ..presentation.api.routers import billing_router
from ..presentation.api.routers import debug_router
from ..services.billing_service import BillingService
from ..services.email_service import EmailService
from ..services.mock_subscription_service import MockSubscriptionService
from ..services.stripe_service import StripeService

logger = logging.getLogger(__name__)


def create_application(settings: Optional[Settings] = None, clock: Optional[Clock] = None) -> FastAPI:
    settings = settings or Settings()

    app = FastAPI(title="Subscription Billing Broker", lifespan=_create_lifespan(settings, clock or SystemClock()))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(billing_router.router)
    app.include_router(debug_router.router)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"status": "ok"}

    return app


def _create_lifespan(settings: Settings, clock: Clock):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        profile_store = SQLiteProfileStore(settings.database_path)
        mock_subscriptions = MockSubscriptionService(settings.price_table, clock)
        stripe_service = StripeService(
            secret_key=settings.stripe_secret_key,
            price_ids=settings.stripe_price_ids,
            frontend_url=settings.frontend_url,
            webhook_secret=settings.stripe_webhook_secret,
            allow_unverified_webhooks=not settings.is_production,
        )
        email_service = EmailService(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_username=settings.smtp_username,
            smtp_password=settings.smtp_password,
            from_email=settings.smtp_from_email,
        )
        billing_service = BillingService(
            mock_subscriptions=mock_subscriptions,
            gateway=stripe_service,
            profile_store=profile_store,
            notifier=email_service,
            frontend_url=settings.frontend_url,
            use_mock=settings.mock_subscriptions,
        )

        app.state.container = ApplicationContainer(  # type: ignore[attr-defined]
            settings=settings,
            profile_store=profile_store,
            mock_subscription_service=mock_subscriptions,
            stripe_service=stripe_service,
            email_service=email_service,
            billing_service=billing_service,
        )

        if settings.mock_subscriptions:
            logger.warning("Mock subscriptions enabled; subscriptions are kept in memory only")
        elif not stripe_service.is_configured():
            logger.error("STRIPE_SECRET_KEY is not set and mock subscriptions are disabled")
        for plan, price_id in settings.stripe_price_ids.items():
            logger.info("Stripe price for %s plan: %s", plan, price_id or "not set")

        try:
            yield
        finally:
            profile_store.close()

    return lifespan
