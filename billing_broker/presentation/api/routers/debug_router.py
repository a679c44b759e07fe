"""Diagnostics for local development: simulator contents and setup check."""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status

from ....core.config import Settings
from ....core.dependencies import get_billing_service, get_settings
from ....domain.errors import BillingError
from ....services.billing_service import BillingService
from .billing_router import http_error

router = APIRouter(prefix="/api", tags=["Diagnostics"])


def _require_mock(billing_service: BillingService) -> None:
    if not billing_service.use_mock:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Mock subscriptions are disabled",
        )


@router.get("/mock-subscriptions")
async def list_mock_subscriptions(
    billing_service: BillingService = Depends(get_billing_service),
) -> Dict[str, Any]:
    """List every mock subscription held in memory."""
    _require_mock(billing_service)
    snapshot = billing_service.mock_subscriptions.list_all()
    items = [{"userId": user_id, **sub.to_dict()} for user_id, sub in snapshot.items()]
    return {"items": items, "count": len(items)}


@router.delete("/mock-subscriptions/{user_id}")
async def delete_mock_subscription(
    user_id: str,
    billing_service: BillingService = Depends(get_billing_service),
) -> Dict[str, Any]:
    _require_mock(billing_service)
    try:
        deleted = billing_service.mock_subscriptions.delete(user_id)
    except BillingError as exc:
        raise http_error(exc) from exc
    return {"deleted": deleted}


@router.get("/setup-check")
async def setup_check(
    settings: Settings = Depends(get_settings),
    billing_service: BillingService = Depends(get_billing_service),
) -> Dict[str, Any]:
    """Report which pieces of billing configuration are in place."""
    price_ids = {
        plan: bool(price_id and "placeholder" not in price_id)
        for plan, price_id in settings.stripe_price_ids.items()
    }
    return {
        "environment": settings.environment,
        "mockSubscriptions": billing_service.use_mock,
        "stripe": {
            "secretKey": bool(settings.stripe_secret_key),
            "webhookSecret": bool(settings.stripe_webhook_secret),
            "priceIds": price_ids,
        },
        "email": {"smtpConfigured": bool(settings.smtp_host and settings.smtp_username)},
        "profileStore": {"path": str(settings.database_path)},
        "pricing": billing_service.mock_subscriptions.price_table.as_dict(),
    }
