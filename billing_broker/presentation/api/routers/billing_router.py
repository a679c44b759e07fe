"""Subscription billing API endpoints."""

from typing import Any, Dict, Union

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from ....core.dependencies import get_billing_service
from ....domain.errors import BillingError, GatewayError, InvalidArgument, InvalidState, NotFound
from ....services.billing_service import BillingService
from ..schemas.billing_schemas import (
    CancelSubscriptionRequest,
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    MockSubscriptionRequest,
    PortalSessionRequest,
    PortalSessionResponse,
    SubscriptionResponse,
    UpdateTierFromSessionRequest,
    UpdateTierFromSessionResponse,
    UserRequest,
)

router = APIRouter(prefix="/api", tags=["Billing"])

_STATUS_BY_ERROR = (
    (InvalidArgument, status.HTTP_400_BAD_REQUEST),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (InvalidState, status.HTTP_409_CONFLICT),
    (GatewayError, status.HTTP_502_BAD_GATEWAY),
)


def http_error(exc: BillingError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


# ============ CHECKOUT ============

@router.post("/create-checkout-session", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    payload: CheckoutSessionRequest,
    billing_service: BillingService = Depends(get_billing_service),
) -> CheckoutSessionResponse:
    """Create a checkout session (or an instant mock subscription)."""
    try:
        result = billing_service.create_checkout_session(payload.userId, payload.plan, email=payload.email)
    except BillingError as exc:
        raise http_error(exc) from exc
    return CheckoutSessionResponse(**result)


@router.post("/create-portal-session", response_model=PortalSessionResponse)
async def create_portal_session(
    payload: PortalSessionRequest,
    billing_service: BillingService = Depends(get_billing_service),
) -> PortalSessionResponse:
    """Open the billing portal for the user's customer record."""
    try:
        result = billing_service.create_portal_session(payload.userId, return_url=payload.returnUrl)
    except BillingError as exc:
        raise http_error(exc) from exc
    return PortalSessionResponse(**result)


@router.post("/update-tier-from-session", response_model=UpdateTierFromSessionResponse)
async def update_tier_from_session(
    payload: UpdateTierFromSessionRequest,
    billing_service: BillingService = Depends(get_billing_service),
) -> UpdateTierFromSessionResponse:
    """Grant premium from a paid checkout session without waiting for the webhook."""
    try:
        result = billing_service.update_tier_from_session(payload.sessionId)
    except BillingError as exc:
        raise http_error(exc) from exc
    return UpdateTierFromSessionResponse(**result)


# ============ WEBHOOK ============

@router.post("/stripe-webhook", include_in_schema=False)
async def stripe_webhook(
    request: Request,
    billing_service: BillingService = Depends(get_billing_service),
) -> Dict[str, Any]:
    """Handle Stripe webhook events."""
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    try:
        return billing_service.handle_webhook(payload, signature)
    except BillingError as exc:
        raise http_error(exc) from exc


# ============ SUBSCRIPTIONS ============

@router.get("/get-subscription", response_model=SubscriptionResponse)
async def get_subscription(
    user_id: str = Query(..., alias="userId"),
    billing_service: BillingService = Depends(get_billing_service),
) -> Union[SubscriptionResponse, JSONResponse]:
    """Get the user's subscription; 404 reports whether the profile still says premium."""
    try:
        subscription = billing_service.get_subscription(user_id)
    except BillingError as exc:
        raise http_error(exc) from exc

    if subscription is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={
                "error": "No subscription found",
                "hasPremiumTier": billing_service.has_premium_tier(user_id),
            },
        )
    return SubscriptionResponse(**subscription)


@router.post("/create-mock-subscription", response_model=SubscriptionResponse)
async def create_mock_subscription(
    payload: MockSubscriptionRequest,
    billing_service: BillingService = Depends(get_billing_service),
) -> SubscriptionResponse:
    """Create a mock subscription (development only)."""
    try:
        subscription = billing_service.create_mock_subscription(
            payload.userId, payload.plan, email=payload.email
        )
    except BillingError as exc:
        raise http_error(exc) from exc
    return SubscriptionResponse(**subscription.to_dict())


@router.post("/cancel-subscription", response_model=SubscriptionResponse)
async def cancel_subscription(
    payload: CancelSubscriptionRequest,
    billing_service: BillingService = Depends(get_billing_service),
) -> SubscriptionResponse:
    """Cancel at period end, or accept the retention offer."""
    try:
        subscription = billing_service.cancel_subscription(
            payload.userId, accept_offer=payload.action == "accept_offer"
        )
    except BillingError as exc:
        raise http_error(exc) from exc
    return SubscriptionResponse(**subscription.to_dict())


@router.post("/apply-retention-discount", response_model=SubscriptionResponse)
async def apply_retention_discount(
    payload: UserRequest,
    billing_service: BillingService = Depends(get_billing_service),
) -> SubscriptionResponse:
    try:
        subscription = billing_service.apply_retention_discount(payload.userId)
    except BillingError as exc:
        raise http_error(exc) from exc
    return SubscriptionResponse(**subscription.to_dict())


@router.post("/restore-subscription", response_model=SubscriptionResponse)
async def restore_subscription(
    payload: UserRequest,
    billing_service: BillingService = Depends(get_billing_service),
) -> SubscriptionResponse:
    """Restore a cancelled or past-due subscription."""
    try:
        subscription = billing_service.restore_subscription(payload.userId)
    except BillingError as exc:
        raise http_error(exc) from exc
    return SubscriptionResponse(**subscription.to_dict())


@router.post("/upgrade-subscription", response_model=SubscriptionResponse)
async def upgrade_subscription(
    payload: UserRequest,
    billing_service: BillingService = Depends(get_billing_service),
) -> SubscriptionResponse:
    """Upgrade a monthly subscription to annual."""
    try:
        subscription = billing_service.upgrade_to_annual(payload.userId)
    except BillingError as exc:
        raise http_error(exc) from exc
    return SubscriptionResponse(**subscription.to_dict())
