"""Pydantic schemas for billing API endpoints.

Field names follow the frontend's camelCase JSON contract.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class CheckoutSessionRequest(BaseModel):
    """Request to start a checkout for a plan."""

    userId: str = Field(..., description="User identifier from the auth provider")
    plan: str = Field(..., description="Plan: 'monthly' or 'annual'")
    email: Optional[str] = Field(None, description="Email to pre-fill on the checkout page")


class CheckoutSessionResponse(BaseModel):
    sessionId: str
    url: str
    mock: bool = False


class PortalSessionRequest(BaseModel):
    """Request to open the billing portal."""

    userId: str = Field(..., description="User identifier")
    returnUrl: Optional[str] = Field(None, description="Where the portal sends the user back to")


class PortalSessionResponse(BaseModel):
    url: str
    mock: bool = False


class UpdateTierFromSessionRequest(BaseModel):
    sessionId: str = Field(..., description="Completed Stripe checkout session ID")


class UpdateTierFromSessionResponse(BaseModel):
    success: bool
    userId: str
    tier: str


class UserRequest(BaseModel):
    """Request carrying only the user identifier."""

    userId: str = Field(..., description="User identifier")


class MockSubscriptionRequest(BaseModel):
    userId: str = Field(..., description="User identifier")
    plan: str = Field(..., description="Plan: 'monthly' or 'annual'")
    email: Optional[str] = Field(None, description="Where to send the purchase confirmation")


class CancelSubscriptionRequest(BaseModel):
    """Request to cancel, or to accept the retention offer instead."""

    userId: str = Field(..., description="User identifier")
    action: Literal["cancel", "accept_offer"] = Field(
        "cancel", description="'cancel' to stop renewing, 'accept_offer' to keep the discount"
    )


class SubscriptionResponse(BaseModel):
    """Subscription as shown to the frontend."""

    customerId: Optional[str]
    subscriptionId: Optional[str]
    plan: str
    status: Optional[str]
    currentPeriodEnd: Optional[str]
    cancelAtPeriodEnd: bool
    currentPrice: Optional[float]
    originalPrice: Optional[float]
    discountPercent: int = 0
    hasRetentionDiscount: bool = False
    upgradeScheduled: bool = False
    upgradeScheduledDate: Optional[str] = None
