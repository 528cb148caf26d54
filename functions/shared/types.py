"""
Shared Type Definitions for Lambda Handlers.

Provides TypedDict definitions for Stripe payloads, session tokens and the
stored subscription record.
"""

from typing import TypedDict, Any


class StripeEventData(TypedDict):
    object: dict[str, Any]


class StripeEvent(TypedDict, total=False):
    """Stripe webhook event envelope."""

    id: str
    type: str
    created: int
    livemode: bool
    data: StripeEventData


class SessionData(TypedDict, total=False):
    """Decoded bearer session token."""

    user_id: str
    email: str
    exp: int


class SubscriptionRecord(TypedDict, total=False):
    """Item in the subscriptions table."""

    user_id: str
    tier: str
    status: str
    stripe_subscription_id: str
    created_at: str
    updated_at: str

