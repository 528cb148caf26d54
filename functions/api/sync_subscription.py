"""
Sync Subscription Endpoint - POST /subscription/sync

Recomputes the caller's tier straight from Stripe, bypassing webhooks.
Used to recover when stored state drifted (missed or failed deliveries).
Requires bearer session authentication.
"""

import logging

import stripe

from shared.billing_utils import (
    find_active_subscription,
    find_customer_by_email,
    get_stripe_api_key,
)
from shared.constants import (
    DEFAULT_PAID_TIER,
    FREE_TIER,
    METADATA_TIER,
    PAID_TIERS,
    STATUS_NO_ACTIVE_SUBSCRIPTION,
    STATUS_NO_SUBSCRIPTION,
)
from shared.errors import APIError
from shared.logging_utils import configure_structured_logging, set_request_id
from shared.response_utils import error_response, get_origin, success_response
from shared.session_auth import authenticate_request
from shared.subscription_store import write_subscription_state

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def _tier_from_subscription(subscription: dict) -> str:
    """Tier named by subscription metadata, then price metadata, else pro."""
    tier = (subscription.get("metadata") or {}).get(METADATA_TIER)
    if tier in PAID_TIERS:
        return tier

    items = (subscription.get("items") or {}).get("data") or []
    for item in items:
        price_tier = ((item.get("price") or {}).get("metadata") or {}).get(METADATA_TIER)
        if price_tier in PAID_TIERS:
            return price_tier

    if tier:
        logger.warning(f"Unknown tier {tier!r} on subscription {subscription.get('id')}, using {DEFAULT_PAID_TIER}")
    return DEFAULT_PAID_TIER


def reconcile_subscription(user_id: str, email: str) -> dict:
    """
    Recompute and store a user's tier from Stripe.

    All Stripe lookups happen before the write, so a Stripe failure leaves
    stored state untouched.

    Returns:
        Response body: tier, message and, when subscribed, subscriptionId
        and status

    Raises:
        BillingProviderError: a Stripe call failed
        StateWriteError: the resolved state could not be stored
    """
    customer = find_customer_by_email(email)
    if not customer:
        write_subscription_state(user_id, FREE_TIER, STATUS_NO_SUBSCRIPTION)
        logger.info(f"No Stripe customer for {user_id}, set to free")
        return {
            "tier": FREE_TIER,
            "message": "No Stripe customer found - set to free plan",
        }

    subscription = find_active_subscription(customer["id"])
    if not subscription:
        write_subscription_state(user_id, FREE_TIER, STATUS_NO_ACTIVE_SUBSCRIPTION)
        logger.info(f"No active subscription for {user_id} (customer {customer['id']}), set to free")
        return {
            "tier": FREE_TIER,
            "message": "No active subscription found - set to free plan",
        }

    tier = _tier_from_subscription(subscription)
    write_subscription_state(user_id, tier, subscription["status"], subscription["id"])
    logger.info(f"Synced subscription for {user_id}: tier={tier}, subscription={subscription['id']}")

    return {
        "tier": tier,
        "subscriptionId": subscription["id"],
        "status": subscription["status"],
        "message": "Subscription synced successfully",
    }


def handler(event, context):
    """
    Lambda handler for POST /subscription/sync.

    No request body required - uses the bearer session to identify the user.

    Returns:
    {
        "tier": "free" | "pro" | "team",
        "subscriptionId": "sub_...",   (only when subscribed)
        "status": "active",            (only when subscribed)
        "message": "..."
    }
    """
    configure_structured_logging()
    set_request_id(event)
    origin = get_origin(event)

    try:
        session_data = authenticate_request(event)
    except APIError as e:
        return e.to_response(origin=origin)

    user_id = session_data["user_id"]
    email = session_data.get("email")
    if not email:
        return error_response(400, "email_required", "User email required", origin=origin)

    stripe_api_key = get_stripe_api_key()
    if not stripe_api_key:
        logger.error("Stripe API key not configured")
        return error_response(
            500, "stripe_not_configured", "Payment system not configured", origin=origin
        )

    stripe.api_key = stripe_api_key

    logger.info(f"Syncing subscription for user {user_id}")

    try:
        result = reconcile_subscription(user_id, email)
    except APIError as e:
        logger.error(f"Subscription sync failed for {user_id}: {e.code}")
        return e.to_response(origin=origin)
    except Exception as e:
        logger.error(f"Unexpected error syncing subscription for {user_id}: {e}", exc_info=True)
        return error_response(
            500, "sync_failed", "Failed to sync subscription", details={"error": str(e)}, origin=origin
        )

    return success_response(result, origin=origin)
