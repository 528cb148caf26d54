"""
Create Checkout Session Endpoint - POST /checkout/create

Creates a Stripe Checkout session for subscription upgrades.
Requires bearer session authentication.

The session and the subscription it creates both carry ``userId`` and
``tier`` metadata; the webhook uses it to find the user to upgrade.
"""

import json
import logging
import os

import stripe
from botocore.exceptions import ClientError

from shared.billing_utils import get_stripe_api_key
from shared.constants import FREE_TIER, METADATA_TIER, METADATA_USER_ID, PAID_TIERS, TIER_ORDER
from shared.errors import APIError
from shared.response_utils import error_response, get_origin, success_response
from shared.session_auth import authenticate_request
from shared.subscription_store import get_subscription_state

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

BASE_URL = os.environ.get("BASE_URL", "http://localhost:3000")

# Price ID to tier mapping (configured via environment)
TIER_TO_PRICE = {
    "pro": os.environ.get("STRIPE_PRO_PRICE_ID") or None,
    "team": os.environ.get("STRIPE_TEAM_PRICE_ID") or None,
}


def handler(event, context):
    """
    Lambda handler for POST /checkout/create.

    Request body:
    {
        "tier": "pro" | "team"
    }

    Returns:
    {
        "checkout_url": "https://checkout.stripe.com/...",
        "session_id": "cs_..."
    }
    """
    origin = get_origin(event)

    stripe_api_key = get_stripe_api_key()
    if not stripe_api_key:
        logger.error("Stripe API key not configured")
        return error_response(
            500, "stripe_not_configured", "Payment system not configured", origin=origin
        )

    stripe.api_key = stripe_api_key

    try:
        session_data = authenticate_request(event)
    except APIError as e:
        return e.to_response(origin=origin)

    user_id = session_data["user_id"]
    email = session_data.get("email")

    try:
        body = json.loads(event.get("body") or "{}")
    except json.JSONDecodeError:
        return error_response(
            400, "invalid_json", "Request body must be valid JSON", origin=origin
        )

    tier = str(body.get("tier", "")).lower()
    if tier not in PAID_TIERS:
        return error_response(
            400, "invalid_tier", "Invalid tier. Choose: pro or team", origin=origin
        )

    try:
        record = get_subscription_state(user_id) or {}
    except ClientError as e:
        logger.error(f"Error reading subscription for {user_id}: {e}")
        return error_response(500, "internal_error", "An error occurred", origin=origin)

    current_tier = record.get("tier", FREE_TIER)
    if TIER_ORDER.get(tier, 0) <= TIER_ORDER.get(current_tier, 0):
        return error_response(
            409,
            "already_subscribed",
            f"Cannot checkout for {tier} tier. You're currently on {current_tier}.",
            origin=origin,
        )

    price_id = TIER_TO_PRICE[tier]
    if not price_id:
        logger.error(f"Price ID not configured for tier: {tier}")
        return error_response(
            500, "price_not_configured", "Pricing not configured for this tier", origin=origin
        )

    metadata = {METADATA_USER_ID: user_id, METADATA_TIER: tier}
    checkout_params = {
        "mode": "subscription",
        "line_items": [{"price": price_id, "quantity": 1}],
        "success_url": f"{BASE_URL}/upgrade?success=true",
        "cancel_url": f"{BASE_URL}/upgrade?canceled=true",
        "client_reference_id": user_id,
        "metadata": metadata,
        "subscription_data": {"metadata": metadata},
        "allow_promotion_codes": True,
    }
    if email:
        checkout_params["customer_email"] = email

    try:
        session = stripe.checkout.Session.create(**checkout_params)
    except stripe.StripeError as e:
        logger.error(f"Stripe error creating checkout session: {e}")
        return error_response(
            500, "stripe_error", "Failed to create checkout session", origin=origin
        )

    logger.info(f"Created checkout session for user {user_id}, tier {tier}")

    return success_response(
        {"checkout_url": session["url"], "session_id": session["id"]},
        origin=origin,
    )
