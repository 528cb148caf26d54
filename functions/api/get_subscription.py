"""
Subscription Endpoint - GET /subscription

Returns the caller's stored subscription tier and the limits it grants.
Requires bearer session authentication.
"""

import logging

from botocore.exceptions import ClientError

from shared.constants import ACTIVE_STATUS, FREE_TIER, TIER_LIMITS
from shared.errors import APIError
from shared.response_utils import error_response, get_origin, success_response
from shared.session_auth import authenticate_request
from shared.subscription_store import get_subscription_state

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def handler(event, context):
    """
    Lambda handler for GET /subscription.

    Users with no stored record are reported as free without writing one.
    """
    origin = get_origin(event)

    try:
        session_data = authenticate_request(event)
    except APIError as e:
        return e.to_response(origin=origin)

    user_id = session_data["user_id"]

    try:
        record = get_subscription_state(user_id)
    except ClientError as e:
        logger.error(f"Error reading subscription for {user_id}: {e}")
        return error_response(500, "internal_error", "Failed to load subscription", origin=origin)

    record = record or {}
    tier = record.get("tier", FREE_TIER)
    if tier not in TIER_LIMITS:
        logger.warning(f"Stored tier {tier!r} for {user_id} is unknown, reporting free")
        tier = FREE_TIER

    return success_response(
        {
            "user_id": user_id,
            "tier": tier,
            "status": record.get("status", ACTIVE_STATUS),
            "subscription_id": record.get("stripe_subscription_id"),
            "updated_at": record.get("updated_at"),
            "limits": TIER_LIMITS[tier],
        },
        origin=origin,
    )
