"""
Subscription state writer.

A user's tier lives in two places: the subscriptions table (authoritative)
and a denormalized copy on the users table for cheap reads. Both are written
in one DynamoDB transaction so they cannot diverge.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from shared.aws_clients import get_dynamodb, get_dynamodb_client
from shared.constants import THROTTLING_ERRORS, TIERS
from shared.errors import StateWriteError
from shared.types import SubscriptionRecord

logger = logging.getLogger(__name__)

SUBSCRIPTIONS_TABLE = os.environ.get("SUBSCRIPTIONS_TABLE", "daygo-subscriptions")
USERS_TABLE = os.environ.get("USERS_TABLE", "daygo-users")


def _build_update(
    table_name: str,
    user_id: str,
    fields: dict,
    subscription_id: Optional[str],
    now_iso: str,
    set_created_at: bool = False,
) -> dict:
    """Build one TransactWriteItems Update entry."""
    names = {}
    values = {":now": now_iso}
    set_parts = []

    for i, (field, value) in enumerate(fields.items()):
        names[f"#f{i}"] = field
        values[f":v{i}"] = value
        set_parts.append(f"#f{i} = :v{i}")

    set_parts.append("updated_at = :now")
    if set_created_at:
        set_parts.append("created_at = if_not_exists(created_at, :now)")

    if subscription_id:
        set_parts.append("stripe_subscription_id = :sub_id")
        values[":sub_id"] = subscription_id
        expression = "SET " + ", ".join(set_parts)
    else:
        expression = "SET " + ", ".join(set_parts) + " REMOVE stripe_subscription_id"

    return {
        "Update": {
            "TableName": table_name,
            "Key": {"user_id": user_id},
            "UpdateExpression": expression,
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": values,
        }
    }


def write_subscription_state(
    user_id: str,
    tier: str,
    status: str,
    subscription_id: Optional[str] = None,
) -> None:
    """
    Persist a user's tier to the subscriptions and users tables atomically.

    Writes are idempotent: repeating the same arguments only refreshes
    ``updated_at``. ``created_at`` is set on the first write only. A None
    subscription id removes any stored id.

    Args:
        user_id: Internal user identifier
        tier: Effective tier ("free", "pro" or "team")
        status: Stripe subscription status or a local label such as
            "no_subscription"
        subscription_id: Stripe subscription id, if one backs the tier

    Raises:
        ValueError: user_id empty or tier unknown
        StateWriteError: the transaction failed; neither record changed
    """
    if not user_id:
        raise ValueError("user_id is required")
    if tier not in TIERS:
        raise ValueError(f"Unknown tier: {tier}")

    now_iso = datetime.now(timezone.utc).isoformat()

    transact_items = [
        _build_update(
            SUBSCRIPTIONS_TABLE,
            user_id,
            {"tier": tier, "status": status},
            subscription_id,
            now_iso,
            set_created_at=True,
        ),
        _build_update(
            USERS_TABLE,
            user_id,
            {"subscription_tier": tier, "subscription_status": status},
            subscription_id,
            now_iso,
        ),
    ]

    try:
        get_dynamodb_client().transact_write_items(TransactItems=transact_items)
    except ClientError as e:
        error_code = e.response["Error"]["Code"]
        if error_code in THROTTLING_ERRORS:
            logger.warning(f"Throttled writing subscription state for {user_id}: {error_code}")
        else:
            logger.error(f"Failed to write subscription state for {user_id}: {e}")
        raise StateWriteError(user_id, error_code) from e
    except BotoCoreError as e:
        logger.error(f"Failed to write subscription state for {user_id}: {e}")
        raise StateWriteError(user_id, str(e)) from e

    logger.info(
        f"Subscription state updated for {user_id}: tier={tier}, status={status}, "
        f"subscription={subscription_id or '-'}"
    )


def get_subscription_state(user_id: str) -> Optional[SubscriptionRecord]:
    """Read a user's SubscriptionRecord, or None if never written."""
    table = get_dynamodb().Table(SUBSCRIPTIONS_TABLE)
    response = table.get_item(Key={"user_id": user_id})
    return response.get("Item")
