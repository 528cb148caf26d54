"""
Stripe Webhook Endpoint - POST /webhooks/stripe

Keeps the stored subscription tier in sync with Stripe.
Uses Stripe signature verification instead of session auth.
"""

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import stripe

from shared.aws_clients import get_dynamodb
from shared.billing_utils import get_stripe_secrets
from shared.constants import BILLING_EVENT_TTL_DAYS
from shared.errors import APIError, BillingProviderError, StateWriteError
from shared.logging_utils import configure_structured_logging, set_request_id
from shared.response_utils import error_response, success_response
from shared.subscription_events import (
    Transition,
    classify_event,
    load_subscription,
    resolve_effective_tier,
)
from shared.subscription_store import write_subscription_state
from shared.webhook_signature import get_raw_body, get_signature_header, verify_webhook

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

BILLING_EVENTS_TABLE = os.environ.get("BILLING_EVENTS_TABLE", "daygo-billing-events")


# ===========================================
# Billing Event Audit Trail
# ===========================================


def _record_billing_event(
    event: dict,
    status: str,
    user_id: Optional[str] = None,
    error: Optional[str] = None,
):
    """Record webhook event for audit trail (best-effort).

    Failures are logged but do not affect webhook response.

    Args:
        event: Verified Stripe event
        status: "success", "no_op", or "failed"
        user_id: User whose state was (or would have been) written
        error: Error code if status is "failed"
    """
    try:
        table = get_dynamodb().Table(BILLING_EVENTS_TABLE)
        now = datetime.now(timezone.utc)
        event_object = (event.get("data") or {}).get("object") or {}
        customer_id = event_object.get("customer") or "unknown"

        table.put_item(
            Item={
                "pk": event["id"],
                "sk": event["type"],
                "customer_id": customer_id,
                "user_id": user_id,
                "processed_at": now.isoformat(),
                "event_created_at": event.get("created"),  # Stripe's event timestamp
                "livemode": event.get("livemode"),  # Distinguish test vs production
                "status": status,
                "error": error,
                "ttl": int((now + timedelta(days=BILLING_EVENT_TTL_DAYS)).timestamp()),
            }
        )
    except Exception as e:
        # Audit recording should not block webhook response
        logger.error(f"Failed to record billing event {event.get('id')}: {e}")


def _received(stripe_event: dict, **extra) -> dict:
    body = {
        "received": True,
        "eventId": stripe_event.get("id"),
        "eventType": stripe_event.get("type"),
    }
    body.update(extra)
    return success_response(body)


def process_event(stripe_event: dict) -> dict:
    """
    Apply a verified Stripe event to the stored subscription state.

    Returns:
        Extra fields for the 200 response body (empty when state was written)

    Raises:
        BillingProviderError: follow-up Stripe fetch failed
        StateWriteError: DynamoDB transaction failed
    """
    event_type = stripe_event["type"]
    transition = classify_event(event_type)
    if transition is Transition.UNHANDLED:
        _record_billing_event(stripe_event, "no_op")
        return {"processed": False}

    event_object = (stripe_event.get("data") or {}).get("object") or {}
    subscription = load_subscription(transition, event_object, event_type)
    if subscription is None:
        _record_billing_event(stripe_event, "no_op")
        return {"processed": False, "warning": "No subscription referenced by event"}

    logger.info(
        f"Subscription {subscription['id']}: status={subscription['status']}, "
        f"transition={transition.value}"
    )

    resolution = resolve_effective_tier(transition, subscription)
    if resolution is None:
        _record_billing_event(stripe_event, "no_op")
        return {"processed": False, "warning": "Missing or invalid subscription metadata"}

    write_subscription_state(
        resolution.user_id,
        resolution.tier,
        resolution.status,
        resolution.subscription_id,
    )
    _record_billing_event(stripe_event, "success", user_id=resolution.user_id)
    return {}


def handler(event, context):
    """
    Lambda handler for Stripe webhooks.

    Handles:
    - customer.subscription.created / updated: set tier from metadata
    - customer.subscription.deleted: downgrade to free
    - invoice.payment_succeeded: re-confirm paid tier
    - invoice.payment_failed: downgrade to free
    """
    configure_structured_logging()
    set_request_id(event)

    sig_header = get_signature_header(event)

    stripe_api_key, webhook_secret = get_stripe_secrets()

    try:
        payload = get_raw_body(event)
        stripe_event = verify_webhook(payload, sig_header, webhook_secret)
    except APIError as e:
        if e.status_code >= 500:
            logger.error(f"Webhook rejected: {e.message}")
        else:
            logger.warning(f"Webhook rejected: {e.message}")
        return e.to_response()

    if not stripe_api_key:
        logger.error("Stripe API key not configured")
        return error_response(500, "stripe_not_configured", "Stripe not configured")

    stripe.api_key = stripe_api_key

    event_type = stripe_event["type"]
    logger.info(f"Processing Stripe event: {event_type} (id={stripe_event.get('id')})")

    try:
        extra = process_event(stripe_event)

    except (BillingProviderError, StateWriteError) as e:
        # Event was understood; answer 200 so Stripe does not redeliver
        _record_billing_event(stripe_event, "failed", user_id=getattr(e, "user_id", None), error=e.code)
        logger.error(f"Failed handling {event_type}: {e.message} {e.details}")
        return _received(
            stripe_event,
            processed=False,
            error={"code": e.code, "message": e.message},
        )
    except Exception as e:
        # Unknown errors return 500 so Stripe redelivers
        _record_billing_event(stripe_event, "failed", error=str(e))
        logger.error(f"Unexpected error handling {event_type}: {e}", exc_info=True)
        return error_response(500, "processing_failed", "Processing failed")

    return _received(stripe_event, **extra)
