"""
Classify Stripe billing events and resolve the tier they imply.

Flow for a verified event:

1. ``classify_event`` maps the Stripe event type to a ``Transition``.
2. ``load_subscription`` produces the subscription the transition refers to.
   Invoice events only reference a subscription id, so it is fetched from
   Stripe. Subscriptions created through Checkout can arrive before their
   metadata is set; for those the checkout session's metadata is used.
3. ``resolve_effective_tier`` turns the subscription into the tier that
   should be stored, or None when the event carries nothing actionable.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from shared.billing_utils import find_checkout_session, retrieve_subscription
from shared.constants import (
    ACTIVE_STATUS,
    FREE_TIER,
    METADATA_TIER,
    METADATA_USER_ID,
    PAID_TIERS,
)
from shared.errors import BillingProviderError

logger = logging.getLogger(__name__)


class Transition(Enum):
    """Subscription lifecycle transition implied by a Stripe event."""

    SUBSCRIPTION_ACTIVATED = "subscription_activated"
    SUBSCRIPTION_CANCELED = "subscription_canceled"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    UNHANDLED = "unhandled"


EVENT_TRANSITIONS = {
    "customer.subscription.created": Transition.SUBSCRIPTION_ACTIVATED,
    "customer.subscription.updated": Transition.SUBSCRIPTION_ACTIVATED,
    "customer.subscription.deleted": Transition.SUBSCRIPTION_CANCELED,
    "invoice.payment_succeeded": Transition.PAYMENT_SUCCEEDED,
    "invoice.payment_failed": Transition.PAYMENT_FAILED,
}

# Invoices carry a subscription id, not the subscription itself
INVOICE_TRANSITIONS = (Transition.PAYMENT_SUCCEEDED, Transition.PAYMENT_FAILED)


@dataclass(frozen=True)
class TierResolution:
    """State to persist for one user."""

    user_id: str
    tier: str
    status: str
    subscription_id: Optional[str]


def classify_event(event_type: str) -> Transition:
    """Map a Stripe event type to a lifecycle transition."""
    transition = EVENT_TRANSITIONS.get(event_type, Transition.UNHANDLED)
    if transition is Transition.UNHANDLED:
        logger.info(f"Unhandled event type: {event_type}")
    return transition


def get_invoice_subscription_id(invoice: dict) -> Optional[str]:
    """Subscription id referenced by an invoice.

    Newer Stripe API versions moved the field under
    ``parent.subscription_details``.
    """
    subscription = invoice.get("subscription")
    if not subscription:
        parent = invoice.get("parent") or {}
        subscription = (parent.get("subscription_details") or {}).get("subscription")

    # Expanded subscription object
    if isinstance(subscription, dict):
        return subscription.get("id")
    return subscription or None


def _metadata_from_checkout_session(subscription_id: str) -> dict:
    """Metadata stamped on the checkout session that created the subscription."""
    try:
        session = find_checkout_session(subscription_id)
    except BillingProviderError as e:
        logger.error(f"Failed to retrieve checkout session for {subscription_id}: {e.details.get('error')}")
        return {}

    if not session:
        logger.info(f"No checkout session found for subscription {subscription_id}")
        return {}

    metadata = session.get("metadata") or {}
    logger.info(
        f"Found metadata in checkout session {session.get('id')}: "
        f"userId={metadata.get(METADATA_USER_ID)}, tier={metadata.get(METADATA_TIER)}"
    )
    return {key: metadata.get(key) for key in (METADATA_USER_ID, METADATA_TIER) if metadata.get(key)}


def load_subscription(transition: Transition, event_object: dict, event_type: str) -> Optional[dict]:
    """
    Return the subscription object the tier should be resolved from.

    Args:
        transition: Result of classify_event
        event_object: ``data.object`` of the Stripe event
        event_type: Raw Stripe event type

    Returns:
        Subscription dict, or None when the event references no subscription

    Raises:
        BillingProviderError: fetching the invoice's subscription failed
    """
    if transition is Transition.UNHANDLED:
        return None

    if transition in INVOICE_TRANSITIONS:
        subscription_id = get_invoice_subscription_id(event_object)
        if not subscription_id:
            logger.info(f"Invoice {event_object.get('id')} has no subscription, skipping")
            return None
        subscription = retrieve_subscription(subscription_id)
    else:
        subscription = event_object

    metadata = dict(subscription.get("metadata") or {})
    if not metadata.get(METADATA_USER_ID) and event_type == "customer.subscription.created":
        logger.info("Subscription metadata has no userId, checking checkout session")
        metadata.update(_metadata_from_checkout_session(subscription.get("id")))

    return {
        "id": subscription.get("id"),
        "status": subscription.get("status"),
        "metadata": metadata,
    }


def resolve_effective_tier(transition: Transition, subscription: dict) -> Optional[TierResolution]:
    """
    Derive the tier to store for the subscription's user.

    Any status other than "active" collapses to free; there is no grace
    period tier. Returns None (no-op) when metadata lacks a userId or names a
    tier outside pro/team.
    """
    metadata = subscription.get("metadata") or {}
    subscription_id = subscription.get("id")
    status = subscription.get("status") or ""

    user_id = metadata.get(METADATA_USER_ID)
    if not user_id:
        logger.warning(f"No userId in subscription metadata for {subscription_id}")
        return None

    tier = metadata.get(METADATA_TIER)
    if tier not in PAID_TIERS:
        logger.warning(f"Invalid tier in subscription metadata for {subscription_id}: {tier!r}")
        return None

    is_active = transition is Transition.PAYMENT_SUCCEEDED or (
        transition is Transition.SUBSCRIPTION_ACTIVATED and status == ACTIVE_STATUS
    )
    effective_tier = tier if is_active else FREE_TIER

    return TierResolution(
        user_id=user_id,
        tier=effective_tier,
        status=status,
        subscription_id=subscription_id,
    )
