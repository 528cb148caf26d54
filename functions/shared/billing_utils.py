"""Shared billing utilities for Stripe-related operations."""

import json
import logging
import os
import time
from typing import Any, Callable, Optional

import stripe
from botocore.exceptions import ClientError

from shared.aws_clients import get_secretsmanager
from shared.errors import BillingProviderError
from shared.logging_utils import log_external_call

logger = logging.getLogger(__name__)

# Cached Stripe secrets (api key, webhook secret) with TTL
_stripe_secrets_cache: tuple[Optional[str], Optional[str]] = (None, None)
_stripe_secrets_cache_time = 0.0
STRIPE_SECRETS_CACHE_TTL = 300  # 5 minutes


def _read_secret(secret_arn: str, json_field: str) -> Optional[str]:
    """Read a secret that is either a plain string or JSON with ``json_field``."""
    try:
        response = get_secretsmanager().get_secret_value(SecretId=secret_arn)
    except ClientError as e:
        logger.error(f"Failed to retrieve secret {json_field}: {e}")
        return None

    secret_value = response.get("SecretString", "")
    try:
        secret_json = json.loads(secret_value)
    except json.JSONDecodeError:
        return secret_value or None
    if isinstance(secret_json, dict):
        return secret_json.get(json_field) or secret_value
    return secret_value or None


def get_stripe_secrets() -> tuple[Optional[str], Optional[str]]:
    """Retrieve Stripe API key and webhook secret from Secrets Manager (cached with TTL)."""
    global _stripe_secrets_cache, _stripe_secrets_cache_time

    if _stripe_secrets_cache[0] and (time.time() - _stripe_secrets_cache_time) < STRIPE_SECRETS_CACHE_TTL:
        return _stripe_secrets_cache

    # Read at runtime so secret ARNs can change between invocations in tests
    stripe_secret_arn = os.environ.get("STRIPE_SECRET_ARN")
    webhook_secret_arn = os.environ.get("STRIPE_WEBHOOK_SECRET_ARN")

    api_key = _read_secret(stripe_secret_arn, "key") if stripe_secret_arn else None
    webhook_secret = _read_secret(webhook_secret_arn, "secret") if webhook_secret_arn else None

    _stripe_secrets_cache = (api_key, webhook_secret)
    _stripe_secrets_cache_time = time.time()
    return api_key, webhook_secret


def get_stripe_api_key() -> Optional[str]:
    """Stripe secret API key, or None when not configured."""
    return get_stripe_secrets()[0]


def call_stripe(operation: str, func: Callable[..., Any], **params) -> Any:
    """Invoke a Stripe SDK call, logging latency and normalizing failures.

    Raises:
        BillingProviderError: on any Stripe SDK error.
    """
    start = time.time()
    try:
        result = func(**params)
    except stripe.StripeError as e:
        latency_ms = (time.time() - start) * 1000
        log_external_call(logger, "stripe", operation, False, latency_ms, error=str(e))
        raise BillingProviderError(operation, str(e)) from e

    latency_ms = (time.time() - start) * 1000
    log_external_call(logger, "stripe", operation, True, latency_ms)
    return result


def retrieve_subscription(subscription_id: str) -> dict:
    """Fetch a subscription by id."""
    return call_stripe("subscription.retrieve", stripe.Subscription.retrieve, id=subscription_id)


def find_customer_by_email(email: str) -> Optional[dict]:
    """First Stripe customer registered with ``email``, if any."""
    customers = call_stripe("customer.list", stripe.Customer.list, email=email, limit=1)
    data = customers["data"]
    return data[0] if data else None


def find_active_subscription(customer_id: str) -> Optional[dict]:
    """First active subscription of a customer, if any."""
    subscriptions = call_stripe(
        "subscription.list",
        stripe.Subscription.list,
        customer=customer_id,
        status="active",
        limit=1,
    )
    data = subscriptions["data"]
    return data[0] if data else None


def find_checkout_session(subscription_id: str) -> Optional[dict]:
    """Most recent checkout session that created ``subscription_id``."""
    sessions = call_stripe(
        "checkout.session.list",
        stripe.checkout.Session.list,
        subscription=subscription_id,
        limit=1,
    )
    data = sessions["data"]
    return data[0] if data else None
