"""
Stripe webhook signature verification.

Stripe signs the exact bytes it sends, so verification must run against the
raw request body. Parsing and re-serializing the JSON first changes the bytes
and breaks the signature.
"""

import base64
import binascii
import json
import logging
from typing import Optional, Union

import stripe

from shared.errors import (
    APIError,
    InvalidSignatureError,
    MissingSecretError,
    MissingSignatureError,
)
from shared.types import StripeEvent

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "stripe-signature"

# Stripe's default replay window for signed timestamps (seconds)
SIGNATURE_TOLERANCE = stripe.Webhook.DEFAULT_TOLERANCE


def get_raw_body(event: dict) -> Union[str, bytes]:
    """Return the request body exactly as Stripe sent it.

    Base64-encoded bodies come back as bytes; ``verify_webhook`` decodes them.

    Raises:
        InvalidSignatureError: body is flagged base64 but is not valid base64
    """
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        try:
            return base64.b64decode(body, validate=True)
        except binascii.Error as e:
            logger.warning(f"Webhook body is not valid base64: {e}")
            raise InvalidSignatureError() from e
    return body


def get_signature_header(event: dict) -> Optional[str]:
    """Case-insensitive lookup of the Stripe-Signature header."""
    headers = event.get("headers") or {}
    for name, value in headers.items():
        if name.lower() == SIGNATURE_HEADER:
            return value
    return None


def verify_webhook(
    payload: Union[str, bytes],
    sig_header: Optional[str],
    secret: Optional[str],
    tolerance: int = SIGNATURE_TOLERANCE,
) -> StripeEvent:
    """
    Verify a webhook delivery and return the parsed event.

    Args:
        payload: Raw request body
        sig_header: Value of the Stripe-Signature header
        secret: Webhook signing secret (whsec_...)
        tolerance: Maximum age of the signed timestamp in seconds

    Raises:
        MissingSignatureError: header absent
        MissingSecretError: no signing secret configured
        InvalidSignatureError: signature does not match payload and secret
    """
    if not sig_header:
        raise MissingSignatureError()

    if not secret:
        raise MissingSecretError()

    try:
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        stripe.WebhookSignature.verify_header(payload, sig_header, secret, tolerance)
    except UnicodeDecodeError as e:
        logger.warning(f"Webhook body is not valid UTF-8: {e}")
        raise InvalidSignatureError() from e
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Invalid Stripe signature: {e}")
        raise InvalidSignatureError() from e

    try:
        event = json.loads(payload)
    except json.JSONDecodeError as e:
        raise APIError("invalid_webhook_payload", "Invalid webhook payload", 400) from e

    if not isinstance(event, dict) or not event.get("type"):
        raise APIError("invalid_webhook_payload", "Invalid webhook payload", 400)

    return event
