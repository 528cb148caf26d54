"""
Tests for Stripe webhook signature verification.
"""

import base64
import json
import time

import pytest

from conftest import TEST_WEBHOOK_SECRET, sign_payload
from shared.errors import (
    APIError,
    InvalidSignatureError,
    MissingSecretError,
    MissingSignatureError,
)
from shared.webhook_signature import get_raw_body, get_signature_header, verify_webhook

PAYLOAD = json.dumps({"id": "evt_1", "type": "customer.subscription.updated", "data": {"object": {}}})


class TestVerifyWebhook:
    """Tests for verify_webhook."""

    def test_valid_signature_returns_parsed_event(self):
        """Should return the parsed event when signed with the configured secret."""
        event = verify_webhook(PAYLOAD, sign_payload(PAYLOAD), TEST_WEBHOOK_SECRET)

        assert event["id"] == "evt_1"
        assert event["type"] == "customer.subscription.updated"

    def test_missing_header_raises(self):
        """Should raise MissingSignatureError when header is absent."""
        with pytest.raises(MissingSignatureError) as exc_info:
            verify_webhook(PAYLOAD, None, TEST_WEBHOOK_SECRET)

        assert exc_info.value.status_code == 400
        assert exc_info.value.code == "missing_signature"

    def test_missing_header_checked_before_secret(self):
        """A missing header is a client error even when the secret is missing too."""
        with pytest.raises(MissingSignatureError):
            verify_webhook(PAYLOAD, "", None)

    def test_missing_secret_raises(self):
        """Should raise MissingSecretError when no secret is configured."""
        with pytest.raises(MissingSecretError) as exc_info:
            verify_webhook(PAYLOAD, sign_payload(PAYLOAD), None)

        assert exc_info.value.status_code == 500

    def test_tampered_payload_rejected(self):
        """Any change to the body invalidates the signature."""
        header = sign_payload(PAYLOAD)
        tampered = PAYLOAD.replace("evt_1", "evt_2")

        with pytest.raises(InvalidSignatureError):
            verify_webhook(tampered, header, TEST_WEBHOOK_SECRET)

    def test_reserialized_payload_rejected(self):
        """Re-serializing the JSON changes the bytes and breaks the signature."""
        header = sign_payload(PAYLOAD)
        reserialized = json.dumps(json.loads(PAYLOAD), indent=2)

        with pytest.raises(InvalidSignatureError):
            verify_webhook(reserialized, header, TEST_WEBHOOK_SECRET)

    def test_wrong_secret_rejected(self):
        """Should reject a payload signed with a different secret."""
        header = sign_payload(PAYLOAD, secret="whsec_WRONG_secret")

        with pytest.raises(InvalidSignatureError):
            verify_webhook(PAYLOAD, header, TEST_WEBHOOK_SECRET)

    def test_expired_timestamp_rejected(self):
        """Should reject signatures older than the tolerance window."""
        header = sign_payload(PAYLOAD, timestamp=int(time.time()) - 360)

        with pytest.raises(InvalidSignatureError):
            verify_webhook(PAYLOAD, header, TEST_WEBHOOK_SECRET)

    def test_malformed_header_rejected(self):
        """Should reject a header with no timestamp."""
        with pytest.raises(InvalidSignatureError):
            verify_webhook(PAYLOAD, "v1=abc123", TEST_WEBHOOK_SECRET)

    def test_accepts_bytes_payload(self):
        """Raw bytes are verified the same as the decoded string."""
        event = verify_webhook(PAYLOAD.encode("utf-8"), sign_payload(PAYLOAD), TEST_WEBHOOK_SECRET)
        assert event["id"] == "evt_1"

    def test_signed_non_object_payload_rejected(self):
        """A correctly signed body that is not an event object is rejected."""
        payload = json.dumps(["not", "an", "event"])

        with pytest.raises(APIError) as exc_info:
            verify_webhook(payload, sign_payload(payload), TEST_WEBHOOK_SECRET)

        assert exc_info.value.code == "invalid_webhook_payload"
        assert exc_info.value.status_code == 400


class TestRequestHelpers:
    """Tests for raw body and header extraction."""

    def test_signature_header_lookup_is_case_insensitive(self):
        assert get_signature_header({"headers": {"Stripe-Signature": "a"}}) == "a"
        assert get_signature_header({"headers": {"stripe-signature": "b"}}) == "b"
        assert get_signature_header({"headers": {"STRIPE-SIGNATURE": "c"}}) == "c"

    def test_signature_header_missing(self):
        assert get_signature_header({"headers": None}) is None
        assert get_signature_header({}) is None

    def test_raw_body_plain(self):
        assert get_raw_body({"body": PAYLOAD}) == PAYLOAD

    def test_raw_body_base64_decoded(self):
        """API Gateway binary bodies are decoded back to the original bytes."""
        encoded = base64.b64encode(PAYLOAD.encode("utf-8")).decode("ascii")
        assert get_raw_body({"body": encoded, "isBase64Encoded": True}) == PAYLOAD.encode("utf-8")

    def test_raw_body_invalid_base64_rejected(self):
        with pytest.raises(InvalidSignatureError):
            get_raw_body({"body": "not base64!", "isBase64Encoded": True})

    def test_raw_body_missing(self):
        assert get_raw_body({"body": None}) == ""


class TestBinaryBodies:
    """Tests for base64-encoded bodies from API Gateway."""

    def test_base64_body_verifies(self):
        encoded = base64.b64encode(PAYLOAD.encode("utf-8")).decode("ascii")
        payload = get_raw_body({"body": encoded, "isBase64Encoded": True})

        event = verify_webhook(payload, sign_payload(PAYLOAD), TEST_WEBHOOK_SECRET)

        assert event["id"] == "evt_1"

    def test_non_utf8_body_raises_invalid_signature(self):
        """Undecodable bytes are an unverifiable delivery, not a crash."""
        encoded = base64.b64encode(b"\xff\xfe").decode("ascii")
        payload = get_raw_body({"body": encoded, "isBase64Encoded": True})

        with pytest.raises(InvalidSignatureError):
            verify_webhook(payload, "t=1,v1=abc", TEST_WEBHOOK_SECRET)
