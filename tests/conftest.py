"""
Shared pytest fixtures for Daygo billing tests.
"""

import hashlib
import hmac
import json
import os
import sys
import time

import boto3
import pytest
from moto import mock_aws

# Add functions directory to Python path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "functions"))

TEST_WEBHOOK_SECRET = "whsec_test_secret_key"
TEST_STRIPE_API_KEY = "sk_test_xxx"
TEST_SESSION_SECRET = "test-session-secret"


def pytest_configure(config):
    """Set AWS credentials before test collection.

    This runs before test collection starts, ensuring boto3 resource
    creation during imports doesn't fail with NoRegionError.
    """
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
    os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
    os.environ.setdefault("AWS_REGION", "us-east-1")


@pytest.fixture(autouse=True)
def aws_credentials():
    """Set fake AWS credentials for all tests."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
    os.environ["AWS_REGION"] = "us-east-1"


@pytest.fixture(autouse=True)
def reset_aws_clients():
    """Reset shared AWS client singletons between tests."""
    yield
    from shared.aws_clients import reset_clients
    reset_clients()


@pytest.fixture(autouse=True)
def reset_secret_caches():
    """Reset cached Stripe and session secrets between tests."""
    yield
    import shared.billing_utils as billing_utils
    import shared.session_auth as session_auth

    billing_utils._stripe_secrets_cache = (None, None)
    billing_utils._stripe_secrets_cache_time = 0.0
    session_auth._session_secret_cache = None
    session_auth._session_secret_cache_time = 0.0


def create_dynamodb_tables(dynamodb):
    """Create all DynamoDB tables.

    Args:
        dynamodb: boto3 DynamoDB resource
    """
    dynamodb.create_table(
        TableName="daygo-subscriptions",
        KeySchema=[{"AttributeName": "user_id", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "user_id", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )

    dynamodb.create_table(
        TableName="daygo-users",
        KeySchema=[{"AttributeName": "user_id", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "user_id", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )

    # Billing events table for webhook audit trail
    dynamodb.create_table(
        TableName="daygo-billing-events",
        KeySchema=[
            {"AttributeName": "pk", "KeyType": "HASH"},   # event_id
            {"AttributeName": "sk", "KeyType": "RANGE"},  # event_type
        ],
        AttributeDefinitions=[
            {"AttributeName": "pk", "AttributeType": "S"},
            {"AttributeName": "sk", "AttributeType": "S"},
            {"AttributeName": "customer_id", "AttributeType": "S"},
            {"AttributeName": "processed_at", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": "customer-index",
                "KeySchema": [
                    {"AttributeName": "customer_id", "KeyType": "HASH"},
                    {"AttributeName": "processed_at", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        BillingMode="PAY_PER_REQUEST",
    )


@pytest.fixture
def mock_dynamodb():
    """Provide mocked DynamoDB with tables."""
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="us-east-1")
        create_dynamodb_tables(dynamodb)
        yield dynamodb


@pytest.fixture
def stripe_secrets():
    """Pre-populate the Stripe secrets cache."""
    import shared.billing_utils as billing_utils

    billing_utils._stripe_secrets_cache = (TEST_STRIPE_API_KEY, TEST_WEBHOOK_SECRET)
    billing_utils._stripe_secrets_cache_time = 9999999999.0
    return TEST_STRIPE_API_KEY, TEST_WEBHOOK_SECRET


@pytest.fixture
def session_secret():
    """Pre-populate the session secret cache."""
    import shared.session_auth as session_auth

    session_auth._session_secret_cache = TEST_SESSION_SECRET
    session_auth._session_secret_cache_time = 9999999999.0
    return TEST_SESSION_SECRET


def make_session_token(user_id="user_123", email="test@example.com", expires_in=3600, secret=TEST_SESSION_SECRET):
    """Signed bearer token for the given user."""
    from shared.session_auth import create_session_token

    data = {"user_id": user_id, "exp": int(time.time()) + expires_in}
    if email is not None:
        data["email"] = email
    return create_session_token(data, secret)


def sign_payload(payload: str, secret: str = TEST_WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a Stripe-Signature header for ``payload``."""
    timestamp = timestamp if timestamp is not None else int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_stripe_event(event_type: str, data_object: dict, event_id: str = "evt_test_123") -> dict:
    """Stripe event envelope."""
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": 1700000000,
        "livemode": False,
        "data": {"object": data_object},
    }


@pytest.fixture
def api_gateway_event():
    """Base API Gateway event for Lambda handler tests."""
    return {
        "httpMethod": "POST",
        "headers": {},
        "pathParameters": {},
        "queryStringParameters": {},
        "body": None,
        "requestContext": {
            "identity": {"sourceIp": "127.0.0.1"},
        },
    }


@pytest.fixture
def signed_webhook_event(api_gateway_event, stripe_secrets):
    """Factory: API Gateway event carrying a correctly signed Stripe event."""

    def _build(event_type: str, data_object: dict, event_id: str = "evt_test_123") -> dict:
        payload = json.dumps(make_stripe_event(event_type, data_object, event_id))
        api_gateway_event["body"] = payload
        api_gateway_event["headers"] = {"Stripe-Signature": sign_payload(payload)}
        return api_gateway_event

    return _build


@pytest.fixture
def active_subscription():
    """Active Stripe subscription with Daygo metadata."""
    return {
        "id": "sub_123",
        "object": "subscription",
        "customer": "cus_123",
        "status": "active",
        "metadata": {"userId": "u1", "tier": "pro"},
        "items": {"data": [{"price": {"id": "price_pro", "unit_amount": 800, "metadata": {}}}]},
    }
