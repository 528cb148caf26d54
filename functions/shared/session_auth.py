"""
Bearer session token authentication.

Tokens have the form ``<base64url(json payload)>.<hex hmac-sha256>`` and are
signed with the session secret from Secrets Manager. The payload carries
``user_id``, ``email`` and ``exp`` (unix seconds).
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
import os
import time
from datetime import datetime, timezone
from typing import Optional

from botocore.exceptions import ClientError

from shared.aws_clients import get_secretsmanager
from shared.errors import UnauthorizedError
from shared.types import SessionData

logger = logging.getLogger(__name__)

# Cached session secret (loaded from Secrets Manager) with TTL
_session_secret_cache = None
_session_secret_cache_time = 0.0
SESSION_SECRET_CACHE_TTL = 300  # 5 minutes - allows secret rotation to take effect


def _get_session_secret() -> str:
    """Retrieve session secret from Secrets Manager (cached with TTL)."""
    global _session_secret_cache, _session_secret_cache_time

    if _session_secret_cache and (time.time() - _session_secret_cache_time) < SESSION_SECRET_CACHE_TTL:
        return _session_secret_cache

    session_secret_arn = os.environ.get("SESSION_SECRET_ARN")
    if not session_secret_arn:
        logger.error("SESSION_SECRET_ARN not configured")
        return ""

    try:
        response = get_secretsmanager().get_secret_value(SecretId=session_secret_arn)
        secret_string = response["SecretString"]
    except ClientError as e:
        logger.error(f"Failed to retrieve session secret: {e}")
        return ""

    try:
        secret_data = json.loads(secret_string)
        _session_secret_cache = secret_data.get("secret", secret_string)
    except (json.JSONDecodeError, AttributeError):
        _session_secret_cache = secret_string

    _session_secret_cache_time = time.time()
    return _session_secret_cache


def _sign(payload: str, secret: str) -> str:
    return hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()


def create_session_token(data: dict, secret: str) -> str:
    """Create a signed session token."""
    payload = base64.urlsafe_b64encode(json.dumps(data).encode()).decode()
    return f"{payload}.{_sign(payload, secret)}"


def verify_session_token(token: str) -> Optional[SessionData]:
    """Verify a session token and return the data if valid."""
    session_secret = _get_session_secret()
    if not session_secret or "." not in token:
        return None

    payload, signature = token.rsplit(".", 1)
    if not hmac.compare_digest(signature, _sign(payload, session_secret)):
        return None

    try:
        data = json.loads(base64.urlsafe_b64decode(payload.encode()))
    except (binascii.Error, ValueError):
        return None

    if not isinstance(data, dict):
        return None

    if data.get("exp", 0) < datetime.now(timezone.utc).timestamp():
        return None

    return data


def get_bearer_token(event: dict) -> Optional[str]:
    """Token from an ``Authorization: Bearer <token>`` header."""
    headers = event.get("headers") or {}
    auth_header = headers.get("authorization") or headers.get("Authorization") or ""
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[len("Bearer "):].strip() or None


def authenticate_request(event: dict) -> SessionData:
    """
    Resolve the calling user from the bearer token.

    Raises:
        UnauthorizedError: token missing, forged, or expired
    """
    token = get_bearer_token(event)
    if not token:
        raise UnauthorizedError("unauthorized", "Authentication required")

    session_data = verify_session_token(token)
    if not session_data or not session_data.get("user_id"):
        raise UnauthorizedError("session_expired", "Session expired. Please log in again.")

    return session_data
