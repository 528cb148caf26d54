# Shared utilities package
from .constants import TIER_LIMITS, TIERS
from .errors import APIError
from .response_utils import error_response, success_response
from .subscription_store import get_subscription_state, write_subscription_state

__all__ = [
    "TIER_LIMITS",
    "TIERS",
    "APIError",
    "error_response",
    "success_response",
    "get_subscription_state",
    "write_subscription_state",
]
