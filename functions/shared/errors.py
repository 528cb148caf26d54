"""
Error taxonomy for the billing endpoints.

Every error knows its HTTP status and machine-readable code so handlers can
turn it into a response with ``to_response()``.
"""

from typing import Optional

from shared.response_utils import error_response


class APIError(Exception):
    """Base class for API errors."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 400,
        details: Optional[dict] = None,
        suggestion: Optional[str] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.suggestion = suggestion
        super().__init__(message)

    def to_response(self, origin: Optional[str] = None) -> dict:
        """Convert to API Gateway response format."""
        return error_response(
            self.status_code,
            self.code,
            self.message,
            details=self.details,
            suggestion=self.suggestion,
            origin=origin,
        )


class MissingSignatureError(APIError):
    """Raised when the Stripe-Signature header is absent."""

    def __init__(self, message: str = "Missing Stripe signature"):
        super().__init__(code="missing_signature", message=message, status_code=400)


class InvalidSignatureError(APIError):
    """Raised when the webhook signature does not match the payload."""

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(code="invalid_signature", message=message, status_code=400)


class MissingSecretError(APIError):
    """Raised when the webhook signing secret is not configured."""

    def __init__(self, message: str = "Webhook not configured"):
        super().__init__(code="webhook_not_configured", message=message, status_code=500)


class BillingProviderError(APIError):
    """Raised when a Stripe API call fails. Safe for the caller to retry."""

    def __init__(self, operation: str, error: str):
        super().__init__(
            code="billing_provider_error",
            message="Failed to reach billing provider",
            status_code=503,
            details={"operation": operation, "error": error},
            suggestion="Please try again in a few minutes, or contact support if the issue persists.",
        )
        self.operation = operation


class StateWriteError(APIError):
    """Raised when the subscription state could not be persisted."""

    def __init__(self, user_id: str, error: str):
        super().__init__(
            code="state_write_failed",
            message="Failed to update subscription",
            status_code=500,
            details={"error": error},
        )
        self.user_id = user_id


class UnauthorizedError(APIError):
    """Raised when the bearer session token is missing or invalid."""

    def __init__(self, code: str = "unauthorized", message: str = "Authentication required"):
        super().__init__(code=code, message=message, status_code=401)
