from typing import Optional


class BillingError(Exception):
    """Base class for every error raised by the billing core."""
    code = "BILLING_ERROR"


class GatewayError(BillingError):
    """
    Raised when the Stripe API rejects a request or cannot be reached.

    The message is the provider's own error message, verbatim.
    """
    code = "PROVIDER_ERROR"

    def __init__(self, message: str, http_status: Optional[int] = None, stripe_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.http_status = http_status
        self.stripe_code = stripe_code


class WebhookSignatureError(BillingError):
    """Raised when a webhook fails signature verification."""
    code = "UNAUTHORIZED"


class MalformedEventError(BillingError):
    """Raised when a webhook event lacks a field its handler requires."""
    code = "MALFORMED_EVENT"


class ServiceError(BillingError):
    """Raised by the billing service; carries an HTTP status for the route layer."""

    def __init__(self, code: str, status_code: int, message: str, payload: Optional[dict] = None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.message = message
        self.payload = payload

    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "message": self.message, **(self.payload or {})}}
