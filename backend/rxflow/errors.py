"""
Error types raised by rxflow services.

Each error carries a user-visible message and the HTTP status the API
layer renders it with.
"""

from typing import Optional


class RxFlowError(Exception):
    """Base class for all rxflow errors."""

    status_code = 400
    default_message = "Request failed."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {"error": self.message}


class InvalidSubscriptionInput(RxFlowError):
    """Raised when form fields are missing or malformed."""
    status_code = 400
    default_message = "Invalid subscription data."


class TrackingRequired(RxFlowError):
    """Raised when a shipment is recorded without a tracking number."""
    status_code = 400
    default_message = "A tracking number is required to mark a fulfillment as Shipped."


class AuthenticationError(RxFlowError):
    status_code = 401
    default_message = "Could not authenticate user."


class SubscriptionNotFound(RxFlowError):
    status_code = 404
    default_message = "Subscription not found."


class FulfillmentNotFound(RxFlowError):
    """Raised when a transition names a fulfillment the subscription does not have."""
    status_code = 404
    default_message = "Fulfillment not found."


class AmbiguousFulfillment(RxFlowError):
    """Raised when a date key matches more than one fulfillment."""
    status_code = 409
    default_message = "More than one fulfillment shares this date; address it by fulfillment id."


class ConflictError(RxFlowError):
    """Raised when a caller's expected version no longer matches the stored record."""
    status_code = 409
    default_message = "The subscription was changed by someone else. Reload and try again."


class PersistenceError(RxFlowError):
    """Raised when the subscription store fails a read or write."""
    status_code = 503
    default_message = "The subscription store is unavailable."
