"""Outbound webhook subscriptions and delivery."""

from botrelay.delivery.engine import (
    MAX_RETRIES,
    DeliveryAttempt,
    DeliveryEngine,
    DeliveryError,
    DeliveryState,
    backoff_delay,
)
from botrelay.delivery.registry import (
    SubscriptionNotFoundError,
    SubscriptionRegistry,
    validate_url,
)
from botrelay.delivery.signing import SIGNATURE_HEADER, sign_body, verify_signature

__all__ = [
    "MAX_RETRIES",
    "SIGNATURE_HEADER",
    # Exceptions
    "DeliveryError",
    "SubscriptionNotFoundError",
    # Components
    "DeliveryAttempt",
    "DeliveryEngine",
    "DeliveryState",
    "SubscriptionRegistry",
    # Helpers
    "backoff_delay",
    "sign_body",
    "validate_url",
    "verify_signature",
]
