"""In-memory registry of outbound webhook subscriptions."""

from __future__ import annotations

import secrets
from collections.abc import Iterable
from datetime import UTC, datetime

import httpx

from botrelay.models import WebhookEventType, WebhookSubscription


class SubscriptionNotFoundError(Exception):
    """Raised when a subscription id is not registered."""

    pass


def validate_url(url: str) -> str:
    """Return ``url`` if it is a well-formed http(s) URL, else raise ValueError."""
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError) as e:
        raise ValueError(f"Invalid subscription URL: {url!r}") from e
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise ValueError(f"Subscription URL must be absolute http(s): {url!r}")
    return url


class SubscriptionRegistry:
    """Subscriptions keyed by id, kept in insertion order.

    All operations are synchronous and touch no external I/O.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, WebhookSubscription] = {}

    def create(
        self, url: str, events: Iterable[WebhookEventType | str],
    ) -> WebhookSubscription:
        event_set = list(dict.fromkeys(WebhookEventType(e) for e in events))
        if not event_set:
            raise ValueError("At least one event type is required")
        subscription = WebhookSubscription(
            url=validate_url(url),
            events=event_set,
            secret=secrets.token_hex(32),
        )
        self._subscriptions[subscription.id] = subscription
        return subscription

    def delete(self, subscription_id: str) -> bool:
        return self._subscriptions.pop(subscription_id, None) is not None

    def get(self, subscription_id: str) -> WebhookSubscription | None:
        return self._subscriptions.get(subscription_id)

    def list(self) -> list[WebhookSubscription]:
        return list(self._subscriptions.values())

    def matching(self, event_type: WebhookEventType | str) -> list[WebhookSubscription]:
        """Active subscriptions that listen for ``event_type``."""
        event = WebhookEventType(event_type)
        return [
            s for s in self._subscriptions.values()
            if s.is_active and event in s.events
        ]

    def set_active(self, subscription_id: str, active: bool) -> WebhookSubscription:
        current = self._subscriptions.get(subscription_id)
        if current is None:
            raise SubscriptionNotFoundError(f"Subscription not found: {subscription_id}")
        updated = current.model_copy(update={
            "is_active": active,
            "updated_at": datetime.now(UTC).isoformat(),
        })
        self._subscriptions[subscription_id] = updated
        return updated

    def __len__(self) -> int:
        return len(self._subscriptions)
