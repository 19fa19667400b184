"""Outbound webhook delivery with retry and exponential backoff.

Each subscriber delivery is a small state machine:

    PENDING -> SENT -> SUCCEEDED
                    -> FAILED_RETRYING -> (backoff) -> PENDING
                    -> FAILED_TERMINAL

An attempt fails on any non-2xx status or error raised while sending. After failed
attempt ``n`` (0-based) with ``n < MAX_RETRIES`` the engine waits
``backoff_base * 2**n`` seconds and tries again, so a subscriber that always
fails sees ``1 + MAX_RETRIES`` attempts. Every attempt is recorded in the
delivery history before any backoff wait starts.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx

from botrelay.delivery.signing import SIGNATURE_HEADER, encode_body, sign_body
from botrelay.models import (
    AuditEvent,
    AuditEventType,
    DeliveryOutcome,
    RiskLevel,
    WebhookDeliveryStatus,
    WebhookEventType,
    WebhookPayload,
    WebhookSubscription,
)

if TYPE_CHECKING:
    from botrelay.audit.logger import AuditLogger
    from botrelay.delivery.registry import SubscriptionRegistry

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_HISTORY_LIMIT = 1000


class DeliveryError(Exception):
    """A single delivery attempt failed (non-2xx status or transport error)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class DeliveryState(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    SUCCEEDED = "succeeded"
    FAILED_RETRYING = "failed_retrying"
    FAILED_TERMINAL = "failed_terminal"


def backoff_delay(attempt: int, base: float = 1.0) -> float:
    """Delay in seconds before retrying after failed attempt ``attempt``."""
    return base * (2 ** attempt)


@dataclass
class DeliveryAttempt:
    """Mutable state of one logical delivery to one subscriber."""

    subscription: WebhookSubscription
    payload: WebhookPayload
    attempt: int = 0
    state: DeliveryState = DeliveryState.PENDING
    status_code: int | None = None
    error: str | None = None

    def mark_sent(self) -> None:
        self._expect(DeliveryState.PENDING)
        self.state = DeliveryState.SENT

    def succeed(self, status_code: int) -> None:
        self._expect(DeliveryState.SENT)
        self.state = DeliveryState.SUCCEEDED
        self.status_code = status_code
        self.error = None

    def fail(self, error: DeliveryError, max_retries: int = MAX_RETRIES) -> None:
        self._expect(DeliveryState.SENT)
        self.status_code = error.status_code
        self.error = str(error)
        if self.attempt < max_retries:
            self.state = DeliveryState.FAILED_RETRYING
        else:
            self.state = DeliveryState.FAILED_TERMINAL

    def retry(self) -> None:
        self._expect(DeliveryState.FAILED_RETRYING)
        self.attempt += 1
        self.state = DeliveryState.PENDING
        self.status_code = None
        self.error = None

    @property
    def finished(self) -> bool:
        return self.state in (DeliveryState.SUCCEEDED, DeliveryState.FAILED_TERMINAL)

    def _expect(self, state: DeliveryState) -> None:
        if self.state is not state:
            raise RuntimeError(f"Delivery attempt in state {self.state.value}, expected {state.value}")


class DeliveryEngine:
    """Fans application events out to matching subscriptions."""

    def __init__(
        self,
        registry: SubscriptionRegistry,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        backoff_base: float = 1.0,
        max_retries: int = MAX_RETRIES,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._registry = registry
        self._timeout = timeout
        self._backoff_base = backoff_base
        self._max_retries = max_retries
        self._transport = transport
        self._sleep = sleep
        self._audit = audit_logger
        self._history: deque[WebhookDeliveryStatus] = deque(maxlen=history_limit)
        self._pending: set[asyncio.Task[WebhookDeliveryStatus]] = set()

    async def trigger(
        self, event_type: WebhookEventType | str, data: dict[str, Any],
    ) -> WebhookPayload:
        """Start a delivery chain per matching subscription and return the payload.

        Does not wait for deliveries to finish; use ``drain()`` for that.
        """
        payload = WebhookPayload(type=WebhookEventType(event_type), data=data)
        subscriptions = self._registry.matching(payload.type)
        logger.info(
            "Triggering %s (%s) for %d subscription(s)",
            payload.type.value, payload.id, len(subscriptions),
        )
        for subscription in subscriptions:
            task = asyncio.create_task(self.deliver(subscription, payload))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        return payload

    async def deliver(
        self, subscription: WebhookSubscription, payload: WebhookPayload,
    ) -> WebhookDeliveryStatus:
        """Run one delivery chain to completion and return the final record."""
        attempt = DeliveryAttempt(subscription=subscription, payload=payload)
        body = encode_body(payload.model_dump(mode="json"))
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-ID": payload.id,
            "X-Webhook-Event": payload.type.value,
            SIGNATURE_HEADER: sign_body(subscription.secret, body),
        }

        async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
            while True:
                record = await self._attempt(client, attempt, body, headers)
                if attempt.finished:
                    return record
                delay = backoff_delay(attempt.attempt, self._backoff_base)
                logger.info(
                    "Retrying delivery %s to %s in %.1fs (attempt %d failed: %s)",
                    payload.id, subscription.url, delay, attempt.attempt, attempt.error,
                )
                await self._sleep(delay)
                attempt.retry()

    async def _attempt(
        self,
        client: httpx.AsyncClient,
        attempt: DeliveryAttempt,
        body: bytes,
        headers: dict[str, str],
    ) -> WebhookDeliveryStatus:
        attempt.mark_sent()
        try:
            resp = await client.post(attempt.subscription.url, content=body, headers=headers)
            if not resp.is_success:
                raise DeliveryError(f"HTTP {resp.status_code}", status_code=resp.status_code)
        except httpx.HTTPError as e:
            attempt.fail(DeliveryError(str(e) or type(e).__name__), self._max_retries)
        except DeliveryError as e:
            attempt.fail(e, self._max_retries)
        except Exception as e:
            logger.exception(
                "Unexpected error delivering %s to %s", attempt.payload.id, attempt.subscription.url,
            )
            attempt.fail(DeliveryError(str(e) or type(e).__name__), self._max_retries)
        else:
            attempt.succeed(resp.status_code)

        return self._record(attempt)

    def _record(self, attempt: DeliveryAttempt) -> WebhookDeliveryStatus:
        succeeded = attempt.state is DeliveryState.SUCCEEDED
        status = WebhookDeliveryStatus(
            webhook_id=attempt.subscription.id,
            payload=attempt.payload,
            status=DeliveryOutcome.SUCCESS if succeeded else DeliveryOutcome.FAILED,
            status_code=attempt.status_code,
            error=attempt.error,
            retries=attempt.attempt,
        )
        self._history.append(status)

        if succeeded:
            logger.info(
                "Delivered %s to %s (HTTP %s)",
                attempt.payload.id, attempt.subscription.url, attempt.status_code,
            )
        elif attempt.state is DeliveryState.FAILED_TERMINAL:
            logger.error(
                "Giving up on %s to %s after %d attempt(s): %s",
                attempt.payload.id, attempt.subscription.url, attempt.attempt + 1, attempt.error,
            )

        if self._audit:
            self._audit.log(AuditEvent(
                event_type=AuditEventType.DELIVERY_ATTEMPT,
                action=f"deliver:{attempt.payload.type.value}",
                result=status.status.value,
                risk_level=RiskLevel.INFO if succeeded else RiskLevel.MEDIUM,
                details={
                    "webhook_id": attempt.subscription.id,
                    "payload_id": attempt.payload.id,
                    "attempt": attempt.attempt,
                    "status_code": attempt.status_code,
                    "state": attempt.state.value,
                },
            ))
        return status

    def history(self, webhook_id: str | None = None) -> list[WebhookDeliveryStatus]:
        """Recorded attempts, oldest first, optionally for one subscription."""
        if webhook_id is None:
            return list(self._history)
        return [s for s in self._history if s.webhook_id == webhook_id]

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every started delivery chain, retries included."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
