"""Shared test fixtures for the webhook relay."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from botrelay.audit.logger import AuditLogger
from botrelay.models import (
    AuditEvent,
    AuditEventType,
    InboundMessage,
    MessageType,
    RiskLevel,
    WebhookEventType,
    WebhookSubscription,
)
from botrelay.store.documents import SQLiteDocumentStore

KNOWN_BOT_ID = "9U8JhxaBe8Fv8OtLq4KN"


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


@pytest.fixture
def document_store(tmp_path: Path):
    store = SQLiteDocumentStore(str(tmp_path / "relay.db"))
    yield store
    store.close()


# --- Factory functions for test data ---


def make_inbound_message(**kwargs: Any) -> InboundMessage:
    """Factory for InboundMessage with sensible defaults."""
    defaults: dict[str, Any] = {
        "bot_id": KNOWN_BOT_ID,
        "message_type": MessageType.MESSAGE,
        "content": "hi",
        "data": {},
        "timestamp": "2026-01-01T00:00:00+00:00",
        "received_at": "2026-01-01T00:00:01+00:00",
        "request_id": "req-1",
    }
    defaults.update(kwargs)
    return InboundMessage(**defaults)


def make_subscription(**kwargs: Any) -> WebhookSubscription:
    """Factory for WebhookSubscription with sensible defaults."""
    defaults: dict[str, Any] = {
        "url": "http://subscriber.test/hook",
        "events": [WebhookEventType.AGENT_UPDATE],
        "secret": "s" * 64,
    }
    defaults.update(kwargs)
    return WebhookSubscription(**defaults)


def make_audit_event(**kwargs: Any) -> AuditEvent:
    """Factory for AuditEvent with sensible defaults."""
    defaults: dict[str, Any] = {
        "event_type": AuditEventType.MESSAGE_INGESTED,
        "action": "ingest",
        "result": "success",
        "risk_level": RiskLevel.INFO,
    }
    defaults.update(kwargs)
    return AuditEvent(**defaults)
