"""Validation and normalization of inbound webhook payloads."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from botrelay.models import InboundMessage, MessageType
from botrelay.webhook.identity import BotIdentityChecker

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("botId", "messageType", "content")
_VALID_TYPES = ", ".join(t.value for t in MessageType)


class ValidationError(Exception):
    """Raised when an inbound payload is malformed.

    Carries every violation found, not only the first.
    """

    def __init__(self, missing: list[str], invalid: dict[str, str] | None = None) -> None:
        self.missing = missing
        self.invalid = invalid or {}
        parts = []
        if missing:
            parts.append(f"Missing required fields: {', '.join(missing)}")
        parts.extend(self.invalid.values())
        super().__init__("; ".join(parts))

    @property
    def fields(self) -> list[str]:
        return [*self.missing, *self.invalid]


class UnknownBotError(Exception):
    """Raised when the payload references a bot id that is not recognized."""

    def __init__(self, bot_id: str) -> None:
        self.bot_id = bot_id
        super().__init__(f"Invalid botId: {bot_id}")


@dataclass(frozen=True)
class InboundFields:
    bot_id: str
    message_type: MessageType
    content: str
    timestamp: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


def validate_inbound(payload: Any) -> InboundFields:
    """Check required fields and types of a decoded JSON payload."""
    if not isinstance(payload, dict):
        raise ValidationError([], {"body": "Request body must be a JSON object"})

    missing: list[str] = []
    invalid: dict[str, str] = {}

    for name in _REQUIRED_FIELDS:
        value = payload.get(name)
        if value is None or value == "":
            missing.append(name)
        elif not isinstance(value, str):
            invalid[name] = f"{name} must be a string"

    message_type = payload.get("messageType")
    if "messageType" not in missing and "messageType" not in invalid:
        try:
            MessageType(message_type)
        except ValueError:
            invalid["messageType"] = (
                f"Invalid messageType '{message_type}', expected one of: {_VALID_TYPES}"
            )

    timestamp = payload.get("timestamp")
    if timestamp is not None and not isinstance(timestamp, str):
        invalid["timestamp"] = "timestamp must be a string"

    data = payload.get("data")
    if data is not None and not isinstance(data, dict):
        invalid["data"] = "data must be an object"

    if missing or invalid:
        raise ValidationError(missing, invalid)

    return InboundFields(
        bot_id=payload["botId"],
        message_type=MessageType(message_type),
        content=payload["content"],
        timestamp=timestamp or None,
        data=data or {},
    )


class MessageIngestor:
    """Turns a raw payload into an ``InboundMessage`` for a recognized bot."""

    def __init__(self, identity: BotIdentityChecker) -> None:
        self._identity = identity

    async def ingest(self, payload: Any, request_id: str | None = None) -> InboundMessage:
        request_id = request_id or str(uuid.uuid4())
        fields = validate_inbound(payload)

        if not await self._identity.is_known(fields.bot_id):
            raise UnknownBotError(fields.bot_id)

        received_at = datetime.now(UTC).isoformat()
        message = InboundMessage(
            bot_id=fields.bot_id,
            message_type=fields.message_type,
            content=fields.content,
            data=fields.data,
            timestamp=fields.timestamp or received_at,
            received_at=received_at,
            request_id=request_id,
        )
        logger.info("[%s] Accepted message %s from bot %s", request_id, message.id, message.bot_id)
        return message
