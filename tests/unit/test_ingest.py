"""Tests for inbound payload validation and message ingestion."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from botrelay.models import MessageType
from botrelay.webhook.identity import BotIdentityChecker
from botrelay.webhook.ingest import (
    MessageIngestor,
    UnknownBotError,
    ValidationError,
    validate_inbound,
)
from tests.conftest import KNOWN_BOT_ID


def _payload(**kwargs: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "botId": KNOWN_BOT_ID,
        "messageType": "message",
        "content": "hi",
    }
    payload.update(kwargs)
    return payload


def _identity(known: bool = True) -> MagicMock:
    identity = MagicMock(spec=BotIdentityChecker)
    identity.is_known = AsyncMock(return_value=known)
    return identity


class TestValidateInbound:
    def test_valid_payload_parsed(self) -> None:
        fields = validate_inbound(_payload(data={"k": "v"}, timestamp="2026-01-01T00:00:00Z"))
        assert fields.bot_id == KNOWN_BOT_ID
        assert fields.message_type is MessageType.MESSAGE
        assert fields.content == "hi"
        assert fields.data == {"k": "v"}
        assert fields.timestamp == "2026-01-01T00:00:00Z"

    def test_all_missing_fields_reported(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_inbound({})
        assert exc_info.value.missing == ["botId", "messageType", "content"]
        for name in ("botId", "messageType", "content"):
            assert name in str(exc_info.value)

    def test_two_missing_fields_reported_together(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_inbound({"messageType": "status"})
        assert exc_info.value.missing == ["botId", "content"]

    def test_empty_strings_count_as_missing(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_inbound(_payload(botId="", content=""))
        assert exc_info.value.missing == ["botId", "content"]

    def test_wrong_types_reported(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_inbound(_payload(botId=42, content=["x"]))
        assert set(exc_info.value.fields) == {"botId", "content"}

    @pytest.mark.parametrize("kind", ["bogus", "notification", "MESSAGE"])
    def test_unknown_message_type_rejected(self, kind: str) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_inbound(_payload(messageType=kind))
        assert "messageType" in exc_info.value.invalid

    @pytest.mark.parametrize("kind", ["status", "message", "error", "event"])
    def test_every_message_type_accepted(self, kind: str) -> None:
        assert validate_inbound(_payload(messageType=kind)).message_type.value == kind

    def test_missing_and_invalid_combined(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_inbound({"messageType": "bogus", "data": "nope"})
        err = exc_info.value
        assert err.missing == ["botId", "content"]
        assert set(err.invalid) == {"messageType", "data"}

    def test_non_object_body_rejected(self) -> None:
        with pytest.raises(ValidationError):
            validate_inbound(["not", "an", "object"])

    def test_non_string_timestamp_rejected(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_inbound(_payload(timestamp=1700000000))
        assert "timestamp" in exc_info.value.invalid

    def test_data_defaults_to_empty(self) -> None:
        assert validate_inbound(_payload()).data == {}


class TestMessageIngestor:
    @pytest.mark.asyncio
    async def test_ingest_builds_message(self) -> None:
        ingestor = MessageIngestor(_identity())
        before = datetime.now().astimezone()

        message = await ingestor.ingest(_payload(), request_id="req-42")

        assert message.id
        assert message.request_id == "req-42"
        assert datetime.fromisoformat(message.received_at) >= before
        assert message.timestamp == message.received_at
        assert message.data == {}

    @pytest.mark.asyncio
    async def test_caller_timestamp_preserved(self) -> None:
        ingestor = MessageIngestor(_identity())
        message = await ingestor.ingest(_payload(timestamp="2025-05-05T05:05:05Z"))
        assert message.timestamp == "2025-05-05T05:05:05Z"
        assert message.received_at != message.timestamp

    @pytest.mark.asyncio
    async def test_generated_ids_unique(self) -> None:
        ingestor = MessageIngestor(_identity())
        first = await ingestor.ingest(_payload())
        second = await ingestor.ingest(_payload())
        assert first.id != second.id
        assert first.request_id != second.request_id

    @pytest.mark.asyncio
    async def test_unknown_bot_raises(self) -> None:
        ingestor = MessageIngestor(_identity(known=False))
        with pytest.raises(UnknownBotError) as exc_info:
            await ingestor.ingest(_payload(botId="stranger"))
        assert exc_info.value.bot_id == "stranger"
        assert "stranger" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_identity_not_consulted_for_invalid_payload(self) -> None:
        identity = _identity()
        ingestor = MessageIngestor(identity)
        with pytest.raises(ValidationError):
            await ingestor.ingest({"botId": KNOWN_BOT_ID})
        identity.is_known.assert_not_called()
