"""Inbound webhook relay pipeline.

Pipeline stages:
1. Validate payload fields
2. Bot identity check
3. Build the canonical message
4. Sinks, each isolated from the others' failures:
   a. Recent message buffer
   b. Real-time fan-out
   c. Persistent store write (background)
5. Audit log
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any

from botrelay.models import AuditEvent, AuditEventType, InboundMessage, RiskLevel
from botrelay.webhook.ingest import UnknownBotError, ValidationError
from botrelay.webhook.models import RelayResponse

if TYPE_CHECKING:
    from botrelay.audit.logger import AuditLogger
    from botrelay.webhook.buffer import RecentMessageBuffer
    from botrelay.webhook.fanout import FanoutHub
    from botrelay.webhook.ingest import MessageIngestor
    from botrelay.webhook.persistence import MessageStoreWriter

logger = logging.getLogger(__name__)


class WebhookRelayPipeline:
    """Runs an inbound payload through ingestion and the three sinks."""

    def __init__(
        self,
        ingestor: MessageIngestor,
        buffer: RecentMessageBuffer,
        hub: FanoutHub | None = None,
        writer: MessageStoreWriter | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._ingestor = ingestor
        self._buffer = buffer
        self._hub = hub
        self._writer = writer
        self._audit = audit_logger

    async def relay(
        self,
        payload: Any,
        request_id: str | None = None,
        source_ip: str | None = None,
    ) -> RelayResponse:
        request_id = request_id or str(uuid.uuid4())

        # Stages 1-3: validation, identity, canonical record
        try:
            message = await self._ingestor.ingest(payload, request_id)
        except ValidationError as e:
            logger.info("[%s] Rejected payload: %s", request_id, e)
            self._audit_rejection(request_id, source_ip, "validation", str(e))
            return RelayResponse({"success": False, "error": str(e)}, status_code=400)
        except UnknownBotError as e:
            logger.info("[%s] Rejected unknown bot %s", request_id, e.bot_id)
            self._audit_rejection(request_id, source_ip, "unknown_bot", str(e))
            return RelayResponse({"success": False, "error": str(e)}, status_code=400)

        # Stage 4: sinks
        self._store_in_buffer(message)
        self._fan_out(message)
        self._persist(message)

        # Stage 5: audit
        if self._audit:
            self._audit.log(AuditEvent(
                event_type=AuditEventType.MESSAGE_INGESTED,
                source_ip=source_ip,
                request_id=request_id,
                action="ingest",
                result="success",
                risk_level=RiskLevel.INFO,
                details={
                    "bot_id": message.bot_id,
                    "message_id": message.id,
                    "message_type": message.message_type.value,
                },
            ))

        return RelayResponse(
            {
                "success": True,
                "messageId": message.id,
                "message": "Webhook received and processed",
            },
            status_code=200,
            message=message,
        )

    def _store_in_buffer(self, message: InboundMessage) -> None:
        try:
            self._buffer.push(message)
        except Exception:
            logger.exception("[%s] Failed to buffer message %s", message.request_id, message.id)

    def _fan_out(self, message: InboundMessage) -> None:
        if self._hub is None:
            return
        try:
            frames = self._hub.publish(message)
        except Exception:
            logger.exception("[%s] Failed to publish message %s", message.request_id, message.id)
            return
        logger.debug("[%s] Published message %s in %d frame(s)", message.request_id, message.id, frames)

    def _persist(self, message: InboundMessage) -> None:
        if self._writer is None:
            return
        try:
            self._writer.schedule(message)
        except Exception:
            logger.exception("[%s] Failed to schedule persistence for %s", message.request_id, message.id)

    def _audit_rejection(
        self, request_id: str, source_ip: str | None, reason: str, error: str,
    ) -> None:
        if self._audit:
            self._audit.log(AuditEvent(
                event_type=AuditEventType.MESSAGE_REJECTED,
                source_ip=source_ip,
                request_id=request_id,
                action="ingest",
                result="rejected",
                risk_level=RiskLevel.LOW,
                details={"reason": reason, "error": error},
            ))
