"""Best-effort archival of ingested messages to the document store."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from botrelay.models import InboundMessage
from botrelay.store.documents import DocumentStore, StoreUnavailableError

logger = logging.getLogger(__name__)

MESSAGES_COLLECTION = "messages"


def to_document(message: InboundMessage) -> dict[str, Any]:
    return {
        "botId": message.bot_id,
        "messageType": message.message_type.value,
        "content": message.content,
        "timestamp": message.timestamp,
        "receivedAt": message.received_at,
        "data": message.data,
        "processed": True,
        "requestId": message.request_id,
    }


class MessageStoreWriter:
    """Writes messages in background tasks; failures are logged, never raised.

    A message can be acknowledged and fanned out yet never reach the store.
    There is no compensating retry.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._pending: set[asyncio.Task[None]] = set()

    def schedule(self, message: InboundMessage) -> asyncio.Task[None]:
        task = asyncio.create_task(self.write(message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def write(self, message: InboundMessage) -> None:
        try:
            await self._store.create(MESSAGES_COLLECTION, to_document(message), doc_id=message.id)
        except StoreUnavailableError as e:
            logger.error("[%s] Failed to persist message %s: %s", message.request_id, message.id, e)
        except Exception:
            logger.exception("[%s] Unexpected error persisting message %s", message.request_id, message.id)
        else:
            logger.debug("[%s] Persisted message %s", message.request_id, message.id)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every scheduled write to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
