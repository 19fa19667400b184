"""Process-wide relay state, owned by one object for the process lifetime."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from botrelay.audit.logger import AuditLogger
from botrelay.config import RelayConfig
from botrelay.delivery.engine import DeliveryEngine
from botrelay.delivery.registry import SubscriptionRegistry
from botrelay.store.documents import DocumentStore, SQLiteDocumentStore
from botrelay.webhook.buffer import RecentMessageBuffer
from botrelay.webhook.fanout import FanoutHub
from botrelay.webhook.identity import BotIdentityChecker
from botrelay.webhook.ingest import MessageIngestor
from botrelay.webhook.persistence import MessageStoreWriter
from botrelay.webhook.relay import WebhookRelayPipeline

logger = logging.getLogger(__name__)


@dataclass
class RelayService:
    config: RelayConfig
    store: DocumentStore
    identity: BotIdentityChecker
    buffer: RecentMessageBuffer
    hub: FanoutHub
    writer: MessageStoreWriter
    pipeline: WebhookRelayPipeline
    registry: SubscriptionRegistry
    engine: DeliveryEngine
    audit_logger: AuditLogger | None = None

    @classmethod
    def build(
        cls,
        config: RelayConfig,
        store: DocumentStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> RelayService:
        """Wire every component from ``config``.

        ``store``, ``transport`` and ``sleep`` replace the SQLite store, the
        outbound HTTP transport and the backoff sleep respectively.
        """
        audit_logger = (
            AuditLogger.from_env(config.audit_log_path) if config.audit_log_path else None
        )
        store = store if store is not None else SQLiteDocumentStore(config.db_path)
        identity = BotIdentityChecker(store, config.fallback_bot_ids)
        buffer = RecentMessageBuffer(config.buffer_size)
        hub = FanoutHub()
        writer = MessageStoreWriter(store)
        pipeline = WebhookRelayPipeline(
            ingestor=MessageIngestor(identity),
            buffer=buffer,
            hub=hub,
            writer=writer,
            audit_logger=audit_logger,
        )
        registry = SubscriptionRegistry()
        engine_kwargs: dict[str, Any] = {}
        if sleep is not None:
            engine_kwargs["sleep"] = sleep
        engine = DeliveryEngine(
            registry,
            timeout=config.delivery_timeout_seconds,
            history_limit=config.delivery_history_limit,
            transport=transport,
            audit_logger=audit_logger,
            **engine_kwargs,
        )
        return cls(
            config=config,
            store=store,
            identity=identity,
            buffer=buffer,
            hub=hub,
            writer=writer,
            pipeline=pipeline,
            registry=registry,
            engine=engine,
            audit_logger=audit_logger,
        )

    async def aclose(self) -> None:
        """Finish in-flight writes and deliveries, then release the store."""
        await self.writer.drain()
        await self.engine.drain()
        close = getattr(self.store, "close", None)
        if callable(close):
            close()
        logger.info("Relay service stopped")
