"""Environment-driven configuration for the webhook relay."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

# Bot ids accepted before any bots are registered (local testing, n8n flows).
DEFAULT_FALLBACK_BOT_IDS: tuple[str, ...] = (
    "9U8JhxaBe8Fv8OtLq4KN",
    "test-bot-from-n8n",
    "test-bot-from-curl",
    "test-bot-2",
    "test-bot-3",
)


@dataclass(frozen=True)
class RelayConfig:
    host: str = "0.0.0.0"
    port: int = 3030
    fallback_port: int = 3031
    db_path: str = "data/relay.db"
    fallback_bot_ids: tuple[str, ...] = field(default=DEFAULT_FALLBACK_BOT_IDS)
    buffer_size: int = 100
    admin_token: str | None = None
    audit_log_path: str | None = None
    delivery_timeout_seconds: float = 10.0
    delivery_history_limit: int = 1000

    @classmethod
    def from_env(cls) -> RelayConfig:
        """Build a config from environment variables, keeping defaults for unset ones."""
        raw_ids = os.environ.get("RELAY_FALLBACK_BOT_IDS")
        fallback_ids = (
            tuple(i.strip() for i in raw_ids.split(",") if i.strip())
            if raw_ids is not None
            else DEFAULT_FALLBACK_BOT_IDS
        )
        return cls(
            host=os.environ.get("WEBHOOK_HOST", "0.0.0.0"),
            port=int(os.environ.get("WEBHOOK_PORT", "3030")),
            fallback_port=int(os.environ.get("WEBHOOK_FALLBACK_PORT", "3031")),
            db_path=os.environ.get("RELAY_DB_PATH", "data/relay.db"),
            fallback_bot_ids=fallback_ids,
            buffer_size=int(os.environ.get("RELAY_BUFFER_SIZE", "100")),
            admin_token=os.environ.get("RELAY_ADMIN_TOKEN") or None,
            audit_log_path=os.environ.get("AUDIT_LOG_PATH") or None,
            delivery_timeout_seconds=float(
                os.environ.get("DELIVERY_TIMEOUT_SECONDS", "10"),
            ),
            delivery_history_limit=int(
                os.environ.get("DELIVERY_HISTORY_LIMIT", "1000"),
            ),
        )
