"""In-memory ring of recently ingested messages, newest first."""

from __future__ import annotations

from collections import deque

from botrelay.models import InboundMessage


class RecentMessageBuffer:
    """Bounded newest-first buffer.

    Default capacity: 100 messages. Not persisted; reset on restart.
    """

    def __init__(self, capacity: int = 100) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        # deque.appendleft with maxlen drops from the right, i.e. the oldest entry
        self._messages: deque[InboundMessage] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def push(self, message: InboundMessage) -> None:
        self._messages.appendleft(message)

    def list_recent(self, bot_id: str | None = None) -> list[InboundMessage]:
        """Return a newest-first copy, optionally only messages from ``bot_id``."""
        if bot_id is None:
            return list(self._messages)
        return [m for m in self._messages if m.bot_id == bot_id]

    def clear(self) -> None:
        self._messages.clear()

    def __len__(self) -> int:
        return len(self._messages)
