"""Real-time fan-out of ingested messages to connected subscribers.

Every published message goes out on two channels:
- the global channel, received by every connected subscriber
- the bot channel ``bot:<botId>``, received by subscribers that joined it

Delivery is at-most-once and best-effort. A subscriber whose queue is full
misses the event; subscribers that connect later get no replay.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from botrelay.models import InboundMessage

logger = logging.getLogger(__name__)

GLOBAL_CHANNEL = "global"
MESSAGE_EVENT = "webhook_message"

_DEFAULT_QUEUE_SIZE = 100


def bot_channel(bot_id: str) -> str:
    return f"bot:{bot_id}"


@dataclass(frozen=True)
class FanoutEvent:
    """One server-to-client frame."""

    event: str
    data: dict[str, Any]
    channel: str = GLOBAL_CHANNEL

    def to_frame(self) -> dict[str, Any]:
        return {"event": self.event, "channel": self.channel, "data": self.data}


@dataclass(eq=False)
class Subscriber:
    id: int
    queue: asyncio.Queue[FanoutEvent]
    rooms: set[str] = field(default_factory=set)


class FanoutHub:
    """Tracks connected subscribers and their bot rooms."""

    def __init__(self, queue_size: int = _DEFAULT_QUEUE_SIZE) -> None:
        self._queue_size = queue_size
        self._subscribers: dict[int, Subscriber] = {}
        self._rooms: dict[str, set[int]] = {}
        self._ids = itertools.count(1)

    def connect(self) -> Subscriber:
        subscriber = Subscriber(id=next(self._ids), queue=asyncio.Queue(self._queue_size))
        self._subscribers[subscriber.id] = subscriber
        logger.info("Subscriber %d connected", subscriber.id)
        return subscriber

    def disconnect(self, subscriber: Subscriber) -> None:
        self._subscribers.pop(subscriber.id, None)
        for room in subscriber.rooms:
            members = self._rooms.get(room)
            if members is None:
                continue
            members.discard(subscriber.id)
            if not members:
                del self._rooms[room]
        subscriber.rooms.clear()
        logger.info("Subscriber %d disconnected", subscriber.id)

    def subscribe_to_bot(self, subscriber: Subscriber, bot_id: str) -> bool:
        """Join the bot's channel. Returns False if already a member."""
        room = bot_channel(bot_id)
        if room in subscriber.rooms:
            return False
        subscriber.rooms.add(room)
        self._rooms.setdefault(room, set()).add(subscriber.id)
        logger.info("Subscriber %d joined %s", subscriber.id, room)
        return True

    @property
    def connected(self) -> int:
        return len(self._subscribers)

    def members(self, bot_id: str) -> int:
        return len(self._rooms.get(bot_channel(bot_id), ()))

    def publish(self, message: InboundMessage) -> int:
        """Emit ``message`` globally and to its bot channel.

        Returns the number of frames enqueued.
        """
        data = message.to_wire()
        delivered = 0
        for subscriber in list(self._subscribers.values()):
            delivered += self.send(subscriber, FanoutEvent(MESSAGE_EVENT, data))

        room = bot_channel(message.bot_id)
        for subscriber_id in list(self._rooms.get(room, ())):
            subscriber = self._subscribers.get(subscriber_id)
            if subscriber is not None:
                delivered += self.send(subscriber, FanoutEvent(MESSAGE_EVENT, data, room))
        return delivered

    def send(self, subscriber: Subscriber, event: FanoutEvent) -> bool:
        try:
            subscriber.queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                "Subscriber %d queue full, dropped %s on %s",
                subscriber.id, event.event, event.channel,
            )
            return False
        return True


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def handle_client_frame(hub: FanoutHub, subscriber: Subscriber, raw: str) -> None:
    """Apply one client frame; replies are queued to the same subscriber.

    Frames: ``{"event": "subscribe_to_bot", "botId": ...}`` and
    ``{"event": "message", "data": ...}`` (echoed back).
    """
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError:
        hub.send(subscriber, FanoutEvent("error", {"error": "Invalid JSON frame"}))
        return
    if not isinstance(frame, dict):
        hub.send(subscriber, FanoutEvent("error", {"error": "Frame must be an object"}))
        return

    event = frame.get("event")
    if event == "subscribe_to_bot":
        bot_id = frame.get("botId")
        if not isinstance(bot_id, str) or not bot_id:
            hub.send(subscriber, FanoutEvent("error", {"error": "botId is required"}))
            return
        hub.subscribe_to_bot(subscriber, bot_id)
        hub.send(subscriber, FanoutEvent("bot_subscription", {
            "status": "subscribed",
            "botId": bot_id,
            "timestamp": _now_iso(),
        }))
    elif event == "message":
        data = frame.get("data")
        echo = dict(data) if isinstance(data, dict) else {"data": data}
        echo.update({"receivedAt": _now_iso(), "echo": True})
        hub.send(subscriber, FanoutEvent("message_echo", echo))
    else:
        hub.send(subscriber, FanoutEvent("error", {"error": f"Unknown event: {event}"}))
