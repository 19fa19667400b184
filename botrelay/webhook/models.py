"""Data models for the inbound relay pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from botrelay.models import InboundMessage


@dataclass
class RelayResponse:
    """Pipeline result to return to the webhook caller."""

    body: dict[str, Any]
    status_code: int
    message: InboundMessage | None = None
