"""Shared Pydantic data models for the BotPass webhook relay."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# --- Enums ---


class MessageType(str, Enum):
    STATUS = "status"
    MESSAGE = "message"
    ERROR = "error"
    EVENT = "event"


class WebhookEventType(str, Enum):
    AGENT_UPDATE = "agent.update"
    AGENT_CALL = "agent.call"
    AGENT_RESPONSE = "agent.response"
    AGENT_ERROR = "agent.error"


class DeliveryOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class AuditEventType(str, Enum):
    MESSAGE_INGESTED = "message_ingested"
    MESSAGE_REJECTED = "message_rejected"
    SUBSCRIPTION_CREATED = "subscription_created"
    SUBSCRIPTION_DELETED = "subscription_deleted"
    DELIVERY_ATTEMPT = "delivery_attempt"
    AUTH_FAILURE = "auth_failure"


class RiskLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


# --- Inbound Models ---


class InboundMessage(BaseModel):
    """Canonical record of one accepted inbound webhook call."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default_factory=_new_id)
    bot_id: str = Field(alias="botId", min_length=1)
    message_type: MessageType = Field(alias="messageType")
    content: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: str
    received_at: str = Field(alias="receivedAt")
    request_id: str = Field(alias="requestId")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# --- Outbound Models ---


class WebhookSubscription(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=_new_id)
    url: str
    events: list[WebhookEventType] = Field(min_length=1)
    created_at: str = Field(default_factory=_now_iso, alias="createdAt")
    updated_at: str = Field(default_factory=_now_iso, alias="updatedAt")
    is_active: bool = Field(default=True, alias="isActive")
    secret: str = Field(exclude=True, repr=False)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class WebhookPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    type: WebhookEventType
    timestamp: str = Field(default_factory=_now_iso)
    data: dict[str, Any]

    @field_validator("data")
    @classmethod
    def _require_agent_id(cls, value: dict[str, Any]) -> dict[str, Any]:
        if value.get("agentId") in (None, ""):
            raise ValueError("data.agentId is required")
        return value


class WebhookDeliveryStatus(BaseModel):
    """One recorded delivery attempt against a subscription."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default_factory=_new_id)
    webhook_id: str = Field(alias="webhookId")
    payload: WebhookPayload
    status: DeliveryOutcome
    status_code: int | None = Field(default=None, alias="statusCode")
    error: str | None = None
    timestamp: str = Field(default_factory=_now_iso)
    retries: int = Field(ge=0)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- Audit Models ---


class AuditEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    event_type: AuditEventType
    source_ip: str | None = None
    request_id: str | None = None
    action: str
    result: str  # "success" | "failure" | "rejected"
    risk_level: RiskLevel
    details: dict[str, object] | None = None
