"""Subscription management API.

Provides endpoints for:
- Registering, listing, toggling and deleting outbound subscriptions
- Reading a subscription's delivery history
- Triggering an application event for delivery
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from botrelay.delivery.registry import SubscriptionNotFoundError
from botrelay.models import AuditEvent, AuditEventType, RiskLevel

if TYPE_CHECKING:
    from botrelay.audit.logger import AuditLogger
    from botrelay.delivery.engine import DeliveryEngine
    from botrelay.delivery.registry import SubscriptionRegistry

logger = logging.getLogger(__name__)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


async def _read_object(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except json.JSONDecodeError as e:
        raise ValueError("Request body must be valid JSON") from e
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")
    return body


def create_subscription_router(
    registry: SubscriptionRegistry,
    engine: DeliveryEngine,
    audit_logger: AuditLogger | None = None,
) -> APIRouter:
    """Create the subscription management router."""
    router = APIRouter(prefix="/api/webhooks")

    @router.post("")
    async def create_subscription(request: Request) -> JSONResponse:
        try:
            body = await _read_object(request)
            events = body.get("events")
            if not isinstance(events, list):
                raise ValueError("events must be a list of event types")
            subscription = registry.create(str(body.get("url", "")), events)
        except ValueError as e:
            return _error(str(e), 400)

        logger.info("Registered subscription %s -> %s", subscription.id, subscription.url)
        if audit_logger:
            audit_logger.log(AuditEvent(
                event_type=AuditEventType.SUBSCRIPTION_CREATED,
                source_ip=request.client.host if request.client else None,
                action="create_subscription",
                result="success",
                risk_level=RiskLevel.MEDIUM,
                details={"webhook_id": subscription.id, "url": subscription.url},
            ))

        # The signing secret is only ever returned here.
        return JSONResponse(
            {
                "success": True,
                "subscription": subscription.to_wire(),
                "secret": subscription.secret,
            },
            status_code=201,
        )

    @router.get("")
    async def list_subscriptions() -> JSONResponse:
        subscriptions = [s.to_wire() for s in registry.list()]
        return JSONResponse({
            "success": True,
            "subscriptions": subscriptions,
            "count": len(subscriptions),
        })

    @router.post("/trigger")
    async def trigger_event(request: Request) -> JSONResponse:
        try:
            body = await _read_object(request)
            data = body.get("data")
            if not isinstance(data, dict):
                raise ValueError("data must be an object")
            payload = await engine.trigger(str(body.get("type", "")), data)
        except ValueError as e:
            return _error(str(e), 400)
        return JSONResponse(
            {"success": True, "payload": payload.model_dump(mode="json")},
            status_code=202,
        )

    @router.get("/{subscription_id}")
    async def get_subscription(subscription_id: str) -> JSONResponse:
        subscription = registry.get(subscription_id)
        if subscription is None:
            return _error("Subscription not found", 404)
        return JSONResponse({"success": True, "subscription": subscription.to_wire()})

    @router.patch("/{subscription_id}")
    async def update_subscription(subscription_id: str, request: Request) -> JSONResponse:
        try:
            body = await _read_object(request)
        except ValueError as e:
            return _error(str(e), 400)
        active = body.get("isActive")
        if not isinstance(active, bool):
            return _error("isActive must be a boolean", 400)
        try:
            subscription = registry.set_active(subscription_id, active)
        except SubscriptionNotFoundError:
            return _error("Subscription not found", 404)
        return JSONResponse({"success": True, "subscription": subscription.to_wire()})

    @router.delete("/{subscription_id}")
    async def delete_subscription(subscription_id: str, request: Request) -> JSONResponse:
        if not registry.delete(subscription_id):
            return _error("Subscription not found", 404)

        logger.info("Deleted subscription %s", subscription_id)
        if audit_logger:
            audit_logger.log(AuditEvent(
                event_type=AuditEventType.SUBSCRIPTION_DELETED,
                source_ip=request.client.host if request.client else None,
                action="delete_subscription",
                result="success",
                risk_level=RiskLevel.MEDIUM,
                details={"webhook_id": subscription_id},
            ))
        return JSONResponse({"success": True})

    @router.get("/{subscription_id}/deliveries")
    async def list_deliveries(subscription_id: str) -> JSONResponse:
        deliveries = [d.to_wire() for d in engine.history(subscription_id)]
        return JSONResponse({
            "success": True,
            "deliveries": deliveries,
            "count": len(deliveries),
        })

    return router
