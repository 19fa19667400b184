"""FastAPI application for the webhook relay."""

from __future__ import annotations

import asyncio
import html
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse

from botrelay.api.auth_middleware import AuthMiddleware
from botrelay.api.subscription_routes import create_subscription_router
from botrelay.config import RelayConfig
from botrelay.models import MessageType
from botrelay.service import RelayService
from botrelay.webhook.fanout import FanoutEvent, Subscriber, handle_client_frame

logger = logging.getLogger(__name__)


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    return create_app(RelayService.build(RelayConfig.from_env()))


def create_app(service: RelayService) -> FastAPI:
    """Create the relay app around an already wired ``RelayService``."""

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await service.aclose()

    app = FastAPI(docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.service = service

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/", response_class=HTMLResponse)
    async def index() -> HTMLResponse:
        return HTMLResponse(_render_index(service))

    @app.get("/api/messages")
    async def list_messages(botId: str | None = None) -> JSONResponse:  # noqa: N803
        messages = [m.to_wire() for m in service.buffer.list_recent(botId)]
        logger.debug("Returning %d buffered message(s)", len(messages))
        return JSONResponse({
            "success": True,
            "messages": messages,
            "count": len(messages),
        })

    @app.post("/api/webhook/incoming")
    async def incoming(request: Request) -> JSONResponse:
        request_id = str(uuid.uuid4())
        headers = {"X-Request-ID": request_id}
        try:
            payload = await request.json()
        except ValueError:
            logger.info("[%s] Rejected non-JSON webhook body", request_id)
            return JSONResponse(
                {"success": False, "error": "Invalid JSON payload"},
                status_code=400,
                headers=headers,
            )

        source_ip = request.client.host if request.client else None
        try:
            result = await service.pipeline.relay(payload, request_id, source_ip)
        except Exception:
            logger.exception("[%s] Unhandled error processing webhook", request_id)
            return JSONResponse(
                {"success": False, "error": "Internal server error"},
                status_code=500,
                headers=headers,
            )
        return JSONResponse(result.body, status_code=result.status_code, headers=headers)

    @app.websocket("/ws")
    async def realtime(websocket: WebSocket) -> None:
        await websocket.accept()
        subscriber = service.hub.connect()
        sender = asyncio.create_task(_pump(websocket, subscriber))
        try:
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    break
                raw = frame.get("text")
                if raw is None:
                    service.hub.send(
                        subscriber, FanoutEvent("error", {"error": "Binary frames are not supported"}),
                    )
                    continue
                handle_client_frame(service.hub, subscriber, raw)
        finally:
            sender.cancel()
            service.hub.disconnect(subscriber)

    app.include_router(
        create_subscription_router(service.registry, service.engine, service.audit_logger),
    )

    if service.config.admin_token:
        app.add_middleware(
            AuthMiddleware,
            token=service.config.admin_token,
            audit_logger=service.audit_logger,
        )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

    return app


async def _pump(websocket: WebSocket, subscriber: Subscriber) -> None:
    """Forward queued fan-out events to the client until it goes away."""
    while True:
        event = await subscriber.queue.get()
        try:
            await websocket.send_json(event.to_frame())
        except (WebSocketDisconnect, RuntimeError):
            return


def _render_index(service: RelayService) -> str:
    bot_ids = "".join(
        f"<li><code>{html.escape(bot_id)}</code></li>"
        for bot_id in sorted(service.identity.fallback_ids)
    )
    kinds = ", ".join(f"<code>{t.value}</code>" for t in MessageType)
    return f"""<!DOCTYPE html>
<html>
  <head><title>BotPass Webhook Relay</title></head>
  <body>
    <h1>BotPass Webhook Relay</h1>
    <p>Buffered messages: {len(service.buffer)} / {service.buffer.capacity}.
       Live subscribers: {service.hub.connected}.</p>
    <h2>Endpoints</h2>
    <ul>
      <li><code>POST /api/webhook/incoming</code></li>
      <li><code>GET /api/messages</code></li>
      <li><code>WS /ws</code></li>
    </ul>
    <h2>Message types</h2>
    <p>{kinds}</p>
    <h2>Fallback bot ids</h2>
    <ul>{bot_ids}</ul>
  </body>
</html>
"""
