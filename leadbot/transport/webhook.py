"""FastAPI app receiving WhatsApp bridge events and operator commands."""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Set

from fastapi import APIRouter, FastAPI, Header, HTTPException, Request

from leadbot.engine.dispatcher import ConversationEngine
from leadbot.errors import TransportError
from leadbot.transport.messages import parse_inbound

logger = logging.getLogger(__name__)

LOGGED_OUT_REASONS = ("loggedout", "logged_out", "401")


def _payload_messages(body: Any) -> List[Dict[str, Any]]:
    """Single message, list of messages or {"messages": [...]} batch."""
    if isinstance(body, list):
        return [m for m in body if isinstance(m, dict)]
    if isinstance(body, dict):
        batch = body.get("messages")
        if isinstance(batch, list):
            return [m for m in batch if isinstance(m, dict)]
        return [body]
    return []


def create_app(
    engine: ConversationEngine,
    transport,
    on_logged_out: Optional[Callable[[], None]] = None,
    webhook_token: Optional[str] = None,
) -> FastAPI:
    """Build the webhook app.

    Args:
        engine: Conversation engine handling messages
        transport: Bridge client, used to reconnect dropped sessions
        on_logged_out: Called when the WhatsApp session is logged out
        webhook_token: Shared secret expected in X-Webhook-Token, if set

    Returns:
        FastAPI application
    """
    router = APIRouter()
    tasks: Set[asyncio.Task] = set()

    def _authorize(token: Optional[str]):
        if webhook_token and token != webhook_token:
            raise HTTPException(status_code=401, detail="Unauthorized")

    async def _read_json(request: Request) -> Any:
        try:
            return await request.json()
        except ValueError:
            raise HTTPException(status_code=422, detail="Invalid JSON payload")

    @router.post("/webhook/messages", status_code=202)
    async def messages_webhook(
        request: Request, x_webhook_token: Optional[str] = Header(None)
    ):
        _authorize(x_webhook_token)
        if not engine.accepting:
            raise HTTPException(status_code=503, detail="Shutting down")

        queued = 0
        for payload in _payload_messages(await _read_json(request)):
            message = parse_inbound(payload)
            if message is None:
                logger.debug("Skipping bridge event without chat id")
                continue
            # Tasks start in arrival order so per-phone FIFO holds
            task = asyncio.create_task(engine.handle_inbound(message))
            tasks.add(task)
            task.add_done_callback(tasks.discard)
            queued += 1

        return {"status": "accepted", "queued": queued}

    @router.post("/webhook/connection")
    async def connection_webhook(
        request: Request, x_webhook_token: Optional[str] = Header(None)
    ):
        _authorize(x_webhook_token)
        body = await _read_json(request)
        if not isinstance(body, dict):
            raise HTTPException(status_code=422, detail="Invalid connection event")

        connection = str(body.get("connection", "")).lower()
        reason = str(body.get("reason", "")).lower()
        logger.info(f"Bridge connection update: {connection} ({reason or 'no reason'})")

        if connection != "close":
            return {"status": "ok", "action": "none"}

        if reason in LOGGED_OUT_REASONS:
            logger.error("WhatsApp session logged out, shutting down")
            if on_logged_out is not None:
                on_logged_out()
            return {"status": "ok", "action": "shutdown"}

        try:
            await transport.reconnect()
        except TransportError as e:
            logger.error(f"Reconnect request failed: {e}")
            raise HTTPException(status_code=502, detail="Reconnect failed")
        return {"status": "ok", "action": "reconnect"}

    @router.post("/operator/{phone}/takeover")
    async def operator_takeover(phone: str, x_webhook_token: Optional[str] = Header(None)):
        _authorize(x_webhook_token)
        changed = await engine.take_over(phone)
        return {"phone": phone, "taken_over": changed}

    @router.post("/operator/{phone}/release")
    async def operator_release(phone: str, x_webhook_token: Optional[str] = Header(None)):
        _authorize(x_webhook_token)
        changed = await engine.release(phone)
        return {"phone": phone, "released": changed}

    @router.post("/operator/{phone}/close")
    async def operator_close(phone: str, x_webhook_token: Optional[str] = Header(None)):
        _authorize(x_webhook_token)
        reply = await engine.force_close(phone)
        return {"phone": phone, "closed": reply is not None}

    @router.get("/health")
    async def health():
        return {
            "status": "ok" if engine.accepting else "shutting_down",
            "in_flight": engine.in_flight,
            "memory_only_prospects": engine.store.memory_only_count,
        }

    app = FastAPI(title="WhatsApp Lead Qualifier")
    app.include_router(router)
    app.state.tasks = tasks
    return app
