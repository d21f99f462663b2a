"""Live export progress over Server-Sent Events and WebSocket."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Optional, Sequence

from fastapi import APIRouter, Request, WebSocket
from fastapi.responses import StreamingResponse
from starlette.websockets import WebSocketDisconnect

from ernest.core.event_hub import AsyncEventHub
from ernest.core.events import FINISHED_TOPIC, PROGRESS_TOPIC

router = APIRouter(prefix="/api/export", tags=["Export events"])

EXPORT_TOPICS: tuple[str, ...] = (PROGRESS_TOPIC, FINISHED_TOPIC)

SSE_KEEPALIVE_SECONDS = 5.0
WS_PING_SECONDS = 10.0


def _requested_topics(raw: Optional[str]) -> Sequence[str]:
    requested = [name.strip() for name in (raw or "").split(",") if name.strip()]
    return requested or EXPORT_TOPICS


def _hub_for(app) -> Optional[AsyncEventHub]:
    return getattr(app.state, "event_hub", None)


def _sse_frame(event: Dict[str, Any]) -> bytes:
    return f"event: {event['topic']}\ndata: {json.dumps(event)}\n\n".encode()


@router.get("/events")
async def export_event_stream(request: Request, topics: Optional[str] = None):
    hub = _hub_for(request.app)
    if hub is None:
        return StreamingResponse(iter([b""]), media_type="text/event-stream")

    async def frames():
        subscription = await hub.subscribe(_requested_topics(topics))
        yield b": ok\n\n"
        try:
            while not await request.is_disconnected():
                try:
                    event = await subscription.get(timeout=SSE_KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield b": keepalive\n\n"
                else:
                    yield _sse_frame(event)
        finally:
            subscription.close()

    return StreamingResponse(frames(), media_type="text/event-stream")


@router.websocket("/events/ws")
async def export_event_socket(ws: WebSocket) -> None:
    await ws.accept()
    hub = _hub_for(ws.app)
    if hub is None:
        await ws.send_json(
            {"ok": False, "code": "no_event_hub", "message": "Event hub unavailable"}
        )
        await ws.close()
        return

    subscription = await hub.subscribe(EXPORT_TOPICS)
    await ws.send_json({"ok": True, "topics": list(EXPORT_TOPICS)})
    try:
        while True:
            try:
                event = await subscription.get(timeout=WS_PING_SECONDS)
            except asyncio.TimeoutError:
                await ws.send_json({"ping": True})
            else:
                await ws.send_json(event)
    except WebSocketDisconnect:
        pass
    finally:
        subscription.close()


__all__ = ["EXPORT_TOPICS", "router"]
