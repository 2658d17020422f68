"""WebSocket endpoint streaming accepted readings to live clients."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from app.api import get_hub
from services.broadcast import BroadcastHub, MessageKind, Subscriber, build_message

logger = logging.getLogger(__name__)

router = APIRouter()


async def _forward(websocket: WebSocket, subscriber: Subscriber) -> None:
    async for message in subscriber:
        await websocket.send_json(message)
    # The hub closed this subscriber (overflow or shutdown).
    await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)


async def _listen(websocket: WebSocket, subscriber: Subscriber) -> None:
    while not subscriber.closed:
        text = await websocket.receive_text()
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            payload = None
        if not isinstance(payload, dict) or "type" not in payload:
            logger.warning(
                "Invalid client message", extra={"client_id": subscriber.id}
            )
            await websocket.send_json(
                build_message(MessageKind.error, {"message": "Invalid message format"})
            )
            continue
        if payload["type"] == MessageKind.ping.value:
            await websocket.send_json(build_message(MessageKind.pong))


def _log_forward_failure(forwarder: asyncio.Task[None], subscriber: Subscriber) -> bool:
    if not forwarder.done() or forwarder.cancelled():
        return False
    exc = forwarder.exception()
    if exc is None or isinstance(exc, WebSocketDisconnect):
        return False
    logger.warning(
        "WebSocket delivery failed",
        extra={"client_id": subscriber.id, "reason": repr(exc)},
    )
    return True


@router.websocket("/ws")
async def sensor_stream(websocket: WebSocket, hub: BroadcastHub = Depends(get_hub)) -> None:
    await websocket.accept()
    subscriber = hub.subscribe()
    reason = "client closed"
    forwarder: Optional[asyncio.Task[None]] = None
    try:
        await websocket.send_json(
            build_message(MessageKind.connected, {"client_id": subscriber.id})
        )
        forwarder = asyncio.create_task(_forward(websocket, subscriber))
        await _listen(websocket, subscriber)
        # Closed by the hub: let the forwarder flush and send the close frame.
        await asyncio.wait([forwarder])
    except WebSocketDisconnect:
        pass
    finally:
        if forwarder is not None:
            if _log_forward_failure(forwarder, subscriber):
                reason = "transport error"
            forwarder.cancel()
        hub.unsubscribe(subscriber.id, reason=reason)
