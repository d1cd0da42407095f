# =======================================================================================
# smartvisitor/api/routes/ws.py - Real-time Notification WebSocket
# =======================================================================================
import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from ...models.events import ConnectionWelcome
from ...services.notification_bus import NotificationBus, Subscriber
from ...utils.clock import utcnow

log = logging.getLogger("smartvisitor.ws")

router = APIRouter()


@router.websocket("/ws")
async def notifications(websocket: WebSocket) -> None:
    """
    Admin dashboard stream.

    Each connection is one bus subscriber. Client frames:
      {"type": "ping"}                       -> {"type": "pong", ...}
      {"type": "pong"}                       -> answers a heartbeat
      {"type": "subscribe", "events": [...]} -> {"type": "subscribed", ...}
    Any frame from the client counts as a heartbeat answer.
    """
    bus: NotificationBus = websocket.app.state.services.bus

    await websocket.accept()
    subscriber = bus.create_subscriber()
    subscriber.offer(ConnectionWelcome(clientId=subscriber.client_id, timestamp=utcnow()).to_message())

    receiver = asyncio.create_task(_receive_loop(websocket, subscriber))
    sender = asyncio.create_task(_send_loop(websocket, subscriber))
    try:
        await asyncio.wait({receiver, sender}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        # also reached when this handler itself is cancelled
        receiver.cancel()
        sender.cancel()
        bus.unregister(subscriber)
        await asyncio.gather(receiver, sender, return_exceptions=True)
        if (websocket.client_state == WebSocketState.CONNECTED
                and websocket.application_state == WebSocketState.CONNECTED):
            try:
                await websocket.close()
            except RuntimeError:
                # client already went away
                pass


async def _receive_loop(websocket: WebSocket, subscriber: Subscriber) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            log.debug("Client %s disconnected", subscriber.client_id)
            return
        subscriber.mark_alive()
        raw = message.get("text")
        if raw is None:
            # binary frames are not part of the protocol
            subscriber.offer({"type": "error", "message": "Invalid message format"})
            continue
        _handle_client_message(subscriber, raw)


async def _send_loop(websocket: WebSocket, subscriber: Subscriber) -> None:
    try:
        while True:
            message = await subscriber.next_message()
            if message is None:
                return
            await websocket.send_json(message)
    except (WebSocketDisconnect, RuntimeError) as e:
        log.debug("Send to %s failed: %s", subscriber.client_id, e)


def _handle_client_message(subscriber: Subscriber, raw: str) -> None:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        subscriber.offer({"type": "error", "message": "Invalid message format"})
        return
    if not isinstance(data, dict):
        subscriber.offer({"type": "error", "message": "Invalid message format"})
        return

    kind = data.get("type")
    if kind == "ping":
        subscriber.offer({"type": "pong", "timestamp": utcnow().isoformat()})
    elif kind == "pong":
        pass
    elif kind == "subscribe":
        events = data.get("events") or []
        if not isinstance(events, list):
            subscriber.offer({"type": "error", "message": "events must be a list"})
            return
        unknown = subscriber.subscribe(events)
        subscriber.offer({
            "type": "subscribed",
            "events": sorted(subscriber.subscriptions or ()),
            "unknown": unknown,
        })
    else:
        log.warning("Unknown message type from %s: %s", subscriber.client_id, kind)
