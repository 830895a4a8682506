"""
WebSocket relay for real-time alert delivery.

The relay holds the live connections of one application instance; there is no
cross-process backplane, so a broadcast reaches only sockets connected to this
process.

Messages sent to client:
    {"type": "initial_data", "alerts": [...]}
    {"type": "new_alert", "data": {...}}
    {"type": "alert_status", "data": {"alertId": ..., "status": ...}}
    {"type": "agent_status", "data": {"agentId": ..., "status": ...}}
    {"type": "pong"}
    {"type": "subscribed", "channel": ...}
"""

import json
from typing import Any

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from sqlalchemy.exc import SQLAlchemyError
from starlette.websockets import WebSocketState

from alerts.schemas import serialize_alert
from alerts.service import AlertService

logger = structlog.get_logger()
router = APIRouter()


class AlertRelay:
    """Fan-out of alert and agent events to every open connection."""

    def __init__(self) -> None:
        self._connections: set[WebSocket] = set()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections.add(websocket)
        logger.info("ws.connected", clients=len(self._connections))

    def disconnect(self, websocket: WebSocket) -> None:
        self._connections.discard(websocket)
        logger.info("ws.disconnected", clients=len(self._connections))

    async def send(self, websocket: WebSocket, message: dict[str, Any]) -> bool:
        """Send to one socket; a dead socket is dropped instead of raising."""
        if websocket.client_state != WebSocketState.CONNECTED:
            self._connections.discard(websocket)
            return False
        try:
            await websocket.send_text(json.dumps(message, default=str))
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            logger.warning("ws.send_failed", error=str(exc))
            self._connections.discard(websocket)
            return False
        return True

    async def broadcast(self, message: dict[str, Any]) -> int:
        """Deliver message to all open connections. Returns how many received it."""
        delivered = 0
        for websocket in list(self._connections):
            if await self.send(websocket, message):
                delivered += 1
        logger.debug("ws.broadcast", type=message.get("type"), delivered=delivered)
        return delivered

    async def broadcast_alert(self, alert: dict[str, Any]) -> int:
        return await self.broadcast({"type": "new_alert", "data": alert})

    async def broadcast_alert_status(self, alert_id: str, status: str) -> int:
        return await self.broadcast({"type": "alert_status", "data": {"alertId": alert_id, "status": status}})

    async def broadcast_agent_status(self, agent_id: str, status: str) -> int:
        return await self.broadcast({"type": "agent_status", "data": {"agentId": agent_id, "status": status}})


async def handle_client_message(relay: AlertRelay, websocket: WebSocket, raw: str) -> None:
    """React to one client frame: ping, subscribe, or log anything else."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("ws.invalid_message", raw=raw[:200])
        await relay.send(websocket, {"error": "Invalid message format"})
        return
    if not isinstance(data, dict):
        await relay.send(websocket, {"error": "Invalid message format"})
        return

    message_type = data.get("type")
    if message_type == "ping":
        await relay.send(websocket, {"type": "pong"})
    elif message_type == "subscribe":
        await relay.send(websocket, {"type": "subscribed", "channel": data.get("channel")})
    else:
        logger.warning("ws.unknown_message_type", message_type=message_type)


async def send_initial_data(websocket: WebSocket, context) -> None:
    """Snapshot of recent alerts for a newly connected client."""
    try:
        async with context.session_factory() as db:
            service = AlertService(db, context.relay, context.settings)
            alerts = await service.list_alerts(limit=context.settings.ws_initial_alert_count)
            payload = [serialize_alert(a) for a in alerts]
    except SQLAlchemyError as exc:
        logger.error("ws.initial_data_failed", error=str(exc))
        return
    await context.relay.send(websocket, {"type": "initial_data", "alerts": payload})


@router.websocket("/ws")
async def alert_stream(websocket: WebSocket):
    """
    Connect: ws://host/ws

    Client frames: {"type": "ping"} | {"type": "subscribe", "channel": "..."}
    """
    context = websocket.app.state.context
    relay: AlertRelay = context.relay

    await relay.connect(websocket)
    try:
        await send_initial_data(websocket, context)
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                logger.warning("ws.non_text_frame")
                await relay.send(websocket, {"error": "Invalid message format"})
                continue
            await handle_client_message(relay, websocket, raw)
    except WebSocketDisconnect:
        pass
    finally:
        relay.disconnect(websocket)
