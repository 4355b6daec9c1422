"""WebSocket endpoint pushing session notifications."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

import orjson
from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from app.services.session import Notification

logger = logging.getLogger(__name__)


def _orjson_dumps(obj: Any) -> str:
    """Serialize object to JSON string using orjson."""
    return orjson.dumps(obj, default=str).decode("utf-8")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class WebSocketMessage(BaseModel):
    """WebSocket message format."""

    type: str  # "notification", "time_check", "pong", "error", "connected"
    data: dict[str, Any]
    timestamp: datetime

    def to_json(self) -> str:
        return _orjson_dumps(self.model_dump(mode="json"))


class ConnectionManager:
    """Manage WebSocket connections and broadcasts."""

    def __init__(self):
        self._connections: list[WebSocket] = []
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> None:
        """Accept a new WebSocket connection."""
        await websocket.accept()
        async with self._lock:
            self._connections.append(websocket)
        logger.info(f"WebSocket connected. Total connections: {len(self._connections)}")

    async def disconnect(self, websocket: WebSocket) -> None:
        """Remove a disconnected WebSocket."""
        async with self._lock:
            if websocket in self._connections:
                self._connections.remove(websocket)
        logger.info(f"WebSocket disconnected. Total connections: {len(self._connections)}")

    async def broadcast(self, message: WebSocketMessage) -> None:
        """Broadcast message to all connected clients."""
        if not self._connections:
            return

        message_text = message.to_json()
        disconnected = []

        async with self._lock:
            for websocket in self._connections:
                try:
                    await websocket.send_text(message_text)
                except (WebSocketDisconnect, RuntimeError) as e:
                    logger.warning(f"Failed to send message: {e}")
                    disconnected.append(websocket)

            for ws in disconnected:
                self._connections.remove(ws)

    async def send_notification(self, notification: Notification) -> None:
        """Session notification listener."""
        await self.broadcast(
            WebSocketMessage(
                type="notification",
                data=notification.to_dict(),
                timestamp=notification.timestamp,
            )
        )

    @property
    def connection_count(self) -> int:
        return len(self._connections)


# Global connection manager
manager = ConnectionManager()


async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for session notifications.

    Messages sent to clients:
    - notification: {kind, title, message, timestamp}
    - time_check: result of a client-requested clock check

    Messages accepted from clients:
    - ping
    - foreground: the client regained visibility; re-runs the clock check
    """
    await manager.connect(websocket)

    try:
        await websocket.send_text(_orjson_dumps({
            "type": "connected",
            "data": {"message": "Connected to Trade Signal"},
            "timestamp": _now().isoformat(),
        }))

        while True:
            try:
                data = await asyncio.wait_for(websocket.receive_text(), timeout=60.0)
            except asyncio.TimeoutError:
                await websocket.send_text(_orjson_dumps({
                    "type": "ping",
                    "data": {},
                    "timestamp": _now().isoformat(),
                }))
                continue

            try:
                message = orjson.loads(data)
            except orjson.JSONDecodeError:
                await websocket.send_text(_orjson_dumps({
                    "type": "error",
                    "data": {"message": "Invalid JSON"},
                    "timestamp": _now().isoformat(),
                }))
                continue
            await handle_client_message(websocket, message)

    except WebSocketDisconnect:
        pass
    finally:
        await manager.disconnect(websocket)


async def handle_client_message(websocket: WebSocket, message: dict) -> None:
    """Handle incoming message from client."""
    msg_type = message.get("type", "") if isinstance(message, dict) else ""

    if msg_type == "ping":
        reply = {"type": "pong", "data": {}}
    elif msg_type == "foreground":
        runtime = websocket.app.state.runtime
        result = await runtime.foreground()
        reply = {"type": "time_check", "data": result.model_dump(mode="json")}
    else:
        reply = {"type": "error", "data": {"message": f"Unknown message type: {msg_type}"}}

    reply["timestamp"] = _now().isoformat()
    await websocket.send_text(_orjson_dumps(reply))
