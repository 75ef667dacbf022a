"""
WebSocket handler streaming entity mutations to dashboards.
"""

import asyncio
import json
import logging
from contextlib import suppress
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from medidispatch.core.change_notifier import Subscription
from medidispatch.models.entity import EntityKind

logger = logging.getLogger(__name__)

router = APIRouter()


class ConnectionManager:
    """
    Tracks open dashboard connections.
    """

    def __init__(self):
        self.active_connections: List[WebSocket] = []
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> None:
        """Accept and register a new WebSocket connection."""
        await websocket.accept()
        async with self._lock:
            self.active_connections.append(websocket)

        logger.info(f"WebSocket connected. Total connections: {len(self.active_connections)}")

    async def disconnect(self, websocket: WebSocket) -> None:
        """Remove a WebSocket connection."""
        async with self._lock:
            if websocket in self.active_connections:
                self.active_connections.remove(websocket)

        logger.info(f"WebSocket disconnected. Total connections: {len(self.active_connections)}")

    async def send_to_client(self, websocket: WebSocket, message: dict) -> bool:
        """Send a message to a specific client. Returns False if the send failed."""
        try:
            await websocket.send_text(json.dumps(message, default=str))
            return True
        except Exception as e:
            logger.warning(f"Failed to send to client: {e}")
            return False

    @property
    def connection_count(self) -> int:
        """Get number of active connections."""
        return len(self.active_connections)


# Global connection manager
manager = ConnectionManager()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, kind: Optional[str] = None):
    """
    Stream of mutation events.

    ``?kind=hospital|ambulance|report`` narrows the stream to one entity
    kind. Events may repeat; clients should re-read the entity (or use the
    snapshot in the payload keyed by version) rather than apply deltas.

    Clients can send:
    - ping: keepalive
    - request_state: re-send the current snapshot
    """
    try:
        entity_kind = EntityKind(kind) if kind else None
    except ValueError:
        await websocket.close(code=1008)
        return

    notifier = websocket.app.state.notifier
    await manager.connect(websocket)
    subscription = notifier.subscribe(entity_kind)
    forwarder = asyncio.create_task(_forward_events(websocket, subscription, entity_kind))

    try:
        await _send_initial_state(websocket, entity_kind)
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await manager.send_to_client(websocket, {
                    "type": "error",
                    "message": "Invalid JSON"
                })
                continue
            await _handle_client_message(websocket, message, entity_kind)
    except WebSocketDisconnect:
        pass
    finally:
        subscription.close()
        forwarder.cancel()
        with suppress(asyncio.CancelledError):
            await forwarder
        await manager.disconnect(websocket)


async def _forward_events(
    websocket: WebSocket,
    subscription: Subscription,
    entity_kind: Optional[EntityKind],
) -> None:
    """
    Relay mutations to the client.

    If the client falls too far behind its subscription is dropped; a new
    one is opened and a fresh snapshot sent so the client resyncs.
    """
    try:
        while True:
            async for event in subscription:
                sent = await manager.send_to_client(websocket, {
                    "type": "mutation",
                    "data": event.to_dict()
                })
                if not sent:
                    return
            if not subscription.overflowed:
                return

            logger.warning(f"Client lagged behind {subscription.id}, resending state")
            subscription = websocket.app.state.notifier.subscribe(entity_kind)
            await _send_initial_state(websocket, entity_kind)
    finally:
        subscription.close()


async def _send_initial_state(websocket: WebSocket, entity_kind: Optional[EntityKind]) -> None:
    """Send the current snapshot so the client starts from committed state."""
    views = websocket.app.state.views
    data = {"stats": views.dispatch_stats().model_dump()}

    if entity_kind in (None, EntityKind.HOSPITAL):
        data["hospitals"] = [h.to_summary() for h in views.all_hospitals()]
    if entity_kind in (None, EntityKind.AMBULANCE):
        data["ambulances"] = [a.to_summary() for a in views.all_ambulances()]
    if entity_kind in (None, EntityKind.REPORT):
        data["pending_reports"] = [r.to_summary() for r in views.pending_reports()]
        data["active_reports"] = [r.to_summary() for r in views.active_reports()]

    await manager.send_to_client(websocket, {
        "type": "initial_state",
        "timestamp": datetime.now().isoformat(),
        "data": data
    })


async def _handle_client_message(websocket: WebSocket, message: dict, entity_kind: Optional[EntityKind]) -> None:
    """Handle incoming messages from clients."""
    msg_type = message.get("type", "")

    if msg_type == "ping":
        await manager.send_to_client(websocket, {
            "type": "pong",
            "timestamp": datetime.now().isoformat()
        })

    elif msg_type == "request_state":
        await _send_initial_state(websocket, entity_kind)

    else:
        await manager.send_to_client(websocket, {
            "type": "error",
            "message": f"Unknown message type: {msg_type}"
        })


@router.get("/ws/status")
async def websocket_status():
    """Get WebSocket connection status."""
    return {
        "active_connections": manager.connection_count
    }
