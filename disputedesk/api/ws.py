"""WebSocket fan-out of event bus deliveries, grouped by dispute id."""

from __future__ import annotations

import uuid

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from disputedesk.common.events import WILDCARD, RealtimeEvent
from disputedesk.common.logging import get_logger

logger = get_logger("ws.manager")


class ConnectionManager:
    """Manages WebSocket connections grouped by dispute ID ("*" watches all)."""

    def __init__(self):
        self._connections: dict[str, dict[str, WebSocket]] = {}  # dispute_id -> {conn_id: ws}

    async def connect(self, dispute_id: str, websocket: WebSocket) -> str:
        await websocket.accept()
        conn_id = uuid.uuid4().hex[:12]
        if dispute_id not in self._connections:
            self._connections[dispute_id] = {}
        self._connections[dispute_id][conn_id] = websocket
        logger.info("WS connected: dispute=%s conn=%s (%d total)", dispute_id, conn_id, len(self._connections[dispute_id]))
        return conn_id

    def disconnect(self, dispute_id: str, conn_id: str):
        if dispute_id in self._connections:
            self._connections[dispute_id].pop(conn_id, None)
            if not self._connections[dispute_id]:
                del self._connections[dispute_id]
        logger.info("WS disconnected: dispute=%s conn=%s", dispute_id, conn_id)

    async def broadcast(self, event: RealtimeEvent):
        """Bus subscriber: forward one delivered event to matching sockets."""
        message = event.model_dump(mode="json")
        targets = []
        for key in (event.dispute_id, WILDCARD):
            targets += [(key, conn_id, ws) for conn_id, ws in self._connections.get(key, {}).items()]

        dead = []
        for key, conn_id, ws in targets:
            try:
                if ws.client_state == WebSocketState.CONNECTED:
                    await ws.send_json(message)
            except Exception:
                logger.warning("Dropping WS conn=%s after failed send", conn_id)
                dead.append((key, conn_id))
        for key, conn_id in dead:
            self.disconnect(key, conn_id)

    @property
    def active_connections(self) -> int:
        return sum(len(conns) for conns in self._connections.values())
