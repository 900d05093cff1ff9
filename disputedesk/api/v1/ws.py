"""WebSocket endpoint streaming dispute events."""

from __future__ import annotations

import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from disputedesk.common.events import WILDCARD
from disputedesk.common.logging import get_logger

router = APIRouter(tags=["WebSocket"])

logger = get_logger("ws")


@router.websocket("/ws/disputes")
async def dispute_events(ws: WebSocket):
    """Stream bus events for one dispute (``?dispute_id=``) or for all of them."""
    manager = ws.app.state.ws_manager
    dispute_id = ws.query_params.get("dispute_id") or WILDCARD

    conn_id = await manager.connect(dispute_id, ws)
    try:
        while True:
            data = await ws.receive_text()
            # Handle ping/pong
            try:
                msg = json.loads(data)
                if msg.get("type") == "ping":
                    await ws.send_json({"type": "pong"})
            except json.JSONDecodeError:
                logger.debug("Ignoring non-JSON frame on conn=%s", conn_id)
    except WebSocketDisconnect:
        manager.disconnect(dispute_id, conn_id)
