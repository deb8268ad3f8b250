"""WebSocket endpoint binding the relay core to FastAPI.

Mount it in FastAPI via::

    app.state.relay = RelayCore(store)
    app.add_api_websocket_route("/ws", relay_ws_handler)

Any peer may connect; it stays unassigned until its first role
announcement (``init-esp`` or ``init-frontend``).
"""

from __future__ import annotations

import logging

from fastapi import WebSocket, WebSocketDisconnect

from irrigation.relay.core import RelayCore
from irrigation.relay.registry import RelayConnection

logger = logging.getLogger(__name__)


async def relay_ws_handler(websocket: WebSocket) -> None:
    """Handle one relay connection from accept to close."""
    relay: RelayCore = websocket.app.state.relay
    await websocket.accept()
    conn = RelayConnection(websocket)
    client = f"{websocket.client.host}:{websocket.client.port}" if websocket.client else "?"
    logger.info("Connection opened: %s from %s", conn.id, client)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            if raw is None:
                continue
            await relay.on_message(conn, raw)
    except WebSocketDisconnect:
        pass
    except Exception as exc:
        await relay.on_error(conn, exc)
    finally:
        await relay.on_close(conn)
        logger.info("Connection closed: %r", conn)
