"""WebSocket stream of one vehicle's stop progress and arriving events."""

import asyncio
import logging

import orjson
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter()

# Will be set by main.py on startup
broadcaster = None


async def _forward(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        await websocket.send_bytes(await queue.get())


@router.websocket("/ws/vehicles/{vehicle_id}")
async def vehicle_progress_ws(websocket: WebSocket, vehicle_id: str) -> None:
    await websocket.accept()
    if broadcaster is None:
        await websocket.close(code=1011, reason="Service not ready")
        return

    # Subscribe before reading the snapshot so no update falls in between
    queue = broadcaster.subscribe(vehicle_id)
    logger.debug("WebSocket subscribed to vehicle %s", vehicle_id)
    try:
        state = await broadcaster.get_current_state(vehicle_id)
        if state:
            snapshot = orjson.loads(state)
            snapshot["type"] = "snapshot"
            await websocket.send_bytes(orjson.dumps(snapshot))
        await _forward(websocket, queue)
    except (WebSocketDisconnect, asyncio.CancelledError):
        pass
    except Exception:
        logger.exception("WebSocket error for vehicle %s", vehicle_id)
    finally:
        broadcaster.unsubscribe(vehicle_id, queue)
