import asyncio
import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.core.config import get_settings
from app.core.logger import get_logger
from app.services import livekit_manager as lkm

router = APIRouter()
log = get_logger(__name__)


async def _push_state(websocket: WebSocket, room_name: str, interval: float) -> None:
    while True:
        monitor = lkm.get_livekit_manager().get_monitor(room_name)
        if monitor is None:
            await websocket.send_json({"type": "error", "message": f"Monitor for room {room_name} stopped"})
            return
        await websocket.send_json(
            {
                "type": "session_state",
                "data": monitor.state().model_dump(mode="json", by_alias=True),
            }
        )
        await asyncio.sleep(interval)


async def _answer_pings(websocket: WebSocket) -> None:
    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue

            if isinstance(message, dict) and message.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        return


@router.websocket("/ws/sessions/{room_name}")
async def websocket_session(websocket: WebSocket, room_name: str):
    """Stream transcript and timer state of a monitored room.

    The socket is closed from this side once the monitor goes away.
    """
    await websocket.accept()
    if lkm.get_livekit_manager().get_monitor(room_name) is None:
        await websocket.send_json({"type": "error", "message": f"No monitor for room {room_name}"})
        await websocket.close()
        return

    log.info("WebSocket connection established for room %s", room_name)
    pusher = asyncio.create_task(_push_state(websocket, room_name, get_settings().STATE_PUSH_INTERVAL))
    receiver = asyncio.create_task(_answer_pings(websocket))
    try:
        done, _ = await asyncio.wait({pusher, receiver}, return_when=asyncio.FIRST_COMPLETED)
        if pusher in done and pusher.exception() is None:
            receiver.cancel()
            await websocket.close()
    finally:
        for task in (pusher, receiver):
            task.cancel()
        await asyncio.gather(pusher, receiver, return_exceptions=True)
        log.info("WebSocket connection closed for room %s", room_name)
