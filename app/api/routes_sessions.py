from fastapi import APIRouter, HTTPException

from app.core.logger import get_logger
from app.core.timer_config import SESSION_TIMER_CONFIG
from app.schemas.session import MonitorRequest
from app.schemas.transcript import Transcript
from app.services import livekit_manager as lkm

router = APIRouter()
log = get_logger(__name__)


def _monitor_or_404(room_name: str):
    monitor = lkm.get_livekit_manager().get_monitor(room_name)
    if monitor is None:
        raise HTTPException(status_code=404, detail=f"No monitor for room {room_name}")
    return monitor


@router.get("/timer-profiles")
def get_timer_profiles():
    return {agent_type: profile.to_dict() for agent_type, profile in SESSION_TIMER_CONFIG.items()}


@router.post("/{room_name}/monitor")
async def start_monitor(room_name: str, body: MonitorRequest):
    """Join the room as a hidden observer and start the session timer."""
    manager = lkm.get_livekit_manager()
    try:
        monitor = await manager.start_monitor(
            room_name,
            agent_type=body.agent_type,
            mode=body.mode,
            duration=body.duration,
            session_id=body.session_id,
        )
    except lkm.MonitorAlreadyRunning as e:
        raise HTTPException(status_code=409, detail=str(e))
    except lkm.LiveKitNotConfigured as e:
        raise HTTPException(status_code=500, detail=str(e))
    except Exception as e:
        log.exception("Failed to start monitor for room %s: %s", room_name, e)
        raise HTTPException(status_code=502, detail="Failed to join room")
    return monitor.state().model_dump(mode="json", by_alias=True)


@router.delete("/{room_name}/monitor")
async def stop_monitor(room_name: str):
    stopped = await lkm.get_livekit_manager().stop_monitor(room_name)
    if not stopped:
        raise HTTPException(status_code=404, detail=f"No monitor for room {room_name}")
    return {"room_name": room_name, "stopped": True}


@router.get("/{room_name}")
def get_session_state(room_name: str):
    return _monitor_or_404(room_name).state().model_dump(mode="json", by_alias=True)


@router.get("/{room_name}/transcript")
def get_transcript(room_name: str):
    """Transcript segments in timestamp order plus the last decode error."""
    monitor = _monitor_or_404(room_name)
    transcript = Transcript(
        room_name=room_name,
        transcript=monitor.aggregator.snapshot(),
        error=monitor.aggregator.last_error,
    )
    return transcript.model_dump(mode="json", by_alias=True)


@router.get("/{room_name}/timer")
def get_timer(room_name: str):
    return _monitor_or_404(room_name).timer.state().model_dump(mode="json")
