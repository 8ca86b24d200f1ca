from fastapi import APIRouter

from app.core.config import get_settings
from app.services import livekit_manager as lkm

router = APIRouter()


@router.get("/ready")
def readiness_probe():
    return {
        "status": "ready",
        "livekit_configured": get_settings().livekit_configured,
        "monitors": len(lkm.get_livekit_manager().list_monitors()),
    }


@router.get("/live")
def liveness_probe():
    return {"status": "alive"}
