from fastapi import APIRouter
from fastapi.responses import JSONResponse

from app.core.logger import get_logger
from app.schemas.session import ConnectionRequest
from app.services import livekit_manager as lkm

router = APIRouter()
log = get_logger(__name__)


@router.post("/connection-details")
async def create_connection_details(body: ConnectionRequest):
    """Create a LiveKit room for a practice session and a token to join it."""
    try:
        details = await lkm.get_livekit_manager().create_connection_details(body)
    except lkm.LiveKitNotConfigured as e:
        return JSONResponse({"error": str(e)}, status_code=500)
    except Exception as e:
        log.exception("Failed to create connection details: %s", e)
        return JSONResponse({"error": str(e) or "Unknown error occurred"}, status_code=500)
    return details.model_dump(by_alias=True)
