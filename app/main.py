from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import get_settings
from app.core.logger import get_logger
from app.services.livekit_manager import get_livekit_manager
from app.services.session_store import get_session_store
from app.api import routes_connection, routes_sessions, routes_health, routes_websocket

log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    settings = get_settings()
    if not settings.livekit_configured:
        log.warning("LiveKit credentials not configured; room endpoints will fail")
    try:
        yield
    finally:
        # Shutdown: release every observer before closing the HTTP client
        await get_livekit_manager().aclose()
        await get_session_store().aclose()


app = FastAPI(
    title="Voice Practice Session API",
    description="LiveKit session provisioning, live transcripts and session timers for voice practice calls",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(routes_connection.router, prefix="/api", tags=["Connection"])
app.include_router(routes_sessions.router, prefix="/sessions", tags=["Sessions"])
app.include_router(routes_health.router, prefix="/health", tags=["Health"])
app.include_router(routes_websocket.router, tags=["WebSocket"])


@app.get("/")
def root():
    return {"status": "voice practice backend running"}
