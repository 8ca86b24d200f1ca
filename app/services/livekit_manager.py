"""
LiveKit integration for practice sessions.

Responsibilities:
- Mint participant tokens for learners and hidden observer tokens for this
  backend.
- Create rooms whose metadata tells the voice agent which persona to run
  (English tutor or interview preparer) and for which session.
- Run one SessionMonitor per observed room and manage its lifecycle.
"""

from __future__ import annotations

import asyncio
import json
import random
import uuid
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Set

from livekit import api as lk_api
from livekit import rtc as lk_rtc

from app.core.config import get_settings
from app.core.logger import get_logger
from app.core.timer_config import DEFAULT_AGENT_TYPE, TimerMode
from app.schemas.session import ConnectionDetails, ConnectionRequest
from app.services.session_monitor import SessionMonitor

log = get_logger(__name__)


class LiveKitNotConfigured(RuntimeError):
    pass


class MonitorAlreadyRunning(RuntimeError):
    pass


def _http_url(url: str) -> str:
    # The server API speaks HTTP(S); LIVEKIT_URL is the client wss:// address
    if url.startswith("ws"):
        return "http" + url[2:]
    return url


class LiveKitManager:
    """Encapsulates LiveKit auth, room creation and observer lifecycle."""

    def __init__(self, room_factory: Optional[Callable[[], Any]] = None) -> None:
        self._settings = get_settings()
        self._room_factory = room_factory or lk_rtc.Room
        self._monitors: Dict[str, SessionMonitor] = {}
        self._closing: Set[asyncio.Task] = set()

    def _require_credentials(self) -> None:
        if not self._settings.livekit_configured:
            raise LiveKitNotConfigured("LiveKit credentials not configured")

    def create_join_token(
        self,
        room_name: str,
        identity: Optional[str] = None,
        name: Optional[str] = None,
        observer: bool = False,
    ) -> str:
        """Create an access token for a learner or for this backend's observer.

        Observer tokens are hidden from other participants and cannot publish.
        """
        self._require_credentials()
        identity = identity or f"user_{random.randint(0, 9_999)}"
        grants = lk_api.VideoGrants(
            room=room_name,
            room_join=True,
            can_publish=not observer,
            can_publish_data=not observer,
            can_subscribe=True,
            hidden=observer,
        )
        token = (
            lk_api.AccessToken(
                api_key=self._settings.LIVEKIT_API_KEY,
                api_secret=self._settings.LIVEKIT_API_SECRET,
            )
            .with_identity(identity)
            .with_name(name or identity)
            .with_ttl(timedelta(minutes=self._settings.LIVEKIT_TOKEN_TTL_MINUTES))
            .with_grants(grants)
        )
        return token.to_jwt()

    async def create_room(self, room_name: str, metadata: Dict[str, Any]) -> None:
        self._require_credentials()
        lkapi = lk_api.LiveKitAPI(
            _http_url(self._settings.LIVEKIT_URL),
            self._settings.LIVEKIT_API_KEY,
            self._settings.LIVEKIT_API_SECRET,
        )
        try:
            await lkapi.room.create_room(
                lk_api.CreateRoomRequest(
                    name=room_name,
                    metadata=json.dumps(metadata),
                    empty_timeout=self._settings.ROOM_EMPTY_TIMEOUT,
                    max_participants=self._settings.ROOM_MAX_PARTICIPANTS,
                )
            )
        finally:
            await lkapi.aclose()

    async def create_connection_details(self, request: ConnectionRequest) -> ConnectionDetails:
        """Provision a room for a learner and return what the client needs to join."""
        self._require_credentials()
        agent_name = ((request.room_config or {}).get("agents") or [{}])[0].get("agent_name")
        log.info(
            "Connection request: agent_type=%s agent_name=%s session_id=%s context_keys=%s",
            request.agent_type or "not provided",
            agent_name or "default",
            request.session_id or "not provided",
            sorted((request.context or {}).keys()),
        )

        identity = request.identity or f"user_{random.randint(0, 9_999)}"
        participant_name = request.name or "User"
        room_name = f"voice_room_{random.randint(0, 9_999)}"

        await self.create_room(
            room_name,
            {
                "context": request.context,
                "agent_type": request.agent_type or "english-tutor",
                "session_id": request.session_id,
            },
        )
        token = self.create_join_token(room_name, identity=identity, name=participant_name)
        return ConnectionDetails(
            server_url=self._settings.LIVEKIT_URL,
            room_name=room_name,
            participant_name=participant_name,
            participant_token=token,
        )

    # -------------------------
    # Observers
    # -------------------------
    async def start_monitor(
        self,
        room_name: str,
        agent_type: str = DEFAULT_AGENT_TYPE,
        mode: TimerMode = TimerMode.COUNTDOWN,
        duration: Optional[int] = None,
        session_id: Optional[str] = None,
    ) -> SessionMonitor:
        if room_name in self._monitors:
            raise MonitorAlreadyRunning(f"room {room_name} is already monitored")
        identity = f"{self._settings.OBSERVER_IDENTITY_PREFIX}-{uuid.uuid4()}"
        token = self.create_join_token(room_name, identity=identity, observer=True)

        monitor = SessionMonitor(
            room_name,
            room_factory=self._room_factory,
            agent_type=agent_type,
            mode=mode,
            duration=duration,
            session_id=session_id,
            on_ended=self._on_monitor_ended,
        )
        self._monitors[room_name] = monitor
        try:
            await monitor.start(self._settings.LIVEKIT_URL, token)
        except Exception:
            self._monitors.pop(room_name, None)
            raise
        return monitor

    def get_monitor(self, room_name: str) -> Optional[SessionMonitor]:
        return self._monitors.get(room_name)

    def list_monitors(self) -> List[str]:
        return list(self._monitors)

    async def stop_monitor(self, room_name: str) -> bool:
        monitor = self._monitors.pop(room_name, None)
        if monitor is None:
            return False
        await monitor.close()
        return True

    async def aclose(self) -> None:
        for room_name in list(self._monitors):
            try:
                await self.stop_monitor(room_name)
            except Exception:
                log.exception("Failed to stop monitor for room %s", room_name)
        if self._closing:
            await asyncio.gather(*list(self._closing), return_exceptions=True)

    def _on_monitor_ended(self, monitor: SessionMonitor) -> None:
        # drop the entry now so the room can be monitored again right away
        if self._monitors.get(monitor.room_name) is monitor:
            del self._monitors[monitor.room_name]
        log.info("Session in room %s ended (%s); releasing monitor", monitor.room_name, monitor.end_reason)
        task = asyncio.get_running_loop().create_task(self._close_ended(monitor))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def _close_ended(self, monitor: SessionMonitor) -> None:
        try:
            await monitor.close()
        except Exception:
            log.exception("Failed to close ended monitor for room %s", monitor.room_name)


# Singleton accessor
_manager: Optional[LiveKitManager] = None


def get_livekit_manager() -> LiveKitManager:
    global _manager
    if _manager is None:
        _manager = LiveKitManager()
    return _manager
