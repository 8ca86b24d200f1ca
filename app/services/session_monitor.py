"""
Passive observer for one practice call.

The monitor joins the learner's LiveKit room as a hidden participant and
owns everything the frontend needs about the live call:

- a transcript aggregator fed by ``transcript`` packets,
- a checkpoint logger fed by ``time_checkpoint`` packets,
- the session timer, started once the room connection is confirmed and
  stopped on disconnect.

When a countdown expires the monitor disconnects the room itself; the timer,
not the transport, decides when a session is over. Teardown through
``close()`` releases the ticker, the data channel subscriptions and the room
on every path.
Once a disconnect has been handled and reported, ``on_ended`` is called so
the owner can drop the monitor.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Set

from app.core.logger import get_logger
from app.core.timer_config import DEFAULT_AGENT_TYPE, TimerMode
from app.schemas.session import SessionState
from app.services.checkpoint_logger import CheckpointLogger
from app.services.data_channel import DataChannelSubscription
from app.services.data_decoder import DecodeError, EventType
from app.services.session_store import SessionStoreClient, get_session_store
from app.services.session_timer import SessionTimer
from app.services.transcript_aggregator import TranscriptAggregator

log = get_logger(__name__)

DISCONNECTED = "disconnected"

RoomFactory = Callable[[], Any]
EndedCallback = Callable[["SessionMonitor"], Any]


class SessionMonitor:
    def __init__(
        self,
        room_name: str,
        room_factory: RoomFactory,
        agent_type: str = DEFAULT_AGENT_TYPE,
        mode: TimerMode = TimerMode.COUNTDOWN,
        duration: Optional[int] = None,
        session_id: Optional[str] = None,
        session_store: Optional[SessionStoreClient] = None,
        debug: Optional[bool] = None,
        timer_interval: float = 1.0,
        on_ended: Optional[EndedCallback] = None,
    ) -> None:
        self.room_name = room_name
        self.agent_type = agent_type
        self.session_id = session_id
        self._room_factory = room_factory
        self._store = session_store
        self._on_ended = on_ended

        self.aggregator = TranscriptAggregator()
        self.timer = SessionTimer.for_agent(
            agent_type,
            mode=mode,
            duration=duration,
            on_expire=self._on_timer_expired,
            interval=timer_interval,
        )
        self._transcripts = DataChannelSubscription(
            self.aggregator,
            event_types=[EventType.TRANSCRIPT],
            debug=debug,
            on_error=self._on_decode_error,
        )
        self._checkpoints = DataChannelSubscription(
            CheckpointLogger(room_name),
            event_types=[EventType.TIME_CHECKPOINT],
            debug=debug,
        )

        self._room: Any = None
        self._mounted = False
        self._tasks: Set[asyncio.Task] = set()
        self.connected = False
        self.end_reason: Optional[str] = None
        self.end_reported = False

    @property
    def store(self) -> SessionStoreClient:
        if self._store is None:
            self._store = get_session_store()
        return self._store

    async def start(self, url: str, token: str) -> None:
        if self._room is not None:
            raise RuntimeError(f"monitor for room {self.room_name} already started")
        self._mounted = True
        room = self._room_factory()
        self._room = room
        self._transcripts.attach(room)
        self._checkpoints.attach(room)
        room.on(DISCONNECTED, self._on_disconnected)

        try:
            await room.connect(url, token)
        except Exception:
            log.exception("Failed to connect monitor to room %s", self.room_name)
            await self.close()
            raise

        if not self._mounted:
            # close() ran while we were connecting
            await self._disconnect_room(room)
            return

        self.connected = True
        self.timer.start()
        log.info(
            "Monitoring room=%s agent_type=%s mode=%s",
            self.room_name,
            self.agent_type,
            self.timer.mode.value,
        )

    async def close(self) -> None:
        if not self._mounted and self._room is None:
            return
        self._mounted = False
        self.connected = False
        await self.timer.aclose()
        self._transcripts.detach()
        self._checkpoints.detach()

        room, self._room = self._room, None
        if room is not None:
            try:
                room.off(DISCONNECTED, self._on_disconnected)
            except Exception:
                log.exception("Failed to remove disconnect listener for room %s", self.room_name)
            await self._disconnect_room(room)

        # let in-flight end reports finish; their results are ignored once closed
        pending = list(self._tasks)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        log.info("Stopped monitoring room %s", self.room_name)

    def state(self) -> SessionState:
        return SessionState(
            room_name=self.room_name,
            agent_type=self.agent_type,
            session_id=self.session_id,
            connected=self.connected,
            transcript=self.aggregator.snapshot(),
            timer=self.timer.state(),
            error=self.aggregator.last_error,
        )

    # -------------------------
    # Room and timer callbacks
    # -------------------------
    def _on_decode_error(self, error: DecodeError) -> None:
        self.aggregator.record_error(str(error))

    def _on_disconnected(self, *args: Any) -> None:
        reason = args[0] if args else None
        self.connected = False
        self.timer.stop()
        self.end_reason = "timer_expired" if self.timer.is_expired else "disconnected"
        log.info("Room %s disconnected (reason=%s end_reason=%s)", self.room_name, reason, self.end_reason)
        self._spawn(self._finish(self.end_reason))

    def _on_timer_expired(self) -> None:
        log.info("Session time is up for room %s; disconnecting", self.room_name)
        if self._room is not None:
            self._spawn(self._disconnect_room(self._room))

    async def _finish(self, end_reason: str) -> None:
        if self.session_id:
            await self._report_end(end_reason)
        if not self._mounted or self._on_ended is None:
            return
        try:
            self._on_ended(self)
        except Exception:
            log.exception("on_ended callback failed for room %s", self.room_name)

    async def _report_end(self, end_reason: str) -> None:
        result = await self.store.update_session(
            self.session_id,
            status="completed",
            end_reason=end_reason,
            ended_at=datetime.now(timezone.utc).isoformat(),
        )
        if not self._mounted:
            return
        self.end_reported = bool(result.get("ok", True))

    async def _disconnect_room(self, room: Any) -> None:
        try:
            await room.disconnect()
        except Exception:
            log.exception("Error disconnecting room %s", self.room_name)

    def _spawn(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
