"""
Session clock for a practice call.

One timer type covers both ways sessions are timed:

- count-up: starts at zero, runs until stopped, never expires.
- countdown: starts at the agent's slot length and expires at zero. Expiry
  stops the clock and calls ``on_expire`` exactly once; the owner is expected
  to end the call from that callback.

The clock advances through ``tick()``. With ``auto_tick`` enabled, ``start()``
spawns an asyncio task that ticks once per ``interval`` on the running loop;
``stop()``, expiry and ``aclose()`` release it.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

from app.core.logger import get_logger
from app.core.timer_config import (
    DEFAULT_AGENT_TYPE,
    TimerMode,
    TimerStatus,
    format_time,
    get_timer_profile,
    status_for,
)
from app.schemas.session import TimerState

log = get_logger(__name__)


ExpireCallback = Callable[[], Any]


class SessionTimer:
    def __init__(
        self,
        mode: TimerMode = TimerMode.COUNTDOWN,
        duration: Optional[int] = None,
        warning_threshold: int = 0,
        critical_threshold: int = 0,
        on_expire: Optional[ExpireCallback] = None,
        interval: float = 1.0,
        auto_tick: bool = True,
    ) -> None:
        self.mode = TimerMode(mode)
        if self.mode is TimerMode.COUNTDOWN:
            if duration is None or duration <= 0:
                raise ValueError("countdown timer requires a positive duration")
            self.duration: Optional[int] = int(duration)
        else:
            self.duration = None
        if interval <= 0:
            raise ValueError("interval must be positive")

        self.warning_threshold = warning_threshold
        self.critical_threshold = critical_threshold
        self.on_expire = on_expire
        self.interval = interval
        self.auto_tick = auto_tick

        self._elapsed = 0
        self._remaining = self.duration
        self._running = False
        self._expired = False
        self._expire_fired = False
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def for_agent(
        cls,
        agent_type: str = DEFAULT_AGENT_TYPE,
        mode: TimerMode = TimerMode.COUNTDOWN,
        duration: Optional[int] = None,
        on_expire: Optional[ExpireCallback] = None,
        **kwargs: Any,
    ) -> "SessionTimer":
        """Build a timer from the agent type's profile.

        ``duration`` overrides the profile's slot length (the English tutor
        slot is configurable); thresholds always come from the profile.
        """
        profile = get_timer_profile(agent_type)
        return cls(
            mode=mode,
            duration=duration or profile.duration,
            warning_threshold=profile.warning_threshold,
            critical_threshold=profile.critical_threshold,
            on_expire=on_expire,
            **kwargs,
        )

    # -------------------------
    # State
    # -------------------------
    @property
    def elapsed_seconds(self) -> int:
        return self._elapsed

    @property
    def remaining_seconds(self) -> Optional[int]:
        return self._remaining

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_expired(self) -> bool:
        return self._expired

    @property
    def formatted_time(self) -> str:
        if self.mode is TimerMode.COUNTDOWN:
            return format_time(self._remaining or 0)
        return format_time(self._elapsed)

    @property
    def timer_status(self) -> TimerStatus:
        if self.mode is not TimerMode.COUNTDOWN:
            return TimerStatus.NORMAL
        return status_for(self._remaining or 0, self.warning_threshold, self.critical_threshold)

    def state(self) -> TimerState:
        return TimerState(
            mode=self.mode,
            elapsed_seconds=self._elapsed,
            remaining_seconds=self._remaining,
            is_running=self._running,
            is_expired=self._expired,
            formatted_time=self.formatted_time,
            timer_status=self.timer_status,
        )

    # -------------------------
    # Controls
    # -------------------------
    def start(self) -> None:
        if self._expired:
            log.debug("start() ignored: timer already expired")
            return
        if self._running:
            return
        # raises RuntimeError outside an event loop, before any state changes
        loop = asyncio.get_running_loop() if self.auto_tick else None
        self._running = True
        if loop is not None:
            self._task = loop.create_task(self._run(), name="session-timer")

    def stop(self) -> None:
        self._running = False
        self._cancel_ticker()

    def reset(self) -> None:
        self.stop()
        self._elapsed = 0
        self._remaining = self.duration
        self._expired = False
        self._expire_fired = False

    def tick(self) -> None:
        """Advance the clock by one second."""
        if not self._running:
            return
        self._elapsed += 1
        if self.mode is not TimerMode.COUNTDOWN:
            return
        if self._remaining is not None and self._remaining <= 1:
            self._remaining = 0
            self._expire()
        else:
            self._remaining -= 1

    async def aclose(self) -> None:
        task = self._task
        self.stop()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> "SessionTimer":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    # -------------------------
    # Internals
    # -------------------------
    def _expire(self) -> None:
        self._expired = True
        self._running = False
        self._cancel_ticker()
        if self._expire_fired:
            return
        self._expire_fired = True
        log.info("Session timer expired after %ds", self._elapsed)
        if self.on_expire is not None:
            try:
                self.on_expire()
            except Exception:
                log.exception("on_expire callback failed")

    def _cancel_ticker(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_at = loop.time() + self.interval
        while self._running:
            # sleep to an absolute deadline so ticks do not drift
            await asyncio.sleep(max(0.0, next_at - loop.time()))
            if not self._running:
                break
            self.tick()
            next_at += self.interval
