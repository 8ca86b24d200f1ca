from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.timer_config import DEFAULT_AGENT_TYPE, TimerMode, TimerStatus
from app.schemas.transcript import TranscriptSegment


class TimerState(BaseModel):
    mode: TimerMode
    elapsed_seconds: int
    remaining_seconds: Optional[int] = None  # countdown mode only
    is_running: bool
    is_expired: bool
    formatted_time: str
    timer_status: TimerStatus


class SessionState(BaseModel):
    room_name: str
    agent_type: str
    session_id: Optional[str] = None
    connected: bool = False
    transcript: List[TranscriptSegment]
    timer: TimerState
    error: Optional[str] = None


class ConnectionRequest(BaseModel):
    """Body sent by the web app when a learner opens a practice session.

    `room_config` is what the LiveKit React helpers send; only the agent name
    is read from it.
    """

    identity: Optional[str] = None
    name: Optional[str] = None
    agent_type: Optional[str] = None
    session_id: Optional[str] = None
    context: Optional[Dict[str, Any]] = None
    room_config: Optional[Dict[str, Any]] = None


class ConnectionDetails(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    server_url: str = Field(alias="serverUrl")
    room_name: str = Field(alias="roomName")
    participant_name: str = Field(alias="participantName")
    participant_token: str = Field(alias="participantToken")


class MonitorRequest(BaseModel):
    agent_type: str = DEFAULT_AGENT_TYPE
    mode: TimerMode = TimerMode.COUNTDOWN
    duration: Optional[int] = Field(default=None, gt=0)
    session_id: Optional[str] = None
