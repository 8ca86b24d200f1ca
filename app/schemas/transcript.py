from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TranscriptRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


def _as_aware(value: datetime) -> datetime:
    # Naive timestamps are taken as UTC so segments always compare
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TranscriptMessage(BaseModel):
    """Transcript update published by the agent over the data channel.

    The agent sends cumulative text for a turn on every interim update, so the
    latest message for a ``turn_id`` carries everything said so far.
    """

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["transcript"] = "transcript"
    role: TranscriptRole
    text: str
    timestamp: datetime  # ISO 8601 on the wire
    is_final: bool = Field(default=False, alias="isFinal")
    turn_id: str = Field(min_length=1)

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return _as_aware(value)


class TranscriptSegment(BaseModel):
    """Render-ready view of one conversational turn."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    role: TranscriptRole
    text: str
    timestamp: datetime
    is_final: bool = Field(alias="isFinal")

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return _as_aware(value)

    @classmethod
    def from_message(cls, message: TranscriptMessage) -> "TranscriptSegment":
        return cls(
            id=message.turn_id,
            role=message.role,
            text=message.text,
            timestamp=message.timestamp,
            is_final=message.is_final,
        )


class Transcript(BaseModel):
    """Ordered transcript of one room, as served over HTTP."""

    room_name: str
    transcript: List[TranscriptSegment]
    error: Optional[str] = None
