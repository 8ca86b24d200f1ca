"""
Decoding of LiveKit data-channel packets published by the voice agent.

The agent calls ``room.local_participant.publish_data()`` with a UTF-8 JSON
object carrying at least a ``type`` field. Two types are understood:

- ``transcript``: interim/final text for one conversational turn.
- ``time_checkpoint``: elapsed/remaining session time notices.

Anything that is not valid UTF-8 JSON raises ``DecodeError``; payloads whose
shape does not match their ``type`` raise ``StructuralMismatch``. Callers on
the transport path catch both and drop the packet.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError

from app.schemas.checkpoint import CheckpointMessage
from app.schemas.transcript import TranscriptMessage

DecodedEvent = Union[TranscriptMessage, CheckpointMessage]


class EventType(str, Enum):
    TRANSCRIPT = "transcript"
    TIME_CHECKPOINT = "time_checkpoint"


class DecodeError(ValueError):
    """Packet bytes are not UTF-8 text or not valid JSON."""


class StructuralMismatch(DecodeError):
    """Packet decoded fine but lacks the fields its ``type`` requires."""


def decode_data_packet(payload: bytes) -> Any:
    """Decode a binary payload into the parsed JSON value."""
    try:
        text = bytes(payload).decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"payload is not valid UTF-8: {e}") from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise DecodeError(f"payload is not valid JSON: {e}") from e


def get_event_type(data: Any) -> Optional[EventType]:
    """Return the recognised ``type`` of a decoded payload, else None."""
    if not isinstance(data, Mapping):
        return None
    raw = data.get("type")
    if not isinstance(raw, str):
        return None
    try:
        return EventType(raw)
    except ValueError:
        return None


def is_transcript_message(data: Any) -> bool:
    return (
        isinstance(data, Mapping)
        and data.get("type") == EventType.TRANSCRIPT.value
        and "role" in data
        and "text" in data
    )


def is_checkpoint_message(data: Any) -> bool:
    return (
        isinstance(data, Mapping)
        and data.get("type") == EventType.TIME_CHECKPOINT.value
        and "metadata" in data
    )


def parse_transcript_message(data: Any) -> TranscriptMessage:
    if not is_transcript_message(data):
        raise StructuralMismatch("not a transcript message")
    try:
        return TranscriptMessage.model_validate(data)
    except ValidationError as e:
        raise StructuralMismatch(f"malformed transcript message: {e.error_count()} error(s)") from e


def parse_checkpoint_message(data: Any) -> CheckpointMessage:
    if not is_checkpoint_message(data):
        raise StructuralMismatch("not a time checkpoint message")
    try:
        return CheckpointMessage.model_validate(data)
    except ValidationError as e:
        raise StructuralMismatch(f"malformed checkpoint message: {e.error_count()} error(s)") from e


def decode_event(payload: bytes) -> DecodedEvent:
    """Decode, classify and validate a packet in one step."""
    data = decode_data_packet(payload)
    event_type = get_event_type(data)
    if event_type is EventType.TRANSCRIPT:
        return parse_transcript_message(data)
    if event_type is EventType.TIME_CHECKPOINT:
        return parse_checkpoint_message(data)
    raw_type = data.get("type") if isinstance(data, Mapping) else None
    raise StructuralMismatch(f"unrecognised event type: {raw_type!r}")


def encode_data_packet(message: Union[BaseModel, Mapping[str, Any]]) -> bytes:
    """Encode a message the way the agent publishes it."""
    if isinstance(message, BaseModel):
        body = message.model_dump(mode="json", by_alias=True)
    else:
        body = dict(message)
    return json.dumps(body, separators=(",", ":")).encode("utf-8")
