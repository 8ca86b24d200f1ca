import json

import pytest

from app.schemas.checkpoint import CheckpointMessage
from app.schemas.transcript import TranscriptMessage, TranscriptRole
from app.services.data_decoder import (
    DecodeError,
    EventType,
    StructuralMismatch,
    decode_data_packet,
    decode_event,
    encode_data_packet,
    get_event_type,
    is_checkpoint_message,
    is_transcript_message,
    parse_transcript_message,
)

from conftest import checkpoint_msg, transcript_msg


def test_decode_valid_packet():
    payload = json.dumps({"type": "transcript", "text": "héllo"}).encode("utf-8")
    assert decode_data_packet(payload) == {"type": "transcript", "text": "héllo"}


@pytest.mark.parametrize("payload", [b"\xff\xfe\xfd", b"not json", b"{\"type\": "])
def test_decode_rejects_bad_bytes(payload):
    with pytest.raises(DecodeError):
        decode_data_packet(payload)


def test_get_event_type():
    assert get_event_type({"type": "transcript"}) is EventType.TRANSCRIPT
    assert get_event_type({"type": "time_checkpoint"}) is EventType.TIME_CHECKPOINT
    assert get_event_type({"type": "detection"}) is None
    assert get_event_type({"type": 3}) is None
    assert get_event_type({"role": "user"}) is None
    assert get_event_type(["transcript"]) is None
    assert get_event_type(None) is None


def test_structural_predicates():
    assert is_transcript_message(transcript_msg("t1", "hi"))
    assert not is_transcript_message({"type": "transcript", "role": "user"})
    assert not is_transcript_message("transcript")
    assert is_checkpoint_message(checkpoint_msg(60, 240, 1))
    assert not is_checkpoint_message({"type": "time_checkpoint"})


def test_parse_transcript_uses_wire_names():
    msg = parse_transcript_message(transcript_msg("t1", "Hello", role="user", is_final=True))
    assert isinstance(msg, TranscriptMessage)
    assert msg.turn_id == "t1"
    assert msg.role is TranscriptRole.USER
    assert msg.is_final is True
    assert msg.timestamp.tzinfo is not None


@pytest.mark.parametrize(
    "data",
    [
        {**transcript_msg("t1", "x"), "role": "moderator"},
        {**transcript_msg("t1", "x"), "timestamp": "yesterday"},
        {k: v for k, v in transcript_msg("t1", "x").items() if k != "turn_id"},
    ],
)
def test_parse_transcript_structural_mismatch(data):
    with pytest.raises(StructuralMismatch):
        parse_transcript_message(data)


def test_structural_mismatch_is_a_decode_error():
    assert issubclass(StructuralMismatch, DecodeError)


def test_decode_event_dispatches_by_type():
    event = decode_event(json.dumps(checkpoint_msg(120, 180, 2, is_final=True)).encode())
    assert isinstance(event, CheckpointMessage)
    assert event.metadata.remaining_seconds == 180
    assert event.metadata.is_final is True

    with pytest.raises(StructuralMismatch):
        decode_event(b'{"type": "detection"}')


def test_encode_matches_agent_wire_format():
    msg = parse_transcript_message(transcript_msg("t9", "Hi", is_final=True))
    body = json.loads(encode_data_packet(msg))
    assert body["isFinal"] is True
    assert body["turn_id"] == "t9"
    assert body["type"] == "transcript"
    assert decode_event(encode_data_packet(msg)) == msg
