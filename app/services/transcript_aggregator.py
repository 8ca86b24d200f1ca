from __future__ import annotations

from typing import Any, Dict, List, Optional

from app.core.logger import get_logger
from app.schemas.transcript import TranscriptSegment
from app.services.data_decoder import DecodeError, EventType, get_event_type, parse_transcript_message

log = get_logger(__name__)


class TranscriptAggregator:
    """Live, deduplicated view of the conversation turns in one session.

    One segment is kept per ``turn_id``. Every event for a turn replaces the
    stored segment outright (last arrival wins), so replaying an event leaves
    the view unchanged. ``snapshot()`` orders segments by timestamp.

    All mutation is expected on the event loop thread, in delivery order.
    """

    def __init__(self) -> None:
        self._segments: Dict[str, TranscriptSegment] = {}
        self.last_error: Optional[str] = None

    def __len__(self) -> int:
        return len(self._segments)

    def __call__(self, data: Any, participant: Optional[str] = None, kind: Optional[Any] = None) -> None:
        self.on_event(data)

    def on_event(self, data: Any) -> Optional[TranscriptSegment]:
        """Upsert the segment carried by a decoded transcript event.

        Payloads of another type are ignored. A ``transcript`` payload missing
        its fields is dropped and logged like any other malformed one. Returns
        the stored segment, or None when the event was ignored or rejected.
        """
        if get_event_type(data) is not EventType.TRANSCRIPT:
            return None
        try:
            message = parse_transcript_message(data)
        except DecodeError as e:
            log.warning("Dropping malformed transcript event: %s", e)
            self.record_error(str(e))
            return None

        segment = TranscriptSegment.from_message(message)
        self._segments[message.turn_id] = segment
        self.last_error = None
        return segment

    def record_error(self, message: str) -> None:
        self.last_error = message

    def get(self, turn_id: str) -> Optional[TranscriptSegment]:
        return self._segments.get(turn_id)

    def snapshot(self) -> List[TranscriptSegment]:
        # sorted() is stable: equal timestamps keep first-arrival order
        return sorted(self._segments.values(), key=lambda s: s.timestamp)

    def clear(self) -> None:
        self._segments = {}
        self.last_error = None
