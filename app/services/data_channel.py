"""
Typed subscriptions on a LiveKit room's data channel.

A subscription is attached to the room once per distinct set of event types.
The handler it dispatches to lives in a one-slot cell, so callers can swap it
at any time (for example when rebinding to a new consumer) without the room
listener being removed and re-added.
"""

from __future__ import annotations

from typing import Any, Callable, FrozenSet, Iterable, Optional, Union

from app.core.config import get_settings
from app.core.logger import get_logger
from app.services.data_decoder import DecodeError, EventType, decode_data_packet, get_event_type

log = get_logger(__name__)

DATA_RECEIVED = "data_received"

# handler(data, sender_identity, kind)
DataMessageHandler = Callable[[Any, Optional[str], Optional[Any]], None]
DecodeErrorHandler = Callable[[DecodeError], None]


def _normalize_types(event_types: Optional[Iterable[Union[str, EventType]]]) -> Optional[FrozenSet[str]]:
    if event_types is None:
        return None
    types = frozenset(t.value if isinstance(t, EventType) else str(t) for t in event_types)
    # An empty allow-list means "no filter"
    return types or None


class DataChannelSubscription:
    """Dispatch decoded data packets from a room to a handler."""

    def __init__(
        self,
        handler: DataMessageHandler,
        event_types: Optional[Iterable[Union[str, EventType]]] = None,
        debug: Optional[bool] = None,
        on_error: Optional[DecodeErrorHandler] = None,
    ) -> None:
        self._handler = handler
        self._event_types = _normalize_types(event_types)
        self.debug = get_settings().DATA_CHANNEL_DEBUG if debug is None else debug
        self.on_error = on_error
        self._room: Any = None

    @property
    def handler(self) -> DataMessageHandler:
        return self._handler

    @handler.setter
    def handler(self, handler: DataMessageHandler) -> None:
        self._handler = handler

    @property
    def event_types(self) -> Optional[FrozenSet[str]]:
        return self._event_types

    @event_types.setter
    def event_types(self, event_types: Optional[Iterable[Union[str, EventType]]]) -> None:
        new_types = _normalize_types(event_types)
        if new_types == self._event_types:
            return
        self._event_types = new_types
        room = self._room
        if room is not None:
            # Filter set changed: re-establish the subscription
            self.detach()
            self.attach(room)

    @property
    def attached(self) -> bool:
        return self._room is not None

    def attach(self, room: Any) -> "DataChannelSubscription":
        if self._room is room:
            return self
        if self._room is not None:
            self.detach()
        room.on(DATA_RECEIVED, self._on_data_received)
        self._room = room
        if self.debug:
            log.info("Subscribed to %s (event_types=%s)", DATA_RECEIVED, sorted(self._event_types or []) or "all")
        return self

    def detach(self) -> None:
        room = self._room
        if room is None:
            return
        self._room = None
        try:
            room.off(DATA_RECEIVED, self._on_data_received)
        except Exception:
            log.exception("Failed to unsubscribe from %s", DATA_RECEIVED)
        if self.debug:
            log.info("Unsubscribed from %s", DATA_RECEIVED)

    def __enter__(self) -> "DataChannelSubscription":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.detach()

    def _on_data_received(self, packet: Any) -> None:
        # livekit.rtc emits a DataPacket(data, kind, participant, topic)
        participant = getattr(packet, "participant", None)
        identity = getattr(participant, "identity", None) if participant is not None else None
        self.handle_packet(packet.data, identity, getattr(packet, "kind", None))

    def handle_packet(self, payload: bytes, participant: Optional[str] = None, kind: Optional[Any] = None) -> bool:
        """Decode one packet and hand it to the current handler.

        Returns True when the handler was invoked. Never raises.
        """
        try:
            data = decode_data_packet(payload)
        except DecodeError as e:
            log.warning("Dropping undecodable data packet from %s: %s", participant or "?", e)
            self._report(e)
            return False

        event_type = get_event_type(data)
        if self.debug:
            log.info(
                "Data received: type=%s from=%s kind=%s data=%s",
                event_type.value if event_type else None,
                participant,
                kind,
                data,
            )

        if self._event_types is not None:
            if event_type is None or event_type.value not in self._event_types:
                return False

        try:
            self._handler(data, participant, kind)
        except Exception:
            log.exception("Data channel handler failed for type=%s", event_type.value if event_type else None)
        return True

    def _report(self, error: DecodeError) -> None:
        if self.on_error is None:
            return
        try:
            self.on_error(error)
        except Exception:
            log.exception("Data channel error callback failed")


def subscribe_data_channel(
    room: Any,
    handler: DataMessageHandler,
    event_types: Optional[Iterable[Union[str, EventType]]] = None,
    debug: Optional[bool] = None,
    on_error: Optional[DecodeErrorHandler] = None,
) -> DataChannelSubscription:
    """Create a subscription and attach it to ``room``."""
    return DataChannelSubscription(handler, event_types=event_types, debug=debug, on_error=on_error).attach(room)
