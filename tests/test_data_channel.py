from app.services.data_channel import DataChannelSubscription, subscribe_data_channel
from app.services.data_decoder import DecodeError, EventType

from conftest import checkpoint_msg, transcript_msg


def test_filtered_subscription_skips_other_types(fake_room):
    received = []
    subscribe_data_channel(fake_room, lambda data, who, kind: received.append(data), event_types=["transcript"])

    fake_room.deliver({"type": "detection", "result": {}})
    fake_room.deliver({"kind": "no type at all"})
    fake_room.deliver(checkpoint_msg(60, 240, 1))
    assert received == []

    fake_room.deliver(transcript_msg("t1", "Hi"))
    assert len(received) == 1
    assert received[0]["turn_id"] == "t1"


def test_unfiltered_subscription_passes_everything(fake_room):
    received = []
    subscribe_data_channel(fake_room, lambda data, who, kind: received.append(data))
    fake_room.deliver({"type": "detection"})
    fake_room.deliver(transcript_msg("t1", "Hi"))
    assert len(received) == 2


def test_handler_receives_sender_and_kind(fake_room):
    calls = []
    subscribe_data_channel(fake_room, lambda data, who, kind: calls.append((who, kind)), event_types=[EventType.TRANSCRIPT])
    fake_room.deliver(transcript_msg("t1", "Hi"), identity="agent-42", kind="lossy")
    assert calls == [("agent-42", "lossy")]


def test_swapping_handler_keeps_single_subscription(fake_room):
    first, second = [], []
    sub = subscribe_data_channel(fake_room, lambda d, w, k: first.append(d), event_types=["transcript"])
    sub.handler = lambda d, w, k: second.append(d)
    sub.handler = lambda d, w, k: second.append(d)

    fake_room.deliver(transcript_msg("t1", "Hi"))
    assert first == []
    assert len(second) == 1
    assert fake_room.on_calls == 1
    assert fake_room.off_calls == 0


def test_event_types_resubscribe_only_on_change(fake_room):
    sub = subscribe_data_channel(fake_room, lambda d, w, k: None, event_types=["transcript"])
    sub.event_types = [EventType.TRANSCRIPT]
    assert fake_room.on_calls == 1

    sub.event_types = ["transcript", "time_checkpoint"]
    assert fake_room.on_calls == 2
    assert fake_room.off_calls == 1
    assert fake_room.listener_count("data_received") == 1


def test_decode_failure_reports_error_and_skips_handler(fake_room):
    received, errors = [], []
    subscribe_data_channel(
        fake_room,
        lambda d, w, k: received.append(d),
        on_error=errors.append,
    )
    fake_room.deliver(b"\xff\xfe")
    fake_room.deliver(b"{not json")
    assert received == []
    assert len(errors) == 2
    assert all(isinstance(e, DecodeError) for e in errors)


def test_handler_exception_does_not_escape(fake_room):
    def boom(data, who, kind):
        raise RuntimeError("handler bug")

    sub = DataChannelSubscription(boom)
    assert sub.handle_packet(b'{"type": "transcript"}') is True


def test_context_exit_detaches(fake_room):
    with DataChannelSubscription(lambda d, w, k: None).attach(fake_room) as sub:
        assert sub.attached
        assert fake_room.listener_count("data_received") == 1
    assert not sub.attached
    assert fake_room.listener_count("data_received") == 0
    # detaching twice is harmless
    sub.detach()
    assert fake_room.off_calls == 1
