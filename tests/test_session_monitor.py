import asyncio

import pytest

from app.core.timer_config import TimerMode, TimerStatus
from app.services.session_monitor import SessionMonitor

from conftest import FakeRoom, checkpoint_msg, drain, transcript_msg


def make_monitor(room, store, **kwargs):
    kwargs.setdefault("agent_type", "english_tutor")
    # long interval: tests drive the clock with timer.tick()
    kwargs.setdefault("timer_interval", 60.0)
    return SessionMonitor("voice_room_1", room_factory=lambda: room, session_store=store, **kwargs)


@pytest.mark.asyncio
async def test_start_connects_and_starts_timer(fake_room, fake_store):
    monitor = make_monitor(fake_room, fake_store)
    assert monitor.timer.is_running is False

    await monitor.start("wss://lk.example", "token")
    assert fake_room.connected
    assert monitor.connected
    assert monitor.timer.is_running
    assert fake_room.listener_count("data_received") == 2
    assert fake_room.listener_count("disconnected") == 1

    await monitor.close()


@pytest.mark.asyncio
async def test_packets_feed_transcript(fake_room, fake_store):
    monitor = make_monitor(fake_room, fake_store)
    await monitor.start("wss://lk.example", "token")

    fake_room.deliver(transcript_msg("t2", "Hi, I'm Sam", role="user", timestamp="2025-01-01T10:00:05Z"))
    fake_room.deliver(transcript_msg("t1", "Welcome!", timestamp="2025-01-01T10:00:00Z", is_final=True))
    fake_room.deliver(checkpoint_msg(60, 240, 1))
    fake_room.deliver(transcript_msg("t2", "Hi, I'm Sam and", role="user", timestamp="2025-01-01T10:00:05Z"))

    state = monitor.state()
    assert [s.id for s in state.transcript] == ["t1", "t2"]
    assert state.transcript[1].text == "Hi, I'm Sam and"
    assert state.error is None

    fake_room.deliver(b"\xff")
    assert monitor.state().error is not None

    await monitor.close()


@pytest.mark.asyncio
async def test_expiry_forces_disconnect_and_reports_end(fake_room, fake_store):
    monitor = make_monitor(fake_room, fake_store, duration=3, session_id="sess-1")
    await monitor.start("wss://lk.example", "token")

    for _ in range(3):
        monitor.timer.tick()
    assert monitor.timer.is_expired
    await drain()

    assert fake_room.disconnect_calls == 1
    assert fake_room.connected is False
    assert monitor.connected is False
    assert monitor.end_reason == "timer_expired"
    assert len(fake_store.calls) == 1
    session_id, fields = fake_store.calls[0]
    assert session_id == "sess-1"
    assert fields["status"] == "completed"
    assert fields["end_reason"] == "timer_expired"
    assert "ended_at" in fields
    assert monitor.end_reported is True

    await monitor.close()


@pytest.mark.asyncio
async def test_remote_disconnect_stops_timer(fake_room, fake_store):
    monitor = make_monitor(fake_room, fake_store, session_id="sess-2")
    await monitor.start("wss://lk.example", "token")
    monitor.timer.tick()

    fake_room.emit("disconnected", "PARTICIPANT_REMOVED")
    await drain()

    assert monitor.timer.is_running is False
    assert monitor.timer.remaining_seconds == 299
    assert monitor.end_reason == "disconnected"
    assert fake_store.calls[0][1]["end_reason"] == "disconnected"
    await monitor.close()


@pytest.mark.asyncio
async def test_close_releases_everything(fake_room, fake_store):
    monitor = make_monitor(fake_room, fake_store, session_id="sess-3")
    await monitor.start("wss://lk.example", "token")
    ticker = monitor.timer._task

    await monitor.close()
    assert ticker.done()
    assert monitor.timer.is_running is False
    assert fake_room.listener_count("data_received") == 0
    assert fake_room.listener_count("disconnected") == 0
    assert fake_room.disconnect_calls == 1
    # observer leaving is not the end of the learner's session
    assert fake_store.calls == []

    await monitor.close()
    assert fake_room.disconnect_calls == 1


@pytest.mark.asyncio
async def test_close_during_connect_does_not_start_timer(fake_room, fake_store):
    fake_room.connect_gate = asyncio.Event()
    monitor = make_monitor(fake_room, fake_store)

    starting = asyncio.create_task(monitor.start("wss://lk.example", "token"))
    await drain()
    await monitor.close()

    fake_room.connect_gate.set()
    await starting

    assert monitor.timer.is_running is False
    assert monitor.connected is False
    assert fake_room.connected is False


@pytest.mark.asyncio
async def test_connect_failure_cleans_up(fake_store):
    class FailingRoom(FakeRoom):
        async def connect(self, url, token):
            raise ConnectionError("refused")

    room = FailingRoom()
    monitor = make_monitor(room, fake_store)
    with pytest.raises(ConnectionError):
        await monitor.start("wss://lk.example", "token")
    assert room.listener_count("data_received") == 0
    assert monitor.timer.is_running is False


@pytest.mark.asyncio
async def test_count_up_mode_never_expires(fake_room, fake_store):
    monitor = make_monitor(fake_room, fake_store, mode=TimerMode.COUNT_UP)
    await monitor.start("wss://lk.example", "token")
    for _ in range(1000):
        monitor.timer.tick()
    state = monitor.state().timer
    assert state.elapsed_seconds == 1000
    assert state.is_expired is False
    assert state.timer_status is TimerStatus.NORMAL
    assert fake_room.connected
    await monitor.close()


@pytest.mark.asyncio
async def test_on_ended_called_after_report(fake_room, fake_store):
    ended = []
    monitor = make_monitor(
        fake_room,
        fake_store,
        session_id="sess-3",
        on_ended=lambda m: ended.append((m, m.end_reported)),
    )
    await monitor.start("wss://lk.example", "token")

    fake_room.emit("disconnected", "ROOM_DELETED")
    await drain()

    assert ended == [(monitor, True)]
    await monitor.close()


@pytest.mark.asyncio
async def test_on_ended_not_called_on_close(fake_room, fake_store):
    ended = []
    monitor = make_monitor(fake_room, fake_store, on_ended=ended.append)
    await monitor.start("wss://lk.example", "token")

    await monitor.close()
    await drain()
    assert ended == []
