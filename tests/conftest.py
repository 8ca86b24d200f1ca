import asyncio
import json
from types import SimpleNamespace

import pytest


class FakeRoom:
    """Stands in for livekit.rtc.Room: event emitter plus connect/disconnect."""

    def __init__(self):
        self.listeners = {}
        self.on_calls = 0
        self.off_calls = 0
        self.connected = False
        self.disconnect_calls = 0
        self.connect_gate = None  # set to an asyncio.Event to hold connect()

    def on(self, event, callback):
        self.listeners.setdefault(event, []).append(callback)
        self.on_calls += 1
        return callback

    def off(self, event, callback):
        self.listeners[event].remove(callback)
        self.off_calls += 1

    def emit(self, event, *args):
        for cb in list(self.listeners.get(event, [])):
            cb(*args)

    def listener_count(self, event):
        return len(self.listeners.get(event, []))

    async def connect(self, url, token):
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        self.connected = True

    async def disconnect(self):
        self.disconnect_calls += 1
        was_connected = self.connected
        self.connected = False
        if was_connected:
            self.emit("disconnected", "CLIENT_INITIATED")

    def deliver(self, message, identity="agent", kind="reliable"):
        """Emit a data_received event the way livekit.rtc does."""
        data = message if isinstance(message, bytes) else json.dumps(message).encode("utf-8")
        packet = SimpleNamespace(data=data, participant=SimpleNamespace(identity=identity), kind=kind, topic=None)
        self.emit("data_received", packet)


class FakeStore:
    def __init__(self, result=None):
        self.calls = []
        self.result = result if result is not None else {"ok": True}

    async def update_session(self, session_id, **fields):
        self.calls.append((session_id, fields))
        return dict(self.result)


def transcript_msg(turn_id, text, timestamp="2025-01-01T10:00:00Z", role="assistant", is_final=False):
    return {
        "type": "transcript",
        "role": role,
        "text": text,
        "timestamp": timestamp,
        "isFinal": is_final,
        "turn_id": turn_id,
    }


def checkpoint_msg(elapsed, remaining, index, is_final=False, status="ok"):
    return {
        "type": "time_checkpoint",
        "status": status,
        "metadata": {
            "elapsed_seconds": elapsed,
            "remaining_seconds": remaining,
            "checkpoint_index": index,
            "is_final": is_final,
        },
    }


async def drain(rounds=5):
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def fake_room():
    return FakeRoom()


@pytest.fixture
def fake_store():
    return FakeStore()
