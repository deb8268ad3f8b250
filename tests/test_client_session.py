"""Tests for the reconnecting relay client session."""

from __future__ import annotations

import asyncio
import json

import pytest

from client.irrigation_client.history import RollingHistory
from client.irrigation_client.session import (
    ReconnectingSession,
    SessionState,
    consumer_session,
    device_session,
)

READING = {
    "temperature": 28.5,
    "humidity": 65,
    "soilMoisture": 500,
    "lightLevel": 300,
    "rainDrop": 1,
    "pumpStatus": False,
    "autoMode": True,
}


# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #

class FakeClientWS:
    """Scripted client socket: yields *incoming*, then optionally stays open."""

    def __init__(self, incoming: list | None = None, stay_open: bool = False):
        self._incoming = [m if isinstance(m, str) else json.dumps(m) for m in (incoming or [])]
        self._release = asyncio.Event()
        if not stay_open:
            self._release.set()
        self.sent: list[dict] = []
        self.closed = False

    async def send(self, data: str) -> None:
        self.sent.append(json.loads(data))

    async def close(self) -> None:
        self.closed = True
        self._release.set()

    def drop(self) -> None:
        """Simulate the relay closing the socket."""
        self._release.set()

    def __aiter__(self):
        return self._messages()

    async def _messages(self):
        for raw in self._incoming:
            yield raw
        await self._release.wait()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *_):
        self.closed = True


class FakeConnector:
    """Hands out scripted sockets, then refuses connections."""

    def __init__(self, *sockets: FakeClientWS):
        self._sockets = list(sockets)
        self.calls = 0
        self.kwargs: dict = {}
        self.exhausted = asyncio.Event()

    def __call__(self, url: str, **kwargs):
        self.calls += 1
        self.kwargs = kwargs
        if not self._sockets:
            self.exhausted.set()
            raise OSError("connection refused")
        return self._sockets.pop(0)


async def _eventually(cond, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not cond():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


# ------------------------------------------------------------------ #
# Tests
# ------------------------------------------------------------------ #

class TestAnnouncement:
    @pytest.mark.asyncio
    async def test_consumer_announces_and_reannounces(self):
        first, second = FakeClientWS(), FakeClientWS()
        connector = FakeConnector(first, second)
        session = consumer_session(
            "ws://relay", "frontend-1234", reconnect_delay=0, connect=connector
        )
        await session.start()
        await asyncio.wait_for(connector.exhausted.wait(), 1.0)
        await session.close()

        announce = {"type": "init-frontend", "frontendId": "frontend-1234"}
        assert first.sent == [announce]
        assert second.sent == [announce]
        assert session.connect_count == 2
        assert connector.kwargs["ping_interval"] == 20

    @pytest.mark.asyncio
    async def test_device_announces(self):
        sock = FakeClientWS(stay_open=True)
        session = device_session("ws://relay", connect=FakeConnector(sock))
        await session.start()
        await _eventually(lambda: session.connected)
        assert sock.sent == [{"type": "init-esp"}]
        await session.close()


class TestInbound:
    @pytest.mark.asyncio
    async def test_telemetry_updates_state_and_history(self):
        sock = FakeClientWS(
            [{"type": "device-status", "espConnected": True}, "garbage{", READING],
            stay_open=True,
        )
        session = consumer_session("ws://relay", "a", connect=FakeConnector(sock))
        await session.start()
        await _eventually(lambda: len(session.history()) == 1)

        state = session.current_state()
        assert state["connected"] is True
        assert state["espConnected"] is True
        assert state["temperature"] == 28.5
        assert "lastUpdated" in state
        assert "type" not in state

        history = session.history()
        assert history[0]["soilMoisture"] == 500
        assert "receivedAt" in history[0]
        await session.close()

    @pytest.mark.asyncio
    async def test_history_is_bounded(self):
        readings = [{**READING, "temperature": float(i)} for i in range(5)]
        sock = FakeClientWS(readings, stay_open=True)
        session = consumer_session("ws://relay", "a", history_size=3, connect=FakeConnector(sock))
        await session.start()
        await _eventually(lambda: session.current_state().get("temperature") == 4.0)

        assert [h["temperature"] for h in session.history()] == [2.0, 3.0, 4.0]
        await session.close()

    @pytest.mark.asyncio
    async def test_handler_error_does_not_stop_session(self):
        seen = []

        async def _handler(payload):
            seen.append(payload)
            raise RuntimeError("bad handler")

        sock = FakeClientWS([READING, {"type": "refresh"}], stay_open=True)
        session = device_session("ws://relay", on_message=_handler, connect=FakeConnector(sock))
        await session.start()
        await _eventually(lambda: len(seen) == 2)
        assert session.connected
        await session.close()

    @pytest.mark.asyncio
    async def test_state_survives_disconnect(self):
        sock = FakeClientWS([READING], stay_open=True)
        connector = FakeConnector(sock)
        session = consumer_session("ws://relay", "a", reconnect_delay=0.05, connect=connector)
        await session.start()
        await _eventually(lambda: len(session.history()) == 1)

        sock.drop()
        await _eventually(lambda: not session.connected)
        state = session.current_state()
        assert state["connected"] is False
        assert state["temperature"] == 28.5
        assert len(session.history()) == 1
        await session.close()


class TestSend:
    @pytest.mark.asyncio
    async def test_send_when_closed_is_noop(self):
        session = consumer_session("ws://relay", "a", connect=FakeConnector())
        assert session.state is SessionState.DISCONNECTED
        assert await session.send({"type": "refresh"}) is False

    @pytest.mark.asyncio
    async def test_send_when_open(self):
        sock = FakeClientWS(stay_open=True)
        session = consumer_session("ws://relay", "a", connect=FakeConnector(sock))
        await session.start()
        await _eventually(lambda: session.connected)

        assert await session.send({"type": "refresh"}) is True
        assert sock.sent[-1] == {"type": "refresh"}
        await session.close()
        assert await session.send({"type": "refresh"}) is False


class TestClose:
    @pytest.mark.asyncio
    async def test_close_stops_reconnecting(self):
        connector = FakeConnector()
        session = consumer_session("ws://relay", "a", reconnect_delay=0.01, connect=connector)
        await session.start()
        await asyncio.wait_for(connector.exhausted.wait(), 1.0)
        await session.close()

        calls = connector.calls
        await asyncio.sleep(0.05)
        assert connector.calls == calls
        assert session.state is SessionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_close_closes_socket(self):
        sock = FakeClientWS(stay_open=True)
        session = consumer_session("ws://relay", "a", connect=FakeConnector(sock))
        await session.start()
        await _eventually(lambda: session.connected)
        await session.close()
        assert sock.closed

    @pytest.mark.asyncio
    async def test_start_and_close_are_idempotent(self):
        sock = FakeClientWS(stay_open=True)
        connector = FakeConnector(sock)
        session = ReconnectingSession("ws://relay", {"type": "init-esp"}, connect=connector)
        await session.start()
        await session.start()
        await _eventually(lambda: session.connected)
        assert connector.calls == 1
        await session.close()
        await session.close()


class TestRollingHistory:
    def test_fifo_eviction(self):
        history = RollingHistory(maxlen=2)
        for i in range(3):
            history.append({"n": i})
        assert [e["n"] for e in history.snapshot()] == [1, 2]
        assert len(history) == 2
        assert history.maxlen == 2

    def test_snapshot_is_a_copy(self):
        history = RollingHistory()
        history.append({"n": 1})
        snap = history.snapshot()
        snap[0]["n"] = 99
        assert history.snapshot()[0]["n"] == 1

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            RollingHistory(maxlen=0)
