"""pytest configuration for irrigation relay tests."""

from __future__ import annotations

import asyncio
import json

import pytest
from starlette.websockets import WebSocketState

from irrigation.db import init_db, set_db_path


# Configure asyncio mode for pytest-asyncio
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


class FakeWebSocket:
    """Minimal stand-in for a server-side WebSocket that records sends."""

    def __init__(self, fail: bool = False, delay: float = 0.0, close_fail: bool = False) -> None:
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[str] = []
        self.fail = fail
        self.delay = delay
        self.close_fail = close_fail
        self.close_code: int | None = None

    async def send_text(self, data: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("socket write failed")
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        if self.close_fail:
            raise RuntimeError("close failed")
        self.close_code = code
        self.application_state = WebSocketState.DISCONNECTED

    def disconnect(self) -> None:
        self.client_state = WebSocketState.DISCONNECTED

    @property
    def sent_json(self) -> list[dict]:
        return [json.loads(s) for s in self.sent]


@pytest.fixture
def fake_ws():
    return FakeWebSocket


@pytest.fixture
def temp_db(tmp_path):
    """Use a fresh temp database for the test."""
    db_path = tmp_path / "test.db"
    set_db_path(db_path)
    init_db()
    yield db_path
