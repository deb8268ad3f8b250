"""Reconnecting WebSocket session to the irrigation relay.

Handles the client side of the protocol for either role:
  Device:    announces ``init-esp``, sends telemetry, receives commands
  Consumer:  announces ``init-frontend``, sends commands, receives telemetry

States: DISCONNECTED → CONNECTING → OPEN → DISCONNECTED → …

A single background task owns the socket.  After any close or error it
waits a fixed delay and connects again, re-announcing its role, until
:meth:`ReconnectingSession.close` is called.
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.asyncio.client import ClientConnection

from .history import DEFAULT_HISTORY_SIZE, RollingHistory

logger = logging.getLogger(__name__)

MessageHandler = Callable[[dict], Awaitable[None]]

DEFAULT_RECONNECT_DELAY = 3.0

_HISTORY_TYPES = (None, "telemetry", "command", "refresh")


class SessionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"


class ReconnectingSession:
    """Owns one relay connection and keeps it alive."""

    def __init__(
        self,
        server_url: str,
        announce: dict,
        *,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        history_size: int = DEFAULT_HISTORY_SIZE,
        on_message: MessageHandler | None = None,
        connect: Callable[..., Any] | None = None,
    ):
        self.server_url = server_url
        self.announce = announce
        self.reconnect_delay = reconnect_delay
        self.on_message = on_message

        self._connect = connect or websockets.connect
        self._ws: Optional[ClientConnection] = None
        self._state = SessionState.DISCONNECTED
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._latest: dict[str, Any] = {}
        self._history = RollingHistory(history_size)
        self.connect_count = 0

    # ── Lifecycle ──────────────────────────────────────────────────

    async def start(self) -> None:
        """Start the connection loop in a background task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())

    async def close(self) -> None:
        """Close the socket and stop all future reconnection attempts."""
        self._running = False
        ws = self._ws
        if ws is not None:
            try:
                await ws.close()
            except Exception:
                logger.debug("Error closing relay socket", exc_info=True)
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._ws = None
        self._state = SessionState.DISCONNECTED

    async def wait_closed(self) -> None:
        """Block until the session loop exits (i.e. after :meth:`close`)."""
        if self._task:
            await asyncio.wait({self._task})

    async def _run_loop(self) -> None:
        while self._running:
            self._state = SessionState.CONNECTING
            try:
                await self._connect_and_listen()
            except (websockets.WebSocketException, OSError, asyncio.TimeoutError) as exc:
                logger.warning(
                    "Relay connection lost: %s; retrying in %ss", exc, self.reconnect_delay
                )
            except Exception as exc:
                logger.error(
                    "Unexpected relay session error: %s; retrying in %ss", exc, self.reconnect_delay
                )
            finally:
                self._ws = None
                self._state = SessionState.DISCONNECTED

            if not self._running:
                break
            await asyncio.sleep(self.reconnect_delay)

    async def _connect_and_listen(self) -> None:
        """Single connection lifecycle: connect → announce → read until closed."""
        async with self._connect(
            self.server_url,
            ping_interval=20,
            ping_timeout=10,
            close_timeout=5,
        ) as ws:
            self._ws = ws
            self._state = SessionState.OPEN
            self.connect_count += 1
            await ws.send(json.dumps(self.announce))
            logger.info("Connected to relay at %s as %s", self.server_url, self.announce.get("type"))

            async for raw in ws:
                await self._handle_raw(raw)

        logger.info("Disconnected from relay")

    # ── Messages ───────────────────────────────────────────────────

    async def _handle_raw(self, raw: str | bytes) -> None:
        try:
            payload = json.loads(raw)
        except (json.JSONDecodeError, TypeError, UnicodeDecodeError):
            logger.warning("Ignored non-JSON message: %r", raw[:100])
            return
        if not isinstance(payload, dict):
            logger.warning("Ignored non-object message: %r", payload)
            return

        received_at = datetime.now(timezone.utc)
        self._latest.update({k: v for k, v in payload.items() if k != "type"})
        self._latest["lastUpdated"] = received_at.isoformat()
        if payload.get("type") in _HISTORY_TYPES:
            self._history.append(payload, received_at)

        if self.on_message:
            try:
                await self.on_message(payload)
            except Exception:
                logger.exception("Handler error for %s message", payload.get("type", "telemetry"))

    async def send(self, payload: dict) -> bool:
        """Send *payload* if the socket is open.  Best effort, at most once."""
        ws = self._ws
        if ws is None or self._state is not SessionState.OPEN:
            return False
        try:
            await ws.send(json.dumps(payload))
        except websockets.ConnectionClosed:
            logger.debug("Send dropped: relay connection closed")
            return False
        return True

    # ── State ──────────────────────────────────────────────────────

    def current_state(self) -> dict[str, Any]:
        """Latest merged values plus the socket's ``connected`` flag."""
        return {**self._latest, "connected": self.connected}

    def history(self) -> list[dict[str, Any]]:
        return self._history.snapshot()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is SessionState.OPEN


def consumer_session(server_url: str, key: str, **kwargs: Any) -> ReconnectingSession:
    """Session that registers as a dashboard under *key*."""
    return ReconnectingSession(
        server_url, {"type": "init-frontend", "frontendId": key}, **kwargs
    )


def device_session(server_url: str, **kwargs: Any) -> ReconnectingSession:
    """Session that registers as a field device."""
    return ReconnectingSession(server_url, {"type": "init-esp"}, **kwargs)
