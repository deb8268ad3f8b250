"""Relay core: message classification, registration, and fan-out.

Per-connection state machine::

    UNASSIGNED --init-esp-----------> DEVICE   --close/error--> CLOSED
    UNASSIGNED --init-frontend{id}--> CONSUMER --close/error--> CLOSED
    UNASSIGNED --anything else------> UNASSIGNED (dropped)
    DEVICE     --telemetry----------> DEVICE   (persist + fan-out to consumers)
    CONSUMER   --command|refresh----> CONSUMER (fan-out to devices)

Persistence and the device-available notice run as background tasks so a
slow store never delays fan-out.  Every peer send is independent: one
failing or slow peer is unregistered without affecting the others.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import Any, Coroutine

from pydantic import ValidationError

from irrigation.relay.messages import (
    Command,
    ConsumerAnnounce,
    DeviceAnnounce,
    Message,
    MessageDecodeError,
    Refresh,
    Telemetry,
    decode_message,
    device_status,
)
from irrigation.relay.registry import ConnectionRegistry, RelayConnection, Role
from irrigation.store import Reading, ReadingStore

logger = logging.getLogger(__name__)

_SEND_TIMEOUT = float(os.environ.get("RELAY_SEND_TIMEOUT", "5.0"))
_CLOSE_INTERNAL_ERROR = 1011


class RelayCore:
    """Routes messages between device and consumer connections."""

    def __init__(
        self,
        store: ReadingStore,
        registry: ConnectionRegistry | None = None,
        send_timeout: float = _SEND_TIMEOUT,
        notify_device_online: bool = True,
    ) -> None:
        self.store = store
        self.registry = registry or ConnectionRegistry()
        self.send_timeout = send_timeout
        self.notify_device_online = notify_device_online
        self._tasks: set[asyncio.Task] = set()

    # ── Connection events ─────────────────────────────────────────

    async def on_message(self, conn: RelayConnection, raw: str | bytes) -> None:
        """Handle one inbound frame.  Never raises for bad input."""
        try:
            msg = decode_message(raw)
        except MessageDecodeError as exc:
            logger.warning("Discarding malformed message from %s: %s", conn.id, exc)
            return

        role = conn.role
        if role is Role.UNASSIGNED:
            await self._handle_unassigned(conn, msg)
        elif role is Role.DEVICE and isinstance(msg, Telemetry):
            await self._handle_telemetry(conn, msg)
        elif role is Role.CONSUMER and isinstance(msg, (Command, Refresh)):
            await self._handle_command(conn, msg)
        else:
            logger.warning(
                "Unexpected %s message from %s %s; discarded",
                type(msg).__name__, role.value, conn.id,
            )

    async def on_close(self, conn: RelayConnection) -> None:
        await self.registry.unregister(conn)

    async def on_error(self, conn: RelayConnection, exc: BaseException | None = None) -> None:
        if exc is not None:
            logger.error("Connection error on %s: %s", conn.id, exc, exc_info=exc)
        await self.registry.unregister(conn)

    # ── Handlers ──────────────────────────────────────────────────

    async def _handle_unassigned(self, conn: RelayConnection, msg: Message) -> None:
        if isinstance(msg, DeviceAnnounce):
            if await self.registry.register_device(conn) and self.notify_device_online:
                self._spawn(self._notify_consumers(device_status(True)))
        elif isinstance(msg, ConsumerAnnounce):
            await self.registry.register_consumer(conn, msg.key)
        else:
            logger.warning(
                "Unknown message from unregistered %s (%s); discarded",
                conn.id, type(msg).__name__,
            )

    async def _handle_telemetry(self, conn: RelayConnection, msg: Telemetry) -> None:
        self._spawn(self._persist(conn, msg.payload, datetime.now(timezone.utc)))
        delivered = await self.registry.for_each_consumer(
            lambda peer: self._deliver(peer, msg.raw)
        )
        logger.debug("Telemetry from %s fanned to %d consumer(s)", conn.id, delivered)

    async def _handle_command(self, conn: RelayConnection, msg: Command | Refresh) -> None:
        delivered = await self.registry.for_each_device(
            lambda peer: self._deliver(peer, msg.raw)
        )
        if delivered == 0:
            logger.info("No device online for %s from %s", type(msg).__name__, conn.id)
        else:
            logger.debug("%s from %s fanned to %d device(s)", type(msg).__name__, conn.id, delivered)

    # ── Side effects ──────────────────────────────────────────────

    async def _deliver(self, peer: RelayConnection, text: str) -> None:
        """Send *text* to one peer; on failure drop that peer only."""
        try:
            await asyncio.wait_for(peer.send(text), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            logger.warning("Send to %s timed out after %.1fs; dropping peer", peer.id, self.send_timeout)
            await self._drop(peer)
        except Exception as exc:
            logger.warning("Send to %s failed: %s; dropping peer", peer.id, exc)
            await self._drop(peer)

    async def _drop(self, peer: RelayConnection) -> None:
        """Unregister *peer* and close its socket so the client reconnects."""
        await self.registry.unregister(peer)
        try:
            await asyncio.wait_for(
                peer.websocket.close(code=_CLOSE_INTERNAL_ERROR),
                timeout=self.send_timeout,
            )
        except Exception as exc:
            logger.warning("Could not close dropped peer %s: %s", peer.id, exc)

    async def _persist(self, conn: RelayConnection, payload: dict[str, Any], received_at: datetime) -> None:
        try:
            reading = Reading.from_payload(payload, received_at)
        except ValidationError as exc:
            logger.error(
                "Error saving sensor data from %s: %d invalid field(s): %s",
                conn.id, exc.error_count(), exc.errors()[0].get("loc"),
            )
            return
        if not await self.store.save(reading):
            logger.warning("Reading from %s was not persisted", conn.id)

    async def _notify_consumers(self, text: str) -> None:
        await self.registry.for_each_consumer(lambda peer: self._deliver(peer, text))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background task failed: %s", task.exception())

    async def wait_idle(self) -> None:
        """Wait for all outstanding background tasks to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
