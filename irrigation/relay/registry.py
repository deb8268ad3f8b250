"""Connection registry for the telemetry relay.

Tracks every open socket, the role it announced, and (for consumers) the
client-supplied key it registered under.  All mutation goes through the
four registry operations and is serialised by a single lock; fan-out
iterates a snapshot so peers may come and go while a send is in flight.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
import uuid
from typing import Any, Awaitable, Callable

from starlette.websockets import WebSocket, WebSocketState

logger = logging.getLogger(__name__)

PeerFn = Callable[["RelayConnection"], Awaitable[Any]]


class Role(enum.Enum):
    UNASSIGNED = "unassigned"
    DEVICE = "device"
    CONSUMER = "consumer"


class RelayConnection:
    """One accepted socket and the identity the registry assigned to it."""

    def __init__(self, websocket: WebSocket, conn_id: str | None = None) -> None:
        self.websocket = websocket
        self.id = conn_id or f"conn-{uuid.uuid4().hex}"
        self.opened_at = time.time()
        self.closed = False
        self._role = Role.UNASSIGNED
        self._consumer_key: str | None = None

    @property
    def role(self) -> Role:
        return self._role

    @property
    def consumer_key(self) -> str | None:
        return self._consumer_key

    def _assign(self, role: Role, key: str | None = None) -> None:
        self._role = role
        self._consumer_key = key

    @property
    def writable(self) -> bool:
        """``True`` while both ends of the socket are still connected."""
        if self.closed:
            return False
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, text: str) -> None:
        """Send one text frame to the peer."""
        await self.websocket.send_text(text)

    def __repr__(self) -> str:
        key = f" key={self._consumer_key}" if self._consumer_key else ""
        return f"<RelayConnection {self.id} {self._role.value}{key}>"


class ConnectionRegistry:
    """Registry of role-assigned relay connections.

    Devices are kept in insertion order by connection id; consumers are
    keyed by the ``frontendId`` they announced.  Unassigned connections
    are never stored and so are invisible to both iterators.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._devices: dict[str, RelayConnection] = {}
        self._consumers: dict[str, RelayConnection] = {}

    # ── Registration ──────────────────────────────────────────────

    async def register_device(self, conn: RelayConnection) -> bool:
        """Mark *conn* as a device.  Returns ``False`` if it already has a role."""
        async with self._lock:
            if not self._can_assign(conn):
                return False
            conn._assign(Role.DEVICE)
            self._devices[conn.id] = conn
        logger.info("Device registered: %s (%d online)", conn.id, len(self._devices))
        return True

    async def register_consumer(self, conn: RelayConnection, key: str) -> bool:
        """Mark *conn* as a consumer under *key*, superseding any prior holder."""
        async with self._lock:
            if not self._can_assign(conn):
                return False
            previous = self._consumers.get(key)
            conn._assign(Role.CONSUMER, key)
            self._consumers[key] = conn
        if previous is not None:
            # The earlier socket stays open but is no longer reachable by key.
            logger.warning(
                "Consumer key %r re-registered: %s supersedes %s",
                key, conn.id, previous.id,
            )
        logger.info("Consumer registered: %s as %r", conn.id, key)
        return True

    async def unregister(self, conn: RelayConnection) -> None:
        """Remove *conn* from the registry.  Idempotent."""
        async with self._lock:
            conn.closed = True
            if conn.role is Role.DEVICE:
                removed = self._devices.pop(conn.id, None) is not None
            elif conn.role is Role.CONSUMER:
                key = conn.consumer_key
                removed = key is not None and self._consumers.get(key) is conn
                if removed:
                    del self._consumers[key]
            else:
                removed = False
        if removed:
            logger.info("Unregistered %r", conn)

    def _can_assign(self, conn: RelayConnection) -> bool:
        if conn.closed:
            logger.debug("Ignoring registration of closed connection %s", conn.id)
            return False
        if conn.role is not Role.UNASSIGNED:
            logger.warning(
                "Connection %s already registered as %s; role unchanged",
                conn.id, conn.role.value,
            )
            return False
        return True

    # ── Fan-out ───────────────────────────────────────────────────

    async def for_each_device(self, fn: PeerFn) -> int:
        """Run *fn* concurrently for every writable device."""
        async with self._lock:
            targets = [c for c in self._devices.values() if c.writable]
        return await self._run_all(fn, targets)

    async def for_each_consumer(self, fn: PeerFn) -> int:
        """Run *fn* concurrently for every writable consumer."""
        async with self._lock:
            targets = [c for c in self._consumers.values() if c.writable]
        return await self._run_all(fn, targets)

    @staticmethod
    async def _run_all(fn: PeerFn, targets: list[RelayConnection]) -> int:
        if not targets:
            return 0
        results = await asyncio.gather(*(fn(c) for c in targets), return_exceptions=True)
        for conn, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.error("Fan-out callback failed for %s: %s", conn.id, result)
        return len(targets)

    # ── Introspection ─────────────────────────────────────────────

    @property
    def device_count(self) -> int:
        return len(self._devices)

    @property
    def consumer_count(self) -> int:
        return len(self._consumers)

    def consumer_keys(self) -> list[str]:
        return list(self._consumers)

    def snapshot(self) -> dict[str, Any]:
        """Return a JSON-able summary of current membership."""
        return {
            "devices": [
                {"id": c.id, "connected_at": c.opened_at}
                for c in self._devices.values()
            ],
            "consumers": [
                {"id": c.id, "key": key, "connected_at": c.opened_at}
                for key, c in self._consumers.items()
            ],
        }
