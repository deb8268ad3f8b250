"""Bounded, client-local history of received messages (charting only)."""

from __future__ import annotations

from collections import deque
from datetime import datetime, timezone
from typing import Any

DEFAULT_HISTORY_SIZE = 100


class RollingHistory:
    """Keeps the most recent *maxlen* payloads, oldest evicted first."""

    def __init__(self, maxlen: int = DEFAULT_HISTORY_SIZE) -> None:
        if maxlen <= 0:
            raise ValueError("maxlen must be positive")
        self._entries: deque[dict[str, Any]] = deque(maxlen=maxlen)

    def append(self, payload: dict[str, Any], received_at: datetime | None = None) -> dict[str, Any]:
        """Store a copy of *payload* tagged with its local receipt time."""
        received_at = received_at or datetime.now(timezone.utc)
        entry = {**payload, "receivedAt": received_at.isoformat()}
        self._entries.append(entry)
        return entry

    def snapshot(self) -> list[dict[str, Any]]:
        return [dict(e) for e in self._entries]

    def clear(self) -> None:
        self._entries.clear()

    @property
    def maxlen(self) -> int:
        return self._entries.maxlen or 0

    def __len__(self) -> int:
        return len(self._entries)
