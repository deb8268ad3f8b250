"""Configuration for the irrigation relay client."""

from __future__ import annotations

import json
import logging
import socket
from dataclasses import asdict, dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

ROLES = ("consumer", "device")


@dataclass
class ClientConfig:
    """Client configuration loaded from config.json."""

    server_url: str = "ws://localhost:3000"
    role: str = "consumer"  # consumer | device
    consumer_key: str = ""
    reconnect_delay: float = 3.0
    history_size: int = 100

    # Simulated device
    publish_interval: float = 5.0
    seed: int | None = None

    @classmethod
    def load(cls, path: str | Path) -> ClientConfig:
        path = Path(path)
        if path.exists():
            with open(path) as f:
                data = json.load(f)
            known = {k for k in cls.__dataclass_fields__}
            filtered = {k: v for k, v in data.items() if k in known}
            return cls(**filtered)
        logger.warning("Config not found at %s, using defaults", path)
        return cls()

    def save(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(asdict(self), f, indent=2)

    def generate_key(self) -> str:
        """Generate a consumer key from the hostname."""
        return f"frontend-{socket.gethostname()}"
