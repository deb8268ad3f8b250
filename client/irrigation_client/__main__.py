"""Irrigation relay client entry point.

Usage:
    python -m client.irrigation_client [--config CONFIG_PATH] [--role consumer|device]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from pathlib import Path

from .config import ROLES, ClientConfig
from .dashboard import format_summary, render
from .device import SimulatedDevice
from .session import ReconnectingSession, consumer_session, device_session

logger = logging.getLogger(__name__)


async def run_consumer(config: ClientConfig) -> None:
    """Log a dashboard summary line for every reading received."""
    session: ReconnectingSession

    async def _on_message(payload: dict) -> None:
        logger.info(format_summary(render(session.current_state())))

    session = consumer_session(
        config.server_url,
        config.consumer_key,
        reconnect_delay=config.reconnect_delay,
        history_size=config.history_size,
        on_message=_on_message,
    )
    await session.start()
    try:
        await session.wait_closed()
    finally:
        await session.close()


async def run_device(config: ClientConfig) -> None:
    session = device_session(
        config.server_url,
        reconnect_delay=config.reconnect_delay,
        history_size=config.history_size,
    )
    device = SimulatedDevice(session, interval=config.publish_interval, seed=config.seed)
    await device.run()


def main() -> None:
    parser = argparse.ArgumentParser(description="Smart Irrigation relay client")
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to config.json (default: ~/.irrigation-client/config.json if present)",
    )
    parser.add_argument(
        "--server",
        default=None,
        help="Relay URL (overrides config)",
    )
    parser.add_argument(
        "--role",
        default=None,
        choices=ROLES,
        help="Connect as a dashboard consumer or a simulated device (overrides config)",
    )
    parser.add_argument(
        "--key",
        default=None,
        help="Consumer key / frontendId (overrides config)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args()

    level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    config_path = args.config
    if config_path is None:
        candidate = Path.home() / ".irrigation-client" / "config.json"
        if candidate.exists():
            config_path = str(candidate)

    if config_path:
        config = ClientConfig.load(config_path)
        logger.info("Loaded config from %s", config_path)
    else:
        config = ClientConfig()

    if args.server:
        config.server_url = args.server
    if args.role:
        config.role = args.role
    if args.key:
        config.consumer_key = args.key
    if not config.consumer_key:
        config.consumer_key = config.generate_key()

    runner = run_device(config) if config.role == "device" else run_consumer(config)

    loop = asyncio.new_event_loop()
    task = loop.create_task(runner)

    def _shutdown(sig: int) -> None:
        logger.info("Received signal %d, shutting down", sig)
        task.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _shutdown, sig)

    try:
        loop.run_until_complete(task)
    except asyncio.CancelledError:
        pass
    finally:
        loop.close()


if __name__ == "__main__":
    main()
