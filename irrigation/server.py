"""Smart Irrigation relay server.

Exposes:
  WS   /  and /ws     telemetry relay (devices and dashboards)
  GET  /history       bucketed reading history
  GET  /health        liveness check with registry counts
  GET  /              plain-text banner

Start with::

    python -m irrigation.server
    # or
    uvicorn irrigation.server:app --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from irrigation import __version__
from irrigation.db import init_db
from irrigation.history_api import router as history_router
from irrigation.relay.core import RelayCore
from irrigation.relay.websocket import relay_ws_handler
from irrigation.store import ReadingStore, SQLiteReadingStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _allowed_origins() -> list[str]:
    raw = os.environ.get("IRRIGATION_ALLOWED_ORIGINS", "http://localhost:5173")
    return [o.strip() for o in raw.split(",") if o.strip()]


# ──────────────────────────────────────────────────────────────────
# FastAPI app
# ──────────────────────────────────────────────────────────────────

def create_app(store: ReadingStore | None = None) -> FastAPI:
    """Build the relay application around *store* (SQLite by default)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if store is None:
            init_db()
        app.state.relay = RelayCore(store or SQLiteReadingStore())
        logger.info("Relay ready")
        yield
        await app.state.relay.wait_idle()
        logger.info("Relay shut down")

    app = FastAPI(title="Smart Irrigation Relay", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allowed_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    app.include_router(history_router)
    app.add_api_websocket_route("/", relay_ws_handler)
    app.add_api_websocket_route("/ws", relay_ws_handler)

    @app.get("/", response_class=PlainTextResponse)
    async def root():
        return "Server is up and running!"

    @app.get("/health")
    async def health():
        registry = app.state.relay.registry
        return {
            "status": "ok",
            "devices": registry.device_count,
            "consumers": registry.consumer_count,
        }

    return app


app = create_app()


# ──────────────────────────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────────────────────────

def configure_logging() -> None:
    level = os.environ.get("IRRIGATION_LOG_LEVEL", "INFO").upper()
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    log_file = os.environ.get("IRRIGATION_LOG_FILE")
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)


def main():
    import uvicorn
    host = os.environ.get("IRRIGATION_HOST", "0.0.0.0")
    port = int(os.environ.get("IRRIGATION_PORT", "3000"))
    configure_logging()
    logger.info("Starting irrigation relay on %s:%d", host, port)
    uvicorn.run("irrigation.server:app", host=host, port=port, reload=False, log_config=None)


if __name__ == "__main__":
    main()
