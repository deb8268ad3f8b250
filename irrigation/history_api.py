"""History query endpoint.

``GET /history?type=24h|7d|30d`` returns averaged readings, oldest first,
bucketed by hour for the 24h window and by day for the 7d/30d windows.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, HTTPException, Query

from irrigation.db import get_db, init_db
from irrigation.store import TIMESTAMP_FORMAT

logger = logging.getLogger(__name__)

router = APIRouter(tags=["history"])

# window → (lookback, strftime bucket format)
HISTORY_WINDOWS: dict[str, tuple[timedelta, str]] = {
    "24h": (timedelta(hours=24), "%Y-%m-%dT%H:00:00Z"),
    "7d": (timedelta(days=7), "%Y-%m-%d"),
    "30d": (timedelta(days=30), "%Y-%m-%d"),
}


def fetch_history(
    window: str,
    now: datetime | None = None,
    conn: sqlite3.Connection | None = None,
) -> list[dict]:
    """Return bucketed averages for *window*.  Raises ``KeyError`` on an unknown window."""
    lookback, bucket_format = HISTORY_WINDOWS[window]
    now = now or datetime.now(timezone.utc)
    since = (now - lookback).astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)
    db = conn or get_db()
    cur = db.execute(
        """SELECT strftime(?, created_at) AS bucket,
                  AVG(temperature)   AS temperature,
                  AVG(humidity)      AS humidity,
                  AVG(soil_moisture) AS soil_moisture
           FROM sensor_readings
           WHERE created_at >= ?
           GROUP BY bucket
           ORDER BY bucket ASC""",
        (bucket_format, since),
    )
    return [
        {
            "time": row[0],
            "temperature": round(row[1], 1),
            "humidity": round(row[2], 1),
            "soilMoisture": round(row[3]),
        }
        for row in cur.fetchall()
    ]


@router.get("/history")
async def get_history(window: str | None = Query(None, alias="type")):
    if window not in HISTORY_WINDOWS:
        raise HTTPException(status_code=400, detail="Invalid type parameter")
    try:
        init_db()
        return fetch_history(window)
    except sqlite3.Error:
        logger.exception("Error fetching sensor history")
        raise HTTPException(status_code=500, detail="Server error")
