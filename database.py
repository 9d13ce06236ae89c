"""
database.py — async SQLite persistence via aiosqlite.

Tables:
  api_logs           — one row per external call attempt (call_logger sink)
  predictions        — one row per price estimate (never updated, superseded)
  price_comparisons  — priced listings stored as evidence for a prediction
  api_keys           — credentials that override .env values (key_store)

The DB file is created automatically on first run.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Optional

import aiosqlite

import config

if TYPE_CHECKING:
    from marketplaces.base import MarketplaceListing
    from pricing import PriceEstimate

logger = logging.getLogger(__name__)

# Store the DB in a dedicated data/ directory so Docker volume mounts work
# correctly (mount ./data:/app/data) and the file survives container restarts.
_DATA_DIR = Path(config.DATA_DIR)
_DATA_DIR.mkdir(parents=True, exist_ok=True)

DB_PATH = str(_DATA_DIR / "appraisal.db")
_lock = asyncio.Lock()          # serialise schema creation


# ── Data models ───────────────────────────────────────────────────────────────

@dataclass
class Prediction:
    id: int
    item_id: str
    predicted_price: float      # average of the priced evidence
    min_price: float
    max_price: float
    listing_count: int
    currency: str
    api_used: str               # e.g. "google_vision:provider"
    created_at: datetime


@dataclass
class PriceComparison:
    id: int
    item_id: str
    prediction_id: int
    platform_name: str
    platform_price: float
    platform_url: str
    listing_title: str
    created_at: datetime


# ── Schema ────────────────────────────────────────────────────────────────────

_SCHEMA = """
CREATE TABLE IF NOT EXISTS api_logs (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    api_name        TEXT    NOT NULL,
    request_url     TEXT    NOT NULL DEFAULT '',
    response_status TEXT    NOT NULL DEFAULT '',
    created_at      TEXT    NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_api_logs_created ON api_logs (created_at);
CREATE INDEX IF NOT EXISTS idx_api_logs_name    ON api_logs (api_name);

CREATE TABLE IF NOT EXISTS predictions (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id         TEXT    NOT NULL,
    predicted_price REAL    NOT NULL DEFAULT 0,
    min_price       REAL    NOT NULL DEFAULT 0,
    max_price       REAL    NOT NULL DEFAULT 0,
    listing_count   INTEGER NOT NULL DEFAULT 0,
    currency        TEXT    NOT NULL DEFAULT 'USD',
    api_used        TEXT    NOT NULL DEFAULT '',
    created_at      TEXT    NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_predictions_item ON predictions (item_id);

CREATE TABLE IF NOT EXISTS price_comparisons (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id        TEXT    NOT NULL,
    prediction_id  INTEGER NOT NULL,
    platform_name  TEXT    NOT NULL,
    platform_price REAL    NOT NULL,
    platform_url   TEXT    NOT NULL DEFAULT '',
    listing_title  TEXT    NOT NULL DEFAULT '',
    created_at     TEXT    NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_comparisons_item ON price_comparisons (item_id);

-- Credentials that override .env values (see key_store.py)
CREATE TABLE IF NOT EXISTS api_keys (
    key_name   TEXT PRIMARY KEY,
    key_value  TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

async def init_db() -> None:
    """Create tables if they don't exist. Safe to call multiple times."""
    async with _lock:
        async with aiosqlite.connect(DB_PATH) as db:
            await db.executescript(_SCHEMA)
            await db.commit()
    logger.info("Database initialised at %s", DB_PATH)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── API call log ──────────────────────────────────────────────────────────────

async def log_api_call(
    api_name: str,
    request_url: str,
    response_status: str,
    created_at: Optional[datetime] = None,
) -> None:
    """Append one row to api_logs."""
    ts = (created_at or datetime.now(timezone.utc)).isoformat()
    async with aiosqlite.connect(DB_PATH) as db:
        await db.execute(
            """INSERT INTO api_logs (api_name, request_url, response_status, created_at)
               VALUES (?, ?, ?, ?)""",
            (api_name, request_url, response_status, ts),
        )
        await db.commit()


async def get_api_logs(
    api_name: Optional[str] = None,
    limit: Optional[int] = 100,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> list[dict]:
    """Return API log rows, newest first, with optional filters."""
    query = "SELECT id, api_name, request_url, response_status, created_at FROM api_logs WHERE 1=1"
    params: list = []

    if api_name:
        query += " AND api_name = ?"
        params.append(api_name)
    if start_date:
        query += " AND created_at >= ?"
        params.append(start_date.isoformat())
    if end_date:
        query += " AND created_at <= ?"
        params.append(end_date.isoformat())

    query += " ORDER BY created_at DESC, id DESC"
    if limit:
        query += " LIMIT ?"
        params.append(int(limit))

    async with aiosqlite.connect(DB_PATH) as db:
        async with db.execute(query, params) as cur:
            rows = await cur.fetchall()
    return [
        {
            "id": r[0],
            "api_name": r[1],
            "request_url": r[2],
            "response_status": r[3],
            "created_at": r[4],
        }
        for r in rows
    ]


async def get_api_stats() -> dict:
    """
    Per-API usage statistics.

    A call counts as successful when its status is a 2xx code or "success";
    anything else ("error", "timeout", 401, …) is a failure.

    Returns {"summary": [...per api...], "daily": [...per api per day...]}.
    """
    async with aiosqlite.connect(DB_PATH) as db:
        async with db.execute(
            """SELECT api_name,
                      COUNT(*),
                      SUM(CASE WHEN response_status LIKE '2%' OR response_status = 'success' THEN 1 ELSE 0 END),
                      SUM(CASE WHEN response_status NOT LIKE '2%' AND response_status != 'success' THEN 1 ELSE 0 END),
                      substr(created_at, 1, 10) AS day
               FROM api_logs
               GROUP BY api_name, day
               ORDER BY day DESC, api_name
               LIMIT 100"""
        ) as cur:
            rows = await cur.fetchall()

    daily = [
        {
            "api_name": r[0],
            "total_calls": r[1],
            "successful_calls": r[2] or 0,
            "failed_calls": r[3] or 0,
            "date": r[4],
        }
        for r in rows
    ]

    summary: dict[str, dict] = {}
    for stat in daily:
        entry = summary.setdefault(
            stat["api_name"],
            {"api_name": stat["api_name"], "total_calls": 0, "successful_calls": 0, "failed_calls": 0},
        )
        entry["total_calls"]      += stat["total_calls"]
        entry["successful_calls"] += stat["successful_calls"]
        entry["failed_calls"]     += stat["failed_calls"]

    return {"summary": list(summary.values()), "daily": daily}


async def cleanup_old_logs(days_to_keep: int = 30) -> int:
    """Delete api_logs rows older than days_to_keep. Returns rows removed."""
    cutoff = (datetime.now(timezone.utc) - timedelta(days=days_to_keep)).isoformat()
    async with aiosqlite.connect(DB_PATH) as db:
        cur = await db.execute("DELETE FROM api_logs WHERE created_at < ?", (cutoff,))
        await db.commit()
        deleted = cur.rowcount
    logger.info("Cleaned up %d old API logs", deleted)
    return deleted


# ── Predictions & price evidence ──────────────────────────────────────────────

async def save_estimate(
    item_id: str,
    estimate: "PriceEstimate",
    listings: Iterable["MarketplaceListing"],
    api_used: str = "",
) -> int:
    """
    Store one prediction plus its evidence listings in a single transaction.
    Returns the new prediction id. Callers bound the listing count.
    """
    now = _now()
    async with aiosqlite.connect(DB_PATH) as db:
        cur = await db.execute(
            """INSERT INTO predictions
               (item_id, predicted_price, min_price, max_price, listing_count, currency, api_used, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                str(item_id),
                float(estimate.average_price),
                float(estimate.min_price),
                float(estimate.max_price),
                estimate.listing_count,
                estimate.currency,
                api_used,
                now,
            ),
        )
        prediction_id = cur.lastrowid
        await db.executemany(
            """INSERT INTO price_comparisons
               (item_id, prediction_id, platform_name, platform_price, platform_url, listing_title, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            [
                (str(item_id), prediction_id, l.source_name, float(l.price), l.url, l.title, now)
                for l in listings
            ],
        )
        await db.commit()
    return prediction_id


async def get_predictions(item_id: str) -> list[Prediction]:
    """All predictions for an item, newest first."""
    async with aiosqlite.connect(DB_PATH) as db:
        async with db.execute(
            """SELECT id, item_id, predicted_price, min_price, max_price, listing_count,
                      currency, api_used, created_at
               FROM predictions WHERE item_id = ? ORDER BY created_at DESC, id DESC""",
            (str(item_id),),
        ) as cur:
            rows = await cur.fetchall()
    return [
        Prediction(
            id=r[0], item_id=r[1], predicted_price=r[2], min_price=r[3], max_price=r[4],
            listing_count=r[5], currency=r[6], api_used=r[7],
            created_at=datetime.fromisoformat(r[8]),
        )
        for r in rows
    ]


async def get_price_comparisons(item_id: str) -> list[PriceComparison]:
    async with aiosqlite.connect(DB_PATH) as db:
        async with db.execute(
            """SELECT id, item_id, prediction_id, platform_name, platform_price,
                      platform_url, listing_title, created_at
               FROM price_comparisons WHERE item_id = ? ORDER BY created_at DESC, id""",
            (str(item_id),),
        ) as cur:
            rows = await cur.fetchall()
    return [
        PriceComparison(
            id=r[0], item_id=r[1], prediction_id=r[2], platform_name=r[3],
            platform_price=r[4], platform_url=r[5], listing_title=r[6],
            created_at=datetime.fromisoformat(r[7]),
        )
        for r in rows
    ]


async def get_price_history(item_id: str) -> dict:
    """Predictions plus stored listings for an item, listings grouped by platform."""
    predictions = await get_predictions(item_id)
    comparisons = await get_price_comparisons(item_id)

    by_platform: dict[str, list[PriceComparison]] = {}
    for comp in comparisons:
        by_platform.setdefault(comp.platform_name, []).append(comp)

    return {
        "item_id": str(item_id),
        "predictions": predictions,
        "price_history": comparisons,
        "total_listings": len(comparisons),
        "by_platform": by_platform,
    }


async def delete_prediction(prediction_id: int) -> bool:
    """Delete a prediction and its evidence rows. Returns False if not found."""
    async with aiosqlite.connect(DB_PATH) as db:
        await db.execute(
            "DELETE FROM price_comparisons WHERE prediction_id = ?", (prediction_id,)
        )
        cur = await db.execute("DELETE FROM predictions WHERE id = ?", (prediction_id,))
        await db.commit()
        return cur.rowcount > 0


# ── API key operations ────────────────────────────────────────────────────────

async def get_api_key(key_name: str) -> Optional[str]:
    """Return DB-stored value for key_name, or None if not set."""
    async with aiosqlite.connect(DB_PATH) as db:
        async with db.execute(
            "SELECT key_value FROM api_keys WHERE key_name = ?", (key_name,)
        ) as cur:
            row = await cur.fetchone()
            return row[0] if row else None


async def set_api_key(key_name: str, key_value: str) -> None:
    """Insert or replace an API key in the DB."""
    async with aiosqlite.connect(DB_PATH) as db:
        await db.execute(
            """INSERT INTO api_keys (key_name, key_value, updated_at)
               VALUES (?, ?, ?)
               ON CONFLICT(key_name) DO UPDATE SET
                 key_value=excluded.key_value,
                 updated_at=excluded.updated_at""",
            (key_name, key_value, _now()),
        )
        await db.commit()


async def delete_api_key(key_name: str) -> None:
    """Remove a key from DB (falls back to .env value)."""
    async with aiosqlite.connect(DB_PATH) as db:
        await db.execute("DELETE FROM api_keys WHERE key_name = ?", (key_name,))
        await db.commit()


async def get_all_api_keys() -> dict[str, str]:
    """Return all DB-stored API keys as {key_name: key_value}."""
    async with aiosqlite.connect(DB_PATH) as db:
        async with db.execute("SELECT key_name, key_value FROM api_keys") as cur:
            rows = await cur.fetchall()
    return {r[0]: r[1] for r in rows}
