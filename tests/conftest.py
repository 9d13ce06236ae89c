"""
Shared pytest fixtures.

Every test gets a clean temporary DATA_DIR via the `tmp_data_dir` fixture so
tests are fully isolated from each other and from the real appraisal.db.
API call records go to an in-memory sink (`call_log`) instead of SQLite.
"""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

# ── Make the project root importable without installing the package ────────────
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture(autouse=True)
def tmp_data_dir(tmp_path, monkeypatch):
    """
    Redirect DATA_DIR to a fresh tmp directory for every test.
    This gives each test a clean SQLite file and prevents cross-test pollution.
    """
    data = tmp_path / "data"
    data.mkdir()
    monkeypatch.setenv("DATA_DIR", str(data))

    # Patch the module-level DB_PATH that was already computed at import time
    import database
    monkeypatch.setattr(database, "DB_PATH", str(data / "appraisal.db"))
    monkeypatch.setattr(database, "_DATA_DIR", data)

    # Also reset the internal lock so tests don't share state
    import asyncio
    monkeypatch.setattr(database, "_lock", asyncio.Lock())

    yield data


class RecordingSink:
    """Call-log sink that keeps records in memory."""

    def __init__(self) -> None:
        self.records = []

    async def __call__(self, rec) -> None:
        self.records.append(rec)

    def statuses(self, provider_name: str | None = None) -> list[str]:
        return [
            r.status_label for r in self.records
            if provider_name is None or r.provider_name == provider_name
        ]


@pytest.fixture(autouse=True)
def call_log():
    """
    Install a fresh CallLogger writing to a RecordingSink.
    Tests that inspect records must `await call_logger.flush()` first.
    """
    import call_logger

    sink = RecordingSink()
    previous = call_logger.set_logger(call_logger.CallLogger(sink=sink))
    yield sink
    call_logger.set_logger(previous)
