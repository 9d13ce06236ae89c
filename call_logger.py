"""
call_logger.py — fire-and-forget record of every external API call.

Usage from any I/O seam:
    import call_logger
    call_logger.record("eBay API", url, "200")

record() is synchronous and never raises: it drops an ApiCallRecord onto a
bounded asyncio.Queue and returns. A background task drains the queue into
the sink (database.log_api_call by default). A full queue, a missing event
loop or a failing sink only ever produce a log line on this module's logger.
Pipeline results are identical whether or not the write succeeds.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiCallRecord:
    provider_name: str
    request_url: str
    status_label: str           # HTTP status as text, "error" or "timeout"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Sink = Callable[[ApiCallRecord], Awaitable[None]]


async def _write_to_db(rec: ApiCallRecord) -> None:
    import database as db
    await db.log_api_call(rec.provider_name, rec.request_url, rec.status_label, rec.timestamp)


class CallLogger:
    """Bounded queue + single consumer task. Safe to call from concurrent tasks."""

    def __init__(self, sink: Optional[Sink] = None, maxsize: Optional[int] = None) -> None:
        self._sink: Sink = sink or _write_to_db
        self._maxsize = maxsize if maxsize is not None else config.CALL_LOG_QUEUE_SIZE
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self.dropped = 0

    # ── Producer side ─────────────────────────────────────────────────────────

    def record(self, provider_name: str, request_url: str, status_label: str) -> None:
        """Queue one call record. Never blocks, never raises."""
        try:
            rec = ApiCallRecord(str(provider_name), str(request_url), str(status_label))
            self._ensure_worker()
            self._queue.put_nowait(rec)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("API call log queue full — dropped %s %s", provider_name, status_label)
        except RuntimeError as exc:
            # No running event loop: nothing can drain the queue
            self.dropped += 1
            logger.warning("API call log unavailable (%s) — dropped %s", exc, provider_name)
        except Exception as exc:
            self.dropped += 1
            logger.error("API call log failed for %s: %s", provider_name, exc)

    # ── Consumer side ─────────────────────────────────────────────────────────

    def _ensure_worker(self) -> None:
        loop = asyncio.get_running_loop()
        if self._worker is not None and not self._worker.done() and self._worker.get_loop() is loop:
            return
        # First use, or the previous loop is gone (e.g. a new asyncio.run())
        self._queue = asyncio.Queue(maxsize=self._maxsize)
        self._worker = loop.create_task(self._run(self._queue), name="call-logger")

    async def _run(self, queue: asyncio.Queue) -> None:
        while True:
            rec = await queue.get()
            try:
                await self._sink(rec)
            except Exception as exc:
                logger.warning(
                    "Failed to log API call %s (%s): %s",
                    rec.provider_name, rec.status_label, exc,
                )
            finally:
                queue.task_done()

    def _worker_is_local(self) -> bool:
        """True when the worker is alive and belongs to the running loop."""
        if self._worker is None or self._worker.done():
            return False
        try:
            return self._worker.get_loop() is asyncio.get_running_loop()
        except RuntimeError:
            return False

    async def flush(self) -> None:
        """Wait until every queued record has been handed to the sink."""
        if self._queue is not None and self._worker_is_local():
            await self._queue.join()

    async def stop(self) -> None:
        """Drain the queue, then cancel the worker."""
        if self._worker_is_local():
            await self.flush()
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        # A worker from a loop that has since closed is simply forgotten
        self._worker = None
        self._queue = None


# Module-level default used by recognition + marketplace code
_default = CallLogger()


def get_logger() -> CallLogger:
    return _default


def set_logger(call_log: CallLogger) -> CallLogger:
    """Swap the default logger (tests, CLI). Returns the previous one."""
    global _default
    previous, _default = _default, call_log
    return previous


def record(provider_name: str, request_url: str, status_label: str) -> None:
    _default.record(provider_name, request_url, status_label)


async def flush() -> None:
    await _default.flush()


async def stop() -> None:
    await _default.stop()
