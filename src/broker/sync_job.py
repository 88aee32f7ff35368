"""
Full sync: refresh position marks and work resting orders.

Non-reentrant. A second ``run_full_sync`` while one is running returns an
explicit "already running" result immediately; it is never queued.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

from trade_core.errors import TradingError

if TYPE_CHECKING:
    from broker.paper_broker import PaperBroker
    from cli.structured_log import StructuredEventLogger

logger = logging.getLogger("tradebook.sync")

ALREADY_RUNNING = "Sync job is already running"


class SyncState(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"


@dataclass(frozen=True)
class SyncResult:
    success: bool
    items_synced: int
    errors: list[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SyncJob:
    """One sync at a time per job instance."""

    def __init__(self, broker: PaperBroker, *, events: StructuredEventLogger | None = None) -> None:
        self._broker = broker
        self._events = events
        self._state = SyncState.IDLE
        self._state_lock = threading.Lock()
        self._last_sync_time: datetime | None = None

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == SyncState.RUNNING

    @property
    def last_sync_time(self) -> datetime | None:
        return self._last_sync_time

    def _claim(self) -> bool:
        with self._state_lock:
            if self._state == SyncState.RUNNING:
                return False
            self._state = SyncState.RUNNING
            return True

    def _release(self) -> None:
        with self._state_lock:
            self._state = SyncState.IDLE

    def run_full_sync(self, today: date | None = None) -> SyncResult:
        if not self._claim():
            logger.warning(ALREADY_RUNNING)
            return SyncResult(success=False, items_synced=0, errors=[ALREADY_RUNNING])

        try:
            result = self._sync(today)
        finally:
            self._release()

        if self._events:
            self._events.sync_complete(result.success, result.items_synced, len(result.errors))
        return result

    def _sync(self, today: date | None) -> SyncResult:
        errors: list[str] = []
        items = 0
        logger.info("Starting full sync")

        try:
            marked, mark_errors = self._broker.refresh_marks()
            items += marked
            errors.extend(mark_errors)

            work = self._broker.work_pending_orders(today)
            items += work.changed
            errors.extend(work.errors)
        except TradingError as exc:
            logger.error("Sync failed: %s", exc.reason)
            errors.append(exc.reason)

        now = datetime.now(timezone.utc)
        self._last_sync_time = now
        logger.info("Sync complete: %d items, %d errors", items, len(errors))
        return SyncResult(success=not errors, items_synced=items, errors=errors, timestamp=now)
