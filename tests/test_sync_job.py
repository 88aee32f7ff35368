"""Tests for the non-reentrant sync job."""

import io
import json
import threading
from datetime import date

import pytest

from broker.paper_broker import PendingWork
from broker.sync_job import ALREADY_RUNNING, SyncJob, SyncState
from cli.structured_log import StructuredEventLogger
from trade_core.contracts import TradeStatus
from trade_core.errors import UpstreamUnavailable


class _BlockingBroker:
    """Broker stand-in whose refresh blocks until released."""

    def __init__(self) -> None:
        self.entered = threading.Event()
        self.release = threading.Event()

    def refresh_marks(self):
        self.entered.set()
        self.release.wait(timeout=5)
        return 0, []

    def work_pending_orders(self, today=None):
        return PendingWork()


class _FailingBroker:
    def refresh_marks(self):
        raise UpstreamUnavailable("Quote service is down.")

    def work_pending_orders(self, today=None):
        raise AssertionError("not reached")


def test_sync_refreshes_marks_and_works_orders(broker, quotes) -> None:
    broker.place_order({"symbol": "AAPL", "side": "BUY", "quantity": 10, "type": "MARKET"})
    resting = broker.place_order(
        {"symbol": "MSFT", "side": "BUY", "quantity": 1, "type": "LIMIT", "limit_price": 390.0, "time_in_force": "GTC"}
    )
    quotes.set_price("AAPL", 105.0)
    quotes.set_price("MSFT", 385.0)

    job = SyncJob(broker)
    assert job.last_sync_time is None
    result = job.run_full_sync(today=date(2024, 3, 4))

    assert result.success is True
    assert result.errors == []
    # one mark (AAPL) + one fill (MSFT)
    assert result.items_synced == 2
    assert broker.get_order(resting.id).status == TradeStatus.FILLED
    assert broker.store.list_positions()[0].current_price == 105.0
    assert job.state == SyncState.IDLE
    assert job.last_sync_time == result.timestamp


def test_second_call_while_running_returns_immediately() -> None:
    fake = _BlockingBroker()
    job = SyncJob(fake)
    results = []
    worker = threading.Thread(target=lambda: results.append(job.run_full_sync()))
    worker.start()
    assert fake.entered.wait(timeout=5)

    assert job.is_running
    busy = job.run_full_sync()
    assert busy.success is False
    assert busy.items_synced == 0
    assert busy.errors == [ALREADY_RUNNING]

    fake.release.set()
    worker.join(timeout=5)
    assert results[0].success is True
    assert job.state == SyncState.IDLE
    assert job.run_full_sync().success is True


def test_errors_are_collected_and_state_released() -> None:
    buf = io.StringIO()
    job = SyncJob(_FailingBroker(), events=StructuredEventLogger(stream=buf))
    result = job.run_full_sync()
    assert result.success is False
    assert result.errors == ["Quote service is down."]
    assert job.state == SyncState.IDLE
    record = json.loads(buf.getvalue().strip())
    assert record["event"] == "sync_complete"
    assert record["errors"] == 1


def test_unexpected_error_still_releases_state() -> None:
    class _Broken:
        def refresh_marks(self):
            raise RuntimeError("disk full")

    job = SyncJob(_Broken())
    with pytest.raises(RuntimeError):
        job.run_full_sync()
    assert job.state == SyncState.IDLE
