"""Pytest fixtures: trade histories, quote sources and a wired paper broker."""

import itertools
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import pytest

from broker.paper_broker import PaperBroker
from data.quotes import StaticQuoteSource
from data.trade_store import TradeStore
from journal.writer import JournalWriter
from trade_core.contracts import ManualPrice, OrderType, Side, Trade, TradeStatus
from trade_core.execution import ExecutionSimulator
from trade_core.ledger import PositionLedger
from trade_core.risk_policy import OversellPolicy, RiskPolicy


def _ts(year: int, month: int, day: int, hour: int = 9, minute: int = 30) -> datetime:
    return datetime(year, month, day, hour, minute, 0, tzinfo=timezone.utc)


@pytest.fixture
def ts() -> Callable[..., datetime]:
    return _ts


@pytest.fixture
def make_trade() -> Callable[..., Trade]:
    """Build a FILLED trade at a manual price. Ids are sequential per test."""
    counter = itertools.count(1)

    def _make(
        symbol: str,
        side: Side | str,
        qty: int,
        price: float,
        at: datetime,
        *,
        status: TradeStatus = TradeStatus.FILLED,
        trade_id: str | None = None,
    ) -> Trade:
        side = Side(side)
        filled = status == TradeStatus.FILLED
        return Trade(
            id=trade_id or f"T{next(counter)}",
            symbol=symbol,
            side=side,
            order_type=OrderType.MARKET,
            status=status,
            quantity=qty,
            created_at=at,
            filled_quantity=qty if filled else None,
            fill=ManualPrice(price) if filled else None,
            filled_at=at if filled else None,
            updated_at=at,
        )

    return _make


@pytest.fixture
def round_trip(make_trade) -> list[Trade]:
    """Buy 10 @ 100, buy 10 @ 120, sell 15 @ 130: average 110, realized 300, 5 left."""
    return [
        make_trade("AAPL", "BUY", 10, 100.0, _ts(2024, 1, 2, 10)),
        make_trade("AAPL", "BUY", 10, 120.0, _ts(2024, 1, 3, 10)),
        make_trade("AAPL", "SELL", 15, 130.0, _ts(2024, 1, 4, 10)),
    ]


@pytest.fixture
def quotes() -> StaticQuoteSource:
    return StaticQuoteSource({"AAPL": 100.0, "MSFT": 400.0})


@pytest.fixture
def clock():
    """Mutable clock for the simulator: set ``clock.now`` to move time."""

    class _Clock:
        now = _ts(2024, 3, 4, 14, 0)

        def __call__(self) -> datetime:
            return self.now

    return _Clock()


@pytest.fixture
def simulator(clock) -> ExecutionSimulator:
    counter = itertools.count(1)
    return ExecutionSimulator(clock=clock, id_factory=lambda: f"PAPER-TEST-{next(counter)}")


@pytest.fixture
def store(tmp_path: Path) -> TradeStore:
    return TradeStore(tmp_path / "state.db")


@pytest.fixture
def journal(tmp_path: Path) -> JournalWriter:
    return JournalWriter(tmp_path / "journal.jsonl")


@pytest.fixture
def make_broker(quotes, store, simulator, journal) -> Callable[..., PaperBroker]:
    def _make(
        *,
        risk: RiskPolicy | None = None,
        oversell_policy: OversellPolicy = OversellPolicy.CLAMP,
        **kwargs,
    ) -> PaperBroker:
        return PaperBroker(
            quotes=kwargs.pop("quote_source", quotes),
            store=store,
            simulator=simulator,
            ledger=PositionLedger(oversell_policy),
            risk=risk or RiskPolicy(),
            journal=journal,
            **kwargs,
        )

    return _make


@pytest.fixture
def broker(make_broker) -> PaperBroker:
    return make_broker()
