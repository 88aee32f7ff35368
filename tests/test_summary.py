"""Tests for the trade-history summary."""

from zoneinfo import ZoneInfo

import pytest

from trade_core.contracts import TradeStatus
from trade_core.summary import summarize_trades


def test_per_symbol_pnl_sorted_best_first(make_trade, ts) -> None:
    trades = [
        make_trade("AAPL", "BUY", 10, 100.0, ts(2024, 1, 2, 10)),
        make_trade("AAPL", "SELL", 10, 110.0, ts(2024, 1, 3, 10)),
        make_trade("MSFT", "BUY", 1, 300.0, ts(2024, 1, 2, 15)),
        make_trade("MSFT", "SELL", 1, 280.0, ts(2024, 1, 3, 10)),
        make_trade("SPY", "BUY", 1, 400.0, ts(2024, 1, 4, 10)),
    ]
    s = summarize_trades(trades)
    assert [row.symbol for row in s.by_symbol] == ["AAPL", "SPY", "MSFT"]
    assert s.best.symbol == "AAPL"
    assert s.best.pnl == pytest.approx(100.0)
    assert s.worst.symbol == "MSFT"
    assert s.worst.pnl == pytest.approx(-20.0)
    assert s.total_pnl == pytest.approx(80.0)
    assert s.verdict == "profit"
    assert s.most_active_hour == 10
    assert (s.total_trades, s.buy_trades, s.sell_trades) == (5, 3, 2)


def test_empty_history() -> None:
    s = summarize_trades([])
    assert s.total_trades == 0
    assert s.best is None
    assert s.worst is None
    assert s.most_active_hour is None
    assert s.verdict == "flat"


def test_ignores_unfilled_orders(make_trade, ts) -> None:
    trades = [
        make_trade("AAPL", "BUY", 1, 100.0, ts(2024, 1, 2)),
        make_trade("AAPL", "SELL", 1, 50.0, ts(2024, 1, 3), status=TradeStatus.CANCELLED),
    ]
    s = summarize_trades(trades)
    assert s.total_trades == 1
    assert s.total_pnl == 0.0


def test_recommendations(make_trade, ts) -> None:
    trades = [make_trade("AAPL", "BUY", 1, 100.0, ts(2024, 1, d)) for d in range(1, 4)]
    s = summarize_trades(trades)
    assert any("concentration" in r for r in s.recommendations)
    assert any("take profits" in r for r in s.recommendations)


def test_most_active_hour_uses_timezone(make_trade, ts) -> None:
    trades = [make_trade("AAPL", "BUY", 1, 100.0, ts(2024, 1, 2, 14, 30))]
    assert summarize_trades(trades, ZoneInfo("America/New_York")).most_active_hour == 9
