"""
Trade-history summary: per-symbol realized P&L, activity by hour, verdict.

Complements PortfolioAnalysis with a narrative-oriented view for the
``tradebook summary`` command.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import tzinfo
from typing import Iterable

from trade_core.contracts import Side, Trade
from trade_core.pnl import eligible_trades, replay_realized


@dataclass(frozen=True)
class SymbolPnL:
    symbol: str
    pnl: float
    trades: int


@dataclass(frozen=True)
class TradeSummary:
    total_trades: int
    buy_trades: int
    sell_trades: int
    by_symbol: tuple[SymbolPnL, ...]
    most_active_hour: int | None
    total_pnl: float
    verdict: str  # "profit" | "loss" | "flat"
    recommendations: tuple[str, ...]

    @property
    def best(self) -> SymbolPnL | None:
        return self.by_symbol[0] if self.by_symbol else None

    @property
    def worst(self) -> SymbolPnL | None:
        return self.by_symbol[-1] if self.by_symbol else None


def _hour(trade: Trade, tz: tzinfo | None) -> int:
    ts = trade.executed_at
    return (ts.astimezone(tz) if tz is not None else ts).hour


def summarize_trades(trades: Iterable[Trade], tz: tzinfo | None = None) -> TradeSummary:
    filled = eligible_trades(trades)

    pnl_by_symbol: dict[str, float] = {}
    count_by_symbol: Counter[str] = Counter()
    for t in filled:
        pnl_by_symbol.setdefault(t.symbol, 0.0)
        count_by_symbol[t.symbol] += 1
    for r in replay_realized(filled):
        pnl_by_symbol[r.symbol] += r.pnl

    by_symbol = tuple(
        sorted(
            (SymbolPnL(s, pnl, count_by_symbol[s]) for s, pnl in pnl_by_symbol.items()),
            key=lambda s: s.pnl,
            reverse=True,
        )
    )

    hours = Counter(_hour(t, tz) for t in filled)
    most_active_hour = hours.most_common(1)[0][0] if hours else None

    buys = sum(1 for t in filled if t.side == Side.BUY)
    sells = sum(1 for t in filled if t.side == Side.SELL)
    total_pnl = sum(s.pnl for s in by_symbol)
    verdict = "profit" if total_pnl > 0 else "loss" if total_pnl < 0 else "flat"

    recommendations: list[str] = []
    if len(by_symbol) > 3:
        recommendations.append("Holdings are spread across several symbols.")
    else:
        recommendations.append("Spreading trades across more symbols would reduce concentration risk.")
    if buys > sells * 2:
        recommendations.append("Buys outnumber sells more than 2 to 1. Review when you take profits.")

    return TradeSummary(
        total_trades=len(filled),
        buy_trades=buys,
        sell_trades=sells,
        by_symbol=by_symbol,
        most_active_hour=most_active_hour,
        total_pnl=total_pnl,
        verdict=verdict,
        recommendations=tuple(recommendations),
    )
