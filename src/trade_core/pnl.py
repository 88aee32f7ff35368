"""
P&L aggregator: filled trades -> realized P&L per SELL -> PortfolioAnalysis.

Pure read-time computation. Trades are grouped by symbol, ordered by
execution time (filled_at, falling back to created_at; ties keep input
order), and replayed through the same CostBasis state machine the live
ledger uses. A SELL while nothing is held contributes no P&L.

Identical input always yields identical output. The input sequence is never
mutated or sorted in place.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Sequence

from trade_core.contracts import PortfolioAnalysis, RealizedPnL, Side, Trade, TradeStatus
from trade_core.ledger import CostBasis


def eligible_trades(trades: Iterable[Trade]) -> list[Trade]:
    """FILLED trades that carry both a fill price and a filled quantity."""
    return [
        t for t in trades
        if t.status == TradeStatus.FILLED
        and t.average_fill_price
        and t.filled_quantity
    ]


def _group_by_symbol(trades: Sequence[Trade]) -> dict[str, list[Trade]]:
    groups: dict[str, list[Trade]] = {}
    for t in trades:
        groups.setdefault(t.symbol, []).append(t)
    return groups


def replay_realized(trades: Iterable[Trade]) -> list[RealizedPnL]:
    """Replay eligible trades per symbol and return one entry per closing SELL."""
    realized: list[RealizedPnL] = []
    for symbol, group in _group_by_symbol(eligible_trades(trades)).items():
        book = CostBasis()
        for t in sorted(group, key=lambda t: t.executed_at):
            price = t.average_fill_price
            qty = t.filled_quantity
            if t.side == Side.BUY:
                book.apply_buy(qty, price)
                continue
            cost = book.average_cost
            outcome = book.apply_sell(qty, price)
            if outcome is None:
                continue
            sold, pnl = outcome
            realized.append(
                RealizedPnL(
                    trade_id=t.id,
                    symbol=symbol,
                    quantity=sold,
                    price=price,
                    average_cost=cost,
                    pnl=pnl,
                    at=t.executed_at,
                )
            )
    return realized


def realized_pnl_total(trades: Iterable[Trade]) -> float:
    return sum(r.pnl for r in replay_realized(trades))


# ---------------------------------------------------------------------------
# Suggestions: fixed ordered rules, every matching rule fires
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SuggestionRule:
    id: str
    applies: Callable[[PortfolioAnalysis], bool]
    message: str


NO_CLOSED_POSITIONS = (
    "No positions have been closed yet. Complete a round trip to unlock detailed analysis."
)
KEEP_GOING = "Trading performance looks healthy. Keep following your current strategy."

SUGGESTION_RULES: tuple[SuggestionRule, ...] = (
    SuggestionRule(
        "LOW-WIN-RATE",
        lambda a: a.closed_trades >= 5 and a.win_rate < 50,
        "Win rate is below 50%. Review entry timing and symbol selection.",
    ),
    SuggestionRule(
        "LOSS-SIZE",
        lambda a: a.closed_trades > 0 and a.average_profit > 0 and a.average_loss > a.average_profit * 1.5,
        "Average loss is more than 1.5x the average profit. Enforce your stop-loss rules.",
    ),
    SuggestionRule(
        "LOSS-COUNT",
        lambda a: a.closed_trades >= 5 and a.losing_trades > a.winning_trades * 2,
        "Losing trades outnumber winners more than 2 to 1. Revisit trade frequency and strategy.",
    ),
    SuggestionRule(
        "FEW-TRADES",
        lambda a: a.closed_trades > 0 and a.total_trades < 10,
        "Few trades recorded so far. Collect more data before drawing conclusions.",
    ),
    SuggestionRule(
        "NET-LOSS",
        lambda a: a.closed_trades > 0 and a.net_pnl < 0,
        "Current trading is at a net loss. Review risk management and your trading plan.",
    ),
)


def generate_suggestions(analysis: PortfolioAnalysis) -> list[str]:
    """Evaluate every rule in order; fall back to one positive message."""
    if analysis.closed_trades == 0:
        return [NO_CLOSED_POSITIONS]
    suggestions = [rule.message for rule in SUGGESTION_RULES if rule.applies(analysis)]
    return suggestions or [KEEP_GOING]


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _most_traded(trades: Sequence[Trade]) -> tuple[str, int]:
    counts = Counter(t.symbol for t in trades)
    if not counts:
        return "", 0
    # Counter.most_common keeps first-seen order among ties
    symbol, count = counts.most_common(1)[0]
    return symbol, count


def compute_analysis(trades: Iterable[Trade]) -> PortfolioAnalysis:
    """Aggregate realized P&L statistics over all eligible trades."""
    filled = eligible_trades(trades)
    pnls = [r.pnl for r in replay_realized(filled)]

    wins = [p for p in pnls if p > 0]
    losses = [abs(p) for p in pnls if p < 0]
    break_even = sum(1 for p in pnls if p == 0)
    closed = len(wins) + len(losses) + break_even

    total_profit = sum(wins)
    total_loss = sum(losses)
    symbol, symbol_count = _most_traded(filled)

    analysis = PortfolioAnalysis(
        total_trades=len(filled),
        buy_trades=sum(1 for t in filled if t.side == Side.BUY),
        sell_trades=sum(1 for t in filled if t.side == Side.SELL),
        winning_trades=len(wins),
        losing_trades=len(losses),
        break_even_trades=break_even,
        total_profit=total_profit,
        total_loss=total_loss,
        net_pnl=total_profit - total_loss,
        average_profit=_mean(wins),
        average_loss=_mean(losses),
        largest_win=max(wins, default=0.0),
        largest_loss=max(losses, default=0.0),
        win_rate=len(wins) / closed * 100 if closed else 0.0,
        most_traded_symbol=symbol,
        most_traded_symbol_count=symbol_count,
    )
    return replace(analysis, suggestions=tuple(generate_suggestions(analysis)))
