"""
Human-readable output for the terminal.

Every CLI command uses these formatters. Journal receives the same data.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from trade_core.hypothesis import format_money

if TYPE_CHECKING:
    from broker.sync_job import SyncResult
    from data.quotes import Quote
    from trade_core.contracts import Hypothesis, HypothesisResult, PortfolioAnalysis, Position, Trade
    from trade_core.summary import TradeSummary


def _fmt_volume(vol: int | float) -> str:
    if vol >= 1_000_000:
        return f"{vol / 1_000_000:.2f}M"
    if vol >= 1_000:
        return f"{vol / 1_000:.0f}K"
    return str(int(vol))


def _fmt_price(value: float | None) -> str:
    return f"{value:,.2f}" if value is not None else "-"


def format_trade(trade: Trade) -> str:
    """One-line order status, as shown after ``tradebook order``."""
    line = f"{trade.id}  {trade.side.value:4s} {trade.quantity:>6d} {trade.symbol:8s} {trade.order_type.value:6s}"
    if trade.limit_price is not None:
        line += f" @ {trade.limit_price:,.2f}"
    line += f"  -> {trade.status.value}"
    if trade.fill is not None:
        line += f" at {trade.fill.value:,.2f} ({trade.fill.kind.lower()})"
    if trade.notes:
        line += f"  [{trade.notes}]"
    return line


def format_orders(trades: Sequence[Trade]) -> str:
    if not trades:
        return "No orders."
    lines = [
        f"{'ID':28s} {'CREATED (UTC)':20s} {'SIDE':4s} {'QTY':>6s} {'SYMBOL':8s} {'TYPE':6s} {'LIMIT':>10s} {'FILL':>10s} STATUS",
    ]
    for t in trades:
        lines.append(
            f"{t.id:28s} {t.created_at.strftime('%Y-%m-%d %H:%M:%S'):20s} {t.side.value:4s} {t.quantity:>6d} "
            f"{t.symbol:8s} {t.order_type.value:6s} {_fmt_price(t.limit_price):>10s} "
            f"{_fmt_price(t.average_fill_price):>10s} {t.status.value}"
        )
    return "\n".join(lines)


def format_positions(positions: Sequence[Position]) -> str:
    if not positions:
        return "No open positions."
    lines = [
        f"{'SYMBOL':8s} {'QTY':>6s} {'AVG COST':>10s} {'PRICE':>10s} {'VALUE':>12s} {'UNREALIZED':>12s} {'%':>8s}",
    ]
    for p in positions:
        lines.append(
            f"{p.symbol:8s} {p.quantity:>6d} {p.average_cost:>10,.2f} {p.current_price:>10,.2f} "
            f"{p.market_value:>12,.2f} {format_money(p.unrealized_pnl):>12s} {p.unrealized_pnl_percent:>+7.2f}%"
        )
    total_value = sum(p.market_value for p in positions)
    total_unrealized = sum(p.unrealized_pnl for p in positions)
    lines.append(f"Total value {format_money(total_value)}, unrealized {format_money(total_unrealized)}")
    return "\n".join(lines)


def format_quote(quote: Quote) -> str:
    parts = [f"{quote.symbol}  {quote.price:,.2f}"]
    if quote.bid is not None and quote.ask is not None:
        parts.append(f"bid {quote.bid:,.2f} / ask {quote.ask:,.2f}")
    if quote.volume is not None:
        parts.append(f"vol {_fmt_volume(quote.volume)}")
    parts.append(quote.ts.isoformat())
    if quote.synthetic:
        parts.append("(synthetic)")
    return "  ".join(parts)


def format_analysis(a: PortfolioAnalysis) -> str:
    lines = [
        "=== Portfolio Analysis ===",
        f"Trades        : {a.total_trades} (buy {a.buy_trades} / sell {a.sell_trades})",
        f"Closed        : {a.closed_trades} (W:{a.winning_trades} / L:{a.losing_trades} / BE:{a.break_even_trades})",
        f"Win rate      : {a.win_rate:.1f}%",
        f"Net P&L       : {format_money(a.net_pnl)}",
        f"Total profit  : {format_money(a.total_profit)}",
        f"Total loss    : {format_money(a.total_loss)}",
        f"Avg profit    : {format_money(a.average_profit)}",
        f"Avg loss      : {format_money(a.average_loss)}",
        f"Largest win   : {format_money(a.largest_win)}",
        f"Largest loss  : {format_money(a.largest_loss)}",
    ]
    if a.most_traded_symbol:
        lines.append(f"Most traded   : {a.most_traded_symbol} ({a.most_traded_symbol_count} trades)")
    lines.append("")
    lines.append("Suggestions:")
    for s in a.suggestions:
        lines.append(f"  - {s}")
    lines.append("===")
    return "\n".join(lines)


def format_summary(s: TradeSummary) -> str:
    lines = [
        "=== Trade Summary ===",
        f"Trades        : {s.total_trades} (buy {s.buy_trades} / sell {s.sell_trades})",
        f"Total P&L     : {format_money(s.total_pnl)} ({s.verdict})",
    ]
    if s.most_active_hour is not None:
        lines.append(f"Most active   : {s.most_active_hour:02d}:00")
    if s.by_symbol:
        lines.append("")
        lines.append("By symbol:")
        for row in s.by_symbol:
            lines.append(f"  {row.symbol:8s} {format_money(row.pnl):>12s}  ({row.trades} trades)")
        lines.append("")
        lines.append(f"Best          : {s.best.symbol} {format_money(s.best.pnl)}")
        lines.append(f"Worst         : {s.worst.symbol} {format_money(s.worst.pnl)}")
    if s.recommendations:
        lines.append("")
        lines.append("Recommendations:")
        for r in s.recommendations:
            lines.append(f"  - {r}")
    lines.append("===")
    return "\n".join(lines)


def format_hypothesis_result(text: str, r: HypothesisResult) -> str:
    verdict = "SUPPORTED" if r.supported else "NOT SUPPORTED"
    return "\n".join(
        [
            f'Hypothesis : "{text}"',
            f"Verdict    : {verdict} (confidence {r.confidence:.0f}%)",
            f"Evidence   : {r.evidence}",
            f"Details    : {r.details}",
        ]
    )


def format_hypothesis(h: Hypothesis) -> str:
    line = (
        f"{h.id}  [{h.status.value}]  {h.text}  "
        f"(valid {h.total_valid} / invalid {h.total_invalid}, streak +{h.consecutive_valid}/-{h.consecutive_invalid})"
    )
    if h.validations:
        last = h.validations[-1]
        line += f"\n    last: {last.date.isoformat()} {last.result.value}"
        if last.notes:
            line += f" {last.notes}"
    return line


def format_hypotheses(hypotheses: Sequence[Hypothesis]) -> str:
    if not hypotheses:
        return "No hypotheses tracked."
    return "\n".join(format_hypothesis(h) for h in hypotheses)


def format_sync_result(r: SyncResult) -> str:
    status = "OK" if r.success else "FAILED"
    lines = [f"Sync {status}: {r.items_synced} items at {r.timestamp.isoformat()}"]
    for e in r.errors:
        lines.append(f"  ! {e}")
    return "\n".join(lines)
