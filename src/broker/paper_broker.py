"""
Paper broker: raw order -> validated, risk-checked, simulated, persisted trade.

Pipeline for ``place_order``:

    validate -> risk -> over-sell check -> quote -> latency
             -> [symbol lock: execute + ledger update + persist]
             -> journal + events

Validation and risk failures happen before any mutation. A quote failure
propagates as UpstreamUnavailable with nothing mutated. The fill and its
ledger update happen inside one per-symbol critical section, so concurrent
orders on the same symbol never interleave their read-modify-write of the
cost basis. Orders on different symbols do not block each other.

The store is written one record at a time; positions are eventually
consistent with the trade history, and ``from_config`` always rebuilds them
from filled trades, keeping only the stored marks.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone, tzinfo
from typing import TYPE_CHECKING, Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from trade_core.contracts import (
    Hypothesis,
    HypothesisResult,
    HypothesisStatus,
    Order,
    OrderType,
    PortfolioAnalysis,
    Position,
    Side,
    Trade,
    TradeStatus,
    ValidationResult,
)
from trade_core.errors import (
    InvalidOrder,
    RiskRejected,
    UnknownHypothesis,
    UnknownOrder,
    UpstreamUnavailable,
)
from trade_core.execution import ExecutionSimulator
from trade_core.hypothesis import archive, check_hypothesis, extract_symbol, record_validation
from trade_core.ledger import LedgerUpdate, PositionLedger
from trade_core.order_validator import validate_order
from trade_core.pnl import compute_analysis
from trade_core.risk_policy import OversellPolicy, RiskPolicy
from trade_core.summary import TradeSummary, summarize_trades

from data.quotes import Quote, QuoteSource, get_quote_source
from data.trade_store import TradeStore

if TYPE_CHECKING:
    from cli.structured_log import StructuredEventLogger
    from config.loader import AppConfig
    from journal.writer import JournalWriter

logger = logging.getLogger("tradebook.broker")

INSUFFICIENT_POSITION = "Sell quantity exceeds the {held} shares held in {symbol}."


@dataclass
class PendingWork:
    """Outcome of one pass over resting orders."""

    filled: list[Trade] = field(default_factory=list)
    expired: list[Trade] = field(default_factory=list)
    rejected: list[Trade] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def changed(self) -> int:
        return len(self.filled) + len(self.expired) + len(self.rejected)


def _resolve_timezone(name: str) -> tzinfo | None:
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError as exc:
        from config.loader import ConfigError

        raise ConfigError(f"Unknown hypothesis timezone: {name!r}") from exc


class PaperBroker:
    """
    Simulated brokerage over a quote source and a SQLite store.
    All collaborators are injected; ``from_config`` wires the defaults.
    """

    def __init__(
        self,
        *,
        quotes: QuoteSource,
        store: TradeStore,
        simulator: ExecutionSimulator | None = None,
        ledger: PositionLedger | None = None,
        risk: RiskPolicy | None = None,
        oversell_policy: OversellPolicy = OversellPolicy.CLAMP,
        journal: JournalWriter | None = None,
        events: StructuredEventLogger | None = None,
        latency_ms: int = 0,
        tz: tzinfo | None = None,
    ) -> None:
        self._quotes = quotes
        self._store = store
        self._simulator = simulator or ExecutionSimulator()
        self._ledger = ledger if ledger is not None else PositionLedger(oversell_policy)
        self._risk = risk or RiskPolicy()
        self._journal = journal
        self._events = events
        self._latency_s = max(latency_ms, 0) / 1000
        self._tz = tz

    @classmethod
    def from_config(cls, cfg: AppConfig, *, quotes: QuoteSource | None = None) -> PaperBroker:
        from cli.structured_log import StructuredEventLogger
        from journal.writer import JournalWriter

        policy = OversellPolicy(cfg.trading.oversell_policy)
        store = TradeStore(cfg.execution.state_path)
        ledger = cls._restore_ledger(store, policy)

        return cls(
            quotes=quotes or get_quote_source(cfg.data),
            store=store,
            ledger=ledger,
            risk=RiskPolicy.from_config(cfg.trading),
            oversell_policy=policy,
            journal=JournalWriter(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout),
            events=StructuredEventLogger(
                enabled=cfg.alerting.structured_logs,
                webhook_url=cfg.alerting.webhook_url,
            ),
            latency_ms=cfg.execution.latency_ms,
            tz=_resolve_timezone(cfg.hypothesis.timezone),
        )

    @staticmethod
    def _restore_ledger(store: TradeStore, policy: OversellPolicy) -> PositionLedger:
        """Replay filled trades into a fresh ledger and reconcile the positions table.

        Trade history is authoritative for quantity and cost; stored rows only
        contribute their last mark.
        """
        ledger = PositionLedger.from_trades(reversed(store.list_trades()), policy)
        stored = {p.symbol: p for p in store.list_positions()}

        for symbol in ledger.symbols():
            row = stored.pop(symbol, None)
            if row is not None:
                ledger.mark(symbol, row.current_price)
            position = ledger.position(symbol)
            if row is None or (row.quantity, row.average_cost) != (position.quantity, position.average_cost):
                logger.warning("Position %s reconciled from trade history", symbol)
            store.save_position(position)
        for symbol in stored:
            logger.warning("Dropping stored position %s with no open quantity in trade history", symbol)
            store.delete_position(symbol)
        return ledger

    @property
    def ledger(self) -> PositionLedger:
        return self._ledger

    @property
    def store(self) -> TradeStore:
        return self._store

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def place_order(self, raw: Mapping[str, Any]) -> Trade:
        """Validate, risk-check and simulate one order. Returns the stored trade."""
        try:
            order = validate_order(raw)
        except InvalidOrder as exc:
            self._record_rejection(exc.reason, dict(raw))
            raise

        try:
            self._risk.enforce(order)
            self._check_oversell(order)
        except RiskRejected as exc:
            self._record_rejection(exc.reason, order.to_dict(), order)
            raise

        quote = self._quote(order.symbol)

        if self._latency_s:
            time.sleep(self._latency_s)

        with self._ledger.locked(order.symbol):
            # Re-check under the lock: a concurrent SELL may have reduced the position.
            try:
                self._check_oversell(order)
            except RiskRejected as exc:
                self._record_rejection(exc.reason, order.to_dict(), order)
                raise
            trade = self._simulator.execute(order, quote.fill_price())
            self._store.save_trade(trade)
            update = self._apply_fill(trade) if trade.status == TradeStatus.FILLED else None

        self._record_order(trade, update)
        return trade

    def _check_oversell(self, order: Order) -> None:
        if order.side != Side.SELL or self._ledger.oversell_policy != OversellPolicy.REJECT:
            return
        held = self._ledger.held_quantity(order.symbol)
        if order.quantity > held:
            raise RiskRejected(INSUFFICIENT_POSITION.format(held=held, symbol=order.symbol))

    def _apply_fill(self, trade: Trade) -> LedgerUpdate:
        """Ledger update plus position row for a FILLED trade. Caller holds the symbol lock."""
        update = self._ledger.apply_fill(trade.symbol, trade.side, trade.filled_quantity, trade.average_fill_price)
        position = self._ledger.position(trade.symbol)
        if position is None:
            self._store.delete_position(trade.symbol)
        else:
            self._store.save_position(position)
        return update

    def cancel_order(self, order_id: str) -> Trade:
        trade = self._store.get_trade(order_id)
        if trade is None:
            raise UnknownOrder(f"Order {order_id} was not found.")
        with self._ledger.locked(trade.symbol):
            # Re-read under the lock: a pending fill may have just completed.
            trade = self._store.get_trade(order_id)
            cancelled = self._simulator.cancel(trade)
            self._store.update_trade(cancelled)
        logger.info("Cancelled %s %s", cancelled.id, cancelled.symbol)
        if self._journal:
            self._journal.cancel(cancelled.id, cancelled.symbol, reason="Cancelled by user")
        if self._events:
            self._events.order_cancelled(cancelled.id, cancelled.symbol, reason="user")
        return cancelled

    def get_orders(self, limit: int | None = None, status: TradeStatus | None = None) -> list[Trade]:
        """Orders newest first."""
        return self._store.list_trades(status=status, limit=limit)

    def get_order(self, order_id: str) -> Trade:
        trade = self._store.get_trade(order_id)
        if trade is None:
            raise UnknownOrder(f"Order {order_id} was not found.")
        return trade

    def work_pending_orders(self, today: date | None = None) -> PendingWork:
        """Expire stale DAY orders and re-evaluate resting LIMIT orders.

        Quote failures are collected per symbol; the orders stay NEW.
        """
        today = today or datetime.now(self._tz or timezone.utc).date()
        work = PendingWork()
        pending = list(reversed(self._store.list_trades(status=TradeStatus.NEW)))
        quotes: dict[str, Quote | None] = {}

        for stale in pending:
            symbol = stale.symbol
            if symbol not in quotes:
                try:
                    quotes[symbol] = self._quote(symbol)
                except UpstreamUnavailable as exc:
                    quotes[symbol] = None
                    work.errors.append(f"{symbol}: {exc.reason}")

            with self._ledger.locked(symbol):
                trade = self._store.get_trade(stale.id)
                if trade is None or trade.status != TradeStatus.NEW:
                    continue

                expired = self._simulator.expire(trade, today, self._tz)
                if expired is not trade:
                    self._store.update_trade(expired)
                    work.expired.append(expired)
                    continue

                quote = quotes[symbol]
                if quote is None:
                    continue
                filled = self._simulator.try_fill(trade, quote.fill_price())
                if filled.status != TradeStatus.FILLED:
                    continue

                held = self._ledger.held_quantity(symbol)
                if (
                    filled.side == Side.SELL
                    and self._ledger.oversell_policy == OversellPolicy.REJECT
                    and filled.quantity > held
                ):
                    rejected = self._simulator.reject_pending(
                        trade, INSUFFICIENT_POSITION.format(held=held, symbol=symbol)
                    )
                    self._store.update_trade(rejected)
                    work.rejected.append(rejected)
                    continue

                self._store.update_trade(filled)
                update = self._apply_fill(filled)
                work.filled.append(filled)

            self._record_fill(filled, update)

        for trade in work.expired:
            logger.info("Expired %s %s", trade.id, trade.symbol)
            if self._journal:
                self._journal.cancel(trade.id, trade.symbol, reason=trade.notes or "Expired")
            if self._events:
                self._events.order_cancelled(trade.id, trade.symbol, reason="expired")
        for trade in work.rejected:
            self._record_rejection(trade.notes or "", None, trade=trade)
        return work

    # ------------------------------------------------------------------
    # Positions and quotes
    # ------------------------------------------------------------------

    def _quote(self, symbol: str) -> Quote:
        quote = self._quotes.get_quote(symbol)
        if quote.price <= 0:
            raise UpstreamUnavailable(f"No valid price is available for {symbol}.")
        return quote

    def get_quote(self, symbol: str) -> Quote:
        if not isinstance(symbol, str) or not symbol.strip():
            raise InvalidOrder("Enter a symbol.")
        return self._quote(symbol.strip().upper())

    def get_open_positions(self) -> list[Position]:
        """Positions marked to a fresh quote. A failed quote keeps the last mark."""
        for symbol in self._ledger.symbols():
            try:
                quote = self._quote(symbol)
            except UpstreamUnavailable as exc:
                logger.warning("Keeping last mark for %s: %s", symbol, exc.reason)
                continue
            self._ledger.mark(symbol, quote.price)
        return self._ledger.positions()

    def refresh_marks(self) -> tuple[int, list[str]]:
        """Mark every held symbol and persist the marks. Returns (marked, errors)."""
        marked = 0
        errors: list[str] = []
        for symbol in self._ledger.symbols():
            try:
                quote = self._quote(symbol)
            except UpstreamUnavailable as exc:
                errors.append(f"{symbol}: {exc.reason}")
                continue
            with self._ledger.locked(symbol):
                self._ledger.mark(symbol, quote.price)
                position = self._ledger.position(symbol)
                if position is not None:
                    self._store.save_position(position)
                    marked += 1
        return marked, errors

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    def _history(self) -> list[Trade]:
        # Oldest first so equal timestamps replay in insertion order.
        return list(reversed(self._store.list_trades()))

    def compute_analysis(self) -> PortfolioAnalysis:
        return compute_analysis(self._history())

    def summarize(self) -> TradeSummary:
        return summarize_trades(self._history(), self._tz)

    def check_hypothesis(self, text: str) -> HypothesisResult:
        result = check_hypothesis(self._history(), text, self._tz)
        if self._journal:
            self._journal.hypothesis_check(text, result.supported, result.confidence, result.evidence)
        return result

    # ------------------------------------------------------------------
    # Tracked hypotheses
    # ------------------------------------------------------------------

    def add_hypothesis(self, text: str) -> Hypothesis:
        text = text.strip()
        if not text:
            raise InvalidOrder("Enter the hypothesis text.")
        hypothesis = Hypothesis(
            id=f"HYP-{uuid.uuid4().hex[:8]}",
            text=text,
            created_at=datetime.now(timezone.utc),
            symbol=extract_symbol(text),
        )
        self._store.save_hypothesis(hypothesis)
        return hypothesis

    def get_hypothesis(self, hypothesis_id: str) -> Hypothesis:
        hypothesis = self._store.get_hypothesis(hypothesis_id)
        if hypothesis is None:
            raise UnknownHypothesis(f"Hypothesis {hypothesis_id} was not found.")
        return hypothesis

    def list_hypotheses(self, status: HypothesisStatus | None = None) -> list[Hypothesis]:
        return self._store.list_hypotheses(status=status)

    def validate_hypothesis(
        self,
        hypothesis_id: str,
        result: ValidationResult | None = None,
        notes: str = "",
    ) -> Hypothesis:
        """Record one validation. With no explicit result, the trade history decides."""
        hypothesis = self.get_hypothesis(hypothesis_id)
        if result is None:
            check = self.check_hypothesis(hypothesis.text)
            result = ValidationResult.VALID if check.supported else ValidationResult.INVALID
            notes = notes or check.evidence
        updated = record_validation(hypothesis, result, notes)
        self._store.update_hypothesis(updated)
        if self._journal:
            self._journal.validation(updated.id, result.value, updated.status.value, notes)
        if updated.status != hypothesis.status:
            logger.info("Hypothesis %s is now %s", updated.id, updated.status.value)
        return updated

    def archive_hypothesis(self, hypothesis_id: str) -> Hypothesis:
        updated = archive(self.get_hypothesis(hypothesis_id))
        self._store.update_hypothesis(updated)
        return updated

    # ------------------------------------------------------------------
    # Journal + events
    # ------------------------------------------------------------------

    def _record_rejection(
        self,
        reason: str,
        payload: dict | None,
        order: Order | None = None,
        *,
        trade: Trade | None = None,
    ) -> None:
        if trade is None and order is not None:
            trade = self._simulator.reject(order, reason)
        symbol = trade.symbol if trade is not None else str((payload or {}).get("symbol", ""))
        logger.info("Rejected %s order: %s", symbol or "?", reason)
        if self._journal:
            self._journal.rejection(reason, payload, order_id=trade.id if trade is not None else None)
        if self._events:
            self._events.order_rejected(reason, symbol=symbol)

    def _record_order(self, trade: Trade, update: LedgerUpdate | None) -> None:
        logger.info(
            "Order %s %s %s %d %s -> %s",
            trade.id, trade.side.value, trade.symbol, trade.quantity, trade.order_type.value, trade.status.value,
        )
        if self._journal:
            self._journal.order(
                trade.id,
                trade.symbol,
                trade.side.value,
                trade.quantity,
                trade.order_type.value,
                trade.status.value,
                limit_price=trade.limit_price if trade.order_type == OrderType.LIMIT else None,
            )
        if self._events:
            self._events.order_placed(trade.id, trade.symbol, trade.side.value, trade.quantity, trade.order_type.value)
        if update is not None:
            self._record_fill(trade, update)

    def _record_fill(self, trade: Trade, update: LedgerUpdate | None) -> None:
        if trade.fill is None or update is None:
            return
        if self._journal:
            self._journal.fill(
                trade.id,
                trade.symbol,
                trade.side.value,
                trade.filled_quantity,
                trade.fill.value,
                trade.fill.kind,
                realized_pnl=update.realized_pnl,
                position_qty=update.quantity,
                average_cost=update.average_cost,
            )
        if self._events:
            self._events.order_filled(
                trade.id, trade.symbol, trade.side.value, trade.filled_quantity, trade.fill.value, trade.fill.kind
            )

