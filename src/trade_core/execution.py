"""
Execution simulator: validated Order + reference price -> Trade.

State machine per order:
    MARKET: NEW -> FILLED immediately at the reference price.
    LIMIT:  NEW -> FILLED at the limit when the reference satisfies it
            (BUY: ref <= limit, SELL: ref >= limit), else stays NEW.
    cancel: NEW -> CANCELLED; any other state raises NotCancellable.

The simulator only ever produces a full fill or no fill. It does not touch
the ledger; the broker pairs each fill with its ledger update under the
symbol lock.
"""

from __future__ import annotations

import itertools
import threading
import time
from datetime import date, datetime, timezone, tzinfo
from typing import Callable

from trade_core.contracts import (
    FillPrice,
    LimitPrice,
    Order,
    OrderType,
    Side,
    TimeInForce,
    Trade,
    TradeStatus,
)
from trade_core.errors import NotCancellable


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def limit_satisfied(side: Side, reference: float, limit: float) -> bool:
    """True if a limit order on ``side`` is marketable at ``reference``."""
    if side == Side.BUY:
        return reference <= limit
    return reference >= limit


class ExecutionSimulator:
    """Paper execution. Injected clock and id factory keep tests deterministic."""

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utc_now,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._clock = clock
        self._counter = itertools.count(1)
        self._counter_lock = threading.Lock()
        self._id_factory = id_factory or self._paper_id

    def _paper_id(self) -> str:
        with self._counter_lock:
            n = next(self._counter)
        return f"PAPER-{int(time.time() * 1000)}-{n}"

    def _new_trade(self, order: Order, now: datetime) -> Trade:
        return Trade(
            id=self._id_factory(),
            symbol=order.symbol,
            side=order.side,
            order_type=order.order_type,
            status=TradeStatus.NEW,
            quantity=order.quantity,
            created_at=now,
            time_in_force=order.time_in_force,
            limit_price=order.limit_price,
            updated_at=now,
        )

    def execute(self, order: Order, reference: FillPrice) -> Trade:
        """Create the trade for ``order`` and fill it if the reference allows."""
        now = self._clock()
        trade = self._new_trade(order, now)
        return self._attempt_fill(trade, reference, now)

    def try_fill(self, trade: Trade, reference: FillPrice) -> Trade:
        """Re-evaluate a pending order against a newer reference price."""
        if trade.status != TradeStatus.NEW:
            return trade
        return self._attempt_fill(trade, reference, self._clock())

    def _attempt_fill(self, trade: Trade, reference: FillPrice, now: datetime) -> Trade:
        if trade.order_type == OrderType.MARKET:
            return trade.with_fill(reference, now)

        limit = trade.limit_price
        if limit is not None and limit_satisfied(trade.side, reference.value, limit):
            return trade.with_fill(LimitPrice(limit), now)
        return trade

    def cancel(self, trade: Trade) -> Trade:
        if trade.status != TradeStatus.NEW:
            raise NotCancellable(f"Order {trade.id} is {trade.status.value} and can no longer be cancelled.")
        return trade.with_status(TradeStatus.CANCELLED, self._clock())

    def expire(self, trade: Trade, today: date, tz: tzinfo | None = None) -> Trade:
        """Cancel a DAY order left pending from an earlier day. GTC orders are kept.

        The order's trading day is read in ``tz`` when given, so ``today`` must
        be a date in the same zone.
        """
        if trade.status != TradeStatus.NEW or trade.time_in_force != TimeInForce.DAY:
            return trade
        created = trade.created_at.astimezone(tz) if tz is not None else trade.created_at
        if created.date() >= today:
            return trade
        return trade.with_status(TradeStatus.CANCELLED, self._clock(), notes="Expired at end of day")

    def reject(self, order: Order, reason: str) -> Trade:
        """REJECTED record for an order refused before execution."""
        now = self._clock()
        return self._new_trade(order, now).with_status(TradeStatus.REJECTED, now, notes=reason)

    def reject_pending(self, trade: Trade, reason: str) -> Trade:
        """NEW -> REJECTED for a resting order that can no longer execute."""
        if trade.status != TradeStatus.NEW:
            return trade
        return trade.with_status(TradeStatus.REJECTED, self._clock(), notes=reason)
