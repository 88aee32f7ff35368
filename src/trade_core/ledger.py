"""
Position ledger: per-symbol quantity and weighted-average cost.

One blended cost per symbol, no lot identity. ``CostBasis`` is the pure state
machine shared with the P&L replay; ``PositionLedger`` holds one CostBasis per
held symbol plus the last mark price, and serializes updates per symbol.

Invariant after every transition:
    quantity >= 0 and (quantity == 0) <=> (average_cost == 0)
Violations raise LedgerInvariantError; they are bugs, not user errors.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterable, Iterator

from trade_core.contracts import Position, Side, Trade, TradeStatus
from trade_core.errors import LedgerInvariantError
from trade_core.risk_policy import OversellPolicy

logger = logging.getLogger("tradebook.ledger")


@dataclass
class CostBasis:
    """Quantity and average cost for one symbol."""

    quantity: int = 0
    average_cost: float = 0.0

    def apply_buy(self, qty: int, price: float) -> None:
        if qty <= 0 or price <= 0:
            raise LedgerInvariantError(f"apply_buy needs qty > 0 and price > 0, got qty={qty} price={price}")
        if self.quantity == 0:
            self.average_cost = price
            self.quantity = qty
        else:
            total = self.quantity + qty
            self.average_cost = (self.average_cost * self.quantity + price * qty) / total
            self.quantity = total
        self.check()

    def apply_sell(
        self,
        qty: int,
        price: float,
        policy: OversellPolicy = OversellPolicy.CLAMP,
    ) -> tuple[int, float] | None:
        """Sell up to ``qty`` shares.

        Returns (sold_qty, realized_pnl), or None when nothing was held.
        The remaining basis is never moved by a sell.
        """
        if qty <= 0:
            raise LedgerInvariantError(f"apply_sell needs qty > 0, got {qty}")
        if self.quantity == 0:
            return None
        if qty > self.quantity and policy == OversellPolicy.REJECT:
            raise LedgerInvariantError(
                f"sell of {qty} exceeds held {self.quantity}; over-sells must be refused before execution"
            )

        sold = min(qty, self.quantity)
        realized = (price - self.average_cost) * sold
        self.quantity -= sold
        if self.quantity == 0:
            self.average_cost = 0.0
        self.check()
        return sold, realized

    def check(self) -> None:
        if self.quantity < 0:
            raise LedgerInvariantError(f"negative quantity {self.quantity}")
        if (self.quantity == 0) != (self.average_cost == 0):
            raise LedgerInvariantError(
                f"quantity={self.quantity} inconsistent with average_cost={self.average_cost}"
            )


@dataclass(frozen=True)
class LedgerUpdate:
    """Outcome of applying one fill."""

    symbol: str
    side: Side
    quantity: int
    average_cost: float
    realized_pnl: float | None = None
    sold_quantity: int = 0

    @property
    def closed(self) -> bool:
        return self.quantity == 0


class PositionLedger:
    """Live holdings. Thread-safe per symbol.

    Callers that must pair a fill with its ledger update hold
    ``locked(symbol)`` across both; the apply_* methods take the same
    (re-entrant) lock so standalone calls are safe too. The set of held
    symbols changes only under the registry lock, which is never held while
    waiting for a symbol lock.
    """

    def __init__(self, oversell_policy: OversellPolicy = OversellPolicy.CLAMP) -> None:
        self._oversell_policy = oversell_policy
        self._books: dict[str, CostBasis] = {}
        self._marks: dict[str, float] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    @property
    def oversell_policy(self) -> OversellPolicy:
        return self._oversell_policy

    def _lock_for(self, symbol: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(symbol)
            if lock is None:
                lock = threading.RLock()
                self._locks[symbol] = lock
            return lock

    @contextmanager
    def locked(self, symbol: str) -> Iterator[None]:
        """Hold the symbol's lock for a read-modify-write sequence."""
        with self._lock_for(symbol):
            yield

    # ----- updates -----

    def apply_buy(self, symbol: str, qty: int, price: float) -> LedgerUpdate:
        with self.locked(symbol):
            book = self._books.get(symbol)
            if book is None:
                book = CostBasis()
            book.apply_buy(qty, price)
            with self._registry_lock:
                self._books[symbol] = book
            self._marks[symbol] = price
            logger.debug("BUY %s %d @ %.4f -> qty=%d avg=%.4f", symbol, qty, price, book.quantity, book.average_cost)
            return LedgerUpdate(symbol, Side.BUY, book.quantity, book.average_cost)

    def apply_sell(self, symbol: str, qty: int, price: float) -> LedgerUpdate:
        with self.locked(symbol):
            book = self._books.get(symbol)
            if book is None:
                logger.info("SELL %s %d with no position held; ledger unchanged", symbol, qty)
                return LedgerUpdate(symbol, Side.SELL, 0, 0.0)

            outcome = book.apply_sell(qty, price, self._oversell_policy)
            sold, realized = outcome if outcome is not None else (0, None)
            if sold < qty:
                logger.warning("SELL %s %d clamped to held quantity %d", symbol, qty, sold)
            if book.quantity == 0:
                with self._registry_lock:
                    del self._books[symbol]
                self._marks.pop(symbol, None)
            else:
                self._marks[symbol] = price
            return LedgerUpdate(
                symbol,
                Side.SELL,
                book.quantity,
                book.average_cost,
                realized_pnl=realized,
                sold_quantity=sold,
            )

    def apply_fill(self, symbol: str, side: Side, qty: int, price: float) -> LedgerUpdate:
        if side == Side.BUY:
            return self.apply_buy(symbol, qty, price)
        return self.apply_sell(symbol, qty, price)

    def mark(self, symbol: str, price: float) -> None:
        """Refresh the mark price. Quantity and cost are untouched."""
        with self.locked(symbol):
            if symbol in self._books:
                self._marks[symbol] = price

    # ----- reads -----

    def held_quantity(self, symbol: str) -> int:
        with self._registry_lock:
            book = self._books.get(symbol)
        return book.quantity if book is not None else 0

    def symbols(self) -> list[str]:
        with self._registry_lock:
            held = list(self._books)
        return sorted(held)

    def position(self, symbol: str, current_price: float | None = None) -> Position | None:
        with self.locked(symbol):
            book = self._books.get(symbol)
            if book is None:
                return None
            mark = current_price if current_price is not None else self._marks.get(symbol, book.average_cost)
            return Position(
                symbol=symbol,
                quantity=book.quantity,
                average_cost=book.average_cost,
                current_price=mark,
            )

    def positions(self) -> list[Position]:
        out = []
        for symbol in self.symbols():
            pos = self.position(symbol)
            if pos is not None:
                out.append(pos)
        return out

    # ----- restore -----

    def load(self, positions: Iterable[Position]) -> None:
        """Restore holdings from persisted positions (startup only)."""
        for pos in positions:
            if pos.quantity == 0:
                continue
            book = CostBasis(quantity=pos.quantity, average_cost=pos.average_cost)
            book.check()
            with self.locked(pos.symbol):
                with self._registry_lock:
                    self._books[pos.symbol] = book
                self._marks[pos.symbol] = pos.current_price

    @classmethod
    def from_trades(
        cls,
        trades: Iterable[Trade],
        oversell_policy: OversellPolicy = OversellPolicy.CLAMP,
    ) -> PositionLedger:
        """Rebuild holdings by replaying filled trades in execution order.

        Over-sells in history are clamped regardless of policy; history is
        already executed.
        """
        ledger = cls(OversellPolicy.CLAMP)
        filled = [
            t for t in trades
            if t.status == TradeStatus.FILLED and t.fill is not None and t.filled_quantity
        ]
        for t in sorted(filled, key=lambda t: t.executed_at):
            ledger.apply_fill(t.symbol, t.side, t.filled_quantity, t.fill.value)
        ledger._oversell_policy = oversell_policy
        return ledger
