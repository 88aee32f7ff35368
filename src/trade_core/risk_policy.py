"""
Risk policy: pre-execution order checks.

Checked before every order reaches the execution simulator. Rules run in a
fixed order and the first failure wins; a rejected order never touches the
ledger or the store.

- max_order_qty: rejects orders larger than the configured share count.
- allowed_symbols: when non-empty, only these symbols may trade.
- trading_enabled: when False, every order is rejected (safety mode).

The over-sell policy decides what happens when a SELL asks for more shares
than are held: CLAMP sells what is held, REJECT refuses the order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Iterable

from trade_core.contracts import Order
from trade_core.errors import RiskRejected

if TYPE_CHECKING:
    from config.loader import TradingConfig


class OversellPolicy(str, Enum):
    CLAMP = "clamp"
    REJECT = "reject"


@dataclass
class RiskResult:
    allowed: bool
    reason: str = ""


@dataclass(frozen=True)
class RiskPolicy:
    """Sequential pre-trade checks.

    Parameters
    ----------
    max_order_qty:
        Largest quantity a single order may carry.
    allowed_symbols:
        Upper-case symbol allow-list. Empty means every symbol is allowed.
    trading_enabled:
        If False, all orders are blocked.
    """

    max_order_qty: int = 1000
    allowed_symbols: frozenset[str] = field(default_factory=frozenset)
    trading_enabled: bool = True

    @classmethod
    def build(
        cls,
        *,
        max_order_qty: int = 1000,
        allowed_symbols: Iterable[str] = (),
        trading_enabled: bool = True,
    ) -> RiskPolicy:
        symbols = frozenset(s.strip().upper() for s in allowed_symbols if s and s.strip())
        return cls(max_order_qty=max_order_qty, allowed_symbols=symbols, trading_enabled=trading_enabled)

    @classmethod
    def from_config(cls, cfg: TradingConfig) -> RiskPolicy:
        return cls.build(
            max_order_qty=cfg.max_order_qty,
            allowed_symbols=cfg.allowed_symbols,
            trading_enabled=cfg.enabled,
        )

    def check(self, order: Order) -> RiskResult:
        """Return RiskResult(allowed=False, reason=...) on the first failed rule."""
        if order.quantity > self.max_order_qty:
            return RiskResult(
                allowed=False,
                reason=f"Order quantity exceeds the limit of {self.max_order_qty} shares.",
            )

        if self.allowed_symbols and order.symbol not in self.allowed_symbols:
            return RiskResult(allowed=False, reason=f"Symbol {order.symbol} is not available for trading.")

        if not self.trading_enabled:
            return RiskResult(allowed=False, reason="Trading is temporarily disabled.")

        return RiskResult(allowed=True)

    def enforce(self, order: Order) -> None:
        """Raise RiskRejected if any rule fails."""
        result = self.check(order)
        if not result.allowed:
            raise RiskRejected(result.reason)
