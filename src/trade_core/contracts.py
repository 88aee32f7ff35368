"""
Data contracts for trade-core: Order, Trade, Position, analysis and hypothesis records.

trade-core consumes validated orders and fill history and produces trades,
positions and analytics. No I/O; these are plain dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Union


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderType(str, Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"


class TimeInForce(str, Enum):
    """How long an unfilled order stays eligible to execute."""

    DAY = "DAY"
    GTC = "GTC"


class TradeStatus(str, Enum):
    """Order lifecycle. NEW is the only non-terminal state the simulator leaves behind."""

    NEW = "NEW"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self in (TradeStatus.FILLED, TradeStatus.CANCELLED, TradeStatus.REJECTED)


class HypothesisStatus(str, Enum):
    ACTIVE = "ACTIVE"
    VALIDATED = "VALIDATED"
    INVALIDATED = "INVALIDATED"
    ARCHIVED = "ARCHIVED"


class ValidationResult(str, Enum):
    VALID = "VALID"
    INVALID = "INVALID"


# ---------------------------------------------------------------------------
# Fill price: one variant per origin of the execution price
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QuotedPrice:
    """Price taken from a live quote source."""

    value: float
    kind: str = field(default="QUOTED", init=False)


@dataclass(frozen=True)
class SyntheticPrice:
    """Simulated reference price. Never substituted silently for a quote."""

    value: float
    basis: str = "synthetic"
    kind: str = field(default="SYNTHETIC", init=False)


@dataclass(frozen=True)
class LimitPrice:
    """Limit order executed at its own limit."""

    value: float
    kind: str = field(default="LIMIT", init=False)


@dataclass(frozen=True)
class ManualPrice:
    """Hand-entered or imported execution price."""

    value: float
    kind: str = field(default="MANUAL", init=False)


FillPrice = Union[QuotedPrice, SyntheticPrice, LimitPrice, ManualPrice]

_FILL_PRICE_KINDS: dict[str, type] = {
    "QUOTED": QuotedPrice,
    "SYNTHETIC": SyntheticPrice,
    "LIMIT": LimitPrice,
    "MANUAL": ManualPrice,
}


def fill_price_from(kind: str, value: float) -> FillPrice:
    """Rebuild a FillPrice variant from its persisted (kind, value) pair."""
    try:
        cls = _FILL_PRICE_KINDS[kind.upper()]
    except KeyError:
        raise ValueError(f"Unknown fill price kind: {kind!r}") from None
    return cls(float(value))


# ---------------------------------------------------------------------------
# Orders and trades
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Order:
    """Normalized order. Immutable once accepted by the validator."""

    symbol: str
    side: Side
    quantity: int
    order_type: OrderType
    time_in_force: TimeInForce = TimeInForce.DAY
    limit_price: float | None = None

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "side": self.side.value,
            "quantity": self.quantity,
            "type": self.order_type.value,
            "limit_price": self.limit_price,
            "time_in_force": self.time_in_force.value,
        }


@dataclass(frozen=True)
class Trade:
    """One order and its execution state.

    Only the status and fill fields ever change, and only through
    ``with_fill`` / ``with_status`` which return new instances.
    """

    id: str
    symbol: str
    side: Side
    order_type: OrderType
    status: TradeStatus
    quantity: int
    created_at: datetime
    time_in_force: TimeInForce = TimeInForce.DAY
    limit_price: float | None = None
    filled_quantity: int | None = None
    fill: FillPrice | None = None
    filled_at: datetime | None = None
    updated_at: datetime | None = None
    notes: str | None = None

    @property
    def average_fill_price(self) -> float | None:
        return self.fill.value if self.fill is not None else None

    @property
    def price(self) -> float | None:
        """Order price: the limit for LIMIT orders, None for MARKET."""
        return self.limit_price

    @property
    def executed_at(self) -> datetime:
        """Timestamp used for chronological replay."""
        return self.filled_at if self.filled_at is not None else self.created_at

    @property
    def notional(self) -> float:
        if self.fill is None or not self.filled_quantity:
            return 0.0
        return self.fill.value * self.filled_quantity

    def with_fill(self, fill: FillPrice, at: datetime) -> Trade:
        return replace(
            self,
            status=TradeStatus.FILLED,
            filled_quantity=self.quantity,
            fill=fill,
            filled_at=at,
            updated_at=at,
        )

    def with_status(self, status: TradeStatus, at: datetime, notes: str | None = None) -> Trade:
        return replace(self, status=status, updated_at=at, notes=notes if notes is not None else self.notes)


@dataclass(frozen=True)
class Position:
    """Holding for one symbol, marked to ``current_price``."""

    symbol: str
    quantity: int
    average_cost: float
    current_price: float

    @property
    def total_cost(self) -> float:
        return self.quantity * self.average_cost

    @property
    def market_value(self) -> float:
        return self.quantity * self.current_price

    @property
    def unrealized_pnl(self) -> float:
        return (self.current_price - self.average_cost) * self.quantity

    @property
    def unrealized_pnl_percent(self) -> float:
        if self.average_cost <= 0:
            return 0.0
        return (self.current_price - self.average_cost) / self.average_cost * 100


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RealizedPnL:
    """Realized gain/loss of one SELL fill closing against a held position."""

    trade_id: str
    symbol: str
    quantity: int
    price: float
    average_cost: float
    pnl: float
    at: datetime


@dataclass(frozen=True)
class PortfolioAnalysis:
    total_trades: int
    buy_trades: int
    sell_trades: int
    winning_trades: int
    losing_trades: int
    break_even_trades: int
    total_profit: float
    total_loss: float
    net_pnl: float
    average_profit: float
    average_loss: float
    largest_win: float
    largest_loss: float
    win_rate: float
    most_traded_symbol: str = ""
    most_traded_symbol_count: int = 0
    suggestions: tuple[str, ...] = ()

    @property
    def closed_trades(self) -> int:
        return self.winning_trades + self.losing_trades + self.break_even_trades


@dataclass(frozen=True)
class HypothesisConstraints:
    """What the parser pulled out of a free-text hypothesis."""

    symbol: str | None = None
    time_keyword: str | None = None
    hours: tuple[int, ...] = ()
    action: Side | None = None


@dataclass(frozen=True)
class HypothesisResult:
    supported: bool
    confidence: float
    evidence: str
    details: str
    constraints: HypothesisConstraints = HypothesisConstraints()
    pnl_in_range: float | None = None
    pnl_outside_range: float | None = None
    pnl: float | None = None

    def to_dict(self) -> dict:
        return {
            "supported": self.supported,
            "confidence": self.confidence,
            "evidence": self.evidence,
            "details": self.details,
        }


@dataclass(frozen=True)
class HypothesisValidation:
    date: date
    result: ValidationResult
    notes: str = ""


@dataclass(frozen=True)
class Hypothesis:
    """User-tracked investment hypothesis. Status changes are user judgments."""

    id: str
    text: str
    created_at: datetime
    symbol: str | None = None
    status: HypothesisStatus = HypothesisStatus.ACTIVE
    validations: tuple[HypothesisValidation, ...] = ()
    consecutive_valid: int = 0
    consecutive_invalid: int = 0
    total_valid: int = 0
    total_invalid: int = 0
    updated_at: datetime | None = None
    last_validated_at: datetime | None = None
