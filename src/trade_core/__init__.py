"""
trade-core: pure order execution and portfolio accounting engine.

No I/O, no network. Consumes validated orders, reference prices and fill
history; produces trades, positions, realized P&L analytics and hypothesis
verdicts. Fully deterministic and unit-testable.
"""

from trade_core.contracts import (
    Order,
    OrderType,
    PortfolioAnalysis,
    Position,
    Side,
    TimeInForce,
    Trade,
    TradeStatus,
)
from trade_core.errors import (
    InvalidOrder,
    NoMatchingData,
    NotCancellable,
    RiskRejected,
    TradingError,
    UnknownHypothesis,
    UnknownOrder,
    UpstreamUnavailable,
)
from trade_core.execution import ExecutionSimulator
from trade_core.hypothesis import check_hypothesis
from trade_core.ledger import PositionLedger
from trade_core.order_validator import validate_order
from trade_core.pnl import compute_analysis
from trade_core.risk_policy import OversellPolicy, RiskPolicy

__all__ = [
    "check_hypothesis",
    "compute_analysis",
    "ExecutionSimulator",
    "InvalidOrder",
    "NoMatchingData",
    "NotCancellable",
    "Order",
    "OrderType",
    "OversellPolicy",
    "PortfolioAnalysis",
    "Position",
    "PositionLedger",
    "RiskPolicy",
    "RiskRejected",
    "Side",
    "TimeInForce",
    "Trade",
    "TradeStatus",
    "TradingError",
    "UnknownHypothesis",
    "UnknownOrder",
    "UpstreamUnavailable",
    "validate_order",
]
