"""
Error taxonomy for order handling and analytics.

Every user-facing error carries a plain-language ``reason``. Internal details
(stack traces, upstream payloads) go to the log, never into ``reason``.
"""

from __future__ import annotations


class TradingError(Exception):
    """Base class for errors a caller is expected to handle."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class InvalidOrder(TradingError):
    """Structurally invalid order. Never retried."""


class RiskRejected(TradingError):
    """Order refused by risk policy. Reason is shown to the user verbatim."""


class NotCancellable(TradingError):
    """Cancel requested for an order that is no longer NEW."""


class UnknownOrder(TradingError):
    """No order with the requested id."""


class UpstreamUnavailable(TradingError):
    """Quote source failed; no live price is available."""


class NoMatchingData(TradingError):
    """Valid query with an empty result set."""


class UnknownHypothesis(TradingError):
    """No tracked hypothesis with the requested id."""


class LedgerInvariantError(AssertionError):
    """Position ledger reached an impossible state. Programming error."""
