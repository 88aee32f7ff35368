"""
Data layer: quote sources and the SQLite trade store.

Depends on trade_core.contracts; no dependency from trade_core back to data.
"""

from data.quotes import (
    Quote,
    QuoteSource,
    StaticQuoteSource,
    SyntheticQuoteSource,
    get_quote_source,
)
from data.trade_store import TradeStore

__all__ = [
    "Quote",
    "QuoteSource",
    "StaticQuoteSource",
    "SyntheticQuoteSource",
    "TradeStore",
    "get_quote_source",
]
