"""
Quote sources: symbol -> latest price. Configurable adapter; sync.

Every source returns a Quote whose ``fill_price()`` tags the price with its
origin (QuotedPrice or SyntheticPrice). Failures raise UpstreamUnavailable;
no source ever falls back to another silently.
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Mapping, Protocol

from trade_core.contracts import FillPrice, QuotedPrice, SyntheticPrice
from trade_core.errors import UpstreamUnavailable

if TYPE_CHECKING:
    from config.loader import DataConfig

logger = logging.getLogger("tradebook.quotes")

SYNTHETIC_LOW = 150.0
SYNTHETIC_HIGH = 200.0
SYNTHETIC_SPREAD = 0.001


@dataclass(frozen=True)
class Quote:
    """Latest price snapshot for one symbol. Timestamps in UTC."""

    symbol: str
    price: float
    bid: float | None = None
    ask: float | None = None
    volume: int | None = None
    ts: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    synthetic: bool = False

    def fill_price(self) -> FillPrice:
        if self.synthetic:
            return SyntheticPrice(self.price)
        return QuotedPrice(self.price)


class QuoteSource(Protocol):
    """Protocol for quote sources. Implement per provider."""

    def get_quote(self, symbol: str) -> Quote:
        """Return the latest quote; raise UpstreamUnavailable on failure."""
        ...


class StaticQuoteSource:
    """Fixed prices from a mapping; for tests and offline use."""

    def __init__(self, prices: Mapping[str, float]) -> None:
        self._prices = {s.upper(): float(p) for s, p in prices.items()}

    def set_price(self, symbol: str, price: float) -> None:
        self._prices[symbol.upper()] = float(price)

    def get_quote(self, symbol: str) -> Quote:
        price = self._prices.get(symbol.upper())
        if price is None:
            raise UpstreamUnavailable(f"No price is available for {symbol}.")
        return Quote(symbol=symbol.upper(), price=price, bid=price, ask=price)


class SyntheticQuoteSource:
    """Uniform random prices in a fixed band. Seeded for reproducible runs.

    Quotes are tagged synthetic, so fills made against them are recorded as
    SyntheticPrice rather than passing for market data.
    """

    def __init__(
        self,
        seed: int | None = None,
        *,
        low: float = SYNTHETIC_LOW,
        high: float = SYNTHETIC_HIGH,
    ) -> None:
        if not 0 < low <= high:
            raise ValueError(f"Synthetic price band must satisfy 0 < low <= high, got {low}..{high}")
        self._rng = random.Random(seed)
        self._lock = threading.Lock()
        self._low = low
        self._high = high

    def get_quote(self, symbol: str) -> Quote:
        with self._lock:
            price = round(self._rng.uniform(self._low, self._high), 2)
            volume = self._rng.randrange(1_000_000)
        return Quote(
            symbol=symbol.upper(),
            price=price,
            bid=round(price * (1 - SYNTHETIC_SPREAD), 2),
            ask=round(price * (1 + SYNTHETIC_SPREAD), 2),
            volume=volume,
            synthetic=True,
        )


def get_quote_source(cfg: DataConfig) -> QuoteSource:
    """Build the quote source named by ``cfg.quote_source``."""
    source = cfg.quote_source.lower()
    if source == "static":
        return StaticQuoteSource(cfg.static_prices)
    if source == "synthetic":
        logger.info("Using synthetic quotes (seed=%s); fills will be tagged SYNTHETIC", cfg.synthetic_seed)
        return SyntheticQuoteSource(cfg.synthetic_seed)
    if source == "alpaca":
        # Lazy import to avoid requiring alpaca-py when not used
        from data.alpaca_quotes import AlpacaQuoteSource

        return AlpacaQuoteSource(cfg.api_key, cfg.api_secret, feed=cfg.feed)
    raise ValueError(f"Unknown quote source '{cfg.quote_source}'. Supported: alpaca, static, synthetic")
