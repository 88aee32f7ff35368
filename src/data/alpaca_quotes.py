"""
Alpaca quote source: implements QuoteSource using the alpaca-py SDK.

Reads the latest trade for a symbol. Free tier uses IEX data; SIP requires
Algo Trader Plus subscription.
"""

import logging
from datetime import timezone

from trade_core.errors import UpstreamUnavailable

from data.quotes import Quote

logger = logging.getLogger("tradebook.quotes.alpaca")


class AlpacaQuoteSource:
    """
    Latest-trade quotes from Alpaca Market Data API.

    Uses StockHistoricalDataClient from alpaca-py.
    API keys via constructor (typically from AppConfig, sourced from env vars).
    """

    def __init__(self, api_key: str, api_secret: str, *, feed: str = "iex") -> None:
        if not api_key or not api_secret:
            raise ValueError(
                "Alpaca API key and secret are required. "
                "Set APCA_API_KEY_ID and APCA_API_SECRET_KEY environment variables."
            )
        try:
            from alpaca.data.historical import StockHistoricalDataClient
        except ImportError:
            raise ImportError(
                "alpaca-py is required for AlpacaQuoteSource. "
                "Install with: pip install 'tradebook[data]'"
            )
        self._client = StockHistoricalDataClient(api_key, api_secret)
        self._feed = feed

    def get_quote(self, symbol: str) -> Quote:
        """Fetch the latest trade; any SDK or network failure becomes UpstreamUnavailable."""
        from alpaca.data.enums import DataFeed
        from alpaca.data.requests import StockLatestTradeRequest

        symbol = symbol.upper()
        request = StockLatestTradeRequest(symbol_or_symbols=symbol, feed=DataFeed(self._feed.lower()))
        try:
            response = self._client.get_stock_latest_trade(request)
        except Exception as exc:
            logger.warning("Alpaca latest trade for %s failed: %s", symbol, exc)
            raise UpstreamUnavailable(f"Could not fetch a quote for {symbol}. Try again shortly.") from exc

        trade = response.get(symbol)
        if trade is None or not trade.price:
            raise UpstreamUnavailable(f"No recent trade is available for {symbol}.")

        ts = trade.timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        else:
            ts = ts.astimezone(timezone.utc)
        logger.debug("Alpaca quote %s %.4f at %s", symbol, trade.price, ts.isoformat())
        return Quote(
            symbol=symbol,
            price=float(trade.price),
            volume=int(trade.size) if trade.size is not None else None,
            ts=ts,
        )
