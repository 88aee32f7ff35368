"""Tests for quote sources and the quote source factory."""

import pytest

from config.loader import DataConfig
from data.quotes import (
    SYNTHETIC_HIGH,
    SYNTHETIC_LOW,
    StaticQuoteSource,
    SyntheticQuoteSource,
    get_quote_source,
)
from trade_core.contracts import QuotedPrice, SyntheticPrice
from trade_core.errors import UpstreamUnavailable


class TestStatic:
    def test_known_symbol(self) -> None:
        q = StaticQuoteSource({"aapl": 180}).get_quote("AAPL")
        assert q.symbol == "AAPL"
        assert q.price == 180.0
        assert q.fill_price() == QuotedPrice(180.0)

    def test_unknown_symbol(self) -> None:
        with pytest.raises(UpstreamUnavailable, match="MSFT"):
            StaticQuoteSource({}).get_quote("MSFT")

    def test_set_price(self) -> None:
        src = StaticQuoteSource({})
        src.set_price("msft", 410)
        assert src.get_quote("MSFT").price == 410.0


class TestSynthetic:
    def test_prices_in_band_and_tagged(self) -> None:
        src = SyntheticQuoteSource(seed=1)
        for _ in range(100):
            q = src.get_quote("AAPL")
            assert SYNTHETIC_LOW <= q.price <= SYNTHETIC_HIGH
            assert q.bid < q.price < q.ask
            assert q.synthetic
            assert isinstance(q.fill_price(), SyntheticPrice)

    def test_seed_is_reproducible(self) -> None:
        a = [SyntheticQuoteSource(seed=42).get_quote("X").price for _ in range(3)]
        b = [SyntheticQuoteSource(seed=42).get_quote("X").price for _ in range(3)]
        assert a == b

    def test_bad_band(self) -> None:
        with pytest.raises(ValueError):
            SyntheticQuoteSource(low=10, high=5)


class TestFactory:
    def test_static(self) -> None:
        src = get_quote_source(DataConfig(quote_source="static", static_prices={"AAPL": 1.5}))
        assert isinstance(src, StaticQuoteSource)
        assert src.get_quote("AAPL").price == 1.5

    def test_synthetic(self) -> None:
        assert isinstance(get_quote_source(DataConfig(quote_source="synthetic", synthetic_seed=3)), SyntheticQuoteSource)

    def test_unknown(self) -> None:
        with pytest.raises(ValueError, match="Unknown quote source"):
            get_quote_source(DataConfig(quote_source="polygon"))
