"""Tests for pre-trade risk checks."""

import pytest

from config.loader import TradingConfig
from trade_core.contracts import Order, OrderType, Side
from trade_core.errors import RiskRejected
from trade_core.risk_policy import OversellPolicy, RiskPolicy


def _order(symbol: str = "AAPL", qty: int = 10) -> Order:
    return Order(symbol=symbol, side=Side.BUY, quantity=qty, order_type=OrderType.MARKET)


class TestChecks:
    def test_default_allows(self) -> None:
        result = RiskPolicy().check(_order())
        assert result.allowed
        assert result.reason == ""

    def test_quantity_over_limit(self) -> None:
        result = RiskPolicy(max_order_qty=5).check(_order(qty=6))
        assert not result.allowed
        assert result.reason == "Order quantity exceeds the limit of 5 shares."

    def test_quantity_at_limit_is_allowed(self) -> None:
        assert RiskPolicy(max_order_qty=10).check(_order(qty=10)).allowed

    def test_symbol_outside_allow_list(self) -> None:
        policy = RiskPolicy.build(allowed_symbols=["msft", " spy "])
        result = policy.check(_order("AAPL"))
        assert not result.allowed
        assert result.reason == "Symbol AAPL is not available for trading."
        assert policy.check(_order("SPY")).allowed

    def test_empty_allow_list_allows_everything(self) -> None:
        assert RiskPolicy.build(allowed_symbols=[]).check(_order("ANY")).allowed

    def test_trading_disabled(self) -> None:
        result = RiskPolicy(trading_enabled=False).check(_order())
        assert not result.allowed
        assert result.reason == "Trading is temporarily disabled."

    def test_quantity_checked_before_symbol_and_switch(self) -> None:
        policy = RiskPolicy.build(max_order_qty=1, allowed_symbols=["MSFT"], trading_enabled=False)
        assert "exceeds the limit" in policy.check(_order("AAPL", qty=2)).reason
        assert "not available" in policy.check(_order("AAPL", qty=1)).reason
        assert "disabled" in policy.check(_order("MSFT", qty=1)).reason


class TestEnforce:
    def test_enforce_raises_with_reason(self) -> None:
        with pytest.raises(RiskRejected) as exc_info:
            RiskPolicy(trading_enabled=False).enforce(_order())
        assert exc_info.value.reason == "Trading is temporarily disabled."

    def test_enforce_passes(self) -> None:
        RiskPolicy().enforce(_order())


class TestFromConfig:
    def test_from_config(self) -> None:
        cfg = TradingConfig(enabled=False, max_order_qty=50, allowed_symbols=("aapl",))
        policy = RiskPolicy.from_config(cfg)
        assert policy.max_order_qty == 50
        assert policy.allowed_symbols == frozenset({"AAPL"})
        assert policy.trading_enabled is False

    def test_oversell_policy_values(self) -> None:
        assert OversellPolicy("clamp") is OversellPolicy.CLAMP
        assert OversellPolicy("reject") is OversellPolicy.REJECT
