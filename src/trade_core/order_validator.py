"""
Order validator: raw order payload -> normalized Order.

Structural checks only (policy lives in risk_policy). Pure, side-effect-free
and idempotent: validating ``order.to_dict()`` returns an equal Order.

Accepts both the snake_case keys used internally and the camelCase keys of
the HTTP payload (``qty``, ``limitPrice``, ``timeInForce``).
"""

from __future__ import annotations

import math
from typing import Any, Mapping

from trade_core.contracts import Order, OrderType, Side, TimeInForce
from trade_core.errors import InvalidOrder


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _parse_symbol(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidOrder("Enter a symbol.")
    return value.strip().upper()


def _parse_side(value: Any) -> Side:
    try:
        return Side(value)
    except ValueError:
        raise InvalidOrder("Side must be BUY or SELL.") from None


def _parse_quantity(value: Any) -> int:
    if not _is_number(value) or value <= 0:
        raise InvalidOrder("Quantity must be a number of at least 1.")
    if value % 1 != 0:
        raise InvalidOrder("Quantity must be a whole number.")
    return int(math.floor(value))


def _parse_order_type(value: Any) -> OrderType:
    try:
        return OrderType(value)
    except ValueError:
        raise InvalidOrder("Order type must be MARKET or LIMIT.") from None


def _parse_time_in_force(value: Any) -> TimeInForce:
    if value is None:
        return TimeInForce.DAY
    try:
        return TimeInForce(value)
    except ValueError:
        raise InvalidOrder("Time in force must be DAY or GTC.") from None


def validate_order(raw: Mapping[str, Any]) -> Order:
    """Validate and normalize a raw order payload.

    Raises
    ------
    InvalidOrder
        With a plain-language reason, on the first failed check. Checks run
        in order: symbol, side, quantity, type, limit price, time in force.
    """
    if not isinstance(raw, Mapping):
        raise InvalidOrder("Order payload must be an object.")

    symbol = _parse_symbol(raw.get("symbol"))
    side = _parse_side(raw.get("side"))
    quantity = _parse_quantity(_first(raw, "quantity", "qty"))
    order_type = _parse_order_type(_first(raw, "type", "order_type"))

    limit_price: float | None = None
    if order_type == OrderType.LIMIT:
        value = _first(raw, "limit_price", "limitPrice")
        if not _is_number(value) or value <= 0:
            raise InvalidOrder("A limit order needs a positive limit price.")
        limit_price = float(value)

    tif = _parse_time_in_force(_first(raw, "time_in_force", "timeInForce"))

    return Order(
        symbol=symbol,
        side=side,
        quantity=quantity,
        order_type=order_type,
        time_in_force=tif,
        limit_price=limit_price,
    )
