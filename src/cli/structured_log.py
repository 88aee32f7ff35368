"""
Structured JSON event logger for container observability.

Emits one JSON object per line to stderr. Events are designed to be
parsed by log aggregators (Grafana Loki, CloudWatch, ELK).

Optional webhook: when configured, alert events (order_filled,
order_rejected, error) are POSTed to the URL.
"""

from __future__ import annotations

import json
import logging
import sys
import urllib.request
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger("tradebook.events")

ALERT_EVENTS = frozenset({"order_filled", "order_rejected", "error"})


class StructuredEventLogger:
    """Emit structured JSON events to stderr and optional webhook."""

    def __init__(
        self,
        *,
        enabled: bool = True,
        webhook_url: str = "",
        stream: Any = None,
        service: str = "tradebook",
    ) -> None:
        self._enabled = enabled
        self._webhook_url = webhook_url.strip()
        self._stream = stream or sys.stderr
        self._service = service

    def _emit(self, event_type: str, **fields: Any) -> dict:
        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": event_type,
            "service": self._service,
            **fields,
        }
        if self._enabled:
            self._stream.write(json.dumps(record) + "\n")
            self._stream.flush()

        if self._webhook_url and event_type in ALERT_EVENTS:
            self._post_webhook(record)

        return record

    def _post_webhook(self, record: dict) -> None:
        try:
            data = json.dumps(record).encode("utf-8")
            req = urllib.request.Request(
                self._webhook_url,
                data=data,
                headers={"Content-Type": "application/json"},
                method="POST",
            )
            urllib.request.urlopen(req, timeout=5)
        except Exception as exc:
            logger.warning("Webhook POST failed: %s", exc)

    def order_placed(self, order_id: str, symbol: str, side: str, qty: int, order_type: str) -> dict:
        return self._emit(
            "order_placed",
            order_id=order_id,
            symbol=symbol,
            side=side,
            qty=qty,
            order_type=order_type,
        )

    def order_filled(self, order_id: str, symbol: str, side: str, qty: int, price: float, price_kind: str) -> dict:
        return self._emit(
            "order_filled",
            order_id=order_id,
            symbol=symbol,
            side=side,
            qty=qty,
            price=price,
            price_kind=price_kind,
        )

    def order_rejected(self, reason: str, symbol: str = "") -> dict:
        return self._emit("order_rejected", reason=reason, symbol=symbol)

    def order_cancelled(self, order_id: str, symbol: str, reason: str = "") -> dict:
        return self._emit("order_cancelled", order_id=order_id, symbol=symbol, reason=reason)

    def sync_complete(self, success: bool, items_synced: int, errors: int) -> dict:
        return self._emit(
            "sync_complete",
            success=success,
            items_synced=items_synced,
            errors=errors,
        )

    def error(self, message: str, detail: str = "") -> dict:
        return self._emit("error", message=message, detail=detail)
