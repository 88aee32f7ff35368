"""
Structured journal: append-only JSON lines. Every order decision is recorded with its reason.
"""

import json
import threading
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any


def _serialize(obj: Any) -> Any:
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if hasattr(obj, "__dict__") and not isinstance(obj, type):
        return {k: _serialize(v) for k, v in vars(obj).items() if not k.startswith("_")}
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_serialize(x) for x in obj]
    return obj


class JournalWriter:
    """Append-only journal. Each line is a JSON object with event type and payload."""

    def __init__(self, path: str | Path, *, echo_stdout: bool = False) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._echo = echo_stdout
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _write(self, event_type: str, payload: dict) -> None:
        record = {"ts_utc": datetime.now(timezone.utc).isoformat(), "event": event_type, **payload}
        line = json.dumps(_serialize(record), ensure_ascii=False) + "\n"
        with self._lock:
            with open(self._path, "a", encoding="utf-8") as f:
                f.write(line)
        if self._echo:
            print(line.rstrip())

    def order(self, order_id: str, symbol: str, side: str, qty: int, order_type: str, status: str, **extra: Any) -> None:
        self._write(
            "order",
            {"order_id": order_id, "symbol": symbol, "side": side, "qty": qty, "order_type": order_type, "status": status, **extra},
        )

    def fill(self, order_id: str, symbol: str, side: str, qty: int, price: float, price_kind: str, realized_pnl: float | None = None, **extra: Any) -> None:
        self._write(
            "fill",
            {"order_id": order_id, "symbol": symbol, "side": side, "qty": qty, "price": price, "price_kind": price_kind, "realized_pnl": realized_pnl, **extra},
        )

    def cancel(self, order_id: str, symbol: str, reason: str, **extra: Any) -> None:
        self._write("cancel", {"order_id": order_id, "symbol": symbol, "reason": reason, **extra})

    def rejection(self, reason: str, order: dict | None = None, **extra: Any) -> None:
        self._write("rejection", {"reason": reason, "order": order, **extra})

    def hypothesis_check(self, text: str, supported: bool, confidence: float, evidence: str, **extra: Any) -> None:
        self._write(
            "hypothesis_check",
            {"text": text, "supported": supported, "confidence": confidence, "evidence": evidence, **extra},
        )

    def validation(self, hypothesis_id: str, result: str, status: str, notes: str = "", **extra: Any) -> None:
        self._write(
            "validation",
            {"hypothesis_id": hypothesis_id, "result": result, "status": status, "notes": notes, **extra},
        )

    def read_events(self, event_type: str | None = None) -> list[dict]:
        """Return journal records in write order, optionally filtered by event type."""
        if not self._path.exists():
            return []
        out: list[dict] = []
        with open(self._path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                record = json.loads(line)
                if event_type is None or record.get("event") == event_type:
                    out.append(record)
        return out
