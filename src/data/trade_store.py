"""
Persist and load trades, positions and tracked hypotheses (SQLite). Timestamps in UTC.

Each call writes one record in its own transaction. The fill price variant is
stored as (fill_kind, fill_price) and rebuilt on load.
"""

import json
import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path

from trade_core.contracts import (
    Hypothesis,
    HypothesisStatus,
    HypothesisValidation,
    OrderType,
    Position,
    Side,
    TimeInForce,
    Trade,
    TradeStatus,
    ValidationResult,
    fill_price_from,
)
from trade_core.errors import UnknownOrder


def _utc_ts(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _to_text(ts: datetime | None) -> str | None:
    return _utc_ts(ts).isoformat() if ts is not None else None


def _from_text(value: str | None) -> datetime | None:
    if value is None:
        return None
    # SQLite has no native datetime; we store ISO strings
    ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


_TRADE_COLUMNS = (
    "id, symbol, side, order_type, status, quantity, time_in_force, limit_price, "
    "filled_quantity, fill_kind, fill_price, created_at, filled_at, updated_at, notes"
)

_HYPOTHESIS_COLUMNS = (
    "id, text, symbol, status, validations, consecutive_valid, consecutive_invalid, "
    "total_valid, total_invalid, created_at, updated_at, last_validated_at"
)


class TradeStore:
    """SQLite-backed trade, position and hypothesis storage. One file per path."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @property
    def path(self) -> Path:
        return self._path

    def _conn(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self._path))

    def _init_schema(self) -> None:
        with self._conn() as c:
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS trades (
                    id TEXT PRIMARY KEY,
                    symbol TEXT NOT NULL,
                    side TEXT NOT NULL,
                    order_type TEXT NOT NULL,
                    status TEXT NOT NULL,
                    quantity INTEGER NOT NULL,
                    time_in_force TEXT NOT NULL,
                    limit_price REAL,
                    filled_quantity INTEGER,
                    fill_kind TEXT,
                    fill_price REAL,
                    created_at TEXT NOT NULL,
                    filled_at TEXT,
                    updated_at TEXT,
                    notes TEXT
                )
                """
            )
            c.execute("CREATE INDEX IF NOT EXISTS trades_symbol ON trades (symbol, created_at)")
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS positions (
                    symbol TEXT PRIMARY KEY,
                    quantity INTEGER NOT NULL,
                    average_cost REAL NOT NULL,
                    current_price REAL NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS hypotheses (
                    id TEXT PRIMARY KEY,
                    text TEXT NOT NULL,
                    symbol TEXT,
                    status TEXT NOT NULL,
                    validations TEXT NOT NULL,
                    consecutive_valid INTEGER NOT NULL,
                    consecutive_invalid INTEGER NOT NULL,
                    total_valid INTEGER NOT NULL,
                    total_invalid INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT,
                    last_validated_at TEXT
                )
                """
            )

    # ----- trades -----

    @staticmethod
    def _trade_row(t: Trade) -> tuple:
        return (
            t.id,
            t.symbol,
            t.side.value,
            t.order_type.value,
            t.status.value,
            t.quantity,
            t.time_in_force.value,
            t.limit_price,
            t.filled_quantity,
            t.fill.kind if t.fill is not None else None,
            t.fill.value if t.fill is not None else None,
            _to_text(t.created_at),
            _to_text(t.filled_at),
            _to_text(t.updated_at),
            t.notes,
        )

    @staticmethod
    def _row_to_trade(row: tuple) -> Trade:
        (tid, symbol, side, order_type, status, qty, tif, limit_price,
         filled_qty, fill_kind, fill_price, created_at, filled_at, updated_at, notes) = row
        return Trade(
            id=tid,
            symbol=symbol,
            side=Side(side),
            order_type=OrderType(order_type),
            status=TradeStatus(status),
            quantity=qty,
            created_at=_from_text(created_at),
            time_in_force=TimeInForce(tif),
            limit_price=limit_price,
            filled_quantity=filled_qty,
            fill=fill_price_from(fill_kind, fill_price) if fill_kind is not None else None,
            filled_at=_from_text(filled_at),
            updated_at=_from_text(updated_at),
            notes=notes,
        )

    def save_trade(self, trade: Trade) -> None:
        """Insert a new trade. Ids are unique."""
        try:
            with self._conn() as c:
                c.execute(f"INSERT INTO trades ({_TRADE_COLUMNS}) VALUES ({', '.join('?' * 15)})", self._trade_row(trade))
        except sqlite3.IntegrityError as exc:
            raise ValueError(f"Trade {trade.id} already exists") from exc

    def update_trade(self, trade: Trade) -> None:
        """Overwrite the mutable fields of an existing trade."""
        with self._conn() as c:
            cur = c.execute(
                """
                UPDATE trades SET status = ?, filled_quantity = ?, fill_kind = ?, fill_price = ?,
                    filled_at = ?, updated_at = ?, notes = ?
                WHERE id = ?
                """,
                (
                    trade.status.value,
                    trade.filled_quantity,
                    trade.fill.kind if trade.fill is not None else None,
                    trade.fill.value if trade.fill is not None else None,
                    _to_text(trade.filled_at),
                    _to_text(trade.updated_at),
                    trade.notes,
                    trade.id,
                ),
            )
            if cur.rowcount == 0:
                raise UnknownOrder(f"Order {trade.id} was not found.")

    def get_trade(self, trade_id: str) -> Trade | None:
        with self._conn() as c:
            row = c.execute(f"SELECT {_TRADE_COLUMNS} FROM trades WHERE id = ?", (trade_id,)).fetchone()
        return self._row_to_trade(row) if row else None

    def list_trades(
        self,
        *,
        symbol: str | None = None,
        status: TradeStatus | None = None,
        limit: int | None = None,
    ) -> list[Trade]:
        """Return trades newest first."""
        q = f"SELECT {_TRADE_COLUMNS} FROM trades WHERE 1 = 1"
        params: list = []
        if symbol is not None:
            q += " AND symbol = ?"
            params.append(symbol.upper())
        if status is not None:
            q += " AND status = ?"
            params.append(TradeStatus(status).value)
        q += " ORDER BY created_at DESC, rowid DESC"
        if limit is not None:
            q += " LIMIT ?"
            params.append(limit)
        with self._conn() as c:
            rows = c.execute(q, params).fetchall()
        return [self._row_to_trade(r) for r in rows]

    def count_trades(self) -> int:
        with self._conn() as c:
            row = c.execute("SELECT COUNT(*) FROM trades").fetchone()
        return row[0] if row else 0

    # ----- positions -----

    def save_position(self, position: Position, *, at: datetime | None = None) -> None:
        """Upsert by symbol."""
        with self._conn() as c:
            c.execute(
                """
                INSERT OR REPLACE INTO positions (symbol, quantity, average_cost, current_price, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    position.symbol,
                    position.quantity,
                    position.average_cost,
                    position.current_price,
                    _to_text(at or datetime.now(timezone.utc)),
                ),
            )

    def delete_position(self, symbol: str) -> None:
        with self._conn() as c:
            c.execute("DELETE FROM positions WHERE symbol = ?", (symbol,))

    def list_positions(self) -> list[Position]:
        with self._conn() as c:
            rows = c.execute(
                "SELECT symbol, quantity, average_cost, current_price FROM positions ORDER BY symbol ASC"
            ).fetchall()
        return [Position(symbol=s, quantity=q, average_cost=a, current_price=p) for s, q, a, p in rows]

    # ----- hypotheses -----

    @staticmethod
    def _hypothesis_row(h: Hypothesis) -> tuple:
        validations = json.dumps(
            [{"date": v.date.isoformat(), "result": v.result.value, "notes": v.notes} for v in h.validations]
        )
        return (
            h.id,
            h.text,
            h.symbol,
            h.status.value,
            validations,
            h.consecutive_valid,
            h.consecutive_invalid,
            h.total_valid,
            h.total_invalid,
            _to_text(h.created_at),
            _to_text(h.updated_at),
            _to_text(h.last_validated_at),
        )

    @staticmethod
    def _row_to_hypothesis(row: tuple) -> Hypothesis:
        (hid, text, symbol, status, validations, cv, ci, tv, ti, created_at, updated_at, last_validated_at) = row
        return Hypothesis(
            id=hid,
            text=text,
            created_at=_from_text(created_at),
            symbol=symbol,
            status=HypothesisStatus(status),
            validations=tuple(
                HypothesisValidation(
                    date=date.fromisoformat(v["date"]),
                    result=ValidationResult(v["result"]),
                    notes=v.get("notes", ""),
                )
                for v in json.loads(validations)
            ),
            consecutive_valid=cv,
            consecutive_invalid=ci,
            total_valid=tv,
            total_invalid=ti,
            updated_at=_from_text(updated_at),
            last_validated_at=_from_text(last_validated_at),
        )

    def save_hypothesis(self, hypothesis: Hypothesis) -> None:
        try:
            with self._conn() as c:
                c.execute(
                    f"INSERT INTO hypotheses ({_HYPOTHESIS_COLUMNS}) VALUES ({', '.join('?' * 12)})",
                    self._hypothesis_row(hypothesis),
                )
        except sqlite3.IntegrityError as exc:
            raise ValueError(f"Hypothesis {hypothesis.id} already exists") from exc

    def update_hypothesis(self, hypothesis: Hypothesis) -> None:
        row = self._hypothesis_row(hypothesis)
        with self._conn() as c:
            cur = c.execute(
                """
                UPDATE hypotheses SET text = ?, symbol = ?, status = ?, validations = ?,
                    consecutive_valid = ?, consecutive_invalid = ?, total_valid = ?, total_invalid = ?,
                    created_at = ?, updated_at = ?, last_validated_at = ?
                WHERE id = ?
                """,
                row[1:] + (row[0],),
            )
            if cur.rowcount == 0:
                raise KeyError(f"Hypothesis {hypothesis.id} not found")

    def get_hypothesis(self, hypothesis_id: str) -> Hypothesis | None:
        with self._conn() as c:
            row = c.execute(
                f"SELECT {_HYPOTHESIS_COLUMNS} FROM hypotheses WHERE id = ?", (hypothesis_id,)
            ).fetchone()
        return self._row_to_hypothesis(row) if row else None

    def list_hypotheses(self, *, status: HypothesisStatus | None = None) -> list[Hypothesis]:
        """Return hypotheses oldest first."""
        q = f"SELECT {_HYPOTHESIS_COLUMNS} FROM hypotheses"
        params: list = []
        if status is not None:
            q += " WHERE status = ?"
            params.append(HypothesisStatus(status).value)
        q += " ORDER BY created_at ASC, rowid ASC"
        with self._conn() as c:
            rows = c.execute(q, params).fetchall()
        return [self._row_to_hypothesis(r) for r in rows]

    def delete_hypothesis(self, hypothesis_id: str) -> bool:
        with self._conn() as c:
            cur = c.execute("DELETE FROM hypotheses WHERE id = ?", (hypothesis_id,))
        return cur.rowcount > 0
