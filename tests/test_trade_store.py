"""Tests for SQLite persistence of trades, positions and hypotheses."""

from datetime import date, datetime, timezone

import pytest

from data.trade_store import TradeStore
from trade_core.contracts import (
    Hypothesis,
    HypothesisStatus,
    HypothesisValidation,
    LimitPrice,
    OrderType,
    Position,
    Side,
    SyntheticPrice,
    TimeInForce,
    Trade,
    TradeStatus,
    ValidationResult,
)
from trade_core.errors import UnknownOrder


def _pending(trade_id: str = "P1", at: datetime | None = None) -> Trade:
    at = at or datetime(2024, 1, 2, 15, tzinfo=timezone.utc)
    return Trade(
        id=trade_id,
        symbol="AAPL",
        side=Side.BUY,
        order_type=OrderType.LIMIT,
        status=TradeStatus.NEW,
        quantity=10,
        created_at=at,
        time_in_force=TimeInForce.GTC,
        limit_price=100.0,
        updated_at=at,
    )


class TestTrades:
    def test_save_and_get_round_trip(self, store: TradeStore) -> None:
        trade = _pending()
        store.save_trade(trade)
        assert store.get_trade("P1") == trade

    def test_fill_variant_restored(self, store: TradeStore) -> None:
        trade = _pending()
        store.save_trade(trade)
        filled = trade.with_fill(LimitPrice(100.0), datetime(2024, 1, 3, tzinfo=timezone.utc))
        store.update_trade(filled)
        loaded = store.get_trade("P1")
        assert loaded.status == TradeStatus.FILLED
        assert loaded.fill == LimitPrice(100.0)
        assert loaded.filled_quantity == 10
        assert loaded.filled_at == datetime(2024, 1, 3, tzinfo=timezone.utc)

    def test_synthetic_tag_survives(self, store: TradeStore, make_trade, ts) -> None:
        trade = make_trade("AAPL", "BUY", 1, 1.0, ts(2024, 1, 1))
        from dataclasses import replace

        store.save_trade(replace(trade, fill=SyntheticPrice(170.0)))
        assert store.get_trade(trade.id).fill.kind == "SYNTHETIC"

    def test_duplicate_id(self, store: TradeStore) -> None:
        store.save_trade(_pending())
        with pytest.raises(ValueError):
            store.save_trade(_pending())

    def test_update_unknown(self, store: TradeStore) -> None:
        with pytest.raises(UnknownOrder):
            store.update_trade(_pending("NOPE"))

    def test_get_missing(self, store: TradeStore) -> None:
        assert store.get_trade("missing") is None

    def test_list_newest_first_with_filters(self, store: TradeStore, make_trade, ts) -> None:
        store.save_trade(make_trade("AAPL", "BUY", 1, 1.0, ts(2024, 1, 1)))
        store.save_trade(make_trade("MSFT", "BUY", 1, 1.0, ts(2024, 1, 2)))
        store.save_trade(_pending("P9", ts(2024, 1, 3)))

        assert [t.id for t in store.list_trades()] == ["P9", "T2", "T1"]
        assert [t.id for t in store.list_trades(symbol="aapl")] == ["P9", "T1"]
        assert [t.id for t in store.list_trades(status=TradeStatus.NEW)] == ["P9"]
        assert [t.id for t in store.list_trades(limit=1)] == ["P9"]
        assert store.count_trades() == 3

    def test_persists_across_instances(self, tmp_path, make_trade, ts) -> None:
        path = tmp_path / "nested" / "state.db"
        TradeStore(path).save_trade(make_trade("AAPL", "BUY", 1, 1.0, ts(2024, 1, 1)))
        assert TradeStore(path).count_trades() == 1


class TestPositions:
    def test_upsert_list_delete(self, store: TradeStore) -> None:
        store.save_position(Position("MSFT", 2, 300.0, 310.0))
        store.save_position(Position("AAPL", 5, 110.0, 130.0))
        store.save_position(Position("AAPL", 3, 110.0, 131.0))
        assert store.list_positions() == [Position("AAPL", 3, 110.0, 131.0), Position("MSFT", 2, 300.0, 310.0)]
        store.delete_position("AAPL")
        assert [p.symbol for p in store.list_positions()] == ["MSFT"]


class TestHypotheses:
    def _hyp(self, hid: str = "H1") -> Hypothesis:
        return Hypothesis(
            id=hid,
            text="AAPL in the morning",
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            symbol="AAPL",
        )

    def test_round_trip_with_validations(self, store: TradeStore) -> None:
        store.save_hypothesis(self._hyp())
        updated = Hypothesis(
            id="H1",
            text="AAPL in the morning",
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            symbol="AAPL",
            status=HypothesisStatus.INVALIDATED,
            validations=(HypothesisValidation(date(2024, 1, 5), ValidationResult.INVALID, "朝は負け"),),
            consecutive_invalid=1,
            total_invalid=1,
            updated_at=datetime(2024, 1, 5, tzinfo=timezone.utc),
            last_validated_at=datetime(2024, 1, 5, tzinfo=timezone.utc),
        )
        store.update_hypothesis(updated)
        assert store.get_hypothesis("H1") == updated

    def test_list_filter_and_delete(self, store: TradeStore) -> None:
        store.save_hypothesis(self._hyp("H1"))
        store.save_hypothesis(self._hyp("H2"))
        assert [h.id for h in store.list_hypotheses()] == ["H1", "H2"]
        assert store.list_hypotheses(status=HypothesisStatus.ARCHIVED) == []
        assert store.delete_hypothesis("H1") is True
        assert store.delete_hypothesis("H1") is False
        assert store.get_hypothesis("H1") is None

    def test_update_unknown(self, store: TradeStore) -> None:
        with pytest.raises(KeyError):
            store.update_hypothesis(self._hyp("ghost"))
