"""Tests for the weighted-average position ledger."""

import random
import threading

import pytest

from trade_core.contracts import Position, Side, TradeStatus
from trade_core.errors import LedgerInvariantError
from trade_core.ledger import CostBasis, PositionLedger
from trade_core.risk_policy import OversellPolicy


class TestCostBasis:
    def test_first_buy_sets_cost(self) -> None:
        book = CostBasis()
        book.apply_buy(10, 100.0)
        assert book.quantity == 10
        assert book.average_cost == 100.0

    def test_buys_blend_cost(self) -> None:
        book = CostBasis()
        book.apply_buy(10, 100.0)
        book.apply_buy(10, 120.0)
        assert book.quantity == 20
        assert book.average_cost == pytest.approx(110.0)

    def test_partial_sell_keeps_basis(self) -> None:
        book = CostBasis(20, 110.0)
        sold, realized = book.apply_sell(15, 130.0)
        assert sold == 15
        assert realized == pytest.approx(300.0)
        assert book.quantity == 5
        assert book.average_cost == pytest.approx(110.0)

    def test_full_sell_resets_cost(self) -> None:
        book = CostBasis(5, 110.0)
        sold, realized = book.apply_sell(5, 100.0)
        assert (sold, realized) == (5, pytest.approx(-50.0))
        assert book.quantity == 0
        assert book.average_cost == 0.0

    def test_oversell_clamped(self) -> None:
        book = CostBasis(5, 10.0)
        sold, realized = book.apply_sell(8, 12.0)
        assert sold == 5
        assert realized == pytest.approx(10.0)
        assert book.quantity == 0

    def test_oversell_rejected_under_reject_policy(self) -> None:
        book = CostBasis(5, 10.0)
        with pytest.raises(LedgerInvariantError):
            book.apply_sell(8, 12.0, OversellPolicy.REJECT)
        assert book.quantity == 5

    def test_sell_with_nothing_held(self) -> None:
        book = CostBasis()
        assert book.apply_sell(3, 50.0) is None
        assert book.quantity == 0

    @pytest.mark.parametrize("qty,price", [(0, 10.0), (-1, 10.0), (1, 0.0), (1, -5.0)])
    def test_buy_rejects_non_positive(self, qty: int, price: float) -> None:
        with pytest.raises(LedgerInvariantError):
            CostBasis().apply_buy(qty, price)

    def test_check_detects_inconsistent_state(self) -> None:
        with pytest.raises(LedgerInvariantError):
            CostBasis(0, 5.0).check()
        with pytest.raises(LedgerInvariantError):
            CostBasis(-1, 5.0).check()

    def test_invariant_holds_over_random_sequences(self) -> None:
        rng = random.Random(7)
        for _ in range(50):
            book = CostBasis()
            for _ in range(30):
                if rng.random() < 0.6:
                    book.apply_buy(rng.randint(1, 50), round(rng.uniform(1, 500), 2))
                else:
                    held = book.quantity
                    cost = book.average_cost
                    outcome = book.apply_sell(rng.randint(1, 60), round(rng.uniform(1, 500), 2))
                    if held == 0:
                        assert outcome is None
                    elif book.quantity > 0:
                        assert book.average_cost == cost
                assert book.quantity >= 0
                assert (book.quantity == 0) == (book.average_cost == 0)


class TestPositionLedger:
    def test_round_trip(self) -> None:
        ledger = PositionLedger()
        ledger.apply_buy("AAPL", 10, 100.0)
        ledger.apply_buy("AAPL", 10, 120.0)
        update = ledger.apply_sell("AAPL", 15, 130.0)
        assert update.realized_pnl == pytest.approx(300.0)
        assert update.sold_quantity == 15
        pos = ledger.position("AAPL")
        assert pos.quantity == 5
        assert pos.average_cost == pytest.approx(110.0)

    def test_closed_symbol_removed(self) -> None:
        ledger = PositionLedger()
        ledger.apply_buy("AAPL", 10, 100.0)
        update = ledger.apply_sell("AAPL", 10, 90.0)
        assert update.closed
        assert update.realized_pnl == pytest.approx(-100.0)
        assert ledger.position("AAPL") is None
        assert ledger.symbols() == []

    def test_sell_without_position_is_noop(self) -> None:
        ledger = PositionLedger()
        update = ledger.apply_sell("AAPL", 5, 100.0)
        assert update.realized_pnl is None
        assert update.sold_quantity == 0
        assert ledger.positions() == []

    def test_apply_fill_dispatches_on_side(self) -> None:
        ledger = PositionLedger()
        ledger.apply_fill("MSFT", Side.BUY, 4, 50.0)
        ledger.apply_fill("MSFT", Side.SELL, 1, 60.0)
        assert ledger.held_quantity("MSFT") == 3

    def test_mark_changes_price_only(self) -> None:
        ledger = PositionLedger()
        ledger.apply_buy("AAPL", 10, 100.0)
        ledger.mark("AAPL", 125.0)
        pos = ledger.position("AAPL")
        assert pos.current_price == 125.0
        assert pos.quantity == 10
        assert pos.average_cost == 100.0
        assert pos.total_cost == pytest.approx(1000.0)
        assert pos.market_value == pytest.approx(1250.0)
        assert pos.unrealized_pnl == pytest.approx(250.0)
        assert pos.unrealized_pnl_percent == pytest.approx(25.0)

    def test_mark_unknown_symbol_ignored(self) -> None:
        ledger = PositionLedger()
        ledger.mark("AAPL", 125.0)
        assert ledger.position("AAPL") is None

    def test_positions_sorted_by_symbol(self) -> None:
        ledger = PositionLedger()
        ledger.apply_buy("MSFT", 1, 10.0)
        ledger.apply_buy("AAPL", 1, 10.0)
        assert [p.symbol for p in ledger.positions()] == ["AAPL", "MSFT"]

    def test_load(self) -> None:
        ledger = PositionLedger()
        ledger.load([Position("AAPL", 5, 110.0, 130.0), Position("GONE", 0, 0.0, 1.0)])
        assert ledger.symbols() == ["AAPL"]
        assert ledger.position("AAPL").current_price == 130.0

    def test_load_rejects_corrupt_rows(self) -> None:
        with pytest.raises(LedgerInvariantError):
            PositionLedger().load([Position("AAPL", 0, 110.0, 130.0), Position("BAD", -2, 1.0, 1.0)])

    def test_from_trades(self, round_trip, make_trade, ts) -> None:
        trades = round_trip + [make_trade("AAPL", "BUY", 99, 1.0, ts(2024, 1, 5), status=TradeStatus.CANCELLED)]
        ledger = PositionLedger.from_trades(list(reversed(trades)), OversellPolicy.REJECT)
        pos = ledger.position("AAPL")
        assert pos.quantity == 5
        assert pos.average_cost == pytest.approx(110.0)
        assert ledger.oversell_policy == OversellPolicy.REJECT

    def test_concurrent_buys_on_one_symbol(self) -> None:
        ledger = PositionLedger()
        barrier = threading.Barrier(8)

        def worker(price: float) -> None:
            barrier.wait()
            for _ in range(200):
                ledger.apply_buy("AAPL", 1, price)

        threads = [threading.Thread(target=worker, args=(100.0 + i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        pos = ledger.position("AAPL")
        assert pos.quantity == 1600
        assert pos.average_cost == pytest.approx(103.5)

    def test_locked_is_reentrant(self) -> None:
        ledger = PositionLedger()
        with ledger.locked("AAPL"):
            ledger.apply_buy("AAPL", 1, 10.0)
            with ledger.locked("AAPL"):
                ledger.apply_sell("AAPL", 1, 11.0)
        assert ledger.held_quantity("AAPL") == 0

    def test_reads_while_symbols_open_and_close(self) -> None:
        ledger = PositionLedger()
        symbols = [f"S{i}" for i in range(20)]
        done = threading.Event()
        errors: list[BaseException] = []

        def trader() -> None:
            try:
                for _ in range(100):
                    for symbol in symbols:
                        ledger.apply_buy(symbol, 2, 10.0)
                    for symbol in symbols:
                        ledger.apply_sell(symbol, 2, 11.0)
            finally:
                done.set()

        def reader() -> None:
            try:
                while not done.is_set():
                    held = ledger.symbols()
                    assert held == sorted(held)
                    for symbol in symbols:
                        assert ledger.held_quantity(symbol) in (0, 2)
                    for pos in ledger.positions():
                        assert pos.quantity == 2
            except BaseException as exc:
                errors.append(exc)

        threads = [threading.Thread(target=trader), threading.Thread(target=reader)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert ledger.symbols() == []
