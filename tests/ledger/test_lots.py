import pytest

from src.exceptions import InsufficientInventory, ValidationError
from src.ledger.lots import LotBook, fee_share, match_sell, open_lot
from src.ledger.models import Side, TradeExecution


def make_exec(side, quantity, price, fee=0.0, ts=0.0, id=None) -> TradeExecution:
    return TradeExecution.create(
        side=side, quantity=quantity, price=price, fee=fee, timestamp=ts, id=id,
    )


def scenario_a_book() -> LotBook:
    return LotBook.replay([
        make_exec(Side.BUY, 1.0, 100.0, fee=1.0, ts=1.0, id="b1"),
        make_exec(Side.BUY, 1.0, 120.0, fee=1.0, ts=2.0, id="b2"),
    ])


# --- fee_share ---

def test_fee_share_proportional():
    assert fee_share(2.0, 1.5, 0.5) == pytest.approx(2.0 / 3.0)


def test_fee_share_zero_total_quantity():
    assert fee_share(5.0, 0.0, 1.0) == 0.0


# --- match_sell ---

def test_scenario_a_two_pairs_and_remaining_lot():
    book = scenario_a_book()
    sell = make_exec(Side.SELL, 1.5, 150.0, fee=2.0, ts=3.0, id="s1")

    pairs, lots = match_sell(sell, book.open_lots)

    assert len(pairs) == 2
    first, second = pairs
    assert first.buy_execution_id == "b1"
    assert first.matched_quantity == pytest.approx(1.0)
    assert first.buy_price == 100.0
    assert first.net_profit == pytest.approx(1.0 * 50 - 2 * (1.0 / 1.5) - 1)

    assert second.buy_execution_id == "b2"
    assert second.matched_quantity == pytest.approx(0.5)
    assert second.buy_price == 120.0
    assert second.apportioned_buy_fee == pytest.approx(0.5)
    assert second.net_profit == pytest.approx(0.5 * 30 - 2 * (0.5 / 1.5) - 0.5)

    assert len(lots) == 1
    assert lots[0].execution_id == "b2"
    assert lots[0].origin_price == 120.0
    assert lots[0].remaining_quantity == pytest.approx(0.5)
    assert lots[0].unspent_fee == pytest.approx(0.5)


def test_matched_quantity_sums_to_sell_quantity():
    book = LotBook.replay([
        make_exec(Side.BUY, 0.3, 100.0, ts=1.0),
        make_exec(Side.BUY, 0.7, 101.0, ts=2.0),
        make_exec(Side.BUY, 0.25, 99.0, ts=3.0),
        make_exec(Side.BUY, 2.0, 98.0, ts=4.0),
    ])
    sell = make_exec(Side.SELL, 1.1, 105.0, fee=0.4, ts=5.0)

    pairs, _ = match_sell(sell, book.open_lots)

    assert sum(p.matched_quantity for p in pairs) == pytest.approx(1.1)
    assert sum(p.apportioned_sell_fee for p in pairs) == pytest.approx(0.4)


def test_oldest_lot_consumed_first():
    book = LotBook.replay([
        make_exec(Side.BUY, 1.0, 100.0, ts=1.0, id="old"),
        make_exec(Side.BUY, 1.0, 200.0, ts=2.0, id="new"),
    ])
    pairs, lots = match_sell(make_exec(Side.SELL, 0.4, 150.0, ts=3.0), book.open_lots)

    assert [p.buy_execution_id for p in pairs] == ["old"]
    assert [lot.execution_id for lot in lots] == ["old", "new"]
    assert lots[0].remaining_quantity == pytest.approx(0.6)


def test_insufficient_inventory_leaves_queue_untouched():
    book = scenario_a_book()
    before = book.open_lots
    sell = make_exec(Side.SELL, 2.5, 150.0, ts=3.0)

    with pytest.raises(InsufficientInventory):
        match_sell(sell, before)

    assert book.open_lots == before
    assert [lot.remaining_quantity for lot in before] == [1.0, 1.0]


def test_sell_against_empty_queue_raises():
    with pytest.raises(InsufficientInventory):
        match_sell(make_exec(Side.SELL, 0.1, 100.0), ())


def test_zero_fee_pairs_have_no_fee_share():
    book = LotBook.replay([make_exec(Side.BUY, 1.0, 100.0, ts=1.0)])
    pairs, lots = match_sell(make_exec(Side.SELL, 1.0, 90.0, ts=2.0), book.open_lots)

    assert pairs[0].apportioned_buy_fee == 0.0
    assert pairs[0].apportioned_sell_fee == 0.0
    assert pairs[0].net_profit == pytest.approx(-10.0)
    assert lots == ()


def test_match_rejects_buy_execution():
    with pytest.raises(ValidationError):
        match_sell(make_exec(Side.BUY, 1.0, 100.0), ())


def test_open_lot_rejects_sell_execution():
    with pytest.raises(ValidationError):
        open_lot(make_exec(Side.SELL, 1.0, 100.0))


# --- TradeExecution validation ---

@pytest.mark.parametrize("kwargs", [
    {"quantity": 0.0},
    {"quantity": -1.0},
    {"quantity": 1e-13},
    {"price": 0.0},
    {"fee": -0.01},
    {"price": float("nan")},
    {"side": "HODL"},
])
def test_create_rejects_malformed_input(kwargs):
    fields = {"side": "BUY", "quantity": 1.0, "price": 100.0, "fee": 0.0, "timestamp": 0.0}
    fields.update(kwargs)
    with pytest.raises(ValidationError):
        TradeExecution.create(**fields)


def test_dust_sell_cannot_drift_base_from_open_lots():
    book = LotBook.replay([make_exec(Side.BUY, 1.0, 100.0, ts=1.0)])

    with pytest.raises(ValidationError):
        book.apply(make_exec(Side.SELL, 1e-13, 100.0, ts=2.0))

    assert sum(lot.remaining_quantity for lot in book.open_lots) == 1.0
    assert book.pairs == ()


def test_create_assigns_id():
    a = make_exec(Side.BUY, 1.0, 100.0)
    b = make_exec(Side.BUY, 1.0, 100.0)
    assert a.id and b.id and a.id != b.id
    assert a.notional == 100.0


# --- LotBook ---

def test_apply_returns_new_book():
    book = scenario_a_book()
    updated = book.apply(make_exec(Side.SELL, 1.5, 150.0, fee=2.0, ts=3.0, id="s1"))

    assert len(book) == 2
    assert book.pairs == ()
    assert len(updated) == 1
    assert updated.open_quantity == pytest.approx(0.5)
    assert len(updated.pairs_for("s1")) == 2
    assert updated.pairs_for("missing") == []


def test_replay_spans_several_sells():
    book = LotBook.replay([
        make_exec(Side.BUY, 1.0, 100.0, ts=1.0, id="b1"),
        make_exec(Side.SELL, 0.5, 110.0, ts=2.0, id="s1"),
        make_exec(Side.BUY, 1.0, 90.0, ts=3.0, id="b2"),
        make_exec(Side.SELL, 1.0, 95.0, ts=4.0, id="s2"),
    ])

    s2 = book.pairs_for("s2")
    assert [p.buy_execution_id for p in s2] == ["b1", "b2"]
    assert [p.matched_quantity for p in s2] == pytest.approx([0.5, 0.5])
    assert book.open_quantity == pytest.approx(0.5)
    assert book.open_lots[0].execution_id == "b2"
