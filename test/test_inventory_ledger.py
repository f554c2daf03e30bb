from decimal import Decimal
from pathlib import Path
import threading

import pytest
from conftest import make_container

from bevdist.domain.errors import InsufficientStockError, NotFoundError, ValidationError
from bevdist.domain.values import MAX_QUANTITY


def test_add_stock_records_before_and_after(tmp_path: Path):
    c = make_container(tmp_path)
    pid = c.inventory.add_product("productX", "30.00", 10)

    movement = c.inventory.add_stock(pid, 50, notes="truck from bottler", actor_user_id=7)

    assert movement.product.quantity == 60
    txn = movement.transaction
    assert txn.transaction_type == "add"
    assert txn.quantity == 50
    assert (txn.previous_quantity, txn.new_quantity) == (10, 60)
    assert txn.reference == "manual"
    assert txn.actor_user_id == 7
    assert txn.notes == "truck from bottler"
    assert c.inventory.get_product(pid).quantity == 60


def test_remove_stock_records_before_and_after(tmp_path: Path):
    c = make_container(tmp_path)
    pid = c.inventory.add_product("Soda 300ml", "12.50", 24)

    movement = c.inventory.remove_stock(pid, 4)

    assert movement.product.quantity == 20
    assert movement.transaction.transaction_type == "remove"
    assert movement.transaction.previous_quantity == 24
    assert movement.transaction.new_quantity == 20
    assert movement.transaction.notes == "Manual removal"


def test_remove_more_than_on_hand_changes_nothing(tmp_path: Path):
    c = make_container(tmp_path)
    pid = c.inventory.add_product("Tonic", "8.00", 5)
    ledger_before = c.inventory.transactions_for_product(pid)

    with pytest.raises(InsufficientStockError):
        c.inventory.remove_stock(pid, 6)

    assert c.inventory.get_product(pid).quantity == 5
    assert c.inventory.transactions_for_product(pid) == ledger_before


def test_remove_everything_reaches_zero(tmp_path: Path):
    c = make_container(tmp_path)
    pid = c.inventory.add_product("Tonic", "8.00", 5)

    assert c.inventory.remove_stock(pid, 5).product.quantity == 0


@pytest.mark.parametrize("qty", [0, -3, "abc", 2.5, None, True])
def test_stock_operations_reject_bad_quantities(tmp_path: Path, qty):
    c = make_container(tmp_path)
    pid = c.inventory.add_product("Water 1L", "20.00", 10)

    with pytest.raises(ValidationError):
        c.inventory.add_stock(pid, qty)
    with pytest.raises(ValidationError):
        c.inventory.remove_stock(pid, qty)

    assert c.inventory.get_product(pid).quantity == 10


def test_stock_operations_on_unknown_product(tmp_path: Path):
    c = make_container(tmp_path)

    with pytest.raises(NotFoundError):
        c.inventory.add_stock(404, 1)
    with pytest.raises(NotFoundError):
        c.inventory.remove_stock(404, 1)
    assert c.inventory.recent_transactions() == []


def test_opening_stock_is_explained_by_ledger(tmp_path: Path):
    c = make_container(tmp_path)
    with_stock = c.inventory.add_product("Cola 2L", "90.00", 12)
    empty = c.inventory.add_product("Cola 600ml", "40.00")

    opening = c.inventory.transactions_for_product(with_stock)
    assert len(opening) == 1
    assert opening[0].reference == "adjustment"
    assert (opening[0].previous_quantity, opening[0].new_quantity) == (0, 12)
    assert c.inventory.transactions_for_product(empty) == []


def test_deactivated_product_stays_resolvable(tmp_path: Path):
    c = make_container(tmp_path)
    pid = c.inventory.add_product("Discontinued Lemonade", "15.00", 3)

    c.inventory.deactivate_product(pid)

    assert pid not in [p.id for p in c.inventory.list_products()]
    assert pid in [p.id for p in c.inventory.list_inventory()]
    assert c.inventory.get_product(pid).active == 0
    # clearing old stock still goes through the ledger
    assert c.inventory.remove_stock(pid, 3).product.quantity == 0

    with pytest.raises(NotFoundError):
        c.inventory.deactivate_product(9999)


def test_product_validation(tmp_path: Path):
    c = make_container(tmp_path)

    with pytest.raises(ValidationError):
        c.inventory.add_product("  ", "10.00")
    with pytest.raises(ValidationError):
        c.inventory.add_product("Juice", "0")
    with pytest.raises(ValidationError):
        c.inventory.add_product("Juice", "10.00", -1)

    pid = c.inventory.add_product("Juice", "10.005")
    assert c.inventory.get_product(pid).price == Decimal("10.01")

    with pytest.raises(NotFoundError):
        c.inventory.update_product(9999, price="1.00")


def test_ledger_is_newest_first(tmp_path: Path):
    c = make_container(tmp_path)
    pid = c.inventory.add_product("Energy Drink", "60.00")
    c.inventory.add_stock(pid, 10)
    c.inventory.remove_stock(pid, 2)
    c.inventory.add_stock(pid, 5)

    ledger = c.inventory.transactions_for_product(pid)

    assert [t.transaction_type for t in ledger] == ["add", "remove", "add"]
    assert [t.new_quantity for t in ledger] == [13, 8, 10]
    assert len(c.inventory.recent_transactions(limit=2)) == 2


def test_concurrent_removals_never_oversell(tmp_path: Path):
    c = make_container(tmp_path)
    pid = c.inventory.add_product("Beer crate", "450.00", 20)

    outcomes: list[str] = []
    lock = threading.Lock()

    def worker():
        try:
            c.inventory.remove_stock(pid, 3)
            result = "ok"
        except InsufficientStockError:
            result = "short"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("ok") == 6
    assert outcomes.count("short") == 4
    assert c.inventory.get_product(pid).quantity == 2

    # every removal started from the quantity the previous one left behind
    removals = sorted(
        (t for t in c.inventory.transactions_for_product(pid) if t.transaction_type == "remove"),
        key=lambda t: t.id,
    )
    chain = [20] + [t.new_quantity for t in removals]
    assert [t.previous_quantity for t in removals] == chain[:-1]
    assert chain[-1] == 2


@pytest.mark.parametrize("qty", [2**63 - 1, 2**64, "1e30", MAX_QUANTITY + 1])
def test_oversized_quantities_are_rejected(tmp_path: Path, qty):
    c = make_container(tmp_path)
    pid = c.inventory.add_product("Water 1L", "20.00", 1)

    with pytest.raises(ValidationError):
        c.inventory.add_stock(pid, qty)
    with pytest.raises(ValidationError):
        c.orders.create_order(c.stores.add_store("Store S", "Main Road"), [{"product_id": pid, "quantity": qty}])

    assert c.inventory.get_product(pid).quantity == 1


def test_stock_level_cannot_grow_past_the_cap(tmp_path: Path):
    c = make_container(tmp_path)
    pid = c.inventory.add_product("Water 1L", "20.00", 5)
    ledger_before = c.inventory.transactions_for_product(pid)

    with pytest.raises(ValidationError, match="would exceed"):
        c.inventory.add_stock(pid, MAX_QUANTITY)

    assert c.inventory.get_product(pid).quantity == 5
    assert c.inventory.transactions_for_product(pid) == ledger_before
    assert c.inventory.add_stock(pid, MAX_QUANTITY - 5).product.quantity == MAX_QUANTITY


def test_reactivated_product_is_listed_again(tmp_path: Path):
    c = make_container(tmp_path)
    pid = c.inventory.add_product("Seasonal Lassi", "25.00", 4)
    c.inventory.deactivate_product(pid)

    product = c.inventory.reactivate_product(pid)

    assert product.active == 1
    assert pid in [p.id for p in c.inventory.list_products()]
    with pytest.raises(NotFoundError):
        c.inventory.reactivate_product(9999)
