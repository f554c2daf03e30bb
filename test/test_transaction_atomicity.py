from decimal import Decimal
from pathlib import Path

import pytest
from conftest import SteppingClock

from bevdist.repositories.sqlite_repo import SqliteRepository
from bevdist.repositories.unit_of_work import RepositoryUnitOfWork
from bevdist.services.inventory_service import InventoryService
from bevdist.services.order_service import OrderService
from bevdist.services.payment_service import PaymentService
from bevdist.services.store_service import StoreService


class FailingRepo(SqliteRepository):
    """Blows up on the companion ledger write, after the aggregate was already updated."""

    fail_payments = False
    fail_ledger = False

    def _insert_payment(self, cur, *args, **kwargs):
        if self.fail_payments:
            raise RuntimeError("boom")
        return super()._insert_payment(cur, *args, **kwargs)

    def _insert_transaction(self, cur, **kwargs):
        if self.fail_ledger:
            raise RuntimeError("boom")
        return super()._insert_transaction(cur, **kwargs)


def _services(tmp_path: Path):
    repo = FailingRepo(tmp_path / "atomic.db")
    repo.init_db()
    clock = SteppingClock()

    def uow():
        return RepositoryUnitOfWork(repo, clock=clock)

    return (
        repo,
        InventoryService(repo, uow),
        StoreService(repo, uow),
        OrderService(repo, uow),
        PaymentService(repo, uow),
    )


def test_delivery_rolls_back_when_payment_write_fails(tmp_path: Path):
    repo, inventory, stores, orders, _payments = _services(tmp_path)
    store_id = stores.add_store("Store S", "Main Road")
    pid = inventory.add_product("productA", "10.00")
    order = orders.create_order(store_id, [{"product_id": pid, "quantity": 3}])

    repo.fail_payments = True
    with pytest.raises(RuntimeError):
        orders.deliver_order(order.id, amount_paid=10)

    after = orders.get_order(order.id)
    assert after.status == "pending"
    assert after.amount_paid == Decimal("0.00")
    assert after.delivery_date is None
    assert stores.get_store(store_id).balance == Decimal("0.00")
    assert repo.list_payments() == []


def test_direct_payment_rolls_back_balance_when_payment_write_fails(tmp_path: Path):
    repo, _inventory, stores, _orders, payments = _services(tmp_path)
    store_id = stores.add_store("Store S", "Main Road")

    repo.fail_payments = True
    with pytest.raises(RuntimeError):
        payments.record_payment(store_id, 75)

    assert stores.get_store(store_id).balance == Decimal("0.00")


def test_stock_change_rolls_back_when_ledger_write_fails(tmp_path: Path):
    repo, inventory, _stores, _orders, _payments = _services(tmp_path)
    pid = inventory.add_product("productA", "10.00", 10)

    repo.fail_ledger = True
    with pytest.raises(RuntimeError):
        inventory.add_stock(pid, 5)
    with pytest.raises(RuntimeError):
        inventory.remove_stock(pid, 5)

    assert inventory.get_product(pid).quantity == 10
    assert len(inventory.transactions_for_product(pid)) == 1


def test_product_with_opening_stock_is_not_created_without_its_ledger_entry(tmp_path: Path):
    repo, inventory, _stores, _orders, _payments = _services(tmp_path)

    repo.fail_ledger = True
    with pytest.raises(RuntimeError):
        inventory.add_product("productA", "10.00", 10)

    assert inventory.list_inventory() == []
