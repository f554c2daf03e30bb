from __future__ import annotations

import logging
from typing import Callable, Optional

from bevdist.domain.errors import ValidationError, NotFoundError
from bevdist.domain.models import STOCK_ADD, STOCK_REMOVE, InventoryTransaction, Product, StockMovement
from bevdist.domain.values import to_positive_money, to_quantity
from bevdist.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork

log = logging.getLogger("bevdist.inventory")


class InventoryService:
    def __init__(self, repo, uow_factory: Callable[[], UnitOfWork] | None = None):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))

    def list_products(self) -> list[Product]:
        return self.repo.list_products(active_only=True)

    def list_inventory(self) -> list[Product]:
        return self.repo.list_products(active_only=False)

    def get_product(self, product_id: int) -> Product:
        p = self.repo.get_product_by_id(int(product_id))
        if not p:
            raise NotFoundError("Product not found.")
        return p

    def add_product(self, name: str, price, quantity: int = 0, actor_user_id: int | None = None) -> int:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required.")
        price = to_positive_money(price, field_name="Price")
        opening = 0 if quantity in (0, None, "") else to_quantity(quantity, field_name="Opening quantity")
        with self.uow_factory() as uow:
            product_id = uow.create_product(name, price, opening, actor_user_id=actor_user_id)
        log.info("product_created product_id=%s price=%s opening_qty=%s", product_id, price, opening)
        return product_id

    def update_product(self, product_id: int, name: Optional[str] = None, price=None) -> Product:
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Name cannot be empty.")
        if price is not None:
            price = to_positive_money(price, field_name="Price")

        updated = self.repo.update_product(int(product_id), name, price)
        if not updated:
            raise NotFoundError("Product not found.")
        log.info("product_updated product_id=%s price=%s", product_id, price)
        return self.get_product(product_id)

    def deactivate_product(self, product_id: int) -> None:
        if not self.repo.set_product_active(int(product_id), False):
            raise NotFoundError("Product not found.")
        log.info("product_deactivated product_id=%s", product_id)

    def reactivate_product(self, product_id: int) -> Product:
        if not self.repo.set_product_active(int(product_id), True):
            raise NotFoundError("Product not found.")
        log.info("product_reactivated product_id=%s", product_id)
        return self.get_product(product_id)

    def add_stock(
        self,
        product_id: int,
        quantity,
        notes: Optional[str] = None,
        actor_user_id: int | None = None,
    ) -> StockMovement:
        qty = to_quantity(quantity)
        with self.uow_factory() as uow:
            product, txn = uow.move_stock(
                int(product_id), STOCK_ADD, qty, notes or "Manual addition", actor_user_id=actor_user_id
            )
        log.info(
            "stock_added product_id=%s qty=%s previous=%s new=%s actor=%s",
            product.id, qty, txn.previous_quantity, txn.new_quantity, actor_user_id,
        )
        return StockMovement(product=product, transaction=txn)

    def remove_stock(
        self,
        product_id: int,
        quantity,
        notes: Optional[str] = None,
        actor_user_id: int | None = None,
    ) -> StockMovement:
        qty = to_quantity(quantity)
        with self.uow_factory() as uow:
            product, txn = uow.move_stock(
                int(product_id), STOCK_REMOVE, qty, notes or "Manual removal", actor_user_id=actor_user_id
            )
        log.info(
            "stock_removed product_id=%s qty=%s previous=%s new=%s actor=%s",
            product.id, qty, txn.previous_quantity, txn.new_quantity, actor_user_id,
        )
        return StockMovement(product=product, transaction=txn)

    def recent_transactions(self, limit: int = 100) -> list[InventoryTransaction]:
        return self.repo.recent_transactions(limit)

    def transactions_for_product(self, product_id: int) -> list[InventoryTransaction]:
        self.get_product(product_id)
        return self.repo.transactions_for_product(int(product_id))
