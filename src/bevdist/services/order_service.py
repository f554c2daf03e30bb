from __future__ import annotations

import logging
from decimal import Decimal
from typing import Callable, Iterable, Optional

from bevdist.domain.errors import NotFoundError, ValidationError
from bevdist.domain.models import DEFAULT_PAYMENT_TYPE, ORDER_PENDING, ORDER_STATUSES, PAYMENT_TYPES, Order
from bevdist.domain.values import to_money, to_quantity
from bevdist.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork

log = logging.getLogger("bevdist.orders")


def normalize_payment_type(payment_type: Optional[str]) -> str:
    if payment_type is None or not str(payment_type).strip():
        return DEFAULT_PAYMENT_TYPE
    value = str(payment_type).strip().lower()
    if value not in PAYMENT_TYPES:
        raise ValidationError(f"Unknown payment type '{payment_type}'. Expected one of: {', '.join(PAYMENT_TYPES)}")
    return value


class OrderService:
    """Order lifecycle: pending -> delivered | cancelled.

    Prices are snapshotted into the order lines when the order is created, so a
    later price change never touches an existing order. Delivery is the only
    transition with side effects (store balance and payment log); stock is not
    touched by orders at all.
    """

    def __init__(self, repo, uow_factory: Callable[[], UnitOfWork] | None = None):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))

    def create_order(self, store_id: int, items: Iterable[dict], notes: Optional[str] = None) -> Order:
        """
        items: [{product_id, quantity}]
        """
        items = list(items)
        if not items:
            raise ValidationError("Order has no items.")

        clean_items = []
        for it in items:
            try:
                product_id = int(it["product_id"])
            except (KeyError, TypeError, ValueError) as e:
                raise ValidationError("Each item needs a product_id.") from e
            clean_items.append({"product_id": product_id, "quantity": to_quantity(it.get("quantity"))})

        with self.uow_factory() as uow:
            order_id = uow.create_order(int(store_id), clean_items, notes)

        order = self.get_order(order_id)
        log.info(
            "order_created order_id=%s store_id=%s lines=%s total=%s",
            order.id, order.store_id, len(order.items), order.total_amount,
        )
        return order

    def deliver_order(self, order_id: int, amount_paid=None, payment_type: Optional[str] = None) -> Order:
        paid = Decimal("0.00") if amount_paid is None else to_money(amount_paid, field_name="Amount paid")
        if paid < 0:
            raise ValidationError("Amount paid must be >= 0.")
        method = normalize_payment_type(payment_type)

        with self.uow_factory() as uow:
            payment_id = uow.deliver_order(int(order_id), paid, method)

        order = self.get_order(order_id)
        log.info(
            "order_delivered order_id=%s store_id=%s total=%s paid=%s due=%s payment_id=%s",
            order.id, order.store_id, order.total_amount, order.amount_paid, order.amount_due, payment_id,
        )
        return order

    def cancel_order(self, order_id: int) -> Order:
        with self.uow_factory() as uow:
            uow.cancel_order(int(order_id))
        log.info("order_cancelled order_id=%s", order_id)
        return self.get_order(order_id)

    def get_order(self, order_id: int) -> Order:
        order = self.repo.get_order_by_id(int(order_id))
        if not order:
            raise NotFoundError("Order not found.")
        return order

    def list_orders(self, status: Optional[str] = None, store_id: Optional[int] = None) -> list[Order]:
        if status and status not in ORDER_STATUSES:
            raise ValidationError(f"Unknown order status '{status}'.")
        return self.repo.list_orders(status=status, store_id=store_id)

    def pending_orders(self) -> list[Order]:
        return self.repo.list_orders(status=ORDER_PENDING, oldest_first=True)

    def orders_for_store(self, store_id: int, limit: int = 20) -> list[Order]:
        return self.repo.list_orders(store_id=int(store_id), limit=limit)
