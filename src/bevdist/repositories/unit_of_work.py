from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional, Protocol

from bevdist.domain.models import InventoryTransaction, Payment, Product, Store


class UnitOfWork(Protocol):
    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def create_product(self, name: str, price: Decimal, quantity: int, actor_user_id: int | None = None) -> int: ...
    def create_store(self, name: str, address: str, contact_name: Optional[str], contact_phone: Optional[str]) -> int: ...
    def create_order(self, store_id: int, items: Iterable[dict], notes: Optional[str]) -> int: ...
    def deliver_order(self, order_id: int, amount_paid: Decimal, payment_type: str) -> Optional[int]: ...
    def cancel_order(self, order_id: int) -> None: ...
    def move_stock(
        self,
        product_id: int,
        transaction_type: str,
        quantity: int,
        notes: Optional[str],
        actor_user_id: int | None = None,
    ) -> tuple[Product, InventoryTransaction]: ...
    def record_payment(self, store_id: int, amount: Decimal, payment_type: str, notes: Optional[str]) -> tuple[Payment, Store]: ...


@dataclass
class RepositoryUnitOfWork:
    """Unit of Work adapter for transactional write use-cases.

    Each repository write method runs inside its own ``BEGIN IMMEDIATE``
    transaction. This class stamps business time from ``clock`` and keeps the
    services persistence-agnostic.
    """

    repo: object
    clock: Callable[[], datetime] = field(default=datetime.now)

    def __enter__(self) -> "RepositoryUnitOfWork":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None

    def _now_iso(self) -> str:
        return self.clock().replace(microsecond=0).isoformat(sep=" ")

    def create_product(self, name: str, price: Decimal, quantity: int, actor_user_id: int | None = None) -> int:
        return int(self.repo.create_product(self._now_iso(), name, price, quantity, actor_user_id=actor_user_id))

    def create_store(self, name: str, address: str, contact_name: Optional[str], contact_phone: Optional[str]) -> int:
        return int(self.repo.create_store(self._now_iso(), name, address, contact_name, contact_phone))

    def create_order(self, store_id: int, items: Iterable[dict], notes: Optional[str]) -> int:
        return int(self.repo.create_order(self._now_iso(), store_id, list(items), notes))

    def deliver_order(self, order_id: int, amount_paid: Decimal, payment_type: str) -> Optional[int]:
        return self.repo.deliver_order(self._now_iso(), order_id, amount_paid, payment_type)

    def cancel_order(self, order_id: int) -> None:
        self.repo.cancel_order(order_id)

    def move_stock(
        self,
        product_id: int,
        transaction_type: str,
        quantity: int,
        notes: Optional[str],
        actor_user_id: int | None = None,
    ) -> tuple[Product, InventoryTransaction]:
        return self.repo.apply_stock_movement(
            self._now_iso(),
            product_id,
            transaction_type,
            quantity,
            actor_user_id=actor_user_id,
            notes=notes,
        )

    def record_payment(self, store_id: int, amount: Decimal, payment_type: str, notes: Optional[str]) -> tuple[Payment, Store]:
        return self.repo.record_store_payment(self._now_iso(), store_id, amount, payment_type, notes)
