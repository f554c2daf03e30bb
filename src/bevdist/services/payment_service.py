from __future__ import annotations

import logging
from typing import Callable, Optional

from bevdist.domain.errors import NotFoundError
from bevdist.domain.models import Payment, PaymentReceipt
from bevdist.domain.values import to_positive_money
from bevdist.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork
from bevdist.services.order_service import normalize_payment_type

log = logging.getLogger("bevdist.payments")


class PaymentService:
    def __init__(self, repo, uow_factory: Callable[[], UnitOfWork] | None = None):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))

    def record_payment(
        self,
        store_id: int,
        amount,
        payment_type: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> PaymentReceipt:
        """Money received against the store's running balance, not tied to an order."""
        value = to_positive_money(amount, field_name="Payment amount")
        method = normalize_payment_type(payment_type)

        with self.uow_factory() as uow:
            payment, store = uow.record_payment(int(store_id), value, method, notes or "Balance payment")

        log.info(
            "payment_recorded payment_id=%s store_id=%s amount=%s type=%s balance=%s",
            payment.id, store.id, payment.amount, payment.payment_type, store.balance,
        )
        return PaymentReceipt(payment=payment, store=store)

    def get_payment(self, payment_id: int) -> Payment:
        payment = self.repo.get_payment_by_id(int(payment_id))
        if not payment:
            raise NotFoundError("Payment not found.")
        return payment

    def list_payments(self, store_id: Optional[int] = None) -> list[Payment]:
        return self.repo.list_payments(store_id=store_id)

    def payments_for_store(self, store_id: int) -> list[Payment]:
        if not self.repo.get_store_by_id(int(store_id)):
            raise NotFoundError("Store not found.")
        return self.repo.list_payments(store_id=int(store_id))

    def payments_for_order(self, order_id: int) -> list[Payment]:
        return self.repo.list_payments(order_id=int(order_id))
