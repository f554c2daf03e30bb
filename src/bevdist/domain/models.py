from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional


ORDER_PENDING = "pending"
ORDER_DELIVERED = "delivered"
ORDER_CANCELLED = "cancelled"
ORDER_STATUSES = (ORDER_PENDING, ORDER_DELIVERED, ORDER_CANCELLED)

PAYMENT_TYPES = ("cash", "credit", "upi", "bank_transfer")
DEFAULT_PAYMENT_TYPE = "cash"

STOCK_ADD = "add"
STOCK_REMOVE = "remove"
TRANSACTION_TYPES = (STOCK_ADD, STOCK_REMOVE)
TRANSACTION_REFERENCES = ("manual", "order", "adjustment")


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    price: Decimal
    quantity: int
    active: int = 1
    created_at: Optional[str] = None


@dataclass(frozen=True)
class Store:
    id: int
    name: str
    address: str
    contact_name: Optional[str]
    contact_phone: Optional[str]
    balance: Decimal
    created_at: Optional[str] = None

    @property
    def owes(self) -> Decimal:
        return -self.balance if self.balance < 0 else Decimal("0.00")


@dataclass(frozen=True)
class OrderLine:
    product_id: int
    quantity: int
    unit_price: Decimal
    product_name: Optional[str] = None

    @property
    def total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class Order:
    id: int
    store_id: int
    order_date: str
    status: str
    total_amount: Decimal
    amount_paid: Decimal
    delivery_date: Optional[str]
    notes: Optional[str]
    items: tuple[OrderLine, ...] = field(default_factory=tuple)
    store_name: Optional[str] = None

    @property
    def amount_due(self) -> Decimal:
        return self.total_amount - self.amount_paid


@dataclass(frozen=True)
class Payment:
    id: int
    store_id: int
    order_id: Optional[int]
    amount: Decimal
    datetime: str
    payment_type: str
    notes: Optional[str]


@dataclass(frozen=True)
class InventoryTransaction:
    id: int
    product_id: int
    transaction_type: str
    quantity: int
    previous_quantity: int
    new_quantity: int
    datetime: str
    reference: str
    reference_order_id: Optional[int]
    actor_user_id: Optional[int]
    notes: Optional[str]


@dataclass(frozen=True)
class StockMovement:
    product: Product
    transaction: InventoryTransaction


@dataclass(frozen=True)
class PaymentReceipt:
    payment: Payment
    store: Store
