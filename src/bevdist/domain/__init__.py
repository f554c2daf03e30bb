from .models import Product, Store, Order, OrderLine, Payment, InventoryTransaction, StockMovement, PaymentReceipt
from .errors import (
    AppError,
    ValidationError,
    NotFoundError,
    InsufficientStockError,
    InvalidStateTransitionError,
)

__all__ = [
    "Product",
    "Store",
    "Order",
    "OrderLine",
    "Payment",
    "InventoryTransaction",
    "StockMovement",
    "PaymentReceipt",
    "AppError",
    "ValidationError",
    "NotFoundError",
    "InsufficientStockError",
    "InvalidStateTransitionError",
]
