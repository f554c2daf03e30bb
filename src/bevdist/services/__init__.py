from .inventory_service import InventoryService
from .order_service import OrderService
from .store_service import StoreService
from .payment_service import PaymentService
from .reporting_service import ReportingService
from .excel_service import ExcelService

__all__ = [
    "InventoryService",
    "OrderService",
    "StoreService",
    "PaymentService",
    "ReportingService",
    "ExcelService",
]
