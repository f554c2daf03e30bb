from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable

from bevdist.repositories.sqlite_repo import SqliteRepository
from bevdist.repositories.unit_of_work import RepositoryUnitOfWork
from bevdist.services.excel_service import ExcelService
from bevdist.services.inventory_service import InventoryService
from bevdist.services.order_service import OrderService
from bevdist.services.payment_service import PaymentService
from bevdist.services.reporting_service import ReportingService
from bevdist.services.store_service import StoreService


@dataclass(frozen=True)
class AppContainer:
    repo: SqliteRepository
    inventory: InventoryService
    stores: StoreService
    orders: OrderService
    payments: PaymentService
    reporting: ReportingService
    excel: ExcelService


def build_container(
    db_path: Path | str,
    clock: Callable[[], datetime] = datetime.now,
    busy_timeout: float = 10.0,
) -> AppContainer:
    repo = SqliteRepository(db_path, busy_timeout=busy_timeout)
    repo.init_db()

    def uow_factory() -> RepositoryUnitOfWork:
        return RepositoryUnitOfWork(repo, clock=clock)

    inventory = InventoryService(repo, uow_factory)
    stores = StoreService(repo, uow_factory)
    orders = OrderService(repo, uow_factory)
    payments = PaymentService(repo, uow_factory)
    reporting = ReportingService(repo)
    excel = ExcelService(repo, inventory)

    return AppContainer(
        repo=repo,
        inventory=inventory,
        stores=stores,
        orders=orders,
        payments=payments,
        reporting=reporting,
        excel=excel,
    )
