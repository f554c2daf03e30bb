from __future__ import annotations

from openpyxl import load_workbook

from bevdist.domain.errors import AppError, ValidationError
from bevdist.domain.values import to_positive_money, to_quantity
import logging

log = logging.getLogger(__name__)


class ExcelService:
    def __init__(self, repo, inventory_service):
        self.repo = repo
        self.inventory = inventory_service

    def import_restock_excel(self, path: str, actor_user_id: int | None = None) -> tuple[int, int]:
        """
        Excel represents RESTOCK (delta to add), not absolute stock.
        Headers:
          name | price | quantity

        Unknown names create the product first; every quantity lands through
        ``add_stock`` so the inventory ledger explains it.
        """
        wb = load_workbook(path)
        ws = wb.active

        headers = {}
        for col in range(1, ws.max_column + 1):
            v = ws.cell(row=1, column=col).value
            if isinstance(v, str):
                headers[v.strip().lower()] = col

        required = ["name", "price", "quantity"]
        for r in required:
            if r not in headers:
                raise ValidationError(f"Missing column header: {r}")

        ok = 0
        skipped = 0

        for row in range(2, ws.max_row + 1):
            name = ws.cell(row=row, column=headers["name"]).value
            price = ws.cell(row=row, column=headers["price"]).value
            qty = ws.cell(row=row, column=headers["quantity"]).value

            if not name or price is None or qty is None:
                skipped += 1
                continue

            try:
                name = str(name).strip()
                qty = to_quantity(qty)
                price = to_positive_money(price, field_name="Price")
                existing = self.repo.find_active_product_by_name(name)
                if existing:
                    product_id = existing.id
                    if existing.price != price:
                        self.inventory.update_product(product_id, price=price)
                else:
                    product_id = self.inventory.add_product(name, price, 0, actor_user_id=actor_user_id)

                self.inventory.add_stock(
                    product_id,
                    qty,
                    notes=f"Excel restock (+{qty}) for {name}",
                    actor_user_id=actor_user_id,
                )
                ok += 1
            except AppError as e:
                log.warning("Excel import skipped row %s: %s", row, e)
                skipped += 1

        return ok, skipped
