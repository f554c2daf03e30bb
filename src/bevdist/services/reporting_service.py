from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from bevdist.domain.models import ORDER_DELIVERED, ORDER_PENDING, Store


@dataclass(frozen=True)
class ProductSales:
    product_id: int
    name: str
    total_quantity: int
    total_value: Decimal


@dataclass(frozen=True)
class DashboardSummary:
    start_iso: str
    end_iso: str
    total_sales: Decimal
    total_cash: Decimal
    total_credit: Decimal
    delivered_orders: int
    pending_orders: int
    total_outstanding: Decimal
    top_products: list[ProductSales]
    top_debt_stores: list[Store]


class ReportingService:
    def __init__(self, repo):
        self.repo = repo

    def dashboard_summary(self, start_iso: str, end_iso: str, top: int = 5) -> DashboardSummary:
        """Sales and credit figures for orders dated in ``[start_iso, end_iso)``.

        Cash counts every payment in the window, order-linked or not, so
        ``total_credit`` is what was sold but not yet collected.
        ``total_outstanding`` is the debt owed by all stores right now,
        independent of the window.
        """
        delivered = self.repo.list_orders_between(start_iso, end_iso, status=ORDER_DELIVERED)
        payments = self.repo.list_payments_between(start_iso, end_iso)

        total_sales = sum((o.total_amount for o in delivered), Decimal("0.00"))
        total_cash = sum((p.amount for p in payments), Decimal("0.00"))

        qty_by_product: dict[int, int] = defaultdict(int)
        value_by_product: dict[int, Decimal] = defaultdict(lambda: Decimal("0.00"))
        names: dict[int, str] = {}
        for order in delivered:
            for line in order.items:
                qty_by_product[line.product_id] += line.quantity
                value_by_product[line.product_id] += line.total
                names[line.product_id] = line.product_name or str(line.product_id)

        ranked = sorted(value_by_product, key=lambda pid: (-value_by_product[pid], names[pid]))
        top_products = [
            ProductSales(
                product_id=pid,
                name=names[pid],
                total_quantity=qty_by_product[pid],
                total_value=value_by_product[pid],
            )
            for pid in ranked[:top]
        ]

        debtors = self.repo.list_outstanding_stores()

        return DashboardSummary(
            start_iso=start_iso,
            end_iso=end_iso,
            total_sales=total_sales,
            total_cash=total_cash,
            total_credit=total_sales - total_cash,
            delivered_orders=len(delivered),
            pending_orders=self.repo.count_orders(ORDER_PENDING),
            total_outstanding=sum((s.owes for s in debtors), Decimal("0.00")),
            top_products=top_products,
            top_debt_stores=debtors[:top],
        )

    def export_summary_excel(self, path: str, start_iso: str, end_iso: str) -> None:
        wb = Workbook()

        def money(cell):
            cell.number_format = "#,##0.00"

        def bold_row(ws, r):
            for c in ws[r]:
                c.font = Font(bold=True)

        def set_widths(ws, widths: dict[str, int]):
            for col, w in widths.items():
                ws.column_dimensions[col].width = w

        def add_table(ws, name: str, start_row: int, end_row: int, end_col: int):
            ref = f"A{start_row}:{get_column_letter(end_col)}{end_row}"
            tab = Table(displayName=name, ref=ref)
            tab.tableStyleInfo = TableStyleInfo(
                name="TableStyleMedium9",
                showRowStripes=True,
                showColumnStripes=False,
            )
            ws.add_table(tab)

        summary = self.dashboard_summary(start_iso, end_iso)

        # -------- 1) Summary --------
        ws = wb.active
        ws.title = "Summary"
        ws["A1"] = "Summary"
        ws["A1"].font = Font(bold=True, size=14)

        ws["A3"] = "Window"
        ws["B3"] = f"{start_iso}  ->  {end_iso}"

        rows = [
            ("Total sales", summary.total_sales, "money"),
            ("Cash received", summary.total_cash, "money"),
            ("Credit extended", summary.total_credit, "money"),
            ("Delivered orders", summary.delivered_orders, "int"),
            ("Pending orders", summary.pending_orders, "int"),
            ("Total outstanding", summary.total_outstanding, "money"),
        ]
        for i, (label, val, kind) in enumerate(rows):
            r = 5 + i
            ws[f"A{r}"] = label
            if kind == "money":
                ws[f"B{r}"] = float(val)
                money(ws[f"B{r}"])
            else:
                ws[f"B{r}"] = int(val)

        r = 5 + len(rows) + 1
        ws[f"A{r}"] = "Top products"
        ws[f"A{r}"].font = Font(bold=True)
        for p in summary.top_products:
            r += 1
            ws[f"A{r}"] = p.name
            ws[f"B{r}"] = float(p.total_value)
            money(ws[f"B{r}"])

        r += 2
        ws[f"A{r}"] = "Top debtors"
        ws[f"A{r}"].font = Font(bold=True)
        for s in summary.top_debt_stores:
            r += 1
            ws[f"A{r}"] = s.name
            ws[f"B{r}"] = float(s.balance)
            money(ws[f"B{r}"])

        set_widths(ws, {"A": 28, "B": 34})

        # -------- 2) Orders --------
        ws2 = wb.create_sheet("Orders")
        ws2.append([
            "Order ID", "Order Date", "Store", "Status", "Delivery Date",
            "Total", "Paid", "Due", "Notes",
        ])
        bold_row(ws2, 1)
        for o in self.repo.list_orders_between(start_iso, end_iso):
            ws2.append([
                o.id, o.order_date, o.store_name or "", o.status, o.delivery_date or "",
                float(o.total_amount), float(o.amount_paid), float(o.amount_due), o.notes or "",
            ])
            for col in ("F", "G", "H"):
                money(ws2[f"{col}{ws2.max_row}"])
        ws2.freeze_panes = "A2"
        set_widths(ws2, {"A": 10, "B": 22, "C": 28, "D": 12, "E": 22, "F": 14, "G": 14, "H": 14, "I": 30})
        if ws2.max_row >= 2:
            add_table(ws2, "OrdersDetail", 1, ws2.max_row, 9)

        # -------- 3) Payments --------
        ws3 = wb.create_sheet("Payments")
        ws3.append(["Payment ID", "Datetime", "Store ID", "Order ID", "Type", "Amount", "Notes"])
        bold_row(ws3, 1)
        for p in self.repo.list_payments_between(start_iso, end_iso):
            ws3.append([
                p.id, p.datetime, p.store_id, p.order_id if p.order_id is not None else "",
                p.payment_type, float(p.amount), p.notes or "",
            ])
            money(ws3[f"F{ws3.max_row}"])
        ws3.freeze_panes = "A2"
        set_widths(ws3, {"A": 12, "B": 22, "C": 10, "D": 10, "E": 14, "F": 14, "G": 30})
        if ws3.max_row >= 2:
            add_table(ws3, "PaymentsDetail", 1, ws3.max_row, 7)

        wb.save(path)
