from __future__ import annotations

import sqlite3
import shutil
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Iterator, Optional

from bevdist.domain.errors import (
    InsufficientStockError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from bevdist.domain.models import (
    ORDER_CANCELLED,
    ORDER_DELIVERED,
    ORDER_PENDING,
    STOCK_ADD,
    TRANSACTION_REFERENCES,
    TRANSACTION_TYPES,
    InventoryTransaction,
    Order,
    OrderLine,
    Payment,
    Product,
    Store,
)
from bevdist.domain.values import MAX_QUANTITY, money_from_db, money_to_db

_PRODUCT_COLS = "id, name, price, quantity, active, created_at"
_STORE_COLS = "id, name, address, contact_name, contact_phone, balance, created_at"
_ORDER_COLS = (
    "o.id, o.store_id, o.order_date, o.status, o.total_amount, o.amount_paid, "
    "o.delivery_date, o.notes, s.name"
)
_PAYMENT_COLS = "id, store_id, order_id, amount, datetime, payment_type, notes"
_TXN_COLS = (
    "id, product_id, transaction_type, quantity, previous_quantity, new_quantity, "
    "datetime, reference, reference_order_id, actor_user_id, notes"
)


def _product(r) -> Product:
    return Product(
        id=int(r[0]),
        name=str(r[1]),
        price=money_from_db(r[2]),
        quantity=int(r[3]),
        active=int(r[4]),
        created_at=(str(r[5]) if r[5] is not None else None),
    )


def _store(r) -> Store:
    return Store(
        id=int(r[0]),
        name=str(r[1]),
        address=str(r[2]),
        contact_name=r[3],
        contact_phone=r[4],
        balance=money_from_db(r[5]),
        created_at=(str(r[6]) if r[6] is not None else None),
    )


def _payment(r) -> Payment:
    return Payment(
        id=int(r[0]),
        store_id=int(r[1]),
        order_id=(int(r[2]) if r[2] is not None else None),
        amount=money_from_db(r[3]),
        datetime=str(r[4]),
        payment_type=str(r[5]),
        notes=r[6],
    )


def _transaction(r) -> InventoryTransaction:
    return InventoryTransaction(
        id=int(r[0]),
        product_id=int(r[1]),
        transaction_type=str(r[2]),
        quantity=int(r[3]),
        previous_quantity=int(r[4]),
        new_quantity=int(r[5]),
        datetime=str(r[6]),
        reference=str(r[7]),
        reference_order_id=(int(r[8]) if r[8] is not None else None),
        actor_user_id=(int(r[9]) if r[9] is not None else None),
        notes=r[10],
    )


class SqliteRepository:
    def __init__(self, db_path: Path | str, busy_timeout: float = 10.0):
        self.db_path = str(db_path)
        self.busy_timeout = float(busy_timeout)

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout)
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """Atomic write unit.

        BEGIN IMMEDIATE takes the database write lock before the first read, so
        read-modify-write sequences on stock and balances never interleave.
        """
        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.execute("BEGIN IMMEDIATE")
            yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_db(self) -> None:
        self.run_migrations()

    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_base),
                (2, self._migration_v2_ledger_indexes),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise RuntimeError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_base(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS products (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            price TEXT NOT NULL CHECK(CAST(price AS REAL) >= 0),
            quantity INTEGER NOT NULL DEFAULT 0 CHECK(quantity >= 0),
            active INTEGER NOT NULL DEFAULT 1 CHECK(active IN (0,1)),
            created_at TEXT NOT NULL
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS stores (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            address TEXT NOT NULL,
            contact_name TEXT,
            contact_phone TEXT,
            balance TEXT NOT NULL DEFAULT '0.00',
            created_at TEXT NOT NULL
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS orders (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            store_id INTEGER NOT NULL,
            order_date TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending' CHECK(status IN ('pending','delivered','cancelled')),
            total_amount TEXT NOT NULL,
            amount_paid TEXT NOT NULL DEFAULT '0.00',
            delivery_date TEXT,
            notes TEXT,
            FOREIGN KEY(store_id) REFERENCES stores(id)
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS order_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            order_id INTEGER NOT NULL,
            line_no INTEGER NOT NULL,
            product_id INTEGER NOT NULL,
            quantity INTEGER NOT NULL CHECK(quantity > 0),
            unit_price TEXT NOT NULL,
            FOREIGN KEY(order_id) REFERENCES orders(id) ON DELETE CASCADE,
            FOREIGN KEY(product_id) REFERENCES products(id),
            UNIQUE(order_id, line_no)
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS payments (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            store_id INTEGER NOT NULL,
            order_id INTEGER,
            amount TEXT NOT NULL CHECK(CAST(amount AS REAL) > 0),
            datetime TEXT NOT NULL,
            payment_type TEXT NOT NULL CHECK(payment_type IN ('cash','credit','upi','bank_transfer')),
            notes TEXT,
            FOREIGN KEY(store_id) REFERENCES stores(id),
            FOREIGN KEY(order_id) REFERENCES orders(id)
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS inventory_transactions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            product_id INTEGER NOT NULL,
            transaction_type TEXT NOT NULL CHECK(transaction_type IN ('add','remove')),
            quantity INTEGER NOT NULL CHECK(quantity > 0),
            previous_quantity INTEGER NOT NULL CHECK(previous_quantity >= 0),
            new_quantity INTEGER NOT NULL CHECK(new_quantity >= 0),
            datetime TEXT NOT NULL,
            reference TEXT NOT NULL DEFAULT 'manual' CHECK(reference IN ('manual','order','adjustment')),
            reference_order_id INTEGER,
            actor_user_id INTEGER,
            notes TEXT,
            CHECK(
                (transaction_type = 'add' AND new_quantity = previous_quantity + quantity)
                OR (transaction_type = 'remove' AND new_quantity = previous_quantity - quantity)
            ),
            FOREIGN KEY(product_id) REFERENCES products(id),
            FOREIGN KEY(reference_order_id) REFERENCES orders(id)
        )
        """
        )

    def _migration_v2_ledger_indexes(self, cur: sqlite3.Cursor) -> None:
        cur.execute("CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status, order_date)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_orders_store ON orders(store_id, order_date)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_payments_store ON payments(store_id, datetime)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_inventory_txn_product ON inventory_transactions(product_id, datetime)")

    # ---------- Products ----------
    def _fetch_product(self, cur: sqlite3.Cursor, product_id: int, active_only: bool = False) -> Optional[Product]:
        sql = f"SELECT {_PRODUCT_COLS} FROM products WHERE id=?"
        if active_only:
            sql += " AND active=1"
        cur.execute(sql, (int(product_id),))
        r = cur.fetchone()
        return _product(r) if r else None

    def create_product(
        self,
        datetime_iso: str,
        name: str,
        price: Decimal,
        quantity: int,
        actor_user_id: Optional[int] = None,
    ) -> int:
        with self.transaction() as cur:
            cur.execute(
                """
                INSERT INTO products (name, price, quantity, active, created_at)
                VALUES (?, ?, ?, 1, ?)
                """,
                (name, money_to_db(price), int(quantity), datetime_iso),
            )
            pid = int(cur.lastrowid)
            if quantity > 0:
                self._insert_transaction(
                    cur,
                    datetime_iso=datetime_iso,
                    product_id=pid,
                    transaction_type=STOCK_ADD,
                    quantity=int(quantity),
                    previous_quantity=0,
                    new_quantity=int(quantity),
                    reference="adjustment",
                    reference_order_id=None,
                    actor_user_id=actor_user_id,
                    notes="Opening stock",
                )
            return pid

    def update_product(self, product_id: int, name: Optional[str], price: Optional[Decimal]) -> bool:
        with self.transaction() as cur:
            current = self._fetch_product(cur, product_id)
            if not current:
                return False
            cur.execute(
                "UPDATE products SET name=?, price=? WHERE id=?",
                (
                    name if name is not None else current.name,
                    money_to_db(price if price is not None else current.price),
                    int(product_id),
                ),
            )
            return True

    def set_product_active(self, product_id: int, active: bool) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("UPDATE products SET active=? WHERE id=?", (1 if active else 0, int(product_id)))
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return bool(changed)

    def get_product_by_id(self, product_id: int, active_only: bool = False) -> Optional[Product]:
        conn = self._conn()
        cur = conn.cursor()
        product = self._fetch_product(cur, product_id, active_only=active_only)
        conn.close()
        return product

    def find_active_product_by_name(self, name: str) -> Optional[Product]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT {_PRODUCT_COLS}
            FROM products
            WHERE active=1 AND lower(name)=lower(?)
            ORDER BY id
            LIMIT 1
            """,
            (name,),
        )
        r = cur.fetchone()
        conn.close()
        return _product(r) if r else None

    def list_products(self, active_only: bool = True) -> list[Product]:
        conn = self._conn()
        cur = conn.cursor()
        where = "WHERE active = 1" if active_only else ""
        cur.execute(f"SELECT {_PRODUCT_COLS} FROM products {where} ORDER BY name, id")
        rows = cur.fetchall()
        conn.close()
        return [_product(r) for r in rows]

    # ---------- Inventory ledger ----------
    def _insert_transaction(
        self,
        cur: sqlite3.Cursor,
        *,
        datetime_iso: str,
        product_id: int,
        transaction_type: str,
        quantity: int,
        previous_quantity: int,
        new_quantity: int,
        reference: str,
        reference_order_id: Optional[int],
        actor_user_id: Optional[int],
        notes: Optional[str],
    ) -> int:
        cur.execute(
            """
            INSERT INTO inventory_transactions (
                product_id, transaction_type, quantity, previous_quantity, new_quantity,
                datetime, reference, reference_order_id, actor_user_id, notes
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                int(product_id),
                transaction_type,
                int(quantity),
                int(previous_quantity),
                int(new_quantity),
                datetime_iso,
                reference,
                reference_order_id,
                actor_user_id,
                notes,
            ),
        )
        return int(cur.lastrowid)

    def apply_stock_movement(
        self,
        datetime_iso: str,
        product_id: int,
        transaction_type: str,
        quantity: int,
        *,
        reference: str = "manual",
        reference_order_id: Optional[int] = None,
        actor_user_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> tuple[Product, InventoryTransaction]:
        if transaction_type not in TRANSACTION_TYPES:
            raise ValueError(f"Unknown transaction type: {transaction_type}")
        if reference not in TRANSACTION_REFERENCES:
            raise ValueError(f"Unknown transaction reference: {reference}")

        with self.transaction() as cur:
            product = self._fetch_product(cur, product_id)
            if not product:
                raise NotFoundError("Product not found.")

            previous = int(product.quantity)
            if transaction_type == STOCK_ADD:
                new_quantity = previous + int(quantity)
                if new_quantity > MAX_QUANTITY:
                    raise ValidationError(
                        f"Stock for {product.name} would exceed {MAX_QUANTITY}. Available: {previous}"
                    )
            else:
                if int(quantity) > previous:
                    raise InsufficientStockError(
                        f"Not enough inventory for {product.name}. Available: {previous}"
                    )
                new_quantity = previous - int(quantity)

            cur.execute("UPDATE products SET quantity=? WHERE id=?", (new_quantity, int(product_id)))
            txn_id = self._insert_transaction(
                cur,
                datetime_iso=datetime_iso,
                product_id=product_id,
                transaction_type=transaction_type,
                quantity=quantity,
                previous_quantity=previous,
                new_quantity=new_quantity,
                reference=reference,
                reference_order_id=reference_order_id,
                actor_user_id=actor_user_id,
                notes=notes,
            )

            updated = self._fetch_product(cur, product_id)
            cur.execute(f"SELECT {_TXN_COLS} FROM inventory_transactions WHERE id=?", (txn_id,))
            txn = _transaction(cur.fetchone())
            return updated, txn

    def recent_transactions(self, limit: int = 100) -> list[InventoryTransaction]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT {_TXN_COLS}
            FROM inventory_transactions
            ORDER BY datetime DESC, id DESC
            LIMIT ?
            """,
            (int(limit),),
        )
        rows = cur.fetchall()
        conn.close()
        return [_transaction(r) for r in rows]

    def transactions_for_product(self, product_id: int) -> list[InventoryTransaction]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT {_TXN_COLS}
            FROM inventory_transactions
            WHERE product_id=?
            ORDER BY datetime DESC, id DESC
            """,
            (int(product_id),),
        )
        rows = cur.fetchall()
        conn.close()
        return [_transaction(r) for r in rows]

    # ---------- Stores ----------
    def _fetch_store(self, cur: sqlite3.Cursor, store_id: int) -> Optional[Store]:
        cur.execute(f"SELECT {_STORE_COLS} FROM stores WHERE id=?", (int(store_id),))
        r = cur.fetchone()
        return _store(r) if r else None

    def create_store(
        self,
        datetime_iso: str,
        name: str,
        address: str,
        contact_name: Optional[str],
        contact_phone: Optional[str],
    ) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO stores (name, address, contact_name, contact_phone, balance, created_at)
            VALUES (?, ?, ?, ?, '0.00', ?)
            """,
            (name, address, contact_name, contact_phone, datetime_iso),
        )
        sid = int(cur.lastrowid)
        conn.commit()
        conn.close()
        return sid

    def update_store_details(
        self,
        store_id: int,
        name: str,
        address: str,
        contact_name: Optional[str],
        contact_phone: Optional[str],
    ) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            UPDATE stores
            SET name=?, address=?, contact_name=?, contact_phone=?
            WHERE id=?
            """,
            (name, address, contact_name, contact_phone, int(store_id)),
        )
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return bool(changed)

    def get_store_by_id(self, store_id: int) -> Optional[Store]:
        conn = self._conn()
        cur = conn.cursor()
        store = self._fetch_store(cur, store_id)
        conn.close()
        return store

    def list_stores(self, search: Optional[str] = None) -> list[Store]:
        conn = self._conn()
        cur = conn.cursor()
        if search:
            cur.execute(
                f"SELECT {_STORE_COLS} FROM stores WHERE name LIKE ? ORDER BY name, id",
                (f"%{search}%",),
            )
        else:
            cur.execute(f"SELECT {_STORE_COLS} FROM stores ORDER BY name, id")
        rows = cur.fetchall()
        conn.close()
        return [_store(r) for r in rows]

    def list_outstanding_stores(self, limit: Optional[int] = None) -> list[Store]:
        # balance is stored as text; ordering and filtering happen on the Decimal value
        stores = [s for s in self.list_stores() if s.balance < 0]
        stores.sort(key=lambda s: (s.balance, s.name))
        return stores[:limit] if limit is not None else stores

    def _add_to_balance(self, cur: sqlite3.Cursor, store_id: int, delta: Decimal) -> Store:
        store = self._fetch_store(cur, store_id)
        if not store:
            raise NotFoundError("Store not found.")
        cur.execute(
            "UPDATE stores SET balance=? WHERE id=?",
            (money_to_db(store.balance + delta), int(store_id)),
        )
        return self._fetch_store(cur, store_id)

    # ---------- Payments ----------
    def _insert_payment(
        self,
        cur: sqlite3.Cursor,
        datetime_iso: str,
        store_id: int,
        order_id: Optional[int],
        amount: Decimal,
        payment_type: str,
        notes: Optional[str],
    ) -> int:
        cur.execute(
            """
            INSERT INTO payments (store_id, order_id, amount, datetime, payment_type, notes)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (int(store_id), order_id, money_to_db(amount), datetime_iso, payment_type, notes),
        )
        return int(cur.lastrowid)

    def record_store_payment(
        self,
        datetime_iso: str,
        store_id: int,
        amount: Decimal,
        payment_type: str,
        notes: Optional[str],
    ) -> tuple[Payment, Store]:
        with self.transaction() as cur:
            store = self._add_to_balance(cur, store_id, amount)
            payment_id = self._insert_payment(cur, datetime_iso, store_id, None, amount, payment_type, notes)
            cur.execute(f"SELECT {_PAYMENT_COLS} FROM payments WHERE id=?", (payment_id,))
            return _payment(cur.fetchone()), store

    def get_payment_by_id(self, payment_id: int) -> Optional[Payment]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {_PAYMENT_COLS} FROM payments WHERE id=?", (int(payment_id),))
        r = cur.fetchone()
        conn.close()
        return _payment(r) if r else None

    def list_payments(self, store_id: Optional[int] = None, order_id: Optional[int] = None) -> list[Payment]:
        conn = self._conn()
        cur = conn.cursor()
        clauses, params = [], []
        if store_id is not None:
            clauses.append("store_id=?")
            params.append(int(store_id))
        if order_id is not None:
            clauses.append("order_id=?")
            params.append(int(order_id))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        cur.execute(
            f"SELECT {_PAYMENT_COLS} FROM payments {where} ORDER BY datetime DESC, id DESC",
            params,
        )
        rows = cur.fetchall()
        conn.close()
        return [_payment(r) for r in rows]

    def list_payments_between(self, start_iso: str, end_iso: str) -> list[Payment]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT {_PAYMENT_COLS}
            FROM payments
            WHERE datetime >= ? AND datetime < ?
            ORDER BY datetime DESC, id DESC
            """,
            (start_iso, end_iso),
        )
        rows = cur.fetchall()
        conn.close()
        return [_payment(r) for r in rows]

    # ---------- Orders ----------
    def _order_items(self, cur: sqlite3.Cursor, order_id: int) -> tuple[OrderLine, ...]:
        cur.execute(
            """
            SELECT oi.product_id, oi.quantity, oi.unit_price, p.name
            FROM order_items oi
            JOIN products p ON p.id = oi.product_id
            WHERE oi.order_id = ?
            ORDER BY oi.line_no
            """,
            (int(order_id),),
        )
        return tuple(
            OrderLine(
                product_id=int(r[0]),
                quantity=int(r[1]),
                unit_price=money_from_db(r[2]),
                product_name=str(r[3]),
            )
            for r in cur.fetchall()
        )

    def _order(self, cur: sqlite3.Cursor, r) -> Order:
        return Order(
            id=int(r[0]),
            store_id=int(r[1]),
            order_date=str(r[2]),
            status=str(r[3]),
            total_amount=money_from_db(r[4]),
            amount_paid=money_from_db(r[5]),
            delivery_date=(str(r[6]) if r[6] is not None else None),
            notes=r[7],
            items=self._order_items(cur, int(r[0])),
            store_name=r[8],
        )

    def _fetch_order(self, cur: sqlite3.Cursor, order_id: int) -> Optional[Order]:
        cur.execute(
            f"SELECT {_ORDER_COLS} FROM orders o JOIN stores s ON s.id = o.store_id WHERE o.id=?",
            (int(order_id),),
        )
        r = cur.fetchone()
        return self._order(cur, r) if r else None

    def create_order(
        self,
        datetime_iso: str,
        store_id: int,
        items: Iterable[dict],
        notes: Optional[str],
    ) -> int:
        """items: [{product_id, quantity}]; unit prices are read here, inside the write lock."""
        with self.transaction() as cur:
            if not self._fetch_store(cur, store_id):
                raise NotFoundError("Store not found.")

            lines: list[tuple[int, int, Decimal]] = []
            total = Decimal("0.00")
            for it in items:
                pid = int(it["product_id"])
                qty = int(it["quantity"])
                product = self._fetch_product(cur, pid)
                if not product:
                    raise NotFoundError(f"Product {pid} not found.")
                lines.append((pid, qty, product.price))
                total += product.price * qty

            cur.execute(
                """
                INSERT INTO orders (store_id, order_date, status, total_amount, amount_paid, notes)
                VALUES (?, ?, 'pending', ?, '0.00', ?)
                """,
                (int(store_id), datetime_iso, money_to_db(total), notes),
            )
            order_id = int(cur.lastrowid)

            for line_no, (pid, qty, unit_price) in enumerate(lines, start=1):
                cur.execute(
                    """
                    INSERT INTO order_items (order_id, line_no, product_id, quantity, unit_price)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (order_id, line_no, pid, qty, money_to_db(unit_price)),
                )
            return order_id

    def deliver_order(
        self,
        datetime_iso: str,
        order_id: int,
        amount_paid: Decimal,
        payment_type: str,
        payment_notes: str = "Payment at delivery",
    ) -> Optional[int]:
        """Mark delivered, move the store balance and log the payment. Returns the payment id, if any."""
        with self.transaction() as cur:
            order = self._fetch_order(cur, order_id)
            if not order:
                raise NotFoundError("Order not found.")
            if order.status != ORDER_PENDING:
                raise InvalidStateTransitionError(f"Order {order.id} is {order.status}; only pending orders can be delivered.")

            cur.execute(
                "UPDATE orders SET status=?, delivery_date=?, amount_paid=? WHERE id=?",
                (ORDER_DELIVERED, datetime_iso, money_to_db(amount_paid), int(order_id)),
            )
            amount_due = order.total_amount - amount_paid
            # negative balance is debt; an overpayment (negative due) becomes credit
            self._add_to_balance(cur, order.store_id, -amount_due)

            if amount_paid > 0:
                return self._insert_payment(
                    cur, datetime_iso, order.store_id, int(order_id), amount_paid, payment_type, payment_notes
                )
            return None

    def cancel_order(self, order_id: int) -> None:
        with self.transaction() as cur:
            order = self._fetch_order(cur, order_id)
            if not order:
                raise NotFoundError("Order not found.")
            if order.status == ORDER_DELIVERED:
                raise InvalidStateTransitionError("Cannot cancel a delivered order.")
            cur.execute("UPDATE orders SET status=? WHERE id=?", (ORDER_CANCELLED, int(order_id)))

    def get_order_by_id(self, order_id: int) -> Optional[Order]:
        conn = self._conn()
        cur = conn.cursor()
        order = self._fetch_order(cur, order_id)
        conn.close()
        return order

    def list_orders(
        self,
        status: Optional[str] = None,
        store_id: Optional[int] = None,
        oldest_first: bool = False,
        limit: Optional[int] = None,
    ) -> list[Order]:
        conn = self._conn()
        cur = conn.cursor()
        clauses, params = [], []
        if status:
            clauses.append("o.status=?")
            params.append(status)
        if store_id is not None:
            clauses.append("o.store_id=?")
            params.append(int(store_id))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        direction = "ASC" if oldest_first else "DESC"
        sql = (
            f"SELECT {_ORDER_COLS} FROM orders o JOIN stores s ON s.id = o.store_id "
            f"{where} ORDER BY o.order_date {direction}, o.id {direction}"
        )
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        cur.execute(sql, params)
        orders = [self._order(cur, r) for r in cur.fetchall()]
        conn.close()
        return orders

    def list_orders_between(self, start_iso: str, end_iso: str, status: Optional[str] = None) -> list[Order]:
        conn = self._conn()
        cur = conn.cursor()
        params: list = [start_iso, end_iso]
        status_clause = ""
        if status:
            status_clause = "AND o.status=?"
            params.append(status)
        cur.execute(
            f"""
            SELECT {_ORDER_COLS}
            FROM orders o JOIN stores s ON s.id = o.store_id
            WHERE o.order_date >= ? AND o.order_date < ? {status_clause}
            ORDER BY o.order_date DESC, o.id DESC
            """,
            params,
        )
        orders = [self._order(cur, r) for r in cur.fetchall()]
        conn.close()
        return orders

    def count_orders(self, status: str) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT COUNT(*) FROM orders WHERE status=?", (status,))
        n = int(cur.fetchone()[0])
        conn.close()
        return n

