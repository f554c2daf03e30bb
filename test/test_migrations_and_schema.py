from pathlib import Path
import sqlite3

import pytest

from bevdist.repositories.sqlite_repo import SqliteRepository


def _versions(repo: SqliteRepository) -> list[int]:
    conn = repo._conn()
    cur = conn.cursor()
    cur.execute("SELECT version FROM schema_migrations ORDER BY version")
    rows = [int(r[0]) for r in cur.fetchall()]
    conn.close()
    return rows


def test_migrations_are_recorded_and_idempotent(tmp_path: Path):
    repo = SqliteRepository(tmp_path / "m.db")
    repo.init_db()
    repo.init_db()

    assert _versions(repo) == [1, 2]


def test_ledger_rows_must_balance(tmp_path: Path):
    repo = SqliteRepository(tmp_path / "c.db")
    repo.init_db()
    conn = repo._conn()
    cur = conn.cursor()
    cur.execute("INSERT INTO products (name, price, quantity, created_at) VALUES ('X', '1.00', 0, '2024-01-01 00:00:00')")
    pid = cur.lastrowid

    with pytest.raises(sqlite3.IntegrityError):
        cur.execute(
            """
            INSERT INTO inventory_transactions
                (product_id, transaction_type, quantity, previous_quantity, new_quantity, datetime)
            VALUES (?, 'add', 5, 0, 4, '2024-01-01 00:00:00')
            """,
            (pid,),
        )
    with pytest.raises(sqlite3.IntegrityError):
        cur.execute("UPDATE products SET quantity=-1 WHERE id=?", (pid,))
    conn.close()


def test_migration_failure_restores_db(tmp_path: Path):
    class BrokenMigrationRepo(SqliteRepository):
        def _migration_v2_ledger_indexes(self, cur):
            raise RuntimeError("forced migration failure")

    db = tmp_path / "broken.db"
    repo = SqliteRepository(db)
    repo.init_db()

    conn = repo._conn()
    cur = conn.cursor()
    cur.execute("DELETE FROM schema_migrations WHERE version = 2")
    conn.commit()
    conn.close()
    before = _versions(repo)

    broken = BrokenMigrationRepo(db)

    with pytest.raises(RuntimeError, match="Original database restored"):
        broken.run_migrations()

    assert _versions(repo) == before == [1]
