"""
db.py
SQLite helpers + initialization (creates the members/plans/payments/attendance tables).
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """A read or write against the store failed."""


class Database:
    def __init__(self, path: str | Path):
        self.path = Path(path)

    @contextmanager
    def get_conn(self):
        try:
            conn = sqlite3.connect(self.path, check_same_thread=False)
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            logger.exception("database operation failed")
            raise PersistenceError(str(exc)) from exc
        finally:
            conn.close()

    def execute(self, sql: str, params: tuple = ()) -> int:
        """Run a write statement and return the number of affected rows."""
        with self.get_conn() as conn:
            cur = conn.execute(sql, params)
            return cur.rowcount

    def executemany(self, sql: str, seq_of_params: list[tuple]) -> None:
        with self.get_conn() as conn:
            conn.executemany(sql, seq_of_params)

    def fetch_one(self, sql: str, params: tuple = ()):
        with self.get_conn() as conn:
            cur = conn.execute(sql, params)
            return cur.fetchone()

    def fetch_all(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self.get_conn() as conn:
            cur = conn.execute(sql, params)
            return cur.fetchall()

    def _create_tables(self) -> None:
        self.execute(
            """
            CREATE TABLE IF NOT EXISTS plans (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT,
                duration_months INTEGER NOT NULL CHECK(duration_months > 0),
                price REAL NOT NULL CHECK(price > 0),
                created_at TEXT NOT NULL,
                updated_at TEXT
            )
            """
        )

        # plan_id has no ON DELETE action: plans in use cannot be removed
        self.execute(
            """
            CREATE TABLE IF NOT EXISTS members (
                id TEXT PRIMARY KEY,
                member_code TEXT NOT NULL,
                name TEXT NOT NULL,
                mobile_number TEXT NOT NULL,
                address TEXT NOT NULL,
                plan_id TEXT NOT NULL,
                join_date TEXT NOT NULL,
                expiry_date TEXT NOT NULL,
                status TEXT NOT NULL CHECK(status IN ('active','expired','due')),
                image_url TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT,
                FOREIGN KEY(plan_id) REFERENCES plans(id)
            )
            """
        )

        self.execute(
            """
            CREATE TABLE IF NOT EXISTS payments (
                id TEXT PRIMARY KEY,
                member_id TEXT NOT NULL,
                amount REAL NOT NULL CHECK(amount > 0),
                payment_date TEXT NOT NULL,
                payment_type TEXT NOT NULL CHECK(payment_type IN ('monthly','renewal','advance')),
                payment_method TEXT NOT NULL,
                status TEXT NOT NULL CHECK(status IN ('paid','pending')),
                invoice_number TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT,
                FOREIGN KEY(member_id) REFERENCES members(id) ON DELETE CASCADE
            )
            """
        )

        self.execute(
            """
            CREATE TABLE IF NOT EXISTS attendance (
                id TEXT PRIMARY KEY,
                member_id TEXT NOT NULL,
                check_in_time TEXT NOT NULL,
                check_out_time TEXT,
                FOREIGN KEY(member_id) REFERENCES members(id) ON DELETE CASCADE
            )
            """
        )

    def init_db(self) -> None:
        """
        Initialize the database.
        - Create the parent directory if needed
        - Create tables
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._create_tables()
        logger.info("database ready at %s", self.path)
