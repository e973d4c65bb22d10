"""
repository.py
Collection access for members, plans, payments and attendance.
All reads return frozen records from models.py; all writes go through Database.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

from db import Database
from models import Attendance, Member, Payment, Plan

# Columns a partial update may touch, per table
_MEMBER_FIELDS = {
    "member_code", "name", "mobile_number", "address", "plan_id",
    "join_date", "expiry_date", "status", "image_url", "updated_at",
}
_PLAN_FIELDS = {"name", "description", "duration_months", "price", "updated_at"}
_PAYMENT_FIELDS = {
    "member_id", "amount", "payment_date", "payment_type", "payment_method",
    "status", "invoice_number", "updated_at",
}
_ATTENDANCE_FIELDS = {"check_out_time"}


def new_id() -> str:
    return uuid.uuid4().hex


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _to_db(value):
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if hasattr(value, "value"):  # Enum members
        return value.value
    return value


def _update_sql(table: str, allowed: set[str], fields: dict) -> tuple[str, tuple]:
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Unknown {table} fields: {', '.join(sorted(unknown))}")
    assignments = ", ".join(f"{name}=?" for name in fields)
    params = tuple(_to_db(v) for v in fields.values())
    return f"UPDATE {table} SET {assignments} WHERE id=?", params


class GymRepository:
    def __init__(self, db: Database):
        self.db = db

    # ---------- Plans ----------

    def add_plan(self, name: str, duration_months: int, price: float, description: str | None = None) -> Plan:
        plan_id = new_id()
        self.db.execute(
            """
            INSERT INTO plans(id, name, description, duration_months, price, created_at)
            VALUES(?,?,?,?,?,?)
            """,
            (plan_id, name, description, duration_months, price, now_iso()),
        )
        return Plan(id=plan_id, name=name, duration_months=duration_months, price=price, description=description)

    def get_plan(self, plan_id: str | None) -> Plan | None:
        if not plan_id:
            return None
        row = self.db.fetch_one("SELECT * FROM plans WHERE id = ?", (plan_id,))
        return Plan.from_row(row) if row else None

    def list_plans(self) -> list[Plan]:
        rows = self.db.fetch_all("SELECT * FROM plans ORDER BY duration_months ASC, name ASC")
        return [Plan.from_row(r) for r in rows]

    def update_plan(self, plan_id: str, **fields) -> bool:
        sql, params = _update_sql("plans", _PLAN_FIELDS, fields)
        return self.db.execute(sql, params + (plan_id,)) > 0

    def delete_plan(self, plan_id: str) -> bool:
        return self.db.execute("DELETE FROM plans WHERE id = ?", (plan_id,)) > 0

    def count_members_on_plan(self, plan_id: str) -> int:
        row = self.db.fetch_one("SELECT COUNT(*) AS c FROM members WHERE plan_id = ?", (plan_id,))
        return int(row["c"])

    # ---------- Members ----------

    def add_member(
        self,
        member_code: str,
        name: str,
        mobile_number: str,
        address: str,
        plan_id: str,
        join_date: date,
        expiry_date: date,
        status,
        image_url: str,
    ) -> Member:
        member_id = new_id()
        created = now_iso()
        self.db.execute(
            """
            INSERT INTO members(id, member_code, name, mobile_number, address, plan_id,
                join_date, expiry_date, status, image_url, created_at)
            VALUES(?,?,?,?,?,?,?,?,?,?,?)
            """,
            (
                member_id, member_code, name, mobile_number, address, plan_id,
                join_date.isoformat(), expiry_date.isoformat(), _to_db(status), image_url, created,
            ),
        )
        return self.get_member(member_id)

    def get_member(self, member_id: str | None) -> Member | None:
        if not member_id:
            return None
        row = self.db.fetch_one("SELECT * FROM members WHERE id = ?", (member_id,))
        return Member.from_row(row) if row else None

    def list_members(self, search: str = "", sort_by_expiry: bool = False) -> list[Member]:
        sql = "SELECT * FROM members WHERE 1=1"
        params = []

        if search.strip():
            sql += " AND (name LIKE ? OR mobile_number LIKE ? OR member_code LIKE ?)"
            like = f"%{search.strip()}%"
            params.extend([like, like, like])

        if sort_by_expiry:
            sql += " ORDER BY expiry_date ASC, name ASC"
        else:
            sql += " ORDER BY name ASC"

        return [Member.from_row(r) for r in self.db.fetch_all(sql, tuple(params))]

    def update_member(self, member_id: str, **fields) -> bool:
        sql, params = _update_sql("members", _MEMBER_FIELDS, fields)
        return self.db.execute(sql, params + (member_id,)) > 0

    def delete_member(self, member_id: str) -> bool:
        return self.db.execute("DELETE FROM members WHERE id = ?", (member_id,)) > 0

    # ---------- Payments ----------

    def add_payment(
        self,
        member_id: str,
        amount: float,
        payment_date: date,
        payment_type,
        payment_method: str,
        status,
        invoice_number: str | None = None,
        member_update: dict | None = None,
    ) -> Payment:
        """Insert a payment; member_update is applied to the owning member in the same transaction."""
        payment_id = new_id()
        with self.db.get_conn() as conn:
            conn.execute(
                """
                INSERT INTO payments(id, member_id, amount, payment_date, payment_type,
                    payment_method, status, invoice_number, created_at)
                VALUES(?,?,?,?,?,?,?,?,?)
                """,
                (
                    payment_id, member_id, amount, payment_date.isoformat(), _to_db(payment_type),
                    payment_method, _to_db(status), invoice_number, now_iso(),
                ),
            )
            if member_update:
                sql, params = _update_sql("members", _MEMBER_FIELDS, member_update)
                conn.execute(sql, params + (member_id,))
        return self.get_payment(payment_id)

    def get_payment(self, payment_id: str) -> Payment | None:
        row = self.db.fetch_one("SELECT * FROM payments WHERE id = ?", (payment_id,))
        return Payment.from_row(row) if row else None

    def list_payments(self, member_id: str | None = None) -> list[Payment]:
        if member_id:
            rows = self.db.fetch_all(
                "SELECT * FROM payments WHERE member_id = ? ORDER BY payment_date DESC, created_at DESC",
                (member_id,),
            )
        else:
            rows = self.db.fetch_all("SELECT * FROM payments ORDER BY payment_date DESC, created_at DESC")
        return [Payment.from_row(r) for r in rows]

    def update_payment(self, payment_id: str, **fields) -> bool:
        sql, params = _update_sql("payments", _PAYMENT_FIELDS, fields)
        return self.db.execute(sql, params + (payment_id,)) > 0

    def delete_payment(self, payment_id: str) -> bool:
        return self.db.execute("DELETE FROM payments WHERE id = ?", (payment_id,)) > 0

    # ---------- Attendance ----------

    def add_attendance(self, member_id: str, check_in_time: datetime) -> Attendance:
        attendance_id = new_id()
        self.db.execute(
            "INSERT INTO attendance(id, member_id, check_in_time) VALUES(?,?,?)",
            (attendance_id, member_id, check_in_time.isoformat()),
        )
        return Attendance(id=attendance_id, member_id=member_id, check_in_time=check_in_time)

    def get_attendance(self, attendance_id: str) -> Attendance | None:
        row = self.db.fetch_one("SELECT * FROM attendance WHERE id = ?", (attendance_id,))
        return Attendance.from_row(row) if row else None

    def list_attendance(
        self,
        member_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Attendance]:
        sql = "SELECT * FROM attendance WHERE 1=1"
        params = []
        if member_id:
            sql += " AND member_id = ?"
            params.append(member_id)
        if start is not None:
            sql += " AND check_in_time >= ?"
            params.append(start.isoformat())
        if end is not None:
            sql += " AND check_in_time <= ?"
            params.append(end.isoformat())
        sql += " ORDER BY check_in_time DESC"
        return [Attendance.from_row(r) for r in self.db.fetch_all(sql, tuple(params))]

    def update_attendance(self, attendance_id: str, **fields) -> bool:
        sql, params = _update_sql("attendance", _ATTENDANCE_FIELDS, fields)
        return self.db.execute(sql, params + (attendance_id,)) > 0
