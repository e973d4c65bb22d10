"""
utils.py
Dates, membership/dues derivation rules, validation, exports, sample data.
"""

from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta
from typing import Iterable

import pandas as pd

from models import (
    DuesStatus,
    Member,
    MemberForm,
    MemberStatus,
    Payment,
    PaymentForm,
    PaymentStatus,
    PaymentType,
    Plan,
    PlanForm,
    ValidationResult,
)


def parse_iso(d: str) -> date:
    return date.fromisoformat(d)


def start_of_day(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        value = value.date()
    return datetime.combine(value, time.min)


def end_of_day(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        value = value.date()
    return datetime.combine(value, time.max)


def add_months(start: date, months: int) -> date:
    """
    Add (or subtract) months while keeping day in valid range (e.g., Jan 31 + 1 month => Feb 28/29).
    A start on the last day of its month lands on the last day of the target month.
    """
    y = start.year + (start.month - 1 + months) // 12
    m = (start.month - 1 + months) % 12 + 1
    # last day of target month
    if m == 12:
        next_month = date(y + 1, 1, 1)
    else:
        next_month = date(y, m + 1, 1)
    last_day = next_month - timedelta(days=1)
    if (start + timedelta(days=1)).month != start.month:
        return last_day
    day = min(start.day, last_day.day)
    return date(y, m, day)


# ---------- Derivation rules ----------

def compute_expiry(join_date: date, plan_duration_months: int) -> date:
    return add_months(join_date, plan_duration_months)


def compute_membership_status(expiry_date: date, reference_date: date | datetime) -> MemberStatus:
    # date-only comparison; time of day on the reference is ignored
    if isinstance(reference_date, datetime):
        reference_date = reference_date.date()
    if expiry_date < reference_date:
        return MemberStatus.EXPIRED
    return MemberStatus.ACTIVE


def total_paid(payments: Iterable[Payment]) -> float:
    return round(sum(p.amount for p in payments if p.status == PaymentStatus.PAID), 2)


def compute_due(plan_price: float, payments: Iterable[Payment]) -> float:
    return max(0.0, round(plan_price - total_paid(payments), 2))


def compute_payment_status(due: float, paid: float) -> DuesStatus:
    if paid <= 0:
        return DuesStatus.UNPAID
    if due > 0:
        return DuesStatus.PART_PAYMENT
    return DuesStatus.PAID


def period_start(member: Member, plan: Plan) -> date:
    """Earliest day whose plan period ends on the member's expiry date."""
    start = add_months(member.expiry_date, -plan.duration_months)
    # end-of-month clamping maps several start days onto the same expiry
    while compute_expiry(start - timedelta(days=1), plan.duration_months) == member.expiry_date:
        start -= timedelta(days=1)
    return start


def payments_for_period(member: Member, plan: Plan, payments: Iterable[Payment]) -> list[Payment]:
    start = period_start(member, plan)
    return [p for p in payments if p.member_id == member.id and p.payment_date >= start]


def effective_status(
    member: Member,
    plan: Plan | None,
    payments: Iterable[Payment],
    reference_date: date | datetime,
) -> MemberStatus:
    status = compute_membership_status(member.expiry_date, reference_date)
    if status == MemberStatus.EXPIRED or plan is None:
        return status
    period = payments_for_period(member, plan, payments)
    paid = total_paid(period)
    if compute_payment_status(compute_due(plan.price, period), paid) == DuesStatus.PART_PAYMENT:
        return MemberStatus.DUE
    return MemberStatus.ACTIVE


def renewal_expiry(current_expiry: date, payment_date: date, plan_duration_months: int) -> date:
    """
    A renewal continues from the current expiry while it is still running,
    otherwise it starts on the payment date.
    """
    base = current_expiry if current_expiry >= payment_date else payment_date
    return add_months(base, plan_duration_months)


def status_card(member: Member, plan: Plan, payments: Iterable[Payment], reference_date: date) -> dict:
    period = payments_for_period(member, plan, payments)
    paid = total_paid(period)
    due = compute_due(plan.price, period)
    return {
        "plan": plan.name,
        "price": plan.price,
        "validity": f"{member.join_date:%d-%m-%Y} to {member.expiry_date:%d-%m-%Y}",
        "total_paid": paid,
        "due": due,
        "payment_status": compute_payment_status(due, paid),
        "membership_status": compute_membership_status(member.expiry_date, reference_date),
    }


def due_notice_text(member: Member, plan: Plan, due: float, gym_name: str, currency: str = "") -> str:
    return (
        f"Dear {member.name},\n"
        f"This is a reminder from {gym_name}.\n"
        f"Member ID: {member.member_code}\n"
        f"Plan: {plan.name} ({currency}{plan.price:.2f})\n"
        f"Date of Expiry: {member.expiry_date:%B %d, %Y}\n"
        f"Due Amount: {currency}{due:.2f}\n"
        "Please clear the due amount as early as possible to continue your membership with the Gym."
    )


def receipt_number(payment: Payment) -> str:
    return payment.invoice_number or payment.id[-6:].upper()


def receipt_text(
    payment: Payment,
    member: Member,
    member_payments: list[Payment],
    gym_name: str,
    currency: str = "",
) -> str:
    """
    Plain-text receipt for one payment, itemising every payment of the member.
    Marked PAID only when none of the member's payments is pending.
    """
    items = sorted(member_payments, key=lambda p: p.payment_date)
    total = round(sum(p.amount for p in items), 2)
    overall = "PAID" if all(p.status == PaymentStatus.PAID for p in items) else "PENDING"
    lines = [
        f"{gym_name}",
        f"RECEIPT #{receipt_number(payment)}  [{overall}]",
        "",
        "Billed to:",
        f"  {member.name}",
        f"  {member.address}",
        f"  {member.mobile_number}",
        f"Payment Date: {payment.payment_date:%B %d, %Y}",
        f"Payment Method: {payment.payment_method.capitalize()}",
        "",
    ]
    for p in items:
        label = f"{p.payment_type.value.capitalize()} Payment ({p.payment_date:%b %d, %Y})"
        lines.append(f"{label:<40}{currency}{p.amount:.2f}")
    lines += [
        "",
        f"{'Subtotal':<40}{currency}{total:.2f}",
        f"{'Tax (0%)':<40}{currency}0.00",
        f"{'Total Paid':<40}{currency}{total:.2f}",
        "",
        "Thank you for your business!",
    ]
    return "\n".join(lines)


# ---------- Validation ----------

def _positive_number(value) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) and number > 0 else None


def validate_member_form(form: MemberForm) -> ValidationResult:
    errors: dict[str, str] = {}
    if not form.member_code.strip():
        errors["member_code"] = "Member ID cannot be empty."
    if len(form.name.strip()) < 2:
        errors["name"] = "Name must be at least 2 characters."
    if len(form.mobile_number.strip()) < 10:
        errors["mobile_number"] = "Please enter a valid mobile number."
    if len(form.address.strip()) < 5:
        errors["address"] = "Address is too short."
    if not form.plan_id:
        errors["plan_id"] = "Please select a membership plan."
    if form.join_date is None:
        errors["join_date"] = "Please select a joining date."
    return ValidationResult(errors)


def validate_plan_form(form: PlanForm) -> ValidationResult:
    errors: dict[str, str] = {}
    if len(form.name.strip()) < 2:
        errors["name"] = "Plan name must be at least 2 characters."
    if _positive_number(form.price) is None:
        errors["price"] = "Price must be a positive number."
    duration = _positive_number(form.duration_months)
    if duration is None or duration != int(duration):
        errors["duration_months"] = "Duration must be a positive number of months."
    return ValidationResult(errors)


def validate_payment_form(form: PaymentForm) -> ValidationResult:
    errors: dict[str, str] = {}
    if not form.member_id:
        errors["member_id"] = "Please select a member."
    if _positive_number(form.amount) is None:
        errors["amount"] = "Amount must be positive."
    if form.payment_date is None:
        errors["payment_date"] = "Please select a payment date."
    if not form.payment_method.strip():
        errors["payment_method"] = "Payment method cannot be empty."
    if form.payment_type not in {t.value for t in PaymentType}:
        errors["payment_type"] = "Please select a payment type."
    if form.status not in {s.value for s in PaymentStatus}:
        errors["status"] = "Please select a payment status."
    return ValidationResult(errors)


# ---------- Reports ----------

def members_frame(members: list[Member], plans: list[Plan], payments: list[Payment], reference_date: date) -> pd.DataFrame:
    columns = ["member_code", "name", "mobile_number", "address", "plan", "join_date", "expiry_date", "status", "due"]
    plan_by_id = {p.id: p for p in plans}
    records = []
    for m in members:
        plan = plan_by_id.get(m.plan_id)
        due = compute_due(plan.price, payments_for_period(m, plan, payments)) if plan else None
        records.append({
            "member_code": m.member_code,
            "name": m.name,
            "mobile_number": m.mobile_number,
            "address": m.address,
            "plan": plan.name if plan else "(deleted)",
            "join_date": m.join_date.isoformat(),
            "expiry_date": m.expiry_date.isoformat(),
            "status": effective_status(m, plan, payments, reference_date).value,
            "due": due,
        })
    return pd.DataFrame(records, columns=columns)


def payments_frame(payments: list[Payment], members: list[Member]) -> pd.DataFrame:
    columns = ["payment_date", "member", "amount", "payment_type", "payment_method", "status", "invoice_number"]
    names = {m.id: m.name for m in members}
    records = [
        {
            "payment_date": p.payment_date.isoformat(),
            "member": names.get(p.member_id, "Unknown Member"),
            "amount": p.amount,
            "payment_type": p.payment_type.value,
            "payment_method": p.payment_method,
            "status": p.status.value,
            "invoice_number": p.invoice_number,
        }
        for p in payments
    ]
    return pd.DataFrame(records, columns=columns)


def frame_to_csv_bytes(df: pd.DataFrame) -> bytes:
    return df.to_csv(index=False).encode("utf-8")


def revenue_summary_by_month(payments: list[Payment]) -> pd.DataFrame:
    paid = [
        {"month": p.payment_date.strftime("%Y-%m"), "revenue": p.amount}
        for p in payments
        if p.status == PaymentStatus.PAID
    ]
    if not paid:
        return pd.DataFrame(columns=["month", "revenue"])
    df = pd.DataFrame(paid).groupby("month", as_index=False)["revenue"].sum()
    return df.sort_values("month", ascending=False).reset_index(drop=True)


def expiring_soon(members: list[Member], reference_date: date, days: int) -> list[Member]:
    horizon = reference_date + timedelta(days=days)
    return sorted(
        (m for m in members if reference_date <= m.expiry_date <= horizon),
        key=lambda m: m.expiry_date,
    )


def dashboard_stats(repo, reference_date: date) -> dict:
    members = repo.list_members()
    plans = {p.id: p for p in repo.list_plans()}
    payments = repo.list_payments()
    present = repo.list_attendance(start=start_of_day(reference_date), end=end_of_day(reference_date))

    statuses = [effective_status(m, plans.get(m.plan_id), payments, reference_date) for m in members]
    month = reference_date.strftime("%Y-%m")
    return {
        "active_members": sum(1 for s in statuses if s == MemberStatus.ACTIVE),
        "todays_collection": sum(p.amount for p in payments if p.payment_date == reference_date),
        "expiry_today": sum(1 for m in members if m.expiry_date == reference_date),
        "present_today": len({a.member_id for a in present}),
        "monthly_collection": sum(p.amount for p in payments if p.payment_date.strftime("%Y-%m") == month),
        "pending_dues": sum(1 for s in statuses if s == MemberStatus.DUE),
        "total_collection": sum(p.amount for p in payments),
        "total_dues": sum(p.amount for p in payments if p.status == PaymentStatus.PENDING),
    }


# ---------- Sample data ----------

DEFAULT_PLANS = [
    ("Monthly", 1, 50.0),
    ("Quarterly", 3, 135.0),
    ("Annual", 12, 500.0),
]


def insert_sample_data(repo, placeholder_url: str, today: date | None = None) -> None:
    """
    Insert the default plans, a few members, payments and check-ins
    (safe to run multiple times: adds new rows each time).
    """
    today = today or date.today()
    monthly, quarterly, annual = [
        repo.add_plan(name, months, price) for name, months, price in DEFAULT_PLANS
    ]

    samples = [
        # code, name, mobile, address, plan, months ago joined, expiry
        ("GYM-001", "Alicia Rodriguez", "1112223333", "123 Main St, Anytown", quarterly, 5, add_months(today, 1)),
        ("GYM-002", "David Chen", "2223334444", "456 Oak Ave, Anytown", monthly, 1, today + timedelta(days=5)),
        ("GYM-003", "Priya Sharma", "3334445555", "789 Pine Ln, Anytown", annual, 11, add_months(today, 1)),
        ("GYM-004", "Michael Johnson", "4445556666", "101 Maple Dr, Anytown", monthly, 2, today - timedelta(days=10)),
        ("GYM-005", "Chloe Kim", "5556667777", "212 Birch Ct, Anytown", quarterly, 4, add_months(today, 2)),
    ]
    members = []
    for code, name, mobile, address, plan, joined_ago, expiry in samples:
        join = add_months(today, -joined_ago)
        members.append(
            repo.add_member(
                member_code=code,
                name=name,
                mobile_number=mobile,
                address=address,
                plan_id=plan.id,
                join_date=join,
                expiry_date=expiry,
                status=compute_membership_status(expiry, today),
                image_url=placeholder_url.format(seed=code),
            )
        )

    payments = [
        (members[0], 135.0, add_months(today, -2), PaymentStatus.PAID),
        (members[1], 50.0, add_months(today, -1), PaymentStatus.PAID),
        (members[1], 50.0, today, PaymentStatus.PAID),
        (members[2], 500.0, add_months(today, -11), PaymentStatus.PAID),
        (members[3], 50.0, add_months(today, -2), PaymentStatus.PAID),
        (members[4], 60.0, add_months(today, -1), PaymentStatus.PAID),
        (members[4], 75.0, add_months(today, -1), PaymentStatus.PENDING),
    ]
    for member, amount, paid_on, status in payments:
        repo.add_payment(
            member_id=member.id,
            amount=amount,
            payment_date=paid_on,
            payment_type=PaymentType.MONTHLY,
            payment_method="cash",
            status=status,
        )

    for offset, member in enumerate(members[:3]):
        repo.add_attendance(member.id, start_of_day(today - timedelta(days=offset)) + timedelta(hours=7))
