"""
models.py
Domain records (members, plans, payments, attendance), form inputs and result types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class MemberStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    DUE = "due"


class PaymentType(str, Enum):
    MONTHLY = "monthly"
    RENEWAL = "renewal"
    ADVANCE = "advance"


class PaymentStatus(str, Enum):
    PAID = "paid"
    PENDING = "pending"


class DuesStatus(str, Enum):
    UNPAID = "Unpaid"
    PART_PAYMENT = "PartPayment"
    PAID = "Paid"


# Offered in the payment form; any non-empty method is accepted
PAYMENT_METHODS = ("cash", "card", "upi", "transfer")


@dataclass(frozen=True)
class Plan:
    id: str
    name: str
    duration_months: int
    price: float
    description: str | None = None

    @classmethod
    def from_row(cls, row) -> "Plan":
        return cls(
            id=row["id"],
            name=row["name"],
            duration_months=int(row["duration_months"]),
            price=float(row["price"]),
            description=row["description"],
        )


@dataclass(frozen=True)
class Member:
    id: str
    member_code: str
    name: str
    mobile_number: str
    address: str
    plan_id: str
    join_date: date
    expiry_date: date
    status: MemberStatus
    image_url: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row) -> "Member":
        return cls(
            id=row["id"],
            member_code=row["member_code"],
            name=row["name"],
            mobile_number=row["mobile_number"],
            address=row["address"],
            plan_id=row["plan_id"],
            join_date=date.fromisoformat(row["join_date"]),
            expiry_date=date.fromisoformat(row["expiry_date"]),
            status=MemberStatus(row["status"]),
            image_url=row["image_url"],
            created_at=_parse_timestamp(row["created_at"]),
            updated_at=_parse_timestamp(row["updated_at"]),
        )


@dataclass(frozen=True)
class Payment:
    id: str
    member_id: str
    amount: float
    payment_date: date
    payment_type: PaymentType
    payment_method: str
    status: PaymentStatus
    invoice_number: str | None = None

    @classmethod
    def from_row(cls, row) -> "Payment":
        return cls(
            id=row["id"],
            member_id=row["member_id"],
            amount=float(row["amount"]),
            payment_date=date.fromisoformat(row["payment_date"]),
            payment_type=PaymentType(row["payment_type"]),
            payment_method=row["payment_method"],
            status=PaymentStatus(row["status"]),
            invoice_number=row["invoice_number"],
        )


@dataclass(frozen=True)
class Attendance:
    id: str
    member_id: str
    check_in_time: datetime
    check_out_time: datetime | None = None

    @classmethod
    def from_row(cls, row) -> "Attendance":
        return cls(
            id=row["id"],
            member_id=row["member_id"],
            check_in_time=datetime.fromisoformat(row["check_in_time"]),
            check_out_time=_parse_timestamp(row["check_out_time"]),
        )


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


# ---------- Form inputs ----------

@dataclass
class MemberForm:
    member_code: str
    name: str
    mobile_number: str
    address: str
    plan_id: str | None
    join_date: date | None


@dataclass
class PlanForm:
    name: str
    price: float | str | None
    duration_months: int | str | None
    description: str | None = None


@dataclass
class PaymentForm:
    member_id: str | None
    amount: float | str | None
    payment_date: date | None
    payment_method: str
    payment_type: str = PaymentType.MONTHLY.value
    status: str = PaymentStatus.PAID.value
    invoice_number: str | None = None


@dataclass(frozen=True)
class ImageUpload:
    data: bytes
    filename: str


# ---------- Results ----------

@dataclass
class ValidationResult:
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


class Outcome(str, Enum):
    SUCCESS = "success"
    CONFIRMATION_REQUIRED = "confirmation_required"
    VALIDATION_ERROR = "validation_error"
    REFERENCE_ERROR = "reference_error"
    PERSISTENCE_ERROR = "persistence_error"


@dataclass
class WorkflowResult:
    outcome: Outcome
    record: object | None = None
    errors: dict[str, str] = field(default_factory=dict)
    message: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome == Outcome.SUCCESS


@dataclass(frozen=True)
class UploadResult:
    url: str | None = None
    error: str | None = None
