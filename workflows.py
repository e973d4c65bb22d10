"""
workflows.py
Member, plan, payment and attendance mutations.

Every workflow validates first, resolves references second and only then
writes, returning a WorkflowResult the caller inspects before refreshing
what it displays.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from enum import Enum

import utils
from db import PersistenceError
from models import (
    ImageUpload,
    Member,
    MemberForm,
    MemberStatus,
    Outcome,
    PaymentForm,
    PaymentType,
    PlanForm,
    WorkflowResult,
)
from repository import GymRepository
from uploads import placeholder_image_url

logger = logging.getLogger(__name__)

PLAN_NOT_FOUND = "Selected plan not found."
MEMBER_NOT_FOUND = "Selected member not found."


class EditState(str, Enum):
    EDITING = "editing"
    CONFIRMING_EXPIRY_UPDATE = "confirming_expiry_update"
    SAVED = "saved"


def _invalid(errors: dict[str, str]) -> WorkflowResult:
    return WorkflowResult(Outcome.VALIDATION_ERROR, errors=errors)


def _missing(message: str) -> WorkflowResult:
    return WorkflowResult(Outcome.REFERENCE_ERROR, message=message)


def _failed(action: str, exc: PersistenceError) -> WorkflowResult:
    logger.error("could not %s: %s", action, exc)
    return WorkflowResult(Outcome.PERSISTENCE_ERROR, message=f"There was a problem trying to {action}. Please try again.")


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


def _upload_image(uploader, image: ImageUpload | None) -> tuple[str | None, str | None]:
    """Return (url, error); both are None when there is nothing to upload."""
    if image is None:
        return None, None
    if uploader is None:
        return None, "Image upload service is not configured."
    result = uploader.upload(image.data, image.filename)
    return result.url, result.error


# ---------- Members ----------

def add_member(
    repo: GymRepository,
    form: MemberForm,
    image: ImageUpload | None = None,
    uploader=None,
) -> WorkflowResult:
    validation = utils.validate_member_form(form)
    if not validation.ok:
        return _invalid(validation.errors)

    try:
        plan = repo.get_plan(form.plan_id)
    except PersistenceError as exc:
        return _failed("load plans", exc)
    if plan is None:
        return _missing(PLAN_NOT_FOUND)

    warnings = []
    image_url, upload_error = _upload_image(uploader, image)
    if upload_error:
        warnings.append(upload_error)
    if not image_url:
        image_url = placeholder_image_url()

    try:
        member = repo.add_member(
            member_code=form.member_code.strip(),
            name=form.name.strip(),
            mobile_number=form.mobile_number.strip(),
            address=form.address.strip(),
            plan_id=plan.id,
            join_date=form.join_date,
            expiry_date=utils.compute_expiry(form.join_date, plan.duration_months),
            status=MemberStatus.ACTIVE,
            image_url=image_url,
        )
    except PersistenceError as exc:
        return _failed("add the member", exc)

    logger.info("member %s added on plan %s", member.id, plan.name)
    return WorkflowResult(Outcome.SUCCESS, record=member, message=f"{member.name} has been successfully added.", warnings=warnings)


def needs_expiry_confirmation(member: Member, form: MemberForm) -> bool:
    return form.plan_id != member.plan_id or form.join_date != member.join_date


def edit_member(
    repo: GymRepository,
    member_id: str,
    form: MemberForm,
    update_expiry: bool | None = None,
    image: ImageUpload | None = None,
    remove_image: bool = False,
    uploader=None,
    now: datetime | None = None,
) -> WorkflowResult:
    """
    Save edited member fields.

    When the plan or join date changed and update_expiry is None, nothing is
    written and the result asks for confirmation. update_expiry=True
    recomputes the expiry from the submitted join date and plan;
    update_expiry=False keeps the stored expiry.
    """
    validation = utils.validate_member_form(form)
    if not validation.ok:
        return _invalid(validation.errors)

    try:
        member = repo.get_member(member_id)
        plan = repo.get_plan(form.plan_id)
    except PersistenceError as exc:
        return _failed("load the member", exc)
    if member is None:
        return _missing(MEMBER_NOT_FOUND)
    if plan is None:
        return _missing(PLAN_NOT_FOUND)

    changed = needs_expiry_confirmation(member, form)
    if changed and update_expiry is None:
        return WorkflowResult(
            Outcome.CONFIRMATION_REQUIRED,
            record=member,
            message="The plan or join date changed. Recalculate the expiry date?",
        )

    warnings = []
    image_url = member.image_url
    uploaded, upload_error = _upload_image(uploader, image)
    if upload_error:
        warnings.append(upload_error)
    if uploaded:
        image_url = uploaded
    elif remove_image:
        image_url = placeholder_image_url()

    fields = {
        "member_code": form.member_code.strip(),
        "name": form.name.strip(),
        "mobile_number": form.mobile_number.strip(),
        "address": form.address.strip(),
        "plan_id": plan.id,
        "join_date": form.join_date,
        "image_url": image_url,
        "updated_at": _now(now).isoformat(timespec="seconds"),
    }
    recompute = changed and bool(update_expiry)
    if recompute:
        fields["expiry_date"] = utils.compute_expiry(form.join_date, plan.duration_months)

    try:
        if not repo.update_member(member.id, **fields):
            return _missing(MEMBER_NOT_FOUND)
        saved = repo.get_member(member.id)
    except PersistenceError as exc:
        return _failed("update the member", exc)

    logger.info("member %s updated (expiry recomputed: %s)", member.id, recompute)
    return WorkflowResult(
        Outcome.SUCCESS,
        record=saved,
        message=f"{saved.name}'s details have been successfully updated.",
        warnings=warnings,
    )


def renew_member(
    repo: GymRepository,
    member_id: str,
    new_expiry: date | None,
    now: datetime | None = None,
) -> WorkflowResult:
    if new_expiry is None:
        return _invalid({"new_expiry": "Please select a new expiry date."})
    try:
        updated = repo.update_member(
            member_id,
            expiry_date=new_expiry,
            status=MemberStatus.ACTIVE,
            updated_at=_now(now).isoformat(timespec="seconds"),
        )
        if not updated:
            return _missing(MEMBER_NOT_FOUND)
        member = repo.get_member(member_id)
    except PersistenceError as exc:
        return _failed("renew the membership", exc)

    logger.info("member %s renewed until %s", member_id, new_expiry.isoformat())
    return WorkflowResult(Outcome.SUCCESS, record=member, message=f"{member.name}'s membership has been extended.")


def delete_member(repo: GymRepository, member_id: str) -> WorkflowResult:
    try:
        deleted = repo.delete_member(member_id)
    except PersistenceError as exc:
        return _failed("delete the member", exc)
    if not deleted:
        return _missing(MEMBER_NOT_FOUND)
    logger.info("member %s deleted", member_id)
    return WorkflowResult(Outcome.SUCCESS, message="Member deleted.")


# ---------- Plans ----------

def add_plan(repo: GymRepository, form: PlanForm) -> WorkflowResult:
    validation = utils.validate_plan_form(form)
    if not validation.ok:
        return _invalid(validation.errors)
    try:
        plan = repo.add_plan(
            name=form.name.strip(),
            duration_months=int(float(form.duration_months)),
            price=float(form.price),
            description=(form.description or "").strip() or None,
        )
    except PersistenceError as exc:
        return _failed("add the plan", exc)
    return WorkflowResult(Outcome.SUCCESS, record=plan, message=f"{plan.name} has been successfully added.")


def edit_plan(repo: GymRepository, plan_id: str, form: PlanForm, now: datetime | None = None) -> WorkflowResult:
    """Changes apply to future expiry calculations; stored payments keep their amounts."""
    validation = utils.validate_plan_form(form)
    if not validation.ok:
        return _invalid(validation.errors)
    try:
        updated = repo.update_plan(
            plan_id,
            name=form.name.strip(),
            duration_months=int(float(form.duration_months)),
            price=float(form.price),
            description=(form.description or "").strip() or None,
            updated_at=_now(now).isoformat(timespec="seconds"),
        )
        if not updated:
            return _missing(PLAN_NOT_FOUND)
        plan = repo.get_plan(plan_id)
    except PersistenceError as exc:
        return _failed("update the plan", exc)
    return WorkflowResult(Outcome.SUCCESS, record=plan, message=f"{plan.name} has been updated.")


def delete_plan(repo: GymRepository, plan_id: str) -> WorkflowResult:
    try:
        in_use = repo.count_members_on_plan(plan_id)
        if in_use:
            return _missing(f"This plan is assigned to {in_use} member(s) and cannot be deleted.")
        deleted = repo.delete_plan(plan_id)
    except PersistenceError as exc:
        return _failed("delete the plan", exc)
    if not deleted:
        return _missing(PLAN_NOT_FOUND)
    return WorkflowResult(Outcome.SUCCESS, message="Plan deleted.")


# ---------- Payments ----------

def record_payment(
    repo: GymRepository,
    form: PaymentForm,
    extend_expiry: bool = False,
    now: datetime | None = None,
) -> WorkflowResult:
    """
    Record a payment. A renewal-type payment with extend_expiry set also
    moves the member's expiry forward by one plan duration.
    """
    validation = utils.validate_payment_form(form)
    if not validation.ok:
        return _invalid(validation.errors)

    try:
        member = repo.get_member(form.member_id)
        plan = repo.get_plan(member.plan_id) if member else None
    except PersistenceError as exc:
        return _failed("load the member", exc)
    if member is None:
        return _missing(MEMBER_NOT_FOUND)

    renewing = extend_expiry and form.payment_type == PaymentType.RENEWAL.value
    if renewing and plan is None:
        return _missing(PLAN_NOT_FOUND)

    member_update = None
    if renewing:
        member_update = {
            "expiry_date": utils.renewal_expiry(member.expiry_date, form.payment_date, plan.duration_months),
            "status": MemberStatus.ACTIVE,
            "updated_at": _now(now).isoformat(timespec="seconds"),
        }

    try:
        payment = repo.add_payment(
            member_id=member.id,
            amount=float(form.amount),
            payment_date=form.payment_date,
            payment_type=form.payment_type,
            payment_method=form.payment_method.strip(),
            status=form.status,
            invoice_number=(form.invoice_number or "").strip() or None,
            member_update=member_update,
        )
    except PersistenceError as exc:
        return _failed("record the payment", exc)

    logger.info("payment %s recorded for member %s (renewal: %s)", payment.id, member.id, renewing)
    return WorkflowResult(Outcome.SUCCESS, record=payment, message=f"Payment recorded for {member.name}.")


def edit_payment(repo: GymRepository, payment_id: str, form: PaymentForm, now: datetime | None = None) -> WorkflowResult:
    validation = utils.validate_payment_form(form)
    if not validation.ok:
        return _invalid(validation.errors)
    try:
        if repo.get_member(form.member_id) is None:
            return _missing(MEMBER_NOT_FOUND)
        updated = repo.update_payment(
            payment_id,
            member_id=form.member_id,
            amount=float(form.amount),
            payment_date=form.payment_date,
            payment_type=form.payment_type,
            payment_method=form.payment_method.strip(),
            status=form.status,
            invoice_number=(form.invoice_number or "").strip() or None,
            updated_at=_now(now).isoformat(timespec="seconds"),
        )
        if not updated:
            return _missing("Selected payment not found.")
        payment = repo.get_payment(payment_id)
    except PersistenceError as exc:
        return _failed("update the payment", exc)
    return WorkflowResult(Outcome.SUCCESS, record=payment, message="The payment record has been successfully updated.")


def delete_payment(repo: GymRepository, payment_id: str) -> WorkflowResult:
    try:
        deleted = repo.delete_payment(payment_id)
    except PersistenceError as exc:
        return _failed("delete the payment", exc)
    if not deleted:
        return _missing("Selected payment not found.")
    return WorkflowResult(Outcome.SUCCESS, message="Payment deleted.")


# ---------- Attendance ----------

def check_in(repo: GymRepository, member_id: str, at: datetime | None = None) -> WorkflowResult:
    at = at or datetime.now()
    try:
        member = repo.get_member(member_id)
        if member is None:
            return _missing(MEMBER_NOT_FOUND)
        today = repo.list_attendance(member_id=member_id, start=utils.start_of_day(at), end=utils.end_of_day(at))
        if today:
            return WorkflowResult(Outcome.VALIDATION_ERROR, errors={"member_id": f"{member.name} is already checked in today."})
        record = repo.add_attendance(member_id, at)
    except PersistenceError as exc:
        return _failed("check the member in", exc)
    return WorkflowResult(Outcome.SUCCESS, record=record, message=f"{member.name} has been checked in for today.")


def check_out(repo: GymRepository, attendance_id: str, at: datetime | None = None) -> WorkflowResult:
    at = at or datetime.now()
    try:
        record = repo.get_attendance(attendance_id)
        if record is None:
            return _missing("Attendance record not found.")
        if at < record.check_in_time:
            return _invalid({"check_out_time": "Check-out cannot be before check-in."})
        repo.update_attendance(attendance_id, check_out_time=at)
        record = repo.get_attendance(attendance_id)
    except PersistenceError as exc:
        return _failed("check the member out", exc)
    return WorkflowResult(Outcome.SUCCESS, record=record, message="Checked out.")
