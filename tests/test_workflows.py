from datetime import date, datetime, timezone

from models import MemberForm, MemberStatus, Outcome, PaymentForm, PaymentStatus, PlanForm, ImageUpload
import workflows

PHOTO = ImageUpload(data=b"\xff\xd8jpeg", filename="photo.jpg")


def _edited(form: MemberForm, **changes) -> MemberForm:
    values = dict(form.__dict__)
    values.update(changes)
    return MemberForm(**values)


# ---------- Add member ----------

def test_add_member_computes_expiry_and_forces_active(repo, member_form):
    result = workflows.add_member(repo, member_form)
    assert result.outcome == Outcome.SUCCESS
    member = repo.get_member(result.record.id)
    assert member.expiry_date == date(2024, 2, 15)
    assert member.status == MemberStatus.ACTIVE
    assert member.image_url.startswith("https://picsum.photos/seed/")


def test_add_member_uses_uploaded_image(repo, member_form, uploader_ok):
    result = workflows.add_member(repo, member_form, image=PHOTO, uploader=uploader_ok)
    assert result.ok
    assert result.record.image_url == "https://i.ibb.co/abc/photo.jpg"
    assert uploader_ok.calls == [(PHOTO.data, "photo.jpg")]


def test_failed_upload_does_not_block_member_creation(repo, member_form, uploader_failing):
    result = workflows.add_member(repo, member_form, image=PHOTO, uploader=uploader_failing)
    assert result.outcome == Outcome.SUCCESS
    assert result.warnings == ["Failed to upload image. Status: 500"]
    assert "picsum.photos" in repo.get_member(result.record.id).image_url


def test_add_member_with_missing_plan_writes_nothing(repo, member_form):
    result = workflows.add_member(repo, _edited(member_form, plan_id="gone"))
    assert result.outcome == Outcome.REFERENCE_ERROR
    assert result.message == workflows.PLAN_NOT_FOUND
    assert repo.list_members() == []


def test_add_member_validation_error(repo, member_form):
    result = workflows.add_member(repo, _edited(member_form, name="A"))
    assert result.outcome == Outcome.VALIDATION_ERROR
    assert "name" in result.errors
    assert repo.list_members() == []


# ---------- Edit member ----------

def test_edit_without_plan_or_date_change_keeps_expiry(repo, member_form):
    member = workflows.add_member(repo, member_form).record
    repo.update_member(member.id, expiry_date=date(2024, 9, 9))

    result = workflows.edit_member(repo, member.id, _edited(member_form, name="Alicia R."))
    assert result.outcome == Outcome.SUCCESS
    saved = repo.get_member(member.id)
    assert saved.name == "Alicia R."
    assert saved.expiry_date == date(2024, 9, 9)
    assert saved.updated_at is not None


def test_edit_with_unchanged_fields_ignores_update_flag(repo, member_form):
    member = workflows.add_member(repo, member_form).record
    repo.update_member(member.id, expiry_date=date(2024, 9, 9))
    workflows.edit_member(repo, member.id, member_form, update_expiry=True)
    assert repo.get_member(member.id).expiry_date == date(2024, 9, 9)


def test_plan_change_requires_confirmation(repo, member_form, plans):
    member = workflows.add_member(repo, member_form).record
    result = workflows.edit_member(repo, member.id, _edited(member_form, plan_id=plans["annual"].id, name="Changed"))
    assert result.outcome == Outcome.CONFIRMATION_REQUIRED
    unchanged = repo.get_member(member.id)
    assert unchanged.plan_id == plans["monthly"].id
    assert unchanged.name == "Alicia Rodriguez"


def test_confirmed_plan_change_recomputes_expiry_from_new_join_date(repo, member_form, plans):
    member = workflows.add_member(repo, member_form).record
    form = _edited(member_form, plan_id=plans["annual"].id, join_date=date(2024, 3, 31))

    result = workflows.edit_member(repo, member.id, form, update_expiry=True)
    assert result.outcome == Outcome.SUCCESS
    saved = repo.get_member(member.id)
    assert saved.plan_id == plans["annual"].id
    assert saved.join_date == date(2024, 3, 31)
    assert saved.expiry_date == date(2025, 3, 31)


def test_declined_plan_change_keeps_expiry(repo, member_form, plans):
    member = workflows.add_member(repo, member_form).record
    form = _edited(member_form, plan_id=plans["annual"].id)

    result = workflows.edit_member(repo, member.id, form, update_expiry=False)
    assert result.outcome == Outcome.SUCCESS
    saved = repo.get_member(member.id)
    assert saved.plan_id == plans["annual"].id
    assert saved.expiry_date == member.expiry_date


def test_edit_aborts_when_plan_vanished(repo, member_form, plans):
    member = workflows.add_member(repo, member_form).record
    result = workflows.edit_member(repo, member.id, _edited(member_form, plan_id="gone", name="Other"), update_expiry=True)
    assert result.outcome == Outcome.REFERENCE_ERROR
    assert repo.get_member(member.id).name == "Alicia Rodriguez"


def test_edit_records_update_timestamp(repo, member_form):
    member = workflows.add_member(repo, member_form).record
    stamp = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    workflows.edit_member(repo, member.id, member_form, now=stamp)
    assert repo.get_member(member.id).updated_at == stamp


def test_edit_remove_image_assigns_placeholder(repo, member_form, uploader_ok):
    member = workflows.add_member(repo, member_form, image=PHOTO, uploader=uploader_ok).record
    workflows.edit_member(repo, member.id, member_form, remove_image=True)
    assert "picsum.photos" in repo.get_member(member.id).image_url


# ---------- Renew / delete ----------

def test_renew_sets_expiry_and_status(repo, member_form):
    member = workflows.add_member(repo, member_form).record
    repo.update_member(member.id, status=MemberStatus.EXPIRED)

    result = workflows.renew_member(repo, member.id, date(2024, 12, 31))
    assert result.ok
    saved = repo.get_member(member.id)
    assert saved.expiry_date == date(2024, 12, 31)
    assert saved.status == MemberStatus.ACTIVE


def test_renew_unknown_member(repo):
    assert workflows.renew_member(repo, "missing", date(2024, 12, 31)).outcome == Outcome.REFERENCE_ERROR


def test_delete_member_removes_payments_and_attendance(repo, member_form):
    member = workflows.add_member(repo, member_form).record
    workflows.record_payment(
        repo, PaymentForm(member_id=member.id, amount=50, payment_date=date(2024, 1, 15), payment_method="cash")
    )
    workflows.check_in(repo, member.id, at=datetime(2024, 1, 16, 7, 0))

    assert workflows.delete_member(repo, member.id).ok
    assert repo.get_member(member.id) is None
    assert repo.list_payments() == []
    assert repo.list_attendance() == []


# ---------- Plans ----------

def test_plan_in_use_cannot_be_deleted(repo, member_form, plans):
    workflows.add_member(repo, member_form)
    result = workflows.delete_plan(repo, plans["monthly"].id)
    assert result.outcome == Outcome.REFERENCE_ERROR
    assert repo.get_plan(plans["monthly"].id) is not None


def test_unused_plan_can_be_deleted(repo, plans):
    assert workflows.delete_plan(repo, plans["annual"].id).ok
    assert repo.get_plan(plans["annual"].id) is None


def test_add_and_edit_plan(repo):
    plan = workflows.add_plan(repo, PlanForm(name="Half-year", price="250", duration_months="6")).record
    assert plan.duration_months == 6

    result = workflows.edit_plan(repo, plan.id, PlanForm(name="Half-year", price=275, duration_months=6, description="Promo"))
    assert result.ok
    assert repo.get_plan(plan.id).price == 275.0
    assert repo.get_plan(plan.id).description == "Promo"


# ---------- Payments ----------

def test_record_payment_rejects_unknown_member(repo):
    form = PaymentForm(member_id="missing", amount=50, payment_date=date(2024, 1, 1), payment_method="cash")
    assert workflows.record_payment(repo, form).outcome == Outcome.REFERENCE_ERROR
    assert repo.list_payments() == []


def test_renewal_payment_extends_expiry(repo, member_form):
    member = workflows.add_member(repo, member_form).record
    form = PaymentForm(
        member_id=member.id,
        amount=50,
        payment_date=date(2024, 2, 10),
        payment_method="upi",
        payment_type="renewal",
    )
    result = workflows.record_payment(repo, form, extend_expiry=True)
    assert result.ok
    assert repo.get_member(member.id).expiry_date == date(2024, 3, 15)


def test_renewal_payment_without_extension_leaves_expiry(repo, member_form):
    member = workflows.add_member(repo, member_form).record
    form = PaymentForm(
        member_id=member.id, amount=50, payment_date=date(2024, 2, 10), payment_method="upi", payment_type="renewal"
    )
    workflows.record_payment(repo, form, extend_expiry=False)
    assert repo.get_member(member.id).expiry_date == date(2024, 2, 15)


def test_monthly_payment_never_extends_expiry(repo, member_form):
    member = workflows.add_member(repo, member_form).record
    form = PaymentForm(member_id=member.id, amount=50, payment_date=date(2024, 2, 10), payment_method="cash")
    workflows.record_payment(repo, form, extend_expiry=True)
    assert repo.get_member(member.id).expiry_date == date(2024, 2, 15)


def test_edit_and_delete_payment(repo, member_form):
    member = workflows.add_member(repo, member_form).record
    form = PaymentForm(
        member_id=member.id, amount=50, payment_date=date(2024, 1, 15), payment_method="cash", status="pending"
    )
    payment = workflows.record_payment(repo, form).record

    form.status = "paid"
    form.invoice_number = " INV-7 "
    result = workflows.edit_payment(repo, payment.id, form)
    assert result.ok
    assert result.record.status == PaymentStatus.PAID
    assert result.record.invoice_number == "INV-7"

    assert workflows.delete_payment(repo, payment.id).ok
    assert workflows.delete_payment(repo, payment.id).outcome == Outcome.REFERENCE_ERROR


# ---------- Attendance ----------

def test_check_in_once_per_day(repo, member_form):
    member = workflows.add_member(repo, member_form).record
    first = workflows.check_in(repo, member.id, at=datetime(2024, 1, 16, 7, 0))
    assert first.ok
    again = workflows.check_in(repo, member.id, at=datetime(2024, 1, 16, 18, 0))
    assert again.outcome == Outcome.VALIDATION_ERROR
    assert workflows.check_in(repo, member.id, at=datetime(2024, 1, 17, 7, 0)).ok


def test_check_out(repo, member_form):
    member = workflows.add_member(repo, member_form).record
    record = workflows.check_in(repo, member.id, at=datetime(2024, 1, 16, 7, 0)).record

    early = workflows.check_out(repo, record.id, at=datetime(2024, 1, 16, 6, 0))
    assert early.outcome == Outcome.VALIDATION_ERROR

    result = workflows.check_out(repo, record.id, at=datetime(2024, 1, 16, 8, 30))
    assert result.ok
    assert result.record.check_out_time == datetime(2024, 1, 16, 8, 30)
