"""
app.py
Streamlit Gym Membership Manager.
Run: streamlit run app.py
"""

from __future__ import annotations

import logging
from datetime import date, datetime

import pandas as pd
import streamlit as st

import insights
import utils
import workflows
from config import settings
from db import Database, PersistenceError
from models import (
    PAYMENT_METHODS,
    ImageUpload,
    MemberForm,
    Outcome,
    PaymentForm,
    PaymentStatus,
    PaymentType,
    PlanForm,
)
from repository import GymRepository
from uploads import get_uploader

st.set_page_config(page_title="Gym Membership Manager", layout="wide")

logger = logging.getLogger(__name__)


@st.cache_resource
def get_repository() -> GymRepository:
    # One repository per process; pages receive it explicitly
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    database = Database(settings.DATABASE_PATH)
    database.init_db()
    return GymRepository(database)


def money(amount: float) -> str:
    return f"{settings.CURRENCY_SYMBOL}{amount:,.2f}"


def show_result(result) -> bool:
    """Render a workflow result; returns True on success."""
    for warning in result.warnings:
        st.warning(warning)
    if result.outcome == Outcome.SUCCESS:
        st.success(result.message or "Saved.")
        return True
    if result.outcome == Outcome.VALIDATION_ERROR:
        for field_name, message in result.errors.items():
            st.error(f"{field_name.replace('_', ' ').capitalize()}: {message}")
    elif result.message:
        st.error(result.message)
    return False


def image_from_widget(uploaded) -> ImageUpload | None:
    if uploaded is None:
        return None
    return ImageUpload(data=uploaded.getvalue(), filename=uploaded.name)


def member_label(member) -> str:
    return f"{member.name} ({member.member_code})"


# ---------- Pages ----------

def dashboard_page(repo: GymRepository):
    st.header("📊 Dashboard")
    today = date.today()
    stats = utils.dashboard_stats(repo, today)

    st.caption(today.strftime("%B %d, %Y"))
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Active members", stats["active_members"])
    c2.metric("Today's collection", money(stats["todays_collection"]))
    c3.metric("Expiring today", stats["expiry_today"])
    c4.metric("Present today", stats["present_today"])
    c5, c6, c7, c8 = st.columns(4)
    c5.metric(f"{today:%B} collection", money(stats["monthly_collection"]))
    c6.metric("Members with dues", stats["pending_dues"])
    c7.metric("Total collection", money(stats["total_collection"]))
    c8.metric("Pending payments", money(stats["total_dues"]))

    st.divider()

    st.subheader(f"Expiring soon (next {settings.EXPIRY_WARNING_DAYS} days)")
    soon = utils.expiring_soon(repo.list_members(), today, settings.EXPIRY_WARNING_DAYS)
    if soon:
        st.dataframe(
            pd.DataFrame([{"member": m.name, "mobile": m.mobile_number, "expiry_date": m.expiry_date} for m in soon]),
            use_container_width=True,
            hide_index=True,
        )
    else:
        st.caption(f"No members expiring in the next {settings.EXPIRY_WARNING_DAYS} days.")

    st.divider()
    at_risk_panel(repo)


def at_risk_panel(repo: GymRepository):
    st.subheader("🧠 At-risk members")
    if not st.button("Analyze members"):
        return

    members = repo.list_members()
    request = insights.assemble_insight_request(members, repo.list_plans(), repo.list_payments(), repo.list_attendance())
    with st.spinner("Analyzing member activity..."):
        result = insights.fetch_at_risk_members(request, insights.get_insight_client())

    if result.error:
        st.error(result.error)
        return
    if not result.report.at_risk_members:
        st.caption("No members are currently at risk.")
        return

    names = {m.id: m.name for m in members}
    for flagged in result.report.at_risk_members:
        with st.container(border=True):
            st.markdown(f"**{names.get(flagged.member_id, 'Unknown Member')}**")
            st.write(flagged.risk_reason)
            for intervention in flagged.suggested_interventions:
                st.markdown(f"- {intervention}")


def member_fields(plans, existing=None, key: str = "new") -> MemberForm:
    plan_ids = [p.id for p in plans]
    labels = {p.id: f"{p.name} - {money(p.price)} / {p.duration_months} mo" for p in plans}

    col1, col2 = st.columns(2)
    with col1:
        member_code = st.text_input("Member ID", value=existing.member_code if existing else "", key=f"{key}_code")
        name = st.text_input("Full name", value=existing.name if existing else "", key=f"{key}_name")
        mobile = st.text_input("Mobile number", value=existing.mobile_number if existing else "", key=f"{key}_mobile")
    with col2:
        address = st.text_input("Address", value=existing.address if existing else "", key=f"{key}_address")
        index = plan_ids.index(existing.plan_id) if existing and existing.plan_id in plan_ids else 0
        plan_id = st.selectbox(
            "Membership plan",
            options=plan_ids,
            index=index if plan_ids else None,
            format_func=lambda pid: labels.get(pid, pid),
            key=f"{key}_plan",
        )
        join_date = st.date_input("Join date", value=existing.join_date if existing else date.today(), key=f"{key}_join")

    return MemberForm(
        member_code=member_code,
        name=name,
        mobile_number=mobile,
        address=address,
        plan_id=plan_id,
        join_date=join_date,
    )


def add_member_form(repo: GymRepository, plans):
    st.subheader("➕ Add Member")
    form = member_fields(plans)
    photo = st.file_uploader("Profile picture (optional)", type=["png", "jpg", "jpeg"], key="new_photo")
    if st.button("Add Member", type="primary"):
        result = workflows.add_member(repo, form, image=image_from_widget(photo), uploader=get_uploader())
        if show_result(result):
            st.rerun()


def edit_member_form(repo: GymRepository, plans, member):
    st.subheader(f"✏️ Edit Member ({member.member_code})")
    form = member_fields(plans, existing=member, key=f"edit_{member.id}")
    photo = st.file_uploader("Replace profile picture", type=["png", "jpg", "jpeg"], key=f"edit_photo_{member.id}")
    remove_image = st.checkbox("Remove profile picture", key=f"edit_remove_{member.id}")

    state = st.session_state.get("edit_state", workflows.EditState.EDITING)

    def submit(update_expiry):
        result = workflows.edit_member(
            repo,
            member.id,
            form,
            update_expiry=update_expiry,
            image=image_from_widget(photo),
            remove_image=remove_image,
            uploader=get_uploader(),
        )
        if result.outcome == Outcome.CONFIRMATION_REQUIRED:
            st.session_state.edit_state = workflows.EditState.CONFIRMING_EXPIRY_UPDATE
            st.rerun()
        if show_result(result):
            st.session_state.edit_state = workflows.EditState.SAVED
            st.session_state.edit_member_id = None
            st.rerun()

    if state == workflows.EditState.CONFIRMING_EXPIRY_UPDATE:
        st.warning("The plan or join date changed. Do you want to recalculate the expiry date from the new values?")
        c1, c2, c3 = st.columns(3)
        if c1.button("Yes, update expiry", type="primary"):
            submit(True)
        if c2.button("No, keep current expiry"):
            submit(False)
        if c3.button("Back"):
            st.session_state.edit_state = workflows.EditState.EDITING
            st.rerun()
    elif st.button("Save changes", type="primary"):
        submit(None)


def renew_form(repo: GymRepository, member):
    st.subheader(f"🔁 Renew ({member.name})")
    new_expiry = st.date_input("New expiry date", value=member.expiry_date, key=f"renew_{member.id}")
    if st.button("Renew", type="primary"):
        if show_result(workflows.renew_member(repo, member.id, new_expiry)):
            st.rerun()


def members_page(repo: GymRepository):
    st.header("👥 Members")
    today = date.today()
    plans = repo.list_plans()
    if not plans:
        st.info("No plans yet. Add a plan first.")
        return

    with st.sidebar:
        st.subheader("Search & Filters")
        search = st.text_input("Search (name/mobile/member ID)")
        sort_expiry = st.checkbox("Sort by expiry date", value=True)

    members = repo.list_members(search=search, sort_by_expiry=sort_expiry)
    df = utils.members_frame(members, plans, repo.list_payments(), today)
    st.dataframe(df, use_container_width=True, hide_index=True)

    st.divider()

    by_id = {m.id: m for m in members}
    selected_id = st.selectbox(
        "Select member",
        options=[None] + list(by_id),
        format_func=lambda mid: "(none)" if mid is None else member_label(by_id[mid]),
    )
    if selected_id:
        member = by_id[selected_id]
        c1, c2, c3 = st.columns(3)
        with c1:
            if st.button("Edit"):
                st.session_state.edit_member_id = member.id
                st.session_state.edit_state = workflows.EditState.EDITING
                st.rerun()
        with c2:
            if st.button("View payments"):
                st.session_state.payments_member_id = member.id
                st.session_state.page = "Payments"
                st.rerun()
        with c3:
            delete_confirm = st.checkbox("Confirm delete", value=False, key="del_confirm")
            if st.button("Delete", type="secondary", disabled=not delete_confirm):
                if show_result(workflows.delete_member(repo, member.id)):
                    st.rerun()
        renew_form(repo, member)

    st.divider()

    editing = repo.get_member(st.session_state.get("edit_member_id"))
    if editing:
        edit_member_form(repo, plans, editing)
        if st.button("Cancel edit"):
            st.session_state.edit_member_id = None
            st.session_state.edit_state = workflows.EditState.EDITING
            st.rerun()
    else:
        add_member_form(repo, plans)


def plans_page(repo: GymRepository):
    st.header("📋 Plans")
    plans = repo.list_plans()
    if plans:
        st.dataframe(
            pd.DataFrame([
                {"name": p.name, "duration_months": p.duration_months, "price": p.price, "description": p.description}
                for p in plans
            ]),
            use_container_width=True,
            hide_index=True,
        )
    else:
        st.caption("No plans yet.")

    st.divider()
    st.subheader("➕ Add Plan")
    c1, c2, c3 = st.columns(3)
    name = c1.text_input("Plan name", key="plan_name")
    price = c2.number_input("Price", min_value=0.0, step=10.0, key="plan_price")
    duration = c3.number_input("Duration (months)", min_value=0, step=1, key="plan_duration")
    description = st.text_input("Description (optional)", key="plan_description")
    if st.button("Add Plan", type="primary"):
        result = workflows.add_plan(repo, PlanForm(name=name, price=price, duration_months=duration, description=description))
        if show_result(result):
            st.rerun()

    if not plans:
        return

    st.divider()
    st.subheader("✏️ Edit / delete plan")
    by_id = {p.id: p for p in plans}
    plan_id = st.selectbox("Plan", options=list(by_id), format_func=lambda pid: by_id[pid].name)
    plan = by_id[plan_id]
    c1, c2, c3 = st.columns(3)
    new_name = c1.text_input("Plan name", value=plan.name, key=f"edit_plan_name_{plan.id}")
    new_price = c2.number_input("Price", value=plan.price, min_value=0.0, step=10.0, key=f"edit_plan_price_{plan.id}")
    new_duration = c3.number_input(
        "Duration (months)", value=plan.duration_months, min_value=0, step=1, key=f"edit_plan_duration_{plan.id}"
    )
    new_description = st.text_input("Description", value=plan.description or "", key=f"edit_plan_desc_{plan.id}")
    c4, c5 = st.columns(2)
    if c4.button("Save plan", type="primary"):
        form = PlanForm(name=new_name, price=new_price, duration_months=new_duration, description=new_description)
        if show_result(workflows.edit_plan(repo, plan.id, form)):
            st.rerun()
    if c5.button("Delete plan"):
        if show_result(workflows.delete_plan(repo, plan.id)):
            st.rerun()


def payment_fields(members, existing=None, key: str = "pay") -> PaymentForm:
    by_id = {m.id: m for m in members}
    member_ids = list(by_id)
    default_member = existing.member_id if existing else st.session_state.get("payments_member_id")
    c1, c2, c3 = st.columns(3)
    with c1:
        member_id = st.selectbox(
            "Member",
            options=member_ids,
            index=member_ids.index(default_member) if default_member in member_ids else 0,
            format_func=lambda mid: member_label(by_id[mid]),
            key=f"{key}_member",
        )
        amount = st.number_input(
            "Amount", value=existing.amount if existing else 0.0, min_value=0.0, step=10.0, key=f"{key}_amount"
        )
    with c2:
        payment_date = st.date_input(
            "Payment date", value=existing.payment_date if existing else date.today(), key=f"{key}_date"
        )
        method = st.selectbox(
            "Method",
            options=PAYMENT_METHODS,
            index=PAYMENT_METHODS.index(existing.payment_method) if existing and existing.payment_method in PAYMENT_METHODS else 0,
            key=f"{key}_method",
        )
    with c3:
        types = [t.value for t in PaymentType]
        payment_type = st.selectbox(
            "Type", types, index=types.index(existing.payment_type.value) if existing else 0, key=f"{key}_type"
        )
        statuses = [s.value for s in PaymentStatus]
        status = st.selectbox(
            "Status", statuses, index=statuses.index(existing.status.value) if existing else 0, key=f"{key}_status"
        )
    invoice = st.text_input(
        "Invoice number (optional)", value=(existing.invoice_number or "") if existing else "", key=f"{key}_invoice"
    )
    return PaymentForm(
        member_id=member_id,
        amount=amount,
        payment_date=payment_date,
        payment_method=method,
        payment_type=payment_type,
        status=status,
        invoice_number=invoice,
    )


def payment_status_card(repo: GymRepository, member):
    plan = repo.get_plan(member.plan_id)
    if plan is None:
        st.warning("This member's plan no longer exists.")
        return
    card = utils.status_card(member, plan, repo.list_payments(member.id), date.today())
    with st.container(border=True):
        st.markdown(f"**{member.name}** · {card['plan']} · {card['validity']}")
        c1, c2, c3, c4 = st.columns(4)
        c1.metric("Paid this period", money(card["total_paid"]))
        c2.metric("Due", money(card["due"]))
        c3.metric("Payment status", card["payment_status"].value)
        c4.metric("Membership", card["membership_status"].value)
        if card["due"] > 0:
            st.text_area(
                "Due notice",
                utils.due_notice_text(member, plan, card["due"], settings.GYM_NAME, settings.CURRENCY_SYMBOL),
                height=180,
            )


def payments_page(repo: GymRepository):
    st.header("💳 Payments")
    members = repo.list_members()
    if not members:
        st.info("No members yet. Add a member first.")
        return

    st.subheader("Record payment")
    form = payment_fields(members)
    extend = st.checkbox(
        "Extend membership by one plan period (renewal payments)",
        value=True,
        disabled=form.payment_type != PaymentType.RENEWAL.value,
    )
    if st.button("Record payment", type="primary"):
        if show_result(workflows.record_payment(repo, form, extend_expiry=extend)):
            st.rerun()

    st.session_state.payments_member_id = form.member_id
    member = repo.get_member(form.member_id)
    if member:
        payment_status_card(repo, member)

    st.divider()

    st.subheader("Payment history")
    history = repo.list_payments(form.member_id)
    if not history:
        st.caption("No payments for this member yet.")
        return
    st.dataframe(utils.payments_frame(history, members), use_container_width=True, hide_index=True)

    by_id = {p.id: p for p in history}
    payment_id = st.selectbox(
        "Edit / delete payment",
        options=list(by_id),
        format_func=lambda pid: f"{by_id[pid].payment_date} · {money(by_id[pid].amount)} · {by_id[pid].status.value}",
    )
    payment = by_id[payment_id]
    receipt = utils.receipt_text(payment, member, history, settings.GYM_NAME, settings.CURRENCY_SYMBOL)
    with st.expander(f"Receipt #{utils.receipt_number(payment)}"):
        st.code(receipt, language=None)
        st.download_button(
            "Download receipt",
            data=receipt.encode("utf-8"),
            file_name=f"receipt-{utils.receipt_number(payment)}.txt",
            mime="text/plain",
            key=f"receipt_{payment.id}",
        )
    edit_form = payment_fields(members, existing=payment, key=f"edit_pay_{payment.id}")
    c1, c2 = st.columns(2)
    if c1.button("Save payment"):
        if show_result(workflows.edit_payment(repo, payment.id, edit_form)):
            st.rerun()
    if c2.button("Delete payment"):
        if show_result(workflows.delete_payment(repo, payment.id)):
            st.rerun()


def transactions_page(repo: GymRepository):
    st.header("📒 Transactions")
    payments = repo.list_payments()
    if not payments:
        st.info("No transactions recorded yet.")
        return
    st.caption(f"{len(payments)} payments, newest first.")
    st.dataframe(utils.payments_frame(payments, repo.list_members()), use_container_width=True, hide_index=True)


def attendance_page(repo: GymRepository):
    st.header("✅ Attendance")
    now = datetime.now()
    members = repo.list_members()
    todays = {a.member_id: a for a in repo.list_attendance(start=utils.start_of_day(now), end=utils.end_of_day(now))}
    st.caption(f"{len(todays)} out of {len(members)} members checked in today.")

    if not members:
        st.info("No members yet.")
        return

    for member in members:
        c1, c2, c3 = st.columns([3, 2, 1])
        c1.write(member_label(member))
        record = todays.get(member.id)
        if record is None:
            c2.caption("Not checked in")
            if c3.button("Check In", key=f"checkin_{member.id}"):
                if show_result(workflows.check_in(repo, member.id)):
                    st.rerun()
        elif record.check_out_time is None:
            c2.caption(f"In since {record.check_in_time:%H:%M}")
            if c3.button("Check Out", key=f"checkout_{member.id}"):
                if show_result(workflows.check_out(repo, record.id)):
                    st.rerun()
        else:
            c2.caption(f"{record.check_in_time:%H:%M} - {record.check_out_time:%H:%M}")


def reports_page(repo: GymRepository):
    st.header("🧾 Reports")
    today = date.today()
    members = repo.list_members()
    payments = repo.list_payments()

    st.subheader("Export members to CSV")
    if members:
        st.download_button(
            "Download members.csv",
            data=utils.frame_to_csv_bytes(utils.members_frame(members, repo.list_plans(), payments, today)),
            file_name="members.csv",
            mime="text/csv",
        )
    else:
        st.caption("No members to export.")

    st.divider()

    st.subheader("Export payments to CSV")
    if payments:
        st.download_button(
            "Download payments.csv",
            data=utils.frame_to_csv_bytes(utils.payments_frame(payments, members)),
            file_name="payments.csv",
            mime="text/csv",
        )
    else:
        st.caption("No payments to export.")

    st.divider()

    st.subheader("Revenue summary by month")
    st.dataframe(utils.revenue_summary_by_month(payments), use_container_width=True, hide_index=True)


def settings_page(repo: GymRepository):
    st.header("⚙️ Settings")
    st.write(f"Gym name: **{settings.GYM_NAME}**")
    st.write(f"Database: `{settings.DATABASE_PATH}`")
    st.write(f"Image uploads: {'configured' if settings.IMGBB_API_KEY else 'not configured'}")
    st.write(f"AI insights: {'configured' if settings.OPENAI_API_KEY else 'not configured'}")

    st.divider()

    st.subheader("Sample data")
    st.caption("Insert the default plans, a few members, payments and check-ins (adds new rows each run).")
    if st.button("Insert sample data"):
        try:
            utils.insert_sample_data(repo, settings.PLACEHOLDER_IMAGE_URL)
        except PersistenceError:
            logger.exception("sample data insert failed")
            st.error("There was a problem inserting sample data.")
            return
        st.success("Sample data inserted.")
        st.rerun()


PAGES = {
    "Dashboard": dashboard_page,
    "Members": members_page,
    "Plans": plans_page,
    "Payments": payments_page,
    "Transactions": transactions_page,
    "Attendance": attendance_page,
    "Reports": reports_page,
    "Settings": settings_page,
}


def main_app(repo: GymRepository):
    st.sidebar.title(f"🏋️ {settings.GYM_NAME}")

    pages = list(PAGES)
    if "page" not in st.session_state:
        st.session_state.page = "Dashboard"
    st.session_state.page = st.sidebar.radio("Navigate", pages, index=pages.index(st.session_state.page))

    try:
        PAGES[st.session_state.page](repo)
    except PersistenceError:
        logger.exception("page %s failed to load", st.session_state.page)
        st.error("There was a problem loading data. Please try again.")


# --------- App entry ---------

def run():
    main_app(get_repository())


if __name__ == "__main__":
    run()
