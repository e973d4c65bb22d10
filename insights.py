"""
insights.py
At-risk member insights: assembles member activity into the insight service's
input contract and relays its validated answer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Literal, Protocol

from openai import OpenAI
from pydantic import BaseModel, ConfigDict, Field

from config import settings
from models import Attendance, Member, Payment, Plan

logger = logging.getLogger(__name__)

INSIGHTS_ERROR = "Failed to fetch AI insights. Please try again."
NOT_CONFIGURED_ERROR = "AI insights are not configured. Please add your OpenAI API key to the .env file."


class _Contract(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PaymentEntry(_Contract):
    paid_on: date = Field(alias="date")
    amount: float
    status: Literal["paid", "pending"]


class MemberActivity(_Contract):
    member_id: str = Field(alias="memberId")
    attendance_history: list[date] = Field(alias="attendanceHistory")
    payment_history: list[PaymentEntry] = Field(alias="paymentHistory")
    membership_plan: str = Field(alias="membershipPlan")
    join_date: date = Field(alias="joinDate")


class InsightRequest(_Contract):
    member_data: list[MemberActivity] = Field(alias="memberData")


class AtRiskMember(_Contract):
    member_id: str = Field(alias="memberId")
    risk_reason: str = Field(alias="riskReason")
    suggested_interventions: list[str] = Field(alias="suggestedInterventions")


class AtRiskReport(_Contract):
    at_risk_members: list[AtRiskMember] = Field(alias="atRiskMembers")


class InsightClient(Protocol):
    def generate(self, request: InsightRequest) -> AtRiskReport: ...


@dataclass
class InsightResult:
    report: AtRiskReport | None = None
    error: str | None = None


def assemble_insight_request(
    members: list[Member],
    plans: list[Plan],
    payments: list[Payment],
    attendance: list[Attendance],
) -> InsightRequest:
    plan_names = {p.id: p.name for p in plans}
    records = []
    for member in members:
        records.append(
            MemberActivity(
                member_id=member.id,
                attendance_history=sorted(
                    a.check_in_time.date() for a in attendance if a.member_id == member.id
                ),
                payment_history=[
                    PaymentEntry(paid_on=p.payment_date, amount=p.amount, status=p.status.value)
                    for p in sorted(payments, key=lambda p: p.payment_date)
                    if p.member_id == member.id
                ],
                membership_plan=plan_names.get(member.plan_id, "Unknown"),
                join_date=member.join_date,
            )
        )
    return InsightRequest(member_data=records)


def fetch_at_risk_members(request: InsightRequest, client: InsightClient | None) -> InsightResult:
    """
    Ask the insight service which members are likely to churn.
    Never raises: any failure becomes a single user-facing error message.
    """
    if not request.member_data:
        return InsightResult(report=AtRiskReport(at_risk_members=[]))
    if client is None:
        return InsightResult(error=NOT_CONFIGURED_ERROR)
    try:
        report = client.generate(request)
    except Exception:
        logger.exception("at-risk insight request failed")
        return InsightResult(error=INSIGHTS_ERROR)
    return InsightResult(report=report)


SYSTEM_PROMPT = """You are an AI assistant designed to analyze gym member data and identify members who are \
at risk of becoming inactive. Look for patterns in attendance and payment history that indicate a risk of \
churn, give a specific reason for each at-risk member and suggest interventions to prevent churn.

Answer with a single JSON object of the form:
{"atRiskMembers": [{"memberId": "...", "riskReason": "...", "suggestedInterventions": ["..."]}]}"""


def render_member_data(request: InsightRequest) -> str:
    blocks = []
    for m in request.member_data:
        payments = ", ".join(
            f"Date: {p.paid_on.isoformat()}, Amount: {p.amount:g}, Status: {p.status}" for p in m.payment_history
        )
        blocks.append(
            f"Member ID: {m.member_id}\n"
            f"Attendance History: {', '.join(d.isoformat() for d in m.attendance_history)}\n"
            f"Payment History: {payments}\n"
            f"Membership Plan: {m.membership_plan}\n"
            f"Join Date: {m.join_date.isoformat()}"
        )
    return "Here is the member data:\n\n" + "\n\n".join(blocks)


class OpenAIInsightClient:
    def __init__(self, api_key: str, model: str, timeout: float = 30.0):
        self.client = OpenAI(api_key=api_key, timeout=timeout)
        self.model = model

    def generate(self, request: InsightRequest) -> AtRiskReport:
        completion = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": render_member_data(request)},
            ],
            response_format={"type": "json_object"},
            temperature=0.2,
        )
        content = completion.choices[0].message.content or ""
        return AtRiskReport.model_validate_json(content)


def get_insight_client() -> OpenAIInsightClient | None:
    if not settings.OPENAI_API_KEY:
        return None
    return OpenAIInsightClient(settings.OPENAI_API_KEY, settings.OPENAI_MODEL, settings.HTTP_TIMEOUT_SECONDS)
