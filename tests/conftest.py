from __future__ import annotations

from collections.abc import Generator
from datetime import date

import pytest

from db import Database
from models import MemberForm, UploadResult
from repository import GymRepository


@pytest.fixture()
def repo(tmp_path) -> Generator[GymRepository, None, None]:
    database = Database(tmp_path / "gym-test.db")
    database.init_db()
    yield GymRepository(database)


@pytest.fixture()
def plans(repo: GymRepository) -> dict:
    return {
        "monthly": repo.add_plan("Monthly", 1, 50.0),
        "quarterly": repo.add_plan("Quarterly", 3, 135.0),
        "annual": repo.add_plan("Annual", 12, 500.0),
    }


@pytest.fixture()
def member_form(plans) -> MemberForm:
    return MemberForm(
        member_code="GYM-001",
        name="Alicia Rodriguez",
        mobile_number="1112223333",
        address="123 Main St, Anytown",
        plan_id=plans["monthly"].id,
        join_date=date(2024, 1, 15),
    )


class FakeUploader:
    def __init__(self, url: str | None = None, error: str | None = None):
        self.result = UploadResult(url=url, error=error)
        self.calls = []

    def upload(self, data: bytes, filename: str) -> UploadResult:
        self.calls.append((data, filename))
        return self.result


@pytest.fixture()
def uploader_ok() -> FakeUploader:
    return FakeUploader(url="https://i.ibb.co/abc/photo.jpg")


@pytest.fixture()
def uploader_failing() -> FakeUploader:
    return FakeUploader(error="Failed to upload image. Status: 500")
