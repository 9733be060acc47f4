"""Shared fixtures: an in-memory store, a controllable clock and the services."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

import pytest

from src.models.complaint import Complaint
from src.models.enums import ComplaintCategory
from src.models.technician import Technician
from src.services.complaint_service import ComplaintService
from src.services.store import InMemoryRecordStore
from src.services.technician_service import TechnicianService

IST = ZoneInfo("Asia/Kolkata")


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> datetime:
        self.now = now
        return now


def complaint_fields(**overrides: Any) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "category": ComplaintCategory.WATER,
        "description": "No water supply for the last 3 days",
        "location": {
            "latitude": 23.7041,
            "longitude": 86.9740,
            "address": "Village Ashta, Main Road",
        },
        "citizen_phone": "9876543220",
        "citizen_name": "Rajesh Sharma",
    }
    fields.update(overrides)
    return fields


def make_complaint(**overrides: Any) -> Complaint:
    """Build a complaint record directly, bypassing the service."""
    fields = complaint_fields()
    fields.update(
        complaint_id="CMP240200001",
        created_at=datetime(2024, 2, 5, tzinfo=UTC),
        updated_at=datetime(2024, 2, 5, tzinfo=UTC),
    )
    fields.update(overrides)
    return Complaint.model_validate(fields)


def make_technician(**overrides: Any) -> Technician:
    fields: dict[str, Any] = {
        "user_id": "user:9876543211",
        "name": "Ramesh Kumar",
        "phone": "9876543211",
        "specialization": [ComplaintCategory.WATER, ComplaintCategory.SANITATION],
    }
    fields.update(overrides)
    return Technician.model_validate(fields)


@pytest.fixture
def clock() -> FakeClock:
    # 10:00 IST on 5 February 2024.
    return FakeClock(datetime(2024, 2, 5, 4, 30, tzinfo=UTC))


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def complaints(store: InMemoryRecordStore, clock: FakeClock) -> ComplaintService:
    return ComplaintService(store, tz=IST, retry_attempts=3, recent_limit=10, clock=clock)


@pytest.fixture
def technicians(store: InMemoryRecordStore, clock: FakeClock) -> TechnicianService:
    return TechnicianService(store, retry_attempts=3, clock=clock)


@pytest.fixture
async def water_tech(technicians: TechnicianService) -> Technician:
    return await technicians.create_technician(
        {
            "name": "Ramesh Kumar",
            "phone": "9876543211",
            "specialization": ["water", "sanitation"],
        }
    )


@pytest.fixture
async def power_tech(technicians: TechnicianService) -> Technician:
    return await technicians.create_technician(
        {
            "name": "Suresh Patel",
            "phone": "9876543212",
            "specialization": ["electricity", "streetlight"],
        }
    )
