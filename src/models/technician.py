"""Technician records and their workload counters."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import ClassVar
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from src.models.complaint import MOBILE_PATTERN
from src.models.enums import ComplaintCategory


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _dedupe(values: list[ComplaintCategory]) -> list[ComplaintCategory]:
    seen: list[ComplaintCategory] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


class TechnicianLocation(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class Technician(BaseModel):
    """A field worker who resolves complaints in their specializations.

    ``active_complaints``, ``resolved_count``, ``total_resolution_time`` and
    ``avg_resolution_time`` are denormalised running totals maintained by
    :mod:`src.services.workload`.  ``rating``/``total_ratings`` are stored
    only; they are maintained by the citizen feedback flow.
    """

    collection: ClassVar[str] = "technicians"
    unique_fields: ClassVar[tuple[str, ...]] = ("phone", "user_id")

    id: str = Field(default_factory=lambda: uuid4().hex)
    version: int = 0

    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., pattern=MOBILE_PATTERN)
    specialization: list[ComplaintCategory] = Field(..., min_length=1)

    active_complaints: int = Field(default=0, ge=0)
    resolved_count: int = Field(default=0, ge=0)
    total_resolution_time: int = Field(default=0, ge=0)  # hours
    avg_resolution_time: int = Field(default=0, ge=0)  # hours

    is_available: bool = True
    location: TechnicianLocation | None = None
    rating: float = 0.0
    total_ratings: int = 0

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("specialization")
    @classmethod
    def _dedupe_specialization(cls, value: list[ComplaintCategory]) -> list[ComplaintCategory]:
        return _dedupe(value)

    def handles(self, category: ComplaintCategory | str) -> bool:
        return category in self.specialization


class TechnicianCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., pattern=MOBILE_PATTERN)
    specialization: list[ComplaintCategory] = Field(..., min_length=1)
    user_id: str | None = Field(
        default=None,
        description="Identity record id; defaults to the phone-keyed identity.",
    )
    location: TechnicianLocation | None = None

    @field_validator("specialization")
    @classmethod
    def _dedupe_specialization(cls, value: list[ComplaintCategory]) -> list[ComplaintCategory]:
        return _dedupe(value)


class TechnicianUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    specialization: list[ComplaintCategory] | None = Field(default=None, min_length=1)
    is_available: bool | None = None
    location: TechnicianLocation | None = None


class TechnicianPage(BaseModel):
    technicians: list[Technician]
    total: int
    page: int
    pages: int
    limit: int
