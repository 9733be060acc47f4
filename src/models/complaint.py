"""Complaint records for the Gram Shikayat portal.

A complaint is filed once by a citizen and then only moves forward
through the lifecycle operations in :mod:`src.services.complaint_service`.
It is never deleted.  ``status_history`` and ``internal_notes`` are
append-only audit trails.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import ClassVar, Final
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from src.models.enums import ComplaintCategory, ComplaintPriority, ComplaintStatus

# 10-digit Indian mobile number, as issued by the OTP login flow.
MOBILE_PATTERN: Final[str] = r"^[6-9]\d{9}$"

COMPLAINT_ID_PREFIX: Final[str] = "CMP"
COMPLAINT_ID_RE: Final[re.Pattern[str]] = re.compile(r"^CMP\d{2}\d{2}\d{5,}$")


def format_complaint_id(created_at: datetime, sequence: int) -> str:
    """Build the human-facing code ``CMP<YY><MM><seq5>``.

    *created_at* must already be expressed in the portal's local timezone;
    *sequence* is the lifetime complaint number (1-based).
    """
    return f"{COMPLAINT_ID_PREFIX}{created_at:%y}{created_at:%m}{sequence:05d}"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _clean_description(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("description must not be blank")
    return value


class GeoLocation(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: str | None = None

    @field_validator("address")
    @classmethod
    def _strip_address(cls, value: str | None) -> str | None:
        return value.strip() if value is not None else None


class ImageRef(BaseModel):
    """Reference to an image already stored by the file-storage service."""

    url: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1)
    uploaded_at: datetime = Field(default_factory=_utcnow)


class StatusChange(BaseModel):
    status: ComplaintStatus
    changed_at: datetime
    changed_by: str | None = None


class InternalNote(BaseModel):
    note: str
    added_by: str | None = None
    added_at: datetime


class Complaint(BaseModel):
    """A citizen-filed civic issue ticket.

    ``version`` is managed by the record store for optimistic
    concurrency; every successful save increments it.
    """

    collection: ClassVar[str] = "complaints"
    unique_fields: ClassVar[tuple[str, ...]] = ("complaint_id",)

    id: str = Field(default_factory=lambda: uuid4().hex)
    version: int = 0

    complaint_id: str = Field(..., pattern=COMPLAINT_ID_RE.pattern)
    category: ComplaintCategory
    description: str = Field(..., min_length=1, max_length=5000)
    images: list[ImageRef] = Field(default_factory=list)
    location: GeoLocation
    citizen_phone: str = Field(..., pattern=MOBILE_PATTERN)
    citizen_name: str | None = None

    status: ComplaintStatus = ComplaintStatus.SUBMITTED
    priority: ComplaintPriority = ComplaintPriority.MEDIUM

    assigned_to: str | None = None
    assigned_at: datetime | None = None
    resolved_at: datetime | None = None
    estimated_resolution_time: datetime | None = None
    actual_resolution_time: int | None = None  # hours

    resolution_notes: str | None = None
    resolution_images: list[ImageRef] = Field(default_factory=list)
    internal_notes: list[InternalNote] = Field(default_factory=list)
    status_history: list[StatusChange] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("description")
    @classmethod
    def _strip_description(cls, value: str) -> str:
        return _clean_description(value)

    @property
    def address(self) -> str | None:
        return self.location.address


class ComplaintCreate(BaseModel):
    """Fields a citizen supplies when filing a complaint."""

    category: ComplaintCategory
    description: str = Field(..., min_length=1, max_length=5000)
    location: GeoLocation
    citizen_phone: str = Field(..., pattern=MOBILE_PATTERN)
    citizen_name: str | None = Field(default=None, max_length=200)
    priority: ComplaintPriority = ComplaintPriority.MEDIUM
    images: list[ImageRef] = Field(default_factory=list, max_length=5)

    @field_validator("description")
    @classmethod
    def _strip_description(cls, value: str) -> str:
        return _clean_description(value)


class AssignmentOptions(BaseModel):
    technician_id: str = Field(..., min_length=1)
    estimated_resolution_time: datetime | None = None
    priority: ComplaintPriority | None = None


class ComplaintPage(BaseModel):
    """Paginated slice of complaints."""

    complaints: list[Complaint]
    total: int
    page: int
    pages: int
    limit: int
