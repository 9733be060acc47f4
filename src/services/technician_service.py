"""Technician roster management and per-technician statistics."""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

import structlog

from src.models.complaint import Complaint
from src.models.report import ActiveAssignment, TechnicianDetail, TechnicianStats
from src.models.technician import (
    Technician,
    TechnicianCreate,
    TechnicianLocation,
    TechnicianPage,
    TechnicianUpdate,
)
from src.models.enums import ComplaintCategory
from src.services import reporting
from src.services.complaint_service import validate_input
from src.services.errors import Conflict, HasActiveWork, NotFound, ValidationError
from src.services.lifecycle import ACTIVE_STATUSES
from src.services.optimistic import update_record
from src.services.reporting import ComplaintFilter
from src.services.store import DuplicateRecord, Page, RecordStore, Sort, VersionConflict
from src.services.workload import live_active_count

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def default_user_id(phone: str) -> str:
    return f"user:{phone}"


class TechnicianService:
    """CRUD over technicians, guarded by their live workload."""

    __slots__ = ("_clock", "_retry_attempts", "_store")

    def __init__(
        self,
        store: RecordStore,
        *,
        retry_attempts: int = 3,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._retry_attempts = retry_attempts
        self._clock = clock

    async def _require(self, technician_id: str) -> Technician:
        technician = await self._store.get(Technician, technician_id)
        if technician is None:
            raise NotFound(
                f"Technician '{technician_id}' not found",
                details={"technician_id": technician_id},
            )
        return technician

    async def create_technician(self, fields: TechnicianCreate | Mapping[str, Any]) -> Technician:
        data = validate_input(TechnicianCreate, fields, what="technician")

        existing = await self._store.find_one(Technician, lambda t: t.phone == data.phone)
        if existing is not None:
            raise ValidationError(
                "Technician with this phone number already exists",
                details={"field": "phone"},
            )

        now = self._clock()
        technician = Technician(
            user_id=data.user_id or default_user_id(data.phone),
            name=data.name.strip(),
            phone=data.phone,
            specialization=data.specialization,
            location=data.location,
            created_at=now,
            updated_at=now,
        )
        try:
            saved = await self._store.insert(technician)
        except DuplicateRecord as exc:
            raise ValidationError(
                f"Technician with this {exc.field} already exists",
                details={"field": exc.field},
            ) from None

        logger.info(
            "technician.created",
            technician_id=saved.id,
            specialization=[str(s) for s in saved.specialization],
        )
        return saved

    async def get_technician(self, technician_id: str) -> TechnicianDetail:
        """Technician with their active assignments, newest first."""
        technician = await self._require(technician_id)
        active = await self._store.find(
            Complaint,
            lambda c: c.assigned_to == technician.id and c.status in ACTIVE_STATUSES,
            sort=Sort("created_at", descending=True),
        )
        return TechnicianDetail(
            technician=technician,
            assigned_complaints=[
                ActiveAssignment(
                    id=c.id,
                    complaint_id=c.complaint_id,
                    category=c.category,
                    status=c.status,
                    priority=c.priority,
                    address=c.location.address,
                    created_at=c.created_at,
                )
                for c in active
            ],
        )

    async def find_by_user(self, user_id: str) -> Technician | None:
        return await self._store.find_one(Technician, lambda t: t.user_id == user_id)

    async def list_technicians(
        self,
        *,
        specialization: ComplaintCategory | None = None,
        is_available: bool | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> TechnicianPage:
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")

        def predicate(t: Technician) -> bool:
            if specialization is not None and not t.handles(specialization):
                return False
            if is_available is not None and t.is_available != is_available:
                return False
            return True

        total = await self._store.count(Technician, predicate)
        technicians = await self._store.find(
            Technician,
            predicate,
            sort=Sort("name"),
            page=Page(offset=(page - 1) * limit, limit=limit),
        )
        return TechnicianPage(
            technicians=technicians,
            total=total,
            page=page,
            pages=math.ceil(total / limit),
            limit=limit,
        )

    async def update_technician(
        self,
        technician_id: str,
        fields: TechnicianUpdate | Mapping[str, Any],
    ) -> Technician:
        """Edit profile fields; the workload counters are not editable here."""
        changes = validate_input(TechnicianUpdate, fields, what="technician update")
        updates = changes.model_dump(exclude_unset=True)
        # Explicit nulls mean "leave unchanged" except for location.
        updates = {k: v for k, v in updates.items() if v is not None or k == "location"}
        if "name" in updates:
            updates["name"] = updates["name"].strip()
        now = self._clock()

        def mutate(t: Technician) -> None:
            for key, value in updates.items():
                if key == "location" and value is not None:
                    value = TechnicianLocation.model_validate(value)
                setattr(t, key, value)
            if updates:
                t.updated_at = now

        saved, _ = await update_record(
            self._store, Technician, technician_id, mutate, attempts=self._retry_attempts
        )
        logger.info("technician.updated", technician_id=saved.id, fields=sorted(updates))
        return saved

    async def update_location(
        self, user_id: str, latitude: float, longitude: float
    ) -> Technician:
        """Record the calling technician's current position."""
        technician = await self.find_by_user(user_id)
        if technician is None:
            raise NotFound("Technician profile not found", details={"user_id": user_id})
        location = validate_input(
            TechnicianLocation,
            {"latitude": latitude, "longitude": longitude},
            what="location",
        )
        now = self._clock()

        def mutate(t: Technician) -> None:
            t.location = location
            t.updated_at = now

        saved, _ = await update_record(
            self._store, Technician, technician.id, mutate, attempts=self._retry_attempts
        )
        return saved

    async def delete_technician(self, technician_id: str) -> None:
        """Remove a technician who has no active complaints.

        Both the stored counter and a live count over complaints must be
        zero, so a drifted counter cannot orphan an open complaint.
        """
        technician = await self._require(technician_id)
        complaints = await self._store.find(Complaint, lambda c: c.assigned_to == technician.id)
        active = max(technician.active_complaints, live_active_count(technician.id, complaints))
        if active > 0:
            raise HasActiveWork(
                f"Cannot delete technician with {active} active complaint(s). "
                "Please reassign or resolve them first.",
                details={"technician_id": technician.id, "active_complaints": active},
            )
        try:
            await self._store.delete(technician)
        except VersionConflict:
            raise Conflict(
                "Technician changed while deleting; retry",
                details={"technician_id": technician.id},
            ) from None
        logger.info("technician.deleted", technician_id=technician.id)

    async def get_technician_stats(
        self,
        technician_id: str,
        *,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> TechnicianStats:
        technician = await self._require(technician_id)
        flt = ComplaintFilter(start_date=start_date, end_date=end_date, assigned_to=technician.id)
        complaints = await self._store.find(Complaint, flt)
        return reporting.build_technician_stats(technician, complaints)
