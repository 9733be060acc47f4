"""Complaint engine facade.

Composes the state machine, assignment matcher, workload ledger,
resolution metrics and reporting aggregator on top of a
:class:`~src.services.store.RecordStore`.  These are the operations the
HTTP layer calls.

Each mutating operation updates the complaint in one optimistic
read-modify-write and then applies any technician-side counter change as
a second, independent one.  Counter changes are only issued after the
complaint save that caused them succeeded, so a retried request never
counts the same transition twice.
"""

from __future__ import annotations

import dataclasses
import math
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta, tzinfo
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from src.models.complaint import (
    Complaint,
    ComplaintCreate,
    ComplaintPage,
    ImageRef,
    StatusChange,
    format_complaint_id,
)
from src.models.enums import ComplaintPriority, ComplaintStatus
from src.models.report import ComplaintStats, DashboardOverview, MonthlyReport
from src.models.technician import Technician
from src.services import reporting
from src.services.assignment import apply_assignment, ensure_specialization
from src.services.errors import NotFound, ValidationError, from_pydantic
from src.services.lifecycle import ACTIVE_STATUSES, add_note, transition
from src.services.optimistic import update_record
from src.services.reporting import ComplaintFilter
from src.services.store import Page, RecordStore, Sort
from src.services.workload import record_assignment, record_release, record_resolution

logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)
T = TypeVar("T")

SORTABLE_FIELDS = frozenset(
    {"created_at", "updated_at", "priority", "status", "category", "complaint_id"}
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def validate_input(model: type[M], fields: M | Mapping[str, Any], *, what: str) -> M:
    """Coerce caller input into *model*, raising the engine's ValidationError."""
    if isinstance(fields, model):
        return fields
    try:
        return model.model_validate(fields)
    except PydanticValidationError as exc:
        raise from_pydantic(exc, what=what) from None


class ComplaintService:
    """Complaint lifecycle operations and reports.

    Parameters
    ----------
    store:
        Record store holding complaints and technicians.
    tz:
        Local timezone for complaint codes, "today" and month boundaries.
    retry_attempts:
        Optimistic-concurrency attempts per record before ``Conflict``.
    recent_limit:
        Size of the dashboard's recent-complaints list.
    clock:
        Returns the current aware UTC time; injectable for tests.
    """

    __slots__ = ("_clock", "_recent_limit", "_retry_attempts", "_store", "_tz")

    def __init__(
        self,
        store: RecordStore,
        *,
        tz: tzinfo,
        retry_attempts: int = 3,
        recent_limit: int = 10,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._tz = tz
        self._retry_attempts = retry_attempts
        self._recent_limit = recent_limit
        self._clock = clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _now(self) -> datetime:
        return self._clock()

    async def _update(
        self,
        model: type[M],
        record_id: str,
        mutate: Callable[[M], T],
    ) -> tuple[M, T]:
        return await update_record(
            self._store, model, record_id, mutate, attempts=self._retry_attempts
        )

    async def _require_technician(self, technician_id: str) -> Technician:
        technician = await self._store.get(Technician, technician_id)
        if technician is None:
            raise NotFound(
                f"Technician '{technician_id}' not found",
                details={"technician_id": technician_id},
            )
        return technician

    async def _release_technician(self, technician_id: str, *, now: datetime) -> None:
        try:
            tech, _ = await self._update(
                Technician, technician_id, lambda t: record_release(t, now=now)
            )
        except NotFound:
            logger.warning("technician.release_skipped", technician_id=technician_id)
            return
        logger.info(
            "technician.counter_released",
            technician_id=technician_id,
            active_complaints=tech.active_complaints,
        )

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def get_complaint(self, ref: str) -> Complaint:
        """Find a complaint by opaque id or by its ``CMP...`` code."""
        complaint = await self._store.get(Complaint, ref)
        if complaint is None:
            complaint = await self._store.find_one(Complaint, lambda c: c.complaint_id == ref)
        if complaint is None:
            raise NotFound(f"Complaint '{ref}' not found", details={"complaint": ref})
        return complaint

    async def list_complaints(
        self,
        flt: ComplaintFilter | None = None,
        *,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> ComplaintPage:
        if sort_by not in SORTABLE_FIELDS:
            raise ValidationError(
                f"Cannot sort by '{sort_by}'",
                details={"sortable": sorted(SORTABLE_FIELDS)},
            )
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")

        flt = flt or ComplaintFilter()
        total = await self._store.count(Complaint, flt)
        complaints = await self._store.find(
            Complaint,
            flt,
            sort=Sort(sort_by, descending=sort_order.lower() != "asc"),
            page=Page(offset=(page - 1) * limit, limit=limit),
        )
        return ComplaintPage(
            complaints=complaints,
            total=total,
            page=page,
            pages=math.ceil(total / limit),
            limit=limit,
        )

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    async def create_complaint(
        self,
        fields: ComplaintCreate | Mapping[str, Any],
        *,
        actor: str | None = None,
    ) -> Complaint:
        """File a new complaint in ``submitted`` with a fresh ``CMP`` code."""
        data = validate_input(ComplaintCreate, fields, what="complaint")
        now = self._now()
        sequence = await self._store.next_sequence(Complaint.collection)

        complaint = Complaint(
            complaint_id=format_complaint_id(now.astimezone(self._tz), sequence),
            **data.model_dump(),
            status_history=[
                StatusChange(status=ComplaintStatus.SUBMITTED, changed_at=now, changed_by=actor)
            ],
            created_at=now,
            updated_at=now,
        )
        saved = await self._store.insert(complaint)
        logger.info(
            "complaint.created",
            complaint_id=saved.complaint_id,
            category=saved.category,
            priority=saved.priority,
        )
        return saved

    async def assign_complaint(
        self,
        ref: str,
        technician_id: str,
        *,
        estimated_resolution_time: datetime | None = None,
        priority: ComplaintPriority | str | None = None,
        actor: str | None = None,
    ) -> Complaint:
        """Assign (or re-assign) a complaint to a technician.

        The specialization check runs before anything is written, so a
        mismatch leaves the complaint untouched.  On re-assignment the
        previous technician's active count is released.
        """
        complaint = await self.get_complaint(ref)
        technician = await self._require_technician(technician_id)
        ensure_specialization(technician, complaint)

        if priority is not None:
            try:
                priority = ComplaintPriority(priority)
            except ValueError:
                raise ValidationError(
                    f"Invalid priority '{priority}'",
                    details={"allowed": [p.value for p in ComplaintPriority]},
                ) from None

        now = self._now()
        saved, previous = await self._update(
            Complaint,
            complaint.id,
            lambda c: apply_assignment(
                c,
                technician,
                actor=actor,
                now=now,
                estimated_resolution_time=estimated_resolution_time,
                priority=priority,
            ),
        )

        if previous != technician.id:
            tech, _ = await self._update(
                Technician, technician.id, lambda t: record_assignment(t, now=now)
            )
            logger.info(
                "technician.counter_incremented",
                technician_id=tech.id,
                active_complaints=tech.active_complaints,
            )
            if previous is not None:
                await self._release_technician(previous, now=now)

        logger.info(
            "complaint.assigned",
            complaint_id=saved.complaint_id,
            technician_id=technician.id,
            previous_technician_id=previous,
            actor=actor,
        )
        return saved

    async def advance_status(
        self,
        ref: str,
        status: ComplaintStatus | str,
        actor: str | None = None,
        notes: str | None = None,
    ) -> Complaint:
        """Apply a status change through the state machine."""
        try:
            target = ComplaintStatus(status)
        except ValueError:
            raise ValidationError(
                f"Invalid status '{status}'",
                details={"allowed": [s.value for s in ComplaintStatus]},
            ) from None

        if target == ComplaintStatus.RESOLVED:
            return await self._resolve(ref, actor=actor, notes=notes, idempotent=False)

        complaint = await self.get_complaint(ref)
        now = self._now()

        def mutate(c: Complaint) -> str | None:
            assignee = c.assigned_to
            was_active = c.status in ACTIVE_STATUSES
            transition(c, target, actor, notes, now=now)
            if target == ComplaintStatus.REJECTED and was_active:
                return assignee
            return None

        saved, released = await self._update(Complaint, complaint.id, mutate)
        if released is not None:
            await self._release_technician(released, now=now)

        logger.info(
            "complaint.status_changed",
            complaint_id=saved.complaint_id,
            status=saved.status,
            actor=actor,
        )
        return saved

    async def resolve_complaint(
        self,
        ref: str,
        notes: str | None = None,
        images: list[ImageRef] | list[Mapping[str, Any]] | None = None,
        *,
        actor: str | None = None,
    ) -> Complaint:
        """Mark a complaint resolved with resolution notes and photos.

        Resolving an already-resolved complaint is a no-op that returns the
        stored record, so retried requests are safe.
        """
        return await self._resolve(
            ref, actor=actor, resolution_notes=notes, images=images, idempotent=True
        )

    async def _resolve(
        self,
        ref: str,
        *,
        actor: str | None,
        notes: str | None = None,
        resolution_notes: str | None = None,
        images: list[ImageRef] | list[Mapping[str, Any]] | None = None,
        idempotent: bool,
    ) -> Complaint:
        image_refs = [validate_input(ImageRef, i, what="resolution image") for i in images or []]
        complaint = await self.get_complaint(ref)
        now = self._now()

        def mutate(c: Complaint) -> bool:
            if idempotent and c.status == ComplaintStatus.RESOLVED:
                return False
            transition(c, ComplaintStatus.RESOLVED, actor, notes, now=now)
            if resolution_notes is not None:
                c.resolution_notes = resolution_notes.strip()
            if image_refs:
                c.resolution_images = image_refs
            return True

        saved, resolved_now = await self._update(Complaint, complaint.id, mutate)
        if not resolved_now:
            logger.info("complaint.resolve_repeated", complaint_id=saved.complaint_id)
            return saved

        if saved.assigned_to is not None:
            hours = saved.actual_resolution_time or 0
            try:
                tech, _ = await self._update(
                    Technician,
                    saved.assigned_to,
                    lambda t: record_resolution(t, hours, now=now),
                )
            except NotFound:
                logger.warning("technician.resolution_skipped", technician_id=saved.assigned_to)
            else:
                logger.info(
                    "technician.resolution_recorded",
                    technician_id=tech.id,
                    resolved_count=tech.resolved_count,
                    avg_resolution_time=tech.avg_resolution_time,
                )

        logger.info(
            "complaint.resolved",
            complaint_id=saved.complaint_id,
            resolution_hours=saved.actual_resolution_time,
            actor=actor,
        )
        return saved

    async def add_internal_note(self, ref: str, note: str, actor: str | None = None) -> Complaint:
        note = (note or "").strip()
        if not note:
            raise ValidationError("note must not be empty", details={"field": "note"})
        complaint = await self.get_complaint(ref)
        now = self._now()
        saved, _ = await self._update(
            Complaint, complaint.id, lambda c: add_note(c, note, actor, now=now)
        )
        logger.info("complaint.note_added", complaint_id=saved.complaint_id, actor=actor)
        return saved

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    async def get_stats(self, flt: ComplaintFilter | None = None) -> ComplaintStats:
        complaints = await self._store.find(Complaint, flt)
        return reporting.build_stats(complaints)

    async def get_monthly_report(
        self,
        month: int,
        year: int,
        flt: ComplaintFilter | None = None,
    ) -> MonthlyReport:
        if not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12", details={"month": month})
        if not 2000 <= year <= 9999:
            raise ValidationError("year is out of range", details={"year": year})

        start, end = reporting.month_bounds(year, month, self._tz)
        last_instant = end - timedelta(microseconds=1)
        month_filter = dataclasses.replace(
            flt or ComplaintFilter(), start_date=start, end_date=last_instant
        )
        complaints = await self._store.find(Complaint, month_filter)

        prev_year, prev_month = reporting.previous_month(year, month)
        prev_start, prev_end = reporting.month_bounds(prev_year, prev_month, self._tz)
        previous_total = await self._store.count(
            Complaint, lambda c: prev_start <= c.created_at < prev_end
        )

        technicians = {t.id: t for t in await self._store.find(Technician)}
        return reporting.build_monthly_report(
            complaints,
            year=year,
            month=month,
            previous_month_total=previous_total,
            technicians=technicians,
            tz=self._tz,
        )

    async def get_dashboard_overview(self) -> DashboardOverview:
        complaints = await self._store.find(Complaint)
        available = await self._store.count(Technician, lambda t: t.is_available)
        return reporting.build_dashboard(
            complaints,
            available_technicians=available,
            now=self._now(),
            tz=self._tz,
            recent_limit=self._recent_limit,
        )
