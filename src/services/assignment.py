"""Assignment matcher: pairs a complaint with an eligible technician."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from src.models.complaint import Complaint
from src.models.enums import ComplaintCategory, ComplaintPriority, ComplaintStatus
from src.models.technician import Technician
from src.services.errors import SpecializationMismatch
from src.services.lifecycle import transition


def ensure_specialization(technician: Technician, complaint: Complaint) -> None:
    """Raise :class:`SpecializationMismatch` unless *technician* covers the category."""
    if technician.handles(complaint.category):
        return
    specialization = [str(s) for s in technician.specialization]
    raise SpecializationMismatch(
        f"Technician specialization ({', '.join(specialization)}) "
        f"does not match complaint category ({complaint.category})",
        details={
            "technician_id": technician.id,
            "technician_specialization": specialization,
            "complaint_category": str(complaint.category),
        },
    )


def apply_assignment(
    complaint: Complaint,
    technician: Technician,
    *,
    actor: str | None,
    now: datetime,
    estimated_resolution_time: datetime | None = None,
    priority: ComplaintPriority | None = None,
) -> str | None:
    """Point *complaint* at *technician* and move it to ``assigned``.

    Returns the id of the technician it was previously assigned to, if
    any, so the caller can release that technician's workload.  The
    complaint is left untouched when the transition is not allowed.
    """
    ensure_specialization(technician, complaint)

    previous = complaint.assigned_to
    complaint.assigned_to = technician.id
    try:
        transition(complaint, ComplaintStatus.ASSIGNED, actor, now=now)
    except Exception:
        complaint.assigned_to = previous
        raise

    complaint.assigned_at = now
    if estimated_resolution_time is not None:
        complaint.estimated_resolution_time = estimated_resolution_time
    if priority is not None:
        complaint.priority = priority
    return previous


def eligible_technicians(
    technicians: Iterable[Technician],
    category: ComplaintCategory,
    *,
    available_only: bool = True,
) -> list[Technician]:
    """Technicians who can take *category*, least loaded first."""
    matches = [
        t for t in technicians
        if t.handles(category) and (t.is_available or not available_only)
    ]
    return sorted(matches, key=lambda t: (t.active_complaints, t.name))
