"""Technician workload ledger.

Keeps each technician's denormalised counters in step with complaint
transitions:

* ``record_assignment`` -- a complaint was assigned to the technician.
* ``record_resolution`` -- one of their complaints was resolved.
* ``record_release``    -- one of their complaints was re-assigned away
  or rejected.

Each function edits the technician in place and is applied inside an
optimistic update (see :mod:`src.services.optimistic`), so it is always
re-derived from the freshest stored counters.  Counters never go below
zero.  The caller invokes ``record_resolution`` once per resolved
transition; the ledger itself does not de-duplicate.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from src.models.complaint import Complaint
from src.models.technician import Technician
from src.services.lifecycle import ACTIVE_STATUSES
from src.services.resolution_metrics import round_half_up


def average_resolution_time(total_hours: int, resolved_count: int) -> int:
    if resolved_count <= 0:
        return 0
    return round_half_up(total_hours / resolved_count)


def record_assignment(technician: Technician, *, now: datetime | None = None) -> Technician:
    technician.active_complaints += 1
    if now is not None:
        technician.updated_at = now
    return technician


def record_release(technician: Technician, *, now: datetime | None = None) -> Technician:
    technician.active_complaints = max(0, technician.active_complaints - 1)
    if now is not None:
        technician.updated_at = now
    return technician


def record_resolution(
    technician: Technician,
    resolution_hours: int,
    *,
    now: datetime | None = None,
) -> Technician:
    technician.active_complaints = max(0, technician.active_complaints - 1)
    technician.resolved_count += 1
    technician.total_resolution_time += max(0, resolution_hours)
    technician.avg_resolution_time = average_resolution_time(
        technician.total_resolution_time, technician.resolved_count
    )
    if now is not None:
        technician.updated_at = now
    return technician


def live_active_count(technician_id: str, complaints: Iterable[Complaint]) -> int:
    """Count complaints currently in the technician's active workload."""
    return sum(
        1 for c in complaints if c.assigned_to == technician_id and c.status in ACTIVE_STATUSES
    )
