"""Complaint state machine.

Owns the table of legal status transitions and the append-only
``status_history`` / ``internal_notes`` trails::

    submitted ──> assigned ──> in-progress ──> resolved
        │            │  ▲           │             ▲
        │            │  └───────────┘ re-assign   │
        │            └────────────────────────────┘
        └──> rejected <──┘

``resolved`` and ``rejected`` are terminal.  ``assigned -> assigned`` and
``in-progress -> assigned`` exist for re-assignment to another technician.

The functions here only edit the complaint they are given; persistence and
the technician-side effects (workload ledger) belong to the caller.
"""

from __future__ import annotations

from datetime import datetime
from typing import Final

import structlog

from src.models.complaint import Complaint, InternalNote, StatusChange
from src.models.enums import ComplaintStatus
from src.services.errors import InvalidTransition, MissingAssignment
from src.services.resolution_metrics import stamp_resolution

logger = structlog.get_logger(__name__)

_S = ComplaintStatus

TRANSITIONS: Final[dict[ComplaintStatus, frozenset[ComplaintStatus]]] = {
    _S.SUBMITTED: frozenset({_S.ASSIGNED, _S.REJECTED}),
    _S.ASSIGNED: frozenset({_S.ASSIGNED, _S.IN_PROGRESS, _S.RESOLVED, _S.REJECTED}),
    _S.IN_PROGRESS: frozenset({_S.ASSIGNED, _S.RESOLVED}),
    _S.RESOLVED: frozenset(),
    _S.REJECTED: frozenset(),
}

# Statuses counted in a technician's ``active_complaints``.
ACTIVE_STATUSES: Final[frozenset[ComplaintStatus]] = frozenset({_S.ASSIGNED, _S.IN_PROGRESS})

# Statuses in which ``assigned_to`` must be set.
ASSIGNED_STATUSES: Final[frozenset[ComplaintStatus]] = frozenset(
    {_S.ASSIGNED, _S.IN_PROGRESS, _S.RESOLVED}
)


def allowed_targets(status: ComplaintStatus) -> frozenset[ComplaintStatus]:
    return TRANSITIONS[ComplaintStatus(status)]


def can_transition(current: ComplaintStatus, target: ComplaintStatus) -> bool:
    return ComplaintStatus(target) in allowed_targets(current)


def is_terminal(status: ComplaintStatus) -> bool:
    return not allowed_targets(status)


def add_note(complaint: Complaint, note: str, actor: str | None, *, now: datetime) -> None:
    complaint.internal_notes.append(InternalNote(note=note, added_by=actor, added_at=now))
    complaint.updated_at = now


def transition(
    complaint: Complaint,
    new_status: ComplaintStatus,
    actor: str | None,
    notes: str | None = None,
    *,
    now: datetime,
) -> Complaint:
    """Move *complaint* to *new_status*, recording history and notes.

    Raises :class:`InvalidTransition` when the table forbids the move and
    :class:`MissingAssignment` when entering ``assigned`` with no
    technician on the complaint.  Entering ``resolved`` stamps the
    resolution time (once); entering ``rejected`` clears the assignee.
    """
    current = ComplaintStatus(complaint.status)
    target = ComplaintStatus(new_status)

    if not can_transition(current, target):
        allowed = sorted(s.value for s in allowed_targets(current))
        raise InvalidTransition(
            f"Cannot change complaint {complaint.complaint_id} from '{current}' to '{target}'",
            details={"from": current.value, "to": target.value, "allowed": allowed},
        )

    if target == _S.ASSIGNED and complaint.assigned_to is None:
        raise MissingAssignment(
            f"Complaint {complaint.complaint_id} has no technician; assign one first",
            details={"complaint_id": complaint.complaint_id},
        )

    complaint.status = target
    complaint.status_history.append(StatusChange(status=target, changed_at=now, changed_by=actor))
    if notes:
        complaint.internal_notes.append(InternalNote(note=notes, added_by=actor, added_at=now))

    if target == _S.REJECTED:
        complaint.assigned_to = None
    elif target == _S.RESOLVED:
        stamp_resolution(complaint, now)

    complaint.updated_at = now

    logger.debug(
        "lifecycle.transition",
        complaint_id=complaint.complaint_id,
        from_status=current,
        to_status=target,
        actor=actor,
    )
    return complaint
