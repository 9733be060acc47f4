"""Resolution-time derivation.

Resolution time is the whole number of hours between a complaint's
creation and its first transition into ``resolved``.  It is written once
and never recomputed, even if a resolve call is retried.
"""

from __future__ import annotations

import math
from datetime import datetime

from src.models.complaint import Complaint

_SECONDS_PER_HOUR = 3600


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves toward positive infinity.

    ``round()`` uses banker's rounding (``round(2.5) == 2``); the portal's
    figures have always been rounded half-up.
    """
    return math.floor(value + 0.5)


def compute_resolution_hours(created_at: datetime, resolved_at: datetime) -> int:
    """Whole hours from creation to resolution; 0 under clock skew."""
    seconds = (resolved_at - created_at).total_seconds()
    if seconds < 0:
        return 0
    return round_half_up(seconds / _SECONDS_PER_HOUR)


def stamp_resolution(complaint: Complaint, now: datetime) -> int | None:
    """Set ``resolved_at`` and ``actual_resolution_time`` if not already set.

    Returns the computed hours, or ``None`` when the complaint was already
    stamped by an earlier resolution.
    """
    if complaint.resolved_at is not None:
        return None
    complaint.resolved_at = now
    complaint.actual_resolution_time = compute_resolution_hours(complaint.created_at, now)
    return complaint.actual_resolution_time
