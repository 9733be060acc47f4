"""Reporting aggregator -- read-only statistics over complaint sets.

Everything here is a pure function over complaints already fetched from
the store in a single pass, so each report is internally consistent even
while other requests keep mutating records.  Empty inputs yield zeroed
structures rather than errors.

Reports produced:
    * **Stats** -- status/category/priority breakdowns, resolved vs.
      unresolved, mean resolution time.
    * **Monthly report** -- the stats for one calendar month plus
      technician performance, location density, month-over-month change
      and a reduced complaint listing.
    * **Dashboard overview** -- headline counters, category distribution
      and the most recent complaints.
    * **Technician stats** -- breakdowns for one technician's complaints.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, time, tzinfo
from enum import StrEnum
from typing import Final

from src.models.complaint import Complaint
from src.models.enums import (
    ComplaintCategory,
    ComplaintPriority,
    ComplaintStatus,
)
from src.models.report import (
    CategoryCount,
    ComplaintStats,
    DashboardOverview,
    MonthlyReport,
    RecentComplaint,
    ReportComplaintRow,
    ReportPeriod,
    ReportSummary,
    TechnicianPerformance,
    TechnicianStats,
)
from src.models.technician import Technician
from src.services.resolution_metrics import round_half_up

UNKNOWN_LOCATION: Final[str] = "Unknown"
_DESCRIPTION_PREVIEW = 100


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class ComplaintFilter:
    """Criteria applied to complaints before aggregation.

    ``start_date``/``end_date`` bound ``created_at`` inclusively and must be
    timezone-aware.
    """

    start_date: datetime | None = None
    end_date: datetime | None = None
    category: ComplaintCategory | None = None
    status: ComplaintStatus | None = None
    assigned_to: str | None = None
    citizen_phone: str | None = None

    def matches(self, complaint: Complaint) -> bool:
        if self.start_date is not None and complaint.created_at < self.start_date:
            return False
        if self.end_date is not None and complaint.created_at > self.end_date:
            return False
        if self.category is not None and complaint.category != self.category:
            return False
        if self.status is not None and complaint.status != self.status:
            return False
        if self.assigned_to is not None and complaint.assigned_to != self.assigned_to:
            return False
        if self.citizen_phone is not None and complaint.citizen_phone != self.citizen_phone:
            return False
        return True

    def __call__(self, complaint: Complaint) -> bool:
        return self.matches(complaint)


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------


def count_by(
    complaints: Iterable[Complaint],
    attribute: str,
    values: type[StrEnum],
) -> dict[str, int]:
    """Count complaints per enum value; every value present, zero-filled."""
    counts: dict[str, int] = {v.value: 0 for v in values}
    for complaint in complaints:
        key = str(getattr(complaint, attribute))
        counts[key] = counts.get(key, 0) + 1
    return counts


def resolved_unresolved(complaints: Sequence[Complaint]) -> tuple[int, int]:
    resolved = sum(1 for c in complaints if c.status == ComplaintStatus.RESOLVED)
    return resolved, len(complaints) - resolved


def average_resolution_time(complaints: Iterable[Complaint]) -> float:
    """Mean ``actual_resolution_time`` of resolved complaints that have one."""
    hours = [
        c.actual_resolution_time
        for c in complaints
        if c.status == ComplaintStatus.RESOLVED and c.actual_resolution_time is not None
    ]
    if not hours:
        return 0.0
    return sum(hours) / len(hours)


def technician_performance(
    complaints: Iterable[Complaint],
    technicians: Mapping[str, Technician],
) -> list[TechnicianPerformance]:
    """Per-assignee counts, in order of each technician's first appearance."""
    rows: dict[str, TechnicianPerformance] = {}
    for complaint in complaints:
        tech_id = complaint.assigned_to
        if tech_id is None:
            continue
        row = rows.get(tech_id)
        if row is None:
            tech = technicians.get(tech_id)
            row = TechnicianPerformance(
                technician_id=tech_id,
                name=tech.name if tech is not None else "Unknown technician",
                phone=tech.phone if tech is not None else None,
            )
            rows[tech_id] = row
        row.assigned += 1
        if complaint.status == ComplaintStatus.RESOLVED:
            row.resolved += 1
        elif complaint.status == ComplaintStatus.IN_PROGRESS:
            row.in_progress += 1
    return list(rows.values())


def location_density(complaints: Iterable[Complaint]) -> dict[str, int]:
    """Complaint count per verbatim address; blank addresses under ``Unknown``."""
    density: dict[str, int] = {}
    for complaint in complaints:
        address = complaint.location.address or UNKNOWN_LOCATION
        density[address] = density.get(address, 0) + 1
    return density


def month_over_month_change(this_month: int, previous_month: int) -> int:
    """Percentage change vs. the previous month; 0 when it had no complaints."""
    if previous_month == 0:
        return 0
    return round_half_up(100 * (this_month - previous_month) / previous_month)


def month_bounds(year: int, month: int, tz: tzinfo) -> tuple[datetime, datetime]:
    """Local-time ``[start, end)`` of a calendar month."""
    start = datetime(year, month, 1, tzinfo=tz)
    next_year, next_month = (year + 1, 1) if month == 12 else (year, month + 1)
    return start, datetime(next_year, next_month, 1, tzinfo=tz)


def previous_month(year: int, month: int) -> tuple[int, int]:
    return (year - 1, 12) if month == 1 else (year, month - 1)


def localize(value: datetime | None, tz: tzinfo) -> datetime | None:
    """Attach *tz* to a naive datetime; aware values pass through."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=tz)


def start_of_day(now: datetime, tz: tzinfo) -> datetime:
    local = now.astimezone(tz)
    return datetime.combine(local.date(), time.min, tzinfo=tz)


def _preview(description: str) -> str:
    if len(description) > _DESCRIPTION_PREVIEW:
        return description[:_DESCRIPTION_PREVIEW] + "..."
    return description


def _newest_first(complaints: Iterable[Complaint]) -> list[Complaint]:
    return sorted(complaints, key=lambda c: c.created_at, reverse=True)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


def build_stats(complaints: Sequence[Complaint]) -> ComplaintStats:
    resolved, unresolved = resolved_unresolved(complaints)
    return ComplaintStats(
        total=len(complaints),
        resolved=resolved,
        unresolved=unresolved,
        status_counts=count_by(complaints, "status", ComplaintStatus),
        category_counts=count_by(complaints, "category", ComplaintCategory),
        priority_counts=count_by(complaints, "priority", ComplaintPriority),
        avg_resolution_time=round(average_resolution_time(complaints), 2),
    )


def build_monthly_report(
    complaints: Sequence[Complaint],
    *,
    year: int,
    month: int,
    previous_month_total: int,
    technicians: Mapping[str, Technician],
    tz: tzinfo,
) -> MonthlyReport:
    """Assemble the report for complaints created in one calendar month.

    *complaints* must already be restricted to the month (and any other
    filter); *previous_month_total* is the count for the month before.
    """
    ordered = _newest_first(complaints)
    start, end = month_bounds(year, month, tz)
    resolved, unresolved = resolved_unresolved(ordered)

    rows = [
        ReportComplaintRow(
            complaint_id=c.complaint_id,
            category=c.category,
            description=_preview(c.description),
            status=c.status,
            location=c.location.address or "N/A",
            created_at=c.created_at,
            resolved_at=c.resolved_at,
            assigned_to=(
                technicians[c.assigned_to].name
                if c.assigned_to is not None and c.assigned_to in technicians
                else "Unassigned"
            ),
        )
        for c in ordered
    ]

    return MonthlyReport(
        period=ReportPeriod(month=month, year=year, start_date=start, end_date=end),
        summary=ReportSummary(
            total_complaints=len(ordered),
            resolved=resolved,
            unresolved=unresolved,
            avg_resolution_time=round_half_up(average_resolution_time(ordered)),
            previous_month_total=previous_month_total,
            month_over_month_change=month_over_month_change(len(ordered), previous_month_total),
        ),
        status_breakdown=count_by(ordered, "status", ComplaintStatus),
        category_breakdown=count_by(ordered, "category", ComplaintCategory),
        technician_performance=technician_performance(ordered, technicians),
        location_density=location_density(ordered),
        complaints=rows,
    )


def build_dashboard(
    complaints: Sequence[Complaint],
    *,
    available_technicians: int,
    now: datetime,
    tz: tzinfo,
    recent_limit: int = 10,
) -> DashboardOverview:
    today = start_of_day(now, tz)
    statuses = count_by(complaints, "status", ComplaintStatus)
    categories = count_by(complaints, "category", ComplaintCategory)

    # sorted() is stable, so equal counts keep enum order.
    category_stats = [
        CategoryCount(category=ComplaintCategory(name), count=count)
        for name, count in sorted(categories.items(), key=lambda kv: kv[1], reverse=True)
        if count > 0
    ]

    recent = [
        RecentComplaint(
            id=c.id,
            complaint_id=c.complaint_id,
            category=c.category,
            status=c.status,
            created_at=c.created_at,
            address=c.location.address,
        )
        for c in _newest_first(complaints)[:recent_limit]
    ]

    return DashboardOverview(
        total_complaints=len(complaints),
        today_complaints=sum(1 for c in complaints if c.created_at >= today),
        pending_complaints=statuses[ComplaintStatus.SUBMITTED],
        in_progress_complaints=statuses[ComplaintStatus.IN_PROGRESS],
        resolved_complaints=statuses[ComplaintStatus.RESOLVED],
        active_technicians=available_technicians,
        category_stats=category_stats,
        recent_complaints=recent,
    )


def build_technician_stats(
    technician: Technician,
    complaints: Sequence[Complaint],
) -> TechnicianStats:
    """Breakdowns over the complaints assigned to *technician*."""
    mine = [c for c in complaints if c.assigned_to == technician.id]
    return TechnicianStats(
        technician_id=technician.id,
        name=technician.name,
        phone=technician.phone,
        specialization=technician.specialization,
        active_complaints=technician.active_complaints,
        resolved_count=technician.resolved_count,
        avg_resolution_time=technician.avg_resolution_time,
        rating=technician.rating,
        status_counts=count_by(mine, "status", ComplaintStatus),
        category_counts=count_by(mine, "category", ComplaintCategory),
        period_avg_resolution_time=round(average_resolution_time(mine), 2),
    )
