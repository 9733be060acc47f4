"""Read-side report schemas produced by :mod:`src.services.reporting`."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from src.models.enums import ComplaintCategory, ComplaintPriority, ComplaintStatus
from src.models.technician import Technician


class ComplaintStats(BaseModel):
    """Aggregate counts over a filtered complaint set."""

    total: int = 0
    resolved: int = 0
    unresolved: int = 0
    status_counts: dict[str, int] = Field(default_factory=dict)
    category_counts: dict[str, int] = Field(default_factory=dict)
    priority_counts: dict[str, int] = Field(default_factory=dict)
    avg_resolution_time: float = 0.0  # hours


class TechnicianPerformance(BaseModel):
    technician_id: str
    name: str
    phone: str | None = None
    assigned: int = 0
    resolved: int = 0
    in_progress: int = 0


class ReportPeriod(BaseModel):
    month: int = Field(..., ge=1, le=12)
    year: int
    start_date: datetime
    end_date: datetime


class ReportSummary(BaseModel):
    total_complaints: int
    resolved: int
    unresolved: int
    avg_resolution_time: int  # hours
    previous_month_total: int
    month_over_month_change: int  # percent


class ReportComplaintRow(BaseModel):
    complaint_id: str
    category: ComplaintCategory
    description: str
    status: ComplaintStatus
    location: str
    created_at: datetime
    resolved_at: datetime | None = None
    assigned_to: str


class MonthlyReport(BaseModel):
    period: ReportPeriod
    summary: ReportSummary
    status_breakdown: dict[str, int]
    category_breakdown: dict[str, int]
    technician_performance: list[TechnicianPerformance]
    location_density: dict[str, int]
    complaints: list[ReportComplaintRow]


class CategoryCount(BaseModel):
    category: ComplaintCategory
    count: int


class RecentComplaint(BaseModel):
    id: str
    complaint_id: str
    category: ComplaintCategory
    status: ComplaintStatus
    created_at: datetime
    address: str | None = None


class DashboardOverview(BaseModel):
    total_complaints: int = 0
    today_complaints: int = 0
    pending_complaints: int = 0
    in_progress_complaints: int = 0
    resolved_complaints: int = 0
    active_technicians: int = 0
    category_stats: list[CategoryCount] = Field(default_factory=list)
    recent_complaints: list[RecentComplaint] = Field(default_factory=list)


class TechnicianStats(BaseModel):
    """Performance of one technician over an optional date range."""

    technician_id: str
    name: str
    phone: str
    specialization: list[ComplaintCategory]
    active_complaints: int
    resolved_count: int
    avg_resolution_time: int
    rating: float
    status_counts: dict[str, int]
    category_counts: dict[str, int]
    period_avg_resolution_time: float


class ActiveAssignment(BaseModel):
    """Reduced projection of a complaint a technician is working on."""

    id: str
    complaint_id: str
    category: ComplaintCategory
    status: ComplaintStatus
    priority: ComplaintPriority
    address: str | None = None
    created_at: datetime


class TechnicianDetail(BaseModel):
    """A technician together with the complaints currently on their plate."""

    technician: Technician
    assigned_complaints: list[ActiveAssignment]
