"""Administrative reporting endpoints for Gram Shikayat."""

from __future__ import annotations

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from config.settings import settings
from src.middleware.auth import Actor, require_roles
from src.models.enums import ComplaintCategory, ComplaintStatus, UserRole
from src.models.report import DashboardOverview, MonthlyReport
from src.services.complaint_service import ComplaintService
from src.services.reporting import ComplaintFilter

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/reports", tags=["reports"])


def _complaints(request: Request) -> ComplaintService:
    service = getattr(request.app.state, "complaints", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Complaint service not available")
    return service


@router.get("/monthly", response_model=MonthlyReport)
async def monthly_report(
    request: Request,
    month: int | None = Query(default=None, ge=1, le=12),
    year: int | None = Query(default=None, ge=2000, le=9999),
    category: ComplaintCategory | None = None,
    status_filter: ComplaintStatus | None = Query(default=None, alias="status"),
    technician_id: str | None = Query(default=None, alias="technicianId"),
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
) -> MonthlyReport:
    """Monthly report for the panchayat office; defaults to the current month."""
    today = datetime.now(settings.tzinfo)
    report = await _complaints(request).get_monthly_report(
        month or today.month,
        year or today.year,
        ComplaintFilter(category=category, status=status_filter, assigned_to=technician_id),
    )
    logger.info(
        "api.monthly_report",
        month=report.period.month,
        year=report.period.year,
        total=report.summary.total_complaints,
        by=actor.user_id,
    )
    return report


@router.get("/dashboard", response_model=DashboardOverview)
async def dashboard(
    request: Request,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
) -> DashboardOverview:
    return await _complaints(request).get_dashboard_overview()
