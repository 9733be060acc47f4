"""Complaint API endpoints for Gram Shikayat.

Citizens file and track complaints, administrators assign them to
technicians, and technicians move them through to resolution.  Engine
failures surface through the application-level exception handler.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from config.settings import settings
from src.middleware.auth import Actor, get_actor, require_roles
from src.models.complaint import (
    AssignmentOptions,
    Complaint,
    ComplaintCreate,
    ComplaintPage,
    ImageRef,
)
from src.models.enums import ComplaintCategory, ComplaintStatus, UserRole
from src.models.report import ComplaintStats
from src.services.complaint_service import ComplaintService
from src.services.reporting import ComplaintFilter, localize
from src.services.technician_service import TechnicianService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/complaints", tags=["complaints"])


# ---------------------------------------------------------------------------
# Request / response schemas
# ---------------------------------------------------------------------------


class StatusUpdateRequest(BaseModel):
    status: ComplaintStatus
    notes: str | None = Field(default=None, max_length=2000)


class ResolveRequest(BaseModel):
    resolution_notes: str | None = Field(default=None, max_length=5000)
    resolution_images: list[ImageRef] = Field(default_factory=list, max_length=5)


class NoteRequest(BaseModel):
    note: str = Field(..., min_length=1, max_length=2000)


class TrackingStep(BaseModel):
    """A status change without the staff member who made it."""

    status: ComplaintStatus
    changed_at: datetime


class TrackingResponse(BaseModel):
    """Public view of a complaint: progress only, no personal data."""

    complaint_id: str
    category: ComplaintCategory
    status: ComplaintStatus
    address: str | None = None
    status_history: list[TrackingStep]
    created_at: datetime
    resolved_at: datetime | None = None
    estimated_resolution_time: datetime | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _complaints(request: Request) -> ComplaintService:
    service = getattr(request.app.state, "complaints", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Complaint service not available")
    return service


def _technicians(request: Request) -> TechnicianService:
    service = getattr(request.app.state, "technicians", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Technician service not available")
    return service


async def _technician_id(request: Request, actor: Actor) -> str:
    technician = await _technicians(request).find_by_user(actor.user_id)
    if technician is None:
        raise HTTPException(status_code=403, detail="No technician profile for this user.")
    return technician.id


async def _ensure_visible(request: Request, actor: Actor, complaint: Complaint) -> None:
    """Citizens see their own complaints, technicians their assignments."""
    if actor.role == UserRole.ADMIN:
        return
    if actor.role == UserRole.CITIZEN:
        if actor.phone is not None and complaint.citizen_phone == actor.phone:
            return
    elif complaint.assigned_to == await _technician_id(request, actor):
        return
    raise HTTPException(status_code=403, detail="You do not have access to this complaint.")


def _page_limit(limit: int | None) -> int:
    return min(limit or settings.default_page_size, settings.max_page_size)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("", status_code=status.HTTP_201_CREATED, response_model=Complaint)
async def create_complaint(
    body: ComplaintCreate,
    request: Request,
    actor: Actor = Depends(require_roles(UserRole.CITIZEN, UserRole.ADMIN)),
) -> Complaint:
    """File a new complaint.

    A citizen always files under the phone number they logged in with.
    """
    if actor.role == UserRole.CITIZEN and actor.phone:
        body = body.model_copy(update={"citizen_phone": actor.phone})
    return await _complaints(request).create_complaint(body, actor=actor.user_id)


@router.get("", response_model=ComplaintPage)
async def list_complaints(
    request: Request,
    status_filter: ComplaintStatus | None = Query(default=None, alias="status"),
    category: ComplaintCategory | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    sort_by: str = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    actor: Actor = Depends(get_actor),
) -> ComplaintPage:
    """List complaints visible to the caller, newest first by default."""
    flt = ComplaintFilter(
        start_date=localize(start_date, settings.tzinfo),
        end_date=localize(end_date, settings.tzinfo),
        category=category,
        status=status_filter,
    )
    if actor.role == UserRole.CITIZEN:
        if not actor.phone:
            raise HTTPException(status_code=403, detail="Citizen phone number is required.")
        flt.citizen_phone = actor.phone
    elif actor.role == UserRole.TECHNICIAN:
        flt.assigned_to = await _technician_id(request, actor)

    return await _complaints(request).list_complaints(
        flt,
        page=page,
        limit=_page_limit(limit),
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.get("/stats/overview", response_model=ComplaintStats)
async def complaint_stats(
    request: Request,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    category: ComplaintCategory | None = None,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
) -> ComplaintStats:
    flt = ComplaintFilter(
        start_date=localize(start_date, settings.tzinfo),
        end_date=localize(end_date, settings.tzinfo),
        category=category,
    )
    return await _complaints(request).get_stats(flt)


@router.get("/track/{ref}", response_model=TrackingResponse)
async def track_complaint(ref: str, request: Request) -> TrackingResponse:
    """Public status lookup by complaint code, e.g. ``CMP240200001``."""
    complaint = await _complaints(request).get_complaint(ref)
    return TrackingResponse(
        complaint_id=complaint.complaint_id,
        category=complaint.category,
        status=complaint.status,
        address=complaint.address,
        status_history=[
            TrackingStep(status=h.status, changed_at=h.changed_at)
            for h in complaint.status_history
        ],
        created_at=complaint.created_at,
        resolved_at=complaint.resolved_at,
        estimated_resolution_time=complaint.estimated_resolution_time,
    )


@router.get("/{ref}", response_model=Complaint)
async def get_complaint(
    ref: str,
    request: Request,
    actor: Actor = Depends(get_actor),
) -> Complaint:
    complaint = await _complaints(request).get_complaint(ref)
    await _ensure_visible(request, actor, complaint)
    return complaint


@router.patch("/{ref}/status", response_model=Complaint)
async def update_status(
    ref: str,
    body: StatusUpdateRequest,
    request: Request,
    actor: Actor = Depends(require_roles(UserRole.ADMIN, UserRole.TECHNICIAN)),
) -> Complaint:
    service = _complaints(request)
    if actor.role == UserRole.TECHNICIAN:
        await _ensure_visible(request, actor, await service.get_complaint(ref))
    return await service.advance_status(ref, body.status, actor.user_id, body.notes)


@router.post("/{ref}/assign", response_model=Complaint)
async def assign_complaint(
    ref: str,
    body: AssignmentOptions,
    request: Request,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
) -> Complaint:
    return await _complaints(request).assign_complaint(
        ref,
        body.technician_id,
        estimated_resolution_time=body.estimated_resolution_time,
        priority=body.priority,
        actor=actor.user_id,
    )


@router.post("/{ref}/resolve", response_model=Complaint)
async def resolve_complaint(
    ref: str,
    body: ResolveRequest,
    request: Request,
    actor: Actor = Depends(require_roles(UserRole.TECHNICIAN, UserRole.ADMIN)),
) -> Complaint:
    """Mark a complaint resolved with notes and after-photos."""
    service = _complaints(request)
    if actor.role == UserRole.TECHNICIAN:
        await _ensure_visible(request, actor, await service.get_complaint(ref))
    return await service.resolve_complaint(
        ref,
        body.resolution_notes,
        body.resolution_images,
        actor=actor.user_id,
    )


@router.post("/{ref}/notes", response_model=Complaint)
async def add_note(
    ref: str,
    body: NoteRequest,
    request: Request,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
) -> Complaint:
    return await _complaints(request).add_internal_note(ref, body.note, actor.user_id)
