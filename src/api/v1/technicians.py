"""Technician roster API endpoints for Gram Shikayat."""

from __future__ import annotations

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from config.settings import settings
from src.middleware.auth import Actor, require_roles
from src.models.enums import ComplaintCategory, UserRole
from src.models.report import TechnicianDetail, TechnicianStats
from src.models.technician import (
    Technician,
    TechnicianCreate,
    TechnicianPage,
    TechnicianUpdate,
)
from src.services.reporting import localize
from src.services.technician_service import TechnicianService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/technicians", tags=["technicians"])


class LocationUpdateRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


def _technicians(request: Request) -> TechnicianService:
    service = getattr(request.app.state, "technicians", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Technician service not available")
    return service


@router.get("", response_model=TechnicianPage)
async def list_technicians(
    request: Request,
    specialization: ComplaintCategory | None = None,
    is_available: bool | None = None,
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
) -> TechnicianPage:
    limit = min(limit or settings.default_page_size, settings.max_page_size)
    return await _technicians(request).list_technicians(
        specialization=specialization,
        is_available=is_available,
        page=page,
        limit=limit,
    )


@router.post("", status_code=status.HTTP_201_CREATED, response_model=Technician)
async def create_technician(
    body: TechnicianCreate,
    request: Request,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
) -> Technician:
    technician = await _technicians(request).create_technician(body)
    logger.info("api.technician_created", technician_id=technician.id, by=actor.user_id)
    return technician


@router.put("/location", response_model=Technician)
async def update_my_location(
    body: LocationUpdateRequest,
    request: Request,
    actor: Actor = Depends(require_roles(UserRole.TECHNICIAN)),
) -> Technician:
    """Report the calling technician's current GPS position."""
    return await _technicians(request).update_location(
        actor.user_id, body.latitude, body.longitude
    )


@router.get("/{technician_id}", response_model=TechnicianDetail)
async def get_technician(
    technician_id: str,
    request: Request,
    actor: Actor = Depends(require_roles(UserRole.ADMIN, UserRole.TECHNICIAN)),
) -> TechnicianDetail:
    detail = await _technicians(request).get_technician(technician_id)
    if actor.role == UserRole.TECHNICIAN and detail.technician.user_id != actor.user_id:
        raise HTTPException(status_code=403, detail="You can only view your own profile.")
    return detail


@router.put("/{technician_id}", response_model=Technician)
async def update_technician(
    technician_id: str,
    body: TechnicianUpdate,
    request: Request,
    actor: Actor = Depends(require_roles(UserRole.ADMIN, UserRole.TECHNICIAN)),
) -> Technician:
    service = _technicians(request)
    if actor.role == UserRole.TECHNICIAN:
        own = await service.find_by_user(actor.user_id)
        if own is None or own.id != technician_id:
            raise HTTPException(status_code=403, detail="You can only update your own profile.")
        if body.specialization is not None:
            raise HTTPException(status_code=403, detail="Only an administrator can change specialization.")
    return await service.update_technician(technician_id, body.model_dump(exclude_unset=True))


@router.delete("/{technician_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_technician(
    technician_id: str,
    request: Request,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
) -> None:
    await _technicians(request).delete_technician(technician_id)
    logger.info("api.technician_deleted", technician_id=technician_id, by=actor.user_id)


@router.get("/{technician_id}/stats", response_model=TechnicianStats)
async def technician_stats(
    technician_id: str,
    request: Request,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    actor: Actor = Depends(require_roles(UserRole.ADMIN, UserRole.TECHNICIAN)),
) -> TechnicianStats:
    return await _technicians(request).get_technician_stats(
        technician_id,
        start_date=localize(start_date, settings.tzinfo),
        end_date=localize(end_date, settings.tzinfo),
    )
