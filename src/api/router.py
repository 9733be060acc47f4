"""Main API router combining all v1 route modules.

Aggregates all routers under the ``/api/v1`` prefix so the
FastAPI application only needs to include a single router.

Includes:
    * Complaints: filing, tracking, assignment, status, resolution
    * Technicians: roster, workload, location
    * Reports: monthly report, dashboard overview
    * Health: liveness and readiness probes
"""

from __future__ import annotations

from fastapi import APIRouter

from src.api.v1 import complaints, health, reports, technicians

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(complaints.router)
api_router.include_router(technicians.router)
api_router.include_router(reports.router)
api_router.include_router(health.router)
