"""Gram Shikayat service layer -- complaint engine, technician roster and store."""

from __future__ import annotations

from src.services.complaint_service import ComplaintService
from src.services.errors import (
    ComplaintEngineError,
    Conflict,
    HasActiveWork,
    InvalidTransition,
    MissingAssignment,
    NotFound,
    SpecializationMismatch,
    ValidationError,
)
from src.services.reporting import ComplaintFilter
from src.services.store import (
    InMemoryRecordStore,
    RecordStore,
    RedisRecordStore,
    create_store,
)
from src.services.technician_service import TechnicianService

__all__ = [
    "ComplaintEngineError",
    "ComplaintFilter",
    "ComplaintService",
    "Conflict",
    "HasActiveWork",
    "InMemoryRecordStore",
    "InvalidTransition",
    "MissingAssignment",
    "NotFound",
    "RecordStore",
    "RedisRecordStore",
    "SpecializationMismatch",
    "TechnicianService",
    "ValidationError",
    "create_store",
]
