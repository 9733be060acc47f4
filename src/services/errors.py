"""Typed failures raised by the complaint engine.

Every failure carries a stable ``code`` and an HTTP ``status_code`` so the
API layer can render it without inspecting the message.  Record-store
infrastructure errors are not part of this hierarchy; they
propagate unchanged.
"""

from __future__ import annotations

from typing import Any, ClassVar


class ComplaintEngineError(Exception):
    """Base class for all engine failures."""

    code: ClassVar[str] = "engine_error"
    status_code: ClassVar[int] = 500

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.message, **self.details}


class ValidationError(ComplaintEngineError):
    """Missing or malformed input field."""

    code = "validation_error"
    status_code = 400


class NotFound(ComplaintEngineError):
    code = "not_found"
    status_code = 404


class InvalidTransition(ComplaintEngineError):
    """Requested status is not reachable from the current status."""

    code = "invalid_transition"
    status_code = 409


class SpecializationMismatch(ComplaintEngineError):
    code = "specialization_mismatch"
    status_code = 400


class MissingAssignment(ComplaintEngineError):
    """Entering ``assigned`` without a technician on the complaint."""

    code = "missing_assignment"
    status_code = 409


class HasActiveWork(ComplaintEngineError):
    code = "has_active_work"
    status_code = 409


class Conflict(ComplaintEngineError):
    """Optimistic-concurrency retries exhausted."""

    code = "conflict"
    status_code = 409


def from_pydantic(exc: Any, *, what: str) -> ValidationError:
    """Convert a :class:`pydantic.ValidationError` into an engine failure."""
    errors = [
        {
            "field": ".".join(str(p) for p in err.get("loc", ())),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    fields = ", ".join(e["field"] for e in errors if e["field"]) or "input"
    return ValidationError(f"Invalid {what}: {fields}", details={"errors": errors})
