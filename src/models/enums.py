from __future__ import annotations

from enum import StrEnum


class ComplaintCategory(StrEnum):
    """Civic service a complaint is filed against; also a technician skill."""

    __slots__ = ()

    WATER = "water"
    ELECTRICITY = "electricity"
    ROADS = "roads"
    SANITATION = "sanitation"
    DRAINAGE = "drainage"
    STREETLIGHT = "streetlight"
    OTHER = "other"


class ComplaintStatus(StrEnum):
    __slots__ = ()

    SUBMITTED = "submitted"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class ComplaintPriority(StrEnum):
    __slots__ = ()

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class UserRole(StrEnum):
    __slots__ = ()

    CITIZEN = "citizen"
    ADMIN = "admin"
    TECHNICIAN = "technician"
