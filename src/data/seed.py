"""Demo data for a fresh Gram Shikayat deployment.

Creates the Ashta Panchayat technician roster and a deterministic set of
complaints spread across every category and lifecycle stage.  Everything
goes through the engine operations, so workload counters, status history
and resolution times are consistent with what real traffic produces.
Designed to run once at application startup when ``seed_demo_data`` is
enabled; it does nothing if any technician already exists.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from src.models.enums import ComplaintCategory, ComplaintPriority, ComplaintStatus

if TYPE_CHECKING:
    from src.services.complaint_service import ComplaintService
    from src.services.technician_service import TechnicianService

logger = structlog.get_logger(__name__)

SEED_ACTOR = "seed"

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

TECHNICIANS: list[dict] = [
    {
        "name": "Ramesh Kumar",
        "phone": "9876543211",
        "specialization": [ComplaintCategory.WATER, ComplaintCategory.SANITATION],
    },
    {
        "name": "Suresh Patel",
        "phone": "9876543212",
        "specialization": [ComplaintCategory.ELECTRICITY, ComplaintCategory.STREETLIGHT],
    },
    {
        "name": "Mukesh Singh",
        "phone": "9876543213",
        "specialization": [ComplaintCategory.ROADS, ComplaintCategory.DRAINAGE],
    },
]

CITIZENS: list[tuple[str, str]] = [
    ("9876543220", "Rajesh Sharma"),
    ("9876543221", "Priya Gupta"),
    ("9876543222", "Amit Verma"),
]

LOCATIONS: list[dict] = [
    {"address": "Village Ashta, Main Road", "latitude": 23.7041, "longitude": 86.9740},
    {"address": "Ashta School Area", "latitude": 23.7050, "longitude": 86.9750},
    {"address": "Market Area, Ashta", "latitude": 23.7035, "longitude": 86.9730},
    {"address": "Temple Road, Ashta", "latitude": 23.7045, "longitude": 86.9735},
    {"address": "Railway Station Road", "latitude": 23.7055, "longitude": 86.9745},
]

DESCRIPTIONS: dict[ComplaintCategory, list[str]] = {
    ComplaintCategory.WATER: [
        "No water supply for the last 3 days",
        "Water pipe leakage causing wastage",
        "Low water pressure in the area",
        "Contaminated water supply issue",
    ],
    ComplaintCategory.ELECTRICITY: [
        "Frequent power cuts in the area",
        "Transformer making unusual noise",
        "Electric pole damaged and tilted",
        "Meter not working properly",
    ],
    ComplaintCategory.ROADS: [
        "Large potholes on main road",
        "Road completely damaged after rain",
        "Speed breaker needed near school",
        "Road construction incomplete",
    ],
    ComplaintCategory.SANITATION: [
        "Garbage not collected for a week",
        "Public toilet not functioning",
        "Drainage overflow near houses",
        "Waste dumping in open area",
    ],
    ComplaintCategory.DRAINAGE: [
        "Blocked drainage causing waterlogging",
        "Drainage cover missing, safety hazard",
        "Sewage overflow in residential area",
        "Need new drainage line installation",
    ],
    ComplaintCategory.STREETLIGHT: [
        "Street lights not working for 2 weeks",
        "Multiple bulbs fused in the area",
        "New street light needed on dark road",
        "Timer not functioning properly",
    ],
}

# Lifecycle stage each seeded complaint is driven to, cycled by index.
_STAGES: list[ComplaintStatus] = [
    ComplaintStatus.SUBMITTED,
    ComplaintStatus.ASSIGNED,
    ComplaintStatus.IN_PROGRESS,
    ComplaintStatus.RESOLVED,
]

_PRIORITIES: list[ComplaintPriority] = list(ComplaintPriority)

DEFAULT_COMPLAINT_COUNT = 24


@dataclass(slots=True)
class SeedResult:
    technicians: int = 0
    complaints: int = 0
    skipped: bool = False


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------


async def seed_demo_data(
    complaints: ComplaintService,
    technicians: TechnicianService,
    *,
    count: int = DEFAULT_COMPLAINT_COUNT,
) -> SeedResult:
    """Populate an empty store with the demo roster and complaints."""
    existing = await technicians.list_technicians(limit=1)
    if existing.total > 0:
        logger.info("seed.skipped", existing_technicians=existing.total)
        return SeedResult(skipped=True)

    result = SeedResult()
    by_category: dict[ComplaintCategory, str] = {}
    for fields in TECHNICIANS:
        tech = await technicians.create_technician(fields)
        result.technicians += 1
        for category in tech.specialization:
            by_category[category] = tech.id

    categories = list(DESCRIPTIONS)
    for i in range(count):
        category = categories[i % len(categories)]
        phone, name = CITIZENS[i % len(CITIZENS)]
        complaint = await complaints.create_complaint(
            {
                "category": category,
                "description": DESCRIPTIONS[category][(i // len(categories)) % 4],
                "location": LOCATIONS[i % len(LOCATIONS)],
                "citizen_phone": phone,
                "citizen_name": name,
                "priority": _PRIORITIES[(i // 2) % len(_PRIORITIES)],
            },
            actor=SEED_ACTOR,
        )
        result.complaints += 1

        stage = _STAGES[(i + i // len(categories)) % len(_STAGES)]
        if stage == ComplaintStatus.SUBMITTED:
            continue
        await complaints.assign_complaint(complaint.id, by_category[category], actor=SEED_ACTOR)
        if stage == ComplaintStatus.ASSIGNED:
            continue
        await complaints.advance_status(complaint.id, ComplaintStatus.IN_PROGRESS, SEED_ACTOR)
        if stage == ComplaintStatus.RESOLVED:
            await complaints.resolve_complaint(
                complaint.id,
                "Issue resolved successfully. All necessary repairs completed.",
                actor=SEED_ACTOR,
            )

    logger.info("seed.completed", technicians=result.technicians, complaints=result.complaints)
    return result
