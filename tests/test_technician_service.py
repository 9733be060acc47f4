"""Tests for technician roster management."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from conftest import complaint_fields
from src.models.complaint import Complaint
from src.models.enums import ComplaintCategory, ComplaintStatus
from src.models.technician import Technician
from src.services.complaint_service import ComplaintService
from src.services.errors import HasActiveWork, NotFound, ValidationError
from src.services.store import InMemoryRecordStore
from src.services.technician_service import TechnicianService


class TestCreateTechnician:
    async def test_defaults(self, technicians: TechnicianService) -> None:
        tech = await technicians.create_technician(
            {"name": " Mukesh Singh ", "phone": "9876543213", "specialization": ["roads", "drainage"]}
        )
        assert tech.name == "Mukesh Singh"
        assert tech.user_id == "user:9876543213"
        assert tech.active_complaints == 0
        assert tech.is_available is True
        assert tech.specialization == [ComplaintCategory.ROADS, ComplaintCategory.DRAINAGE]

    async def test_explicit_user_id(self, technicians: TechnicianService) -> None:
        tech = await technicians.create_technician(
            {"name": "Mukesh Singh", "phone": "9876543213", "specialization": ["roads"], "user_id": "u-42"}
        )
        assert tech.user_id == "u-42"

    async def test_duplicate_phone_rejected(
        self, technicians: TechnicianService, water_tech: Technician
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await technicians.create_technician(
                {"name": "Someone Else", "phone": water_tech.phone, "specialization": ["water"]}
            )
        assert "already exists" in str(exc_info.value)

    async def test_duplicate_user_id_rejected(
        self, technicians: TechnicianService, water_tech: Technician
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await technicians.create_technician(
                {
                    "name": "Someone Else",
                    "phone": "9876543299",
                    "specialization": ["water"],
                    "user_id": water_tech.user_id,
                }
            )
        assert exc_info.value.details["field"] == "user_id"

    async def test_empty_specialization_rejected(self, technicians: TechnicianService) -> None:
        with pytest.raises(ValidationError):
            await technicians.create_technician(
                {"name": "Mukesh Singh", "phone": "9876543213", "specialization": []}
            )


class TestQueries:
    async def test_get_includes_active_assignments(
        self,
        technicians: TechnicianService,
        complaints: ComplaintService,
        water_tech: Technician,
    ) -> None:
        open_one = await complaints.create_complaint(complaint_fields())
        done = await complaints.create_complaint(complaint_fields())
        for c in (open_one, done):
            await complaints.assign_complaint(c.id, water_tech.id)
        await complaints.resolve_complaint(done.id, "Fixed")

        detail = await technicians.get_technician(water_tech.id)
        assert detail.technician.active_complaints == 1
        assert [a.complaint_id for a in detail.assigned_complaints] == [open_one.complaint_id]
        assert detail.assigned_complaints[0].address == "Village Ashta, Main Road"

    async def test_get_unknown(self, technicians: TechnicianService) -> None:
        with pytest.raises(NotFound):
            await technicians.get_technician("missing")

    async def test_list_filters(
        self, technicians: TechnicianService, water_tech: Technician, power_tech: Technician
    ) -> None:
        await technicians.update_technician(power_tech.id, {"is_available": False})

        page = await technicians.list_technicians(specialization=ComplaintCategory.WATER)
        assert [t.id for t in page.technicians] == [water_tech.id]

        available = await technicians.list_technicians(is_available=True)
        assert available.total == 1

        everyone = await technicians.list_technicians(limit=1)
        assert (everyone.total, everyone.pages, len(everyone.technicians)) == (2, 2, 1)

    async def test_list_is_ordered_by_name(
        self, technicians: TechnicianService, power_tech: Technician, water_tech: Technician
    ) -> None:
        await technicians.create_technician(
            {"name": "Anil Joshi", "phone": "9876543240", "specialization": ["roads"]}
        )
        page = await technicians.list_technicians()
        assert [t.name for t in page.technicians] == ["Anil Joshi", "Ramesh Kumar", "Suresh Patel"]

    async def test_find_by_user(self, technicians: TechnicianService, water_tech: Technician) -> None:
        assert (await technicians.find_by_user("user:9876543211")).id == water_tech.id
        assert await technicians.find_by_user("nobody") is None


class TestUpdate:
    async def test_profile_fields(self, technicians: TechnicianService, water_tech: Technician) -> None:
        updated = await technicians.update_technician(
            water_tech.id,
            {"name": "Ramesh K.", "specialization": ["water"], "location": {"latitude": 23.7, "longitude": 86.97}},
        )
        assert updated.name == "Ramesh K."
        assert updated.specialization == [ComplaintCategory.WATER]
        assert updated.location.latitude == 23.7
        assert updated.active_complaints == water_tech.active_complaints

    async def test_counters_cannot_be_edited(
        self, technicians: TechnicianService, water_tech: Technician
    ) -> None:
        updated = await technicians.update_technician(water_tech.id, {"active_complaints": 7})
        assert updated.active_complaints == 0

    async def test_update_unknown(self, technicians: TechnicianService) -> None:
        with pytest.raises(NotFound):
            await technicians.update_technician("missing", {"name": "x"})

    async def test_update_location(
        self, technicians: TechnicianService, water_tech: Technician
    ) -> None:
        updated = await technicians.update_location(water_tech.user_id, 23.71, 86.98)
        assert (updated.location.latitude, updated.location.longitude) == (23.71, 86.98)

    async def test_update_location_validates(
        self, technicians: TechnicianService, water_tech: Technician
    ) -> None:
        with pytest.raises(ValidationError):
            await technicians.update_location(water_tech.user_id, 123.0, 86.98)

    async def test_update_location_unknown_user(self, technicians: TechnicianService) -> None:
        with pytest.raises(NotFound):
            await technicians.update_location("nobody", 23.7, 86.9)


class TestDelete:
    async def test_idle_technician_is_deleted(
        self, technicians: TechnicianService, store: InMemoryRecordStore, water_tech: Technician
    ) -> None:
        await technicians.delete_technician(water_tech.id)
        assert await store.get(Technician, water_tech.id) is None

    async def test_busy_technician_is_kept(
        self,
        technicians: TechnicianService,
        complaints: ComplaintService,
        store: InMemoryRecordStore,
        water_tech: Technician,
    ) -> None:
        c = await complaints.create_complaint(complaint_fields())
        await complaints.assign_complaint(c.id, water_tech.id)
        with pytest.raises(HasActiveWork) as exc_info:
            await technicians.delete_technician(water_tech.id)
        assert str(exc_info.value) == (
            "Cannot delete technician with 1 active complaint(s). "
            "Please reassign or resolve them first."
        )
        assert await store.get(Technician, water_tech.id) is not None

    async def test_drifted_counter_still_blocks_delete(
        self,
        technicians: TechnicianService,
        complaints: ComplaintService,
        store: InMemoryRecordStore,
        water_tech: Technician,
    ) -> None:
        c = await complaints.create_complaint(complaint_fields())
        await complaints.assign_complaint(c.id, water_tech.id)
        tech = await store.get(Technician, water_tech.id)
        tech.active_complaints = 0
        await store.save(tech)
        with pytest.raises(HasActiveWork):
            await technicians.delete_technician(water_tech.id)

    async def test_delete_after_resolution(
        self,
        technicians: TechnicianService,
        complaints: ComplaintService,
        store: InMemoryRecordStore,
        water_tech: Technician,
    ) -> None:
        c = await complaints.create_complaint(complaint_fields())
        await complaints.assign_complaint(c.id, water_tech.id)
        await complaints.resolve_complaint(c.id, "Fixed")
        await technicians.delete_technician(water_tech.id)
        assert (await store.get(Complaint, c.id)).assigned_to == water_tech.id

    async def test_delete_unknown(self, technicians: TechnicianService) -> None:
        with pytest.raises(NotFound):
            await technicians.delete_technician("missing")


async def test_technician_stats(
    technicians: TechnicianService,
    complaints: ComplaintService,
    water_tech: Technician,
) -> None:
    a = await complaints.create_complaint(complaint_fields())
    b = await complaints.create_complaint(complaint_fields(category="sanitation"))
    await complaints.assign_complaint(a.id, water_tech.id)
    await complaints.assign_complaint(b.id, water_tech.id)
    await complaints.advance_status(b.id, ComplaintStatus.IN_PROGRESS, "tech-1")

    stats = await technicians.get_technician_stats(water_tech.id)
    assert stats.active_complaints == 2
    assert stats.status_counts["assigned"] == 1
    assert stats.status_counts["in-progress"] == 1
    assert stats.category_counts["sanitation"] == 1

    later = await technicians.get_technician_stats(
        water_tech.id, start_date=datetime(2030, 1, 1, tzinfo=UTC)
    )
    assert sum(later.status_counts.values()) == 0
