"""Tests for the complaint state machine."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from conftest import make_complaint
from src.models.enums import ComplaintStatus as S
from src.services.errors import InvalidTransition, MissingAssignment
from src.services.lifecycle import (
    TRANSITIONS,
    add_note,
    allowed_targets,
    can_transition,
    is_terminal,
    transition,
)

NOW = datetime(2024, 2, 7, 12, tzinfo=UTC)


class TestTransitionTable:
    def test_every_status_has_an_entry(self) -> None:
        assert set(TRANSITIONS) == set(S), "Every status should appear in the transition table"

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (S.SUBMITTED, S.ASSIGNED),
            (S.SUBMITTED, S.REJECTED),
            (S.ASSIGNED, S.IN_PROGRESS),
            (S.ASSIGNED, S.RESOLVED),
            (S.ASSIGNED, S.ASSIGNED),
            (S.ASSIGNED, S.REJECTED),
            (S.IN_PROGRESS, S.RESOLVED),
            (S.IN_PROGRESS, S.ASSIGNED),
        ],
    )
    def test_allowed(self, current: S, target: S) -> None:
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (S.SUBMITTED, S.IN_PROGRESS),
            (S.SUBMITTED, S.RESOLVED),
            (S.IN_PROGRESS, S.SUBMITTED),
            (S.IN_PROGRESS, S.REJECTED),
            (S.ASSIGNED, S.SUBMITTED),
        ],
    )
    def test_forbidden(self, current: S, target: S) -> None:
        assert not can_transition(current, target)

    def test_terminal_statuses(self) -> None:
        assert is_terminal(S.RESOLVED)
        assert is_terminal(S.REJECTED)
        assert not is_terminal(S.SUBMITTED)
        assert allowed_targets(S.RESOLVED) == frozenset()


class TestTransition:
    def test_appends_history_and_updates_status(self) -> None:
        complaint = make_complaint(assigned_to="tech-1")
        transition(complaint, S.ASSIGNED, "admin-1", now=NOW)
        assert complaint.status == S.ASSIGNED
        assert len(complaint.status_history) == 1
        entry = complaint.status_history[-1]
        assert (entry.status, entry.changed_at, entry.changed_by) == (S.ASSIGNED, NOW, "admin-1")
        assert complaint.updated_at == NOW

    def test_notes_become_internal_notes(self) -> None:
        complaint = make_complaint(assigned_to="tech-1")
        transition(complaint, S.ASSIGNED, "admin-1", "Urgent, school nearby", now=NOW)
        assert complaint.internal_notes[-1].note == "Urgent, school nearby"
        assert complaint.internal_notes[-1].added_by == "admin-1"

    def test_invalid_transition_leaves_complaint_untouched(self) -> None:
        complaint = make_complaint()
        before = complaint.model_copy(deep=True)
        with pytest.raises(InvalidTransition) as exc_info:
            transition(complaint, S.RESOLVED, "admin-1", now=NOW)
        assert complaint == before, "A refused transition must not modify the complaint"
        assert exc_info.value.details["from"] == "submitted"
        assert exc_info.value.details["to"] == "resolved"
        assert exc_info.value.details["allowed"] == ["assigned", "rejected"]

    def test_terminal_status_refuses_everything(self) -> None:
        complaint = make_complaint(status=S.REJECTED)
        for target in S:
            with pytest.raises(InvalidTransition):
                transition(complaint, target, "admin-1", now=NOW)

    def test_assigned_requires_technician(self) -> None:
        complaint = make_complaint()
        with pytest.raises(MissingAssignment):
            transition(complaint, S.ASSIGNED, "admin-1", now=NOW)
        assert complaint.status == S.SUBMITTED

    def test_resolve_stamps_resolution_time(self) -> None:
        complaint = make_complaint(status=S.IN_PROGRESS, assigned_to="tech-1")
        transition(complaint, S.RESOLVED, "tech-1", now=NOW)
        assert complaint.resolved_at == NOW
        assert complaint.actual_resolution_time == 60

    def test_resolve_does_not_restamp(self) -> None:
        earlier = NOW - timedelta(hours=12)
        complaint = make_complaint(
            status=S.IN_PROGRESS,
            assigned_to="tech-1",
            resolved_at=earlier,
            actual_resolution_time=48,
        )
        transition(complaint, S.RESOLVED, "tech-1", now=NOW)
        assert complaint.resolved_at == earlier
        assert complaint.actual_resolution_time == 48

    def test_reject_clears_assignee(self) -> None:
        complaint = make_complaint(status=S.ASSIGNED, assigned_to="tech-1")
        transition(complaint, S.REJECTED, "admin-1", now=NOW)
        assert complaint.assigned_to is None
        assert complaint.status == S.REJECTED


def test_add_note_does_not_touch_history() -> None:
    complaint = make_complaint()
    add_note(complaint, "Called the citizen", "admin-1", now=NOW)
    assert complaint.internal_notes[-1].note == "Called the citizen"
    assert complaint.status_history == []
    assert complaint.updated_at == NOW
