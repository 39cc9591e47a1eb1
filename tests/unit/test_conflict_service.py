"""Tests for clinic_scheduling.services.conflict.conflict_service module."""

from datetime import date, datetime

import pytest
from dateutil import tz

from clinic_scheduling.schemas import ConflictScope, ConflictType, SuggestionReason
from clinic_scheduling.services.conflict.conflict_service import (
    ConflictService,
    appointments_overlap,
    overlaps,
)
from conftest import make_appointment


def at(hour, minute=0, day=5):
    return datetime(2024, 3, day, hour, minute)


class TestOverlapPrimitive:
    """Half-open overlap predicate."""

    @pytest.mark.parametrize("a, b, expected", [
        ((at(10), at(11)), (at(10, 30), at(11, 30)), True),
        ((at(10), at(11)), (at(11), at(12)), False),
        ((at(10), at(12)), (at(10, 30), at(11)), True),
        ((at(10), at(11)), (at(10), at(11)), True),
        ((at(8), at(9)), (at(10), at(11)), False),
    ])
    def test_symmetric(self, a, b, expected):
        """overlap(A, B) == overlap(B, A)."""
        assert overlaps(*a, *b) is expected
        assert overlaps(*b, *a) is expected

    def test_back_to_back_appointments(self):
        """An end equal to the next start is not a conflict."""
        first = make_appointment(at(9), at(10))
        second = make_appointment(at(10), at(11))
        assert not appointments_overlap(first, second)
        assert not appointments_overlap(second, first)


class TestFindConflicts:
    """Therapist/patient scoped conflict lookup."""

    def test_overlapping_candidate(self, booked_day):
        """A candidate at 10:30-11:30 collides with the 10:00-11:00 booking."""
        candidate = make_appointment(at(10, 30), at(11, 30))
        conflicts = ConflictService.find_conflicts(candidate, booked_day)
        assert [c.id for c in conflicts] == ["a-1"]

    def test_adjacent_candidate(self, booked_day):
        """A candidate at 11:00-12:00 has no conflicts."""
        candidate = make_appointment(at(11), at(12))
        assert ConflictService.find_conflicts(candidate, booked_day) == []

    def test_other_therapist_never_conflicts(self, booked_day):
        """Overlapping bookings of another therapist are ignored."""
        candidate = make_appointment(at(10), at(11), therapist_id="T3", patient_id="P9")
        assert ConflictService.find_conflicts(candidate, booked_day) == []

    def test_exclude_id(self, booked_day):
        """The appointment being edited does not conflict with itself."""
        candidate = make_appointment(at(10, 15), at(11, 15), appointment_id="a-1")
        assert ConflictService.find_conflicts(candidate, booked_day, exclude_id="a-1") == []

    def test_order_follows_input(self):
        """Conflicts are returned in snapshot order, not by time."""
        later = make_appointment(at(11), at(12), appointment_id="later")
        earlier = make_appointment(at(9), at(10, 30), appointment_id="earlier")
        candidate = make_appointment(at(10), at(11, 30))
        conflicts = ConflictService.find_conflicts(candidate, [later, earlier])
        assert [c.id for c in conflicts] == ["later", "earlier"]

    def test_patient_scope(self):
        """The patient check applies the same predicate keyed on patient."""
        existing = [make_appointment(at(10), at(11), therapist_id="T2", appointment_id="p-1")]
        candidate = make_appointment(at(10, 30), at(11, 30))
        assert ConflictService.find_conflicts(candidate, existing) == []
        assert [c.id for c in ConflictService.find_patient_conflicts(candidate, existing)] == ["p-1"]
        assert ConflictService.find_conflicts(candidate, existing, scope=ConflictScope.PATIENT)

    def test_cancelled_appointments_do_not_block(self):
        """Non-blocking statuses are skipped."""
        existing = [make_appointment(at(10), at(11), appointment_id="c-1", status="Cancelled")]
        candidate = make_appointment(at(10), at(11))
        assert ConflictService.find_conflicts(candidate, existing) == []

    def test_non_blocking_statuses_configurable(self, monkeypatch):
        """Statuses that free a slot come from settings."""
        monkeypatch.setenv("SCHEDULING_NON_BLOCKING_STATUSES", '["cancelled", "no_show"]')
        existing = [make_appointment(at(10), at(11), status="no_show")]
        assert ConflictService.find_conflicts(make_appointment(at(10), at(11)), existing) == []

    def test_configured_statuses_case_insensitive(self, monkeypatch):
        """Configured statuses match regardless of case on either side."""
        monkeypatch.setenv("SCHEDULING_NON_BLOCKING_STATUSES", '["Cancelled"]')
        existing = [make_appointment(at(10), at(11), status="cancelled")]
        assert ConflictService.find_conflicts(make_appointment(at(10), at(11)), existing) == []

    def test_timezone_aware_comparison(self):
        """Appointments in different zones are compared as instants."""
        new_york = tz.gettz("America/New_York")
        candidate = make_appointment(
            datetime(2024, 3, 11, 14, 0, tzinfo=new_york),
            datetime(2024, 3, 11, 15, 0, tzinfo=new_york),
        )
        overlapping = make_appointment(
            datetime(2024, 3, 11, 18, 30, tzinfo=tz.UTC),
            datetime(2024, 3, 11, 19, 30, tzinfo=tz.UTC),
            appointment_id="utc-1",
        )
        adjacent = make_appointment(
            datetime(2024, 3, 11, 19, 0, tzinfo=tz.UTC),
            datetime(2024, 3, 11, 20, 0, tzinfo=tz.UTC),
            appointment_id="utc-2",
        )
        conflicts = ConflictService.find_conflicts(candidate, [overlapping, adjacent])
        assert [c.id for c in conflicts] == ["utc-1"]


class TestCheckConflicts:
    """Conflict reports with suggestions."""

    def test_no_conflict(self, booked_day):
        report = ConflictService.check_conflicts(make_appointment(at(12), at(13)), booked_day)
        assert not report.has_conflict
        assert report.conflicts == []
        assert report.suggestion is None

    def test_conflict_with_same_day_suggestion(self, booked_day):
        report = ConflictService.check_conflicts(make_appointment(at(10, 30), at(11, 30)), booked_day)
        assert report.has_conflict
        assert [c.id for c in report.conflicts] == ["a-1"]
        assert report.suggestion.time == at(7)
        assert report.suggestion.reason == SuggestionReason.SAME_DAY

    def test_patient_conflicts_deduplicated(self):
        shared = make_appointment(at(10), at(11), appointment_id="s-1")
        other = make_appointment(at(10), at(11), therapist_id="T2", appointment_id="s-2")
        candidate = make_appointment(at(10), at(11))
        report = ConflictService.check_conflicts(candidate, [shared, other], check_patient=True)
        assert [c.id for c in report.conflicts] == ["s-1", "s-2"]


class TestSuggestNextSlot:
    """Hour-aligned next-slot search."""

    def test_first_free_hour(self):
        existing = [make_appointment(at(7), at(9, 30))]
        suggestion = ConflictService.suggest_next_slot(at(8), 60, "T1", existing)
        assert suggestion.time == at(10)
        assert suggestion.reason == SuggestionReason.SAME_DAY

    def test_full_day_falls_back_to_following_day(self):
        existing = [
            make_appointment(at(7), at(20)),
            make_appointment(at(7, day=6), at(8, day=6)),
        ]
        suggestion = ConflictService.suggest_next_slot(at(12), 30, "T1", existing)
        # The fallback slot is not re-validated
        assert suggestion.time == at(7, day=6)
        assert suggestion.reason == SuggestionReason.FOLLOWING_DAY

    def test_other_therapists_ignored(self):
        existing = [make_appointment(at(7), at(20), therapist_id="T2")]
        suggestion = ConflictService.suggest_next_slot(at(12), 60, "T1", existing)
        assert suggestion.time == at(7)

    def test_business_hours_configurable(self, monkeypatch):
        monkeypatch.setenv("SCHEDULING_BUSINESS_START_HOUR", "8")
        monkeypatch.setenv("SCHEDULING_BUSINESS_END_HOUR", "18")
        existing = [make_appointment(at(8), at(18))]
        suggestion = ConflictService.suggest_next_slot(at(9), 60, "T1", existing)
        assert suggestion.time == at(8, day=6)
        assert suggestion.reason == SuggestionReason.FOLLOWING_DAY


class TestBusinessHoursAndSlots:
    """Day grid helpers."""

    @pytest.mark.parametrize("start, end, expected", [
        (at(7), at(8), True),
        (at(6, 30), at(7, 30), False),
        (at(19), at(20), True),
        (at(19, 30), at(20, 30), False),
    ])
    def test_within_business_hours(self, start, end, expected):
        assert ConflictService.is_within_business_hours(start, end) is expected

    def test_available_slots_grid(self, booked_day):
        slots = ConflictService.get_available_slots("T1", date(2024, 3, 5), 60, booked_day)
        assert len(slots) == 49
        assert slots[0].start == at(7)
        assert slots[-1].end == at(20)

        taken = [slot.start for slot in slots if not slot.available]
        assert taken == [at(9, 15), at(9, 30), at(9, 45), at(10), at(10, 15), at(10, 30), at(10, 45)]
        assert slots[12].conflict_reason == "Therapist already booked at 10:00"

    def test_available_slots_custom_step(self):
        slots = ConflictService.get_available_slots("T1", date(2024, 3, 5), 60, [], step_minutes=60)
        assert len(slots) == 13
        assert all(slot.available for slot in slots)


class TestWorkingHours:
    """Per-weekday working windows and breaks."""

    def test_inside_working_day(self):
        assert ConflictService.check_working_hours(at(9), at(10), "T1") is None

    def test_ending_at_break_start(self):
        assert ConflictService.check_working_hours(at(11), at(12), "T1") is None

    def test_before_opening(self):
        issue = ConflictService.check_working_hours(at(7, 30), at(8, 30), "T1")
        assert issue.type == ConflictType.OUTSIDE_HOURS
        assert issue.message == "Outside working hours (08:00 - 18:00)"

    def test_overlapping_lunch_break(self):
        issue = ConflictService.check_working_hours(at(11, 30), at(12, 30), "T1")
        assert issue.message == "Overlaps the break (12:00 - 13:00)"

    def test_short_saturday(self):
        assert ConflictService.check_working_hours(at(9, day=9), at(10, day=9), "T1") is None
        assert ConflictService.check_working_hours(at(13, 30, day=9), at(14, 30, day=9), "T1")

    def test_day_off(self):
        issue = ConflictService.check_working_hours(at(10, day=10), at(11, day=10), "T1")
        assert issue.message == "Therapist does not work on Sundays"

    def test_therapist_schedule_override(self, monkeypatch):
        monkeypatch.setenv(
            "SCHEDULING_THERAPIST_WORKING_HOURS",
            '{"T9": {"sunday": {"start": "10:00", "end": "16:00"}}}',
        )
        assert ConflictService.check_working_hours(at(11, day=10), at(12, day=10), "T9") is None
        assert ConflictService.check_working_hours(at(11, day=10), at(12, day=10), "T1") is not None
        assert ConflictService.check_working_hours(at(9), at(10), "T9") is not None

    def test_report_includes_hours_issue(self):
        candidate = make_appointment(at(12), at(13))
        assert not ConflictService.check_conflicts(candidate, []).has_conflict

        report = ConflictService.check_conflicts(candidate, [], check_working_hours=True)
        assert report.has_conflict
        assert report.conflicts == []
        assert [issue.type for issue in report.issues] == [ConflictType.OUTSIDE_HOURS]


class TestRoomCapacity:
    """Location-based capacity checks."""

    def test_single_room_occupied(self):
        existing = [
            make_appointment(at(10), at(11), therapist_id="T2", patient_id="P2", location="Room 1")
        ]
        candidate = make_appointment(at(10, 30), at(11, 30), location="Room 1")
        issue = ConflictService.check_room_capacity(candidate, existing)
        assert issue.type == ConflictType.ROOM_OCCUPIED
        assert issue.message == "Room 1 is fully booked (capacity: 1)"

    def test_other_room_or_no_location(self):
        existing = [make_appointment(at(10), at(11), therapist_id="T2", location="Room 1")]
        assert ConflictService.check_room_capacity(
            make_appointment(at(10), at(11), location="Room 2"), existing
        ) is None
        assert ConflictService.check_room_capacity(make_appointment(at(10), at(11)), existing) is None

    def test_configured_capacity(self, monkeypatch):
        monkeypatch.setenv("SCHEDULING_ROOM_CAPACITY", '{"Gym": 2}')
        first = make_appointment(at(10), at(11), therapist_id="T2", location="Gym")
        second = make_appointment(at(10), at(11), therapist_id="T3", location="Gym")
        candidate = make_appointment(at(10), at(11), location="Gym")
        assert ConflictService.check_room_capacity(candidate, [first]) is None
        assert ConflictService.check_room_capacity(candidate, [first, second]) is not None

    def test_cancelled_occupant_ignored(self):
        existing = [make_appointment(at(10), at(11), therapist_id="T2", location="Room 1", status="cancelled")]
        candidate = make_appointment(at(10), at(11), location="Room 1")
        assert ConflictService.check_room_capacity(candidate, existing) is None

    def test_report_room_opt_in(self):
        existing = [make_appointment(at(10), at(11), therapist_id="T2", location="Room 1")]
        candidate = make_appointment(at(10), at(11), location="Room 1")
        assert not ConflictService.check_conflicts(candidate, existing).has_conflict
        report = ConflictService.check_conflicts(candidate, existing, check_room=True)
        assert report.has_conflict
        assert [issue.type for issue in report.issues] == [ConflictType.ROOM_OCCUPIED]


class TestFindEarlierSlot:
    """Earlier same-day alternatives."""

    def test_first_free_earlier_slot(self):
        existing = [make_appointment(at(8), at(9))]
        suggestion = ConflictService.find_earlier_slot(at(11), 60, "T1", existing)
        assert suggestion.time == at(9)
        assert suggestion.reason == SuggestionReason.EARLIER_SAME_DAY

    def test_skips_lunch_break(self):
        existing = [make_appointment(at(8), at(11))]
        suggestion = ConflictService.find_earlier_slot(at(15), 90, "T1", existing)
        assert suggestion.time == at(13)

    def test_nothing_fits(self):
        assert ConflictService.find_earlier_slot(at(8, 30), 60, "T1", []) is None

    def test_day_off(self):
        assert ConflictService.find_earlier_slot(at(15, day=10), 60, "T1", []) is None

    def test_report_alternatives(self, booked_day):
        report = ConflictService.check_conflicts(make_appointment(at(10, 30), at(11, 30)), booked_day)
        assert [(s.time, s.reason) for s in report.alternatives] == [
            (at(8), SuggestionReason.EARLIER_SAME_DAY)
        ]
        assert [issue.message for issue in report.issues] == ["Therapist already booked at 10:00"]
