# ============================================================================
# clinic_scheduling/services/conflict/conflict_service.py
# ============================================================================
"""Overlap detection and slot suggestion for therapist/patient calendars"""
import logging
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Union

from clinic_scheduling.config.settings import get_settings
from clinic_scheduling.schemas.appointment import AppointmentInstance
from clinic_scheduling.schemas.conflict import (
    ConflictIssue,
    ConflictReport,
    ConflictScope,
    ConflictType,
    SlotSuggestion,
    SuggestionReason,
    TimeSlot,
    WorkingDay,
)
from clinic_scheduling.utils.date_math import add_days, at_hour, at_time, day_key

logger = logging.getLogger(__name__)


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open interval overlap; back-to-back ranges do not overlap"""
    return a_start < b_end and b_start < a_end


def appointments_overlap(a: AppointmentInstance, b: AppointmentInstance) -> bool:
    return overlaps(a.start_time, a.end_time, b.start_time, b.end_time)


class ConflictService:
    """Detects scheduling conflicts against a caller-supplied snapshot"""

    @staticmethod
    def _owner_key(appointment: AppointmentInstance, scope: ConflictScope) -> str:
        if scope == ConflictScope.PATIENT:
            return appointment.patient_id
        return appointment.therapist_id

    @staticmethod
    def _is_blocking(appointment: AppointmentInstance) -> bool:
        status = appointment.get_payload("status")
        if status is None:
            return True
        non_blocking = {value.lower() for value in get_settings().NON_BLOCKING_STATUSES}
        return str(status).lower() not in non_blocking

    @staticmethod
    def find_conflicts(
            candidate: AppointmentInstance,
            existing: Iterable[AppointmentInstance],
            exclude_id: Optional[str] = None,
            scope: ConflictScope = ConflictScope.THERAPIST
    ) -> List[AppointmentInstance]:
        """
        Return existing appointments that overlap the candidate.

        Only appointments owned by the same therapist (or patient, for
        ``ConflictScope.PATIENT``) are compared. Results keep the order of
        ``existing``.
        """
        owner = ConflictService._owner_key(candidate, scope)
        conflicts = []

        for appointment in existing:
            if exclude_id is not None and appointment.id == exclude_id:
                continue
            if ConflictService._owner_key(appointment, scope) != owner:
                continue
            if not ConflictService._is_blocking(appointment):
                continue
            if appointments_overlap(candidate, appointment):
                conflicts.append(appointment)

        return conflicts

    @staticmethod
    def find_patient_conflicts(
            candidate: AppointmentInstance,
            existing: Iterable[AppointmentInstance],
            exclude_id: Optional[str] = None
    ) -> List[AppointmentInstance]:
        """Same overlap check keyed on the patient instead of the therapist"""
        return ConflictService.find_conflicts(
            candidate, existing, exclude_id=exclude_id, scope=ConflictScope.PATIENT
        )

    @staticmethod
    def get_working_hours(therapist_id: Optional[str] = None) -> Dict[str, WorkingDay]:
        """The therapist's own weekly schedule, else the clinic default"""
        settings = get_settings()
        if therapist_id and therapist_id in settings.THERAPIST_WORKING_HOURS:
            return settings.THERAPIST_WORKING_HOURS[therapist_id]
        return settings.WORKING_HOURS

    @staticmethod
    def check_working_hours(
            start: datetime,
            end: datetime,
            therapist_id: Optional[str] = None
    ) -> Optional[ConflictIssue]:
        """
        Check a time range against the therapist's working day.

        Returns an ``outside_hours`` issue when the day is off, the range
        leaves the working window, or it overlaps a break.
        """
        weekday = day_key(start)
        working_day = ConflictService.get_working_hours(therapist_id).get(weekday)

        if working_day is None:
            return ConflictIssue(
                type=ConflictType.OUTSIDE_HOURS,
                message=f"Therapist does not work on {weekday.capitalize()}s",
            )

        start_clock = start.time()
        end_clock = end.time()

        if end.date() != start.date() or start_clock < working_day.start or end_clock > working_day.end:
            return ConflictIssue(
                type=ConflictType.OUTSIDE_HOURS,
                message=f"Outside working hours ({working_day.start:%H:%M} - {working_day.end:%H:%M})",
            )

        for break_period in working_day.breaks:
            if start_clock < break_period.end and end_clock > break_period.start:
                return ConflictIssue(
                    type=ConflictType.OUTSIDE_HOURS,
                    message=f"Overlaps the break ({break_period.start:%H:%M} - {break_period.end:%H:%M})",
                )

        return None

    @staticmethod
    def check_room_capacity(
            candidate: AppointmentInstance,
            existing: Iterable[AppointmentInstance],
            exclude_id: Optional[str] = None
    ) -> Optional[ConflictIssue]:
        """Room issue when the candidate's ``location`` is already full for its time range"""
        location = candidate.get_payload("location")
        if not location:
            return None

        capacity = get_settings().ROOM_CAPACITY.get(location, 1)
        occupants = [
            appointment for appointment in existing
            if (exclude_id is None or appointment.id != exclude_id)
            and appointment.get_payload("location") == location
            and ConflictService._is_blocking(appointment)
            and appointments_overlap(candidate, appointment)
        ]

        if len(occupants) >= capacity:
            return ConflictIssue(
                type=ConflictType.ROOM_OCCUPIED,
                message=f"{location} is fully booked (capacity: {capacity})",
            )

        return None

    @staticmethod
    def check_conflicts(
            candidate: AppointmentInstance,
            existing: List[AppointmentInstance],
            exclude_id: Optional[str] = None,
            check_patient: bool = False,
            check_working_hours: bool = False,
            check_room: bool = False
    ) -> ConflictReport:
        """
        Validate a candidate and propose alternatives when it cannot be booked.

        Therapist overlaps are always checked; patient overlaps, working hours
        and room capacity are opt-in. ``conflicts`` lists the overlapping
        appointments, ``issues`` every reason the candidate was rejected.
        """
        conflicts = ConflictService.find_conflicts(candidate, existing, exclude_id=exclude_id)
        issues = [
            ConflictIssue(
                type=ConflictType.THERAPIST_BUSY,
                message=f"Therapist already booked at {appointment.start_time.strftime('%H:%M')}",
                appointment=appointment,
            )
            for appointment in conflicts
        ]

        if check_patient:
            seen = {id(appointment) for appointment in conflicts}
            for appointment in ConflictService.find_patient_conflicts(candidate, existing, exclude_id):
                issues.append(ConflictIssue(
                    type=ConflictType.PATIENT_BUSY,
                    message=f"Patient already booked at {appointment.start_time.strftime('%H:%M')}",
                    appointment=appointment,
                ))
                if id(appointment) not in seen:
                    conflicts.append(appointment)

        if check_working_hours:
            hours_issue = ConflictService.check_working_hours(
                candidate.start_time, candidate.end_time, candidate.therapist_id
            )
            if hours_issue is not None:
                issues.insert(0, hours_issue)

        if check_room:
            room_issue = ConflictService.check_room_capacity(candidate, existing, exclude_id)
            if room_issue is not None:
                issues.append(room_issue)

        if not issues:
            return ConflictReport(has_conflict=False)

        logger.info(
            f"Candidate {candidate.start_time.isoformat()} for therapist {candidate.therapist_id} "
            f"rejected with {len(issues)} issue(s)"
        )

        suggestion = ConflictService.suggest_next_slot(
            candidate.start_time,
            candidate.duration_minutes,
            candidate.therapist_id,
            existing,
            exclude_id=exclude_id,
        )
        earlier = ConflictService.find_earlier_slot(
            candidate.start_time,
            candidate.duration_minutes,
            candidate.therapist_id,
            existing,
            exclude_id=exclude_id,
        )

        return ConflictReport(
            has_conflict=True,
            conflicts=conflicts,
            issues=issues,
            suggestion=suggestion,
            alternatives=[earlier] if earlier is not None else [],
        )

    @staticmethod
    def is_slot_available(
            start: datetime,
            duration_minutes: float,
            therapist_id: str,
            existing: List[AppointmentInstance],
            exclude_id: Optional[str] = None
    ) -> bool:
        slot_booking = AppointmentInstance(
            start_time=start,
            end_time=start + timedelta(minutes=duration_minutes),
            therapist_id=therapist_id,
            patient_id="",
        )
        return not ConflictService.find_conflicts(slot_booking, existing, exclude_id=exclude_id)

    @staticmethod
    def suggest_next_slot(
            requested_start: datetime,
            duration_minutes: float,
            therapist_id: str,
            existing: List[AppointmentInstance],
            exclude_id: Optional[str] = None
    ) -> Optional[SlotSuggestion]:
        """
        Find the first free hour-aligned slot on the requested day.

        Hours from BUSINESS_START_HOUR up to (not including) BUSINESS_END_HOUR
        are tried in order. When the whole day is taken, business start on the
        following day is returned without checking it for conflicts.
        """
        settings = get_settings()

        for hour in range(settings.BUSINESS_START_HOUR, settings.BUSINESS_END_HOUR):
            slot = at_hour(requested_start, hour)
            if ConflictService.is_slot_available(slot, duration_minutes, therapist_id, existing, exclude_id):
                return SlotSuggestion(time=slot, reason=SuggestionReason.SAME_DAY)

        # Known limitation: this slot is not validated against conflicts
        next_day = at_hour(add_days(requested_start, 1), settings.BUSINESS_START_HOUR)
        return SlotSuggestion(time=next_day, reason=SuggestionReason.FOLLOWING_DAY)

    @staticmethod
    def find_earlier_slot(
            requested_start: datetime,
            duration_minutes: float,
            therapist_id: str,
            existing: List[AppointmentInstance],
            exclude_id: Optional[str] = None
    ) -> Optional[SlotSuggestion]:
        """
        First free slot that ends by ``requested_start`` on the same day.

        Walks the therapist's working day in SLOT_STEP_MINUTES steps, skipping
        slots that are booked or fall in a break. None on days off or when
        nothing earlier fits.
        """
        working_day = ConflictService.get_working_hours(therapist_id).get(day_key(requested_start))
        if working_day is None:
            return None

        step = timedelta(minutes=get_settings().SLOT_STEP_MINUTES)
        duration = timedelta(minutes=duration_minutes)
        slot = at_time(requested_start, working_day.start)

        while slot + duration <= requested_start:
            if ConflictService.check_working_hours(slot, slot + duration, therapist_id) is None \
                    and ConflictService.is_slot_available(slot, duration_minutes, therapist_id, existing, exclude_id):
                return SlotSuggestion(time=slot, reason=SuggestionReason.EARLIER_SAME_DAY)
            slot += step

        return None

    @staticmethod
    def is_within_business_hours(start: datetime, end: datetime) -> bool:
        settings = get_settings()
        opening = at_hour(start, settings.BUSINESS_START_HOUR)
        closing = at_hour(start, settings.BUSINESS_END_HOUR)
        return opening <= start and end <= closing

    @staticmethod
    def get_available_slots(
            therapist_id: str,
            day: Union[date, datetime],
            duration_minutes: int,
            existing: List[AppointmentInstance],
            step_minutes: Optional[int] = None
    ) -> List[TimeSlot]:
        """Generate the day's slot grid within business hours and mark taken slots"""
        settings = get_settings()
        step = step_minutes or settings.SLOT_STEP_MINUTES
        slots = []

        current_slot = at_hour(day, settings.BUSINESS_START_HOUR)
        day_end = at_hour(day, settings.BUSINESS_END_HOUR)

        while current_slot + timedelta(minutes=duration_minutes) <= day_end:
            slot_end = current_slot + timedelta(minutes=duration_minutes)
            slot_booking = AppointmentInstance(
                start_time=current_slot,
                end_time=slot_end,
                therapist_id=therapist_id,
                patient_id="",
            )
            conflicts = ConflictService.find_conflicts(slot_booking, existing)

            conflict_reason = None
            if conflicts:
                first = conflicts[0]
                conflict_reason = f"Therapist already booked at {first.start_time.strftime('%H:%M')}"

            slots.append(TimeSlot(
                start=current_slot,
                end=slot_end,
                available=not conflicts,
                conflict_reason=conflict_reason,
            ))

            current_slot += timedelta(minutes=step)

        return slots
