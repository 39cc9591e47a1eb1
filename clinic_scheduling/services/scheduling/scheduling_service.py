# ============================================================================
# clinic_scheduling/services/scheduling/scheduling_service.py
# ============================================================================
"""Composes recurrence expansion with conflict detection for series bookings"""
import logging
from typing import List, Optional
from uuid import uuid4

from clinic_scheduling.schemas.appointment import AppointmentInstance
from clinic_scheduling.schemas.conflict import RecurringConflict, SeriesPlan
from clinic_scheduling.schemas.recurrence import RecurrenceRule
from clinic_scheduling.services.conflict.conflict_service import ConflictService
from clinic_scheduling.services.recurrence.recurrence_service import RecurrenceService

logger = logging.getLogger(__name__)


class SchedulingService:
    """Handles recurring booking requests end to end (minus persistence)"""

    @staticmethod
    def find_recurring_conflicts(
            seed: AppointmentInstance,
            rule: RecurrenceRule,
            existing: List[AppointmentInstance],
            check_patient: bool = False
    ) -> List[RecurringConflict]:
        """Conflicts for each generated occurrence of the series"""
        instances = RecurrenceService.expand(seed, rule)
        return SchedulingService._collect_conflicts(instances, existing, check_patient)

    @staticmethod
    def _collect_conflicts(
            instances: List[AppointmentInstance],
            existing: List[AppointmentInstance],
            check_patient: bool
    ) -> List[RecurringConflict]:
        conflicts = []

        for instance in instances:
            found = ConflictService.find_conflicts(instance, existing)
            if check_patient:
                found += [
                    appt for appt in ConflictService.find_patient_conflicts(instance, existing)
                    if all(appt is not other for other in found)
                ]

            if found:
                conflicts.append(RecurringConflict(date=instance.start_time, conflicts=found))

        return conflicts

    @staticmethod
    def _expected_count(
            seed: AppointmentInstance,
            rule: RecurrenceRule,
            generated: int,
            capped: bool
    ) -> Optional[int]:
        """Generated instances the rule's own bounds imply, None when it has none"""
        has_occurrences = bool(rule.occurrences and rule.occurrences > 0)
        if not has_occurrences and rule.end_date is None:
            return None
        if not capped:
            return generated

        bounds = []
        if has_occurrences:
            bounds.append(rule.occurrences - 1)
        if rule.end_date is not None:
            by_date = rule.model_copy(update={"occurrences": None})
            bounds.append(RecurrenceService.calculate_total_occurrences(seed.start_time, by_date))
        return max(min(bounds), generated + 1)

    @staticmethod
    def plan_series(
            seed: AppointmentInstance,
            rule: RecurrenceRule,
            existing: List[AppointmentInstance],
            series_id: Optional[str] = None,
            check_patient: bool = False
    ) -> SeriesPlan:
        """
        Expand ``seed`` into a series and validate every generated instance.

        All instances (seed included) share one series id: the explicit
        ``series_id``, else the seed's, else a new one. The plan is flagged as
        truncated only when HARD_OCCURRENCE_CAP cut the series short.
        """
        resolved_series_id = series_id or seed.series_id or str(uuid4())
        stamped_seed = seed.model_copy(update={"series_id": resolved_series_id})

        instances, truncated = RecurrenceService.generate(stamped_seed, rule)
        conflicts = SchedulingService._collect_conflicts(instances, existing, check_patient)
        expected_count = SchedulingService._expected_count(seed, rule, len(instances), truncated)

        if truncated:
            logger.warning(
                f"Series {resolved_series_id} produced {len(instances)} of "
                f"{expected_count} expected instances"
            )

        logger.info(
            f"Planned series {resolved_series_id}: {len(instances)} instances, "
            f"{len(conflicts)} with conflicts"
        )

        return SeriesPlan(
            series_id=resolved_series_id,
            instances=instances,
            conflicts=conflicts,
            expected_count=expected_count,
            truncated=truncated,
        )
