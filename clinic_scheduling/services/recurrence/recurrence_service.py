# ============================================================================
# clinic_scheduling/services/recurrence/recurrence_service.py
# ============================================================================
"""Expansion and validation of recurring appointment series"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from clinic_scheduling.config.settings import get_settings
from clinic_scheduling.schemas.appointment import AppointmentInstance
from clinic_scheduling.schemas.recurrence import (
    Frequency,
    RecurrencePattern,
    RecurrenceRule,
    RecurrenceValidation,
)
from clinic_scheduling.utils.date_math import (
    add_days,
    add_months,
    end_of_day,
    js_weekday,
    months_between,
)

logger = logging.getLogger(__name__)

SHORT_DAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

COMMON_PATTERNS: List[RecurrencePattern] = [
    RecurrencePattern(
        id="weekly_same_time",
        name="Weekly - same time",
        description="Repeat every week on the same day and time",
        rule=RecurrenceRule(frequency=Frequency.WEEKLY, interval=1),
        examples=["Every Monday at 14:00", "Every Friday at 09:30"],
    ),
    RecurrencePattern(
        id="biweekly",
        name="Biweekly",
        description="Repeat every two weeks",
        rule=RecurrenceRule(frequency=Frequency.WEEKLY, interval=2),
        examples=["Every other Tuesday", "Fortnightly on Wednesdays"],
    ),
    RecurrencePattern(
        id="monthly_same_date",
        name="Monthly - same date",
        description="Repeat every month on the same day",
        rule=RecurrenceRule(frequency=Frequency.MONTHLY, interval=1),
        examples=["Every 15th of the month"],
    ),
    RecurrencePattern(
        id="twice_weekly",
        name="Twice a week",
        description="Two sessions per week on fixed days",
        rule=RecurrenceRule(frequency=Frequency.WEEKLY, interval=1, days_of_week=[1, 4]),
        examples=["Mondays and Thursdays", "Tuesdays and Fridays"],
    ),
    RecurrencePattern(
        id="three_weekly",
        name="Three times a week",
        description="Three alternating sessions per week",
        rule=RecurrenceRule(frequency=Frequency.WEEKLY, interval=1, days_of_week=[1, 3, 5]),
        examples=["Monday, Wednesday and Friday", "Tuesday, Thursday and Saturday"],
    ),
]


class RecurrenceService:
    """Turns a seed appointment and a recurrence rule into concrete occurrences"""

    @staticmethod
    def _resolve_end_limit(base_date: datetime, rule: RecurrenceRule) -> Optional[datetime]:
        """Latest allowed start time, or None when the rule has no end date"""
        if rule.end_date is None:
            return None
        if isinstance(rule.end_date, datetime):
            return rule.end_date
        return end_of_day(rule.end_date, tzinfo=base_date.tzinfo)

    @staticmethod
    def _ends_before(base_date: datetime, end_limit: Optional[datetime]) -> bool:
        if end_limit is None:
            return False
        try:
            return end_limit < base_date
        except TypeError as exc:
            raise ValueError(
                "End date and start time must both be timezone-aware or both naive"
            ) from exc

    @staticmethod
    def _check_structure(base_date: datetime, rule: RecurrenceRule) -> None:
        """Reject rules that cannot describe any series"""
        if rule.frequency is None:
            raise ValueError("Recurrence frequency is required")

        if rule.days_of_week:
            invalid = [day for day in rule.days_of_week if day < 0 or day > 6]
            if invalid:
                raise ValueError(f"Invalid days of week {invalid} (must be 0-6)")

        end_limit = RecurrenceService._resolve_end_limit(base_date, rule)
        if RecurrenceService._ends_before(base_date, end_limit):
            raise ValueError(
                f"End date {end_limit.isoformat()} is earlier than the series start "
                f"{base_date.isoformat()}"
            )

    @staticmethod
    def next_occurrence(current: datetime, rule: RecurrenceRule) -> datetime:
        """Compute the occurrence following ``current``"""
        interval = max(1, rule.interval or 1)

        if rule.frequency == Frequency.DAILY:
            return add_days(current, interval)

        if rule.frequency == Frequency.WEEKLY:
            if not rule.days_of_week:
                return add_days(current, 7 * interval)

            current_day = js_weekday(current)
            sorted_days = sorted(set(rule.days_of_week))
            next_day_in_week = next((day for day in sorted_days if day > current_day), None)

            if next_day_in_week is not None:
                return add_days(current, next_day_in_week - current_day)

            # Wrap to the first selected day of the next applicable week
            days_to_next_week = (7 - current_day) + sorted_days[0]
            return add_days(current, days_to_next_week + (interval - 1) * 7)

        if rule.frequency == Frequency.MONTHLY:
            return add_months(current, interval)

        raise ValueError(f"Unsupported frequency: {rule.frequency}")

    @staticmethod
    def _occurrence_at(base_date: datetime, current: datetime, rule: RecurrenceRule, step: int) -> datetime:
        """Start of occurrence ``step`` (the base is step 0), given the previous one"""
        if rule.frequency == Frequency.MONTHLY:
            # Offset from the base so a clamped short month does not shift later ones
            return add_months(base_date, step * max(1, rule.interval or 1))
        return RecurrenceService.next_occurrence(current, rule)

    @staticmethod
    def generate(seed: AppointmentInstance, rule: RecurrenceRule) -> Tuple[List[AppointmentInstance], bool]:
        """
        Expand ``seed`` and report whether the hard cap cut the series short.

        Returns ``(instances, capped)``. ``capped`` is only set when the rule
        would have produced more instances than HARD_OCCURRENCE_CAP; stopping
        at ``occurrences`` or ``end_date`` is normal termination.
        """
        settings = get_settings()
        RecurrenceService._check_structure(seed.start_time, rule)

        duration = seed.end_time - seed.start_time
        end_limit = RecurrenceService._resolve_end_limit(seed.start_time, rule)
        max_total = rule.occurrences if rule.occurrences and rule.occurrences > 0 else None

        if max_total is None and end_limit is None:
            end_limit = seed.start_time + timedelta(days=settings.DEFAULT_WINDOW_DAYS)
            max_total = settings.DEFAULT_MAX_OCCURRENCES

        instances = []
        current = seed.start_time
        capped = False

        while max_total is None or len(instances) + 1 < max_total:
            candidate = RecurrenceService._occurrence_at(
                seed.start_time, current, rule, len(instances) + 1
            )

            if end_limit is not None and candidate > end_limit:
                break

            if len(instances) >= settings.HARD_OCCURRENCE_CAP:
                capped = True
                logger.warning(
                    f"Recurrence generation stopped at {settings.HARD_OCCURRENCE_CAP} "
                    f"instances for series starting {seed.start_time.isoformat()}"
                )
                break

            current = candidate
            instances.append(seed.model_copy(update={
                "id": None,
                "start_time": current,
                "end_time": current + duration,
            }))

        logger.debug(f"Expanded {rule.frequency.value} rule into {len(instances)} instances")
        return instances, capped

    @staticmethod
    def expand(seed: AppointmentInstance, rule: RecurrenceRule) -> List[AppointmentInstance]:
        """
        Generate the occurrences implied by ``rule``, excluding the seed.

        Termination: ``occurrences`` (seed included), then ``end_date``; when
        both are set the first bound reached wins. A rule with neither falls
        back to the configured default window. Generation never exceeds
        HARD_OCCURRENCE_CAP instances; hitting it truncates silently apart
        from a warning log.
        """
        instances, _ = RecurrenceService.generate(seed, rule)
        return instances

    @staticmethod
    def validate_recurrence(base_date: datetime, rule: RecurrenceRule) -> RecurrenceValidation:
        """
        Validate a rule for display in a scheduling form.

        Problems are reported as human-readable errors and warnings. Only an
        end date earlier than ``base_date`` raises ``ValueError``.
        """
        settings = get_settings()
        errors = []
        warnings = []

        end_limit = RecurrenceService._resolve_end_limit(base_date, rule)
        if RecurrenceService._ends_before(base_date, end_limit):
            raise ValueError(
                f"End date {end_limit.isoformat()} is earlier than the start {base_date.isoformat()}"
            )

        if rule.frequency is None:
            errors.append("Frequency is required")

        if rule.interval is None or rule.interval < 1:
            errors.append("Interval must be greater than zero")
        elif rule.frequency == Frequency.MONTHLY and rule.interval > settings.WARN_MONTHLY_INTERVAL:
            warnings.append("Very large monthly interval")
        elif rule.frequency == Frequency.WEEKLY and rule.interval > settings.WARN_WEEKLY_INTERVAL:
            warnings.append("Weekly interval longer than a month")

        has_end_date = end_limit is not None and end_limit > base_date
        has_occurrences = bool(rule.occurrences and rule.occurrences > 0)

        if not has_end_date and not has_occurrences:
            warnings.append("Setting an end date or a number of occurrences is recommended")

        if end_limit is not None and end_limit <= base_date:
            errors.append("End date must be after the start date")

        if rule.occurrences is not None and rule.occurrences < 1:
            errors.append("Number of occurrences must be at least 1")
        elif rule.occurrences and rule.occurrences > settings.WARN_OCCURRENCES:
            warnings.append("Many occurrences may impact performance")

        if rule.frequency == Frequency.WEEKLY and rule.days_of_week is not None:
            if len(rule.days_of_week) == 0:
                errors.append("At least one day of the week must be selected")
            if any(day < 0 or day > 6 for day in rule.days_of_week):
                errors.append("Invalid days of week (must be 0-6)")

        if errors:
            return RecurrenceValidation(is_valid=False, errors=errors, warnings=warnings)

        return RecurrenceValidation(
            is_valid=True,
            errors=errors,
            warnings=warnings,
            total_occurrences=RecurrenceService.calculate_total_occurrences(base_date, rule),
            next_occurrences=RecurrenceService.preview_occurrences(base_date, rule),
        )

    @staticmethod
    def calculate_total_occurrences(base_date: datetime, rule: RecurrenceRule) -> int:
        """Estimate the series size; -1 when the rule is unbounded"""
        if rule.occurrences:
            return rule.occurrences

        end_limit = RecurrenceService._resolve_end_limit(base_date, rule)
        if end_limit is None:
            return -1

        interval = max(1, rule.interval or 1)
        days = (end_limit - base_date).total_seconds() / 86400
        estimated = 0

        if rule.frequency == Frequency.DAILY:
            estimated = int(days // interval)
        elif rule.frequency == Frequency.WEEKLY:
            weeks = int(days // (7 * interval))
            estimated = weeks * len(rule.days_of_week) if rule.days_of_week else weeks
        elif rule.frequency == Frequency.MONTHLY:
            estimated = months_between(base_date, end_limit) // interval

        return max(0, estimated)

    @staticmethod
    def preview_occurrences(
            base_date: datetime,
            rule: RecurrenceRule,
            count: Optional[int] = None
    ) -> List[datetime]:
        """Next ``count`` start times of the pattern after ``base_date``"""
        count = count or get_settings().PREVIEW_OCCURRENCES
        occurrences = []
        current = base_date

        for step in range(1, count + 1):
            current = RecurrenceService._occurrence_at(base_date, current, rule, step)
            occurrences.append(current)

        return occurrences

    @staticmethod
    def create_rule_from_pattern(pattern_id: str, **overrides) -> RecurrenceRule:
        """Build a rule from a predefined pattern, with optional field overrides"""
        pattern = next((p for p in COMMON_PATTERNS if p.id == pattern_id), None)

        if pattern is None:
            logger.warning(f"Unknown recurrence pattern requested: {pattern_id}")
            raise ValueError(f"Pattern not found: {pattern_id}")

        return RecurrenceRule(**{**pattern.rule.model_dump(), **overrides})

    @staticmethod
    def get_day_names(short: bool = False) -> List[str]:
        """Weekday labels indexed like ``days_of_week`` (0=Sunday)"""
        return list(SHORT_DAY_NAMES if short else DAY_NAMES)

    @staticmethod
    def format_recurrence_description(rule: RecurrenceRule) -> str:
        """Human-readable summary, e.g. 'Every 2 weeks (Mon, Thu), 10 occurrences'"""
        interval = rule.interval or 1

        if rule.frequency == Frequency.DAILY:
            description = "Daily" if interval == 1 else f"Every {interval} days"
        elif rule.frequency == Frequency.WEEKLY:
            description = "Weekly" if interval == 1 else f"Every {interval} weeks"
            if rule.days_of_week:
                selected = ", ".join(SHORT_DAY_NAMES[day] for day in sorted(set(rule.days_of_week)))
                description = f"{description} ({selected})"
        elif rule.frequency == Frequency.MONTHLY:
            description = "Monthly" if interval == 1 else f"Every {interval} months"
        else:
            description = ""

        if rule.occurrences:
            description += f", {rule.occurrences} occurrences"
        elif rule.end_date:
            description += f", until {rule.end_date.strftime('%Y-%m-%d')}"

        return description
