# ============================================================================
# clinic_scheduling/services/series/series_service.py
# ============================================================================
"""Planning edits and cancellations across a recurring series"""
import logging
from typing import Any, Dict, List, Optional

from clinic_scheduling.schemas.appointment import AppointmentInstance
from clinic_scheduling.schemas.series import (
    SeriesCancellation,
    SeriesChange,
    SeriesUpdateMode,
)

logger = logging.getLogger(__name__)

TIME_FIELDS = ("start_time", "end_time")


class SeriesService:
    """
    Works out which members of a series an edit or cancellation touches.

    Nothing is persisted here; the returned plans are applied by the caller
    (typically bulk update, or ``deleteSeries(series_id, from_date)``).
    """

    @staticmethod
    def select_members(
            anchor: AppointmentInstance,
            series: List[AppointmentInstance],
            mode: SeriesUpdateMode
    ) -> List[AppointmentInstance]:
        """Members affected by ``mode``, in chronological order"""
        if mode == SeriesUpdateMode.THIS_ONLY or not anchor.series_id:
            return [anchor]

        members = [appt for appt in series if appt.series_id == anchor.series_id]
        if anchor not in members:
            members.append(anchor)

        if mode == SeriesUpdateMode.THIS_AND_FUTURE:
            members = [appt for appt in members if appt.start_time >= anchor.start_time]

        return sorted(members, key=lambda appt: appt.start_time)

    @staticmethod
    def plan_series_update(
            anchor: AppointmentInstance,
            series: List[AppointmentInstance],
            updates: Dict[str, Any],
            mode: SeriesUpdateMode = SeriesUpdateMode.THIS_ONLY
    ) -> List[SeriesChange]:
        """
        Plan an update of the anchor and, depending on ``mode``, its siblings.

        Time changes are applied relative to the anchor: every selected member
        moves by the anchor's start delta and takes the anchor's new duration.
        """
        payload = {key: value for key, value in updates.items() if key not in TIME_FIELDS and key != "id"}

        new_start = updates.get("start_time", anchor.start_time)
        new_end = updates.get("end_time")
        if new_end is None:
            new_end = new_start + anchor.duration
        if new_end <= new_start:
            raise ValueError("End time must be after start time")

        shift = new_start - anchor.start_time
        new_duration = new_end - new_start

        changes = []
        for member in SeriesService.select_members(anchor, series, mode):
            start_time = member.start_time + shift
            changes.append(SeriesChange(
                appointment=member.model_copy(update={
                    **payload,
                    "start_time": start_time,
                    "end_time": start_time + new_duration,
                }),
                action="update",
            ))

        logger.info(f"Planned {mode.value} update of {len(changes)} appointment(s)")
        return changes

    @staticmethod
    def plan_series_cancellation(
            anchor: AppointmentInstance,
            series: List[AppointmentInstance],
            mode: SeriesUpdateMode = SeriesUpdateMode.THIS_ONLY,
            reason: Optional[str] = None
    ) -> List[SeriesCancellation]:
        """Plan cancellations; unsaved members (no id) are dropped rather than cancelled"""
        cancellations = []

        for member in SeriesService.select_members(anchor, series, mode):
            cancellations.append(SeriesCancellation(
                appointment_id=member.id,
                action="cancel" if member.id else "delete",
                reason=reason,
            ))

        logger.info(f"Planned {mode.value} cancellation of {len(cancellations)} appointment(s)")
        return cancellations
