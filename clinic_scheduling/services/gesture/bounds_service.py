# ============================================================================
# clinic_scheduling/services/gesture/bounds_service.py
# ============================================================================
"""Pixel-to-time translation for calendar drag and resize gestures"""
import logging
import math
from datetime import date, datetime, timedelta
from typing import List, Optional, Union

from clinic_scheduling.config.settings import get_settings
from clinic_scheduling.schemas.appointment import AppointmentInstance
from clinic_scheduling.schemas.gesture import (
    GestureBounds,
    GestureCommit,
    GesturePreview,
    GridPosition,
    ResizeDirection,
)
from clinic_scheduling.services.conflict.conflict_service import ConflictService
from clinic_scheduling.utils.date_math import at_hour, minutes_between

logger = logging.getLogger(__name__)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class BoundsCalculator:
    """
    Computes candidate bounds for an appointment while it is dragged or
    resized on a day grid.

    Runs once per pointer move, so it only does arithmetic and never touches
    persisted state. Every candidate goes through ``preview``/``commit``,
    which delegate to the conflict detector.
    """

    def __init__(
            self,
            cell_height_px: Optional[float] = None,
            grid_start_hour: Optional[int] = None,
            grid_end_hour: Optional[int] = None,
            snap_interval_minutes: Optional[int] = None,
            min_duration_minutes: Optional[int] = None,
            max_duration_minutes: Optional[int] = None,
            drag_threshold_px: Optional[float] = None
    ):
        settings = get_settings()
        self.cell_height_px = cell_height_px or settings.CELL_HEIGHT_PX
        self.grid_start_hour = settings.BUSINESS_START_HOUR if grid_start_hour is None else grid_start_hour
        self.grid_end_hour = settings.BUSINESS_END_HOUR if grid_end_hour is None else grid_end_hour
        self.snap_interval_minutes = snap_interval_minutes or settings.SNAP_INTERVAL_MINUTES
        self.min_duration_minutes = min_duration_minutes or settings.MIN_DURATION_MINUTES
        self.max_duration_minutes = max_duration_minutes or settings.MAX_DURATION_MINUTES
        self.drag_threshold_px = settings.DRAG_THRESHOLD_PX if drag_threshold_px is None else drag_threshold_px

        if self.grid_end_hour <= self.grid_start_hour:
            raise ValueError("Grid closing hour must be after the opening hour")
        if self.min_duration_minutes > self.max_duration_minutes:
            raise ValueError("Minimum duration cannot exceed maximum duration")

    @staticmethod
    def cell_height_for_viewport(viewport_width_px: float) -> int:
        """Responsive row height: compact cells below the breakpoint"""
        settings = get_settings()
        if viewport_width_px < settings.COMPACT_BREAKPOINT_PX:
            return settings.COMPACT_CELL_HEIGHT_PX
        return settings.CELL_HEIGHT_PX

    @classmethod
    def for_viewport(cls, viewport_width_px: float, **kwargs) -> "BoundsCalculator":
        return cls(cell_height_px=cls.cell_height_for_viewport(viewport_width_px), **kwargs)

    def drag_threshold_reached(self, dx: float, dy: float) -> bool:
        """A pointer press becomes a drag once it travels past the threshold"""
        return math.hypot(dx, dy) > self.drag_threshold_px

    def snap_time(self, value: datetime) -> datetime:
        """Round the minutes to the nearest snap interval (seconds dropped)"""
        snapped = _round_half_up(value.minute / self.snap_interval_minutes) * self.snap_interval_minutes
        return value.replace(minute=0, second=0, microsecond=0) + timedelta(minutes=snapped)

    def time_from_position(self, y: float, container_top: float = 0) -> GridPosition:
        """Convert a vertical pointer position into a grid hour and snapped minute"""
        relative_y = y - container_top
        hour_index = math.floor(relative_y / self.cell_height_px)
        minute_offset = (relative_y % self.cell_height_px) / self.cell_height_px * 60

        hour = max(self.grid_start_hour, min(self.grid_end_hour, self.grid_start_hour + hour_index))
        minute = _round_half_up(minute_offset / self.snap_interval_minutes) * self.snap_interval_minutes

        return GridPosition(hour=hour, minute=min(60 - self.snap_interval_minutes, minute))

    def _visual_bounds(self, start_time: datetime, end_time: datetime) -> GestureBounds:
        top = (start_time.hour - self.grid_start_hour) * self.cell_height_px \
            + start_time.minute * self.cell_height_px / 60
        height = minutes_between(start_time, end_time) * self.cell_height_px / 60

        return GestureBounds(
            start_time=start_time,
            end_time=end_time,
            top=top,
            height=max(height, self.cell_height_px * 0.5),
        )

    def calculate_drag(
            self,
            appointment: AppointmentInstance,
            drop_date: Union[date, datetime],
            position: GridPosition
    ) -> GestureBounds:
        """
        Move the whole appointment to the drop cell.

        The original duration is kept exactly. A drop that would run past
        closing is pulled back so the appointment ends at closing time.
        """
        duration = appointment.end_time - appointment.start_time

        new_start = at_hour(drop_date, position.hour, position.minute)
        if new_start.tzinfo is None and appointment.start_time.tzinfo is not None:
            new_start = new_start.replace(tzinfo=appointment.start_time.tzinfo)

        opening = at_hour(new_start, self.grid_start_hour)
        closing = at_hour(new_start, self.grid_end_hour)

        if new_start + duration > closing:
            new_start = max(opening, closing - duration)

        return self._visual_bounds(new_start, new_start + duration)

    def calculate_drag_from_pointer(
            self,
            appointment: AppointmentInstance,
            drop_date: Union[date, datetime],
            y: float,
            container_top: float = 0
    ) -> GestureBounds:
        return self.calculate_drag(appointment, drop_date, self.time_from_position(y, container_top))

    def calculate_resize(
            self,
            appointment: AppointmentInstance,
            direction: ResizeDirection,
            delta_y: float
    ) -> GestureBounds:
        """
        Move one edge of the appointment by ``delta_y`` pixels.

        The moved edge is snapped, kept inside the grid's opening/closing
        hours, and the resulting duration is clamped to
        [min_duration, max_duration] by moving that same edge.
        """
        time_change = timedelta(hours=delta_y / self.cell_height_px)
        min_duration = timedelta(minutes=self.min_duration_minutes)
        max_duration = timedelta(minutes=self.max_duration_minutes)

        new_start = appointment.start_time
        new_end = appointment.end_time

        if direction == ResizeDirection.TOP:
            new_start = self.snap_time(appointment.start_time + time_change)

            opening = at_hour(appointment.start_time, self.grid_start_hour)
            if new_start < opening:
                new_start = opening

            if new_end - new_start < min_duration:
                new_start = new_end - min_duration
            if new_end - new_start > max_duration:
                new_start = new_end - max_duration
        else:
            new_end = self.snap_time(appointment.end_time + time_change)

            closing = at_hour(appointment.start_time, self.grid_end_hour)
            if new_end > closing:
                new_end = closing

            if new_end - new_start < min_duration:
                new_end = new_start + min_duration
            if new_end - new_start > max_duration:
                new_end = new_start + max_duration

        return self._visual_bounds(new_start, new_end)

    def preview(
            self,
            appointment: AppointmentInstance,
            bounds: GestureBounds,
            existing: List[AppointmentInstance],
            therapist_id: Optional[str] = None
    ) -> GesturePreview:
        """Check candidate bounds against the snapshot, ignoring the appointment itself"""
        target_therapist = therapist_id or appointment.therapist_id
        candidate = appointment.model_copy(update={
            "start_time": bounds.start_time,
            "end_time": bounds.end_time,
            "therapist_id": target_therapist,
        })

        conflicts = ConflictService.find_conflicts(candidate, existing, exclude_id=appointment.id)

        return GesturePreview(bounds=bounds, conflicts=conflicts, therapist_id=target_therapist)

    def commit(
            self,
            appointment: AppointmentInstance,
            bounds: GestureBounds,
            existing: List[AppointmentInstance],
            therapist_id: Optional[str] = None
    ) -> GestureCommit:
        """
        Re-validate the final bounds and produce the updated appointment.

        Never mutates ``appointment``; the caller persists the returned copy.
        """
        preview = self.preview(appointment, bounds, existing, therapist_id)

        if preview.has_conflict:
            count = len(preview.conflicts)
            logger.info(
                f"Gesture on appointment {appointment.id} rejected: "
                f"conflicts with {count} appointment(s)"
            )
            return GestureCommit(
                accepted=False,
                reason=f"Conflict detected with {count} appointment{'s' if count > 1 else ''}",
                conflicts=preview.conflicts,
            )

        duration = bounds.duration_minutes
        if duration < self.min_duration_minutes:
            return GestureCommit(
                accepted=False,
                reason=f"Minimum appointment duration is {self.min_duration_minutes} minutes",
            )
        if duration > self.max_duration_minutes:
            return GestureCommit(
                accepted=False,
                reason=f"Maximum appointment duration is {self.max_duration_minutes} minutes",
            )

        updated = appointment.model_copy(update={
            "start_time": bounds.start_time,
            "end_time": bounds.end_time,
            "therapist_id": preview.therapist_id,
        })

        return GestureCommit(accepted=True, appointment=updated)
