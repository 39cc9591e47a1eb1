# clinic_scheduling/schemas/__init__.py
from .appointment import AppointmentInstance

from .recurrence import (
    Frequency,
    RecurrenceRule,
    RecurrenceValidation,
    RecurrencePattern
)

from .conflict import (
    ConflictScope,
    ConflictType,
    ConflictIssue,
    BreakPeriod,
    WorkingDay,
    SuggestionReason,
    SlotSuggestion,
    ConflictReport,
    TimeSlot,
    RecurringConflict,
    SeriesPlan
)

from .gesture import (
    ResizeDirection,
    GridPosition,
    GestureBounds,
    GesturePreview,
    GestureCommit
)

from .series import (
    SeriesUpdateMode,
    SeriesChange,
    SeriesCancellation
)
