# clinic_scheduling/schemas/conflict.py
from __future__ import annotations
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime, time
from enum import Enum

from .appointment import AppointmentInstance


class ConflictScope(str, Enum):
    THERAPIST = "therapist"
    PATIENT = "patient"


class ConflictType(str, Enum):
    THERAPIST_BUSY = "therapist_busy"
    PATIENT_BUSY = "patient_busy"
    ROOM_OCCUPIED = "room_occupied"
    OUTSIDE_HOURS = "outside_hours"


class SuggestionReason(str, Enum):
    SAME_DAY = "same day"
    FOLLOWING_DAY = "following day"
    EARLIER_SAME_DAY = "earlier same day"


class BreakPeriod(BaseModel):
    start: time
    end: time


class WorkingDay(BaseModel):
    """A therapist's working window for one weekday, with optional breaks"""
    start: time = Field(..., description="Start of the working day (HH:MM)")
    end: time = Field(..., description="End of the working day (HH:MM)")
    breaks: List[BreakPeriod] = Field(default_factory=list)

    @field_validator("end")
    @classmethod
    def end_after_start(cls, v: time, info) -> time:
        start = info.data.get("start")
        if start and v <= start:
            raise ValueError("Working day must end after it starts")
        return v


class ConflictIssue(BaseModel):
    """One reason a candidate cannot be booked"""
    type: ConflictType
    message: str
    appointment: Optional[AppointmentInstance] = None


class SlotSuggestion(BaseModel):
    """Alternative start time proposed after a conflict"""
    time: datetime = Field(..., description="Suggested start time")
    reason: SuggestionReason = Field(..., description="Where the slot was found")


class ConflictReport(BaseModel):
    """Outcome of validating one candidate appointment"""
    has_conflict: bool
    conflicts: List[AppointmentInstance] = Field(default_factory=list)
    issues: List[ConflictIssue] = Field(default_factory=list)
    suggestion: Optional[SlotSuggestion] = None
    alternatives: List[SlotSuggestion] = Field(default_factory=list)


class TimeSlot(BaseModel):
    """Bookable slot on a therapist's day grid"""
    start: datetime = Field(..., description="Slot start time")
    end: datetime = Field(..., description="Slot end time")
    available: bool = Field(True, description="Whether slot is free")
    conflict_reason: Optional[str] = Field(None, description="Why the slot is taken")

    @field_validator("end")
    @classmethod
    def end_after_start(cls, v: datetime, info) -> datetime:
        start = info.data.get("start")
        if start and v <= start:
            raise ValueError("End time must be after start time")
        return v


class RecurringConflict(BaseModel):
    """Conflicts found for one generated occurrence"""
    date: datetime
    conflicts: List[AppointmentInstance] = Field(default_factory=list)


class SeriesPlan(BaseModel):
    """Expanded series plus per-occurrence conflicts, ready for the caller to persist"""
    series_id: Optional[str] = None
    instances: List[AppointmentInstance] = Field(default_factory=list)
    conflicts: List[RecurringConflict] = Field(default_factory=list)
    expected_count: Optional[int] = Field(None, description="Generated instances implied by occurrences or end_date")
    truncated: bool = False

    @property
    def has_conflict(self) -> bool:
        return len(self.conflicts) > 0
