# clinic_scheduling/schemas/series.py
from __future__ import annotations
from pydantic import BaseModel
from typing import Optional, Literal
from enum import Enum

from .appointment import AppointmentInstance


class SeriesUpdateMode(str, Enum):
    THIS_ONLY = "this_only"
    THIS_AND_FUTURE = "this_and_future"
    ALL_SERIES = "all_series"


class SeriesChange(BaseModel):
    """Planned change to one member of a series"""
    appointment: AppointmentInstance
    action: Literal["update", "delete", "create"]


class SeriesCancellation(BaseModel):
    """Planned cancellation of one member of a series"""
    appointment_id: Optional[str]
    action: Literal["cancel", "delete"]
    reason: Optional[str] = None
