# clinic_scheduling/schemas/gesture.py
from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from enum import Enum

from .appointment import AppointmentInstance


class ResizeDirection(str, Enum):
    TOP = "top"
    BOTTOM = "bottom"


class GridPosition(BaseModel):
    """Hour and snapped minute under the pointer"""
    hour: int = Field(..., ge=0, le=24)
    minute: int = Field(..., ge=0, le=59)


class GestureBounds(BaseModel):
    """Candidate bounds for an appointment being dragged or resized"""
    start_time: datetime
    end_time: datetime
    top: float = Field(0, description="Pixel offset from the grid start")
    height: float = Field(0, description="Rendered height in pixels")

    @property
    def duration_minutes(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / 60


class GesturePreview(BaseModel):
    bounds: GestureBounds
    conflicts: List[AppointmentInstance] = Field(default_factory=list)
    therapist_id: Optional[str] = None

    @property
    def has_conflict(self) -> bool:
        return len(self.conflicts) > 0


class GestureCommit(BaseModel):
    """Result of committing a gesture; the caller persists ``appointment`` when accepted"""
    accepted: bool
    reason: str = ""
    appointment: Optional[AppointmentInstance] = None
    conflicts: List[AppointmentInstance] = Field(default_factory=list)
