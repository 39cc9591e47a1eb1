# clinic_scheduling/schemas/appointment.py
from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from datetime import datetime, timedelta


class AppointmentInstance(BaseModel):
    """
    A scheduled unit of time.

    Only identity, time bounds and ownership matter to the engine. Payload
    fields (title, type, status, price, notes, location, ...) are accepted as
    extra fields and carried through every operation unchanged.
    """
    id: Optional[str] = Field(None, description="Persisted appointment ID (absent for new instances)")
    series_id: Optional[str] = Field(None, description="Shared ID of a recurring series")
    start_time: datetime = Field(..., description="Appointment start")
    end_time: datetime = Field(..., description="Appointment end")
    therapist_id: str = Field(..., description="Owning therapist")
    patient_id: str = Field(..., description="Owning patient")

    model_config = ConfigDict(extra="allow")

    @field_validator("end_time")
    @classmethod
    def end_after_start(cls, v: datetime, info) -> datetime:
        start_time = info.data.get("start_time")
        if start_time and v <= start_time:
            raise ValueError("End time must be after start time")
        return v

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def duration_minutes(self) -> float:
        return self.duration.total_seconds() / 60

    def get_payload(self, key: str, default=None):
        """Read an opaque payload field supplied by the caller"""
        return (self.model_extra or {}).get(key, default)
