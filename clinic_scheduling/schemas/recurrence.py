# clinic_scheduling/schemas/recurrence.py
from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Optional, List, Union
from datetime import datetime, date
from enum import Enum


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class RecurrenceRule(BaseModel):
    """Describes how a seed appointment repeats"""
    frequency: Optional[Frequency] = Field(None, description="Repeat unit")
    interval: int = Field(1, description="Every N frequency units")
    days_of_week: Optional[List[int]] = Field(
        None, description="Weekday indices (0=Sunday, 6=Saturday), weekly only"
    )
    end_date: Optional[Union[datetime, date]] = Field(
        None, description="Last allowed start; a plain date includes that whole day"
    )
    occurrences: Optional[int] = Field(None, description="Total occurrences including the seed")


class RecurrenceValidation(BaseModel):
    """Structured validation result for a recurrence rule"""
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    total_occurrences: int = Field(-1, description="Estimated occurrences, -1 when unbounded")
    next_occurrences: List[datetime] = Field(default_factory=list)


class RecurrencePattern(BaseModel):
    """Predefined recurrence shortcut offered to schedulers"""
    id: str
    name: str
    description: str
    rule: RecurrenceRule
    examples: List[str] = Field(default_factory=list)
