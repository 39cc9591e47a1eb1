"""
Scheduling engine settings and configuration
"""
from datetime import time
from functools import lru_cache
from typing import Dict, List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

from clinic_scheduling.schemas.conflict import BreakPeriod, WorkingDay


def default_working_hours() -> Dict[str, WorkingDay]:
    """Weekdays 08:00-18:00 with a lunch break, Saturday mornings, Sunday off"""
    lunch = [BreakPeriod(start=time(12, 0), end=time(13, 0))]
    hours = {
        day: WorkingDay(start=time(8, 0), end=time(18, 0), breaks=lunch)
        for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
    }
    hours["saturday"] = WorkingDay(start=time(8, 0), end=time(14, 0))
    return hours


class Settings(BaseSettings):
    """Scheduling engine settings from environment variables"""

    # Basic settings
    APP_NAME: str = Field(default="Clinic Scheduling Engine")
    LOG_LEVEL: str = Field(default="INFO")

    # Recurrence termination
    DEFAULT_WINDOW_DAYS: int = Field(default=90)  # used when a rule has no end condition
    DEFAULT_MAX_OCCURRENCES: int = Field(default=50)
    HARD_OCCURRENCE_CAP: int = Field(default=1000)  # absolute ceiling on generated instances
    PREVIEW_OCCURRENCES: int = Field(default=5)

    # Recurrence validation thresholds
    WARN_MONTHLY_INTERVAL: int = Field(default=12)
    WARN_WEEKLY_INTERVAL: int = Field(default=4)
    WARN_OCCURRENCES: int = Field(default=100)

    # Business hours (hour granularity)
    BUSINESS_START_HOUR: int = Field(default=7, ge=0, le=23)
    BUSINESS_END_HOUR: int = Field(default=20, ge=1, le=24)
    SLOT_STEP_MINUTES: int = Field(default=15, gt=0)

    # Conflict detection
    NON_BLOCKING_STATUSES: List[str] = Field(default_factory=lambda: ["cancelled"])
    ROOM_CAPACITY: Dict[str, int] = Field(default_factory=dict)  # location -> concurrent bookings, default 1

    # Working hours keyed by lowercase weekday name; days not listed are off
    WORKING_HOURS: Dict[str, WorkingDay] = Field(default_factory=default_working_hours)
    THERAPIST_WORKING_HOURS: Dict[str, Dict[str, WorkingDay]] = Field(default_factory=dict)

    # Calendar grid (drag / resize)
    CELL_HEIGHT_PX: int = Field(default=64, gt=0)
    COMPACT_CELL_HEIGHT_PX: int = Field(default=48, gt=0)
    COMPACT_BREAKPOINT_PX: int = Field(default=640)
    SNAP_INTERVAL_MINUTES: int = Field(default=15, gt=0)
    MIN_DURATION_MINUTES: int = Field(default=15, gt=0)
    MAX_DURATION_MINUTES: int = Field(default=240, gt=0)
    DRAG_THRESHOLD_PX: float = Field(default=5)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SCHEDULING_",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Convenience accessor for settings
settings = get_settings()
