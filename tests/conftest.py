"""Shared test fixtures for clinic_scheduling tests."""

from datetime import datetime

import pytest

from clinic_scheduling.config.settings import get_settings
from clinic_scheduling.schemas import AppointmentInstance


def make_appointment(
    start: datetime,
    end: datetime,
    therapist_id: str = "T1",
    patient_id: str = "P1",
    appointment_id=None,
    **payload,
) -> AppointmentInstance:
    """Build an appointment with optional payload fields."""
    return AppointmentInstance(
        id=appointment_id,
        start_time=start,
        end_time=end,
        therapist_id=therapist_id,
        patient_id=patient_id,
        **payload,
    )


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Each test sees settings built from its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def monday_seed() -> AppointmentInstance:
    """Monday 2024-03-04 14:00-15:00 seed appointment."""
    return make_appointment(
        datetime(2024, 3, 4, 14, 0),
        datetime(2024, 3, 4, 15, 0),
        appointment_id="seed-1",
        title="Physiotherapy",
        status="scheduled",
        price=120.0,
    )


@pytest.fixture
def booked_day() -> list:
    """Therapist T1 booked 10:00-11:00 on 2024-03-05, plus unrelated bookings."""
    return [
        make_appointment(
            datetime(2024, 3, 5, 10, 0),
            datetime(2024, 3, 5, 11, 0),
            appointment_id="a-1",
        ),
        make_appointment(
            datetime(2024, 3, 5, 10, 0),
            datetime(2024, 3, 5, 11, 0),
            therapist_id="T2",
            patient_id="P2",
            appointment_id="a-2",
        ),
    ]
