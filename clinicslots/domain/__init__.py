"""
Domain layer - Pure business logic without external dependencies.
"""

from .models import (
    Appointment,
    AppointmentStatus,
    ClinicSettings,
    DateOverride,
    RecurringClosure,
    Service,
    TimeInterval,
    TimeRange,
)
from .operating_hours import resolve_operating_hours
from .slot_calculator import SlotCalculator, compute_available_slots

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "ClinicSettings",
    "DateOverride",
    "RecurringClosure",
    "Service",
    "TimeInterval",
    "TimeRange",
    "resolve_operating_hours",
    "SlotCalculator",
    "compute_available_slots",
]
