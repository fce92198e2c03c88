"""
Domain-specific exception hierarchy for the clinic slot engine.
"""

from typing import Optional


class ClinicSlotsError(Exception):
    """Base class for all application-level errors."""


class ConfigurationError(ClinicSlotsError):
    """Raised when the engine is called with impossible parameters."""


class InvalidDuration(ConfigurationError):
    """Raised when a service or booking duration is not positive."""


class InvalidStep(ConfigurationError):
    """Raised when the slot step granularity is not positive."""


class MalformedBookingRecord(ClinicSlotsError):
    """Raised when a booking's date or time cannot be parsed."""

    def __init__(self, appointment_id: Optional[str], message: str):
        super().__init__(f"Booking {appointment_id or '<unknown>'}: {message}")
        self.appointment_id = appointment_id


class BookingConflict(ClinicSlotsError):
    """Raised when a requested slot is no longer free at booking time."""


class InvalidStatusTransition(ClinicSlotsError):
    """Raised when an appointment status change is not allowed."""


class UnknownServiceError(ClinicSlotsError):
    """Raised when a service cannot be found by id or name."""


class SettingsValidationError(ClinicSlotsError):
    """Raised when clinic settings fail validation before being saved."""


class ServiceValidationError(ClinicSlotsError):
    """Raised when a service definition is incomplete or out of range."""


class ClinicAPIError(ClinicSlotsError):
    """Raised when clinic data cannot be fetched or parsed."""
