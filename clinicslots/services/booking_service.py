"""
Application services for browsing availability and managing bookings.

The service coordinates fetching clinic data via a client adapter and
delegates the availability calculation to the domain-level
``SlotCalculator``. This keeps the CLI thin and improves testability by
allowing the clinic dependency to be stubbed via a simple protocol.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Union

from pendulum import Date

from ..adapters.schemas import ClinicSettingsSchema
from ..domain.appointments import transition_status
from ..domain.exceptions import (
    BookingConflict,
    ClinicAPIError,
    ServiceValidationError,
    UnknownServiceError,
)
from ..domain.models import (
    Alert,
    AlertType,
    Appointment,
    AppointmentStatus,
    ClinicSettings,
    DateLike,
    Service,
    format_clock_time,
    parse_calendar_date,
    parse_clock_time,
)
from ..domain.operating_hours import ResolvedHours, explain_operating_hours
from ..domain.slot_calculator import SlotCalculator

logger = logging.getLogger(__name__)

MAX_SERVICE_NAME = 100
MAX_SERVICE_DESCRIPTION = 500


class ClinicClientProtocol(Protocol):
    """Protocol describing the clinic data access needed by the service."""

    def get_settings(self) -> Optional[ClinicSettings]:
        """Return the stored settings, or None if none were saved yet."""

    def save_settings(self, settings: ClinicSettings) -> ClinicSettings:
        """Replace the stored settings."""

    def list_services(self) -> List[Service]:
        """Return the service catalogue."""

    def get_service(self, service_id: str) -> Service:
        """Return one service by id."""

    def create_service(self, service: Service) -> Service:
        """Store a new service and return it with its id."""

    def update_service(self, service: Service) -> Service:
        """Overwrite an existing service."""

    def delete_service(self, service_id: str) -> None:
        """Remove a service from the catalogue."""

    def list_appointments(self) -> List[Appointment]:
        """Return all appointments."""

    def get_appointment(self, appointment_id: str) -> Appointment:
        """Return one appointment by id."""

    def create_appointment(self, appointment: Appointment) -> Appointment:
        """Store a new appointment and return it with its id."""

    def update_appointment_status(
        self,
        appointment_id: str,
        status: AppointmentStatus,
    ) -> Appointment:
        """Persist a status change."""

    def delete_appointment(self, appointment_id: str) -> Appointment:
        """Remove an appointment and return the deleted record."""

    def create_alert(self, message: str, alert_type: str) -> None:
        """Persist an admin alert."""

    def list_alerts(self, read: Optional[bool] = None, limit: int = 20) -> List[Alert]:
        """Return alerts newest first, optionally filtered by read state."""

    def mark_alerts_read(self, alert_ids: List[str]) -> int:
        """Mark alerts as read and return how many changed."""


@dataclass(frozen=True)
class BookingRequest:
    """What the booking form submits."""
    patient_name: str
    patient_email: str
    appointment_date: DateLike
    appointment_time: str
    service: str  # id or name


class BookingService:
    """
    Orchestrates clinic data retrieval, slot calculation and bookings.

    Settings and appointments are fetched fresh on every call and handed to
    the calculator by value; nothing is cached between requests.
    """

    def __init__(
        self,
        client: ClinicClientProtocol,
        slot_calculator: SlotCalculator,
        fallback_settings: Optional[ClinicSettings] = None,
    ) -> None:
        self._client = client
        self._slot_calculator = slot_calculator
        self._fallback_settings = fallback_settings or ClinicSettings()

    def load_settings(self) -> ClinicSettings:
        """Current settings, or the fallback when the clinic never saved any."""
        settings = self._client.get_settings()
        if settings is None:
            logger.info("No clinic settings stored, using defaults")
            return self._fallback_settings
        return settings

    def save_settings(self, settings: ClinicSettings) -> ClinicSettings:
        """
        Validate and persist a full settings update.

        Raises:
            SettingsValidationError: If the update has duplicate custom-hours dates
        """
        ClinicSettingsSchema.from_domain(settings).check_for_update()
        saved = self._client.save_settings(settings)
        logger.info("Clinic settings updated")
        return saved

    def list_services(self) -> List[Service]:
        return self._client.list_services()

    def find_service(self, identifier: str) -> Service:
        """
        Look up a service by id or (case-insensitive) name.

        Raises:
            UnknownServiceError: If nothing matches
        """
        services = self._client.list_services()
        key = identifier.strip()

        for service in services:
            if service.id == key or service.name.lower() == key.lower():
                return service

        known = ", ".join(service.name for service in services) or "none"
        raise UnknownServiceError(f"Unknown service '{identifier}'. Available: {known}")

    def get_service(self, service_id: str) -> Service:
        return self._client.get_service(service_id)

    def create_service(
        self,
        name: str,
        description: str,
        duration_minutes: int,
        price: float,
    ) -> Service:
        """
        Add a service to the catalogue.

        Raises:
            ServiceValidationError: If a field is missing or out of range
        """
        created = self._client.create_service(
            _build_service("", name, description, duration_minutes, price)
        )
        logger.info("Created service %s (id %s)", created.name, created.id)
        return created

    def update_service(
        self,
        service_id: str,
        *,
        name: Optional[str] = None,
        description: Optional[str] = None,
        duration_minutes: Optional[int] = None,
        price: Optional[float] = None,
    ) -> Service:
        """
        Change some fields of a service; the others keep their stored values.

        Appointments already booked keep the duration they were booked with.

        Raises:
            ServiceValidationError: If the result is not a valid service
        """
        current = self._client.get_service(service_id)
        service = _build_service(
            current.id,
            current.name if name is None else name,
            current.description if description is None else description,
            current.duration_minutes if duration_minutes is None else duration_minutes,
            current.price if price is None else price,
        )
        updated = self._client.update_service(service)
        logger.info("Updated service %s (id %s)", updated.name, updated.id)
        return updated

    def delete_service(self, service_id: str) -> None:
        self._client.delete_service(service_id)
        logger.info("Deleted service %s", service_id)

    def operating_hours(self, day: DateLike) -> ResolvedHours:
        return explain_operating_hours(day, self.load_settings())

    def appointments_on(self, day: DateLike) -> List[Appointment]:
        """
        Appointments on ``day``.

        Records whose date cannot be parsed are kept so that the calculator
        reports them instead of dropping them silently here.
        """
        target = parse_calendar_date(day)
        return [
            appointment
            for appointment in self._client.list_appointments()
            if self._occurs_on(appointment, target)
        ]

    @staticmethod
    def _occurs_on(appointment: Appointment, day: Date) -> bool:
        try:
            return appointment.calendar_date() == day
        except ValueError:
            return True

    def available_slots(
        self,
        day: DateLike,
        service: Union[Service, str],
    ) -> List[str]:
        """
        Free ``HH:MM`` start times for ``service`` on ``day``.
        """
        if isinstance(service, str):
            service = self.find_service(service)

        settings = self.load_settings()
        if not settings.is_open:
            logger.info("Clinic is marked closed, no slots offered")
            return []

        return self._slot_calculator.compute_available_slots(
            day,
            service,
            settings,
            self.appointments_on(day),
        )

    def available_dates(self, start: DateLike, days: int, service: Union[Service, str]) -> List[Date]:
        """Dates in the window that still have at least one free slot."""
        if isinstance(service, str):
            service = self.find_service(service)

        settings = self.load_settings()
        if not settings.is_open:
            return []

        return self._slot_calculator.available_dates(
            start,
            days,
            service,
            settings,
            self._client.list_appointments(),
        )

    def book_appointment(self, request: BookingRequest) -> Appointment:
        """
        Create a pending appointment for a free slot.

        Availability is recomputed from fresh data right before the write;
        the storage side must still reject overlaps that slip in between.

        Raises:
            UnknownServiceError: If the service does not exist
            ValueError: If the date or time is malformed
            BookingConflict: If the slot is not (or no longer) available
        """
        service = self.find_service(request.service)
        day = parse_calendar_date(request.appointment_date)
        time = format_clock_time(parse_clock_time(request.appointment_time))

        if time not in self.available_slots(day, service):
            raise BookingConflict(
                f"{time} on {day.isoformat()} is not available for {service.name}"
            )

        appointment = Appointment(
            id=None,
            patient_name=request.patient_name,
            patient_email=request.patient_email,
            appointment_date=day.isoformat(),
            appointment_time=time,
            duration_minutes=service.duration_minutes,
            reason=service.name,
            status=AppointmentStatus.PENDING,
        )

        created = self._client.create_appointment(appointment)
        logger.info(
            "Booked %s for %s on %s at %s (id %s)",
            service.name,
            created.patient_name,
            day.isoformat(),
            time,
            created.id,
        )
        return created

    def update_status(
        self,
        appointment_id: str,
        new_status: Union[AppointmentStatus, str],
    ) -> Appointment:
        """
        Move an appointment through its lifecycle.

        A cancellation also records an admin alert. Alert failures are
        logged; the status change itself has already been stored.

        Raises:
            InvalidStatusTransition: If the lifecycle forbids the change
        """
        current = self._client.get_appointment(appointment_id)
        target = transition_status(current, new_status)

        if target.status == current.status:
            return current

        updated = self._client.update_appointment_status(appointment_id, target.status)
        logger.info(
            "Appointment %s: %s -> %s",
            appointment_id,
            current.status.value,
            updated.status.value,
        )

        if updated.status == AppointmentStatus.CANCELLED:
            self._record_cancellation(updated)

        return updated

    def _record_cancellation(self, appointment: Appointment) -> None:
        try:
            day = appointment.calendar_date().isoformat()
        except ValueError:
            day = str(appointment.appointment_date)

        message = (
            f"Appointment for {appointment.patient_name} on "
            f"{day} at {appointment.appointment_time} was cancelled."
        )
        try:
            self._client.create_alert(message, AlertType.CANCELLATION.value)
        except ClinicAPIError as exc:
            logger.warning("Could not record cancellation alert for %s: %s", appointment.id, exc)

    def delete_appointment(self, appointment_id: str) -> Appointment:
        """
        Remove a booking entirely. Unlike a cancellation, nothing is kept.
        """
        deleted = self._client.delete_appointment(appointment_id)
        logger.info("Deleted appointment %s", appointment_id)
        return deleted

    def list_alerts(self, read: Optional[bool] = None, limit: int = 20) -> List[Alert]:
        """Newest alerts first; ``read=False`` lists only unread ones."""
        if limit <= 0:
            raise ValueError(f"Limit must be greater than zero, got {limit}")
        return self._client.list_alerts(read=read, limit=limit)

    def mark_alerts_read(self, alert_ids: Sequence[str]) -> int:
        """
        Mark alerts as read.

        Returns:
            Number of alerts that were unread before
        """
        ids = [alert_id.strip() for alert_id in alert_ids if alert_id.strip()]
        if not ids:
            return 0
        return self._client.mark_alerts_read(ids)


def _build_service(
    service_id: str,
    name: str,
    description: str,
    duration_minutes: int,
    price: float,
) -> Service:
    name = (name or "").strip()
    description = (description or "").strip()
    if not name or not description:
        raise ServiceValidationError("Please provide name, description, duration and price")
    if len(name) > MAX_SERVICE_NAME:
        raise ServiceValidationError(f"Service name cannot exceed {MAX_SERVICE_NAME} characters")
    if len(description) > MAX_SERVICE_DESCRIPTION:
        raise ServiceValidationError(
            f"Service description cannot exceed {MAX_SERVICE_DESCRIPTION} characters"
        )

    try:
        return Service(
            id=service_id,
            name=name,
            duration_minutes=duration_minutes,
            price=price,
            description=description,
        )
    except ValueError as exc:
        raise ServiceValidationError(str(exc)) from exc
