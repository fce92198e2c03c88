"""
In-memory clinic client for demos and tests, without a running web app.
"""

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import pendulum
from pydantic import ValidationError

from ..domain.appointments import ensure_no_conflict
from ..domain.exceptions import ClinicAPIError
from ..domain.models import (
    DEFAULT_TIMEZONE,
    Alert,
    AlertType,
    Appointment,
    AppointmentStatus,
    ClinicSettings,
    Service,
)
from .schemas import AlertSchema, AppointmentSchema, ClinicSettingsSchema, ServiceSchema

logger = logging.getLogger(__name__)

DEFAULT_DATA_FILE = Path(__file__).parent / "mock_clinic_data.json"

_EPOCH = pendulum.datetime(1970, 1, 1)


class MockClinicClient:
    """
    Client that keeps clinic data in memory.

    Data is seeded from a JSON file with the same camelCase shapes the real
    API returns (``settings``, ``services``, ``appointments``, ``alerts``).
    Writes are kept in memory only.

    Unlike the real API, creating an appointment re-checks for overlaps
    before storing it, which is the guard a production store must enforce.
    """

    def __init__(
        self,
        data_file: Optional[Path] = None,
        data: Optional[Dict[str, Any]] = None,
        timezone: str = DEFAULT_TIMEZONE,
    ):
        """
        Initialize the mock client.

        Args:
            data_file: JSON fixture to load; defaults to the bundled one
            data: Already-parsed fixture, takes precedence over data_file
            timezone: Timezone used for the overlap guard
        """
        self.timezone = timezone
        self._next_id = 1
        self._next_service_id = 1
        self._next_alert_id = 1

        if data is None:
            data = self._load_data(data_file or DEFAULT_DATA_FILE)

        try:
            raw_settings = data.get("settings")
            self._settings: Optional[ClinicSettings] = (
                ClinicSettingsSchema.model_validate(raw_settings).to_domain()
                if raw_settings is not None
                else None
            )
            self._services: List[Service] = [
                ServiceSchema.model_validate(item).to_domain() for item in data.get("services", [])
            ]
            self._appointments: List[Appointment] = [
                AppointmentSchema.model_validate(item).to_domain()
                for item in data.get("appointments", [])
            ]
            self.alerts: List[Alert] = [
                AlertSchema.model_validate(item).to_domain() for item in data.get("alerts", [])
            ]
        except ValidationError as e:
            raise ClinicAPIError(f"Invalid mock clinic data: {e}") from e

    @staticmethod
    def _load_data(data_file: Path) -> Dict[str, Any]:
        """Load the JSON fixture."""
        if not data_file.exists():
            raise FileNotFoundError(f"Mock data file not found: {data_file}")

        with open(data_file, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as exc:
                raise ClinicAPIError(f"Invalid JSON in {data_file}: {exc}") from exc

        if not isinstance(data, dict):
            raise ClinicAPIError("Mock data file must contain an object at the root level.")
        return data

    def get_settings(self) -> Optional[ClinicSettings]:
        return self._settings

    def save_settings(self, settings: ClinicSettings) -> ClinicSettings:
        self._settings = settings
        return settings

    def list_services(self) -> List[Service]:
        return list(self._services)

    def _service_index(self, service_id: str) -> int:
        for index, service in enumerate(self._services):
            if service.id == service_id:
                return index
        raise ClinicAPIError(f"Service not found with ID: {service_id}")

    def get_service(self, service_id: str) -> Service:
        return self._services[self._service_index(service_id)]

    def create_service(self, service: Service) -> Service:
        stored = replace(service, id=f"svc-mock-{self._next_service_id}")
        self._next_service_id += 1
        self._services.append(stored)
        return stored

    def update_service(self, service: Service) -> Service:
        self._services[self._service_index(service.id)] = service
        return service

    def delete_service(self, service_id: str) -> None:
        del self._services[self._service_index(service_id)]

    def list_appointments(self) -> List[Appointment]:
        return list(self._appointments)

    def _appointment_index(self, appointment_id: str) -> int:
        for index, appointment in enumerate(self._appointments):
            if appointment.id == appointment_id:
                return index
        raise ClinicAPIError(f"Appointment not found: {appointment_id}")

    def get_appointment(self, appointment_id: str) -> Appointment:
        return self._appointments[self._appointment_index(appointment_id)]

    def create_appointment(self, appointment: Appointment) -> Appointment:
        ensure_no_conflict(appointment, self._appointments, timezone=self.timezone)

        stored = replace(
            appointment,
            id=f"mock-{self._next_id}",
            status=AppointmentStatus.PENDING,
        )
        self._next_id += 1
        self._appointments.append(stored)

        # The web app records a dashboard alert for every new booking
        self.create_alert(
            f"New pending appointment from {stored.patient_name}.",
            AlertType.NEW_APPOINTMENT.value,
        )
        return stored

    def update_appointment_status(
        self,
        appointment_id: str,
        status: AppointmentStatus,
    ) -> Appointment:
        index = self._appointment_index(appointment_id)
        updated = replace(self._appointments[index], status=status)
        self._appointments[index] = updated
        return updated

    def delete_appointment(self, appointment_id: str) -> Appointment:
        return self._appointments.pop(self._appointment_index(appointment_id))

    def create_alert(self, message: str, alert_type: str) -> None:
        self.alerts.append(Alert(
            id=f"mock-alert-{self._next_alert_id}",
            message=message,
            type=AlertType(alert_type),
            created_at=pendulum.now("UTC"),
        ))
        self._next_alert_id += 1

    def list_alerts(self, read: Optional[bool] = None, limit: int = 20) -> List[Alert]:
        """Alerts newest first, optionally filtered by read state."""
        matching = [alert for alert in reversed(self.alerts) if read is None or alert.read == read]
        matching.sort(key=lambda alert: alert.created_at or _EPOCH, reverse=True)
        return matching[:limit]

    def mark_alerts_read(self, alert_ids: List[str]) -> int:
        wanted = set(alert_ids)
        modified = 0
        for index, alert in enumerate(self.alerts):
            if alert.id in wanted and not alert.read:
                self.alerts[index] = replace(alert, read=True)
                modified += 1
        return modified
