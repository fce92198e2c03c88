"""
Client for the clinic's REST API (settings, services, appointments, alerts).
"""

import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

import requests
from pydantic import ValidationError

from ..domain.exceptions import BookingConflict, ClinicAPIError
from ..domain.models import Alert, Appointment, AppointmentStatus, ClinicSettings, Service
from .schemas import AlertSchema, AppointmentSchema, ClinicSettingsSchema, ServiceSchema

logger = logging.getLogger(__name__)


class ClinicApiClient:
    """
    Thin wrapper around the clinic web application's JSON endpoints.

    Every endpoint answers with an envelope such as
    ``{"success": true, "appointments": [...]}`` or
    ``{"success": false, "message": "..."}``.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the API client.

        Args:
            base_url: Root URL of the clinic web application
            timeout: Per-request timeout in seconds
            session: Optional pre-configured requests session
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        """
        Perform a request and unwrap the success envelope.

        Raises:
            BookingConflict: If the server answers 409
            ClinicAPIError: On transport errors, bad JSON or ``success: false``
        """
        url = f"{self.base_url}{path}"
        logger.debug("%s %s", method, url)

        try:
            response = self.session.request(
                method,
                url,
                headers=self.headers,
                timeout=self.timeout,
                **kwargs,
            )
        except requests.exceptions.RequestException as e:
            raise ClinicAPIError(f"{method} {path} failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if isinstance(data, dict) and response.ok and data.get("success"):
            return data

        message = None
        if isinstance(data, dict):
            message = data.get("message") or data.get("error")
        message = message or f"unexpected response (HTTP {response.status_code})"

        if response.status_code == 409:
            raise BookingConflict(message)

        raise ClinicAPIError(f"{method} {path} failed: {message}")

    def get_settings(self) -> Optional[ClinicSettings]:
        """
        Fetch the clinic settings document.

        Returns:
            ClinicSettings, or None if the clinic has not saved any yet
        """
        data = self._request("GET", "/api/clinic-setting")
        raw = data.get("settings")
        if raw is None:
            return None

        try:
            return ClinicSettingsSchema.model_validate(raw).to_domain()
        except ValidationError as e:
            raise ClinicAPIError(f"Invalid clinic settings received: {e}") from e

    def save_settings(self, settings: ClinicSettings) -> ClinicSettings:
        """Replace the clinic settings document wholesale."""
        payload = ClinicSettingsSchema.from_domain(settings).to_payload()
        data = self._request("POST", "/api/clinic-setting", json=payload)

        try:
            return ClinicSettingsSchema.model_validate(data.get("settings")).to_domain()
        except ValidationError as e:
            raise ClinicAPIError(f"Invalid clinic settings returned: {e}") from e

    def list_services(self) -> List[Service]:
        data = self._request("GET", "/api/services")

        try:
            return [ServiceSchema.model_validate(item).to_domain() for item in data.get("data", [])]
        except ValidationError as e:
            raise ClinicAPIError(f"Invalid service received: {e}") from e

    def _service_from(self, data: Dict[str, Any]) -> Service:
        try:
            return ServiceSchema.model_validate(data.get("data")).to_domain()
        except ValidationError as e:
            raise ClinicAPIError(f"Invalid service received: {e}") from e

    def get_service(self, service_id: str) -> Service:
        return self._service_from(self._request("GET", f"/api/services/{service_id}"))

    def create_service(self, service: Service) -> Service:
        """Create a service; the server assigns the id."""
        payload = ServiceSchema.from_domain(service).to_payload()
        return self._service_from(self._request("POST", "/api/services", json=payload))

    def update_service(self, service: Service) -> Service:
        """Overwrite name, description, duration and price of a service."""
        payload = ServiceSchema.from_domain(service).to_payload()
        return self._service_from(
            self._request("PUT", f"/api/services/{service.id}", json=payload)
        )

    def delete_service(self, service_id: str) -> None:
        self._request("DELETE", f"/api/services/{service_id}")

    def list_appointments(self) -> List[Appointment]:
        """
        Fetch all appointments.

        Documents that do not match the appointment schema at all (e.g. an
        unknown status) are skipped with a warning.
        """
        data = self._request("GET", "/api/appointment")

        appointments: List[Appointment] = []
        for item in data.get("appointments", []):
            try:
                appointments.append(AppointmentSchema.model_validate(item).to_domain())
            except ValidationError as e:
                item_id = item.get("_id") if isinstance(item, dict) else None
                logger.warning("Skipping unreadable appointment %s: %s", item_id, e)
                continue

        return appointments

    def get_appointment(self, appointment_id: str) -> Appointment:
        """
        Look up one appointment.

        The API has no single-document read, so this scans the full list.
        """
        for appointment in self.list_appointments():
            if appointment.id == appointment_id:
                return appointment
        raise ClinicAPIError(f"Appointment not found: {appointment_id}")

    def create_appointment(self, appointment: Appointment) -> Appointment:
        """Create a booking; the server assigns the id and forces ``pending``."""
        payload = AppointmentSchema.from_domain(appointment).to_payload()
        data = self._request("POST", "/api/appointment", json=payload)

        return replace(appointment, id=str(data.get("id")), status=AppointmentStatus.PENDING)

    def update_appointment_status(
        self,
        appointment_id: str,
        status: AppointmentStatus,
    ) -> Appointment:
        """
        Change an appointment's status.

        The server sends the confirmation email itself when a booking
        becomes ``confirmed``.
        """
        data = self._request(
            "PATCH",
            f"/api/appointment/{appointment_id}",
            json={"status": status.value},
        )

        try:
            return AppointmentSchema.model_validate(data.get("appointment")).to_domain()
        except ValidationError as e:
            raise ClinicAPIError(f"Invalid appointment returned: {e}") from e

    def delete_appointment(self, appointment_id: str) -> Appointment:
        """Remove a booking for good and return the deleted record."""
        data = self._request("DELETE", f"/api/appointment/{appointment_id}")

        try:
            return AppointmentSchema.model_validate(data.get("deletedAppointment")).to_domain()
        except ValidationError as e:
            raise ClinicAPIError(f"Invalid appointment returned: {e}") from e

    def create_alert(self, message: str, alert_type: str) -> None:
        """Persist an admin dashboard alert."""
        self._request("POST", "/api/alerts", json={"message": message, "type": alert_type})

    def list_alerts(self, read: Optional[bool] = None, limit: int = 20) -> List[Alert]:
        """
        Fetch alerts, newest first.

        Args:
            read: Only read (True) or unread (False) alerts; None for all
            limit: Maximum number of alerts to return
        """
        params: Dict[str, Any] = {"limit": limit}
        if read is not None:
            params["read"] = "true" if read else "false"

        data = self._request("GET", "/api/alerts", params=params)

        try:
            return [AlertSchema.model_validate(item).to_domain() for item in data.get("alerts", [])]
        except ValidationError as e:
            raise ClinicAPIError(f"Invalid alert received: {e}") from e

    def mark_alerts_read(self, alert_ids: List[str]) -> int:
        """Mark alerts as read; returns how many actually changed."""
        data = self._request("POST", "/api/alerts/mark-as-read", json={"ids": list(alert_ids)})
        result = data.get("result") or {}
        return int(result.get("modifiedCount", 0))
