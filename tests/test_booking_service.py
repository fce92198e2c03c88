"""
Tests for the BookingService orchestration layer.
"""

from dataclasses import replace
from typing import Dict, List, Optional

import pytest

from clinicslots.adapters.mock_clinic_client import MockClinicClient
from clinicslots.domain.exceptions import (
    BookingConflict,
    ClinicAPIError,
    InvalidStatusTransition,
    ServiceValidationError,
    SettingsValidationError,
    UnknownServiceError,
)
from clinicslots.domain.models import (
    Alert,
    AlertType,
    Appointment,
    AppointmentStatus,
    ClinicSettings,
    DateOverride,
    Service,
    TimeInterval,
)
from clinicslots.domain.slot_calculator import SlotCalculator
from clinicslots.services.booking_service import BookingRequest, BookingService

CHECKUP = Service(id="svc-checkup", name="Routine Check-up", duration_minutes=30, price=60)
WHITENING = Service(id="svc-whitening", name="Teeth Whitening", duration_minutes=60, price=250)


class StubClinicClient:
    """Minimal stub matching ClinicClientProtocol."""

    def __init__(
        self,
        settings: Optional[ClinicSettings] = None,
        appointments: Optional[List[Appointment]] = None,
        fail_alerts: bool = False,
        stored_alerts: Optional[List[Alert]] = None,
    ):
        self.settings = settings
        self.services = [CHECKUP, WHITENING]
        self.appointments = list(appointments or [])
        self.alerts: List[Dict[str, str]] = []
        self.stored_alerts = list(stored_alerts or [])
        self.alert_queries: List[tuple] = []
        self.marked_read: List[List[str]] = []
        self.status_updates: List[tuple] = []
        self.fail_alerts = fail_alerts

    def get_settings(self):
        return self.settings

    def save_settings(self, settings):
        self.settings = settings
        return settings

    def list_services(self):
        return list(self.services)

    def get_service(self, service_id):
        for service in self.services:
            if service.id == service_id:
                return service
        raise ClinicAPIError(f"Service not found with ID: {service_id}")

    def create_service(self, service):
        created = replace(service, id=f"svc-{len(self.services) + 1}")
        self.services.append(created)
        return created

    def update_service(self, service):
        self.get_service(service.id)
        self.services = [service if s.id == service.id else s for s in self.services]
        return service

    def delete_service(self, service_id):
        self.services.remove(self.get_service(service_id))

    def list_appointments(self):
        return list(self.appointments)

    def get_appointment(self, appointment_id):
        for appointment in self.appointments:
            if appointment.id == appointment_id:
                return appointment
        raise ClinicAPIError(f"Appointment not found: {appointment_id}")

    def create_appointment(self, appointment):
        created = replace(appointment, id=f"new-{len(self.appointments) + 1}")
        self.appointments.append(created)
        return created

    def update_appointment_status(self, appointment_id, status):
        self.status_updates.append((appointment_id, status))
        current = self.get_appointment(appointment_id)
        updated = replace(current, status=status)
        self.appointments = [updated if a.id == appointment_id else a for a in self.appointments]
        return updated

    def delete_appointment(self, appointment_id):
        deleted = self.get_appointment(appointment_id)
        self.appointments.remove(deleted)
        return deleted

    def create_alert(self, message, alert_type):
        if self.fail_alerts:
            raise ClinicAPIError("alerts endpoint down")
        self.alerts.append({"message": message, "type": alert_type})

    def list_alerts(self, read=None, limit=20):
        self.alert_queries.append((read, limit))
        return [a for a in self.stored_alerts if read is None or a.read == read][:limit]

    def mark_alerts_read(self, alert_ids):
        self.marked_read.append(list(alert_ids))
        return len(alert_ids)


def _booking(id="b1", time="10:00", duration=60, status=AppointmentStatus.CONFIRMED, day="2024-06-10"):
    return Appointment(
        id=id,
        patient_name="Anna Schmidt",
        appointment_date=day,
        appointment_time=time,
        duration_minutes=duration,
        status=status,
    )


def _build_service(client: StubClinicClient, fallback: Optional[ClinicSettings] = None) -> BookingService:
    return BookingService(client=client, slot_calculator=SlotCalculator(), fallback_settings=fallback)


def _request(time="09:00", service="Routine Check-up", day="2024-06-10") -> BookingRequest:
    return BookingRequest(
        patient_name="Jonas Weber",
        patient_email="jonas@example.com",
        appointment_date=day,
        appointment_time=time,
        service=service,
    )


class TestSettings:
    """Tests for loading and saving settings."""

    def test_fallback_when_nothing_stored(self):
        fallback = ClinicSettings(saturday_hours=None)
        service = _build_service(StubClinicClient(settings=None), fallback=fallback)

        assert service.load_settings() is fallback

    def test_default_fallback(self):
        assert _build_service(StubClinicClient()).load_settings() == ClinicSettings()

    def test_save_rejects_duplicate_dates(self):
        client = StubClinicClient()
        settings = ClinicSettings(
            custom_hours=[DateOverride(date="2024-12-24"), DateOverride(date="2024-12-24")]
        )

        with pytest.raises(SettingsValidationError):
            _build_service(client).save_settings(settings)

        assert client.settings is None

    def test_save_persists(self):
        client = StubClinicClient()
        settings = ClinicSettings(is_open=False)

        _build_service(client).save_settings(settings)

        assert client.settings == settings


class TestFindService:
    def test_by_id(self):
        assert _build_service(StubClinicClient()).find_service("svc-whitening") == WHITENING

    def test_by_name_case_insensitive(self):
        assert _build_service(StubClinicClient()).find_service("  routine check-UP ") == CHECKUP

    def test_by_id_with_surrounding_whitespace(self):
        assert _build_service(StubClinicClient()).find_service(" svc-checkup ") == CHECKUP

    def test_unknown(self):
        with pytest.raises(UnknownServiceError, match="Routine Check-up"):
            _build_service(StubClinicClient()).find_service("Massage")


class TestAvailability:
    """Tests for slot queries."""

    def test_available_slots_respect_bookings(self):
        client = StubClinicClient(appointments=[_booking(time="10:00", duration=60)])

        slots = _build_service(client).available_slots("2024-06-10", "svc-checkup")

        assert slots[:3] == ["09:00", "09:15", "09:30"]
        assert "10:00" not in slots
        assert slots[-1] == "16:30"

    def test_clinic_switched_off(self):
        client = StubClinicClient(settings=ClinicSettings(is_open=False))

        assert _build_service(client).available_slots("2024-06-10", CHECKUP) == []
        assert _build_service(client).available_dates("2024-06-10", 7, CHECKUP) == []

    def test_appointments_on_keeps_unparseable_dates(self):
        broken = _booking(id="broken", day="not a date")
        other_day = _booking(id="other", day="2024-06-11")
        client = StubClinicClient(appointments=[_booking(), broken, other_day])

        found = _build_service(client).appointments_on("2024-06-10")

        assert [a.id for a in found] == ["b1", "broken"]

    def test_operating_hours(self):
        resolved = _build_service(StubClinicClient()).operating_hours("2024-06-15")

        assert resolved.hours == TimeInterval("09:00", "13:00")


class TestBookAppointment:
    """Tests for booking creation."""

    def test_books_free_slot(self):
        client = StubClinicClient()

        created = _build_service(client).book_appointment(_request(time="9:00"))

        assert created.id == "new-1"
        assert created.status == AppointmentStatus.PENDING
        assert created.appointment_time == "09:00"
        assert created.appointment_date == "2024-06-10"
        assert created.duration_minutes == 30
        assert created.reason == "Routine Check-up"

    def test_taken_slot_raises_conflict(self):
        client = StubClinicClient(appointments=[_booking(time="09:00", duration=60)])

        with pytest.raises(BookingConflict):
            _build_service(client).book_appointment(_request(time="09:30"))

        assert len(client.appointments) == 1

    def test_closed_day_raises_conflict(self):
        with pytest.raises(BookingConflict):
            _build_service(StubClinicClient()).book_appointment(_request(day="2024-06-16"))

    def test_off_grid_time_raises_conflict(self):
        with pytest.raises(BookingConflict):
            _build_service(StubClinicClient()).book_appointment(_request(time="09:07"))

    def test_malformed_time(self):
        with pytest.raises(ValueError):
            _build_service(StubClinicClient()).book_appointment(_request(time="morning"))

    def test_duration_snapshot(self):
        """Later catalogue changes do not alter existing bookings."""
        client = StubClinicClient()
        service = _build_service(client)
        created = service.book_appointment(_request(time="09:00", service="Teeth Whitening"))

        client.services = [replace(WHITENING, duration_minutes=120), CHECKUP]

        assert created.duration_minutes == 60
        assert client.appointments[0].duration_minutes == 60


class TestUpdateStatus:
    """Tests for status changes."""

    def test_confirm(self):
        client = StubClinicClient(appointments=[_booking(status=AppointmentStatus.PENDING)])

        updated = _build_service(client).update_status("b1", "confirmed")

        assert updated.status == AppointmentStatus.CONFIRMED
        assert client.alerts == []

    def test_cancel_records_alert(self):
        client = StubClinicClient(appointments=[_booking(day="2024-06-10T00:00:00.000Z")])

        _build_service(client).update_status("b1", AppointmentStatus.CANCELLED)

        assert client.alerts == [{
            "message": "Appointment for Anna Schmidt on 2024-06-10 at 10:00 was cancelled.",
            "type": "cancellation",
        }]

    def test_alert_failure_is_logged(self, caplog):
        client = StubClinicClient(appointments=[_booking()], fail_alerts=True)

        with caplog.at_level("WARNING"):
            updated = _build_service(client).update_status("b1", "cancelled")

        assert updated.status == AppointmentStatus.CANCELLED
        assert "alerts endpoint down" in caplog.text

    def test_invalid_transition(self):
        client = StubClinicClient(appointments=[_booking(status=AppointmentStatus.COMPLETED)])

        with pytest.raises(InvalidStatusTransition):
            _build_service(client).update_status("b1", "pending")

        assert client.status_updates == []

    def test_same_status_is_not_written(self):
        client = StubClinicClient(appointments=[_booking()])

        _build_service(client).update_status("b1", "confirmed")

        assert client.status_updates == []


class TestServiceCatalogue:
    """Tests for creating, changing and removing services."""

    def test_create_service(self):
        client = StubClinicClient()

        created = _build_service(client).create_service(" Filling ", "Composite filling.", 40, 120)

        assert created.id == "svc-3"
        assert created.name == "Filling"
        assert created.duration_minutes == 40
        assert client.services[-1] == created

    @pytest.mark.parametrize(
        "name, description, duration, price",
        [
            ("", "Composite filling.", 40, 120),
            ("Filling", "  ", 40, 120),
            ("F" * 101, "Composite filling.", 40, 120),
            ("Filling", "Composite filling.", 0, 120),
            ("Filling", "Composite filling.", 1441, 120),
            ("Filling", "Composite filling.", 40, -5),
        ],
    )
    def test_create_service_validation(self, name, description, duration, price):
        client = StubClinicClient()

        with pytest.raises(ServiceValidationError):
            _build_service(client).create_service(name, description, duration, price)

        assert len(client.services) == 2

    def test_partial_update_keeps_other_fields(self):
        client = StubClinicClient()

        updated = _build_service(client).update_service("svc-whitening", price=199.5)

        assert updated.price == 199.5
        assert updated.name == "Teeth Whitening"
        assert updated.duration_minutes == 60
        assert client.get_service("svc-whitening") == updated

    def test_update_changes_future_slots_only(self):
        """Slot sizes follow the new duration; stored bookings keep theirs."""
        client = StubClinicClient(appointments=[_booking(time="10:00", duration=60)])
        service = _build_service(client)

        service.update_service("svc-checkup", duration_minutes=90)

        slots = service.available_slots("2024-06-10", "svc-checkup")
        assert "08:30" not in slots
        assert "09:00" not in slots
        assert "11:00" in slots
        assert slots[-1] == "15:30"
        assert client.appointments[0].duration_minutes == 60

    def test_update_rejects_invalid_duration(self):
        client = StubClinicClient()

        with pytest.raises(ServiceValidationError):
            _build_service(client).update_service("svc-checkup", duration_minutes=-10)

        assert client.get_service("svc-checkup") == CHECKUP

    def test_update_unknown_service(self):
        with pytest.raises(ClinicAPIError, match="not found"):
            _build_service(StubClinicClient()).update_service("svc-missing", price=10)

    def test_delete_service(self):
        client = StubClinicClient()
        service = _build_service(client)

        service.delete_service("svc-whitening")

        with pytest.raises(UnknownServiceError):
            service.find_service("Teeth Whitening")


class TestDeleteAppointment:
    def test_delete_frees_slot(self):
        client = StubClinicClient(appointments=[_booking(time="10:00", duration=60)])
        service = _build_service(client)

        deleted = service.delete_appointment("b1")

        assert deleted.id == "b1"
        assert client.appointments == []
        assert "10:00" in service.available_slots("2024-06-10", "svc-checkup")
        assert client.alerts == []

    def test_delete_unknown(self):
        with pytest.raises(ClinicAPIError):
            _build_service(StubClinicClient()).delete_appointment("nope")


class TestAlerts:
    """Tests for listing alerts and marking them as read."""

    def test_list_passes_filters(self):
        unread = Alert(id="a1", message="New pending appointment from Anna.", type=AlertType.NEW_APPOINTMENT)
        seen = Alert(id="a2", message="Closed tomorrow.", read=True)
        client = StubClinicClient(stored_alerts=[unread, seen])

        assert _build_service(client).list_alerts(read=False, limit=5) == [unread]
        assert client.alert_queries == [(False, 5)]

    def test_list_rejects_non_positive_limit(self):
        with pytest.raises(ValueError, match="Limit"):
            _build_service(StubClinicClient()).list_alerts(limit=0)

    def test_mark_read_strips_ids(self):
        client = StubClinicClient()

        assert _build_service(client).mark_alerts_read([" a1 ", "a2"]) == 2
        assert client.marked_read == [["a1", "a2"]]

    def test_mark_read_without_ids_is_a_no_op(self):
        client = StubClinicClient()

        assert _build_service(client).mark_alerts_read(["", " "]) == 0
        assert client.marked_read == []


class TestWithMockClient:
    """The bundled mock client behaves like the API and guards overlaps."""

    def test_fixture_slots(self):
        service = _build_service(MockClinicClient())

        slots = service.available_slots("2024-06-10", "Routine Check-up")

        # 10:00-11:00 confirmed and 14:00-14:30 pending; 15:00 is cancelled
        assert "10:00" not in slots
        assert "14:00" not in slots
        assert "15:00" in slots

    def test_fixture_closures(self):
        service = _build_service(MockClinicClient())

        assert service.available_slots("2024-12-25", "svc-checkup") == []
        assert service.available_slots("2024-12-31", "svc-checkup") == []
        assert service.available_slots("2024-12-24", "svc-checkup")[-1] == "11:30"

    def test_store_rejects_overlap(self):
        """Two writers that both saw 09:00 as free: the second write fails."""
        client = MockClinicClient()
        request = _booking(id=None, time="09:00", duration=30, status=AppointmentStatus.PENDING)

        client.create_appointment(request)

        with pytest.raises(BookingConflict):
            client.create_appointment(request)

    def test_book_and_cancel(self):
        client = MockClinicClient()
        service = _build_service(client)

        created = service.book_appointment(_request(time="09:00"))
        service.update_status(created.id, "cancelled")

        assert created.id == "mock-1"
        assert [alert.type for alert in client.alerts[-2:]] == [
            AlertType.NEW_APPOINTMENT,
            AlertType.CANCELLATION,
        ]
        assert "09:00" in service.available_slots("2024-06-10", "svc-checkup")

    def test_booking_records_new_appointment_alert(self):
        client = MockClinicClient()

        _build_service(client).book_appointment(_request(time="09:00"))

        newest = client.list_alerts(limit=1)[0]
        assert newest.type == AlertType.NEW_APPOINTMENT
        assert newest.message == "New pending appointment from Jonas Weber."
        assert not newest.read

    def test_service_crud(self):
        client = MockClinicClient()
        service = _build_service(client)

        created = service.create_service("Filling", "Composite filling.", 40, 120)
        service.update_service(created.id, name="Large Filling")
        service.delete_service("svc-root-canal")

        names = [item.name for item in service.list_services()]
        assert created.id == "svc-mock-1"
        assert "Large Filling" in names
        assert "Root Canal" not in names
        with pytest.raises(ClinicAPIError, match="not found"):
            client.get_service("svc-root-canal")

    def test_delete_appointment(self):
        client = MockClinicClient()
        service = _build_service(client)

        deleted = service.delete_appointment("appt-1")

        assert deleted.patient_name == "Anna Schmidt"
        assert "10:00" in service.available_slots("2024-06-10", "svc-checkup")
        with pytest.raises(ClinicAPIError):
            client.delete_appointment("appt-1")

    def test_alert_listing_and_mark_read(self):
        client = MockClinicClient()
        service = _build_service(client)

        assert [alert.id for alert in service.list_alerts()] == ["alert-3", "alert-2", "alert-1"]
        assert [alert.id for alert in service.list_alerts(read=False)] == ["alert-3", "alert-2"]
        assert [alert.id for alert in service.list_alerts(limit=1)] == ["alert-3"]

        # alert-1 is already read, unknown ids are ignored
        assert service.mark_alerts_read(["alert-1", "alert-2", "missing"]) == 1
        assert [alert.id for alert in service.list_alerts(read=False)] == ["alert-3"]
