"""
Wire models for the clinic REST API.

The API speaks camelCase JSON (MongoDB documents); the domain uses
snake_case dataclasses. These Pydantic models validate incoming payloads
and translate in both directions.
"""

from datetime import date
from typing import List, Optional, Set

import pendulum
from pendulum import DateTime
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from ..domain.exceptions import SettingsValidationError
from ..domain.models import (
    MAX_ALERT_MESSAGE,
    Alert,
    AlertType,
    Appointment,
    AppointmentStatus,
    ClinicSettings,
    DateOverride,
    RecurringClosure,
    Service,
    TimeInterval,
)


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TimeIntervalSchema(_WireModel):
    """``{"startTime": "09:00", "endTime": "17:00"}``"""
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")

    @model_validator(mode="after")
    def validate_interval(self) -> "TimeIntervalSchema":
        """Reuse the domain invariants (format and ordering)."""
        interval = TimeInterval(start_time=self.start_time, end_time=self.end_time)
        self.start_time = interval.start_time
        self.end_time = interval.end_time
        return self

    def to_domain(self) -> TimeInterval:
        return TimeInterval(start_time=self.start_time, end_time=self.end_time)

    @classmethod
    def from_domain(cls, interval: Optional[TimeInterval]) -> Optional["TimeIntervalSchema"]:
        if interval is None:
            return None
        return cls(start_time=interval.start_time, end_time=interval.end_time)


class DateOverrideSchema(_WireModel):
    date: str
    hours: Optional[TimeIntervalSchema] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, value: str) -> str:
        return DateOverride(date=value).date

    def to_domain(self) -> DateOverride:
        return DateOverride(
            date=self.date,
            hours=self.hours.to_domain() if self.hours else None,
        )


class RecurringClosureSchema(_WireModel):
    month: int = Field(ge=1, le=12)
    day_of_month: int = Field(alias="dayOfMonth", ge=1, le=31)
    description: str = ""

    def to_domain(self) -> RecurringClosure:
        return RecurringClosure(
            month=self.month,
            day_of_month=self.day_of_month,
            description=self.description,
        )


class ClinicSettingsSchema(_WireModel):
    """The single clinic-settings document."""
    regular_hours: TimeIntervalSchema = Field(alias="regularHours")
    saturday_hours: Optional[TimeIntervalSchema] = Field(default=None, alias="saturdayHours")
    sunday_hours: Optional[TimeIntervalSchema] = Field(default=None, alias="sundayHours")
    custom_hours: List[DateOverrideSchema] = Field(default_factory=list, alias="customHours")
    recurring_closures: List[RecurringClosureSchema] = Field(
        default_factory=list, alias="recurringClosures"
    )
    is_open: bool = Field(default=True, alias="isOpen")

    def to_domain(self) -> ClinicSettings:
        return ClinicSettings(
            regular_hours=self.regular_hours.to_domain(),
            saturday_hours=self.saturday_hours.to_domain() if self.saturday_hours else None,
            sunday_hours=self.sunday_hours.to_domain() if self.sunday_hours else None,
            custom_hours=[entry.to_domain() for entry in self.custom_hours],
            recurring_closures=[entry.to_domain() for entry in self.recurring_closures],
            is_open=self.is_open,
        )

    @classmethod
    def from_domain(cls, settings: ClinicSettings) -> "ClinicSettingsSchema":
        return cls(
            regular_hours=TimeIntervalSchema.from_domain(settings.regular_hours),
            saturday_hours=TimeIntervalSchema.from_domain(settings.saturday_hours),
            sunday_hours=TimeIntervalSchema.from_domain(settings.sunday_hours),
            custom_hours=[
                DateOverrideSchema(date=entry.date, hours=TimeIntervalSchema.from_domain(entry.hours))
                for entry in settings.custom_hours
            ],
            recurring_closures=[
                RecurringClosureSchema(
                    month=entry.month,
                    day_of_month=entry.day_of_month,
                    description=entry.description,
                )
                for entry in settings.recurring_closures
            ],
            is_open=settings.is_open,
        )

    def check_for_update(self) -> None:
        """
        Stricter rules applied before settings are written.

        Reading tolerates duplicate custom-hours dates (last one wins), but
        an update must not introduce them.

        Raises:
            SettingsValidationError: If a date has more than one override
        """
        seen: Set[str] = set()
        duplicates: List[str] = []
        for entry in self.custom_hours:
            if entry.date in seen and entry.date not in duplicates:
                duplicates.append(entry.date)
            seen.add(entry.date)

        if duplicates:
            raise SettingsValidationError(
                f"Custom hours defined more than once for: {', '.join(duplicates)}"
            )

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ServiceSchema(_WireModel):
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    name: str
    description: str = ""
    duration_minutes: int = Field(alias="durationMinutes", ge=1, le=24 * 60)
    price: float = Field(default=0.0, ge=0)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return str(value)

    def to_domain(self) -> Service:
        return Service(
            id=self.id,
            name=self.name,
            duration_minutes=self.duration_minutes,
            price=self.price,
            description=self.description,
        )

    @classmethod
    def from_domain(cls, service: Service) -> "ServiceSchema":
        return cls(
            id=service.id,
            name=service.name,
            description=service.description,
            duration_minutes=service.duration_minutes,
            price=service.price,
        )

    def to_payload(self) -> dict:
        """Body for create/update; the store owns the id."""
        return self.model_dump(mode="json", by_alias=True, exclude={"id"})


class AppointmentSchema(_WireModel):
    """
    Appointment document.

    Date and time stay loosely typed so a record with a broken value can
    still be loaded; the slot engine decides what to do with it.
    """
    id: Optional[str] = Field(default=None, validation_alias=AliasChoices("_id", "id"))
    patient_name: str = Field(default="", alias="patientName")
    patient_email: Optional[str] = Field(
        default=None,
        alias="patientEmail",
        validation_alias=AliasChoices("patientEmail", "email"),
    )
    appointment_date: Optional[str] = Field(default=None, alias="appointmentDate")
    appointment_time: Optional[str] = Field(default=None, alias="appointmentTime")
    duration_minutes: Optional[int] = Field(default=None, alias="durationMinutes")
    reason: Optional[str] = None
    status: AppointmentStatus = AppointmentStatus.PENDING

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return None if value is None else str(value)

    @field_validator("appointment_date", mode="before")
    @classmethod
    def keep_raw_date(cls, value):
        # Strings stay verbatim; "2024-06-10T00:00:00.000Z" must not be
        # shifted into another timezone.
        if isinstance(value, date):
            return value.isoformat()
        return value

    def to_domain(self) -> Appointment:
        return Appointment(
            id=self.id,
            patient_name=self.patient_name,
            patient_email=self.patient_email,
            appointment_date=self.appointment_date,
            appointment_time=self.appointment_time,
            duration_minutes=self.duration_minutes,
            reason=self.reason,
            status=self.status,
        )

    @classmethod
    def from_domain(cls, appointment: Appointment) -> "AppointmentSchema":
        raw_date = appointment.appointment_date
        if isinstance(raw_date, date):
            raw_date = raw_date.isoformat()
        return cls(
            id=appointment.id,
            patient_name=appointment.patient_name,
            patient_email=appointment.patient_email,
            appointment_date=raw_date,
            appointment_time=appointment.appointment_time,
            duration_minutes=appointment.duration_minutes,
            reason=appointment.reason,
            status=appointment.status,
        )

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True, exclude={"id"})


class AlertSchema(_WireModel):
    """Alert document as listed by ``GET /api/alerts``."""
    id: Optional[str] = Field(default=None, validation_alias=AliasChoices("_id", "id"))
    message: str = Field(max_length=MAX_ALERT_MESSAGE)
    type: AlertType = AlertType.GENERAL
    read: bool = Field(default=False, validation_alias=AliasChoices("read", "isRead"))
    created_at: Optional[str] = Field(default=None, alias="createdAt")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return None if value is None else str(value)

    @field_validator("message")
    @classmethod
    def validate_message(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Alert message is required")
        return value.strip()

    @field_validator("created_at")
    @classmethod
    def validate_timestamp(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not isinstance(pendulum.parse(value), DateTime):
            raise ValueError(f"Not a timestamp: {value!r}")
        return value

    def to_domain(self) -> Alert:
        return Alert(
            id=self.id,
            message=self.message,
            type=self.type,
            read=self.read,
            created_at=pendulum.parse(self.created_at) if self.created_at else None,
        )
