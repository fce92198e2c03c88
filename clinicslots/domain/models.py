"""
Domain models for clinic opening hours, services and bookings.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import List, Optional, Union

import pendulum
from pendulum import Date, DateTime

DEFAULT_TIMEZONE = "Europe/Berlin"

# Bookings stored without a usable duration occupy this many minutes.
DEFAULT_BOOKING_DURATION = 30

MAX_SERVICE_DURATION = 24 * 60

_CLOCK_TIME = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")

DateLike = Union[str, date]


def parse_clock_time(value: str) -> int:
    """Convert an ``HH:MM`` string to minutes since midnight."""
    match = _CLOCK_TIME.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"Time must be in HH:MM format, got {value!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


def format_clock_time(minutes: int) -> str:
    """Format minutes since midnight as a zero-padded ``HH:MM`` string."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_calendar_date(value: DateLike) -> Date:
    """
    Normalise a date-like value to a pendulum ``Date``.

    Accepts ``date``/``datetime`` objects and ISO 8601 strings. Full
    timestamps such as ``2024-06-10T00:00:00.000Z`` keep their literal
    calendar date; no timezone conversion is applied.

    Raises:
        ValueError: If the value is not a calendar date
    """
    if isinstance(value, date):
        # datetime subclasses date, so this also covers DateTime
        return pendulum.date(value.year, value.month, value.day)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Not a calendar date: {value!r}")

    parsed = pendulum.parse(value.strip(), exact=True)
    if isinstance(parsed, DateTime):
        return parsed.date()
    if isinstance(parsed, Date):
        return parsed
    raise ValueError(f"Not a calendar date: {value!r}")


def day_start(day: date, timezone: str = DEFAULT_TIMEZONE) -> DateTime:
    """Midnight of ``day`` in the given timezone."""
    return pendulum.datetime(day.year, day.month, day.day, tz=timezone)


def at_minutes(midnight: DateTime, minutes: int) -> DateTime:
    """Wall-clock time ``minutes`` after midnight on the same day."""
    return midnight.set(hour=minutes // 60, minute=minutes % 60, second=0, microsecond=0)


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable half-open time range ``[start, end)``.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another. Touching ranges do not."""
        return self.start < other.end and other.start < self.end

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class TimeInterval:
    """
    Same-day opening interval expressed as ``HH:MM`` strings.

    Values are normalised to zero-padded 24-hour form, so string order
    matches time order. Invariant: start_time < end_time.
    """
    start_time: str
    end_time: str

    def __post_init__(self):
        start = parse_clock_time(self.start_time)
        end = parse_clock_time(self.end_time)
        if start >= end:
            raise ValueError(
                f"Start time {self.start_time} must be before end time {self.end_time}"
            )
        object.__setattr__(self, "start_time", format_clock_time(start))
        object.__setattr__(self, "end_time", format_clock_time(end))

    @property
    def start_minutes(self) -> int:
        return parse_clock_time(self.start_time)

    @property
    def end_minutes(self) -> int:
        return parse_clock_time(self.end_time)

    def on(self, day: date, timezone: str = DEFAULT_TIMEZONE) -> TimeRange:
        """Anchor the interval to a calendar date."""
        midnight = day_start(day, timezone)
        return TimeRange(
            start=at_minutes(midnight, self.start_minutes),
            end=at_minutes(midnight, self.end_minutes),
        )

    def __str__(self) -> str:
        return f"{self.start_time} - {self.end_time}"


@dataclass(frozen=True)
class DateOverride:
    """
    One-off hours for a specific date. ``hours=None`` means closed.
    """
    date: str  # YYYY-MM-DD
    hours: Optional[TimeInterval] = None

    def __post_init__(self):
        object.__setattr__(self, "date", parse_calendar_date(self.date).isoformat())


@dataclass(frozen=True)
class RecurringClosure:
    """
    Annual closure on a fixed month/day, e.g. a public holiday.
    """
    month: int
    day_of_month: int
    description: str = ""

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise ValueError(f"Month must be between 1 and 12, got {self.month}")
        if not 1 <= self.day_of_month <= 31:
            raise ValueError(f"Day of month must be between 1 and 31, got {self.day_of_month}")

    def matches(self, day: date) -> bool:
        return day.month == self.month and day.day == self.day_of_month


def _default_regular_hours() -> TimeInterval:
    return TimeInterval(start_time="09:00", end_time="17:00")


def _default_saturday_hours() -> TimeInterval:
    return TimeInterval(start_time="09:00", end_time="13:00")


@dataclass(frozen=True)
class ClinicSettings:
    """
    Opening-hours configuration for the whole clinic.

    The defaults mirror what the admin screen seeds for a new clinic:
    weekdays 09:00-17:00, Saturday mornings, closed on Sunday.
    """
    regular_hours: TimeInterval = field(default_factory=_default_regular_hours)
    saturday_hours: Optional[TimeInterval] = field(default_factory=_default_saturday_hours)
    sunday_hours: Optional[TimeInterval] = None
    custom_hours: List[DateOverride] = field(default_factory=list)
    recurring_closures: List[RecurringClosure] = field(default_factory=list)
    is_open: bool = True


@dataclass(frozen=True)
class Service:
    """
    Bookable treatment. Its duration decides how long a slot must stay free.
    """
    id: str
    name: str
    duration_minutes: int
    price: float = 0.0
    description: str = ""

    def __post_init__(self):
        if not 1 <= self.duration_minutes <= MAX_SERVICE_DURATION:
            raise ValueError(
                f"Service duration must be between 1 and {MAX_SERVICE_DURATION} minutes, "
                f"got {self.duration_minutes}"
            )
        if self.price < 0:
            raise ValueError(f"Service price cannot be negative, got {self.price}")


class AppointmentStatus(str, Enum):
    """
    Booking lifecycle: pending -> confirmed -> completed, with
    cancellation possible from pending or confirmed.
    """
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return not _STATUS_TRANSITIONS[self]

    def can_transition_to(self, other: "AppointmentStatus") -> bool:
        return other in _STATUS_TRANSITIONS[self]


_STATUS_TRANSITIONS = {
    AppointmentStatus.PENDING: {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED},
    AppointmentStatus.CONFIRMED: {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED},
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.CANCELLED: set(),
}


@dataclass(frozen=True)
class Appointment:
    """
    A booking as stored by the clinic.

    Date and time are kept as received so that a record with a broken
    date still loads; parsing happens in :meth:`time_range`.
    """
    id: Optional[str]
    patient_name: str
    appointment_date: Optional[DateLike]
    appointment_time: Optional[str]
    duration_minutes: Optional[int] = None
    patient_email: Optional[str] = None
    reason: Optional[str] = None  # service name
    status: AppointmentStatus = AppointmentStatus.PENDING

    @property
    def occupies_time(self) -> bool:
        """Cancelled bookings free their slot."""
        return self.status != AppointmentStatus.CANCELLED

    @property
    def effective_duration(self) -> int:
        """Stored duration, or the default when it is missing, zero or negative."""
        if self.duration_minutes and self.duration_minutes > 0:
            return self.duration_minutes
        return DEFAULT_BOOKING_DURATION

    def calendar_date(self) -> Date:
        return parse_calendar_date(self.appointment_date)

    def time_range(self, timezone: str = DEFAULT_TIMEZONE) -> TimeRange:
        """
        Interval occupied by this booking.

        Raises:
            ValueError: If the date or time cannot be parsed
        """
        midnight = day_start(self.calendar_date(), timezone)
        start = at_minutes(midnight, parse_clock_time(self.appointment_time))
        return TimeRange(start=start, end=start.add(minutes=self.effective_duration))


class AlertType(str, Enum):
    """Categories shown on the admin dashboard."""
    NEW_APPOINTMENT = "new-appointment"
    CANCELLATION = "cancellation"
    CONFIRMATION = "confirmation"
    SYSTEM_INFO = "system-info"
    GENERAL = "general"


MAX_ALERT_MESSAGE = 500


@dataclass(frozen=True)
class Alert:
    """
    Admin notification, e.g. a new booking or a cancellation.
    """
    id: Optional[str]
    message: str
    type: AlertType = AlertType.GENERAL
    read: bool = False
    created_at: Optional[DateTime] = None

    def __post_init__(self):
        message = self.message.strip() if isinstance(self.message, str) else ""
        if not message:
            raise ValueError("Alert message is required")
        if len(message) > MAX_ALERT_MESSAGE:
            raise ValueError(f"Alert message cannot exceed {MAX_ALERT_MESSAGE} characters")
        object.__setattr__(self, "message", message)
