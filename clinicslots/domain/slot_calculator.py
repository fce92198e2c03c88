"""
Core business logic for calculating bookable appointment slots.

This is the heart of the application - pure domain logic without any
external dependencies (no API calls, no database, no I/O). Settings and
bookings are passed in, a list of ``HH:MM`` start times comes out.
"""

import logging
from typing import Iterable, List, Optional, Sequence

from pendulum import Date, DateTime

from .exceptions import InvalidDuration, InvalidStep, MalformedBookingRecord
from .models import (
    DEFAULT_TIMEZONE,
    Appointment,
    ClinicSettings,
    DateLike,
    Service,
    TimeInterval,
    TimeRange,
    at_minutes,
    day_start,
    parse_calendar_date,
)
from .operating_hours import resolve_operating_hours

logger = logging.getLogger(__name__)

DEFAULT_STEP_MINUTES = 15


def _check_duration(duration_minutes: int) -> None:
    if duration_minutes <= 0:
        raise InvalidDuration(f"Duration must be greater than zero, got {duration_minutes}")


def _check_step(step_minutes: int) -> None:
    if step_minutes <= 0:
        raise InvalidStep(f"Step must be greater than zero, got {step_minutes}")


def generate_candidate_starts(
    day: DateLike,
    operating_hours: Optional[TimeInterval],
    duration_minutes: int,
    step_minutes: int = DEFAULT_STEP_MINUTES,
    timezone: str = DEFAULT_TIMEZONE,
) -> List[DateTime]:
    """
    Enumerate start times that leave room for the whole service.

    Starts at opening time and steps forward by ``step_minutes``. A start is
    kept while ``start + duration`` is at or before closing time, so an
    appointment may end exactly when the clinic closes but never after.

    Example:
    Open: 09:00 - 10:00, duration 30, step 15
    Result: [09:00, 09:15, 09:30]

    Raises:
        InvalidDuration: If duration_minutes is not positive
        InvalidStep: If step_minutes is not positive
    """
    _check_duration(duration_minutes)
    _check_step(step_minutes)

    if operating_hours is None:
        return []

    midnight = day_start(parse_calendar_date(day), timezone)
    closing = operating_hours.end_minutes

    candidates: List[DateTime] = []
    current = operating_hours.start_minutes

    while current + duration_minutes <= closing:
        candidates.append(at_minutes(midnight, current))
        current += step_minutes

    return candidates


def busy_ranges(
    bookings: Iterable[Appointment],
    timezone: str = DEFAULT_TIMEZONE,
    strict: bool = False,
) -> List[TimeRange]:
    """
    Convert bookings into occupied time ranges.

    Cancelled bookings are ignored. A booking whose date or time cannot be
    parsed is skipped with a warning; with ``strict=True`` it raises
    ``MalformedBookingRecord`` instead.
    """
    ranges: List[TimeRange] = []

    for booking in bookings:
        if not booking.occupies_time:
            continue

        try:
            ranges.append(booking.time_range(timezone))
        except ValueError as exc:
            if strict:
                raise MalformedBookingRecord(booking.id, str(exc)) from exc
            logger.warning(
                "Ignoring booking %s for conflict checks, cannot parse date/time: %s",
                booking.id,
                exc,
            )

    return ranges


def filter_available(
    candidates: Sequence[DateTime],
    duration_minutes: int,
    booked_on_date: Iterable[Appointment],
    timezone: str = DEFAULT_TIMEZONE,
    strict: bool = False,
) -> List[DateTime]:
    """
    Drop candidates whose ``[start, start + duration)`` overlaps a booking.

    Bookings on other dates can never overlap, so callers may pass an
    unfiltered appointment list. Order of the candidates is preserved.
    """
    _check_duration(duration_minutes)

    busy = busy_ranges(booked_on_date, timezone=timezone, strict=strict)

    available: List[DateTime] = []
    for start in candidates:
        slot = TimeRange(start=start, end=start.add(minutes=duration_minutes))
        if not any(slot.overlaps(booked) for booked in busy):
            available.append(start)

    return available


class SlotCalculator:
    """
    Calculates bookable start times for a service on a given date.

    Algorithm:
    1. Return nothing when the clinic is switched off (``is_open``)
    2. Resolve the day's opening hours from the layered settings
    3. Generate candidate starts on a fixed step grid
    4. Remove candidates that collide with non-cancelled bookings
    5. Format the survivors as ``HH:MM``
    """

    def __init__(
        self,
        step_minutes: int = DEFAULT_STEP_MINUTES,
        timezone: str = DEFAULT_TIMEZONE,
        strict_bookings: bool = False,
    ):
        _check_step(step_minutes)
        self.step_minutes = step_minutes
        self.timezone = timezone
        self.strict_bookings = strict_bookings

    def compute_available_slots(
        self,
        day: DateLike,
        service: Service,
        settings: ClinicSettings,
        bookings: Iterable[Appointment],
    ) -> List[str]:
        """
        Find all free start times for ``service`` on ``day``.

        Args:
            day: The calendar date to search
            service: The service to book; its duration sizes each slot
            settings: Clinic opening-hours configuration
            bookings: Existing appointments (for this date or all dates)

        Returns:
            Ascending list of ``HH:MM`` strings, empty when closed or full
        """
        if not settings.is_open:
            return []

        hours = resolve_operating_hours(day, settings)
        if hours is None:
            return []

        candidates = generate_candidate_starts(
            day,
            hours,
            service.duration_minutes,
            step_minutes=self.step_minutes,
            timezone=self.timezone,
        )

        free = filter_available(
            candidates,
            service.duration_minutes,
            bookings,
            timezone=self.timezone,
            strict=self.strict_bookings,
        )

        return [start.format("HH:mm") for start in free]

    def available_dates(
        self,
        start: DateLike,
        days: int,
        service: Service,
        settings: ClinicSettings,
        bookings: Iterable[Appointment],
    ) -> List[Date]:
        """Dates in ``[start, start + days)`` that have at least one free slot."""
        first = parse_calendar_date(start)
        booking_list = list(bookings)

        open_days: List[Date] = []
        for offset in range(days):
            day = first.add(days=offset)
            if self.compute_available_slots(day, service, settings, booking_list):
                open_days.append(day)
        return open_days


def compute_available_slots(
    day: DateLike,
    service: Service,
    settings: ClinicSettings,
    all_bookings_for_date: Iterable[Appointment],
    *,
    step_minutes: int = DEFAULT_STEP_MINUTES,
    timezone: str = DEFAULT_TIMEZONE,
    strict: bool = False,
) -> List[str]:
    """Functional shortcut for :meth:`SlotCalculator.compute_available_slots`."""
    calculator = SlotCalculator(step_minutes=step_minutes, timezone=timezone, strict_bookings=strict)
    return calculator.compute_available_slots(day, service, settings, all_bookings_for_date)
