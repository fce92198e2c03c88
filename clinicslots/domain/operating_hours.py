"""
Resolve the clinic's opening hours for a single calendar date.

Sources are layered and checked in order, first match wins:

1. Custom hours for the exact date (an override may also close the day)
2. Recurring annual closures
3. Saturday / Sunday hours
4. Regular weekday hours

``ClinicSettings.is_open`` is deliberately not consulted here; it gates
the whole slot computation one level up.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import pendulum
from pendulum import Date

from .models import ClinicSettings, DateLike, DateOverride, TimeInterval, parse_calendar_date


class HoursSource(str, Enum):
    """Which configuration layer decided a day's hours."""
    CUSTOM = "custom"
    RECURRING_CLOSURE = "recurring-closure"
    SATURDAY = "saturday"
    SUNDAY = "sunday"
    REGULAR = "regular"


@dataclass(frozen=True)
class ResolvedHours:
    """Opening hours for a date together with the rule that produced them."""
    day: Date
    hours: Optional[TimeInterval]
    source: HoursSource
    note: str = ""

    @property
    def is_closed(self) -> bool:
        return self.hours is None


def find_date_override(day: Date, settings: ClinicSettings) -> Optional[DateOverride]:
    """
    Return the custom-hours entry for ``day``.

    Duplicate entries for the same date are tolerated on read; the last one
    in the list wins.
    """
    key = day.isoformat()
    match: Optional[DateOverride] = None
    for override in settings.custom_hours:
        if override.date == key:
            match = override
    return match


def explain_operating_hours(day: DateLike, settings: ClinicSettings) -> ResolvedHours:
    """Resolve opening hours for ``day`` and report which rule applied."""
    day = parse_calendar_date(day)

    override = find_date_override(day, settings)
    if override is not None:
        return ResolvedHours(day=day, hours=override.hours, source=HoursSource.CUSTOM)

    for closure in settings.recurring_closures:
        if closure.matches(day):
            return ResolvedHours(
                day=day,
                hours=None,
                source=HoursSource.RECURRING_CLOSURE,
                note=closure.description,
            )

    if day.day_of_week == pendulum.SATURDAY:
        return ResolvedHours(day=day, hours=settings.saturday_hours, source=HoursSource.SATURDAY)
    if day.day_of_week == pendulum.SUNDAY:
        return ResolvedHours(day=day, hours=settings.sunday_hours, source=HoursSource.SUNDAY)

    return ResolvedHours(day=day, hours=settings.regular_hours, source=HoursSource.REGULAR)


def resolve_operating_hours(day: DateLike, settings: ClinicSettings) -> Optional[TimeInterval]:
    """Opening interval for ``day``, or ``None`` when the clinic is closed."""
    return explain_operating_hours(day, settings).hours
