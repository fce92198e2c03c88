"""
Appointment lifecycle rules and the booking overlap guard.
"""

import logging
from dataclasses import replace
from typing import Iterable, Union

from .exceptions import BookingConflict, InvalidStatusTransition, MalformedBookingRecord
from .models import DEFAULT_TIMEZONE, Appointment, AppointmentStatus

logger = logging.getLogger(__name__)


def transition_status(
    appointment: Appointment,
    new_status: Union[AppointmentStatus, str],
) -> Appointment:
    """
    Return a copy of ``appointment`` moved to ``new_status``.

    Setting the current status again is a no-op.

    Raises:
        ValueError: If new_status is not a known status
        InvalidStatusTransition: If the lifecycle forbids the change
    """
    target = AppointmentStatus(new_status)
    current = appointment.status

    if target == current:
        return appointment

    if not current.can_transition_to(target):
        raise InvalidStatusTransition(
            f"Appointment {appointment.id} cannot move from {current.value} to {target.value}"
        )

    return replace(appointment, status=target)


def ensure_no_conflict(
    candidate: Appointment,
    existing: Iterable[Appointment],
    timezone: str = DEFAULT_TIMEZONE,
) -> None:
    """
    Guard a write: no two non-cancelled bookings may overlap.

    Meant to run at the storage boundary right before a booking is committed,
    since availability may have changed after the slot list was computed.

    Raises:
        MalformedBookingRecord: If the candidate itself cannot be parsed
        BookingConflict: If the candidate overlaps an existing booking
    """
    try:
        requested = candidate.time_range(timezone)
    except ValueError as exc:
        raise MalformedBookingRecord(candidate.id, str(exc)) from exc

    for other in existing:
        if candidate.id is not None and other.id == candidate.id:
            continue
        if not other.occupies_time:
            continue

        try:
            booked = other.time_range(timezone)
        except ValueError as exc:
            logger.warning("Cannot check overlap against booking %s: %s", other.id, exc)
            continue

        if requested.overlaps(booked):
            raise BookingConflict(
                f"{requested} overlaps existing appointment {other.id} ({booked})"
            )
