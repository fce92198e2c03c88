"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .booking_service import BookingRequest, BookingService, ClinicClientProtocol

__all__ = ["BookingRequest", "BookingService", "ClinicClientProtocol"]
