"""Models module exporting all database models."""

from .booking import BOOKING_TRANSITIONS, Booking, BookingStatus, can_transition
from .package import TravelPackage, rooms_after_decrement
from .payment import Payment, PaymentMethod, PaymentStatus
from .user import User, UserRole, UserStatus

__all__ = [
    # Accounts
    "User",
    "UserRole",
    "UserStatus",

    # Catalog
    "TravelPackage",
    "rooms_after_decrement",

    # Booking lifecycle
    "Booking",
    "BookingStatus",
    "BOOKING_TRANSITIONS",
    "can_transition",

    # Payments
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
]
