"""Booking-related Pydantic schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .common import Money


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class CreateBookingRequest(BaseModel):
    """Request schema for creating a booking."""

    package_id: str = Field(..., description="Package to book")
    number_of_guests: int = Field(1, ge=1, le=100, description="Number of guests")
    number_of_rooms: int = Field(1, ge=1, le=10, description="Number of rooms")
    special_requests: str | None = Field(None, max_length=500, description="Notes for the operator")


class Booking(BaseModel):
    """Booking response schema."""

    id: str = Field(..., description="Unique booking ID")
    booking_reference: str = Field(..., description="Human-shareable booking reference")
    package_id: str = Field(..., description="Booked package ID")
    user_id: str = Field(..., description="Owner user ID")
    status: BookingStatus = Field(..., description="Booking status")
    number_of_guests: int = Field(..., ge=1, description="Number of guests")
    number_of_rooms: int = Field(..., ge=1, description="Number of rooms")
    total_price: Money = Field(..., description="Total fixed at booking time")
    special_requests: str | None = Field(None, description="Notes for the operator")
    created_at: datetime = Field(..., description="Booking creation time (ISO 8601)")


class BookingList(BaseModel):
    """The caller's bookings."""

    items: list[Booking] = Field(default_factory=list, description="Bookings, newest first")
