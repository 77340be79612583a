"""Booking model definition and its status transitions."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, utcnow

if TYPE_CHECKING:
    from .package import TravelPackage
    from .payment import Payment
    from .user import User


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
        BookingStatus.REFUNDED,
    }),
    BookingStatus.COMPLETED: frozenset({BookingStatus.REFUNDED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.REFUNDED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    """Return True if a booking in ``current`` may move to ``target``."""
    return BookingStatus(target) in BOOKING_TRANSITIONS[BookingStatus(current)]


class Booking(Base):
    """One user's reservation of rooms on one package."""

    __tablename__ = "bookings"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Foreign keys
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    package_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("travel_packages.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Booking details
    booking_reference: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    number_of_guests: Mapped[int] = mapped_column(Integer, nullable=False)
    number_of_rooms: Mapped[int] = mapped_column(Integer, nullable=False)
    # Rooms actually taken from inventory at capture, which CLAMP may cut short
    rooms_reserved: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    special_requests: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True
    )

    # Price fixed when the booking is created
    total_price_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Constraints
    __table_args__ = (
        CheckConstraint("number_of_guests > 0", name="ck_booking_guests_positive"),
        CheckConstraint("number_of_rooms > 0", name="ck_booking_rooms_positive"),
        CheckConstraint("number_of_rooms <= 10", name="ck_booking_rooms_max"),
        CheckConstraint("rooms_reserved >= 0 AND rooms_reserved <= number_of_rooms", name="ck_booking_rooms_reserved_range"),
        CheckConstraint("total_price_amount >= 0", name="ck_booking_total_non_negative"),
        CheckConstraint("length(booking_reference) > 0", name="ck_booking_reference_not_empty"),
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="bookings")
    package: Mapped["TravelPackage"] = relationship("TravelPackage", back_populates="bookings")
    payments: Mapped[list["Payment"]] = relationship(
        "Payment",
        back_populates="booking",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, reference='{self.booking_reference}', "
            f"rooms={self.number_of_rooms}, status={self.status})>"
        )
