"""Travel package model definition."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.config import OverbookingPolicy
from ..core.database import Base, utcnow

if TYPE_CHECKING:
    from .booking import Booking

MAX_DISCOUNT_WINDOW_DAYS = 7


def rooms_after_decrement(
    available_rooms: int,
    rooms: int,
    policy: OverbookingPolicy = OverbookingPolicy.CLAMP,
) -> int | None:
    """
    Remaining inventory after committing ``rooms``.

    Under CLAMP the result floors at zero. Under REJECT a shortfall returns
    None and the caller must refuse the operation.
    """
    remaining = available_rooms - rooms
    if remaining >= 0:
        return remaining
    if policy == OverbookingPolicy.REJECT:
        return None
    return 0


class TravelPackage(Base):
    """Bookable travel package with a room inventory."""

    __tablename__ = "travel_packages"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Package information
    destination: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    max_guests: Mapped[int] = mapped_column(Integer, nullable=False, default=20)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Price information (stored as minor units, e.g., cents)
    price_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    price_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # Discount window
    discounted_price_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    discount_starts_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    discount_ends_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Inventory
    available_rooms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Constraints
    __table_args__ = (
        CheckConstraint("available_rooms >= 0", name="ck_package_available_rooms_non_negative"),
        CheckConstraint("price_amount >= 0", name="ck_package_price_amount_non_negative"),
        CheckConstraint("length(price_currency) = 3", name="ck_package_price_currency_length"),
        CheckConstraint("end_date >= start_date", name="ck_package_dates_ordered"),
        CheckConstraint("max_guests > 0", name="ck_package_max_guests_positive"),
        CheckConstraint(
            "discounted_price_amount IS NULL OR discounted_price_amount < price_amount",
            name="ck_package_discount_below_price"
        ),
    )

    # Relationships
    bookings: Mapped[list["Booking"]] = relationship("Booking", back_populates="package")

    def discount_active(self, at: datetime) -> bool:
        """Return True if the discount window covers ``at``."""
        if self.discounted_price_amount is None:
            return False
        if self.discount_starts_at is None or self.discount_ends_at is None:
            return False
        return self.discount_starts_at <= at <= self.discount_ends_at

    def effective_price(self, at: datetime) -> int:
        """Unit price in minor units at ``at``, honouring the discount window."""
        if self.discount_active(at):
            return self.discounted_price_amount
        return self.price_amount

    def __repr__(self) -> str:
        return (
            f"<TravelPackage(id={self.id}, destination='{self.destination}', "
            f"rooms={self.available_rooms}, price={self.price_amount} {self.price_currency})>"
        )
