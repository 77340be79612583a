"""Booking service for business logic operations."""

import logging
import secrets
import string
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import utcnow
from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..core.observability import metrics_collector
from ..core.security import ensure_owner_or_admin
from ..models.booking import Booking, BookingStatus, can_transition
from ..models.package import TravelPackage
from ..schemas.auth import Identity
from ..schemas.booking import CreateBookingRequest
from .package_service import PackageService, parse_uuid

logger = logging.getLogger(__name__)

BOOKING_REFERENCE_PREFIX = "TRV-"
BOOKING_REFERENCE_ATTEMPTS = 5


class InsufficientRoomsError(ConflictError):
    """Exception when a package cannot supply the requested rooms."""

    def __init__(self, package_id: str, requested_rooms: int, available_rooms: int):
        super().__init__(
            detail=f"Package {package_id} has insufficient rooms. Requested: {requested_rooms}, Available: {available_rooms}",
            conflicting_resource={
                "package_id": package_id,
                "requested_rooms": requested_rooms,
                "available_rooms": available_rooms
            }
        )
        self.problem_details.update({
            "reason": "INSUFFICIENT_ROOMS",
            "retryable": False
        })


class InvalidTransitionError(ConflictError):
    """Exception when a booking cannot move to the requested status."""

    def __init__(self, booking_id: str, current: str, target: str):
        super().__init__(
            detail=f"Booking {booking_id} cannot move from {current} to {target}",
            conflicting_resource={"booking_id": booking_id, "status": current}
        )
        self.problem_details.update({
            "reason": "INVALID_TRANSITION",
            "retryable": False
        })


async def transition_booking(
    db: AsyncSession,
    booking_id: UUID,
    current: BookingStatus,
    target: BookingStatus,
) -> bool:
    """
    Compare-and-set a booking's status inside the caller's transaction.

    Returns False when the row was no longer in ``current``, meaning another
    transaction moved it first.
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(str(booking_id), BookingStatus(current).value, BookingStatus(target).value)

    stmt = (
        update(Booking)
        .where(Booking.id == booking_id, Booking.status == BookingStatus(current).value)
        .values(status=BookingStatus(target).value, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


async def release_rooms(db: AsyncSession, booking_id: UUID) -> int:
    """
    Return the rooms a booking holds to its package and zero its hold.

    Only the rooms recorded at capture go back, so a booking that CLAMP
    under-served never inflates the inventory. Returns the rooms released.
    """
    result = await db.execute(
        select(Booking.package_id, Booking.rooms_reserved)
        .where(Booking.id == booking_id)
        .with_for_update()
    )
    row = result.one()
    if row.rooms_reserved <= 0:
        return 0

    await db.execute(
        update(TravelPackage)
        .where(TravelPackage.id == row.package_id)
        .values(available_rooms=TravelPackage.available_rooms + row.rooms_reserved)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        update(Booking)
        .where(Booking.id == booking_id)
        .values(rooms_reserved=0)
        .execution_options(synchronize_session=False)
    )
    return row.rooms_reserved


class BookingService:
    """Service for booking-related operations."""

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock
        self.package_service = PackageService(db, clock=clock)

    def _generate_booking_reference(self, length: int = 8) -> str:
        """Generate a random human-shareable booking reference."""
        alphabet = string.ascii_uppercase + string.digits
        return BOOKING_REFERENCE_PREFIX + ''.join(secrets.choice(alphabet) for _ in range(length))

    async def _unique_booking_reference(self) -> str:
        for _ in range(BOOKING_REFERENCE_ATTEMPTS):
            reference = self._generate_booking_reference()
            stmt = select(Booking.id).where(Booking.booking_reference == reference)
            if (await self.db.execute(stmt)).scalar_one_or_none() is None:
                return reference
        raise ConflictError(detail="Could not allocate a unique booking reference, please retry")

    async def create_booking(self, identity: Identity, request: CreateBookingRequest) -> Booking:
        """
        Create a PENDING booking with its total fixed at today's effective price.

        Args:
            identity: Caller making the booking
            request: Booking creation request

        Returns:
            Created booking entity

        Raises:
            NotFoundError: If package not found
            ValidationError: If the guest count exceeds the package limit
            ConflictError: If the package is inactive
            InsufficientRoomsError: If fewer rooms are available than requested
        """
        package_id = parse_uuid(request.package_id, "package")
        package = await self.package_service.get_package_by_id_or_raise(package_id)

        if not package.is_active:
            raise ConflictError(detail=f"Package {package_id} is not accepting bookings")

        if request.number_of_guests > package.max_guests:
            raise ValidationError(
                detail=f"Package allows at most {package.max_guests} guests per booking"
            )

        if request.number_of_rooms > package.available_rooms:
            logger.warning(
                "Booking creation failed - insufficient rooms",
                extra={
                    "package_id": str(package_id),
                    "requested_rooms": request.number_of_rooms,
                    "available_rooms": package.available_rooms,
                    "user_id": str(identity.user_id)
                }
            )
            raise InsufficientRoomsError(
                package_id=str(package_id),
                requested_rooms=request.number_of_rooms,
                available_rooms=package.available_rooms
            )

        now = self.clock()
        unit_price = package.effective_price(now)

        booking = Booking(
            user_id=identity.user_id,
            package_id=package_id,
            booking_reference=await self._unique_booking_reference(),
            number_of_guests=request.number_of_guests,
            number_of_rooms=request.number_of_rooms,
            special_requests=request.special_requests,
            status=BookingStatus.PENDING,
            total_price_amount=unit_price * request.number_of_rooms,
            total_price_currency=package.price_currency,
            created_at=now,
            updated_at=now,
        )

        self.db.add(booking)
        await self.db.commit()
        await self.db.refresh(booking)

        metrics_collector.record_booking_created()
        logger.info(
            "Booking created successfully",
            extra={
                "booking_id": str(booking.id),
                "booking_reference": booking.booking_reference,
                "package_id": str(package_id),
                "rooms": booking.number_of_rooms,
                "total_price_amount": booking.total_price_amount,
                "discount_applied": package.discount_active(now),
                "user_id": str(identity.user_id)
            }
        )

        return booking

    async def get_booking_by_id(self, booking_id: UUID) -> Optional[Booking]:
        stmt = select(Booking).where(Booking.id == booking_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_booking_by_id_or_raise(self, booking_id: UUID) -> Booking:
        """
        Get booking by ID or raise NotFoundError.

        Raises:
            NotFoundError: If booking not found
        """
        booking = await self.get_booking_by_id(booking_id)
        if not booking:
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        return booking

    async def get_booking(self, identity: Identity, booking_id: UUID) -> Booking:
        """
        Get a booking visible to the caller.

        Raises:
            NotFoundError: If booking not found
            AuthorizationError: If the caller neither owns it nor is an admin
        """
        booking = await self.get_booking_by_id_or_raise(booking_id)
        ensure_owner_or_admin(identity, booking.user_id, "booking")
        return booking

    async def list_bookings(self, identity: Identity) -> list[Booking]:
        """The caller's bookings, newest first."""
        stmt = (
            select(Booking)
            .where(Booking.user_id == identity.user_id)
            .order_by(Booking.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def cancel_booking(self, identity: Identity, booking_id: UUID) -> Booking:
        """
        Cancel a PENDING or CONFIRMED booking.

        Rooms held by a confirmed booking go back to the package. Cancelling
        an already cancelled booking returns it unchanged.

        Raises:
            NotFoundError: If booking not found
            AuthorizationError: If the caller neither owns it nor is an admin
            ConflictError: If the booking is completed or refunded
        """
        booking = await self.get_booking(identity, booking_id)

        if booking.status == BookingStatus.CANCELLED:
            logger.info(
                "Booking already cancelled",
                extra={"booking_id": str(booking_id)}
            )
            return booking

        previous_status = BookingStatus(booking.status)
        if not await transition_booking(self.db, booking.id, previous_status, BookingStatus.CANCELLED):
            await self.db.rollback()
            raise ConflictError(detail=f"Booking {booking_id} was modified concurrently, please retry")

        rooms_released = 0
        if previous_status == BookingStatus.CONFIRMED:
            rooms_released = await release_rooms(self.db, booking.id)

        await self.db.commit()
        await self.db.refresh(booking)

        metrics_collector.record_booking_cancelled()
        logger.info(
            "Booking cancelled successfully",
            extra={
                "booking_id": str(booking_id),
                "previous_status": previous_status.value,
                "rooms_released": rooms_released,
                "cancelled_by": str(identity.user_id)
            }
        )

        return booking

    async def complete_finished_bookings(self, now: Optional[datetime] = None) -> int:
        """
        Move CONFIRMED bookings whose package has ended to COMPLETED.

        Returns:
            Number of bookings completed
        """
        now = now or self.clock()

        finished = (
            select(Booking.id)
            .join(TravelPackage, TravelPackage.id == Booking.package_id)
            .where(
                Booking.status == BookingStatus.CONFIRMED.value,
                TravelPackage.end_date < now,
            )
        )
        stmt = (
            update(Booking)
            .where(
                Booking.id.in_(finished.scalar_subquery()),
                Booking.status == BookingStatus.CONFIRMED.value,
            )
            .values(status=BookingStatus.COMPLETED.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()

        completed = result.rowcount or 0
        if completed:
            metrics_collector.record_bookings_completed(completed)
            logger.info(
                "Completed finished bookings",
                extra={"completed_count": completed, "cutoff": now.isoformat()}
            )

        return completed
