"""Booking router for booking operations."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_current_identity, get_db
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.auth import Identity
from ..schemas.booking import Booking, BookingList, CreateBookingRequest
from ..schemas.common import Money
from ..services.booking_service import BookingService
from ..services.package_service import parse_uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/bookings", tags=["bookings"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
IDENTITY_DEPENDENCY = Depends(get_current_identity)


def _convert_booking_to_schema(booking_model) -> Booking:
    """Convert booking model to schema."""
    return Booking(
        id=str(booking_model.id),
        booking_reference=booking_model.booking_reference,
        package_id=str(booking_model.package_id),
        user_id=str(booking_model.user_id),
        status=booking_model.status,
        number_of_guests=booking_model.number_of_guests,
        number_of_rooms=booking_model.number_of_rooms,
        total_price=Money(
            amount=booking_model.total_price_amount,
            currency=booking_model.total_price_currency,
        ),
        special_requests=booking_model.special_requests,
        created_at=booking_model.created_at,
    )


@router.post("", response_model=Booking, status_code=201)
async def create_booking(
    request: CreateBookingRequest,
    identity: Identity = IDENTITY_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
) -> Booking:
    """Create a pending booking for the caller."""
    booking_service = BookingService(db)

    try:
        booking = await booking_service.create_booking(identity, request)
        return _convert_booking_to_schema(booking)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking creation",
            extra={
                "package_id": request.package_id,
                "rooms": request.number_of_rooms,
                "user_id": str(identity.user_id),
                "error": str(e)
            },
            exc_info=True
        )
        raise InternalServerError(detail="Failed to create booking") from e


@router.get("", response_model=BookingList)
async def list_bookings(
    identity: Identity = IDENTITY_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
) -> BookingList:
    """List the caller's bookings, newest first."""
    booking_service = BookingService(db)
    bookings = await booking_service.list_bookings(identity)
    return BookingList(items=[_convert_booking_to_schema(b) for b in bookings])


@router.get("/{booking_id}", response_model=Booking)
async def get_booking(
    booking_id: str,
    identity: Identity = IDENTITY_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
) -> Booking:
    booking_service = BookingService(db)
    booking = await booking_service.get_booking(identity, parse_uuid(booking_id, "booking"))
    return _convert_booking_to_schema(booking)


@router.post("/{booking_id}/cancel", response_model=Booking)
async def cancel_booking(
    booking_id: str,
    identity: Identity = IDENTITY_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
) -> Booking:
    """
    Cancel a booking.

    Cancelling an already cancelled booking returns it unchanged.
    """
    booking_service = BookingService(db)
    booking = await booking_service.cancel_booking(identity, parse_uuid(booking_id, "booking"))
    return _convert_booking_to_schema(booking)
