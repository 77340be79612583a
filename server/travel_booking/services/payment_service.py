"""Payment service: capture, PayPal order flow and refunds."""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
from urllib.parse import urlencode
from uuid import UUID

from sqlalchemy import select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import OverbookingPolicy, RefundPolicy, Settings, settings
from ..core.database import utcnow
from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..core.observability import metrics_collector
from ..core.security import ensure_admin, ensure_owner_or_admin
from ..models.booking import Booking, BookingStatus
from ..models.package import TravelPackage, rooms_after_decrement
from ..models.payment import Payment, PaymentMethod, PaymentStatus
from ..schemas.auth import Identity
from ..schemas.payment import CardPaymentRequest
from .booking_service import BookingService, InsufficientRoomsError, release_rooms, transition_booking
from .package_service import parse_uuid

logger = logging.getLogger(__name__)

PAYPAL_ORDER_PREFIX = "PAYPAL-"
DEFAULT_REFUND_REASON = "Admin initiated refund"


class PaymentConflictError(ConflictError):
    """Exception when a booking cannot take another payment."""

    def __init__(self, booking_id: str, detail: str = "Booking already paid"):
        super().__init__(
            detail=detail,
            conflicting_resource={"booking_id": booking_id}
        )
        self.problem_details.update({
            "reason": "ALREADY_PAID",
            "retryable": False
        })


@dataclass(frozen=True)
class PayPalOrder:
    """A PayPal order ready for user approval. Nothing is persisted."""

    order_id: str
    approval_url: str
    cancel_url: str
    status: str = "CREATED"


def generate_transaction_id(now: datetime) -> str:
    """UTC timestamp to the second followed by four random digits."""
    return now.strftime("%Y%m%d%H%M%S") + str(1000 + secrets.randbelow(9000))


class PaymentService:
    """Service for payment operations."""

    def __init__(
        self,
        db: AsyncSession,
        config: Settings = settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.clock = clock
        self.overbooking_policy = config.inventory_overbooking_policy
        self.refund_policy = config.refund_policy
        self.booking_service = BookingService(db, clock=clock)

    async def _get_owned_booking(self, identity: Identity, booking_id: str) -> Booking:
        booking_uuid = parse_uuid(booking_id, "booking")
        booking = await self.booking_service.get_booking_by_id_or_raise(booking_uuid)
        ensure_owner_or_admin(identity, booking.user_id, "booking")
        return booking

    async def _completed_payment_for(self, booking_id: UUID) -> Optional[Payment]:
        stmt = select(Payment).where(
            Payment.booking_id == booking_id,
            Payment.status == PaymentStatus.COMPLETED.value,
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def _lock_booking(self, booking_id: UUID) -> None:
        # Serialise captures per booking; released at transaction end.
        # SQLite (tests) relies on its database-level write lock instead.
        if self.db.bind and "postgresql" in str(self.db.bind.dialect.name):
            await self.db.execute(
                text("SELECT pg_advisory_xact_lock(hashtext(:booking_id))"),
                {"booking_id": str(booking_id)}
            )

    async def _ensure_payable(self, booking: Booking) -> None:
        if await self._completed_payment_for(booking.id):
            logger.warning(
                "Capture rejected - booking already paid",
                extra={"booking_id": str(booking.id)}
            )
            metrics_collector.record_payment_conflict()
            raise PaymentConflictError(str(booking.id))

        if booking.status != BookingStatus.PENDING:
            logger.warning(
                "Capture rejected - booking not pending",
                extra={"booking_id": str(booking.id), "booking_status": booking.status}
            )
            metrics_collector.record_payment_conflict()
            raise PaymentConflictError(
                str(booking.id),
                detail=f"Booking is {BookingStatus(booking.status).value} and cannot be paid",
            )

    async def _decrement_inventory(self, booking: Booking) -> int:
        """
        Take the booking's rooms from its package and record how many were taken.

        The package row is locked first so the recorded count matches the
        decrement. Under CLAMP a shortfall takes only what is left.
        """
        rooms = booking.number_of_rooms
        result = await self.db.execute(
            select(TravelPackage.available_rooms)
            .where(TravelPackage.id == booking.package_id)
            .with_for_update()
        )
        available = result.scalar_one_or_none() or 0

        remaining = rooms_after_decrement(available, rooms, self.overbooking_policy)
        if remaining is None:
            raise InsufficientRoomsError(
                package_id=str(booking.package_id),
                requested_rooms=rooms,
                available_rooms=available,
            )
        taken = available - remaining

        stmt = (
            update(TravelPackage)
            .where(TravelPackage.id == booking.package_id, TravelPackage.available_rooms >= taken)
            .values(available_rooms=TravelPackage.available_rooms - taken)
            .execution_options(synchronize_session=False)
        )
        if (await self.db.execute(stmt)).rowcount != 1:
            raise InsufficientRoomsError(
                package_id=str(booking.package_id),
                requested_rooms=rooms,
                available_rooms=available,
            )

        await self.db.execute(
            update(Booking)
            .where(Booking.id == booking.id)
            .values(rooms_reserved=taken)
            .execution_options(synchronize_session=False)
        )

        if taken < rooms:
            logger.warning(
                "Inventory clamped at capture",
                extra={"booking_id": str(booking.id), "requested_rooms": rooms, "rooms_reserved": taken}
            )
        return taken

    async def _check_rooms_for_policy(self, booking: Booking) -> None:
        if self.overbooking_policy != OverbookingPolicy.REJECT:
            return
        result = await self.db.execute(
            select(TravelPackage.available_rooms).where(TravelPackage.id == booking.package_id)
        )
        available = result.scalar_one_or_none() or 0
        if rooms_after_decrement(available, booking.number_of_rooms, self.overbooking_policy) is None:
            raise InsufficientRoomsError(
                package_id=str(booking.package_id),
                requested_rooms=booking.number_of_rooms,
                available_rooms=available,
            )

    async def _capture(self, booking: Booking, method: PaymentMethod, transaction_id: str) -> Payment:
        """
        Record a completed payment, confirm the booking and take its rooms.

        All three writes share one transaction. The booking moves with a
        compare-and-set on PENDING and the payment insert is guarded by the
        one-completed-payment-per-booking index, so a concurrent capture
        loses with PaymentConflictError and nothing is written.
        """
        booking_id = booking.id

        await self._lock_booking(booking_id)
        await self._ensure_payable(booking)
        await self._check_rooms_for_policy(booking)

        now = self.clock()
        try:
            if not await transition_booking(self.db, booking_id, BookingStatus.PENDING, BookingStatus.CONFIRMED):
                raise PaymentConflictError(str(booking_id))

            payment = Payment(
                booking_id=booking_id,
                amount=booking.total_price_amount,
                currency=booking.total_price_currency,
                method=method.value,
                status=PaymentStatus.COMPLETED.value,
                transaction_id=transaction_id,
                payment_date=now,
                completed_date=now,
            )
            self.db.add(payment)
            await self.db.flush()

            await self._decrement_inventory(booking)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            metrics_collector.record_payment_conflict()
            logger.warning(
                "Capture lost a race on the completed-payment index",
                extra={"booking_id": str(booking_id)}
            )
            raise PaymentConflictError(str(booking_id)) from e
        except ConflictError:
            await self.db.rollback()
            metrics_collector.record_payment_conflict()
            raise

        await self.db.refresh(payment)
        await self.db.refresh(booking)

        metrics_collector.record_payment_captured(method.value)
        metrics_collector.record_booking_confirmed()
        logger.info(
            "Payment captured successfully",
            extra={
                "payment_id": str(payment.id),
                "booking_id": str(booking_id),
                "method": method.value,
                "amount": payment.amount,
                "currency": payment.currency,
                "transaction_id": transaction_id,
                "rooms": booking.number_of_rooms,
                "rooms_reserved": booking.rooms_reserved,
                "overbooking_policy": self.overbooking_policy.value
            }
        )

        return payment

    async def capture_card_payment(self, identity: Identity, request: CardPaymentRequest) -> Payment:
        """
        Capture a card payment through the simulated gateway.

        Card fields are checked for presence only and never stored.

        Raises:
            NotFoundError: If booking not found
            AuthorizationError: If the caller neither owns the booking nor is an admin
            ValidationError: If a required card field is missing
            PaymentConflictError: If the booking is already paid or not pending
            InsufficientRoomsError: Under the reject policy, when rooms ran out
        """
        booking = await self._get_owned_booking(identity, request.booking_id)

        missing = [
            name for name, value in (
                ("card_number", request.card_number),
                ("card_holder_name", request.card_holder_name),
                ("cvv", request.cvv),
            )
            if not value or not value.strip()
        ]
        if missing:
            raise ValidationError(
                detail="Invalid card details",
                errors={name: "This field is required" for name in missing},
            )

        return await self._capture(
            booking,
            PaymentMethod.CREDIT_CARD,
            generate_transaction_id(self.clock()),
        )

    async def initiate_paypal(
        self,
        identity: Identity,
        booking_id: str,
        base_url: str,
        return_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> PayPalOrder:
        """
        Create a PayPal order for user approval.

        No external call is made and nothing is stored; the order ID is
        echoed back on capture.

        Raises:
            NotFoundError: If booking not found
            AuthorizationError: If the caller neither owns the booking nor is an admin
            PaymentConflictError: If the booking is already paid
        """
        booking = await self._get_owned_booking(identity, booking_id)

        if await self._completed_payment_for(booking.id):
            raise PaymentConflictError(str(booking.id))

        order_id = PAYPAL_ORDER_PREFIX + generate_transaction_id(self.clock())
        if not return_url:
            query = urlencode({"bookingId": str(booking.id), "orderId": order_id})
            return_url = f"{base_url.rstrip('/')}/booking/payment/success?{query}"
        if not cancel_url:
            query = urlencode({"bookingId": str(booking.id)})
            cancel_url = f"{base_url.rstrip('/')}/booking/payment/cancel?{query}"

        logger.info(
            "PayPal payment initiated",
            extra={"booking_id": str(booking.id), "order_id": order_id}
        )

        return PayPalOrder(order_id=order_id, approval_url=return_url, cancel_url=cancel_url)

    async def capture_paypal(self, identity: Identity, booking_id: str, order_id: str) -> Payment:
        """
        Capture an approved PayPal order.

        Raises:
            ValidationError: If the order ID is missing
            NotFoundError: If booking not found
            AuthorizationError: If the caller neither owns the booking nor is an admin
            PaymentConflictError: If the booking is already paid or not pending
        """
        if not order_id or not order_id.strip():
            raise ValidationError(detail="Order ID is required")

        booking = await self._get_owned_booking(identity, booking_id)
        return await self._capture(booking, PaymentMethod.PAYPAL, order_id.strip())

    async def get_payment_by_id_or_raise(self, payment_id: UUID) -> Payment:
        payment = await self.db.get(Payment, payment_id)
        if not payment:
            raise NotFoundError(resource_type="payment", resource_id=str(payment_id))
        return payment

    async def refund_payment(self, identity: Identity, payment_id: str, reason: Optional[str] = None) -> Payment:
        """
        Refund a completed payment (admin only).

        Under the release-booking policy the booking also moves to REFUNDED
        and a still-confirmed booking gives its rooms back.

        Raises:
            AuthorizationError: If the caller is not an admin
            NotFoundError: If payment not found
            ConflictError: If the payment is not COMPLETED
        """
        ensure_admin(identity)

        payment_uuid = parse_uuid(payment_id, "payment")
        payment = await self.get_payment_by_id_or_raise(payment_uuid)

        if payment.status != PaymentStatus.COMPLETED:
            raise ConflictError(
                detail=f"Only completed payments can be refunded (payment is {PaymentStatus(payment.status).value})",
                conflicting_resource={"payment_id": str(payment_uuid)}
            )

        now = self.clock()
        stmt = (
            update(Payment)
            .where(Payment.id == payment_uuid, Payment.status == PaymentStatus.COMPLETED.value)
            .values(
                status=PaymentStatus.REFUNDED.value,
                refund_reason=(reason or "").strip() or DEFAULT_REFUND_REASON,
                refunded_at=now,
            )
            .execution_options(synchronize_session=False)
        )

        try:
            result = await self.db.execute(stmt)
            if result.rowcount != 1:
                raise ConflictError(
                    detail="Payment was refunded concurrently",
                    conflicting_resource={"payment_id": str(payment_uuid)}
                )

            if self.refund_policy == RefundPolicy.RELEASE_BOOKING:
                await self._release_booking(payment.booking_id)

            await self.db.commit()
        except ConflictError:
            await self.db.rollback()
            raise

        await self.db.refresh(payment)

        metrics_collector.record_refund()
        logger.info(
            "Payment refunded",
            extra={
                "payment_id": str(payment_uuid),
                "booking_id": str(payment.booking_id),
                "refund_policy": self.refund_policy.value,
                "refunded_by": str(identity.user_id)
            }
        )

        return payment

    async def _release_booking(self, booking_id: UUID) -> None:
        booking = await self.booking_service.get_booking_by_id_or_raise(booking_id)
        current = BookingStatus(booking.status)

        if current not in (BookingStatus.CONFIRMED, BookingStatus.COMPLETED):
            logger.info(
                "Refund leaves booking untouched",
                extra={"booking_id": str(booking_id), "booking_status": current.value}
            )
            return

        if not await transition_booking(self.db, booking_id, current, BookingStatus.REFUNDED):
            raise ConflictError(detail=f"Booking {booking_id} was modified concurrently, please retry")

        if current == BookingStatus.CONFIRMED:
            await release_rooms(self.db, booking_id)

    async def get_payment_for_booking(self, identity: Identity, booking_id: str) -> Payment:
        """
        Latest payment recorded for a booking.

        Raises:
            NotFoundError: If the booking or any payment for it is missing
            AuthorizationError: If the caller neither owns the booking nor is an admin
        """
        booking = await self._get_owned_booking(identity, booking_id)

        stmt = (
            select(Payment)
            .where(Payment.booking_id == booking.id)
            .order_by(Payment.payment_date.desc())
        )
        result = await self.db.execute(stmt)
        payment = result.scalars().first()

        if not payment:
            raise NotFoundError(
                resource_type="payment",
                detail=f"No payment found for booking '{booking.id}'"
            )
        return payment
