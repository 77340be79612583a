"""Unit tests for payment capture, PayPal orders and refunds."""

import pytest
from sqlalchemy import func, select

from travel_booking.core.config import OverbookingPolicy, RefundPolicy, Settings
from travel_booking.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from travel_booking.models import Booking, BookingStatus, Payment, PaymentMethod, PaymentStatus
from travel_booking.schemas.payment import CardPaymentRequest
from travel_booking.services.booking_service import BookingService, InsufficientRoomsError
from travel_booking.services.payment_service import (
    DEFAULT_REFUND_REASON,
    PAYPAL_ORDER_PREFIX,
    PaymentConflictError,
    PaymentService,
    generate_transaction_id,
)


def _payment_service(session, clock, **overrides) -> PaymentService:
    config = Settings(jwt_secret_key="test-signing-key", **overrides)
    return PaymentService(session, config=config, clock=clock)


@pytest.fixture
def payment_service(test_session, clock):
    return _payment_service(test_session, clock)


async def _count_payments(session, booking_id) -> int:
    result = await session.execute(select(func.count()).select_from(Payment).where(Payment.booking_id == booking_id))
    return result.scalar_one()


async def _second_booking(session, booking: Booking, rooms: int = 3) -> Booking:
    other = Booking(
        user_id=booking.user_id,
        package_id=booking.package_id,
        booking_reference="TRV-TEST0002",
        number_of_guests=1,
        number_of_rooms=rooms,
        status=BookingStatus.PENDING.value,
        total_price_amount=booking.total_price_amount,
        total_price_currency=booking.total_price_currency,
    )
    session.add(other)
    await session.commit()
    await session.refresh(other)
    return other


class TestCardCapture:
    """Test capturing card payments."""

    @pytest.mark.asyncio
    async def test_capture_confirms_booking_and_takes_rooms(
        self, payment_service, test_session, identity, pending_booking, package, card_details
    ):
        payment = await payment_service.capture_card_payment(
            identity, CardPaymentRequest(booking_id=str(pending_booking.id), **card_details)
        )

        assert payment.status == PaymentStatus.COMPLETED
        assert payment.method == PaymentMethod.CREDIT_CARD
        assert payment.amount == 300000
        assert payment.currency == "USD"
        assert payment.completed_date is not None
        assert len(payment.transaction_id) == 18

        await test_session.refresh(pending_booking)
        await test_session.refresh(package)
        assert pending_booking.status == BookingStatus.CONFIRMED
        assert package.available_rooms == 2

    @pytest.mark.asyncio
    async def test_second_capture_conflicts(
        self, payment_service, test_session, identity, pending_booking, package, card_details
    ):
        request = CardPaymentRequest(booking_id=str(pending_booking.id), **card_details)
        await payment_service.capture_card_payment(identity, request)

        with pytest.raises(PaymentConflictError) as exc_info:
            await payment_service.capture_card_payment(identity, request)

        assert exc_info.value.problem_details["reason"] == "ALREADY_PAID"
        assert await _count_payments(test_session, pending_booking.id) == 1
        await test_session.refresh(package)
        assert package.available_rooms == 2

    @pytest.mark.asyncio
    async def test_missing_card_fields(self, payment_service, identity, pending_booking):
        request = CardPaymentRequest(booking_id=str(pending_booking.id), card_number="4111111111111111")

        with pytest.raises(ValidationError) as exc_info:
            await payment_service.capture_card_payment(identity, request)

        assert exc_info.value.message == "Invalid card details"
        assert set(exc_info.value.problem_details["errors"]) == {"card_holder_name", "cvv"}

    @pytest.mark.asyncio
    async def test_other_user_cannot_pay(self, payment_service, other_identity, pending_booking, card_details):
        with pytest.raises(AuthorizationError):
            await payment_service.capture_card_payment(
                other_identity, CardPaymentRequest(booking_id=str(pending_booking.id), **card_details)
            )

    @pytest.mark.asyncio
    async def test_admin_can_pay_for_any_booking(self, payment_service, admin_identity, pending_booking, card_details):
        payment = await payment_service.capture_card_payment(
            admin_identity, CardPaymentRequest(booking_id=str(pending_booking.id), **card_details)
        )
        assert payment.status == PaymentStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_unknown_booking(self, payment_service, identity, card_details):
        with pytest.raises(NotFoundError):
            await payment_service.capture_card_payment(
                identity, CardPaymentRequest(booking_id="not-a-booking", **card_details)
            )

    @pytest.mark.asyncio
    async def test_cancelled_booking_cannot_be_paid(
        self, payment_service, test_session, identity, pending_booking, card_details, clock
    ):
        await BookingService(test_session, clock=clock).cancel_booking(identity, pending_booking.id)

        with pytest.raises(PaymentConflictError) as exc_info:
            await payment_service.capture_card_payment(
                identity, CardPaymentRequest(booking_id=str(pending_booking.id), **card_details)
            )

        assert "CANCELLED" in exc_info.value.message
        assert await _count_payments(test_session, pending_booking.id) == 0


class TestOverbooking:
    """Test inventory when rooms run short at capture time."""

    @pytest.mark.asyncio
    async def test_clamp_floors_inventory_at_zero(
        self, payment_service, test_session, identity, pending_booking, package, card_details
    ):
        second = await _second_booking(test_session, pending_booking)

        await payment_service.capture_card_payment(
            identity, CardPaymentRequest(booking_id=str(pending_booking.id), **card_details)
        )
        payment = await payment_service.capture_card_payment(
            identity, CardPaymentRequest(booking_id=str(second.id), **card_details)
        )

        assert payment.status == PaymentStatus.COMPLETED
        await test_session.refresh(package)
        assert package.available_rooms == 0

    @pytest.mark.asyncio
    async def test_reject_policy_refuses_capture(
        self, test_session, identity, pending_booking, package, card_details, clock
    ):
        payment_service = _payment_service(
            test_session, clock, inventory_overbooking_policy=OverbookingPolicy.REJECT
        )
        second = await _second_booking(test_session, pending_booking)

        await payment_service.capture_card_payment(
            identity, CardPaymentRequest(booking_id=str(pending_booking.id), **card_details)
        )
        await test_session.refresh(package)

        with pytest.raises(InsufficientRoomsError):
            await payment_service.capture_card_payment(
                identity, CardPaymentRequest(booking_id=str(second.id), **card_details)
            )

        await test_session.refresh(second)
        await test_session.refresh(package)
        assert second.status == BookingStatus.PENDING
        assert package.available_rooms == 2
        assert await _count_payments(test_session, second.id) == 0


    @pytest.mark.asyncio
    async def test_clamp_records_rooms_actually_taken(
        self, payment_service, test_session, identity, pending_booking, package, card_details
    ):
        second = await _second_booking(test_session, pending_booking)

        await payment_service.capture_card_payment(
            identity, CardPaymentRequest(booking_id=str(pending_booking.id), **card_details)
        )
        await payment_service.capture_card_payment(
            identity, CardPaymentRequest(booking_id=str(second.id), **card_details)
        )

        await test_session.refresh(pending_booking)
        await test_session.refresh(second)
        assert pending_booking.rooms_reserved == 3
        assert second.rooms_reserved == 2

    @pytest.mark.asyncio
    async def test_cancel_after_clamp_returns_only_rooms_taken(
        self, payment_service, test_session, identity, pending_booking, package, card_details, clock
    ):
        second = await _second_booking(test_session, pending_booking)
        for booking in (pending_booking, second):
            await payment_service.capture_card_payment(
                identity, CardPaymentRequest(booking_id=str(booking.id), **card_details)
            )

        booking_service = BookingService(test_session, clock=clock)
        await booking_service.cancel_booking(identity, second.id)
        await test_session.refresh(package)
        assert package.available_rooms == 2

        await booking_service.cancel_booking(identity, pending_booking.id)
        await test_session.refresh(package)
        assert package.available_rooms == 5

    @pytest.mark.asyncio
    async def test_refund_after_clamp_returns_only_rooms_taken(
        self, test_session, identity, admin_identity, pending_booking, package, card_details, clock
    ):
        payment_service = _payment_service(test_session, clock, refund_policy=RefundPolicy.RELEASE_BOOKING)
        second = await _second_booking(test_session, pending_booking)
        payments = [
            await payment_service.capture_card_payment(
                identity, CardPaymentRequest(booking_id=str(booking.id), **card_details)
            )
            for booking in (pending_booking, second)
        ]

        for payment in payments:
            await payment_service.refund_payment(admin_identity, str(payment.id), None)

        await test_session.refresh(package)
        assert package.available_rooms == 5


class TestPayPal:
    """Test the PayPal order flow."""

    @pytest.mark.asyncio
    async def test_initiate_builds_return_url(self, payment_service, identity, pending_booking):
        order = await payment_service.initiate_paypal(identity, str(pending_booking.id), "http://test/")

        assert order.order_id.startswith(PAYPAL_ORDER_PREFIX)
        assert order.status == "CREATED"
        assert order.approval_url.startswith("http://test/booking/payment/success?")
        assert f"bookingId={pending_booking.id}" in order.approval_url
        assert order.cancel_url.startswith("http://test/booking/payment/cancel?")

    @pytest.mark.asyncio
    async def test_initiate_honours_caller_return_url(self, payment_service, identity, pending_booking):
        order = await payment_service.initiate_paypal(
            identity,
            str(pending_booking.id),
            "http://test/",
            return_url="https://shop.example.com/done",
            cancel_url="https://shop.example.com/cart",
        )
        assert order.approval_url == "https://shop.example.com/done"
        assert order.cancel_url == "https://shop.example.com/cart"

    @pytest.mark.asyncio
    async def test_capture_paypal(self, payment_service, test_session, identity, pending_booking, package):
        order = await payment_service.initiate_paypal(identity, str(pending_booking.id), "http://test/")

        payment = await payment_service.capture_paypal(identity, str(pending_booking.id), order.order_id)

        assert payment.method == PaymentMethod.PAYPAL
        assert payment.transaction_id == order.order_id
        await test_session.refresh(package)
        assert package.available_rooms == 2

    @pytest.mark.asyncio
    async def test_capture_after_card_payment_conflicts(
        self, payment_service, test_session, identity, pending_booking, package, card_details
    ):
        await payment_service.capture_card_payment(
            identity, CardPaymentRequest(booking_id=str(pending_booking.id), **card_details)
        )

        with pytest.raises(PaymentConflictError) as exc_info:
            await payment_service.capture_paypal(identity, str(pending_booking.id), "PAYPAL-LATE-1")

        assert exc_info.value.problem_details["reason"] == "ALREADY_PAID"
        assert await _count_payments(test_session, pending_booking.id) == 1
        await test_session.refresh(pending_booking)
        await test_session.refresh(package)
        assert pending_booking.status == BookingStatus.CONFIRMED
        assert package.available_rooms == 2

    @pytest.mark.asyncio
    async def test_initiate_after_payment_conflicts(self, payment_service, identity, pending_booking):
        await payment_service.capture_paypal(identity, str(pending_booking.id), "PAYPAL-ORDER-1")

        with pytest.raises(PaymentConflictError):
            await payment_service.initiate_paypal(identity, str(pending_booking.id), "http://test/")

    @pytest.mark.asyncio
    async def test_capture_requires_order_id(self, payment_service, identity, pending_booking):
        with pytest.raises(ValidationError) as exc_info:
            await payment_service.capture_paypal(identity, str(pending_booking.id), "   ")
        assert exc_info.value.message == "Order ID is required"


class TestRefunds:
    """Test refunding payments."""

    async def _paid(self, payment_service, identity, booking, card_details) -> Payment:
        return await payment_service.capture_card_payment(
            identity, CardPaymentRequest(booking_id=str(booking.id), **card_details)
        )

    @pytest.mark.asyncio
    async def test_refund_payment_only(
        self, payment_service, test_session, identity, admin_identity, pending_booking, package, card_details
    ):
        payment = await self._paid(payment_service, identity, pending_booking, card_details)

        refunded = await payment_service.refund_payment(admin_identity, str(payment.id), None)

        assert refunded.status == PaymentStatus.REFUNDED
        assert refunded.refund_reason == DEFAULT_REFUND_REASON
        assert refunded.refunded_at is not None
        await test_session.refresh(pending_booking)
        await test_session.refresh(package)
        assert pending_booking.status == BookingStatus.CONFIRMED
        assert package.available_rooms == 2

    @pytest.mark.asyncio
    async def test_refund_release_booking(
        self, test_session, identity, admin_identity, pending_booking, package, card_details, clock
    ):
        payment_service = _payment_service(test_session, clock, refund_policy=RefundPolicy.RELEASE_BOOKING)
        payment = await self._paid(payment_service, identity, pending_booking, card_details)

        refunded = await payment_service.refund_payment(admin_identity, str(payment.id), "Trip cancelled by operator")

        assert refunded.refund_reason == "Trip cancelled by operator"
        await test_session.refresh(pending_booking)
        await test_session.refresh(package)
        assert pending_booking.status == BookingStatus.REFUNDED
        assert package.available_rooms == 5

    @pytest.mark.asyncio
    async def test_refund_requires_admin(self, payment_service, identity, pending_booking, card_details):
        payment = await self._paid(payment_service, identity, pending_booking, card_details)

        with pytest.raises(AuthorizationError):
            await payment_service.refund_payment(identity, str(payment.id), None)

    @pytest.mark.asyncio
    async def test_refund_twice_conflicts(self, payment_service, identity, admin_identity, pending_booking, card_details):
        payment = await self._paid(payment_service, identity, pending_booking, card_details)
        await payment_service.refund_payment(admin_identity, str(payment.id), None)

        with pytest.raises(ConflictError):
            await payment_service.refund_payment(admin_identity, str(payment.id), None)

    @pytest.mark.asyncio
    async def test_refund_unknown_payment(self, payment_service, admin_identity):
        with pytest.raises(NotFoundError):
            await payment_service.refund_payment(admin_identity, "00000000-0000-4000-8000-000000000000", None)


class TestPaymentLookup:
    """Test reading a booking's payment."""

    @pytest.mark.asyncio
    async def test_get_payment_for_booking(self, payment_service, identity, pending_booking, card_details):
        payment = await payment_service.capture_card_payment(
            identity, CardPaymentRequest(booking_id=str(pending_booking.id), **card_details)
        )

        found = await payment_service.get_payment_for_booking(identity, str(pending_booking.id))
        assert found.id == payment.id

    @pytest.mark.asyncio
    async def test_no_payment_yet(self, payment_service, identity, pending_booking):
        with pytest.raises(NotFoundError):
            await payment_service.get_payment_for_booking(identity, str(pending_booking.id))

    @pytest.mark.asyncio
    async def test_other_user_cannot_look(self, payment_service, other_identity, pending_booking):
        with pytest.raises(AuthorizationError):
            await payment_service.get_payment_for_booking(other_identity, str(pending_booking.id))


def test_generate_transaction_id(clock):
    transaction_id = generate_transaction_id(clock.now)

    assert transaction_id.startswith(clock.now.strftime("%Y%m%d%H%M%S"))
    assert 1000 <= int(transaction_id[-4:]) <= 9999
