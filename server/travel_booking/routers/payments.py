"""Payment router for capture, PayPal and refund operations."""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_current_identity, get_db, require_admin
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.auth import Identity
from ..schemas.common import Money
from ..schemas.payment import (
    CardPaymentRequest,
    Payment,
    PayPalCaptureRequest,
    PayPalInitiateRequest,
    PayPalOrder,
    RefundRequest,
)
from ..services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/payments", tags=["payments"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
IDENTITY_DEPENDENCY = Depends(get_current_identity)
ADMIN_DEPENDENCY = Depends(require_admin)


def _convert_payment_to_schema(payment_model) -> Payment:
    """Convert payment model to schema."""
    return Payment(
        id=str(payment_model.id),
        booking_id=str(payment_model.booking_id),
        amount=Money(amount=payment_model.amount, currency=payment_model.currency),
        method=payment_model.method,
        status=payment_model.status,
        transaction_id=payment_model.transaction_id,
        payment_date=payment_model.payment_date,
        completed_date=payment_model.completed_date,
        refund_reason=payment_model.refund_reason,
        refunded_at=payment_model.refunded_at,
    )


@router.post("", response_model=Payment, status_code=201)
async def capture_card_payment(
    request: CardPaymentRequest,
    identity: Identity = IDENTITY_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
) -> Payment:
    """
    Capture a card payment for a pending booking.

    On success the booking is confirmed and its rooms leave inventory.
    """
    payment_service = PaymentService(db)

    try:
        payment = await payment_service.capture_card_payment(identity, request)
        return _convert_payment_to_schema(payment)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in card capture",
            extra={
                "booking_id": request.booking_id,
                "user_id": str(identity.user_id),
                "error": str(e)
            },
            exc_info=True
        )
        raise InternalServerError(detail="Payment processing failed") from e


@router.post("/paypal/initiate", response_model=PayPalOrder)
async def initiate_paypal(
    request: PayPalInitiateRequest,
    http_request: Request,
    identity: Identity = IDENTITY_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
) -> PayPalOrder:
    """Create a PayPal order and return its approval URL."""
    payment_service = PaymentService(db)
    order = await payment_service.initiate_paypal(
        identity,
        request.booking_id,
        base_url=str(http_request.base_url),
        return_url=request.return_url,
        cancel_url=request.cancel_url,
    )
    return PayPalOrder(
        order_id=order.order_id,
        approval_url=order.approval_url,
        cancel_url=order.cancel_url,
        status=order.status,
    )


@router.post("/paypal/capture", response_model=Payment, status_code=201)
async def capture_paypal(
    request: PayPalCaptureRequest,
    identity: Identity = IDENTITY_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
) -> Payment:
    """Capture an approved PayPal order."""
    payment_service = PaymentService(db)

    try:
        payment = await payment_service.capture_paypal(identity, request.booking_id, request.order_id)
        return _convert_payment_to_schema(payment)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in PayPal capture",
            extra={
                "booking_id": request.booking_id,
                "order_id": request.order_id,
                "error": str(e)
            },
            exc_info=True
        )
        raise InternalServerError(detail="Failed to capture PayPal payment") from e


@router.post("/{payment_id}/refund", response_model=Payment)
async def refund_payment(
    payment_id: str,
    request: RefundRequest,
    identity: Identity = ADMIN_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
) -> Payment:
    """Refund a completed payment (admin only)."""
    payment_service = PaymentService(db)
    payment = await payment_service.refund_payment(identity, payment_id, request.reason)
    return _convert_payment_to_schema(payment)


@router.get("/booking/{booking_id}", response_model=Payment)
async def get_payment_for_booking(
    booking_id: str,
    identity: Identity = IDENTITY_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
) -> Payment:
    """Latest payment for a booking the caller can see."""
    payment_service = PaymentService(db)
    payment = await payment_service.get_payment_for_booking(identity, booking_id)
    return _convert_payment_to_schema(payment)
