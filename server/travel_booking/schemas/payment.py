"""Payment-related Pydantic schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .common import Money


class PaymentMethod(str, Enum):
    """Payment method enumeration."""
    CREDIT_CARD = "CREDIT_CARD"
    PAYPAL = "PAYPAL"


class PaymentStatus(str, Enum):
    """Payment status enumeration."""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class CardPaymentRequest(BaseModel):
    """
    Request schema for a card payment.

    Card fields are checked for presence only and are never stored.
    """

    booking_id: str = Field(..., description="Booking to pay for")
    card_number: str = Field("", max_length=32, description="Card number")
    card_holder_name: str = Field("", max_length=128, description="Name on the card")
    expiry_month: int | None = Field(None, ge=1, le=12, description="Expiry month")
    expiry_year: int | None = Field(None, ge=2000, le=2100, description="Expiry year")
    cvv: str = Field("", max_length=4, description="Card verification value")


class PayPalInitiateRequest(BaseModel):
    """Request schema for starting a PayPal payment."""

    booking_id: str = Field(..., description="Booking to pay for")
    return_url: str | None = Field(None, max_length=2048, description="Where PayPal sends the user back")
    cancel_url: str | None = Field(None, max_length=2048, description="Where PayPal sends the user on cancel")


class PayPalOrder(BaseModel):
    """PayPal order created by initiate."""

    order_id: str = Field(..., description="PayPal order ID")
    approval_url: str = Field(..., description="Redirect target for the user")
    cancel_url: str = Field(..., description="Where the user lands if they abandon the payment")
    status: str = Field("CREATED", description="Order status")


class PayPalCaptureRequest(BaseModel):
    """Request schema for capturing a PayPal order."""

    booking_id: str = Field(..., description="Booking the order pays for")
    order_id: str = Field("", max_length=64, description="PayPal order ID from initiate")


class RefundRequest(BaseModel):
    """Request schema for refunding a payment."""

    reason: str | None = Field(None, max_length=500, description="Refund reason")


class Payment(BaseModel):
    """Payment response schema."""

    id: str = Field(..., description="Unique payment ID")
    booking_id: str = Field(..., description="Paid booking ID")
    amount: Money = Field(..., description="Captured amount")
    method: PaymentMethod = Field(..., description="Payment method")
    status: PaymentStatus = Field(..., description="Payment status")
    transaction_id: str = Field(..., description="Gateway transaction ID")
    payment_date: datetime = Field(..., description="Payment time (ISO 8601)")
    completed_date: datetime | None = Field(None, description="Completion time (ISO 8601)")
    refund_reason: str | None = Field(None, description="Refund reason")
    refunded_at: datetime | None = Field(None, description="Refund time (ISO 8601)")
