"""Service layer package."""

from .account_service import AccountService
from .booking_service import BookingService
from .email_service import EmailSender, LoggingEmailSender
from .package_service import PackageService
from .payment_service import PaymentService

__all__ = [
    "AccountService",
    "BookingService",
    "EmailSender",
    "LoggingEmailSender",
    "PackageService",
    "PaymentService",
]
