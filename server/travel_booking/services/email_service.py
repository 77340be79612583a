"""Outbound email collaborator.

Delivery mechanics are out of scope for this service; the default sender
only logs what it would send. Deployments plug in a real sender by
overriding the ``get_email_sender`` dependency.
"""

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    """Anything that can send the two account emails."""

    async def send_welcome(self, email: str, name: str) -> None:
        ...

    async def send_verification_code(self, email: str, name: str, code: str) -> None:
        ...


class LoggingEmailSender:
    """Email sender that records messages in the log instead of delivering them."""

    async def send_welcome(self, email: str, name: str) -> None:
        logger.info(
            "Welcome email queued",
            extra={"recipient": mask_email(email), "recipient_name": name}
        )

    async def send_verification_code(self, email: str, name: str, code: str) -> None:
        # The code itself is never logged
        logger.info(
            "Verification code email queued",
            extra={"recipient": mask_email(email), "recipient_name": name, "code_length": len(code)}
        )


def mask_email(email: str) -> str:
    """
    Mask the local part of an address for display, e.g. ``j***e@example.com``.

    Addresses without a usable local part are fully masked.
    """
    local, sep, domain = email.partition("@")
    if not sep or not local:
        return "***"
    if len(local) <= 2:
        return f"{local[0]}***@{domain}"
    return f"{local[0]}***{local[-1]}@{domain}"
