"""Account service: registration, sign-in and the password-reset flow."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import utcnow
from ..core.exceptions import AuthenticationError, ConflictError, EmailDeliveryError, NotFoundError, ValidationError
from ..core.observability import metrics_collector
from ..core.security import (
    VERIFICATION_CODE_DIGITS,
    TokenService,
    generate_reset_token,
    generate_verification_code,
    hash_password,
    secrets_match,
    verify_password,
)
from ..models.user import User, UserRole, UserStatus
from ..schemas.auth import Identity, RegisterRequest
from .email_service import EmailSender, LoggingEmailSender, mask_email

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
INVALID_CREDENTIALS = "Invalid email or password"
INVALID_CODE = "Invalid or expired verification code"
INVALID_RESET_TOKEN = "Invalid or expired reset token. Please start over."

# Unknown emails are checked against this so both failure paths cost one key derivation
_UNKNOWN_USER_CREDENTIAL = hash_password(generate_reset_token())


@dataclass(frozen=True)
class AuthResult:
    """A signed-in user and the token issued for them."""

    user: User
    token: str
    expires_in: int


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _is_verification_code(value: Optional[str]) -> bool:
    return bool(value) and len(value) == VERIFICATION_CODE_DIGITS and value.isdigit()


def identity_for(user: User) -> Identity:
    """Build the explicit caller identity for a user record."""
    return Identity(
        user_id=user.id,
        email=user.email,
        name=user.full_name,
        role=UserRole(user.role).value,
    )


class AccountService:
    """Service for account and credential operations."""

    def __init__(
        self,
        db: AsyncSession,
        token_service: TokenService,
        email_sender: Optional[EmailSender] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.token_service = token_service
        self.email_sender = email_sender or LoggingEmailSender()
        self.clock = clock

    def _issue(self, user: User) -> AuthResult:
        token = self.token_service.issue_token(identity_for(user))
        return AuthResult(
            user=user,
            token=token,
            expires_in=int(self.token_service.expiration.total_seconds()),
        )

    async def get_user_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(User.email == normalize_email(email))
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_user(self, identity: Identity) -> User:
        """
        Load the user record behind an identity.

        Raises:
            NotFoundError: If the user no longer exists
        """
        user = await self.db.get(User, identity.user_id)
        if not user:
            raise NotFoundError(resource_type="user", resource_id=str(identity.user_id))
        return user

    async def register(self, request: RegisterRequest) -> AuthResult:
        """
        Create an account and sign it in.

        Raises:
            ConflictError: If the email is already registered
        """
        email = normalize_email(request.email)

        if await self.get_user_by_email(email):
            logger.info("Registration rejected - email already registered", extra={"email": mask_email(email)})
            raise ConflictError(detail="Email already registered")

        now = self.clock()
        user = User(
            email=email,
            first_name=request.first_name.strip(),
            last_name=request.last_name.strip(),
            phone_number=request.phone_number,
            address=request.address,
            city=request.city,
            country=request.country,
            postal_code=request.postal_code,
            role=UserRole.USER,
            status=UserStatus.ACTIVE,
            email_verified=False,
            password_hash=hash_password(request.password),
            created_at=now,
            updated_at=now,
            last_login_at=now,
        )
        self.db.add(user)

        try:
            await self.db.commit()
        except IntegrityError as e:
            # Lost a race with a concurrent registration for the same email
            await self.db.rollback()
            logger.warning("Registration failed on unique email", extra={"email": mask_email(email)})
            raise ConflictError(detail="Email already registered") from e

        await self.db.refresh(user)
        metrics_collector.record_registration()

        logger.info("User registered", extra={"user_id": str(user.id), "email": mask_email(email)})

        try:
            await self.email_sender.send_welcome(user.email, user.first_name)
        except Exception as e:
            logger.warning(
                "Welcome email failed",
                extra={"user_id": str(user.id), "error": str(e)}
            )

        return self._issue(user)

    async def login(self, email: str, password: str) -> AuthResult:
        """
        Verify credentials and issue a token.

        Raises:
            AuthenticationError: On unknown email, wrong password, or a suspended account
        """
        user = await self.get_user_by_email(email)
        credential = user.password_hash if user else _UNKNOWN_USER_CREDENTIAL
        password_ok = verify_password(password, credential)

        if not user or not password_ok:
            metrics_collector.record_login("invalid_credentials")
            logger.info("Login failed - invalid credentials", extra={"email": mask_email(normalize_email(email))})
            raise AuthenticationError(detail=INVALID_CREDENTIALS)

        if not user.can_sign_in:
            metrics_collector.record_login("inactive")
            logger.info("Login refused - account not active", extra={"user_id": str(user.id), "status": user.status})
            raise AuthenticationError(detail="Your account is suspended or deleted")

        user.last_login_at = self.clock()
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            # Last-login bookkeeping never blocks sign-in
            await self.db.rollback()
            await self.db.refresh(user)
            logger.warning(
                "Failed to record last login",
                extra={"user_id": str(user.id), "error": str(e)}
            )

        metrics_collector.record_login("success")
        logger.info("User logged in", extra={"user_id": str(user.id)})
        return self._issue(user)

    def validate_token(self, token: str) -> bool:
        return self.token_service.validate_token(token)

    async def change_password(self, identity: Identity, current_password: str, new_password: str) -> None:
        """
        Replace the caller's credential after re-checking the current password.

        Raises:
            NotFoundError: If the user no longer exists
            ValidationError: On a wrong current password or a too-short new one
        """
        user = await self.get_user(identity)

        if not verify_password(current_password, user.password_hash):
            logger.info("Password change rejected - wrong current password", extra={"user_id": str(user.id)})
            raise ValidationError(detail="Current password is incorrect")

        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(detail=f"New password must be at least {MIN_PASSWORD_LENGTH} characters")

        user.password_hash = hash_password(new_password)
        await self.db.commit()

        logger.info("Password changed", extra={"user_id": str(user.id)})

    async def request_password_reset(self, email: str) -> str:
        """
        Issue a 6-digit verification code and email it.

        Unknown addresses get the same answer as known ones. Returns the
        masked address for display.

        Raises:
            ValidationError: If the email is blank
            EmailDeliveryError: If the code could not be sent
        """
        email = normalize_email(email)
        if not email:
            raise ValidationError(detail="Email is required")

        user = await self.get_user_by_email(email)
        if not user:
            logger.info("Password reset requested for unknown email", extra={"email": mask_email(email)})
            return mask_email(email)

        code = generate_verification_code()
        user.password_reset_token = code
        user.password_reset_attempts = 0
        user.password_reset_expiry = self.clock() + timedelta(minutes=settings.password_reset_code_ttl_minutes)
        await self.db.commit()

        try:
            await self.email_sender.send_verification_code(user.email, user.first_name, code)
        except Exception as e:
            logger.error(
                "Verification code email failed",
                extra={"user_id": str(user.id), "error": str(e)}
            )
            raise EmailDeliveryError(detail="Failed to send verification code. Please try again.") from e

        metrics_collector.record_password_reset("requested")
        logger.info("Password reset code issued", extra={"user_id": str(user.id)})
        return mask_email(user.email)

    async def resend_code(self, email: str) -> str:
        """Issue a fresh code, invalidating the previous one."""
        return await self.request_password_reset(email)

    async def _record_failed_code_attempt(self, user: User) -> None:
        """Count a wrong code and discard the code once the limit is reached."""
        user.password_reset_attempts = (user.password_reset_attempts or 0) + 1

        if user.password_reset_attempts >= settings.password_reset_max_attempts:
            user.password_reset_token = None
            user.password_reset_expiry = None
            user.password_reset_attempts = 0
            metrics_collector.record_password_reset("locked")
            logger.warning("Verification code discarded after repeated failures", extra={"user_id": str(user.id)})
        else:
            logger.info(
                "Code verification failed - code mismatch",
                extra={"user_id": str(user.id), "attempts": user.password_reset_attempts}
            )

        await self.db.commit()

    async def verify_reset_code(self, email: str, code: str) -> str:
        """
        Exchange a valid verification code for a single-use reset token.

        Wrong and expired codes fail identically.

        Raises:
            ValidationError: If the code is wrong or expired
        """
        user = await self.get_user_by_email(email)
        if not user:
            logger.info("Code verification for unknown email", extra={"email": mask_email(normalize_email(email))})
            raise ValidationError(detail=INVALID_CODE)

        if not _is_verification_code(user.password_reset_token):
            logger.info("Code verification failed - no code outstanding", extra={"user_id": str(user.id)})
            raise ValidationError(detail=INVALID_CODE)

        if not secrets_match(code.strip(), user.password_reset_token):
            await self._record_failed_code_attempt(user)
            raise ValidationError(detail=INVALID_CODE)

        if user.password_reset_expiry is None or user.password_reset_expiry < self.clock():
            logger.info("Code verification failed - code expired", extra={"user_id": str(user.id)})
            raise ValidationError(detail=INVALID_CODE)

        reset_token = generate_reset_token()
        user.password_reset_token = reset_token
        user.password_reset_attempts = 0
        user.password_reset_expiry = self.clock() + timedelta(minutes=settings.password_reset_token_ttl_minutes)
        await self.db.commit()

        metrics_collector.record_password_reset("verified")
        logger.info("Verification code accepted", extra={"user_id": str(user.id)})
        return reset_token

    async def reset_password(
        self,
        email: str,
        reset_token: str,
        new_password: str,
        confirm_password: str,
    ) -> None:
        """
        Set a new password using the token from code verification.

        Raises:
            ValidationError: On a short or mismatched password, or a bad/expired token
        """
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        if new_password != confirm_password:
            raise ValidationError(detail="Passwords do not match")

        user = await self.get_user_by_email(email)
        if not user:
            raise ValidationError(detail=INVALID_RESET_TOKEN)

        if _is_verification_code(user.password_reset_token):
            logger.info("Password reset failed - code not yet verified", extra={"user_id": str(user.id)})
            raise ValidationError(detail=INVALID_RESET_TOKEN)

        if not secrets_match(reset_token, user.password_reset_token):
            logger.info("Password reset failed - token mismatch", extra={"user_id": str(user.id)})
            raise ValidationError(detail=INVALID_RESET_TOKEN)

        if user.password_reset_expiry is None or user.password_reset_expiry < self.clock():
            logger.info("Password reset failed - token expired", extra={"user_id": str(user.id)})
            raise ValidationError(detail=INVALID_RESET_TOKEN)

        user.password_hash = hash_password(new_password)
        user.password_reset_token = None
        user.password_reset_expiry = None
        user.password_reset_attempts = 0
        await self.db.commit()

        metrics_collector.record_password_reset("completed")
        logger.info("Password reset completed", extra={"user_id": str(user.id)})
