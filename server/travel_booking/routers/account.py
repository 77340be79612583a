"""Account router for registration, sign-in and password reset."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_current_identity, get_db, get_email_sender, get_token_service
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..core.security import TokenService
from ..models.user import UserRole, UserStatus
from ..schemas.auth import (
    AuthResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    Identity,
    LoginRequest,
    MessageResponse,
    PasswordResetRequested,
    RegisterRequest,
    ResetPasswordRequest,
    TokenValidationRequest,
    TokenValidationResponse,
    UserSummary,
    VerifyCodeRequest,
    VerifyCodeResponse,
)
from ..services.account_service import AccountService, AuthResult
from ..services.email_service import EmailSender

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/account", tags=["account"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
TOKEN_SERVICE_DEPENDENCY = Depends(get_token_service)
EMAIL_SENDER_DEPENDENCY = Depends(get_email_sender)
IDENTITY_DEPENDENCY = Depends(get_current_identity)

RESET_REQUESTED_MESSAGE = "If an account exists with this email, a verification code has been sent."


def get_account_service(
    db: AsyncSession = DB_DEPENDENCY,
    token_service: TokenService = TOKEN_SERVICE_DEPENDENCY,
    email_sender: EmailSender = EMAIL_SENDER_DEPENDENCY,
) -> AccountService:
    return AccountService(db, token_service, email_sender)


ACCOUNT_SERVICE_DEPENDENCY = Depends(get_account_service)


def _convert_user_to_schema(user_model) -> UserSummary:
    """Convert user model to schema."""
    return UserSummary(
        id=str(user_model.id),
        email=user_model.email,
        first_name=user_model.first_name,
        last_name=user_model.last_name,
        phone_number=user_model.phone_number,
        role=UserRole(user_model.role).value,
        status=UserStatus(user_model.status).value,
        email_verified=user_model.email_verified,
        created_at=user_model.created_at,
        last_login_at=user_model.last_login_at,
    )


def _auth_response(message: str, result: AuthResult) -> AuthResponse:
    return AuthResponse(
        message=message,
        token=result.token,
        token_type="Bearer",
        expires_in=result.expires_in,
        user=_convert_user_to_schema(result.user),
    )


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    request: RegisterRequest,
    account_service: AccountService = ACCOUNT_SERVICE_DEPENDENCY,
) -> AuthResponse:
    """Create an account and return a session token."""
    try:
        result = await account_service.register(request)
        return _auth_response("Registration successful", result)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in registration",
            extra={"error": str(e)},
            exc_info=True
        )
        raise InternalServerError(detail="Registration failed") from e


@router.post("/login", response_model=AuthResponse)
async def login(
    request: LoginRequest,
    account_service: AccountService = ACCOUNT_SERVICE_DEPENDENCY,
) -> AuthResponse:
    """Verify credentials and return a session token."""
    result = await account_service.login(request.email, request.password)
    return _auth_response("Login successful", result)


@router.post("/verify-token", response_model=TokenValidationResponse)
async def verify_token(
    request: TokenValidationRequest,
    token_service: TokenService = TOKEN_SERVICE_DEPENDENCY,
) -> TokenValidationResponse:
    """Report whether a token is currently valid."""
    return TokenValidationResponse(valid=token_service.validate_token(request.token))


@router.get("/me", response_model=UserSummary)
async def current_user(
    identity: Identity = IDENTITY_DEPENDENCY,
    account_service: AccountService = ACCOUNT_SERVICE_DEPENDENCY,
) -> UserSummary:
    """Return the signed-in user's summary."""
    user = await account_service.get_user(identity)
    return _convert_user_to_schema(user)


@router.post("/logout", response_model=MessageResponse)
async def logout(identity: Identity = IDENTITY_DEPENDENCY) -> MessageResponse:
    """
    Acknowledge a logout.

    Tokens are not revoked server-side; the client discards its copy.
    """
    logger.info("User logged out", extra={"user_id": str(identity.user_id)})
    return MessageResponse(message="Logged out successfully")


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    request: ChangePasswordRequest,
    identity: Identity = IDENTITY_DEPENDENCY,
    account_service: AccountService = ACCOUNT_SERVICE_DEPENDENCY,
) -> MessageResponse:
    await account_service.change_password(identity, request.current_password, request.new_password)
    return MessageResponse(message="Password changed successfully")


@router.post("/forgot-password", response_model=PasswordResetRequested)
async def forgot_password(
    request: ForgotPasswordRequest,
    account_service: AccountService = ACCOUNT_SERVICE_DEPENDENCY,
) -> PasswordResetRequested:
    """Email a verification code. The answer is the same for unknown addresses."""
    masked = await account_service.request_password_reset(request.email)
    return PasswordResetRequested(message=RESET_REQUESTED_MESSAGE, email=masked)


@router.post("/resend-code", response_model=PasswordResetRequested)
async def resend_code(
    request: ForgotPasswordRequest,
    account_service: AccountService = ACCOUNT_SERVICE_DEPENDENCY,
) -> PasswordResetRequested:
    masked = await account_service.resend_code(request.email)
    return PasswordResetRequested(message=RESET_REQUESTED_MESSAGE, email=masked)


@router.post("/verify-code", response_model=VerifyCodeResponse)
async def verify_code(
    request: VerifyCodeRequest,
    account_service: AccountService = ACCOUNT_SERVICE_DEPENDENCY,
) -> VerifyCodeResponse:
    """Exchange a verification code for a reset token."""
    reset_token = await account_service.verify_reset_code(request.email, request.code)
    return VerifyCodeResponse(message="Code verified successfully", reset_token=reset_token)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    request: ResetPasswordRequest,
    account_service: AccountService = ACCOUNT_SERVICE_DEPENDENCY,
) -> MessageResponse:
    await account_service.reset_password(
        request.email,
        request.reset_token,
        request.new_password,
        request.confirm_password,
    )
    return MessageResponse(message="Password has been reset successfully. You can now login.")
