"""Account and authentication Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class Identity(BaseModel):
    """Authenticated caller, passed explicitly into every core operation."""

    user_id: UUID = Field(..., description="User ID")
    email: str = Field(..., description="User email")
    name: str = Field("", description="Display name")
    role: str = Field("USER", description="User role")

    model_config = {"frozen": True}

    @property
    def is_admin(self) -> bool:
        """Return True if the caller holds the admin role."""
        return self.role == "ADMIN"


class RegisterRequest(BaseModel):
    """Request schema for registering an account."""

    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN, description="Email address")
    password: str = Field(..., min_length=6, max_length=128, description="Password")
    first_name: str = Field(..., min_length=1, max_length=100, description="First name")
    last_name: str = Field(..., min_length=1, max_length=100, description="Last name")
    phone_number: str | None = Field(None, max_length=32, description="Phone number")
    address: str | None = Field(None, max_length=255, description="Street address")
    city: str | None = Field(None, max_length=100, description="City")
    country: str | None = Field(None, max_length=100, description="Country")
    postal_code: str | None = Field(None, max_length=20, description="Postal code")


class LoginRequest(BaseModel):
    """Request schema for signing in."""

    email: str = Field(..., max_length=255, description="Email address")
    password: str = Field(..., min_length=1, max_length=128, description="Password")


class UserSummary(BaseModel):
    """User summary returned with tokens and by /me."""

    id: str = Field(..., description="User ID")
    email: str = Field(..., description="Email address")
    first_name: str = Field(..., description="First name")
    last_name: str = Field(..., description="Last name")
    phone_number: str | None = Field(None, description="Phone number")
    role: str = Field(..., description="User role")
    status: str = Field(..., description="Account status")
    email_verified: bool = Field(False, description="Whether the email has been verified")
    created_at: datetime | None = Field(None, description="Account creation time (ISO 8601)")
    last_login_at: datetime | None = Field(None, description="Last login time (ISO 8601)")


class AuthResponse(BaseModel):
    """Token plus user summary."""

    message: str = Field(..., description="Outcome message")
    token: str = Field(..., description="Signed session token")
    token_type: str = Field("Bearer", description="Token type")
    expires_in: int = Field(..., description="Token lifetime in seconds")
    user: UserSummary = Field(..., description="Signed-in user")


class TokenValidationRequest(BaseModel):
    """Request schema for validating a token."""

    token: str = Field(..., min_length=1, description="Token to validate")


class TokenValidationResponse(BaseModel):
    """Token validation result."""

    valid: bool = Field(..., description="Whether the token is currently valid")


class ChangePasswordRequest(BaseModel):
    """Request schema for changing the current user's password."""

    current_password: str = Field(..., min_length=1, description="Current password")
    new_password: str = Field(..., min_length=1, max_length=128, description="New password")


class ForgotPasswordRequest(BaseModel):
    """Request schema for starting (or restarting) a password reset."""

    email: str = Field(..., min_length=1, max_length=255, description="Account email")


class VerifyCodeRequest(BaseModel):
    """Request schema for verifying an emailed code."""

    email: str = Field(..., min_length=1, max_length=255, description="Account email")
    code: str = Field(..., min_length=1, max_length=16, description="Verification code")


class ResetPasswordRequest(BaseModel):
    """Request schema for setting a new password with a reset token."""

    email: str = Field(..., min_length=1, max_length=255, description="Account email")
    reset_token: str = Field(..., min_length=1, description="Reset token from code verification")
    new_password: str = Field(..., min_length=1, max_length=128, description="New password")
    confirm_password: str = Field(..., min_length=1, max_length=128, description="New password again")


class PasswordResetRequested(BaseModel):
    """Response for forgot-password and resend-code."""

    message: str = Field(..., description="Outcome message")
    email: str | None = Field(None, description="Masked destination address")


class VerifyCodeResponse(BaseModel):
    """Response for a successfully verified code."""

    message: str = Field(..., description="Outcome message")
    reset_token: str = Field(..., description="Token authorising the password change")


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str = Field(..., description="Outcome message")
