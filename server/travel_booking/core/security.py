"""Password credentials, session tokens and one-time reset secrets."""

import base64
import binascii
import hashlib
import hmac
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from jwt import PyJWTError

from ..schemas.auth import Identity
from .config import Settings, settings
from .exceptions import AuthenticationError, AuthorizationError, ConfigurationError

logger = logging.getLogger(__name__)

SALT_SIZE = 16
DERIVED_KEY_SIZE = 20
PBKDF2_ITERATIONS = 10_000
PBKDF2_ALGORITHM = "sha256"
CREDENTIAL_BLOB_SIZE = SALT_SIZE + DERIVED_KEY_SIZE

TOKEN_ALGORITHM = "HS256"
VERIFICATION_CODE_DIGITS = 6


def _derive_key(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac(
        PBKDF2_ALGORITHM,
        password.encode("utf-8"),
        salt,
        PBKDF2_ITERATIONS,
        dklen=DERIVED_KEY_SIZE,
    )


def hash_password(password: str) -> str:
    """
    Derive a storable credential blob for a password.

    The blob is base64(salt || derived key) with a fresh 16-byte salt, so two
    calls with the same password produce different blobs.
    """
    salt = secrets.token_bytes(SALT_SIZE)
    derived_key = _derive_key(password, salt)
    return base64.b64encode(salt + derived_key).decode("ascii")


def verify_password(password: str, credential_blob: str) -> bool:
    """
    Check a password against a stored credential blob.

    Malformed input and a wrong password both return False; this never raises.
    """
    if not isinstance(password, str) or not isinstance(credential_blob, str):
        return False

    try:
        raw = base64.b64decode(credential_blob.encode("ascii"), validate=True)
    except (binascii.Error, ValueError, UnicodeEncodeError):
        return False

    if len(raw) != CREDENTIAL_BLOB_SIZE:
        return False

    salt, stored_key = raw[:SALT_SIZE], raw[SALT_SIZE:]
    candidate_key = _derive_key(password, salt)
    return hmac.compare_digest(candidate_key, stored_key)


def secrets_match(provided: Optional[str], stored: Optional[str]) -> bool:
    """Constant-time comparison for verification codes and reset tokens."""
    if not provided or not stored:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), stored.encode("utf-8"))


def ensure_admin(identity: Identity) -> None:
    """Raise AuthorizationError unless the identity holds the admin role."""
    if not identity.is_admin:
        raise AuthorizationError(
            detail="Administrator role required",
            required_role="ADMIN",
        )


def ensure_owner_or_admin(identity: Identity, owner_id: uuid.UUID, resource_type: str) -> None:
    """Raise AuthorizationError unless the identity owns the resource or is an admin."""
    if identity.user_id != owner_id and not identity.is_admin:
        raise AuthorizationError(detail=f"You do not have access to this {resource_type}")


def generate_verification_code() -> str:
    """Six random decimal digits, leading zeros allowed."""
    return "".join(secrets.choice("0123456789") for _ in range(VERIFICATION_CODE_DIGITS))


def generate_reset_token() -> str:
    """Single-use token authorising the actual password change."""
    return uuid.uuid4().hex


class TokenService:
    """Issues and validates signed, time-boxed session tokens."""

    def __init__(self, config: Settings = settings):
        if not config.jwt_secret_key or not config.jwt_secret_key.strip():
            raise ConfigurationError("JWT signing key is not configured")

        self._secret_key = config.jwt_secret_key
        self.issuer = config.jwt_issuer
        self.audience = config.jwt_audience
        self.expiration = timedelta(minutes=config.jwt_expiration_minutes)

    def issue_token(self, identity: Identity, issued_at: Optional[datetime] = None) -> str:
        """
        Sign a token for an identity.

        Args:
            identity: Authenticated user
            issued_at: Issue time, defaults to now (UTC)

        Returns:
            Encoded JWT
        """
        issued_at = issued_at or datetime.now(timezone.utc)
        if issued_at.tzinfo is None:
            issued_at = issued_at.replace(tzinfo=timezone.utc)

        claims = {
            "sub": str(identity.user_id),
            "email": identity.email,
            "name": identity.name,
            "role": identity.role,
            "iat": issued_at,
            "exp": issued_at + self.expiration,
            "iss": self.issuer,
            "aud": self.audience,
        }
        return jwt.encode(claims, self._secret_key, algorithm=TOKEN_ALGORITHM)

    def _decode(self, token: str) -> dict:
        return jwt.decode(
            token,
            self._secret_key,
            algorithms=[TOKEN_ALGORITHM],
            audience=self.audience,
            issuer=self.issuer,
            leeway=0,
            options={"require": ["exp", "iat", "sub", "iss", "aud"]},
        )

    def validate_token(self, token: str) -> bool:
        """Return True only if signature, issuer, audience and expiry all check out."""
        try:
            self._decode(token)
        except (PyJWTError, ValueError, TypeError) as e:
            logger.info(
                "Token validation failed",
                extra={"reason": type(e).__name__}
            )
            return False
        return True

    def decode_identity(self, token: str) -> Identity:
        """
        Decode a token into the identity it asserts.

        Raises:
            AuthenticationError: If the token is not valid
        """
        try:
            payload = self._decode(token)
            return Identity(
                user_id=uuid.UUID(payload["sub"]),
                email=payload.get("email", ""),
                name=payload.get("name", ""),
                role=payload.get("role", "USER"),
            )
        except (PyJWTError, ValueError, TypeError, KeyError) as e:
            logger.info(
                "Rejected bearer token",
                extra={"reason": type(e).__name__}
            )
            raise AuthenticationError(detail="Invalid or expired token") from e
