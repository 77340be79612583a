"""FastAPI dependencies for database sessions, identity and collaborators."""

from functools import lru_cache
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from ..schemas.auth import Identity
from ..services.email_service import EmailSender, LoggingEmailSender
from .database import get_async_session
from .exceptions import AuthenticationError
from .security import TokenService, ensure_admin


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database dependency that provides async database sessions.

    Yields:
        AsyncSession: Database session
    """
    async for session in get_async_session():
        yield session


@lru_cache(maxsize=1)
def get_token_service() -> TokenService:
    """Process-wide token service built from settings."""
    return TokenService()


def get_email_sender() -> EmailSender:
    """Email sender used by account operations."""
    return LoggingEmailSender()


def _extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthenticationError(detail="Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError(detail="Invalid authorization header format")

    if scheme.lower() != "bearer":
        raise AuthenticationError(detail="Invalid authentication scheme")

    return token


async def get_current_identity(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    token_service: TokenService = Depends(get_token_service),
) -> Identity:
    """
    Authentication dependency that validates Bearer tokens.

    Returns:
        Identity: The caller asserted by a valid token

    Raises:
        AuthenticationError: If the token is missing or invalid
    """
    token = _extract_bearer_token(authorization)
    return token_service.decode_identity(token)


async def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    """Authorization dependency for admin-only endpoints."""
    ensure_admin(identity)
    return identity


RequiredAuth = Depends(get_current_identity)
AdminAuth = Depends(require_admin)
DatabaseSession = Depends(get_db)
