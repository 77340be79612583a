"""Test configuration and fixtures."""

import os

# Settings are read at import time; point them at throwaway infrastructure first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("WORKERS_ENABLED", "false")
os.environ.setdefault("JWT_SECRET_KEY", "test-signing-key")

from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from travel_booking.core.config import Settings
from travel_booking.core.database import Base, utcnow
from travel_booking.core.dependencies import get_db, get_email_sender, get_token_service
from travel_booking.core.security import TokenService, hash_password
from travel_booking.models import *  # noqa: F403 - Import all models
from travel_booking.models import Booking, BookingStatus, TravelPackage, User, UserRole, UserStatus
from travel_booking.schemas.auth import Identity
from travel_booking.services.account_service import identity_for

TEST_PASSWORD = "correct-horse-battery"


class RecordingEmailSender:
    """Email sender that keeps messages in memory and can be told to fail."""

    def __init__(self):
        self.welcome: list[tuple[str, str]] = []
        self.codes: list[tuple[str, str]] = []
        self.fail = False

    async def send_welcome(self, email: str, name: str) -> None:
        if self.fail:
            raise ConnectionError("SMTP unavailable")
        self.welcome.append((email, name))

    async def send_verification_code(self, email: str, name: str, code: str) -> None:
        if self.fail:
            raise ConnectionError("SMTP unavailable")
        self.codes.append((email, code))

    @property
    def last_code(self) -> str:
        return self.codes[-1][1]


class FrozenClock:
    """Callable clock that tests move by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        jwt_secret_key="test-signing-key",
        workers_enabled=False,
    )


@pytest.fixture
def token_service(test_settings) -> TokenService:
    return TokenService(test_settings)


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(utcnow())


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a file-backed test database engine."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def test_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def test_app(session_factory, token_service, email_sender):
    """The real application wired to the test database and collaborators."""
    from travel_booking.main import create_app

    app = create_app()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_token_service] = lambda: token_service
    app.dependency_overrides[get_email_sender] = lambda: email_sender

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def create_user(
    session: AsyncSession,
    email: str,
    role: UserRole = UserRole.USER,
    password: str = TEST_PASSWORD,
    status: UserStatus = UserStatus.ACTIVE,
) -> User:
    user = User(
        email=email,
        first_name="Test",
        last_name=role.value.title(),
        role=role,
        status=status,
        password_hash=hash_password(password),
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def create_package(session: AsyncSession, available_rooms: int = 5, price_amount: int = 100000) -> TravelPackage:
    start = utcnow() + timedelta(days=30)
    package = TravelPackage(
        destination="Lisbon, Portugal",
        description="Four nights in the Alfama district",
        start_date=start,
        end_date=start + timedelta(days=4),
        price_amount=price_amount,
        price_currency="USD",
        available_rooms=available_rooms,
        max_guests=6,
    )
    session.add(package)
    await session.commit()
    await session.refresh(package)
    return package


@pytest_asyncio.fixture
async def user(test_session) -> User:
    return await create_user(test_session, "traveller@example.com")


@pytest_asyncio.fixture
async def other_user(test_session) -> User:
    return await create_user(test_session, "someone-else@example.com")


@pytest_asyncio.fixture
async def admin(test_session) -> User:
    return await create_user(test_session, "admin@example.com", role=UserRole.ADMIN)


@pytest.fixture
def identity(user) -> Identity:
    return identity_for(user)


@pytest.fixture
def other_identity(other_user) -> Identity:
    return identity_for(other_user)


@pytest.fixture
def admin_identity(admin) -> Identity:
    return identity_for(admin)


@pytest_asyncio.fixture
async def package(test_session) -> TravelPackage:
    return await create_package(test_session, available_rooms=5)


@pytest_asyncio.fixture
async def pending_booking(test_session, user, package) -> Booking:
    """A PENDING booking for three rooms on the five-room package."""
    booking = Booking(
        user_id=user.id,
        package_id=package.id,
        booking_reference="TRV-TEST0001",
        number_of_guests=2,
        number_of_rooms=3,
        status=BookingStatus.PENDING,
        total_price_amount=package.price_amount * 3,
        total_price_currency=package.price_currency,
    )
    test_session.add(booking)
    await test_session.commit()
    await test_session.refresh(booking)
    return booking


@pytest.fixture
def auth_headers(token_service, identity) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_service.issue_token(identity)}"}


@pytest.fixture
def admin_headers(token_service, admin_identity) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_service.issue_token(admin_identity)}"}


@pytest.fixture
def card_details() -> dict[str, object]:
    return {
        "card_number": "4111111111111111",
        "card_holder_name": "Test Traveller",
        "expiry_month": 12,
        "expiry_year": 2030,
        "cvv": "123",
    }
