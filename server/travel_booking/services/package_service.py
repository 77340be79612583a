"""Package service for catalog operations."""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import as_naive_utc, utcnow
from ..core.exceptions import NotFoundError, ValidationError
from ..core.security import ensure_admin
from ..models.package import MAX_DISCOUNT_WINDOW_DAYS, TravelPackage
from ..schemas.auth import Identity
from ..schemas.package import ApplyDiscountRequest, CreatePackageRequest

logger = logging.getLogger(__name__)


def parse_uuid(value: str, resource_type: str) -> UUID:
    """Parse a path/body identifier, treating garbage as a missing resource."""
    try:
        return UUID(str(value))
    except ValueError:
        raise NotFoundError(resource_type=resource_type, resource_id=str(value))


class PackageService:
    """Service for travel package operations."""

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    async def create_package(self, identity: Identity, request: CreatePackageRequest) -> TravelPackage:
        """
        Create a new travel package.

        Raises:
            AuthorizationError: If the caller is not an admin
        """
        ensure_admin(identity)

        package = TravelPackage(
            destination=request.destination.strip(),
            description=request.description,
            start_date=as_naive_utc(request.start_date),
            end_date=as_naive_utc(request.end_date),
            price_amount=request.price.amount,
            price_currency=request.price.currency,
            available_rooms=request.available_rooms,
            max_guests=request.max_guests,
            is_active=True,
        )

        self.db.add(package)
        await self.db.commit()
        await self.db.refresh(package)

        logger.info(
            "Package created successfully",
            extra={
                "package_id": str(package.id),
                "destination": package.destination,
                "available_rooms": package.available_rooms,
                "created_by": str(identity.user_id),
            }
        )

        return package

    async def get_package_by_id(self, package_id: UUID) -> Optional[TravelPackage]:
        stmt = select(TravelPackage).where(TravelPackage.id == package_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_package_by_id_or_raise(self, package_id: UUID) -> TravelPackage:
        """
        Get package by ID or raise NotFoundError.

        Raises:
            NotFoundError: If package not found
        """
        package = await self.get_package_by_id(package_id)
        if not package:
            raise NotFoundError(resource_type="package", resource_id=str(package_id))
        return package

    async def apply_discount(
        self,
        identity: Identity,
        package_id: UUID,
        request: ApplyDiscountRequest,
    ) -> TravelPackage:
        """
        Apply a time-boxed discount to a package.

        The discounted price must be below the list price and the window
        must end after it starts and last at most seven days.

        Raises:
            AuthorizationError: If the caller is not an admin
            NotFoundError: If package not found
            ValidationError: If the discount breaks a rule above
        """
        ensure_admin(identity)
        package = await self.get_package_by_id_or_raise(package_id)

        starts_at = as_naive_utc(request.starts_at)
        ends_at = as_naive_utc(request.ends_at)

        if request.discounted_amount >= package.price_amount:
            raise ValidationError(detail="Discounted price must be lower than the package price")

        if ends_at <= starts_at:
            raise ValidationError(detail="Discount end must be after its start")

        if ends_at - starts_at > timedelta(days=MAX_DISCOUNT_WINDOW_DAYS):
            raise ValidationError(
                detail=f"Discount period cannot exceed {MAX_DISCOUNT_WINDOW_DAYS} days"
            )

        package.discounted_price_amount = request.discounted_amount
        package.discount_starts_at = starts_at
        package.discount_ends_at = ends_at

        await self.db.commit()
        await self.db.refresh(package)

        logger.info(
            "Discount applied",
            extra={
                "package_id": str(package_id),
                "discounted_amount": request.discounted_amount,
                "starts_at": starts_at.isoformat(),
                "ends_at": ends_at.isoformat(),
            }
        )

        return package

    async def remove_discount(self, identity: Identity, package_id: UUID) -> TravelPackage:
        """Clear any discount on a package."""
        ensure_admin(identity)
        package = await self.get_package_by_id_or_raise(package_id)

        package.discounted_price_amount = None
        package.discount_starts_at = None
        package.discount_ends_at = None

        await self.db.commit()
        await self.db.refresh(package)

        logger.info("Discount removed", extra={"package_id": str(package_id)})
        return package
