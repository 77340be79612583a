"""Package router for catalog operations."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import utcnow
from ..core.dependencies import get_db, require_admin
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.auth import Identity
from ..schemas.common import Money
from ..schemas.package import ApplyDiscountRequest, CreatePackageRequest, Package
from ..services.package_service import PackageService, parse_uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/packages", tags=["packages"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
ADMIN_DEPENDENCY = Depends(require_admin)


def _convert_package_to_schema(package_model) -> Package:
    """Convert package model to schema, pricing it as of now."""
    now = utcnow()
    currency = package_model.price_currency
    return Package(
        id=str(package_model.id),
        destination=package_model.destination,
        description=package_model.description,
        start_date=package_model.start_date,
        end_date=package_model.end_date,
        price=Money(amount=package_model.price_amount, currency=currency),
        effective_price=Money(amount=package_model.effective_price(now), currency=currency),
        discount_active=package_model.discount_active(now),
        discount_ends_at=package_model.discount_ends_at,
        available_rooms=package_model.available_rooms,
        max_guests=package_model.max_guests,
        is_active=package_model.is_active,
    )


@router.post("", response_model=Package, status_code=201)
async def create_package(
    request: CreatePackageRequest,
    identity: Identity = ADMIN_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
) -> Package:
    """Create a new travel package (admin only)."""
    package_service = PackageService(db)

    try:
        package = await package_service.create_package(identity, request)
        return _convert_package_to_schema(package)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in package creation",
            extra={"destination": request.destination, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError(detail="Failed to create package") from e


@router.get("/{package_id}", response_model=Package)
async def get_package(package_id: str, db: AsyncSession = DB_DEPENDENCY) -> Package:
    """Get a package with its current effective price."""
    package_service = PackageService(db)
    package = await package_service.get_package_by_id_or_raise(parse_uuid(package_id, "package"))
    return _convert_package_to_schema(package)


@router.post("/{package_id}/discount", response_model=Package)
async def apply_discount(
    package_id: str,
    request: ApplyDiscountRequest,
    identity: Identity = ADMIN_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
) -> Package:
    """Apply a time-boxed discount (admin only)."""
    package_service = PackageService(db)
    package = await package_service.apply_discount(identity, parse_uuid(package_id, "package"), request)
    return _convert_package_to_schema(package)


@router.delete("/{package_id}/discount", response_model=Package)
async def remove_discount(
    package_id: str,
    identity: Identity = ADMIN_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
) -> Package:
    """Remove a package's discount (admin only)."""
    package_service = PackageService(db)
    package = await package_service.remove_discount(identity, parse_uuid(package_id, "package"))
    return _convert_package_to_schema(package)
