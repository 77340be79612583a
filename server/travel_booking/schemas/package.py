"""Travel package Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from .common import Money


class CreatePackageRequest(BaseModel):
    """Request schema for creating a package."""

    destination: str = Field(..., min_length=1, max_length=255, description="Destination name")
    description: str | None = Field(None, max_length=5000, description="Package description")
    start_date: datetime = Field(..., description="Travel start (ISO 8601)")
    end_date: datetime = Field(..., description="Travel end (ISO 8601)")
    price: Money = Field(..., description="Price per room")
    available_rooms: int = Field(..., ge=0, le=10000, description="Rooms available for booking")
    max_guests: int = Field(20, ge=1, le=100, description="Maximum guests per booking")

    @model_validator(mode="after")
    def check_dates(self) -> "CreatePackageRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ApplyDiscountRequest(BaseModel):
    """Request schema for applying a time-boxed discount."""

    discounted_amount: int = Field(..., ge=0, description="Discounted price in minor units")
    starts_at: datetime = Field(..., description="Discount window start (ISO 8601)")
    ends_at: datetime = Field(..., description="Discount window end (ISO 8601)")


class Package(BaseModel):
    """Package response schema."""

    id: str = Field(..., description="Unique package ID")
    destination: str = Field(..., description="Destination name")
    description: str | None = Field(None, description="Package description")
    start_date: datetime = Field(..., description="Travel start (ISO 8601)")
    end_date: datetime = Field(..., description="Travel end (ISO 8601)")
    price: Money = Field(..., description="List price per room")
    effective_price: Money = Field(..., description="Price per room right now")
    discount_active: bool = Field(..., description="Whether a discount currently applies")
    discount_ends_at: datetime | None = Field(None, description="Discount window end (ISO 8601)")
    available_rooms: int = Field(..., ge=0, description="Rooms available")
    max_guests: int = Field(..., description="Maximum guests per booking")
    is_active: bool = Field(..., description="Whether the package accepts bookings")
