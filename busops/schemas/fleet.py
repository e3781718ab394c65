from datetime import datetime
from typing import Optional
from enum import Enum

from pydantic import BaseModel, Field


class FuelType(str, Enum):
    DIESEL = "DIESEL"
    ESSENCE = "ESSENCE"
    ELECTRIQUE = "ELECTRIQUE"
    HYBRIDE = "HYBRIDE"


# Vehicle Schemas
class VehicleBase(BaseModel):
    brand: str = Field(min_length=1)
    model: str = Field(min_length=1)
    license_plate: str = Field(min_length=1)
    fleet_number: str = Field(min_length=1)
    vin: str
    first_registration: str
    engine_power: int = Field(ge=0)
    fuel_type: FuelType
    seats: int = Field(gt=0)
    category: str


class VehicleCreate(VehicleBase):
    mileage: int = Field(default=0, ge=0)


class VehicleUpdate(BaseModel):
    # mileage is deliberately absent: only mission kilometrage moves it
    brand: Optional[str] = None
    model: Optional[str] = None
    license_plate: Optional[str] = None
    fleet_number: Optional[str] = None
    vin: Optional[str] = None
    first_registration: Optional[str] = None
    engine_power: Optional[int] = Field(default=None, ge=0)
    fuel_type: Optional[FuelType] = None
    seats: Optional[int] = Field(default=None, gt=0)
    category: Optional[str] = None


class VehicleStatusUpdate(BaseModel):
    is_active: bool


class VehicleResponse(VehicleBase):
    id: str
    mileage: int
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
