from datetime import datetime
from typing import Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator


# Enums
class MissionStatus(str, Enum):
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (MissionStatus.COMPLETED, MissionStatus.CANCELLED)


class KilometrageStatus(str, Enum):
    not_started = "not_started"
    depot_only = "depot_only"
    mission_started = "mission_started"
    completed = "completed"


# Mission Schemas
class MissionBase(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    departure_location: str
    departure_address: str
    departure_lat: float
    departure_lng: float
    scheduled_departure_at: datetime
    arrival_location: str
    arrival_address: str
    arrival_lat: float
    arrival_lng: float
    estimated_arrival_at: datetime
    route_polyline: Optional[str] = None
    distance: Optional[float] = Field(default=None, ge=0)
    estimated_duration: Optional[int] = Field(default=None, ge=0)
    max_passengers: int = Field(gt=0)
    current_passengers: int = Field(default=0, ge=0)
    company_id: str
    vehicle_id: Optional[str] = None

    @field_validator("description", "route_polyline", "vehicle_id", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class MissionCreate(MissionBase):
    driver_id: Optional[str] = None

    @model_validator(mode="after")
    def check_capacity(self):
        if self.current_passengers > self.max_passengers:
            raise ValueError("current_passengers cannot exceed max_passengers")
        return self


class MissionUpdate(BaseModel):
    """Partial update; only fields explicitly set are applied."""
    title: Optional[str] = None
    description: Optional[str] = None
    departure_location: Optional[str] = None
    departure_address: Optional[str] = None
    departure_lat: Optional[float] = None
    departure_lng: Optional[float] = None
    scheduled_departure_at: Optional[datetime] = None
    arrival_location: Optional[str] = None
    arrival_address: Optional[str] = None
    arrival_lat: Optional[float] = None
    arrival_lng: Optional[float] = None
    estimated_arrival_at: Optional[datetime] = None
    route_polyline: Optional[str] = None
    distance: Optional[float] = Field(default=None, ge=0)
    estimated_duration: Optional[int] = Field(default=None, ge=0)
    max_passengers: Optional[int] = Field(default=None, gt=0)
    current_passengers: Optional[int] = Field(default=None, ge=0)
    vehicle_id: Optional[str] = None
    # None explicitly set means "unassign"
    driver_id: Optional[str] = None


class MissionStatusUpdate(BaseModel):
    status: MissionStatus
    actual_time: Optional[datetime] = None


class MissionResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    status: MissionStatus
    departure_location: str
    departure_address: str
    departure_lat: float
    departure_lng: float
    scheduled_departure_at: datetime
    actual_departure_at: Optional[datetime] = None
    arrival_location: str
    arrival_address: str
    arrival_lat: float
    arrival_lng: float
    estimated_arrival_at: datetime
    actual_arrival_at: Optional[datetime] = None
    route_polyline: Optional[str] = None
    distance: Optional[float] = None
    estimated_duration: Optional[int] = None
    max_passengers: int
    current_passengers: int
    driver_id: Optional[str] = None
    company_id: str
    vehicle_id: Optional[str] = None
    km_depot_start: Optional[float] = None
    km_mission_start: Optional[float] = None
    km_mission_end: Optional[float] = None
    km_depot_end: Optional[float] = None
    distance_depot_to_mission: Optional[float] = None
    distance_mission_only: Optional[float] = None
    distance_mission_to_depot: Optional[float] = None
    distance_depot_to_depot: Optional[float] = None
    driving_time_minutes: Optional[int] = None
    rest_time_minutes: Optional[int] = None
    waiting_time_minutes: Optional[int] = None
    driving_time_comment: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# Kilometrage Schemas
class DepotStartKm(BaseModel):
    km_depot_start: float


class MissionStartKm(BaseModel):
    km_mission_start: float


class MissionCompletionKm(BaseModel):
    km_mission_end: float
    km_depot_end: float


class KilometrageDistances(BaseModel):
    distance_depot_to_mission: float
    distance_mission_only: float
    distance_mission_to_depot: float
    distance_depot_to_depot: float


class KilometrageSummary(BaseModel):
    mission_id: str
    status: KilometrageStatus
    info: str
    vehicle_mileage: Optional[int] = None
    distances: KilometrageDistances


class DriverAssignment(BaseModel):
    driver_id: str
    require_confirmation: bool = True
