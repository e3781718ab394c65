import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    Text,
    Index,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


def uuid_pk() -> Mapped[str]:
    return mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Enumerated values stored as text
ROLE_DRIVER = "DRIVER"
ROLE_ADMIN = "ADMIN"


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = uuid_pk()
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    license_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String(50))
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=ROLE_DRIVER)  # DRIVER|ADMIN
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


class Company(Base):
    __tablename__ = "companies"

    id: Mapped[str] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_person: Mapped[str] = mapped_column(String(255), nullable=False)


class Vehicle(Base):
    """Fleet vehicle; mileage is only written by the kilometrage engine after creation"""
    __tablename__ = "vehicles"

    id: Mapped[str] = uuid_pk()
    brand: Mapped[str] = mapped_column(String(100), nullable=False)  # Mercedes, Volvo, ...
    model: Mapped[str] = mapped_column(String(100), nullable=False)  # Sprinter, 9700, ...
    license_plate: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    fleet_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    mileage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    # Registration document
    vin: Mapped[str] = mapped_column(String(100), nullable=False)
    first_registration: Mapped[str] = mapped_column(String(20), nullable=False)  # YYYY-MM-DD
    engine_power: Mapped[int] = mapped_column(Integer, nullable=False)  # CV
    fuel_type: Mapped[str] = mapped_column(String(20), nullable=False)  # DIESEL|ESSENCE|ELECTRIQUE|HYBRIDE
    seats: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)  # M3 for coaches
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Mission(Base):
    """A unit of transport work"""
    __tablename__ = "missions"

    id: Mapped[str] = uuid_pk()
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")

    # Route
    departure_location: Mapped[str] = mapped_column(String(255), nullable=False)
    departure_address: Mapped[str] = mapped_column(String(255), nullable=False)
    departure_lat: Mapped[float] = mapped_column(Float, nullable=False)
    departure_lng: Mapped[float] = mapped_column(Float, nullable=False)
    scheduled_departure_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    actual_departure_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    arrival_location: Mapped[str] = mapped_column(String(255), nullable=False)
    arrival_address: Mapped[str] = mapped_column(String(255), nullable=False)
    arrival_lat: Mapped[float] = mapped_column(Float, nullable=False)
    arrival_lng: Mapped[float] = mapped_column(Float, nullable=False)
    estimated_arrival_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    actual_arrival_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    route_polyline: Mapped[Optional[str]] = mapped_column(Text)
    distance: Mapped[Optional[float]] = mapped_column(Float)  # km
    estimated_duration: Mapped[Optional[int]] = mapped_column(Integer)  # minutes

    # Capacity
    max_passengers: Mapped[int] = mapped_column(Integer, nullable=False)
    current_passengers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Assignment
    driver_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id", ondelete="SET NULL"), index=True)
    company_id: Mapped[str] = mapped_column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    vehicle_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("vehicles.id"), index=True)

    # Odometer readings, filled phase by phase
    km_depot_start: Mapped[Optional[float]] = mapped_column(Float)
    km_mission_start: Mapped[Optional[float]] = mapped_column(Float)
    km_mission_end: Mapped[Optional[float]] = mapped_column(Float)
    km_depot_end: Mapped[Optional[float]] = mapped_column(Float)

    # Cached distances, recomputed on every kilometrage write
    distance_depot_to_mission: Mapped[Optional[float]] = mapped_column(Float)
    distance_mission_only: Mapped[Optional[float]] = mapped_column(Float)
    distance_mission_to_depot: Mapped[Optional[float]] = mapped_column(Float)
    distance_depot_to_depot: Mapped[Optional[float]] = mapped_column(Float)

    # Work time (minutes), entered by the driver
    driving_time_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    rest_time_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    waiting_time_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    driving_time_comment: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    driver = relationship("User", foreign_keys=[driver_id])
    company = relationship("Company")
    vehicle = relationship("Vehicle")

    __table_args__ = (
        Index("idx_missions_status", "status"),
        Index("idx_missions_driver_schedule", "driver_id", "scheduled_departure_at"),
    )


class Notification(Base):
    """Mission event notice addressed to one user"""
    __tablename__ = "notifications"

    id: Mapped[str] = uuid_pk()
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    # Weak reference: the mission may change or disappear afterwards
    mission_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)
    mission_title: Mapped[Optional[str]] = mapped_column(String(255))
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    requires_action: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_notifications_user_read", "user_id", "is_read"),
        Index("idx_notifications_created", "created_at"),
    )
