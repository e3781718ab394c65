from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from ..auth.security import require_admin
from ..db import transaction
from ..errors import PreconditionError, ValidationError
from ..models.models import Mission, User, Vehicle
from ..schemas.fleet import VehicleCreate, VehicleUpdate
from .directory import load_vehicle
from .time_rules import utcnow
from .transitions import ACTIVE_STATUSES


logger = structlog.get_logger(__name__)


def _check_unique(db: Session, license_plate: Optional[str], fleet_number: Optional[str], exclude_id: Optional[str] = None) -> None:
    if license_plate:
        q = db.query(Vehicle).filter(Vehicle.license_plate == license_plate)
        if exclude_id:
            q = q.filter(Vehicle.id != exclude_id)
        if q.first():
            raise ValidationError(f"A vehicle with license plate {license_plate} already exists")
    if fleet_number:
        q = db.query(Vehicle).filter(Vehicle.fleet_number == fleet_number)
        if exclude_id:
            q = q.filter(Vehicle.id != exclude_id)
        if q.first():
            raise ValidationError(f"A vehicle with fleet number {fleet_number} already exists")


def create_vehicle(db: Session, data: VehicleCreate, actor: User) -> Vehicle:
    require_admin(actor)
    payload = data.model_dump()
    payload["license_plate"] = payload["license_plate"].strip().upper()
    payload["fuel_type"] = data.fuel_type.value
    _check_unique(db, payload["license_plate"], payload["fleet_number"])
    with transaction(db):
        now = utcnow()
        vehicle = Vehicle(**payload, is_active=True, created_at=now, updated_at=now)
        db.add(vehicle)
    logger.info("vehicle_created", vehicle_id=vehicle.id, fleet_number=vehicle.fleet_number, mileage=vehicle.mileage)
    return vehicle


def update_vehicle(db: Session, vehicle_id: str, data: VehicleUpdate, actor: User) -> Vehicle:
    """Descriptive fields only; the odometer is moved by mission kilometrage."""
    require_admin(actor)
    update = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
    if "license_plate" in update:
        update["license_plate"] = update["license_plate"].strip().upper()
    if "fuel_type" in update:
        update["fuel_type"] = data.fuel_type.value
    with transaction(db):
        vehicle = load_vehicle(db, vehicle_id, for_update=True)
        _check_unique(db, update.get("license_plate"), update.get("fleet_number"), exclude_id=vehicle_id)
        for k, v in update.items():
            setattr(vehicle, k, v)
        vehicle.updated_at = utcnow()
    logger.info("vehicle_updated", vehicle_id=vehicle_id, fields=sorted(update))
    return vehicle


def set_vehicle_active(db: Session, vehicle_id: str, is_active: bool, actor: User) -> Vehicle:
    require_admin(actor)
    with transaction(db):
        vehicle = load_vehicle(db, vehicle_id, for_update=True)
        vehicle.is_active = is_active
        vehicle.updated_at = utcnow()
    logger.info("vehicle_status_changed", vehicle_id=vehicle_id, is_active=is_active)
    return vehicle


def delete_vehicle(db: Session, vehicle_id: str, actor: User) -> None:
    """Refused while an unfinished mission uses the vehicle."""
    require_admin(actor)
    with transaction(db):
        vehicle = load_vehicle(db, vehicle_id, for_update=True)
        in_use = (
            db.query(Mission)
            .filter(
                Mission.vehicle_id == vehicle_id,
                Mission.status.in_([s.value for s in ACTIVE_STATUSES]),
            )
            .count()
        )
        if in_use:
            raise PreconditionError(f"Vehicle {vehicle.fleet_number} is used by {in_use} active mission(s)")
        # finished missions keep their history without the vehicle link
        db.query(Mission).filter(Mission.vehicle_id == vehicle_id).update(
            {Mission.vehicle_id: None}, synchronize_session=False
        )
        db.delete(vehicle)
    logger.info("vehicle_deleted", vehicle_id=vehicle_id)


def get_vehicle_by_id(db: Session, vehicle_id: str) -> Optional[Vehicle]:
    return db.query(Vehicle).filter(Vehicle.id == vehicle_id).first()


def get_all_vehicles(db: Session) -> List[Vehicle]:
    return db.query(Vehicle).order_by(Vehicle.fleet_number).all()


def get_active_vehicles(db: Session) -> List[Vehicle]:
    return db.query(Vehicle).filter(Vehicle.is_active.is_(True)).order_by(Vehicle.fleet_number).all()
