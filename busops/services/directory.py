"""
Users, companies and the record lookups shared by the core services.

Foreign keys are not enforced by the embedded store, so every reference is
resolved here and a dangling one surfaces as NotFoundError.
"""
from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from ..auth.security import get_password_hash
from ..db import transaction
from ..errors import NotFoundError, PreconditionError, ValidationError
from ..models.models import Company, Mission, Notification, User, Vehicle, ROLE_ADMIN, ROLE_DRIVER
from ..schemas.auth import CompanyCreate, UserCreate


logger = structlog.get_logger(__name__)


def load_mission(db: Session, mission_id: str, for_update: bool = False) -> Mission:
    query = db.query(Mission).filter(Mission.id == mission_id)
    if for_update:
        query = query.with_for_update()
    mission = query.first()
    if mission is None:
        raise NotFoundError("Mission", mission_id)
    return mission


def load_vehicle(db: Session, vehicle_id: str, for_update: bool = False) -> Vehicle:
    query = db.query(Vehicle).filter(Vehicle.id == vehicle_id)
    if for_update:
        query = query.with_for_update()
    vehicle = query.first()
    if vehicle is None:
        raise NotFoundError("Vehicle", vehicle_id)
    return vehicle


def load_user(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def load_company(db: Session, company_id: str) -> Company:
    company = db.query(Company).filter(Company.id == company_id).first()
    if company is None:
        raise NotFoundError("Company", company_id)
    return company


def load_notification(db: Session, notification_id: str) -> Notification:
    notification = db.query(Notification).filter(Notification.id == notification_id).first()
    if notification is None:
        raise NotFoundError("Notification", notification_id)
    return notification


def load_driver(db: Session, driver_id: str) -> User:
    """A user that can be given missions: role DRIVER and active."""
    user = load_user(db, driver_id)
    if user.role != ROLE_DRIVER:
        raise ValidationError(f"User {driver_id} is not a driver")
    if not user.is_active:
        raise PreconditionError(f"Driver {driver_id} is inactive")
    return user


# ---------- USERS ----------
def create_user(db: Session, data: UserCreate) -> User:
    if db.query(User).filter(User.email == data.email).first():
        raise ValidationError(f"A user with email {data.email} already exists")
    if db.query(User).filter(User.license_number == data.license_number).first():
        raise ValidationError(f"A user with license number {data.license_number} already exists")
    with transaction(db):
        user = User(
            email=data.email,
            first_name=data.first_name.strip(),
            last_name=data.last_name.strip(),
            license_number=data.license_number.strip(),
            phone_number=data.phone_number,
            role=data.role.value,
            password_hash=get_password_hash(data.password),
        )
        db.add(user)
    logger.info("user_created", user_id=user.id, role=user.role)
    return user


def get_user_by_id(db: Session, user_id: str) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def get_admin_users(db: Session) -> List[User]:
    return (
        db.query(User)
        .filter(User.role == ROLE_ADMIN, User.is_active.is_(True))
        .order_by(User.first_name, User.last_name)
        .all()
    )


def get_drivers(db: Session, active_only: bool = True) -> List[User]:
    query = db.query(User).filter(User.role == ROLE_DRIVER)
    if active_only:
        query = query.filter(User.is_active.is_(True))
    return query.order_by(User.first_name, User.last_name).all()


# ---------- COMPANIES ----------
def create_company(db: Session, data: CompanyCreate) -> Company:
    with transaction(db):
        company = Company(**data.model_dump())
        db.add(company)
    return company


def get_company_by_id(db: Session, company_id: str) -> Optional[Company]:
    return db.query(Company).filter(Company.id == company_id).first()


def get_all_companies(db: Session) -> List[Company]:
    return db.query(Company).order_by(Company.name).all()
