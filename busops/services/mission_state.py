"""
Mission lifecycle: creation, edits, driver assignment and administrative status changes.

Kilometrage-driven moves (start, complete) live in the kilometrage engine and
the driver's accept/refuse in the notification workflow; everything else that
touches mission.status goes through here.
"""
from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from ..auth.security import require_admin
from ..db import transaction
from ..errors import PreconditionError, ValidationError
from ..models.models import Mission, User
from ..schemas.missions import MissionCreate, MissionStatus, MissionUpdate
from ..schemas.notifications import NotificationType
from .directory import load_company, load_driver, load_mission, load_vehicle
from .notification_hub import NotificationHub
from .notifications import (
    DEFAULT_TIMEZONE,
    add_mission_notification,
    broadcast,
    detect_mission_changes,
    withdraw_pending_confirmations,
)
from .time_rules import ensure_utc, local_to_utc, utcnow
from .transitions import ACTIVE_STATUSES, Trigger, apply_transition


logger = structlog.get_logger(__name__)

DATETIME_FIELDS = ("scheduled_departure_at", "estimated_arrival_at")
# Columns a partial update may clear
NULLABLE_FIELDS = frozenset({"description", "route_polyline", "distance", "estimated_duration", "vehicle_id"})


def _to_utc(value: Optional[datetime], timezone_str: str) -> Optional[datetime]:
    # Naive datetimes from the UI are wall-clock times in the configured zone
    if value is None:
        return None
    if value.tzinfo is None:
        return local_to_utc(value, timezone_str)
    return ensure_utc(value)


def _check_schedule(departure: datetime, arrival: datetime) -> None:
    if ensure_utc(arrival) < ensure_utc(departure):
        raise ValidationError("Estimated arrival cannot be before the scheduled departure")


def _check_capacity(max_passengers: int, current_passengers: int) -> None:
    if current_passengers > max_passengers:
        raise ValidationError(
            f"current_passengers ({current_passengers}) cannot exceed max_passengers ({max_passengers})"
        )


def _check_vehicle(db: Session, vehicle_id: Optional[str]) -> None:
    if not vehicle_id:
        return
    vehicle = load_vehicle(db, vehicle_id)
    if not vehicle.is_active:
        raise PreconditionError(f"Vehicle {vehicle.fleet_number} is not in service")


def _has_kilometrage(mission: Mission) -> bool:
    return mission.km_depot_start is not None


def _set_driver(
    db: Session,
    mission: Mission,
    driver_id: Optional[str],
    require_confirmation: bool,
    suppress_notifications: bool,
    timezone_str: str,
) -> List[str]:
    """Move the mission to a new driver (or none) inside the caller's transaction.

    Returns the user ids whose notification lists changed.
    """
    if _has_kilometrage(mission):
        raise PreconditionError(
            f"Mission {mission.id} already has kilometrage data; its driver cannot change",
            current=mission.status,
            requested=MissionStatus.ASSIGNED.value if driver_id else MissionStatus.PENDING.value,
        )
    previous_driver_id = mission.driver_id
    recipients: List[str] = []
    if driver_id is None:
        apply_transition(mission, Trigger.unassign)
        mission.driver_id = None
    else:
        load_driver(db, driver_id)
        apply_transition(mission, Trigger.propose)
        mission.driver_id = driver_id
    logger.info(
        "mission_driver_changed",
        mission_id=mission.id,
        previous_driver_id=previous_driver_id,
        driver_id=driver_id,
    )
    if previous_driver_id and previous_driver_id != driver_id:
        withdraw_pending_confirmations(db, mission.id, previous_driver_id)
    if suppress_notifications:
        return recipients
    if previous_driver_id and previous_driver_id != driver_id:
        add_mission_notification(
            db, previous_driver_id, NotificationType.MISSION_REMOVED, mission, timezone_str=timezone_str
        )
        recipients.append(previous_driver_id)
    if driver_id is not None:
        if require_confirmation:
            add_mission_notification(
                db,
                driver_id,
                NotificationType.MISSION_PENDING_CONFIRMATION,
                mission,
                requires_action=True,
                timezone_str=timezone_str,
            )
        else:
            add_mission_notification(
                db, driver_id, NotificationType.MISSION_ASSIGNED, mission, timezone_str=timezone_str
            )
        recipients.append(driver_id)
    return recipients


def _after_commit(db: Session, hub: Optional[NotificationHub], recipients: List[str]) -> None:
    broadcast(db, hub, recipients)
    if hub is not None:
        hub.missions_changed()


# ---------- WRITES ----------
def create_mission(
    db: Session,
    data: MissionCreate,
    actor: User,
    hub: Optional[NotificationHub] = None,
    suppress_notifications: bool = False,
    timezone_str: str = DEFAULT_TIMEZONE,
) -> Mission:
    """
    Create a PENDING mission.

    When a driver is given the mission stays PENDING and is proposed to that
    driver, who makes it ASSIGNED by accepting.
    """
    require_admin(actor)
    payload = data.model_dump()
    driver_id = payload.pop("driver_id", None)
    for field in DATETIME_FIELDS:
        payload[field] = _to_utc(payload[field], timezone_str)
    _check_schedule(payload["scheduled_departure_at"], payload["estimated_arrival_at"])
    _check_capacity(payload["max_passengers"], payload["current_passengers"])

    recipients: List[str] = []
    with transaction(db):
        load_company(db, payload["company_id"])
        _check_vehicle(db, payload.get("vehicle_id"))
        if driver_id:
            load_driver(db, driver_id)
        now = utcnow()
        mission = Mission(
            **payload,
            status=MissionStatus.PENDING.value,
            driver_id=driver_id,
            created_at=now,
            updated_at=now,
        )
        db.add(mission)
        db.flush()
        if driver_id and not suppress_notifications:
            add_mission_notification(
                db,
                driver_id,
                NotificationType.MISSION_PENDING_CONFIRMATION,
                mission,
                requires_action=True,
                timezone_str=timezone_str,
            )
            recipients.append(driver_id)
    logger.info("mission_created", mission_id=mission.id, driver_id=driver_id, actor_id=actor.id)
    _after_commit(db, hub, recipients)
    return mission


def update_mission(
    db: Session,
    mission_id: str,
    data: MissionUpdate,
    actor: User,
    hub: Optional[NotificationHub] = None,
    suppress_notifications: bool = False,
    timezone_str: str = DEFAULT_TIMEZONE,
) -> Mission:
    """
    Apply a partial update.

    Only fields explicitly present in ``data`` are written. Setting
    ``driver_id`` proposes the mission to the new driver (MISSION_REMOVED goes
    to the previous one); setting it to None unassigns. Other edits on a
    mission that already has a driver send MISSION_UPDATED listing what changed.
    """
    require_admin(actor)
    update = data.model_dump(exclude_unset=True)
    driver_changing = "driver_id" in update
    new_driver_id = update.pop("driver_id", None)
    for field in DATETIME_FIELDS:
        if field in update:
            update[field] = _to_utc(update[field], timezone_str)
    for field, value in update.items():
        if value is None and field not in NULLABLE_FIELDS:
            raise ValidationError(f"{field} cannot be empty")

    recipients: List[str] = []
    with transaction(db):
        mission = load_mission(db, mission_id, for_update=True)
        if update.get("vehicle_id"):
            _check_vehicle(db, update["vehicle_id"])
        _check_schedule(
            update.get("scheduled_departure_at", mission.scheduled_departure_at),
            update.get("estimated_arrival_at", mission.estimated_arrival_at),
        )
        _check_capacity(
            update.get("max_passengers", mission.max_passengers),
            update.get("current_passengers", mission.current_passengers),
        )
        changes = detect_mission_changes(mission, update)
        for field, value in update.items():
            setattr(mission, field, value)

        if driver_changing and new_driver_id != mission.driver_id:
            recipients = _set_driver(
                db,
                mission,
                new_driver_id,
                require_confirmation=True,
                suppress_notifications=suppress_notifications,
                timezone_str=timezone_str,
            )
        elif mission.driver_id and changes and not suppress_notifications:
            add_mission_notification(
                db,
                mission.driver_id,
                NotificationType.MISSION_UPDATED,
                mission,
                timezone_str=timezone_str,
                changes=", ".join(changes),
            )
            recipients.append(mission.driver_id)
        mission.updated_at = utcnow()
    logger.info("mission_updated", mission_id=mission_id, fields=sorted(update), changes=changes)
    _after_commit(db, hub, recipients)
    return mission


def assign_driver(
    db: Session,
    mission_id: str,
    driver_id: str,
    actor: User,
    hub: Optional[NotificationHub] = None,
    require_confirmation: bool = True,
    timezone_str: str = DEFAULT_TIMEZONE,
) -> Mission:
    """
    Give a mission to a driver; status becomes ASSIGNED.

    With ``require_confirmation`` (the default) the driver receives a proposal
    to accept or refuse; otherwise a plain MISSION_ASSIGNED notice.
    """
    require_admin(actor)
    with transaction(db):
        mission = load_mission(db, mission_id, for_update=True)
        recipients = _set_driver(
            db,
            mission,
            driver_id,
            require_confirmation=require_confirmation,
            suppress_notifications=False,
            timezone_str=timezone_str,
        )
        mission.updated_at = utcnow()
    _after_commit(db, hub, recipients)
    return mission


def update_mission_status(
    db: Session,
    mission_id: str,
    status: MissionStatus,
    actor: User,
    actual_time: Optional[datetime] = None,
    hub: Optional[NotificationHub] = None,
    timezone_str: str = DEFAULT_TIMEZONE,
) -> Mission:
    """
    Administrative status override.

    Bypasses the kilometrage checks on purpose so data can be corrected; a
    mission forced to COMPLETED may have no odometer readings. IN_PROGRESS
    stamps actual_departure_at and COMPLETED stamps actual_arrival_at, with
    ``actual_time`` or now.
    """
    require_admin(actor)
    status = MissionStatus(status)
    trigger = Trigger.cancel if status == MissionStatus.CANCELLED else Trigger.override
    stamp = _to_utc(actual_time, timezone_str) or utcnow()
    with transaction(db):
        mission = load_mission(db, mission_id, for_update=True)
        previous = apply_transition(mission, trigger, status)
        if status == MissionStatus.IN_PROGRESS:
            mission.actual_departure_at = stamp
        elif status == MissionStatus.COMPLETED:
            mission.actual_arrival_at = stamp
            if mission.km_mission_end is None or mission.km_depot_end is None:
                logger.warning("mission_completed_without_kilometrage", mission_id=mission_id)
        mission.updated_at = utcnow()
    logger.warning(
        "mission_status_overridden",
        mission_id=mission_id,
        from_status=previous.value,
        to_status=status.value,
        actor_id=actor.id,
    )
    _after_commit(db, hub, [])
    return mission


def cancel_mission(
    db: Session,
    mission_id: str,
    actor: User,
    hub: Optional[NotificationHub] = None,
) -> Mission:
    return update_mission_status(db, mission_id, MissionStatus.CANCELLED, actor, hub=hub)


# ---------- QUERIES ----------
def get_mission_by_id(db: Session, mission_id: str) -> Optional[Mission]:
    return db.query(Mission).filter(Mission.id == mission_id).first()


def get_all_missions(db: Session, status: Optional[MissionStatus] = None) -> List[Mission]:
    query = db.query(Mission)
    if status is not None:
        query = query.filter(Mission.status == MissionStatus(status).value)
    return query.order_by(Mission.scheduled_departure_at.desc()).all()


def get_missions_by_driver_id(db: Session, driver_id: str) -> List[Mission]:
    return (
        db.query(Mission)
        .filter(Mission.driver_id == driver_id)
        .order_by(Mission.scheduled_departure_at.desc())
        .all()
    )


def get_active_missions(db: Session, driver_id: Optional[str] = None) -> List[Mission]:
    """Missions not yet COMPLETED or CANCELLED, soonest first."""
    query = db.query(Mission).filter(Mission.status.in_([s.value for s in ACTIVE_STATUSES]))
    if driver_id is not None:
        query = query.filter(Mission.driver_id == driver_id)
    return query.order_by(Mission.scheduled_departure_at.asc()).all()
