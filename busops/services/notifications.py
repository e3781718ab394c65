"""
Mission notifications and the propose/accept/refuse confirmation handshake.

Every operation persists first and only then pushes the recipient's full,
newest-first notification list to the listener registered on the hub. The
push is a convenience: screens must always be able to rebuild their state
from notifications_for_user().
"""
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import structlog
from sqlalchemy.orm import Session

from ..db import transaction
from ..errors import AuthorizationError, PreconditionError
from ..models.models import Mission, Notification
from ..schemas.notifications import NotificationResponse, NotificationType
from .directory import get_admin_users, load_driver, load_mission, load_notification, load_user
from .notification_hub import NotificationHub
from .time_rules import ensure_utc, utc_to_local, utcnow
from .transitions import Trigger, apply_transition


logger = structlog.get_logger(__name__)

DEFAULT_TIMEZONE = "Europe/Paris"

TEMPLATES: Dict[NotificationType, tuple] = {
    NotificationType.MISSION_ASSIGNED: (
        "New mission assigned",
        'Mission "{title}" has been assigned to you for {date}.',
    ),
    NotificationType.MISSION_REMOVED: (
        "Mission removed",
        'Mission "{title}" is no longer assigned to you.',
    ),
    NotificationType.MISSION_UPDATED: (
        "Mission updated",
        'Mission "{title}" was changed: {changes}.',
    ),
    NotificationType.MISSION_PENDING_CONFIRMATION: (
        "New mission proposed",
        'Mission "{title}" is proposed to you for {date}. Do you accept it?',
    ),
    NotificationType.MISSION_ACCEPTED: (
        "Mission accepted",
        'You accepted mission "{title}". It is now assigned to you.',
    ),
    NotificationType.MISSION_REFUSED: (
        "Mission refused",
        '{driver_name} refused mission "{title}". The mission no longer has a driver.',
    ),
}


def add_mission_notification(
    db: Session,
    user_id: str,
    notification_type: NotificationType,
    mission: Mission,
    requires_action: bool = False,
    timezone_str: str = DEFAULT_TIMEZONE,
    **fields,
) -> Notification:
    """
    Stage a notification in the current session without committing.

    Callers run this inside their own transaction and broadcast afterwards.
    """
    title, template = TEMPLATES[notification_type]
    date = ""
    if mission.scheduled_departure_at is not None:
        date = utc_to_local(mission.scheduled_departure_at, timezone_str).strftime("%d/%m/%Y")
    notification = Notification(
        user_id=user_id,
        type=notification_type.value,
        title=title,
        message=template.format(title=mission.title, date=date, **fields),
        mission_id=mission.id,
        mission_title=mission.title,
        is_read=False,
        requires_action=requires_action,
        created_at=utcnow(),
    )
    db.add(notification)
    db.flush()
    logger.info(
        "notification_created",
        notification_id=notification.id,
        user_id=user_id,
        type=notification_type.value,
        mission_id=mission.id,
    )
    return notification


def notifications_for_user(db: Session, user_id: str) -> List[Notification]:
    return (
        db.query(Notification)
        .filter(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
        .all()
    )


def unread_count(db: Session, user_id: str) -> int:
    return (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .count()
    )


def pending_confirmations(db: Session, user_id: str) -> List[Notification]:
    """Proposals still waiting for the driver's answer."""
    return (
        db.query(Notification)
        .filter(
            Notification.user_id == user_id,
            Notification.type == NotificationType.MISSION_PENDING_CONFIRMATION.value,
            Notification.requires_action.is_(True),
        )
        .order_by(Notification.created_at.desc())
        .all()
    )


def broadcast(db: Session, hub: Optional[NotificationHub], user_ids: Iterable[str]) -> None:
    """Push each recipient's current list to their listener, if one is registered."""
    if hub is None:
        return
    for user_id in dict.fromkeys(user_ids):
        if not hub.has_listener(user_id):
            continue
        payload = [NotificationResponse.model_validate(n) for n in notifications_for_user(db, user_id)]
        hub.send_to_user(user_id, payload)


def _notify_one(
    db: Session,
    hub: Optional[NotificationHub],
    user_id: str,
    notification_type: NotificationType,
    mission: Mission,
    timezone_str: str = DEFAULT_TIMEZONE,
    **fields,
) -> Notification:
    with transaction(db):
        load_user(db, user_id)
        notification = add_mission_notification(
            db, user_id, notification_type, mission, timezone_str=timezone_str, **fields
        )
    broadcast(db, hub, [user_id])
    return notification


def notify_mission_assigned(
    db: Session,
    driver_id: str,
    mission: Mission,
    hub: Optional[NotificationHub] = None,
    timezone_str: str = DEFAULT_TIMEZONE,
) -> Notification:
    return _notify_one(db, hub, driver_id, NotificationType.MISSION_ASSIGNED, mission, timezone_str=timezone_str)


def notify_mission_removed(db: Session, previous_driver_id: str, mission: Mission, hub: Optional[NotificationHub] = None) -> Notification:
    return _notify_one(db, hub, previous_driver_id, NotificationType.MISSION_REMOVED, mission)


def notify_mission_updated(
    db: Session,
    driver_id: str,
    mission: Mission,
    changes: List[str],
    hub: Optional[NotificationHub] = None,
) -> Notification:
    return _notify_one(db, hub, driver_id, NotificationType.MISSION_UPDATED, mission, changes=", ".join(changes))


def detect_mission_changes(original: Mission, update: dict) -> List[str]:
    """Human labels for the changes a driver cares about."""
    watched = [
        ("title", "title"),
        ("scheduled_departure_at", "schedule"),
        ("departure_address", "departure"),
        ("arrival_address", "destination"),
        ("max_passengers", "passenger count"),
    ]
    changes = []
    for field, label in watched:
        if field not in update or update[field] is None:
            continue
        new, old = update[field], getattr(original, field)
        if isinstance(new, datetime):
            new, old = ensure_utc(new), ensure_utc(old)
        if new != old:
            changes.append(label)
    return changes


# ---------- CONFIRMATION HANDSHAKE ----------
def propose_mission(
    db: Session,
    driver_id: str,
    mission: Mission,
    hub: Optional[NotificationHub] = None,
    timezone_str: str = DEFAULT_TIMEZONE,
) -> Notification:
    """
    Ask a driver to confirm a mission.

    Only creates the MISSION_PENDING_CONFIRMATION notice; the status change is
    the state machine's job (see mission_state.assign_driver).
    """
    with transaction(db):
        load_driver(db, driver_id)
        notification = add_mission_notification(
            db,
            driver_id,
            NotificationType.MISSION_PENDING_CONFIRMATION,
            mission,
            requires_action=True,
            timezone_str=timezone_str,
        )
    broadcast(db, hub, [driver_id])
    return notification


def _load_confirmation(db: Session, notification_id: str, driver_id: str) -> Notification:
    notification = load_notification(db, notification_id)
    if notification.user_id != driver_id:
        raise AuthorizationError("This confirmation request belongs to another user")
    if notification.type != NotificationType.MISSION_PENDING_CONFIRMATION.value:
        raise PreconditionError(
            f"Notification {notification_id} is not a confirmation request",
            current=notification.type,
            requested=NotificationType.MISSION_PENDING_CONFIRMATION.value,
        )
    return notification


def _check_handshake_target(notification: Notification, mission: Mission, driver_id: str) -> None:
    if notification.mission_id != mission.id:
        raise PreconditionError(f"Notification {notification.id} does not concern mission {mission.id}")
    if mission.driver_id not in (None, driver_id):
        raise PreconditionError(f"Mission {mission.id} was proposed to another driver")


def _resolve(notification: Notification) -> None:
    notification.is_read = True
    notification.requires_action = False


def withdraw_pending_confirmations(db: Session, mission_id: str, user_id: str) -> int:
    """Close a driver's open proposals for a mission they no longer hold."""
    stale = (
        db.query(Notification)
        .filter(
            Notification.user_id == user_id,
            Notification.mission_id == mission_id,
            Notification.type == NotificationType.MISSION_PENDING_CONFIRMATION.value,
            Notification.requires_action.is_(True),
        )
        .all()
    )
    for notification in stale:
        _resolve(notification)
    if stale:
        logger.info("confirmations_withdrawn", mission_id=mission_id, user_id=user_id, count=len(stale))
    return len(stale)


def accept(
    db: Session,
    notification_id: str,
    driver_id: str,
    mission_id: str,
    hub: Optional[NotificationHub] = None,
    timezone_str: str = DEFAULT_TIMEZONE,
) -> Mission:
    """
    Driver accepts a proposed mission.

    The mission ends up ASSIGNED to the driver and a MISSION_ACCEPTED notice is
    created. A second call on an already answered request changes nothing.
    """
    with transaction(db):
        notification = _load_confirmation(db, notification_id, driver_id)
        if not notification.requires_action:
            logger.info("confirmation_already_resolved", notification_id=notification_id, action="accept")
            return load_mission(db, mission_id)
        mission = load_mission(db, mission_id, for_update=True)
        _check_handshake_target(notification, mission, driver_id)
        apply_transition(mission, Trigger.accept)
        mission.driver_id = driver_id
        mission.updated_at = utcnow()
        _resolve(notification)
        add_mission_notification(
            db, driver_id, NotificationType.MISSION_ACCEPTED, mission, timezone_str=timezone_str
        )
    logger.info("mission_accepted", mission_id=mission_id, driver_id=driver_id)
    broadcast(db, hub, [driver_id])
    if hub is not None:
        hub.missions_changed()
    return mission


def refuse(
    db: Session,
    notification_id: str,
    driver_id: str,
    mission_id: str,
    hub: Optional[NotificationHub] = None,
    timezone_str: str = DEFAULT_TIMEZONE,
) -> Mission:
    """
    Driver refuses a proposed mission.

    The driver is cleared, the mission goes back to PENDING and every active
    administrator receives MISSION_REFUSED. Repeating the call is a no-op.
    """
    admin_ids: List[str] = []
    with transaction(db):
        notification = _load_confirmation(db, notification_id, driver_id)
        if not notification.requires_action:
            logger.info("confirmation_already_resolved", notification_id=notification_id, action="refuse")
            return load_mission(db, mission_id)
        mission = load_mission(db, mission_id, for_update=True)
        _check_handshake_target(notification, mission, driver_id)
        driver = load_user(db, driver_id)
        apply_transition(mission, Trigger.refuse)
        mission.driver_id = None
        mission.updated_at = utcnow()
        _resolve(notification)
        for admin in get_admin_users(db):
            add_mission_notification(
                db,
                admin.id,
                NotificationType.MISSION_REFUSED,
                mission,
                timezone_str=timezone_str,
                driver_name=driver.full_name,
            )
            admin_ids.append(admin.id)
    logger.info("mission_refused", mission_id=mission_id, driver_id=driver_id, admins_notified=len(admin_ids))
    broadcast(db, hub, [driver_id] + admin_ids)
    if hub is not None:
        hub.missions_changed()
    return mission


def mark_as_read(db: Session, notification_id: str, hub: Optional[NotificationHub] = None) -> Notification:
    with transaction(db):
        notification = load_notification(db, notification_id)
        changed = not notification.is_read
        notification.is_read = True
    if changed:
        broadcast(db, hub, [notification.user_id])
    return notification
