"""
Driver work time: per-mission entry and monthly roll-ups.

Aggregates are recomputed from the missions on every call. A mission belongs
to the calendar day of its scheduled departure in the configured timezone.
"""
from typing import Dict, List, Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from ..db import transaction
from ..errors import AuthorizationError, ValidationError
from ..models.models import Mission, User
from ..schemas.work_times import DailyWorkTime, MissionTimesUpdate, WorkTimeTotals
from .directory import load_mission
from .notification_hub import NotificationHub
from .notifications import DEFAULT_TIMEZONE
from .time_rules import format_minutes, local_day, utcnow


logger = structlog.get_logger(__name__)

MAX_DAILY_MINUTES = 23 * 60 + 59


def validate_minutes(value: Optional[int], field_name: str, max_minutes: int = MAX_DAILY_MINUTES) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} must be a whole number of minutes", field=field_name, value=value)
    if value < 0 or value > max_minutes:
        raise ValidationError(
            f"{field_name} must be between 00:00 and {format_minutes(max_minutes)}",
            field=field_name,
            value=value,
        )
    return value


def record_mission_times(
    db: Session,
    mission_id: str,
    data: MissionTimesUpdate,
    actor: Optional[User] = None,
    hub: Optional[NotificationHub] = None,
    max_minutes: int = MAX_DAILY_MINUTES,
) -> Mission:
    """Store driving, rest and waiting minutes on a mission; at least one must be non-zero."""
    driving = validate_minutes(data.driving_minutes, "driving_minutes", max_minutes)
    rest = validate_minutes(data.rest_minutes, "rest_minutes", max_minutes)
    waiting = validate_minutes(data.waiting_minutes, "waiting_minutes", max_minutes)
    if driving == 0 and rest == 0 and waiting == 0:
        raise ValidationError("At least one of driving, rest or waiting time must be greater than 00:00")

    with transaction(db):
        mission = load_mission(db, mission_id, for_update=True)
        if actor is not None and not actor.is_admin and mission.driver_id != actor.id:
            raise AuthorizationError("Only the mission's driver or an administrator can record its times")
        mission.driving_time_minutes = driving
        mission.rest_time_minutes = rest
        mission.waiting_time_minutes = waiting
        mission.driving_time_comment = (data.comment or "").strip() or None
        mission.updated_at = utcnow()
    logger.info(
        "mission_times_recorded",
        mission_id=mission_id,
        driving_minutes=driving,
        rest_minutes=rest,
        waiting_minutes=waiting,
    )
    if hub is not None:
        hub.missions_changed()
    return mission


def _check_period(year: int, month: int) -> None:
    if month < 1 or month > 12:
        raise ValidationError(f"Invalid month: {month}")
    if year < 1:
        raise ValidationError(f"Invalid year: {year}")


def _missions_by_day(
    db: Session, driver_id: str, year: int, month: int, timezone_str: str
) -> Dict[Tuple[int, int, int], List[Mission]]:
    _check_period(year, month)
    missions = (
        db.query(Mission)
        .filter(Mission.driver_id == driver_id)
        .order_by(Mission.scheduled_departure_at.asc())
        .all()
    )
    days: Dict[Tuple[int, int, int], List[Mission]] = {}
    for mission in missions:
        day = local_day(mission.scheduled_departure_at, timezone_str)
        if day[0] == year and day[1] == month:
            days.setdefault(day, []).append(mission)
    return days


def driver_work_times_by_month(
    db: Session,
    driver_id: str,
    year: int,
    month: int,
    timezone_str: str = DEFAULT_TIMEZONE,
) -> List[DailyWorkTime]:
    """One entry per calendar day with at least one mission, in day order."""
    entries = []
    for (y, m, d), missions in sorted(_missions_by_day(db, driver_id, year, month, timezone_str).items()):
        entries.append(
            DailyWorkTime(
                driver_id=driver_id,
                year=y,
                month=m,
                day=d,
                total_driving_minutes=sum(x.driving_time_minutes or 0 for x in missions),
                total_rest_minutes=sum(x.rest_time_minutes or 0 for x in missions),
                total_waiting_minutes=sum(x.waiting_time_minutes or 0 for x in missions),
                mission_count=len(missions),
            )
        )
    return entries


def driver_work_times_totals(
    db: Session,
    driver_id: str,
    year: int,
    month: int,
    timezone_str: str = DEFAULT_TIMEZONE,
) -> WorkTimeTotals:
    daily = driver_work_times_by_month(db, driver_id, year, month, timezone_str)
    return WorkTimeTotals(
        driver_id=driver_id,
        year=year,
        month=month,
        total_driving_minutes=sum(e.total_driving_minutes for e in daily),
        total_rest_minutes=sum(e.total_rest_minutes for e in daily),
        total_waiting_minutes=sum(e.total_waiting_minutes for e in daily),
        total_missions=sum(e.mission_count for e in daily),
        working_days=len(daily),
    )
