"""
Kilometrage engine.

A mission records four odometer readings in three ordered phases:

1. depot departure (``km_depot_start``), which starts the mission;
2. arrival at the pick-up point (``km_mission_start``), optional;
3. end of mission and return to depot (``km_mission_end``, ``km_depot_end``),
   which completes it.

Each phase validates the new readings against the stored ones and the
vehicle's mileage, then writes the mission fields, the status change and the
vehicle mileage in a single transaction.
"""
import math
from dataclasses import dataclass
from typing import Optional, Union

import structlog
from sqlalchemy.orm import Session

from ..db import transaction
from ..errors import PreconditionError, ValidationError
from ..models.models import Mission
from ..schemas.missions import KilometrageStatus, MissionStatus
from .directory import load_mission, load_vehicle
from .notification_hub import NotificationHub
from .time_rules import utcnow
from .transitions import Trigger, apply_transition, check_transition, current_status


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class KilometrageDistances:
    distance_depot_to_mission: float  # depot -> pick-up point
    distance_mission_only: float  # pick-up point -> destination
    distance_mission_to_depot: float  # destination -> depot
    distance_depot_to_depot: float  # whole trip


def calculate_all_distances(
    km_depot_start: Optional[float] = None,
    km_mission_start: Optional[float] = None,
    km_mission_end: Optional[float] = None,
    km_depot_end: Optional[float] = None,
) -> KilometrageDistances:
    """Derive the four distances; missing readings count as 0 and results clamp at 0."""
    depot_start = km_depot_start or 0
    mission_start = km_mission_start or 0
    mission_end = km_mission_end or 0
    depot_end = km_depot_end or 0
    mission_origin = km_mission_start if km_mission_start is not None else depot_start
    return KilometrageDistances(
        distance_depot_to_mission=max(0, mission_start - depot_start),
        distance_mission_only=max(0, mission_end - mission_origin),
        distance_mission_to_depot=max(0, depot_end - mission_end),
        distance_depot_to_depot=max(0, depot_end - depot_start),
    )


def validate_reading(value, field_name: str) -> float:
    """An odometer reading must be a finite number >= 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field_name} must be a number", field=field_name, value=value)
    if math.isnan(value) or math.isinf(value):
        raise ValidationError(f"{field_name} must be a finite number", field=field_name, value=value)
    if value < 0:
        raise ValidationError(f"{field_name} must be positive ({value} km)", field=field_name, value=value)
    return float(value)


def _require_not_below(value: float, field_name: str, floor: float, floor_name: str) -> None:
    if value < floor:
        raise ValidationError(
            f"{field_name} ({value:,.0f} km) cannot be lower than {floor_name} ({floor:,.0f} km)",
            field=field_name,
            value=value,
            floor_field=floor_name,
            floor=floor,
        )


# ---------- READING STATES ----------
@dataclass(frozen=True)
class NotStarted:
    status = KilometrageStatus.not_started


@dataclass(frozen=True)
class DepotOnly:
    km_depot_start: float
    status = KilometrageStatus.depot_only


@dataclass(frozen=True)
class MissionStarted:
    km_depot_start: float
    km_mission_start: float
    status = KilometrageStatus.mission_started

    def __post_init__(self):
        _require_not_below(self.km_mission_start, "km_mission_start", self.km_depot_start, "km_depot_start")


@dataclass(frozen=True)
class Completed:
    km_depot_start: float
    km_mission_end: float
    km_depot_end: float
    km_mission_start: Optional[float] = None
    status = KilometrageStatus.completed

    def __post_init__(self):
        if self.km_mission_start is not None:
            _require_not_below(self.km_mission_start, "km_mission_start", self.km_depot_start, "km_depot_start")
            _require_not_below(self.km_mission_end, "km_mission_end", self.km_mission_start, "km_mission_start")
        _require_not_below(self.km_mission_end, "km_mission_end", self.km_depot_start, "km_depot_start")
        _require_not_below(self.km_depot_end, "km_depot_end", self.km_mission_end, "km_mission_end")

    @property
    def distances(self) -> KilometrageDistances:
        return calculate_all_distances(
            self.km_depot_start, self.km_mission_start, self.km_mission_end, self.km_depot_end
        )


KilometrageState = Union[NotStarted, DepotOnly, MissionStarted, Completed]


def kilometrage_state(mission: Mission) -> KilometrageState:
    """Typed view of the stored readings; raises ValidationError on inconsistent rows."""
    if mission.km_depot_start is None:
        if any(v is not None for v in (mission.km_mission_start, mission.km_mission_end, mission.km_depot_end)):
            raise ValidationError(f"Mission {mission.id} has later readings without km_depot_start")
        return NotStarted()
    if (mission.km_mission_end is None) != (mission.km_depot_end is None):
        raise ValidationError(f"Mission {mission.id} has only one of km_mission_end and km_depot_end")
    if mission.km_mission_end is not None and mission.km_depot_end is not None:
        return Completed(
            km_depot_start=mission.km_depot_start,
            km_mission_start=mission.km_mission_start,
            km_mission_end=mission.km_mission_end,
            km_depot_end=mission.km_depot_end,
        )
    if mission.km_mission_start is not None:
        return MissionStarted(mission.km_depot_start, mission.km_mission_start)
    return DepotOnly(mission.km_depot_start)


def kilometrage_status(mission: Mission) -> KilometrageStatus:
    """Which phase comes next, from the readings present; never raises."""
    if mission.km_depot_start is None:
        return KilometrageStatus.not_started
    if mission.km_mission_end is not None and mission.km_depot_end is not None:
        return KilometrageStatus.completed
    if mission.km_mission_start is not None:
        return KilometrageStatus.mission_started
    return KilometrageStatus.depot_only


def format_kilometrage_info(mission: Mission) -> str:
    status = kilometrage_status(mission)
    if status == KilometrageStatus.not_started:
        return "Kilometrage not started"
    if status == KilometrageStatus.depot_only:
        return f"Depot departure: {mission.km_depot_start:,.0f} km"
    if status == KilometrageStatus.mission_started:
        return f"In progress - last reading: {mission.km_mission_start:,.0f} km"
    return f"Completed - total: {(mission.distance_depot_to_depot or 0):,.0f} km"


def mission_distances(mission: Mission) -> KilometrageDistances:
    return calculate_all_distances(
        mission.km_depot_start, mission.km_mission_start, mission.km_mission_end, mission.km_depot_end
    )


def _refresh_cached_distances(mission: Mission) -> KilometrageDistances:
    distances = mission_distances(mission)
    if mission.km_mission_start is not None:
        mission.distance_depot_to_mission = distances.distance_depot_to_mission
    if mission.km_mission_end is not None:
        mission.distance_mission_only = distances.distance_mission_only
    if mission.km_depot_end is not None:
        mission.distance_mission_to_depot = distances.distance_mission_to_depot
        mission.distance_depot_to_depot = distances.distance_depot_to_depot
    return distances


def _advance_vehicle_mileage(db: Session, mission: Mission, reading: float) -> Optional[int]:
    """Move the vehicle odometer forward to the reading; it never goes backwards."""
    if not mission.vehicle_id:
        return None
    vehicle = load_vehicle(db, mission.vehicle_id, for_update=True)
    new_mileage = max(vehicle.mileage or 0, int(math.floor(reading)))
    if new_mileage != vehicle.mileage:
        logger.info(
            "vehicle_mileage_updated",
            vehicle_id=vehicle.id,
            mission_id=mission.id,
            previous=vehicle.mileage,
            mileage=new_mileage,
        )
        vehicle.mileage = new_mileage
        vehicle.updated_at = utcnow()
    return new_mileage


def _notify_changed(hub: Optional[NotificationHub]) -> None:
    if hub is not None:
        hub.missions_changed()


def get_current_vehicle_mileage(db: Session, mission_id: str) -> Optional[int]:
    """Mileage of the mission's vehicle, or None when no vehicle is assigned."""
    mission = load_mission(db, mission_id)
    if not mission.vehicle_id:
        return None
    return load_vehicle(db, mission.vehicle_id).mileage


# ---------- PHASES ----------
def start_mission_with_depot_km(
    db: Session,
    mission_id: str,
    km_depot_start: float,
    hub: Optional[NotificationHub] = None,
) -> Mission:
    """
    Phase 1: record the depot departure reading and start the mission.

    The mission moves to IN_PROGRESS, actual_departure_at is stamped and the
    vehicle mileage follows the reading.
    """
    km_depot_start = validate_reading(km_depot_start, "km_depot_start")
    with transaction(db):
        mission = load_mission(db, mission_id, for_update=True)
        check_transition(mission, Trigger.start)
        if mission.km_depot_start is not None:
            raise PreconditionError(
                "Depot departure reading already recorded",
                current=current_status(mission).value,
                requested=MissionStatus.IN_PROGRESS.value,
            )
        if mission.vehicle_id:
            vehicle = load_vehicle(db, mission.vehicle_id, for_update=True)
            if km_depot_start < vehicle.mileage:
                raise ValidationError(
                    f"km_depot_start ({km_depot_start:,.0f} km) is lower than the current mileage of "
                    f"{vehicle.brand} {vehicle.model} ({vehicle.mileage:,} km)",
                    field="km_depot_start",
                    value=km_depot_start,
                    vehicle_mileage=vehicle.mileage,
                )
        apply_transition(mission, Trigger.start)
        now = utcnow()
        mission.km_depot_start = km_depot_start
        mission.actual_departure_at = now
        mission.updated_at = now
        _refresh_cached_distances(mission)
        _advance_vehicle_mileage(db, mission, km_depot_start)
    logger.info("mission_started", mission_id=mission_id, km_depot_start=km_depot_start)
    _notify_changed(hub)
    return mission


def add_mission_start_km(
    db: Session,
    mission_id: str,
    km_mission_start: float,
    hub: Optional[NotificationHub] = None,
) -> Mission:
    """Phase 2: record the reading on arrival at the pick-up point."""
    km_mission_start = validate_reading(km_mission_start, "km_mission_start")
    with transaction(db):
        mission = load_mission(db, mission_id, for_update=True)
        status = current_status(mission)
        if status != MissionStatus.IN_PROGRESS or mission.km_depot_start is None:
            raise PreconditionError(
                "Mission must be in progress with a depot departure reading",
                current=status.value,
                requested=MissionStatus.IN_PROGRESS.value,
            )
        if mission.km_mission_start is not None:
            raise PreconditionError(
                "Mission start reading already recorded",
                current=status.value,
                requested=MissionStatus.IN_PROGRESS.value,
            )
        _require_not_below(km_mission_start, "km_mission_start", mission.km_depot_start, "km_depot_start")
        mission.km_mission_start = km_mission_start
        mission.updated_at = utcnow()
        distances = _refresh_cached_distances(mission)
        _advance_vehicle_mileage(db, mission, km_mission_start)
    logger.info(
        "mission_start_km_recorded",
        mission_id=mission_id,
        km_mission_start=km_mission_start,
        distance_depot_to_mission=distances.distance_depot_to_mission,
    )
    _notify_changed(hub)
    return mission


def complete_mission_with_km(
    db: Session,
    mission_id: str,
    km_mission_end: float,
    km_depot_end: float,
    hub: Optional[NotificationHub] = None,
) -> Mission:
    """
    Phase 3: record the end-of-mission and depot return readings.

    The mission moves to COMPLETED with all distances computed, and the
    vehicle mileage is set to the depot return reading.
    """
    km_mission_end = validate_reading(km_mission_end, "km_mission_end")
    km_depot_end = validate_reading(km_depot_end, "km_depot_end")
    with transaction(db):
        mission = load_mission(db, mission_id, for_update=True)
        status = current_status(mission)
        if status != MissionStatus.IN_PROGRESS or mission.km_depot_start is None:
            raise PreconditionError(
                "Mission must be in progress with a depot departure reading to complete",
                current=status.value,
                requested=MissionStatus.COMPLETED.value,
            )
        # Ordering checks, raising ValidationError on the first offending pair
        state = Completed(
            km_depot_start=mission.km_depot_start,
            km_mission_start=mission.km_mission_start,
            km_mission_end=km_mission_end,
            km_depot_end=km_depot_end,
        )
        apply_transition(mission, Trigger.complete)
        now = utcnow()
        mission.km_mission_end = km_mission_end
        mission.km_depot_end = km_depot_end
        mission.actual_arrival_at = now
        mission.updated_at = now
        _refresh_cached_distances(mission)
        _advance_vehicle_mileage(db, mission, km_depot_end)
    distances = state.distances
    logger.info(
        "mission_completed",
        mission_id=mission_id,
        distance_mission_only=distances.distance_mission_only,
        distance_depot_to_depot=distances.distance_depot_to_depot,
    )
    _notify_changed(hub)
    return mission
