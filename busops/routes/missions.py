from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth.security import get_current_admin, get_current_user
from ..config import Settings
from ..db import get_db
from ..errors import AuthorizationError
from ..models.models import Mission, User
from ..runtime import get_hub, get_settings
from ..schemas.missions import (
    DepotStartKm,
    DriverAssignment,
    KilometrageDistances,
    KilometrageSummary,
    MissionCompletionKm,
    MissionCreate,
    MissionResponse,
    MissionStartKm,
    MissionStatus,
    MissionStatusUpdate,
    MissionUpdate,
)
from ..schemas.work_times import MissionTimesUpdate
from ..services import kilometrage, mission_state
from ..services.directory import load_mission
from ..services.notification_hub import NotificationHub
from ..services.work_time import record_mission_times


router = APIRouter(prefix="/missions", tags=["missions"])


def _visible_mission(db: Session, mission_id: str, user: User) -> Mission:
    """Drivers only see their own missions."""
    mission = load_mission(db, mission_id)
    if not user.is_admin and mission.driver_id != user.id:
        raise AuthorizationError("This mission is not assigned to you")
    return mission


@router.get("", response_model=List[MissionResponse])
def list_missions(
    status: Optional[MissionStatus] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if user.is_admin:
        return mission_state.get_all_missions(db, status)
    missions = mission_state.get_missions_by_driver_id(db, user.id)
    if status is not None:
        missions = [m for m in missions if m.status == status.value]
    return missions


@router.get("/active", response_model=List[MissionResponse])
def list_active_missions(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return mission_state.get_active_missions(db, None if user.is_admin else user.id)


@router.get("/driver/{driver_id}", response_model=List[MissionResponse])
def list_driver_missions(driver_id: str, db: Session = Depends(get_db), admin: User = Depends(get_current_admin)):
    return mission_state.get_missions_by_driver_id(db, driver_id)


@router.get("/{mission_id}", response_model=MissionResponse)
def get_mission(mission_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return _visible_mission(db, mission_id, user)


@router.post("", response_model=MissionResponse, status_code=201)
def create_mission(
    body: MissionCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
    hub: NotificationHub = Depends(get_hub),
    settings: Settings = Depends(get_settings),
):
    return mission_state.create_mission(db, body, admin, hub=hub, timezone_str=settings.tz_default)


@router.patch("/{mission_id}", response_model=MissionResponse)
def update_mission(
    mission_id: str,
    body: MissionUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
    hub: NotificationHub = Depends(get_hub),
    settings: Settings = Depends(get_settings),
):
    return mission_state.update_mission(db, mission_id, body, admin, hub=hub, timezone_str=settings.tz_default)


@router.patch("/{mission_id}/status", response_model=MissionResponse)
def update_mission_status(
    mission_id: str,
    body: MissionStatusUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
    hub: NotificationHub = Depends(get_hub),
    settings: Settings = Depends(get_settings),
):
    return mission_state.update_mission_status(
        db, mission_id, body.status, admin, actual_time=body.actual_time, hub=hub, timezone_str=settings.tz_default
    )


@router.post("/{mission_id}/cancel", response_model=MissionResponse)
def cancel_mission(
    mission_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
    hub: NotificationHub = Depends(get_hub),
):
    return mission_state.cancel_mission(db, mission_id, admin, hub=hub)


@router.post("/{mission_id}/assign", response_model=MissionResponse)
def assign_driver(
    mission_id: str,
    body: DriverAssignment,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
    hub: NotificationHub = Depends(get_hub),
    settings: Settings = Depends(get_settings),
):
    return mission_state.assign_driver(
        db,
        mission_id,
        body.driver_id,
        admin,
        hub=hub,
        require_confirmation=body.require_confirmation,
        timezone_str=settings.tz_default,
    )


# ---------- KILOMETRAGE ----------
@router.get("/{mission_id}/kilometrage", response_model=KilometrageSummary)
def get_kilometrage(mission_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    mission = _visible_mission(db, mission_id, user)
    distances = kilometrage.mission_distances(mission)
    return KilometrageSummary(
        mission_id=mission.id,
        status=kilometrage.kilometrage_status(mission),
        info=kilometrage.format_kilometrage_info(mission),
        vehicle_mileage=kilometrage.get_current_vehicle_mileage(db, mission_id),
        distances=KilometrageDistances(
            distance_depot_to_mission=distances.distance_depot_to_mission,
            distance_mission_only=distances.distance_mission_only,
            distance_mission_to_depot=distances.distance_mission_to_depot,
            distance_depot_to_depot=distances.distance_depot_to_depot,
        ),
    )


@router.post("/{mission_id}/kilometrage/depot-start", response_model=MissionResponse)
def start_with_depot_km(
    mission_id: str,
    body: DepotStartKm,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    hub: NotificationHub = Depends(get_hub),
):
    _visible_mission(db, mission_id, user)
    return kilometrage.start_mission_with_depot_km(db, mission_id, body.km_depot_start, hub=hub)


@router.post("/{mission_id}/kilometrage/mission-start", response_model=MissionResponse)
def add_mission_start_km(
    mission_id: str,
    body: MissionStartKm,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    hub: NotificationHub = Depends(get_hub),
):
    _visible_mission(db, mission_id, user)
    return kilometrage.add_mission_start_km(db, mission_id, body.km_mission_start, hub=hub)


@router.post("/{mission_id}/kilometrage/complete", response_model=MissionResponse)
def complete_with_km(
    mission_id: str,
    body: MissionCompletionKm,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    hub: NotificationHub = Depends(get_hub),
):
    _visible_mission(db, mission_id, user)
    return kilometrage.complete_mission_with_km(db, mission_id, body.km_mission_end, body.km_depot_end, hub=hub)


# ---------- WORK TIME ----------
@router.put("/{mission_id}/times", response_model=MissionResponse)
def record_times(
    mission_id: str,
    body: MissionTimesUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    hub: NotificationHub = Depends(get_hub),
    settings: Settings = Depends(get_settings),
):
    return record_mission_times(db, mission_id, body, actor=user, hub=hub, max_minutes=settings.max_daily_minutes)
