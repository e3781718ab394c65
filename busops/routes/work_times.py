from typing import List

from fastapi import APIRouter, Depends, Path
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..config import Settings
from ..db import get_db
from ..errors import AuthorizationError
from ..models.models import User
from ..runtime import get_settings
from ..schemas.work_times import DailyWorkTime, WorkTimeTotals
from ..services.work_time import driver_work_times_by_month, driver_work_times_totals


router = APIRouter(prefix="/work-times", tags=["work-times"])


def _check_driver_access(driver_id: str, user: User) -> None:
    if not user.is_admin and driver_id != user.id:
        raise AuthorizationError("You can only view your own work times")


@router.get("/{driver_id}/{year}/{month}", response_model=WorkTimeTotals)
def get_month_totals(
    driver_id: str,
    year: int = Path(..., ge=1),
    month: int = Path(..., ge=1, le=12),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    _check_driver_access(driver_id, user)
    return driver_work_times_totals(db, driver_id, year, month, settings.tz_default)


@router.get("/{driver_id}/{year}/{month}/days", response_model=List[DailyWorkTime])
def get_month_days(
    driver_id: str,
    year: int = Path(..., ge=1),
    month: int = Path(..., ge=1, le=12),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    _check_driver_access(driver_id, user)
    return driver_work_times_by_month(db, driver_id, year, month, settings.tz_default)
