from typing import Optional

from pydantic import BaseModel


class MissionTimesUpdate(BaseModel):
    driving_minutes: Optional[int] = None
    rest_minutes: Optional[int] = None
    waiting_minutes: Optional[int] = None
    comment: Optional[str] = None


class DailyWorkTime(BaseModel):
    driver_id: str
    year: int
    month: int
    day: int
    total_driving_minutes: int = 0
    total_rest_minutes: int = 0
    total_waiting_minutes: int = 0
    mission_count: int = 0


class WorkTimeTotals(BaseModel):
    driver_id: str
    year: int
    month: int
    total_driving_minutes: int = 0
    total_rest_minutes: int = 0
    total_waiting_minutes: int = 0
    total_missions: int = 0
    working_days: int = 0
