from datetime import datetime
from typing import Optional
from enum import Enum

from pydantic import BaseModel


class NotificationType(str, Enum):
    MISSION_ASSIGNED = "MISSION_ASSIGNED"
    MISSION_REMOVED = "MISSION_REMOVED"
    MISSION_UPDATED = "MISSION_UPDATED"
    MISSION_PENDING_CONFIRMATION = "MISSION_PENDING_CONFIRMATION"
    MISSION_ACCEPTED = "MISSION_ACCEPTED"
    MISSION_REFUSED = "MISSION_REFUSED"


class NotificationResponse(BaseModel):
    id: str
    user_id: str
    type: NotificationType
    title: str
    message: str
    mission_id: Optional[str] = None
    mission_title: Optional[str] = None
    is_read: bool
    requires_action: bool
    created_at: datetime

    class Config:
        from_attributes = True


class UnreadCountResponse(BaseModel):
    user_id: str
    unread: int


class ConfirmationAction(BaseModel):
    mission_id: str
