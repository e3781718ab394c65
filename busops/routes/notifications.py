from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..config import Settings
from ..db import get_db
from ..errors import AuthorizationError
from ..models.models import User
from ..runtime import get_hub, get_settings
from ..schemas.missions import MissionResponse
from ..schemas.notifications import ConfirmationAction, NotificationResponse, UnreadCountResponse
from ..services import notifications
from ..services.directory import load_notification
from ..services.notification_hub import NotificationHub


router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=List[NotificationResponse])
def list_notifications(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return notifications.notifications_for_user(db, user.id)


@router.get("/unread-count", response_model=UnreadCountResponse)
def get_unread_count(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return UnreadCountResponse(user_id=user.id, unread=notifications.unread_count(db, user.id))


@router.get("/pending", response_model=List[NotificationResponse])
def list_pending_confirmations(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return notifications.pending_confirmations(db, user.id)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    hub: NotificationHub = Depends(get_hub),
):
    if load_notification(db, notification_id).user_id != user.id:
        raise AuthorizationError("This notification belongs to another user")
    return notifications.mark_as_read(db, notification_id, hub=hub)


@router.post("/{notification_id}/accept", response_model=MissionResponse)
def accept_mission(
    notification_id: str,
    body: ConfirmationAction,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    hub: NotificationHub = Depends(get_hub),
    settings: Settings = Depends(get_settings),
):
    return notifications.accept(
        db, notification_id, user.id, body.mission_id, hub=hub, timezone_str=settings.tz_default
    )


@router.post("/{notification_id}/refuse", response_model=MissionResponse)
def refuse_mission(
    notification_id: str,
    body: ConfirmationAction,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    hub: NotificationHub = Depends(get_hub),
    settings: Settings = Depends(get_settings),
):
    return notifications.refuse(
        db, notification_id, user.id, body.mission_id, hub=hub, timezone_str=settings.tz_default
    )
