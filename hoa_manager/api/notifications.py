from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, WebSocket
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_profile, require_admin, user_id_from_access_token
from ..models.models import Notification, Profile, User
from ..schemas.schemas import (
    NotificationBroadcast,
    NotificationPreferenceRead,
    NotificationPreferenceUpdate,
    NotificationRead,
    UnreadCount,
)
from ..services.audit import audit_log
from ..services.notifications import (
    create_notification,
    get_or_create_preferences,
    mark_all_read,
    mark_read,
    notification_center,
    notification_websocket_handler,
)

router = APIRouter()


def _get_own_notification(db: Session, profile: Profile, notification_id: int) -> Notification:
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == profile.id)
        .first()
    )
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found.")
    return notification


@router.get("/", response_model=List[NotificationRead])
def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    unread_only: bool = Query(False),
    type: Optional[str] = Query(None, description="Filter by notification type."),
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
) -> List[Notification]:
    query = (
        db.query(Notification)
        .filter(Notification.user_id == profile.id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
    )
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    if type:
        query = query.filter(Notification.type == type)
    return query.limit(limit).all()


@router.get("/unread-count", response_model=UnreadCount)
def unread_count(
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
) -> UnreadCount:
    count = (
        db.query(Notification)
        .filter(Notification.user_id == profile.id, Notification.is_read.is_(False))
        .count()
    )
    return UnreadCount(count=count)


@router.get("/preferences", response_model=NotificationPreferenceRead)
def read_preferences(
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    preferences = get_or_create_preferences(db, profile.id)
    db.commit()
    db.refresh(preferences)
    return preferences


@router.put("/preferences", response_model=NotificationPreferenceRead)
def update_preferences(
    payload: NotificationPreferenceUpdate,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    preferences = get_or_create_preferences(db, profile.id)
    updates = payload.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in updates.items():
        setattr(preferences, field, value)
    db.commit()
    db.refresh(preferences)
    return preferences


@router.post("/read-all", response_model=dict)
def mark_all_notifications_read(
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
) -> dict:
    return {"updated": mark_all_read(db, profile.id)}


@router.post("/broadcast", response_model=dict)
def broadcast_notification(
    payload: NotificationBroadcast,
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> dict:
    notifications = create_notification(
        db,
        title=payload.title,
        message=payload.message,
        notification_type=payload.type,
        related_id=payload.related_id,
        link_url=payload.link_url,
        user_ids=payload.user_ids,
        role_names=payload.roles,
    )
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="notification.broadcast",
        target_entity_type="Notification",
        after={"title": payload.title, "created": len(notifications)},
        commit=False,
    )
    db.commit()
    return {"created": len(notifications)}


@router.post("/{notification_id}/read", response_model=NotificationRead)
def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
) -> Notification:
    notification = _get_own_notification(db, profile, notification_id)
    return mark_read(db, notification)


@router.delete("/{notification_id}", status_code=204)
def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
) -> Response:
    notification = _get_own_notification(db, profile, notification_id)
    db.delete(notification)
    db.commit()
    notification_center.dispatch_deleted(profile.id, notification_id)
    return Response(status_code=204)


@router.websocket("/ws")
async def websocket_notifications(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    db: Session = Depends(get_db),
) -> None:
    user_id = user_id_from_access_token(token) if token else None
    if user_id is None:
        await websocket.close(code=4401)
        return

    user = db.get(User, user_id)
    if not user or not user.is_active or user.profile is None:
        await websocket.close(code=4403)
        return

    await notification_websocket_handler(user_id, websocket)
