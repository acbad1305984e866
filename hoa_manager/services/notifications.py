from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from fastapi import WebSocket
from sqlalchemy.orm import Session
from starlette.websockets import WebSocketDisconnect, WebSocketState

from ..constants import NOTIFICATION_PREFERENCE_FIELDS
from ..models.models import Notification, NotificationPreference, Profile, User, utcnow
from ..schemas.schemas import NotificationRead
from .email import compose_notification_email, send_email

logger = logging.getLogger(__name__)


class NotificationCenter:
    def __init__(self) -> None:
        self._connections: Dict[int, Set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def configure_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        logger.debug("NotificationCenter bound to event loop %s", loop)

    async def connect(self, user_id: int, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections[user_id].add(websocket)
        logger.debug("WebSocket connected for profile %s (total=%s)", user_id, len(self._connections[user_id]))

    async def disconnect(self, user_id: int, websocket: WebSocket) -> None:
        async with self._lock:
            connections = self._connections.get(user_id)
            if connections and websocket in connections:
                connections.remove(websocket)
            if not connections:
                self._connections.pop(user_id, None)
        logger.debug("WebSocket disconnected for profile %s", user_id)

    async def _send_to_user(self, user_id: int, payload: dict) -> None:
        async with self._lock:
            connections = list(self._connections.get(user_id, set()))
        for websocket in connections:
            if websocket.application_state != WebSocketState.CONNECTED:
                continue
            try:
                await websocket.send_json(payload)
            except RuntimeError:
                # Connection closed between selection and send
                continue

    def _dispatch(self, user_id: int, payload: dict) -> None:
        if not self._loop:
            logger.debug("NotificationCenter loop not configured; skipping dispatch.")
            return
        asyncio.run_coroutine_threadsafe(self._send_to_user(user_id, payload), self._loop)

    def dispatch_created(self, notification: Notification) -> None:
        self._dispatch(
            notification.user_id,
            {"type": "notification.created", "notification": serialize_notification(notification)},
        )

    def dispatch_read(self, user_id: int, notification_id: int, read_at: datetime) -> None:
        self._dispatch(user_id, {"type": "notification.read", "id": notification_id, "read_at": read_at.isoformat()})

    def dispatch_bulk_read(self, user_id: int, notification_ids: List[int]) -> None:
        if not notification_ids:
            return
        self._dispatch(
            user_id,
            {"type": "notification.bulk_read", "ids": notification_ids, "read_at": utcnow().isoformat()},
        )

    def dispatch_deleted(self, user_id: int, notification_id: int) -> None:
        self._dispatch(user_id, {"type": "notification.deleted", "id": notification_id})

    async def shutdown(self) -> None:
        async with self._lock:
            connections = list(self._connections.items())
            self._connections.clear()
        for user_id, websockets in connections:
            for websocket in websockets:
                if websocket.application_state == WebSocketState.CONNECTED:
                    try:
                        await websocket.close()
                    except RuntimeError:
                        logger.debug("WebSocket for profile %s already closed", user_id)


notification_center = NotificationCenter()


def serialize_notification(notification: Notification) -> dict:
    return NotificationRead.model_validate(notification).model_dump(mode="json")


def get_or_create_preferences(session: Session, profile_id: int) -> NotificationPreference:
    preferences = (
        session.query(NotificationPreference)
        .filter(NotificationPreference.user_id == profile_id)
        .first()
    )
    if preferences is None:
        preferences = NotificationPreference(user_id=profile_id)
        session.add(preferences)
        session.flush()
    return preferences


def _resolve_recipients(
    session: Session,
    user_ids: Optional[Iterable[int]] = None,
    role_names: Optional[Iterable[str]] = None,
) -> List[Profile]:
    recipient_ids: Set[int] = {user_id for user_id in (user_ids or []) if user_id is not None}
    role_names = [name for name in (role_names or []) if name]
    query = session.query(Profile).join(User, User.id == Profile.id).filter(User.is_active.is_(True))
    recipients: Dict[int, Profile] = {}
    if recipient_ids:
        for profile in query.filter(Profile.id.in_(recipient_ids)):
            recipients[profile.id] = profile
    if role_names:
        for profile in query.filter(Profile.role.in_(role_names)):
            recipients[profile.id] = profile
    return list(recipients.values())


def wants_notification(preferences: NotificationPreference, notification_type: str) -> bool:
    field = NOTIFICATION_PREFERENCE_FIELDS.get(notification_type)
    if field is None:
        return True
    return bool(getattr(preferences, field))


def create_notification(
    session: Session,
    *,
    title: str,
    message: str,
    notification_type: str = "system",
    related_id: Optional[int] = None,
    link_url: Optional[str] = None,
    user_ids: Optional[Iterable[int]] = None,
    role_names: Optional[Iterable[str]] = None,
) -> List[Notification]:
    """Store a notification for each recipient whose preferences allow it.

    Recipients who opted into email receive a copy, and recipients with push
    enabled get a live WebSocket event. The caller owns the commit.
    """
    recipients = _resolve_recipients(session, user_ids=user_ids, role_names=role_names)
    if not recipients:
        return []

    notifications: List[Notification] = []
    push_ids: Set[int] = set()
    email_addresses: List[str] = []
    now = utcnow()
    for profile in recipients:
        preferences = get_or_create_preferences(session, profile.id)
        if not wants_notification(preferences, notification_type):
            logger.debug("Profile %s opted out of %s notifications", profile.id, notification_type)
            continue
        notification = Notification(
            user_id=profile.id,
            title=title,
            message=message,
            type=notification_type,
            related_id=related_id,
            link_url=link_url,
            created_at=now,
        )
        session.add(notification)
        notifications.append(notification)
        if preferences.push_notifications:
            push_ids.add(profile.id)
        if preferences.email_notifications and profile.email:
            email_addresses.append(profile.email)
    session.flush()

    for notification in notifications:
        if notification.user_id in push_ids:
            notification_center.dispatch_created(notification)
    if email_addresses:
        subject, body = compose_notification_email(title, message, link_url)
        for address in email_addresses:
            send_email(subject, body, [address])

    return notifications


def mark_read(session: Session, notification: Notification) -> Notification:
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        session.commit()
        session.refresh(notification)
        notification_center.dispatch_read(notification.user_id, notification.id, notification.read_at)
    return notification


def mark_all_read(session: Session, profile_id: int) -> int:
    unread = (
        session.query(Notification)
        .filter(Notification.user_id == profile_id, Notification.is_read.is_(False))
        .all()
    )
    if not unread:
        return 0
    timestamp = utcnow()
    for notification in unread:
        notification.is_read = True
        notification.read_at = timestamp
    session.commit()
    notification_center.dispatch_bulk_read(profile_id, [item.id for item in unread])
    return len(unread)


async def notification_websocket_handler(user_id: int, websocket: WebSocket) -> None:
    await notification_center.connect(user_id, websocket)
    try:
        await websocket.send_json({"type": "notification.connected"})
        while True:
            try:
                await websocket.receive_text()
            except WebSocketDisconnect:
                break
    finally:
        await notification_center.disconnect(user_id, websocket)
