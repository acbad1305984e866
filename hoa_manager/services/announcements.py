from sqlalchemy.orm import Session

from ..models.models import Announcement, Profile, User
from .audit import audit_log
from .notifications import create_notification

PREVIEW_LENGTH = 140


def _preview(content: str) -> str:
    content = " ".join(content.split())
    if len(content) <= PREVIEW_LENGTH:
        return content
    return content[: PREVIEW_LENGTH - 3].rstrip() + "..."


def publish_announcement(db: Session, actor: Profile, *, title: str, content: str, priority: str) -> Announcement:
    """Store an announcement and notify every other active profile."""
    announcement = Announcement(title=title, content=content, priority=priority, published_by=actor.id)
    db.add(announcement)
    db.flush()

    recipient_ids = [
        row[0]
        for row in db.query(Profile.id)
        .join(User, User.id == Profile.id)
        .filter(User.is_active.is_(True), Profile.id != actor.id)
        .all()
    ]
    title_prefix = "" if priority == "normal" else f"[{priority.capitalize()}] "
    create_notification(
        db,
        title=f"{title_prefix}{title}",
        message=_preview(content),
        notification_type="announcement",
        related_id=announcement.id,
        link_url="/announcements",
        user_ids=recipient_ids,
    )
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="announcement.publish",
        target_entity_type="Announcement",
        target_entity_id=str(announcement.id),
        after={"title": title, "priority": priority, "recipients": len(recipient_ids)},
        commit=False,
    )
    db.commit()
    db.refresh(announcement)
    return announcement
