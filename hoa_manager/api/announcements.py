from typing import List

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session, joinedload

from ..api.dependencies import get_db, get_or_404
from ..auth.jwt import get_current_profile, require_admin
from ..models.models import Announcement, Profile
from ..schemas.schemas import AnnouncementCreate, AnnouncementRead, AnnouncementUpdate
from ..services.announcements import publish_announcement
from ..services.audit import audit_log

router = APIRouter()


@router.get("/", response_model=List[AnnouncementRead])
def list_announcements(
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    _: Profile = Depends(get_current_profile),
) -> List[Announcement]:
    return (
        db.query(Announcement)
        .options(joinedload(Announcement.publisher))
        .order_by(Announcement.published_at.desc(), Announcement.id.desc())
        .limit(limit)
        .all()
    )


@router.post("/", response_model=AnnouncementRead, status_code=201)
def create_announcement(
    payload: AnnouncementCreate,
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> Announcement:
    return publish_announcement(db, actor, title=payload.title, content=payload.content, priority=payload.priority)


@router.patch("/{announcement_id}", response_model=AnnouncementRead)
def update_announcement(
    announcement_id: int,
    payload: AnnouncementUpdate,
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> Announcement:
    announcement = get_or_404(db, Announcement, announcement_id)
    updates = payload.model_dump(exclude_unset=True)
    before = {field: getattr(announcement, field) for field in updates}
    for field, value in updates.items():
        setattr(announcement, field, value)
    db.commit()
    db.refresh(announcement)
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="announcement.update",
        target_entity_type="Announcement",
        target_entity_id=str(announcement.id),
        before=before,
        after=updates,
    )
    return announcement


@router.delete("/{announcement_id}", status_code=204)
def delete_announcement(
    announcement_id: int,
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> Response:
    announcement = get_or_404(db, Announcement, announcement_id)
    db.delete(announcement)
    db.commit()
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="announcement.delete",
        target_entity_type="Announcement",
        target_entity_id=str(announcement_id),
    )
    return Response(status_code=204)
