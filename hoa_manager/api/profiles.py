from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, get_or_404
from ..auth.jwt import get_current_profile, require_admin
from ..models.models import Profile
from ..schemas.schemas import ProfileRead, ProfileRoleUpdate
from ..services import access, accounts
from ..services.audit import audit_log

router = APIRouter()


@router.get("/", response_model=List[ProfileRead])
def list_profiles(
    role: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    _: Profile = Depends(require_admin),
) -> List[Profile]:
    query = db.query(Profile)
    if role:
        query = query.filter(Profile.role == role)
    return query.order_by(Profile.full_name.asc()).all()


@router.get("/{profile_id}", response_model=ProfileRead)
def get_profile(
    profile_id: int,
    db: Session = Depends(get_db),
    actor: Profile = Depends(get_current_profile),
) -> Profile:
    profile = get_or_404(db, Profile, profile_id)
    if not access.can_view_profile(actor, profile):
        raise HTTPException(status_code=403, detail="Not authorized to view this profile")
    return profile


@router.patch("/{profile_id}/role", response_model=ProfileRead)
def update_profile_role(
    profile_id: int,
    payload: ProfileRoleUpdate,
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> Profile:
    profile = get_or_404(db, Profile, profile_id)
    before = profile.role
    try:
        accounts.change_role(db, profile, payload.role)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    if before != profile.role:
        audit_log(
            db_session=db,
            actor_user_id=actor.id,
            action="profile.role_update",
            target_entity_type="Profile",
            target_entity_id=str(profile.id),
            before={"role": before},
            after={"role": profile.role},
        )
    return profile


@router.post("/{profile_id}/deactivate", response_model=ProfileRead)
def deactivate_profile(
    profile_id: int,
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> Profile:
    profile = get_or_404(db, Profile, profile_id)
    try:
        accounts.deactivate(db, profile)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="profile.deactivate",
        target_entity_type="Profile",
        target_entity_id=str(profile.id),
        after={"is_active": profile.is_active},
    )
    return profile
