from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import OAuth2PasswordRequestForm
from jose import JWTError
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import (
    create_access_token,
    create_refresh_token,
    decode_token,
    get_current_profile,
    get_current_user,
    require_admin,
)
from ..config import settings
from ..core.rate_limit import credential_throttle, limiter
from ..models.models import Profile, User
from ..schemas.schemas import (
    PasswordChange,
    ProfileRead,
    ProfileSelfUpdate,
    Token,
    TokenRefreshRequest,
    UserCreate,
)
from ..services import accounts
from ..services.audit import audit_log

router = APIRouter()

login_throttle = credential_throttle(
    "auth.login",
    limit=lambda: settings.login_rate_limit,
    window_seconds=lambda: settings.login_rate_window_seconds,
)


def _build_token_response(user: User) -> Token:
    role = user.profile.role if user.profile else None
    access_token = create_access_token({"sub": str(user.id), "role": role, "type": "access"})
    refresh_token = create_refresh_token(str(user.id))
    return Token(
        access_token=access_token,
        refresh_token=refresh_token,
        token_type="bearer",
        role=role,
        expires_in=settings.access_token_expire_minutes * 60,
        refresh_expires_in=settings.refresh_token_expire_minutes * 60,
    )


@router.post("/register", response_model=ProfileRead)
def register_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> Profile:
    try:
        user = accounts.create_account(
            db,
            email=payload.email,
            password=payload.password,
            full_name=payload.full_name,
            role=payload.role,
            phone=payload.phone,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    db.refresh(user)

    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="user.register",
        target_entity_type="User",
        target_entity_id=str(user.id),
        after={"email": user.email, "role": payload.role},
    )
    return user.profile


@router.post("/login", response_model=Token)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
    throttle_key: str = Depends(login_throttle),
) -> Token:
    user = accounts.authenticate(db, form_data.username, form_data.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is inactive.")

    limiter.clear(throttle_key)
    accounts.record_sign_in(db, user)
    return _build_token_response(user)


@router.post("/refresh", response_model=Token)
def refresh_token(
    payload: TokenRefreshRequest,
    db: Session = Depends(get_db),
) -> Token:
    credentials_exception = HTTPException(status_code=401, detail="Invalid refresh token")
    try:
        decoded = decode_token(payload.refresh_token)
    except JWTError as exc:
        raise credentials_exception from exc

    if decoded.get("type") != "refresh":
        raise credentials_exception

    user_id = decoded.get("sub")
    if not user_id:
        raise credentials_exception

    user = db.get(User, int(user_id))
    if not user or not user.is_active:
        raise credentials_exception

    return _build_token_response(user)


@router.get("/me", response_model=ProfileRead)
def read_current_profile(profile: Profile = Depends(get_current_profile)) -> Profile:
    return profile


@router.patch("/me", response_model=ProfileRead)
def update_current_profile(
    payload: ProfileSelfUpdate,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
) -> Profile:
    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        return profile

    before = {"full_name": profile.full_name, "phone": profile.phone}
    for field, value in updates.items():
        setattr(profile, field, value)
    db.commit()
    db.refresh(profile)

    after = {"full_name": profile.full_name, "phone": profile.phone}
    if before != after:
        audit_log(
            db_session=db,
            actor_user_id=profile.id,
            action="profile.update",
            target_entity_type="Profile",
            target_entity_id=str(profile.id),
            before=before,
            after=after,
        )
    return profile


@router.post("/me/change-password")
def change_password(
    payload: PasswordChange,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        accounts.change_password(db, current_user, payload.current_password, payload.new_password)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    audit_log(
        db_session=db,
        actor_user_id=current_user.id,
        action="user.password_change",
        target_entity_type="User",
        target_entity_id=str(current_user.id),
        after={"password_changed": True},
    )
    return {"message": "Password updated."}
