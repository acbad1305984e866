import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth.jwt import get_password_hash, verify_password
from ..constants import PROFILE_ROLES, ROLE_RESIDENT
from ..models.models import Profile, User, utcnow
from .access import ensure_admin_remains
from .notifications import get_or_create_preferences

logger = logging.getLogger(__name__)


def find_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()


def create_account(
    db: Session,
    *,
    email: str,
    password: str,
    full_name: Optional[str] = None,
    role: str = ROLE_RESIDENT,
    phone: Optional[str] = None,
) -> User:
    """Create an auth identity together with its profile and notification preferences."""
    if role not in PROFILE_ROLES:
        raise ValueError(f"Unknown role '{role}'.")
    if find_user_by_email(db, email):
        raise ValueError("Email already registered")

    user = User(email=email, hashed_password=get_password_hash(password))
    db.add(user)
    db.flush()

    profile = Profile(
        id=user.id,
        email=email,
        full_name=full_name or email.split("@", 1)[0],
        role=role,
        phone=phone,
    )
    db.add(profile)
    db.flush()
    get_or_create_preferences(db, profile.id)
    logger.info("Created %s account %s", role, user.id)
    return user


def authenticate(db: Session, email: str, password: str) -> Optional[User]:
    user = find_user_by_email(db, email)
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user


def record_sign_in(db: Session, user: User) -> None:
    user.last_sign_in_at = utcnow()
    db.commit()


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.hashed_password):
        raise ValueError("Current password is incorrect.")
    user.hashed_password = get_password_hash(new_password)
    db.commit()


def change_role(db: Session, profile: Profile, role: str) -> Profile:
    if role not in PROFILE_ROLES:
        raise ValueError(f"Unknown role '{role}'.")
    if profile.role == role:
        return profile
    ensure_admin_remains(db, profile)
    profile.role = role
    db.commit()
    db.refresh(profile)
    return profile


def deactivate(db: Session, profile: Profile) -> Profile:
    if profile.user is None or not profile.user.is_active:
        return profile
    ensure_admin_remains(db, profile)
    profile.user.is_active = False
    db.commit()
    db.refresh(profile)
    return profile
