"""Row-level access policies evaluated against the caller's profile.

Query helpers narrow a base query to the rows a caller may see; predicate
helpers answer whether a caller may mutate a specific row.
"""

from typing import Iterable, Optional, Set

from sqlalchemy import false, or_
from sqlalchemy.orm import Query, Session

from ..constants import ROLE_ADMIN
from ..models.models import (
    MaintenanceRequest,
    Payment,
    Profile,
    Property,
    Transaction,
    User,
)

RESIDENT_EDITABLE_MAINTENANCE_FIELDS = frozenset({"title", "description", "category", "priority", "property_id"})
OWNER_PAYABLE_STATUSES = frozenset({"pending", "overdue"})


def is_admin(profile: Optional[Profile]) -> bool:
    return profile is not None and profile.role == ROLE_ADMIN


def owned_property_ids(db: Session, profile: Profile) -> Set[int]:
    rows = db.query(Property.id).filter(Property.owner_id == profile.id).all()
    return {row[0] for row in rows}


# --- Profiles ---


def can_view_profile(actor: Profile, target: Profile) -> bool:
    return is_admin(actor) or actor.id == target.id


def count_other_active_admins(db: Session, excluding_id: int) -> int:
    return (
        db.query(Profile)
        .join(User, User.id == Profile.id)
        .filter(Profile.role == ROLE_ADMIN, Profile.id != excluding_id, User.is_active.is_(True))
        .count()
    )


def ensure_admin_remains(db: Session, target: Profile) -> None:
    """Raise when demoting or deactivating ``target`` would leave no active admin."""
    if target.role != ROLE_ADMIN:
        return
    if count_other_active_admins(db, target.id) == 0:
        raise ValueError("The association must retain at least one active admin.")


# --- Properties ---


def scope_properties(query: Query, profile: Profile) -> Query:
    if is_admin(profile):
        return query
    return query.filter(Property.owner_id == profile.id)


def can_view_property(profile: Profile, prop: Property) -> bool:
    return is_admin(profile) or prop.owner_id == profile.id


# --- Maintenance ---


def scope_maintenance(query: Query, db: Session, profile: Profile) -> Query:
    if is_admin(profile):
        return query
    property_ids = owned_property_ids(db, profile)
    conditions = [MaintenanceRequest.requested_by == profile.id]
    if property_ids:
        conditions.append(MaintenanceRequest.property_id.in_(property_ids))
    return query.filter(or_(*conditions))


def can_view_maintenance(db: Session, profile: Profile, request: MaintenanceRequest) -> bool:
    if is_admin(profile) or request.requested_by == profile.id:
        return True
    return request.property_id is not None and request.property_id in owned_property_ids(db, profile)


def can_modify_maintenance(profile: Profile, request: MaintenanceRequest) -> bool:
    """Admins may modify anything; residents only their own pending requests."""
    if is_admin(profile):
        return True
    return request.requested_by == profile.id and request.status == "pending"


def check_maintenance_fields(profile: Profile, fields: Iterable[str]) -> None:
    if is_admin(profile):
        return
    forbidden = sorted(set(fields) - RESIDENT_EDITABLE_MAINTENANCE_FIELDS)
    if forbidden:
        raise PermissionError(f"Residents cannot change: {', '.join(forbidden)}.")


def check_property_reference(db: Session, profile: Profile, property_id: Optional[int]) -> None:
    if property_id is None or is_admin(profile):
        return
    if property_id not in owned_property_ids(db, profile):
        raise PermissionError("Residents may only reference their own property.")


# --- Transactions ---


def scope_transactions(query: Query, db: Session, profile: Profile) -> Query:
    if is_admin(profile):
        return query
    property_ids = owned_property_ids(db, profile)
    if not property_ids:
        return query.filter(false())
    return query.filter(Transaction.property_id.in_(property_ids))


# --- Payments ---


def scope_payments(query: Query, db: Session, profile: Profile) -> Query:
    if is_admin(profile):
        return query
    property_ids = owned_property_ids(db, profile)
    if not property_ids:
        return query.filter(false())
    return query.filter(Payment.property_id.in_(property_ids))


def can_view_payment(db: Session, profile: Profile, payment: Payment) -> bool:
    return is_admin(profile) or payment.property_id in owned_property_ids(db, profile)


def check_payment_transition(db: Session, profile: Profile, payment: Payment, new_status: str) -> None:
    """Owners may only settle their own open payments; admins are unrestricted."""
    if is_admin(profile):
        return
    if payment.property_id not in owned_property_ids(db, profile):
        raise PermissionError("You can only pay dues for your own property.")
    if new_status != "paid" or payment.status not in OWNER_PAYABLE_STATUSES:
        raise PermissionError("Residents may only mark their pending or overdue payments as paid.")
