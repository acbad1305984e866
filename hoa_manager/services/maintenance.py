from __future__ import annotations

import calendar
import logging
from datetime import date
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy.orm import Session

from ..constants import MAINTENANCE_EXPENSE_CATEGORY
from ..models.models import MaintenanceRequest, Profile, Transaction
from . import access
from .audit import audit_log, snapshot
from .notifications import create_notification
from .transactions import record_transaction

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[str, set[str]] = {
    "pending": {"in_progress", "completed", "cancelled"},
    "in_progress": {"pending", "completed", "cancelled"},
    "cancelled": {"pending"},
    "completed": set(),
}

RECURRENCE_MONTHS = {
    "monthly": 1,
    "quarterly": 3,
    "annually": 12,
}

STATUS_LABELS = {
    "pending": "pending",
    "in_progress": "in progress",
    "completed": "completed",
    "cancelled": "cancelled",
}


def add_months(value: date, months: int) -> date:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def next_occurrence_date(base: date, interval: str) -> date:
    if interval not in RECURRENCE_MONTHS:
        raise ValueError(f"Unknown recurrence interval '{interval}'.")
    return add_months(base, RECURRENCE_MONTHS[interval])


def _snapshot(request: MaintenanceRequest) -> dict:
    return snapshot(request, "status", "priority", "assigned_vendor", "actual_cost", "completed_date")


def _check_recurrence(request: MaintenanceRequest) -> None:
    if request.is_recurring and not request.recurrence_interval:
        raise ValueError("Recurring requests require a recurrence interval.")


def create_request(db: Session, actor: Profile, fields: dict) -> MaintenanceRequest:
    access.check_maintenance_fields(actor, fields.keys())
    access.check_property_reference(db, actor, fields.get("property_id"))

    request = MaintenanceRequest(requested_by=actor.id, status="pending", **fields)
    _check_recurrence(request)
    db.add(request)
    db.flush()
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="maintenance.create",
        target_entity_type="MaintenanceRequest",
        target_entity_id=str(request.id),
        after={"title": request.title, "category": request.category, "priority": request.priority},
        commit=False,
    )
    db.commit()
    db.refresh(request)
    return request


def update_request(db: Session, actor: Profile, request: MaintenanceRequest, updates: dict) -> MaintenanceRequest:
    """Apply field changes, routing a status change through the transition rules."""
    if not access.can_modify_maintenance(actor, request):
        raise PermissionError("You can only edit your own pending requests.")
    access.check_maintenance_fields(actor, updates.keys())
    if "property_id" in updates:
        access.check_property_reference(db, actor, updates["property_id"])

    new_status = updates.pop("status", None)
    completed_date = updates.pop("completed_date", None)
    before = _snapshot(request)
    for field, value in updates.items():
        setattr(request, field, value)
    _check_recurrence(request)

    if new_status and new_status != request.status:
        return transition_status(
            db,
            actor,
            request,
            new_status,
            completed_date=completed_date,
            actual_cost=updates.get("actual_cost"),
        )
    if completed_date is not None:
        request.completed_date = completed_date

    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="maintenance.update",
        target_entity_type="MaintenanceRequest",
        target_entity_id=str(request.id),
        before=before,
        after=_snapshot(request),
        commit=False,
    )
    db.commit()
    db.refresh(request)
    return request


def _record_completion_expense(db: Session, actor: Profile, request: MaintenanceRequest) -> Optional[Transaction]:
    if request.actual_cost is None or Decimal(request.actual_cost) <= 0:
        return None
    existing = (
        db.query(Transaction)
        .filter(Transaction.maintenance_request_id == request.id, Transaction.type == "expense")
        .first()
    )
    if existing:
        return existing
    return record_transaction(
        db,
        transaction_type="expense",
        category=MAINTENANCE_EXPENSE_CATEGORY.get(request.category, "other_expense"),
        amount=request.actual_cost,
        transaction_date=request.completed_date or date.today(),
        created_by=actor.id,
        description=f"Maintenance: {request.title}",
        property_id=request.property_id,
        maintenance_request_id=request.id,
        reference_number=f"MR-{request.id}",
    )


def _schedule_next_occurrence(db: Session, request: MaintenanceRequest) -> Optional[MaintenanceRequest]:
    if not request.is_recurring or not request.recurrence_interval:
        return None
    base = request.scheduled_date or request.completed_date or date.today()
    follow_up = MaintenanceRequest(
        title=request.title,
        description=request.description,
        category=request.category,
        priority=request.priority,
        status="pending",
        assigned_vendor=request.assigned_vendor,
        requested_by=request.requested_by,
        property_id=request.property_id,
        estimated_cost=request.estimated_cost,
        scheduled_date=next_occurrence_date(base, request.recurrence_interval),
        is_recurring=True,
        recurrence_interval=request.recurrence_interval,
        parent_request_id=request.id,
    )
    db.add(follow_up)
    db.flush()
    logger.info("Scheduled recurring maintenance %s from %s", follow_up.id, request.id)
    return follow_up


def transition_status(
    db: Session,
    actor: Profile,
    request: MaintenanceRequest,
    new_status: str,
    *,
    completed_date: Optional[date] = None,
    actual_cost=None,
) -> MaintenanceRequest:
    if not access.is_admin(actor):
        raise PermissionError("Only admins can change the status of a maintenance request.")
    current = request.status
    if new_status not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Cannot move a maintenance request from {current} to {new_status}.")

    before = _snapshot(request)
    request.status = new_status
    if actual_cost is not None:
        request.actual_cost = actual_cost

    if new_status == "completed":
        request.completed_date = completed_date or date.today()
        _record_completion_expense(db, actor, request)
        _schedule_next_occurrence(db, request)

    if request.requested_by is not None:
        create_notification(
            db,
            title="Maintenance request updated",
            message=f'Your request "{request.title}" is now {STATUS_LABELS[new_status]}.',
            notification_type="maintenance_update",
            related_id=request.id,
            link_url="/maintenance",
            user_ids=[request.requested_by],
        )

    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="maintenance.status_change",
        target_entity_type="MaintenanceRequest",
        target_entity_id=str(request.id),
        before=before,
        after=_snapshot(request),
        commit=False,
    )
    db.commit()
    db.refresh(request)
    return request


def delete_request(db: Session, actor: Profile, request: MaintenanceRequest) -> None:
    if not access.can_modify_maintenance(actor, request):
        raise PermissionError("You can only delete your own pending requests.")
    request_id = request.id
    db.delete(request)
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="maintenance.delete",
        target_entity_type="MaintenanceRequest",
        target_entity_id=str(request_id),
        commit=False,
    )
    db.commit()
