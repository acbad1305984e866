from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.models import MaintenanceRequest, Payment, Profile, Transaction
from . import access
from .transactions import compute_totals

RECENT_LIMIT = 5


def build_dashboard(db: Session, profile: Profile) -> dict:
    """Summarise the records visible to ``profile`` for the landing page."""
    transactions_query = access.scope_transactions(db.query(Transaction), db, profile)
    totals = compute_totals(transactions_query.all())
    recent_transactions = (
        transactions_query.order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
        .limit(RECENT_LIMIT)
        .all()
    )

    pending_total = (
        access.scope_payments(db.query(func.coalesce(func.sum(Payment.amount), 0)), db, profile)
        .filter(Payment.status == "pending")
        .scalar()
    )

    maintenance_query = access.scope_maintenance(db.query(MaintenanceRequest), db, profile)
    status_counts = dict(
        maintenance_query.with_entities(MaintenanceRequest.status, func.count(MaintenanceRequest.id))
        .group_by(MaintenanceRequest.status)
        .all()
    )
    recent_maintenance = (
        maintenance_query.order_by(MaintenanceRequest.created_at.desc(), MaintenanceRequest.id.desc())
        .limit(RECENT_LIMIT)
        .all()
    )

    return {
        "greeting_name": profile.full_name or profile.email,
        "role": profile.role,
        "total_income": totals.income,
        "total_expenses": totals.expenses,
        "balance": totals.balance,
        "pending_payments_total": Decimal(pending_total or 0).quantize(Decimal("0.01")),
        "pending_maintenance": status_counts.get("pending", 0),
        "in_progress_maintenance": status_counts.get("in_progress", 0),
        "recent_transactions": recent_transactions,
        "recent_maintenance": recent_maintenance,
    }
