from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional

import stripe
from sqlalchemy.orm import Session, joinedload

from ..config import settings
from ..constants import PAYMENT_TYPE_INCOME_CATEGORY
from ..models.models import Payment, Profile, Property, Transaction, utcnow
from . import access
from .audit import audit_log
from .notifications import create_notification
from .transactions import record_transaction

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[str, set[str]] = {
    "pending": {"paid", "overdue", "cancelled"},
    "overdue": {"paid", "cancelled"},
    "paid": set(),
    "cancelled": set(),
}

OPEN_STATUSES = ("pending", "overdue")

PAYMENT_TYPE_LABELS = {
    "monthly_dues": "Monthly dues",
    "special_assessment": "Special assessment",
    "fine": "Fine",
    "other": "Payment",
}


@dataclass
class PaymentTotals:
    outstanding: Decimal
    paid: Decimal


def compute_totals(payments: Iterable[Payment]) -> PaymentTotals:
    outstanding = Decimal("0.00")
    paid = Decimal("0.00")
    for payment in payments:
        if payment.status in OPEN_STATUSES:
            outstanding += Decimal(payment.amount)
        elif payment.status == "paid":
            paid += Decimal(payment.amount)
    return PaymentTotals(outstanding=outstanding, paid=paid)


def ledger_reference(payment: Payment) -> str:
    return payment.transaction_id or f"PAY-{payment.id}"


def record_ledger_entry(db: Session, payment: Payment, actor_id: Optional[int] = None) -> Transaction:
    """Insert the income transaction for a paid payment exactly once."""
    existing = db.query(Transaction).filter(Transaction.payment_id == payment.id).first()
    if existing:
        return existing
    label = PAYMENT_TYPE_LABELS.get(payment.payment_type, "Payment")
    unit = payment.unit_number
    return record_transaction(
        db,
        transaction_type="income",
        category=PAYMENT_TYPE_INCOME_CATEGORY.get(payment.payment_type, "other_income"),
        amount=payment.amount,
        transaction_date=payment.payment_date or date.today(),
        created_by=actor_id,
        description=f"{label} - Unit {unit}" if unit else label,
        property_id=payment.property_id,
        payment_id=payment.id,
        payment_method=payment.payment_method,
        reference_number=ledger_reference(payment),
    )


def transition_status(
    db: Session,
    actor: Optional[Profile],
    payment: Payment,
    new_status: str,
    *,
    payment_method: Optional[str] = None,
    payment_date: Optional[date] = None,
    transaction_id: Optional[str] = None,
) -> Payment:
    """Move a payment to ``new_status``.

    ``actor`` is None for system callers such as the Stripe webhook. Settling a
    payment that is already paid is a no-op so retried callbacks stay idempotent.
    """
    current = payment.status
    if new_status == current == "paid":
        if actor is not None and not access.can_view_payment(db, actor, payment):
            raise PermissionError("You can only pay dues for your own property.")
        record_ledger_entry(db, payment, actor.id if actor else None)
        db.commit()
        return payment
    if actor is not None:
        access.check_payment_transition(db, actor, payment, new_status)
    if new_status not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Cannot move a payment from {current} to {new_status}.")

    before = {"status": current, "payment_date": payment.payment_date, "payment_method": payment.payment_method}
    payment.status = new_status
    if new_status == "paid":
        payment.payment_date = payment_date or date.today()
        payment.payment_method = payment_method or payment.payment_method
        if transaction_id:
            payment.transaction_id = transaction_id
        db.flush()
        record_ledger_entry(db, payment, actor.id if actor else None)

    audit_log(
        db_session=db,
        actor_user_id=actor.id if actor else None,
        action=f"payment.{new_status}",
        target_entity_type="Payment",
        target_entity_id=str(payment.id),
        before=before,
        after={"status": payment.status, "payment_date": payment.payment_date, "payment_method": payment.payment_method},
        commit=False,
    )
    db.commit()
    db.refresh(payment)
    return payment


def mark_overdue_payments(db: Session, today: Optional[date] = None) -> int:
    """Flip pending payments whose due date has passed to overdue."""
    today = today or date.today()
    overdue = (
        db.query(Payment)
        .filter(Payment.status == "pending", Payment.due_date < today)
        .all()
    )
    for payment in overdue:
        payment.status = "overdue"
    if overdue:
        db.commit()
        logger.info("Marked %s payments overdue", len(overdue))
    return len(overdue)


def _reminded_today(payment: Payment, now: datetime) -> bool:
    if payment.reminder_sent_at is None:
        return False
    return payment.reminder_sent_at.date() == now.date()


def send_payment_reminders(
    db: Session,
    *,
    today: Optional[date] = None,
    days_ahead: Optional[int] = None,
) -> int:
    """Notify owners of payments due soon or overdue, at most once per payment per day."""
    today = today or date.today()
    days_ahead = settings.payment_reminder_days if days_ahead is None else days_ahead
    horizon = today + timedelta(days=days_ahead)
    now = utcnow()

    candidates: List[Payment] = (
        db.query(Payment)
        .options(joinedload(Payment.property_record))
        .filter(Payment.status.in_(OPEN_STATUSES), Payment.due_date <= horizon)
        .all()
    )
    sent = 0
    for payment in candidates:
        owner_id = payment.property_record.owner_id if payment.property_record else None
        if owner_id is None or _reminded_today(payment, now):
            continue
        overdue = payment.status == "overdue" or payment.due_date < today
        label = PAYMENT_TYPE_LABELS.get(payment.payment_type, "Payment")
        if overdue:
            title = "Payment overdue"
            message = f"{label} of ${Decimal(payment.amount):.2f} was due on {payment.due_date.isoformat()}."
        else:
            title = "Payment due soon"
            message = f"{label} of ${Decimal(payment.amount):.2f} is due on {payment.due_date.isoformat()}."
        create_notification(
            db,
            title=title,
            message=message,
            notification_type="payment_reminder",
            related_id=payment.id,
            link_url="/payments",
            user_ids=[owner_id],
        )
        payment.reminder_sent_at = now
        sent += 1
    if sent:
        db.commit()
        logger.info("Sent %s payment reminders", sent)
    return sent


# --- Stripe Checkout ---


def to_cents(amount) -> int:
    return int((Decimal(amount) * Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def create_checkout_session(db: Session, actor: Profile, payment: Payment) -> stripe.checkout.Session:
    if not settings.stripe_api_key:
        raise RuntimeError("Stripe is not configured")
    access.check_payment_transition(db, actor, payment, "paid")
    if payment.status not in OPEN_STATUSES:
        raise ValueError("Only pending or overdue payments can be paid online.")

    stripe.api_key = settings.stripe_api_key
    prop: Optional[Property] = payment.property_record
    metadata = {
        "payment_id": str(payment.id),
        "property_id": str(payment.property_id),
        "initiated_by_user_id": str(actor.id),
    }
    return stripe.checkout.Session.create(
        mode="payment",
        payment_method_types=["card"],
        line_items=[
            {
                "price_data": {
                    "currency": settings.payment_currency,
                    "unit_amount": to_cents(payment.amount),
                    "product_data": {
                        "name": f"{PAYMENT_TYPE_LABELS.get(payment.payment_type, 'Payment')} #{payment.id}",
                        "description": prop.address if prop else "HOA dues",
                    },
                },
                "quantity": 1,
            }
        ],
        customer_email=actor.email,
        metadata=metadata,
        payment_intent_data={"metadata": metadata},
        success_url=f"{settings.frontend_url}/payments?paymentId={payment.id}&status=success",
        cancel_url=f"{settings.frontend_url}/payments?paymentId={payment.id}&status=cancelled",
    )


def settle_from_processor(db: Session, payment_id: int, processor_reference: str) -> Optional[Payment]:
    """Mark a payment paid from a processor callback; repeated callbacks are harmless."""
    payment = db.get(Payment, payment_id)
    if payment is None:
        logger.warning("Processor callback for unknown payment %s", payment_id)
        return None
    if payment.status == "cancelled":
        logger.warning("Processor callback for cancelled payment %s ignored", payment_id)
        return payment
    if payment.status != "paid":
        transition_status(
            db,
            None,
            payment,
            "paid",
            payment_method="online",
            transaction_id=processor_reference,
        )
    else:
        record_ledger_entry(db, payment)
        db.commit()
    return payment


def handle_stripe_event(db: Session, event: dict) -> Optional[Payment]:
    event_type = event.get("type")
    event_object = (event.get("data") or {}).get("object") or {}
    metadata = event_object.get("metadata") or {}
    if event_type == "checkout.session.completed":
        reference = event_object.get("payment_intent")
    elif event_type == "payment_intent.succeeded":
        reference = event_object.get("id")
    else:
        return None
    try:
        payment_id = int(metadata.get("payment_id"))
    except (TypeError, ValueError):
        return None
    if not reference:
        return None
    return settle_from_processor(db, payment_id, reference)
