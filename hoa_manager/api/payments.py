import json
import logging
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.orm import Session, joinedload

from ..api.dependencies import get_db
from ..auth.jwt import get_current_profile, require_admin
from ..config import settings
from ..core.errors import http_error_for
from ..models.models import Payment, Profile, Property
from ..schemas.schemas import (
    CheckoutSessionResponse,
    PaymentCreate,
    PaymentList,
    PaymentRead,
    PaymentStatusUpdate,
    PaymentUpdate,
)
from ..services import access
from ..services import payments as payment_service
from ..services.audit import audit_log

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_visible_payment(db: Session, profile: Profile, payment_id: int) -> Payment:
    payment = db.get(Payment, payment_id)
    if not payment or not access.can_view_payment(db, profile, payment):
        raise HTTPException(status_code=404, detail="Payment not found")
    return payment


@router.get("/", response_model=PaymentList)
def list_payments(
    status: Optional[str] = Query(None, pattern="^(pending|paid|overdue|cancelled)$"),
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
) -> PaymentList:
    query = access.scope_payments(db.query(Payment).options(joinedload(Payment.property_record)), db, profile)
    visible = query.order_by(Payment.due_date.desc(), Payment.id.desc()).all()
    totals = payment_service.compute_totals(visible)
    items = [payment for payment in visible if not status or payment.status == status]
    return PaymentList(
        items=[PaymentRead.model_validate(item) for item in items],
        total_outstanding=totals.outstanding,
        total_paid=totals.paid,
    )


@router.post("/", response_model=PaymentRead, status_code=201)
def create_payment(
    payload: PaymentCreate,
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> Payment:
    if db.get(Property, payload.property_id) is None:
        raise HTTPException(status_code=400, detail="Property not found")
    payment = Payment(status="pending", **payload.model_dump())
    db.add(payment)
    db.commit()
    db.refresh(payment)
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="payment.create",
        target_entity_type="Payment",
        target_entity_id=str(payment.id),
        after={"property_id": payment.property_id, "amount": payment.amount, "due_date": payment.due_date},
    )
    return payment


@router.post("/mark-overdue")
def run_overdue_sweep(
    db: Session = Depends(get_db),
    _: Profile = Depends(require_admin),
) -> dict:
    return {"updated": payment_service.mark_overdue_payments(db)}


@router.post("/reminders")
def run_payment_reminders(
    days_ahead: Optional[int] = Query(None, ge=0, le=60),
    db: Session = Depends(get_db),
    _: Profile = Depends(require_admin),
) -> dict:
    return {"sent": payment_service.send_payment_reminders(db, days_ahead=days_ahead)}


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, bool]:
    if not settings.stripe_webhook_secret:
        raise HTTPException(status_code=503, detail="Stripe webhook secret is not configured")

    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    try:
        stripe.Webhook.construct_event(
            payload=payload,
            sig_header=sig_header,
            secret=settings.stripe_webhook_secret,
        )
        # Handle the verified body as plain JSON.
        event = json.loads(payload)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError:
        raise HTTPException(status_code=400, detail="Invalid signature")

    payment_service.handle_stripe_event(db, event)
    return {"received": True}


@router.get("/{payment_id}", response_model=PaymentRead)
def get_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
) -> Payment:
    return _get_visible_payment(db, profile, payment_id)


@router.patch("/{payment_id}", response_model=PaymentRead)
def update_payment(
    payment_id: int,
    payload: PaymentUpdate,
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> Payment:
    payment = _get_visible_payment(db, actor, payment_id)
    updates = payload.model_dump(exclude_unset=True)
    locked = sorted({"amount", "payment_type"} & set(updates))
    if payment.status == "paid" and locked:
        raise HTTPException(status_code=400, detail=f"Cannot change {', '.join(locked)} of a paid payment.")
    before = {field: getattr(payment, field) for field in updates}
    for field, value in updates.items():
        setattr(payment, field, value)
    db.commit()
    db.refresh(payment)
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="payment.update",
        target_entity_type="Payment",
        target_entity_id=str(payment.id),
        before=before,
        after=updates,
    )
    return payment


@router.post("/{payment_id}/status", response_model=PaymentRead)
def change_payment_status(
    payment_id: int,
    payload: PaymentStatusUpdate,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
) -> Payment:
    payment = _get_visible_payment(db, profile, payment_id)
    try:
        return payment_service.transition_status(
            db,
            profile,
            payment,
            payload.status,
            payment_method=payload.payment_method,
            payment_date=payload.payment_date,
            transaction_id=payload.transaction_id,
        )
    except (PermissionError, ValueError) as exc:
        db.rollback()
        raise http_error_for(exc) from exc


@router.post("/{payment_id}/checkout", response_model=CheckoutSessionResponse)
def create_checkout_session(
    payment_id: int,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
) -> CheckoutSessionResponse:
    payment = _get_visible_payment(db, profile, payment_id)
    try:
        session = payment_service.create_checkout_session(db, profile, payment)
    except RuntimeError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except (PermissionError, ValueError) as exc:
        raise http_error_for(exc) from exc
    except stripe.StripeError as exc:
        logger.exception("Stripe Checkout session failed for payment %s", payment_id)
        raise HTTPException(status_code=502, detail="Unable to create Stripe Checkout session") from exc
    return CheckoutSessionResponse(session_id=session.id, checkout_url=session.url)


@router.delete("/{payment_id}", status_code=204)
def delete_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> Response:
    payment = _get_visible_payment(db, actor, payment_id)
    before = {"status": payment.status, "amount": payment.amount}
    db.delete(payment)
    db.commit()
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="payment.delete",
        target_entity_type="Payment",
        target_entity_id=str(payment_id),
        before=before,
    )
    return Response(status_code=204)
