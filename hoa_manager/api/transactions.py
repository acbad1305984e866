from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, get_or_404
from ..auth.jwt import get_current_profile, require_admin
from ..models.models import Profile, Transaction
from ..schemas.schemas import TransactionCreate, TransactionList, TransactionRead, TransactionUpdate
from ..services import access
from ..services import transactions as ledger
from ..services.audit import audit_log, snapshot

router = APIRouter()


def _snapshot(entry: Transaction) -> dict:
    return snapshot(entry, "type", "category", "amount", "transaction_date")


@router.get("/", response_model=TransactionList)
def list_transactions(
    type: Optional[str] = Query(None, pattern="^(income|expense)$"),
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
) -> TransactionList:
    query = access.scope_transactions(db.query(Transaction), db, profile)
    if type:
        query = query.filter(Transaction.type == type)
    items = query.order_by(Transaction.transaction_date.desc(), Transaction.id.desc()).all()
    totals = ledger.compute_totals(items)
    return TransactionList(
        items=[TransactionRead.model_validate(item) for item in items],
        total_income=totals.income,
        total_expenses=totals.expenses,
        balance=totals.balance,
    )


@router.post("/", response_model=TransactionRead, status_code=201)
def create_transaction(
    payload: TransactionCreate,
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> Transaction:
    fields = payload.model_dump()
    try:
        entry = ledger.record_transaction(
            db,
            transaction_type=fields.pop("type"),
            category=fields.pop("category"),
            amount=fields.pop("amount"),
            transaction_date=fields.pop("transaction_date"),
            created_by=actor.id,
            **fields,
        )
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="transaction.create",
        target_entity_type="Transaction",
        target_entity_id=str(entry.id),
        after=_snapshot(entry),
        commit=False,
    )
    db.commit()
    db.refresh(entry)
    return entry


@router.patch("/{transaction_id}", response_model=TransactionRead)
def update_transaction(
    transaction_id: int,
    payload: TransactionUpdate,
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> Transaction:
    entry = get_or_404(db, Transaction, transaction_id)
    before = _snapshot(entry)
    try:
        ledger.apply_update(entry, payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="transaction.update",
        target_entity_type="Transaction",
        target_entity_id=str(entry.id),
        before=before,
        after=_snapshot(entry),
        commit=False,
    )
    db.commit()
    db.refresh(entry)
    return entry


@router.delete("/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> Response:
    entry = get_or_404(db, Transaction, transaction_id)
    before = _snapshot(entry)
    db.delete(entry)
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="transaction.delete",
        target_entity_type="Transaction",
        target_entity_id=str(transaction_id),
        before=before,
        commit=False,
    )
    db.commit()
    return Response(status_code=204)
