from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ..constants import EXPENSE_CATEGORIES, INCOME_CATEGORIES, TRANSACTION_TYPES
from ..models.models import Transaction

CATEGORIES_BY_TYPE = {
    "income": INCOME_CATEGORIES,
    "expense": EXPENSE_CATEGORIES,
}

ZERO = Decimal("0.00")


@dataclass
class LedgerTotals:
    income: Decimal
    expenses: Decimal

    @property
    def balance(self) -> Decimal:
        return self.income - self.expenses


def validate_category(transaction_type: str, category: str) -> None:
    if transaction_type not in TRANSACTION_TYPES:
        raise ValueError(f"Unknown transaction type '{transaction_type}'.")
    if category not in CATEGORIES_BY_TYPE[transaction_type]:
        raise ValueError(f"Category '{category}' is not valid for {transaction_type} transactions.")


def validate_amount(amount) -> Decimal:
    value = Decimal(amount)
    if value <= 0:
        raise ValueError("Amount must be greater than zero.")
    return value.quantize(Decimal("0.01"))


def compute_totals(transactions: Iterable[Transaction]) -> LedgerTotals:
    income = ZERO
    expenses = ZERO
    for entry in transactions:
        if entry.type == "income":
            income += Decimal(entry.amount)
        elif entry.type == "expense":
            expenses += Decimal(entry.amount)
    return LedgerTotals(income=income, expenses=expenses)


def record_transaction(
    db: Session,
    *,
    transaction_type: str,
    category: str,
    amount,
    transaction_date,
    created_by: Optional[int] = None,
    **fields,
) -> Transaction:
    """Validate and add a ledger entry to the session (the caller commits)."""
    validate_category(transaction_type, category)
    entry = Transaction(
        type=transaction_type,
        category=category,
        amount=validate_amount(amount),
        transaction_date=transaction_date,
        created_by=created_by,
        **fields,
    )
    db.add(entry)
    db.flush()
    return entry


def apply_update(entry: Transaction, updates: dict) -> Transaction:
    new_type = updates.get("type", entry.type)
    new_category = updates.get("category", entry.category)
    if "type" in updates or "category" in updates:
        validate_category(new_type, new_category)
    if "amount" in updates:
        updates["amount"] = validate_amount(updates["amount"])
    for field, value in updates.items():
        setattr(entry, field, value)
    return entry
