from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..constants import REPORT_RANGE_DAYS, STATEMENT_PERIODS
from ..models.models import Payment, Transaction
from ..schemas.schemas import TransactionRead
from ..utils.csv_utils import format_money, rows_to_csv
from .payments import OPEN_STATUSES

ZERO = Decimal("0.00")
CSV_HEADERS = ["Date", "Type", "Category", "Amount", "Description", "Payment Method", "Reference"]
PERIOD_LABELS = {"current": "Last 30 Days", "ytd": "Year to Date"}
STATEMENT_LABEL_WIDTH = 30


@dataclass
class CsvReport:
    filename: str
    content: str


def display_category(category: str) -> str:
    return category.replace("_", " ")


def resolve_range(days: int, as_of: Optional[date] = None) -> tuple[date, date]:
    if days not in REPORT_RANGE_DAYS:
        raise ValueError(f"Report range must be one of {', '.join(str(d) for d in REPORT_RANGE_DAYS)} days.")
    end = as_of or date.today()
    return end - timedelta(days=days), end


def load_transactions(session: Session, start: date, end: date) -> List[Transaction]:
    return (
        session.query(Transaction)
        .filter(Transaction.transaction_date >= start, Transaction.transaction_date <= end)
        .order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
        .all()
    )


def summarize(transactions: Iterable[Transaction]) -> dict:
    income = expenses = ZERO
    income_count = expense_count = 0
    for entry in transactions:
        if entry.type == "income":
            income += Decimal(entry.amount)
            income_count += 1
        else:
            expenses += Decimal(entry.amount)
            expense_count += 1
    return {
        "total_income": income,
        "total_expenses": expenses,
        "net_income": income - expenses,
        "income_count": income_count,
        "expense_count": expense_count,
        "transaction_count": income_count + expense_count,
    }


def monthly_rollup(transactions: Iterable[Transaction]) -> List[dict]:
    """Income and expenses per calendar month, oldest month first."""
    buckets: Dict[str, Dict[str, Decimal]] = {}
    for entry in transactions:
        key = entry.transaction_date.strftime("%Y-%m")
        bucket = buckets.setdefault(key, {"income": ZERO, "expenses": ZERO})
        if entry.type == "income":
            bucket["income"] += Decimal(entry.amount)
        else:
            bucket["expenses"] += Decimal(entry.amount)

    rollup = []
    for key in sorted(buckets):
        year, month = (int(part) for part in key.split("-"))
        data = buckets[key]
        rollup.append(
            {
                "month": key,
                "label": date(year, month, 1).strftime("%b %Y"),
                "income": data["income"],
                "expenses": data["expenses"],
                "net": data["income"] - data["expenses"],
            }
        )
    return rollup


def category_breakdown(transactions: Iterable[Transaction], transaction_type: str) -> List[dict]:
    totals: Dict[str, Dict] = OrderedDict()
    for entry in transactions:
        if entry.type != transaction_type:
            continue
        bucket = totals.setdefault(entry.category, {"amount": ZERO, "count": 0})
        bucket["amount"] += Decimal(entry.amount)
        bucket["count"] += 1

    grand_total = sum((bucket["amount"] for bucket in totals.values()), ZERO)
    breakdown = [
        {
            "category": category,
            "display_name": display_category(category),
            "amount": bucket["amount"],
            "count": bucket["count"],
            "percentage": round(float(bucket["amount"] / grand_total * 100), 1) if grand_total else 0.0,
        }
        for category, bucket in totals.items()
    ]
    breakdown.sort(key=lambda item: item["amount"], reverse=True)
    return breakdown


def _average(total: Decimal, count: int) -> Decimal:
    if not count:
        return ZERO
    return (total / count).quantize(Decimal("0.01"))


def build_financial_report(session: Session, days: int, as_of: Optional[date] = None) -> dict:
    start, end = resolve_range(days, as_of)
    transactions = load_transactions(session, start, end)
    summary = summarize(transactions)
    return {
        "days": days,
        "start_date": start,
        "end_date": end,
        "summary": summary,
        "monthly": monthly_rollup(transactions),
        "income_categories": category_breakdown(transactions, "income"),
        "expense_categories": category_breakdown(transactions, "expense"),
        "average_income": _average(summary["total_income"], summary["income_count"]),
        "average_expense": _average(summary["total_expenses"], summary["expense_count"]),
    }


def export_transactions_csv(session: Session, days: int, as_of: Optional[date] = None) -> CsvReport:
    start, end = resolve_range(days, as_of)
    rows = [
        [
            entry.transaction_date.isoformat(),
            entry.type,
            entry.category,
            format_money(entry.amount),
            entry.description or "",
            entry.payment_method or "",
            entry.reference_number or "",
        ]
        for entry in load_transactions(session, start, end)
    ]
    return CsvReport(
        filename=f"hoa-report-{days}days-{end.isoformat()}.csv",
        content=rows_to_csv(CSV_HEADERS, rows),
    )


def _money(value: Decimal) -> float:
    return float(Decimal(value).quantize(Decimal("0.01")))


def export_report_json(session: Session, days: int, as_of: Optional[date] = None) -> dict:
    start, end = resolve_range(days, as_of)
    transactions = load_transactions(session, start, end)
    summary = summarize(transactions)

    def _categories(transaction_type: str) -> List[dict]:
        return [
            {"category": item["display_name"], "amount": _money(item["amount"]), "count": item["count"]}
            for item in category_breakdown(transactions, transaction_type)
        ]

    return {
        "generatedDate": datetime.now(timezone.utc).isoformat(),
        "dateRange": f"Last {days} days",
        "summary": {
            "totalIncome": _money(summary["total_income"]),
            "totalExpenses": _money(summary["total_expenses"]),
            "transactionCount": summary["transaction_count"],
        },
        "monthlyData": [
            {
                "month": item["label"],
                "income": _money(item["income"]),
                "expenses": _money(item["expenses"]),
                "net": _money(item["net"]),
            }
            for item in monthly_rollup(transactions)
        ],
        "incomeCategories": _categories("income"),
        "expenseCategories": _categories("expense"),
        "transactions": [TransactionRead.model_validate(entry).model_dump(mode="json") for entry in transactions],
    }


# --- Statements ---


def statement_start(period: str, as_of: date) -> date:
    if period not in STATEMENT_PERIODS:
        raise ValueError("Statement period must be 'current' or 'ytd'.")
    if period == "current":
        return as_of - timedelta(days=30)
    return date(as_of.year, 1, 1)


def balance_sheet(session: Session, period: str, as_of: Optional[date] = None) -> dict:
    """Cash from the period's ledger plus receivables from every open payment."""
    as_of = as_of or date.today()
    start = statement_start(period, as_of)
    summary = summarize(load_transactions(session, start, as_of))
    receivable = (
        session.query(func.coalesce(func.sum(Payment.amount), 0))
        .filter(Payment.status.in_(OPEN_STATUSES))
        .scalar()
    )
    cash = summary["net_income"]
    accounts_receivable = Decimal(receivable or 0).quantize(Decimal("0.01"))
    total_assets = cash + accounts_receivable
    accounts_payable = ZERO
    total_liabilities = accounts_payable
    retained_earnings = total_assets - total_liabilities
    return {
        "period": period,
        "start_date": start,
        "as_of": as_of,
        "cash": cash,
        "accounts_receivable": accounts_receivable,
        "total_assets": total_assets,
        "accounts_payable": accounts_payable,
        "total_liabilities": total_liabilities,
        "retained_earnings": retained_earnings,
        "total_equity": retained_earnings,
    }


def income_statement(session: Session, period: str, as_of: Optional[date] = None) -> dict:
    as_of = as_of or date.today()
    start = statement_start(period, as_of)
    transactions = load_transactions(session, start, as_of)

    def _lines(transaction_type: str) -> List[dict]:
        return [
            {"category": item["display_name"], "amount": item["amount"]}
            for item in category_breakdown(transactions, transaction_type)
        ]

    revenue = _lines("income")
    expenses = _lines("expense")
    total_revenue = sum((line["amount"] for line in revenue), ZERO)
    total_expenses = sum((line["amount"] for line in expenses), ZERO)
    return {
        "period": period,
        "start_date": start,
        "end_date": as_of,
        "revenue": revenue,
        "total_revenue": total_revenue,
        "expenses": expenses,
        "total_expenses": total_expenses,
        "net_income": total_revenue - total_expenses,
    }


def _line(label: str, amount: Decimal, indent: int = 2) -> str:
    return f"{' ' * indent}{label.ljust(STATEMENT_LABEL_WIDTH)} ${format_money(amount)}"


def render_balance_sheet(sheet: dict) -> str:
    lines = [
        "BALANCE SHEET",
        f"As of {sheet['as_of'].strftime('%m/%d/%Y')}",
        f"Period: {PERIOD_LABELS[sheet['period']]}",
        "",
        "ASSETS",
        "  Current Assets:",
        _line("Cash", sheet["cash"], 4),
        _line("Accounts Receivable", sheet["accounts_receivable"], 4),
        _line("Total Assets", sheet["total_assets"]),
        "",
        "LIABILITIES",
        "  Current Liabilities:",
        _line("Accounts Payable", sheet["accounts_payable"], 4),
        _line("Total Liabilities", sheet["total_liabilities"]),
        "",
        "EQUITY",
        _line("Retained Earnings", sheet["retained_earnings"]),
        _line("Total Equity", sheet["total_equity"]),
        "",
        _line("Total Liabilities & Equity", sheet["total_liabilities"] + sheet["total_equity"], 0),
    ]
    return "\n".join(lines) + "\n"


def render_income_statement(statement: dict, generated: Optional[date] = None) -> str:
    generated = generated or date.today()
    lines = [
        "INCOME STATEMENT",
        f"For the period: {PERIOD_LABELS[statement['period']]}",
        f"Generated: {generated.strftime('%m/%d/%Y')}",
        "",
        "REVENUE",
    ]
    lines.extend(_line(item["category"], item["amount"]) for item in statement["revenue"])
    lines.append(_line("Total Revenue", statement["total_revenue"]))
    lines.extend(["", "EXPENSES"])
    lines.extend(_line(item["category"], item["amount"]) for item in statement["expenses"])
    lines.append(_line("Total Expenses", statement["total_expenses"]))
    lines.extend(["", _line("NET INCOME", statement["net_income"], 0)])
    return "\n".join(lines) + "\n"
