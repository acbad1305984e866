#!/usr/bin/env python
"""
Seed script to populate the database with sample data for local development.

Usage:
    python scripts/seed_data.py --units 6
"""

import argparse
import sys
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from hoa_manager.config import Base, SessionLocal, engine  # noqa: E402
from hoa_manager.constants import ROLE_ADMIN, ROLE_RESIDENT  # noqa: E402
from hoa_manager.models.models import (  # noqa: E402
    Announcement,
    MaintenanceRequest,
    Payment,
    Profile,
    Property,
    Transaction,
    User,
)
from hoa_manager.services.accounts import create_account, find_user_by_email  # noqa: E402
from hoa_manager.services.payments import record_ledger_entry  # noqa: E402
from hoa_manager.services.transactions import record_transaction  # noqa: E402

DEMO_PASSWORD = "demo123"
MONTHLY_DUES = Decimal("250.00")


def ensure_account(session, email: str, full_name: str, role: str) -> Profile:
    user = find_user_by_email(session, email)
    if user is None:
        user = create_account(session, email=email, password=DEMO_PASSWORD, full_name=full_name, role=role)
    return session.get(Profile, user.id)


def create_properties(session, owner: Profile, count: int) -> list[Property]:
    created = []
    for index in range(1, count + 1):
        unit = f"{100 + index}"
        existing = session.query(Property).filter(Property.unit_number == unit).first()
        if existing:
            created.append(existing)
            continue
        prop = Property(
            unit_number=unit,
            address=f"{100 + index} Maple Court",
            owner_id=owner.id if index == 1 else None,
            square_footage=1100 + index * 50,
            bedrooms=2 + index % 2,
            bathrooms=Decimal("2.0"),
        )
        session.add(prop)
        created.append(prop)
    session.flush()
    return created


def create_payments(session, admin: Profile, properties: list[Property]) -> None:
    today = date.today()
    for prop in properties:
        if session.query(Payment).filter(Payment.property_id == prop.id).count():
            continue
        last_month = Payment(
            property_id=prop.id,
            amount=MONTHLY_DUES,
            payment_type="monthly_dues",
            due_date=today - timedelta(days=30),
            status="paid",
            payment_date=today - timedelta(days=32),
            payment_method="check",
        )
        session.add(last_month)
        session.flush()
        record_ledger_entry(session, last_month, admin.id)

        session.add(
            Payment(
                property_id=prop.id,
                amount=MONTHLY_DUES,
                payment_type="monthly_dues",
                due_date=today + timedelta(days=5),
                status="pending",
            )
        )


def create_ledger(session, admin: Profile) -> None:
    if session.query(Transaction).filter(Transaction.payment_id.is_(None)).count():
        return
    today = date.today()
    record_transaction(
        session,
        transaction_type="expense",
        category="insurance",
        amount=Decimal("1800.00"),
        transaction_date=today - timedelta(days=20),
        created_by=admin.id,
        description="Annual liability insurance",
    )
    record_transaction(
        session,
        transaction_type="income",
        category="facility_rental",
        amount=Decimal("150.00"),
        transaction_date=today - timedelta(days=10),
        created_by=admin.id,
        description="Clubhouse rental",
    )


def create_maintenance(session, resident: Profile, properties: list[Property]) -> None:
    if session.query(MaintenanceRequest).count():
        return
    session.add_all(
        [
            MaintenanceRequest(
                title="Leaking faucet in kitchen",
                description="Slow drip under the sink.",
                category="repairs",
                priority="medium",
                status="pending",
                requested_by=resident.id,
                property_id=properties[0].id if properties else None,
            ),
            MaintenanceRequest(
                title="Pool filter service",
                category="pool",
                priority="low",
                status="pending",
                requested_by=resident.id,
                is_recurring=True,
                recurrence_interval="quarterly",
                scheduled_date=date.today() + timedelta(days=14),
            ),
        ]
    )


def create_announcements(session, admin: Profile) -> None:
    if session.query(Announcement).count():
        return
    session.add(
        Announcement(
            title="Welcome to the resident portal",
            content="Pay dues, file maintenance requests, and read community news in one place.",
            priority="normal",
            published_by=admin.id,
        )
    )


def seed_database(units: int) -> None:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        admin = ensure_account(session, "admin@hoa.com", "Board Administrator", ROLE_ADMIN)
        resident = ensure_account(session, "resident@hoa.com", "Demo Resident", ROLE_RESIDENT)

        properties = create_properties(session, resident, max(units, 1))
        create_payments(session, admin, properties)
        create_ledger(session, admin)
        create_maintenance(session, resident, properties)
        create_announcements(session, admin)

        session.commit()
        accounts = session.query(User).count()
        print(f"Seed complete. {accounts} accounts, {len(properties)} units (password: '{DEMO_PASSWORD}').")


def main():
    parser = argparse.ArgumentParser(description="Seed the HOA database with sample data.")
    parser.add_argument("--units", type=int, default=6, help="Number of property units to create")
    args = parser.parse_args()
    seed_database(args.units)


if __name__ == "__main__":
    main()
