import sys
from collections.abc import Callable, Generator
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from hoa_manager.config import Base  # noqa: E402
import hoa_manager.config as app_config  # noqa: E402
import hoa_manager.main as app_main  # noqa: E402
from hoa_manager.core.rate_limit import limiter  # noqa: E402
# Import the full models module so every table registers with Base metadata.
from hoa_manager.models import models as _all_models  # noqa: E402,F401
from hoa_manager.models.models import MaintenanceRequest, Payment, Profile, Property, Transaction  # noqa: E402
from hoa_manager.services.accounts import create_account  # noqa: E402

DEFAULT_PASSWORD = "changeme123"


@pytest.fixture(scope="session", autouse=True)
def _configure_global_test_db(tmp_path_factory):
    """Point the app-wide SessionLocal/engine at a throwaway DB for the audit middleware."""
    db_dir = tmp_path_factory.mktemp("globaldb")
    db_path = db_dir / "app.db"
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    app_config.SessionLocal = SessionLocal
    app_config.engine = engine
    app_main.SessionLocal = SessionLocal
    app_main.engine = engine
    yield
    engine.dispose()


@pytest.fixture(autouse=True)
def _isolate_side_effects(tmp_path, monkeypatch):
    monkeypatch.setattr(app_config.settings, "email_backend", "local", raising=False)
    monkeypatch.setattr(app_config.settings, "email_output_dir", str(tmp_path / "emails"), raising=False)
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def db_session(tmp_path) -> Generator[Session, None, None]:
    """Provide a fresh SQLite database for each test."""
    db_path = tmp_path / "test.db"
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def create_profile(db_session: Session) -> Callable[..., Profile]:
    def _create(
        email: str = "resident@example.com",
        role: str = "resident",
        full_name: Optional[str] = None,
    ) -> Profile:
        user = create_account(
            db_session,
            email=email,
            password=DEFAULT_PASSWORD,
            full_name=full_name or email.split("@", 1)[0].title(),
            role=role,
        )
        db_session.commit()
        return db_session.get(Profile, user.id)

    return _create


@pytest.fixture
def create_property(db_session: Session) -> Callable[..., Property]:
    counter = {"value": 0}

    def _create(owner: Optional[Profile] = None, unit_number: Optional[str] = None) -> Property:
        counter["value"] += 1
        prop = Property(
            unit_number=unit_number or f"{100 + counter['value']}",
            address=f"{counter['value']} Maple Court",
            owner_id=owner.id if owner else None,
        )
        db_session.add(prop)
        db_session.commit()
        return prop

    return _create


@pytest.fixture
def create_payment(db_session: Session) -> Callable[..., Payment]:
    def _create(
        prop: Property,
        amount: str = "250.00",
        due_date: Optional[date] = None,
        status: str = "pending",
        payment_type: str = "monthly_dues",
    ) -> Payment:
        payment = Payment(
            property_id=prop.id,
            amount=Decimal(amount),
            payment_type=payment_type,
            due_date=due_date or date.today() + timedelta(days=14),
            status=status,
        )
        db_session.add(payment)
        db_session.commit()
        return payment

    return _create


@pytest.fixture
def create_transaction(db_session: Session) -> Callable[..., Transaction]:
    def _create(
        transaction_type: str = "income",
        category: str = "hoa_fees",
        amount: str = "100.00",
        transaction_date: Optional[date] = None,
        **fields,
    ) -> Transaction:
        entry = Transaction(
            type=transaction_type,
            category=category,
            amount=Decimal(amount),
            transaction_date=transaction_date or date.today(),
            **fields,
        )
        db_session.add(entry)
        db_session.commit()
        return entry

    return _create


@pytest.fixture
def create_maintenance(db_session: Session) -> Callable[..., MaintenanceRequest]:
    def _create(requester: Profile, title: str = "Broken gate", status: str = "pending", **fields) -> MaintenanceRequest:
        fields.setdefault("category", "repairs")
        request = MaintenanceRequest(title=title, status=status, requested_by=requester.id, **fields)
        db_session.add(request)
        db_session.commit()
        return request

    return _create
