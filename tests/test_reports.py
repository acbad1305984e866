from datetime import date
from decimal import Decimal

from fastapi.testclient import TestClient
import pytest

from hoa_manager.api.dependencies import get_db
from hoa_manager.auth.jwt import get_current_profile
from hoa_manager.main import app
from hoa_manager.services import reports

AS_OF = date(2026, 3, 31)


def _override_get_db(session):
    def _generator():
        try:
            yield session
        finally:
            pass

    return _generator


def _override_profile(profile):
    def _provider():
        return profile

    return _provider


@pytest.fixture
def ledger(create_transaction):
    create_transaction("income", "hoa_fees", "500.00", date(2026, 1, 10))
    create_transaction("income", "hoa_fees", "500.00", date(2026, 2, 10))
    create_transaction("income", "late_fees", "25.00", date(2026, 3, 12))
    create_transaction("expense", "landscaping", "300.00", date(2026, 2, 20))
    create_transaction("expense", "insurance", "900.00", date(2026, 3, 1))
    create_transaction("income", "hoa_fees", "500.00", date(2025, 6, 1))


def test_resolve_range_accepts_only_known_windows():
    assert reports.resolve_range(30, AS_OF) == (date(2026, 3, 1), AS_OF)
    with pytest.raises(ValueError):
        reports.resolve_range(45, AS_OF)


def test_financial_report_rolls_up_months_chronologically(db_session, ledger):
    report = reports.build_financial_report(db_session, 90, AS_OF)

    summary = report["summary"]
    assert summary["total_income"] == Decimal("1025.00")
    assert summary["total_expenses"] == Decimal("1200.00")
    assert summary["net_income"] == Decimal("-175.00")
    assert summary["transaction_count"] == 5

    assert [item["month"] for item in report["monthly"]] == ["2026-01", "2026-02", "2026-03"]
    assert [item["label"] for item in report["monthly"]] == ["Jan 2026", "Feb 2026", "Mar 2026"]
    assert report["monthly"][1]["net"] == Decimal("200.00")

    income = report["income_categories"]
    assert income[0]["category"] == "hoa_fees"
    assert income[0]["percentage"] == 97.6
    assert income[1]["display_name"] == "late fees"
    assert report["average_expense"] == Decimal("600.00")


def test_empty_range_yields_zeroes(db_session):
    report = reports.build_financial_report(db_session, 30, AS_OF)
    assert report["summary"]["transaction_count"] == 0
    assert report["monthly"] == []
    assert report["average_income"] == Decimal("0.00")


def test_future_dated_transactions_stay_out_of_as_of_reports(db_session, ledger, create_transaction):
    create_transaction("expense", "repairs", "4000.00", date(2026, 4, 15))

    report = reports.build_financial_report(db_session, 30, AS_OF)
    assert report["summary"]["transaction_count"] == 2
    assert report["summary"]["total_expenses"] == Decimal("900.00")

    lines = reports.export_transactions_csv(db_session, 30, AS_OF).content.strip().splitlines()
    assert not any(line.startswith("2026-04-15") for line in lines)


def test_csv_export_lists_transactions_in_range(db_session, ledger):
    export = reports.export_transactions_csv(db_session, 30, AS_OF)

    assert export.filename == "hoa-report-30days-2026-03-31.csv"
    lines = export.content.strip().splitlines()
    assert lines[0] == "Date,Type,Category,Amount,Description,Payment Method,Reference"
    assert lines[1].startswith("2026-03-12,income,late_fees,25.00")
    assert len(lines) == 3


def test_json_export_uses_float_amounts(db_session, ledger):
    payload = reports.export_report_json(db_session, 90, AS_OF)

    assert payload["dateRange"] == "Last 90 days"
    assert payload["summary"]["totalIncome"] == 1025.0
    assert payload["incomeCategories"][0] == {"category": "hoa fees", "amount": 1000.0, "count": 2}
    assert len(payload["transactions"]) == 5


def test_balance_sheet_counts_open_payments_as_receivable(db_session, ledger, create_property, create_payment):
    prop = create_property()
    create_payment(prop, amount="250.00")
    create_payment(prop, amount="100.00", status="overdue")
    create_payment(prop, amount="75.00", status="paid")

    sheet = reports.balance_sheet(db_session, "ytd", AS_OF)

    assert sheet["start_date"] == date(2026, 1, 1)
    assert sheet["cash"] == Decimal("-175.00")
    assert sheet["accounts_receivable"] == Decimal("350.00")
    assert sheet["total_assets"] == Decimal("175.00")
    assert sheet["total_equity"] == sheet["total_assets"] - sheet["total_liabilities"]


def test_income_statement_renders_text_layout(db_session, ledger):
    statement = reports.income_statement(db_session, "current", AS_OF)

    assert [line["category"] for line in statement["revenue"]] == ["late fees"]
    assert statement["net_income"] == Decimal("-875.00")

    text = reports.render_income_statement(statement, generated=AS_OF)
    assert text.startswith("INCOME STATEMENT\nFor the period: Last 30 Days\nGenerated: 03/31/2026\n")
    assert "  " + "Total Revenue".ljust(30) + " $25.00" in text
    assert "NET INCOME".ljust(30) + " $-875.00" in text


def test_statement_rejects_unknown_period(db_session):
    with pytest.raises(ValueError):
        reports.balance_sheet(db_session, "quarter", AS_OF)


def test_report_endpoints_return_downloads(db_session, ledger, create_profile):
    admin = create_profile(email="admin@example.com", role="admin")

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_current_profile] = _override_profile(admin)
    client = TestClient(app)
    try:
        csv_response = client.get("/reports/export/csv", params={"days": 30, "as_of": "2026-03-31"})
        assert csv_response.status_code == 200
        assert csv_response.headers["content-type"].startswith("text/csv")
        assert "hoa-report-30days-2026-03-31.csv" in csv_response.headers["content-disposition"]

        sheet = client.get("/reports/statements/balance-sheet/export", params={"period": "ytd", "as_of": "2026-03-31"})
        assert sheet.status_code == 200
        assert sheet.text.startswith("BALANCE SHEET\nAs of 03/31/2026\nPeriod: Year to Date\n")

        invalid = client.get("/reports/financial", params={"days": 7})
        assert invalid.status_code == 400
    finally:
        client.close()
        app.dependency_overrides.clear()
