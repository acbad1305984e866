#!/usr/bin/env python3
"""Flag overdue payments and notify owners of dues coming up."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from hoa_manager.config import SessionLocal  # noqa: E402
from hoa_manager.services.payments import mark_overdue_payments, send_payment_reminders  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the overdue sweep and send payment reminders.")
    parser.add_argument("--days-ahead", type=int, default=None, help="Remind about payments due within N days")
    args = parser.parse_args()

    with SessionLocal() as session:
        overdue = mark_overdue_payments(session)
        sent = send_payment_reminders(session, days_ahead=args.days_ahead)
    print(f"Marked {overdue} payments overdue; sent {sent} reminders.")


if __name__ == "__main__":
    main()
