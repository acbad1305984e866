"""Bootstrap an administrator for a fresh HOA database.

Run: `python -m hoa_manager.manage_create_admin --email admin@example.com --password changeme`
"""

import argparse
import sys
from contextlib import contextmanager
from typing import Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from hoa_manager.config import SessionLocal
from hoa_manager.constants import ROLE_ADMIN
from hoa_manager.models.models import User
from hoa_manager.services.accounts import create_account, find_user_by_email


@contextmanager
def session_scope():
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def ensure_admin(db: Session, email: str, password: str, full_name: str) -> Tuple[User, bool]:
    """Return the account for ``email``, creating it as an admin when missing."""
    existing = find_user_by_email(db, email)
    if existing:
        return existing, False
    user = create_account(db, email=email, password=password, full_name=full_name, role=ROLE_ADMIN)
    return user, True


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Create the initial admin account")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--full-name", default="HOA Administrator")
    args = parser.parse_args(argv)

    if len(args.password) < 8:
        print("Password must be at least 8 characters.", file=sys.stderr)
        return 2

    with session_scope() as db:
        user, created = ensure_admin(db, args.email, args.password, args.full_name)
        if not created:
            role = user.profile.role if user.profile else "none"
            print(f"Account {args.email} already exists (role={role}); nothing changed.")
            return 1
        print(f"Created admin account with id {user.id}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
