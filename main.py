#!/usr/bin/env python3
"""
ShopDesk -- administrative command line.

Usage:
  python main.py seed
  python main.py create-user admin@example.com --role ADMIN
  python main.py create-user bob@example.com --first-name Bob
  python main.py purge-sessions

Environment variables:
  SECRET_KEY     Required unless DEBUG=true (see core/config.py).
  DATABASE_URL   SQLAlchemy URL of the auth database. Defaults to auth/shopdesk_auth.db.
"""

import argparse
import getpass
import sys

from auth.errors import EmailInUse
from auth.models import Role, User
from auth.service import SessionService
from auth.store import RefreshTokenStore, UserStore
from auth.tokens import TokenIssuer, hash_password
from core.config import get_settings

# Demo accounts for a fresh development database. Never run `seed` against
# production -- these passwords are public.
_SEED_USERS = [
    ("admin@example.com", "Admin123!", "Admin", "User", Role.ADMIN),
    ("staff@example.com", "Staff123!", "Staff", "User", Role.STAFF),
    ("customer@example.com", "Customer123!", "Customer", "User", Role.CUSTOMER),
]


def _open_stores() -> tuple[UserStore, RefreshTokenStore]:
    settings = get_settings()
    users = UserStore(settings.database_url)
    return users, RefreshTokenStore(users.engine)


def seed(users: UserStore) -> int:
    """Create the demo accounts that do not exist yet. Returns how many were created."""
    created = 0
    for email, password, first_name, last_name, role in _SEED_USERS:
        if users.get_by_email(email) is not None:
            print(f"  {email} already exists, skipped.")
            continue
        users.create_user(
            User(
                email=email,
                hashed_password=hash_password(password),
                role=role,
                first_name=first_name,
                last_name=last_name,
            )
        )
        print(f"  Created {role.value.lower()} user: {email}")
        created += 1
    return created


def create_user(users: UserStore, email: str, role: Role, first_name: str | None, last_name: str | None) -> int:
    password = getpass.getpass(f"Password for {email}: ")
    if len(password) < 8:
        print("  [!] Password must be at least 8 characters.")
        return 1
    if getpass.getpass("Confirm password: ") != password:
        print("  [!] Passwords do not match.")
        return 1
    try:
        user = users.create_user(
            User(
                email=email,
                hashed_password=hash_password(password),
                role=role,
                first_name=first_name,
                last_name=last_name,
            )
        )
    except EmailInUse:
        print(f"  [!] A user with email {email} already exists.")
        return 1
    print(f"  Created {user.role.value} user {user.email} (id={user.id})")
    return 0


def purge_sessions(users: UserStore, refresh_tokens: RefreshTokenStore) -> int:
    """Run the expired refresh token sweep once and return the number removed."""
    settings = get_settings()
    service = SessionService(users, refresh_tokens, TokenIssuer.from_settings(settings, refresh_tokens))
    return service.purge_expired_sessions()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="shopdesk",
        description="ShopDesk account and session administration.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  DEBUG=true python main.py seed
  python main.py create-user ops@example.com --role STAFF
  python main.py purge-sessions
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("seed", help="Create the demo admin, staff and customer accounts")

    create = sub.add_parser("create-user", help="Create an account (password is prompted)")
    create.add_argument("email", help="Email address of the new account")
    create.add_argument(
        "--role",
        choices=[r.value for r in Role],
        default=Role.CUSTOMER.value,
        help="Account role (default: CUSTOMER)",
    )
    create.add_argument("--first-name", default=None)
    create.add_argument("--last-name", default=None)

    sub.add_parser("purge-sessions", help="Delete refresh tokens that have expired")

    args = parser.parse_args(argv)

    users, refresh_tokens = _open_stores()
    try:
        if args.command == "seed":
            print("Seeding accounts...")
            print(f"Done. {seed(users)} account(s) created.")
            return 0
        if args.command == "create-user":
            return create_user(users, args.email, Role(args.role), args.first_name, args.last_name)
        removed = purge_sessions(users, refresh_tokens)
        print(f"Removed {removed} expired refresh token(s).")
        return 0
    finally:
        users.close()


if __name__ == "__main__":
    sys.exit(main())
