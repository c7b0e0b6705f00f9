#!/usr/bin/env python3
"""
Gatekeeper -- operator CLI.

Usage:
  python main.py create-user --email admin@example.com --role ADMIN --approved
  python main.py purge-sessions

The password for create-user is read with getpass (never from argv, which
would leave it in shell history and the process table) and goes through the
same strength gate as the HTTP API.

Configuration comes from the environment / .env exactly like the API
(DATABASE_URL, SECRET_KEY, HASH_COST, ...).
"""

import argparse
import getpass
import sys

from auth.errors import AuthError
from auth.models import UserRole
from auth.service import AuthService, build_auth_service
from auth.store import UserStore
from core.config import get_settings


def _create_user(service: AuthService, args: argparse.Namespace) -> int:
    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Repeat password: "):
        print("  [!] Passwords do not match.")
        return 1
    try:
        user = service.create_user(
            email=args.email,
            password=password,
            role=UserRole(args.role),
            is_approved=args.approved,
            first_name=args.first_name,
            last_name=args.last_name,
        )
    except AuthError as exc:
        print(f"  [!] {exc.code}: {exc.message}")
        return 1
    print(f"  Created {user.role.value} {user.email} (id={user.id}, approved={user.is_approved})")
    return 0


def _purge_sessions(service: AuthService, args: argparse.Namespace) -> int:
    try:
        removed = service.sessions.sweep()
    except AuthError as exc:
        print(f"  [!] {exc.code}: {exc.message}")
        return 1
    print(f"  Removed {removed} expired session(s).")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="gatekeeper",
        description="Operator commands for the Gatekeeper auth service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user --email admin@example.com --role ADMIN --approved
  DATABASE_URL=sqlite:///prod.db python main.py purge-sessions
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    create = sub.add_parser("create-user", help="Create a user (password is prompted)")
    create.add_argument("--email", required=True, help="Login email (case-sensitive)")
    create.add_argument(
        "--role",
        choices=[r.value for r in UserRole],
        default=UserRole.USER.value,
        help="Role to assign (default: USER)",
    )
    create.add_argument("--approved", action="store_true", help="Mark the account approved so it can log in")
    create.add_argument("--first-name", default=None)
    create.add_argument("--last-name", default=None)
    create.set_defaults(handler=_create_user)

    purge = sub.add_parser("purge-sessions", help="Delete every expired session now")
    purge.set_defaults(handler=_purge_sessions)

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0

    settings = get_settings()
    store = UserStore(settings.database_url)
    try:
        return args.handler(build_auth_service(settings, store), args)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
