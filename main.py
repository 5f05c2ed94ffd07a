#!/usr/bin/env python3
"""
ServPanel -- offline administration for the auth database.

Used to enroll the first user (the API can only be reached with a token)
and to rotate a password without going through e-mail recovery.

Usage:
  python main.py create-user alice --email alice@example.com --rank 10
  python main.py set-password alice

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the ServPanel database (default: servpanel.db)
  SECRET_KEY    Required unless DEBUG=true; see core/config.py
"""

import argparse
import getpass
import sys
from typing import Optional

from auth.models import User
from auth.passwords import new_credential
from auth.store import UserStore
from core.config import get_settings
from core.database import make_engine
from core.errors import ServPanelError

MIN_PASSWORD_LENGTH = 8


def _read_password(given: Optional[str]) -> Optional[str]:
    """Return the password from the flag, or prompt twice on the terminal."""
    if given is not None:
        password = given
    else:
        password = getpass.getpass("New password: ")
        if getpass.getpass("Repeat password: ") != password:
            print("  [!] Passwords do not match.")
            return None
    if len(password) < MIN_PASSWORD_LENGTH:
        print(f"  [!] Password must be at least {MIN_PASSWORD_LENGTH} characters.")
        return None
    return password


def _create_user(store: UserStore, args: argparse.Namespace) -> int:
    if store.username_exists(args.username):
        print(f"  [!] User '{args.username}' already exists.")
        return 1
    password = _read_password(args.password)
    if password is None:
        return 1
    password_hash, salt = new_credential(password)
    user_id = store.create_user(
        User(
            username=args.username,
            email=args.email,
            name=args.name,
            rank=args.rank,
            password_hash=password_hash,
            salt=salt,
        )
    )
    print(f"  Created user '{args.username}' (id {user_id}).")
    return 0


def _set_password(store: UserStore, args: argparse.Namespace) -> int:
    user = store.get_by_username(args.username)
    if user is None:
        print(f"  [!] No user named '{args.username}'.")
        return 1
    password = _read_password(args.password)
    if password is None:
        return 1
    password_hash, salt = new_credential(password)
    store.update_password(user.id, password_hash, salt)
    print(f"  Password updated for '{args.username}'.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="servpanel",
        description="Offline user administration for the ServPanel API.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user alice --email alice@example.com
  python main.py create-user ops --email ops@example.com --rank 10 --name "Ops Team"
  python main.py set-password alice
  DATABASE_URL=sqlite:////srv/servpanel.db python main.py set-password alice
        """,
    )
    parser.add_argument(
        "--database-url",
        metavar="URL",
        default=None,
        help="SQLAlchemy database URL (default: DATABASE_URL setting)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Enroll a new user")
    create.add_argument("username", help="Login name (unique)")
    create.add_argument("--email", required=True, help="Address used for password recovery")
    create.add_argument("--name", default="", help="Display name")
    create.add_argument("--rank", type=int, default=0, help="Privilege tier, higher is more privileged (default: 0)")
    create.add_argument(
        "--password",
        default=None,
        help="Password (prompted for when omitted; passing it here leaves it in shell history)",
    )

    reset = sub.add_parser("set-password", help="Replace a user's password and cancel pending recovery")
    reset.add_argument("username", help="Login name of an existing user")
    reset.add_argument("--password", default=None, help="New password (prompted for when omitted)")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    db_url = args.database_url or get_settings().database_url
    store = UserStore(make_engine(db_url))
    try:
        if args.command == "create-user":
            return _create_user(store, args)
        return _set_password(store, args)
    except ServPanelError as e:
        print(f"  [!] {e.message}")
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
