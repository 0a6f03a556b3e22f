#!/usr/bin/env python3
"""
Desa Wisata admin -- management CLI for the authorization core.

Usage:
  python main.py roles
  python main.py create-user admin --email admin@desawisata.com --role ADMIN
  python main.py create-user kasir --email kasir@desawisata.com --role FINANCE --password-stdin < pw.txt
  python main.py set-active kasir --inactive
  python main.py serve --host 127.0.0.1 --port 3001

Environment variables (see core/config.py):
  SECRET_KEY     Token signing key, at least 32 characters. Required unless DEBUG=true.
  DATABASE_URL   SQLAlchemy URL of the user database.
"""

import argparse
import getpass
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.credentials import MAX_PASSWORD_BYTES, hash_password
from auth.models import User
from auth.permissions import ROLE_INFO, Role, get_catalog
from auth.store import LastAdminError, UserStore
from core.config import ConfigurationError, get_settings

_MIN_PASSWORD_LENGTH = 8


def _print_roles() -> None:
    catalog = get_catalog()
    for role in Role:
        info = ROLE_INFO[role]
        print(f"{role.value:<13} {info.name} -- {info.description}")
        for permission in sorted(catalog.grants_for(role)):
            print(f"    {permission}")


def _read_password(from_stdin: bool) -> Optional[str]:
    if from_stdin:
        return sys.stdin.readline().rstrip("\n")
    first = getpass.getpass("Password: ")
    if first != getpass.getpass("Repeat password: "):
        print("  [!] Passwords do not match.")
        return None
    return first


def _create_user(store: UserStore, args: argparse.Namespace) -> int:
    password = _read_password(args.password_stdin)
    if password is None:
        return 1
    if len(password) < _MIN_PASSWORD_LENGTH:
        print(f"  [!] Password must be at least {_MIN_PASSWORD_LENGTH} characters.")
        return 1
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        print(f"  [!] Password must be at most {MAX_PASSWORD_BYTES} bytes.")
        return 1
    user = User(
        username=args.username,
        email=args.email,
        role=Role(args.role),
        hashed_password=hash_password(password),
    )
    try:
        user_id = store.create_user(user)
    except IntegrityError:
        print(f"  [!] A user named '{args.username}' or with email '{args.email}' already exists.")
        return 1
    print(f"Created {user.role.value} user '{args.username}' (id={user_id}).")
    return 0


def _set_active(store: UserStore, args: argparse.Namespace) -> int:
    user = store.get_by_username(args.username)
    if user is None:
        print(f"  [!] No user named '{args.username}'.")
        return 1
    active = not args.inactive
    try:
        store.update_user(user.id, protect_last_admin=True, is_active=active)
    except LastAdminError:
        print("  [!] Cannot deactivate the last active admin account.")
        return 1
    print(f"User '{args.username}' is now {'active' if active else 'inactive'}.")
    return 0


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="desawisata",
        description="Manage users and inspect the role policy of the Desa Wisata admin service.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("roles", help="Print every role and its permissions")

    create = sub.add_parser("create-user", help="Create a user account")
    create.add_argument("username")
    create.add_argument("--email", required=True)
    create.add_argument("--role", default=Role.STAFF.value, type=str.upper, choices=[r.value for r in Role])
    create.add_argument("--password-stdin", action="store_true", help="Read the password from stdin")

    active = sub.add_parser("set-active", help="Activate or deactivate a user")
    active.add_argument("username")
    active.add_argument("--inactive", action="store_true", help="Deactivate instead of activate")

    serve = sub.add_parser("serve", help="Run the API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=3001)
    serve.add_argument("--reload", action="store_true")

    return parser


def main(argv: Optional[list[str]] = None, store: Optional[UserStore] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "roles":
        _print_roles()
        return 0
    if args.command == "serve":
        return _serve(args)

    owns_store = store is None
    if owns_store:
        try:
            store = UserStore(db_url=get_settings().database_url)
        except ConfigurationError as exc:
            print(f"  [!] Configuration error: {exc}")
            return 2
    try:
        if args.command == "create-user":
            return _create_user(store, args)
        return _set_active(store, args)
    finally:
        if owns_store:
            store.close()


if __name__ == "__main__":
    sys.exit(main())
