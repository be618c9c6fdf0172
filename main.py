#!/usr/bin/env python3
"""
MemberGate operator CLI -- direct database maintenance.

The web and API surfaces only let an existing admin change roles, so the
first admin has to be created here, by someone with access to the database.

Usage:
  python main.py list-users
  python main.py promote alice
  python main.py demote alice
  python main.py purge-sessions

Environment variables:
  DATABASE_URL  Database to operate on (same setting the server uses).
  SECRET_KEY    Required unless DEBUG=true (the session store is keyed by it).
"""

import argparse
import sys
from typing import Optional

from auth.errors import UserNotFoundError
from auth.roles import RoleService
from auth.sessions import SessionManager
from auth.store import UserStore
from core.config import get_settings


def _list_users(store: UserStore) -> int:
    rows = store.list_users(projection=("username", "email", "role", "last_login"))
    if not rows:
        print("  No users registered.")
        return 0
    width = max(len(r["username"]) for r in rows)
    for r in rows:
        print(f"  {r['username']:<{width}}  {r['role']:<5}  {r['email']}  last login: {r['last_login'] or '-'}")
    print(f"\n  {len(rows)} user(s), {store.count_admins()} admin(s).")
    return 0


def _set_role(store: UserStore, username: str, promote: bool) -> int:
    roles = RoleService(store)
    try:
        if promote:
            roles.promote(username)
        else:
            roles.demote(username)
    except UserNotFoundError:
        print(f"  [!] No user named '{username}'.")
        return 1
    role = "admin" if promote else "user"
    print(f"  {username} is now '{role}'. Open sessions keep their old role until the next login.")
    if not promote and store.count_admins() == 0:
        print("  [!] No admin accounts remain.")
    return 0


def _purge_sessions() -> int:
    settings = get_settings()
    sessions = SessionManager(
        settings.database_url,
        secret_key=settings.secret_key,
        expire_seconds=settings.session_expire_seconds,
    )
    try:
        removed = sessions.purge_expired()
    finally:
        sessions.close()
    print(f"  Removed {removed} expired session(s).")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="membergate",
        description="Operator maintenance for MemberGate accounts and sessions.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py list-users
  python main.py promote alice
  DATABASE_URL=sqlite:///prod.db python main.py demote bob
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.add_parser("list-users", help="List every user with role and last login")
    promote = sub.add_parser("promote", help="Give a user the admin role")
    promote.add_argument("username")
    demote = sub.add_parser("demote", help="Return a user to the user role")
    demote.add_argument("username")
    sub.add_parser("purge-sessions", help="Delete expired session rows")
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0
    if args.command == "purge-sessions":
        return _purge_sessions()

    store = UserStore(get_settings().database_url)
    try:
        if args.command == "list-users":
            return _list_users(store)
        return _set_role(store, args.username, promote=args.command == "promote")
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
