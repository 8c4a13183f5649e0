#!/usr/bin/env python3
"""
postkeeper -- maintenance commands for the account and session store.

Usage:
  python main.py purge
  python main.py revoke-all <user_id>
  python main.py promote <email>
  python main.py sessions <user_id>
  python main.py delete-account <user_id>

Configuration comes from the same environment variables as the API
(DATABASE_URL, SECRET_KEY, ...). See core/config.py.
"""

import argparse
import logging
from typing import Optional

from auth.components import build_components
from auth.models import Role
from auth.service import AuthService
from auth.store import create_db_engine
from core.config import get_settings

logger = logging.getLogger("postkeeper.cli")


def _build_service(engine) -> AuthService:
    return build_components(engine, **get_settings().auth_options).service


def _cmd_purge(service: AuthService, args: argparse.Namespace) -> int:
    count = service.purge_tokens()
    print(f"Purged {count} revoked or expired refresh token(s).")
    return 0


def _cmd_revoke_all(service: AuthService, args: argparse.Namespace) -> int:
    if service.users.get_by_id(args.user_id) is None:
        print(f"  [!] No account with id '{args.user_id}'.")
        return 1
    count = service.revoke_all_tokens(args.user_id)
    print(f"Revoked {count} active refresh token(s) for {args.user_id}.")
    return 0


def _cmd_promote(service: AuthService, args: argparse.Namespace) -> int:
    account = service.users.get_by_email(args.email)
    if account is None:
        print(f"  [!] No account registered as '{args.email}'.")
        return 1
    service.users.update_role(account.id, Role.admin)
    logger.info("Promoted account %s to admin", account.id)
    print(f"{account.email} is now an admin.")
    return 0


def _cmd_sessions(service: AuthService, args: argparse.Namespace) -> int:
    if service.users.get_by_id(args.user_id) is None:
        print(f"  [!] No account with id '{args.user_id}'.")
        return 1
    records = service.refresh_tokens.list_active_for_user(args.user_id)
    print(f"{len(records)} active session(s) for {args.user_id}.")
    # Token values are credentials; only row metadata is printed.
    for record in records:
        print(f"  {record.id}  created {record.created_at}  expires {record.expires_at}")
    return 0


def _cmd_delete_account(service: AuthService, args: argparse.Namespace) -> int:
    if not service.users.delete_user(args.user_id):
        print(f"  [!] No account with id '{args.user_id}'.")
        return 1
    logger.info("Deleted account %s and its refresh tokens", args.user_id)
    print(f"Deleted account {args.user_id} and its refresh tokens.")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="postkeeper",
        description="Maintenance commands for postkeeper accounts and sessions.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py purge
  python main.py revoke-all 6f1c0e1e-7c53-4c1e-9a43-0b6b8a0d4c2f
  python main.py promote ops@example.com
  python main.py sessions 6f1c0e1e-7c53-4c1e-9a43-0b6b8a0d4c2f
  python main.py delete-account 6f1c0e1e-7c53-4c1e-9a43-0b6b8a0d4c2f
  DATABASE_URL=sqlite:////var/lib/postkeeper/postkeeper.db python main.py purge
        """,
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    purge = subparsers.add_parser("purge", help="Delete revoked and expired refresh tokens")
    purge.set_defaults(handler=_cmd_purge)

    revoke_all = subparsers.add_parser("revoke-all", help="Revoke every active refresh token of one account")
    revoke_all.add_argument("user_id", help="Account id (UUID)")
    revoke_all.set_defaults(handler=_cmd_revoke_all)

    promote = subparsers.add_parser("promote", help="Give an existing account the admin role")
    promote.add_argument("email", help="Registered email address (case-insensitive)")
    promote.set_defaults(handler=_cmd_promote)

    sessions = subparsers.add_parser("sessions", help="List the active refresh-token sessions of one account")
    sessions.add_argument("user_id", help="Account id (UUID)")
    sessions.set_defaults(handler=_cmd_sessions)

    delete_account = subparsers.add_parser("delete-account", help="Permanently delete an account and its sessions")
    delete_account.add_argument("user_id", help="Account id (UUID)")
    delete_account.set_defaults(handler=_cmd_delete_account)

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 2

    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    engine = create_db_engine(get_settings().database_url)
    try:
        return args.handler(_build_service(engine), args)
    finally:
        engine.dispose()


if __name__ == "__main__":
    raise SystemExit(main())
