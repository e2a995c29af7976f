"""Command-line interface for Gmail Sync.

This module provides the main entry point for the CLI application.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import structlog

from gmail_sync import __version__
from gmail_sync.config import get_settings
from gmail_sync.exceptions import GmailSyncError
from gmail_sync.utils import configure_logging

logger = structlog.get_logger()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gmail-sync", description="Gmail Sync")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create the accounts and threads tables")

    account_parser = subparsers.add_parser("account", help="Manage connected accounts")
    account_sub = account_parser.add_subparsers(dest="account_command", required=True)

    create_parser = account_sub.add_parser("create", help="Register an account and print its OAuth URL")
    create_parser.add_argument("full_name", help="Display name of the account owner")
    create_parser.add_argument("email", help="Gmail address of the account")

    find_parser = account_sub.add_parser("find", help="List accounts registered with an email address")
    find_parser.add_argument("email", help="Email address to look up")

    sync_parser = subparsers.add_parser("sync", help="Pull threads for an account into the local store")
    sync_parser.add_argument("account_id", help="Local account id")
    sync_parser.add_argument(
        "--page",
        type=int,
        default=1,
        help="Page 1 pulls newer threads; later pages pull older threads (default: 1)",
    )
    sync_parser.add_argument(
        "--page-size",
        type=int,
        default=None,
        help="Threads per page (default: settings sync_page_size)",
    )

    return parser


def _cmd_init_db(_args: argparse.Namespace) -> int:
    from gmail_sync.store import create_db_engine, initialize_schema

    settings = get_settings()
    initialize_schema(create_db_engine(settings.database_url))
    print(f"Schema ready at {settings.database_url}")
    return 0


def _cmd_account_create(args: argparse.Namespace) -> int:
    from gmail_sync.api import build_service

    service = build_service(get_settings())
    connection = service.create_account(args.full_name, args.email)
    print(f"Account id: {connection.account.id}")
    print(f"Open this URL to grant access:\n{connection.auth_url}")
    return 0


def _cmd_account_find(args: argparse.Namespace) -> int:
    from gmail_sync.store import AccountRepository, create_db_engine, initialize_schema

    engine = create_db_engine(get_settings().database_url)
    initialize_schema(engine)
    matches = AccountRepository(engine).find_by_email(args.email)
    if not matches:
        print(f"No account registered for {args.email}")
        return 1

    for account in matches:
        status = "connected" if account.token else "pending consent"
        print(f"{account.id}\t{account.full_name}\t{status}")
    return 0


async def _cmd_sync(args: argparse.Namespace) -> int:
    from gmail_sync.api import build_service

    service = build_service(get_settings())
    threads = await service.sync_threads(args.account_id, page=args.page, page_size=args.page_size)

    for t in threads:
        unread = "UNREAD" if t.label_ids and "UNREAD" in t.label_ids else "READ"
        date_part = t.date.isoformat() if t.date else "(no date)"
        print(f"{unread}\t{date_part}\t{t.from_address or '(unknown sender)'}\t{t.subject or ''}")

    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point for the Gmail Sync CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    if args is None:
        args = sys.argv[1:]

    settings = get_settings()
    configure_logging(settings.log_level)

    logger.info("gmail_sync_started", version=__version__, debug=settings.debug)

    parser = _build_parser()
    parsed = parser.parse_args(args)

    try:
        if parsed.command == "init-db":
            return _cmd_init_db(parsed)
        if parsed.command == "account" and parsed.account_command == "create":
            return _cmd_account_create(parsed)
        if parsed.command == "account" and parsed.account_command == "find":
            return _cmd_account_find(parsed)
        if parsed.command == "sync":
            return asyncio.run(_cmd_sync(parsed))
    except GmailSyncError as exc:
        logger.error("command_failed", command=parsed.command, error=str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    logger.error("unknown_command", command=parsed.command)
    return 2


if __name__ == "__main__":
    sys.exit(main())
