#!/usr/bin/env python3
"""
notebook-relay - dependable conversations with a UI-only AI knowledge service.

Operator entry point: account management and one-off questions.
"""

import argparse
import asyncio
import getpass
import json
import sys
from typing import Any, Dict, Optional

from loguru import logger

from notebook_relay.core.enums import RotationStrategy
from notebook_relay.core.exceptions import ConfigurationError, RelayError
from notebook_relay.core.logger import setup_structured_logging
from notebook_relay.core.result import Failure, Result, Success
from notebook_relay.core.settings import RelaySettings, get_settings
from notebook_relay.services.accounts import AccountStore
from notebook_relay.services.notebooks import NotebookDirectory
from notebook_relay.services.relay_service import RelayService


def _print(data: Dict[str, Any]) -> None:
    """Write a JSON document to stdout (logs go to stderr)."""
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _account_store(settings: RelaySettings) -> AccountStore:
    return AccountStore(
        settings.data_dir,
        default_daily_quota=settings.default_daily_quota,
        max_consecutive_failures=settings.max_consecutive_failures,
        default_rotation_strategy=settings.rotation_strategy,
    )


async def run_accounts_command(args: argparse.Namespace, settings: RelaySettings) -> Result[Any, str]:
    """
    Execute an ``accounts`` sub-command.

    Args:
        args: Parsed arguments
        settings: Application settings

    Returns:
        Result with the command output
    """
    store = _account_store(settings)
    await store.load()

    try:
        if args.accounts_command == "add":
            password = args.password or getpass.getpass(f"Password for {args.email}: ")
            account = await store.add_account(
                args.email, password, priority=args.priority, notes=args.notes
            )
            return Success({"account_id": account.id, "priority": account.priority})

        if args.accounts_command == "list":
            return Success(
                {
                    "rotation_strategy": store.rotation_strategy.value,
                    "current_account": await store.get_current_account_id(),
                    "accounts": [
                        {
                            "id": a.id,
                            "email": a.email,
                            "enabled": a.enabled,
                            "priority": a.priority,
                            "quota": f"{a.quota.used}/{a.quota.limit}",
                            "session_status": a.session_status.value,
                        }
                        for a in store.list_accounts()
                    ],
                }
            )

        if args.accounts_command in ("enable", "disable"):
            account = await store.set_enabled(args.account_id, args.accounts_command == "enable")
            return Success({"account_id": account.id, "enabled": account.enabled})

        if args.accounts_command == "strategy":
            await store.set_rotation_strategy(args.strategy)
            return Success({"rotation_strategy": store.rotation_strategy.value})

        if args.accounts_command == "health":
            return Success({"accounts": store.health_check()})
    except ConfigurationError:
        raise
    except RelayError as e:
        return Failure(e.message, e)

    return Failure(f"Unknown accounts command: {args.accounts_command}")


async def run_ask_command(args: argparse.Namespace, settings: RelaySettings) -> Result[Any, str]:
    """Ask one question and close the browser afterwards."""

    async def progress(message: str, step: int, total: int) -> None:
        logger.info(f"[{step}/{total}] {message}")

    async with RelayService.from_settings(settings) as service:
        return await service.ask(
            args.question,
            session_id=args.session_id,
            notebook_id=args.notebook_id,
            notebook_url=args.notebook_url,
            show_browser=True if args.show_browser else None,
            progress=progress,
        )


async def run_sessions_command(settings: RelaySettings) -> Result[Any, str]:
    """Report session pool and account health of a fresh process."""
    async with RelayService.from_settings(settings) as service:
        return await service.get_health()


def run_notebooks_command(settings: RelaySettings) -> Result[Any, str]:
    """List the notebooks registered in library.json."""
    directory = NotebookDirectory(settings.data_dir / "library.json")
    directory.load()
    active = directory.get_active()
    return Success(
        {
            "active_notebook_id": active.id if active else None,
            "default_notebook_url": settings.default_notebook_url,
            "notebooks": [
                {"id": n.id, "name": n.name, "url": n.url} for n in directory.list_notebooks()
            ],
        }
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        description="notebook-relay - conversations with a UI-only AI knowledge service"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: RELAY_LOG_LEVEL or INFO)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    accounts = commands.add_parser("accounts", help="Manage knowledge-service accounts")
    account_commands = accounts.add_subparsers(dest="accounts_command", required=True)

    add = account_commands.add_parser("add", help="Register an account")
    add.add_argument("--email", required=True)
    add.add_argument("--password", help="Prompted for when omitted")
    add.add_argument("--priority", type=int, help="Failover priority (lower first)")
    add.add_argument("--notes")

    account_commands.add_parser("list", help="List accounts and quotas")

    for name in ("enable", "disable"):
        toggle = account_commands.add_parser(name, help=f"{name.capitalize()} an account")
        toggle.add_argument("account_id")

    strategy = account_commands.add_parser("strategy", help="Set the rotation strategy")
    strategy.add_argument("strategy", choices=RotationStrategy.values())

    account_commands.add_parser("health", help="Check account health")

    ask = commands.add_parser("ask", help="Ask a question")
    ask.add_argument("--question", "-q", required=True)
    ask.add_argument("--session-id")
    target = ask.add_mutually_exclusive_group()
    target.add_argument("--notebook-id")
    target.add_argument("--notebook-url")
    ask.add_argument("--show-browser", action="store_true", help="Run the browser visibly")

    commands.add_parser("sessions", help="Show session pool and account health")
    commands.add_parser("notebooks", help="List registered notebooks")
    return parser


def main(argv: Optional[list] = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        settings = get_settings()
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    setup_structured_logging(
        args.log_level or settings.log_level,
        json_format=settings.log_json,
        logs_dir=settings.data_dir / "logs",
    )

    try:
        if args.command == "accounts":
            result = asyncio.run(run_accounts_command(args, settings))
        elif args.command == "ask":
            result = asyncio.run(run_ask_command(args, settings))
        elif args.command == "notebooks":
            result = run_notebooks_command(settings)
        else:
            result = asyncio.run(run_sessions_command(settings))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e.message}")
        sys.exit(2)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(130)

    _print(result.to_dict())
    sys.exit(0 if result.is_success() else 1)


if __name__ == "__main__":
    main()
