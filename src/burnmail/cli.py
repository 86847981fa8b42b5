#!/usr/bin/env python3
"""
Command-line interface for Burnmail.

This module provides the main entry point for the burnmail application
when installed as a package (via `pip install burnmail`).

Usage:
    burnmail [OPTIONS] COMMAND

Commands:
    generate (g)            Create a new disposable address
    messages (m, inbox)     Browse the inbox interactively
    messages list           Print the inbox as a table
    messages show N         Print one message
    export                  Export all messages to JSON
    delete (d)              Delete the account
    me                      Show the stored account
"""

import argparse
import logging
import secrets
import string
import sys
import threading
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Callable, Optional, TypeVar

from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from burnmail import __version__
from client.services import (
    ExportService,
    MailTMClient,
    MessageCache,
    RetryPolicy,
    copy_to_clipboard,
    fragments_to_text,
    get_downloads_dir,
    open_html_in_browser,
)
from client.ui import RequestWorker, SessionController, TaskRunner, run_tui
from common.config import Settings, get_settings
from common.credentials import CredentialStore
from common.exceptions import (
    AccountNotFoundError,
    APIError,
    AuthenticationError,
    BurnmailError,
    DesktopIntegrationError,
    NotFoundError,
)
from common.models import AccountData, MessageDetail

logger = logging.getLogger(__name__)

T = TypeVar("T")

RANDOM_CHARSET = string.ascii_lowercase + string.digits
USERNAME_LENGTH = 8
PASSWORD_LENGTH = 16
CREATED_AT_FORMAT = "%d/%m/%Y, %H:%M:%S"
DATE_FORMAT = "%d/%m/%Y %H:%M:%S"
RULE = "─" * 60
DEBUG_LOG_FILE = "~/.burnmail.log"


def setup_logging(
    debug: bool = False,
    level: str = "INFO",
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    log_file: Optional[str] = None,
    interactive: bool = False,
) -> None:
    """
    Configure logging for the application.

    One-shot commands report warnings on stderr. The full-screen browser
    owns the terminal, so it only logs to a file, or nowhere.

    Args:
        debug: Enable debug logging.
        level: Configured log level.
        log_format: Format of log records.
        log_file: Optional log file path.
        interactive: Configure for the full-screen browser.
    """
    if debug and log_file is None and interactive:
        log_file = DEBUG_LOG_FILE

    handlers: list[logging.Handler] = []
    if log_file:
        handlers.append(
            logging.FileHandler(Path(log_file).expanduser(), encoding="utf-8")
        )
    if not interactive:
        stream = logging.StreamHandler(sys.stderr)
        stream.setLevel(logging.DEBUG if debug else logging.WARNING)
        handlers.append(stream)
    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(
        level=logging.DEBUG if debug else level,
        format=log_format,
        handlers=handlers,
        force=True,
    )

    if not debug:
        logging.getLogger("urllib3").setLevel(logging.WARNING)


def random_string(length: int) -> str:
    """Random lowercase alphanumeric string."""
    return "".join(secrets.choice(RANDOM_CHARSET) for _ in range(length))


@dataclass
class CommandContext:
    """Collaborators shared by the command handlers."""

    settings: Settings
    console: Console
    store: CredentialStore
    policy: RetryPolicy
    client_factory: Callable[..., MailTMClient]

    @classmethod
    def from_settings(
        cls, settings: Settings, console: Optional[Console] = None
    ) -> "CommandContext":
        api = settings.api
        return cls(
            settings=settings,
            console=console or Console(highlight=False),
            store=CredentialStore(
                settings.storage.account_path,
                keyring_service=settings.storage.keyring_service,
                keyring_user=settings.storage.keyring_user,
            ),
            policy=RetryPolicy(
                max_attempts=settings.retry.max_attempts,
                base_delay=settings.retry.base_delay,
                max_delay=settings.retry.max_delay,
            ),
            client_factory=partial(
                MailTMClient,
                base_url=api.base_url,
                timeout=api.timeout,
                min_request_interval=api.min_request_interval,
                max_concurrent_requests=api.max_concurrent_requests,
            ),
        )

    def require_account(self) -> AccountData:
        """
        Load the stored account.

        Raises:
            AccountNotFoundError: If no account has been generated.
        """
        account = self.store.load()
        if account is None:
            raise AccountNotFoundError()
        return account

    def login(self, client: MailTMClient, account: AccountData) -> AccountData:
        """Obtain a fresh token and store it with the account."""
        token = self.policy.run(lambda: client.login(account.address, account.password))
        account = account.model_copy(update={"token": token})
        self.store.save(account)
        return account

    def open_client(self, account: AccountData) -> MailTMClient:
        """Client authenticated as ``account``."""
        client = self.client_factory(token=account.token or None)
        if not account.token:
            self.login(client, account)
        return client

    def call(
        self,
        client: MailTMClient,
        account: AccountData,
        operation: Callable[[], T],
    ) -> T:
        """Run ``operation`` with retry, logging in again once if the token was rejected."""
        try:
            return self.policy.run(operation)
        except AuthenticationError:
            logger.info("Token rejected, logging in again as %s", account.address)
            self.login(client, account)
            return self.policy.run(operation)


# =============================================================================
# Commands
# =============================================================================


def cmd_generate(ctx: CommandContext, args: argparse.Namespace) -> int:
    """Create an account on the first active domain."""
    console = ctx.console
    existing = ctx.store.load()
    if existing is not None:
        console.print(f"[yellow]⚠[/] Account already exists: [green]{existing.address}[/]")
        console.print("Use '[yellow]burnmail d[/]' to delete it first.")
        return 1

    client = ctx.client_factory()
    try:
        console.print("[cyan]🔍 Fetching available domains...[/]")
        domains = ctx.policy.run(client.get_domains)
        domain = next((d for d in domains if d.is_active), None)
        if domain is None:
            raise APIError("No active domains available")

        address = f"{random_string(USERNAME_LENGTH)}@{domain.domain}"
        password = random_string(PASSWORD_LENGTH)

        console.print("[cyan]📧 Creating account...[/]")
        account = ctx.policy.run(lambda: client.create_account(address, password))
        token = ctx.policy.run(lambda: client.login(address, password))
    finally:
        client.close()

    ctx.store.save(
        AccountData(
            address=address,
            password=password,
            token=token,
            account_id=account.id,
            created_at=datetime.now().strftime(CREATED_AT_FORMAT),
        )
    )

    try:
        copy_to_clipboard(address)
    except DesktopIntegrationError as e:
        logger.debug("Clipboard copy failed: %s", e)
        console.print("\n[green]✓[/] Email created!")
        console.print(f"[yellow]⚠[/] Warning: Failed to copy to clipboard: {escape(str(e))}")
    else:
        console.print("\n[green]✓[/] Email created and copied to clipboard!")

    console.print(f"\n[bold green]{address}[/]\n")
    return 0


def cmd_me(ctx: CommandContext, args: argparse.Namespace) -> int:
    """Print the stored account."""
    account = ctx.require_account()
    ctx.console.print(f"\n[cyan]Email[/]: {account.address}")
    ctx.console.print(f"[cyan]Created At[/]: {account.created_at}\n")
    return 0


def cmd_delete(ctx: CommandContext, args: argparse.Namespace) -> int:
    """Delete the account on the server, then the local copy."""
    console = ctx.console
    account = ctx.require_account()

    client = ctx.client_factory(token=account.token or None)
    try:
        ctx.call(client, account, lambda: client.delete_account(account.account_id))
    except BurnmailError as e:
        console.print(
            f"[yellow]⚠[/] Failed to delete account from server: {escape(str(e))}"
        )
    finally:
        client.close()

    ctx.store.delete()
    ctx.settings.tui.cache_path.unlink(missing_ok=True)
    console.print("[green]✓[/] Account deleted successfully")
    return 0


def cmd_messages(ctx: CommandContext, args: argparse.Namespace) -> int:
    """Dispatch the ``messages`` subcommands; none starts the browser."""
    if args.action == "list":
        return cmd_messages_list(ctx, args)
    if args.action == "show":
        return cmd_messages_show(ctx, args)
    return cmd_browse(ctx, args)


def cmd_messages_list(ctx: CommandContext, args: argparse.Namespace) -> int:
    console = ctx.console
    account = ctx.require_account()
    client = ctx.open_client(account)
    try:
        console.print("[cyan]📬 Fetching messages...[/]")
        messages = ctx.call(client, account, client.list_messages)
    finally:
        client.close()

    if not messages:
        console.print("\n[yellow]📭[/] No messages yet. Your inbox is empty.")
        return 0

    table = Table(title=f"{account.address} ({len(messages)})", title_justify="left")
    table.add_column("#", justify="right", style="dim")
    table.add_column("From", style="yellow")
    table.add_column("Subject", style="cyan")
    table.add_column("Date")
    table.add_column("@", justify="center")

    for number, message in enumerate(messages, start=1):
        style = None if message.seen else "bold"
        table.add_row(
            str(number),
            escape(message.sender),
            escape(message.subject or "(no subject)"),
            message.created_at.strftime(DATE_FORMAT),
            "@" if message.has_attachments else "",
            style=style,
        )

    console.print(table)
    return 0


def _print_detail(console: Console, detail: MessageDetail, cleanup_delay: float) -> None:
    console.print(f"\n{RULE}")
    console.print(f"[cyan]From[/]: {escape(detail.sender)}")
    console.print(f"[cyan]Subject[/]: {escape(detail.subject)}")
    console.print(f"[cyan]Date[/]: {detail.created_at.strftime(DATE_FORMAT)}")
    console.print(f"{RULE}\n")

    if detail.text:
        console.print(detail.text, markup=False)
    elif detail.html:
        console.print("[cyan]\\[HTML content - opening in browser...][/]")
        try:
            open_html_in_browser(detail.html, cleanup_delay)
        except DesktopIntegrationError as e:
            console.print(f"[yellow]⚠[/] {escape(str(e))}")
            try:
                console.print(fragments_to_text(detail.html), markup=False)
            except ValueError:
                console.print(detail.html_source, markup=False)

    if detail.attachments:
        console.print(f"\n[cyan]Attachments ({len(detail.attachments)})[/]")
        for number, attachment in enumerate(detail.attachments, start=1):
            console.print(
                f"  {number}. {escape(attachment.filename)} "
                f"({attachment.content_type}, {attachment.size_kb:.1f} KB)"
            )
    console.print()


def cmd_messages_show(ctx: CommandContext, args: argparse.Namespace) -> int:
    console = ctx.console
    account = ctx.require_account()
    client = ctx.open_client(account)
    try:
        message_id = args.message
        if message_id.isdigit():
            messages = ctx.call(client, account, client.list_messages)
            number = int(message_id)
            if not 1 <= number <= len(messages):
                raise NotFoundError(
                    f"No message #{number}, the inbox has {len(messages)}"
                )
            message_id = messages[number - 1].id

        console.print("[cyan]📖 Loading message...[/]")
        detail = ctx.call(client, account, lambda: client.get_message(message_id))
    finally:
        client.close()

    _print_detail(console, detail, ctx.settings.tui.html_cleanup_delay)
    return 0


def cmd_export(ctx: CommandContext, args: argparse.Namespace) -> int:
    """Write every message to a JSON file."""
    console = ctx.console
    account = ctx.require_account()
    client = ctx.open_client(account)
    service = ExportService(client, ctx.policy)

    try:
        with Progress(
            TextColumn("[cyan]⏳ Fetching messages"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("export", total=None)
            service.set_progress_callback(
                lambda p: progress.update(
                    task, completed=p.items_processed, total=p.total_items
                )
            )
            try:
                result = service.export(account, output_dir=args.output)
            except AuthenticationError:
                ctx.login(client, account)
                result = service.export(account, output_dir=args.output)
    finally:
        client.close()

    if result.exported == 0 and result.skipped == 0:
        console.print("\n[yellow]📭[/] No messages to export. Your inbox is empty.")
    if result.skipped:
        console.print(f"[yellow]⚠[/] Skipped {result.skipped} messages that failed to load")
    console.print(
        f"[green]✓[/] Exported {result.exported} messages to [bold]{escape(str(result.path))}[/]"
    )
    return 0


def cmd_browse(ctx: CommandContext, args: argparse.Namespace) -> int:
    """Run the interactive inbox browser."""
    settings = ctx.settings
    tui = settings.tui
    account = ctx.require_account()
    client = ctx.open_client(account)

    setup_logging(
        debug=args.debug or settings.debug,
        level=settings.logging.level,
        log_format=settings.logging.format,
        log_file=settings.logging.file,
        interactive=True,
    )

    cancel_event = threading.Event()
    cache = MessageCache(tui.cache_path, expiry=tui.cache_expiry)
    worker = RequestWorker(
        client,
        ctx.policy,
        get_downloads_dir(tui.downloads_dir),
        copy_to_clipboard,
        partial(open_html_in_browser, cleanup_delay=tui.html_cleanup_delay),
        cancel_event=cancel_event,
        max_workers=settings.api.max_concurrent_requests,
    )

    def build_controller(runner: TaskRunner) -> SessionController:
        return SessionController(
            account.address,
            runner,
            worker.perform,
            cache,
            refresh_interval=tui.refresh_interval,
            retry_delay=tui.retry_delay,
            max_retries=tui.max_retries,
            auto_refresh=tui.auto_refresh,
        )

    logger.info("Starting inbox browser for %s", account.address)
    try:
        run_tui(build_controller, cancel_event)
    finally:
        client.close()
    return 0


# =============================================================================
# Entry point
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="burnmail",
        description="Burnmail - Disposable mail.tm inbox in your terminal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    Create an address:
        burnmail g

    Browse the inbox:
        burnmail m

    Print the second message:
        burnmail messages show 2

Environment Variables:
    BURNMAIL_CONFIG_FILE        TOML configuration file
    BURNMAIL_API_BASE_URL       mail.tm API root
    BURNMAIL_TUI_AUTO_REFRESH   Refresh the inbox periodically (true/false)
        """,
    )

    parser.add_argument(
        "--config",
        metavar="FILE",
        help="Load settings from a TOML file",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"burnmail {__version__}",
    )

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    generate = commands.add_parser(
        "generate", aliases=["g"], help="Create a new disposable address"
    )
    generate.set_defaults(handler=cmd_generate)

    messages = commands.add_parser(
        "messages", aliases=["m", "inbox"], help="Browse the inbox"
    )
    messages.set_defaults(handler=cmd_messages, action=None)
    actions = messages.add_subparsers(dest="action", metavar="ACTION")
    actions.add_parser("list", help="Print the inbox as a table")
    show = actions.add_parser("show", help="Print one message")
    show.add_argument("message", help="Message number (1-based) or id")

    export = commands.add_parser("export", help="Export all messages to JSON")
    export.add_argument(
        "-o", "--output", type=Path, default=None,
        help="Directory to write the export to (default: current directory)",
    )
    export.set_defaults(handler=cmd_export)

    delete = commands.add_parser(
        "delete", aliases=["d"], help="Delete the account"
    )
    delete.set_defaults(handler=cmd_delete)

    me = commands.add_parser("me", help="Show the stored account")
    me.set_defaults(handler=cmd_me)

    return parser


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace.
    """
    return build_parser().parse_args(argv)


def load_settings(config: Optional[str]) -> Settings:
    """Settings from ``config`` when given, else from the environment."""
    if config:
        return Settings.from_toml(config)
    return get_settings()


def main(
    argv: Optional[list[str]] = None, console: Optional[Console] = None
) -> int:
    """
    Main entry point for the burnmail application.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    console = console or Console(highlight=False)

    if getattr(args, "handler", None) is None:
        parser.print_help()
        return 0

    try:
        settings = load_settings(args.config)
    except BurnmailError as e:
        console.print(f"[red]✗[/] {escape(str(e))}")
        return 1

    setup_logging(
        debug=args.debug or settings.debug,
        level=settings.logging.level,
        log_format=settings.logging.format,
        log_file=settings.logging.file,
    )
    logger.debug("burnmail %s, command %s", __version__, args.command)

    ctx = CommandContext.from_settings(settings, console)
    try:
        return args.handler(ctx, args)

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130

    except BurnmailError as e:
        logger.debug("Command failed", exc_info=True)
        console.print(f"[red]✗[/] {escape(str(e))}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
