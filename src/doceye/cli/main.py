"""Main CLI application using Click framework."""

import asyncio
import functools
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import ConfigLoader, get_settings
from ..config.settings import AppSettings
from ..config.types import MonitorConfiguration
from ..monitor import MonitorRunner, RunOptions, RunSummary, select_sites
from ..notification import TelegramNotifier
from ..utils.logging import get_structured_logger, setup_logging
from .types import CLIContext, CommandResult

console = Console()
logger = get_structured_logger(__name__)

EXAMPLES = """
\b
Examples:
  doceye                                  process all enabled sites
  doceye --dry-run                        no state changes, no notifications
  doceye --dry-run --notify               dry run that still sends to Telegram
  doceye --dry-run --site-id=boe-ayudas   test a single site
  doceye --dry-run --config-json='{"id":"test","name":"Test","url":"https://example.com",
    "extraction":{"listSelector":"a","fields":{"title":".","url":"@href"}}}'
"""


def async_command(f):
    """Decorator to run async functions in Click commands."""

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return asyncio.run(f(*args, **kwargs))
        except KeyboardInterrupt:
            console.print("❌ Operation cancelled by user", style="red")
            sys.exit(1)
        except Exception as e:
            console.print(f"❌ Error: {str(e)}", style="red")
            logger.error("CLI command failed", error=str(e))
            sys.exit(1)

    return wrapper


def handle_result(result: CommandResult, ctx: CLIContext) -> None:
    """Handle command result output."""
    if result.success:
        if result.message:
            console.print(f"✅ {result.message}", style="green")
        if result.data and ctx.verbose:
            console.print_json(data=result.data)
    else:
        console.print(f"❌ {result.message}", style="red")
        if result.data and ctx.debug:
            console.print_json(data=result.data)

    if not result.success:
        sys.exit(result.exit_code)


def load_configuration(
    settings: AppSettings, config_file: Optional[str], config_json: Optional[str]
) -> MonitorConfiguration:
    loader = ConfigLoader(Path(config_file) if config_file else settings.config_file)
    if config_json:
        return loader.load_inline(config_json)
    return loader.load()


def build_notifier(settings: AppSettings, configuration: MonitorConfiguration) -> TelegramNotifier:
    """Credentials from the config document win over the environment."""
    return TelegramNotifier(
        bot_token=configuration.telegram.bot_token
        or settings.telegram_bot_token.get_secret_value(),
        chat_id=configuration.telegram.chat_id or settings.telegram_chat_id,
        settings=settings.notification,
    )


def print_summary(summary: RunSummary) -> None:
    table = Table(title="Run Summary")
    table.add_column("", width=2)
    table.add_column("Site", style="cyan")
    table.add_column("Documents", justify="right")
    table.add_column("New", justify="right", style="green")
    table.add_column("Updated", justify="right", style="yellow")
    table.add_column("Details")

    for result in summary.results:
        if result.success:
            table.add_row(
                "✓",
                result.site_id,
                str(result.documents),
                str(result.new),
                str(result.updated),
                f"{result.processed} files retrieved",
            )
        else:
            details = result.error or "failed"
            if result.duplicate_error:
                details += " (repeated, not notified)"
            table.add_row("✗", result.site_id, "-", "-", "-", f"[red]{details}[/red]")

    console.print(table)
    console.print(
        f"{len(summary.successful)}/{len(summary.results)} sites processed successfully"
    )


@click.command(epilog=EXAMPLES)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Run without saving state or sending notifications (unless --notify is given)",
)
@click.option("--notify", is_flag=True, help="Send Telegram notifications even in dry-run mode")
@click.option("--site-id", help="Process only the specified site")
@click.option("--config-json", help="Inline JSON config for a single site (for testing)")
@click.option(
    "--config-file",
    type=click.Path(dir_okay=False),
    help="Alternative config file (default: config/sites.json)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug output")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@async_command
async def cli(
    dry_run: bool,
    notify: bool,
    site_id: Optional[str],
    config_json: Optional[str],
    config_file: Optional[str],
    verbose: bool,
    debug: bool,
    json_logs: bool,
) -> None:
    """DocEye - Government Document Monitor.

    Checks every enabled site for new or updated documents, sends them to
    Telegram and records what has been seen.
    """
    ctx = CLIContext(verbose=verbose, debug=debug)
    settings = get_settings()
    setup_logging(
        log_level="DEBUG" if debug or settings.debug else settings.log_level,
        json_logs=json_logs or settings.json_logs,
        include_caller_info=debug,
    )

    options = RunOptions(dry_run=dry_run, notify=notify, site_id=site_id)
    console.print(
        Panel(
            f"Mode: {'DRY RUN' if dry_run else 'PRODUCTION'}\n"
            f"Notifications: {'ENABLED' if options.should_notify else 'DISABLED'}\n"
            f"Time: {datetime.now(timezone.utc).isoformat()}",
            title="DocEye - Document Monitor",
            style="bold blue",
        )
    )

    configuration = load_configuration(settings, config_file, config_json)
    sites, invalid_sites = select_sites(configuration, site_id)
    if ctx.verbose:
        console.print(
            f"Processing {len(sites) + len(invalid_sites)} enabled site(s) "
            f"of {len(configuration.sites) + len(configuration.invalid_sites)} configured"
        )

    notifier = build_notifier(settings, configuration)
    if not notifier.is_configured:
        console.print(
            "⚠️  Telegram not configured (set TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID)",
            style="yellow",
        )

    summary = await MonitorRunner(settings, notifier, options).run(sites, invalid_sites)
    print_summary(summary)

    if summary.all_failed:
        result = CommandResult(success=False, message="All sites failed!", exit_code=1)
    elif summary.failed:
        result = CommandResult(
            success=True,
            message=f"{len(summary.failed)} site(s) had errors (partial success)",
        )
    else:
        result = CommandResult(success=True, message="Run complete")

    result.data = {
        "results": [
            {"site": r.site_id, "success": r.success, "details": r.details}
            for r in summary.results
        ]
    }
    handle_result(result, ctx)
