"""Command-line entry point for newsdesk."""

from __future__ import annotations

import datetime
import logging
import sys

import click

from .commands import add as add_cmd
from .commands import maintenance as maintenance_cmd
from .commands import opml as opml_cmd
from .commands import refresh as refresh_cmd
from .core.config import DEFAULT_CONFIG_PATH
from .core.errors import ParseError
from .core.paths import resolve_data_path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Setup logging early so submodules inherit sane defaults
logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)


def _log_to_file() -> str:
    """Send log records to a file so they do not draw over the full-screen interface."""
    path = resolve_data_path("newsdesk.log", ensure_parent=True)
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    return str(path)


def _interactive(config_path: str) -> None:
    from .core.blocklist import Blocklist
    from .core.command_context import CommandContext
    from .tui import ReaderApp, run as run_tui

    log_path = _log_to_file()
    try:
        ctx = CommandContext(config_path)
    except Exception as exc:
        click.echo(f"❌ Cannot start: {exc} (details in {log_path})", err=True)
        sys.exit(1)

    try:
        orchestrator = ctx.build_orchestrator()
        orchestrator.load()
    except Exception as exc:
        ctx.close()
        click.echo(f"❌ Cannot start: {exc} (details in {log_path})", err=True)
        sys.exit(1)

    with ctx:
        refresh = ctx.config_manager.get_refresh_settings()
        app = ReaderApp(
            orchestrator,
            blocklist=Blocklist(ctx.config_manager.get_blocklist_path()),
            refresh_interval=datetime.timedelta(minutes=refresh["interval_minutes"]),
        )
        run_tui(app)


@click.group(invoke_without_command=True)
@click.option(
    "--config",
    default=str(DEFAULT_CONFIG_PATH),
    show_default=True,
    help="Path to config file (defaults to data_dir/config/config.yaml)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx: click.Context, config: str, verbose: bool) -> None:
    """newsdesk - a terminal feed reader. Run without a command for the interactive view."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config

    if ctx.invoked_subcommand is None:
        _interactive(config)


@cli.command("refresh")
@click.option("--timeout", type=float, default=None, help="Give up after this many seconds")
@click.pass_context
def refresh(ctx: click.Context, timeout: float | None) -> None:
    """Refresh every feed once and exit (non-zero if any feed failed)."""
    try:
        report = refresh_cmd.run(ctx.obj["config_path"], timeout=timeout)
    except Exception as exc:  # pragma: no cover - click echoes the message
        click.echo(f"❌ Refresh failed: {exc}", err=True)
        sys.exit(1)

    for name, message in report.failed.items():
        click.echo(f"❌ {name}: {message}", err=True)
    if report.timed_out:
        click.echo(f"❌ Refresh did not finish within {timeout}s", err=True)
    if not report.ok:
        sys.exit(1)
    click.echo(f"✅ Refreshed {report.feeds} feeds, {report.new_articles} new articles")


@cli.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def import_opml(ctx: click.Context, path: str) -> None:
    """Subscribe to the feeds listed in an OPML file."""
    try:
        added, skipped = opml_cmd.run_import(ctx.obj["config_path"], path)
    except ParseError as exc:
        click.echo(f"❌ Could not parse {path}: {exc}", err=True)
        sys.exit(1)
    except Exception as exc:  # pragma: no cover - click echoes the message
        click.echo(f"❌ Import failed: {exc}", err=True)
        sys.exit(1)
    click.echo(f"✅ Imported {added} feeds ({skipped} already subscribed)")


@cli.command("export")
@click.argument("path", type=click.Path(dir_okay=False))
@click.pass_context
def export_opml(ctx: click.Context, path: str) -> None:
    """Write all subscriptions to an OPML file."""
    try:
        count = opml_cmd.run_export(ctx.obj["config_path"], path)
        click.echo(f"✅ Exported {count} feeds to {path}")
    except Exception as exc:  # pragma: no cover - click echoes the message
        click.echo(f"❌ Export failed: {exc}", err=True)
        sys.exit(1)


@cli.command("add")
@click.argument("url")
@click.pass_context
def add(ctx: click.Context, url: str) -> None:
    """Find the feed behind URL (a feed or any web page) and subscribe."""
    try:
        feed = add_cmd.run(ctx.obj["config_path"], url)
        click.echo(f"✅ Subscribed to '{feed.title}' ({feed.url})")
    except Exception as exc:  # pragma: no cover - click echoes the message
        click.echo(f"❌ Could not add {url}: {exc}", err=True)
        sys.exit(1)


@cli.command("purge")
@click.pass_context
def purge(ctx: click.Context) -> None:
    """Delete articles past the retention window and compact the database."""
    try:
        purged, remaining = maintenance_cmd.purge(ctx.obj["config_path"])
        click.echo(f"✅ Purged {purged} articles ({remaining} remaining)")
    except Exception as exc:  # pragma: no cover - click echoes the message
        click.echo(f"❌ Purge command failed: {exc}", err=True)
        sys.exit(1)


@cli.command("status")
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show configuration, database location and counts."""
    info = maintenance_cmd.status(ctx.obj["config_path"])
    if "config_path" in info:
        click.echo(f"📄 Config file: {info['config_path']}")
    if not info.get("valid"):
        click.echo(f"❌ Configuration invalid{': ' + info['error'] if info.get('error') else ''}", err=True)
        sys.exit(1)
    click.echo("✅ Configuration is valid")
    click.echo(f"🗄️  Database: {info['db_path']}")
    if info.get("db_error"):
        click.echo(f"❌ Database unavailable: {info['db_error']}", err=True)
        sys.exit(1)
    click.echo(f"📡 Feeds: {info['feeds']}")
    click.echo(f"📰 Articles: {info['articles']}")
    click.echo(f"🧹 Last compacted: {info['last_compacted_at'] or 'never'}")


def main() -> None:
    cli()


if __name__ == "__main__":  # pragma: no cover - script entry
    main()
