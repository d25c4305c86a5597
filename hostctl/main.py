"""
hostctl — CLI entrypoint.

Usage:
    hostctl --help
    hostctl status
    sudo hostctl coral install
    sudo hostctl --yes nvidia-toolkit install --with-deps
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from hostctl import __version__
from hostctl.core.observability.logging_config import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="hostctl")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to hostctl.yml (default: auto-detect).",
)
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Answer yes to every question except reboots.")
@click.option("--reboot", is_flag=True, help="Reboot without asking when an action requires it.")
@click.option("--dry-run", is_flag=True, help="Show what would be done without changing the host.")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    assume_yes: bool,
    reboot: bool,
    dry_run: bool,
) -> None:
    """hostctl — install and maintain host drivers and container runtimes."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["yes"] = assume_yes
    ctx.obj["reboot"] = reboot
    ctx.obj["dry_run"] = dry_run

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("HOSTCTL_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("HOSTCTL_LOG_FILE"),
        log_file_level=os.environ.get("HOSTCTL_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )


@cli.command()
@click.argument("names", nargs=-1)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, names: tuple[str, ...], as_json: bool) -> None:
    """Show the status of all (or the named) components.

    Exits 1 unless every listed component is installed and working.
    """
    from hostctl.ui.cli.components import show_status

    show_status(ctx, list(names), as_json)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def components(as_json: bool) -> None:
    """List managed components, their actions and dependencies."""
    from hostctl.components import default_components

    registry = default_components()
    items = [comp.describe() for comp in registry]

    if as_json:
        click.echo(json.dumps(items, indent=2))
        return

    click.secho(f"\n📦 Components ({len(items)}):", fg="cyan", bold=True)
    for item in items:
        click.secho(f"   {item['name']:<16}", bold=True, nl=False)
        click.echo(f"{item['title']}")
        click.echo(f"      actions:  {', '.join(item['actions'])}")
        if item["depends_on"]:
            click.echo(f"      requires: {', '.join(item['depends_on'])}")
    click.echo()


@cli.command()
@click.option("-n", "count", default=20, type=int, help="Number of entries to show.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, count: int, as_json: bool) -> None:
    """Show recent actions from the audit log (needs 'audit_log' in hostctl.yml)."""
    from hostctl.core.config.loader import load_settings
    from hostctl.core.errors import ConfigError
    from hostctl.core.persistence.audit import AuditWriter

    try:
        settings = load_settings(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)

    if not settings.audit_log:
        click.secho("❌ No audit log configured (set 'audit_log' in hostctl.yml)", fg="red")
        sys.exit(1)

    entries = AuditWriter(Path(settings.audit_log)).read_recent(count)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.secho("No actions recorded yet.", fg="yellow")
        return

    colors = {"ok": "green", "skipped": "yellow", "failed": "red"}
    for entry in entries:
        mode = " [dry-run]" if entry.dry_run else ""
        click.echo(f"   {entry.timestamp}  {entry.component} {entry.action}{mode} — ", nl=False)
        click.secho(entry.outcome, fg=colors.get(entry.outcome, "white"), nl=False)
        click.echo(f"  {entry.reason}" if entry.reason else "")


# ── Register component groups from hostctl/ui/cli/ ────────────────

from hostctl.ui.cli.components import build_groups  # noqa: E402

for _group in build_groups():
    cli.add_command(_group)


if __name__ == "__main__":
    cli()
