"""
CLI commands for managed components — one group per component.

Thin wrappers over ``hostctl.core.engine``. Shared commands (status,
install, uninstall, reinstall, rebuild) are generated from each
component's action set; component-specific ones are added below.

Usage::

    hostctl coral status
    hostctl nvidia install --driver-version 570.181
    hostctl nvidia-toolkit install --with-deps
    hostctl docker uninstall --json
"""

from __future__ import annotations

import json
import sys
from collections.abc import Callable
from typing import Any

import click

from hostctl.core.context import RunContext
from hostctl.core.models.action import ActionResult, Receipt
from hostctl.core.models.presence import PresenceState, StatusReport

_OUTCOME_STYLE = {
    "ok": ("✓", "green"),
    "skipped": ("⊘", "yellow"),
    "failed": ("❌", "red"),
}

_STATE_STYLE = {
    PresenceState.INSTALLED: ("✅", "green"),
    PresenceState.BROKEN: ("⚠️ ", "yellow"),
    PresenceState.PARTIAL: ("🟡", "yellow"),
    PresenceState.ABSENT: ("⚪", "white"),
    PresenceState.UNKNOWN: ("❔", "white"),
}

_REPORT_STYLE = {
    "healthy": ("💚", "green"),
    "unhealthy": ("🔴", "red"),
    "unknown": ("❔", "white"),
}


# ── Run context ─────────────────────────────────────────────────


def get_run_context(ctx: click.Context, install_dependencies: bool = False) -> RunContext:
    """Build the run context for this invocation.

    ``ctx.obj["run_factory"]`` replaces the real wiring (used by tests).
    Configuration errors end the command with exit code 1.
    """
    from hostctl.core.config.loader import load_settings
    from hostctl.core.context import build_run_context
    from hostctl.core.errors import ConfigError
    from hostctl.ui.cli.prompts import make_confirmer

    obj = ctx.obj or {}
    try:
        settings = load_settings(obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)

    factory = obj.get("run_factory") or build_run_context
    return factory(
        settings,
        confirmer=make_confirmer(obj.get("yes", False), obj.get("reboot", False)),
        dry_run=obj.get("dry_run", False),
        install_dependencies=install_dependencies,
    )


# ── Rendering ───────────────────────────────────────────────────


def render_report(report: StatusReport, verbose: bool = False) -> None:
    icon, color = _REPORT_STYLE.get(report.status, ("❔", "white"))
    click.echo()
    click.secho(f"{icon} Host status: {report.status.upper()}", fg=color, bold=True)
    click.echo()

    for comp in report.components:
        presence = comp.presence
        s_icon, s_color = _STATE_STYLE.get(presence.state, ("❔", "white"))
        click.secho(f"   {s_icon} {comp.title or comp.name} ", fg=s_color, bold=True, nl=False)
        click.echo(f"[{comp.name}] {presence.label}")
        if presence.reason and presence.state != PresenceState.INSTALLED:
            click.echo(f"      {presence.reason}")
        if presence.error_kind:
            click.echo(f"      error: {presence.error_kind}")
        if verbose or presence.state != PresenceState.INSTALLED:
            for fact in presence.facts:
                mark = "✓" if fact.ok else "✗" if fact.ok is False else "•"
                click.echo(f"      {mark} {fact.label}: {fact.value}")

    if report.reboot_pending:
        click.echo()
        click.secho("   ⚠ A reboot is pending; broken drivers may only need it.", fg="yellow")
    click.echo()


def _render_receipt(receipt: Receipt, indent: str, verbose: bool) -> None:
    step = receipt.metadata.get("step") or receipt.action_id
    timing = f" ({receipt.duration_ms}ms)" if receipt.duration_ms else ""
    if receipt.ok:
        click.secho(f"{indent}✓ {step}", fg="green", nl=False)
        click.echo(timing)
        if verbose and receipt.output:
            for line in receipt.output.split("\n")[-10:]:
                click.echo(f"{indent}  │ {line}")
    elif receipt.failed:
        tolerated = receipt.metadata.get("tolerated")
        click.secho(f"{indent}{'⚠' if tolerated else '✗'} {step}", fg="yellow" if tolerated else "red", nl=False)
        click.echo(f"{timing}{' (ignored)' if tolerated else ''}")
        if receipt.error and (verbose or not tolerated):
            for line in receipt.error.split("\n")[-5:]:
                click.echo(f"{indent}  │ {line}")
    else:
        click.secho(f"{indent}⊘ {step} ", fg="yellow", nl=False)
        click.echo(f"({receipt.output})")


def render_result(result: ActionResult, verbose: bool = False, indent: str = "") -> None:
    icon, color = _OUTCOME_STYLE.get(result.outcome, ("?", "white"))
    mode = "[dry-run] " if result.dry_run else ""
    click.secho(f"{indent}{icon} {mode}{result.component} {result.action}: {result.outcome}", fg=color, bold=True)
    if result.reason and result.outcome != "ok":
        click.echo(f"{indent}   {result.reason}")

    if result.presence_before and result.presence_after:
        click.echo(f"{indent}   {result.presence_before.label} → {result.presence_after.label}")

    for dep in result.dependencies:
        render_result(dep, verbose, indent + "   ")

    for receipt in result.receipts:
        if verbose or not receipt.ok or result.dry_run:
            _render_receipt(receipt, indent + "   ", verbose)

    if result.rollback:
        click.secho(f"{indent}   ↩ Rolled back:", fg="yellow")
        for receipt in result.rollback:
            _render_receipt(receipt, indent + "     ", verbose)

    for note in result.notes:
        click.echo(f"{indent}   • {note}")

    for follow_up in result.follow_ups:
        render_result(follow_up, verbose, indent + "   ")


# ── Shared command bodies ───────────────────────────────────────


def show_status(ctx: click.Context, names: list[str], as_json: bool) -> None:
    from hostctl.core.engine.probe import build_status_report

    run = get_run_context(ctx)
    unknown = [n for n in names if n not in run.components]
    if unknown:
        click.secho(f"❌ Unknown component(s): {', '.join(unknown)}", fg="red", err=True)
        sys.exit(1)

    selected = [run.components[n] for n in names] if names else list(run.components)
    report = build_status_report(selected, run.inspector, run.host, run.settings)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        render_report(report, verbose=ctx.obj.get("verbose", False))

    sys.exit(0 if report.healthy else 1)


def run_action(
    ctx: click.Context,
    component: str,
    action: str,
    as_json: bool,
    with_deps: bool = False,
    **params: Any,
) -> None:
    """Execute one action, report it, then deal with restarts."""
    from hostctl.core.engine.executor import execute
    from hostctl.core.engine.restart import apply_restart_needs, restart_notifications

    run = get_run_context(ctx, install_dependencies=with_deps)
    result = execute(run, component, action, **{k: v for k, v in params.items() if v is not None})

    if as_json:
        click.echo(json.dumps(result.model_dump(mode="json"), indent=2))
    else:
        click.echo()
        render_result(result, verbose=ctx.obj.get("verbose", False))

    needs = result.total_restart
    if not needs.empty:
        pending = needs
        if not run.dry_run:
            receipts, pending = apply_restart_needs(needs, run.confirmer, run.registry, run.host)
            if not as_json:
                for receipt in receipts:
                    _render_receipt(receipt, "   ", verbose=False)
        if not as_json:
            for message in restart_notifications(pending, run.host):
                click.secho(f"   ⚠️  {message}", fg="yellow")

    if not as_json:
        click.echo()
    sys.exit(1 if result.any_failed else 0)


# ── Group factory ───────────────────────────────────────────────

_DESCRIPTIONS = {
    "install": "Install {title} (no-op if already installed).",
    "uninstall": "Uninstall {title} and remove its configuration.",
    "reinstall": "Uninstall, then install {title} again.",
    "rebuild": "Rebuild {title} for the running kernel.",
}

_json_option = click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")


def _status_command(name: str, title: str) -> click.Command:
    @click.command("status")
    @_json_option
    @click.pass_context
    def status(ctx: click.Context, as_json: bool) -> None:
        show_status(ctx, [name], as_json)

    status.help = f"Show {title} status."
    return status


def _action_command(name: str, title: str, action: str, extra: list[Callable] | None = None) -> click.Command:
    def callback(ctx: click.Context, as_json: bool, **params: Any) -> None:
        with_deps = params.pop("with_deps", False)
        run_action(ctx, name, action, as_json, with_deps=with_deps, **params)

    callback = click.pass_context(callback)
    for decorator in reversed(extra or []):
        callback = decorator(callback)
    callback = _json_option(callback)
    return click.command(action, help=_DESCRIPTIONS[action].format(title=title))(callback)


_with_deps = click.option(
    "--with-deps", is_flag=True, help="Install missing dependencies first."
)


def make_group(name: str, title: str, actions: frozenset[str], depends_on: tuple[str, ...]) -> click.Group:
    """Click group with status plus one command per standard action."""
    group = click.Group(name, help=f"{title} — status and lifecycle.")
    group.add_command(_status_command(name, title))

    for action in ("install", "uninstall", "reinstall", "rebuild"):
        if action not in actions:
            continue
        extra = [_with_deps] if depends_on and action != "uninstall" else []
        group.add_command(_action_command(name, title, action, extra))
    return group


def build_groups() -> list[click.Group]:
    """One group per shipped component, with component-specific commands."""
    from hostctl.components import default_components

    groups: dict[str, click.Group] = {}
    for comp in default_components():
        groups[comp.name] = make_group(comp.name, comp.title, comp.actions, comp.depends_on)

    _add_coral_commands(groups["coral"])
    _add_nvidia_commands(groups["nvidia"])
    return list(groups.values())


# ── Component-specific commands ─────────────────────────────────


def _add_coral_commands(group: click.Group) -> None:
    @group.command("setup-non-root")
    @click.argument("user", required=False)
    @_json_option
    @click.pass_context
    def setup_non_root(ctx: click.Context, user: str | None, as_json: bool) -> None:
        """Give USER (default: $SUDO_USER) access to the TPU without root."""
        run_action(ctx, "coral", "setup-non-root", as_json, user=user)


def _add_nvidia_commands(group: click.Group) -> None:
    driver_version = click.option(
        "--driver-version", default=None, help="Driver version (default: latest production)."
    )

    for action in ("install", "reinstall"):
        group.add_command(_action_command("nvidia", "NVIDIA GPU driver", action, [driver_version]))

    @group.command("uninstall")
    @click.argument("version", required=False)
    @_json_option
    @click.pass_context
    def uninstall(ctx: click.Context, version: str | None, as_json: bool) -> None:
        """Uninstall the NVIDIA driver (VERSION defaults to the installed one)."""
        run_action(ctx, "nvidia", "uninstall", as_json, version=version)

    @group.command("version")
    @_json_option
    @click.pass_context
    def version(ctx: click.Context, as_json: bool) -> None:
        """Show installed and latest production driver versions."""
        from hostctl.core.engine.executor import execute

        result = execute(get_run_context(ctx), "nvidia", "version")
        if as_json:
            click.echo(json.dumps(result.details or {"error": result.reason}, indent=2))
        elif result.ok:
            details = result.details
            click.echo(f"installed {details.get('installed') or 'none'}, latest stable {details['latest']}")
            if details.get("latest_source") == "fallback":
                click.secho("   (could not reach nvidia.com, showing the configured default)", fg="yellow")
        else:
            click.secho(f"❌ {result.reason}", fg="red")
        sys.exit(0 if result.ok else 1)
