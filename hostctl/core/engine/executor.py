"""
Action executor — the central orchestration loop.

Takes one component action, checks it against the gate, the current
presence and the dependency graph, runs it inside a StepSession,
rolls back on failure, re-probes and offers follow-ups.

Flow:
    gate → probe → short-circuit → dependencies → steps → (rollback) → re-probe → follow-ups

Every failure ends up as a failed ActionResult carrying an
``error_kind``; nothing here raises to the caller.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from hostctl.core.context import RunContext
from hostctl.core.engine.confirm import OPTIONAL_INSTALL
from hostctl.core.engine.gate import NONE, ROOT, check_preconditions
from hostctl.core.engine.probe import probe
from hostctl.core.engine.rollback import run_rollback
from hostctl.core.engine.session import StepSession
from hostctl.core.errors import HostctlError, MissingPrecondition
from hostctl.core.models.action import ActionResult
from hostctl.core.models.presence import PresenceState
from hostctl.core.persistence.audit import AuditEntry

logger = logging.getLogger(__name__)

ALREADY_SATISFIED = "already satisfied"
ALREADY_ABSENT = "already absent"


def execute(run: RunContext, component: str, action: str, **params: Any) -> ActionResult:
    """Execute one top-level component action and audit it."""
    operation_id = generate_operation_id()
    result = _execute(run, component, action, params)

    marker = "✓" if result.ok else "✗" if result.failed else "⊘"
    logger.info("%s %s:%s → %s %s", marker, component, action, result.outcome, result.reason)

    if run.audit is not None:
        run.audit.write(AuditEntry.from_result(result, operation_id=operation_id))
    return result


def _execute(
    run: RunContext,
    name: str,
    action: str,
    params: dict[str, Any],
    parents: tuple[str, ...] = (),
) -> ActionResult:
    """Run one action. ``parents`` is the chain of components that led here."""
    started_at = datetime.now(UTC).isoformat()
    start = time.monotonic()

    def _finish(builder, *args: Any, **kwargs: Any) -> ActionResult:
        return builder(
            name,
            action,
            *args,
            started_at=started_at,
            ended_at=datetime.now(UTC).isoformat(),
            duration_ms=int((time.monotonic() - start) * 1000),
            dry_run=run.dry_run,
            **kwargs,
        )

    component = run.components.get(name)
    if component is None:
        return _finish(ActionResult.failure, f"Unknown component: {name}", "unknown_component")

    if action not in component.actions:
        return _finish(
            ActionResult.failure,
            f"{name} does not support '{action}'",
            "unsupported_action",
        )

    # ── Gate ───────────────────────────────────────────────────
    mutating = action not in component.read_only_actions
    if mutating:
        gate = check_preconditions(
            run.host,
            required_privilege=NONE if run.dry_run else ROOT,
            required_facts=component.required_facts(action),
        )
        if not gate.ok:
            return _finish(ActionResult.failure, gate.reason, gate.error_kind)

    # ── Current state ──────────────────────────────────────────
    before = probe(component, run.inspector, run.host, run.settings)

    if action == "install" and before.installed:
        return _finish(ActionResult.skip, ALREADY_SATISFIED, presence_before=before)
    if action == "uninstall" and before.state == PresenceState.ABSENT:
        return _finish(ActionResult.skip, ALREADY_ABSENT, presence_before=before)

    if action in component.needs_prior_install and not before.has_install:
        return _finish(
            ActionResult.failure,
            f"{name} is not installed ({before.label}); nothing to {action}",
            MissingPrecondition.kind,
            presence_before=before,
        )

    # ── Dependencies ───────────────────────────────────────────
    dependencies: list[ActionResult] = []
    if action in component.dependency_actions:
        missing: list[str] = []
        for dep_name in run.components.dependency_order(component.depends_on):
            dep = run.components[dep_name]
            dep_presence = probe(dep, run.inspector, run.host, run.settings)
            if dep_presence.installed:
                continue
            if dep_name in parents:
                # Installed earlier in this chain; it may only be waiting for a reboot
                if dep_presence.has_install:
                    continue
                missing.append(f"{dep_name} ({dep_presence.label})")
                continue
            if not run.install_dependencies:
                missing.append(f"{dep_name} ({dep_presence.label})")
                continue

            logger.info("Installing dependency %s for %s", dep_name, name)
            dep_result = _execute(run, dep_name, "install", {}, (*parents, name))
            dependencies.append(dep_result)
            if dep_result.failed:
                return _finish(
                    ActionResult.failure,
                    f"Dependency {dep_name} failed to install: {dep_result.reason}",
                    MissingPrecondition.kind,
                    presence_before=before,
                    dependencies=dependencies,
                )

        if missing:
            return _finish(
                ActionResult.failure,
                f"{name} requires {', '.join(missing)} to be installed (use --with-deps)",
                MissingPrecondition.kind,
                presence_before=before,
            )

    # ── Steps ──────────────────────────────────────────────────
    session = StepSession(run, name, action)
    error: HostctlError | None = None
    try:
        component.perform(session, action, before, **params)
    except HostctlError as e:
        error = e
    except Exception as e:
        logger.exception("Unexpected error during %s %s", name, action)
        error = HostctlError(f"Internal error: {e}")
        error.kind = "internal_error"

    if error is not None:
        rollback = []
        if session.undo and run.settings.rollback_on_failure:
            logger.warning("Rolling back %d step(s) of %s %s", len(session.undo), name, action)
            rollback = run_rollback(
                run.registry,
                session.undo,
                dry_run=run.dry_run,
                timeout=run.settings.command_timeout,
            )
        return _finish(
            ActionResult.failure,
            str(error),
            error.kind,
            presence_before=before,
            receipts=session.receipts,
            rollback=rollback,
            restart=session.restart,
            dependencies=dependencies,
            notes=session.notes,
            details=session.details,
        )

    # ── Re-probe and follow-ups ────────────────────────────────
    after = probe(component, run.inspector, run.host, run.settings) if mutating else None
    if after is not None and after.state == PresenceState.BROKEN and action in ("install", "reinstall"):
        session.note(f"Installed, but not functional yet: {after.reason}")

    # An accepted follow-up brings its own missing dependencies along
    follow_run = replace(run, install_dependencies=True)
    follow_ups: list[ActionResult] = []
    for offer in session.follow_ups:
        if offer.component in parents:
            continue
        if run.confirmer.confirm(offer.prompt, OPTIONAL_INSTALL):
            follow_ups.append(
                _execute(follow_run, offer.component, offer.action, dict(offer.params), (*parents, name))
            )
        else:
            session.note(f"Skipped: {offer.component} {offer.action}")

    return _finish(
        ActionResult.success,
        reason=session.notes[-1] if session.notes else "",
        presence_before=before,
        presence_after=after,
        receipts=session.receipts,
        restart=session.restart,
        dependencies=dependencies,
        follow_ups=follow_ups,
        notes=session.notes,
        details=session.details,
    )


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"op-{now}-{short}"
