"""
Step session — ordered external steps with ``set -e`` semantics.

A component action receives one StepSession and performs every side
effect through it. Each step becomes an Action sent through the adapter
registry; the Receipt is recorded, and the first failed step raises
ExternalCommandFailed / ToolNotFound so the rest of the action never
runs. Steps that write files register an undo so the executor can
roll them back.
"""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from hostctl.core.engine.confirm import PROCEED
from hostctl.core.engine.rollback import UndoStep
from hostctl.core.errors import ExternalCommandFailed, HostctlError, ToolNotFound
from hostctl.core.models.action import Action, Receipt, RestartNeeds
from hostctl.core.models.host import HostContext
from hostctl.core.models.settings import Settings
from hostctl.core.services.detection.inspector import HostInspector

if TYPE_CHECKING:
    from hostctl.core.context import RunContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FollowUp:
    """A nested action offered to the user once this one succeeds."""

    component: str
    action: str
    prompt: str
    params: dict[str, Any] = field(default_factory=dict)


class StepSession:
    """Sequencer and collector for one component action."""

    def __init__(self, run: RunContext, component: str, action: str):
        self._run = run
        self.component = component
        self.action = action

        self.receipts: list[Receipt] = []
        self.undo: list[UndoStep] = []
        self.restart = RestartNeeds()
        self.follow_ups: list[FollowUp] = []
        self.notes: list[str] = []
        self.details: dict[str, Any] = {}
        self._counter = 0

    # ── Read-only accessors ────────────────────────────────────

    @property
    def host(self) -> HostContext:
        return self._run.host

    @property
    def settings(self) -> Settings:
        return self._run.settings

    @property
    def inspector(self) -> HostInspector:
        return self._run.inspector

    @property
    def dry_run(self) -> bool:
        return self._run.dry_run

    # ── Steps ──────────────────────────────────────────────────

    def run(
        self,
        argv: list[str],
        *,
        check: bool = True,
        label: str = "",
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        input: str | None = None,
        timeout: int | None = None,
        creates: str | None = None,
    ) -> Receipt:
        """Run one external command.

        Args:
            check: Abort the action if the command fails. With
                ``check=False`` the failure is recorded and tolerated.
            creates: A path this command writes. If it did not exist
                before, removing it becomes an undo step.
        """
        if creates and not self.inspector.exists(creates):
            self._add_undo(f"Remove {creates}", self._fs_action("remove", creates))

        params: dict[str, Any] = {"argv": list(argv)}
        if cwd:
            params["cwd"] = cwd
        if env:
            params["env"] = env
        if input is not None:
            params["input"] = input

        action = Action(
            id=self._next_id(),
            name=label or shlex.join(argv),
            adapter="shell",
            params=params,
            for_component=self.component,
        )
        return self._dispatch(action, check=check, timeout=timeout)

    def write_file(self, path: str, content: str, mode: int | None = None) -> Receipt:
        """Write a file; undo restores the previous content or removes it."""
        if self.inspector.exists(path):
            previous = self.inspector.read_text(path)
            if previous is not None:
                self._add_undo(
                    f"Restore {path}",
                    self._fs_action("write", path, content=previous),
                )
        else:
            self._add_undo(f"Remove {path}", self._fs_action("remove", path))

        params: dict[str, Any] = {"content": content}
        if mode is not None:
            params["mode"] = mode
        return self._dispatch(self._fs_action("write", path, **params), check=True)

    def remove(self, path: str, check: bool = True) -> Receipt:
        """Remove a file, directory tree or glob of paths."""
        return self._dispatch(self._fs_action("remove", path), check=check)

    def mkdir(self, path: str, mode: int | None = None) -> Receipt:
        params = {"mode": mode} if mode is not None else {}
        return self._dispatch(self._fs_action("mkdir", path, **params), check=True)

    def chmod(self, path: str, mode: int) -> Receipt:
        return self._dispatch(self._fs_action("chmod", path, mode=mode), check=True)

    def json_remove_keys(self, path: str, keys: list[str], check: bool = True) -> Receipt:
        return self._dispatch(self._fs_action("json_remove_keys", path, keys=keys), check=check)

    # ── Outcomes ───────────────────────────────────────────────

    def require_reboot(self, reason: str) -> None:
        self.restart = self.restart.merge(RestartNeeds(reboot_required=True, reasons=[reason]))

    def require_service_restart(self, service: str, reason: str = "") -> None:
        self.restart = self.restart.merge(RestartNeeds(
            service_restart=[service],
            reasons=[reason or f"Configuration changed, restart {service}"],
        ))

    def note(self, message: str) -> None:
        logger.info("%s %s: %s", self.component, self.action, message)
        self.notes.append(message)

    def offer_follow_up(self, component: str, action: str, prompt: str, **params: Any) -> None:
        self.follow_ups.append(FollowUp(component, action, prompt, params))

    def confirm(self, prompt: str, kind: str = PROCEED) -> bool:
        """Ask the user. In dry-run mode 'proceed' questions are not asked."""
        if self.dry_run and kind == PROCEED:
            self.note(f"[dry-run] Would ask: {prompt}")
            return True
        return self._run.confirmer.confirm(prompt, kind)

    # ── Internals ──────────────────────────────────────────────

    def _next_id(self) -> str:
        self._counter += 1
        return f"{self.component}:{self.action}:{self._counter:02d}"

    def _fs_action(self, operation: str, path: str, **params: Any) -> Action:
        return Action(
            id=self._next_id(),
            name=f"{operation} {path}",
            adapter="filesystem",
            params={"operation": operation, "path": path, **params},
            for_component=self.component,
        )

    def _add_undo(self, description: str, action: Action) -> None:
        self.undo.append(UndoStep(description=description, action=action))

    def _dispatch(self, action: Action, check: bool, timeout: int | None = None) -> Receipt:
        receipt = self._run.registry.execute_action(
            action,
            dry_run=self.dry_run,
            timeout=timeout or self.settings.command_timeout,
        )
        receipt.metadata.setdefault("step", action.name)
        self.receipts.append(receipt)

        if not receipt.failed:
            return receipt

        if not check:
            receipt.metadata["tolerated"] = True
            logger.warning("Ignoring failed step '%s': %s", action.name, receipt.error)
            return receipt

        logger.error("Step failed '%s': %s", action.name, receipt.error)
        raise _error_for(action, receipt)


def _error_for(action: Action, receipt: Receipt) -> HostctlError:
    if receipt.metadata.get("error_kind") == "tool_not_found":
        tool = receipt.metadata.get("tool") or action.params.get("argv", ["?"])[0]
        return ToolNotFound(tool)
    return ExternalCommandFailed(action.name or action.id, receipt.return_code, receipt.error or "")
