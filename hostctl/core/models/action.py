"""
Action, Receipt and ActionResult models — the execution contract.

Actions are single external steps (one command, one file write).
Receipts are their results. The step session sends Actions through
the adapter registry and gets Receipts back, never exceptions.

ActionResult is one level up: the outcome of a whole component
action (install, uninstall, rebuild, ...), built once by the executor
and frozen afterwards.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from hostctl.core.models.presence import Presence


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Action(BaseModel):
    """A single external step to be executed by an adapter."""

    id: str                         # unique step identifier
    name: str = ""                  # human-readable label
    adapter: str                    # which adapter handles this
    params: dict[str, Any] = Field(default_factory=dict)
    for_component: str | None = None


class Receipt(BaseModel):
    """What one step did.

    Adapters report failures here instead of raising. The shell adapter
    fills ``metadata`` with ``return_code`` and ``error_kind`` (``exit``,
    ``tool_not_found``, ``timeout``, ``exec_error``); the step session adds
    ``step`` (the command line) and ``tolerated`` for failures that did
    not abort the action.
    """

    adapter: str
    action_id: str
    status: Literal["ok", "skipped", "failed"] = "ok"
    output: str = ""
    error: str | None = None
    finished_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def return_code(self) -> int | None:
        return self.metadata.get("return_code")

    @classmethod
    def success(cls, adapter: str, action_id: str, output: str = "", **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, output=output, **kwargs)

    @classmethod
    def failure(cls, adapter: str, action_id: str, error: str, **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, status="failed", error=error, **kwargs)

    @classmethod
    def skip(cls, adapter: str, action_id: str, reason: str = "", **kwargs: Any) -> Receipt:
        """``reason`` lands in ``output`` so text rendering shows it."""
        return cls(adapter=adapter, action_id=action_id, status="skipped", output=reason, **kwargs)


class RestartNeeds(BaseModel):
    """Manual follow-up steps an action left behind."""

    reboot_required: bool = False
    service_restart: list[str] = Field(default_factory=list)
    reasons: list[str] = Field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.reboot_required and not self.service_restart

    def merge(self, other: RestartNeeds) -> RestartNeeds:
        """Combine two sets of needs, keeping services unique."""
        services = list(self.service_restart)
        for svc in other.service_restart:
            if svc not in services:
                services.append(svc)
        reasons = list(self.reasons)
        for reason in other.reasons:
            if reason not in reasons:
                reasons.append(reason)
        return RestartNeeds(
            reboot_required=self.reboot_required or other.reboot_required,
            service_restart=services,
            reasons=reasons,
        )


class ActionResult(BaseModel):
    """Outcome of one component action. Immutable after creation."""

    model_config = ConfigDict(frozen=True)

    component: str
    action: str
    outcome: Literal["ok", "failed", "skipped"]
    reason: str = ""
    error_kind: str | None = None

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    presence_before: Presence | None = None
    presence_after: Presence | None = None

    receipts: list[Receipt] = Field(default_factory=list)
    rollback: list[Receipt] = Field(default_factory=list)
    restart: RestartNeeds = Field(default_factory=RestartNeeds)
    dependencies: list[ActionResult] = Field(default_factory=list)
    follow_ups: list[ActionResult] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return self.outcome == "ok"

    @property
    def failed(self) -> bool:
        return self.outcome == "failed"

    @property
    def skipped(self) -> bool:
        return self.outcome == "skipped"

    @property
    def nested(self) -> list[ActionResult]:
        """Dependency installs first, then follow-ups, in run order."""
        return [*self.dependencies, *self.follow_ups]

    @property
    def any_failed(self) -> bool:
        """Whether this result or any nested result failed."""
        return self.failed or any(r.any_failed for r in self.nested)

    @property
    def total_restart(self) -> RestartNeeds:
        """Restart needs of this result and all nested results combined."""
        needs = self.restart
        for result in self.nested:
            needs = needs.merge(result.total_restart)
        return needs

    @classmethod
    def success(cls, component: str, action: str, **kwargs: Any) -> ActionResult:
        return cls(component=component, action=action, outcome="ok", **kwargs)

    @classmethod
    def failure(
        cls,
        component: str,
        action: str,
        reason: str,
        error_kind: str = "error",
        **kwargs: Any,
    ) -> ActionResult:
        return cls(
            component=component,
            action=action,
            outcome="failed",
            reason=reason,
            error_kind=error_kind,
            **kwargs,
        )

    @classmethod
    def skip(cls, component: str, action: str, reason: str, **kwargs: Any) -> ActionResult:
        return cls(
            component=component,
            action=action,
            outcome="skipped",
            reason=reason,
            **kwargs,
        )


ActionResult.model_rebuild()
