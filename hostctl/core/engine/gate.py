"""
Precondition gate — privilege and environment checks before mutation.

Runs before any mutating action and either lets it through or blocks
it whole. Nothing is partially applied.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from hostctl.core.errors import MissingFact, MissingPrivilege
from hostctl.core.models.host import HostContext

ROOT = "root"
NONE = "none"

_FACT_HINTS = {
    "debian_family": "hostctl manages Debian-family hosts only",
    "codename": "could not detect the Debian codename; set 'codename' in hostctl.yml",
    "systemd": "systemd is required to manage services",
    "kernel_release": "could not determine the running kernel",
    "non_free_firmware": "the non-free-firmware apt component is not enabled",
}


@dataclass
class GateResult:
    """Outcome of the precondition gate."""

    ok: bool
    error_kind: str | None = None
    reason: str = ""
    missing: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "error_kind": self.error_kind,
            "reason": self.reason,
            "missing": self.missing,
        }


def check_preconditions(
    host: HostContext,
    required_privilege: str = ROOT,
    required_facts: tuple[str, ...] | list[str] = (),
) -> GateResult:
    """Check privilege first, then each required fact.

    Returns:
        GateResult. ``error_kind`` is ``missing_privilege`` or
        ``missing_fact`` when blocked.
    """
    if required_privilege == ROOT and not host.is_root:
        return GateResult(
            ok=False,
            error_kind=MissingPrivilege.kind,
            reason="This action must be run as root (try sudo)",
            missing=["root"],
        )

    missing = [fact for fact in required_facts if not host.has_fact(fact)]
    if missing:
        hints = [_FACT_HINTS.get(f, f) for f in missing]
        return GateResult(
            ok=False,
            error_kind=MissingFact.kind,
            reason="; ".join(hints),
            missing=missing,
        )

    return GateResult(ok=True)
