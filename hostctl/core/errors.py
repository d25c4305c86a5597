"""
Error taxonomy — every failure the engine knows how to report.

Engine and component code raise these; the executor turns them into
failed ActionResults carrying ``kind`` so that one run can report
several component failures instead of stopping at the first.

Adapters never raise: their failures are Receipts, which the step
session converts into ExternalCommandFailed / ToolNotFound.
"""

from __future__ import annotations


class HostctlError(Exception):
    """Base class for all hostctl errors."""

    kind = "error"


class ConfigError(HostctlError):
    """Raised when hostctl configuration is invalid or unreadable."""

    kind = "config_error"


class MissingPrivilege(HostctlError):
    """The action needs a privilege level the process does not have."""

    kind = "missing_privilege"


class MissingPrecondition(HostctlError):
    """A required environment fact or prior state is missing."""

    kind = "missing_precondition"


class MissingFact(MissingPrecondition):
    """An environment fact the action relies on does not hold."""

    kind = "missing_fact"


class ToolNotFound(HostctlError):
    """An external tool required by a step is not on PATH."""

    kind = "tool_not_found"

    def __init__(self, tool: str, message: str = ""):
        self.tool = tool
        super().__init__(message or f"Required tool not found: {tool}")


class ExternalCommandFailed(HostctlError):
    """An external command exited non-zero (or timed out)."""

    kind = "external_command_failed"

    def __init__(self, command: str, code: int | None, detail: str = ""):
        self.command = command
        self.code = code
        self.detail = detail
        exit_part = f"exit {code}" if code is not None else "no exit code"
        message = f"Command failed ({exit_part}): {command}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ResourceBusy(HostctlError):
    """A kernel module or device is in use and cannot be reloaded."""

    kind = "resource_busy"


class UserDeclined(HostctlError):
    """The user answered *no* to a confirmation the action depends on."""

    kind = "user_declined"


class ProbeError(HostctlError):
    """A read-only probe could not complete.

    ``kind`` is one of ``tool_not_found``, ``tool_error`` or ``timeout``
    and is set per instance.
    """

    KINDS = ("tool_not_found", "tool_error", "timeout")

    def __init__(self, kind: str, message: str):
        if kind not in self.KINDS:
            raise ValueError(f"Unknown probe error kind: {kind}")
        self.kind = kind
        super().__init__(message)
