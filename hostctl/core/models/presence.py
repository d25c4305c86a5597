"""
Presence and status models — what a probe found.

A Presence is derived fresh on every probe and never cached across
invocations. ``unknown`` is the degraded state of a probe that could
not complete (tool missing, tool error, timeout).
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class PresenceState(str, Enum):
    ABSENT = "absent"
    PARTIAL = "partial"
    INSTALLED = "installed"
    BROKEN = "broken"
    UNKNOWN = "unknown"


class Fact(BaseModel):
    """One observation made while probing, shown by ``status``.

    ``ok`` is None for purely informational facts.
    """

    label: str
    value: str = ""
    ok: bool | None = None


class Presence(BaseModel):
    """Derived install state of one component."""

    state: PresenceState
    version: str | None = None
    reason: str = ""
    error_kind: str | None = None
    facts: list[Fact] = Field(default_factory=list)

    @property
    def installed(self) -> bool:
        return self.state == PresenceState.INSTALLED

    @property
    def has_install(self) -> bool:
        """Installed, even if not currently functional."""
        return self.state in (PresenceState.INSTALLED, PresenceState.BROKEN)

    @classmethod
    def absent(cls, reason: str = "", **kwargs: Any) -> Presence:
        return cls(state=PresenceState.ABSENT, reason=reason, **kwargs)

    @classmethod
    def partial(cls, reason: str, **kwargs: Any) -> Presence:
        return cls(state=PresenceState.PARTIAL, reason=reason, **kwargs)

    @classmethod
    def installed_at(cls, version: str | None, **kwargs: Any) -> Presence:
        return cls(state=PresenceState.INSTALLED, version=version, **kwargs)

    @classmethod
    def broken(cls, reason: str, **kwargs: Any) -> Presence:
        return cls(state=PresenceState.BROKEN, reason=reason, **kwargs)

    @classmethod
    def unknown(cls, reason: str, error_kind: str | None = None, **kwargs: Any) -> Presence:
        return cls(
            state=PresenceState.UNKNOWN,
            reason=reason,
            error_kind=error_kind,
            **kwargs,
        )

    @property
    def label(self) -> str:
        """Short display label, e.g. ``installed (1.0-18)``."""
        if self.version and self.state in (PresenceState.INSTALLED, PresenceState.BROKEN):
            return f"{self.state.value} ({self.version})"
        return self.state.value


class ComponentStatus(BaseModel):
    """Status of one component inside a report."""

    name: str
    title: str = ""
    required: bool = True
    presence: Presence


class StatusReport(BaseModel):
    """Aggregated status across components.

    The overall status is ``healthy`` only if every required component
    is installed; ``unknown`` if nothing required is missing or broken
    but at least one probe could not complete; ``unhealthy`` otherwise.
    """

    components: list[ComponentStatus] = Field(default_factory=list)
    # /var/run/reboot-required exists; a broken driver may just need it
    reboot_pending: bool = False

    def add(self, status: ComponentStatus) -> None:
        self.components.append(status)

    @property
    def status(self) -> str:
        required = [c.presence.state for c in self.components if c.required]
        if all(s == PresenceState.INSTALLED for s in required):
            return "healthy"
        if all(s in (PresenceState.INSTALLED, PresenceState.UNKNOWN) for s in required):
            return "unknown"
        return "unhealthy"

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"

    def get(self, name: str) -> ComponentStatus | None:
        for comp in self.components:
            if comp.name == name:
                return comp
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "reboot_pending": self.reboot_pending,
            "components": [c.model_dump(mode="json") for c in self.components],
        }
