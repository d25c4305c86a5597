"""
Component base — the static description of one managed host component.

A component knows how to detect itself (read-only, through a
HostInspector) and how to perform its actions (through a StepSession).
Components are stateless and instantiated once per process.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar

from hostctl.core.models.host import HostContext
from hostctl.core.models.presence import Presence
from hostctl.core.models.settings import Settings
from hostctl.core.services.detection.inspector import HostInspector

if TYPE_CHECKING:
    from hostctl.core.engine.session import StepSession


class Component(ABC):
    """Abstract base class for managed components.

    To add a component:
        1. Subclass Component, set name/title/actions/depends_on
        2. Implement detect() and one method per action
           (``setup-non-root`` → ``setup_non_root``)
        3. Register it in ``hostctl.components.default_components``
    """

    name: ClassVar[str] = ""
    title: ClassVar[str] = ""
    depends_on: ClassVar[tuple[str, ...]] = ()
    actions: ClassVar[frozenset[str]] = frozenset({"install", "uninstall", "reinstall"})

    # Actions that only read; no gate, no re-probe
    read_only_actions: ClassVar[frozenset[str]] = frozenset()
    # Actions that need an existing (possibly broken) install
    needs_prior_install: ClassVar[frozenset[str]] = frozenset({"rebuild", "setup-non-root"})
    # Actions that require dependencies to be installed first
    dependency_actions: ClassVar[frozenset[str]] = frozenset(
        {"install", "reinstall", "rebuild", "setup-non-root"}
    )

    # Environment facts checked by the gate, per action
    facts: ClassVar[tuple[str, ...]] = ("debian_family",)
    action_facts: ClassVar[dict[str, tuple[str, ...]]] = {}

    def required_facts(self, action: str) -> tuple[str, ...]:
        return self.action_facts.get(action, self.facts)

    @abstractmethod
    def detect(self, inspector: HostInspector, host: HostContext, settings: Settings) -> Presence:
        """Derive the current presence. Read-only; may raise ProbeError."""

    @abstractmethod
    def install(self, session: StepSession, presence: Presence, **params: Any) -> None:
        ...

    @abstractmethod
    def uninstall(self, session: StepSession, presence: Presence, **params: Any) -> None:
        ...

    def reinstall(self, session: StepSession, presence: Presence, **params: Any) -> None:
        """Uninstall, then install without the already-installed short-circuit."""
        self.uninstall(session, presence, **params)
        self.install(session, Presence.absent("reinstalling"), **params)

    def perform(self, session: StepSession, action: str, presence: Presence, **params: Any) -> None:
        """Dispatch ``action`` to its method."""
        method = getattr(self, action.replace("-", "_"))
        method(session, presence, **params)

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "title": self.title,
            "actions": sorted(self.actions),
            "depends_on": list(self.depends_on),
        }

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
