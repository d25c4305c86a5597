"""
Adapter base — what a host-mutating backend must provide.

hostctl has two: ``shell`` runs one external command, ``filesystem``
writes, removes and edits files. Components never call either directly;
their StepSession builds Actions and the registry dispatches them here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from hostctl.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """One step as the adapter sees it."""

    action: Action
    dry_run: bool = False
    timeout: int = 1800
    params: dict[str, Any] = Field(default_factory=dict)

    def param(self, key: str, default: Any = None) -> Any:
        return self.action.params.get(key, default)


class Adapter(ABC):
    """A backend for one kind of host step.

    ``execute`` reports every failure (non-zero exit, missing tool,
    OSError) in the returned Receipt instead of raising; the StepSession
    decides whether a failed receipt aborts the action.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Name Actions use to address this adapter."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the backend can run on this host at all."""

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Check the step's params; ``(False, why)`` rejects it unrun."""

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Perform the step."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"
