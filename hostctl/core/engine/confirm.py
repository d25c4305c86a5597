"""
Confirmation layer — every yes/no decision an action needs from a human.

The engine never reads stdin. It asks an injected Confirmer, one
blocking request per decision point. The terminal implementation lives
in ``hostctl.ui.cli.prompts``; the ones here have no I/O.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)

REBOOT = "reboot"
SERVICE_RESTART = "service_restart"
OPTIONAL_INSTALL = "optional_install"
PROCEED = "proceed"

KINDS = (REBOOT, SERVICE_RESTART, OPTIONAL_INSTALL, PROCEED)


class Confirmer(ABC):
    """Answers yes/no questions on behalf of the user."""

    @abstractmethod
    def confirm(self, prompt: str, kind: str) -> bool:
        """Ask one question.

        Args:
            prompt: Human-readable question.
            kind: One of ``KINDS``.
        """


class DeclineAll(Confirmer):
    """Answers *no* to everything. Used when nobody can be asked."""

    def confirm(self, prompt: str, kind: str) -> bool:
        logger.info("Declined (non-interactive): %s", prompt)
        return False


class AssumeYes(Confirmer):
    """Accepts the given kinds without asking, delegates the rest.

    Reboots are not in the default set: ``--yes`` alone never reboots
    the machine.
    """

    def __init__(
        self,
        kinds: set[str] | frozenset[str] | None = None,
        fallback: Confirmer | None = None,
    ):
        self.kinds = frozenset(kinds) if kinds is not None else frozenset(
            {SERVICE_RESTART, OPTIONAL_INSTALL, PROCEED}
        )
        self.fallback = fallback or DeclineAll()

    def confirm(self, prompt: str, kind: str) -> bool:
        if kind in self.kinds:
            logger.info("Assumed yes: %s", prompt)
            return True
        return self.fallback.confirm(prompt, kind)


class ScriptedConfirmer(Confirmer):
    """Pre-recorded answers per kind; records every question asked."""

    def __init__(self, answers: dict[str, bool] | None = None, default: bool = False):
        self.answers = dict(answers or {})
        self.default = default
        self.asked: list[tuple[str, str]] = []

    def confirm(self, prompt: str, kind: str) -> bool:
        self.asked.append((kind, prompt))
        return self.answers.get(kind, self.default)

    def kinds_asked(self) -> list[str]:
        return [kind for kind, _ in self.asked]
