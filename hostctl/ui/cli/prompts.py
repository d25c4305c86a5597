"""
Terminal confirmations — the interactive Confirmer used by the CLI.

Prompts go to stderr so ``--json`` output on stdout stays parseable.
Without a terminal on stdin every question is answered *no*.
"""

from __future__ import annotations

import logging
import sys

import click

from hostctl.core.engine.confirm import (
    OPTIONAL_INSTALL,
    PROCEED,
    REBOOT,
    SERVICE_RESTART,
    AssumeYes,
    Confirmer,
)

logger = logging.getLogger(__name__)


class TerminalConfirmer(Confirmer):
    """Asks on the terminal, default *No*."""

    def __init__(self, interactive: bool | None = None):
        self._interactive = interactive

    @property
    def interactive(self) -> bool:
        if self._interactive is not None:
            return self._interactive
        return sys.stdin.isatty()

    def confirm(self, prompt: str, kind: str) -> bool:
        if not self.interactive:
            logger.info("Non-interactive, answering no: %s", prompt)
            click.echo(f"{prompt} [no: not a terminal]", err=True)
            return False
        return click.confirm(prompt, default=False, err=True)


def make_confirmer(assume_yes: bool = False, reboot: bool = False) -> Confirmer:
    """Confirmer for the global ``--yes`` / ``--reboot`` flags."""
    terminal = TerminalConfirmer()
    kinds: set[str] = set()
    if assume_yes:
        kinds |= {SERVICE_RESTART, OPTIONAL_INSTALL, PROCEED}
    if reboot:
        kinds.add(REBOOT)
    return AssumeYes(kinds, fallback=terminal) if kinds else terminal
