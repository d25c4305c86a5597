"""
Rollback — undo the files a failed action wrote.

Undo steps are recorded by the step session as it goes; on failure
they are replayed in reverse order. Undo failures are logged and kept
as receipts, never raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from hostctl.adapters.registry import AdapterRegistry
from hostctl.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UndoStep:
    """How to reverse one completed step."""

    description: str
    action: Action


def run_rollback(
    registry: AdapterRegistry,
    undo_steps: list[UndoStep],
    dry_run: bool = False,
    timeout: int = 1800,
) -> list[Receipt]:
    """Execute undo steps newest first.

    Returns:
        One receipt per undo step, in execution order.
    """
    receipts: list[Receipt] = []
    for step in reversed(undo_steps):
        logger.info("Rollback: %s", step.description)
        receipt = registry.execute_action(step.action, dry_run=dry_run, timeout=timeout)
        if receipt.failed:
            logger.warning("Rollback step failed (%s): %s", step.description, receipt.error)
        receipts.append(receipt)
    return receipts
