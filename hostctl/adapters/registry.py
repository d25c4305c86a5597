"""
Adapter registry — the one door between a StepSession and the host.

Every step an action performs is an Action addressed to an adapter by
name (``shell`` or ``filesystem``). The registry resolves the adapter,
validates the step, and then either executes it or, in dry-run mode,
answers with a ``skipped`` receipt. Whatever happens, the caller gets a
Receipt back; adapter bugs become failed receipts, not tracebacks.
"""

from __future__ import annotations

import logging
import time

from hostctl.adapters.base import Adapter, ExecutionContext
from hostctl.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


def _failed(action: Action, error: str) -> Receipt:
    return Receipt.failure(adapter=action.adapter, action_id=action.id, error=error)


class AdapterRegistry:
    """Adapters by name, plus step dispatch."""

    def __init__(self):
        self._adapters: dict[str, Adapter] = {}

    def register(self, adapter: Adapter) -> None:
        if adapter.name in self._adapters:
            logger.warning("Replacing adapter %r", adapter.name)
        self._adapters[adapter.name] = adapter

    def get(self, name: str) -> Adapter | None:
        return self._adapters.get(name)

    def execute_action(
        self,
        action: Action,
        dry_run: bool = False,
        timeout: int = 1800,
    ) -> Receipt:
        """Validate and run one step. Never raises.

        ``timeout`` is handed to the adapter in the ExecutionContext;
        the shell adapter kills the command when it expires.
        """
        adapter = self._adapters.get(action.adapter)
        if adapter is None:
            return _failed(action, f"No adapter registered for '{action.adapter}'")

        context = ExecutionContext(
            action=action,
            dry_run=dry_run,
            timeout=timeout,
            params=action.params,
        )

        try:
            valid, problem = adapter.validate(context)
        except Exception as e:
            return _failed(action, f"Validation error: {e}")
        if not valid:
            return _failed(action, f"Validation failed: {problem}")

        if dry_run:
            return Receipt.skip(
                adapter=action.adapter,
                action_id=action.id,
                reason=f"[dry-run] Would execute {action.name or action.id}",
                metadata={"dry_run": True},
            )

        started = time.monotonic()
        try:
            receipt = adapter.execute(context)
        except Exception as e:
            logger.error("Adapter %s crashed on %s: %s", action.adapter, action.id, e, exc_info=True)
            receipt = _failed(action, f"Unexpected error: {e}")
        receipt.duration_ms = int((time.monotonic() - started) * 1000)
        return receipt
