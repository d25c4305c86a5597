"""
Audit ledger — append-only record of component actions.

Every top-level action writes one entry to an NDJSON (newline-delimited
JSON) file when ``audit_log`` is configured. Entries are never modified
or deleted.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field

from hostctl.core.models.action import ActionResult

logger = logging.getLogger(__name__)


class AuditEntry(BaseModel):
    """One top-level action, flattened for the ledger."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    operation_id: str = ""

    # What happened
    component: str = ""
    action: str = ""
    dry_run: bool = False

    # Results
    outcome: str = ""              # ok, skipped, failed
    reason: str = ""
    error_kind: str | None = None
    state_before: str | None = None
    state_after: str | None = None
    steps_total: int = 0
    steps_failed: int = 0
    rolled_back: int = 0
    duration_ms: int = 0
    reboot_required: bool = False

    # Nested actions, e.g. "docker:install=ok"
    nested: list[str] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: ActionResult, operation_id: str = "") -> AuditEntry:
        return cls(
            operation_id=operation_id,
            component=result.component,
            action=result.action,
            dry_run=result.dry_run,
            outcome=result.outcome,
            reason=result.reason,
            error_kind=result.error_kind,
            state_before=result.presence_before.state.value if result.presence_before else None,
            state_after=result.presence_after.state.value if result.presence_after else None,
            steps_total=len(result.receipts),
            steps_failed=sum(1 for r in result.receipts if r.failed),
            rolled_back=len(result.rollback),
            duration_ms=result.duration_ms,
            reboot_required=result.total_restart.reboot_required,
            nested=[f"{r.component}:{r.action}={r.outcome}" for r in result.nested],
        )


class AuditWriter:
    """The ledger file: ``write`` appends a line, the readers parse them back.

    Auditing must never break the action it records, so I/O errors are
    logged and swallowed on both sides.
    """

    def __init__(self, path: Path):
        self.path = path

    def write(self, entry: AuditEntry) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(entry.model_dump_json() + "\n")
        except OSError as e:
            logger.error("Could not append to audit log %s: %s", self.path, e)
            return
        logger.debug("Audited %s:%s → %s", entry.component, entry.action, entry.outcome)

    def _entries(self) -> Iterator[AuditEntry]:
        try:
            with self.path.open(encoding="utf-8") as f:
                for lineno, line in enumerate(f, start=1):
                    if not line.strip():
                        continue
                    try:
                        yield AuditEntry.model_validate_json(line)
                    except ValueError as e:
                        logger.warning("%s:%d: unreadable audit entry skipped (%s)", self.path, lineno, e)
        except FileNotFoundError:
            return
        except OSError as e:
            logger.error("Could not read audit log %s: %s", self.path, e)

    def read_all(self) -> list[AuditEntry]:
        """Every entry, oldest first."""
        return list(self._entries())

    def read_recent(self, n: int = 20) -> list[AuditEntry]:
        return list(deque(self._entries(), maxlen=n))
