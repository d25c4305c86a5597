"""
Filesystem adapter — the files hostctl writes itself.

apt sources lists, modprobe and udev snippets, daemon.json edits and
downloaded installers all go through here rather than through ``sh -c``,
so they show up as steps, honour dry-run and can be undone.

Action params:
    operation: ``write``, ``remove``, ``mkdir``, ``chmod`` or ``json_remove_keys``
    path: absolute path; ``remove`` also takes a glob (``/usr/src/gasket-*``)
    content: text for ``write``
    mode: permission bits, int or octal string (``"0644"``)
    keys: dotted keys for ``json_remove_keys``; ``key=value`` deletes on match only
"""

from __future__ import annotations

import glob
import json
import logging
import shutil
from pathlib import Path
from typing import Any

from hostctl.adapters.base import Adapter, ExecutionContext
from hostctl.core.models.action import Receipt

logger = logging.getLogger(__name__)

# operation → param it cannot do without
_OPERATIONS: dict[str, str | None] = {
    "write": "content",
    "remove": None,
    "mkdir": None,
    "chmod": "mode",
    "json_remove_keys": "keys",
}


def _parse_mode(mode: Any) -> int | None:
    if mode is None or isinstance(mode, int):
        return mode
    return int(str(mode), 8)


class FilesystemAdapter(Adapter):
    """Writes, removes and edits files; one operation per step."""

    @property
    def name(self) -> str:
        return "filesystem"

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.param("operation", "")
        if operation not in _OPERATIONS:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(_OPERATIONS))}"

        path = context.param("path", "")
        if not path or not Path(path).is_absolute():
            return False, f"Path must be absolute: {path!r}"

        required = _OPERATIONS[operation]
        if required and context.param(required) is None:
            return False, f"'{operation}' needs '{required}'"

        try:
            _parse_mode(context.param("mode"))
        except ValueError:
            return False, f"Invalid mode: {context.param('mode')!r}"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.param("operation")
        target = Path(context.param("path"))
        handler = getattr(self, f"_{operation}")
        try:
            output, metadata = handler(context, target)
        except (OSError, ValueError) as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Filesystem error: {e}",
                metadata={"operation": operation, "path": str(target)},
            )
        return Receipt.success(
            adapter=self.name,
            action_id=context.action.id,
            output=output,
            metadata={"path": str(target), **metadata},
        )

    # Each operation returns (output, metadata) or raises OSError / ValueError.

    def _write(self, ctx: ExecutionContext, target: Path) -> tuple[str, dict]:
        content: str = ctx.param("content")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        mode = _parse_mode(ctx.param("mode"))
        if mode is not None:
            target.chmod(mode)
        logger.info("Wrote %s (%d bytes)", target, len(content))
        return f"Wrote {target}", {"size": len(content)}

    def _remove(self, ctx: ExecutionContext, target: Path) -> tuple[str, dict]:
        pattern = str(target)
        candidates = glob.glob(pattern) if glob.has_magic(pattern) else [pattern]
        removed: list[str] = []
        for candidate in candidates:
            path = Path(candidate)
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            elif path.exists() or path.is_symlink():
                path.unlink()
            else:
                continue
            removed.append(candidate)
        if removed:
            logger.info("Removed %s", ", ".join(removed))
        return f"Removed {len(removed)} path(s)", {"removed": removed}

    def _mkdir(self, ctx: ExecutionContext, target: Path) -> tuple[str, dict]:
        target.mkdir(parents=True, exist_ok=True)
        mode = _parse_mode(ctx.param("mode"))
        if mode is not None:
            target.chmod(mode)
        return f"Directory {target} ready", {}

    def _chmod(self, ctx: ExecutionContext, target: Path) -> tuple[str, dict]:
        mode = _parse_mode(ctx.param("mode"))
        target.chmod(mode)
        return f"{target} is now {oct(mode)}", {"mode": mode}

    def _json_remove_keys(self, ctx: ExecutionContext, target: Path) -> tuple[str, dict]:
        if not target.is_file():
            return f"{target} does not exist", {"removed": []}

        data = json.loads(target.read_text(encoding="utf-8") or "{}")
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object in {target}")

        removed = [key for key in ctx.param("keys") if remove_json_key(data, key)]
        if removed:
            target.write_text(json.dumps(data, indent=4) + "\n", encoding="utf-8")
            logger.info("Removed %s from %s", ", ".join(removed), target)
        return f"Removed {len(removed)} key(s) from {target}", {"removed": removed}


def remove_json_key(data: dict, key: str) -> bool:
    """Delete a dotted key (``a.b``) from ``data``; ``a.b=v`` deletes only on match.

    Parents left empty by the deletion are removed too.
    Returns True if something was deleted.
    """
    path, _, expected = key.partition("=")
    parts = path.split(".")

    parents: list[dict] = []
    node: Any = data
    for part in parts[:-1]:
        if not isinstance(node, dict) or part not in node:
            return False
        parents.append(node)
        node = node[part]

    leaf = parts[-1]
    if not isinstance(node, dict) or leaf not in node:
        return False
    if expected and str(node[leaf]) != expected:
        return False

    del node[leaf]

    # Prune empty containers bottom-up
    for parent, part in zip(reversed(parents), reversed(parts[:-1])):
        if parent[part] == {}:
            del parent[part]
        else:
            break
    return True
