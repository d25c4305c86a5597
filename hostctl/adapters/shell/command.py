"""
Shell command adapter — run one external command and capture output.

This is the most fundamental adapter: every apt, dkms, modprobe, git
and vendor-installer call goes through it. Commands are argv lists,
never shell strings, so no quoting of config values is involved.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import time
from pathlib import Path

from hostctl.adapters.base import Adapter, ExecutionContext
from hostctl.core.models.action import Receipt

logger = logging.getLogger(__name__)

# Keep receipts small; installers can print megabytes
_OUTPUT_TAIL = 4000


class ShellCommandAdapter(Adapter):
    """Execute commands and capture output.

    Action params:
        argv (list[str]): The command and its arguments.
        env (dict): Extra environment variables.
        input (str): Text piped to stdin (default: stdin closed).
        cwd (str): Working directory.
    """

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        argv = context.param("argv")
        if not argv or not isinstance(argv, list):
            return False, "Missing required param: 'argv'"
        if not all(isinstance(a, str) for a in argv):
            return False, "All 'argv' items must be strings"

        # The directory may be created by an earlier step that a dry run skipped
        cwd = context.param("cwd")
        if cwd and not context.dry_run and not Path(cwd).is_dir():
            return False, f"Working directory does not exist: {cwd}"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        params = context.action.params
        argv: list[str] = params["argv"]
        command = shlex.join(argv)
        cwd = params.get("cwd")
        stdin_data = params.get("input")

        env = os.environ.copy()
        env.setdefault("DEBIAN_FRONTEND", "noninteractive")
        for key, value in (params.get("env") or {}).items():
            env[key] = str(value)

        logger.info("Running: %s", command)
        start = time.monotonic()

        try:
            result = subprocess.run(
                argv,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=context.timeout,
                input=stdin_data,
                stdin=None if stdin_data is not None else subprocess.DEVNULL,
                env=env,
            )
        except FileNotFoundError:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command not found: {argv[0]}",
                metadata={"command": command, "error_kind": "tool_not_found", "tool": argv[0]},
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command timed out after {context.timeout}s",
                metadata={"command": command, "error_kind": "timeout", "timeout": context.timeout},
            )
        except Exception as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command execution error: {e}",
                metadata={"command": command, "error_kind": "exec_error"},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output = (result.stdout or "").strip()[-_OUTPUT_TAIL:]
        stderr = (result.stderr or "").strip()[-_OUTPUT_TAIL:]

        if result.returncode == 0:
            logger.debug("OK (%dms): %s", elapsed_ms, command)
            return Receipt.success(
                adapter=self.name,
                action_id=context.action.id,
                output=output,
                duration_ms=elapsed_ms,
                metadata={
                    "command": command,
                    "return_code": result.returncode,
                    "stderr": stderr,
                },
            )

        logger.debug("Exit %d (%dms): %s", result.returncode, elapsed_ms, command)
        return Receipt.failure(
            adapter=self.name,
            action_id=context.action.id,
            error=stderr or f"Command exited with code {result.returncode}",
            output=output,
            duration_ms=elapsed_ms,
            metadata={
                "command": command,
                "return_code": result.returncode,
                "error_kind": "exit",
            },
        )
