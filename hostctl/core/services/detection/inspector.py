"""
Host inspector — the read-only window onto the machine.

Probes never call subprocess or open files directly; they go through
a HostInspector so that the whole detection layer can run against an
in-memory host in tests. Nothing here mutates the host.
"""

from __future__ import annotations

import glob as _glob
import logging
import os
import platform
import shutil
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from hostctl.core.errors import ProbeError

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = 15


@dataclass(frozen=True)
class CommandOutput:
    """What a read-only command printed and how it exited."""

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def first_line(self) -> str:
        lines = self.stdout.strip().splitlines()
        return lines[0].strip() if lines else ""


class HostInspector(ABC):
    """Read-only access to commands, files and environment."""

    @abstractmethod
    def run(self, argv: list[str], timeout: int | None = None) -> CommandOutput:
        """Run a read-only command.

        Raises:
            ProbeError: ``tool_not_found`` if the executable is missing,
                ``timeout`` if it did not finish in time.
        """

    @abstractmethod
    def which(self, tool: str) -> str | None:
        """Path to an executable on PATH, or None."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        ...

    @abstractmethod
    def read_text(self, path: str) -> str | None:
        """File content, or None if it cannot be read."""

    @abstractmethod
    def glob(self, pattern: str) -> list[str]:
        ...

    @abstractmethod
    def fetch(self, url: str, timeout: int | None = None) -> str:
        """GET a URL and return the body as text.

        Raises:
            ProbeError: ``tool_error`` on any network or HTTP failure.
        """

    @abstractmethod
    def euid(self) -> int:
        ...

    @abstractmethod
    def env(self, name: str) -> str | None:
        ...

    @abstractmethod
    def kernel_release(self) -> str:
        ...

    @abstractmethod
    def machine(self) -> str:
        """Hardware name as reported by uname, e.g. ``x86_64``."""

    def run_ok(self, argv: list[str], timeout: int | None = None) -> bool:
        """True if the command exists and exits 0."""
        try:
            return self.run(argv, timeout=timeout).ok
        except ProbeError:
            return False


def tolerate_missing_tool(default, fn, *args, **kwargs):
    """Call a probe, returning ``default`` if its tool is not installed.

    For optional tools whose absence simply means "not installed"
    (dkms, nvidia-smi, docker, ...). Other probe errors propagate.
    """
    try:
        return fn(*args, **kwargs)
    except ProbeError as e:
        if e.kind != "tool_not_found":
            raise
        logger.debug("Tool missing, using %r: %s", default, e)
        return default


class SystemInspector(HostInspector):
    """HostInspector backed by the real machine."""

    def __init__(self, timeout: int = DEFAULT_PROBE_TIMEOUT):
        self._timeout = timeout

    def run(self, argv: list[str], timeout: int | None = None) -> CommandOutput:
        limit = timeout or self._timeout
        logger.debug("Probe: %s", " ".join(argv))
        try:
            r = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=limit,
                stdin=subprocess.DEVNULL,
            )
        except FileNotFoundError:
            raise ProbeError("tool_not_found", f"{argv[0]} is not installed")
        except subprocess.TimeoutExpired:
            raise ProbeError("timeout", f"{argv[0]} did not finish within {limit}s")
        except OSError as e:
            raise ProbeError("tool_error", f"{argv[0]}: {e}")
        return CommandOutput(returncode=r.returncode, stdout=r.stdout or "", stderr=r.stderr or "")

    def which(self, tool: str) -> str | None:
        return shutil.which(tool)

    def exists(self, path: str) -> bool:
        return os.path.lexists(path)

    def read_text(self, path: str) -> str | None:
        try:
            return Path(path).read_text(encoding="utf-8", errors="replace")
        except OSError:
            return None

    def glob(self, pattern: str) -> list[str]:
        return sorted(_glob.glob(pattern))

    def fetch(self, url: str, timeout: int | None = None) -> str:
        import urllib.request

        req = urllib.request.Request(url, headers={"User-Agent": "hostctl/1.0"})
        try:
            with urllib.request.urlopen(req, timeout=timeout or self._timeout) as resp:
                return resp.read().decode("utf-8", errors="replace")
        except Exception as e:
            raise ProbeError("tool_error", f"Failed to fetch {url}: {e}")

    def euid(self) -> int:
        return os.geteuid()

    def env(self, name: str) -> str | None:
        return os.environ.get(name)

    def kernel_release(self) -> str:
        return platform.release()

    def machine(self) -> str:
        return platform.machine()
