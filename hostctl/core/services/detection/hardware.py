"""
Hardware detection — PCI devices, device nodes, GPU queries.

Read-only probes: lspci, /dev, lsof, nvidia-smi, getent, id.
"""

from __future__ import annotations

import re

from hostctl.core.errors import ProbeError
from hostctl.core.services.detection.inspector import HostInspector


# ── PCI ────────────────────────────────────────────────────

def extract_pci_id(line: str) -> str | None:
    """Extract the PCI vendor:device ID from an ``lspci -nn`` line."""
    m = re.search(r"\[([0-9a-f]{4}:[0-9a-f]{4})\]", line, re.IGNORECASE)
    return m.group(1).lower() if m else None


def find_pci_devices(inspector: HostInspector, pci_id: str, timeout: int | None = None) -> list[str] | None:
    """``lspci -nn`` lines whose PCI ID matches ``pci_id``.

    Returns None when lspci is not available, so callers can tell
    "no device" from "could not look".
    """
    try:
        out = inspector.run(["lspci", "-nn"], timeout=timeout)
    except ProbeError as e:
        if e.kind == "tool_not_found":
            return None
        raise
    wanted = pci_id.lower()
    return [line.strip() for line in out.stdout.splitlines() if extract_pci_id(line) == wanted]


# ── Device nodes ───────────────────────────────────────────

def device_nodes(inspector: HostInspector, pattern: str) -> list[str]:
    return inspector.glob(pattern)


def device_in_use(inspector: HostInspector, path: str, timeout: int | None = None) -> bool:
    """Whether any process holds ``path`` open (lsof exits 0 on a match).

    Without lsof nothing can be said, and the answer is False.
    """
    return inspector.run_ok(["lsof", path], timeout=timeout)


# ── NVIDIA ─────────────────────────────────────────────────

def nvidia_smi_query(inspector: HostInspector, field: str, timeout: int | None = None) -> str | None:
    """First value of ``nvidia-smi --query-gpu=<field>``, None if it fails.

    A missing nvidia-smi propagates as ProbeError.
    """
    out = inspector.run(
        ["nvidia-smi", f"--query-gpu={field}", "--format=csv,noheader"],
        timeout=timeout,
    )
    if not out.ok:
        return None
    return out.first_line or None


# ── Users and groups ───────────────────────────────────────

def group_members(inspector: HostInspector, group: str, timeout: int | None = None) -> list[str] | None:
    """Members of a Unix group, or None if the group does not exist."""
    out = inspector.run(["getent", "group", group], timeout=timeout)
    if not out.ok:
        return None
    fields = out.first_line.split(":")
    if len(fields) < 4 or not fields[3]:
        return []
    return [m for m in fields[3].split(",") if m]


def user_exists(inspector: HostInspector, user: str, timeout: int | None = None) -> bool:
    return inspector.run_ok(["id", user], timeout=timeout)
