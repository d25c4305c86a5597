"""
Package and kernel-module detection — dpkg, dkms, modinfo, apt-cache.

Read-only probes. Parsers are plain functions over command output so
they can be tested without a host.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from hostctl.core.services.detection.inspector import HostInspector


# ── dpkg ───────────────────────────────────────────────────

def dpkg_version(inspector: HostInspector, package: str, timeout: int | None = None) -> str | None:
    """Installed version of a Debian package, or None if not installed.

    Packages in ``rc`` state (removed, config files left) count as not
    installed.
    """
    out = inspector.run(
        ["dpkg-query", "-W", "-f=${Status}|${Version}", package],
        timeout=timeout,
    )
    if not out.ok:
        return None
    status, _, version = out.stdout.strip().partition("|")
    if not status.endswith(" installed"):
        return None
    return version.strip() or None


def installed_packages(
    inspector: HostInspector,
    packages: list[str],
    timeout: int | None = None,
) -> dict[str, str]:
    """Map of package → version for those in ``packages`` that are installed."""
    found: dict[str, str] = {}
    for pkg in packages:
        version = dpkg_version(inspector, pkg, timeout=timeout)
        if version:
            found[pkg] = version
    return found


def apt_has_package(inspector: HostInspector, package: str, timeout: int | None = None) -> bool:
    """Whether apt knows a package (``apt-cache show`` succeeds)."""
    return inspector.run_ok(["apt-cache", "show", package], timeout=timeout)


# ── dkms ───────────────────────────────────────────────────

@dataclass(frozen=True)
class DkmsEntry:
    """One line of ``dkms status``."""

    module: str
    version: str
    kernel: str = ""
    arch: str = ""
    state: str = ""

    @property
    def installed(self) -> bool:
        return self.state.startswith("installed")


# dkms >= 3:  nvidia/570.181, 6.12.38+deb13-amd64, x86_64: installed
# dkms 2.x:   nvidia, 570.181, 6.12.38+deb13-amd64, x86_64: installed
# added only: gasket/1.0: added
_DKMS_NEW = re.compile(r"^(?P<module>[^/,\s]+)/(?P<version>[^,:\s]+)(?P<rest>.*)$")
_DKMS_OLD = re.compile(r"^(?P<module>[^/,\s]+),\s*(?P<version>[^,:\s]+)(?P<rest>.*)$")


def parse_dkms_status(text: str) -> list[DkmsEntry]:
    """Parse ``dkms status`` output in both the new and old formats."""
    entries: list[DkmsEntry] = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue
        m = _DKMS_NEW.match(line) or _DKMS_OLD.match(line)
        if not m:
            continue

        rest = m.group("rest")
        where, _, state = rest.rpartition(":")
        parts = [p.strip() for p in where.split(",") if p.strip()]
        entries.append(DkmsEntry(
            module=m.group("module"),
            version=m.group("version"),
            kernel=parts[0] if parts else "",
            arch=parts[1] if len(parts) > 1 else "",
            state=state.strip(),
        ))
    return entries


def dkms_entries(
    inspector: HostInspector,
    module: str,
    timeout: int | None = None,
) -> list[DkmsEntry]:
    """DKMS entries for one module.

    A missing ``dkms`` binary propagates as ProbeError; a failing one
    is treated as "nothing registered".
    """
    out = inspector.run(["dkms", "status"], timeout=timeout)
    if not out.ok:
        return []
    return [e for e in parse_dkms_status(out.stdout) if e.module == module]


# ── Kernel modules ─────────────────────────────────────────

def loaded_modules(inspector: HostInspector) -> set[str]:
    """Names of loaded kernel modules, from /proc/modules."""
    text = inspector.read_text("/proc/modules")
    if not text:
        return set()
    return {line.split()[0] for line in text.splitlines() if line.strip()}


def modinfo_version(inspector: HostInspector, module: str, timeout: int | None = None) -> str | None:
    out = inspector.run(["modinfo", "-F", "version", module], timeout=timeout)
    if not out.ok:
        return None
    return out.first_line or None


# ── Tools ──────────────────────────────────────────────────

def tool_version(inspector: HostInspector, argv: list[str], timeout: int | None = None) -> str | None:
    """First line of a ``--version`` style command, or None if it fails."""
    out = inspector.run(argv, timeout=timeout)
    if not out.ok:
        return None
    return out.first_line or None
