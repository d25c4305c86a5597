"""
Environment detection — distro, kernel, privilege, apt sources.

Builds the process-scoped HostContext once per run. Read-only.
"""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass, field

from hostctl.core.errors import ProbeError
from hostctl.core.models.host import HostContext
from hostctl.core.models.settings import Settings
from hostctl.core.services.detection.inspector import HostInspector

logger = logging.getLogger(__name__)

OS_RELEASE = "/etc/os-release"
REBOOT_REQUIRED = "/var/run/reboot-required"
SOURCES_LIST = "/etc/apt/sources.list"
SOURCES_DIR = "/etc/apt/sources.list.d"

# uname machine → dpkg architecture
_DPKG_ARCH = {
    "x86_64": "amd64",
    "aarch64": "arm64",
    "armv7l": "armhf",
    "i686": "i386",
    "ppc64le": "ppc64el",
    "s390x": "s390x",
}


# ── /etc/os-release ────────────────────────────────────────

def parse_os_release(text: str) -> dict[str, str]:
    """Parse os-release ``KEY=value`` lines (values may be quoted)."""
    data: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        try:
            parts = shlex.split(value)
        except ValueError:
            parts = [value.strip("\"'")]
        data[key.strip()] = parts[0] if parts else ""
    return data


# ── apt sources ────────────────────────────────────────────

@dataclass
class AptSource:
    """One enabled apt source: its suites and components."""

    uris: list[str] = field(default_factory=list)
    suites: list[str] = field(default_factory=list)
    components: list[str] = field(default_factory=list)


def parse_sources_list(text: str) -> list[AptSource]:
    """Parse one-line-style ``deb`` entries (``.list`` files)."""
    sources: list[AptSource] = []
    for raw in text.splitlines():
        line = raw.split("#", 1)[0].strip()
        if not line.startswith("deb ") and not line.startswith("deb-src "):
            continue
        tokens = line.split()[1:]
        # Skip the [option=value ...] block
        if tokens and tokens[0].startswith("["):
            while tokens and not tokens[0].endswith("]"):
                tokens.pop(0)
            if tokens:
                tokens.pop(0)
        if len(tokens) < 2:
            continue
        sources.append(AptSource(uris=[tokens[0]], suites=[tokens[1]], components=tokens[2:]))
    return sources


def parse_deb822_sources(text: str) -> list[AptSource]:
    """Parse deb822 stanzas (``.sources`` files)."""
    sources: list[AptSource] = []
    for stanza in text.split("\n\n"):
        fields: dict[str, str] = {}
        for line in stanza.splitlines():
            if not line.strip() or line.lstrip().startswith("#") or ":" not in line:
                continue
            if line[0].isspace():
                continue  # continuation lines (Signed-By key blocks)
            key, _, value = line.partition(":")
            fields[key.strip().lower()] = value.strip()
        if not fields.get("suites"):
            continue
        if fields.get("enabled", "yes").lower() == "no":
            continue
        sources.append(AptSource(
            uris=fields.get("uris", "").split(),
            suites=fields["suites"].split(),
            components=fields.get("components", "").split(),
        ))
    return sources


def apt_sources(inspector: HostInspector) -> list[AptSource]:
    """All enabled apt sources on the host."""
    sources: list[AptSource] = []
    text = inspector.read_text(SOURCES_LIST)
    if text:
        sources.extend(parse_sources_list(text))
    for path in inspector.glob(f"{SOURCES_DIR}/*.list"):
        sources.extend(parse_sources_list(inspector.read_text(path) or ""))
    for path in inspector.glob(f"{SOURCES_DIR}/*.sources"):
        sources.extend(parse_deb822_sources(inspector.read_text(path) or ""))
    return sources


def has_component(sources: list[AptSource], component: str) -> bool:
    return any(component in s.components for s in sources)


def tracks_suite(sources: list[AptSource], suite: str) -> bool:
    return any(suite in s.suites for s in sources)


# ── HostContext ────────────────────────────────────────────

def dpkg_architecture(inspector: HostInspector) -> str:
    try:
        out = inspector.run(["dpkg", "--print-architecture"])
        if out.ok and out.first_line:
            return out.first_line
    except ProbeError:
        pass
    machine = inspector.machine()
    return _DPKG_ARCH.get(machine, machine)


def gather_host_context(inspector: HostInspector, settings: Settings | None = None) -> HostContext:
    """Collect the facts the gate and the components rely on."""
    os_release = parse_os_release(inspector.read_text(OS_RELEASE) or "")
    codename = (settings.codename if settings and settings.codename else None) \
        or os_release.get("VERSION_CODENAME", "")

    sources = apt_sources(inspector)

    sudo_user = inspector.env("SUDO_USER")
    if sudo_user == "root":
        sudo_user = None

    host = HostContext(
        kernel_release=inspector.kernel_release(),
        architecture=dpkg_architecture(inspector),
        distro_id=os_release.get("ID", ""),
        distro_like=tuple(os_release.get("ID_LIKE", "").split()),
        distro_codename=codename,
        distro_version=os_release.get("VERSION_ID", ""),
        euid=inspector.euid(),
        sudo_user=sudo_user or None,
        reboot_pending=inspector.exists(REBOOT_REQUIRED),
        systemd=inspector.exists("/run/systemd/system"),
        non_free_firmware=has_component(sources, "non-free-firmware"),
        stable_suite=tracks_suite(sources, "stable"),
    )
    logger.debug("Host context: %s", host.model_dump())
    return host
