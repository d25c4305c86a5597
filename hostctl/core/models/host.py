"""
HostContext — process-scoped facts about the machine.

Gathered once per run by ``hostctl.core.services.detection.environment
.gather_host_context`` and passed explicitly to everything that needs
it. Read-only after initialisation.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class HostContext(BaseModel):
    """Facts about the host that actions and the gate depend on."""

    model_config = ConfigDict(frozen=True)

    kernel_release: str = ""
    architecture: str = ""          # dpkg architecture, e.g. amd64
    distro_id: str = ""
    distro_like: tuple[str, ...] = ()
    distro_codename: str = ""
    distro_version: str = ""
    euid: int = -1
    sudo_user: str | None = None
    reboot_pending: bool = False
    systemd: bool = False
    non_free_firmware: bool = False  # apt sources carry non-free-firmware
    stable_suite: bool = False       # apt sources track "stable"

    @property
    def is_root(self) -> bool:
        return self.euid == 0

    @property
    def debian_family(self) -> bool:
        return self.distro_id == "debian" or "debian" in self.distro_like

    @property
    def apt_suite(self) -> str:
        """Suite name to use for new Debian apt sources."""
        return "stable" if self.stable_suite else self.distro_codename

    @property
    def headers_package(self) -> str:
        return f"linux-headers-{self.kernel_release}"

    def has_fact(self, fact: str) -> bool:
        """Whether a named environment fact holds (used by the gate)."""
        checks = {
            "debian_family": self.debian_family,
            "codename": bool(self.distro_codename),
            "kernel_release": bool(self.kernel_release),
            "systemd": self.systemd,
            "non_free_firmware": self.non_free_firmware,
        }
        if fact not in checks:
            raise KeyError(f"Unknown host fact: {fact}")
        return checks[fact]
