"""
NVIDIA proprietary driver — vendor .run installer with DKMS.

Install is two-phase: while nouveau is loaded the first run only
blacklists it and asks for a reboot; the second run installs the
driver. The version is the latest production branch from nvidia.com
unless one is given.
"""

from __future__ import annotations

import posixpath
from typing import Any

from hostctl.components import apt
from hostctl.components.base import Component
from hostctl.core.engine.session import StepSession
from hostctl.core.errors import MissingPrecondition, UserDeclined
from hostctl.core.models.host import HostContext
from hostctl.core.models.presence import Fact, Presence
from hostctl.core.models.settings import Settings
from hostctl.core.services.detection.hardware import nvidia_smi_query
from hostctl.core.services.detection.inspector import HostInspector, tolerate_missing_tool
from hostctl.core.services.detection.packages import (
    apt_has_package,
    dkms_entries,
    dpkg_version,
    loaded_modules,
)
from hostctl.core.services.detection.releases import latest_driver_version

NVIDIA_UNINSTALL = "/usr/bin/nvidia-uninstall"
BLACKLIST = "blacklist nouveau\noptions nouveau modeset=0\n"
MODESET = "options nvidia-drm modeset=1\n"

# Driver packages only; the container toolkit (libnvidia-container*, nvidia-container-*)
# belongs to nvidia-toolkit and is removed by its own uninstall.
DRIVER_PACKAGES = "?and(?name(nvidia),?not(?name(container)))"


def installer_name(version: str) -> str:
    return f"NVIDIA-Linux-x86_64-{version}.run"


class NvidiaComponent(Component):
    name = "nvidia"
    title = "NVIDIA GPU driver"
    actions = frozenset({"install", "uninstall", "reinstall", "rebuild", "version"})
    read_only_actions = frozenset({"version"})

    # ── Detection ──────────────────────────────────────────────

    def detect(self, inspector: HostInspector, host: HostContext, settings: Settings) -> Presence:
        s = settings.nvidia
        t = settings.probe_timeout
        facts: list[Fact] = []

        entries = tolerate_missing_tool([], dkms_entries, inspector, "nvidia", timeout=t)
        facts.append(Fact(
            label="DKMS",
            value=", ".join(f"{e.module}/{e.version} {e.kernel}: {e.state}".strip() for e in entries)
            or "no nvidia entry",
            ok=any(e.installed for e in entries),
        ))

        smi_version = tolerate_missing_tool(
            None, nvidia_smi_query, inspector, "driver_version", timeout=t
        )
        gpu = tolerate_missing_tool(None, nvidia_smi_query, inspector, "name", timeout=t) \
            if smi_version else None
        facts.append(Fact(
            label="nvidia-smi",
            value=f"driver {smi_version}" if smi_version else "not working",
            ok=bool(smi_version),
        ))
        if gpu:
            facts.append(Fact(label="GPU", value=gpu, ok=True))

        modules = loaded_modules(inspector)
        facts.append(Fact(label="nouveau", value="loaded" if "nouveau" in modules else "not loaded"))
        facts.append(Fact(label="nvidia module", value="loaded" if "nvidia" in modules else "not loaded"))

        blacklisted = inspector.exists(s.blacklist_conf)
        facts.append(Fact(label="nouveau blacklist", value="present" if blacklisted else "absent"))

        dkms_version = entries[0].version if entries else None
        if entries and smi_version:
            return Presence.installed_at(smi_version, reason="driver loaded", facts=facts)
        if entries:
            return Presence.broken(
                "driver registered with DKMS but nvidia-smi cannot reach it (reboot pending?)",
                version=dkms_version,
                facts=facts,
            )
        if smi_version:
            return Presence.partial(
                "a driver is running but is not managed by DKMS",
                version=smi_version,
                facts=facts,
            )
        if blacklisted:
            return Presence.partial("nouveau blacklisted, driver not installed yet", facts=facts)
        if inspector.exists(s.modprobe_conf) or inspector.exists(s.non_free_sources):
            return Presence.partial("configuration left over, driver not installed", facts=facts)
        return Presence.absent("no NVIDIA driver found", facts=facts)

    # ── Actions ────────────────────────────────────────────────

    def install(
        self,
        session: StepSession,
        presence: Presence,
        driver_version: str | None = None,
        **_: Any,
    ) -> None:
        s = session.settings.nvidia
        host = session.host

        if host.architecture and host.architecture != "amd64":
            raise MissingPrecondition(
                f"The NVIDIA .run installer is x86_64 only (host is {host.architecture})"
            )

        if "nouveau" in loaded_modules(session.inspector):
            session.write_file(s.blacklist_conf, BLACKLIST)
            session.run(["update-initramfs", "-u"])
            session.require_reboot("nouveau blacklisted")
            session.note("nouveau is active: reboot, then run 'hostctl nvidia install' again")
            return

        self._ensure_non_free_firmware(session)

        if not apt_has_package(session.inspector, host.headers_package):
            raise MissingPrecondition(
                f"Kernel headers for {host.kernel_release} not found in the apt repositories"
            )
        apt.install(session, [host.headers_package, *s.build_packages])

        version = driver_version or self.latest_version(session.inspector, session.settings)[0]
        session.details["driver_version"] = version

        if not session.confirm(
            "The display manager will be stopped to install the driver. Continue?"
        ):
            raise UserDeclined("Driver installation needs the display manager stopped")
        stop = session.run(["systemctl", "stop", "display-manager"], check=False)
        if stop.failed:
            session.run(["telinit", "3"], check=False)

        installer = self._fetch_installer(session, version)
        session.run([installer, *s.installer_flags], label=f"Run {posixpath.basename(installer)}")

        session.write_file(s.modprobe_conf, MODESET)
        session.run(["update-initramfs", "-u"])
        session.remove(installer, check=False)

        if s.offer_toolkit:
            session.offer_follow_up(
                "nvidia-toolkit",
                "install",
                "Install the NVIDIA Container Toolkit for Docker GPU support?",
            )
        session.require_reboot(f"NVIDIA driver {version} installed")
        session.note(f"NVIDIA driver {version} installed")

    def uninstall(
        self,
        session: StepSession,
        presence: Presence,
        version: str | None = None,
        **_: Any,
    ) -> None:
        s = session.settings.nvidia
        toolkit = session.settings.toolkit
        inspector = session.inspector
        version = version or presence.version

        if dpkg_version(inspector, toolkit.package) or inspector.exists(toolkit.sources):
            session.offer_follow_up(
                "nvidia-toolkit",
                "uninstall",
                "Also uninstall the NVIDIA Container Toolkit?",
            )

        if version:
            session.details["driver_version"] = version
            if inspector.exists(NVIDIA_UNINSTALL):
                session.run([NVIDIA_UNINSTALL, "--silent"], check=False)
            else:
                installer = self._fetch_installer(session, version)
                session.run([installer, "--uninstall", "--silent"], check=False)
                session.remove(installer, check=False)
            session.run(["dkms", "remove", "-m", "nvidia", "-v", version, "--all"], check=False)
            session.run(["apt", "purge", "-y", DRIVER_PACKAGES], check=False)
        else:
            session.note("No installed driver version detected, removing configuration only")

        for path in (s.non_free_sources, s.blacklist_conf, s.modprobe_conf):
            session.remove(path)
        apt.update(session, check=False)
        session.run(["update-initramfs", "-u"])
        apt.autoremove(session)
        session.require_reboot("NVIDIA driver removed")

    def reinstall(self, session: StepSession, presence: Presence, **params: Any) -> None:
        driver_version = params.pop("driver_version", None)
        self.uninstall(session, presence, **params)
        self.install(session, Presence.absent("reinstalling"), driver_version=driver_version)

    def rebuild(self, session: StepSession, presence: Presence, **_: Any) -> None:
        host = session.host
        apt.install(session, [host.headers_package])

        version = presence.version
        if not version:
            raise MissingPrecondition("No installed NVIDIA driver version detected")
        session.details["driver_version"] = version

        session.run(["dkms", "install", "--force", "-m", "nvidia", "-v", version, "-k", host.kernel_release])
        session.run(["update-initramfs", "-u"])

        if session.inspector.which("nvidia-ctk"):
            session.run(["nvidia-ctk", "runtime", "configure", "--runtime=docker"])
            session.require_service_restart("docker", "NVIDIA runtime reconfigured for Docker")

        session.require_reboot(f"NVIDIA driver {version} rebuilt for {host.kernel_release}")

    def version(self, session: StepSession, presence: Presence, **_: Any) -> None:
        """Report installed and latest production versions."""
        latest, from_network = self.latest_version(session.inspector, session.settings)
        session.details.update({
            "installed": presence.version if presence.has_install else None,
            "latest": latest,
            "latest_source": "nvidia.com" if from_network else "fallback",
        })
        session.note(f"installed {presence.version or 'none'}, latest stable {latest}")

    # ── Helpers ────────────────────────────────────────────────

    def latest_version(self, inspector: HostInspector, settings: Settings) -> tuple[str, bool]:
        s = settings.nvidia
        return latest_driver_version(
            inspector, s.releases_url, s.fallback_version, timeout=settings.probe_timeout
        )

    def _ensure_non_free_firmware(self, session: StepSession) -> None:
        s = session.settings.nvidia
        host = session.host
        if host.non_free_firmware:
            return

        suite = host.apt_suite
        if not suite:
            raise MissingPrecondition(
                "non-free-firmware is not enabled and the Debian codename is unknown; "
                "set 'codename' in hostctl.yml"
            )
        session.write_file(s.non_free_sources, f"deb {s.debian_mirror} {suite} non-free-firmware\n")
        apt.update(session)

    def _fetch_installer(self, session: StepSession, version: str) -> str:
        s = session.settings.nvidia
        filename = installer_name(version)
        path = posixpath.join(s.download_dir, filename)
        if not session.inspector.exists(path):
            url = f"{s.download_base}/{version}/{filename}"
            session.run(["curl", "-fSL", "-o", path, url], creates=path)
        session.chmod(path, 0o755)
        return path
