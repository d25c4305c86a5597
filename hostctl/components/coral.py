"""
Coral Edge TPU (PCIe) — gasket-dkms driver and libedgetpu runtime.

The runtime library comes from Google's Coral apt repository. The
gasket driver is built from source because the packaged release does
not compile on recent kernels; the build checks out a configurable
upstream ref carrying the fix.
"""

from __future__ import annotations

import posixpath
import re
from typing import Any

from hostctl.components import apt
from hostctl.components.base import Component
from hostctl.core.engine.session import StepSession
from hostctl.core.errors import ExternalCommandFailed, MissingPrecondition, ResourceBusy
from hostctl.core.models.host import HostContext
from hostctl.core.models.presence import Fact, Presence
from hostctl.core.models.settings import Settings
from hostctl.core.services.detection.hardware import (
    device_in_use,
    device_nodes,
    find_pci_devices,
    group_members,
    user_exists,
)
from hostctl.core.services.detection.inspector import HostInspector, tolerate_missing_tool
from hostctl.core.services.detection.packages import (
    dkms_entries,
    dpkg_version,
    loaded_modules,
    modinfo_version,
)

DEVICE_GLOB = "/dev/apex_*"
PRIMARY_DEVICE = "/dev/apex_0"


def _version_key(version: str) -> list[tuple[int, int | str]]:
    """Numeric-aware sort key: ``1.10`` sorts after ``1.9``."""
    return [(0, int(part)) if part.isdigit() else (1, part) for part in re.findall(r"\d+|[^\d.\-+~]+", version)]


def gasket_source_version(inspector: HostInspector, source_glob: str) -> str | None:
    """Version of the gasket source tree to build from.

    The version ``dkms status`` has registered wins when its tree is
    still in /usr/src; otherwise the newest tree present.
    """
    trees = {posixpath.basename(path).removeprefix("gasket-") for path in inspector.glob(source_glob)}
    if not trees:
        return None
    entries = tolerate_missing_tool([], dkms_entries, inspector, "gasket")
    registered = [e.version for e in entries if e.version in trees]
    return max(registered or trees, key=_version_key)


class CoralComponent(Component):
    name = "coral"
    title = "Coral Edge TPU driver"
    actions = frozenset({"install", "uninstall", "reinstall", "rebuild", "setup-non-root"})

    # ── Detection ──────────────────────────────────────────────

    def detect(self, inspector: HostInspector, host: HostContext, settings: Settings) -> Presence:
        s = settings.coral
        t = settings.probe_timeout
        facts: list[Fact] = []

        hardware = find_pci_devices(inspector, s.pci_id, timeout=t)
        if hardware is None:
            facts.append(Fact(label="Hardware", value="lspci not available, not checked"))
        elif hardware:
            facts.append(Fact(label="Hardware", value=hardware[0], ok=True))
        else:
            facts.append(Fact(label="Hardware", value=f"no {s.pci_id} device found", ok=False))

        nodes = device_nodes(inspector, DEVICE_GLOB)
        facts.append(Fact(label="Device nodes", value=", ".join(nodes) or "none", ok=bool(nodes)))

        entries = tolerate_missing_tool([], dkms_entries, inspector, "gasket", timeout=t)
        built = [e for e in entries if e.installed and (not e.kernel or e.kernel == host.kernel_release)]
        facts.append(Fact(
            label="DKMS",
            value=", ".join(f"{e.module}/{e.version} {e.kernel}: {e.state}".strip() for e in entries)
            or "no gasket entry",
            ok=bool(built),
        ))

        apex_loaded = "apex" in loaded_modules(inspector)
        apex_version = (
            tolerate_missing_tool(None, modinfo_version, inspector, "apex", timeout=t)
            if apex_loaded else None
        )
        facts.append(Fact(
            label="apex module",
            value=f"loaded ({apex_version or 'unknown version'})" if apex_loaded else "not loaded",
            ok=apex_loaded,
        ))

        lib = dpkg_version(inspector, s.library_package, timeout=t)
        drv = dpkg_version(inspector, s.driver_package, timeout=t)
        facts.append(Fact(label=s.library_package, value=lib or "not installed", ok=bool(lib)))
        facts.append(Fact(label=s.driver_package, value=drv or "not installed", ok=bool(drv)))

        udev = inspector.exists(s.udev_rule)
        members = tolerate_missing_tool(None, group_members, inspector, s.group, timeout=t)
        if members is None:
            access = f"group {s.group} does not exist"
        else:
            access = f"group {s.group}: {', '.join(members) or 'no members'}"
        facts.append(Fact(
            label="Non-root access",
            value=f"{access}; udev rule {'present' if udev else 'missing'}",
        ))

        if drv and lib:
            problems = []
            if hardware == []:
                problems.append("Coral PCIe device not detected")
            if not built:
                problems.append(f"gasket not built for kernel {host.kernel_release}")
            if not apex_loaded:
                problems.append("apex module not loaded")
            if not nodes:
                problems.append("no /dev/apex_* device node")
            if problems:
                return Presence.broken("; ".join(problems), version=drv, facts=facts)
            return Presence.installed_at(drv, reason="driver loaded, device present", facts=facts)

        leftovers = [
            label for label, present in (
                (s.driver_package, drv),
                (s.library_package, lib),
                ("dkms entry", entries),
                ("dkms source", inspector.glob(s.dkms_source_glob)),
                ("apt source", inspector.exists(s.sources)),
            ) if present
        ]
        if leftovers:
            return Presence.partial(f"only {', '.join(leftovers)} present", version=drv, facts=facts)
        return Presence.absent("no Coral packages installed", facts=facts)

    # ── Actions ────────────────────────────────────────────────

    def install(self, session: StepSession, presence: Presence, **_: Any) -> None:
        s = session.settings.coral
        apt.update(session)
        apt.install(session, [*s.build_packages, session.host.headers_package])
        self._install_library(session)
        self._install_driver(session)
        session.require_reboot("Coral TPU driver installed")

    def uninstall(self, session: StepSession, presence: Presence, **_: Any) -> None:
        s = session.settings.coral
        apt.purge(session, [s.driver_package, s.library_package])
        for path in (s.sources, s.keyring, s.udev_rule, s.dkms_source_glob):
            session.remove(path)
        session.run(["groupdel", s.group], check=False)
        session.run(["update-initramfs", "-u"])
        session.require_reboot("Coral TPU driver removed")

    def rebuild(self, session: StepSession, presence: Presence, **_: Any) -> None:
        s = session.settings.coral
        host = session.host
        apt.install(session, [host.headers_package])

        version = gasket_source_version(session.inspector, s.dkms_source_glob)
        if version is None:
            raise MissingPrecondition("No gasket-dkms source found in /usr/src")
        session.details["gasket_version"] = version

        session.run(["dkms", "install", "--force", f"gasket/{version}", "-k", host.kernel_release])

        if device_in_use(session.inspector, PRIMARY_DEVICE):
            session.require_reboot("apex module is in use, reboot to load the rebuilt driver")
            raise ResourceBusy(
                f"{PRIMARY_DEVICE} is in use; stop the processes using it or reboot"
            )

        unload = session.run(["modprobe", "-r", "apex", "gasket"], check=False)
        if unload.failed:
            session.require_reboot("apex/gasket could not be unloaded, reboot to load the rebuilt driver")
            raise ResourceBusy("Failed to unload the apex/gasket modules")

        session.run(["modprobe", "apex"])
        session.note(f"gasket {version} rebuilt for {host.kernel_release}")

    def setup_non_root(self, session: StepSession, presence: Presence, user: str | None = None, **_: Any) -> None:
        s = session.settings.coral
        user = user or session.host.sudo_user
        if not user:
            raise MissingPrecondition("No user given and SUDO_USER is not set")
        if not user_exists(session.inspector, user):
            raise MissingPrecondition(f"User {user} does not exist")

        session.run(["groupadd", "-f", s.group])
        session.run(["usermod", "-aG", s.group, user])
        session.write_file(s.udev_rule, f'SUBSYSTEM=="apex", MODE="0660", GROUP="{s.group}"\n')
        session.run(["udevadm", "control", "--reload-rules"])
        session.run(["udevadm", "trigger"])
        session.details["user"] = user
        session.note(f"Non-root access set for {user} (log in again to pick up the {s.group} group)")

    # ── Helpers ────────────────────────────────────────────────

    def _install_library(self, session: StepSession) -> None:
        s = session.settings.coral
        apt.add_signing_key(session, s.key_url, s.keyring)
        uri, suite, components = s.repo_line.split(maxsplit=2)
        session.write_file(s.sources, apt.source_line(uri, suite, components, s.keyring))
        apt.update(session)
        apt.install(session, [s.library_package])

    def _install_driver(self, session: StepSession) -> None:
        s = session.settings.coral
        source = posixpath.join(s.build_dir, "gasket-driver")

        session.remove(s.build_dir)
        session.mkdir(s.build_dir)
        session.run(["git", "clone", s.driver_repo, source])
        if s.driver_ref:
            session.run(["git", "fetch", "origin", s.driver_ref], cwd=source)
            session.run(["git", "checkout", "FETCH_HEAD"], cwd=source)
        session.run(["debuild", "-us", "-uc", "-tc", "-b"], cwd=source)

        debs = session.inspector.glob(posixpath.join(s.build_dir, "gasket-dkms_*_all.deb"))
        if debs:
            deb = debs[0]
        elif session.dry_run:
            deb = posixpath.join(s.build_dir, "gasket-dkms_VERSION_all.deb")
        else:
            raise ExternalCommandFailed("debuild", None, "no gasket-dkms .deb was produced")

        session.run(["dpkg", "-i", deb])
        session.remove(s.build_dir, check=False)
