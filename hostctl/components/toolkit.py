"""
NVIDIA Container Toolkit — GPU support for Docker containers.
"""

from __future__ import annotations

import json
from typing import Any

from hostctl.components import apt
from hostctl.components.base import Component
from hostctl.core.engine.session import StepSession
from hostctl.core.errors import ExternalCommandFailed, ProbeError
from hostctl.core.models.host import HostContext
from hostctl.core.models.presence import Fact, Presence
from hostctl.core.models.settings import Settings
from hostctl.core.services.detection.inspector import HostInspector, tolerate_missing_tool
from hostctl.core.services.detection.packages import dpkg_version, tool_version

CONFIGURE_RUNTIME = ["nvidia-ctk", "runtime", "configure", "--runtime=docker"]
# Keys nvidia-ctk adds to daemon.json; default-runtime only when it points at nvidia
RUNTIME_KEYS = ["runtimes.nvidia", "default-runtime=nvidia"]


def runtime_configured(daemon_json: str | None) -> bool:
    """Whether a daemon.json text declares the ``nvidia`` runtime."""
    if not daemon_json:
        return False
    try:
        data = json.loads(daemon_json)
    except ValueError:
        return False
    runtimes = data.get("runtimes") if isinstance(data, dict) else None
    return isinstance(runtimes, dict) and "nvidia" in runtimes


class ToolkitComponent(Component):
    name = "nvidia-toolkit"
    title = "NVIDIA Container Toolkit"
    depends_on = ("nvidia", "docker")
    actions = frozenset({"install", "uninstall", "rebuild"})
    facts = ("debian_family", "systemd")
    action_facts = {"uninstall": ("debian_family",)}

    def detect(self, inspector: HostInspector, host: HostContext, settings: Settings) -> Presence:
        s = settings.toolkit
        t = settings.probe_timeout
        facts: list[Fact] = []

        package = dpkg_version(inspector, s.package, timeout=t)
        facts.append(Fact(label=s.package, value=package or "not installed", ok=bool(package)))

        ctk = tolerate_missing_tool(None, tool_version, inspector, ["nvidia-ctk", "--version"], timeout=t)
        facts.append(Fact(label="nvidia-ctk", value=ctk or "not found", ok=bool(ctk)))

        runtime = runtime_configured(inspector.read_text(s.daemon_json))
        facts.append(Fact(
            label="Docker runtime",
            value=f"nvidia configured in {s.daemon_json}" if runtime else "nvidia runtime not configured",
            ok=runtime,
        ))

        sources = inspector.exists(s.sources)

        if package and ctk and runtime:
            if s.gpu_smoke_test:
                smoke = self._smoke_test(inspector, s.cuda_image, settings.command_timeout)
                facts.append(Fact(label="GPU in container", value=smoke or "failed", ok=bool(smoke)))
                if not smoke:
                    return Presence.broken("containers cannot access the GPU", version=package, facts=facts)
            return Presence.installed_at(package, reason="runtime configured", facts=facts)
        if package:
            reason = "nvidia-ctk not found" if not ctk else "nvidia runtime not configured in Docker"
            return Presence.broken(reason, version=package, facts=facts)
        if sources or runtime or inspector.exists(s.keyring):
            return Presence.partial("repository or runtime configured, package not installed", facts=facts)
        return Presence.absent("toolkit not installed", facts=facts)

    def install(self, session: StepSession, presence: Presence, **_: Any) -> None:
        s = session.settings.toolkit
        apt.add_signing_key(session, s.gpgkey_url, s.keyring)

        try:
            listing = session.inspector.fetch(s.list_url, timeout=session.settings.probe_timeout)
        except ProbeError as e:
            raise ExternalCommandFailed(f"GET {s.list_url}", None, str(e)) from e
        session.write_file(s.sources, apt.add_signed_by(listing, s.keyring))

        apt.update(session)
        apt.install(session, [s.package])
        self._configure_runtime(session)

    def uninstall(self, session: StepSession, presence: Presence, **_: Any) -> None:
        s = session.settings.toolkit
        apt.purge(session, [s.package])
        session.remove(s.sources)
        session.remove(s.keyring)
        session.json_remove_keys(s.daemon_json, RUNTIME_KEYS, check=False)
        apt.update(session, check=False)
        session.require_service_restart("docker", "NVIDIA runtime removed from Docker")

    def rebuild(self, session: StepSession, presence: Presence, **_: Any) -> None:
        self._configure_runtime(session)

    def _configure_runtime(self, session: StepSession) -> None:
        session.run(CONFIGURE_RUNTIME)
        session.require_service_restart("docker", "NVIDIA runtime configured for Docker")

    def _smoke_test(self, inspector: HostInspector, image: str, timeout: int) -> str | None:
        """GPU name as seen from inside a CUDA container, or None."""
        out = tolerate_missing_tool(
            None,
            inspector.run,
            ["docker", "run", "--rm", "--gpus", "all", image,
             "nvidia-smi", "--query-gpu=name", "--format=csv,noheader"],
            timeout=timeout,
        )
        if out is None or not out.ok:
            return None
        return out.first_line or None
