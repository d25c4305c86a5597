"""
Docker CE — engine, CLI and plugins from Docker's apt repository.
"""

from __future__ import annotations

from typing import Any

from hostctl.components import apt
from hostctl.components.base import Component
from hostctl.core.engine.session import StepSession
from hostctl.core.models.host import HostContext
from hostctl.core.models.presence import Fact, Presence
from hostctl.core.models.settings import Settings
from hostctl.core.services.detection.inspector import HostInspector, tolerate_missing_tool
from hostctl.core.services.detection.packages import dpkg_version, installed_packages, tool_version


class DockerComponent(Component):
    name = "docker"
    title = "Docker CE"
    facts = ("debian_family", "codename")
    action_facts = {"uninstall": ("debian_family",)}

    def detect(self, inspector: HostInspector, host: HostContext, settings: Settings) -> Presence:
        s = settings.docker
        t = settings.probe_timeout
        facts: list[Fact] = []

        engine = dpkg_version(inspector, "docker-ce", timeout=t)
        facts.append(Fact(label="docker-ce", value=engine or "not installed", ok=bool(engine)))

        cli = tolerate_missing_tool(None, tool_version, inspector, ["docker", "--version"], timeout=t)
        facts.append(Fact(label="CLI", value=cli or "not found", ok=bool(cli)))

        daemon = False
        if cli:
            daemon = inspector.run_ok(["docker", "info"], timeout=t)
            facts.append(Fact(label="Daemon", value="running" if daemon else "not reachable", ok=daemon))
            compose = tool_version(inspector, ["docker", "compose", "version"], timeout=t)
            facts.append(Fact(label="Compose", value=compose or "not available", ok=bool(compose)))

        conflicts = installed_packages(inspector, s.conflicting, timeout=t)
        if conflicts:
            facts.append(Fact(
                label="Conflicting packages",
                value=", ".join(f"{p} {v}" for p, v in conflicts.items()),
                ok=False,
            ))

        if engine and daemon:
            return Presence.installed_at(engine, reason="daemon reachable", facts=facts)
        if engine:
            return Presence.broken("docker-ce installed but the daemon is not reachable", version=engine, facts=facts)
        if inspector.exists(s.sources) or conflicts or cli:
            return Presence.partial("repository configured or another Docker build present", facts=facts)
        return Presence.absent("docker-ce not installed", facts=facts)

    def install(self, session: StepSession, presence: Presence, **_: Any) -> None:
        s = session.settings.docker
        host = session.host

        apt.update(session)
        apt.purge(session, s.conflicting)
        apt.autoremove(session)
        apt.install(session, s.base_packages)

        apt.add_signing_key(session, s.gpg_url, s.keyring, dearmor=False)
        session.write_file(
            s.sources,
            apt.source_line(s.repo_url, host.distro_codename, "stable", s.keyring, arch=host.architecture),
        )
        apt.update(session)
        apt.install(session, s.packages)

    def uninstall(self, session: StepSession, presence: Presence, **_: Any) -> None:
        s = session.settings.docker
        apt.purge(session, s.packages)
        session.remove(s.sources)
        session.remove(s.keyring)
        apt.autoremove(session)
