"""
Run context — everything one hostctl invocation works with.

Built ONCE by the entry point and passed explicitly to the executor:

    - CLI:    main.py  → build_run_context(settings, confirmer=...)
    - Tests:  conftest → RunContext(host=..., inspector=FakeHost(), ...)

HostContext is gathered here and stays frozen for the rest of the run.
Presence is NOT part of the context: it is re-probed whenever needed.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from hostctl.adapters.registry import AdapterRegistry
from hostctl.core.engine.confirm import Confirmer, DeclineAll
from hostctl.core.models.host import HostContext
from hostctl.core.models.settings import Settings
from hostctl.core.services.detection.inspector import HostInspector

if TYPE_CHECKING:
    from hostctl.components import ComponentRegistry
    from hostctl.core.persistence.audit import AuditWriter


@dataclass
class RunContext:
    """Process-scoped collaborators for probing and executing actions."""

    host: HostContext
    settings: Settings
    inspector: HostInspector
    registry: AdapterRegistry
    confirmer: Confirmer
    components: ComponentRegistry
    dry_run: bool = False
    install_dependencies: bool = False
    audit: AuditWriter | None = None


def build_run_context(
    settings: Settings,
    *,
    confirmer: Confirmer | None = None,
    dry_run: bool = False,
    install_dependencies: bool = False,
    inspector: HostInspector | None = None,
    registry: AdapterRegistry | None = None,
    components: ComponentRegistry | None = None,
) -> RunContext:
    """Gather host facts and wire the real collaborators."""
    from hostctl.adapters import default_registry
    from hostctl.components import default_components
    from hostctl.core.persistence.audit import AuditWriter
    from hostctl.core.services.detection.environment import gather_host_context
    from hostctl.core.services.detection.inspector import SystemInspector

    inspector = inspector or SystemInspector(timeout=settings.probe_timeout)
    return RunContext(
        host=gather_host_context(inspector, settings),
        settings=settings,
        inspector=inspector,
        registry=registry or default_registry(),
        confirmer=confirmer or DeclineAll(),
        components=components or default_components(),
        dry_run=dry_run,
        install_dependencies=install_dependencies,
        audit=AuditWriter(Path(settings.audit_log)) if settings.audit_log else None,
    )
