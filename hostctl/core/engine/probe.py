"""
Probe engine — side-effect-free detection and status aggregation.

Components describe how to detect themselves; this module runs those
detections, turns probe failures into ``unknown`` presence and builds
the status report.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from hostctl.core.errors import ProbeError
from hostctl.core.models.host import HostContext
from hostctl.core.models.presence import ComponentStatus, Presence, StatusReport
from hostctl.core.models.settings import Settings
from hostctl.core.services.detection.inspector import HostInspector

if TYPE_CHECKING:
    from hostctl.components.base import Component

logger = logging.getLogger(__name__)


def probe(
    component: Component,
    inspector: HostInspector,
    host: HostContext,
    settings: Settings,
) -> Presence:
    """Detect the current presence of one component. Never raises."""
    try:
        presence = component.detect(inspector, host, settings)
    except ProbeError as e:
        logger.warning("Probe for %s degraded to unknown: %s", component.name, e)
        return Presence.unknown(str(e), error_kind=e.kind)
    except Exception as e:
        logger.exception("Probe for %s crashed", component.name)
        return Presence.unknown(f"Probe error: {e}", error_kind="tool_error")

    logger.debug("Probe %s: %s (%s)", component.name, presence.state.value, presence.reason)
    return presence


def build_status_report(
    components: Iterable[Component],
    inspector: HostInspector,
    host: HostContext,
    settings: Settings,
    required: set[str] | None = None,
) -> StatusReport:
    """Probe every component and aggregate.

    Args:
        required: Names that count towards the overall status. None
            means all of them.
    """
    report = StatusReport(reboot_pending=host.reboot_pending)
    for component in components:
        report.add(ComponentStatus(
            name=component.name,
            title=component.title,
            required=required is None or component.name in required,
            presence=probe(component, inspector, host, settings),
        ))
    return report
