"""
Domain models — Pydantic types for hostctl.

All models are re-exported here for convenient access:

    from hostctl.core.models import Presence, ActionResult, HostContext, Settings
"""

from hostctl.core.models.action import Action, ActionResult, Receipt, RestartNeeds
from hostctl.core.models.host import HostContext
from hostctl.core.models.presence import (
    ComponentStatus,
    Fact,
    Presence,
    PresenceState,
    StatusReport,
)
from hostctl.core.models.settings import (
    CoralSettings,
    DockerSettings,
    NvidiaSettings,
    Settings,
    ToolkitSettings,
)

__all__ = [
    # action.py
    "Action",
    "ActionResult",
    "ComponentStatus",
    "CoralSettings",
    "DockerSettings",
    "Fact",
    # host.py
    "HostContext",
    "NvidiaSettings",
    # presence.py
    "Presence",
    "PresenceState",
    "Receipt",
    "RestartNeeds",
    # settings.py
    "Settings",
    "StatusReport",
    "ToolkitSettings",
]
