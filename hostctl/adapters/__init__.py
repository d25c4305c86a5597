"""Adapters — the only code that mutates the host.

Public re-exports for convenient access.
"""

from hostctl.adapters.base import Adapter, ExecutionContext
from hostctl.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "default_registry",
]


def default_registry() -> AdapterRegistry:
    """Registry with the real shell and filesystem adapters."""
    from hostctl.adapters.shell.command import ShellCommandAdapter
    from hostctl.adapters.shell.filesystem import FilesystemAdapter

    registry = AdapterRegistry()
    registry.register(ShellCommandAdapter())
    registry.register(FilesystemAdapter())
    return registry
