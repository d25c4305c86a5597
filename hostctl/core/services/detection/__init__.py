"""
Detection services — read-only host inspection primitives.

Everything in this package only reads: files, environment variables and
the output of read-only commands, always through a HostInspector.
"""

from hostctl.core.services.detection.inspector import (
    CommandOutput,
    HostInspector,
    SystemInspector,
)

__all__ = ["CommandOutput", "HostInspector", "SystemInspector"]
