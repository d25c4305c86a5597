"""
Release detection — latest NVIDIA production driver version.

NVIDIA publishes no machine-readable release feed for the Linux .run
installers, so the version is scraped from the Unix driver archive page.
"""

from __future__ import annotations

import logging
import re

from hostctl.core.errors import ProbeError
from hostctl.core.services.detection.inspector import HostInspector

logger = logging.getLogger(__name__)

_LATEST_PRODUCTION = re.compile(
    r'Latest Production Branch Version:</span>\s*<a href="[^"]*">\s*'
    r"([0-9]+\.[0-9]+(?:\.[0-9]+)?)"
)


def parse_latest_version(html: str) -> str | None:
    m = _LATEST_PRODUCTION.search(html)
    return m.group(1) if m else None


def latest_driver_version(
    inspector: HostInspector,
    url: str,
    fallback: str,
    timeout: int | None = None,
) -> tuple[str, bool]:
    """Latest production driver version.

    Returns:
        (version, from_network). ``from_network`` is False when the
        page could not be fetched or parsed and ``fallback`` was used.
    """
    try:
        html = inspector.fetch(url, timeout=timeout)
    except ProbeError as e:
        logger.warning("Could not fetch NVIDIA release page: %s", e)
        return fallback, False

    version = parse_latest_version(html)
    if version is None:
        logger.warning("No production version found on %s, using %s", url, fallback)
        return fallback, False
    return version, True
