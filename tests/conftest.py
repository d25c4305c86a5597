"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from hostctl.core.persistence.audit import AuditWriter
from tests.fakes import FakeHost, Rig


@pytest.fixture
def host() -> FakeHost:
    """Bare Debian 12 host, running as root, no accelerators."""
    return FakeHost()


@pytest.fixture
def rig(host: FakeHost) -> Rig:
    return Rig(host)


@pytest.fixture
def coral_rig() -> Rig:
    """Host with a Coral PCIe card on the bus."""
    return Rig(FakeHost(coral=True))


@pytest.fixture
def gpu_rig() -> Rig:
    """Host with an NVIDIA GPU on the bus."""
    return Rig(FakeHost(gpu=True))


@pytest.fixture
def audit_path(tmp_path: Path) -> Path:
    return tmp_path / "state" / "audit.ndjson"


@pytest.fixture
def audited_rig(host: FakeHost, audit_path: Path) -> Rig:
    return Rig(host, audit=AuditWriter(audit_path))
