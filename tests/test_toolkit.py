"""
Tests for the NVIDIA Container Toolkit component and its dependencies
on the driver and Docker.
"""

import json

import pytest

from hostctl.components.toolkit import runtime_configured
from hostctl.core.engine.confirm import OPTIONAL_INSTALL
from hostctl.core.models.presence import PresenceState
from hostctl.core.models.settings import Settings
from tests.fakes import NVIDIA_PAGE, TOOLKIT_LIST, Rig

SETTINGS = Settings()
KEYRING = SETTINGS.toolkit.keyring
SOURCES = SETTINGS.toolkit.sources
DAEMON_JSON = SETTINGS.toolkit.daemon_json


@pytest.fixture
def online(gpu_rig: Rig) -> Rig:
    gpu_rig.host.pages[SETTINGS.nvidia.releases_url] = NVIDIA_PAGE
    gpu_rig.host.pages[SETTINGS.toolkit.list_url] = TOOLKIT_LIST
    return gpu_rig


@pytest.fixture
def prepared(online: Rig) -> Rig:
    """Driver and Docker installed, toolkit not."""
    assert online.execute("nvidia", "install").ok
    assert online.execute("docker", "install").ok
    online.shell.calls.clear()
    return online


@pytest.fixture
def installed(prepared: Rig) -> Rig:
    assert prepared.execute("nvidia-toolkit", "install").ok
    prepared.shell.calls.clear()
    return prepared


# ── daemon.json ──────────────────────────────────────────────────────


class TestRuntimeConfigured:
    def test_runtime_present(self):
        assert runtime_configured('{"runtimes": {"nvidia": {"path": "nvidia-container-runtime"}}}')

    def test_other_runtime(self):
        assert not runtime_configured('{"runtimes": {"runsc": {}}}')

    def test_missing_or_invalid(self):
        assert not runtime_configured(None)
        assert not runtime_configured("")
        assert not runtime_configured("{not json")
        assert not runtime_configured("[]")


# ── Detection ────────────────────────────────────────────────────────


class TestToolkitDetect:
    def test_absent(self, rig: Rig):
        assert rig.presence("nvidia-toolkit").state == PresenceState.ABSENT

    def test_package_without_runtime_is_broken(self, prepared: Rig):
        prepared.host.packages["nvidia-container-toolkit"] = "1.17.8-1"
        presence = prepared.presence("nvidia-toolkit")
        assert presence.state == PresenceState.BROKEN
        assert "runtime not configured" in presence.reason

    def test_leftover_keyring_is_partial(self, rig: Rig):
        rig.host.files[KEYRING] = "binary keyring"
        assert rig.presence("nvidia-toolkit").state == PresenceState.PARTIAL


# ── Install ──────────────────────────────────────────────────────────


class TestToolkitInstall:
    def test_requires_driver_and_docker(self, gpu_rig: Rig):
        result = gpu_rig.execute("nvidia-toolkit", "install")
        assert result.failed
        assert result.error_kind == "missing_precondition"
        assert result.reason == (
            "nvidia-toolkit requires nvidia (absent), docker (absent) to be installed (use --with-deps)"
        )
        assert gpu_rig.shell.calls == []

    def test_with_deps(self, online: Rig):
        result = online.execute("nvidia-toolkit", "install", with_deps=True)
        host = online.host

        assert result.ok, result.reason
        assert [d.component for d in result.dependencies] == ["nvidia", "docker"]
        assert all(d.ok for d in result.dependencies)
        assert result.presence_after.state == PresenceState.INSTALLED

        assert host.files[SOURCES] == (
            f"deb [signed-by={KEYRING}] https://nvidia.github.io/libnvidia-container/stable/deb/$(ARCH) /\n"
        )
        assert host.files[KEYRING] == "binary keyring"
        assert runtime_configured(host.files[DAEMON_JSON])

        total = result.total_restart
        assert total.reboot_required
        assert total.service_restart == ["docker"]
        assert result.restart.service_restart == ["docker"]
        assert not result.restart.reboot_required

    def test_driver_dependency_does_not_offer_toolkit_again(self, online: Rig):
        online.confirmer.answers[OPTIONAL_INSTALL] = True
        result = online.execute("nvidia-toolkit", "install", with_deps=True)
        nvidia = result.dependencies[0]

        assert result.ok
        assert nvidia.follow_ups == []
        assert OPTIONAL_INSTALL not in online.confirmer.kinds_asked()
        assert len(online.shell.commands("nvidia-ctk")) == 1

    def test_install(self, prepared: Rig):
        result = prepared.execute("nvidia-toolkit", "install")
        assert result.ok
        assert result.dependencies == []
        assert prepared.shell.ran("gpg", "--batch", "--yes", "--dearmor", "-o", KEYRING)
        assert prepared.shell.ran("apt-get", "install", "-y", "nvidia-container-toolkit")
        assert prepared.shell.ran("nvidia-ctk", "runtime", "configure", "--runtime=docker")

    def test_existing_daemon_json_is_kept(self, prepared: Rig):
        prepared.host.files[DAEMON_JSON] = '{"log-driver": "journald"}'
        prepared.execute("nvidia-toolkit", "install")
        data = json.loads(prepared.host.files[DAEMON_JSON])
        assert data["log-driver"] == "journald"
        assert "nvidia" in data["runtimes"]

    def test_list_fetch_failure_rolls_back_keyring(self, prepared: Rig):
        prepared.host.pages.pop(SETTINGS.toolkit.list_url)
        result = prepared.execute("nvidia-toolkit", "install")

        assert result.failed
        assert result.error_kind == "external_command_failed"
        assert f"GET {SETTINGS.toolkit.list_url}" in result.reason
        assert KEYRING not in prepared.host.files
        assert SOURCES not in prepared.host.files
        assert result.rollback

    def test_dependency_failure(self, online: Rig):
        online.shell.fail(["apt-get", "install", "-y", "docker-ce"], code=100)
        result = online.execute("nvidia-toolkit", "install", with_deps=True)
        assert result.failed
        assert result.error_kind == "missing_precondition"
        assert result.reason.startswith("Dependency docker failed to install")
        assert result.any_failed
        assert not online.shell.ran("nvidia-ctk")

    def test_requires_systemd(self, prepared: Rig):
        prepared.host.dirs.discard("/run/systemd/system")
        result = prepared.execute("nvidia-toolkit", "install")
        assert result.error_kind == "missing_fact"
        assert "systemd" in result.reason


# ── Smoke test ───────────────────────────────────────────────────────


class TestToolkitSmokeTest:
    def test_off_by_default(self, installed: Rig):
        presence = installed.presence("nvidia-toolkit")
        assert presence.state == PresenceState.INSTALLED
        assert not any(f.label == "GPU in container" for f in presence.facts)
        assert not any(p[:2] == ["docker", "run"] for p in installed.host.probes)

    def test_gpu_visible_in_container(self, installed: Rig):
        installed.settings = Settings.model_validate({"toolkit": {"gpu_smoke_test": True}})
        presence = installed.presence("nvidia-toolkit")
        assert presence.state == PresenceState.INSTALLED
        smoke = next(f for f in presence.facts if f.label == "GPU in container")
        assert smoke.value == "NVIDIA GeForce RTX 4070"

    def test_gpu_not_visible(self, installed: Rig):
        installed.settings = Settings.model_validate({"toolkit": {"gpu_smoke_test": True}})
        installed.host.daemon_down = True
        presence = installed.presence("nvidia-toolkit")
        assert presence.state == PresenceState.BROKEN
        assert presence.reason == "containers cannot access the GPU"


# ── Uninstall and rebuild ────────────────────────────────────────────


class TestToolkitUninstall:
    def test_uninstall(self, installed: Rig):
        installed.host.files[DAEMON_JSON] = json.dumps({
            "log-driver": "journald",
            "runtimes": {"nvidia": {"args": [], "path": "nvidia-container-runtime"}},
            "default-runtime": "nvidia",
        })
        result = installed.execute("nvidia-toolkit", "uninstall")
        host = installed.host

        assert result.ok
        assert result.presence_after.state == PresenceState.ABSENT
        assert json.loads(host.files[DAEMON_JSON]) == {"log-driver": "journald"}
        assert SOURCES not in host.files
        assert KEYRING not in host.files
        assert result.restart.service_restart == ["docker"]

    def test_other_default_runtime_is_kept(self, installed: Rig):
        installed.host.files[DAEMON_JSON] = json.dumps({
            "runtimes": {"nvidia": {}, "runsc": {"path": "/usr/bin/runsc"}},
            "default-runtime": "runsc",
        })
        installed.execute("nvidia-toolkit", "uninstall")
        data = json.loads(installed.host.files[DAEMON_JSON])
        assert data == {"runtimes": {"runsc": {"path": "/usr/bin/runsc"}}, "default-runtime": "runsc"}

    def test_without_systemd(self, installed: Rig):
        installed.host.dirs.discard("/run/systemd/system")
        assert installed.execute("nvidia-toolkit", "uninstall").ok

    def test_without_daemon_json(self, installed: Rig):
        installed.host.files.pop(DAEMON_JSON)
        result = installed.execute("nvidia-toolkit", "uninstall")
        assert result.ok
        assert DAEMON_JSON not in installed.host.files


class TestToolkitRebuild:
    def test_rebuild(self, installed: Rig):
        installed.host.files[DAEMON_JSON] = "{}"
        result = installed.execute("nvidia-toolkit", "rebuild")
        assert result.ok
        assert installed.shell.commands("nvidia-ctk") == [["nvidia-ctk", "runtime", "configure", "--runtime=docker"]]
        assert runtime_configured(installed.host.files[DAEMON_JSON])
        assert result.restart.service_restart == ["docker"]

    def test_rebuild_not_installed(self, prepared: Rig):
        result = prepared.execute("nvidia-toolkit", "rebuild")
        assert result.error_kind == "missing_precondition"
