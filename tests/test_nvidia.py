"""
Tests for the NVIDIA driver component — detect, two-phase install,
uninstall, rebuild and version.
"""

import pytest

from hostctl.components.nvidia import DRIVER_PACKAGES, installer_name
from hostctl.components.toolkit import runtime_configured
from hostctl.core.engine.confirm import OPTIONAL_INSTALL, PROCEED
from hostctl.core.models.presence import PresenceState
from hostctl.core.models.settings import Settings
from tests.fakes import KERNEL, NVIDIA_PAGE, TOOLKIT_LIST, FakeHost, Rig

SETTINGS = Settings()
RELEASES_URL = SETTINGS.nvidia.releases_url
BLACKLIST = SETTINGS.nvidia.blacklist_conf
MODPROBE_CONF = SETTINGS.nvidia.modprobe_conf
NON_FREE = SETTINGS.nvidia.non_free_sources
INSTALLER = "/tmp/NVIDIA-Linux-x86_64-570.195.03.run"


@pytest.fixture
def online(gpu_rig: Rig) -> Rig:
    gpu_rig.host.pages[RELEASES_URL] = NVIDIA_PAGE
    return gpu_rig


@pytest.fixture
def installed(online: Rig) -> Rig:
    assert online.execute("nvidia", "install").ok
    online.shell.calls.clear()
    online.confirmer.asked.clear()
    return online


# ── Detection ────────────────────────────────────────────────────────


class TestNvidiaDetect:
    def test_absent_without_nvidia_smi(self, gpu_rig: Rig):
        assert gpu_rig.presence("nvidia").state == PresenceState.ABSENT

    def test_registered_but_not_loaded_is_broken(self, gpu_rig: Rig):
        gpu_rig.host.add_dkms("nvidia", "570.181")
        gpu_rig.host.binaries.add("nvidia-smi")
        presence = gpu_rig.presence("nvidia")
        assert presence.state == PresenceState.BROKEN
        assert presence.version == "570.181"

    def test_running_driver_outside_dkms_is_partial(self, gpu_rig: Rig):
        gpu_rig.host.smi = {"driver_version": "535.216.01", "name": "Tesla T4"}
        presence = gpu_rig.presence("nvidia")
        assert presence.state == PresenceState.PARTIAL
        assert presence.version == "535.216.01"

    def test_blacklist_only_is_partial(self, gpu_rig: Rig):
        gpu_rig.host.files[BLACKLIST] = "blacklist nouveau\n"
        assert gpu_rig.presence("nvidia").state == PresenceState.PARTIAL

    def test_installed_reports_gpu(self, installed: Rig):
        presence = installed.presence("nvidia")
        assert presence.state == PresenceState.INSTALLED
        assert presence.version == "570.195.03"
        assert any(f.label == "GPU" and "RTX 4070" in f.value for f in presence.facts)


# ── Install ──────────────────────────────────────────────────────────


class TestNvidiaInstall:
    def test_install_latest(self, online: Rig):
        result = online.execute("nvidia", "install")
        host, shell = online.host, online.shell

        assert result.ok, result.reason
        assert result.details["driver_version"] == "570.195.03"
        assert result.presence_after.state == PresenceState.INSTALLED
        assert result.restart.reboot_required

        assert shell.ran("apt-get", "install", "-y", f"linux-headers-{KERNEL}", "build-essential")
        assert shell.ran("systemctl", "stop", "display-manager")
        assert shell.ran(
            "curl", "-fSL", "-o", INSTALLER,
            "https://us.download.nvidia.com/XFree86/Linux-x86_64/570.195.03/NVIDIA-Linux-x86_64-570.195.03.run",
        )
        assert shell.ran(INSTALLER, "--silent", "--dkms")
        assert host.modes[INSTALLER] == 0o755
        assert host.files[MODPROBE_CONF] == "options nvidia-drm modeset=1\n"
        assert INSTALLER not in host.files
        assert NON_FREE not in host.files

    def test_stop_display_manager_is_confirmed(self, online: Rig):
        online.execute("nvidia", "install")
        assert online.confirmer.kinds_asked()[0] == PROCEED

    def test_declined_display_manager_stop(self, gpu_rig: Rig):
        rig = Rig(gpu_rig.host, answers={PROCEED: False})
        result = rig.execute("nvidia", "install")
        assert result.failed
        assert result.error_kind == "user_declined"
        assert not rig.shell.ran("systemctl", "stop")
        assert not rig.shell.ran("curl")

    def test_display_manager_fallback(self, online: Rig):
        online.shell.fail(["systemctl", "stop"], code=5, stderr="Unit display-manager.service not loaded.")
        assert online.execute("nvidia", "install").ok
        assert online.shell.ran("telinit", "3")

    def test_explicit_version(self, gpu_rig: Rig):
        result = gpu_rig.execute("nvidia", "install", driver_version="550.127.05")
        assert result.ok
        assert gpu_rig.shell.ran("/tmp/" + installer_name("550.127.05"))
        assert result.presence_after.version == "550.127.05"

    def test_offline_uses_fallback_version(self, gpu_rig: Rig):
        result = gpu_rig.execute("nvidia", "install")
        assert result.ok
        assert result.details["driver_version"] == "570.181"

    def test_nouveau_first_pass(self, online: Rig):
        online.host.modules.add("nouveau")
        result = online.execute("nvidia", "install")
        host, shell = online.host, online.shell

        assert result.ok
        assert host.files[BLACKLIST] == "blacklist nouveau\noptions nouveau modeset=0\n"
        assert shell.ran("update-initramfs", "-u")
        assert not shell.ran("curl")
        assert result.restart.reboot_required
        assert "reboot" in result.reason
        assert result.presence_after.state == PresenceState.PARTIAL

    def test_second_pass_after_reboot(self, online: Rig):
        online.host.modules.add("nouveau")
        online.execute("nvidia", "install")
        online.host.modules.discard("nouveau")

        result = online.execute("nvidia", "install")
        assert result.ok
        assert result.presence_after.state == PresenceState.INSTALLED

    def test_enables_non_free_firmware(self, online: Rig):
        online.host.files["/etc/apt/sources.list"] = "deb http://deb.debian.org/debian bookworm main\n"
        result = online.execute("nvidia", "install")
        assert result.ok
        assert online.host.files[NON_FREE] == "deb http://deb.debian.org/debian bookworm non-free-firmware\n"

    def test_non_free_firmware_follows_stable(self, online: Rig):
        online.host.files["/etc/apt/sources.list"] = "deb http://deb.debian.org/debian stable main\n"
        online.execute("nvidia", "install")
        assert online.host.files[NON_FREE] == "deb http://deb.debian.org/debian stable non-free-firmware\n"

    def test_unknown_codename_without_non_free(self, online: Rig):
        online.host.files["/etc/os-release"] = "ID=debian\n"
        online.host.files["/etc/apt/sources.list"] = "deb http://deb.debian.org/debian trixie main\n"
        result = online.execute("nvidia", "install")
        assert result.failed
        assert result.error_kind == "missing_precondition"
        assert "codename" in result.reason

    def test_headers_not_available(self, online: Rig):
        online.host.unavailable.add(f"linux-headers-{KERNEL}")
        result = online.execute("nvidia", "install")
        assert result.failed
        assert result.error_kind == "missing_precondition"
        assert KERNEL in result.reason

    def test_not_amd64(self, online: Rig):
        online.host.arch = "arm64"
        result = online.execute("nvidia", "install")
        assert result.error_kind == "missing_precondition"
        assert online.shell.calls == []

    def test_installer_failure_rolls_back_config(self, online: Rig):
        online.host.files["/etc/apt/sources.list"] = "deb http://deb.debian.org/debian bookworm main\n"
        online.shell.fail([INSTALLER], code=1, stderr="ERROR: An NVIDIA kernel module 'nvidia-drm' appears to be already loaded")
        result = online.execute("nvidia", "install")
        assert result.failed
        assert NON_FREE not in online.host.files
        assert INSTALLER not in online.host.files
        assert MODPROBE_CONF not in online.host.files

    def test_offers_toolkit(self, online: Rig):
        result = online.execute("nvidia", "install")
        assert OPTIONAL_INSTALL in online.confirmer.kinds_asked()
        assert "Skipped: nvidia-toolkit install" in result.notes

    def test_toolkit_follow_up_accepted(self, online: Rig):
        host = online.host
        host.pages[SETTINGS.toolkit.list_url] = TOOLKIT_LIST
        assert online.execute("docker", "install").ok
        online.confirmer.answers[OPTIONAL_INSTALL] = True

        result = online.execute("nvidia", "install")
        assert result.ok
        (follow,) = result.follow_ups
        assert (follow.component, follow.action, follow.outcome) == ("nvidia-toolkit", "install", "ok")
        assert result.total_restart.service_restart == ["docker"]

    def test_follow_up_keeps_driver_waiting_for_reboot(self):
        # No GPU on the bus: the fresh driver reads as broken until the hardware shows up
        rig = Rig(FakeHost(), answers={OPTIONAL_INSTALL: True})
        rig.host.pages[SETTINGS.toolkit.list_url] = TOOLKIT_LIST

        result = rig.execute("nvidia", "install")
        assert result.ok
        assert result.presence_after.state == PresenceState.BROKEN
        assert len(rig.shell.commands("/tmp/NVIDIA-Linux-x86_64-570.181.run")) == 1
        assert rig.shell.commands("systemctl").count(["systemctl", "stop", "display-manager"]) == 1
        assert rig.confirmer.kinds_asked().count(PROCEED) == 1

        (follow,) = result.follow_ups
        assert (follow.component, follow.outcome) == ("nvidia-toolkit", "ok")
        assert [d.component for d in follow.dependencies] == ["docker"]

    def test_toolkit_offer_disabled(self, gpu_rig: Rig):
        settings = Settings.model_validate({"nvidia": {"offer_toolkit": False}})
        rig = Rig(gpu_rig.host, settings=settings)
        rig.execute("nvidia", "install")
        assert OPTIONAL_INSTALL not in rig.confirmer.kinds_asked()

    def test_without_gpu_driver_is_broken(self):
        rig = Rig(FakeHost())
        result = rig.execute("nvidia", "install")
        assert result.ok
        assert result.presence_after.state == PresenceState.BROKEN


# ── Uninstall ────────────────────────────────────────────────────────


class TestNvidiaUninstall:
    def test_uninstall(self, installed: Rig):
        installed.host.files[BLACKLIST] = "blacklist nouveau\n"
        result = installed.execute("nvidia", "uninstall")
        host, shell = installed.host, installed.shell

        assert result.ok
        assert result.presence_after.state == PresenceState.ABSENT
        assert shell.ran("/usr/bin/nvidia-uninstall", "--silent")
        assert shell.ran("dkms", "remove", "-m", "nvidia", "-v", "570.195.03", "--all")
        assert shell.ran("apt", "purge", "-y", DRIVER_PACKAGES)
        assert BLACKLIST not in host.files
        assert MODPROBE_CONF not in host.files
        assert result.restart.reboot_required

    def test_uses_installer_when_uninstaller_missing(self, installed: Rig):
        installed.host.files.pop("/usr/bin/nvidia-uninstall")
        installed.execute("nvidia", "uninstall")
        assert installed.shell.ran(INSTALLER, "--uninstall", "--silent")
        assert INSTALLER not in installed.host.files

    def test_explicit_version(self, installed: Rig):
        installed.execute("nvidia", "uninstall", version="550.127.05")
        assert installed.shell.ran("dkms", "remove", "-m", "nvidia", "-v", "550.127.05", "--all")

    def test_config_only(self, gpu_rig: Rig):
        gpu_rig.host.files[MODPROBE_CONF] = "options nvidia-drm modeset=1\n"
        result = gpu_rig.execute("nvidia", "uninstall")
        assert result.ok
        assert not gpu_rig.shell.ran("dkms")
        assert MODPROBE_CONF not in gpu_rig.host.files

    def test_offers_toolkit_removal(self, installed: Rig):
        installed.host.packages["nvidia-container-toolkit"] = "1.17.8-1"
        result = installed.execute("nvidia", "uninstall")
        assert ("optional_install", "Also uninstall the NVIDIA Container Toolkit?") in installed.confirmer.asked
        assert "Skipped: nvidia-toolkit uninstall" in result.notes

    @pytest.fixture
    def with_toolkit(self, installed: Rig) -> Rig:
        installed.host.pages[SETTINGS.toolkit.list_url] = TOOLKIT_LIST
        assert installed.execute("nvidia-toolkit", "install", with_deps=True).ok
        installed.shell.calls.clear()
        installed.confirmer.asked.clear()
        return installed

    def test_declined_toolkit_removal_leaves_toolkit_installed(self, with_toolkit: Rig):
        host = with_toolkit.host
        result = with_toolkit.execute("nvidia", "uninstall")

        assert result.ok
        assert with_toolkit.presence("nvidia").state == PresenceState.ABSENT
        assert with_toolkit.presence("nvidia-toolkit").state == PresenceState.INSTALLED
        assert with_toolkit.presence("docker").state == PresenceState.INSTALLED
        assert "nvidia-container-toolkit" in host.packages
        assert runtime_configured(host.files[SETTINGS.toolkit.daemon_json])

    def test_accepted_toolkit_removal_is_complete(self, with_toolkit: Rig):
        with_toolkit.confirmer.answers[OPTIONAL_INSTALL] = True
        result = with_toolkit.execute("nvidia", "uninstall")

        (follow,) = result.follow_ups
        assert (follow.component, follow.action, follow.outcome) == ("nvidia-toolkit", "uninstall", "ok")
        assert with_toolkit.presence("nvidia-toolkit").state == PresenceState.ABSENT
        assert with_toolkit.presence("docker").state == PresenceState.INSTALLED
        assert not runtime_configured(with_toolkit.host.files.get(SETTINGS.toolkit.daemon_json))


# ── Rebuild and version ──────────────────────────────────────────────


class TestNvidiaRebuild:
    def test_rebuild(self, installed: Rig):
        installed.host.kernel = "6.1.0-29-amd64"
        result = installed.execute("nvidia", "rebuild")
        assert result.ok
        assert installed.shell.ran(
            "dkms", "install", "--force", "-m", "nvidia", "-v", "570.195.03", "-k", "6.1.0-29-amd64"
        )
        assert not installed.shell.ran("nvidia-ctk")
        assert result.restart.reboot_required
        assert result.restart.service_restart == []

    def test_rebuild_reconfigures_docker_runtime(self, installed: Rig):
        installed.host.packages["nvidia-container-toolkit"] = "1.17.8-1"
        result = installed.execute("nvidia", "rebuild")
        assert installed.shell.ran("nvidia-ctk", "runtime", "configure", "--runtime=docker")
        assert result.restart.service_restart == ["docker"]

    def test_rebuild_without_driver(self, gpu_rig: Rig):
        assert gpu_rig.execute("nvidia", "rebuild").error_kind == "missing_precondition"


class TestNvidiaVersion:
    def test_version_is_read_only(self, installed: Rig):
        installed.host.uid = 1000
        result = installed.execute("nvidia", "version")
        assert result.ok
        assert result.details == {
            "installed": "570.195.03",
            "latest": "570.195.03",
            "latest_source": "nvidia.com",
        }
        assert result.presence_after is None
        assert installed.shell.calls == []

    def test_version_offline(self, gpu_rig: Rig):
        result = gpu_rig.execute("nvidia", "version")
        assert result.details["installed"] is None
        assert result.details["latest"] == "570.181"
        assert result.details["latest_source"] == "fallback"
