"""
Settings model — hostctl.yml schema.

Every field has a default matching the stock Debian layout, so an
absent config file is a valid configuration.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class CoralSettings(BaseModel):
    """Coral Edge TPU PCIe driver (gasket-dkms + libedgetpu)."""

    pci_id: str = "1ac1:089a"
    keyring: str = "/etc/apt/keyrings/coral-edgetpu.gpg"
    sources: str = "/etc/apt/sources.list.d/coral-edgetpu.list"
    udev_rule: str = "/etc/udev/rules.d/65-apex.rules"
    key_url: str = "https://packages.cloud.google.com/apt/doc/apt-key.gpg"
    repo_line: str = "https://packages.cloud.google.com/apt coral-edgetpu-stable main"
    driver_repo: str = "https://github.com/google/gasket-driver.git"
    # Kernel 6.13+ fix, not yet merged upstream. Empty string builds master.
    driver_ref: str = "pull/50/head"
    build_dir: str = "/tmp/coral-build"
    dkms_source_glob: str = "/usr/src/gasket-*"
    group: str = "apex"
    library_package: str = "libedgetpu1-std"
    driver_package: str = "gasket-dkms"
    build_packages: list[str] = Field(default_factory=lambda: [
        "curl", "gpg", "dkms", "build-essential", "devscripts", "git",
    ])


class NvidiaSettings(BaseModel):
    """Proprietary NVIDIA driver installed from the vendor .run file."""

    releases_url: str = "https://www.nvidia.com/en-us/drivers/unix/"
    download_base: str = "https://us.download.nvidia.com/XFree86/Linux-x86_64"
    fallback_version: str = "570.181"
    download_dir: str = "/tmp"
    blacklist_conf: str = "/etc/modprobe.d/blacklist-nouveau.conf"
    modprobe_conf: str = "/etc/modprobe.d/nvidia.conf"
    non_free_sources: str = "/etc/apt/sources.list.d/non-free-firmware.list"
    debian_mirror: str = "http://deb.debian.org/debian"
    build_packages: list[str] = Field(default_factory=lambda: [
        "build-essential", "pkg-config", "libglvnd-dev", "firmware-misc-nonfree", "gpg",
    ])
    installer_flags: list[str] = Field(default_factory=lambda: [
        "--silent", "--dkms", "--no-x-check", "--no-nouveau-check", "--disable-nouveau",
    ])
    offer_toolkit: bool = True


class ToolkitSettings(BaseModel):
    """NVIDIA Container Toolkit for Docker GPU support."""

    keyring: str = "/usr/share/keyrings/nvidia-container-toolkit-keyring.gpg"
    sources: str = "/etc/apt/sources.list.d/nvidia-container-toolkit.list"
    gpgkey_url: str = "https://nvidia.github.io/libnvidia-container/gpgkey"
    list_url: str = (
        "https://nvidia.github.io/libnvidia-container/stable/deb/nvidia-container-toolkit.list"
    )
    package: str = "nvidia-container-toolkit"
    daemon_json: str = "/etc/docker/daemon.json"
    cuda_image: str = "nvidia/cuda:12.8.1-base-ubuntu24.04"
    # Runs a container (and may pull an image), so it is opt-in.
    gpu_smoke_test: bool = False


class DockerSettings(BaseModel):
    """Docker CE from Docker's apt repository."""

    keyring: str = "/etc/apt/keyrings/docker.asc"
    sources: str = "/etc/apt/sources.list.d/docker.list"
    gpg_url: str = "https://download.docker.com/linux/debian/gpg"
    repo_url: str = "https://download.docker.com/linux/debian"
    packages: list[str] = Field(default_factory=lambda: [
        "docker-ce", "docker-ce-cli", "containerd.io",
        "docker-buildx-plugin", "docker-compose-plugin",
    ])
    conflicting: list[str] = Field(default_factory=lambda: [
        "docker.io", "docker-doc", "docker-compose", "docker-compose-v2",
        "podman-docker", "containerd", "runc",
    ])
    base_packages: list[str] = Field(default_factory=lambda: [
        "ca-certificates", "curl", "gnupg", "lsb-release",
    ])


class Settings(BaseModel):
    """Root configuration."""

    command_timeout: int = 1800
    probe_timeout: int = 15
    rollback_on_failure: bool = True
    audit_log: str | None = None
    codename: str | None = None      # overrides VERSION_CODENAME detection

    coral: CoralSettings = Field(default_factory=CoralSettings)
    nvidia: NvidiaSettings = Field(default_factory=NvidiaSettings)
    toolkit: ToolkitSettings = Field(default_factory=ToolkitSettings)
    docker: DockerSettings = Field(default_factory=DockerSettings)
