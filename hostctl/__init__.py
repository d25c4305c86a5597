"""
hostctl — lifecycle manager for host-level drivers and runtimes.

Installs, rebuilds, inspects and removes the Coral Edge TPU driver,
the NVIDIA GPU driver, the NVIDIA Container Toolkit and Docker CE
on Debian hosts.
"""

__version__ = "0.1.0"
