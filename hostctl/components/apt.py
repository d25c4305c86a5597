"""
apt helpers shared by the components — packages, keys, sources.

All steps go through the StepSession. Piped shell one-liners from the
usual install guides are split into separate commands plus Python-side
text handling.
"""

from __future__ import annotations

import posixpath
import re

from hostctl.core.engine.session import StepSession

KEY_DOWNLOAD_DIR = "/tmp"


def update(session: StepSession, check: bool = True) -> None:
    session.run(["apt-get", "update"], check=check)


def install(session: StepSession, packages: list[str]) -> None:
    session.run(["apt-get", "install", "-y", *packages])


def purge(session: StepSession, packages: list[str]) -> None:
    """Purge packages, tolerating failure (some may not be installed)."""
    session.run(["apt-get", "purge", "-y", *packages], check=False)


def autoremove(session: StepSession, check: bool = False) -> None:
    session.run(["apt-get", "autoremove", "-y"], check=check)


def add_signing_key(session: StepSession, url: str, keyring: str, dearmor: bool = True) -> None:
    """Download a repository signing key into ``keyring``.

    With ``dearmor`` the ASCII key is converted to a binary keyring
    (``curl | gpg --dearmor``); otherwise it is stored as-is and made
    world-readable.
    """
    session.mkdir(posixpath.dirname(keyring), mode=0o755)

    if not dearmor:
        session.run(["curl", "-fsSL", "-o", keyring, url], creates=keyring)
        session.chmod(keyring, 0o644)
        return

    download = posixpath.join(KEY_DOWNLOAD_DIR, posixpath.basename(keyring) + ".asc")
    session.run(["curl", "-fsSL", "-o", download, url], creates=download)
    session.run(
        ["gpg", "--batch", "--yes", "--dearmor", "-o", keyring, download],
        creates=keyring,
    )
    session.remove(download, check=False)


def source_line(uri: str, suite: str, components: str, keyring: str, arch: str | None = None) -> str:
    """One-line apt source with ``signed-by`` (and optional ``arch``)."""
    options = f"signed-by={keyring}"
    if arch:
        options = f"arch={arch} {options}"
    return f"deb [{options}] {uri} {suite} {components}\n"


def add_signed_by(list_text: str, keyring: str) -> str:
    """Add ``signed-by`` to every plain ``deb https://`` line of a sources list."""
    return re.sub(
        r"^deb https://",
        f"deb [signed-by={keyring}] https://",
        list_text,
        flags=re.MULTILINE,
    )
