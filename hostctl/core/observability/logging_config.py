"""
Logging configuration — one call from the CLI entrypoint.

Console output goes to stderr so ``--json`` stdout stays parseable.
The console format grows with verbosity; the optional file handler
(HOSTCTL_LOG_FILE) always gets the full format, which is where a DEBUG
trace of every apt/dkms/curl command of a long install ends up.
"""

from __future__ import annotations

import logging
import sys

_FULL = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s"

# Console (format, datefmt) by the most verbose level it applies to.
_CONSOLE_FORMATS: list[tuple[int, str, str | None]] = [
    (logging.DEBUG, _FULL, "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    (logging.CRITICAL, "%(message)s", None),
]

_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Libraries that chatter at INFO; kept at WARNING unless debugging
_NOISY_LOGGERS = ("urllib3", "charset_normalizer")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Replace the root logger's handlers with hostctl's.

    Safe to call more than once; handlers never stack. ``log_file_level``
    defaults to ``level``. The root level is the lower of the console and
    file levels so each handler filters for itself.
    """
    console_level = _parse_level(level)
    fmt, datefmt = next(
        (f, d) for threshold, f, d in _CONSOLE_FORMATS if console_level <= threshold
    )
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    handlers: list[logging.Handler] = [console]

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(_parse_level(log_file_level or level))
        file_handler.setFormatter(logging.Formatter(_FULL, datefmt=_FILE_DATEFMT))
        handlers.append(file_handler)

    root = logging.getLogger()
    for old in root.handlers[:]:
        root.removeHandler(old)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(min(h.level for h in handlers))

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def _parse_level(name: str | None) -> int:
    """Level name to number; anything unrecognised means WARNING."""
    value = logging.getLevelName(name.upper()) if name else None
    return value if isinstance(value, int) else logging.WARNING
