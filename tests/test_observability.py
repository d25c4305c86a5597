"""
Tests for logging configuration.
"""

import logging
from pathlib import Path

import pytest
from click.testing import CliRunner

from hostctl.core.observability.logging_config import setup_logging
from hostctl.main import cli


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:
    def test_default_warning(self):
        setup_logging()
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1

    def test_debug(self):
        setup_logging(level="DEBUG", quiet_third_party=False)
        assert logging.getLogger().level == logging.DEBUG

    def test_invalid_level_falls_back(self):
        setup_logging(level="CHATTY")
        assert logging.getLogger().level == logging.WARNING

    def test_repeated_setup_does_not_stack_handlers(self):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_file_handler_keeps_debug_trace(self, tmp_path: Path):
        log_file = tmp_path / "hostctl.log"
        setup_logging(level="WARNING", log_file=str(log_file), log_file_level="DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2

        logging.getLogger("hostctl.test").debug("apt-get install -y dkms")
        for handler in root.handlers:
            handler.flush()
        assert "apt-get install -y dkms" in log_file.read_text()

    def test_third_party_quieted(self):
        setup_logging(level="INFO")
        assert logging.getLogger("urllib3").level == logging.WARNING


class TestCliLogLevel:
    def test_env_var(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("HOSTCTL_LOG_LEVEL", "INFO")
        CliRunner().invoke(cli, ["components", "--json"])
        assert logging.getLogger().level == logging.INFO

    def test_flag_beats_env_var(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("HOSTCTL_LOG_LEVEL", "INFO")
        CliRunner().invoke(cli, ["--debug", "components", "--json"])
        assert logging.getLogger().level == logging.DEBUG

    def test_quiet(self):
        CliRunner().invoke(cli, ["-q", "components"])
        assert logging.getLogger().level == logging.ERROR
