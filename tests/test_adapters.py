"""
Tests for the adapter registry and the shell and filesystem adapters.
"""

import json
from pathlib import Path

from hostctl.adapters import default_registry
from hostctl.adapters.base import Adapter, ExecutionContext
from hostctl.adapters.registry import AdapterRegistry
from hostctl.adapters.shell.command import ShellCommandAdapter
from hostctl.adapters.shell.filesystem import FilesystemAdapter, remove_json_key
from hostctl.core.models.action import Action, Receipt


def _shell(params: dict, action_id: str = "step-1") -> ExecutionContext:
    return ExecutionContext(action=Action(id=action_id, adapter="shell", params=params))


def _fs(params: dict, action_id: str = "fs-1") -> ExecutionContext:
    return ExecutionContext(action=Action(id=action_id, adapter="filesystem", params=params))


class RecordingAdapter(Adapter):
    """Succeeds (or raises) and remembers what it was asked to do."""

    def __init__(self, name: str = "test", explode_in: str = ""):
        self._name = name
        self._explode_in = explode_in
        self.executed: list[str] = []

    @property
    def name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        if self._explode_in == "validate":
            raise RuntimeError("validator crashed")
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        if self._explode_in == "execute":
            raise RuntimeError("adapter crashed")
        self.executed.append(context.action.id)
        return Receipt.success(adapter=self._name, action_id=context.action.id)


# ── Registry Tests ──────────────────────────────────────────────────


class TestAdapterRegistry:
    def test_register_and_get(self):
        registry = AdapterRegistry()
        adapter = RecordingAdapter()
        registry.register(adapter)
        assert registry.get("test") is adapter

    def test_execute_sets_duration(self):
        registry = AdapterRegistry()
        adapter = RecordingAdapter()
        registry.register(adapter)
        receipt = registry.execute_action(Action(id="op", adapter="test"))
        assert receipt.ok
        assert adapter.executed == ["op"]
        assert receipt.duration_ms >= 0

    def test_adapter_exception_becomes_receipt(self):
        registry = AdapterRegistry()
        registry.register(RecordingAdapter(explode_in="execute"))
        receipt = registry.execute_action(Action(id="op", adapter="test"))
        assert receipt.failed
        assert receipt.error == "Unexpected error: adapter crashed"

    def test_validator_exception_becomes_receipt(self):
        registry = AdapterRegistry()
        registry.register(RecordingAdapter(explode_in="validate"))
        receipt = registry.execute_action(Action(id="op", adapter="test"))
        assert receipt.failed
        assert receipt.error == "Validation error: validator crashed"

    def test_missing_adapter_fails(self):
        receipt = AdapterRegistry().execute_action(Action(id="test", adapter="nonexistent"))
        assert receipt.failed
        assert "No adapter registered" in receipt.error

    def test_validation_failure_is_a_receipt(self):
        registry = AdapterRegistry()
        registry.register(ShellCommandAdapter())
        receipt = registry.execute_action(Action(id="bad", adapter="shell", params={}))
        assert receipt.failed
        assert "Validation failed" in receipt.error

    def test_dry_run_skips_execution(self):
        registry = AdapterRegistry()
        adapter = RecordingAdapter()
        registry.register(adapter)
        receipt = registry.execute_action(Action(id="op", name="apt-get update", adapter="test"), dry_run=True)
        assert receipt.status == "skipped"
        assert "[dry-run] Would execute apt-get update" in receipt.output
        assert adapter.executed == []

    def test_default_registry(self):
        registry = default_registry()
        assert isinstance(registry.get("shell"), ShellCommandAdapter)
        assert isinstance(registry.get("filesystem"), FilesystemAdapter)


# ── Shell Command Adapter Tests ─────────────────────────────────────


class TestShellCommandAdapter:
    def test_validate_missing_argv(self):
        valid, msg = ShellCommandAdapter().validate(_shell({}))
        assert not valid
        assert "argv" in msg

    def test_validate_rejects_string_command(self):
        valid, _msg = ShellCommandAdapter().validate(_shell({"argv": "echo hi"}))
        assert not valid

    def test_validate_bad_cwd(self):
        valid, msg = ShellCommandAdapter().validate(_shell({"argv": ["true"], "cwd": "/nonexistent/path"}))
        assert not valid
        assert "does not exist" in msg

    def test_execute_echo(self, tmp_path: Path):
        receipt = ShellCommandAdapter().execute(
            _shell({"argv": ["echo", "hello world"], "cwd": str(tmp_path)})
        )
        assert receipt.ok
        assert receipt.output == "hello world"
        assert receipt.return_code == 0

    def test_argv_is_not_shell_interpreted(self):
        receipt = ShellCommandAdapter().execute(_shell({"argv": ["echo", "$HOME; rm -rf /"]}))
        assert receipt.output == "$HOME; rm -rf /"

    def test_execute_failure_keeps_stderr_and_code(self):
        receipt = ShellCommandAdapter().execute(
            _shell({"argv": ["sh", "-c", "echo broken >&2; exit 3"]})
        )
        assert receipt.failed
        assert receipt.return_code == 3
        assert receipt.metadata["error_kind"] == "exit"
        assert "broken" in receipt.error

    def test_missing_tool(self):
        receipt = ShellCommandAdapter().execute(_shell({"argv": ["hostctl-no-such-tool-xyz"]}))
        assert receipt.failed
        assert receipt.metadata["error_kind"] == "tool_not_found"
        assert receipt.metadata["tool"] == "hostctl-no-such-tool-xyz"

    def test_input_is_piped(self):
        receipt = ShellCommandAdapter().execute(_shell({"argv": ["cat"], "input": "piped text"}))
        assert receipt.output == "piped text"

    def test_env_is_added(self):
        receipt = ShellCommandAdapter().execute(
            _shell({"argv": ["sh", "-c", "echo $HOSTCTL_TEST_VAR"], "env": {"HOSTCTL_TEST_VAR": "42"}})
        )
        assert receipt.output == "42"

    def test_timeout(self):
        ctx = ExecutionContext(
            action=Action(id="slow", adapter="shell", params={"argv": ["sleep", "5"]}),
            timeout=1,
        )
        receipt = ShellCommandAdapter().execute(ctx)
        assert receipt.failed
        assert receipt.metadata["error_kind"] == "timeout"


# ── Filesystem Adapter Tests ────────────────────────────────────────


class TestFilesystemAdapter:
    def test_validate_relative_path(self):
        valid, msg = FilesystemAdapter().validate(_fs({"operation": "mkdir", "path": "relative/dir"}))
        assert not valid
        assert "absolute" in msg

    def test_validate_unknown_operation(self):
        valid, msg = FilesystemAdapter().validate(_fs({"operation": "explode", "path": "/tmp/x"}))
        assert not valid
        assert "Unknown operation" in msg

    def test_validate_bad_mode(self):
        valid, msg = FilesystemAdapter().validate(
            _fs({"operation": "chmod", "path": "/tmp/x", "mode": "rwx"})
        )
        assert not valid
        assert "Invalid mode" in msg

    def test_write_with_mode(self, tmp_path: Path):
        target = tmp_path / "etc" / "modprobe.d" / "nvidia.conf"
        receipt = FilesystemAdapter().execute(
            _fs({"operation": "write", "path": str(target), "content": "options x\n", "mode": "0644"})
        )
        assert receipt.ok
        assert target.read_text() == "options x\n"
        assert target.stat().st_mode & 0o777 == 0o644

    def test_remove_file_dir_and_glob(self, tmp_path: Path):
        (tmp_path / "gasket-1.0").mkdir()
        (tmp_path / "gasket-1.0" / "Makefile").write_text("all:")
        (tmp_path / "gasket-1.1").mkdir()
        (tmp_path / "keep").write_text("x")

        receipt = FilesystemAdapter().execute(
            _fs({"operation": "remove", "path": str(tmp_path / "gasket-*")})
        )
        assert receipt.ok
        assert len(receipt.metadata["removed"]) == 2
        assert (tmp_path / "keep").exists()
        assert not (tmp_path / "gasket-1.0").exists()

    def test_remove_missing_is_ok(self, tmp_path: Path):
        receipt = FilesystemAdapter().execute(_fs({"operation": "remove", "path": str(tmp_path / "nope")}))
        assert receipt.ok
        assert receipt.metadata["removed"] == []

    def test_chmod_missing_fails(self, tmp_path: Path):
        receipt = FilesystemAdapter().execute(
            _fs({"operation": "chmod", "path": str(tmp_path / "nope"), "mode": 0o644})
        )
        assert receipt.failed
        assert "Filesystem error" in receipt.error

    def test_json_remove_keys(self, tmp_path: Path):
        daemon = tmp_path / "daemon.json"
        daemon.write_text(json.dumps({
            "runtimes": {"nvidia": {"path": "nvidia-container-runtime", "args": []}},
            "default-runtime": "nvidia",
            "log-driver": "journald",
        }))
        receipt = FilesystemAdapter().execute(_fs({
            "operation": "json_remove_keys",
            "path": str(daemon),
            "keys": ["runtimes.nvidia", "default-runtime=nvidia"],
        }))
        assert receipt.ok
        assert json.loads(daemon.read_text()) == {"log-driver": "journald"}

    def test_json_remove_keys_missing_file(self, tmp_path: Path):
        receipt = FilesystemAdapter().execute(_fs({
            "operation": "json_remove_keys",
            "path": str(tmp_path / "daemon.json"),
            "keys": ["runtimes.nvidia"],
        }))
        assert receipt.ok
        assert not (tmp_path / "daemon.json").exists()


class TestRemoveJsonKey:
    def test_value_mismatch_keeps_key(self):
        data = {"default-runtime": "runc"}
        assert not remove_json_key(data, "default-runtime=nvidia")
        assert data == {"default-runtime": "runc"}

    def test_keeps_non_empty_parent(self):
        data = {"runtimes": {"nvidia": {}, "crun": {"path": "/usr/bin/crun"}}}
        assert remove_json_key(data, "runtimes.nvidia")
        assert data == {"runtimes": {"crun": {"path": "/usr/bin/crun"}}}

    def test_missing_path(self):
        assert not remove_json_key({"runtimes": "x"}, "runtimes.nvidia")
