"""
CLI contracts: exit codes, summary output, and result sink side effects.

The execution capability is replaced with an in-process fake so the run path is
exercised end to end without network access or a container runtime.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest
import structlog

from sandbox_batch.main import ExitCode, cli_entrypoint
from sandbox_batch.persistence import iter_records
from sandbox_batch.providers import ExecutionError, InitError
from sandbox_batch.ui import cli as cli_module

pytestmark = pytest.mark.integration

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = PROJECT_ROOT / "src"


class _FakeCapability:
    name = "fake"

    def __init__(self, *, init_error: BaseException | None = None) -> None:
        self._init_error = init_error
        self.initialized = False
        self.payloads: list[str] = []

    async def initialize(self) -> None:
        if self._init_error is not None:
            raise self._init_error
        self.initialized = True

    async def execute(self, payload: str) -> dict[str, str]:
        self.payloads.append(payload)
        if "boom" in payload:
            raise ExecutionError("model refused", capability=self.name)
        return {"text": payload.upper()}


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    for name in list(os.environ):
        if name.startswith("SANDBOX_BATCH_"):
            monkeypatch.delenv(name)


def _install(monkeypatch: pytest.MonkeyPatch, capability: _FakeCapability) -> None:
    monkeypatch.setattr(cli_module, "build_capability", lambda config: capability)


def _write_tasks(path: Path, entries: list[dict[str, object]]) -> Path:
    path.write_text(json.dumps(entries), encoding="utf-8")
    return path


def _run_args(tmp_path: Path, tasks: Path, *extra: str) -> list[str]:
    return [
        "run",
        "--tasks",
        str(tasks),
        "--output",
        str(tmp_path / "out" / "results.jsonl"),
        "--log-dir",
        str(tmp_path / "logs"),
        *extra,
    ]


def test_run_writes_one_record_per_task_and_prints_summary(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    capability = _FakeCapability()
    _install(monkeypatch, capability)
    tasks = _write_tasks(
        tmp_path / "tasks.json",
        [{"id": "a", "prompt": "one"}, {"id": "b", "prompt": "boom"}, {"id": "c", "prompt": "two"}],
    )

    exit_code = cli_entrypoint(_run_args(tmp_path, tasks, "--batch-size", "2"))

    assert exit_code == ExitCode.SUCCESS
    assert capability.initialized
    records = list(iter_records(tmp_path / "out" / "results.jsonl"))
    assert sorted(record["id"] for record in records) == ["a", "b", "c"]
    by_id = {record["id"]: record for record in records}
    assert by_id["a"]["response"] == {"text": "ONE"}
    assert by_id["b"]["error"] == "fake: model refused"
    assert by_id["b"]["payload"] == "boom"

    out = capsys.readouterr().out
    assert "Run ID: " in out
    assert "total: 3" in out
    assert "failed: 1" in out
    assert "batches: 2" in out

    log_line = next(line for line in out.splitlines() if line.startswith("log: "))
    log_path = Path(log_line.removeprefix("log: "))
    assert log_path.is_file()
    assert log_path.is_relative_to(tmp_path.resolve() / "logs")
    events = [json.loads(line)["message"] for line in log_path.read_text().splitlines()]
    assert "batch_started" in events
    assert "task_failed" in events


def test_fail_on_task_error_maps_failures_to_exit_one(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _install(monkeypatch, _FakeCapability())
    tasks = _write_tasks(tmp_path / "tasks.json", [{"id": "a", "prompt": "boom"}])

    exit_code = cli_entrypoint(_run_args(tmp_path, tasks, "--fail-on-task-error"))

    assert exit_code == ExitCode.TASK_FAILURES


def test_invalid_task_list_exits_with_config_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    capability = _FakeCapability()
    _install(monkeypatch, capability)
    tasks = tmp_path / "tasks.json"
    tasks.write_text('{"id": "a"}', encoding="utf-8")

    exit_code = cli_entrypoint(_run_args(tmp_path, tasks))

    assert exit_code == ExitCode.CONFIG_ERROR
    assert "must be an array" in capsys.readouterr().err
    assert not capability.initialized
    assert not (tmp_path / "out" / "results.jsonl").exists()


def test_missing_task_list_exits_with_config_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    _install(monkeypatch, _FakeCapability())

    exit_code = cli_entrypoint(_run_args(tmp_path, tmp_path / "absent.json"))

    assert exit_code == ExitCode.CONFIG_ERROR
    assert "task list not found" in capsys.readouterr().err


def test_init_error_exits_with_init_code_and_writes_nothing(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    _install(
        monkeypatch,
        _FakeCapability(init_error=InitError("OPENAI_API_KEY is not set", capability="fake")),
    )
    tasks = _write_tasks(tmp_path / "tasks.json", [{"id": "a", "prompt": "one"}])

    exit_code = cli_entrypoint(_run_args(tmp_path, tasks))

    assert exit_code == ExitCode.INIT_ERROR
    assert "OPENAI_API_KEY is not set" in capsys.readouterr().err
    assert not (tmp_path / "out" / "results.jsonl").exists()


def test_unexpected_error_is_internal_and_hides_traceback_without_verbose(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    _install(monkeypatch, _FakeCapability(init_error=RuntimeError("kaboom")))
    tasks = _write_tasks(tmp_path / "tasks.json", [{"id": "a", "prompt": "one"}])

    exit_code = cli_entrypoint(_run_args(tmp_path, tasks))

    assert exit_code == ExitCode.INTERNAL_ERROR
    err = capsys.readouterr().err
    assert "internal error: kaboom" in err
    assert "Traceback" not in err


def test_unexpected_error_prints_traceback_with_verbose(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    _install(monkeypatch, _FakeCapability(init_error=RuntimeError("kaboom")))
    tasks = _write_tasks(tmp_path / "tasks.json", [{"id": "a", "prompt": "one"}])

    exit_code = cli_entrypoint(_run_args(tmp_path, tasks, "--verbose"))

    assert exit_code == ExitCode.INTERNAL_ERROR
    assert "Traceback" in capsys.readouterr().err


def test_plain_value_error_is_internal_not_a_config_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    _install(monkeypatch, _FakeCapability(init_error=ValueError("invariant broken")))
    tasks = _write_tasks(tmp_path / "tasks.json", [{"id": "a", "prompt": "one"}])

    exit_code = cli_entrypoint(_run_args(tmp_path, tasks))

    assert exit_code == ExitCode.INTERNAL_ERROR
    assert "internal error: invariant broken" in capsys.readouterr().err


def test_invalid_batch_size_is_a_config_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _install(monkeypatch, _FakeCapability())
    tasks = _write_tasks(tmp_path / "tasks.json", [{"id": "a", "prompt": "one"}])

    assert cli_entrypoint(_run_args(tmp_path, tasks, "--batch-size", "0")) == ExitCode.CONFIG_ERROR


def test_missing_explicit_config_file_is_a_config_error(tmp_path: Path) -> None:
    exit_code = cli_entrypoint(["config", "--config", str(tmp_path / "missing.toml")])

    assert exit_code == ExitCode.CONFIG_ERROR


def test_unknown_command_is_a_usage_error() -> None:
    assert cli_entrypoint(["explode"]) == ExitCode.CONFIG_ERROR


def test_limits_json_reports_resolved_flags(capsys: pytest.CaptureFixture[str]) -> None:
    # Fresh-process structlog state: component debug events must stay off stdout.
    structlog.reset_defaults()

    exit_code = cli_entrypoint(["limits", "alfonsograziano/node-chartjs-canvas:latest", "--json"])

    assert exit_code == ExitCode.SUCCESS
    out = capsys.readouterr().out
    assert len(out.splitlines()) == 1
    payload = json.loads(out)
    assert payload == {
        "command": "limits",
        "cpu_flag": "--cpus 2",
        "image": "alfonsograziano/node-chartjs-canvas:latest",
        "image_valid": True,
        "mem_flag": "--memory 2g",
    }


def test_limits_overrides_win_and_invalid_image_is_flagged(
    capsys: pytest.CaptureFixture[str],
) -> None:
    exit_code = cli_entrypoint(["limits", "node:lts-slim;rm -rf /", "--memory", "4g"])

    assert exit_code == ExitCode.SUCCESS
    out = capsys.readouterr().out
    assert "Memory flag: --memory 4g" in out
    assert "Warning: image name would be rejected" in out


def test_limits_rejects_malformed_override() -> None:
    assert cli_entrypoint(["limits", "node:lts-slim", "--cpus", "lots"]) == ExitCode.CONFIG_ERROR


def test_images_lists_suggestions(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint(["images"]) == ExitCode.SUCCESS

    out = capsys.readouterr().out
    assert "- **node:lts-slim**:" in out
    assert "mcr.microsoft.com/playwright" in out


def test_config_json_redacts_and_reflects_file_values(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / "sandbox_batch.toml").write_text(
        '[run]\nbatch_size = 3\n\n[provider]\nmodel = "gpt-test"\n', encoding="utf-8"
    )

    assert cli_entrypoint(["config", "--json"]) == ExitCode.SUCCESS

    payload = json.loads(capsys.readouterr().out)
    config = payload["config"]
    assert config["run"]["batch_size"] == 3
    assert config["provider"]["model"] == "gpt-test"
    assert config["run"]["output_path"] == (tmp_path.resolve() / "evalResults.jsonl").as_posix()


def test_config_text_output_is_sorted_indented_json(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint(["config"]) == ExitCode.SUCCESS

    out = capsys.readouterr().out
    assert out.startswith("{\n  \"container\": {")
    assert json.loads(out)["run"]["batch_size"] == 5


def test_doctor_always_succeeds_and_reports_checks(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(cli_module, "is_runtime_available", lambda runtime: False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    assert cli_entrypoint(["doctor", "--json"]) == ExitCode.SUCCESS

    checks = {item["name"]: item for item in json.loads(capsys.readouterr().out)["checks"]}
    assert checks["config"]["status"] == "ok"
    assert checks["runtime:docker"]["status"] == "fail"
    assert checks["credentials"]["status"] == "fail"


def test_module_entrypoint_runs_as_subprocess(tmp_path: Path) -> None:
    env = os.environ.copy()
    existing = env.get("PYTHONPATH")
    env["PYTHONPATH"] = str(SRC_PATH) if not existing else f"{SRC_PATH}{os.pathsep}{existing}"
    completed = subprocess.run(
        [sys.executable, "-m", "sandbox_batch", "images"],
        cwd=tmp_path,
        env=env,
        capture_output=True,
        text=True,
        check=False,
        timeout=60,
    )

    assert completed.returncode == 0, completed.stderr
    assert "node:lts-slim" in completed.stdout
