"""Environment detector and runtime availability checks."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from sandbox_batch.sandbox.environment import (
    detect_container,
    is_running_in_container,
    is_runtime_available,
    runtime_not_running_message,
)


def _paths(tmp_path: Path) -> tuple[Path, Path]:
    return tmp_path / ".dockerenv", tmp_path / "cgroup"


def test_sentinel_file_wins_first(tmp_path: Path) -> None:
    sentinel, cgroup = _paths(tmp_path)
    sentinel.write_text("", encoding="utf-8")
    cgroup.write_text("0::/kubepods/besteffort\n", encoding="utf-8")

    detection = detect_container(sentinel_path=sentinel, cgroup_path=cgroup, environ={})

    assert detection.in_container is True
    assert detection.indicator == f"path:{sentinel}"


@pytest.mark.parametrize("marker", ["docker", "kubepods"])
def test_cgroup_markers_are_detected(tmp_path: Path, marker: str) -> None:
    sentinel, cgroup = _paths(tmp_path)
    cgroup.write_text(f"12:cpu:/{marker}/abc123\n", encoding="utf-8")

    detection = detect_container(sentinel_path=sentinel, cgroup_path=cgroup, environ={})

    assert detection
    assert detection.indicator == f"cgroup:{marker}"


@pytest.mark.parametrize("name", ["DOCKER_CONTAINER", "DOCKER_ENV"])
def test_environment_variables_are_last_resort(tmp_path: Path, name: str) -> None:
    sentinel, cgroup = _paths(tmp_path)
    cgroup.write_text("0::/user.slice\n", encoding="utf-8")

    detection = detect_container(sentinel_path=sentinel, cgroup_path=cgroup, environ={name: "1"})

    assert detection.indicator == f"env:{name}"


def test_empty_environment_value_does_not_count(tmp_path: Path) -> None:
    sentinel, cgroup = _paths(tmp_path)
    assert not is_running_in_container(
        sentinel_path=sentinel, cgroup_path=cgroup, environ={"DOCKER_ENV": ""}
    )


def test_missing_and_unreadable_files_are_inconclusive(tmp_path: Path) -> None:
    sentinel, _ = _paths(tmp_path)
    # A directory in place of the cgroup file raises on read; that is not fatal.
    cgroup_dir = tmp_path / "cgroup-dir"
    cgroup_dir.mkdir()

    detection = detect_container(sentinel_path=sentinel, cgroup_path=cgroup_dir, environ={})
    assert detection.in_container is False
    assert (
        detect_container(
            sentinel_path=sentinel, cgroup_path=cgroup_dir, environ={"DOCKER_CONTAINER": "yes"}
        ).indicator
        == "env:DOCKER_CONTAINER"
    )


def test_runtime_available_when_info_succeeds() -> None:
    calls: list[list[str]] = []

    def runner(argv: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        calls.append(argv)
        return subprocess.CompletedProcess(argv, 0, stdout="ok", stderr="")

    assert is_runtime_available("docker", runner=runner) is True
    assert calls == [["docker", "info"]]


def test_runtime_unavailable_on_nonzero_exit_or_spawn_failure() -> None:
    def failing(argv: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        return subprocess.CompletedProcess(argv, 1, stdout="", stderr="Cannot connect")

    def missing(argv: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        raise FileNotFoundError(argv[0])

    def hung(argv: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        raise subprocess.TimeoutExpired(argv, 15)

    assert is_runtime_available("docker", runner=failing) is False
    assert is_runtime_available("docker", runner=missing) is False
    assert is_runtime_available("podman", runner=hung) is False


def test_runtime_not_running_message_for_docker() -> None:
    assert (
        runtime_not_running_message("docker")
        == "Docker is not running. Please start Docker and try again."
    )
    assert "podman" in runtime_not_running_message("podman").lower()
