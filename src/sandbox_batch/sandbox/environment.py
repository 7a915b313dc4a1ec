"""Best-effort detection of the host execution environment."""

from __future__ import annotations

import os
import shutil
import subprocess
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Final

CONTAINER_SENTINEL_PATH: Final[Path] = Path("/.dockerenv")
CGROUP_PATH: Final[Path] = Path("/proc/1/cgroup")
CGROUP_MARKERS: Final[tuple[str, ...]] = ("docker", "kubepods")
CONTAINER_ENV_VARS: Final[tuple[str, ...]] = ("DOCKER_CONTAINER", "DOCKER_ENV")

RUNTIME_NOT_RUNNING_MESSAGES: Final[dict[str, str]] = {
    "docker": "Docker is not running. Please start Docker and try again.",
    "podman": "Podman is not running. Please start Podman and try again.",
}

CommandRunner = Callable[..., "subprocess.CompletedProcess[str]"]


@dataclass(frozen=True, slots=True)
class ContainerDetection:
    """Detection verdict plus the check that produced it (``None`` when negative)."""

    in_container: bool
    indicator: str | None = None

    def __bool__(self) -> bool:
        return self.in_container


def detect_container(
    *,
    sentinel_path: Path = CONTAINER_SENTINEL_PATH,
    cgroup_path: Path = CGROUP_PATH,
    environ: Mapping[str, str] | None = None,
) -> ContainerDetection:
    """Decide whether this process already runs inside a container.

    Checks run in order and the first positive one wins: sentinel file, cgroup
    markers, then environment variables. Unreadable files are inconclusive and
    fall through to the next check; nothing here raises.
    """

    try:
        if sentinel_path.exists():
            return ContainerDetection(True, f"path:{sentinel_path}")
    except OSError:
        pass

    try:
        cgroup_text = cgroup_path.read_text(encoding="utf-8", errors="ignore")
    except OSError:
        cgroup_text = ""
    for marker in CGROUP_MARKERS:
        if marker in cgroup_text:
            return ContainerDetection(True, f"cgroup:{marker}")

    env = os.environ if environ is None else environ
    for name in CONTAINER_ENV_VARS:
        if env.get(name):
            return ContainerDetection(True, f"env:{name}")

    return ContainerDetection(False)


def is_running_in_container(
    *,
    sentinel_path: Path = CONTAINER_SENTINEL_PATH,
    cgroup_path: Path = CGROUP_PATH,
    environ: Mapping[str, str] | None = None,
) -> bool:
    detection = detect_container(
        sentinel_path=sentinel_path, cgroup_path=cgroup_path, environ=environ
    )
    return detection.in_container


def is_runtime_available(
    runtime: str = "docker",
    *,
    runner: CommandRunner = subprocess.run,
    timeout_seconds: float = 15.0,
) -> bool:
    """Return whether ``<runtime> info`` answers, i.e. the daemon is reachable."""

    if runner is subprocess.run and shutil.which(runtime) is None:
        return False
    command: Sequence[str] = (runtime, "info")
    try:
        completed = runner(
            list(command),
            check=False,
            capture_output=True,
            text=True,
            timeout=timeout_seconds,
        )
    except (OSError, subprocess.SubprocessError):
        return False
    return completed.returncode == 0


def runtime_not_running_message(runtime: str) -> str:
    return RUNTIME_NOT_RUNNING_MESSAGES.get(
        runtime, f"{runtime} is not running. Please start it and try again."
    )


__all__ = [
    "CGROUP_MARKERS",
    "CGROUP_PATH",
    "CONTAINER_ENV_VARS",
    "CONTAINER_SENTINEL_PATH",
    "ContainerDetection",
    "detect_container",
    "is_running_in_container",
    "is_runtime_available",
    "runtime_not_running_message",
]
