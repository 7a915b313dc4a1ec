"""Container-backed execution capability.

Every value that reaches the runtime argv has passed a sanitizer first: the
image at ``initialize()``, the generated container name and the shell command
per call. Resource flags come only from :class:`ResourceLimitResolver`. The
argv is handed to the runtime binary directly, never through a host shell.
"""

from __future__ import annotations

import asyncio
import re
import subprocess
import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from sandbox_batch.constants import (
    CONTAINER_RUNTIMES,
    DEFAULT_CONTAINER_RUNTIME,
    DEFAULT_IMAGE,
    DEFAULT_READINESS_INTERVAL_MS,
    DEFAULT_READINESS_TIMEOUT_MS,
)
from sandbox_batch.observability.logging import get_correlation_context
from sandbox_batch.providers.base import ExecutionError, InitError
from sandbox_batch.sandbox.environment import (
    CommandRunner,
    ContainerDetection,
    detect_container,
    is_runtime_available,
    runtime_not_running_message,
)
from sandbox_batch.sandbox.readiness import ReadinessTimeoutError, wait_for_ready
from sandbox_batch.sandbox.resource_limits import ResourceLimitResolver
from sandbox_batch.sandbox.sanitization import (
    ContainerId,
    ImageName,
    ShellCommand,
    sanitize_container_id,
    sanitize_image_name,
    sanitize_shell_command,
)

ReadinessPoller = Callable[[int, int, int], Awaitable[object]]

_NAME_PREFIX = "sbx"
_SLUG_INVALID = re.compile(r"[^a-zA-Z0-9_.-]+")
_SLUG_MAX_LENGTH = 32


@dataclass(frozen=True, slots=True)
class ContainerLauncherConfig:
    runtime: str = DEFAULT_CONTAINER_RUNTIME
    image: str = DEFAULT_IMAGE
    allow_nested: bool = False
    readiness_timeout_ms: int = DEFAULT_READINESS_TIMEOUT_MS
    readiness_interval_ms: int = DEFAULT_READINESS_INTERVAL_MS

    def __post_init__(self) -> None:
        if self.runtime not in CONTAINER_RUNTIMES:
            allowed = ", ".join(CONTAINER_RUNTIMES)
            raise ValueError(f"unsupported runtime {self.runtime!r}; expected one of: {allowed}")
        if self.readiness_timeout_ms <= 0:
            raise ValueError("readiness_timeout_ms must be > 0")
        if self.readiness_interval_ms <= 0:
            raise ValueError("readiness_interval_ms must be > 0")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> ContainerLauncherConfig:
        container = config.get("container", {})
        return cls(
            runtime=container.get("runtime", DEFAULT_CONTAINER_RUNTIME),
            image=container.get("image", DEFAULT_IMAGE),
            allow_nested=bool(container.get("allow_nested", False)),
            readiness_timeout_ms=container.get(
                "readiness_timeout_ms", DEFAULT_READINESS_TIMEOUT_MS
            ),
            readiness_interval_ms=container.get(
                "readiness_interval_ms", DEFAULT_READINESS_INTERVAL_MS
            ),
        )


@dataclass(frozen=True, slots=True)
class ContainerCommandResult:
    """Normalized outcome of one runtime invocation."""

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0


class ContainerLauncher:
    """Run each payload as ``sh -c <payload>`` inside a fresh, resource-limited container."""

    name = "container"

    def __init__(
        self,
        config: ContainerLauncherConfig | None = None,
        resolver: ResourceLimitResolver | None = None,
        *,
        runner: CommandRunner | None = None,
        poller: ReadinessPoller | None = None,
        detector: Callable[[], ContainerDetection] = detect_container,
        runtime_check: Callable[[str], bool] | None = None,
        logger: Any = None,
    ) -> None:
        self._config = config if config is not None else ContainerLauncherConfig()
        self._resolver = resolver if resolver is not None else ResourceLimitResolver()
        self._runner: CommandRunner = runner if runner is not None else subprocess.run
        self._poller = poller if poller is not None else _default_poller
        self._detector = detector
        self._runtime_check = runtime_check
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._image: ImageName | None = None
        self._limit_args: tuple[str, ...] = ()

    @property
    def config(self) -> ContainerLauncherConfig:
        return self._config

    @property
    def image(self) -> ImageName | None:
        return self._image

    @property
    def limit_args(self) -> tuple[str, ...]:
        return self._limit_args

    async def initialize(self) -> None:
        detection = self._detector()
        if detection.in_container and not self._config.allow_nested:
            raise InitError(
                "refusing to launch containers from inside a container "
                f"(detected via {detection.indicator}); set container.allow_nested to override",
                capability=self.name,
            )

        image = sanitize_image_name(self._config.image)
        if image is None:
            raise InitError(f"invalid image name {self._config.image!r}", capability=self.name)

        runtime = self._config.runtime
        if self._runtime_check is not None:
            available = self._runtime_check(runtime)
        else:
            available = await asyncio.to_thread(is_runtime_available, runtime, runner=self._runner)
        if not available:
            raise InitError(runtime_not_running_message(runtime), capability=self.name)

        self._image = image
        self._limit_args = self._resolver.compute_resource_limits(image.value).as_args()
        self._logger.info(
            "capability_initialized",
            capability=self.name,
            runtime=runtime,
            image=image.value,
            limit_args=list(self._limit_args),
        )

    async def execute(self, payload: str) -> dict[str, object]:
        image = self._require_image()
        command = self._require_command(payload)
        container = self._new_container_id()
        argv = (
            self._config.runtime,
            "run",
            "--rm",
            "--name",
            container.value,
            *self._limit_args,
            image.value,
            "sh",
            "-c",
            command.value,
        )
        self._logger.debug("container_run", container=container.value)
        result = await self._run(argv)
        if not result.succeeded:
            raise ExecutionError(
                f"container exited with code {result.returncode}: {result.stderr.strip()}",
                capability=self.name,
                exit_code=result.returncode,
            )
        return {
            "exit_code": result.returncode,
            "stdout": result.stdout,
            "stderr": result.stderr,
            "container": container.value,
        }

    async def execute_service(self, payload: str, port: int) -> dict[str, object]:
        """Start a detached service container, wait for its port, collect logs, remove it."""

        if not 1 <= port <= 65535:
            raise ExecutionError(f"invalid service port {port}", capability=self.name)
        image = self._require_image()
        command = self._require_command(payload)
        container = self._new_container_id()
        argv = (
            self._config.runtime,
            "run",
            "-d",
            "--name",
            container.value,
            "-p",
            f"{port}:{port}",
            *self._limit_args,
            image.value,
            "sh",
            "-c",
            command.value,
        )
        try:
            # A failed detached run can still leave a created container behind.
            started = await self._run(argv)
            if not started.succeeded:
                raise ExecutionError(
                    f"service container failed to start: {started.stderr.strip()}",
                    capability=self.name,
                    exit_code=started.returncode,
                )
            try:
                await self._poller(
                    port,
                    self._config.readiness_timeout_ms,
                    self._config.readiness_interval_ms,
                )
            except ReadinessTimeoutError as exc:
                raise ExecutionError(str(exc), capability=self.name) from exc
            logs = await self._run((self._config.runtime, "logs", container.value))
        finally:
            await self._remove(container)
        return {
            "exit_code": 0,
            "stdout": logs.stdout,
            "stderr": logs.stderr,
            "container": container.value,
            "port": port,
        }

    def _require_image(self) -> ImageName:
        if self._image is None:
            raise ExecutionError("capability used before initialize()", capability=self.name)
        return self._image

    def _require_command(self, payload: str) -> ShellCommand:
        command = sanitize_shell_command(payload)
        if command is None:
            raise ExecutionError("refusing unsafe shell command", capability=self.name)
        return command

    def _new_container_id(self) -> ContainerId:
        task_id = get_correlation_context().get("task_id", "")
        slug = _SLUG_INVALID.sub("-", task_id).strip("-._")[:_SLUG_MAX_LENGTH] or "task"
        container = sanitize_container_id(f"{_NAME_PREFIX}-{slug}-{uuid.uuid4().hex[:8]}")
        if container is None:
            raise ExecutionError("could not derive a valid container name", capability=self.name)
        return container

    async def _remove(self, container: ContainerId) -> None:
        try:
            removed = await self._run((self._config.runtime, "rm", "-f", container.value))
        except OSError as exc:
            self._logger.warning(
                "container_remove_failed", container=container.value, error=str(exc)
            )
            return
        if not removed.succeeded:
            self._logger.warning(
                "container_remove_failed",
                container=container.value,
                error=removed.stderr.strip(),
            )

    async def _run(self, argv: tuple[str, ...]) -> ContainerCommandResult:
        completed = await asyncio.to_thread(
            self._runner,
            list(argv),
            check=False,
            capture_output=True,
            text=True,
        )
        return ContainerCommandResult(
            command=argv,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )


async def _default_poller(port: int, timeout_ms: int, interval_ms: int) -> object:
    return await wait_for_ready(port, timeout_ms, interval_ms)


__all__ = [
    "ContainerCommandResult",
    "ContainerLauncher",
    "ContainerLauncherConfig",
    "ReadinessPoller",
]
