"""Immutable domain records: tasks, per-task timing, execution records, and run summaries."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]


class RecordStatus(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"


class RunState(StrEnum):
    """Lifecycle of one orchestrator run."""

    LOADING = "loading"
    INITIALIZING = "initializing"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Task:
    """One unit of work: a prompt for a chat call or a command for a container."""

    id: str
    payload: str
    port: int | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise ValueError("Task.id must be a non-empty string")
        if not isinstance(self.payload, str):
            raise TypeError("Task.payload must be a string")
        if self.port is not None:
            if isinstance(self.port, bool) or not isinstance(self.port, int):
                raise TypeError("Task.port must be an integer")
            if not 1 <= self.port <= 65535:
                raise ValueError("Task.port must be within 1..65535")


@dataclass(frozen=True, slots=True)
class TaskTiming:
    """Wall-clock bounds of the external call for one task."""

    start_epoch_ms: int
    end_epoch_ms: int

    def __post_init__(self) -> None:
        if self.end_epoch_ms < self.start_epoch_ms:
            raise ValueError("TaskTiming.end_epoch_ms cannot precede start_epoch_ms")

    @property
    def duration_ms(self) -> int:
        return self.end_epoch_ms - self.start_epoch_ms

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "start_epoch_ms": self.start_epoch_ms,
            "end_epoch_ms": self.end_epoch_ms,
            "duration_ms": self.duration_ms,
            "start_iso": _iso_from_epoch_ms(self.start_epoch_ms),
            "end_iso": _iso_from_epoch_ms(self.end_epoch_ms),
        }


@dataclass(frozen=True, slots=True)
class ExecutionRecord:
    """Outcome of exactly one task. Either ``response`` or ``error`` is set, never both."""

    id: str
    status: RecordStatus
    timing: TaskTiming
    response: Any = None
    error: str | None = None
    payload: str | None = None

    def __post_init__(self) -> None:
        if self.status is RecordStatus.SUCCESS and self.error is not None:
            raise ValueError("successful ExecutionRecord cannot carry an error")
        if self.status is RecordStatus.FAILURE and not self.error:
            raise ValueError("failed ExecutionRecord requires an error message")

    @classmethod
    def success(cls, task: Task, response: Any, timing: TaskTiming) -> ExecutionRecord:
        return cls(id=task.id, status=RecordStatus.SUCCESS, timing=timing, response=response)

    @classmethod
    def failure(cls, task: Task, error: str, timing: TaskTiming) -> ExecutionRecord:
        # The payload is kept on failures so a task can be re-run from the sink alone.
        return cls(
            id=task.id,
            status=RecordStatus.FAILURE,
            timing=timing,
            error=error or "unknown error",
            payload=task.payload,
        )

    @property
    def succeeded(self) -> bool:
        return self.status is RecordStatus.SUCCESS

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {"id": self.id, "status": self.status.value}
        if self.succeeded:
            out["response"] = _to_json_value(self.response)
        else:
            out["error"] = self.error
            out["payload"] = self.payload
        out["timing"] = self.timing.to_dict()
        return out

    def to_json_line(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":")) + "\n"


@dataclass(frozen=True, slots=True)
class RunSummary:
    total: int
    succeeded: int
    failed: int
    batches: int
    output_path: str

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "batches": self.batches,
            "output": self.output_path,
        }


def _iso_from_epoch_ms(epoch_ms: int) -> str:
    stamp = datetime.fromtimestamp(epoch_ms / 1000, tz=UTC)
    return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _to_json_value(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, dict):
        return {str(key): _to_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json_value(item) for item in value]
    dumper = getattr(value, "model_dump", None)
    if callable(dumper):
        return _to_json_value(dumper())
    return str(value)


__all__ = [
    "ExecutionRecord",
    "JSONValue",
    "RecordStatus",
    "RunState",
    "RunSummary",
    "Task",
    "TaskTiming",
]
