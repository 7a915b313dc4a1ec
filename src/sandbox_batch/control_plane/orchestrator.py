"""
Batch orchestrator.

Runs a task list to completion through one execution capability:

- fail-fast at startup: task-list loading and ``capability.initialize()``
  errors propagate and no batch starts;
- fail-isolated during execution: any ``Exception`` from one task becomes a
  Failure record for that task only;
- batches are contiguous slices of at most ``batch_size`` tasks, run strictly
  one after another; tasks inside a batch run concurrently;
- every batch's records reach the sink before the next batch starts.

Decision events are logged through ``structlog``.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

import structlog

from sandbox_batch.constants import DEFAULT_BATCH_SIZE, DEFAULT_OUTPUT_PATH
from sandbox_batch.domain.models import ExecutionRecord, RunState, RunSummary, Task, TaskTiming
from sandbox_batch.observability.logging import correlation_scope
from sandbox_batch.persistence.result_sink import JsonlResultSink
from sandbox_batch.providers.base import (
    ExecutionCapability,
    ServiceCapability,
    supports_services,
)
from sandbox_batch.utils.concurrency import BoundedSemaphore, CancellationToken

TaskSource = Iterable[Task] | Callable[[], Iterable[Task]]
EpochClock = Callable[[], int]


@dataclass(frozen=True, slots=True)
class BatchOrchestratorConfig:
    batch_size: int = DEFAULT_BATCH_SIZE
    output_path: str = DEFAULT_OUTPUT_PATH

    def __post_init__(self) -> None:
        if isinstance(self.batch_size, bool) or not isinstance(self.batch_size, int):
            raise TypeError("batch_size must be an integer")
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if not str(self.output_path).strip():
            raise ValueError("output_path must not be empty")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> BatchOrchestratorConfig:
        run = config.get("run", {})
        return cls(
            batch_size=run.get("batch_size", DEFAULT_BATCH_SIZE),
            output_path=str(run.get("output_path", DEFAULT_OUTPUT_PATH)),
        )


def partition_batches(tasks: Sequence[Task], batch_size: int) -> list[tuple[Task, ...]]:
    """Split into ordered, contiguous, non-overlapping slices; only the last may be short."""

    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    return [tuple(tasks[start : start + batch_size]) for start in range(0, len(tasks), batch_size)]


def batch_count(task_count: int, batch_size: int) -> int:
    return math.ceil(task_count / batch_size) if task_count else 0


def epoch_ms() -> int:
    return time.time_ns() // 1_000_000


class BatchOrchestrator:
    """Drive ``Loading -> Initializing -> Batch(0..n-1) -> Done`` for one run."""

    def __init__(
        self,
        config: BatchOrchestratorConfig,
        capability: ExecutionCapability,
        *,
        sink: JsonlResultSink | None = None,
        clock_ms: EpochClock = epoch_ms,
        cancel_token: CancellationToken | None = None,
        logger: Any = None,
    ) -> None:
        self._config = config
        self._capability = capability
        self._sink = sink if sink is not None else JsonlResultSink(Path(config.output_path))
        self._clock_ms = clock_ms
        self._cancel_token = cancel_token
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._semaphore = BoundedSemaphore(config.batch_size)
        self._state = RunState.LOADING

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def sink(self) -> JsonlResultSink:
        return self._sink

    @property
    def peak_concurrency(self) -> int:
        return self._semaphore.peak_in_use

    async def run(self, tasks: TaskSource) -> RunSummary:
        try:
            loaded = self._load(tasks)
            self._transition(RunState.INITIALIZING, task_count=len(loaded))
            await self._capability.initialize()
            self._sink.prepare()
            self._transition(RunState.RUNNING)
            summary = await self._run_batches(loaded)
        except BaseException:
            self._transition(RunState.FAILED)
            raise
        self._transition(RunState.DONE, **summary.to_dict())
        return summary

    def _load(self, tasks: TaskSource) -> tuple[Task, ...]:
        source = tasks() if callable(tasks) else tasks
        loaded = tuple(source)
        seen: set[str] = set()
        for task in loaded:
            if task.id in seen:
                raise ValueError(f"duplicate task id {task.id!r}")
            seen.add(task.id)
        return loaded

    async def _run_batches(self, tasks: tuple[Task, ...]) -> RunSummary:
        batches = partition_batches(tasks, self._config.batch_size)
        succeeded = 0
        failed = 0
        for batch_index, batch in enumerate(batches):
            if self._cancel_token is not None:
                self._cancel_token.raise_if_cancelled()
            with correlation_scope(batch_index=batch_index):
                self._logger.info(
                    "batch_started",
                    batch_index=batch_index,
                    batch_total=len(batches),
                    batch_tasks=len(batch),
                )
                records = await asyncio.gather(
                    *(self._run_task(task, batch_index) for task in batch)
                )
                await self._sink.append_batch(records)
                batch_failed = sum(1 for record in records if not record.succeeded)
                succeeded += len(records) - batch_failed
                failed += batch_failed
                self._logger.info(
                    "batch_completed",
                    batch_index=batch_index,
                    succeeded=len(records) - batch_failed,
                    failed=batch_failed,
                )
        return RunSummary(
            total=len(tasks),
            succeeded=succeeded,
            failed=failed,
            batches=len(batches),
            output_path=str(self._sink.path),
        )

    async def _run_task(self, task: Task, batch_index: int) -> ExecutionRecord:
        async with self._semaphore.permit():
            with correlation_scope(task_id=task.id, batch_index=batch_index):
                start = self._clock_ms()
                try:
                    response = await self._dispatch(task)
                except Exception as exc:
                    end = self._end_ms(start)
                    message = str(exc) or exc.__class__.__name__
                    self._logger.warning(
                        "task_failed",
                        task_id=task.id,
                        error_type=exc.__class__.__name__,
                        error=message,
                    )
                    return ExecutionRecord.failure(task, message, TaskTiming(start, end))
                timing = TaskTiming(start, self._end_ms(start))
                self._logger.debug(
                    "task_succeeded", task_id=task.id, duration_ms=timing.duration_ms
                )
                return ExecutionRecord.success(task, response, timing)

    def _end_ms(self, start: int) -> int:
        # A backwards wall-clock step clamps to a zero duration.
        return max(self._clock_ms(), start)

    async def _dispatch(self, task: Task) -> object:
        if task.port is not None and supports_services(self._capability):
            service = cast("ServiceCapability", self._capability)
            return await service.execute_service(task.payload, task.port)
        return await self._capability.execute(task.payload)

    def _transition(self, state: RunState, **fields: object) -> None:
        previous = self._state
        self._state = state
        self._logger.info("run_state_changed", previous=previous.value, state=state.value, **fields)


__all__ = [
    "BatchOrchestrator",
    "BatchOrchestratorConfig",
    "batch_count",
    "epoch_ms",
    "partition_batches",
]
