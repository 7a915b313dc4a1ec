"""Domain records shared across ingestion, orchestration, and persistence."""

from sandbox_batch.domain.models import (
    ExecutionRecord,
    RecordStatus,
    RunState,
    RunSummary,
    Task,
    TaskTiming,
)

__all__ = [
    "ExecutionRecord",
    "RecordStatus",
    "RunState",
    "RunSummary",
    "Task",
    "TaskTiming",
]
