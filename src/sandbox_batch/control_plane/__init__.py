"""Run control: batch partitioning and fan-out/fan-in execution."""

from sandbox_batch.control_plane.orchestrator import (
    BatchOrchestrator,
    BatchOrchestratorConfig,
    batch_count,
    epoch_ms,
    partition_batches,
)

__all__ = [
    "BatchOrchestrator",
    "BatchOrchestratorConfig",
    "batch_count",
    "epoch_ms",
    "partition_batches",
]
