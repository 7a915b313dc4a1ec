"""Utility exports for async coordination helpers."""

from sandbox_batch.utils.concurrency import BoundedSemaphore, CancellationToken

__all__ = ["BoundedSemaphore", "CancellationToken"]
