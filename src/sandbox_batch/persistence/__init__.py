"""Durable run output."""

from sandbox_batch.persistence.result_sink import JsonlResultSink, iter_records

__all__ = ["JsonlResultSink", "iter_records"]
