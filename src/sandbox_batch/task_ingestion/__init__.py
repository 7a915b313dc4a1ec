"""Task-list ingestion."""

from sandbox_batch.task_ingestion.loader import TaskListError, load_tasks, parse_tasks

__all__ = ["TaskListError", "load_tasks", "parse_tasks"]
