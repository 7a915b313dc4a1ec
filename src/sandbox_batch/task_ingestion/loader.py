"""Load the task list (a JSON array of ``{id, prompt}`` objects) into immutable ``Task`` values."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Final

from sandbox_batch.domain.models import Task

PAYLOAD_KEYS: Final[tuple[str, ...]] = ("prompt", "payload")
_ALLOWED_KEYS: Final[frozenset[str]] = frozenset({"id", "port", *PAYLOAD_KEYS})


class TaskListError(ValueError):
    """Raised when the task list is missing or malformed; fatal for the run."""


def load_tasks(path: Path | str) -> tuple[Task, ...]:
    task_path = Path(path)
    if not task_path.is_file():
        raise TaskListError(f"task list not found at {task_path}")
    try:
        raw_text = task_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise TaskListError(f"failed to read task list {task_path}: {exc}") from exc
    try:
        data = json.loads(raw_text)
    except json.JSONDecodeError as exc:
        raise TaskListError(
            f"task list {task_path} is not valid JSON (line {exc.lineno}, column {exc.colno})"
        ) from exc
    return parse_tasks(data, source=str(task_path))


def parse_tasks(data: object, *, source: str = "<memory>") -> tuple[Task, ...]:
    """Validate decoded JSON; every problem names the offending entry index."""

    if isinstance(data, (str, bytes)) or not isinstance(data, Sequence):
        raise TaskListError(f"{source}: task list must be an array of {{id, prompt}} objects")

    tasks: list[Task] = []
    seen: set[str] = set()
    for index, entry in enumerate(data):
        task = _parse_entry(entry, index=index, source=source)
        if task.id in seen:
            raise TaskListError(f"{source}[{index}]: duplicate task id {task.id!r}")
        seen.add(task.id)
        tasks.append(task)
    return tuple(tasks)


def _parse_entry(entry: object, *, index: int, source: str) -> Task:
    where = f"{source}[{index}]"
    if not isinstance(entry, Mapping):
        raise TaskListError(f"{where}: expected an object")

    unknown = sorted(str(key) for key in entry if key not in _ALLOWED_KEYS)
    if unknown:
        raise TaskListError(f"{where}: unknown keys {', '.join(unknown)}")

    task_id = entry.get("id")
    if not isinstance(task_id, str) or not task_id.strip():
        raise TaskListError(f"{where}: 'id' must be a non-empty string")

    present = [key for key in PAYLOAD_KEYS if key in entry]
    if len(present) != 1:
        raise TaskListError(f"{where}: exactly one of 'prompt' or 'payload' is required")
    payload = entry[present[0]]
    if not isinstance(payload, str):
        raise TaskListError(f"{where}: {present[0]!r} must be a string")

    port = entry.get("port")
    if port is not None and (isinstance(port, bool) or not isinstance(port, int)):
        raise TaskListError(f"{where}: 'port' must be an integer")
    try:
        return Task(id=task_id, payload=payload, port=port)
    except (TypeError, ValueError) as exc:
        raise TaskListError(f"{where}: {exc}") from exc


__all__ = ["PAYLOAD_KEYS", "TaskListError", "load_tasks", "parse_tasks"]
