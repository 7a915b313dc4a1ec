"""Append-only JSON-lines sink for execution records."""

from __future__ import annotations

import asyncio
import json
import os
from collections.abc import Iterable, Iterator
from pathlib import Path

from sandbox_batch.domain.models import ExecutionRecord


class JsonlResultSink:
    """Serialize appends; each record is one complete line, never interleaved.

    The file is only ever opened in append mode. Existing content from earlier
    runs is preserved, and a batch is flushed and fsynced before
    :meth:`append_batch` returns.
    """

    def __init__(self, path: Path | str, *, fsync: bool = True) -> None:
        self._path = Path(path)
        self._fsync = fsync
        self._lock = asyncio.Lock()
        self._records_written = 0
        self._batches_written = 0

    @property
    def path(self) -> Path:
        return self._path

    @property
    def records_written(self) -> int:
        return self._records_written

    @property
    def batches_written(self) -> int:
        return self._batches_written

    def prepare(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)

    async def append(self, record: ExecutionRecord) -> None:
        await self._append([record.to_json_line()])

    async def append_batch(self, records: Iterable[ExecutionRecord]) -> int:
        count = await self._append([record.to_json_line() for record in records])
        self._batches_written += 1
        return count

    async def _append(self, lines: list[str]) -> int:
        async with self._lock:
            await asyncio.to_thread(self._write_lines, lines)
            self._records_written += len(lines)
        return len(lines)

    def _write_lines(self, lines: list[str]) -> None:
        self.prepare()
        with self._path.open("a", encoding="utf-8") as handle:
            for line in lines:
                handle.write(line)
            handle.flush()
            if self._fsync:
                os.fsync(handle.fileno())


def iter_records(path: Path | str) -> Iterator[dict[str, object]]:
    """Yield decoded records from a sink file, skipping blank lines."""

    with Path(path).open(encoding="utf-8") as handle:
        for line in handle:
            if line.strip():
                yield json.loads(line)


__all__ = ["JsonlResultSink", "iter_records"]
