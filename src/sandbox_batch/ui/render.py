"""Plain-text output helpers for the sandbox-batch CLI."""

from __future__ import annotations

import json
import sys
from collections.abc import Mapping
from typing import TextIO


class CLIRenderer:
    """Deterministic plain-text renderer; writes to stdout unless told otherwise."""

    def __init__(self, *, verbose: bool = False, stream: TextIO | None = None) -> None:
        self.verbose = verbose
        self._stream = stream

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    def text(self, line: str) -> None:
        print(line, file=self.stream)

    def heading(self, text: str) -> None:
        self.text(text)

    def kv(self, key: str, value: object) -> None:
        self.text(f"{key}: {value}")

    def ok(self, label: str) -> None:
        self.text(f"  OK  {label}")

    def fail(self, label: str) -> None:
        self.text(f"  FAIL  {label}")

    def json(self, payload: Mapping[str, object]) -> None:
        self.text(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


__all__ = ["CLIRenderer"]
