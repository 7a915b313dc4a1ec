"""Executable CLI entrypoint for ``sandbox_batch``."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


class ExitCode(IntEnum):
    """Deterministic process exit-code contract."""

    SUCCESS = 0
    TASK_FAILURES = 1
    CONFIG_ERROR = 2
    INIT_ERROR = 3
    INTERNAL_ERROR = 4


_VERBOSE_FLAGS = frozenset({"--verbose", "-v"})


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Entrypoint used by ``python -m sandbox_batch`` and the console script."""

    args = list(argv) if argv is not None else sys.argv[1:]
    try:
        from sandbox_batch.ui.cli import run_cli

        return _normalize_exit_code(run_cli(args))
    except SystemExit as exc:
        return _normalize_exit_code(exc.code)
    except KeyboardInterrupt:
        _write_stderr("interrupted")
        return int(ExitCode.INTERNAL_ERROR)
    except Exception as exc:
        exit_code = _route_exception(exc)
        _emit_failure(exc, exit_code, verbose=bool(_VERBOSE_FLAGS.intersection(args)))
        return int(exit_code)


def _normalize_exit_code(raw_code: object) -> int:
    if isinstance(raw_code, int) and raw_code in {0, 1, 2, 3, 4}:
        return raw_code
    if raw_code is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw_code, str) and raw_code.strip():
        _write_stderr(raw_code.strip())
    return int(ExitCode.INTERNAL_ERROR)


def _route_exception(exc: BaseException) -> ExitCode:
    from sandbox_batch.config import ConfigLoadError, ConfigValidationError
    from sandbox_batch.providers.base import InitError
    from sandbox_batch.task_ingestion import TaskListError

    for item in _iter_exception_chain(exc):
        if isinstance(item, (ConfigLoadError, ConfigValidationError, TaskListError)):
            return ExitCode.CONFIG_ERROR
        if isinstance(item, InitError):
            return ExitCode.INIT_ERROR
    return ExitCode.INTERNAL_ERROR


def _iter_exception_chain(exc: BaseException) -> list[BaseException]:
    seen: set[int] = set()
    items: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        items.append(current)
        if current.__cause__ is not None:
            current = current.__cause__
        elif current.__context__ is not None and not current.__suppress_context__:
            current = current.__context__
        else:
            current = None
    return items


def _emit_failure(exc: BaseException, exit_code: ExitCode, *, verbose: bool) -> None:
    if verbose:
        traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
        return
    message = str(exc).strip() or exc.__class__.__name__
    if exit_code is ExitCode.INTERNAL_ERROR:
        message = f"internal error: {message} (re-run with --verbose for a traceback)"
    _write_stderr(message)


def _write_stderr(message: str) -> None:
    sys.stderr.write(message.rstrip("\n") + "\n")


__all__ = ["ExitCode", "cli_entrypoint"]
