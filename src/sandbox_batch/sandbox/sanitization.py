"""
Allow-list validators for values that cross a shell or container-runtime boundary.

Each validator returns a boundary-specific ``SanitizedValue`` subtype or ``None``.
There is no partial sanitization and no exception path: ``None`` means "refuse
to proceed", and callers must never fall back to the raw input. The subtypes
cannot be constructed outside this module, so a function that accepts
``ContainerId`` statically rules out an unchecked ``str``.
"""

from __future__ import annotations

import re
from typing import ClassVar, Final, TypeVar

_CONTAINER_ID_PATTERN: Final[re.Pattern[str]] = re.compile(r"[a-zA-Z0-9][a-zA-Z0-9_.-]*")
_IMAGE_NAME_PATTERN: Final[re.Pattern[str]] = re.compile(r"[a-zA-Z0-9_.:/-]+")
# Backticks and ``$(...)`` are substitution vectors; redirection, pipes, and ``&`` stay legal.
_COMMAND_SUBSTITUTION_PATTERN: Final[re.Pattern[str]] = re.compile(r"`|\$\([^)]+\)")

_CONSTRUCTION_KEY: Final[object] = object()

TSanitized = TypeVar("TSanitized", bound="SanitizedValue")


class SanitizedValue:
    """A string that passed the validator for one specific boundary."""

    __slots__ = ("_value",)

    boundary: ClassVar[str] = "generic"

    def __init__(self, value: str, *, _key: object = None) -> None:
        if _key is not _CONSTRUCTION_KEY:
            raise TypeError(
                f"{type(self).__name__} can only be created by its sanitize_* function"
            )
        self._value = value

    @property
    def value(self) -> str:
        return self._value

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SanitizedValue) or type(other) is not type(self):
            return NotImplemented
        return self._value == other._value

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._value))


class ContainerId(SanitizedValue):
    __slots__ = ()
    boundary = "container_id"


class ImageName(SanitizedValue):
    __slots__ = ()
    boundary = "image_name"


class ShellCommand(SanitizedValue):
    __slots__ = ()
    boundary = "shell_command"


def sanitize_container_id(raw: object) -> ContainerId | None:
    """Accept runtime container names/ids: ``[a-zA-Z0-9][a-zA-Z0-9_.-]*``."""

    text = _raw_text(raw)
    if text is None or _CONTAINER_ID_PATTERN.fullmatch(text) is None:
        return None
    return _seal(ContainerId, raw, text)


def sanitize_image_name(raw: object) -> ImageName | None:
    """Accept ``[registry/][namespace/]repo[:tag]`` built from ``[a-zA-Z0-9_.:/-]``."""

    text = _raw_text(raw)
    if text is None or _IMAGE_NAME_PATTERN.fullmatch(text) is None:
        return None
    return _seal(ImageName, raw, text)


def sanitize_shell_command(raw: object) -> ShellCommand | None:
    """Accept a non-blank command with no backtick and no ``$(...)`` substitution."""

    text = _raw_text(raw)
    if text is None or not text.strip():
        return None
    if _COMMAND_SUBSTITUTION_PATTERN.search(text) is not None:
        return None
    return _seal(ShellCommand, raw, text)


def _raw_text(raw: object) -> str | None:
    if isinstance(raw, SanitizedValue):
        return raw.value
    if isinstance(raw, str):
        return raw
    return None


def _seal(kind: type[TSanitized], raw: object, text: str) -> TSanitized:
    if isinstance(raw, kind) and type(raw) is kind:
        return raw
    return kind(text, _key=_CONSTRUCTION_KEY)


__all__ = [
    "ContainerId",
    "ImageName",
    "SanitizedValue",
    "ShellCommand",
    "sanitize_container_id",
    "sanitize_image_name",
    "sanitize_shell_command",
]
