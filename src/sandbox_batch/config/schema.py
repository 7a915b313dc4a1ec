"""
Configuration schema, defaults, and strict validation.

Validation collects every problem as a ``ConfigValidationIssue`` (dotted field
path + message) before failing, so a single run reports all mistakes at once.
Optional quantities (``memory_override``/``cpu_override``) are either absent or
well-formed; an empty or malformed quantity string is a validation error.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, NotRequired, TypedDict, cast

from sandbox_batch.constants import (
    CONFIG_SCHEMA_VERSION,
    CONTAINER_RUNTIMES,
    DEFAULT_API_KEY_ENV,
    DEFAULT_BATCH_SIZE,
    DEFAULT_CHAT_MODEL,
    DEFAULT_CONTAINER_RUNTIME,
    DEFAULT_IMAGE,
    DEFAULT_LOG_DIR,
    DEFAULT_OUTPUT_PATH,
    DEFAULT_READINESS_INTERVAL_MS,
    DEFAULT_READINESS_TIMEOUT_MS,
    DEFAULT_TASKS_PATH,
    PROVIDER_KINDS,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

MEMORY_QUANTITY_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[0-9]+(\.[0-9]+)?[bkmgBKMG]?$")
CPU_QUANTITY_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[0-9]+(\.[0-9]+)?$")

_ENV_NAME_PATTERN = re.compile(r"^[A-Z_][A-Z0-9_]*$")
_LOG_LEVELS: Final[tuple[str, ...]] = ("CRITICAL", "DEBUG", "ERROR", "INFO", "WARNING")
_SENSITIVE_KEY_TOKENS: Final[frozenset[str]] = frozenset(
    {"secret", "token", "password", "apikey", "key", "credential", "credentials"}
)

# Config paths that are normalized relative to the config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("run", "tasks_path"),
    ("run", "output_path"),
    ("observability", "log_dir"),
)

# Optional settings: absent by default, still addressable from env and CLI.
OPTIONAL_FIELDS: Final[tuple[tuple[tuple[str, ...], Literal["str", "int", "float"]], ...]] = (
    (("provider", "base_url"), "str"),
    (("provider", "timeout_seconds"), "float"),
    (("container", "memory_override"), "str"),
    (("container", "cpu_override"), "str"),
)


class MetaConfig(TypedDict):
    schema_version: int


class RunSection(TypedDict):
    batch_size: int
    tasks_path: str
    output_path: str


class ProviderSection(TypedDict):
    kind: Literal["openai", "container"]
    model: str
    api_key_env: str
    base_url: NotRequired[str | None]
    timeout_seconds: NotRequired[float | None]


class ContainerSection(TypedDict):
    runtime: Literal["docker", "podman"]
    image: str
    allow_nested: bool
    readiness_timeout_ms: int
    readiness_interval_ms: int
    memory_override: NotRequired[str | None]
    cpu_override: NotRequired[str | None]


class ObservabilitySection(TypedDict):
    log_level: str
    log_dir: str
    log_to_stderr: bool
    redact_secrets: bool


class RunnerConfig(TypedDict):
    meta: MetaConfig
    run: RunSection
    provider: ProviderSection
    container: ContainerSection
    observability: ObservabilitySection


DEFAULT_CONFIG: Final[RunnerConfig] = {
    "meta": {"schema_version": ConfigSchemaVersion},
    "run": {
        "batch_size": DEFAULT_BATCH_SIZE,
        "tasks_path": DEFAULT_TASKS_PATH,
        "output_path": DEFAULT_OUTPUT_PATH,
    },
    "provider": {
        "kind": "openai",
        "model": DEFAULT_CHAT_MODEL,
        "api_key_env": DEFAULT_API_KEY_ENV,
        "base_url": None,
        "timeout_seconds": None,
    },
    "container": {
        "runtime": DEFAULT_CONTAINER_RUNTIME,
        "image": DEFAULT_IMAGE,
        "allow_nested": False,
        "readiness_timeout_ms": DEFAULT_READINESS_TIMEOUT_MS,
        "readiness_interval_ms": DEFAULT_READINESS_INTERVAL_MS,
        "memory_override": None,
        "cpu_override": None,
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": DEFAULT_LOG_DIR,
        "log_to_stderr": False,
        "redact_secrets": True,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)


def default_config() -> dict[str, Any]:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(dict(DEFAULT_CONFIG))


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto ``base`` without mutating either."""

    merged = copy.deepcopy(dict(base))
    _merge_into(merged, overlay)
    return merged


def is_memory_quantity(value: object) -> bool:
    return isinstance(value, str) and MEMORY_QUANTITY_PATTERN.fullmatch(value) is not None


def is_cpu_quantity(value: object) -> bool:
    if not isinstance(value, str) or CPU_QUANTITY_PATTERN.fullmatch(value) is None:
        return False
    return float(value) > 0


def validate_config(config: Mapping[str, object] | object) -> tuple[ConfigValidationIssue, ...]:
    """Validate ``config`` and return every issue found (empty when valid)."""

    issues = _IssueCollector()
    if not isinstance(config, Mapping):
        issues.add("<root>", f"expected object, got {type(config).__name__}")
        return issues.items()

    _reject_unknown_keys(config, set(DEFAULT_CONFIG), "", issues)
    for section in sorted(DEFAULT_CONFIG):
        payload = config.get(section)
        if not isinstance(payload, Mapping):
            issues.add(section, "missing or non-object section")
            continue
        _SECTION_VALIDATORS[section](payload, section, issues)
    return issues.items()


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    found = validate_config(config)
    if found:
        raise ConfigValidationError(found)
    return copy.deepcopy(dict(cast("Mapping[str, object]", config)))


def redact_config(config: Mapping[str, object]) -> dict[str, Any]:
    """Return a redacted copy suitable for logs and ``config`` CLI output."""

    redacted = _redact_value(config, parent_key=None)
    return redacted if isinstance(redacted, dict) else {}


def _validate_meta(payload: Mapping[str, object], path: str, issues: _IssueCollector) -> None:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    version = payload.get("schema_version")
    if isinstance(version, bool) or not isinstance(version, int):
        issues.add(_join(path, "schema_version"), "expected integer")
    elif version != ConfigSchemaVersion:
        issues.add(
            _join(path, "schema_version"),
            f"unsupported schema version {version}; expected {ConfigSchemaVersion}",
        )


def _validate_run(payload: Mapping[str, object], path: str, issues: _IssueCollector) -> None:
    _reject_unknown_keys(payload, {"batch_size", "tasks_path", "output_path"}, path, issues)
    _as_int(payload.get("batch_size"), _join(path, "batch_size"), issues, minimum=1)
    for key in ("tasks_path", "output_path"):
        _as_path_text(payload.get(key), _join(path, key), issues)


def _validate_provider(payload: Mapping[str, object], path: str, issues: _IssueCollector) -> None:
    allowed = {"kind", "model", "api_key_env", "base_url", "timeout_seconds"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _as_enum(payload.get("kind"), _join(path, "kind"), issues, allowed_values=PROVIDER_KINDS)
    _as_str(payload.get("model"), _join(path, "model"), issues)
    env_name = _as_str(payload.get("api_key_env"), _join(path, "api_key_env"), issues)
    if env_name is not None and not _ENV_NAME_PATTERN.fullmatch(env_name):
        issues.add(
            _join(path, "api_key_env"),
            "must be an env var name (example: OPENAI_API_KEY), not a secret value",
        )
    if payload.get("base_url") is not None:
        _as_str(payload["base_url"], _join(path, "base_url"), issues)
    timeout = payload.get("timeout_seconds")
    if timeout is not None:
        parsed = _as_float(timeout, _join(path, "timeout_seconds"), issues)
        if parsed is not None and parsed <= 0:
            issues.add(_join(path, "timeout_seconds"), "must be > 0")


def _validate_container(payload: Mapping[str, object], path: str, issues: _IssueCollector) -> None:
    allowed = {
        "runtime",
        "image",
        "allow_nested",
        "readiness_timeout_ms",
        "readiness_interval_ms",
        "memory_override",
        "cpu_override",
    }
    _reject_unknown_keys(payload, allowed, path, issues)
    _as_enum(
        payload.get("runtime"), _join(path, "runtime"), issues, allowed_values=CONTAINER_RUNTIMES
    )
    _as_str(payload.get("image"), _join(path, "image"), issues)
    _as_bool(payload.get("allow_nested"), _join(path, "allow_nested"), issues)
    for key in ("readiness_timeout_ms", "readiness_interval_ms"):
        _as_int(payload.get(key), _join(path, key), issues, minimum=1)

    memory = payload.get("memory_override")
    if memory is not None and not is_memory_quantity(memory):
        issues.add(
            _join(path, "memory_override"),
            f"invalid memory quantity {memory!r}; expected e.g. '512m' or '2g'",
        )
    cpus = payload.get("cpu_override")
    if cpus is not None and not is_cpu_quantity(cpus):
        issues.add(
            _join(path, "cpu_override"),
            f"invalid cpu quantity {cpus!r}; expected a positive number such as '1.5'",
        )


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> None:
    allowed = {"log_level", "log_dir", "log_to_stderr", "redact_secrets"}
    _reject_unknown_keys(payload, allowed, path, issues)
    level = _as_str(payload.get("log_level"), _join(path, "log_level"), issues)
    if level is not None and level.upper() not in _LOG_LEVELS:
        issues.add(
            _join(path, "log_level"),
            f"invalid value {level!r}; expected one of: {', '.join(_LOG_LEVELS)}",
        )
    _as_path_text(payload.get("log_dir"), _join(path, "log_dir"), issues)
    _as_bool(payload.get("log_to_stderr"), _join(path, "log_to_stderr"), issues)
    _as_bool(payload.get("redact_secrets"), _join(path, "redact_secrets"), issues)


_SECTION_VALIDATORS = {
    "meta": _validate_meta,
    "run": _validate_run,
    "provider": _validate_provider,
    "container": _validate_container,
    "observability": _validate_observability,
}


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is not None and "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(value: object, path: str, issues: _IssueCollector) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key in allowed:
            continue
        if _looks_sensitive_key(key):
            issues.add(
                _join(path, key),
                "embedded secret values are forbidden; use an *_env key with an env var name",
            )
        else:
            issues.add(_join(path, key), "unknown field")


def _looks_sensitive_key(key: str) -> bool:
    normalized = re.sub(r"[^a-z0-9]+", "_", key.lower()).strip("_")
    if normalized.endswith("_env"):
        return False
    return any(token in _SENSITIVE_KEY_TOKENS for token in normalized.split("_") if token)


def _join(path: str, key: str) -> str:
    return key if not path else f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key, value in overlay.items():
        existing = target.get(key)
        if isinstance(value, Mapping) and isinstance(existing, dict):
            _merge_into(existing, value)
        elif isinstance(value, Mapping):
            nested: dict[str, Any] = {}
            _merge_into(nested, value)
            target[key] = nested
        else:
            target[key] = copy.deepcopy(value)


def _redact_value(value: object, parent_key: str | None) -> object:
    if isinstance(value, Mapping):
        return {str(key): _redact_value(item, str(key)) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_redact_value(item, parent_key) for item in value]
    if parent_key is not None and _looks_sensitive_key(parent_key) and value is not None:
        return "***REDACTED***"
    return value


__all__ = [
    "CPU_QUANTITY_PATTERN",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "DEFAULT_CONFIG",
    "MEMORY_QUANTITY_PATTERN",
    "OPTIONAL_FIELDS",
    "PATH_FIELDS",
    "RunnerConfig",
    "assert_valid_config",
    "default_config",
    "is_cpu_quantity",
    "is_memory_quantity",
    "merge_config",
    "redact_config",
    "validate_config",
]
