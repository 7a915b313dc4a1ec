"""Schema validation: strictness, quantity formats, secret rejection, redaction."""

from __future__ import annotations

import pytest

from sandbox_batch.config.schema import (
    ConfigValidationError,
    assert_valid_config,
    default_config,
    is_cpu_quantity,
    is_memory_quantity,
    merge_config,
    redact_config,
    validate_config,
)


def _issue_paths(config: dict[str, object]) -> set[str]:
    return {issue.path for issue in validate_config(config)}


def test_defaults_are_valid() -> None:
    assert validate_config(default_config()) == ()


def test_default_config_returns_independent_copies() -> None:
    first = default_config()
    first["run"]["batch_size"] = 99
    assert default_config()["run"]["batch_size"] == 5


@pytest.mark.parametrize("value", ["512m", "2g", "4G", "1.5g", "1024", "64k", "10b"])
def test_memory_quantities_accepted(value: str) -> None:
    assert is_memory_quantity(value)


@pytest.mark.parametrize("value", ["", " 2g", "2gb", "2 g", "-1g", "g", "1.g", None, 2])
def test_memory_quantities_rejected(value: object) -> None:
    assert not is_memory_quantity(value)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("1", True),
        ("0.5", True),
        ("2.0", True),
        ("0", False),
        ("0.0", False),
        ("", False),
        ("1c", False),
    ],
)
def test_cpu_quantities(value: str, expected: bool) -> None:
    assert is_cpu_quantity(value) is expected


def test_unknown_keys_and_embedded_secrets_are_reported() -> None:
    config = merge_config(
        default_config(), {"run": {"retries": 3}, "provider": {"api_key": "sk-live"}}
    )
    issues = {issue.path: issue.message for issue in validate_config(config)}
    assert issues["run.retries"] == "unknown field"
    assert "embedded secret" in issues["provider.api_key"]


def test_api_key_env_must_be_a_variable_name() -> None:
    config = merge_config(default_config(), {"provider": {"api_key_env": "sk-abc123"}})
    assert _issue_paths(config) == {"provider.api_key_env"}


@pytest.mark.parametrize(
    ("overlay", "path"),
    [
        ({"run": {"batch_size": 0}}, "run.batch_size"),
        ({"run": {"batch_size": True}}, "run.batch_size"),
        ({"provider": {"kind": "anthropic"}}, "provider.kind"),
        ({"container": {"runtime": "lxc"}}, "container.runtime"),
        ({"container": {"memory_override": ""}}, "container.memory_override"),
        ({"container": {"cpu_override": "-2"}}, "container.cpu_override"),
        ({"container": {"readiness_interval_ms": 0}}, "container.readiness_interval_ms"),
        ({"observability": {"log_level": "LOUD"}}, "observability.log_level"),
        ({"provider": {"timeout_seconds": 0}}, "provider.timeout_seconds"),
        ({"meta": {"schema_version": 2}}, "meta.schema_version"),
    ],
)
def test_invalid_values_are_reported_by_path(overlay: dict[str, object], path: str) -> None:
    assert path in _issue_paths(merge_config(default_config(), overlay))


def test_assert_valid_config_aggregates_issues() -> None:
    config = merge_config(
        default_config(), {"run": {"batch_size": -1}, "container": {"cpu_override": "x"}}
    )
    with pytest.raises(ConfigValidationError) as excinfo:
        assert_valid_config(config)
    assert len(excinfo.value.issues) == 2
    assert "run.batch_size" in str(excinfo.value)


def test_non_mapping_root_is_rejected() -> None:
    assert [issue.path for issue in validate_config(["not", "a", "mapping"])] == ["<root>"]


def test_merge_preserves_declaration_order() -> None:
    merged = merge_config({"b": 1, "a": {"y": 1, "x": 2}}, {"a": {"z": 3}})
    assert list(merged) == ["b", "a"]
    assert list(merged["a"]) == ["y", "x", "z"]


def test_redaction_masks_secret_keys_but_not_env_names() -> None:
    redacted = redact_config(
        {"provider": {"api_key_env": "OPENAI_API_KEY", "password": "hunter2", "model": "m"}}
    )
    assert redacted == {
        "provider": {"api_key_env": "OPENAI_API_KEY", "password": "***REDACTED***", "model": "m"}
    }
