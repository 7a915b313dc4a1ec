"""Resource limit resolution: first-match defaults, override precedence, empty image."""

from __future__ import annotations

import pytest

from sandbox_batch.sandbox.resource_limits import (
    IMAGE_DEFAULTS,
    ResourceFlags,
    ResourceLimitConfig,
    ResourceLimitResolver,
    ResourceLimitSpec,
    compute_resource_limits,
)


class _RecordingLogger:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, object]]] = []

    def debug(self, event: str, **fields: object) -> None:
        self.events.append((event, fields))


def test_chartjs_image_uses_its_declared_default() -> None:
    flags = compute_resource_limits("alfonsograziano/node-chartjs:latest")
    assert flags == ResourceFlags(mem_flag="--memory 2g", cpu_flag="--cpus 2")


def test_memory_override_wins_and_cpu_falls_back_to_default() -> None:
    flags = compute_resource_limits(
        "alfonsograziano/node-chartjs:latest", ResourceLimitConfig(memory_override="4g")
    )
    assert flags.mem_flag == "--memory 4g"
    assert flags.cpu_flag == "--cpus 2"


def test_cpu_override_is_independent_of_memory() -> None:
    flags = compute_resource_limits("node:lts-slim", ResourceLimitConfig(cpu_override="0.5"))
    assert flags == ResourceFlags(mem_flag="--memory 512m", cpu_flag="--cpus 0.5")


@pytest.mark.parametrize(
    "config",
    [
        ResourceLimitConfig(),
        ResourceLimitConfig(memory_override="4g", cpu_override="3"),
    ],
)
@pytest.mark.parametrize("image", ["", None])
def test_empty_image_yields_no_flags_regardless_of_config(
    image: str | None, config: ResourceLimitConfig
) -> None:
    flags = compute_resource_limits(image, config)
    assert flags == ResourceFlags()
    assert flags.as_args() == ()


def test_unknown_image_is_unrestricted_without_overrides() -> None:
    resolver = ResourceLimitResolver()
    assert resolver.resolve("python:3.12-slim").is_unrestricted
    assert resolver.compute_resource_limits("python:3.12-slim").as_args() == ()


def test_unknown_image_still_gets_overrides() -> None:
    flags = compute_resource_limits("python:3.12", ResourceLimitConfig(memory_override="1g"))
    assert flags == ResourceFlags(mem_flag="--memory 1g", cpu_flag="")


def test_first_declared_match_wins_for_overlapping_keys() -> None:
    config = ResourceLimitConfig(
        image_defaults=(
            ("node", ResourceLimitSpec(memory="256m", cpus="1")),
            ("node:lts-slim", ResourceLimitSpec(memory="512m", cpus="1")),
        )
    )
    assert ResourceLimitResolver(config).resolve("node:lts-slim").memory == "256m"


def test_playwright_default_matches_tagged_reference() -> None:
    spec = ResourceLimitResolver().resolve("mcr.microsoft.com/playwright:v1.53.2-noble")
    assert spec == ResourceLimitSpec(memory="2g", cpus="2")


def test_defaults_table_keeps_declaration_order() -> None:
    assert [key for key, _ in IMAGE_DEFAULTS] == [
        "node:lts-slim",
        "alfonsograziano/node-chartjs",
        "mcr.microsoft.com/playwright",
    ]


def test_flags_split_into_argv_tokens() -> None:
    flags = ResourceFlags(mem_flag="--memory 2g", cpu_flag="--cpus 2")
    assert flags.as_args() == ("--memory", "2g", "--cpus", "2")


@pytest.mark.parametrize(
    ("memory", "cpus"),
    [
        ("", None),
        (None, ""),
        ("2 g", None),
        ("lots", None),
        (None, "0"),
        (None, "-1"),
        (None, "two"),
    ],
)
def test_malformed_quantities_are_rejected(memory: str | None, cpus: str | None) -> None:
    with pytest.raises(ValueError):
        ResourceLimitSpec(memory=memory, cpus=cpus)


def test_malformed_overrides_are_rejected_at_construction() -> None:
    with pytest.raises(ValueError):
        ResourceLimitConfig(memory_override="4 gigs")
    with pytest.raises(ValueError):
        ResourceLimitConfig(cpu_override="fast")


@pytest.mark.parametrize("field", ["memory_override", "cpu_override"])
def test_empty_override_string_is_rejected_not_treated_as_unset(field: str) -> None:
    with pytest.raises(ValueError, match="override"):
        ResourceLimitConfig(**{field: ""})


def test_from_config_treats_missing_overrides_as_absent() -> None:
    config = ResourceLimitConfig.from_config(
        {"container": {"memory_override": None, "cpu_override": "1.5"}}
    )
    assert config.memory_override is None
    assert config.cpu_override == "1.5"


def test_resolution_is_logged_with_the_matched_key() -> None:
    logger = _RecordingLogger()
    ResourceLimitResolver(logger=logger).resolve("node:lts-slim")
    assert logger.events == [
        (
            "resource_limits_resolved",
            {
                "image": "node:lts-slim",
                "matched_default": "node:lts-slim",
                "memory": "512m",
                "cpus": "1",
            },
        )
    ]
