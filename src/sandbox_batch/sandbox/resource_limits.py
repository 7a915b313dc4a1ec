"""Resolve per-launch CPU/memory constraints from image defaults and configured overrides."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Final

import structlog

from sandbox_batch.config.schema import is_cpu_quantity, is_memory_quantity


@dataclass(frozen=True, slots=True)
class ResourceLimitSpec:
    """Resolved quantities; each is a well-formed quantity string or ``None``."""

    memory: str | None = None
    cpus: str | None = None

    def __post_init__(self) -> None:
        if self.memory is not None and not is_memory_quantity(self.memory):
            raise ValueError(f"invalid memory quantity {self.memory!r}")
        if self.cpus is not None and not is_cpu_quantity(self.cpus):
            raise ValueError(f"invalid cpu quantity {self.cpus!r}")

    @property
    def is_unrestricted(self) -> bool:
        return self.memory is None and self.cpus is None


@dataclass(frozen=True, slots=True)
class ResourceFlags:
    """Ready-to-use runtime flags; each is empty when its quantity is absent."""

    mem_flag: str = ""
    cpu_flag: str = ""

    @classmethod
    def from_spec(cls, spec: ResourceLimitSpec) -> ResourceFlags:
        return cls(
            mem_flag=f"--memory {spec.memory}" if spec.memory else "",
            cpu_flag=f"--cpus {spec.cpus}" if spec.cpus else "",
        )

    def as_args(self) -> tuple[str, ...]:
        """Split flags into argv tokens for a shell-free process invocation."""

        args: list[str] = []
        for flag in (self.mem_flag, self.cpu_flag):
            if flag:
                args.extend(flag.split(" ", 1))
        return tuple(args)


# Declaration order is significant: the first key contained in the image wins.
IMAGE_DEFAULTS: Final[tuple[tuple[str, ResourceLimitSpec], ...]] = (
    ("node:lts-slim", ResourceLimitSpec(memory="512m", cpus="1")),
    ("alfonsograziano/node-chartjs", ResourceLimitSpec(memory="2g", cpus="2")),
    ("mcr.microsoft.com/playwright", ResourceLimitSpec(memory="2g", cpus="2")),
)


@dataclass(frozen=True, slots=True)
class ResourceLimitConfig:
    """Explicit overrides and the ordered per-image defaults table."""

    memory_override: str | None = None
    cpu_override: str | None = None
    image_defaults: tuple[tuple[str, ResourceLimitSpec], ...] = field(
        default=IMAGE_DEFAULTS
    )

    def __post_init__(self) -> None:
        # None means "not set"; any string, including "", must be well formed.
        if self.memory_override is not None and not is_memory_quantity(self.memory_override):
            raise ValueError(f"invalid memory override {self.memory_override!r}")
        if self.cpu_override is not None and not is_cpu_quantity(self.cpu_override):
            raise ValueError(f"invalid cpu override {self.cpu_override!r}")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> ResourceLimitConfig:
        container = config.get("container", {})
        return cls(
            memory_override=container.get("memory_override") or None,
            cpu_override=container.get("cpu_override") or None,
        )


class ResourceLimitResolver:
    """Merge the first matching image default with explicit overrides.

    Matching is substring containment in declaration order, not most-specific
    match, so overlapping keys resolve to whichever was declared first.
    """

    def __init__(self, config: ResourceLimitConfig | None = None, *, logger: Any = None) -> None:
        self._config = config if config is not None else ResourceLimitConfig()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def config(self) -> ResourceLimitConfig:
        return self._config

    def match_default(self, image: str) -> tuple[str | None, ResourceLimitSpec]:
        for key, spec in self._config.image_defaults:
            if key in image:
                return key, spec
        return None, ResourceLimitSpec()

    def resolve(self, image: str | None) -> ResourceLimitSpec:
        if not image:
            return ResourceLimitSpec()
        matched_key, default = self.match_default(image)
        spec = ResourceLimitSpec(
            memory=self._config.memory_override or default.memory,
            cpus=self._config.cpu_override or default.cpus,
        )
        self._logger.debug(
            "resource_limits_resolved",
            image=image,
            matched_default=matched_key,
            memory=spec.memory,
            cpus=spec.cpus,
        )
        return spec

    def compute_resource_limits(self, image: str | None) -> ResourceFlags:
        return ResourceFlags.from_spec(self.resolve(image))


def compute_resource_limits(
    image: str | None, config: ResourceLimitConfig | None = None
) -> ResourceFlags:
    """One-shot helper around :class:`ResourceLimitResolver`."""

    return ResourceLimitResolver(config).compute_resource_limits(image)


__all__ = [
    "IMAGE_DEFAULTS",
    "ResourceFlags",
    "ResourceLimitConfig",
    "ResourceLimitResolver",
    "ResourceLimitSpec",
    "compute_resource_limits",
]
