"""Stable constants shared across the orchestrator, sandbox, and CLI layers."""

from __future__ import annotations

from typing import Final

CONFIG_SCHEMA_VERSION: Final[int] = 1

DEFAULT_CONFIG_FILE: Final[str] = "sandbox_batch.toml"
ENV_PREFIX: Final[str] = "SANDBOX_BATCH_"

# Run defaults.
DEFAULT_BATCH_SIZE: Final[int] = 5
DEFAULT_TASKS_PATH: Final[str] = "evals/basicEvals.json"
DEFAULT_OUTPUT_PATH: Final[str] = "evalResults.jsonl"
DEFAULT_LOG_DIR: Final[str] = "logs/"

# Remote inference defaults.
DEFAULT_CHAT_MODEL: Final[str] = "gpt-4o-mini"
DEFAULT_API_KEY_ENV: Final[str] = "OPENAI_API_KEY"

# Container defaults.
DEFAULT_IMAGE: Final[str] = "node:lts-slim"
DEFAULT_CONTAINER_RUNTIME: Final[str] = "docker"
CONTAINER_RUNTIMES: Final[tuple[str, ...]] = ("docker", "podman")
DEFAULT_READINESS_TIMEOUT_MS: Final[int] = 10_000
DEFAULT_READINESS_INTERVAL_MS: Final[int] = 250

PROVIDER_KINDS: Final[tuple[str, ...]] = ("openai", "container")

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "CONTAINER_RUNTIMES",
    "DEFAULT_API_KEY_ENV",
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_CHAT_MODEL",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_CONTAINER_RUNTIME",
    "DEFAULT_IMAGE",
    "DEFAULT_LOG_DIR",
    "DEFAULT_OUTPUT_PATH",
    "DEFAULT_READINESS_INTERVAL_MS",
    "DEFAULT_READINESS_TIMEOUT_MS",
    "DEFAULT_TASKS_PATH",
    "ENV_PREFIX",
    "PROVIDER_KINDS",
]
