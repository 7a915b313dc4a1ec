"""Execution capabilities consumed by the batch orchestrator."""

from sandbox_batch.providers.base import (
    CapabilityError,
    ExecutionCapability,
    ExecutionError,
    InitError,
    ServiceCapability,
    supports_services,
)
from sandbox_batch.providers.openai_adapter import OpenAIChatCapability, OpenAIChatConfig

__all__ = [
    "CapabilityError",
    "ExecutionCapability",
    "ExecutionError",
    "InitError",
    "OpenAIChatCapability",
    "OpenAIChatConfig",
    "ServiceCapability",
    "supports_services",
]
