"""
External execution capability contract.

The orchestrator treats every backend (remote chat call, container command) as
an opaque capability with two operations:

- ``initialize()`` prepares clients/runtimes and raises ``InitError`` when the
  backend cannot be used at all; this aborts a run before any batch starts.
- ``execute(payload)`` runs one unit of work and raises ``ExecutionError`` (or
  any other ``Exception``) on failure; the orchestrator converts that into a
  Failure record for the task alone.

Capabilities that can also start long-running services expose
``execute_service(payload, port)``; see ``ServiceCapability``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


class CapabilityError(RuntimeError):
    """Base capability error carrying the backend name and a normalized detail."""

    def __init__(self, detail: str, *, capability: str = "capability") -> None:
        self.capability = capability
        self.detail = " ".join(str(detail).split()) or "unknown error"
        super().__init__(f"{self.capability}: {self.detail}")


class InitError(CapabilityError):
    """Raised when a capability cannot be initialized (fatal for the run)."""


class ExecutionError(CapabilityError):
    """Raised when one execution fails (recoverable, isolated to its task)."""

    def __init__(
        self,
        detail: str,
        *,
        capability: str = "capability",
        exit_code: int | None = None,
    ) -> None:
        self.exit_code = exit_code
        super().__init__(detail, capability=capability)


@runtime_checkable
class ExecutionCapability(Protocol):
    """Opaque, swappable execution backend."""

    name: str

    async def initialize(self) -> None: ...

    async def execute(self, payload: str) -> object: ...


@runtime_checkable
class ServiceCapability(ExecutionCapability, Protocol):
    """Capability that can also launch a service and wait for its port."""

    async def execute_service(self, payload: str, port: int) -> object: ...


def supports_services(capability: object) -> bool:
    return isinstance(capability, ServiceCapability)


__all__ = [
    "CapabilityError",
    "ExecutionCapability",
    "ExecutionError",
    "InitError",
    "ServiceCapability",
    "supports_services",
]
