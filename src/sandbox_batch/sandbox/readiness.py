"""Deadline-bounded HTTP readiness polling for services started inside containers."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog

from sandbox_batch.constants import DEFAULT_READINESS_INTERVAL_MS, DEFAULT_READINESS_TIMEOUT_MS
from sandbox_batch.utils.concurrency import CancellationToken

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]


class ReadinessTimeoutError(TimeoutError):
    """Raised when a local service never answered within its deadline."""

    def __init__(self, port: int, timeout_ms: int) -> None:
        self.port = port
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Timeout: Server did not respond on {readiness_url(port)} within {timeout_ms}ms"
        )


def readiness_url(port: int) -> str:
    return f"http://localhost:{port}/"


def _is_ready_status(status_code: int) -> bool:
    # A 404 still proves the HTTP layer answered.
    return 200 <= status_code < 300 or status_code == 404


async def wait_for_ready(
    port: int,
    timeout_ms: int = DEFAULT_READINESS_TIMEOUT_MS,
    interval_ms: int = DEFAULT_READINESS_INTERVAL_MS,
    *,
    client: httpx.AsyncClient | None = None,
    cancel_token: CancellationToken | None = None,
    clock: Clock = time.monotonic,
    sleep: Sleep = asyncio.sleep,
    logger: Any = None,
) -> int:
    """Poll ``http://localhost:<port>/`` until it answers or ``timeout_ms`` elapses.

    The deadline is checked before every attempt and each failed attempt is
    followed by a fixed ``interval_ms`` sleep, so the timeout is never raised
    before ``timeout_ms`` has actually passed. Returns the number of attempts.
    """

    if not 1 <= port <= 65535:
        raise ValueError(f"port must be in 1..65535, got {port}")
    if timeout_ms <= 0:
        raise ValueError("timeout_ms must be > 0")
    if interval_ms <= 0:
        raise ValueError("interval_ms must be > 0")

    log = logger if logger is not None else structlog.get_logger(__name__)
    url = readiness_url(port)
    timeout_s = timeout_ms / 1000.0
    interval_s = interval_ms / 1000.0

    owns_client = client is None
    http = client if client is not None else httpx.AsyncClient()
    start = clock()
    attempts = 0
    try:
        while (elapsed := clock() - start) < timeout_s:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            attempts += 1
            try:
                response = await http.get(url, timeout=max(timeout_s - elapsed, interval_s))
            except httpx.HTTPError as exc:
                log.debug("readiness_probe_failed", port=port, attempt=attempts, error=str(exc))
            else:
                if _is_ready_status(response.status_code):
                    log.info(
                        "service_ready",
                        port=port,
                        attempts=attempts,
                        status_code=response.status_code,
                    )
                    return attempts
                log.debug(
                    "readiness_probe_unready",
                    port=port,
                    attempt=attempts,
                    status_code=response.status_code,
                )
            await sleep(interval_s)
    finally:
        if owns_client:
            await http.aclose()

    log.warning("readiness_timeout", port=port, timeout_ms=timeout_ms, attempts=attempts)
    raise ReadinessTimeoutError(port, timeout_ms)


__all__ = ["ReadinessTimeoutError", "readiness_url", "wait_for_ready"]
