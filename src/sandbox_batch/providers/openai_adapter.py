"""Single-attempt OpenAI chat-completions capability."""

from __future__ import annotations

import importlib
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol, cast

import structlog

from sandbox_batch.constants import DEFAULT_API_KEY_ENV, DEFAULT_CHAT_MODEL
from sandbox_batch.providers.base import ExecutionError, InitError


class _ChatCompletionsAPI(Protocol):
    async def create(self, **kwargs: object) -> object: ...


class _ChatAPI(Protocol):
    completions: _ChatCompletionsAPI


class _OpenAIClient(Protocol):
    chat: _ChatAPI


@dataclass(frozen=True, slots=True)
class OpenAIChatConfig:
    model: str = DEFAULT_CHAT_MODEL
    api_key_env: str = DEFAULT_API_KEY_ENV
    base_url: str | None = None
    timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        if not self.model.strip():
            raise ValueError("model must be a non-empty string")
        if not self.api_key_env.strip():
            raise ValueError("api_key_env must be a non-empty string")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> OpenAIChatConfig:
        provider = config.get("provider", {})
        return cls(
            model=provider.get("model", DEFAULT_CHAT_MODEL),
            api_key_env=provider.get("api_key_env", DEFAULT_API_KEY_ENV),
            base_url=provider.get("base_url"),
            timeout_seconds=provider.get("timeout_seconds"),
        )


class OpenAIChatCapability:
    """Send each payload as one user message; no retries beyond the single attempt."""

    name = "openai"

    def __init__(
        self,
        config: OpenAIChatConfig | None = None,
        *,
        client: _OpenAIClient | None = None,
        environ: Mapping[str, str] | None = None,
        logger: Any = None,
    ) -> None:
        self._config = config if config is not None else OpenAIChatConfig()
        self._client = client
        self._environ = environ
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def config(self) -> OpenAIChatConfig:
        return self._config

    async def initialize(self) -> None:
        if self._client is None:
            self._client = self._create_default_client()
        self._logger.info("capability_initialized", capability=self.name, model=self._config.model)

    async def execute(self, payload: str) -> object:
        if self._client is None:
            raise ExecutionError("capability used before initialize()", capability=self.name)
        try:
            response = await self._client.chat.completions.create(
                model=self._config.model,
                messages=[{"role": "user", "content": payload}],
            )
        except ExecutionError:
            raise
        except Exception as exc:
            raise ExecutionError(_exception_detail(exc), capability=self.name) from exc
        return _to_plain(response)

    def _create_default_client(self) -> _OpenAIClient:
        try:
            openai_module = importlib.import_module("openai")
        except ImportError as exc:
            raise InitError("openai SDK is not installed", capability=self.name) from exc

        async_openai = getattr(openai_module, "AsyncOpenAI", None)
        if async_openai is None:
            raise InitError("openai SDK does not expose AsyncOpenAI", capability=self.name)

        init_kwargs: dict[str, object] = {
            "api_key": self._resolve_api_key(),
            "max_retries": 0,
        }
        if self._config.base_url is not None:
            init_kwargs["base_url"] = self._config.base_url
        if self._config.timeout_seconds is not None:
            init_kwargs["timeout"] = self._config.timeout_seconds

        client = async_openai(**init_kwargs)
        if not hasattr(client, "chat"):
            raise InitError("openai client missing chat completions API", capability=self.name)
        return cast("_OpenAIClient", client)

    def _resolve_api_key(self) -> str:
        env = os.environ if self._environ is None else self._environ
        configured = env.get(self._config.api_key_env)
        if configured is None or not configured.strip():
            raise InitError(
                f"missing OpenAI API key in env var {self._config.api_key_env}",
                capability=self.name,
            )
        return configured.strip()


def _to_plain(response: object) -> object:
    model_dump = getattr(response, "model_dump", None)
    if callable(model_dump):
        return model_dump()
    return response


def _exception_detail(exc: Exception) -> str:
    status_code = getattr(exc, "status_code", None)
    detail = str(exc).strip() or exc.__class__.__name__
    if isinstance(status_code, int):
        return f"{exc.__class__.__name__} (status {status_code}): {detail}"
    return f"{exc.__class__.__name__}: {detail}"


__all__ = ["OpenAIChatCapability", "OpenAIChatConfig"]
