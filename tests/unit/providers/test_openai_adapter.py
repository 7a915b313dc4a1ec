"""OpenAI chat capability with an injected fake client."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from sandbox_batch.providers.base import (
    ExecutionCapability,
    ExecutionError,
    InitError,
    supports_services,
)
from sandbox_batch.providers.openai_adapter import OpenAIChatCapability, OpenAIChatConfig


class _Completion:
    def __init__(self, content: str) -> None:
        self._content = content

    def model_dump(self) -> dict[str, object]:
        return {"choices": [{"message": {"role": "assistant", "content": self._content}}]}


class _FakeCompletions:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.calls: list[dict[str, object]] = []
        self._error = error

    async def create(self, **kwargs: object) -> object:
        self.calls.append(kwargs)
        if self._error is not None:
            raise self._error
        messages = kwargs["messages"]
        assert isinstance(messages, list)
        return _Completion(f"echo: {messages[0]['content']}")


def _client(completions: _FakeCompletions) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


async def test_sends_one_user_message_and_returns_plain_dict() -> None:
    completions = _FakeCompletions()
    capability = OpenAIChatCapability(
        OpenAIChatConfig(model="gpt-4o-mini"), client=_client(completions)
    )
    await capability.initialize()

    response = await capability.execute("What is 2+2?")

    assert completions.calls == [
        {"model": "gpt-4o-mini", "messages": [{"role": "user", "content": "What is 2+2?"}]}
    ]
    assert response == {
        "choices": [{"message": {"role": "assistant", "content": "echo: What is 2+2?"}}]
    }


async def test_sdk_errors_become_execution_errors_with_status() -> None:
    error = RuntimeError("rate limited")
    error.status_code = 429  # type: ignore[attr-defined]
    capability = OpenAIChatCapability(client=_client(_FakeCompletions(error=error)))
    await capability.initialize()

    with pytest.raises(ExecutionError, match="status 429") as excinfo:
        await capability.execute("hi")
    assert excinfo.value.__cause__ is error


async def test_missing_api_key_fails_initialization() -> None:
    capability = OpenAIChatCapability(
        OpenAIChatConfig(api_key_env="SANDBOX_BATCH_TEST_KEY"), environ={}
    )
    with pytest.raises(InitError, match="SANDBOX_BATCH_TEST_KEY"):
        await capability.initialize()


async def test_default_client_disables_sdk_retries() -> None:
    capability = OpenAIChatCapability(
        OpenAIChatConfig(timeout_seconds=12.5), environ={"OPENAI_API_KEY": "sk-test-000000000000"}
    )
    await capability.initialize()

    client = capability._client
    assert client is not None
    assert client.max_retries == 0  # type: ignore[attr-defined]


async def test_execute_before_initialize_is_an_execution_error() -> None:
    with pytest.raises(ExecutionError):
        await OpenAIChatCapability(client=None).execute("hi")


def test_chat_capability_satisfies_contract_but_not_services() -> None:
    capability = OpenAIChatCapability()
    assert isinstance(capability, ExecutionCapability)
    assert not supports_services(capability)


def test_config_validation() -> None:
    with pytest.raises(ValueError):
        OpenAIChatConfig(model=" ")
    with pytest.raises(ValueError):
        OpenAIChatConfig(timeout_seconds=0)
    assert OpenAIChatConfig.from_config(
        {"provider": {"model": "gpt-4o", "api_key_env": "KEY", "base_url": None}}
    ) == OpenAIChatConfig(model="gpt-4o", api_key_env="KEY")
