"""Tests for completion providers and model routing (no network)."""

from types import SimpleNamespace
from typing import (
    Any,
    Dict,
    List,
)

import httpx
import pytest

from typedagent.agent.completion import (
    AnthropicProvider,
    CompletionError,
    ModelRouter,
    OpenAIProvider,
    TGIProvider,
    load_provider,
    provider_for_model,
)
from typedagent.core.schema import (
    LLM,
    CompletionMessage,
    SamplingParams,
)

MESSAGES = [
    CompletionMessage(role="system", content="Be brief."),
    CompletionMessage(role="user", content="<request><q>hi</q></request>"),
]


class FakeChatCompletions:
    """Stands in for ``client.chat.completions`` of the openai SDK."""

    def __init__(self, content: str):
        self.content = content
        self.requests: List[Dict[str, Any]] = []

    def create(self, **request: Any) -> Any:
        self.requests.append(request)
        if request.get("stream"):
            return iter(
                SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=piece))])
                for piece in (self.content[:3], None, self.content[3:])
            )
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _openai(content: str) -> OpenAIProvider:
    completions = FakeChatCompletions(content)
    return OpenAIProvider(client=SimpleNamespace(chat=SimpleNamespace(completions=completions)))


@pytest.mark.parametrize(
    "model, provider",
    [
        (LLM.gpt4o, "openai"),
        (LLM.claude, "anthropic"),
        (LLM.deepseek, "deepseek"),
        ("tgi-llama", "tgi"),
        ("o3-mini", "openai"),
    ],
)
def test_provider_for_model(model: str, provider: str) -> None:
    assert provider_for_model(model) == provider


def test_load_unknown_provider() -> None:
    with pytest.raises(ValueError):
        load_provider("nope")


def test_openai_request_parameters() -> None:
    """Regular models get temperature/max_tokens, reasoning models max_completion_tokens."""

    provider = _openai("<answer>hi</answer>")
    params = SamplingParams(temperature=0.3, max_tokens=123)

    assert provider.complete("gpt-4o", MESSAGES, params) == "<answer>hi</answer>"
    assert provider.complete("o1-preview", MESSAGES, params) == "<answer>hi</answer>"

    regular, reasoning = provider.client.chat.completions.requests
    assert regular["temperature"] == 0.3
    assert regular["max_tokens"] == 123
    assert regular["messages"][0] == {"role": "system", "content": "Be brief."}
    assert "temperature" not in reasoning
    assert reasoning["max_completion_tokens"] == 123


def test_openai_streaming_accumulates() -> None:
    provider = _openai("abcdef")
    seen: List[str] = []
    assert provider.complete("gpt-4o", MESSAGES, SamplingParams(), on_text=seen.append) == "abcdef"
    assert seen == ["abc", "abcdef"]


def test_empty_reply_is_an_error() -> None:
    with pytest.raises(CompletionError, match="Empty response"):
        _openai("").complete("gpt-4o", MESSAGES, SamplingParams())


def test_sdk_errors_are_wrapped() -> None:
    class Broken:
        def create(self, **_: Any) -> Any:
            raise ConnectionError("down")

    provider = OpenAIProvider(client=SimpleNamespace(chat=SimpleNamespace(completions=Broken())))
    with pytest.raises(CompletionError, match="down"):
        provider.complete("gpt-4o", MESSAGES, SamplingParams())


def test_anthropic_separates_system_prompt() -> None:
    requests: List[Dict[str, Any]] = []

    def create(**request: Any) -> Any:
        requests.append(request)
        return SimpleNamespace(content=[SimpleNamespace(type="text", text="<a>1</a>")])

    provider = AnthropicProvider(client=SimpleNamespace(messages=SimpleNamespace(create=create)))
    assert provider.complete(LLM.claude, MESSAGES, SamplingParams()) == "<a>1</a>"
    assert requests[0]["system"] == "Be brief."
    assert requests[0]["messages"] == [{"role": "user", "content": MESSAGES[1].content}]


def test_tgi_posts_prompt() -> None:
    bodies: List[bytes] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(request.content)
        return httpx.Response(200, json={"generated_text": "<answer>ok</answer>"})

    provider = TGIProvider(
        endpoint="http://tgi.test/generate", transport=httpx.MockTransport(handler)
    )
    assert provider.complete("tgi", MESSAGES, SamplingParams()) == "<answer>ok</answer>"
    assert b"User: <request>" in bodies[0]


def test_router_dispatches_by_model() -> None:
    openai_provider = _openai("from openai")
    router = ModelRouter(providers={"openai": openai_provider})
    assert router.provider("gpt-4o-mini") is openai_provider
    assert router.complete("gpt-4o-mini", MESSAGES, SamplingParams()) == "from openai"
