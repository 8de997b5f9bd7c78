"""
Completion service interface for typedagent.

This module is the only place that *directly* calls an LLM.  Everything else (selection,
parameter generation, response assembly) goes through :class:`CompletionService` and stays
model-agnostic.

We support these back-ends out of the box:

1. **OpenAI** and OpenAI-compatible APIs (DeepSeek) via the ``openai`` SDK.
2. **Anthropic** via the ``anthropic`` SDK.
3. **Hugging Face Text-Generation-Inference (TGI)** for self-hosted models, via ``httpx``.

:class:`ModelRouter` picks the back-end from the model identifier.  Additional providers can be
added by subclassing :class:`BaseProvider` and registering via :func:`register_provider`.
"""

import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    Type,
)

import httpx

from typedagent.config import settings
from typedagent.core.schema import (
    CompletionMessage,
    SamplingParams,
)
from typedagent.core.tracing import TracingScope

logger = logging.getLogger(__name__)

TextCallback = Callable[[str], None]
"""Receives the full text accumulated so far while a reply streams in."""

_REASONING_PREFIXES = ("o1", "o3", "o4", "gpt-5")


class CompletionError(RuntimeError):
    """Raised when a completion request fails or returns nothing."""


class CompletionService(ABC):
    """Anything that can turn a message list into generated text."""

    @abstractmethod
    def complete(
        self,
        model: str,
        messages: Sequence[CompletionMessage],
        params: SamplingParams,
        on_text: Optional[TextCallback] = None,
    ) -> str:
        """Return the generated text; raise :class:`CompletionError` on failure."""


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_PROVIDER_REGISTRY: Dict[str, Type["BaseProvider"]] = {}


def register_provider(name: str) -> Callable:
    """Decorator to register a provider class under *name*."""

    def wrapper(cls: Type["BaseProvider"]) -> Type["BaseProvider"]:
        _PROVIDER_REGISTRY[name] = cls
        return cls

    return wrapper


def load_provider(name: str) -> "BaseProvider":
    """Instantiate the provider registered under *name*."""
    cls = _PROVIDER_REGISTRY.get(name.lower())
    if cls is None:
        raise ValueError(f"Provider '{name}' is not registered.")
    return cls()


def provider_for_model(model: str) -> str:
    """Map a model identifier to a registered provider name."""
    lowered = model.lower()
    if "claude" in lowered:
        return "anthropic"
    if "deepseek" in lowered:
        return "deepseek"
    if lowered.startswith("tgi"):
        return "tgi"
    return "openai"


def _is_reasoning_model(model: str) -> bool:
    return model.lower().startswith(_REASONING_PREFIXES)


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseProvider(CompletionService):
    """A single vendor back-end."""

    name: str = "base"

    def complete(
        self,
        model: str,
        messages: Sequence[CompletionMessage],
        params: SamplingParams,
        on_text: Optional[TextCallback] = None,
    ) -> str:
        try:
            content = self._complete(model, list(messages), params, on_text)
        except CompletionError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("%s completion error: %s", self.name, str(exc))
            raise CompletionError(f"{self.name} API error: {exc}") from exc

        if not content:
            logger.error("%s returned an empty response", self.name)
            raise CompletionError(f"Empty response from {self.name}")
        logger.debug("%s response: %s", self.name, content[:500])
        return content

    @abstractmethod
    def _complete(
        self,
        model: str,
        messages: List[CompletionMessage],
        params: SamplingParams,
        on_text: Optional[TextCallback],
    ) -> str:
        """Vendor-specific request; may raise anything."""


# ---------------------------------------------------------------------------
# Concrete providers
# ---------------------------------------------------------------------------
@register_provider("openai")
class OpenAIProvider(BaseProvider):
    """OpenAI chat-completions provider."""

    name = "OpenAI"

    def __init__(self, client: Any = None):
        self._client = client

    def _make_client(self) -> Any:
        import openai  # pylint: disable=import-outside-toplevel

        return openai.OpenAI(
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.OPENAI_BASE_URL,
            timeout=settings.LLM_TIMEOUT_S,
        )

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = self._make_client()
        return self._client

    def _request(
        self, model: str, messages: List[CompletionMessage], params: SamplingParams
    ) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "model": model,
            "messages": [message.model_dump() for message in messages],
        }
        if _is_reasoning_model(model):
            request["max_completion_tokens"] = params.max_tokens
        else:
            request["temperature"] = params.temperature
            request["max_tokens"] = params.max_tokens
        return request

    def _complete(
        self,
        model: str,
        messages: List[CompletionMessage],
        params: SamplingParams,
        on_text: Optional[TextCallback],
    ) -> str:
        request = self._request(model, messages, params)
        if on_text is None:
            resp = self.client.chat.completions.create(**request)
            return resp.choices[0].message.content or ""

        accumulated = ""
        for chunk in self.client.chat.completions.create(stream=True, **request):
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                accumulated += delta
                on_text(accumulated)
        return accumulated


@register_provider("deepseek")
class DeepSeekProvider(OpenAIProvider):
    """DeepSeek through its OpenAI-compatible endpoint."""

    name = "DeepSeek"

    def _make_client(self) -> Any:
        import openai  # pylint: disable=import-outside-toplevel

        return openai.OpenAI(
            api_key=settings.DEEPSEEK_API_KEY,
            base_url=settings.DEEPSEEK_BASE_URL,
            timeout=settings.LLM_TIMEOUT_S,
        )


@register_provider("anthropic")
class AnthropicProvider(BaseProvider):
    """Anthropic Claude messages provider."""

    name = "Anthropic"

    def __init__(self, client: Any = None):
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            import anthropic  # pylint: disable=import-outside-toplevel

            self._client = anthropic.Anthropic(
                api_key=settings.ANTHROPIC_API_KEY, timeout=settings.LLM_TIMEOUT_S
            )
        return self._client

    def _complete(
        self,
        model: str,
        messages: List[CompletionMessage],
        params: SamplingParams,
        on_text: Optional[TextCallback],
    ) -> str:
        # Anthropic takes the system prompt separately from the conversation
        system = "\n\n".join(m.content for m in messages if m.role == "system")
        request: Dict[str, Any] = {
            "model": model,
            "max_tokens": params.max_tokens,
            "temperature": params.temperature,
            "messages": [
                {"role": m.role, "content": m.content} for m in messages if m.role != "system"
            ],
        }
        if system:
            request["system"] = system

        if on_text is None:
            response = self.client.messages.create(**request)
            return "".join(
                block.text for block in response.content if getattr(block, "type", "") == "text"
            )

        accumulated = ""
        with self.client.messages.stream(**request) as stream:
            for delta in stream.text_stream:
                accumulated += delta
                on_text(accumulated)
        return accumulated


@register_provider("tgi")
class TGIProvider(BaseProvider):
    """Self-hosted Text-Generation-Inference endpoint."""

    name = "TGI"

    def __init__(
        self, endpoint: Optional[str] = None, transport: Optional[httpx.BaseTransport] = None
    ):
        self._endpoint = endpoint or settings.TGI_ENDPOINT
        self._transport = transport

    def _complete(
        self,
        model: str,
        messages: List[CompletionMessage],
        params: SamplingParams,
        on_text: Optional[TextCallback],
    ) -> str:
        prompt = "\n\n".join(
            m.content if m.role == "system" else f"User: {m.content}" for m in messages
        )
        payload = {
            "inputs": prompt,
            "parameters": {
                "max_new_tokens": params.max_tokens,
                "temperature": params.temperature,
                "stop": ["User:", "</s>"],
            },
        }
        with httpx.Client(timeout=settings.LLM_TIMEOUT_S, transport=self._transport) as client:
            resp = client.post(self._endpoint, json=payload)
            resp.raise_for_status()
            content = resp.json()["generated_text"]
        if on_text is not None and content:
            on_text(content)
        return content


# ---------------------------------------------------------------------------
# Routing service
# ---------------------------------------------------------------------------
class ModelRouter(CompletionService):
    """Default service: dispatches each request to the provider its model id calls for."""

    def __init__(self, providers: Optional[Dict[str, BaseProvider]] = None):
        self._providers: Dict[str, BaseProvider] = dict(providers or {})

    def provider(self, model: str) -> BaseProvider:
        name = provider_for_model(model)
        if name not in self._providers:
            self._providers[name] = load_provider(name)
        return self._providers[name]

    def complete(
        self,
        model: str,
        messages: Sequence[CompletionMessage],
        params: SamplingParams,
        on_text: Optional[TextCallback] = None,
    ) -> str:
        return self.provider(model).complete(model, messages, params, on_text)


def call_completion(
    service: CompletionService,
    model: str,
    messages: Sequence[CompletionMessage],
    params: SamplingParams,
    scope: TracingScope,
    on_text: Optional[TextCallback] = None,
) -> str:
    """Issue one completion request inside its own tracing scope."""
    with scope.child(f"LLM call to {model}"):
        return service.complete(model, messages, params, on_text)
