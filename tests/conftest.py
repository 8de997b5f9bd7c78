"""
Shared fakes for the test-suite.

No test talks to a real model or tool server: completions come from :class:`ScriptedCompletion`
and remote tool servers are served by ``httpx.MockTransport``.
"""

from typing import (
    Any,
    Dict,
    List,
    Optional,
    Sequence,
)

from pydantic import BaseModel

from typedagent.agent.completion import (
    CompletionError,
    CompletionService,
    TextCallback,
)
from typedagent.agent.selector import (
    PARAMETERS_PROMPT,
    SERVER_SELECTION_PROMPT,
    TOOL_SELECTION_PROMPT,
)
from typedagent.core.schema import (
    CompletionMessage,
    SamplingParams,
)

_KINDS = {
    SERVER_SELECTION_PROMPT: "servers",
    TOOL_SELECTION_PROMPT: "tools",
    PARAMETERS_PROMPT: "parameters",
}


class ScriptedCompletion(CompletionService):
    """
    Answers each kind of request with a canned reply.

    Replies are keyed by ``servers``, ``tools``, ``parameters`` and ``response`` (the final
    response-generation call).  A reply that is an exception instance is raised instead.  When
    the caller streams, the reply is fed back in chunks of *chunk_size* characters.
    """

    def __init__(self, chunk_size: int = 4, **replies: Any):
        self.replies: Dict[str, Any] = replies
        self.chunk_size = chunk_size
        self.calls: List[Dict[str, Any]] = []

    def kinds(self) -> List[str]:
        return [call["kind"] for call in self.calls]

    def complete(
        self,
        model: str,
        messages: Sequence[CompletionMessage],
        params: SamplingParams,
        on_text: Optional[TextCallback] = None,
    ) -> str:
        kind = _KINDS.get(messages[0].content, "response")
        self.calls.append(
            {
                "kind": kind,
                "model": model,
                "params": params,
                "user": messages[-1].content,
                "streamed": on_text is not None,
            }
        )
        reply = self.replies.get(kind)
        if reply is None:
            raise CompletionError(f"no scripted reply for {kind}")
        if isinstance(reply, Exception):
            raise reply

        if on_text is not None:
            for end in range(self.chunk_size, len(reply) + self.chunk_size, self.chunk_size):
                on_text(reply[:end])
        return reply


class Message(BaseModel):
    message: str


class Answer(BaseModel):
    answer: str

