"""
Schema definitions for agent <-> completion service <-> tool server messages.

These data models serve as the contract between the orchestration pipeline, the completion
providers, the tool registry and the caller's progress callback.  We keep them separate from
runtime logic so they can be imported anywhere without side-effects.
"""

from typing import (
    Any,
    Callable,
    Dict,
    Literal,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)


class LLM:
    """Well-known model identifiers."""

    gpt4o = "gpt-4o"
    gpt4o_mini = "gpt-4o-mini"
    gpt4 = "gpt-4"
    claude = "claude-3-sonnet-20240229"
    deepseek = "deepseek-chat"


class ServerDescriptor(BaseModel):
    """A tool server the agent may consult."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Unique server name")
    description: str = Field("", description="What the server is good for")
    url: str = Field(..., description="Base URL (http(s)://... or local://<name>)")


class ToolDescriptor(BaseModel):
    """A tool discovered on a server."""

    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=dict, alias="inputSchema")

    model_config = ConfigDict(populate_by_name=True)


class CompletionMessage(BaseModel):
    """One message of a completion request."""

    role: Literal["system", "user"]
    content: str


class SamplingParams(BaseModel):
    """Sampling parameters sent with a completion request."""

    temperature: float = 0.7
    max_tokens: int = 4000


class ProgressUpdate(BaseModel):
    """Stage-level progress notification."""

    stage: Literal["server_selection", "tool_discovery", "tool_invocation", "response_generation"]
    message: str
    data: Optional[Dict[str, Any]] = None


class StreamingUpdate(BaseModel):
    """Text accumulated so far for one output field."""

    stage: Literal["streaming"] = "streaming"
    field: str
    value: str


ProgressEvent = Union[ProgressUpdate, StreamingUpdate]
ProgressCallback = Callable[[ProgressEvent], None]


def server(name: str, description: str, url: str) -> ServerDescriptor:
    """Shorthand for declaring a tool server."""
    return ServerDescriptor(name=name, description=description, url=url)
