"""typedagent: agents with typed input and typed output over tool servers."""

from typedagent.agent.completion import (
    CompletionError,
    CompletionService,
    ModelRouter,
)
from typedagent.agent.orchestrator import (
    Agent,
    AgentRun,
    OutputSchemaError,
    PipelineStage,
)
from typedagent.agent.tool_executor import ToolExecutionError
from typedagent.core.definition import load_agent
from typedagent.core.descriptor import (
    FieldKind,
    SchemaDescriptor,
    UnsupportedSchemaError,
)
from typedagent.core.schema import (
    LLM,
    ProgressEvent,
    ProgressUpdate,
    ServerDescriptor,
    StreamingUpdate,
    server,
)
from typedagent.tools import register_tool
from typedagent.tools.registry import ToolRegistry

__all__ = [
    "LLM",
    "Agent",
    "AgentRun",
    "CompletionError",
    "CompletionService",
    "FieldKind",
    "ModelRouter",
    "OutputSchemaError",
    "PipelineStage",
    "ProgressEvent",
    "ProgressUpdate",
    "SchemaDescriptor",
    "ServerDescriptor",
    "StreamingUpdate",
    "ToolExecutionError",
    "ToolRegistry",
    "UnsupportedSchemaError",
    "load_agent",
    "register_tool",
    "server",
]
