"""
Main orchestration pipeline for typedagent.

A run moves strictly forward through these stages::

    validating -> selecting_servers -> discovering_tools -> invoking_tools
               -> generating_response -> validating_output -> done

Only two things abort a run: input that fails the input schema, and an output schema that even
the synthesized fallback cannot satisfy.  Every external call (completion requests, tool
discovery, tool invocation) may fail on its own; such failures are logged and the run carries on
with less data.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Any,
    Dict,
    Generic,
    List,
    Mapping,
    Optional,
    Sequence,
    Type,
    TypeVar,
)

from pydantic import (
    BaseModel,
    ValidationError,
)

from typedagent.agent.completion import (
    CompletionService,
    ModelRouter,
    call_completion,
)
from typedagent.agent.selector import ToolSelector
from typedagent.agent.tool_executor import (
    ToolExecutionError,
    discover_tools,
    execute_tool,
)
from typedagent.common import preview
from typedagent.config import settings
from typedagent.core.assembly import (
    FieldStreamer,
    assemble_output,
)
from typedagent.core.descriptor import (
    FieldKind,
    SchemaDescriptor,
    reject_array_fields,
)
from typedagent.core.fallback import wholesale_fallback
from typedagent.core.markup import (
    decode,
    encode,
)
from typedagent.core.schema import (
    CompletionMessage,
    ProgressCallback,
    ProgressEvent,
    ProgressUpdate,
    SamplingParams,
    ServerDescriptor,
    StreamingUpdate,
    ToolDescriptor,
)
from typedagent.core.tracing import TracingScope
from typedagent.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

InT = TypeVar("InT", bound=BaseModel)
OutT = TypeVar("OutT", bound=BaseModel)

DEFAULT_SYSTEM_PROMPT = """\
You are an AI assistant that provides helpful responses based on user input and available context.
Generate responses that match the specified output format exactly.

IMPORTANT: Format your response with one tag per field named in output_format, for example:
<correctResponse>Your main response here</correctResponse>
<thinkingComments>Your thinking process here</thinkingComments>
Fields of type object contain one nested tag per sub-field."""


class OutputSchemaError(RuntimeError):
    """Raised when not even the fallback output satisfies the output schema."""


class PipelineStage(str, enum.Enum):
    """Stages of a run, in execution order."""

    VALIDATING = "validating"
    SELECTING_SERVERS = "selecting_servers"
    DISCOVERING_TOOLS = "discovering_tools"
    INVOKING_TOOLS = "invoking_tools"
    GENERATING_RESPONSE = "generating_response"
    VALIDATING_OUTPUT = "validating_output"
    DONE = "done"


_STAGE_ORDER = list(PipelineStage)


@dataclass
class AgentRun(Generic[OutT]):
    """Everything one run produced."""

    request_id: str
    trace: TracingScope
    stage: PipelineStage = PipelineStage.VALIDATING
    output: Optional[OutT] = None
    selected_servers: List[ServerDescriptor] = field(default_factory=list)
    tools: Dict[str, List[ToolDescriptor]] = field(default_factory=dict)
    tool_results: Dict[str, Any] = field(default_factory=dict)
    reply: Optional[str] = None
    used_fallback: bool = False

    def advance(self, stage: PipelineStage) -> None:
        """Move to *stage*; stages never go backwards."""
        if _STAGE_ORDER.index(stage) < _STAGE_ORDER.index(self.stage):
            raise RuntimeError(f"Cannot move from {self.stage.value} back to {stage.value}")
        logger.debug("[%s] stage %s -> %s", self.request_id, self.stage.value, stage.value)
        self.stage = stage


class Agent(Generic[InT, OutT]):
    """
    A declared agent: typed input in, typed output out.

    Parameters
    ----------
    model:
        Model identifier passed to the completion service (see :class:`typedagent.LLM`).
    input_format, output_format:
        Pydantic models describing the input and output.  The output model may not contain list
        fields at any depth.
    servers:
        Tool servers the agent may consult.  Names must be unique.
    system_prompt:
        Replaces the default system prompt of the response-generation call.
    temperature, max_tokens:
        Sampling parameters of the response-generation call.
    completion, tool_registry:
        Collaborators; default to :class:`ModelRouter` and :class:`ToolRegistry`.

    Raises
    ------
    UnsupportedSchemaError
        If *output_format* declares an array field.
    ValueError
        If server names are empty or repeated.
    """

    def __init__(
        self,
        model: str,
        input_format: Type[InT],
        output_format: Type[OutT],
        servers: Optional[Sequence[ServerDescriptor]] = None,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        completion: Optional[CompletionService] = None,
        tool_registry: Optional[ToolRegistry] = None,
    ):
        self.model = model
        self.input_schema = SchemaDescriptor(input_format)
        self.output_schema = SchemaDescriptor(output_format)
        reject_array_fields(self.output_schema)

        self.servers = tuple(servers or ())
        names = [s.name for s in self.servers]
        if len(set(names)) != len(names):
            raise ValueError(f"Server names must be unique, got {names}")

        self.system_prompt = system_prompt or DEFAULT_SYSTEM_PROMPT
        self.params = SamplingParams(
            temperature=temperature if temperature is not None else settings.DEFAULT_TEMPERATURE,
            max_tokens=max_tokens or settings.DEFAULT_MAX_TOKENS,
        )
        self.completion = completion or ModelRouter()
        self.tool_registry = tool_registry or ToolRegistry()
        self.selector = ToolSelector(self.completion, model)

    def __repr__(self) -> str:
        return (
            f"Agent(model={self.model!r}, input={self.input_schema.model.__name__}, "
            f"output={self.output_schema.model.__name__}, servers={[s.name for s in self.servers]})"
        )

    @property
    def input_format(self) -> Type[InT]:
        return self.input_schema.model  # type: ignore[return-value]

    @property
    def output_format(self) -> Type[OutT]:
        return self.output_schema.model  # type: ignore[return-value]

    # -----------------------------------------------------------------------
    # Public entry points
    # -----------------------------------------------------------------------
    def run(
        self, input_value: InT | Mapping[str, Any], progress: Optional[ProgressCallback] = None
    ) -> OutT:
        """Run the agent and return the validated output."""
        return self.run_detailed(input_value, progress).output  # type: ignore[return-value]

    def run_detailed(
        self, input_value: InT | Mapping[str, Any], progress: Optional[ProgressCallback] = None
    ) -> AgentRun[OutT]:
        """
        Run the agent and return the output together with what led to it.

        Raises
        ------
        pydantic.ValidationError
            If *input_value* does not satisfy the input schema.
        OutputSchemaError
            If the fallback output does not satisfy the output schema either.
        """
        root = TracingScope.root(f"Agent.run for {self.model}")
        run: AgentRun[OutT] = AgentRun(request_id=root.request_id or "", trace=root)

        with root.activate():
            with root.child("Validate input schema"):
                validated = self.input_schema.validate(input_value)
            payload = validated.model_dump(mode="json")

            if self.servers:
                run.advance(PipelineStage.SELECTING_SERVERS)
                self._select_servers(run, payload, progress, root)

            run.advance(PipelineStage.DISCOVERING_TOOLS)
            if run.selected_servers:
                self._discover(run, progress, root)

            run.advance(PipelineStage.INVOKING_TOOLS)
            if run.tools:
                with root.child("Invoke tools") as scope:
                    self._invoke_tools(run, payload, progress, scope)

            run.advance(PipelineStage.GENERATING_RESPONSE)
            _notify(progress, ProgressUpdate(
                stage="response_generation", message="Generating final response..."
            ))
            streamer = self._streamer(progress)
            candidate = self._generate_response(run, payload, root, streamer)

            run.advance(PipelineStage.VALIDATING_OUTPUT)
            output = self._validate_output(run, candidate, payload, root)
            run.output = output  # type: ignore[assignment]
            if streamer is not None:
                streamer.finish(output.model_dump())

            run.advance(PipelineStage.DONE)
        return run

    # -----------------------------------------------------------------------
    # Stages
    # -----------------------------------------------------------------------
    def _select_servers(
        self,
        run: AgentRun,
        payload: Dict[str, Any],
        progress: Optional[ProgressCallback],
        scope: TracingScope,
    ) -> None:
        _notify(progress, ProgressUpdate(
            stage="server_selection",
            message="Analyzing input to determine relevant servers...",
        ))
        with scope.child("Select relevant MCP servers") as sub:
            run.selected_servers = self.selector.select_servers(payload, self.servers, sub)
        _notify(progress, ProgressUpdate(
            stage="server_selection",
            message=f"Selected {len(run.selected_servers)} relevant servers",
            data={"servers": [s.name for s in run.selected_servers]},
        ))

    def _discover(
        self, run: AgentRun, progress: Optional[ProgressCallback], scope: TracingScope
    ) -> None:
        _notify(progress, ProgressUpdate(
            stage="tool_discovery", message="Discovering available tools..."
        ))
        with scope.child("Discover tools") as sub:
            for server in run.selected_servers:
                tools = discover_tools(self.tool_registry, server, sub)
                if tools:
                    run.tools[server.name] = tools
        _notify(progress, ProgressUpdate(
            stage="tool_discovery",
            message=f"Discovered {sum(len(t) for t in run.tools.values())} tools",
            data={"tools": {name: [t.name for t in tools] for name, tools in run.tools.items()}},
        ))

    def _invoke_tools(
        self,
        run: AgentRun,
        payload: Dict[str, Any],
        progress: Optional[ProgressCallback],
        scope: TracingScope,
    ) -> None:
        # Servers and tools run one at a time, in selection order
        for server in run.selected_servers:
            tools = run.tools.get(server.name)
            if not tools:
                continue
            relevant = self.selector.select_tools(payload, server, tools, scope)
            for tool in relevant:
                key = f"{server.name}.{tool.name}"
                _notify(progress, ProgressUpdate(
                    stage="tool_invocation", message=f"Invoking {key}..."
                ))
                try:
                    with scope.child(f"Execute {key}") as sub:
                        parameters = self.selector.generate_parameters(payload, tool, sub)
                        run.tool_results[key] = execute_tool(
                            self.tool_registry, server, tool.name, parameters, sub
                        )
                except ToolExecutionError as exc:
                    logger.warning("Failed to invoke %s: %s", key, exc)
                except Exception as exc:  # pylint: disable=broad-except
                    logger.warning("Failed to prepare %s: %s", key, exc)

    def _streamer(self, progress: Optional[ProgressCallback]) -> Optional[FieldStreamer]:
        if progress is None:
            return None
        # choice fields are committed whole, never as partial text
        names = [
            s.name
            for s in self.output_schema.fields()
            if s.kind is FieldKind.STRING and not s.choices
        ]
        if not names:
            return None
        return FieldStreamer(
            names,
            lambda name, value: _notify(progress, StreamingUpdate(field=name, value=value)),
        )

    def _generate_response(
        self,
        run: AgentRun,
        payload: Dict[str, Any],
        scope: TracingScope,
        streamer: Optional[FieldStreamer],
    ) -> Optional[Dict[str, Any]]:
        """Return the assembled candidate output, or ``None`` if no reply was obtained."""
        with scope.child("Generate AI response") as sub:
            with sub.child("Generate response prompt"):
                user_prompt = encode({
                    "input": payload,
                    "context": {"tool_results": run.tool_results},
                    "output_format": self.output_schema.describe(),
                    "task": "Generate a response matching the output format exactly, "
                    "using XML tags for each field",
                })
            messages = [
                CompletionMessage(role="system", content=self.system_prompt),
                CompletionMessage(role="user", content=f"<request>{user_prompt}</request>"),
            ]
            try:
                run.reply = call_completion(
                    self.completion,
                    self.model,
                    messages,
                    self.params,
                    sub,
                    on_text=streamer.feed if streamer is not None else None,
                )
            except Exception as exc:  # pylint: disable=broad-except
                logger.warning("Response generation failed: %s", exc)
                return None
            logger.info("LLM Response: %s", preview(run.reply, 500))

            with sub.child("Parse LLM response XML"):
                tree = decode(run.reply, typed=False)
            logger.debug("Parsed reply: %s", tree)

            with sub.child("Build structured response object"):
                candidate = assemble_output(self.output_schema, tree, run.reply)
            logger.info("Final result before validation: %s", preview(candidate, 500))
            return candidate

    def _validate_output(
        self,
        run: AgentRun,
        candidate: Optional[Dict[str, Any]],
        payload: Dict[str, Any],
        scope: TracingScope,
    ) -> BaseModel:
        if candidate is not None:
            try:
                with scope.child("Validate output schema"):
                    return self.output_schema.validate(candidate)
            except ValidationError as exc:
                logger.error("Output validation failed: %s", exc)

        run.used_fallback = True
        with scope.child("Generate fallback response"):
            fallback = wholesale_fallback(self.output_schema, payload)
        try:
            with scope.child("Validate fallback response"):
                return self.output_schema.validate(fallback)
        except ValidationError as exc:
            raise OutputSchemaError(
                f"Output schema {self.output_schema.model.__name__} cannot be satisfied "
                f"by the fallback response: {exc}"
            ) from exc


def _notify(progress: Optional[ProgressCallback], event: ProgressEvent) -> None:
    if progress is None:
        return
    try:
        progress(event)
    except Exception:  # pylint: disable=broad-except
        logger.exception("Progress callback failed for %s event", event.stage)
