"""
Asks the completion service which servers and tools a request needs.

Every selection follows the same protocol: the input and the candidates are rendered as markup,
sent with a low temperature, and the reply is read back with the markup codec.  Candidates are
kept in their configured order, whatever order the reply lists them in.

When the reply cannot be interpreted the fallbacks differ on purpose: server selection keeps
every server, tool selection keeps only the first tool.
"""

import logging
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    TypeVar,
    Union,
)

from typedagent.agent.completion import (
    CompletionService,
    call_completion,
)
from typedagent.common import preview
from typedagent.config import settings
from typedagent.core.assembly import (
    MISSING,
    lookup,
)
from typedagent.core.markup import (
    decode,
    encode,
)
from typedagent.core.schema import (
    CompletionMessage,
    SamplingParams,
    ServerDescriptor,
    ToolDescriptor,
)
from typedagent.core.tracing import TracingScope

logger = logging.getLogger(__name__)

Candidate = TypeVar("Candidate", bound=Union[ServerDescriptor, ToolDescriptor])

SERVER_SELECTION_PROMPT = """\
You are analyzing user input to determine which servers might be relevant to fulfill the request.
Select only servers that are likely needed based on the input content.
Reply with the selected names inside the tags shown in response_format, one <item> per name."""

TOOL_SELECTION_PROMPT = """\
You are selecting which tools from a server should be used to fulfill a user request.
Select only tools that are necessary for the given input.
Reply with the selected names inside the tags shown in response_format, one <item> per name."""

PARAMETERS_PROMPT = """\
You are generating parameters for a tool invocation based on user input and tool specification.
Generate appropriate parameters that match the tool's input schema.
Reply with one tag per parameter inside a single <parameters> tag."""


def _names(value: Any) -> Optional[List[str]]:
    """Normalise the ``names`` element of a selection reply; ``None`` if unusable."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (str, int, float)):
        text = str(value)
        return [part.strip() for part in text.replace("\n", ",").split(",") if part.strip()]
    if isinstance(value, list):
        names: List[str] = []
        for item in value:
            nested = _names(item)
            if nested is None:
                return None
            names.extend(nested)
        return names
    if isinstance(value, Mapping):
        return _names(list(value.values()))
    return None


def _plain(value: Any) -> Any:
    """Copy a decoded subtree into plain dicts/lists."""
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


class ToolSelector:
    """Selection and parameter-generation calls for one agent configuration."""

    def __init__(self, completion: CompletionService, model: str, max_tokens: int | None = None):
        self.completion = completion
        self.model = model
        self.params = SamplingParams(
            temperature=settings.SELECTION_TEMPERATURE,
            max_tokens=max_tokens or settings.DEFAULT_MAX_TOKENS,
        )

    def _ask(
        self, system_prompt: str, payload: Dict[str, Any], scope: TracingScope, label: str
    ) -> str:
        with scope.child(f"Generate {label} prompt"):
            user_prompt = encode(payload)
        messages = [
            CompletionMessage(role="system", content=system_prompt),
            CompletionMessage(role="user", content=f"<request>{user_prompt}</request>"),
        ]
        return call_completion(self.completion, self.model, messages, self.params, scope)

    def _select(
        self,
        candidates: Sequence[Candidate],
        *,
        system_prompt: str,
        payload: Dict[str, Any],
        response_key: str,
        scope: TracingScope,
        label: str,
    ) -> Optional[List[Candidate]]:
        """Return the chosen candidates, or ``None`` if the reply could not be used."""
        try:
            reply = self._ask(system_prompt, payload, scope, label)
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("%s request failed: %s", label.capitalize(), exc)
            return None

        with scope.child(f"Parse {label} response"):
            tree = decode(reply)
            section = lookup(tree, response_key)
            if not isinstance(section, Mapping) or "names" not in section:
                logger.warning(
                    "%s reply has no <%s><names>: %s", label, response_key, preview(reply)
                )
                return None
            names = _names(section["names"])
            if names is None:
                logger.warning("%s reply has unreadable names: %r", label, section["names"])
                return None
            wanted = set(names)
            return [candidate for candidate in candidates if candidate.name in wanted]

    def select_servers(
        self, input_value: Any, servers: Sequence[ServerDescriptor], scope: TracingScope
    ) -> List[ServerDescriptor]:
        """Pick the servers relevant to *input_value*; all of them if the reply is unusable."""
        if not servers:
            return []
        payload = {
            "input": input_value,
            "available_servers": [
                {"name": s.name, "description": s.description} for s in servers
            ],
            "task": "Select relevant server names that should be used to fulfill this request",
            "response_format": {"relevant_servers": {"names": "array of server names"}},
        }
        with scope.child("Select relevant servers") as sub:
            selected = self._select(
                servers,
                system_prompt=SERVER_SELECTION_PROMPT,
                payload=payload,
                response_key="relevant_servers",
                scope=sub,
                label="server selection",
            )
        if selected is None:
            logger.warning("Failed to interpret server selection, using all servers")
            return list(servers)
        logger.info(
            "Selected %d/%d servers: %s", len(selected), len(servers), [s.name for s in selected]
        )
        return selected

    def select_tools(
        self,
        input_value: Any,
        server: ServerDescriptor,
        tools: Sequence[ToolDescriptor],
        scope: TracingScope,
    ) -> List[ToolDescriptor]:
        """Pick the tools of *server* to invoke; only the first one if the reply is unusable."""
        if not tools:
            return []
        payload = {
            "input": input_value,
            "server": server.name,
            "available_tools": [{"name": t.name, "description": t.description} for t in tools],
            "task": "Select tool names that should be invoked",
            "response_format": {"selected_tools": {"names": "array of tool names"}},
        }
        with scope.child(f"Select relevant tools from {server.name}") as sub:
            selected = self._select(
                tools,
                system_prompt=TOOL_SELECTION_PROMPT,
                payload=payload,
                response_key="selected_tools",
                scope=sub,
                label="tool selection",
            )
        if selected is None:
            logger.warning(
                "Failed to interpret tool selection for %s, using first tool", server.name
            )
            return list(tools[:1])
        logger.info(
            "Selected %d/%d tools from %s: %s",
            len(selected),
            len(tools),
            server.name,
            [t.name for t in selected],
        )
        return selected

    def generate_parameters(
        self, input_value: Any, tool: ToolDescriptor, scope: TracingScope
    ) -> Dict[str, Any]:
        """Ask for the arguments of *tool*; ``{}`` when none can be read from the reply."""
        payload = {
            "input": input_value,
            "tool": {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.input_schema,
            },
            "task": "Generate parameters for this tool",
            "response_format": {"parameters": "object containing the tool parameters"},
        }
        with scope.child(f"Generate parameters for {tool.name}") as sub:
            reply = self._ask(PARAMETERS_PROMPT, payload, sub, "parameter generation")
            with sub.child("Parse tool parameters response"):
                parameters = lookup(decode(reply), "parameters")
        if parameters is MISSING or not isinstance(parameters, Mapping):
            logger.warning("No usable parameters for %s in reply: %s", tool.name, preview(reply))
            return {}
        result = _plain(parameters)
        logger.info("Generated parameters for %s: %s", tool.name, preview(result))
        return result
