"""
In-process tool servers for typedagent.

Besides remote HTTP tool servers, an agent can be pointed at ``local://<server>`` servers whose
tools are plain Python functions registered with :func:`register_tool`.  Their input schemas are
derived from the function signatures, so they are discovered and invoked exactly like remote
tools.
"""

import inspect
import logging
from typing import (
    Any,
    Callable,
    Dict,
    Mapping,
    TypedDict,
    get_type_hints,
)

LOCAL_SCHEME = "local://"
DEFAULT_LOCAL_SERVER = "local"

TOOL_REGISTRY: Dict[str, Dict[str, Callable]] = {}
"""Global registry of tool functions: server name -> tool name -> function."""

_JSON_TYPES = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    dict: "object",
}


def register_tool(name: str, server: str = DEFAULT_LOCAL_SERVER) -> Callable:
    """
    Register a tool function with the given name on a local server.

    The name must be unique per server and is used to look up the function in the registry.  The
    function must accept keyword arguments and return a JSON-serialisable value.

    The function is registered as a decorator, so it can be used like this:
        @register_tool("my_tool", server="maths")
        def my_tool_function(arg1, arg2):
            # Do something
            return result

    and is then reachable through a server whose url is ``local://maths``.

    Parameters
    ----------
    name: str
        The name of the tool.
    server: str
        The local server the tool belongs to.
    Returns
    -------
    Callable
        A decorator that registers the function with the given name.
    Raises
    ------
    ValueError
        If a function with the same name is already registered on that server.
    """
    tools = TOOL_REGISTRY.setdefault(server, {})
    if name in tools:
        raise ValueError(f"Tool '{name}' is already registered on server '{server}'.")
    logger = logging.getLogger(__name__)
    logger.debug("Registering tool '%s' on local server '%s'", name, server)

    def wrapper(fn: Callable) -> Callable:
        tools[name] = fn
        return fn

    return wrapper


class ToolSchema(TypedDict):
    """
    Discovery record for a local tool.
    """

    name: str
    description: str
    inputSchema: Mapping[str, Any]


def _input_schema(func: Callable) -> Dict[str, Any]:
    sig = inspect.signature(func)
    type_hints = get_type_hints(func)
    properties: Dict[str, Any] = {}
    required = []
    for param_name, param in sig.parameters.items():
        param_type = type_hints.get(param_name)
        json_type = _JSON_TYPES.get(getattr(param_type, "__origin__", param_type))
        properties[param_name] = {"type": json_type} if json_type else {}
        if param.default is inspect.Parameter.empty:
            required.append(param_name)
    return {"type": "object", "properties": properties, "required": required}


def get_tool_schemas(server: str = DEFAULT_LOCAL_SERVER) -> Mapping[str, ToolSchema]:
    """Describe the tools registered on a local *server*."""
    return {
        name: ToolSchema(
            name=name,
            description=inspect.getdoc(func) or "",
            inputSchema=_input_schema(func),
        )
        for name, func in TOOL_REGISTRY.get(server, {}).items()
    }


@register_tool("echo")
def echo_tool(text: str) -> str:
    """Echo the input text back to the caller."""
    return text
