"""Discovers and dispatches tool calls through a :class:`ToolRegistry` and wraps errors."""

import logging
from typing import (
    Any,
    Dict,
    List,
)

import httpx

from typedagent.common import preview
from typedagent.core.schema import (
    ServerDescriptor,
    ToolDescriptor,
)
from typedagent.core.tracing import TracingScope
from typedagent.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class ToolExecutionError(RuntimeError):
    """Raised when a requested tool cannot run or fails."""


def discover_tools(
    registry: ToolRegistry, server: ServerDescriptor, scope: TracingScope
) -> List[ToolDescriptor]:
    """
    Fetch the tool list of *server*.

    A server that cannot be reached, answers with an error, or returns something that is not a
    tool list contributes no tools; the failure is logged and never raised.
    """
    try:
        with scope.child(f"Discover tools from {server.name}"):
            return registry.discover(server)
    except Exception as exc:  # pylint: disable=broad-except
        logger.warning("Error discovering tools from %s: %s", server.name, exc)
        return []


def execute_tool(
    registry: ToolRegistry,
    server: ServerDescriptor,
    tool_name: str,
    args: Dict[str, Any] | None,
    scope: TracingScope,
) -> Any:
    """
    Invoke *tool_name* on *server* with *args*.

    Parameters
    ----------
    registry:
        Transport used to reach the server.
    server:
        The server hosting the tool.
    tool_name:
        The tool name as discovered.
    args:
        Keyword arguments for the tool.  If *None*, an empty dict is assumed.
    scope:
        Tracing scope of the caller.

    Returns
    -------
    Any
        Whatever the tool returns.

    Raises
    ------
    ToolExecutionError
        If the tool is missing, rejects its arguments, or fails.
    """
    if args is None:
        args = {}

    try:
        with scope.child(f"Invoke {server.name}.{tool_name}"):
            logger.debug("Executing tool '%s.%s' with args=%s", server.name, tool_name, args)
            result = registry.invoke(server, tool_name, args)
    except LookupError as exc:
        raise ToolExecutionError(f"Tool '{tool_name}' is not available: {exc}") from exc
    except TypeError as exc:
        # Argument mismatch; give the caller a clean exception.
        raise ToolExecutionError(f"Invalid arguments for tool '{tool_name}': {exc}") from exc
    except httpx.HTTPError as exc:
        raise ToolExecutionError(f"Tool invocation failed for '{tool_name}': {exc}") from exc
    except Exception as exc:  # noqa: BLE001
        raise ToolExecutionError(f"Tool '{tool_name}' raised an error: {exc}") from exc

    logger.info("Tool %s returned: %s", tool_name, preview(result))
    return result
