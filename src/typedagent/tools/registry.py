"""
Discovery and invocation of tools on configured servers.

Remote servers speak a two-endpoint HTTP protocol:

- ``GET  {url}/tools`` -> ``[{"name", "description", "inputSchema"}, ...]``
- ``POST {url}/call``  with ``{"method": <tool>, "params": {...}}`` -> any JSON result

``local://<server>`` urls are served from the in-process registry in :mod:`typedagent.tools`.
"""

import logging
from typing import (
    Any,
    Dict,
    List,
    Optional,
)

import httpx

from typedagent.config import settings
from typedagent.core.schema import (
    ServerDescriptor,
    ToolDescriptor,
)
from typedagent.tools import (
    LOCAL_SCHEME,
    TOOL_REGISTRY,
    get_tool_schemas,
)

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Talks to tool servers; failures are raised to the caller."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.timeout = timeout if timeout is not None else settings.TOOL_TIMEOUT_S
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            timeout=self.timeout,
            transport=self._transport,
            headers={"Content-Type": "application/json"},
        )

    @staticmethod
    def _local_name(server: ServerDescriptor) -> Optional[str]:
        if server.url.startswith(LOCAL_SCHEME):
            return server.url[len(LOCAL_SCHEME):].strip("/")
        return None

    def discover(self, server: ServerDescriptor) -> List[ToolDescriptor]:
        """List the tools *server* offers."""
        local = self._local_name(server)
        if local is not None:
            if local not in TOOL_REGISTRY:
                raise LookupError(f"Local server '{local}' has no registered tools.")
            raw: Any = list(get_tool_schemas(local).values())
        else:
            with self._client() as client:
                resp = client.get(f"{server.url.rstrip('/')}/tools")
                resp.raise_for_status()
                raw = resp.json()

        if isinstance(raw, dict) and "tools" in raw:
            raw = raw["tools"]
        if not isinstance(raw, list):
            raise ValueError(f"Unexpected tool listing from {server.name}: {type(raw).__name__}")
        tools = [ToolDescriptor.model_validate(item) for item in raw]
        logger.info("Discovered %d tools from %s", len(tools), server.name)
        return tools

    def invoke(self, server: ServerDescriptor, tool_name: str, parameters: Dict[str, Any]) -> Any:
        """Call *tool_name* on *server* and return its result."""
        local = self._local_name(server)
        if local is not None:
            tool_fn = TOOL_REGISTRY.get(local, {}).get(tool_name)
            if tool_fn is None:
                raise LookupError(f"Tool '{tool_name}' is not registered on '{local}'.")
            return tool_fn(**parameters)

        with self._client() as client:
            resp = client.post(
                f"{server.url.rstrip('/')}/call",
                json={"method": tool_name, "params": parameters},
            )
            resp.raise_for_status()
            return resp.json()
