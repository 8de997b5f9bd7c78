"""
Pydantic models for typedagent API requests and responses.
This module defines the request and response schemas used by the typedagent API.
"""

from typing import (
    Any,
    Dict,
    List,
)

from pydantic import (
    BaseModel,
    Field,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class RunRequest(BaseModel):
    """Input for one agent run."""

    input: Dict[str, Any] = Field(..., description="Value matching the agent's input schema")


class RunResponse(BaseModel):
    """Result of one agent run."""

    request_id: str
    output: Dict[str, Any]
    tool_results: Dict[str, Any] = Field(default_factory=dict)
    used_fallback: bool = False


class AgentInfo(BaseModel):
    """Public description of the served agent."""

    model: str
    input_schema: Dict[str, Any]
    output_schema: Dict[str, Any]
    servers: List[str]
