"""
Declarative agent definitions.

An agent can be described in a JSON file instead of Python code::

    {
      "model": "gpt-4o",
      "system_prompt": "You are a travel assistant.",
      "input":  {"properties": {"message": {"type": "string"}}, "required": ["message"]},
      "output": {"properties": {"answer": {"type": "string", "description": "The reply"}}},
      "servers": [{"name": "weather", "description": "Forecasts", "url": "http://weather:9000"}]
    }

``input`` and ``output`` are JSON-schema object fragments; the supported keywords are ``type``,
``properties``, ``required``, ``description``, ``enum`` and ``items``.
"""

import json
import logging
from pathlib import Path
from typing import (
    Any,
    Dict,
    List,
    Literal,
    Mapping,
    Optional,
    Tuple,
    TYPE_CHECKING,
    Type,
)

from pydantic import (
    BaseModel,
    Field,
    create_model,
)

from typedagent.core.schema import ServerDescriptor

if TYPE_CHECKING:
    from typedagent.agent.orchestrator import Agent

logger = logging.getLogger(__name__)

_SCALAR_TYPES: Dict[str, Any] = {
    "string": str,
    "integer": int,
    "number": float,
    "boolean": bool,
}


def _title(name: str) -> str:
    return "".join(part.capitalize() for part in name.replace("-", "_").split("_") if part)


def _annotation(name: str, fragment: Mapping[str, Any]) -> Any:
    """Python type for one JSON-schema property."""
    if "enum" in fragment:
        choices = tuple(fragment["enum"])
        if not choices:
            raise ValueError(f"Property '{name}' declares an empty enum")
        return Literal[choices]  # type: ignore[valid-type]

    kind = fragment.get("type", "string")
    if kind in _SCALAR_TYPES:
        return _SCALAR_TYPES[kind]
    if kind == "array":
        return List[_annotation(f"{name}_item", fragment.get("items", {}))]  # type: ignore[misc]
    if kind == "object":
        if "properties" in fragment:
            return model_from_json_schema(_title(name), fragment)
        return Dict[str, Any]
    raise ValueError(f"Property '{name}' has unsupported type {kind!r}")


def model_from_json_schema(name: str, schema: Mapping[str, Any]) -> Type[BaseModel]:
    """
    Build a pydantic model class from a JSON-schema object fragment.

    Properties listed in ``required`` are mandatory; all others are optional and default to
    ``None``.  Nested objects with ``properties`` become nested models.
    """
    properties = schema.get("properties")
    if not isinstance(properties, Mapping):
        raise ValueError(f"Schema '{name}' must declare an object with 'properties'")
    required = set(schema.get("required", []))
    unknown = required - set(properties)
    if unknown:
        raise ValueError(f"Schema '{name}' requires undeclared properties: {sorted(unknown)}")

    fields: Dict[str, Tuple[Any, Any]] = {}
    for prop, fragment in properties.items():
        annotation = _annotation(prop, fragment)
        description = fragment.get("description")
        if prop in required:
            fields[prop] = (annotation, Field(..., description=description))
        else:
            fields[prop] = (Optional[annotation], Field(None, description=description))
    return create_model(  # type: ignore[call-overload]
        name, __doc__=schema.get("description"), **fields
    )


def load_agent(path: str | Path, **overrides: Any) -> "Agent":
    """
    Read an agent definition file and return the configured :class:`~typedagent.Agent`.

    Keyword *overrides* (``completion``, ``tool_registry``, ...) are passed to the constructor.
    """
    # Imported here so that core stays importable without the agent package.
    from typedagent.agent.orchestrator import Agent  # pylint: disable=import-outside-toplevel

    definition = json.loads(Path(path).read_text(encoding="utf-8"))
    logger.info("Loading agent definition from %s", path)

    stem = _title(Path(path).stem) or "Agent"
    input_model = model_from_json_schema(f"{stem}Input", definition["input"])
    output_model = model_from_json_schema(f"{stem}Output", definition["output"])
    servers = [ServerDescriptor.model_validate(item) for item in definition.get("servers", [])]

    kwargs: Dict[str, Any] = {
        "system_prompt": definition.get("system_prompt"),
        "temperature": definition.get("temperature"),
        "max_tokens": definition.get("max_tokens"),
    }
    kwargs.update(overrides)
    return Agent(
        model=definition["model"],
        input_format=input_model,
        output_format=output_model,
        servers=servers,
        **kwargs,
    )
