"""
Schema-conformant stand-in values for fields the completion reply did not provide.

Rules, first match wins:

1. object  -> an object holding a stand-in for every declared child field (``{}`` without children);
   a field referring back to an enclosing model -> ``None`` when nullable, else ``{}``
2. choices -> the first declared choice
3. string named like ``*response*``/``*message*`` -> the first reasonably long string found in the
   decoded reply, else the head of the raw reply, else a placeholder
4. string named like ``*thinking*``/``*comment*`` -> a fixed "processing" sentence
5. any other string -> a generic placeholder
6. number -> ``0``; boolean -> ``False``; array -> ``[]``
"""

import json
import logging
from typing import (
    Any,
    Dict,
    Mapping,
    Optional,
)

from typedagent.core.descriptor import (
    FieldKind,
    FieldSpec,
    SchemaDescriptor,
)

logger = logging.getLogger(__name__)

RESPONSE_PLACEHOLDER = "Response generated"
THINKING_PLACEHOLDER = "Processing your request and generating appropriate response."
GENERIC_PLACEHOLDER = "Generated content"
RAW_TEXT_LIMIT = 200
MIN_RECOVERED_LENGTH = 10

_NO_INPUT = object()


def first_long_string(tree: Any, min_length: int = MIN_RECOVERED_LENGTH) -> Optional[str]:
    """Depth-first search for a string longer than *min_length*."""
    if isinstance(tree, str):
        return tree if len(tree) > min_length else None
    if isinstance(tree, Mapping):
        children = tree.values()
    elif isinstance(tree, list):
        children = tree
    else:
        return None
    for child in children:
        found = first_long_string(child, min_length)
        if found is not None:
            return found
    return None


def _echo_input(input_value: Any) -> str:
    try:
        rendered = json.dumps(input_value, default=str)
    except (TypeError, ValueError):
        rendered = str(input_value)
    return (
        f"I understand your request about: {rendered}. "
        "I'm working on improving my response format."
    )


def fallback_value(
    field: FieldSpec,
    tree: Optional[Mapping[str, Any]] = None,
    raw_text: str = "",
    input_value: Any = _NO_INPUT,
) -> Any:
    """
    Stand-in for *field*.

    *tree* and *raw_text* are the decoded and raw completion reply, when there is one.
    *input_value* is only passed by the wholesale fallback; it replaces reply-derived text for
    response-like fields.
    """
    if field.kind is FieldKind.OBJECT:
        if field.back_reference:
            return None if field.nullable else {}
        if field.children is None:
            return {}
        return {
            child.name: fallback_value(child, tree, raw_text, input_value)
            for child in field.children.fields()
        }
    if field.choices:
        return field.choices[0]
    if field.kind is FieldKind.STRING:
        name = field.name.lower()
        if "response" in name or "message" in name:
            if input_value is not _NO_INPUT:
                return _echo_input(input_value)
            return (
                first_long_string(tree or {})
                or raw_text[:RAW_TEXT_LIMIT]
                or RESPONSE_PLACEHOLDER
            )
        if "thinking" in name or "comment" in name:
            return THINKING_PLACEHOLDER
        return GENERIC_PLACEHOLDER
    if field.kind is FieldKind.NUMBER:
        return 0
    if field.kind is FieldKind.BOOLEAN:
        return False
    return []


def wholesale_fallback(descriptor: SchemaDescriptor, input_value: Any) -> Dict[str, Any]:
    """Build a complete output object from the input alone."""
    fallback = {
        spec.name: fallback_value(spec, input_value=input_value) for spec in descriptor.fields()
    }
    logger.info("Using fallback response: %s", fallback)
    return fallback
