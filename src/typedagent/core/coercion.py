"""Best-effort conversion of extracted reply values to the kind a field expects."""

import logging
import re
from typing import Any

from typedagent.core.descriptor import (
    FieldKind,
    FieldSpec,
)

logger = logging.getLogger(__name__)

_NON_NUMERIC = re.compile(r"[^\d.\-]")


def _text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def to_number(value: Any) -> Any:
    """Parse *value* as a number after dropping everything but digits, ``.`` and ``-``."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    cleaned = _NON_NUMERIC.sub("", _text(value))
    try:
        if "." in cleaned:
            return float(cleaned)
        return int(cleaned)
    except ValueError:
        logger.warning("Type conversion failed for value %r: not a number", value)
        return value


def to_boolean(value: Any) -> bool:
    """``True`` only for a case-insensitive ``"true"``."""
    if isinstance(value, bool):
        return value
    return _text(value).strip().lower() == "true"


def _match_choice(value: Any, field: FieldSpec) -> Any:
    wanted = _text(value).strip().lower()
    for choice in field.choices:
        if _text(choice).lower() == wanted:
            return choice
    return value


def coerce_value(value: Any, field: FieldSpec) -> Any:
    """
    Convert a raw extracted *value* to *field*'s kind.

    Never raises: a value that cannot be converted is returned unchanged (and logged), leaving
    the final verdict to schema validation.  Repeated tags (lists) are joined for string fields
    and reduced to their first element otherwise.  Object and array fields pass through.
    """
    if field.kind in (FieldKind.OBJECT, FieldKind.ARRAY):
        return value

    if isinstance(value, list):
        if not value:
            return value
        if field.kind is FieldKind.STRING:
            value = "\n".join(_text(item) for item in value)
        else:
            value = value[0]

    if isinstance(value, dict):
        logger.warning("Field '%s' expected a %s, got nested tags", field.name, field.kind.value)
        return value

    if field.kind is FieldKind.NUMBER:
        converted = to_number(value)
    elif field.kind is FieldKind.BOOLEAN:
        converted = to_boolean(value)
    else:
        converted = _text(value).strip()

    if field.choices:
        converted = _match_choice(converted, field)
    return converted
