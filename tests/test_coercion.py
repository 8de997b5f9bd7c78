"""Tests for value coercion."""

import pytest

from typedagent.core.coercion import (
    coerce_value,
    to_boolean,
    to_number,
)
from typedagent.core.descriptor import (
    FieldKind,
    FieldSpec,
)

TEXT = FieldSpec("text", FieldKind.STRING)
NUMBER = FieldSpec("number", FieldKind.NUMBER)
FLAG = FieldSpec("flag", FieldKind.BOOLEAN)
LEVEL = FieldSpec("level", FieldKind.STRING, choices=("low", "high"))


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("42", 42),
        ("$1,234.50", 1234.5),
        ("-7 degrees", -7),
        (3.5, 3.5),
        ("many", "many"),
        ("1.2.3", "1.2.3"),
    ],
)
def test_to_number(raw: object, expected: object) -> None:
    """Non-numeric characters are dropped; unparsable values come back unchanged."""

    assert to_number(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [("true", True), ("TRUE ", True), ("yes", False), ("false", False), (True, True)],
)
def test_to_boolean(raw: object, expected: bool) -> None:
    assert to_boolean(raw) is expected


def test_coerce_string() -> None:
    assert coerce_value("  hi  ", TEXT) == "hi"
    assert coerce_value(42, TEXT) == "42"
    assert coerce_value(False, TEXT) == "false"


def test_coerce_repeated_values() -> None:
    """Repeated tags are joined for strings and reduced to the first value otherwise."""

    assert coerce_value(["a", "b"], TEXT) == "a\nb"
    assert coerce_value(["3", "4"], NUMBER) == 3
    assert coerce_value(["true", "false"], FLAG) is True


def test_coerce_choices() -> None:
    assert coerce_value("HIGH", LEVEL) == "high"
    assert coerce_value("medium", LEVEL) == "medium"


def test_coerce_passes_objects_through() -> None:
    obj = FieldSpec("obj", FieldKind.OBJECT)
    assert coerce_value({"a": "1"}, obj) == {"a": "1"}
    assert coerce_value({"a": "1"}, NUMBER) == {"a": "1"}
