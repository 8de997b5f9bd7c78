"""Tests for stand-in values and the wholesale fallback."""

from typing import (
    Literal,
    Optional,
)

from pydantic import BaseModel

from typedagent.core.descriptor import (
    FieldKind,
    FieldSpec,
    SchemaDescriptor,
)
from typedagent.core.fallback import (
    GENERIC_PLACEHOLDER,
    RESPONSE_PLACEHOLDER,
    THINKING_PLACEHOLDER,
    fallback_value,
    first_long_string,
    wholesale_fallback,
)


class Inner(BaseModel):
    score: int
    ok: bool


class Node(BaseModel):
    label: str
    next: Optional["Node"] = None


class Loop(BaseModel):
    label: str
    again: "Loop"


class Report(BaseModel):
    response: str
    thinking_comments: str
    summary: str
    confidence: float
    approved: bool
    tone: Literal["formal", "casual"]
    details: Inner
    note: Optional[str] = None


def test_scalar_fallbacks() -> None:
    assert fallback_value(FieldSpec("summary", FieldKind.STRING)) == GENERIC_PLACEHOLDER
    assert fallback_value(FieldSpec("myThinking", FieldKind.STRING)) == THINKING_PLACEHOLDER
    assert fallback_value(FieldSpec("user_comment", FieldKind.STRING)) == THINKING_PLACEHOLDER
    assert fallback_value(FieldSpec("total", FieldKind.NUMBER)) == 0
    assert fallback_value(FieldSpec("flag", FieldKind.BOOLEAN)) is False
    assert fallback_value(FieldSpec("things", FieldKind.ARRAY)) == []
    assert fallback_value(FieldSpec("blob", FieldKind.OBJECT)) == {}


def test_response_fallback_prefers_reply_text() -> None:
    """Response-like fields recover text from the reply before using the placeholder."""

    field = FieldSpec("correctResponse", FieldKind.STRING)
    tree = {"wrapper": {"short": "tiny", "long": "a reasonably long sentence"}}
    assert fallback_value(field, tree, "raw") == "a reasonably long sentence"
    assert fallback_value(field, {"short": "tiny"}, "x" * 300) == "x" * 200
    assert fallback_value(field, {}, "") == RESPONSE_PLACEHOLDER


def test_first_long_string() -> None:
    assert first_long_string({"a": ["short", {"b": "long enough text"}]}) == "long enough text"
    assert first_long_string({"a": 12345678901234}) is None


def test_wholesale_fallback_is_valid() -> None:
    """The wholesale fallback satisfies the schema it was built for."""

    desc = SchemaDescriptor(Report)
    fallback = wholesale_fallback(desc, {"message": "hi"})

    assert fallback["response"] == (
        'I understand your request about: {"message": "hi"}. '
        "I'm working on improving my response format."
    )
    assert fallback["thinking_comments"] == THINKING_PLACEHOLDER
    assert fallback["tone"] == "formal"
    assert fallback["details"] == {"score": 0, "ok": False}
    report = desc.validate(fallback)
    assert report.confidence == 0
    assert report.note == GENERIC_PLACEHOLDER


def test_self_referencing_fields() -> None:
    """A field that leads back to an enclosing model stops the expansion."""

    desc = SchemaDescriptor(Node)
    fallback = wholesale_fallback(desc, {"message": "hi"})
    assert fallback == {"label": GENERIC_PLACEHOLDER, "next": None}
    assert desc.validate(fallback).next is None

    assert wholesale_fallback(SchemaDescriptor(Loop), {}) == {
        "label": GENERIC_PLACEHOLDER,
        "again": {},
    }
