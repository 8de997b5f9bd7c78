"""Tests for schema introspection and array rejection."""

import enum
from typing import (
    Annotated,
    Dict,
    List,
    Literal,
    Optional,
)

import pytest
from pydantic import (
    BaseModel,
    Field,
    ValidationError,
)

from typedagent.core.descriptor import (
    FieldKind,
    SchemaDescriptor,
    UnsupportedSchemaError,
    reject_array_fields,
)


class Mood(enum.Enum):
    HAPPY = "happy"
    SAD = "sad"


class Location(BaseModel):
    city: str
    lat: float


class Everything(BaseModel):
    title: str = Field(..., description="Short title")
    count: int
    ratio: Optional[float] = None
    done: bool
    level: Literal["low", "high"]
    mood: Mood
    where: Location
    extra: Dict[str, str]
    note: Annotated[str | None, Field(description="Free text")] = None
    labels: List[str] = []


def test_field_kinds() -> None:
    """Every annotation resolves to one closed kind."""

    desc = SchemaDescriptor(Everything)
    kinds = {spec.name: spec.kind for spec in desc.fields()}
    assert kinds == {
        "title": FieldKind.STRING,
        "count": FieldKind.NUMBER,
        "ratio": FieldKind.NUMBER,
        "done": FieldKind.BOOLEAN,
        "level": FieldKind.STRING,
        "mood": FieldKind.STRING,
        "where": FieldKind.OBJECT,
        "extra": FieldKind.OBJECT,
        "note": FieldKind.STRING,
        "labels": FieldKind.ARRAY,
    }


def test_field_details() -> None:
    desc = SchemaDescriptor(Everything)
    assert desc.field("title").description == "Short title"
    assert desc.field("ratio").nullable
    assert not desc.field("count").nullable
    assert desc.field("level").choices == ("low", "high")
    assert desc.field("mood").choices == ("happy", "sad")
    assert desc.field("note").nullable
    assert desc.field("note").description == "Free text"

    where = desc.field("where").children
    assert where is not None
    assert [spec.name for spec in where.fields()] == ["city", "lat"]
    assert desc.field("extra").children is None


def test_validate_accepts_dict_and_instance() -> None:
    desc = SchemaDescriptor(Location)
    assert desc.validate({"city": "Oslo", "lat": 59.9}) == Location(city="Oslo", lat=59.9)
    assert desc.validate(Location(city="Oslo", lat=59.9)).city == "Oslo"
    with pytest.raises(ValidationError):
        desc.validate({"city": "Oslo"})


def test_describe_nests_objects() -> None:
    class Out(BaseModel):
        kind: Literal["a", "b"] = Field(..., description="Which one")
        where: Location

    assert SchemaDescriptor(Out).describe() == {
        "kind": {"type": "string", "description": "Which one", "one_of": ["a", "b"]},
        "where": {
            "type": "object",
            "description": "",
            "fields": {
                "city": {"type": "string", "description": ""},
                "lat": {"type": "number", "description": ""},
            },
        },
    }


def test_reject_nested_array() -> None:
    """The error names the dotted path and suggests numbered leaf fields."""

    class Data(BaseModel):
        items: List[str]

    class Out(BaseModel):
        data: Data

    with pytest.raises(UnsupportedSchemaError) as excinfo:
        reject_array_fields(SchemaDescriptor(Out))
    assert str(excinfo.value) == (
        "Arrays are not supported in output schema. Found array at path: data.items. "
        "Use individual fields like items_1, items_2 instead."
    )


def test_reject_top_level_array() -> None:
    class Out(BaseModel):
        answer: str
        tags: Optional[List[str]] = None

    with pytest.raises(UnsupportedSchemaError, match="Found array at path: tags\\."):
        reject_array_fields(SchemaDescriptor(Out))


def test_no_array_passes() -> None:
    class Out(BaseModel):
        answer: str
        where: Location

    reject_array_fields(SchemaDescriptor(Out))


def test_descriptor_requires_model() -> None:
    with pytest.raises(TypeError):
        SchemaDescriptor(dict)  # type: ignore[arg-type]


class Comment(BaseModel):
    text: str
    reply: Optional["Comment"] = None


class Thread(BaseModel):
    title: str
    first: Comment


def test_self_referencing_model() -> None:
    """A model that refers to itself reuses its own descriptor instead of expanding forever."""

    desc = SchemaDescriptor(Comment)
    reply = desc.field("reply")
    assert reply.kind is FieldKind.OBJECT
    assert reply.nullable
    assert reply.back_reference
    assert reply.children is desc
    assert desc.find_array_field() is None
    assert desc.describe() == {
        "text": {"type": "string", "description": ""},
        "reply": {"type": "object", "description": "", "same_as": "Comment"},
    }


def test_self_reference_below_top_level() -> None:
    desc = SchemaDescriptor(Thread)
    first = desc.field("first")
    assert not first.back_reference
    assert first.children is not None
    assert first.children.field("reply").children is first.children
    reject_array_fields(desc)
    assert desc.validate(
        {"title": "t", "first": {"text": "a", "reply": {"text": "b"}}}
    ).first.reply.text == "b"


def test_reused_model_is_not_a_back_reference() -> None:
    class Route(BaseModel):
        start: Location
        end: Location

    desc = SchemaDescriptor(Route)
    assert not desc.field("start").back_reference
    assert not desc.field("end").back_reference
