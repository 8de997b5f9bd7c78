"""Tests for the tagged-text codec."""

import pytest
from pydantic import BaseModel

from typedagent.core.markup import (
    decode,
    encode,
    extract_partial,
    salvage_prose,
    sanitize_tag,
)


def test_encode_nested_mapping() -> None:
    """Mappings nest, sequences use <item>, and None entries are dropped."""

    text = encode({"user": {"name": "Ada", "admin": True}, "tags": ["a", "b"], "note": None})
    assert text == (
        "<user><name>Ada</name><admin>true</admin></user>"
        "<tags><item>a</item><item>b</item></tags>"
    )


def test_encode_default_tags() -> None:
    """Top-level sequences, empty objects and scalars get fixed wrapper tags."""

    assert encode([1, 2]) == "<array><item>1</item><item>2</item></array>"
    assert encode({}) == "<empty></empty>"
    assert encode(3.5) == "<value>3.5</value>"


def test_encode_is_deterministic() -> None:
    """Encoding the same tree twice yields identical text."""

    tree = {"a": [{"b": 1}, {"c": False}], "d": "x"}
    assert encode(tree) == encode(tree)


def test_encode_pydantic_model() -> None:
    """Models are dumped before encoding."""

    class Point(BaseModel):
        x: int
        y: int

    assert encode({"point": Point(x=1, y=2)}) == "<point><x>1</x><y>2</y></point>"


@pytest.mark.parametrize(
    "name, expected",
    [
        ("answer", "answer"),
        ("user name", "user_name"),
        ("weather.forecast", "weather_forecast"),
        ("1st", "tag_1st"),
        ("_private", "tag__private"),
        ("", "tag_"),
    ],
)
def test_sanitize_tag(name: str, expected: str) -> None:
    assert sanitize_tag(name) == expected


def test_decode_typed_scalars() -> None:
    """Typed decoding converts booleans and plain numbers."""

    tree = decode("<a>true</a><b>42</b><c>3.25</c><d>4 apples</d>")
    assert tree == {"a": True, "b": 42, "c": 3.25, "d": "4 apples"}


def test_decode_untyped_keeps_text() -> None:
    tree = decode("<answer> 42 </answer>", typed=False)
    assert tree == {"answer": "42"}


def test_decode_nested_and_repeated() -> None:
    """Nested tags build sub-trees; repeated siblings collapse into a list."""

    tree = decode(
        "Sure! <relevant_servers><names><item>weather</item><item>news</item></names>"
        "</relevant_servers> Hope that helps."
    )
    assert tree == {"relevant_servers": {"names": {"item": ["weather", "news"]}}}


def test_decode_ignores_attributes_and_fences() -> None:
    tree = decode('```xml\n<answer lang="en">Hi</answer>\n```')
    assert tree == {"answer": "Hi"}


@pytest.mark.parametrize("text", ["", "   ", None, "<<<>>>", "</a><b>", "<a><b>unclosed</a>"])
def test_decode_never_raises(text: str) -> None:
    """Decoding is total: odd input yields a tree, never an exception."""

    assert isinstance(decode(text), dict)


def test_decode_salvages_prose() -> None:
    """Without any tag pair, the prose is returned under ``response``."""

    assert decode("no tags here at all") == {"response": "no tags here at all"}
    assert decode("```\n<answer>unterminated\n```") == {"response": "unterminated"}


def test_salvage_prose_collapses_whitespace() -> None:
    assert salvage_prose("  one   two\t three  ") == "one two three"
    assert salvage_prose("  one\n\n<br/> two  ") == "one\n\ntwo"


def test_salvage_prose_keeps_paragraphs() -> None:
    """Line breaks of an untagged reply survive; runs of blank lines shrink to one."""

    reply = "First paragraph,\n  still first.\n\n\n\nSecond paragraph.\n- item one\n- item two\n"
    assert decode(reply) == {
        "response": "First paragraph,\nstill first.\n\nSecond paragraph.\n- item one\n- item two"
    }


def test_extract_partial() -> None:
    """Partial extraction follows a growing reply without half-written tags."""

    assert extract_partial("<answ", "answer") is None
    assert extract_partial("<answer>Hel", "answer") == "Hel"
    assert extract_partial("<answer>Hello</an", "answer") == "Hello"
    assert extract_partial("<answer>Hello</answer><other>x", "answer") == "Hello"
