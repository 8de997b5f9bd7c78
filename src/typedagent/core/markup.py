"""
Tagged-text codec used for prompts and for reading completion replies.

``encode`` turns a tree of mappings, sequences and scalars into ``<tag>...</tag>`` markup;
``decode`` reads a completion reply back into a tree.  Decoding is deliberately forgiving:
replies are scanned for balanced same-name tag pairs rather than parsed as XML, so prose around
the tags, markdown fences and unclosed stragglers are simply skipped.  ``decode`` never raises.
"""

from __future__ import annotations

import logging
import re
from typing import (
    Any,
    Dict,
    Mapping,
    Optional,
)

from pydantic import BaseModel

logger = logging.getLogger(__name__)

ExtractedTree = Dict[str, Any]
"""Decoded reply: tag name -> scalar, nested tree, or list of those for repeated tags."""

SALVAGE_KEY = "response"

_INVALID_TAG_CHARS = re.compile(r"[^A-Za-z0-9_]")
_TAG_PAIR = re.compile(r"<([^>\s/]+)[^>]*>(.*?)</\1>", re.DOTALL)
_NUMBER = re.compile(r"^\d+(\.\d+)?$")
_FENCE = re.compile(r"```[A-Za-z0-9_-]*")
_TAG_TOKEN = re.compile(r"</?[A-Za-z_][^<>]*>")
_PARAGRAPH_GAP = re.compile(r"\n{3,}")


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------
def sanitize_tag(name: Any) -> str:
    """Map *name* onto ``[A-Za-z0-9_]`` and make sure it starts with a letter."""
    tag = _INVALID_TAG_CHARS.sub("_", str(name))
    if not tag or not ("a" <= tag[0].lower() <= "z"):
        tag = "tag_" + tag
    return tag


def _wrap(tag: Any, content: str) -> str:
    safe = sanitize_tag(tag)
    return f"<{safe}>{content}</{safe}>"


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def _is_structured(value: Any) -> bool:
    return isinstance(value, (Mapping, BaseModel)) or _is_sequence(value)


def encode(value: Any, parent_key: Optional[str] = None) -> str:
    """
    Render *value* as tagged text.

    Mapping entries become ``<key>...</key>`` (``None`` entries are skipped), sequences become
    ``<key><item>...</item>...</key>``, and scalars are stringified.  The output is deterministic
    for a given input and does not preserve scalar types.
    """
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")

    if _is_sequence(value):
        items = "".join(
            _wrap("item", encode(item) if _is_structured(item) else _scalar(item))
            for item in value
        )
        return _wrap(parent_key or "array", items)

    if isinstance(value, Mapping):
        entries = [(key, item) for key, item in value.items() if item is not None]
        if not entries:
            return _wrap(parent_key or "empty", "")
        content = "".join(
            encode(item, str(key)) if _is_structured(item) else _wrap(key, _scalar(item))
            for key, item in entries
        )
        return _wrap(parent_key, content) if parent_key else content

    return _wrap(parent_key or "value", _scalar(value))


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------
def _convert_scalar(text: str) -> Any:
    if text in ("true", "false"):
        return text == "true"
    if _NUMBER.match(text):
        return float(text) if "." in text else int(text)
    return text


def _put(tree: ExtractedTree, tag: str, value: Any) -> None:
    if tag not in tree:
        tree[tag] = value
    elif isinstance(tree[tag], list):
        tree[tag].append(value)
    else:
        tree[tag] = [tree[tag], value]


def _scan(content: str, typed: bool) -> Optional[ExtractedTree]:
    """Collect every balanced tag pair in *content*; ``None`` when there is none."""
    tree: ExtractedTree = {}
    matched = False
    for match in _TAG_PAIR.finditer(content):
        matched = True
        tag, inner = match.group(1), match.group(2).strip()
        if "<" in inner:
            nested = _scan(inner, typed)
            _put(tree, tag, nested if nested is not None else inner)
        else:
            _put(tree, tag, _convert_scalar(inner) if typed else inner)
    return tree if matched else None


def salvage_prose(text: str) -> str:
    """
    Drop fences and tag-like tokens from *text*, leaving the prose.

    Spaces are collapsed within each line; line breaks survive, with at most one blank line
    between paragraphs.
    """
    text = _FENCE.sub(" ", text)
    text = _TAG_TOKEN.sub(" ", text)
    lines = [" ".join(line.split()) for line in text.splitlines()]
    return _PARAGRAPH_GAP.sub("\n\n", "\n".join(lines)).strip()


def decode(text: Optional[str], typed: bool = True) -> ExtractedTree:
    """
    Read a completion reply into an :data:`ExtractedTree`.

    With *typed* set, leaf values equal to ``true``/``false`` become booleans and plain
    integers/decimals become numbers; otherwise leaves stay as trimmed text.  A reply without any
    balanced tag pair is salvaged as ``{"response": <prose>}``; an empty reply yields ``{}``.
    """
    content = (text or "").strip()
    if content:
        tree = _scan(content, typed)
        if tree is not None:
            return tree
        prose = salvage_prose(content)
        if prose:
            logger.warning("No tags found in reply, salvaging prose: %s", prose[:100])
            return {SALVAGE_KEY: prose}
    logger.warning("Reply contained nothing to decode: %r", (text or "")[:100])
    return {}


def extract_partial(text: str, tag: str) -> Optional[str]:
    """
    Return the content written so far for the first ``<tag>`` in a growing *text*.

    The content ends at the matching close tag if it has arrived, otherwise at the end of the
    text minus any half-written trailing tag.  ``None`` until the open tag is complete.
    """
    opening = re.search(rf"<{re.escape(tag)}(?:\s[^>]*)?>", text)
    if opening is None:
        return None
    rest = text[opening.end():]
    closing = rest.find(f"</{tag}>")
    if closing >= 0:
        return rest[:closing].strip()
    cut = rest.rfind("<")
    if cut >= 0 and ">" not in rest[cut:]:
        rest = rest[:cut]
    return rest.strip()
