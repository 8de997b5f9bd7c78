"""Turning a decoded completion reply into a candidate output object."""

import logging
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Mapping,
    Optional,
)

from typedagent.core.coercion import coerce_value
from typedagent.core.descriptor import (
    FieldKind,
    FieldSpec,
    SchemaDescriptor,
)
from typedagent.core.fallback import fallback_value
from typedagent.core.markup import (
    SALVAGE_KEY,
    ExtractedTree,
    extract_partial,
)

logger = logging.getLogger(__name__)

MISSING = object()
"""Sentinel returned by :func:`lookup` when a key is found nowhere."""


def lookup(tree: Mapping[str, Any], key: str) -> Any:
    """
    Find *key* in a decoded reply.

    Completion services often wrap the requested tags in one extra element, so after a direct
    hit we try one level under ``response`` and then one level under the reply's first tag.
    """
    if key in tree:
        return tree[key]
    wrapped = tree.get(SALVAGE_KEY)
    if isinstance(wrapped, Mapping) and key in wrapped:
        return wrapped[key]
    if tree:
        first = tree[next(iter(tree))]
        if isinstance(first, Mapping) and key in first:
            return first[key]
    return MISSING


def resolve_field(field: FieldSpec, value: Any, tree: ExtractedTree, raw_text: str) -> Any:
    """Coerce a found *value* for *field*, or synthesize one when it is missing or unusable."""
    if value is MISSING:
        logger.debug("Field '%s' missing from reply, using fallback", field.name)
        return fallback_value(field, tree, raw_text)

    if field.kind is FieldKind.OBJECT:
        if not isinstance(value, Mapping):
            logger.warning("Field '%s' expected nested tags, got %r", field.name, value)
            return fallback_value(field, tree, raw_text)
        if field.children is None:
            return dict(value)
        return {
            child.name: resolve_field(child, value.get(child.name, MISSING), tree, raw_text)
            for child in field.children.fields()
        }

    if isinstance(value, Mapping):
        logger.warning("Field '%s' expected a %s, got nested tags", field.name, field.kind.value)
        return fallback_value(field, tree, raw_text)

    return coerce_value(value, field)


def assemble_output(
    descriptor: SchemaDescriptor, tree: ExtractedTree, raw_text: str
) -> Dict[str, Any]:
    """Return a value for every declared field, extracted where possible."""
    return {
        spec.name: resolve_field(spec, lookup(tree, spec.name), tree, raw_text)
        for spec in descriptor.fields()
    }


class FieldStreamer:
    """
    Emits the text accumulated so far for each string field of a streaming reply.

    While the reply streams, a field's emitted value never gets shorter: the growing reply is
    re-read on every chunk and a field is only reported again once its text has grown.
    :meth:`finish` may then report one last, possibly shorter, value: the committed output wins
    over monotonic growth, so the final event always equals the returned field.
    """

    def __init__(self, field_names: Iterable[str], emit: Callable[[str, str], None]):
        self._field_names = list(field_names)
        self._emit = emit
        self.last: Dict[str, str] = {}

    def feed(self, text: str) -> None:
        """Inspect the reply accumulated so far."""
        for name in self._field_names:
            value = extract_partial(text, name)
            if not value:
                continue
            previous = self.last.get(name)
            if previous is not None and (value == previous or len(value) < len(previous)):
                continue
            self.last[name] = value
            self._emit(name, value)

    def finish(self, output: Mapping[str, Any]) -> None:
        """
        Report committed values that differ from what was last streamed.

        Runs once after validation. A committed value shorter than the streamed text (a fallback
        replacing a rejected reply, say) is still reported.
        """
        for name, previous in list(self.last.items()):
            committed: Optional[Any] = output.get(name)
            if isinstance(committed, str) and committed != previous:
                self.last[name] = committed
                self._emit(name, committed)
