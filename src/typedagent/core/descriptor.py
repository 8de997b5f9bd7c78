"""
Field-level view of a pydantic model.

The orchestration pipeline never inspects pydantic internals directly.  Instead every model is
wrapped in a :class:`SchemaDescriptor` that resolves each declared field once into a closed
:class:`FieldKind` (unwrapping ``Optional``/``Annotated`` along the way), plus the description
text and, for ``Literal``/``Enum`` fields, the allowed choices.
"""

from __future__ import annotations

import collections.abc
import decimal
import enum
import logging
import types
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Annotated,
    Any,
    Dict,
    List,
    Literal,
    Optional,
    Tuple,
    Type,
    Union,
    get_args,
    get_origin,
)

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class UnsupportedSchemaError(ValueError):
    """Raised when a schema uses a construct the agent cannot produce."""


class FieldKind(str, enum.Enum):
    """Semantic category of a schema field."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


@dataclass(frozen=True)
class FieldSpec:
    """Resolved description of one model field."""

    name: str
    kind: FieldKind
    description: str = ""
    nullable: bool = False
    choices: Tuple[Any, ...] = ()
    children: Optional["SchemaDescriptor"] = field(default=None, compare=False)
    # children is an enclosing descriptor, reached again through a self-referencing model
    back_reference: bool = False


_SEQUENCE_ORIGINS = (list, tuple, set, frozenset)


def _unwrap(annotation: Any) -> Tuple[Any, bool]:
    """Strip ``Annotated`` and ``Optional`` wrappers; report whether ``None`` was allowed."""
    nullable = False
    while True:
        origin = get_origin(annotation)
        if origin is Annotated:
            annotation = get_args(annotation)[0]
            continue
        if origin is Union or origin is types.UnionType:
            args = [arg for arg in get_args(annotation) if arg is not type(None)]
            if len(args) < len(get_args(annotation)):
                nullable = True
            if not args:
                return Any, True
            annotation = args[0]
            continue
        return annotation, nullable


def _kind_of_value(value: Any) -> FieldKind:
    if isinstance(value, bool):
        return FieldKind.BOOLEAN
    if isinstance(value, (int, float, decimal.Decimal)):
        return FieldKind.NUMBER
    return FieldKind.STRING


def resolve_kind(annotation: Any) -> Tuple[FieldKind, bool, Tuple[Any, ...], Any]:
    """
    Resolve a type annotation to ``(kind, nullable, choices, nested)``.

    *nested* is the pydantic model class for object fields declared as models, otherwise
    ``None``.
    """
    annotation, nullable = _unwrap(annotation)
    origin = get_origin(annotation)

    if origin is Literal:
        choices = tuple(get_args(annotation))
        kind = _kind_of_value(choices[0]) if choices else FieldKind.STRING
        return kind, nullable, choices, None

    if isinstance(annotation, type) and issubclass(annotation, enum.Enum):
        choices = tuple(member.value for member in annotation)
        kind = _kind_of_value(choices[0]) if choices else FieldKind.STRING
        return kind, nullable, choices, None

    target = origin or annotation
    if isinstance(target, type):
        if issubclass(target, BaseModel):
            return FieldKind.OBJECT, nullable, (), target
        if issubclass(target, bool):
            return FieldKind.BOOLEAN, nullable, (), None
        if issubclass(target, (int, float, decimal.Decimal)):
            return FieldKind.NUMBER, nullable, (), None
        if issubclass(target, (str, bytes)):
            return FieldKind.STRING, nullable, (), None
        if issubclass(target, (dict, collections.abc.Mapping)):
            return FieldKind.OBJECT, nullable, (), None
        if issubclass(target, _SEQUENCE_ORIGINS) or issubclass(
            target, (collections.abc.Sequence, collections.abc.Set)
        ):
            return FieldKind.ARRAY, nullable, (), None

    return FieldKind.STRING, nullable, (), None


class SchemaDescriptor:
    """Ordered, resolved field list of a pydantic model."""

    def __init__(
        self,
        model: Type[BaseModel],
        _enclosing: Optional[Dict[Type[BaseModel], "SchemaDescriptor"]] = None,
    ):
        if not (isinstance(model, type) and issubclass(model, BaseModel)):
            raise TypeError(f"Expected a pydantic model class, got {model!r}")
        self.model = model
        self._fields: Dict[str, FieldSpec] = {}
        enclosing = dict(_enclosing or {})
        enclosing[model] = self
        for name, info in model.model_fields.items():
            kind, nullable, choices, nested = resolve_kind(info.annotation)
            children: Optional[SchemaDescriptor] = None
            back_reference = False
            if nested in enclosing:
                back_reference = True
                children = enclosing[nested]
            elif nested is not None:
                children = SchemaDescriptor(nested, enclosing)
            self._fields[name] = FieldSpec(
                name=name,
                kind=kind,
                description=info.description or "",
                nullable=nullable,
                choices=choices,
                children=children,
                back_reference=back_reference,
            )

    def __repr__(self) -> str:
        return f"SchemaDescriptor({self.model.__name__})"

    def fields(self) -> List[FieldSpec]:
        """Return the fields in declaration order."""
        return list(self._fields.values())

    def field(self, name: str) -> FieldSpec:
        """Return the field called *name* (``KeyError`` if undeclared)."""
        return self._fields[name]

    def validate(self, value: Any) -> BaseModel:
        """Validate *value* against the model; raises ``pydantic.ValidationError``."""
        if isinstance(value, self.model):
            value = value.model_dump()
        return self.model.model_validate(value)

    def find_array_field(self, prefix: str = "") -> Optional[str]:
        """Return the dotted path of the first array field, depth first, or ``None``."""
        for spec in self._fields.values():
            path = f"{prefix}.{spec.name}" if prefix else spec.name
            if spec.kind is FieldKind.ARRAY:
                return path
            if spec.children is not None and not spec.back_reference:
                found = spec.children.find_array_field(path)
                if found:
                    return found
        return None

    def describe(self) -> Dict[str, Any]:
        """
        Field name -> ``{type, description}`` mapping, nested for object fields.

        A field that refers back to an enclosing model names that model under ``same_as``
        instead of repeating its fields.
        """
        description: Dict[str, Any] = {}
        for spec in self._fields.values():
            entry: Dict[str, Any] = {"type": spec.kind.value, "description": spec.description}
            if spec.choices:
                entry["one_of"] = [str(choice) for choice in spec.choices]
            if spec.back_reference and spec.children is not None:
                entry["same_as"] = spec.children.model.__name__
            elif spec.children is not None:
                entry["fields"] = spec.children.describe()
            description[spec.name] = entry
        return description


def reject_array_fields(descriptor: SchemaDescriptor) -> None:
    """Raise :class:`UnsupportedSchemaError` if *descriptor* declares an array anywhere."""
    path = descriptor.find_array_field()
    if path is None:
        return
    leaf = path.rsplit(".", 1)[-1]
    logger.error("Output schema %s declares an array at %s", descriptor.model.__name__, path)
    raise UnsupportedSchemaError(
        f"Arrays are not supported in output schema. Found array at path: {path}. "
        f"Use individual fields like {leaf}_1, {leaf}_2 instead."
    )
