"""
Record shape introspection.

Enumerates the attributes of a record type so the Evaluator can seed its
Binder with one binding per attribute. Composite attributes (an attribute
whose own type exposes more than one attribute) are flattened into
``parent_child`` names.

Supported record types:
  - dataclasses
  - annotated classes, NamedTuple and TypedDict (via typing.get_type_hints)
  - mappings, described by sample records (MappingIntrospector)

Usage:
    from record_shape import introspect, flatten_attribute_names

    shape = introspect(Student)
    names = flatten_attribute_names(shape)   # ["Name", "Address_City", ...]
"""

from __future__ import annotations

import dataclasses
import typing
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from errors import ShapeIntrospectionError

# Types that are never treated as composites even though they carry attributes
_SCALAR_TYPES = (str, bytes, int, float, bool, complex, type(None))


@dataclass(frozen=True)
class AttributeDescriptor:
    """One attribute of a record type, with its child attributes if composite."""

    name: str
    children: tuple["AttributeDescriptor", ...] = ()

    @property
    def is_composite(self) -> bool:
        return len(self.children) > 1

    def child(self, name: str) -> "AttributeDescriptor | None":
        for c in self.children:
            if c.name == name:
                return c
        return None


@dataclass(frozen=True)
class RecordShape:
    """The attribute layout of a record type."""

    record_type: Any
    attributes: tuple[AttributeDescriptor, ...]

    def attribute(self, name: str) -> AttributeDescriptor | None:
        for a in self.attributes:
            if a.name == name:
                return a
        return None

    def attribute_names(self) -> list[str]:
        return [a.name for a in self.attributes]

    def __repr__(self) -> str:
        name = getattr(self.record_type, "__name__", repr(self.record_type))
        return f"RecordShape({name}, {len(self.attributes)} attributes)"


@runtime_checkable
class ShapeIntrospector(Protocol):
    """Anything that can describe the attributes of a record type."""

    def describe(self, record_type: Any) -> RecordShape: ...


# ── Type-hint based introspection ───────────────────────────────────


def _type_hints(tp: Any) -> dict[str, Any]:
    try:
        return typing.get_type_hints(tp)
    except Exception as e:  # NameError for unresolved forward refs, TypeError for non-classes
        raise ShapeIntrospectionError(
            f"Cannot resolve attribute types of {getattr(tp, '__name__', tp)!r}: {e}"
        ) from e


def _is_typed_dict(tp: Any) -> bool:
    return isinstance(tp, type) and issubclass(tp, dict) and hasattr(tp, "__total__")


def _is_named_tuple(tp: Any) -> bool:
    return isinstance(tp, type) and issubclass(tp, tuple) and hasattr(tp, "_fields")


def _unwrap_optional(tp: Any) -> Any:
    """Optional[X] → X; any other union is returned untouched."""
    args = typing.get_args(tp)
    if args and type(None) in args:
        rest = [a for a in args if a is not type(None)]
        if len(rest) == 1:
            return rest[0]
    return tp


def _own_attribute_types(tp: Any) -> dict[str, Any] | None:
    """Return name → type for a composite-capable type, or None for leaves."""
    tp = _unwrap_optional(tp)
    if typing.get_origin(tp) is not None:
        return None  # list[int], dict[str, X], unions
    if not isinstance(tp, type) or issubclass(tp, _SCALAR_TYPES):
        return None
    if dataclasses.is_dataclass(tp):
        hints = _type_hints(tp)
        return {f.name: hints.get(f.name, Any) for f in dataclasses.fields(tp)}
    if _is_typed_dict(tp) or _is_named_tuple(tp):
        return _type_hints(tp)
    if tp.__module__ == "builtins" or tp.__module__.startswith("typing"):
        return None
    hints = _type_hints(tp)
    return {k: v for k, v in hints.items() if not k.startswith("_")} or None


class TypeHintIntrospector:
    """Describes dataclasses, NamedTuple, TypedDict and annotated classes."""

    def describe(self, record_type: Any) -> RecordShape:
        attrs = _own_attribute_types(record_type)
        if attrs is None:
            raise ShapeIntrospectionError(
                f"{getattr(record_type, '__name__', record_type)!r} has no introspectable attributes"
            )
        descriptors = []
        for name, attr_type in attrs.items():
            child_types = _own_attribute_types(attr_type)
            children = tuple(AttributeDescriptor(c) for c in child_types) if child_types else ()
            descriptors.append(AttributeDescriptor(name, children))
        return RecordShape(record_type, tuple(descriptors))


class MappingIntrospector:
    """Describes dict records from sample records.

    Attribute order is first-seen across the samples. A nested dict value
    contributes its keys as child attributes.
    """

    def __init__(self, samples: Iterable[Mapping[str, Any]]):
        self._samples = list(samples)

    @classmethod
    def from_sample(cls, sample: Mapping[str, Any]) -> "MappingIntrospector":
        return cls([sample])

    def describe(self, record_type: Any = dict) -> RecordShape:
        if not self._samples:
            raise ShapeIntrospectionError("Cannot describe mapping records without samples")
        order: dict[str, dict[str, None]] = {}
        for i, sample in enumerate(self._samples):
            if not isinstance(sample, Mapping):
                raise ShapeIntrospectionError(
                    f"Sample {i} is {type(sample).__name__}, expected a mapping"
                )
            for key, value in sample.items():
                children = order.setdefault(str(key), {})
                if isinstance(value, Mapping):
                    for child_key in value:
                        children.setdefault(str(child_key), None)
        descriptors = tuple(
            AttributeDescriptor(name, tuple(AttributeDescriptor(c) for c in children))
            for name, children in order.items()
        )
        return RecordShape(record_type, descriptors)


_DEFAULT_INTROSPECTOR = TypeHintIntrospector()


def introspect(record_type: Any, introspector: ShapeIntrospector | None = None) -> RecordShape:
    """Describe a record type with the given (or default) introspector."""
    return (introspector or _DEFAULT_INTROSPECTOR).describe(record_type)


def flatten_attribute_names(shape: RecordShape) -> list[tuple[str, tuple[str, ...]]]:
    """Return (binding_name, attribute_path) for every bindable attribute.

    Attributes with more than one child are replaced by their children,
    named ``parent_child``. Names must be unique.
    """
    seen: set[str] = set()
    result: list[tuple[str, tuple[str, ...]]] = []
    for attr in shape.attributes:
        if attr.is_composite:
            entries = [(f"{attr.name}_{c.name}", (attr.name, c.name)) for c in attr.children]
        else:
            entries = [(attr.name, (attr.name,))]
        for name, path in entries:
            if name in seen:
                raise ShapeIntrospectionError(f"Duplicate attribute name after flattening: {name}")
            seen.add(name)
            result.append((name, path))
    return result
