"""
Field selectors: compiled record accessors.

SelectorResolver turns selector expressions into plain callables once per
run, validated against the record shape:

  "Grade"          → record.Grade / record["Grade"]
  "Address.City"   → record.Address.City
  "Address_City"   → same as "Address.City" (flattened binding name)
  ("Grade", "Obs") → tuple of both values (composite)
  callable         → used as-is

Records may be objects (getattr/setattr) or mappings ([] / .get). Reading
through a None intermediate yields None.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, MutableMapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from errors import CompilationError
from record_shape import RecordShape, flatten_attribute_names

logger = logging.getLogger(__name__)


# ── Raw access ──────────────────────────────────────────────────────


def read_attribute(obj: Any, name: str) -> Any:
    """Read one attribute from an object or mapping (None-propagating)."""
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name)


def write_attribute(obj: Any, name: str, value: Any) -> None:
    """Assign one attribute on an object or mutable mapping."""
    if obj is None:
        raise AttributeError(f"Cannot set '{name}' on None")
    if isinstance(obj, MutableMapping):
        obj[name] = value
    else:
        setattr(obj, name, value)


def read_path(obj: Any, path: Sequence[str]) -> Any:
    for name in path:
        obj = read_attribute(obj, name)
    return obj


def write_path(obj: Any, path: Sequence[str], value: Any) -> None:
    parent = read_path(obj, path[:-1])
    if parent is None and len(path) > 1:
        raise AttributeError(f"Cannot set '{'.'.join(path)}': '{'.'.join(path[:-1])}' is None")
    write_attribute(parent, path[-1], value)


def _hashable(value: Any) -> Any:
    if isinstance(value, Mapping):
        return tuple(sorted(((k, _hashable(v)) for k, v in value.items()), key=lambda kv: repr(kv[0])))
    if isinstance(value, (list, tuple)):
        return tuple(_hashable(v) for v in value)
    if isinstance(value, set):
        return frozenset(value)
    return value


# ── Compiled selectors ─────────────────────────────────────────────


@dataclass(frozen=True)
class Selector:
    """A compiled ``record -> value`` function."""

    expression: str
    getter: Callable[[Any], Any] = field(repr=False, compare=False)
    path: tuple[str, ...] | None = None

    def __call__(self, record: Any) -> Any:
        return self.getter(record)


@dataclass(frozen=True)
class CompositeSelector(Selector):
    """Reads several attributes at once; returns a tuple."""

    parts: tuple[Selector, ...] = ()


@dataclass(frozen=True)
class Setter:
    """A compiled ``(record, value) -> None`` assignment."""

    expression: str
    assign: Callable[[Any, Any], None] = field(repr=False, compare=False)
    width: int = 1

    def __call__(self, record: Any, value: Any) -> None:
        self.assign(record, value)


def _path_getter(path: tuple[str, ...]) -> Callable[[Any], Any]:
    if len(path) == 1:
        name = path[0]
        return lambda record: read_attribute(record, name)
    return lambda record: read_path(record, path)


def _path_setter(path: tuple[str, ...]) -> Callable[[Any, Any], None]:
    if len(path) == 1:
        name = path[0]
        return lambda record, value: write_attribute(record, name, value)
    return lambda record, value: write_path(record, path, value)


class SelectorResolver:
    """Compiles selector expressions against one record shape."""

    def __init__(self, shape: RecordShape):
        self.shape = shape
        self._flat: dict[str, tuple[str, ...]] = dict(flatten_attribute_names(shape))

    # ── path resolution ──

    def resolve_path(self, expression: str) -> tuple[str, ...]:
        """Map an attribute name, flattened name or dotted path to a path."""
        expr = expression.strip()
        if not expr:
            raise CompilationError("Empty selector expression")
        if expr in self._flat:
            return self._flat[expr]
        path = tuple(part.strip() for part in expr.split("."))
        if any(not part for part in path):
            raise CompilationError(f"Malformed selector path: {expression!r}")

        attr = self.shape.attribute(path[0])
        if attr is None:
            raise CompilationError(f"Unknown attribute '{path[0]}' in selector {expression!r} for {self.shape!r}")
        if len(path) > 1 and attr.children:
            if attr.child(path[1]) is None:
                raise CompilationError(f"Unknown attribute '{path[1]}' of '{path[0]}' in selector {expression!r}")
        return path

    # ── compilation ──

    def compile(self, expression: Any) -> Selector:
        """Compile a value selector."""
        if isinstance(expression, Selector):
            return expression
        if isinstance(expression, str):
            path = self.resolve_path(expression)
            logger.debug("compiled selector %r -> %s", expression, ".".join(path))
            return Selector(expression, _path_getter(path), path)
        if isinstance(expression, (tuple, list)):
            if not expression:
                raise CompilationError("Empty composite selector")
            parts = tuple(self.compile(e) for e in expression)
            return CompositeSelector(
                expression=", ".join(p.expression for p in parts),
                getter=lambda record: tuple(p(record) for p in parts),
                parts=parts,
            )
        if callable(expression):
            return Selector(getattr(expression, "__name__", "<callable>"), expression)
        raise CompilationError(f"Unsupported selector expression: {expression!r}")

    def compile_display(self, expression: Any) -> Selector:
        """Compile a selector whose value is rendered as text ('' for None)."""
        inner = self.compile(expression)

        def display(record: Any) -> str:
            value = inner(record)
            return "" if value is None else str(value)

        return Selector(inner.expression, display, inner.path)

    def compile_key(self, expression: Any) -> Selector:
        """Compile a selector whose value is usable as a dict key."""
        inner = self.compile(expression)
        return Selector(inner.expression, lambda record: _hashable(inner(record)), inner.path)

    def compile_setter(self, expression: Any) -> Setter:
        """Compile an assignment target."""
        if isinstance(expression, Setter):
            return expression
        if isinstance(expression, CompositeSelector):
            expression = list(expression.parts)
        if isinstance(expression, Selector):
            if expression.path is None:
                raise CompilationError(f"Cannot assign through computed selector {expression.expression!r}")
            return Setter(expression.expression, _path_setter(expression.path))
        if isinstance(expression, str):
            path = self.resolve_path(expression)
            return Setter(expression, _path_setter(path))
        if isinstance(expression, (tuple, list)):
            if not expression:
                raise CompilationError("Empty composite target")
            parts = tuple(self.compile_setter(e) for e in expression)

            def assign_all(record: Any, value: Any) -> None:
                if not isinstance(value, (tuple, list)) or len(value) != len(parts):
                    raise ValueError(
                        f"Composite target expects {len(parts)} values, got {value!r}"
                    )
                for part, v in zip(parts, value):
                    part(record, v)

            return Setter(", ".join(p.expression for p in parts), assign_all, len(parts))
        raise CompilationError(f"Unsupported assignment target: {expression!r}")

    def compile_target(self, expression: Any) -> "FieldTarget":
        """Compile a read/write field target.

        Plain callables and computed selectors can be read but not assigned;
        their setter is None.
        """
        selector = self.compile(expression)
        if isinstance(selector, CompositeSelector):
            assignable = all(p.path is not None for p in selector.parts)
        else:
            assignable = selector.path is not None
        setter = self.compile_setter(selector) if assignable else None
        return FieldTarget(selector, setter)


@dataclass(frozen=True)
class FieldTarget:
    """A field the script may read and assign on the current item."""

    selector: Selector
    setter: Setter | None = None

    @property
    def expression(self) -> str:
        return self.selector.expression

    def read(self, record: Any) -> Any:
        return self.selector(record)

    def write(self, record: Any, value: Any) -> None:
        if self.setter is None:
            raise AttributeError(f"Target {self.expression!r} is not assignable")
        self.setter(record, value)
