"""
Binder, the named-variable table shared by the Evaluator and the script
interpreter.

Each entry is a Binding tagged with what it holds, so the interpreter can
tell a field selector from a plain value without guessing. Names are
registered once and rebound freely afterwards; lookups of unknown names
fail loudly instead of returning None.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from errors import DuplicateBindingError, UnknownBindingError

logger = logging.getLogger(__name__)


class BindingKind(str, Enum):
    """What a binding's value is."""

    LITERAL = "literal"
    SELECTOR = "selector"  # record -> value
    PREDICATE = "predicate"  # (record, record) -> bool
    COLLECTION = "collection"
    MAPPING = "mapping"
    TARGET = "target"  # field on the current item the script writes to


@dataclass
class Binding:
    name: str
    value: Any
    kind: BindingKind = BindingKind.LITERAL

    def __repr__(self) -> str:
        return f"Binding({self.name}, {self.kind.value})"


def infer_kind(value: Any) -> BindingKind:
    """Best-effort kind for values registered without an explicit kind."""
    if isinstance(value, Mapping):
        return BindingKind.MAPPING
    if isinstance(value, (list, tuple)):
        return BindingKind.COLLECTION
    if isinstance(value, Callable):
        return BindingKind.SELECTOR
    return BindingKind.LITERAL


class Binder:
    """Mutable name → Binding table. Not thread-safe."""

    def __init__(self):
        self._bindings: dict[str, Binding] = {}

    def add_binding(self, name: str, value: Any, kind: BindingKind | None = None) -> Binding:
        """Register a new name. Raises DuplicateBindingError if it exists."""
        if name in self._bindings:
            raise DuplicateBindingError(name)
        binding = Binding(name, value, kind or infer_kind(value))
        self._bindings[name] = binding
        return binding

    def set_binding_value(self, name: str, value: Any, kind: BindingKind | None = None) -> None:
        """Rebind an existing name. Raises UnknownBindingError if absent.

        The kind is kept unless a new one is given.
        """
        binding = self.get_binding(name)
        binding.value = value
        if kind is not None:
            binding.kind = kind
        logger.debug("rebound %s (%s)", name, binding.kind.value)

    def get_binding(self, name: str) -> Binding:
        try:
            return self._bindings[name]
        except KeyError:
            raise UnknownBindingError(name) from None

    def get_binding_value(self, name: str) -> Any:
        return self.get_binding(name).value

    def has_binding(self, name: str) -> bool:
        return name in self._bindings

    def names(self) -> list[str]:
        return list(self._bindings)

    def snapshot(self) -> dict[str, Any]:
        """Name → current value, in registration order."""
        return {name: b.value for name, b in self._bindings.items()}

    def __contains__(self, name: object) -> bool:
        return name in self._bindings

    def __iter__(self) -> Iterator[Binding]:
        return iter(self._bindings.values())

    def __len__(self) -> int:
        return len(self._bindings)
