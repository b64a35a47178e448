"""
Grouping of context items and context collections.

A context item is the first record seen for each distinct key. Its context
collection is every record of the source that satisfies a caller-supplied
equivalence predicate against the item. The predicate is arbitrary (not a
key), so collections are built by a fresh linear scan per item: O(n) per
item, O(n²) per pass.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable, Iterator, Sequence
from typing import Any, TypeVar

T = TypeVar("T")

KeySelector = Callable[[Any], Any]
Equivalence = Callable[[Any, Any], bool]


def distinct_items(source: Iterable[T], key_selector: KeySelector) -> Iterator[T]:
    """Yield one representative per distinct key, first-seen order.

    Lazy; call again to restart. Unhashable keys are compared linearly.
    """
    seen: set = set()
    seen_unhashable: list = []
    for record in source:
        key = key_selector(record)
        if isinstance(key, Hashable):
            try:
                if key in seen:
                    continue
                seen.add(key)
                yield record
                continue
            except TypeError:
                # tuples holding unhashable members
                pass
        if key in seen_unhashable:
            continue
        seen_unhashable.append(key)
        yield record


def count_distinct(source: Iterable[Any], key_selector: KeySelector) -> int:
    return sum(1 for _ in distinct_items(source, key_selector))


def context_for(source: Iterable[T], item: T, equivalence: Equivalence) -> list[T]:
    """Records of ``source`` related to ``item``, in source order."""
    return [record for record in source if equivalence(record, item)]


def iter_contexts(
    source: Sequence[T],
    key_selector: KeySelector,
    equivalence: Equivalence,
) -> Iterator[tuple[T, list[T]]]:
    """Yield (context_item, context_collection) for every distinct item."""
    for item in distinct_items(source, key_selector):
        yield item, context_for(source, item, equivalence)


def same_key(key_selector: KeySelector) -> Equivalence:
    """Equivalence predicate: both records share the same key."""

    def equivalent(record: Any, item: Any) -> bool:
        return key_selector(record) == key_selector(item)

    return equivalent
