"""
Classification buckets and distribution reports.

Records are grouped by the text of their post-script result value
('' when the result is None). Buckets keep first-created order, which is
the order the report lists them in. Percentages are computed against the
number of distinct context items of the run.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from errors import DivisionGuardError


@dataclass(frozen=True)
class BucketStat:
    """Count and share of one result label."""

    label: str
    count: int
    percent: float | None  # None when the distinct total is zero

    def format(self, decimals: int) -> str:
        pct = "N/A" if self.percent is None else f"{self.percent:.{decimals}f} %"
        return f"  {self.label}:{self.count} -> {pct}"


def label_for(value: Any) -> str:
    return "" if value is None else str(value)


class ClassificationAccumulator:
    """Collects records into buckets keyed by result label."""

    def __init__(self):
        self._buckets: dict[str, list[Any]] = {}

    @property
    def buckets(self) -> dict[str, list[Any]]:
        return self._buckets

    @property
    def labels(self) -> list[str]:
        return list(self._buckets)

    @property
    def total(self) -> int:
        return sum(len(records) for records in self._buckets.values())

    def classify(self, record: Any, result_selector: Callable[[Any], Any]) -> str:
        """Append ``record`` to the bucket of its result label."""
        label = label_for(result_selector(record))
        self._buckets.setdefault(label, []).append(record)
        return label

    def clear(self) -> None:
        self._buckets.clear()

    def counts(self) -> dict[str, int]:
        return {label: len(records) for label, records in self._buckets.items()}

    @staticmethod
    def percentage(count: int, total: int) -> float:
        if total == 0:
            raise DivisionGuardError("Cannot compute percentage of zero distinct items")
        return (count * 100) / float(total)

    def statistics(self, total: int) -> list[BucketStat]:
        stats = []
        for label, records in self._buckets.items():
            try:
                pct: float | None = self.percentage(len(records), total)
            except DivisionGuardError:
                pct = None
            stats.append(BucketStat(label, len(records), pct))
        return stats

    def report(self, total: int, decimals: int = 3) -> str:
        """Render the distribution report.

        Layout:

              Total -> 3

              Pass:2 -> 66.667 %

              Fail:1 -> 33.333 %
        """
        lines = ["", f"  Total -> {total}"]
        if total == 0:
            lines.extend(["", "  N/A"])
        for stat in self.statistics(total):
            lines.extend(["", stat.format(decimals)])
        return "\n".join(lines) + "\n"
