"""
RecordEval Evaluator: dataset + script → classification report.

Single entry point for evaluation runs. The CLI and any embedding
application call this module.

Pipeline (per run):
  resolve selectors → bind per-run names → check script
    → for each distinct context item:
        build context collection → before hook → bind $ctxI/$ctxC
        → interpreter.execute → classify by result → after hook
    → render report → RunResult

Two variants:
  run        : full binding set, RunResult with message and 3-decimal report
  run_simple : key + equivalence only, result field from the ``resultKey``
               binding, plain status string and 1-decimal report
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from binder import Binder, BindingKind
from classification import ClassificationAccumulator
from errors import CompilationError
from field_selectors import FieldTarget, SelectorResolver
from grouping import context_for, count_distinct, distinct_items, same_key
from record_shape import ShapeIntrospector, flatten_attribute_names, introspect
from script_checks import Severity, check_script
from script_interpreter import ScriptInterpreter, ScriptInterpreterProtocol

logger = logging.getLogger(__name__)

Hook = Callable[[Any, list], None]

# Per-run names registered (unbound) at construction.
RESERVED_BINDINGS: tuple[tuple[str, BindingKind], ...] = (
    ("$ctxI", BindingKind.LITERAL),
    ("$ctxC", BindingKind.COLLECTION),
    ("$pkAll", BindingKind.PREDICATE),
    ("$result", BindingKind.TARGET),
    ("$obs", BindingKind.TARGET),
    ("$classes", BindingKind.MAPPING),
    ("$subclasses", BindingKind.MAPPING),
    ("evalKey", BindingKind.SELECTOR),
    ("evalKeyDisplayValue", BindingKind.SELECTOR),
    ("evalBasedKey", BindingKind.SELECTOR),
    ("evalBasedKeyDisplayValue", BindingKind.SELECTOR),
    ("itemKey", BindingKind.SELECTOR),
    ("resultKey", BindingKind.SELECTOR),
)

FULL_REPORT_DECIMALS = 3
SIMPLE_REPORT_DECIMALS = 1
SUCCESS = "Success"


# ── Data Structures ────────────────────────────────────────────────────


class RunStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class RunResult:
    """Outcome of a full run. Error results carry no report."""

    status: RunStatus
    message: str
    report: str = ""
    elapsed_s: float = 0.0
    item_count: int = 0

    @property
    def success(self) -> bool:
        return self.status == RunStatus.SUCCESS

    def __str__(self) -> str:
        return self.message


# ── Evaluator ──────────────────────────────────────────────────────────


class Evaluator:
    """Runs an evaluation script over the distinct items of a dataset.

    Attribute bindings are built once here from the record shape: every
    attribute becomes a selector binding under its name, composite
    attributes under ``parent_child`` names. Not safe for concurrent runs;
    use one Evaluator per thread.

    Subclasses may override ``before_evaluate`` / ``after_evaluate``;
    callers may instead pass ``before_hook`` / ``after_hook``.
    """

    def __init__(
        self,
        record_type: Any = dict,
        introspector: ShapeIntrospector | None = None,
        interpreter: ScriptInterpreterProtocol | None = None,
        before_hook: Hook | None = None,
        after_hook: Hook | None = None,
        check_scripts: bool = True,
    ):
        self.shape = introspect(record_type, introspector)
        self.resolver = SelectorResolver(self.shape)
        self.binder = Binder()
        self.interpreter = interpreter or ScriptInterpreter()
        self.accumulator = ClassificationAccumulator()
        self.before_hook = before_hook
        self.after_hook = after_hook
        self.check_scripts = check_scripts
        self.result_description = ""

        names = []
        for name, _path in flatten_attribute_names(self.shape):
            self.binder.add_binding(name, self.resolver.compile(name), BindingKind.SELECTOR)
            names.append(name)
        self._fields = tuple(names)

        for name, kind in RESERVED_BINDINGS:
            self.binder.add_binding(name, None, kind)

        logger.debug("Evaluator for %r: %d attribute bindings", self.shape, len(self._fields))

    @property
    def fields(self) -> tuple[str, ...]:
        """Bindable attribute names, flattened, in shape order."""
        return self._fields

    @property
    def buckets(self) -> dict[str, list[Any]]:
        return self.accumulator.buckets

    # ── hooks ──

    def before_evaluate(self, item: Any, context: list) -> None:
        if self.before_hook is not None:
            self.before_hook(item, context)

    def after_evaluate(self, item: Any, context: list) -> None:
        if self.after_hook is not None:
            self.after_hook(item, context)

    # ── binding helpers ──

    def bind_result_key(self, result_key: Any) -> FieldTarget:
        """Register the result field used by ``run_simple``."""
        target = self.resolver.compile_target(result_key)
        self.binder.set_binding_value("resultKey", target)
        return target

    def _result_target(self, result_key: Any) -> FieldTarget:
        if result_key is not None:
            return self.bind_result_key(result_key)
        bound = self.binder.get_binding_value("resultKey")
        if bound is None:
            raise CompilationError(
                "resultKey is not bound; pass result_key, call bind_result_key() or do a full run first"
            )
        if isinstance(bound, FieldTarget):
            return bound
        return self.bind_result_key(bound)

    def _check(self, script: Any) -> Any:
        """Compile the script once for the run and log static findings."""
        compile_script = getattr(self.interpreter, "compile", None)
        if compile_script is None:
            return script
        ir = compile_script(script)
        if self.check_scripts:
            report = check_script(ir, self.binder.names())
            for finding in report.findings:
                if finding.severity == Severity.INFO:
                    logger.debug("script check: %r", finding)
                else:
                    logger.warning("script check: %r", finding)
        return ir

    def _evaluate_items(
        self,
        records: list,
        item_key: Callable[[Any], Any],
        equivalence: Callable[[Any, Any], bool],
        result_target: FieldTarget,
        script: Any,
        classes: Mapping[str, str],
        subclasses: Mapping[str, str] | None,
    ) -> int:
        processed = 0
        for item in distinct_items(records, item_key):
            context = context_for(records, item, equivalence)
            self.before_evaluate(item, context)
            self.binder.set_binding_value("$ctxI", item)
            self.binder.set_binding_value("$ctxC", context)
            self.interpreter.execute(self.binder, classes, subclasses, script)
            label = self.accumulator.classify(item, result_target.read)
            logger.debug("item %d -> %r", processed, label)
            self.after_evaluate(item, context)
            processed += 1
        return processed

    # ── runs ──

    def run(
        self,
        source: Iterable[Any],
        item_display_value: Any,
        item_key: Any,
        item_equivalence: Callable[[Any, Any], bool] | None,
        eval_key: Any,
        eval_based_key: Any,
        eval_based_key_display_value: Any,
        result_key: Any,
        obs_key: Any,
        script: Any,
        classes: Mapping[str, str],
        subclasses: Mapping[str, str] | None = None,
    ) -> RunResult:
        """Full run. Never raises; faults become an error RunResult."""
        start = time.perf_counter()
        self.accumulator.clear()
        try:
            records = list(source)
            key = self.resolver.compile_key(item_key)
            result_target = self.resolver.compile_target(result_key)
            obs_target = self.resolver.compile_target(obs_key)

            self.binder.set_binding_value("evalKey", self.resolver.compile(eval_key))
            self.binder.set_binding_value("evalKeyDisplayValue", self.resolver.compile_display(item_display_value))
            self.binder.set_binding_value("evalBasedKey", self.resolver.compile(eval_based_key))
            self.binder.set_binding_value(
                "evalBasedKeyDisplayValue", self.resolver.compile_display(eval_based_key_display_value)
            )
            self.binder.set_binding_value("itemKey", key)
            self.binder.set_binding_value("resultKey", result_target)
            self.binder.set_binding_value("$result", result_target)
            self.binder.set_binding_value("$obs", obs_target)
            equivalence = item_equivalence or same_key(key)
            self.binder.set_binding_value("$pkAll", equivalence)
            self.binder.set_binding_value("$classes", dict(classes or {}))
            self.binder.set_binding_value("$subclasses", dict(subclasses or {}))

            compiled = self._check(script)
            total = count_distinct(records, key)
            logger.info("Run started: %d records, %d distinct items", len(records), total)

            processed = self._evaluate_items(
                records, key, equivalence, result_target, compiled, classes, subclasses
            )
            self.result_description = self.accumulator.report(total, FULL_REPORT_DECIMALS)
        except Exception as e:
            self.accumulator.clear()
            self.result_description = ""
            elapsed = time.perf_counter() - start
            logger.warning("Run aborted after %.3fs: %s", elapsed, e)
            return RunResult(RunStatus.ERROR, str(e), elapsed_s=elapsed)

        elapsed = time.perf_counter() - start
        logger.info("Run finished: %d items in %.3fs", processed, elapsed)
        return RunResult(
            status=RunStatus.SUCCESS,
            message=f"RecordEval\nCompleted successfully in {elapsed:.3f} seconds",
            report=self.result_description,
            elapsed_s=elapsed,
            item_count=processed,
        )

    def run_simple(
        self,
        source: Iterable[Any],
        item_key: Any,
        item_equivalence: Callable[[Any, Any], bool] | None,
        script: Any,
        classes: Mapping[str, str],
        subclasses: Mapping[str, str] | None = None,
        result_key: Any = None,
    ) -> str:
        """Simplified run. Returns "Success" or the fault message."""
        start = time.perf_counter()
        self.accumulator.clear()
        try:
            records = list(source)
            key = self.resolver.compile_key(item_key)
            result_target = self._result_target(result_key)

            self.binder.set_binding_value("itemKey", key)
            self.binder.set_binding_value("$result", result_target)
            equivalence = item_equivalence or same_key(key)
            self.binder.set_binding_value("$pkAll", equivalence)
            self.binder.set_binding_value("$classes", dict(classes or {}))
            self.binder.set_binding_value("$subclasses", dict(subclasses or {}))

            compiled = self._check(script)
            total = count_distinct(records, key)
            logger.info("Simple run started: %d records, %d distinct items", len(records), total)

            self._evaluate_items(records, key, equivalence, result_target, compiled, classes, subclasses)
            self.result_description = self.accumulator.report(total, SIMPLE_REPORT_DECIMALS)
        except Exception as e:
            self.accumulator.clear()
            self.result_description = ""
            logger.warning("Simple run aborted: %s", e)
            return str(e)

        logger.info("Simple run finished in %.3fs", time.perf_counter() - start)
        return SUCCESS
