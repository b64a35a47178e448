"""
EvalScript interpreter.

Walks a ScriptIR against the Evaluator's Binder for one context item:

  - $ctxI / $ctxC / $pkAll and every attribute binding are read from the Binder
  - target bindings ($result, $obs) read from and write to fields of $ctxI
  - any other $name is a script-local variable, reset on every execution
  - $classes / DESCRIBE expose the primary classification map; the auxiliary
    map is readable through $subclasses / SUBCLASS but never used by DESCRIBE

Every runtime failure, a selector raising included, is reported as an
InterpreterFault carrying the statement's line number.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from binder import Binder, BindingKind
from errors import InterpreterFault
from field_selectors import FieldTarget, read_attribute, read_path, write_path
from script_ir import (
    BinaryOp,
    BoolValue,
    Call,
    CallStatement,
    Expr,
    ForeachBlock,
    IfBlock,
    Index,
    ListLiteral,
    Member,
    NameRef,
    NullValue,
    NumberValue,
    ScriptIR,
    SetField,
    SetVariable,
    Statement,
    StringValue,
    UnaryOp,
    VarRef,
)
from script_linter import lint_script
from script_parser import parse_script

logger = logging.getLogger(__name__)


class ScriptInterpreterProtocol(Protocol):
    """What the Evaluator needs from an interpreter."""

    def execute(
        self,
        binder: Binder,
        classes: Mapping[str, str] | None,
        subclasses: Mapping[str, str] | None,
        script: Any,
    ) -> Any: ...


@dataclass
class ExecutionContext:
    """State of one script execution."""

    binder: Binder
    classes: Mapping[str, str]
    subclasses: Mapping[str, str]
    locals: dict[str, Any] = field(default_factory=dict)

    @property
    def item(self) -> Any:
        if self.binder.has_binding("$ctxI"):
            return self.binder.get_binding_value("$ctxI")
        return None

    @property
    def collection(self) -> list:
        if self.binder.has_binding("$ctxC"):
            return list(self.binder.get_binding_value("$ctxC") or [])
        return []


# ── Builtins ────────────────────────────────────────────────────────

BUILTINS: dict[str, Callable[..., Any]] = {}


def _builtin(name: str):
    def register(fn):
        BUILTINS[name] = fn
        return fn

    return register


def apply_selector(selector: Any, record: Any) -> Any:
    """Read a value from ``record`` through a selector, target or field name."""
    if selector is None:
        return record
    if isinstance(selector, FieldTarget):
        return selector.read(record)
    if isinstance(selector, str):
        return read_path(record, selector.split("."))
    if callable(selector):
        return selector(record)
    raise TypeError(f"Not a selector: {selector!r}")


def _values(collection: Iterable[Any] | None, selector: Any = None, skip_none: bool = True) -> list:
    if collection is None:
        return []
    values = [apply_selector(selector, r) for r in collection]
    return [v for v in values if v is not None] if skip_none else values


def compare(left: Any, op: str, right: Any) -> bool:
    if op == "==":
        return left == right
    if op == "!=":
        return left != right
    if op == "IN":
        return right is not None and left in right
    if left is None or right is None:
        return False
    if op == "<":
        return left < right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    if op == ">=":
        return left >= right
    raise ValueError(f"Unknown comparison operator: {op}")


@_builtin("COUNT")
def _count(ctx, collection, selector=None):
    if selector is None:
        return len(list(collection or []))
    return len(_values(collection, selector))


@_builtin("SUM")
def _sum(ctx, collection, selector=None):
    return sum(_values(collection, selector))


@_builtin("AVG")
def _avg(ctx, collection, selector=None):
    values = _values(collection, selector)
    return sum(values) / len(values) if values else None


@_builtin("MIN")
def _min(ctx, collection, selector=None):
    values = _values(collection, selector)
    return min(values) if values else None


@_builtin("MAX")
def _max(ctx, collection, selector=None):
    values = _values(collection, selector)
    return max(values) if values else None


@_builtin("VALUES")
def _pluck(ctx, collection, selector):
    return _values(collection, selector, skip_none=False)


@_builtin("WHERE")
def _where(ctx, collection, selector, op, value):
    return [r for r in (collection or []) if compare(apply_selector(selector, r), str(op), value)]


@_builtin("DISTINCT")
def _distinct(ctx, values):
    out = []
    for v in values or []:
        if v not in out:
            out.append(v)
    return out


@_builtin("RELATED")
def _related(ctx, record, collection=None):
    """Records of ``collection`` (default $ctxC) equivalent to ``record`` under $pkAll."""
    predicate = ctx.binder.get_binding_value("$pkAll")
    if predicate is None:
        raise ValueError("$pkAll is not bound")
    pool = ctx.collection if collection is None else collection
    return [r for r in pool if predicate(r, record)]


@_builtin("ROUND")
def _round(ctx, value, digits=0):
    return None if value is None else round(value, int(digits))


@_builtin("ABS")
def _abs(ctx, value):
    return None if value is None else abs(value)


@_builtin("STR")
def _str(ctx, value):
    return "" if value is None else str(value)


@_builtin("NUM")
def _num(ctx, value):
    if value is None or isinstance(value, (int, float)):
        return value
    text = str(value).strip()
    return float(text) if any(c in text for c in ".eE") else int(text)


@_builtin("LEN")
def _len(ctx, value):
    return 0 if value is None else len(value)


@_builtin("CONCAT")
def _concat(ctx, *parts):
    return "".join("" if p is None else str(p) for p in parts)


@_builtin("COALESCE")
def _coalesce(ctx, *values):
    for v in values:
        if v is not None:
            return v
    return None


@_builtin("DESCRIBE")
def _describe(ctx, label):
    """Description of a primary classification label ('' if unknown)."""
    return ctx.classes.get("" if label is None else str(label), "")


@_builtin("SUBCLASS")
def _subclass(ctx, label):
    return ctx.subclasses.get("" if label is None else str(label))


@_builtin("HASCLASS")
def _hasclass(ctx, label):
    key = "" if label is None else str(label)
    return key in ctx.classes or key in ctx.subclasses


# ── Interpreter ─────────────────────────────────────────────────────


class ScriptInterpreter:
    """Executes EvalScript for one context item at a time.

    Parsed scripts are cached by source text, so handing the same text to
    ``execute`` for every item parses it once.
    """

    def __init__(self, lint: bool = True):
        self.lint = lint
        self._cache: dict[str, ScriptIR] = {}

    def compile(self, script: str | ScriptIR) -> ScriptIR:
        """Lint (optionally) and parse script text; ScriptIR passes through.

        Linting only normalizes text and keyword spelling. Structural
        mistakes such as an orphan ELSE or a missing ENDIF are left for the
        parser to reject as ScriptSyntaxError.
        """
        if isinstance(script, ScriptIR):
            return script
        cached = self._cache.get(script)
        if cached is not None:
            return cached
        text = script
        if self.lint:
            result = lint_script(script, repair_structure=False)
            for change in result.changes:
                logger.debug("lint L%d [%s] %r -> %r", change.line, change.kind, change.original, change.replacement)
            text = result.text
        ir = parse_script(text)
        self._cache[script] = ir
        return ir

    def execute(
        self,
        binder: Binder,
        classes: Mapping[str, str] | None,
        subclasses: Mapping[str, str] | None,
        script: str | ScriptIR,
    ) -> dict[str, Any]:
        """Run ``script`` once. Returns the script-local variables."""
        ir = self.compile(script)
        ctx = ExecutionContext(binder, classes or {}, subclasses or {})
        self._exec_block(ir.statements, ctx)
        return ctx.locals

    # ── statements ──

    def _exec_block(self, stmts: list[Statement], ctx: ExecutionContext) -> None:
        for stmt in stmts:
            try:
                self._exec(stmt, ctx)
            except InterpreterFault:
                raise
            except Exception as e:
                raise InterpreterFault(f"Line {stmt.line_number}: {_message(e)}", stmt.line_number) from e

    def _exec(self, stmt: Statement, ctx: ExecutionContext) -> None:
        if isinstance(stmt, SetVariable):
            self._assign(f"${stmt.var_name}", self._eval(stmt.value, ctx), ctx)
        elif isinstance(stmt, SetField):
            base = self._lookup_var(f"${stmt.var_name}", ctx)
            _check_member_path(stmt.path)
            write_path(base, stmt.path, self._eval(stmt.value, ctx))
        elif isinstance(stmt, IfBlock):
            for branch in stmt.branches:
                if _truthy(self._eval(branch.condition, ctx)):
                    self._exec_block(branch.body, ctx)
                    return
            if stmt.else_body is not None:
                self._exec_block(stmt.else_body, ctx)
        elif isinstance(stmt, ForeachBlock):
            name = f"${stmt.var_name}"
            if name in ctx.binder:
                raise ValueError(f"FOREACH variable {name} shadows a binding")
            for element in self._eval(stmt.collection, ctx) or []:
                ctx.locals[name] = element
                self._exec_block(stmt.body, ctx)
        elif isinstance(stmt, CallStatement):
            self._eval(stmt.call, ctx)
        else:
            raise TypeError(f"Unknown statement: {stmt!r}")

    def _assign(self, name: str, value: Any, ctx: ExecutionContext) -> None:
        if name in ctx.locals or name not in ctx.binder:
            ctx.locals[name] = value
            return
        binding = ctx.binder.get_binding(name)
        if binding.kind is not BindingKind.TARGET:
            raise ValueError(f"Cannot assign to bound name {name}")
        target = binding.value
        if target is None:
            raise ValueError(f"{name} is not bound to a record field")
        target.write(ctx.item, value)

    # ── expressions ──

    def _lookup_var(self, name: str, ctx: ExecutionContext) -> Any:
        if name in ctx.locals:
            return ctx.locals[name]
        if name in ctx.binder:
            return self._binding_value(name, ctx)
        raise NameError(f"Undefined variable {name}")

    def _binding_value(self, name: str, ctx: ExecutionContext) -> Any:
        binding = ctx.binder.get_binding(name)
        if binding.kind is BindingKind.TARGET:
            return None if binding.value is None else binding.value.read(ctx.item)
        return binding.value

    def _eval(self, expr: Expr, ctx: ExecutionContext) -> Any:
        if isinstance(expr, (StringValue, NumberValue, BoolValue)):
            return expr.value
        if isinstance(expr, NullValue):
            return None
        if isinstance(expr, VarRef):
            return self._lookup_var(expr.binding_name, ctx)
        if isinstance(expr, NameRef):
            if expr.name in ctx.binder:
                return self._binding_value(expr.name, ctx)
            raise NameError(f"Unknown name {expr.name}")
        if isinstance(expr, ListLiteral):
            return [self._eval(i, ctx) for i in expr.items]
        if isinstance(expr, Member):
            _check_member_path((expr.name,))
            return read_attribute(self._eval(expr.target, ctx), expr.name)
        if isinstance(expr, Index):
            container = self._eval(expr.target, ctx)
            if container is None:
                return None
            return container[self._eval(expr.key, ctx)]
        if isinstance(expr, Call):
            return self._call(expr, ctx)
        if isinstance(expr, UnaryOp):
            operand = self._eval(expr.operand, ctx)
            if expr.op == "NOT":
                return not _truthy(operand)
            return -operand
        if isinstance(expr, BinaryOp):
            return self._binary(expr, ctx)
        raise TypeError(f"Unknown expression: {expr!r}")

    def _binary(self, expr: BinaryOp, ctx: ExecutionContext) -> Any:
        op = expr.op
        left = self._eval(expr.left, ctx)
        if op == "AND":
            return _truthy(left) and _truthy(self._eval(expr.right, ctx))
        if op == "OR":
            return _truthy(left) or _truthy(self._eval(expr.right, ctx))
        right = self._eval(expr.right, ctx)
        if op == "+":
            if isinstance(left, str) or isinstance(right, str):
                return _concat(ctx, left, right)
            return left + right
        if op == "-":
            return left - right
        if op == "*":
            return left * right
        if op == "/":
            if right == 0:
                raise ZeroDivisionError("Division by zero")
            return left / right
        if op == "%":
            if right == 0:
                raise ZeroDivisionError("Modulo by zero")
            return left % right
        return compare(left, op, right)

    def _call(self, expr: Call, ctx: ExecutionContext) -> Any:
        args = [self._eval(a, ctx) for a in expr.args]
        if expr.func.startswith("$"):
            fn = self._lookup_var(expr.func, ctx)
        elif expr.func in ctx.binder:
            fn = self._binding_value(expr.func, ctx)
        else:
            builtin = BUILTINS.get(expr.func.upper())
            if builtin is None:
                raise NameError(f"Unknown function {expr.func}")
            return builtin(ctx, *args)
        if isinstance(fn, FieldTarget):
            return fn.read(*args)
        if not callable(fn):
            raise TypeError(f"{expr.func} is not callable")
        return fn(*args)


def _truthy(value: Any) -> bool:
    return bool(value)


def _check_member_path(path: Iterable[str]) -> None:
    for name in path:
        if name.startswith("_"):
            raise AttributeError(f"Access to private attribute '{name}' is not allowed")


def _message(e: Exception) -> str:
    if isinstance(e, KeyError) and e.args:
        return f"Key not found: {e.args[0]!r}"
    return str(e) or type(e).__name__
