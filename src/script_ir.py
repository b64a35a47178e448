"""
EvalScript Intermediate Representation (IR).

Typed dataclass layer between the Lark parser and the interpreter.
Captures the full structure of a script in a form that can be:
  - Executed by script_interpreter.ScriptInterpreter
  - Checked statically by script_checks
  - Inspected and diffed for debugging
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

# ============================================================
# IR Value / Expression Types
# ============================================================


@dataclass(frozen=True)
class StringValue:
    """A literal quoted string."""

    value: str

    def __repr__(self) -> str:
        return f'StringValue("{self.value}")'


@dataclass(frozen=True)
class NumberValue:
    """A literal number (int or float)."""

    value: Union[int, float]

    def __repr__(self) -> str:
        return f"NumberValue({self.value})"


@dataclass(frozen=True)
class BoolValue:
    """A literal boolean."""

    value: bool

    def __repr__(self) -> str:
        return f"BoolValue({self.value})"


@dataclass(frozen=True)
class NullValue:
    """The NULL literal."""

    def __repr__(self) -> str:
        return "NullValue()"


@dataclass(frozen=True)
class VarRef:
    """Reference to a $variable. ``name`` excludes the leading $."""

    name: str

    @property
    def binding_name(self) -> str:
        return f"${self.name}"

    def __repr__(self) -> str:
        return f"VarRef(${self.name})"


@dataclass(frozen=True)
class NameRef:
    """Reference to a bare binding name (attribute names, evalKey, ...)."""

    name: str

    def __repr__(self) -> str:
        return f"NameRef({self.name})"


@dataclass(frozen=True)
class ListLiteral:
    """A list literal: [value, ...]."""

    items: tuple[Expr, ...]

    def __repr__(self) -> str:
        return f"ListLiteral([{', '.join(str(i) for i in self.items)}])"


@dataclass(frozen=True)
class Member:
    """Attribute access: target.name."""

    target: Expr
    name: str

    def __repr__(self) -> str:
        return f"Member({self.target}.{self.name})"


@dataclass(frozen=True)
class Index:
    """Subscript: target[key]."""

    target: Expr
    key: Expr


@dataclass(frozen=True)
class Call:
    """Function call. ``func`` keeps its $ prefix when called through a variable."""

    func: str
    args: tuple[Expr, ...] = ()

    def __repr__(self) -> str:
        return f"Call({self.func}, {len(self.args)} args)"


@dataclass(frozen=True)
class BinaryOp:
    """Binary operator: arithmetic, comparison, IN, AND, OR."""

    op: str
    left: Expr
    right: Expr

    def __repr__(self) -> str:
        return f"BinaryOp({self.left} {self.op} {self.right})"


@dataclass(frozen=True)
class UnaryOp:
    """Unary operator: NOT or -."""

    op: str
    operand: Expr


# Union type for all expressions
Expr = Union[
    StringValue,
    NumberValue,
    BoolValue,
    NullValue,
    VarRef,
    NameRef,
    ListLiteral,
    Member,
    Index,
    Call,
    BinaryOp,
    UnaryOp,
]


# ============================================================
# IR Statement Types
# ============================================================


@dataclass
class SetVariable:
    """Variable assignment: SET $name = value."""

    var_name: str
    value: Expr
    line_number: int = 0

    def __repr__(self) -> str:
        return f"SetVariable(${self.var_name} = {self.value})"


@dataclass
class SetField:
    """Field assignment: SET $name.Field.Sub = value."""

    var_name: str
    path: tuple[str, ...]
    value: Expr
    line_number: int = 0

    def __repr__(self) -> str:
        return f"SetField(${self.var_name}.{'.'.join(self.path)} = {self.value})"


@dataclass
class IfBranch:
    """One IF / ELIF condition and its body."""

    condition: Expr
    body: list[Statement]


@dataclass
class IfBlock:
    """Conditional block: IF ... ELIF ... ELSE ... ENDIF."""

    branches: list[IfBranch]
    else_body: list[Statement] | None = None
    line_number: int = 0

    def __repr__(self) -> str:
        els = f", else={len(self.else_body)} stmts" if self.else_body is not None else ""
        return f"IfBlock({len(self.branches)} branches{els})"


@dataclass
class ForeachBlock:
    """For-each block: FOREACH $var IN collection ... ENDFOREACH."""

    var_name: str
    collection: Expr
    body: list[Statement]
    line_number: int = 0

    def __repr__(self) -> str:
        return f"ForeachBlock(${self.var_name} IN {self.collection}, {len(self.body)} stmts)"


@dataclass
class CallStatement:
    """A call evaluated for its side effects."""

    call: Call
    line_number: int = 0


# Union type for all statements
Statement = Union[
    SetVariable,
    SetField,
    IfBlock,
    ForeachBlock,
    CallStatement,
]


# ============================================================
# Control-flow child-block dispatch
# ============================================================


def iter_child_blocks(stmt: Statement) -> list[tuple[list[Statement], str, bool]]:
    """Return (body, context_label, is_loop) for every child block, in source order."""
    results: list[tuple[list[Statement], str, bool]] = []
    if isinstance(stmt, IfBlock):
        for i, branch in enumerate(stmt.branches):
            results.append((branch.body, "if_then" if i == 0 else "elif", False))
        if stmt.else_body is not None:
            results.append((stmt.else_body, "if_else", False))
    elif isinstance(stmt, ForeachBlock):
        results.append((stmt.body, "foreach", True))
    return results


def iter_expressions(stmt: Statement) -> list[Expr]:
    """Top-level expressions owned directly by a statement (not its children)."""
    if isinstance(stmt, (SetVariable, SetField)):
        return [stmt.value]
    if isinstance(stmt, IfBlock):
        return [b.condition for b in stmt.branches]
    if isinstance(stmt, ForeachBlock):
        return [stmt.collection]
    if isinstance(stmt, CallStatement):
        return [stmt.call]
    return []


def walk_expr(expr: Expr):
    """Yield ``expr`` and every sub-expression, pre-order."""
    yield expr
    if isinstance(expr, ListLiteral):
        for item in expr.items:
            yield from walk_expr(item)
    elif isinstance(expr, Member):
        yield from walk_expr(expr.target)
    elif isinstance(expr, Index):
        yield from walk_expr(expr.target)
        yield from walk_expr(expr.key)
    elif isinstance(expr, Call):
        for arg in expr.args:
            yield from walk_expr(arg)
    elif isinstance(expr, BinaryOp):
        yield from walk_expr(expr.left)
        yield from walk_expr(expr.right)
    elif isinstance(expr, UnaryOp):
        yield from walk_expr(expr.operand)


# ============================================================
# Top-Level IR
# ============================================================


@dataclass
class ScriptIR:
    """Complete intermediate representation of a script."""

    statements: list[Statement] = field(default_factory=list)
    source: str = ""

    def statement_count(self) -> int:
        """Count statements (recursive through control flow)."""
        return _count_statements(self.statements)

    def assigned_variables(self) -> set[str]:
        """Return all $names assigned via SET or bound by FOREACH (with $)."""
        return _collect_assigned(self.statements)

    def called_functions(self) -> set[str]:
        return {e.func for e in _all_expressions(self.statements) if isinstance(e, Call)}

    def __repr__(self) -> str:
        return f"ScriptIR({len(self.statements)} stmts)"


# ============================================================
# Helpers
# ============================================================


def _count_statements(stmts: list[Statement]) -> int:
    count = 0
    for s in stmts:
        count += 1
        for body, _ctx, _is_loop in iter_child_blocks(s):
            count += _count_statements(body)
    return count


def _collect_assigned(stmts: list[Statement]) -> set[str]:
    names = set()
    for s in stmts:
        if isinstance(s, SetVariable):
            names.add(f"${s.var_name}")
        elif isinstance(s, ForeachBlock):
            names.add(f"${s.var_name}")
        for body, _ctx, _is_loop in iter_child_blocks(s):
            names |= _collect_assigned(body)
    return names


def _all_expressions(stmts: list[Statement]):
    for s in stmts:
        for expr in iter_expressions(s):
            yield from walk_expr(expr)
        for body, _ctx, _is_loop in iter_child_blocks(s):
            yield from _all_expressions(body)
