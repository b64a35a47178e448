"""
EvalScript Parser: script text → ScriptIR.

Uses Lark to parse script text according to evalscript.lark,
then transforms the parse tree into typed IR dataclasses.
"""

from __future__ import annotations

from typing import Any

from lark import Lark, Transformer, Tree, v_args
from lark.exceptions import LarkError, UnexpectedInput, VisitError

from errors import ScriptSyntaxError
from paths import SCRIPT_GRAMMAR_PATH
from script_ir import (
    BinaryOp,
    BoolValue,
    Call,
    CallStatement,
    ForeachBlock,
    IfBlock,
    IfBranch,
    Index,
    ListLiteral,
    Member,
    NameRef,
    NullValue,
    NumberValue,
    ScriptIR,
    SetField,
    SetVariable,
    StringValue,
    UnaryOp,
    VarRef,
    iter_child_blocks,
)

_ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", '"': '"', "'": "'"}


def _unquote(s: str) -> str:
    """Remove surrounding quotes and unescape."""
    if len(s) >= 2 and s[0] == s[-1] and s[0] in "\"'":
        s = s[1:-1]
    out = []
    chars = iter(s)
    for ch in chars:
        if ch == "\\":
            nxt = next(chars, "")
            out.append(_ESCAPES.get(nxt, "\\" + nxt))
        else:
            out.append(ch)
    return "".join(out)


def _parse_number(s: str) -> int | float:
    """Parse a number string to int or float."""
    if "." in s:
        return float(s)
    return int(s)


def _binary(op: str):
    def build(self, left, right):
        return BinaryOp(op, left, right)

    return build


@v_args(inline=True)
class ScriptTransformer(Transformer):
    """Transform Lark parse tree → ScriptIR."""

    def start(self, *statements):
        return ScriptIR(statements=[s for s in statements if s is not None])

    # --- Statements ---

    def var_target(self, var):
        return str(var)[1:], ()

    def member_target(self, var, *names):
        return str(var)[1:], tuple(str(n) for n in names)

    def set_stmt(self, target, value):
        var_name, path = target
        if path:
            return SetField(var_name=var_name, path=path, value=value)
        return SetVariable(var_name=var_name, value=value)

    def if_block(self, condition, body, *rest):
        branches = [IfBranch(condition, body)]
        else_body = None
        for item in rest:
            if isinstance(item, IfBranch):
                branches.append(item)
            elif isinstance(item, list):
                else_body = item
        return IfBlock(branches=branches, else_body=else_body)

    def elif_clause(self, condition, body):
        return IfBranch(condition, body)

    def else_clause(self, body):
        return body

    def foreach_block(self, var, collection, body):
        return ForeachBlock(var_name=str(var)[1:], collection=collection, body=body)

    def call_stmt(self, call):
        return CallStatement(call=call)

    def body(self, *statements):
        return [s for s in statements if s is not None]

    # --- Operators ---

    or_op = _binary("OR")
    and_op = _binary("AND")
    eq = _binary("==")
    ne = _binary("!=")
    lt = _binary("<")
    le = _binary("<=")
    gt = _binary(">")
    ge = _binary(">=")
    in_op = _binary("IN")
    add = _binary("+")
    sub = _binary("-")
    mul = _binary("*")
    div = _binary("/")
    mod = _binary("%")

    def not_op(self, operand):
        return UnaryOp("NOT", operand)

    def neg(self, operand):
        if isinstance(operand, NumberValue):
            return NumberValue(-operand.value)
        return UnaryOp("-", operand)

    def member(self, target, name):
        return Member(target, str(name))

    def index(self, target, key):
        return Index(target, key)

    # --- Values ---

    def number(self, token):
        return NumberValue(_parse_number(str(token)))

    def string(self, token):
        return StringValue(_unquote(str(token)))

    def true(self):
        return BoolValue(True)

    def false(self):
        return BoolValue(False)

    def null(self):
        return NullValue()

    def var_ref(self, token):
        return VarRef(str(token)[1:])

    def name_ref(self, token):
        return NameRef(str(token))

    def list_literal(self, args=None):
        return ListLiteral(tuple(args or ()))

    def call(self, func, args=None):
        return Call(func=str(func), args=tuple(args or ()))

    def args(self, *exprs):
        return tuple(exprs)


# ============================================================
# Public API
# ============================================================

_parser: Lark | None = None


def get_parser() -> Lark:
    """Get or create the Lark parser (cached)."""
    global _parser
    if _parser is None:
        grammar_text = SCRIPT_GRAMMAR_PATH.read_text()
        _parser = Lark(
            grammar_text,
            parser="lalr",
            transformer=None,  # We apply transformer separately for line numbers
            propagate_positions=True,
        )
    return _parser


def parse_script(text: str) -> ScriptIR:
    """Parse script text into a ScriptIR.

    Args:
        text: The script source text. Must end with a newline; run it
            through script_linter.lint_script first for raw input.

    Returns:
        A ScriptIR representing the parsed script.

    Raises:
        ScriptSyntaxError: If the text has syntax errors.
    """
    parser = get_parser()
    try:
        tree = parser.parse(text)
    except UnexpectedInput as e:
        line = getattr(e, "line", 0) or 0
        column = getattr(e, "column", 0) or 0
        raise ScriptSyntaxError(
            f"Syntax error at line {line}, column {column}: {_describe_unexpected(e)}",
            line_number=line,
        ) from e
    except LarkError as e:
        raise ScriptSyntaxError(f"Syntax error: {e}") from e

    # Extract line numbers from parse tree before transformation
    line_map = _extract_line_numbers(tree)

    try:
        ir = ScriptTransformer().transform(tree)
    except VisitError as e:
        raise ScriptSyntaxError(f"Invalid script: {e.orig_exc}") from e
    ir.source = text

    # Assign line numbers to IR nodes
    _assign_line_numbers(ir.statements, line_map, [0])

    return ir


def _describe_unexpected(e: UnexpectedInput) -> str:
    token = getattr(e, "token", None)
    if token is not None:
        if token.type == "$END":
            return "unexpected end of script"
        value = str(token).replace("\n", "\\n")
        return f"unexpected {value!r}"
    char = getattr(e, "char", None)
    if char is not None:
        return f"unexpected character {char!r}"
    return type(e).__name__


# Statement-level tree rule names that carry line numbers
_STMT_RULES = frozenset(
    {
        "set_stmt",
        "if_block",
        "foreach_block",
        "call_stmt",
    }
)


def _extract_line_numbers(tree: Tree) -> list[int]:
    """Walk the parse tree and extract line numbers for statement nodes in order."""
    lines: list[int] = []
    _walk_for_lines(tree, lines)
    return lines


def _walk_for_lines(node: Any, lines: list[int]) -> None:
    """Recursively walk tree, collecting line numbers for statement nodes."""
    if not isinstance(node, Tree):
        return
    if node.data in _STMT_RULES:
        line = getattr(node.meta, "line", 0) if hasattr(node, "meta") else 0
        lines.append(line)
    for child in node.children:
        _walk_for_lines(child, lines)


def _assign_line_numbers(
    stmts: list,
    line_map: list[int],
    idx: list[int],
) -> None:
    """Walk IR statements and assign line numbers from the pre-extracted map."""
    for stmt in stmts:
        line = line_map[idx[0]] if idx[0] < len(line_map) else 0
        stmt.line_number = line
        idx[0] += 1
        for body, _ctx, _is_loop in iter_child_blocks(stmt):
            _assign_line_numbers(body, line_map, idx)
