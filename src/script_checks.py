"""
EvalScript static checks.

Four analyses on ScriptIR, run before the first item is evaluated:
  1. Variable flow: $locals read before any SET, locals never read
  2. Assignment: SET on a bound name that is not a writable target
  3. Names: calls to unknown functions, bare names that are not bound
  4. Structure: empty IF/ELIF/ELSE/FOREACH bodies, $result never assigned

Returns CheckReport with CheckFinding items. Findings are advisory: the
interpreter still raises at run time for anything that actually fails.

Run: python3 src/script_checks.py [script_file]
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from script_interpreter import BUILTINS
from script_ir import (
    Call,
    ForeachBlock,
    NameRef,
    ScriptIR,
    SetField,
    SetVariable,
    Statement,
    VarRef,
    iter_child_blocks,
    iter_expressions,
    walk_expr,
)

# ── Data Classes ─────────────────────────────────────────────────


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class FindingCategory(str, Enum):
    VARIABLE_FLOW = "variable_flow"
    ASSIGNMENT = "assignment"
    UNKNOWN_NAME = "unknown_name"
    STRUCTURE = "structure"


@dataclass
class CheckFinding:
    """A single finding from static analysis."""

    severity: Severity
    category: FindingCategory
    message: str
    line_number: int = 0
    suggestion: str = ""

    def __repr__(self) -> str:
        loc = f" (line {self.line_number})" if self.line_number else ""
        sug = f" -> {self.suggestion}" if self.suggestion else ""
        return f"[{self.severity.value}] {self.category.value}{loc}: {self.message}{sug}"


@dataclass
class CheckReport:
    findings: list[CheckFinding] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == Severity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == Severity.WARNING)

    @property
    def info_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == Severity.INFO)

    @property
    def has_errors(self) -> bool:
        return self.error_count > 0

    def findings_by_category(self, cat: FindingCategory) -> list[CheckFinding]:
        return [f for f in self.findings if f.category == cat]

    def summary(self) -> str:
        return f"CheckReport: {self.error_count} errors, {self.warning_count} warnings, {self.info_count} info"


DEFAULT_TARGETS = frozenset({"$result", "$obs"})


# ── Helpers ──────────────────────────────────────────────────────


def _stmt_expressions(stmt: Statement):
    for expr in iter_expressions(stmt):
        yield from walk_expr(expr)


def _var_reads(stmt: Statement) -> set[str]:
    """$names read directly by a statement (not its child blocks)."""
    names = {e.binding_name for e in _stmt_expressions(stmt) if isinstance(e, VarRef)}
    names |= {e.func for e in _stmt_expressions(stmt) if isinstance(e, Call) and e.func.startswith("$")}
    if isinstance(stmt, SetField):
        names.add(f"${stmt.var_name}")
    return names


# ── Analyses ─────────────────────────────────────────────────────


def _analyze_variable_flow(ir: ScriptIR, known: set[str], findings: list[CheckFinding]) -> None:
    """Locals read before their first SET, and locals that are never read."""
    defined: set[str] = set()
    reads: set[str] = set()
    first_def: dict[str, int] = {}

    def walk(stmts: list[Statement]) -> None:
        for stmt in stmts:
            used = _var_reads(stmt)
            reads.update(used)
            for name in sorted(used):
                if name not in defined and name not in known:
                    findings.append(
                        CheckFinding(
                            severity=Severity.WARNING,
                            category=FindingCategory.VARIABLE_FLOW,
                            message=f"Variable {name} used before definition",
                            line_number=stmt.line_number,
                            suggestion=f"Add SET {name} = ... before this point",
                        )
                    )
                    defined.add(name)  # report once
            if isinstance(stmt, (SetVariable, ForeachBlock)):
                name = f"${stmt.var_name}"
                if name not in known:
                    defined.add(name)
                    first_def.setdefault(name, stmt.line_number)
            for body, _ctx, _is_loop in iter_child_blocks(stmt):
                walk(body)

    walk(ir.statements)

    for name, line in first_def.items():
        if name not in reads:
            findings.append(
                CheckFinding(
                    severity=Severity.INFO,
                    category=FindingCategory.VARIABLE_FLOW,
                    message=f"Variable {name} is set but never read",
                    line_number=line,
                )
            )


def _analyze_assignments(
    ir: ScriptIR, known: set[str], targets: set[str], findings: list[CheckFinding]
) -> None:
    def walk(stmts: list[Statement]) -> None:
        for stmt in stmts:
            if isinstance(stmt, (SetVariable, ForeachBlock)):
                name = f"${stmt.var_name}"
                if name in known and name not in targets:
                    verb = "Loop variable shadows" if isinstance(stmt, ForeachBlock) else "Assignment to"
                    findings.append(
                        CheckFinding(
                            severity=Severity.ERROR,
                            category=FindingCategory.ASSIGNMENT,
                            message=f"{verb} read-only binding {name}",
                            line_number=stmt.line_number,
                            suggestion="Use a new $name for script-local values",
                        )
                    )
            for body, _ctx, _is_loop in iter_child_blocks(stmt):
                walk(body)

    walk(ir.statements)


def _analyze_names(ir: ScriptIR, known: set[str], findings: list[CheckFinding]) -> None:
    def walk(stmts: list[Statement]) -> None:
        for stmt in stmts:
            for expr in _stmt_expressions(stmt):
                if isinstance(expr, Call) and not expr.func.startswith("$"):
                    if expr.func not in known and expr.func.upper() not in BUILTINS:
                        findings.append(
                            CheckFinding(
                                severity=Severity.ERROR,
                                category=FindingCategory.UNKNOWN_NAME,
                                message=f"Unknown function {expr.func}",
                                line_number=stmt.line_number,
                                suggestion=f"Builtins: {', '.join(sorted(BUILTINS))}",
                            )
                        )
                elif isinstance(expr, NameRef) and expr.name not in known:
                    findings.append(
                        CheckFinding(
                            severity=Severity.ERROR,
                            category=FindingCategory.UNKNOWN_NAME,
                            message=f"Unknown name {expr.name}",
                            line_number=stmt.line_number,
                        )
                    )
            for body, _ctx, _is_loop in iter_child_blocks(stmt):
                walk(body)

    if known:
        walk(ir.statements)


def _analyze_structure(ir: ScriptIR, targets: set[str], findings: list[CheckFinding]) -> None:
    def walk(stmts: list[Statement]) -> None:
        for stmt in stmts:
            for body, ctx, _is_loop in iter_child_blocks(stmt):
                if not body:
                    findings.append(
                        CheckFinding(
                            severity=Severity.INFO,
                            category=FindingCategory.STRUCTURE,
                            message=f"Empty {ctx} block",
                            line_number=stmt.line_number,
                        )
                    )
                walk(body)

    walk(ir.statements)

    if "$result" in targets and "$result" not in ir.assigned_variables():
        findings.append(
            CheckFinding(
                severity=Severity.WARNING,
                category=FindingCategory.STRUCTURE,
                message="Script never assigns $result",
                suggestion="Every item without a result lands in the '' bucket",
            )
        )


# ── Entry point ──────────────────────────────────────────────────


def check_script(
    ir: ScriptIR,
    known_names: Iterable[str] = (),
    target_names: Iterable[str] = DEFAULT_TARGETS,
) -> CheckReport:
    """Run all analyses.

    ``known_names`` are the Binder's names; when empty, name resolution is
    skipped because nothing can be said about bare names.
    """
    known = set(known_names)
    targets = set(target_names)
    findings: list[CheckFinding] = []

    _analyze_variable_flow(ir, known, findings)
    _analyze_assignments(ir, known, targets, findings)
    _analyze_names(ir, known, findings)
    _analyze_structure(ir, targets, findings)

    return CheckReport(findings=findings)


# ── CLI ──────────────────────────────────────────────────────────

if __name__ == "__main__":
    import sys
    from pathlib import Path

    from script_linter import lint_script
    from script_parser import parse_script

    if len(sys.argv) < 2:
        print("Usage: python script_checks.py <script_file>")
        sys.exit(1)

    script_path = Path(sys.argv[1])
    if not script_path.exists():
        print(f"Error: File not found: {script_path}")
        sys.exit(1)

    report = check_script(parse_script(lint_script(script_path.read_text(), repair_structure=False).text))
    print(report.summary())
    for finding in report.findings:
        print(f"  {finding!r}")
    sys.exit(1 if report.has_errors else 0)
