#!/usr/bin/env python3
"""
Script Linter: repair layer for hand-written EvalScript.

Operates on raw script text BEFORE the Lark parser, fixing the classes of
mistakes that can be deterministically repaired:

  TEXT-LEVEL:
    1. Line endings: CRLF / CR → LF, tabs → spaces
    2. Markdown fence stripping: remove ```evalscript ... ``` wrappers

  LINE-LEVEL:
    3. Keyword case: if/Else/endif → IF/ELSE/ENDIF
    4. Keyword spelling: END IF / ELSE IF / END FOREACH / FOR EACH → canonical

  STRUCTURAL:
    5. Orphan ELSE/ELIF outside any IF → remove
    6. Unclosed blocks → auto-close IF/FOREACH

  FINAL:
    7. Trailing newline: grammar requires it

Usage:
    from script_linter import lint_script
    result = lint_script(raw_text)
    # result.text   : repaired script
    # result.changes: list of LintChange records
    # result.was_modified: bool
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

# ── Constants ────────────────────────────────────────────────────────

KEYWORDS = frozenset({
    "SET", "IF", "ELIF", "ELSE", "ENDIF", "FOREACH", "IN", "ENDFOREACH",
    "AND", "OR", "NOT", "TRUE", "FALSE", "NULL",
})

# Multi-word spellings → canonical keyword (matched at line start, any case)
_SPELLING_ALIASES = [
    (re.compile(r"^END\s+IF\b", re.IGNORECASE), "ENDIF"),
    (re.compile(r"^ELSE\s+IF\b", re.IGNORECASE), "ELIF"),
    (re.compile(r"^ELSEIF\b", re.IGNORECASE), "ELIF"),
    (re.compile(r"^END\s+FOR\s*EACH\b", re.IGNORECASE), "ENDFOREACH"),
    (re.compile(r"^FOR\s+EACH\b", re.IGNORECASE), "FOREACH"),
]

_WORD_RE = re.compile(r"(?<![$.\w])[A-Za-z_][A-Za-z0-9_]*")
_STRING_RE = re.compile(r"\"(?:\\.|[^\"\\\n])*\"|'(?:\\.|[^'\\\n])*'")


@dataclass
class LintChange:
    """A single repair made by the linter."""
    line: int
    kind: str  # "whitespace", "fence", "keyword", "structure", "trailing_newline"
    original: str
    replacement: str
    confidence: float  # 0.0 to 1.0
    reason: str = ""


@dataclass
class LintResult:
    """Result of linting: fixed text + list of changes made."""
    text: str
    changes: list[LintChange] = field(default_factory=list)

    @property
    def was_modified(self) -> bool:
        return len(self.changes) > 0


# ── Text-level repairs ──────────────────────────────────────────────

def _fix_line_endings(text: str, changes: list[LintChange]) -> str:
    """Normalize CRLF/CR to LF and expand tabs."""
    fixed = text.replace("\r\n", "\n").replace("\r", "\n")
    if "\t" in fixed:
        fixed = fixed.expandtabs(2)
    if fixed != text:
        changes.append(LintChange(
            line=0,
            kind="whitespace",
            original="<crlf/tabs>",
            replacement="<lf/spaces>",
            confidence=1.0,
        ))
    return fixed


def _strip_markdown_fences(text: str, changes: list[LintChange]) -> str:
    """Strip markdown code fences if the whole script is wrapped in one."""
    stripped = text.strip()
    m = re.match(r"^```\w*\s*\n(.*?)```\s*$", stripped, re.DOTALL)
    if m:
        changes.append(LintChange(
            line=1,
            kind="fence",
            original="```...```",
            replacement="<unwrapped>",
            confidence=1.0,
        ))
        return m.group(1)
    return text


# ── Line-level repairs ──────────────────────────────────────────────

def _split_code_comment(line: str) -> tuple[str, str]:
    """Split a line into (code, comment), ignoring # inside strings."""
    pos = 0
    while pos < len(line):
        ch = line[pos]
        if ch in "\"'":
            m = _STRING_RE.match(line, pos)
            if m:
                pos = m.end()
                continue
        if ch == "#":
            return line[:pos], line[pos:]
        pos += 1
    return line, ""


def _upper_keywords(code: str) -> str:
    """Uppercase keyword words outside string literals."""
    out = []
    pos = 0
    for m in _STRING_RE.finditer(code):
        out.append(_WORD_RE.sub(_keyword_case, code[pos:m.start()]))
        out.append(m.group(0))
        pos = m.end()
    out.append(_WORD_RE.sub(_keyword_case, code[pos:]))
    return "".join(out)


def _keyword_case(match: re.Match) -> str:
    word = match.group(0)
    upper = word.upper()
    return upper if upper in KEYWORDS else word


def _fix_keywords(text: str, changes: list[LintChange]) -> str:
    """Canonicalize keyword spelling and case."""
    lines = text.split("\n")
    for i, line in enumerate(lines):
        code, comment = _split_code_comment(line)
        indent = code[: len(code) - len(code.lstrip())]
        body = code.strip()
        if not body:
            continue
        fixed = body
        for pattern, canonical in _SPELLING_ALIASES:
            fixed = pattern.sub(canonical, fixed)
        fixed = _upper_keywords(fixed)
        if fixed != body:
            changes.append(LintChange(
                line=i + 1,
                kind="keyword",
                original=body[:40],
                replacement=fixed[:40],
                confidence=0.95,
            ))
            trailing = code[len(code.rstrip()):]
            lines[i] = indent + fixed + trailing + comment
    return "\n".join(lines)


# ── Structural repairs ──────────────────────────────────────────────

def _first_word(line: str) -> str:
    code, _ = _split_code_comment(line)
    parts = code.split()
    return parts[0] if parts else ""


def _fix_orphan_else(text: str, changes: list[LintChange]) -> str:
    """Remove ELSE/ELIF lines that appear outside any IF block."""
    lines = text.split("\n")
    fixed_lines = []
    if_depth = 0

    for i, line in enumerate(lines):
        word = _first_word(line)
        if word == "IF":
            if_depth += 1
        elif word == "ENDIF":
            if_depth = max(0, if_depth - 1)
        elif word in ("ELSE", "ELIF") and if_depth == 0:
            changes.append(LintChange(
                line=i + 1,
                kind="structure",
                original=line.strip()[:40],
                replacement=f"<removed orphan {word}>",
                confidence=0.8,
            ))
            continue
        fixed_lines.append(line)

    return "\n".join(fixed_lines)


def _fix_structure(text: str, changes: list[LintChange]) -> str:
    """Auto-close unclosed IF/FOREACH blocks, innermost first."""
    lines = text.split("\n")
    block_stack: list[str] = []

    for line in lines:
        word = _first_word(line)
        if word in ("IF", "FOREACH"):
            block_stack.append(word)
        elif word in ("ENDIF", "ENDFOREACH"):
            opener = word[3:]
            for j in range(len(block_stack) - 1, -1, -1):
                if block_stack[j] == opener:
                    block_stack.pop(j)
                    break

    if block_stack:
        closers = []
        for block_type in reversed(block_stack):
            closer = f"END{block_type}"
            closers.append(closer)
            changes.append(LintChange(
                line=len(lines),
                kind="structure",
                original="<unclosed>",
                replacement=closer,
                confidence=0.8,
            ))
        text = text.rstrip("\n") + "\n" + "\n".join(closers) + "\n"

    return text


# ── Final repairs ───────────────────────────────────────────────────

def _fix_trailing_newline(text: str, changes: list[LintChange]) -> str:
    """Ensure text ends with a newline (grammar requires it)."""
    if text and not text.endswith("\n"):
        changes.append(LintChange(
            line=text.count("\n") + 1,
            kind="trailing_newline",
            original="<no newline>",
            replacement="\\n",
            confidence=1.0,
        ))
        text += "\n"
    return text


def lint_script(text: str, repair_structure: bool = True) -> LintResult:
    """Lint and repair raw script text.

    Applies repairs in order:

      Phase 1: Text: line endings, markdown fences
      Phase 2: Lines: keyword spelling and case
      Phase 3: Structure: orphan ELSE/ELIF, unclosed blocks
      Phase 4: Final: trailing newline

    Phase 3 is skipped when repair_structure is False.

    Returns LintResult with fixed text and list of changes made.
    """
    changes: list[LintChange] = []

    text = _fix_line_endings(text, changes)
    text = _strip_markdown_fences(text, changes)

    text = _fix_keywords(text, changes)

    if repair_structure:
        text = _fix_orphan_else(text, changes)
        text = _fix_structure(text, changes)

    text = _fix_trailing_newline(text, changes)

    return LintResult(text=text, changes=changes)


# ── CLI ──────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import sys

    if len(sys.argv) > 1:
        with open(sys.argv[1]) as f:
            text = f.read()
    else:
        text = sys.stdin.read()

    result = lint_script(text)
    print(result.text, end="")

    if result.changes:
        print(f"\n--- {len(result.changes)} repairs made ---", file=sys.stderr)
        for c in result.changes:
            reason_str = f" ({c.reason})" if c.reason else ""
            print(
                f"  L{c.line} [{c.kind}] {c.original!r} -> {c.replacement!r} "
                f"(confidence={c.confidence:.2f}){reason_str}",
                file=sys.stderr,
            )
