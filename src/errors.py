"""Exception hierarchy for RecordEval.

Construction-time errors (shape introspection, duplicate bindings) propagate
to the caller. Run-time errors are caught at the Evaluator run boundary and
turned into an error RunResult carrying the original message.
"""

from __future__ import annotations


class RecordEvalError(Exception):
    """Base class for all RecordEval errors."""


class ShapeIntrospectionError(RecordEvalError):
    """A record type's attributes could not be enumerated."""


class BindingError(RecordEvalError):
    """Base class for Binder lookup/registration errors."""


class UnknownBindingError(BindingError, KeyError):
    """Lookup or rebind of a name that was never registered."""

    def __init__(self, name: str):
        super().__init__(f"Unknown binding: {name}")
        self.name = name

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


class DuplicateBindingError(BindingError):
    """A name was registered twice."""

    def __init__(self, name: str):
        super().__init__(f"Binding already exists: {name}")
        self.name = name


class CompilationError(RecordEvalError):
    """A selector expression cannot be resolved against the record shape."""


class InterpreterFault(RecordEvalError):
    """The script failed while parsing or executing."""

    def __init__(self, message: str, line_number: int = 0):
        super().__init__(message)
        self.line_number = line_number


class ScriptSyntaxError(InterpreterFault):
    """The script text does not match the EvalScript grammar."""


class DivisionGuardError(RecordEvalError, ZeroDivisionError):
    """Percentage requested against a zero distinct-item total."""
