"""Error types for grool with source location and rule context."""

from __future__ import annotations


class GroolError(Exception):
    """Base error with optional source location."""

    def __init__(self, message: str, line: int | None = None, column: int | None = None):
        self.message = message
        self.line = line
        self.column = column
        loc = ""
        if line is not None:
            loc = f" (line {line}"
            if column is not None:
                loc += f", col {column}"
            loc += ")"
        super().__init__(f"{message}{loc}")


class ParseError(GroolError):
    """Raised when rule text cannot be parsed."""


# ---------------------------------------------------------------------------
# Build errors (accumulated by the builder, never raised by it)
# ---------------------------------------------------------------------------

class BuildError(GroolError):
    """A problem found while assembling the rule AST."""

    def __init__(
        self,
        message: str,
        rule_name: str | None = None,
        token: str | None = None,
        line: int | None = None,
        column: int | None = None,
    ):
        self.rule_name = rule_name
        self.token = token
        if rule_name:
            message = f"rule '{rule_name}': {message}"
        super().__init__(message, line=line, column=column)


class DuplicateRuleError(BuildError):
    """Two rules in one rule set share a name."""

    def __init__(self, name: str, line: int | None = None, column: int | None = None):
        self.name = name
        super().__init__(
            f"duplicate rule name '{name}'",
            token=name,
            line=line,
            column=column,
        )
        self.rule_name = name


class BuilderInvariantError(BuildError):
    """Internal builder error: unbalanced or mistyped stack."""


# ---------------------------------------------------------------------------
# Evaluation errors
# ---------------------------------------------------------------------------

class EvaluationError(GroolError):
    """Runtime failure while evaluating a rule node.

    ``rule_name`` and ``node_path`` are filled in by the evaluator as the
    error propagates, so data-context code can raise without knowing
    which rule it serves.
    """

    kind = "EvaluationError"

    def __init__(self, message: str, rule_name: str | None = None, node_path: str | None = None):
        self.rule_name = rule_name
        self.node_path = node_path
        super().__init__(message)

    def __str__(self) -> str:
        where = []
        if self.rule_name:
            where.append(f"rule '{self.rule_name}'")
        if self.node_path:
            where.append(f"at {self.node_path}")
        prefix = f"{' '.join(where)}: " if where else ""
        return f"{prefix}{self.kind}: {self.message}"


class UnknownRootError(EvaluationError):
    kind = "UnknownRoot"


class UnknownFieldError(EvaluationError):
    kind = "UnknownField"


class NullDerefError(EvaluationError):
    kind = "NullDeref"


class TypeMismatchError(EvaluationError):
    kind = "TypeMismatch"


class NumericOverflowError(EvaluationError):
    kind = "NumericOverflow"


class DivideByZeroError(EvaluationError):
    kind = "DivideByZero"


class ArityMismatchError(EvaluationError):
    kind = "ArityMismatch"


class NotAssignableError(EvaluationError):
    kind = "NotAssignable"


class HostCallError(EvaluationError):
    """A host object raised while a rule read or called it.

    The host exception is kept as ``__cause__``.
    """

    kind = "HostError"


# ---------------------------------------------------------------------------
# Run errors (rule cycle driver)
# ---------------------------------------------------------------------------

class RunError(GroolError):
    """The rule cycle driver stopped before reaching a fixpoint."""


class CycleLimitError(RunError):
    """The configured maximum number of cycles was exceeded."""

    def __init__(self, max_cycles: int):
        self.max_cycles = max_cycles
        super().__init__(f"cycle limit of {max_cycles} exceeded")


class RunCancelledError(RunError):
    """The host cancelled the run."""

    def __init__(self, cycle: int):
        self.cycle = cycle
        super().__init__(f"run cancelled during cycle {cycle}")
