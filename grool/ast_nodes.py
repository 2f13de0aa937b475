"""AST node definitions for grool rules.

Nodes are plain dataclasses assembled by the builder through their
``accept_*`` methods. Once a rule is installed into a :class:`RuleSet`
nothing mutates it again; evaluation state lives in the evaluator.
"""

from __future__ import annotations

import types
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum

from .errors import BuildError, DuplicateRuleError


# ---------------------------------------------------------------------------
# Operators and literal tags
# ---------------------------------------------------------------------------

class DataType(Enum):
    DECIMAL = "Decimal"
    FLOAT = "Float"
    STRING = "String"
    BOOL = "Bool"
    NULL = "Null"


class MathOperator(Enum):
    PLUS = "+"
    MINUS = "-"
    MUL = "*"
    DIV = "/"


class ComparisonOperator(Enum):
    EQ = "=="
    NEQ = "!="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="


class LogicalOperator(Enum):
    AND = "&&"
    OR = "||"


# ---------------------------------------------------------------------------
# Value-producing nodes
# ---------------------------------------------------------------------------

@dataclass
class Constant:
    """A literal. ``data_type`` says which payload field is meaningful."""
    data_type: DataType | None = None
    decimal_value: int = 0
    float_value: float = 0.0
    string_value: str = ""
    bool_value: bool = False
    is_null: bool = False


@dataclass
class Variable:
    """A dotted path into the data context, e.g. ``user.Address.City``."""
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass
class FunctionArgument:
    """Ordered argument producers of a function call."""
    arguments: list[ExpressionAtom] = field(default_factory=list)

    def accept_expression_atom(self, atom: ExpressionAtom) -> None:
        self.arguments.append(atom)


@dataclass
class FunctionCall:
    """A method call on a data-context object: ``user.Name.startswith("A")``."""
    name: str = ""
    arguments: FunctionArgument = field(default_factory=FunctionArgument)

    def accept_variable(self, name: str) -> None:
        if self.name:
            raise BuildError(f"function call '{self.name}' already has a name", token=name)
        self.name = name

    def accept_function_argument(self, args: FunctionArgument) -> None:
        self.arguments = args


@dataclass
class ExpressionAtom:
    """A value producer: a leaf, or ``left operator right`` arithmetic."""
    constant: Constant | None = None
    variable: Variable | None = None
    function_call: FunctionCall | None = None
    left: ExpressionAtom | None = None
    operator: MathOperator | None = None
    right: ExpressionAtom | None = None

    @property
    def is_leaf(self) -> bool:
        return self.left is None

    def _has_leaf(self) -> bool:
        return (
            self.constant is not None
            or self.variable is not None
            or self.function_call is not None
        )

    def _check_leaf_free(self, what: str, token: str | None = None) -> None:
        if self._has_leaf() or self.left is not None:
            raise BuildError(f"expression atom already set, cannot accept {what}", token=token)

    def accept_constant(self, constant: Constant) -> None:
        self._check_leaf_free("a constant")
        self.constant = constant

    def accept_variable(self, name: str) -> None:
        self._check_leaf_free("a variable", token=name)
        self.variable = Variable(name)

    def accept_function_call(self, call: FunctionCall) -> None:
        self._check_leaf_free("a function call", token=call.name)
        self.function_call = call

    def accept_expression_atom(self, atom: ExpressionAtom) -> None:
        if self._has_leaf():
            raise BuildError("expression atom already set, cannot accept a sub-expression")
        if self.left is None:
            self.left = atom
        elif self.right is None:
            self.right = atom
        else:
            raise BuildError("expression atom already has two operands")


# ---------------------------------------------------------------------------
# Truth-producing nodes
# ---------------------------------------------------------------------------

@dataclass
class Predicate:
    """``left op right``, or just ``left`` when there is no operator."""
    left: ExpressionAtom | None = None
    operator: ComparisonOperator | None = None
    right: ExpressionAtom | None = None

    def accept_expression_atom(self, atom: ExpressionAtom) -> None:
        if self.left is None:
            self.left = atom
        elif self.right is None:
            self.right = atom
        else:
            raise BuildError("predicate already has two operands")


@dataclass
class Expression:
    """A left-associative chain: ``head (op expression)*``.

    The head is a predicate, or a parenthesised ``group``.
    """
    predicate: Predicate | None = None
    group: Expression | None = None
    tail: list[tuple[LogicalOperator, Expression]] = field(default_factory=list)
    pending_operator: LogicalOperator | None = field(default=None, repr=False, compare=False)

    @property
    def has_head(self) -> bool:
        return self.predicate is not None or self.group is not None

    def accept_predicate(self, predicate: Predicate) -> None:
        if self.has_head:
            raise BuildError("expression already has a head")
        self.predicate = predicate

    def accept_logical_operator(self, operator: LogicalOperator) -> None:
        if not self.has_head or self.pending_operator is not None:
            raise BuildError(f"unexpected logical operator {operator.value}", token=operator.value)
        self.pending_operator = operator

    def accept_expression(self, expr: Expression) -> None:
        if not self.has_head:
            self.group = expr
        elif self.pending_operator is not None:
            self.tail.append((self.pending_operator, expr))
            self.pending_operator = None
        else:
            raise BuildError("expression operand without a logical operator")


# ---------------------------------------------------------------------------
# Side-effecting nodes
# ---------------------------------------------------------------------------

@dataclass
class Assignment:
    """``variable = source``."""
    variable: Variable | None = None
    source: ExpressionAtom | None = None

    def accept_variable(self, name: str) -> None:
        if self.variable is not None:
            raise BuildError("assignment target already set", token=name)
        self.variable = Variable(name)

    def accept_expression_atom(self, atom: ExpressionAtom) -> None:
        if self.source is not None:
            raise BuildError("assignment source already set")
        self.source = atom


@dataclass
class AssignExpression:
    """A single action statement."""
    assignment: Assignment | None = None

    def accept_assignment(self, assignment: Assignment) -> None:
        self.assignment = assignment


@dataclass
class AssignExpressions:
    """Action statements, executed in source order."""
    expressions: list[AssignExpression] = field(default_factory=list)

    def accept_assign_expression(self, expr: AssignExpression) -> None:
        self.expressions.append(expr)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

@dataclass
class WhenScope:
    expression: Expression | None = None

    def accept_expression(self, expr: Expression) -> None:
        if self.expression is not None:
            raise BuildError("when scope already has an expression")
        self.expression = expr


@dataclass
class ThenScope:
    assign_expressions: AssignExpressions | None = None

    def accept_assign_expressions(self, exprs: AssignExpressions) -> None:
        self.assign_expressions = exprs


@dataclass
class RuleEntry:
    """A complete rule."""
    name: str = ""
    description: str = ""
    salience: int = 0
    when: WhenScope | None = None
    then: ThenScope | None = None
    order: int = 0
    line: int = 0
    column: int = 0

    def accept_when_scope(self, scope: WhenScope) -> None:
        self.when = scope

    def accept_then_scope(self, scope: ThenScope) -> None:
        self.then = scope


class RuleSet:
    """Rules keyed by unique name, remembering source order."""

    def __init__(self, name: str = "rules"):
        self.name = name
        self._rules: dict[str, RuleEntry] = {}

    def add(self, entry: RuleEntry) -> None:
        """Install a rule. Raises DuplicateRuleError on a name clash."""
        if entry.name in self._rules:
            raise DuplicateRuleError(entry.name, line=entry.line or None, column=entry.column or None)
        entry.order = len(self._rules)
        self._rules[entry.name] = entry

    @property
    def rules(self) -> Mapping[str, RuleEntry]:
        return types.MappingProxyType(self._rules)

    def names(self) -> list[str]:
        return list(self._rules)

    def by_priority(self) -> list[RuleEntry]:
        """Rules ordered by salience (highest first), then source order."""
        return sorted(self._rules.values(), key=lambda r: (-r.salience, r.order))

    def get(self, name: str) -> RuleEntry | None:
        return self._rules.get(name)

    def __getitem__(self, name: str) -> RuleEntry:
        return self._rules[name]

    def __contains__(self, name: object) -> bool:
        return name in self._rules

    def __iter__(self) -> Iterator[RuleEntry]:
        return iter(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)

    def __repr__(self) -> str:
        return f"RuleSet({self.name!r}, rules={self.names()!r})"
