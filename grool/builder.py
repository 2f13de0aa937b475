"""Stack-based AST builder driven by parser enter/exit events.

Every production follows the same discipline: push a fresh node on
enter, pop it on exit, populate it, then hand it to the node below it on
the stack through that node's ``accept_*`` method. Terminal productions
push nothing; they modify the node on top of the stack.

Once an error is recorded the builder keeps pushing and popping shell
nodes so the stack stays balanced, but does no further work.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from .ast_nodes import (
    AssignExpression,
    AssignExpressions,
    Assignment,
    ComparisonOperator,
    Constant,
    DataType,
    Expression,
    ExpressionAtom,
    FunctionArgument,
    FunctionCall,
    LogicalOperator,
    MathOperator,
    Predicate,
    RuleEntry,
    RuleSet,
    ThenScope,
    WhenScope,
)
from .errors import BuilderInvariantError, BuildError, DuplicateRuleError

log = logging.getLogger(__name__)

_INT64_MAX = 2 ** 63 - 1


class RuleBuilder:
    """Listener that assembles a RuleSet."""

    def __init__(self, name: str = "rules"):
        self.rule_set = RuleSet(name)
        self.errors: list[BuildError] = []
        self._stack: list[Any] = []
        self._rule_name: str | None = None

    @property
    def failed(self) -> bool:
        return bool(self.errors)

    def finish(self) -> tuple[RuleSet, list[BuildError]]:
        """Close the build; the stack must be empty by now."""
        if self._stack:
            self._invariant(
                f"builder stack not empty at end of input: "
                f"{', '.join(type(n).__name__ for n in self._stack)}"
            )
        return self.rule_set, list(self.errors)

    # --- Error recording ---

    def add_error(self, error: BuildError) -> None:
        log.error("Build error: %s", error)
        self.errors.append(error)

    def _error(self, message: str, ctx=None, token: str | None = None) -> None:
        self.add_error(BuildError(
            message,
            rule_name=self._rule_name,
            token=token,
            line=getattr(ctx, "line", None),
            column=getattr(ctx, "column", None),
        ))

    def _invariant(self, message: str, ctx=None) -> None:
        self.add_error(BuilderInvariantError(
            message,
            rule_name=self._rule_name,
            line=getattr(ctx, "line", None),
            column=getattr(ctx, "column", None),
        ))

    # --- Stack primitives ---

    def _push(self, node: Any) -> None:
        self._stack.append(node)

    def _pop(self, expected: type, ctx=None) -> Any | None:
        if not self._stack:
            self._invariant(f"stack underflow, expected {expected.__name__}", ctx)
            return None
        node = self._stack.pop()
        if not isinstance(node, expected):
            self._invariant(
                f"expected {expected.__name__} on stack, found {type(node).__name__}", ctx
            )
            return None
        return node

    def _top(self, expected: type, ctx=None) -> Any | None:
        node = self._stack[-1] if self._stack else None
        if not isinstance(node, expected):
            found = type(node).__name__ if node is not None else "empty stack"
            self._invariant(f"expected {expected.__name__} on stack, found {found}", ctx)
            return None
        return node

    def _attach(self, accept: str, child: Any, ctx) -> None:
        """Give ``child`` to the node on top of the stack."""
        parent = self._stack[-1] if self._stack else None
        method = getattr(parent, accept, None)
        if method is None:
            found = type(parent).__name__ if parent is not None else "empty stack"
            self._invariant(f"{found} cannot hold {type(child).__name__}", ctx)
            return
        try:
            method(child)
        except BuildError as e:
            self._error(e.message, ctx, token=e.token)

    # --- Rule entry ---

    def enter_rule_entry(self, ctx) -> None:
        self._rule_name = None
        self._push(RuleEntry())

    def exit_rule_entry(self, ctx) -> None:
        entry = self._pop(RuleEntry, ctx)
        if self.failed:
            return
        if entry.when is None or entry.then is None:
            self._invariant("rule is missing its when or then scope", ctx)
            return
        entry.line = ctx.line or 0
        entry.column = ctx.column or 0
        try:
            self.rule_set.add(entry)
        except DuplicateRuleError as e:
            self.add_error(e)
            return
        log.debug("Built rule '%s' (salience %d)", entry.name, entry.salience)

    def exit_rule_name(self, ctx) -> None:
        if self.failed:
            return
        entry = self._top(RuleEntry, ctx)
        if entry is None:
            return
        entry.name = unquote(ctx.text.strip())
        self._rule_name = entry.name

    def exit_rule_description(self, ctx) -> None:
        if self.failed:
            return
        entry = self._top(RuleEntry, ctx)
        if entry is not None:
            entry.description = unquote(ctx.text.strip())

    def exit_salience(self, ctx) -> None:
        if self.failed:
            return
        entry = self._top(RuleEntry, ctx)
        if entry is None:
            return
        value = int(str(ctx.token("DECIMAL_LITERAL")))
        if ctx.has("MINUS"):
            value = -value
        entry.salience = value

    # --- Scopes ---

    def enter_when_scope(self, ctx) -> None:
        self._push(WhenScope())

    def exit_when_scope(self, ctx) -> None:
        scope = self._pop(WhenScope, ctx)
        if self.failed:
            return
        self._attach("accept_when_scope", scope, ctx)

    def enter_then_scope(self, ctx) -> None:
        self._push(ThenScope())

    def exit_then_scope(self, ctx) -> None:
        scope = self._pop(ThenScope, ctx)
        if self.failed:
            return
        self._attach("accept_then_scope", scope, ctx)

    # --- Actions ---

    def enter_assign_expressions(self, ctx) -> None:
        self._push(AssignExpressions())

    def exit_assign_expressions(self, ctx) -> None:
        exprs = self._pop(AssignExpressions, ctx)
        if self.failed:
            return
        self._attach("accept_assign_expressions", exprs, ctx)

    def enter_assign_expression(self, ctx) -> None:
        self._push(AssignExpression())

    def exit_assign_expression(self, ctx) -> None:
        expr = self._pop(AssignExpression, ctx)
        if self.failed:
            return
        self._attach("accept_assign_expression", expr, ctx)

    def enter_assignment(self, ctx) -> None:
        self._push(Assignment())

    def exit_assignment(self, ctx) -> None:
        assignment = self._pop(Assignment, ctx)
        if self.failed:
            return
        if assignment.variable is None or assignment.source is None:
            self._invariant("assignment is missing its target or source", ctx)
            return
        self._attach("accept_assignment", assignment, ctx)

    # --- Conditions ---

    def enter_expression(self, ctx) -> None:
        self._push(Expression())

    def exit_expression(self, ctx) -> None:
        expr = self._pop(Expression, ctx)
        if self.failed:
            return
        if not expr.has_head or expr.pending_operator is not None:
            self._invariant("incomplete logical expression", ctx)
            return
        group_by_precedence(expr)
        self._attach("accept_expression", expr, ctx)

    # a chained operand is an expression in its own right
    enter_link = enter_expression
    exit_link = exit_expression

    def enter_predicate(self, ctx) -> None:
        self._push(Predicate())

    def exit_predicate(self, ctx) -> None:
        predicate = self._pop(Predicate, ctx)
        if self.failed:
            return
        if predicate.left is None:
            self._invariant("predicate has no left operand", ctx)
            return
        if (predicate.operator is None) != (predicate.right is None):
            self._invariant("predicate operator and right operand must come together", ctx)
            return
        self._attach("accept_predicate", predicate, ctx)

    def exit_logical_operator(self, ctx) -> None:
        if self.failed:
            return
        text = ctx.text.strip()
        try:
            operator = LogicalOperator(text)
        except ValueError:
            self._error(f"unknown logical operator {text}", ctx, token=text)
            return
        self._attach("accept_logical_operator", operator, ctx)

    def exit_comparison_operator(self, ctx) -> None:
        if self.failed:
            return
        predicate = self._top(Predicate, ctx)
        if predicate is None:
            return
        text = ctx.text.strip()
        try:
            predicate.operator = ComparisonOperator(text)
        except ValueError:
            self._error(f"unknown comparison operator {text}", ctx, token=text)

    # --- Values ---

    def enter_expression_atom(self, ctx) -> None:
        self._push(ExpressionAtom())

    def exit_expression_atom(self, ctx) -> None:
        atom = self._pop(ExpressionAtom, ctx)
        if self.failed:
            return
        if not atom.is_leaf and (atom.right is None or atom.operator is None):
            self._invariant("arithmetic expression is incomplete", ctx)
            return
        self._attach("accept_expression_atom", atom, ctx)

    def exit_math_operator(self, ctx) -> None:
        if self.failed:
            return
        atom = self._top(ExpressionAtom, ctx)
        if atom is None:
            return
        text = ctx.text.strip()
        try:
            atom.operator = MathOperator(text)
        except ValueError:
            self._error(f"unknown mathematic operator {text}", ctx, token=text)

    def enter_function_call(self, ctx) -> None:
        self._push(FunctionCall())

    def exit_function_call(self, ctx) -> None:
        call = self._pop(FunctionCall, ctx)
        if self.failed:
            return
        self._attach("accept_function_call", call, ctx)

    def enter_function_args(self, ctx) -> None:
        self._push(FunctionArgument())

    def exit_function_args(self, ctx) -> None:
        args = self._pop(FunctionArgument, ctx)
        if self.failed:
            return
        self._attach("accept_function_argument", args, ctx)

    def exit_variable(self, ctx) -> None:
        if self.failed:
            return
        name = ".".join(str(tok) for tok in ctx.tokens)
        self._attach("accept_variable", name, ctx)

    def enter_constant(self, ctx) -> None:
        self._push(Constant())

    def exit_constant(self, ctx) -> None:
        constant = self._pop(Constant, ctx)
        if self.failed:
            return
        text = "".join(ctx.text.split())
        if constant.data_type is DataType.DECIMAL and ctx.has("MINUS"):
            constant.decimal_value = -constant.decimal_value
        if ctx.has("REAL_LITERAL"):
            try:
                constant.float_value = float(text)
            except ValueError:
                self._error(f"literal is not a real number '{text}'", ctx, token=text)
                return
            constant.data_type = DataType.FLOAT
        elif ctx.has("NULL_LITERAL"):
            constant.data_type = DataType.NULL
            constant.is_null = not ctx.has("NOT")
        if constant.data_type is None:
            self._invariant(f"constant '{text}' has no literal", ctx)
            return
        self._attach("accept_constant", constant, ctx)

    def exit_decimal_literal(self, ctx) -> None:
        if self.failed:
            return
        constant = self._top(Constant, ctx)
        if constant is None:
            return
        text = ctx.text.strip()
        value = int(text)
        if value > _INT64_MAX:
            self._error(f"decimal literal out of 64-bit range '{text}'", ctx, token=text)
            return
        constant.decimal_value = value
        constant.data_type = DataType.DECIMAL

    def exit_string_literal(self, ctx) -> None:
        if self.failed:
            return
        constant = self._top(Constant, ctx)
        if constant is None:
            return
        constant.string_value = unquote(ctx.text.strip())
        constant.data_type = DataType.STRING

    def exit_boolean_literal(self, ctx) -> None:
        if self.failed:
            return
        constant = self._top(Constant, ctx)
        if constant is None:
            return
        text = ctx.text.strip()
        value = text.lower()
        if value not in ("true", "false"):
            self._error(f"unknown boolean literal '{text}'", ctx, token=text)
            return
        constant.bool_value = value == "true"
        constant.data_type = DataType.BOOL


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def group_by_precedence(expr: Expression) -> None:
    """Regroup a flat ``&&``/``||`` chain so that ``&&`` binds tighter.

    ``a || b && c`` becomes ``a || (b && c)``. Chains using a single
    operator are left untouched.
    """
    if len({op for op, _ in expr.tail}) < 2:
        return
    segments: list[list[Expression]] = [[Expression(predicate=expr.predicate, group=expr.group)]]
    for op, operand in expr.tail:
        if op is LogicalOperator.AND:
            segments[-1].append(operand)
        else:
            segments.append([operand])

    terms = [_conjunction(seg) for seg in segments]
    if len(segments[0]) > 1:
        expr.predicate, expr.group = None, terms[0]
    expr.tail = [(LogicalOperator.OR, term) for term in terms[1:]]


def _conjunction(operands: list[Expression]) -> Expression:
    if len(operands) == 1:
        return operands[0]
    first = operands[0]
    if first.tail:
        head = Expression(group=first)
    else:
        head = Expression(predicate=first.predicate, group=first.group)
    head.tail = [(LogicalOperator.AND, e) for e in operands[1:]]
    return head


_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", '"': '"', "\\": "\\"}
_ESCAPE_RE = re.compile(r"\\(.)")


def unquote(text: str) -> str:
    """Remove surrounding quotes from a string literal and resolve escapes.

    Unknown escapes such as ``\\d`` are kept as written.
    """
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        return _ESCAPE_RE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(0)), text[1:-1])
    return text
