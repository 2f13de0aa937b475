"""Tree-walking evaluator for rule conditions and actions.

Nodes stay plain data; everything the walk needs is passed in an
:class:`EvalContext`. Failures raise :class:`EvaluationError` subclasses
tagged with the rule name and the path of the failing node, such as
``when.expr[1].left``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .ast_nodes import (
    AssignExpressions,
    Assignment,
    ComparisonOperator,
    Constant,
    DataType,
    Expression,
    ExpressionAtom,
    FunctionCall,
    LogicalOperator,
    MathOperator,
    Predicate,
    RuleEntry,
    Variable,
)
from .context import DataContext
from .errors import (
    DivideByZeroError,
    EvaluationError,
    NumericOverflowError,
    TypeMismatchError,
)
from .values import FALSE, NULL, TRUE, BaseKind, Kind, Value

log = logging.getLogger(__name__)

_INT64_MIN = -(2 ** 63)
_INT64_MAX = 2 ** 63 - 1
_UINT64_MAX = 2 ** 64 - 1

_EQUALITY_OPS = (ComparisonOperator.EQ, ComparisonOperator.NEQ)
_PRIMITIVE_KINDS = (Kind.INT, Kind.UINT, Kind.FLOAT, Kind.STRING, Kind.BOOL)


@dataclass
class EvalContext:
    """Per-evaluation state threaded through every call."""
    data_context: DataContext
    rule_name: str | None = None


class Evaluator:
    """Evaluates rule nodes against a data context."""

    # --- Rule level ---

    def evaluate_when(self, rule: RuleEntry, ctx: EvalContext) -> Value:
        """Evaluate a rule's condition."""
        return self.evaluate(rule.when.expression, ctx, "when.expr")

    def execute_then(self, rule: RuleEntry, ctx: EvalContext) -> None:
        """Run a rule's action block."""
        self.execute(rule.then.assign_expressions, ctx, "then")

    # --- Dispatch ---

    def evaluate(self, node, ctx: EvalContext, path: str = "") -> Value:
        """Evaluate a value- or truth-producing node."""
        try:
            if isinstance(node, Expression):
                return self._eval_expression(node, ctx, path)
            if isinstance(node, Predicate):
                return self._eval_predicate(node, ctx, path)
            if isinstance(node, ExpressionAtom):
                return self._eval_atom(node, ctx, path)
            if isinstance(node, Constant):
                return self._eval_constant(node)
            if isinstance(node, Variable):
                return ctx.data_context.get_value(node.name)
            if isinstance(node, FunctionCall):
                return self._eval_function_call(node, ctx, path)
        except EvaluationError as e:
            _locate(e, ctx, path)
            raise
        raise TypeError(f"cannot evaluate {type(node).__name__}")

    def execute(self, node, ctx: EvalContext, path: str = "") -> None:
        """Execute an action node."""
        try:
            if isinstance(node, AssignExpressions):
                for i, expr in enumerate(node.expressions):
                    self.execute(expr.assignment, ctx, f"{path}.assign[{i}]")
                return
            if isinstance(node, Assignment):
                self._exec_assignment(node, ctx, path)
                return
        except EvaluationError as e:
            _locate(e, ctx, path)
            raise
        raise TypeError(f"cannot execute {type(node).__name__}")

    # --- Values ---

    def _eval_constant(self, constant: Constant) -> Value:
        dt = constant.data_type
        if dt is DataType.DECIMAL:
            return Value.int64(constant.decimal_value)
        if dt is DataType.FLOAT:
            return Value.float64(constant.float_value)
        if dt is DataType.STRING:
            return Value.string(constant.string_value)
        if dt is DataType.BOOL:
            return Value.boolean(constant.bool_value)
        # ``not null`` is a truthy marker, plain ``null`` is Null
        return NULL if constant.is_null else TRUE

    def _eval_function_call(self, call: FunctionCall, ctx: EvalContext, path: str) -> Value:
        args = [
            self.evaluate(arg, ctx, f"{path}.args[{i}]")
            for i, arg in enumerate(call.arguments.arguments)
        ]
        return ctx.data_context.call(call.name, args)

    def _eval_atom(self, atom: ExpressionAtom, ctx: EvalContext, path: str) -> Value:
        if atom.constant is not None:
            return self._eval_constant(atom.constant)
        if atom.variable is not None:
            return self.evaluate(atom.variable, ctx, path)
        if atom.function_call is not None:
            return self.evaluate(atom.function_call, ctx, path)
        left = self.evaluate(atom.left, ctx, f"{path}.left")
        right = self.evaluate(atom.right, ctx, f"{path}.right")
        try:
            return arithmetic(left, atom.operator, right)
        except EvaluationError as e:
            _locate(e, ctx, path)
            raise

    # --- Truth ---

    def _eval_predicate(self, predicate: Predicate, ctx: EvalContext, path: str) -> Value:
        if predicate.right is None:
            return self.evaluate(predicate.left, ctx, f"{path}.left")
        left = self.evaluate(predicate.left, ctx, f"{path}.left")
        right = self.evaluate(predicate.right, ctx, f"{path}.right")
        try:
            return compare(left, predicate.operator, right)
        except EvaluationError as e:
            _locate(e, ctx, path)
            raise

    def _eval_expression(self, expr: Expression, ctx: EvalContext, path: str) -> Value:
        # a predicate head shares its expression's path
        if expr.group is not None:
            head_path = f"{path}.group"
            head = self.evaluate(expr.group, ctx, head_path)
        else:
            head_path = path
            head = self.evaluate(expr.predicate, ctx, head_path)
        current = _truth(head, ctx, head_path)

        for i, (op, operand) in enumerate(expr.tail, start=1):
            if op is LogicalOperator.AND and not current:
                continue
            if op is LogicalOperator.OR and current:
                continue
            operand_path = f"{path}[{i}]"
            current = _truth(self.evaluate(operand, ctx, operand_path), ctx, operand_path)
        return TRUE if current else FALSE

    # --- Actions ---

    def _exec_assignment(self, assignment: Assignment, ctx: EvalContext, path: str) -> None:
        value = self.evaluate(assignment.source, ctx, f"{path}.source")
        target = assignment.variable.name
        try:
            ctx.data_context.set_value(target, value)
        except EvaluationError as e:
            _locate(e, ctx, f"{path}.target")
            raise
        log.debug("Assigned %s = %s (rule '%s')", target, value, ctx.rule_name)


# ---------------------------------------------------------------------------
# Operator semantics
# ---------------------------------------------------------------------------

def arithmetic(left: Value, op: MathOperator, right: Value) -> Value:
    """Apply ``left op right``."""
    if Kind.STRING in (left.kind, right.kind):
        if op is not MathOperator.PLUS:
            raise TypeMismatchError(f"operator {op.value} is not defined on strings")
        return Value.string(left.as_string() + right.as_string())

    if not (left.is_numeric and right.is_numeric):
        raise TypeMismatchError(
            f"cannot apply {op.value} to {left.kind.value} and {right.kind.value}"
        )

    kinds = (left.base_kind, right.base_kind)
    if BaseKind.FLOAT64 in kinds:
        return Value.float64(_float_math(left.as_float(), op, right.as_float()))
    if BaseKind.UINT64 in kinds:
        result = _int_math(left.as_uint(), op, right.as_uint())
        if not 0 <= result <= _UINT64_MAX:
            raise NumericOverflowError(f"result {result} does not fit Uint64")
        return Value.uint64(result)
    result = _int_math(left.as_int(), op, right.as_int())
    if not _INT64_MIN <= result <= _INT64_MAX:
        raise NumericOverflowError(f"result {result} does not fit Int64")
    return Value.int64(result)


def _int_math(a: int, op: MathOperator, b: int) -> int:
    if op is MathOperator.PLUS:
        return a + b
    if op is MathOperator.MINUS:
        return a - b
    if op is MathOperator.MUL:
        return a * b
    if b == 0:
        raise DivideByZeroError(f"integer division of {a} by zero")
    # truncate toward zero
    quotient = abs(a) // abs(b)
    return quotient if (a >= 0) == (b >= 0) else -quotient


def _float_math(a: float, op: MathOperator, b: float) -> float:
    if op is MathOperator.PLUS:
        return a + b
    if op is MathOperator.MINUS:
        return a - b
    if op is MathOperator.MUL:
        return a * b
    if b == 0:
        raise DivideByZeroError(f"division of {a} by zero")
    return a / b


def compare(left: Value, op: ComparisonOperator, right: Value) -> Value:
    """Apply ``left op right``, returning a Bool value."""
    if left.is_null or right.is_null:
        if op not in _EQUALITY_OPS:
            raise TypeMismatchError(f"operator {op.value} is not defined on null")
        both = left.is_null and right.is_null
        return Value.boolean(both if op is ComparisonOperator.EQ else not both)

    if left.kind is right.kind and op in _EQUALITY_OPS and left.kind in _PRIMITIVE_KINDS:
        equal = left.payload == right.payload
        return Value.boolean(equal if op is ComparisonOperator.EQ else not equal)

    if left.kind is Kind.TIME and right.kind is Kind.TIME:
        try:
            return Value.boolean(_ordered(left.payload, op, right.payload))
        except TypeError as e:
            # naive vs. timezone-aware datetimes
            raise TypeMismatchError(str(e)) from e

    if left.is_numeric and right.is_numeric:
        return Value.boolean(_ordered(left.as_float(), op, right.as_float()))

    if left.kind is Kind.STRING and right.kind is Kind.STRING:
        return Value.boolean(_ordered(left.payload, op, right.payload))

    if left.kind is Kind.OBJECT and right.kind is Kind.OBJECT and op in _EQUALITY_OPS:
        equal = left.payload == right.payload
        return Value.boolean(equal if op is ComparisonOperator.EQ else not equal)

    raise TypeMismatchError(
        f"cannot compare {left.kind.value} {op.value} {right.kind.value}"
    )


def _ordered(a, op: ComparisonOperator, b) -> bool:
    if op is ComparisonOperator.EQ:
        return a == b
    if op is ComparisonOperator.NEQ:
        return a != b
    if op is ComparisonOperator.LT:
        return a < b
    if op is ComparisonOperator.LTE:
        return a <= b
    if op is ComparisonOperator.GT:
        return a > b
    return a >= b


def _truth(value: Value, ctx: EvalContext, path: str) -> bool:
    if value.kind is not Kind.BOOL:
        raise TypeMismatchError(
            f"condition must be Bool, got {value.kind.value}",
            rule_name=ctx.rule_name,
            node_path=path,
        )
    return value.payload


def _locate(error: EvaluationError, ctx: EvalContext, path: str) -> None:
    """Record where an error happened, keeping the innermost location."""
    if error.rule_name is None:
        error.rule_name = ctx.rule_name
    if error.node_path is None and path:
        error.node_path = path
