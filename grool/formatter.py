"""Formatter: RuleSet -> grool DSL source text.

The output re-parses to an equivalent RuleSet, which makes it usable
both for pretty-printing rule files and for inspecting what the builder
produced (including precedence regrouping).
"""

from __future__ import annotations

from .ast_nodes import (
    Assignment,
    Constant,
    DataType,
    Expression,
    ExpressionAtom,
    FunctionCall,
    MathOperator,
    Predicate,
    RuleEntry,
    RuleSet,
)

_PRECEDENCE = {
    MathOperator.PLUS: 1,
    MathOperator.MINUS: 1,
    MathOperator.MUL: 2,
    MathOperator.DIV: 2,
}


class Formatter:
    """Renders rule ASTs as DSL source."""

    def __init__(self, indent: int = 4):
        self.indent = indent

    def format(self, rule_set: RuleSet) -> str:
        """Render every rule, in source order."""
        blocks = [self.format_rule(rule) for rule in rule_set]
        return "\n\n".join(blocks) + ("\n" if blocks else "")

    def format_rule(self, rule: RuleEntry) -> str:
        prefix = " " * self.indent
        header = f"rule {_quote(rule.name)}"
        if rule.description:
            header += f" {_quote(rule.description)}"
        if rule.salience:
            header += f" salience {rule.salience}"
        lines = [
            header,
            "when",
            f"{prefix}{self.format_expression(rule.when.expression)}",
            "then",
        ]
        for expr in rule.then.assign_expressions.expressions:
            lines.append(f"{prefix}{self.format_assignment(expr.assignment)}")
        lines.append("end")
        return "\n".join(lines)

    def format_assignment(self, assignment: Assignment) -> str:
        return f"{assignment.variable.name} = {self.format_atom(assignment.source)};"

    def format_expression(self, expr: Expression) -> str:
        parts = [self._format_operand(expr, head=True)]
        for op, operand in expr.tail:
            parts.append(op.value)
            parts.append(self._format_operand(operand))
        return " ".join(parts)

    def _format_operand(self, expr: Expression, head: bool = False) -> str:
        if not head and expr.tail:
            return f"({self.format_expression(expr)})"
        if expr.group is not None:
            return f"({self.format_expression(expr.group)})"
        return self.format_predicate(expr.predicate)

    def format_predicate(self, predicate: Predicate) -> str:
        text = self.format_atom(predicate.left)
        if predicate.right is not None:
            text += f" {predicate.operator.value} {self.format_atom(predicate.right)}"
        return text

    def format_atom(self, atom: ExpressionAtom) -> str:
        if atom.constant is not None:
            return self.format_constant(atom.constant)
        if atom.variable is not None:
            return atom.variable.name
        if atom.function_call is not None:
            return self.format_call(atom.function_call)

        prec = _PRECEDENCE[atom.operator]
        left = self.format_atom(atom.left)
        if _binds_looser(atom.left, prec, strict=True):
            left = f"({left})"
        right = self.format_atom(atom.right)
        if _binds_looser(atom.right, prec, strict=False):
            right = f"({right})"
        return f"{left} {atom.operator.value} {right}"

    def format_call(self, call: FunctionCall) -> str:
        args = ", ".join(self.format_atom(arg) for arg in call.arguments.arguments)
        return f"{call.name}({args})"

    def format_constant(self, constant: Constant) -> str:
        dt = constant.data_type
        if dt is DataType.DECIMAL:
            return str(constant.decimal_value)
        if dt is DataType.FLOAT:
            return _real(constant.float_value)
        if dt is DataType.STRING:
            return _quote(constant.string_value)
        if dt is DataType.BOOL:
            return "true" if constant.bool_value else "false"
        return "null" if constant.is_null else "not null"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _binds_looser(atom: ExpressionAtom, prec: int, strict: bool) -> bool:
    """True if ``atom`` needs parentheses as an operand at ``prec``."""
    if atom.is_leaf:
        return False
    inner = _PRECEDENCE[atom.operator]
    return inner < prec if strict else inner <= prec


def _real(x: float) -> str:
    text = repr(x)
    if "e" in text and "." not in text:
        mantissa, exponent = text.split("e")
        text = f"{mantissa}.0e{exponent}"
    return text


_QUOTE_ESCAPES = str.maketrans({
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\t": "\\t",
    "\r": "\\r",
})


def _quote(text: str) -> str:
    return f'"{text.translate(_QUOTE_ESCAPES)}"'
