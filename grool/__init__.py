"""grool — a forward-chaining business rules engine with a small DSL."""

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
    Variable,
    WhenScope,
)
from .builder import RuleBuilder
from .context import DataContext, EngineControl, HostBinder, ReflectionBinder
from .engine import DEFAULT_MAX_CYCLES, Engine, RunResult, RunStatus
from .errors import (
    ArityMismatchError,
    BuilderInvariantError,
    BuildError,
    CycleLimitError,
    DivideByZeroError,
    DuplicateRuleError,
    EvaluationError,
    GroolError,
    HostCallError,
    NotAssignableError,
    NullDerefError,
    NumericOverflowError,
    ParseError,
    RunCancelledError,
    RunError,
    TypeMismatchError,
    UnknownFieldError,
    UnknownRootError,
)
from .evaluator import EvalContext, Evaluator
from .facts import FactsError, context_from_facts, load_facts, parse_facts
from .formatter import Formatter
from .logging import RunLog, RunLogger
from .parser import build, parse
from .values import (
    Float32,
    Float64,
    Int8,
    Int16,
    Int32,
    Int64,
    Kind,
    BaseKind,
    Uint8,
    Uint16,
    Uint32,
    Uint64,
    Value,
    is_time,
)

__all__ = [
    "build",
    "parse",
    "Engine",
    "RunResult",
    "RunStatus",
    "DEFAULT_MAX_CYCLES",
    "DataContext",
    "EngineControl",
    "HostBinder",
    "ReflectionBinder",
    "Evaluator",
    "EvalContext",
    "RuleBuilder",
    "Formatter",
    "RunLog",
    "RunLogger",
    "load_facts",
    "parse_facts",
    "context_from_facts",
    "FactsError",
    "Value",
    "Kind",
    "BaseKind",
    "is_time",
    "Int8",
    "Int16",
    "Int32",
    "Int64",
    "Uint8",
    "Uint16",
    "Uint32",
    "Uint64",
    "Float32",
    "Float64",
    "RuleSet",
    "RuleEntry",
    "WhenScope",
    "ThenScope",
    "Expression",
    "Predicate",
    "ExpressionAtom",
    "FunctionCall",
    "FunctionArgument",
    "Variable",
    "Constant",
    "Assignment",
    "AssignExpression",
    "AssignExpressions",
    "DataType",
    "MathOperator",
    "ComparisonOperator",
    "LogicalOperator",
    "GroolError",
    "ParseError",
    "BuildError",
    "DuplicateRuleError",
    "BuilderInvariantError",
    "EvaluationError",
    "UnknownRootError",
    "UnknownFieldError",
    "NullDerefError",
    "TypeMismatchError",
    "NumericOverflowError",
    "DivideByZeroError",
    "ArityMismatchError",
    "NotAssignableError",
    "HostCallError",
    "RunError",
    "CycleLimitError",
    "RunCancelledError",
]
