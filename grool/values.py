"""Tagged values: the uniform currency between the evaluator and host objects.

Every lookup, constant and intermediate result is a :class:`Value`. The
``base_kind`` coarsening collapses integer and float widths so the
evaluator only ever reasons about Int64, Uint64 and Float64.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any

from .errors import NumericOverflowError, TypeMismatchError


class Kind(Enum):
    INT = "Int"
    UINT = "Uint"
    FLOAT = "Float"
    STRING = "String"
    BOOL = "Bool"
    TIME = "Time"
    NULL = "Null"
    OBJECT = "Object"


class BaseKind(Enum):
    INT64 = "Int64"
    UINT64 = "Uint64"
    FLOAT64 = "Float64"
    STRING = "String"
    BOOL = "Bool"
    TIME = "Time"
    NULL = "Null"
    OBJECT = "Object"


_BASE_KINDS = {
    Kind.INT: BaseKind.INT64,
    Kind.UINT: BaseKind.UINT64,
    Kind.FLOAT: BaseKind.FLOAT64,
    Kind.STRING: BaseKind.STRING,
    Kind.BOOL: BaseKind.BOOL,
    Kind.TIME: BaseKind.TIME,
    Kind.NULL: BaseKind.NULL,
    Kind.OBJECT: BaseKind.OBJECT,
}

NUMERIC_BASE_KINDS = frozenset({BaseKind.INT64, BaseKind.UINT64, BaseKind.FLOAT64})

_FLOAT32_MAX = 3.4028234663852886e38


# ---------------------------------------------------------------------------
# Numeric widths
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NumericType:
    """A sized numeric type, e.g. a 32-bit signed integer."""
    name: str
    kind: Kind
    bits: int

    def contains(self, number: int | float) -> bool:
        """True if ``number`` is representable in this type."""
        if self.kind is Kind.FLOAT:
            if self.bits == 64 or number != number or number in (float("inf"), float("-inf")):
                return True
            return abs(number) <= _FLOAT32_MAX
        if self.kind is Kind.UINT:
            return 0 <= number < 2 ** self.bits
        return -(2 ** (self.bits - 1)) <= number < 2 ** (self.bits - 1)

    def __str__(self) -> str:
        return self.name


INT8 = NumericType("Int8", Kind.INT, 8)
INT16 = NumericType("Int16", Kind.INT, 16)
INT32 = NumericType("Int32", Kind.INT, 32)
INT64 = NumericType("Int64", Kind.INT, 64)
UINT8 = NumericType("Uint8", Kind.UINT, 8)
UINT16 = NumericType("Uint16", Kind.UINT, 16)
UINT32 = NumericType("Uint32", Kind.UINT, 32)
UINT64 = NumericType("Uint64", Kind.UINT, 64)
FLOAT32 = NumericType("Float32", Kind.FLOAT, 32)
FLOAT64 = NumericType("Float64", Kind.FLOAT, 64)

# Field annotations for host classes: ``age: Int32``
Int8 = Annotated[int, INT8]
Int16 = Annotated[int, INT16]
Int32 = Annotated[int, INT32]
Int64 = Annotated[int, INT64]
Uint8 = Annotated[int, UINT8]
Uint16 = Annotated[int, UINT16]
Uint32 = Annotated[int, UINT32]
Uint64 = Annotated[int, UINT64]
Float32 = Annotated[float, FLOAT32]
Float64 = Annotated[float, FLOAT64]


def is_time(obj: Any) -> bool:
    """True if ``obj`` is a host time value."""
    return isinstance(obj, datetime.datetime)


# ---------------------------------------------------------------------------
# Value
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Value:
    """A tagged value. ``payload`` always matches ``kind``."""
    kind: Kind
    payload: Any = None
    numeric_type: NumericType | None = None

    @classmethod
    def of(cls, obj: Any, declared: NumericType | None = None) -> Value:
        """Tag a host object, honouring a declared numeric width."""
        if obj is None:
            return NULL
        if isinstance(obj, bool):
            return cls(Kind.BOOL, obj)
        if isinstance(obj, int):
            if declared is not None and declared.kind is Kind.UINT:
                return cls(Kind.UINT, obj, declared)
            if declared is not None and declared.kind is Kind.INT:
                return cls(Kind.INT, obj, declared)
            return cls(Kind.INT, obj, INT64)
        if isinstance(obj, float):
            if declared is not None and declared.kind is Kind.FLOAT:
                return cls(Kind.FLOAT, obj, declared)
            return cls(Kind.FLOAT, obj, FLOAT64)
        if isinstance(obj, str):
            return cls(Kind.STRING, obj)
        if is_time(obj):
            return cls(Kind.TIME, obj)
        return cls(Kind.OBJECT, obj)

    @classmethod
    def int64(cls, n: int) -> Value:
        return cls(Kind.INT, n, INT64)

    @classmethod
    def uint64(cls, n: int) -> Value:
        return cls(Kind.UINT, n, UINT64)

    @classmethod
    def float64(cls, x: float) -> Value:
        return cls(Kind.FLOAT, x, FLOAT64)

    @classmethod
    def string(cls, s: str) -> Value:
        return cls(Kind.STRING, s)

    @classmethod
    def boolean(cls, b: bool) -> Value:
        return TRUE if b else FALSE

    @property
    def base_kind(self) -> BaseKind:
        return _BASE_KINDS[self.kind]

    @property
    def is_null(self) -> bool:
        return self.kind is Kind.NULL

    @property
    def is_numeric(self) -> bool:
        return self.base_kind in NUMERIC_BASE_KINDS

    # --- Coercions ---

    def as_int(self) -> int:
        if self.kind in (Kind.INT, Kind.UINT):
            return self.payload
        raise TypeMismatchError(f"{self.kind.value} value is not an integer")

    def as_uint(self) -> int:
        if self.kind in (Kind.INT, Kind.UINT):
            if self.payload < 0:
                raise NumericOverflowError(f"negative value {self.payload} is not unsigned")
            return self.payload
        raise TypeMismatchError(f"{self.kind.value} value is not an unsigned integer")

    def as_float(self) -> float:
        if self.kind in (Kind.INT, Kind.UINT, Kind.FLOAT):
            return float(self.payload)
        raise TypeMismatchError(f"{self.kind.value} value is not numeric")

    def as_string(self) -> str:
        if self.kind is Kind.STRING:
            return self.payload
        if self.kind in (Kind.INT, Kind.UINT):
            return str(self.payload)
        if self.kind is Kind.FLOAT:
            return repr(self.payload)
        if self.kind is Kind.BOOL:
            return "true" if self.payload else "false"
        if self.kind is Kind.TIME:
            return self.payload.isoformat()
        raise TypeMismatchError(f"{self.kind.value} value has no string form")

    def as_bool(self) -> bool:
        if self.kind is Kind.BOOL:
            return self.payload
        raise TypeMismatchError(f"{self.kind.value} value is not a boolean")

    def as_time(self) -> datetime.datetime:
        if self.kind is Kind.TIME:
            return self.payload
        raise TypeMismatchError(f"{self.kind.value} value is not a time")

    def __str__(self) -> str:
        if self.kind is Kind.NULL:
            return "null"
        if self.kind is Kind.OBJECT:
            return f"<{type(self.payload).__name__}>"
        return self.as_string() if self.kind is not Kind.STRING else repr(self.payload)


NULL = Value(Kind.NULL)
TRUE = Value(Kind.BOOL, True)
FALSE = Value(Kind.BOOL, False)
