"""Data context: the engine-visible registry of host objects.

All member access on host objects goes through a :class:`HostBinder`.
The default :class:`ReflectionBinder` works on plain attribute objects
(dataclasses, ordinary classes) and on mappings, using type hints to
decide how incoming values are coerced.
"""

from __future__ import annotations

import datetime
import functools
import inspect
import types
import typing
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from typing import Annotated, Any, Protocol, Union, get_args, get_origin

from .errors import (
    ArityMismatchError,
    GroolError,
    HostCallError,
    NotAssignableError,
    NullDerefError,
    NumericOverflowError,
    TypeMismatchError,
    UnknownFieldError,
    UnknownRootError,
)
from .values import FLOAT64, INT64, Kind, NumericType, Value

# Root name under which every data context exposes the engine control facts.
CONTROL_ROOT = "Engine"


# ---------------------------------------------------------------------------
# Type hint helpers
# ---------------------------------------------------------------------------

@functools.lru_cache(maxsize=None)
def _class_hints(cls: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(cls, include_extras=True)
    except (NameError, TypeError):
        return {}


def _callable_hints(fn: Any) -> dict[str, Any]:
    target = getattr(fn, "__func__", fn)
    try:
        return typing.get_type_hints(target, include_extras=True)
    except (NameError, TypeError, AttributeError):
        return {}


def _unwrap_optional(hint: Any) -> tuple[Any, bool]:
    """Strip ``None`` from ``Optional[X]`` / ``X | None``."""
    if get_origin(hint) in (Union, types.UnionType):
        args = [a for a in get_args(hint) if a is not type(None)]
        nullable = len(args) != len(get_args(hint))
        if len(args) == 1:
            return args[0], nullable
        return Union[tuple(args)], nullable
    return hint, False


def _strip_annotated(hint: Any) -> Any:
    if get_origin(hint) is Annotated:
        return get_args(hint)[0]
    return hint


def declared_numeric(hint: Any) -> NumericType | None:
    """Numeric width declared by a type hint, if any."""
    if hint is None:
        return None
    hint, _ = _unwrap_optional(hint)
    if get_origin(hint) is Annotated:
        for meta in hint.__metadata__:
            if isinstance(meta, NumericType):
                return meta
        hint = get_args(hint)[0]
    if hint is int:
        return INT64
    if hint is float:
        return FLOAT64
    return None


def coerce(value: Value, hint: Any, target: str) -> Any:
    """Convert ``value`` into a payload suitable for a slot typed ``hint``.

    An absent hint accepts any value unchanged.
    """
    if hint is None or hint is Any:
        return value.payload
    hint, nullable = _unwrap_optional(hint)
    if value.is_null:
        if nullable:
            return None
        raise TypeMismatchError(f"cannot assign null to {target}")

    base = _strip_annotated(hint)
    if base is bool:
        if value.kind is not Kind.BOOL:
            raise TypeMismatchError(f"cannot assign {value.kind.value} to bool {target}")
        return value.payload

    numeric = declared_numeric(hint)
    if numeric is not None:
        return _coerce_numeric(value, numeric, target)

    if base is str:
        if value.kind is not Kind.STRING:
            raise TypeMismatchError(f"cannot assign {value.kind.value} to string {target}")
        return value.payload
    if base is datetime.datetime:
        return value.as_time()

    origin = get_origin(base) or base
    if isinstance(origin, type):
        if not isinstance(value.payload, origin):
            raise TypeMismatchError(
                f"cannot assign {type(value.payload).__name__} to {origin.__name__} {target}"
            )
    return value.payload


_SLOT_TYPES = (bool, int, float, str, datetime.datetime)


def slot_hint(current: Any) -> Any:
    """Hint for an unannotated slot, taken from the value it holds now.

    Empty slots and slots holding other objects accept any value.
    """
    for slot_type in _SLOT_TYPES:
        if isinstance(current, slot_type):
            return slot_type
    return None


def _coerce_numeric(value: Value, numeric: NumericType, target: str) -> int | float:
    if numeric.kind is Kind.FLOAT:
        if value.kind not in (Kind.INT, Kind.UINT, Kind.FLOAT):
            raise TypeMismatchError(f"cannot assign {value.kind.value} to {numeric} {target}")
        x = value.as_float()
        if not numeric.contains(x):
            raise NumericOverflowError(f"{x} does not fit {numeric} {target}")
        return x
    if value.kind not in (Kind.INT, Kind.UINT):
        raise TypeMismatchError(f"cannot assign {value.kind.value} to {numeric} {target}")
    if not numeric.contains(value.payload):
        raise NumericOverflowError(f"{value.payload} does not fit {numeric} {target}")
    return value.payload


# ---------------------------------------------------------------------------
# Host binders
# ---------------------------------------------------------------------------

class HostBinder(Protocol):
    """Dynamic member access on host objects."""

    def get_field(self, obj: Any, name: str) -> Value: ...

    def set_field(self, obj: Any, name: str, value: Value) -> None: ...

    def invoke(self, obj: Any, name: str, args: list[Value]) -> Value: ...


class ReflectionBinder:
    """Binder backed by attribute access, mappings and type hints."""

    def get_field(self, obj: Any, name: str) -> Value:
        if isinstance(obj, Mapping):
            if name not in obj:
                raise UnknownFieldError(f"key '{name}' not found")
            return Value.of(obj[name])
        if name.startswith("_"):
            raise UnknownFieldError(f"field '{name}' is private")
        try:
            raw = getattr(obj, name)
        except AttributeError:
            raise UnknownFieldError(
                f"{type(obj).__name__} has no field '{name}'"
            ) from None
        except GroolError:
            raise
        except Exception as e:
            raise HostCallError(
                f"reading {type(obj).__name__}.{name} raised {type(e).__name__}: {e}"
            ) from e
        hint = _class_hints(type(obj)).get(name)
        return Value.of(raw, declared_numeric(hint))

    def set_field(self, obj: Any, name: str, value: Value) -> None:
        if isinstance(obj, Mapping):
            if not isinstance(obj, MutableMapping):
                raise NotAssignableError(f"mapping is read-only, cannot set '{name}'")
            if name not in obj:
                raise UnknownFieldError(f"key '{name}' not found")
            obj[name] = coerce(value, slot_hint(obj[name]), f"key '{name}'")
            return
        cls_name = type(obj).__name__
        if name.startswith("_"):
            raise UnknownFieldError(f"field '{name}' is private")
        hints = _class_hints(type(obj))
        if name not in hints and not hasattr(obj, name):
            raise UnknownFieldError(f"{cls_name} has no field '{name}'")

        static = inspect.getattr_static(obj, name, None)
        if inspect.isroutine(static):
            raise NotAssignableError(f"{cls_name}.{name} is a method")
        if isinstance(static, property) and static.fset is None:
            raise NotAssignableError(f"{cls_name}.{name} is read-only")

        if name in hints:
            hint = hints[name]
        else:
            hint = slot_hint(getattr(obj, name, None))
        payload = coerce(value, hint, f"field {cls_name}.{name}")
        try:
            setattr(obj, name, payload)
        except AttributeError as e:
            raise NotAssignableError(f"{cls_name}.{name}: {e}") from e
        except GroolError:
            raise
        except Exception as e:
            raise HostCallError(
                f"setting {cls_name}.{name} raised {type(e).__name__}: {e}"
            ) from e

    def invoke(self, obj: Any, name: str, args: list[Value]) -> Value:
        if isinstance(obj, Mapping):
            fn = obj.get(name)
            if fn is None:
                raise UnknownFieldError(f"function '{name}' not found")
        elif name.startswith("_"):
            raise UnknownFieldError(f"method '{name}' is private")
        else:
            try:
                fn = getattr(obj, name)
            except AttributeError:
                raise UnknownFieldError(
                    f"{type(obj).__name__} has no method '{name}'"
                ) from None
        if not callable(fn):
            raise TypeMismatchError(f"'{name}' is not callable")

        hints = _callable_hints(fn)
        call_args = self._bind_arguments(fn, name, args, hints)
        try:
            result = fn(*call_args)
        except GroolError:
            raise
        except Exception as e:
            raise HostCallError(f"'{name}' raised {type(e).__name__}: {e}") from e
        if isinstance(result, tuple):
            raise ArityMismatchError(f"'{name}' returned {len(result)} values, expected one")
        return Value.of(result, declared_numeric(hints.get("return")))

    def _bind_arguments(
        self,
        fn: Any,
        name: str,
        args: list[Value],
        hints: dict[str, Any],
    ) -> list[Any]:
        try:
            sig = inspect.signature(fn)
        except (TypeError, ValueError):
            # builtins without signature metadata take raw payloads
            return [a.payload for a in args]

        positional = []
        var_positional = None
        for param in sig.parameters.values():
            if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
                positional.append(param)
            elif param.kind is param.VAR_POSITIONAL:
                var_positional = param
            elif param.kind is param.KEYWORD_ONLY and param.default is param.empty:
                raise ArityMismatchError(
                    f"'{name}' needs keyword-only argument '{param.name}', which rules cannot pass"
                )
        required = [p for p in positional if p.default is p.empty]

        if len(args) < len(required) or (len(args) > len(positional) and var_positional is None):
            raise ArityMismatchError(
                f"'{name}' takes {len(required)}"
                f"{'+' if var_positional or len(positional) > len(required) else ''}"
                f" argument(s), got {len(args)}"
            )

        call_args = []
        for i, arg in enumerate(args):
            param = positional[i] if i < len(positional) else var_positional
            call_args.append(coerce(arg, hints.get(param.name), f"argument '{param.name}' of {name}"))
        return call_args


# ---------------------------------------------------------------------------
# Data context
# ---------------------------------------------------------------------------

@dataclass
class EngineControl:
    """Control facts every rule can reach as ``Engine.*``."""
    Retract: bool = False


class DataContext:
    """Maps root names to host objects and resolves dotted paths."""

    def __init__(self, binder: HostBinder | None = None):
        self.binder = binder or ReflectionBinder()
        self.control = EngineControl()
        self._roots: dict[str, Any] = {CONTROL_ROOT: self.control}

    # --- Registry ---

    def add(self, name: str, obj: Any) -> None:
        """Register a host object under ``name``."""
        if not name.isidentifier():
            raise ValueError(f"invalid root name '{name}'")
        if name == CONTROL_ROOT:
            raise ValueError(f"root name '{CONTROL_ROOT}' is reserved")
        self._roots[name] = obj

    def remove(self, name: str) -> None:
        if name != CONTROL_ROOT:
            self._roots.pop(name, None)

    def has(self, name: str) -> bool:
        return name in self._roots

    __contains__ = has

    @property
    def roots(self) -> Mapping[str, Any]:
        return types.MappingProxyType(self._roots)

    @property
    def retracted(self) -> bool:
        return bool(self.control.Retract)

    def reset(self) -> None:
        """Clear the retract sentinel before a new run."""
        self.control.Retract = False

    # --- Path operations ---

    def get_value(self, path: str) -> Value:
        """Look up the value at a dotted path."""
        segments = _split(path)
        if len(segments) == 1:
            return Value.of(self._root(segments[0]))
        parent = self._walk(segments[:-1])
        return self.binder.get_field(parent, segments[-1])

    def set_value(self, path: str, value: Value) -> None:
        """Assign ``value`` to the field at a dotted path."""
        segments = _split(path)
        if len(segments) == 1:
            self._root(segments[0])
            raise NotAssignableError(f"cannot assign to root '{segments[0]}'")
        parent = self._walk(segments[:-1])
        self.binder.set_field(parent, segments[-1], value)

    def call(self, path: str, args: list[Value]) -> Value:
        """Invoke the method at a dotted path.

        A one-segment path calls a function registered as a root.
        """
        segments = _split(path)
        if len(segments) == 1:
            self._root(segments[0])
            return self.binder.invoke(self._roots, segments[0], args)
        parent = self._walk(segments[:-1])
        return self.binder.invoke(parent, segments[-1], args)

    def _root(self, name: str) -> Any:
        try:
            return self._roots[name]
        except KeyError:
            raise UnknownRootError(f"unknown root '{name}'") from None

    def _walk(self, segments: list[str]) -> Any:
        """Resolve a path to a non-null host object."""
        obj = self._root(segments[0])
        for i, segment in enumerate(segments[1:], start=1):
            if obj is None:
                raise NullDerefError(f"'{'.'.join(segments[:i])}' is null")
            obj = self.binder.get_field(obj, segment).payload
        if obj is None:
            raise NullDerefError(f"'{'.'.join(segments)}' is null")
        return obj


def _split(path: str) -> list[str]:
    segments = path.split(".")
    if not all(segments):
        raise UnknownFieldError(f"malformed path '{path}'")
    return segments
