"""Fact files: load data-context roots from YAML or JSON.

A fact file is a mapping of root name to value::

    user:
      Age: 17
      Adult: false
    order:
      CreatedAt: 2020-01-01T00:00:00

Nested mappings become dict host objects, so rules can read and assign
``user.Adult``. YAML timestamps (and ISO-8601 strings in JSON files)
become ``datetime`` values that compare as times.
"""

from __future__ import annotations

import datetime
import json
import re
from pathlib import Path
from typing import Any

import yaml

from .context import CONTROL_ROOT, DataContext
from .errors import GroolError

_ISO_DATETIME = re.compile(
    r"^\d{4}-\d{2}-\d{2}([T ]\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?)?$"
)


class FactsError(GroolError):
    """Raised when a fact file is malformed."""


def parse_facts(source: str, fmt: str = "yaml") -> dict[str, Any]:
    """Parse fact text. ``fmt`` is ``"yaml"`` or ``"json"``."""
    if fmt == "json":
        try:
            data = json.loads(source)
        except json.JSONDecodeError as exc:
            raise FactsError(f"Invalid JSON: {exc.msg}", line=exc.lineno, column=exc.colno) from exc
        data = _parse_iso_strings(data)
    else:
        try:
            data = yaml.safe_load(source)
        except yaml.YAMLError as exc:
            raise FactsError(f"Invalid YAML: {exc}") from exc
        if data is None:
            data = {}

    if not isinstance(data, dict):
        raise FactsError("Facts root must be a mapping of name -> value")
    for key in data:
        if not isinstance(key, str) or not key.isidentifier():
            raise FactsError(f"Fact name {key!r} is not a valid identifier")
        if key == CONTROL_ROOT:
            raise FactsError(f"Fact name '{CONTROL_ROOT}' is reserved")
    return _promote_dates(data)


def load_facts(path: str | Path) -> dict[str, Any]:
    """Load a fact file, choosing the format by suffix."""
    path = Path(path)
    fmt = "json" if path.suffix.lower() == ".json" else "yaml"
    return parse_facts(path.read_text(encoding="utf-8"), fmt=fmt)


def context_from_facts(facts: dict[str, Any], data_context: DataContext | None = None) -> DataContext:
    """Register every fact as a root of a (new) data context."""
    ctx = data_context or DataContext()
    for name, value in facts.items():
        ctx.add(name, value)
    return ctx


def dump_facts(data_context: DataContext, pretty: bool = True) -> str:
    """Serialize the user roots of a data context as JSON."""
    roots = {k: v for k, v in data_context.roots.items() if k != CONTROL_ROOT}
    return json.dumps(roots, indent=2 if pretty else None, default=_json_default)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _promote_dates(value: Any) -> Any:
    """Turn bare dates into midnight datetimes, recursively."""
    if isinstance(value, dict):
        return {k: _promote_dates(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_promote_dates(v) for v in value]
    if isinstance(value, datetime.date) and not isinstance(value, datetime.datetime):
        return datetime.datetime(value.year, value.month, value.day)
    return value


def _parse_iso_strings(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _parse_iso_strings(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_parse_iso_strings(v) for v in value]
    if isinstance(value, str) and _ISO_DATETIME.match(value):
        try:
            return datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return value


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (datetime.date, datetime.datetime)):
        return obj.isoformat()
    if hasattr(obj, "__dict__"):
        return {k: v for k, v in vars(obj).items() if not k.startswith("_")}
    return str(obj)
