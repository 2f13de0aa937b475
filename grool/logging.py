"""Structured run logs: per-rule evaluation records with timing metrics.

Captures, for every engine run:
- each condition evaluation and its outcome, per cycle
- each firing and its duration
- demotions and failures with the error text
- run-level totals
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Phase(Enum):
    WHEN = "when"
    THEN = "then"


class RuleStatus(Enum):
    MATCHED = "matched"
    UNMATCHED = "unmatched"
    FIRED = "fired"
    FAILED = "failed"
    DEMOTED = "demoted"


@dataclass
class RuleLog:
    """Log entry for one evaluation or firing of a rule."""
    rule_name: str
    cycle: int
    phase: Phase
    status: RuleStatus
    timestamp: float = field(default_factory=time.time)
    duration_ms: float | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "rule_name": self.rule_name,
            "cycle": self.cycle,
            "phase": self.phase.value,
            "status": self.status.value,
            "timestamp": self.timestamp,
        }
        if self.duration_ms is not None:
            d["duration_ms"] = round(self.duration_ms, 3)
        if self.error:
            d["error"] = self.error
        return d


@dataclass
class RunLog:
    """Aggregated log for an entire engine run."""
    rule_set_name: str
    started_at: float = field(default_factory=time.time)
    finished_at: float | None = None
    status: str = "running"
    cycles: int = 0
    entries: list[RuleLog] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def total_duration_ms(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at) * 1000

    @property
    def fired(self) -> list[str]:
        return [e.rule_name for e in self.entries if e.status is RuleStatus.FIRED]

    @property
    def error_count(self) -> int:
        return sum(1 for e in self.entries if e.status in (RuleStatus.FAILED, RuleStatus.DEMOTED))

    def finish(self, status: str = "fixpoint") -> None:
        self.finished_at = time.time()
        self.status = status

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "rule_set_name": self.rule_set_name,
            "started_at": self.started_at,
            "status": self.status,
            "cycles": self.cycles,
            "fired": self.fired,
            "entries": [e.to_dict() for e in self.entries],
        }
        if self.finished_at:
            d["finished_at"] = self.finished_at
            d["total_duration_ms"] = round(self.total_duration_ms, 3)
        if self.errors:
            d["errors"] = self.errors
        return d

    def to_json(self, pretty: bool = False) -> str:
        indent = 2 if pretty else None
        return json.dumps(self.to_dict(), indent=indent, default=str)

    def summary(self) -> str:
        duration = f"{self.total_duration_ms:.1f}ms" if self.total_duration_ms is not None else "running"
        lines = [
            f"Rules: {self.rule_set_name} [{self.status}]",
            f"Duration: {duration}",
            f"Cycles: {self.cycles}, fired: {len(self.fired)}",
            "─" * 50,
        ]
        for entry in self.entries:
            if entry.status in (RuleStatus.MATCHED, RuleStatus.UNMATCHED):
                continue
            dur = f"{entry.duration_ms:.1f}ms" if entry.duration_ms is not None else "—"
            icon = "✅" if entry.status is RuleStatus.FIRED else "❌"
            lines.append(f"  {icon} [{entry.cycle}] {entry.rule_name} ({entry.status.value}) [{dur}]")
            if entry.error:
                lines.append(f"     └─ {entry.error}")
        if self.errors:
            lines.append("─" * 50)
            for err in self.errors:
                lines.append(f"  ⚠ {err}")
        return "\n".join(lines)


class RunLogger:
    """Tracks rule evaluations and firings during an engine run."""

    def __init__(self, rule_set_name: str):
        self.run = RunLog(rule_set_name=rule_set_name)
        self._starts: dict[tuple[str, Phase], float] = {}

    def start_cycle(self, cycle: int) -> None:
        self.run.cycles = cycle

    def start(self, rule_name: str, phase: Phase) -> None:
        self._starts[(rule_name, phase)] = time.time()

    def record(
        self,
        rule_name: str,
        phase: Phase,
        status: RuleStatus,
        error: str | None = None,
    ) -> RuleLog:
        """Close the pending evaluation of ``rule_name`` with ``status``."""
        entry = RuleLog(
            rule_name=rule_name,
            cycle=self.run.cycles,
            phase=phase,
            status=status,
            error=error,
        )
        start = self._starts.pop((rule_name, phase), None)
        if start is not None:
            entry.duration_ms = (time.time() - start) * 1000
        self.run.entries.append(entry)
        if error:
            self.run.errors.append(f"{rule_name}: {error}")
        return entry

    def finish(self, status: str) -> RunLog:
        self.run.finish(status)
        return self.run
