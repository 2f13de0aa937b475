"""Rule cycle driver: forward-chaining execution of a RuleSet.

Each cycle evaluates every rule's condition in source order, puts the
rules whose condition is true on the agenda, and fires the one with the
highest salience (ties go to the rule defined first). The run ends at
the first cycle with an empty agenda, when a rule sets
``Engine.Retract``, when the cycle limit is exceeded, or when the host
cancels it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from .ast_nodes import RuleEntry, RuleSet
from .context import DataContext
from .errors import (
    CycleLimitError,
    EvaluationError,
    GroolError,
    HostCallError,
    RunCancelledError,
)
from .evaluator import EvalContext, Evaluator
from .logging import Phase, RuleStatus, RunLog, RunLogger

log = logging.getLogger(__name__)

DEFAULT_MAX_CYCLES = 5000

CancelSignal = Callable[[], bool]


class RunStatus(Enum):
    FIXPOINT = "fixpoint"
    RETRACTED = "retracted"
    FAILED = "failed"
    CYCLE_LIMIT = "cycle_limit"
    CANCELLED = "cancelled"


_EXIT_CODES = {
    RunStatus.FIXPOINT: 0,
    RunStatus.RETRACTED: 0,
    RunStatus.FAILED: 2,
    RunStatus.CYCLE_LIMIT: 3,
    RunStatus.CANCELLED: 4,
}


@dataclass
class RunResult:
    """Outcome of an engine run."""
    cycles_run: int
    fired_rules: list[str] = field(default_factory=list)
    status: RunStatus = RunStatus.FIXPOINT
    error: Exception | None = None
    demoted_rules: list[str] = field(default_factory=list)
    run_log: RunLog | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def retracted(self) -> bool:
        return self.status is RunStatus.RETRACTED

    @property
    def exit_code(self) -> int:
        return _EXIT_CODES[self.status]

    def summary(self) -> str:
        if self.run_log:
            return self.run_log.summary()
        status = "✅ Success" if self.success else "❌ Failed"
        return f"{status}: {self.error or self.status.value}"


class Engine:
    """Runs a RuleSet against a DataContext until nothing fires."""

    def __init__(
        self,
        rule_set: RuleSet,
        data_context: DataContext,
        max_cycles: int = DEFAULT_MAX_CYCLES,
        cancel: CancelSignal | None = None,
        evaluator: Evaluator | None = None,
    ):
        if max_cycles < 1:
            raise ValueError("max_cycles must be at least 1")
        self.rule_set = rule_set
        self.data_context = data_context
        self.max_cycles = max_cycles
        self.cancel = cancel
        self.evaluator = evaluator or Evaluator()

    def run(self) -> RunResult:
        """Execute rules to fixpoint and return the result."""
        logger = RunLogger(self.rule_set.name)
        rules = list(self.rule_set)
        demoted: list[str] = []
        fired: list[str] = []
        cycles = 0
        status = RunStatus.FIXPOINT
        error: Exception | None = None
        self.data_context.reset()

        try:
            while True:
                if cycles >= self.max_cycles:
                    raise CycleLimitError(self.max_cycles)
                cycles += 1
                logger.start_cycle(cycles)
                self._check_cancel(cycles)

                agenda = []
                for rule in rules:
                    if rule.name in demoted:
                        continue
                    self._check_cancel(cycles)
                    if self._matches(rule, logger, demoted):
                        agenda.append(rule)

                if not agenda:
                    break

                rule = min(agenda, key=lambda r: (-r.salience, r.order))
                self._fire(rule, logger)
                fired.append(rule.name)

                if self.data_context.retracted:
                    status = RunStatus.RETRACTED
                    break
        except CycleLimitError as e:
            status, error = RunStatus.CYCLE_LIMIT, e
        except RunCancelledError as e:
            status, error = RunStatus.CANCELLED, e
        except Exception as e:
            status, error = RunStatus.FAILED, e

        if error is not None:
            log.error("Run of '%s' stopped: %s", self.rule_set.name, error)
        else:
            log.info(
                "Run of '%s' finished (%s) after %d cycle(s), %d firing(s)",
                self.rule_set.name, status.value, cycles, len(fired),
            )
        run_log = logger.finish(status.value)
        return RunResult(
            cycles_run=cycles,
            fired_rules=fired,
            status=status,
            error=error,
            demoted_rules=demoted,
            run_log=run_log,
        )

    def _check_cancel(self, cycle: int) -> None:
        if self.cancel is not None and self.cancel():
            raise RunCancelledError(cycle)

    def _matches(self, rule: RuleEntry, logger: RunLogger, demoted: list[str]) -> bool:
        """Evaluate a condition; demote the rule if evaluation fails."""
        ctx = EvalContext(self.data_context, rule.name)
        logger.start(rule.name, Phase.WHEN)
        try:
            value = self.evaluator.evaluate_when(rule, ctx)
        except EvaluationError as e:
            self._demote(rule, e, logger, demoted)
            return False
        except GroolError:
            raise
        except Exception as e:
            # raised by a custom binder outside ReflectionBinder's wrapping
            error = HostCallError(
                f"{type(e).__name__}: {e}", rule_name=rule.name, node_path="when.expr"
            )
            error.__cause__ = e
            self._demote(rule, error, logger, demoted)
            return False

        matched = value.payload is True
        logger.record(rule.name, Phase.WHEN, RuleStatus.MATCHED if matched else RuleStatus.UNMATCHED)
        return matched

    def _demote(
        self, rule: RuleEntry, error: EvaluationError, logger: RunLogger, demoted: list[str]
    ) -> None:
        log.warning("Demoting rule '%s': %s", rule.name, error)
        logger.record(rule.name, Phase.WHEN, RuleStatus.DEMOTED, error=str(error))
        demoted.append(rule.name)

    def _fire(self, rule: RuleEntry, logger: RunLogger) -> None:
        ctx = EvalContext(self.data_context, rule.name)
        log.debug("Firing rule '%s'", rule.name)
        logger.start(rule.name, Phase.THEN)
        try:
            self.evaluator.execute_then(rule, ctx)
        except Exception as e:
            logger.record(rule.name, Phase.THEN, RuleStatus.FAILED, error=str(e))
            raise
        logger.record(rule.name, Phase.THEN, RuleStatus.FIRED)
