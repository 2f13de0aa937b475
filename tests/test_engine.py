"""Tests for grool.engine: the forward-chaining cycle driver."""

import datetime
import json
import threading
from dataclasses import dataclass
from typing import Optional

import pytest

from grool.context import DataContext, ReflectionBinder
from grool.engine import DEFAULT_MAX_CYCLES, Engine, RunStatus
from grool.errors import (
    CycleLimitError,
    DivideByZeroError,
    DuplicateRuleError,
    HostCallError,
    RunCancelledError,
)
from grool.logging import Phase, RuleStatus
from grool.parser import build, parse
from grool.values import Int32


@dataclass
class User:
    Age: Int32 = 0
    Adult: bool = False


@dataclass
class Gate:
    Open: bool = True
    LowFired: bool = False
    HighFired: bool = False


@dataclass
class Order:
    CreatedAt: Optional[datetime.datetime] = None
    Expired: bool = False


@dataclass
class Clock:
    Now: Optional[datetime.datetime] = None


def _run(source, **roots):
    data_context = DataContext()
    for name, obj in roots.items():
        data_context.add(name, obj)
    return Engine(parse(source), data_context).run()


class TestScenarios:

    def test_single_firing(self, adult_source):
        user = User(Age=20)
        result = _run(adult_source + "\n" + '''
rule "AdultStop" salience 1 when user.Adult == true then Engine.Retract = true; end
''', user=user)
        assert result.status is RunStatus.RETRACTED
        assert user.Adult is True
        assert result.fired_rules == ["AdultCheck", "AdultStop"]

    def test_single_cycle_when_nothing_matches(self, adult_source):
        user = User(Age=17)
        result = _run(adult_source, user=user)
        assert result.status is RunStatus.FIXPOINT
        assert result.cycles_run == 1
        assert result.fired_rules == []
        assert user.Adult is False

    def test_counter_fixpoint(self, counter_source):
        facts = {"n": 0}
        result = _run(counter_source, ctx=facts)
        assert result.status is RunStatus.FIXPOINT
        assert facts["n"] == 3
        assert result.cycles_run == 4
        assert result.fired_rules == ["Increment"] * 3

    def test_salience_order(self, salience_source):
        gate = Gate()
        result = _run(salience_source, gate=gate)
        assert result.fired_rules == ["RHigh"]
        assert gate.HighFired is True
        assert gate.LowFired is False
        assert result.cycles_run == 2

    def test_ties_go_to_source_order(self):
        src = '''
rule First when g.Open == true then g.Open = false; g.LowFired = true; end
rule Second when g.Open == true then g.Open = false; g.HighFired = true; end
'''
        gate = Gate()
        result = _run(src, g=gate)
        assert result.fired_rules == ["First"]
        assert gate.LowFired is True

    def test_duplicate_rule_name(self):
        src = '''
rule Dup when true then x.y = 1; end
rule Dup when true then x.y = 2; end
'''
        rule_set, errors = build(src)
        assert len(errors) == 1
        assert isinstance(errors[0], DuplicateRuleError)
        assert rule_set.names() == ["Dup"]

    @pytest.mark.parametrize("created, now, fires", [
        (datetime.datetime(2020, 1, 1), datetime.datetime(2020, 1, 2), True),
        (datetime.datetime(2020, 1, 2), datetime.datetime(2020, 1, 1), False),
    ])
    def test_time_comparison(self, created, now, fires):
        order = Order(CreatedAt=created)
        src = '''
rule Expire "expire old orders"
when
    order.Expired == false && order.CreatedAt < now.Now
then
    order.Expired = true;
end
'''
        result = _run(src, order=order, now=Clock(Now=now))
        assert result.status is RunStatus.FIXPOINT
        assert order.Expired is fires
        assert result.fired_rules == (["Expire"] if fires else [])

    def test_null_guard_short_circuits(self):
        src = '''
rule Adult when user != null && user.Age > 18 then user.Adult = true; end
'''
        data_context = DataContext()
        data_context.add("user", None)
        result = Engine(parse(src), data_context).run()
        assert result.status is RunStatus.FIXPOINT
        assert result.error is None
        assert result.demoted_rules == []
        assert result.cycles_run == 1


class TestTermination:

    def test_default_max_cycles(self):
        assert DEFAULT_MAX_CYCLES == 5000

    def test_cycle_limit(self):
        facts = {"n": 0}
        src = "rule Forever when true then f.n = f.n + 1; end"
        data_context = DataContext()
        data_context.add("f", facts)
        result = Engine(parse(src), data_context, max_cycles=10).run()
        assert result.status is RunStatus.CYCLE_LIMIT
        assert isinstance(result.error, CycleLimitError)
        assert result.cycles_run == 10
        assert facts["n"] == 10
        assert result.exit_code == 3

    def test_invalid_max_cycles(self):
        with pytest.raises(ValueError):
            Engine(parse(""), DataContext(), max_cycles=0)

    def test_retract(self):
        facts = {"n": 0}
        src = '''
rule Count when f.n < 100 then f.n = f.n + 1; end
rule Stop salience 5 when f.n >= 2 then Engine.Retract = true; end
'''
        result = _run(src, f=facts)
        assert result.status is RunStatus.RETRACTED
        assert result.retracted
        assert result.error is None
        assert result.exit_code == 0
        assert facts["n"] == 2
        assert result.fired_rules == ["Count", "Count", "Stop"]

    def test_retract_reset_between_runs(self):
        src = "rule Stop when true then Engine.Retract = true; end"
        data_context = DataContext()
        engine = Engine(parse(src), data_context)
        assert engine.run().retracted
        second = engine.run()
        assert second.retracted
        assert second.fired_rules == ["Stop"]

    def test_cancel_before_start(self):
        result = Engine(
            parse("rule R when true then Engine.Retract = true; end"),
            DataContext(),
            cancel=lambda: True,
        ).run()
        assert result.status is RunStatus.CANCELLED
        assert isinstance(result.error, RunCancelledError)
        assert result.fired_rules == []
        assert result.exit_code == 4

    def test_cancel_with_event(self):
        event = threading.Event()
        facts = {"n": 0}

        def bump(n: int) -> int:
            if n >= 4:
                event.set()
            return n + 1

        data_context = DataContext()
        data_context.add("f", facts)
        data_context.add("Bump", bump)
        src = "rule Loop when true then f.n = Bump(f.n); end"
        result = Engine(parse(src), data_context, cancel=event.is_set).run()
        assert result.status is RunStatus.CANCELLED
        assert facts["n"] == 5
        assert result.cycles_run == 6


class TestErrors:

    def test_when_error_demotes_rule(self):
        facts = {"n": 0}
        src = '''
rule Broken salience 10 when missing.Value > 1 then f.n = 100; end
rule Count when f.n < 2 then f.n = f.n + 1; end
'''
        result = _run(src, f=facts)
        assert result.status is RunStatus.FIXPOINT
        assert result.demoted_rules == ["Broken"]
        assert facts["n"] == 2
        demotions = [
            e for e in result.run_log.entries if e.status is RuleStatus.DEMOTED
        ]
        assert len(demotions) == 1
        assert "UnknownRoot" in demotions[0].error

    def test_non_bool_condition_demotes(self):
        result = _run("rule Numeric when 1 + 1 then x.y = 1; end")
        assert result.demoted_rules == ["Numeric"]
        assert result.fired_rules == []

    def test_then_error_aborts_run(self):
        facts = {"n": 0}
        src = '''
rule Divide when f.n == 0 then f.n = 1; f.n = 10 / 0; end
rule Never salience -1 when true then f.n = 99; end
'''
        result = _run(src, f=facts)
        assert result.status is RunStatus.FAILED
        assert isinstance(result.error, DivideByZeroError)
        assert result.error.rule_name == "Divide"
        assert result.error.node_path == "then.assign[1].source"
        assert result.exit_code == 2
        # earlier statements are not rolled back
        assert facts["n"] == 1
        assert result.fired_rules == []

    def test_host_exception_in_when_demotes_rule(self):
        class Checker:
            def Check(self, n):
                raise ValueError(f"bad input {n}")

        facts = {"n": 0}
        src = '''
rule Bad salience 5 when svc.Check(1) then f.n = 100; end
rule Good when f.n < 2 then f.n = f.n + 1; end
'''
        result = _run(src, svc=Checker(), f=facts)
        assert result.status is RunStatus.FIXPOINT
        assert result.demoted_rules == ["Bad"]
        assert facts["n"] == 2
        demotion = next(
            e for e in result.run_log.entries if e.status is RuleStatus.DEMOTED
        )
        assert "HostError" in demotion.error
        assert "ValueError" in demotion.error

    def test_custom_binder_exception_demotes_rule(self):
        class FlakyBinder(ReflectionBinder):
            def get_field(self, obj, name):
                if name == "Flaky":
                    raise RuntimeError("sensor offline")
                return super().get_field(obj, name)

        facts = {"n": 0, "Flaky": 1}
        data_context = DataContext(binder=FlakyBinder())
        data_context.add("f", facts)
        src = '''
rule Reader salience 5 when f.Flaky > 0 then f.n = 100; end
rule Good when f.n < 1 then f.n = f.n + 1; end
'''
        result = Engine(parse(src), data_context).run()
        assert result.status is RunStatus.FIXPOINT
        assert result.demoted_rules == ["Reader"]
        assert facts["n"] == 1

    def test_host_exception_in_then_aborts_run(self):
        def explode():
            raise RuntimeError("boom")

        data_context = DataContext()
        data_context.add("Explode", explode)
        data_context.add("f", {"n": 0})
        result = Engine(
            parse("rule R when true then f.n = Explode(); end"), data_context
        ).run()
        assert result.status is RunStatus.FAILED
        assert isinstance(result.error, HostCallError)
        assert isinstance(result.error.__cause__, RuntimeError)
        assert result.error.node_path == "then.assign[0].source"
        assert result.exit_code == 2


class TestRunLog:

    def test_log_records_cycles(self, counter_source):
        result = _run(counter_source, ctx={"n": 0})
        log = result.run_log
        assert log.cycles == 4
        assert log.status == "fixpoint"
        assert log.fired == ["Increment"] * 3
        phases = [(e.cycle, e.phase, e.status) for e in log.entries]
        assert phases[:2] == [
            (1, Phase.WHEN, RuleStatus.MATCHED),
            (1, Phase.THEN, RuleStatus.FIRED),
        ]
        assert phases[-1] == (4, Phase.WHEN, RuleStatus.UNMATCHED)

    def test_summary(self, counter_source):
        result = _run(counter_source, ctx={"n": 0})
        summary = result.summary()
        assert "Rules: rules [fixpoint]" in summary
        assert "Cycles: 4, fired: 3" in summary

    def test_json(self, counter_source):
        result = _run(counter_source, ctx={"n": 0})
        data = json.loads(result.run_log.to_json())
        assert data["status"] == "fixpoint"
        assert data["cycles"] == 4
        assert len(data["fired"]) == 3
