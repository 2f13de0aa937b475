"""Shared fixtures for grool tests."""

import pytest

from grool.context import DataContext
from grool.evaluator import EvalContext, Evaluator
from grool.parser import parse


@pytest.fixture
def evaluator():
    return Evaluator()


@pytest.fixture
def data_context():
    return DataContext()


# ---------------------------------------------------------------------------
# Sample rule sources
# ---------------------------------------------------------------------------

ADULT_RULES = '''
rule "AdultCheck" "Mark adults"
when
    user.Age >= 18
then
    user.Adult = true;
end
'''

COUNTER_RULES = '''
rule Increment "Count up to three"
when
    ctx.n < 3
then
    ctx.n = ctx.n + 1;
end
'''

SALIENCE_RULES = '''
// the high-salience rule closes the gate before the other can fire
rule "RLow" "low priority" salience 1
when
    gate.Open == true
then
    gate.LowFired = true;
end

rule "RHigh" "high priority" salience 10
when
    gate.Open == true
then
    gate.Open = false;
    gate.HighFired = true;
end
'''


@pytest.fixture
def adult_source():
    return ADULT_RULES


@pytest.fixture
def counter_source():
    return COUNTER_RULES


@pytest.fixture
def salience_source():
    return SALIENCE_RULES


@pytest.fixture
def condition():
    """Evaluate a bare condition against a data context."""
    def _evaluate(text, data_context, evaluator=None):
        rule_set = parse(f"rule Sample when {text} then Engine.Retract = true; end")
        rule = rule_set["Sample"]
        ev = evaluator or Evaluator()
        return ev.evaluate_when(rule, EvalContext(data_context, rule.name))
    return _evaluate


@pytest.fixture
def atom():
    """Evaluate a bare arithmetic expression against a data context."""
    def _evaluate(text, data_context, evaluator=None):
        rule_set = parse(f"rule Sample when true then Engine.Retract = {text}; end")
        source = rule_set["Sample"].then.assign_expressions.expressions[0].assignment.source
        ev = evaluator or Evaluator()
        return ev.evaluate(source, EvalContext(data_context, "Sample"), "then.assign[0].source")
    return _evaluate
