"""Tests for grool.logging: run log records and rendering."""

import json

from grool.logging import Phase, RuleStatus, RunLogger


def _sample_log():
    logger = RunLogger("pricing")
    logger.start_cycle(1)
    logger.start("Discount", Phase.WHEN)
    logger.record("Discount", Phase.WHEN, RuleStatus.MATCHED)
    logger.start("Broken", Phase.WHEN)
    logger.record("Broken", Phase.WHEN, RuleStatus.DEMOTED, error="UnknownRoot: unknown root 'x'")
    logger.start("Discount", Phase.THEN)
    logger.record("Discount", Phase.THEN, RuleStatus.FIRED)
    logger.start_cycle(2)
    logger.record("Discount", Phase.WHEN, RuleStatus.UNMATCHED)
    return logger.finish("fixpoint")


class TestRunLog:

    def test_totals(self):
        run = _sample_log()
        assert run.cycles == 2
        assert run.fired == ["Discount"]
        assert run.error_count == 1
        assert run.errors == ["Broken: UnknownRoot: unknown root 'x'"]
        assert run.total_duration_ms >= 0

    def test_entry_cycles(self):
        run = _sample_log()
        assert [e.cycle for e in run.entries] == [1, 1, 1, 2]
        assert run.entries[0].duration_ms is not None
        assert run.entries[-1].duration_ms is None

    def test_to_dict(self):
        data = _sample_log().to_dict()
        assert data["rule_set_name"] == "pricing"
        assert data["status"] == "fixpoint"
        assert data["entries"][1]["status"] == "demoted"
        assert data["entries"][1]["phase"] == "when"
        assert "error" not in data["entries"][0]
        assert "total_duration_ms" in data

    def test_to_json(self):
        run = _sample_log()
        assert json.loads(run.to_json()) == json.loads(run.to_json(pretty=True))

    def test_summary_skips_plain_evaluations(self):
        summary = _sample_log().summary()
        assert summary.splitlines()[0] == "Rules: pricing [fixpoint]"
        assert "Discount (fired)" in summary
        assert "Broken (demoted)" in summary
        assert "unmatched" not in summary

    def test_running_log(self):
        logger = RunLogger("r")
        assert logger.run.total_duration_ms is None
        assert "Duration: running" in logger.run.summary()
