"""Tests for grool.facts."""

import datetime
import json

import pytest

from grool.context import DataContext
from grool.facts import (
    FactsError,
    context_from_facts,
    dump_facts,
    load_facts,
    parse_facts,
)


class TestParseFacts:

    def test_yaml(self):
        facts = parse_facts("user:\n  Age: 17\n  Adult: false\n")
        assert facts == {"user": {"Age": 17, "Adult": False}}

    def test_yaml_timestamp(self):
        facts = parse_facts("order:\n  CreatedAt: 2020-01-01T10:30:00\n")
        assert facts["order"]["CreatedAt"] == datetime.datetime(2020, 1, 1, 10, 30)

    def test_yaml_bare_date_promoted(self):
        facts = parse_facts("order:\n  CreatedAt: 2020-01-01\n")
        assert facts["order"]["CreatedAt"] == datetime.datetime(2020, 1, 1)

    def test_json(self):
        facts = parse_facts('{"ctx": {"n": 0}}', fmt="json")
        assert facts == {"ctx": {"n": 0}}

    def test_json_iso_strings(self):
        facts = parse_facts('{"order": {"CreatedAt": "2020-01-02T00:00:00Z"}}', fmt="json")
        created = facts["order"]["CreatedAt"]
        assert created == datetime.datetime(2020, 1, 2, tzinfo=datetime.timezone.utc)

    def test_json_plain_strings_untouched(self):
        facts = parse_facts('{"user": {"Name": "2020 vision"}}', fmt="json")
        assert facts["user"]["Name"] == "2020 vision"

    def test_empty_yaml(self):
        assert parse_facts("") == {}

    def test_not_a_mapping(self):
        with pytest.raises(FactsError):
            parse_facts("- 1\n- 2\n")

    def test_invalid_name(self):
        with pytest.raises(FactsError):
            parse_facts('{"not-valid": 1}', fmt="json")

    def test_engine_reserved(self):
        with pytest.raises(FactsError):
            parse_facts("Engine:\n  Retract: true\n")

    def test_invalid_json(self):
        with pytest.raises(FactsError) as exc_info:
            parse_facts('{"a": ', fmt="json")
        assert exc_info.value.line == 1

    def test_invalid_yaml(self):
        with pytest.raises(FactsError):
            parse_facts("a: [1, 2\n")


class TestLoadFacts:

    def test_by_suffix(self, tmp_path):
        json_file = tmp_path / "facts.json"
        json_file.write_text('{"ctx": {"n": 1}}', encoding="utf-8")
        yaml_file = tmp_path / "facts.yaml"
        yaml_file.write_text("ctx:\n  n: 2\n", encoding="utf-8")
        assert load_facts(json_file) == {"ctx": {"n": 1}}
        assert load_facts(str(yaml_file)) == {"ctx": {"n": 2}}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_facts(tmp_path / "nope.yaml")


class TestContextFromFacts:

    def test_roots_registered(self):
        ctx = context_from_facts({"user": {"Age": 3}})
        assert ctx.get_value("user.Age").payload == 3

    def test_existing_context(self):
        ctx = DataContext()
        same = context_from_facts({"a": 1}, ctx)
        assert same is ctx
        assert ctx.has("a")

    def test_dump_skips_engine_root(self):
        ctx = context_from_facts({"order": {"CreatedAt": datetime.datetime(2020, 1, 1)}})
        data = json.loads(dump_facts(ctx))
        assert data == {"order": {"CreatedAt": "2020-01-01T00:00:00"}}
