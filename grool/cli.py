"""CLI for grool: run, validate, inspect and format rule files."""

from __future__ import annotations

import argparse
import logging
import sys
import time

from .engine import DEFAULT_MAX_CYCLES, Engine
from .errors import GroolError
from .facts import context_from_facts, dump_facts, load_facts
from .formatter import Formatter
from .parser import build

EXIT_OK = 0
EXIT_BUILD_ERROR = 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="grool",
        description="Forward-chaining business rules engine",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity")
    sub = parser.add_subparsers(dest="command")

    # run
    run_p = sub.add_parser("run", help="Run rules against fact files")
    run_p.add_argument("file", help="Input rule file")
    run_p.add_argument("--facts", action="append", default=[], help="YAML/JSON fact file (repeatable)")
    run_p.add_argument("--max-cycles", type=int, default=DEFAULT_MAX_CYCLES, help="Maximum number of cycles")
    run_p.add_argument("--timeout", type=float, default=None, help="Cancel the run after this many seconds")
    run_p.add_argument("--log-json", action="store_true", help="Print the run log as JSON")
    run_p.add_argument("--show-facts", action="store_true", help="Print facts after the run")

    # validate
    validate_p = sub.add_parser("validate", help="Build rules and report errors")
    validate_p.add_argument("file", help="Input rule file")

    # ast
    ast_p = sub.add_parser("ast", help="Show the built AST (debug)")
    ast_p.add_argument("file", help="Input rule file")

    # fmt
    fmt_p = sub.add_parser("fmt", help="Print rules in canonical form")
    fmt_p.add_argument("file", help="Input rule file")

    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if not args.command:
        parser.print_help()
        return 1

    try:
        source = _read_file(args.file)
        if args.command == "run":
            return _cmd_run(
                source,
                name=args.file,
                fact_files=args.facts,
                max_cycles=args.max_cycles,
                timeout=args.timeout,
                log_json=args.log_json,
                show_facts=args.show_facts,
            )
        elif args.command == "validate":
            return _cmd_validate(source, name=args.file)
        elif args.command == "ast":
            return _cmd_ast(source, name=args.file)
        elif args.command == "fmt":
            return _cmd_fmt(source, name=args.file)
    except FileNotFoundError as e:
        print(f"Error: file not found: {e.filename}", file=sys.stderr)
        return 1
    except GroolError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _read_file(path: str) -> str:
    with open(path, encoding="utf-8") as f:
        return f.read()


def _build_or_report(source: str, name: str):
    rule_set, errors = build(source, name=name)
    if errors:
        for e in errors:
            print(f"Build error: {e}", file=sys.stderr)
        return None
    return rule_set


def _cmd_run(
    source: str,
    name: str,
    fact_files: list[str],
    max_cycles: int = DEFAULT_MAX_CYCLES,
    timeout: float | None = None,
    log_json: bool = False,
    show_facts: bool = False,
) -> int:
    if max_cycles < 1:
        print(f"Error: --max-cycles must be at least 1, got {max_cycles}", file=sys.stderr)
        return EXIT_BUILD_ERROR

    rule_set = _build_or_report(source, name)
    if rule_set is None:
        return EXIT_BUILD_ERROR

    data_context = context_from_facts({})
    for path in fact_files:
        context_from_facts(load_facts(path), data_context)

    cancel = None
    if timeout is not None:
        deadline = time.monotonic() + timeout
        cancel = lambda: time.monotonic() >= deadline  # noqa: E731

    engine = Engine(rule_set, data_context, max_cycles=max_cycles, cancel=cancel)
    result = engine.run()

    if log_json:
        print(result.run_log.to_json(pretty=True))
    else:
        print(result.summary())
    if show_facts:
        print(dump_facts(data_context))
    if result.error is not None:
        print(f"Error: {result.error}", file=sys.stderr)
    return result.exit_code


def _cmd_validate(source: str, name: str) -> int:
    rule_set = _build_or_report(source, name)
    if rule_set is None:
        return EXIT_BUILD_ERROR
    print(f"Valid: {len(rule_set)} rules")
    return 0


def _cmd_ast(source: str, name: str) -> int:
    rule_set = _build_or_report(source, name)
    if rule_set is None:
        return EXIT_BUILD_ERROR
    _print_ast(rule_set)
    return 0


def _print_ast(rule_set) -> None:
    formatter = Formatter()
    print(f"RuleSet: {rule_set.name!r}")
    for rule in rule_set.by_priority():
        print(f"\n  {rule.name} (salience {rule.salience}, order {rule.order})")
        if rule.description:
            print(f"    description: {rule.description!r}")
        print(f"    when {formatter.format_expression(rule.when.expression)}")
        for expr in rule.then.assign_expressions.expressions:
            print(f"    then {formatter.format_assignment(expr.assignment)}")


def _cmd_fmt(source: str, name: str) -> int:
    rule_set = _build_or_report(source, name)
    if rule_set is None:
        return EXIT_BUILD_ERROR
    print(Formatter().format(rule_set), end="")
    return 0


if __name__ == "__main__":
    sys.exit(main())
