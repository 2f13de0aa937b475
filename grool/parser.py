"""Lark-based front end: rule text -> parse tree -> builder events -> RuleSet."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path as FilePath
from typing import Any

from lark import Lark, Token, Tree
from lark.exceptions import UnexpectedEOF, UnexpectedInput

from .ast_nodes import RuleSet
from .builder import RuleBuilder
from .errors import GroolError, ParseError

# ---------------------------------------------------------------------------
# Grammar loading (cached)
# ---------------------------------------------------------------------------

_GRAMMAR_PATH = FilePath(__file__).parent / "grammar.lark"
_lark_parser: Lark | None = None


def _get_parser() -> Lark:
    global _lark_parser
    if _lark_parser is None:
        grammar_text = _GRAMMAR_PATH.read_text(encoding="utf-8")
        _lark_parser = Lark(
            grammar_text,
            parser="earley",
            propagate_positions=True,
        )
    return _lark_parser


# ---------------------------------------------------------------------------
# Tree walker: Lark parse tree -> enter/exit listener events
# ---------------------------------------------------------------------------

@dataclass
class ParseContext:
    """What a listener sees of one grammar production."""
    production: str
    text: str
    line: int | None = None
    column: int | None = None
    tokens: list[Token] = field(default_factory=list)

    def token(self, token_type: str) -> Token | None:
        """First direct token of the given type, if any."""
        for tok in self.tokens:
            if tok.type == token_type:
                return tok
        return None

    def has(self, token_type: str) -> bool:
        return self.token(token_type) is not None


class RuleTreeWalker:
    """Replays a parse tree as ``enter_<rule>`` / ``exit_<rule>`` calls.

    Enter and exit are always matched in LIFO order. Productions the
    listener has no handler for are walked through silently.
    """

    def __init__(self, source: str):
        self.source = source

    def walk(self, tree: Tree, listener: Any) -> None:
        name = str(tree.data)
        ctx = self._context(name, tree)
        enter = getattr(listener, f"enter_{name}", None)
        if enter is not None:
            enter(ctx)
        for child in tree.children:
            if isinstance(child, Tree):
                self.walk(child, listener)
        exit_ = getattr(listener, f"exit_{name}", None)
        if exit_ is not None:
            exit_(ctx)

    def _context(self, name: str, tree: Tree) -> ParseContext:
        meta = tree.meta
        if meta.empty:
            text, line, column = "", None, None
        else:
            text = self.source[meta.start_pos:meta.end_pos]
            line, column = meta.line, meta.column
        tokens = [c for c in tree.children if isinstance(c, Token)]
        return ParseContext(production=name, text=text, line=line, column=column, tokens=tokens)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build(source: str, name: str = "rules") -> tuple[RuleSet, list[GroolError]]:
    """Build a RuleSet from rule text.

    Never raises for bad input: syntax errors and build errors are
    returned in the error list. Rules after the first error are dropped.
    """
    try:
        tree = _get_parser().parse(source)
    except UnexpectedInput as e:
        line = getattr(e, "line", None)
        column = getattr(e, "column", None)
        error = ParseError(
            message=_syntax_message(e),
            line=line if line and line > 0 else None,
            column=column if column and column > 0 else None,
        )
        return RuleSet(name), [error]

    builder = RuleBuilder(name)
    RuleTreeWalker(source).walk(tree, builder)
    return builder.finish()


def parse(source: str, name: str = "rules") -> RuleSet:
    """Build a RuleSet from rule text, raising the first error."""
    rule_set, errors = build(source, name)
    if errors:
        raise errors[0]
    return rule_set


def _syntax_message(e: UnexpectedInput) -> str:
    expected = getattr(e, "expected", None) or getattr(e, "allowed", None)
    token = getattr(e, "token", None)
    if isinstance(e, UnexpectedEOF):
        msg = "unexpected end of input"
    elif token is not None:
        msg = f"unexpected token {str(token)!r}"
    else:
        char = getattr(e, "char", None)
        msg = f"unexpected input {char!r}" if char else "unexpected input"
    if expected:
        msg += f", expected one of: {', '.join(sorted(str(x) for x in expected))}"
    return msg
