"""Tokenizer for Kiln template expressions.

Template text is split into a flat list of tokens: runs of literal text and
``~{ ... }`` expressions. Every token records its offsets into the original
source, so a block can later be compiled as a range of token indices
without cutting substrings or re-lexing them.

Expression grammar:
    ``~{`` is followed by an identifier or keyword (``if``, ``for``, ``end``),
    then zero or more arguments (bare identifiers or double-quoted strings,
    optionally comma-separated), then ``}``. Arguments may be wrapped in
    parentheses.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from .errors import TemplateError

OPEN_MARKER = "~{"

_WHITESPACE_RE = re.compile(r"[ \t\n\r\f]*")
_IDENTIFIER_RE = re.compile(r"[a-zA-Z][a-zA-Z0-9_.]*")
_STRING_RE = re.compile(r'"((?:[^"\\]|\\.)*)"', re.DOTALL)
_ESCAPE_RE = re.compile(r"\\(.)", re.DOTALL)
_ESCAPES = {'"': '"', "n": "\n", "t": "\t", "\\": "\\"}


class ExpressionKind(Enum):
    IDENTIFIER = "identifier"
    FUNCTION_CALL = "function_call"
    IF_BLOCK = "if"
    FOR_BLOCK = "for"
    END_BLOCK = "end"


@dataclass(frozen=True)
class Expression:
    """A parsed ``~{ ... }`` expression.

    Attributes:
        kind: Which form of expression this is.
        name: Identifier name, function name, or if-condition identifier.
        args: Function call arguments (strings already unescaped).
        negated: Whether an if-condition was written as ``!name``.
        variable: Loop variable of a for-block.
    """

    kind: ExpressionKind
    name: str = ""
    args: tuple[str, ...] = ()
    negated: bool = False
    variable: str = ""

    @property
    def opens_block(self) -> bool:
        return self.kind in (ExpressionKind.IF_BLOCK, ExpressionKind.FOR_BLOCK)


@dataclass(frozen=True)
class Token:
    """A literal text run (``expression is None``) or an expression.

    ``start``/``end`` are offsets into the tokenized source.
    """

    start: int
    end: int
    expression: Expression | None = field(default=None)

    @property
    def is_text(self) -> bool:
        return self.expression is None


def _unescape(raw: str) -> str:
    return _ESCAPE_RE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(0)), raw)


class _ExpressionScanner:
    """Cursor over the inside of a single ``~{ ... }`` expression."""

    def __init__(self, source: str, position: int):
        self.source = source
        self.position = position

    def skip_whitespace(self) -> None:
        self.position = _WHITESPACE_RE.match(self.source, self.position).end()

    def peek(self) -> str:
        self.skip_whitespace()
        return self.source[self.position : self.position + 1]

    def take(self, char: str) -> bool:
        if self.peek() == char:
            self.position += 1
            return True
        return False

    def identifier(self) -> str | None:
        self.skip_whitespace()
        match = _IDENTIFIER_RE.match(self.source, self.position)
        if not match:
            return None
        self.position = match.end()
        return match.group(0)

    def string(self) -> str | None:
        self.skip_whitespace()
        match = _STRING_RE.match(self.source, self.position)
        if not match:
            return None
        self.position = match.end()
        return _unescape(match.group(1))

    def expect_close(self) -> None:
        if not self.take("}"):
            got = self.source[self.position : self.position + 10] or "end of input"
            raise TemplateError(
                f"template parse error: expected closing brace `}}`; got {got}"
            )

    def error(self, message: str) -> TemplateError:
        return TemplateError(f"template parse error: {message}")


def _parse_expression(scanner: _ExpressionScanner) -> Expression:
    keyword = scanner.identifier()
    if keyword is None:
        raise scanner.error("template expression must start with an identifier")

    if keyword == "if":
        negated = scanner.take("!")
        name = scanner.identifier()
        if name is None:
            raise scanner.error(
                "expected identifier after negation"
                if negated
                else "expected identifier or negation after if"
            )
        scanner.expect_close()
        return Expression(ExpressionKind.IF_BLOCK, name=name, negated=negated)

    if keyword == "for":
        variable = scanner.identifier()
        if variable is None:
            raise scanner.error("expected identifier after for")
        if scanner.identifier() != "in":
            raise scanner.error("expected 'in' after loop variable")
        iterable = scanner.identifier()
        if iterable is None:
            raise scanner.error("expected identifier after 'in'")
        scanner.expect_close()
        return Expression(ExpressionKind.FOR_BLOCK, name=iterable, variable=variable)

    if keyword == "end":
        scanner.expect_close()
        return Expression(ExpressionKind.END_BLOCK, name="end")

    if scanner.take("}"):
        return Expression(ExpressionKind.IDENTIFIER, name=keyword)

    parenthesized = scanner.take("(")
    args: list[str] = []
    while True:
        if parenthesized and scanner.take(")"):
            break
        if not parenthesized and scanner.peek() == "}":
            break
        value = scanner.string()
        if value is None:
            value = scanner.identifier()
        if value is None:
            raise scanner.error(
                f"unexpected token in arguments of {keyword}: "
                f"{scanner.source[scanner.position : scanner.position + 10] or 'end of input'}"
            )
        args.append(value)
        scanner.take(",")
    scanner.expect_close()
    return Expression(ExpressionKind.FUNCTION_CALL, name=keyword, args=tuple(args))


def tokenize(source: str) -> list[Token]:
    """Split ``source`` into text and expression tokens.

    Raises:
        TemplateError: If a ``~{`` does not start a well-formed expression.
    """
    tokens: list[Token] = []
    position = 0
    while position < len(source):
        opening = source.find(OPEN_MARKER, position)
        if opening < 0:
            tokens.append(Token(position, len(source)))
            break
        if opening > position:
            tokens.append(Token(position, opening))
        scanner = _ExpressionScanner(source, opening + len(OPEN_MARKER))
        expression = _parse_expression(scanner)
        tokens.append(Token(opening, scanner.position, expression))
        position = scanner.position
    return tokens
