"""Template expression compiler for Kiln.

Compiles ``~{ ... }`` expressions embedded in text assets against a build
Context. Supported forms:

- ``~{ name }`` interpolates a value. Unbound names are echoed back as
  ``~{ name }~`` so they stay visible in the output.
- ``~{ if name }`` / ``~{ if !name }`` ... ``~{ end }`` renders its body only
  when the condition holds. A name is falsy when unbound or bound to
  ``"false"`` or ``"0"``.
- ``~{ for ... }`` and function calls are recognized but not implemented.

Key classes:
- TemplateCompiler: Evaluates a token list over a range of token indices.
"""

from __future__ import annotations

from .context import Context, ContextValue
from .errors import TemplateError
from .tokenizer import Expression, ExpressionKind, Token, tokenize

FALSY_VALUES = frozenset({"false", "0"})


def is_truthy(value: ContextValue | None) -> bool:
    """Return whether a context value counts as true in an ``if`` block."""
    if value is None:
        return False
    if isinstance(value, str):
        return value not in FALSY_VALUES
    return True


def render_value(value: ContextValue) -> str | None:
    """Render a context value for interpolation, or None if it can't be."""
    if isinstance(value, str):
        return value
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return "[" + ", ".join(value) + "]"
    return None


class TemplateCompiler:
    """Compiles one template source against a Context.

    Blocks are compiled as ranges of indices into a single token list, so the
    body of an ``if`` is never re-tokenized.
    """

    def __init__(self, source: str, context: Context):
        self.source = source
        self.context = context
        self.tokens: list[Token] = tokenize(source)

    def compile(self) -> str:
        output: list[str] = []
        self._compile_range(0, len(self.tokens), output)
        return "".join(output)

    def _compile_range(self, start: int, stop: int, output: list[str]) -> None:
        index = start
        while index < stop:
            token = self.tokens[index]
            expression = token.expression
            if expression is None:
                output.append(self.source[token.start : token.end])
                index += 1
                continue

            kind = expression.kind
            if kind is ExpressionKind.IDENTIFIER:
                output.append(self._interpolate(expression.name))
                index += 1
            elif kind is ExpressionKind.IF_BLOCK:
                end = self._find_block_end(index, stop)
                if self._condition(expression):
                    self._compile_range(index + 1, end, output)
                index = end + 1
            elif kind is ExpressionKind.FOR_BLOCK:
                raise TemplateError("not implemented: for blocks")
            elif kind is ExpressionKind.END_BLOCK:
                raise TemplateError("unexpected end-of-block")
            else:
                raise TemplateError(f"not implemented: function {expression.name}")

    def _find_block_end(self, opener: int, stop: int) -> int:
        """Return the index of the ``end`` token matching the block at ``opener``.

        Raises:
            TemplateError: If the block isn't closed before ``stop``.
        """
        depth = 0
        for index in range(opener + 1, stop):
            expression = self.tokens[index].expression
            if expression is None:
                continue
            if expression.opens_block:
                depth += 1
            elif expression.kind is ExpressionKind.END_BLOCK:
                if depth == 0:
                    return index
                depth -= 1
        dangling_end = self.tokens[stop - 1].end
        dangling = self.source[self.tokens[opener].start : dangling_end]
        raise TemplateError(f"template contained an unclosed block: {dangling}")

    def _condition(self, expression: Expression) -> bool:
        truthy = is_truthy(self.context.resolve(expression.name))
        return not truthy if expression.negated else truthy

    def _interpolate(self, name: str) -> str:
        value = self.context.resolve(name)
        rendered = render_value(value) if value is not None else None
        if rendered is None:
            return f"~{{ {name} }}~"
        return rendered


def compile_template(source: str, context: Context) -> str:
    """Compile template ``source`` against ``context``.

    Args:
        source: Template text.
        context: Values available to expressions.

    Returns:
        The compiled text.

    Raises:
        TemplateError: On malformed expressions, unbalanced blocks, or
            unimplemented constructs.
    """
    return TemplateCompiler(source, context).compile()
