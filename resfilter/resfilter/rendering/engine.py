"""Template rendering engine."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from functools import lru_cache, partial
from typing import Any, Iterator, Sequence, TextIO

from jinja2 import (
    ChainableUndefined,
    Environment,
    StrictUndefined,
    Template,
    TemplateError,
    TemplateSyntaxError,
    UndefinedError,
)
from jinja2.ext import Extension
from jinja2.lexer import (
    TOKEN_ASSIGN,
    TOKEN_BLOCK_BEGIN,
    TOKEN_BLOCK_END,
    TOKEN_DOT,
    TOKEN_LPAREN,
    TOKEN_NAME,
    TOKEN_PIPE,
    TOKEN_RPAREN,
    TOKEN_STRING,
    TOKEN_VARIABLE_BEGIN,
    TOKEN_VARIABLE_END,
    Token,
    TokenStream,
)
from jinja2.utils import missing

from ..core.models import Delimiters
from ..settings import FilterSettings
from .resolver import MISSING, ExactKeyResolver, NameResolver, PathResolver, stringify

logger = logging.getLogger(__name__)

RESOLVE_FUNCTION = "_resolve_placeholder"

_LITERAL_NAMES = frozenset({"true", "false", "none", "True", "False", "None"})
_EXPRESSION_KEYWORDS = _LITERAL_NAMES | {
    "and", "or", "not", "in", "is", "if", "else", "recursive"
}


class RenderError(Exception):
    """Raised when a template cannot be compiled or executed."""

    def __init__(self, template_name: str, message: str) -> None:
        super().__init__(f"{template_name}: {message}")
        self.template_name = template_name


class UnresolvedPlaceholderError(RenderError):
    """Raised when a placeholder has no value in any scope."""

    def __init__(self, template_name: str, placeholder: str) -> None:
        super().__init__(template_name, f"unresolved placeholder '{placeholder}'")
        self.placeholder = placeholder


class _MissingPlaceholder(UndefinedError):
    def __init__(self, message: str | None = None, placeholder: str = "") -> None:
        super().__init__(message)
        self.placeholder = placeholder


class PlaceholderUndefined(StrictUndefined):
    """StrictUndefined whose failures remember the missing name."""

    __slots__ = ()

    def __init__(
        self,
        hint: str | None = None,
        obj: Any = missing,
        name: str | None = None,
        exc: type[UndefinedError] = UndefinedError,
    ) -> None:
        if exc is UndefinedError and name is not None:
            exc = partial(_MissingPlaceholder, placeholder=name)  # type: ignore[assignment]
        super().__init__(hint, obj, name, exc)


class PlaceholderExtension(Extension):
    """Route placeholders through the property resolver.

    ``${a.b.c}`` becomes ``${_resolve_placeholder("a.b.c")}`` so the full
    dotted name reaches the resolver. Hyphenated names such as
    ``${my-prop.version}`` are rewritten from the raw source, since Jinja2
    would lex them as subtraction. Unbound name chains in ``if``/``elif``,
    ``for`` and ``set`` tags are routed the same way. Names bound by enclosing
    ``for``/``with``/``macro``/``set`` tags keep Jinja2's local lookup.
    """

    def preprocess(
        self, source: str, name: str | None, filename: str | None = None
    ) -> str:
        pattern = _raw_placeholder_pattern(
            self.environment.variable_start_string,
            self.environment.variable_end_string,
        )
        return pattern.sub(_rewrite_raw_placeholder, source)

    def filter_stream(self, stream: TokenStream) -> Iterator[Token]:
        bound: list[set[str]] = [set()]
        buffer: list[Token] | None = None

        for token in stream:
            if token.type in (TOKEN_VARIABLE_BEGIN, TOKEN_BLOCK_BEGIN):
                buffer = [token]
                continue
            if buffer is None:
                yield token
                continue

            buffer.append(token)
            if token.type == TOKEN_VARIABLE_END:
                yield buffer[0]
                yield from _rewrite_expression(buffer[1:-1], bound)
                yield buffer[-1]
                buffer = None
            elif token.type == TOKEN_BLOCK_END:
                yield from _rewrite_block(buffer, bound)
                _track_bindings(buffer[1:-1], bound)
                buffer = None

        if buffer:
            yield from buffer


@lru_cache(maxsize=16)
def _raw_placeholder_pattern(start: str, end: str) -> re.Pattern[str]:
    return re.compile(
        rf"(?P<open>{re.escape(start)})\s*"
        r"(?P<name>[A-Za-z_][\w.]*(?:-[\w.]+)+)\s*"
        r"(?P<tail>\|[^\n]*?)?"
        rf"(?P<close>{re.escape(end)})"
    )


def _rewrite_raw_placeholder(match: re.Match[str]) -> str:
    call = f'{RESOLVE_FUNCTION}("{match.group("name")}")'
    tail = match.group("tail")
    if tail:
        call = f"{call} {tail}"
    return f"{match.group('open')}{call}{match.group('close')}"


def _names_until(tokens: Sequence[Token], stop: str | None) -> set[str]:
    names = set()
    for token in tokens:
        if token.type == TOKEN_NAME and token.value == stop:
            break
        if token.type == TOKEN_NAME:
            names.add(token.value)
    return names


def _track_bindings(body: Sequence[Token], bound: list[set[str]]) -> None:
    if not body or body[0].type != TOKEN_NAME:
        return
    keyword, rest = body[0].value, body[1:]

    if keyword == "for":
        bound.append(_names_until(rest, "in") | {"loop"})
    elif keyword == "with":
        bound.append(
            {
                token.value
                for token, following in zip(rest, rest[1:])
                if token.type == TOKEN_NAME and following.type == TOKEN_ASSIGN
            }
        )
    elif keyword == "macro":
        bound.append(_names_until(rest[1:], None) | {"caller", "varargs", "kwargs"})
    elif keyword == "set":
        bound[-1].update(_set_targets(rest))
    elif keyword in ("endfor", "endwith", "endmacro") and len(bound) > 1:
        bound.pop()


def _set_targets(tokens: Sequence[Token]) -> list[str]:
    targets = []
    for token in tokens:
        if token.type == TOKEN_ASSIGN:
            break
        if token.type == TOKEN_NAME:
            targets.append(token.value)
    return targets


def _name_chain(tokens: Sequence[Token], index: int) -> tuple[list[str], int]:
    segments = [tokens[index].value]
    index += 1
    while (
        index + 1 < len(tokens)
        and tokens[index].type == TOKEN_DOT
        and tokens[index + 1].type == TOKEN_NAME
    ):
        segments.append(tokens[index + 1].value)
        index += 2
    return segments, index


def _is_reference(tokens: Sequence[Token], index: int, emitted: list[Token]) -> bool:
    token = tokens[index]
    if token.type != TOKEN_NAME or token.value in _EXPRESSION_KEYWORDS:
        return False
    if not emitted:
        return True
    previous = emitted[-1]
    if previous.type in (TOKEN_DOT, TOKEN_PIPE):
        return False
    # test names: ``x is defined``, ``x is not none``
    if previous.type == TOKEN_NAME and previous.value == "is":
        return False
    if (
        previous.type == TOKEN_NAME
        and previous.value == "not"
        and len(emitted) > 1
        and emitted[-2].type == TOKEN_NAME
        and emitted[-2].value == "is"
    ):
        return False
    return True


def _rewrite_expression(tokens: Sequence[Token], bound: list[set[str]]) -> list[Token]:
    emitted: list[Token] = []
    index = 0
    while index < len(tokens):
        if not _is_reference(tokens, index, emitted):
            emitted.append(tokens[index])
            index += 1
            continue

        segments, end = _name_chain(tokens, index)
        following = tokens[end] if end < len(tokens) else None
        called = following is not None and following.type in (TOKEN_LPAREN, TOKEN_ASSIGN)
        if called or any(segments[0] in names for names in bound):
            emitted.extend(tokens[index:end])
        else:
            lineno = tokens[index].lineno
            emitted.extend(
                [
                    Token(lineno, TOKEN_NAME, RESOLVE_FUNCTION),
                    Token(lineno, TOKEN_LPAREN, "("),
                    Token(lineno, TOKEN_STRING, ".".join(segments)),
                    Token(lineno, TOKEN_RPAREN, ")"),
                ]
            )
        index = end
    return emitted


def _rewrite_block(buffer: list[Token], bound: list[set[str]]) -> list[Token]:
    begin, body, end = buffer[0], buffer[1:-1], buffer[-1]
    if not body or body[0].type != TOKEN_NAME:
        return buffer
    keyword = body[0].value

    if keyword in ("if", "elif"):
        return [begin, body[0], *_rewrite_expression(body[1:], bound), end]
    if keyword == "for":
        split = next(
            (
                i
                for i, token in enumerate(body)
                if token.type == TOKEN_NAME and token.value == "in"
            ),
            None,
        )
        if split is None:
            return buffer
        loop_names = _names_until(body[1:split], None) | {"loop"}
        return [
            begin,
            *body[: split + 1],
            *_rewrite_expression(body[split + 1 :], [*bound, loop_names]),
            end,
        ]
    if keyword == "set":
        split = next(
            (i for i, token in enumerate(body) if token.type == TOKEN_ASSIGN), None
        )
        if split is None:
            return buffer
        return [
            begin,
            *body[: split + 1],
            *_rewrite_expression(body[split + 1 :], bound),
            end,
        ]
    return buffer


def _detect_newline(text: str) -> str:
    for index, char in enumerate(text):
        if char == "\n":
            return "\n"
        if char == "\r":
            return "\r\n" if text[index + 1 : index + 2] == "\n" else "\r"
    return "\n"


def _as_scopes(properties: Any) -> list[Any]:
    if properties is None:
        return []
    if isinstance(properties, Mapping) or not isinstance(properties, (list, tuple)):
        return [properties]
    return list(properties)


class CompiledTemplate:
    """A compiled template bound to the renderer that produced it."""

    def __init__(self, template: Template, name: str, renderer: TemplateRenderer) -> None:
        self.template = template
        self.name = name
        self.renderer = renderer

    def execute(self, writer: TextIO, scopes: Sequence[Any]) -> TextIO:
        """Render against ``scopes`` (innermost first) into ``writer``.

        The writer is neither flushed nor closed.
        """
        scopes = list(scopes)
        variables: dict[str, Any] = {}
        for scope in reversed(scopes):
            if isinstance(scope, Mapping):
                variables.update((k, v) for k, v in scope.items() if isinstance(k, str))
        variables[RESOLVE_FUNCTION] = partial(self.renderer.resolve, scopes=scopes)

        try:
            for chunk in self.template.generate(variables):
                writer.write(chunk)
        except _MissingPlaceholder as e:
            raise UnresolvedPlaceholderError(self.name, e.placeholder) from e
        except TemplateError as e:
            raise RenderError(self.name, str(e)) from e

        return writer


class TemplateRenderer:
    """Jinja2 renderer for build resources.

    Values are written without escaping, dotted placeholder names are
    matched as whole keys before being walked as paths, and file system
    paths render with '/' separators. Configuration is fixed at construction.
    """

    def __init__(
        self,
        settings: FilterSettings | None = None,
        resolver: NameResolver | None = None,
    ) -> None:
        self.settings = settings or FilterSettings()
        self.delimiters: Delimiters = self.settings.delimiters()
        self.environment = Environment(
            extensions=[PlaceholderExtension],
            undefined=(
                PlaceholderUndefined
                if self.settings.strict_undefined
                else ChainableUndefined
            ),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            finalize=stringify,
            variable_start_string=self.delimiters.variable_start,
            variable_end_string=self.delimiters.variable_end,
            block_start_string=self.delimiters.block_start,
            block_end_string=self.delimiters.block_end,
            comment_start_string=self.delimiters.comment_start,
            comment_end_string=self.delimiters.comment_end,
        )
        self.resolver: NameResolver = resolver or ExactKeyResolver(
            PathResolver(self.environment)
        )

    def resolve(self, name: str, scopes: Sequence[Any]) -> Any:
        value = self.resolver.find(name, scopes)
        if value is MISSING:
            return self.environment.undefined(name=name)
        return value

    def compile(self, text: str, name: str = "<template>") -> CompiledTemplate:
        """Compile template text, keeping its line ending style.

        Args:
            text: Template source
            name: Template identity used in error messages

        Returns:
            Compiled template ready to execute
        """
        newline = _detect_newline(text)
        environment = self.environment
        if newline != environment.newline_sequence:
            environment = environment.overlay(newline_sequence=newline)

        try:
            template = environment.from_string(text)
        except TemplateSyntaxError as e:
            raise RenderError(name, f"line {e.lineno}: {e.message}") from e

        return CompiledTemplate(template, name, self)

    def filter(
        self,
        reader: TextIO,
        writer: TextIO,
        properties: Any,
        name: str = "<template>",
    ) -> TextIO:
        """Render the template read from ``reader`` into ``writer``.

        Args:
            reader: Source of template text
            writer: Sink for rendered text
            properties: One scope or a sequence of scopes, innermost first
            name: Template identity used in error messages

        Returns:
            The writer
        """
        logger.debug(f"Rendering template: {name}")
        template = self.compile(reader.read(), name=name)
        return template.execute(writer, _as_scopes(properties))
