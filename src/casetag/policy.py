"""Directive-list parsing and effective policy resolution.

A directive list is the text of a ``# casetag:`` pragma::

    derive = "unique, total_ordering", getter = "kind", display, iterator

Entries are either a bare key (flag form) or ``key = "string"`` (value form).
The resolver keeps every parsed directive in order, duplicates included, and
answers one query per policy dimension. Conflicting directives are not
diagnosed unless strict resolution is requested; the first match wins and
the fixed precedence of each query decides between mutually exclusive flags.
"""

from __future__ import annotations

import ast
import io
import tokenize
from dataclasses import dataclass
from typing import Iterable, Sequence, Tuple

from casetag.directives import Directive, DirectiveKind, parse_key
from casetag.exceptions import (
    ANY_FORM,
    VALUE_FORM,
    ConflictingDirectives,
    DirectiveError,
    DirectiveWrongLevel,
    InvalidDirectiveValue,
    MalformedEntry,
    ShapeMismatch,
)
from casetag.model import (
    CapabilityAnnotation,
    Positional,
    ResolvedPolicy,
    SourceType,
    Visibility,
)
from casetag.naming import is_dotted_name, is_identifier, spell_for_visibility

DEFAULT_COMPANION_SUFFIX = "Id"
DEFAULT_PROJECTOR_NAME = "id"
DEFAULT_DERIVE_DECORATORS: Tuple[str, ...] = (
    "total_ordering",
    "unique",
    "verify",
)

_SKIPPED_TOKENS = {
    tokenize.NEWLINE,
    tokenize.NL,
    tokenize.COMMENT,
    tokenize.INDENT,
    tokenize.DEDENT,
    tokenize.ENDMARKER,
}
_OPENERS = {"(", "[", "{"}
_CLOSERS = {")", "]", "}"}

# Pairs reported by PolicyResolver.conflicts(); the first key is the one the
# permissive resolution keeps.
_EXCLUSIVE_PAIRS: Tuple[Tuple[DirectiveKind, DirectiveKind], ...] = (
    (DirectiveKind.NO_DERIVE, DirectiveKind.DERIVE),
    (DirectiveKind.PUBLIC, DirectiveKind.NOT_PUBLIC),
    (DirectiveKind.DISPLAY, DirectiveKind.DISPLAY_VARIANT),
    (DirectiveKind.DISPLAY, DirectiveKind.DISPLAY_VARIANT_SNAKE),
    (DirectiveKind.DISPLAY_VARIANT, DirectiveKind.DISPLAY_VARIANT_SNAKE),
)


class _Source:
    """Maps tokenize (row, col) positions back to offsets in the original text."""

    def __init__(self, text: str) -> None:
        self.text = text
        self._starts = [0]
        for line in text.splitlines(keepends=True):
            self._starts.append(self._starts[-1] + len(line))

    def offset(self, position: tuple[int, int]) -> int:
        row, col = position
        return self._starts[row - 1] + col

    def span(self, tokens: Sequence[tokenize.TokenInfo]) -> tuple[int, str]:
        start = self.offset(tokens[0].start)
        end = self.offset(tokens[-1].end)
        return start, self.text[start:end]


def _tokens(text: str) -> list[tokenize.TokenInfo]:
    try:
        raw = list(tokenize.generate_tokens(io.StringIO(text).readline))
    except (tokenize.TokenError, SyntaxError) as exc:
        raise MalformedEntry(text, ANY_FORM) from exc
    return [tok for tok in raw if tok.type not in _SKIPPED_TOKENS]


def _split_entries(
    tokens: list[tokenize.TokenInfo], source: _Source
) -> list[tuple[list[tokenize.TokenInfo], int]]:
    entries: list[tuple[list[tokenize.TokenInfo], int]] = []
    current: list[tokenize.TokenInfo] = []
    depth = 0
    for tok in tokens:
        if tok.type == tokenize.OP and tok.string in _OPENERS:
            depth += 1
        elif tok.type == tokenize.OP and tok.string in _CLOSERS:
            depth = max(depth - 1, 0)
        elif tok.type == tokenize.OP and tok.string == "," and depth == 0:
            if not current:
                raise MalformedEntry("", ANY_FORM, column=source.offset(tok.start))
            entries.append((current, source.offset(current[0].start)))
            current = []
            continue
        current.append(tok)
    if current:
        entries.append((current, source.offset(current[0].start)))
    return entries


def _string_value(tok: tokenize.TokenInfo) -> str | None:
    try:
        value = ast.literal_eval(tok.string)
    except (ValueError, SyntaxError):
        return None
    return value if isinstance(value, str) else None


def _parse_kind(tok: tokenize.TokenInfo, column: int) -> DirectiveKind:
    try:
        return parse_key(tok.string)
    except DirectiveError as exc:
        raise exc.at(column)


def _parse_entry(
    tokens: list[tokenize.TokenInfo], column: int, source: _Source
) -> Directive:
    _, entry = source.span(tokens)
    if len(tokens) == 1 and tokens[0].type == tokenize.NAME:
        kind = _parse_kind(tokens[0], column)
        if kind.takes_value:
            raise DirectiveWrongLevel(tokens[0].string, column=column)
        return Directive(kind)
    assigns = [
        idx
        for idx, tok in enumerate(tokens)
        if tok.type == tokenize.OP and tok.string == "="
    ]
    if not assigns:
        raise MalformedEntry(entry, ANY_FORM, column=column)
    if len(tokens) != 3 or assigns != [1]:
        raise MalformedEntry(entry, VALUE_FORM, column=source.offset(tokens[assigns[0]].start))
    left, _, right = tokens
    value = _string_value(right) if right.type == tokenize.STRING else None
    if left.type != tokenize.NAME or value is None:
        raise MalformedEntry(entry, VALUE_FORM, column=source.offset(tokens[1].start))
    kind = _parse_kind(left, column)
    if not kind.takes_value:
        raise DirectiveWrongLevel(left.string, column=column)
    return Directive(kind, value)


def parse_directive_list(text: str) -> list[Directive]:
    """Parse a comma-separated directive list; a trailing comma is allowed.

    Error columns are offsets into ``text``.
    """
    body = text.lstrip()
    shift = len(text) - len(body)
    source = _Source(body)
    try:
        tokens = _tokens(body)
        return [
            _parse_entry(entry, column, source)
            for entry, column in _split_entries(tokens, source)
        ]
    except DirectiveError as exc:
        raise exc.at(exc.column + shift)


def _split_names(payload: str) -> list[str]:
    return [part.strip() for part in payload.split(",") if part.strip()]


@dataclass(frozen=True)
class PolicyResolver:
    directives: Tuple[Directive, ...] = ()

    @classmethod
    def from_text(cls, text: str) -> PolicyResolver:
        return cls(tuple(parse_directive_list(text)))

    @classmethod
    def from_texts(cls, texts: Iterable[str]) -> PolicyResolver:
        directives: list[Directive] = []
        for text in texts:
            directives.extend(parse_directive_list(text))
        return cls(tuple(directives))

    def _has(self, kind: DirectiveKind) -> bool:
        return any(directive.kind is kind for directive in self.directives)

    def _first(self, kind: DirectiveKind) -> str | None:
        for directive in self.directives:
            if directive.kind is kind:
                return directive.value
        return None

    def companion_name(self, source_name: str) -> str:
        name = self._first(DirectiveKind.NAME)
        if name is None:
            return f"{source_name}{DEFAULT_COMPANION_SUFFIX}"
        if not is_identifier(name):
            raise InvalidDirectiveValue("name", name, "not a Python identifier")
        return name

    def companion_spelling(self, source_name: str, source_visibility: Visibility) -> str:
        """Companion name as emitted; an explicit ``name`` is respelled only
        when ``public`` or ``not_public`` forces a visibility."""
        name = self.companion_name(source_name)
        forced = self._has(DirectiveKind.PUBLIC) or self._has(DirectiveKind.NOT_PUBLIC)
        if self._first(DirectiveKind.NAME) is not None and not forced:
            return name
        return spell_for_visibility(name, self.visibility(source_visibility))

    def projector_name(self) -> str:
        name = self._first(DirectiveKind.GETTER)
        if name is None:
            return DEFAULT_PROJECTOR_NAME
        if not is_identifier(name):
            raise InvalidDirectiveValue("getter", name, "not a Python identifier")
        return name

    def visibility(self, source_visibility: Visibility) -> Visibility:
        if self._has(DirectiveKind.PUBLIC):
            return Visibility.PUBLIC
        if self._has(DirectiveKind.NOT_PUBLIC):
            return Visibility.PRIVATE
        return source_visibility

    def capability_annotations(
        self,
        annotations: Sequence[CapabilityAnnotation],
        derive_decorators: Iterable[str] = DEFAULT_DERIVE_DECORATORS,
    ) -> Tuple[str, ...]:
        if self._has(DirectiveKind.NO_DERIVE):
            return ()
        payload = self._first(DirectiveKind.DERIVE)
        if payload is not None:
            names = _split_names(payload)
            for name in names:
                if not is_dotted_name(name):
                    raise InvalidDirectiveValue("derive", payload, f"{name!r} is not a dotted name")
            return tuple(names)
        allowed = set(derive_decorators)
        return tuple(
            annotation.code
            for annotation in annotations
            if annotation.short_name in allowed
        )

    def display_required(self) -> bool:
        return self._has(DirectiveKind.DISPLAY)

    def display_variant(self) -> bool:
        return self._has(DirectiveKind.DISPLAY_VARIANT)

    def display_variant_snake(self) -> bool:
        return self._has(DirectiveKind.DISPLAY_VARIANT_SNAKE)

    def display_from_value_required(self) -> bool:
        return self._has(DirectiveKind.DISPLAY_FROM_VALUE)

    def iterator_required(self) -> bool:
        return self._has(DirectiveKind.ITERATOR)

    def conflicts(self) -> list[tuple[DirectiveKind, DirectiveKind]]:
        return [
            (kept, dropped)
            for kept, dropped in _EXCLUSIVE_PAIRS
            if self._has(kept) and self._has(dropped)
        ]

    def resolve(
        self,
        source: SourceType,
        *,
        derive_decorators: Iterable[str] = DEFAULT_DERIVE_DECORATORS,
        strict: bool = False,
    ) -> ResolvedPolicy:
        if strict:
            self._check_strict(source)
        return ResolvedPolicy(
            companion_name=self.companion_spelling(source.name, source.visibility),
            projector_name=self.projector_name(),
            visibility=self.visibility(source.visibility),
            annotations=self.capability_annotations(source.annotations, derive_decorators),
            display=self.display_required(),
            display_variant=self.display_variant(),
            display_variant_snake=self.display_variant_snake(),
            display_from_value=self.display_from_value_required(),
            iterator=self.iterator_required(),
        )

    def _check_strict(self, source: SourceType) -> None:
        conflicts = self.conflicts()
        if conflicts:
            kept, dropped = conflicts[0]
            raise ConflictingDirectives(str(kept), str(dropped))
        if self.display_from_value_required():
            for case in source.cases:
                if case.shape != Positional(1):
                    raise ShapeMismatch(case.name)
