"""Directive errors raised while resolving a casetag pragma."""

from __future__ import annotations

VALUE_FORM = 'Expecting expression like key = "value as String"'
ANY_FORM = 'Expecting expression like [key = "value as String"] or [key]'


class DirectiveError(ValueError):
    """Base class for every error that aborts a source type.

    ``entry`` is the offending directive text and ``column`` its zero-based
    offset inside the directive list, so callers can point at the token.
    """

    def __init__(self, message: str, *, entry: str = "", column: int = 0) -> None:
        super().__init__(message)
        self.message = message
        self.entry = entry
        self.column = column
        self.line: int | None = None

    def at(self, column: int, line: int | None = None) -> DirectiveError:
        self.column = column
        if line is not None:
            self.line = line
        return self


class UnknownDirective(DirectiveError):
    def __init__(self, name: str, *, column: int = 0) -> None:
        super().__init__(
            f'Cannot parse directive "{name}": Unknown directive "{name}"',
            entry=name,
            column=column,
        )
        self.name = name


class MalformedEntry(DirectiveError):
    def __init__(self, entry: str, expected: str = ANY_FORM, *, column: int = 0) -> None:
        super().__init__(expected, entry=entry, column=column)
        self.expected = expected


class DirectiveWrongLevel(DirectiveError):
    """A known key written in the other syntactic form."""

    def __init__(self, name: str, *, column: int = 0) -> None:
        super().__init__(
            f'Directive "{name}" cannot be applied at this level',
            entry=name,
            column=column,
        )
        self.name = name


class InvalidDirectiveValue(DirectiveError):
    def __init__(self, name: str, value: str, reason: str) -> None:
        super().__init__(
            f'Directive "{name}" has an invalid value "{value}": {reason}',
            entry=f'{name} = "{value}"',
        )
        self.name = name
        self.value = value


class ConflictingDirectives(DirectiveError):
    """Raised in strict mode only; the default resolution is first-match."""

    def __init__(self, first: str, second: str) -> None:
        super().__init__(
            f'Directives "{first}" and "{second}" cannot be combined',
            entry=second,
        )
        self.first = first
        self.second = second


class ShapeMismatch(DirectiveError):
    """Raised in strict mode when display_from_value meets a non-single payload."""

    def __init__(self, case_name: str) -> None:
        super().__init__(
            f'Directive "display_from_value" needs exactly one positional '
            f'payload slot, but case "{case_name}" has a different shape',
            entry="display_from_value",
        )
        self.case_name = case_name
