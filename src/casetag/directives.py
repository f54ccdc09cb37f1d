"""Closed vocabulary of casetag directives."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from casetag.exceptions import UnknownDirective


class DirectiveKind(Enum):
    DERIVE = "derive"
    GETTER = "getter"
    NAME = "name"
    NO_DERIVE = "no_derive"
    PUBLIC = "public"
    NOT_PUBLIC = "not_public"
    DISPLAY = "display"
    DISPLAY_VARIANT = "display_variant"
    DISPLAY_VARIANT_SNAKE = "display_variant_snake"
    DISPLAY_FROM_VALUE = "display_from_value"
    ITERATOR = "iterator"

    @property
    def takes_value(self) -> bool:
        return _KEYS[self][1]

    @property
    def description(self) -> str:
        return _KEYS[self][2]

    def __str__(self) -> str:
        return to_key(self)


# kind -> (canonical key, value form, description)
_KEYS: dict[DirectiveKind, tuple[str, bool, str]] = {
    DirectiveKind.DERIVE: (
        "derive",
        True,
        "Comma-separated decorators for the companion; replaces inherited ones.",
    ),
    DirectiveKind.GETTER: (
        "getter",
        True,
        "Name of the projector method instead of `id`.",
    ),
    DirectiveKind.NAME: (
        "name",
        True,
        "Name of the companion enum instead of `<Source>Id`.",
    ),
    DirectiveKind.NO_DERIVE: (
        "no_derive",
        False,
        "Do not copy any decorator onto the companion enum.",
    ),
    DirectiveKind.PUBLIC: (
        "public",
        False,
        "Make the companion public whatever the source visibility.",
    ),
    DirectiveKind.NOT_PUBLIC: (
        "not_public",
        False,
        "Make the companion private.",
    ),
    DirectiveKind.DISPLAY: (
        "display",
        False,
        "Companion __str__ renders `Source::Case`.",
    ),
    DirectiveKind.DISPLAY_VARIANT: (
        "display_variant",
        False,
        "Companion __str__ renders the case name.",
    ),
    DirectiveKind.DISPLAY_VARIANT_SNAKE: (
        "display_variant_snake",
        False,
        "Companion __str__ renders the case name in snake_case.",
    ),
    DirectiveKind.DISPLAY_FROM_VALUE: (
        "display_from_value",
        False,
        "Source __str__ delegates to the single positional payload.",
    ),
    DirectiveKind.ITERATOR: (
        "iterator",
        False,
        "Add a static `as_list()` returning every companion member in order.",
    ),
}

_BY_KEY: dict[str, DirectiveKind] = {key: kind for kind, (key, _, _) in _KEYS.items()}


def to_key(kind: DirectiveKind) -> str:
    return _KEYS[kind][0]


def parse_key(key: str) -> DirectiveKind:
    try:
        return _BY_KEY[key]
    except KeyError:
        raise UnknownDirective(key) from None


def vocabulary() -> list[DirectiveKind]:
    return list(_KEYS)


@dataclass(frozen=True)
class Directive:
    kind: DirectiveKind
    value: str | None = None

    @property
    def key(self) -> str:
        return to_key(self.kind)

    def __str__(self) -> str:
        if self.value is None:
            return self.key
        return f'{self.key} = "{self.value}"'
