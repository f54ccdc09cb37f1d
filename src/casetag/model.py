from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple, TypeAlias


class Visibility(Enum):
    PUBLIC = "public"
    PRIVATE = "private"

    @classmethod
    def of_name(cls, name: str) -> Visibility:
        return cls.PRIVATE if name.startswith("_") else cls.PUBLIC


@dataclass(frozen=True)
class Unit:
    pass


@dataclass(frozen=True)
class Positional:
    arity: int

    def __post_init__(self) -> None:
        if self.arity < 1:
            raise ValueError("positional payload needs at least one slot")


@dataclass(frozen=True)
class Named:
    fields: Tuple[str, ...]


Shape: TypeAlias = Unit | Positional | Named


@dataclass(frozen=True)
class Case:
    name: str
    shape: Shape = field(default_factory=Unit)


@dataclass(frozen=True)
class CapabilityAnnotation:
    """A class decorator; ``name`` is its dotted callee, ``code`` the full expression."""

    name: str
    code: str

    @property
    def short_name(self) -> str:
        return self.name.rsplit(".", 1)[-1]


@dataclass(frozen=True)
class SourceType:
    name: str
    visibility: Visibility = Visibility.PUBLIC
    annotations: Tuple[CapabilityAnnotation, ...] = ()
    cases: Tuple[Case, ...] = ()


@dataclass(frozen=True)
class ResolvedPolicy:
    companion_name: str
    projector_name: str
    visibility: Visibility
    annotations: Tuple[str, ...] = ()
    display: bool = False
    display_variant: bool = False
    display_variant_snake: bool = False
    display_from_value: bool = False
    iterator: bool = False
