from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple

Position = Tuple[int, int]


@dataclass(frozen=True)
class TextEdit:
    path: str
    start: Position
    end: Position
    replacement: str


@dataclass(frozen=True)
class CompanionSummary:
    path: str
    source: str
    companion: str
    projector: str
    visibility: str
    decorators: List[str] = field(default_factory=list)
    cases: List[str] = field(default_factory=list)
    display: str | None = None
    display_from_value: bool = False
    iterator: bool = False


@dataclass
class ModuleResult:
    code: str
    companions: List[CompanionSummary] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class TransformPlan:
    edits: List[TextEdit] = field(default_factory=list)
    companions: List[CompanionSummary] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def extend(self, other: TransformPlan) -> None:
        self.edits.extend(other.edits)
        self.companions.extend(other.companions)
        self.warnings.extend(other.warnings)
        self.errors.extend(other.errors)
