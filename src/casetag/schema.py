from __future__ import annotations

from dataclasses import asdict
from typing import List, Optional, Tuple

from pydantic import BaseModel

from casetag.transform.model import TransformPlan


class TextEditDTO(BaseModel):
    path: str
    start: Tuple[int, int]
    end: Tuple[int, int]
    replacement: str


class CompanionDTO(BaseModel):
    path: str
    source: str
    companion: str
    projector: str
    visibility: str
    decorators: List[str] = []
    cases: List[str] = []
    display: Optional[str] = None
    display_from_value: bool = False
    iterator: bool = False


class TransformResponseDTO(BaseModel):
    edits: List[TextEditDTO] = []
    companions: List[CompanionDTO] = []
    warnings: List[str] = []
    errors: List[str] = []
    changed: List[str] = []


class DirectiveDTO(BaseModel):
    key: str
    form: str
    description: str


def transform_response(plan: TransformPlan, *, include_edits: bool = True) -> TransformResponseDTO:
    return TransformResponseDTO(
        edits=[TextEditDTO(**asdict(edit)) for edit in plan.edits] if include_edits else [],
        companions=[CompanionDTO(**asdict(item)) for item in plan.companions],
        warnings=list(plan.warnings),
        errors=list(plan.errors),
        changed=[edit.path for edit in plan.edits],
    )
