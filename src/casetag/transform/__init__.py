from casetag.transform.emit import GeneratedUnit, case_pattern, transform
from casetag.transform.engine import (
    TransformConfig,
    TransformEngine,
    apply_edits,
)
from casetag.transform.model import (
    CompanionSummary,
    ModuleResult,
    TextEdit,
    TransformPlan,
)

__all__ = [
    "CompanionSummary",
    "GeneratedUnit",
    "ModuleResult",
    "TextEdit",
    "TransformConfig",
    "TransformEngine",
    "TransformPlan",
    "apply_edits",
    "case_pattern",
    "transform",
]
