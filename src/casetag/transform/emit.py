from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Sequence

import libcst as cst

from casetag.model import Case, Named, Positional, ResolvedPolicy, SourceType, Unit
from casetag.naming import snake_case

GENERATED_MARKER = "casetag-generated"
_GENERATED_RE = re.compile(rf"^#\s*{GENERATED_MARKER}:\s*(?P<source>\w+)\s*$")


@dataclass
class GeneratedUnit:
    source_class: cst.ClassDef
    companion_class: cst.ClassDef
    companion_name: str
    policy: ResolvedPolicy
    warnings: List[str] = field(default_factory=list)


def marker_line(source_name: str) -> cst.EmptyLine:
    return cst.EmptyLine(comment=cst.Comment(f"# {GENERATED_MARKER}: {source_name}"))


def generated_for(node: cst.CSTNode) -> str | None:
    """Return the source name a generated statement was emitted for, if any."""
    leading = getattr(node, "leading_lines", ())
    for line in leading:
        if line.comment is None:
            continue
        match = _GENERATED_RE.match(line.comment.value.strip())
        if match:
            return match.group("source")
    return None


def case_pattern(case: Case) -> str:
    match case.shape:
        case Unit():
            return f"{case.name}()"
        case Positional(arity=arity):
            slots = ", ".join(["_"] * arity)
            if arity == 1:
                slots += ","
            return f"{case.name}(({slots}))"
        case Named(fields=fields):
            keywords = ", ".join(f"{name}=_" for name in fields)
            return f"{case.name}({keywords})"
    raise TypeError(f"unsupported case shape: {case.shape!r}")


def _match_block(arms: list[tuple[str, str]], fallback: str) -> list[str]:
    lines: list[str] = []
    if arms:
        lines.append("    match self:")
        for pattern, result in arms:
            lines.append(f"        case {pattern}:")
            lines.append(f"            {result}")
    lines.append(f"    {fallback}")
    return lines


def _projector_code(source: SourceType, policy: ResolvedPolicy, companion: str) -> str:
    arms = [
        (case_pattern(case), f"return {companion}.{case.name}")
        for case in source.cases
    ]
    fallback = (
        'raise TypeError(f"{type(self).__name__} is not a case of '
        + source.name
        + '")'
    )
    lines = [f'def {policy.projector_name}(self) -> "{companion}":']
    lines.extend(_match_block(arms, fallback))
    return "\n".join(lines) + "\n"


def _display_from_value_code(source: SourceType) -> str:
    # Every case gets the single-slot pattern; other shapes simply never match.
    arms = [
        (f"{case.name}((value,))", "return str(value)")
        for case in source.cases
    ]
    fallback = (
        'raise TypeError(f"{type(self).__name__} has no single positional payload")'
    )
    lines = ["def __str__(self) -> str:"]
    lines.extend(_match_block(arms, fallback))
    return "\n".join(lines) + "\n"


def display_text(source_name: str, case_name: str, policy: ResolvedPolicy) -> str | None:
    """Rendered text of one companion member; type-qualified wins, then exact, then snake."""
    if policy.display:
        return f"{source_name}::{case_name}"
    if policy.display_variant:
        return case_name
    if policy.display_variant_snake:
        return snake_case(case_name)
    return None


def _companion_display_code(
    source: SourceType, policy: ResolvedPolicy, companion: str
) -> str | None:
    if not (policy.display or policy.display_variant or policy.display_variant_snake):
        return None
    arms = [
        (
            f"{companion}.{case.name}",
            f'return "{display_text(source.name, case.name, policy)}"',
        )
        for case in source.cases
    ]
    lines = ["def __str__(self) -> str:"]
    lines.extend(_match_block(arms, "return self.name"))
    return "\n".join(lines) + "\n"


def _as_list_code(source: SourceType, companion: str) -> str:
    members = ", ".join(f"{companion}.{case.name}" for case in source.cases)
    return (
        "@staticmethod\n"
        f'def as_list() -> list["{companion}"]:\n'
        f"    return [{members}]\n"
    )


_ORDERING_CODE = (
    "def __lt__(self, other):\n"
    "    if type(other) is not type(self):\n"
    "        return NotImplemented\n"
    "    members = list(type(self))\n"
    "    return members.index(self) < members.index(other)\n"
)


def _orders_members(annotations: Sequence[str]) -> bool:
    # functools.total_ordering needs one ordering operator on the enum.
    for code in annotations:
        callee = code.split("(", 1)[0].strip()
        if callee.rsplit(".", 1)[-1] == "total_ordering":
            return True
    return False


def _method(code: str, *, source_name: str | None = None) -> cst.BaseStatement:
    statement = cst.parse_statement(code)
    leading: list[cst.EmptyLine] = [cst.EmptyLine(indent=False)]
    if source_name is not None:
        leading.append(marker_line(source_name))
    return statement.with_changes(leading_lines=leading)


def _indented(body: cst.BaseSuite) -> cst.IndentedBlock:
    if isinstance(body, cst.IndentedBlock):
        return body
    assert isinstance(body, cst.SimpleStatementSuite)
    return cst.IndentedBlock(
        body=[cst.SimpleStatementLine(body=list(body.body))],
        header=body.trailing_whitespace,
    )


def _decorator(code: str) -> cst.Decorator:
    return cst.Decorator(decorator=cst.parse_expression(code))


def _existing_methods(node: cst.ClassDef) -> set[str]:
    names: set[str] = set()
    body = node.body.body if isinstance(node.body, cst.IndentedBlock) else ()
    for stmt in body:
        if isinstance(stmt, cst.FunctionDef):
            names.add(stmt.name.value)
    return names


def transform(
    node: cst.ClassDef, source: SourceType, policy: ResolvedPolicy
) -> GeneratedUnit:
    """Emit the companion enum and the members the policy asks for.

    ``node`` must already be free of previously generated members; the source
    class comes back unchanged apart from the appended projector (and the
    ``__str__`` of display_from_value).
    """
    companion = policy.companion_name
    warnings: list[str] = []

    existing = _existing_methods(node)
    added = [policy.projector_name]
    if policy.display_from_value:
        added.append("__str__")
    for name in added:
        if name in existing:
            warnings.append(
                f"{source.name}.{name} is already defined; the generated one follows it."
            )

    source_members = [
        _method(_projector_code(source, policy, companion), source_name=source.name)
    ]
    if policy.display_from_value:
        source_members.append(
            _method(_display_from_value_code(source), source_name=source.name)
        )
    body = _indented(node.body)
    source_class = node.with_changes(
        body=body.with_changes(body=[*body.body, *source_members])
    )

    companion_body: list[cst.BaseStatement] = [
        cst.parse_statement(f"{case.name} = enum.auto()\n") for case in source.cases
    ]
    if _orders_members(policy.annotations):
        companion_body.append(_method(_ORDERING_CODE))
    display = _companion_display_code(source, policy, companion)
    if display is not None:
        companion_body.append(_method(display))
    if policy.iterator:
        companion_body.append(_method(_as_list_code(source, companion)))
    if not companion_body:
        companion_body.append(cst.parse_statement("pass\n"))
    companion_class = cst.ClassDef(
        name=cst.Name(companion),
        bases=[cst.Arg(cst.parse_expression("enum.Enum"))],
        body=cst.IndentedBlock(body=companion_body),
        decorators=[_decorator(code) for code in policy.annotations],
        leading_lines=[
            cst.EmptyLine(indent=False),
            cst.EmptyLine(indent=False),
            marker_line(source.name),
        ],
    )
    return GeneratedUnit(
        source_class=source_class,
        companion_class=companion_class,
        companion_name=companion,
        policy=policy,
        warnings=warnings,
    )
