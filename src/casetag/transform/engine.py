from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Sequence, Tuple

import libcst as cst
from libcst.metadata import CodeRange, MetadataWrapper, PositionProvider

from casetag.config import TomlTable, as_bool, normalize_name_list
from casetag.directives import Directive
from casetag.exceptions import DirectiveError
from casetag.model import (
    CapabilityAnnotation,
    Case,
    Named,
    Positional,
    Shape,
    SourceType,
    Unit,
    Visibility,
)
from casetag.policy import DEFAULT_DERIVE_DECORATORS, PolicyResolver, parse_directive_list
from casetag.transform.emit import GeneratedUnit, generated_for, transform
from casetag.transform.model import CompanionSummary, ModuleResult, TextEdit, TransformPlan

logger = logging.getLogger(__name__)

PRAGMA = "casetag"
_PRAGMA_RE = re.compile(rf"^#\s*{PRAGMA}:(?P<text>.*)$")


@dataclass(frozen=True)
class TransformConfig:
    derive_decorators: Tuple[str, ...] = DEFAULT_DERIVE_DECORATORS
    exclude: Tuple[str, ...] = ()
    strict: bool = False

    @classmethod
    def from_table(cls, table: TomlTable) -> TransformConfig:
        derive = DEFAULT_DERIVE_DECORATORS
        if "derive_decorators" in table:
            derive = tuple(normalize_name_list(table.get("derive_decorators")))
        return cls(
            derive_decorators=derive,
            exclude=tuple(normalize_name_list(table.get("exclude"))),
            strict=as_bool(table.get("strict")),
        )


@dataclass(frozen=True)
class Pragma:
    text: str
    line: int
    column: int


def _dotted_name(expr: cst.BaseExpression) -> str | None:
    if isinstance(expr, cst.Name):
        return expr.value
    if isinstance(expr, cst.Attribute):
        parts = []
        current: cst.BaseExpression = expr
        while isinstance(current, cst.Attribute):
            parts.append(current.attr.value)
            current = current.value
        if isinstance(current, cst.Name):
            parts.append(current.value)
            return ".".join(reversed(parts))
    return None


def find_pragmas(lines: Sequence[cst.EmptyLine], first_line: int) -> list[Pragma]:
    """Collect ``# casetag:`` comments; ``first_line`` is the line of ``lines[0]``."""
    pragmas: list[Pragma] = []
    for offset, line in enumerate(lines):
        if line.comment is None:
            continue
        match = _PRAGMA_RE.match(line.comment.value)
        if match is None:
            continue
        column = len(line.whitespace.value) + match.start("text")
        pragmas.append(Pragma(match.group("text"), first_line + offset, column))
    return pragmas


def _is_case_of(node: cst.ClassDef, source_name: str) -> bool:
    for arg in node.bases:
        value = arg.value
        if isinstance(value, cst.Subscript):
            value = value.value
        if isinstance(value, cst.Name) and value.value == source_name:
            return True
    return False


def _tuple_arity(arg: cst.Arg) -> int:
    value = arg.value
    if not isinstance(value, cst.Subscript):
        return 0
    if _dotted_name(value.value) not in {"tuple", "Tuple", "typing.Tuple"}:
        return 0
    arity = 0
    for element in value.slice:
        slot = element.slice
        if not isinstance(slot, cst.Index):
            continue
        # tuple[int, ...] counts its one typed slot; tuple[()] has none.
        if isinstance(slot.value, (cst.Ellipsis, cst.Tuple)):
            continue
        arity += 1
    return arity


def _is_classvar(annotation: cst.Annotation) -> bool:
    value = annotation.annotation
    if isinstance(value, cst.Subscript):
        value = value.value
    return _dotted_name(value) in {"ClassVar", "typing.ClassVar"}


def read_shape(node: cst.ClassDef) -> Shape:
    for arg in node.bases:
        arity = _tuple_arity(arg)
        if arity:
            return Positional(arity)
    fields: list[str] = []
    body = node.body.body if isinstance(node.body, cst.IndentedBlock) else ()
    for stmt in body:
        if not isinstance(stmt, cst.SimpleStatementLine):
            continue
        for item in stmt.body:
            if not isinstance(item, cst.AnnAssign):
                continue
            if not isinstance(item.target, cst.Name) or _is_classvar(item.annotation):
                continue
            fields.append(item.target.value)
    if fields:
        return Named(tuple(fields))
    return Unit()


def read_annotations(
    node: cst.ClassDef, module: cst.Module
) -> Tuple[CapabilityAnnotation, ...]:
    annotations: list[CapabilityAnnotation] = []
    for decorator in node.decorators:
        expr = decorator.decorator
        callee = expr.func if isinstance(expr, cst.Call) else expr
        code = module.code_for_node(expr)
        annotations.append(CapabilityAnnotation(name=_dotted_name(callee) or code, code=code))
    return tuple(annotations)


def read_source_type(
    node: cst.ClassDef, module: cst.Module, case_nodes: Sequence[cst.ClassDef]
) -> SourceType:
    name = node.name.value
    return SourceType(
        name=name,
        visibility=Visibility.of_name(name),
        annotations=read_annotations(node, module),
        cases=tuple(Case(case.name.value, read_shape(case)) for case in case_nodes),
    )


def _adopt_header(
    node: cst.ClassDef, header: Sequence[cst.EmptyLine]
) -> tuple[cst.ClassDef, list[cst.EmptyLine]]:
    """Move the pragma lines of a module header onto the first class."""
    for offset, line in enumerate(header):
        if line.comment is not None and _PRAGMA_RE.match(line.comment.value):
            leading = [*header[offset:], *node.leading_lines]
            return node.with_changes(leading_lines=leading), list(header[:offset])
    return node, list(header)


def _strip_generated_members(node: cst.ClassDef) -> cst.ClassDef:
    if not isinstance(node.body, cst.IndentedBlock):
        return node
    name = node.name.value
    kept = [stmt for stmt in node.body.body if generated_for(stmt) != name]
    if len(kept) == len(node.body.body):
        return node
    return node.with_changes(body=node.body.with_changes(body=kept))


def _is_import(stmt: cst.CSTNode) -> bool:
    if not isinstance(stmt, cst.SimpleStatementLine):
        return False
    return any(isinstance(item, (cst.Import, cst.ImportFrom)) for item in stmt.body)


def _is_docstring(stmt: cst.CSTNode) -> bool:
    if not isinstance(stmt, cst.SimpleStatementLine) or not stmt.body:
        return False
    expr = stmt.body[0]
    return isinstance(expr, cst.Expr) and isinstance(expr.value, cst.SimpleString)


def _find_import_insert_index(body: list[cst.BaseStatement]) -> int:
    insert_idx = 0
    if body and _is_docstring(body[0]):
        insert_idx = 1
    while insert_idx < len(body) and _is_import(body[insert_idx]):
        insert_idx += 1
    return insert_idx


def _has_enum_import(body: Iterable[cst.BaseStatement]) -> bool:
    for stmt in body:
        if not isinstance(stmt, cst.SimpleStatementLine):
            continue
        for item in stmt.body:
            if not isinstance(item, cst.Import):
                continue
            for alias in item.names:
                if alias.asname is None and _dotted_name(alias.name) == "enum":
                    return True
    return False


def _ensure_enum_import(body: list[cst.BaseStatement]) -> list[cst.BaseStatement]:
    if _has_enum_import(body):
        return body
    insert_idx = _find_import_insert_index(body)
    import_stmt = cst.SimpleStatementLine(
        [cst.Import(names=[cst.ImportAlias(name=cst.Name("enum"))])]
    )
    return [*body[:insert_idx], import_stmt, *body[insert_idx:]]


def _all_assignment(stmt: cst.BaseStatement) -> cst.Assign | None:
    if not isinstance(stmt, cst.SimpleStatementLine) or len(stmt.body) != 1:
        return None
    item = stmt.body[0]
    if not isinstance(item, cst.Assign) or len(item.targets) != 1:
        return None
    target = item.targets[0].target
    if not isinstance(target, cst.Name) or target.value != "__all__":
        return None
    if not isinstance(item.value, (cst.List, cst.Tuple)):
        return None
    return item


def _element_name(element: cst.BaseElement) -> str | None:
    if isinstance(element.value, cst.SimpleString):
        value = element.value.evaluated_value
        return value if isinstance(value, str) else None
    return None


def update_all(
    body: list[cst.BaseStatement], add: Sequence[str], remove: Iterable[str]
) -> list[cst.BaseStatement]:
    """Keep a literal module ``__all__`` in line with companion visibility."""
    drop = set(remove) - set(add)
    updated = list(body)
    for idx, stmt in enumerate(updated):
        assign = _all_assignment(stmt)
        if assign is None:
            continue
        container = assign.value
        elements = [
            element
            for element in container.elements
            if _element_name(element) not in drop
        ]
        present = {_element_name(element) for element in elements}
        for name in add:
            if name not in present:
                elements.append(cst.Element(value=cst.SimpleString(f'"{name}"')))
                present.add(name)
        if (
            isinstance(container, cst.Tuple)
            and len(elements) == 1
            and elements[0].comma is cst.MaybeSentinel.DEFAULT
        ):
            elements[0] = elements[0].with_changes(comma=cst.Comma())
        if elements == list(container.elements):
            continue
        new_assign = assign.with_changes(value=container.with_changes(elements=elements))
        updated[idx] = stmt.with_changes(body=[new_assign])
    return updated


def _summary(path: str, unit: GeneratedUnit, source: SourceType) -> CompanionSummary:
    policy = unit.policy
    display = None
    if policy.display:
        display = "type"
    elif policy.display_variant:
        display = "variant"
    elif policy.display_variant_snake:
        display = "variant_snake"
    return CompanionSummary(
        path=path,
        source=source.name,
        companion=unit.companion_name,
        projector=policy.projector_name,
        visibility=policy.visibility.value,
        decorators=list(policy.annotations),
        cases=[case.name for case in source.cases],
        display=display,
        display_from_value=policy.display_from_value,
        iterator=policy.iterator,
    )


class TransformEngine:
    def __init__(
        self, config: TransformConfig | None = None, project_root: Path | None = None
    ) -> None:
        self.config = config or TransformConfig()
        self.project_root = project_root

    def transform_source(self, source: str, *, path: str = "<string>") -> ModuleResult:
        try:
            wrapper = MetadataWrapper(cst.parse_module(source))
        except cst.ParserSyntaxError as exc:
            return ModuleResult(code=source, errors=[f"LibCST parse failed for {path}: {exc}"])
        module = wrapper.module
        positions = wrapper.resolve(PositionProvider)
        body = list(module.body)
        header = list(module.header)
        result = ModuleResult(code=source)

        pragmas: dict[int, list[Pragma]] = {}
        for idx, stmt in enumerate(body):
            if not isinstance(stmt, cst.ClassDef) or generated_for(stmt) is not None:
                continue
            found = self._pragmas(stmt, module, positions, first=idx == 0)
            if found:
                pragmas[idx] = found
        source_names = {body[idx].name.value for idx in pragmas}

        replaced: dict[int, cst.BaseStatement] = {}
        inserted: dict[int, list[cst.BaseStatement]] = {}
        regenerated: set[str] = set()
        public_names: list[str] = []
        retired_names: set[str] = set()

        for idx, found in pragmas.items():
            node = body[idx]
            name = node.name.value
            case_idx = [
                pos
                for pos, stmt in enumerate(body)
                if pos != idx
                and isinstance(stmt, cst.ClassDef)
                and generated_for(stmt) is None
                and _is_case_of(stmt, name)
            ]
            source_type = read_source_type(node, module, [body[pos] for pos in case_idx])
            try:
                resolver = PolicyResolver(tuple(self._directives(found)))
                policy = resolver.resolve(
                    source_type,
                    derive_decorators=self.config.derive_decorators,
                    strict=self.config.strict,
                )
            except DirectiveError as exc:
                line = exc.line if exc.line is not None else found[0].line
                column = exc.column if exc.line is not None else found[0].column
                result.errors.append(f"{path}:{line}:{column + 1}: {exc.message}")
                logger.debug("%s: %s skipped: %s", path, name, exc.message)
                continue
            logger.debug(
                "%s: %s -> %s (%d cases)", path, name, policy.companion_name, len(case_idx)
            )
            if not case_idx:
                result.warnings.append(f"{path}: {name} has no cases; its companion is empty.")
            if idx == 0:
                # Keeps the pragma attached when an import is inserted above.
                node, header = _adopt_header(node, header)
            unit = transform(_strip_generated_members(node), source_type, policy)
            result.warnings.extend(f"{path}: {warning}" for warning in unit.warnings)
            replaced[idx] = unit.source_class
            anchor = case_idx[-1] if case_idx else idx
            inserted.setdefault(anchor, []).append(unit.companion_class)
            regenerated.add(name)
            if policy.visibility is Visibility.PUBLIC:
                public_names.append(unit.companion_name)
            else:
                retired_names.add(unit.companion_name)
            result.companions.append(_summary(path, unit, source_type))

        new_body: list[cst.BaseStatement] = []
        for idx, stmt in enumerate(body):
            owner = generated_for(stmt)
            if owner is not None and (owner in regenerated or owner not in source_names):
                if owner not in source_names:
                    result.warnings.append(
                        f"{path}: removed generated code for {owner}, which has no casetag pragma."
                    )
                if isinstance(stmt, cst.ClassDef):
                    retired_names.add(stmt.name.value)
                continue
            if idx in replaced:
                stmt = replaced[idx]
            elif isinstance(stmt, cst.ClassDef) and stmt.name.value not in source_names:
                stmt = _strip_generated_members(stmt)
                if stmt is not body[idx]:
                    result.warnings.append(
                        f"{path}: removed generated members of {stmt.name.value}, "
                        "which has no casetag pragma."
                    )
            new_body.append(stmt)
            new_body.extend(inserted.get(idx, []))

        if regenerated:
            new_body = _ensure_enum_import(new_body)
        new_body = update_all(new_body, public_names, retired_names)
        result.code = module.with_changes(header=header, body=new_body).code
        return result

    def _pragmas(
        self,
        node: cst.ClassDef,
        module: cst.Module,
        positions: Mapping[cst.CSTNode, CodeRange],
        *,
        first: bool,
    ) -> list[Pragma]:
        # Comments above the first statement of a module land in its header.
        lines = [*module.header, *node.leading_lines] if first else list(node.leading_lines)
        head = node.decorators[0] if node.decorators else node
        return find_pragmas(lines, positions[head].start.line - len(lines))

    def _directives(self, pragmas: Sequence[Pragma]) -> list[Directive]:
        directives: list[Directive] = []
        for pragma in pragmas:
            try:
                directives.extend(parse_directive_list(pragma.text))
            except DirectiveError as exc:
                raise exc.at(pragma.column + exc.column, line=pragma.line)
        return directives

    def plan_source(self, source: str, path: Path) -> TransformPlan:
        result = self.transform_source(source, path=str(path))
        plan = TransformPlan(
            companions=result.companions,
            warnings=result.warnings,
            errors=result.errors,
        )
        if result.code != source:
            end_line = len(source.splitlines())
            plan.edits.append(
                TextEdit(
                    path=str(path),
                    start=(0, 0),
                    end=(end_line, 0),
                    replacement=result.code,
                )
            )
        return plan

    def plan_file(self, path: Path) -> TransformPlan:
        if self.project_root and not path.is_absolute():
            path = self.project_root / path
        try:
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            return TransformPlan(errors=[f"Failed to read {path}: {exc}"])
        logger.debug("planning %s", path)
        return self.plan_source(source, path)

    def plan_paths(self, paths: Iterable[Path]) -> TransformPlan:
        plan = TransformPlan()
        for path in self.iter_files(paths):
            plan.extend(self.plan_file(path))
        return plan

    def iter_files(self, paths: Iterable[Path]) -> list[Path]:
        files: list[Path] = []
        for path in paths:
            if self.project_root and not path.is_absolute():
                path = self.project_root / path
            candidates = sorted(path.rglob("*.py")) if path.is_dir() else [path]
            for candidate in candidates:
                if self._excluded(candidate) or candidate in files:
                    continue
                files.append(candidate)
        return files

    def _excluded(self, path: Path) -> bool:
        parts = set(path.parts)
        return any(fragment in parts for fragment in self.config.exclude)


def apply_edits(edits: Iterable[TextEdit]) -> list[Path]:
    written: list[Path] = []
    for edit in edits:
        path = Path(edit.path)
        path.write_text(edit.replacement, encoding="utf-8")
        written.append(path)
    return written
