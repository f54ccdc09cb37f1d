from __future__ import annotations

import sys
import textwrap
import types
from pathlib import Path

import libcst as cst
import pytest

from casetag.model import Named, Positional, Unit
from casetag.transform.engine import (
    TransformConfig,
    TransformEngine,
    apply_edits,
    find_pragmas,
    read_shape,
)


def _src(code: str) -> str:
    return textwrap.dedent(code).lstrip()


def _run(code: str, **config) -> tuple[str, list[str], list[str]]:
    engine = TransformEngine(TransformConfig(**config))
    result = engine.transform_source(_src(code))
    return result.code, result.warnings, result.errors


@pytest.fixture
def load_module():
    loaded: list[str] = []

    def _load(code: str) -> types.ModuleType:
        name = f"casetag_sample_{len(loaded)}"
        module = types.ModuleType(name)
        sys.modules[name] = module
        loaded.append(name)
        exec(compile(code, f"<{name}>", "exec"), module.__dict__)
        return module

    yield _load
    for name in loaded:
        sys.modules.pop(name, None)


def test_engine_generates_companion_after_last_case(kind_module: str) -> None:
    result = TransformEngine().transform_source(kind_module)
    assert result.errors == []
    code = result.code
    assert "# casetag-generated: Kind\n@total_ordering\nclass KindId(enum.Enum):\n" in code
    assert "@dataclass(frozen=True)\nclass KindId" not in code
    assert "    def __lt__(self, other):\n        if type(other) is not type(self):\n" in code
    assert code.index("class ABC(Kind):") < code.index("class KindId(enum.Enum):")
    for name in ("FieldA", "ThisIsFieldB", "C", "ABC"):
        assert f"    {name} = enum.auto()\n" in code


def test_engine_emits_projector_patterns(kind_module: str) -> None:
    code = TransformEngine().transform_source(kind_module).code
    assert '    def id(self) -> "KindId":\n        match self:\n' in code
    assert "            case FieldA((_,)):\n                return KindId.FieldA\n" in code
    assert "            case ThisIsFieldB(value=_):\n" in code
    assert "            case C():\n" in code
    assert "            case ABC():\n" in code


def test_engine_emits_snake_display_and_as_list(kind_module: str) -> None:
    code = TransformEngine().transform_source(kind_module).code
    assert "            case KindId.FieldA:\n                return \"field_a\"\n" in code
    assert 'return "this_is_field_b"' in code
    assert 'return "a_b_c"' in code
    assert (
        "    @staticmethod\n"
        '    def as_list() -> list["KindId"]:\n'
        "        return [KindId.FieldA, KindId.ThisIsFieldB, KindId.C, KindId.ABC]\n"
    ) in code


def test_engine_is_idempotent(kind_module: str) -> None:
    engine = TransformEngine()
    first = engine.transform_source(kind_module).code
    second = engine.transform_source(first)
    assert second.code == first
    assert second.warnings == []


def test_engine_regenerates_after_new_case(kind_module: str) -> None:
    engine = TransformEngine()
    first = engine.transform_source(kind_module).code
    grown = first + "\n\nclass Late(Kind):\n    pass\n"
    code = engine.transform_source(grown).code
    assert code.count("class KindId(enum.Enum):") == 1
    assert code.count("    def id(self)") == 1
    assert code.index("class Late(Kind):") < code.index("class KindId(enum.Enum):")
    assert "    Late = enum.auto()\n" in code


def test_engine_reports_companion_summary(kind_module: str) -> None:
    result = TransformEngine().transform_source(kind_module, path="kinds.py")
    assert len(result.companions) == 1
    summary = result.companions[0]
    assert summary.path == "kinds.py"
    assert summary.source == "Kind"
    assert summary.companion == "KindId"
    assert summary.projector == "id"
    assert summary.visibility == "public"
    assert summary.decorators == ["total_ordering"]
    assert summary.cases == ["FieldA", "ThisIsFieldB", "C", "ABC"]
    assert summary.display == "variant_snake"
    assert summary.iterator is True
    assert summary.display_from_value is False


def test_engine_leaves_modules_without_pragmas_alone() -> None:
    source = _src(
        """
        class Kind:
            pass


        class A(Kind):
            pass
        """
    )
    result = TransformEngine().transform_source(source)
    assert result.code == source
    assert result.companions == []


def test_engine_reports_unknown_directive_with_location() -> None:
    source = _src(
        """
        import enum


        # casetag: unknown = "value"
        class Kind:
            pass


        class A(Kind):
            pass
        """
    )
    result = TransformEngine().transform_source(source)
    assert result.errors == [
        '<string>:4:12: Cannot parse directive "unknown": Unknown directive "unknown"'
    ]
    assert result.code == source
    assert not result.ok


def test_engine_reports_wrong_level_on_decorated_class() -> None:
    _, _, errors = _run(
        """
        import enum


        # casetag: display, getter
        @total_ordering
        class Kind:
            pass
        """
    )
    assert errors == [
        '<string>:4:21: Directive "getter" cannot be applied at this level'
    ]


def test_engine_reports_malformed_value_at_equals() -> None:
    _, _, errors = _run(
        """
        # casetag: name = Tag
        class Kind:
            pass
        """
    )
    assert errors == ['<string>:1:17: Expecting expression like key = "value as String"']


def test_engine_error_skips_only_that_source() -> None:
    code, _, errors = _run(
        """
        import enum


        # casetag: bogus
        class Broken:
            pass


        class X(Broken):
            pass


        # casetag:
        class Fine:
            pass


        class Y(Fine):
            pass
        """
    )
    assert len(errors) == 1
    assert errors[0].startswith("<string>:4:12: ")
    assert "class FineId(enum.Enum):" in code
    assert "BrokenId" not in code


def test_engine_joins_stacked_pragmas() -> None:
    code, _, errors = _run(
        """
        # casetag: display
        # casetag: iterator, getter = "kind"
        class Kind:
            pass


        class A(Kind):
            pass
        """
    )
    assert errors == []
    assert 'def kind(self) -> "KindId":' in code
    assert 'return "Kind::A"' in code
    assert "def as_list()" in code


def test_engine_inserts_enum_import_after_import_block() -> None:
    code, _, _ = _run(
        '''
        """Shapes."""

        from __future__ import annotations


        # casetag:
        class Kind:
            pass


        class A(Kind):
            pass
        '''
    )
    assert "from __future__ import annotations\nimport enum\n" in code
    assert code.count("import enum") == 1


def test_engine_keeps_first_statement_pragma_with_its_class() -> None:
    source = _src(
        """
        # casetag: display
        class Kind:
            pass


        class A(Kind):
            pass
        """
    )
    engine = TransformEngine()
    first = engine.transform_source(source)
    assert first.errors == []
    assert first.code.startswith("import enum\n# casetag: display\nclass Kind:\n")
    assert engine.transform_source(first.code).code == first.code


def test_engine_warns_about_source_without_cases() -> None:
    code, warnings, errors = _run(
        """
        import enum


        # casetag: iterator
        class Lonely:
            pass
        """
    )
    assert errors == []
    assert warnings == ["<string>: Lonely has no cases; its companion is empty."]
    assert "class LonelyId(enum.Enum):" in code
    assert "return []" in code
    assert "match self" not in code


def test_engine_places_companion_after_last_case_not_last_class() -> None:
    code, _, _ = _run(
        """
        # casetag:
        class Kind:
            pass


        class A(Kind):
            pass


        class Unrelated:
            pass
        """
    )
    assert code.index("class A(Kind):") < code.index("class KindId")
    assert code.index("class KindId") < code.index("class Unrelated:")


def test_engine_supports_generic_sources() -> None:
    code, _, errors = _run(
        """
        from typing import Generic, TypeVar

        T = TypeVar("T")


        # casetag:
        class Box(Generic[T]):
            pass


        class Full(Box[T]):
            item: T


        class Empty(Box[T]):
            pass
        """
    )
    assert errors == []
    assert "case Full(item=_):" in code
    assert "case Empty():" in code
    assert "class BoxId(enum.Enum):" in code


def test_engine_updates_dunder_all_for_public_companion() -> None:
    code, _, _ = _run(
        """
        import enum

        __all__ = ["Kind"]


        # casetag:
        class Kind:
            pass


        class A(Kind):
            pass
        """
    )
    assert '__all__ = ["Kind", "KindId"]' in code


def test_engine_keeps_private_companion_out_of_dunder_all() -> None:
    code, _, _ = _run(
        """
        import enum

        __all__ = ["Kind"]


        # casetag: not_public
        class Kind:
            pass


        class A(Kind):
            pass
        """
    )
    assert '__all__ = ["Kind"]' in code
    assert "class _KindId(enum.Enum):" in code
    assert 'def id(self) -> "_KindId":' in code


def test_engine_public_directive_overrides_private_source() -> None:
    code, _, _ = _run(
        """
        import enum

        __all__ = []


        # casetag: public
        class _Kind:
            pass


        class A(_Kind):
            pass
        """
    )
    assert "class KindId(enum.Enum):" in code
    assert '__all__ = ["KindId"]' in code


def test_engine_renames_companion_in_dunder_all() -> None:
    engine = TransformEngine()
    first = engine.transform_source(
        _src(
            """
            import enum

            __all__ = ["Kind"]


            # casetag: name = "Tag"
            class Kind:
                pass


            class A(Kind):
                pass
            """
        )
    ).code
    assert '__all__ = ["Kind", "Tag"]' in first
    renamed = engine.transform_source(first.replace('name = "Tag"', 'name = "Other"')).code
    assert '__all__ = ["Kind", "Other"]' in renamed
    assert "class Tag(" not in renamed


def test_engine_removes_orphaned_generated_code() -> None:
    code, warnings, errors = _run(
        """
        import enum


        class Kind:
            pass

            # casetag-generated: Kind
            def id(self) -> "KindId":
                return KindId.A


        class A(Kind):
            pass


        # casetag-generated: Kind
        class KindId(enum.Enum):
            A = enum.auto()
        """
    )
    assert errors == []
    assert "KindId" not in code
    assert "def id" not in code
    assert len(warnings) == 2
    assert all("has no casetag pragma" in warning for warning in warnings)


def test_engine_strict_mode_rejects_conflicts() -> None:
    source = """
        # casetag: public, not_public
        class Kind:
            pass


        class A(Kind):
            pass
        """
    _, _, errors = _run(source, strict=True)
    assert errors == [
        '<string>:1:11: Directives "public" and "not_public" cannot be combined'
    ]
    code, _, errors = _run(source)
    assert errors == []
    assert "class KindId(enum.Enum):" in code


def test_engine_strict_mode_checks_display_from_value_shapes() -> None:
    _, _, errors = _run(
        """
        # casetag: display_from_value
        class Value:
            pass


        class Int(Value, tuple[int]):
            pass


        class Nothing(Value):
            pass
        """,
        strict=True,
    )
    assert len(errors) == 1
    assert 'case "Nothing"' in errors[0]


def test_engine_derive_config_filters_decorators() -> None:
    source = """
        # casetag:
        @unique
        @total_ordering
        class Kind:
            pass


        class A(Kind):
            pass
        """
    code, _, _ = _run(source, derive_decorators=("unique",))
    assert "@unique\nclass KindId" in code
    assert "@total_ordering\nclass KindId" not in code


def test_engine_reports_parse_failures() -> None:
    result = TransformEngine().transform_source("class (:\n", path="broken.py")
    assert result.code == "class (:\n"
    assert result.errors[0].startswith("LibCST parse failed for broken.py")


@pytest.mark.parametrize(
    ("code", "expected"),
    [
        ("class A(Kind):\n    pass\n", Unit()),
        ("class A(Kind, tuple[int]):\n    pass\n", Positional(1)),
        ("class A(Kind, tuple[int, str]):\n    pass\n", Positional(2)),
        ("class A(Kind, tuple[int, ...]):\n    pass\n", Positional(1)),
        ("class A(Kind):\n    x: int\n    y: str = ''\n", Named(("x", "y"))),
        ("class A(Kind):\n    tag: ClassVar[str] = 'a'\n", Unit()),
    ],
)
def test_read_shape(code: str, expected) -> None:
    node = cst.parse_statement(code)
    assert isinstance(node, cst.ClassDef)
    assert read_shape(node) == expected


def test_find_pragmas_tracks_line_and_column() -> None:
    module = cst.parse_module("x = 1\n\n  # casetag: display\n# other\nclass Kind:\n    pass\n")
    node = module.body[1]
    pragmas = find_pragmas(node.leading_lines, 2)
    assert [(p.text, p.line, p.column) for p in pragmas] == [(" display", 3, 12)]


def test_generated_code_runs(load_module) -> None:
    code, _, errors = _run(
        """
        import enum


        # casetag: display, iterator
        class Shape:
            pass


        class Circle(Shape):
            radius: float

            def __init__(self, radius):
                self.radius = radius


        class Empty(Shape):
            pass


        class Pair(Shape, tuple[int, int]):
            pass
        """
    )
    assert errors == []
    module = load_module(code)
    shape_id = module.ShapeId
    assert module.Circle(1.0).id() is shape_id.Circle
    assert module.Empty().id() is shape_id.Empty
    assert module.Pair((1, 2)).id() is shape_id.Pair
    assert str(shape_id.Circle) == "Shape::Circle"
    assert shape_id.as_list() == [shape_id.Circle, shape_id.Empty, shape_id.Pair]
    with pytest.raises(TypeError):
        module.Shape().id()


def test_generated_display_from_value_runs(load_module) -> None:
    code, _, errors = _run(
        """
        import enum


        # casetag: display_from_value
        class Value:
            pass


        class Int(Value, tuple[int]):
            pass


        class Text(Value, tuple[str]):
            pass


        class Nothing(Value):
            pass
        """
    )
    assert errors == []
    module = load_module(code)
    assert str(module.Int((12,))) == "12"
    assert str(module.Text(("hi",))) == "hi"
    assert module.Int((12,)).id() is module.ValueId.Int
    with pytest.raises(TypeError):
        str(module.Nothing())


def _write(path: Path, code: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_src(code), encoding="utf-8")
    return path


SAMPLE = """
    # casetag:
    class Kind:
        pass


    class A(Kind):
        pass
    """


def test_plan_paths_walks_directories_and_honours_exclude(tmp_path: Path) -> None:
    target = _write(tmp_path / "pkg" / "kinds.py", SAMPLE)
    _write(tmp_path / "pkg" / "skip" / "other.py", SAMPLE)
    _write(tmp_path / "pkg" / "plain.py", "x = 1\n")
    engine = TransformEngine(TransformConfig(exclude=("skip",)))
    plan = engine.plan_paths([tmp_path / "pkg"])
    assert plan.errors == []
    assert [edit.path for edit in plan.edits] == [str(target)]
    assert [item.companion for item in plan.companions] == ["KindId"]


def test_apply_edits_then_plan_is_clean(tmp_path: Path) -> None:
    target = _write(tmp_path / "kinds.py", SAMPLE)
    engine = TransformEngine()
    plan = engine.plan_paths([target])
    assert apply_edits(plan.edits) == [target]
    assert "class KindId(enum.Enum):" in target.read_text(encoding="utf-8")
    assert engine.plan_paths([target]).edits == []


def test_plan_paths_resolves_relative_to_project_root(tmp_path: Path) -> None:
    _write(tmp_path / "kinds.py", SAMPLE)
    plan = TransformEngine(project_root=tmp_path).plan_paths([Path("kinds.py")])
    assert [edit.path for edit in plan.edits] == [str(tmp_path / "kinds.py")]


def test_plan_file_reports_read_failure(tmp_path: Path) -> None:
    plan = TransformEngine().plan_file(tmp_path / "missing.py")
    assert plan.edits == []
    assert plan.errors[0].startswith("Failed to read")


DECORATED = """
    import enum
    from dataclasses import dataclass
    from functools import total_ordering


    # casetag: iterator{extra}
    @total_ordering
    @dataclass(frozen=True)
    class Kind:
        def __lt__(self, other):
            return NotImplemented


    @dataclass(frozen=True)
    class B(Kind):
        value: str


    class C(Kind):
        pass


    class D(Kind):
        pass
    """


def _check_companion(module: types.ModuleType) -> None:
    kind_id = module.KindId
    assert kind_id.B != kind_id.C
    assert len({kind_id.B, kind_id.C, kind_id.D}) == 3
    assert repr(kind_id.B) == "<KindId.B: 1>"
    assert module.B("x").id() is kind_id.B
    assert module.C().id() is kind_id.C
    assert module.D().id() is kind_id.D
    assert kind_id.B < kind_id.C < kind_id.D
    assert kind_id.D >= kind_id.B
    assert sorted(reversed(kind_id.as_list())) == [kind_id.B, kind_id.C, kind_id.D]
    with pytest.raises(TypeError):
        kind_id.B < 1


def test_decorated_source_yields_working_companion(load_module) -> None:
    code, _, errors = _run(DECORATED.format(extra=""))
    assert errors == []
    assert "@total_ordering\nclass KindId(enum.Enum):" in code
    assert "@dataclass(frozen=True)\nclass KindId" not in code
    _check_companion(load_module(code))


def test_explicit_derive_with_unique_and_total_ordering_runs(load_module) -> None:
    code, _, errors = _run(
        DECORATED.format(extra=', derive = "enum.unique, total_ordering"')
    )
    assert errors == []
    assert "@enum.unique\n@total_ordering\nclass KindId(enum.Enum):" in code
    _check_companion(load_module(code))


def test_engine_keeps_explicit_name_verbatim_without_visibility_flag() -> None:
    code, _, errors = _run(
        """
        # casetag: name = "_Tag"
        class Kind:
            pass


        class A(Kind):
            pass
        """
    )
    assert errors == []
    assert "class _Tag(enum.Enum):" in code
    assert 'def id(self) -> "_Tag":' in code
