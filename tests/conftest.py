from __future__ import annotations

import sys
import textwrap
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))


import pytest


@pytest.fixture
def kind_module() -> str:
    return textwrap.dedent(
        """
        import enum
        from dataclasses import dataclass
        from functools import total_ordering


        # casetag: display_variant_snake, iterator
        @total_ordering
        @dataclass(frozen=True)
        class Kind:
            def __lt__(self, other):
                return NotImplemented


        class FieldA(Kind, tuple[int]):
            pass


        @dataclass(frozen=True)
        class ThisIsFieldB(Kind):
            value: str


        class C(Kind):
            pass


        class ABC(Kind):
            pass
        """
    ).lstrip()
