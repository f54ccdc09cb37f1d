from __future__ import annotations

import keyword
import re
import string

from casetag.model import Visibility

_DOTTED_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")


def snake_case(value: str) -> str:
    chars: list[str] = []
    for idx, char in enumerate(value):
        if idx > 0 and char in string.ascii_uppercase:
            chars.append("_")
        chars.append(char.lower())
    return "".join(chars)


def is_identifier(value: str) -> bool:
    return value.isidentifier() and not keyword.iskeyword(value)


def is_dotted_name(value: str) -> bool:
    if not _DOTTED_NAME_RE.match(value):
        return False
    return all(not keyword.iskeyword(part) for part in value.split("."))


def spell_for_visibility(name: str, visibility: Visibility) -> str:
    """Apply the leading-underscore convention to a generated type name."""
    bare = name.lstrip("_")
    if not is_identifier(bare):
        return name
    if visibility is Visibility.PRIVATE:
        return name if name.startswith("_") else f"_{name}"
    return bare
