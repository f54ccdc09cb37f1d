"""casetag package root."""

from casetag.directives import Directive, DirectiveKind
from casetag.exceptions import (
    DirectiveError,
    DirectiveWrongLevel,
    MalformedEntry,
    UnknownDirective,
)
from casetag.policy import PolicyResolver, parse_directive_list

__all__ = [
    "__version__",
    "Directive",
    "DirectiveError",
    "DirectiveKind",
    "DirectiveWrongLevel",
    "MalformedEntry",
    "PolicyResolver",
    "UnknownDirective",
    "parse_directive_list",
]

__version__ = "0.1.0"
