"""
Atom classifier rules.

Decides whether a single atom (a ``str``) satisfies an ``Atom`` classifier.
Numeric rules follow OCaml literal syntax as printed by derived converters:
underscores between digits, ``0x``/``0o``/``0b`` integer prefixes, and
``nan``/``inf``/``infinity`` floats.
"""

from __future__ import annotations

import re

from .ir import Atom, AtomKind

_BOOL_SPELLINGS = frozenset({"true", "false", "True", "False"})

_INT_RE = re.compile(
    r"[+-]?(?:0[xX][0-9a-fA-F][0-9a-fA-F_]*"
    r"|0[oO][0-7][0-7_]*"
    r"|0[bB][01][01_]*"
    r"|[0-9][0-9_]*)"
)
_FLOAT_RE = re.compile(
    r"[+-]?(?:[0-9][0-9_]*(?:\.[0-9_]*)?(?:[eE][+-]?[0-9][0-9_]*)?"
    r"|0[xX][0-9a-fA-F][0-9a-fA-F_]*(?:\.[0-9a-fA-F_]*)?(?:[pP][+-]?[0-9][0-9_]*)?"
    r"|nan|inf|infinity)",
    re.IGNORECASE,
)


def equal_modulo_first_char(expected: str, actual: str) -> bool:
    """
    Compare two labels, allowing the first character's case to differ.

    Only the first character is case-toggled; the rest must match exactly.
    An empty label only matches the empty atom. A first character without
    case (digits, punctuation) must match exactly.
    """
    if expected == actual:
        return True
    if not expected or len(expected) != len(actual):
        return False
    if expected[1:] != actual[1:]:
        return False
    first = actual[0]
    return first in (expected[0].lower(), expected[0].upper())


def label_matches(expected: str, actual: str, ignore_capitalization: bool) -> bool:
    if ignore_capitalization:
        return equal_modulo_first_char(expected, actual)
    return expected == actual


def is_int_literal(atom: str) -> bool:
    return _INT_RE.fullmatch(atom) is not None


def is_float_literal(atom: str) -> bool:
    return _FLOAT_RE.fullmatch(atom) is not None


def atom_matches(classifier: Atom, atom: str) -> bool:
    """Return True if ``atom`` satisfies ``classifier``."""
    kind = classifier.kind
    if kind == AtomKind.STRING:
        return True
    if kind == AtomKind.BOOL:
        return atom in _BOOL_SPELLINGS
    if kind == AtomKind.CHAR:
        return len(atom) == 1
    if kind == AtomKind.INT:
        return is_int_literal(atom)
    if kind == AtomKind.FLOAT:
        return is_float_literal(atom)
    if kind == AtomKind.THIS:
        assert classifier.literal is not None  # guaranteed by Atom validation
        return label_matches(classifier.literal, atom, classifier.ignore_capitalization)
    raise ValueError(f"Unknown atom kind: {kind}")


def describe_atom(classifier: Atom) -> str:
    """Short human-readable description, used in mismatch reports."""
    if classifier.kind == AtomKind.THIS:
        return repr(classifier.literal)
    return f"<{classifier.kind}>"
