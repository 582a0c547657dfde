"""
Grammar intermediate representation.

Atom classifiers, the type AST and the generic group / group split.
All types are re-exported from this package.
"""

from .atoms import BOOL, CHAR, FLOAT, INT, STRING, Atom, AtomKind
from .grammar import (
    AnyType,
    ApplyType,
    AtomType,
    Component,
    EmbeddedGrammar,
    ExplicitBind,
    ExplicitVar,
    Fields,
    GenericGroup,
    Grammar,
    GrammarType,
    Group,
    ImplicitVar,
    Inline,
    ListType,
    Many,
    MaybeOne,
    One,
    OptionType,
    RecordField,
    RecordType,
    RecursiveRef,
    Ref,
    SequenceType,
    UnionType,
    VariantType,
)

__all__ = [
    # Atoms
    "Atom",
    "AtomKind",
    "BOOL",
    "CHAR",
    "FLOAT",
    "INT",
    "STRING",
    # Types
    "AnyType",
    "ApplyType",
    "AtomType",
    "EmbeddedGrammar",
    "ExplicitBind",
    "ExplicitVar",
    "GrammarType",
    "ImplicitVar",
    "ListType",
    "OptionType",
    "RecordField",
    "RecordType",
    "RecursiveRef",
    "UnionType",
    "VariantType",
    # Sequences
    "Component",
    "Fields",
    "Many",
    "MaybeOne",
    "One",
    "SequenceType",
    # Groups
    "GenericGroup",
    "Grammar",
    "Group",
    "Inline",
    "Ref",
]
