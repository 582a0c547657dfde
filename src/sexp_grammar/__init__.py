"""
sexp_grammar - shareable grammars for S-expression data.

Grammars describe which S-expressions a family of mutually recursive types
accepts. The generic part of a family is content-addressed and shared across
instantiations; instantiations carry lazily allocated identities.

Usage:
    from sexp_grammar import ir, matches, simplify_grammar

    grammar = ir.Inline(type=ir.AtomType(atom=ir.INT))
    matches(grammar, "42")  # True
"""

from __future__ import annotations

from ._version import get_version
from .core import ir
from .core.cache import GenericGroupCache, canonicalize, default_cache, intern_generic_group
from .core.environment import GrammarSettings, get_settings
from .core.errors import (
    ArityMismatchError,
    GrammarError,
    GrammarValidationError,
    RecognitionDepthError,
    SexpGrammarError,
    SexpParseError,
    UnboundExplicitVarError,
    UnboundImplicitVarError,
    UnknownRecursiveRefError,
)
from .core.ids import LazyGroupId, compute_generic_group_id
from .core.recognizer import Mismatch, matches, mismatches
from .core.resolver import instantiate, instantiate_grammar, resolve
from .core.sexp import Sexp, parse_sexp, parse_sexps, to_string
from .core.simplifier import SimplifyResult, simplify, simplify_grammar
from .core.validator import (
    GrammarViolation,
    Severity,
    ViolationKind,
    assert_valid,
    validate,
    validate_grammar,
    validate_group,
    validate_type,
)

__version__ = get_version()

__all__ = [
    "__version__",
    "ir",
    # Identity and sharing
    "GenericGroupCache",
    "LazyGroupId",
    "canonicalize",
    "compute_generic_group_id",
    "default_cache",
    "intern_generic_group",
    # Operations
    "instantiate",
    "instantiate_grammar",
    "matches",
    "mismatches",
    "resolve",
    "simplify",
    "simplify_grammar",
    "SimplifyResult",
    "Mismatch",
    # Validation
    "GrammarViolation",
    "Severity",
    "ViolationKind",
    "assert_valid",
    "validate",
    "validate_grammar",
    "validate_group",
    "validate_type",
    # Values
    "Sexp",
    "parse_sexp",
    "parse_sexps",
    "to_string",
    # Configuration
    "GrammarSettings",
    "get_settings",
    # Errors
    "ArityMismatchError",
    "GrammarError",
    "GrammarValidationError",
    "RecognitionDepthError",
    "SexpGrammarError",
    "SexpParseError",
    "UnboundExplicitVarError",
    "UnboundImplicitVarError",
    "UnknownRecursiveRefError",
]
