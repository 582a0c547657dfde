"""
Error types for S-expression grammar handling.

Malformed grammars are producer defects. ``validate`` reports them as data;
the traversal operations (resolve, instantiate, matches) raise the
``GrammarError`` subclasses below when they hit one at the point of use.
A value that fails to match a grammar is never an error.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .validator import GrammarViolation


class SexpGrammarError(Exception):
    """Base exception for all sexp_grammar errors."""

    def __init__(self, message: str, context: ErrorContext | None = None):
        self.message = message
        self.context = context
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with context if available."""
        if self.context:
            return f"{self.context.format()}: {self.message}"
        return self.message


class GrammarError(SexpGrammarError):
    """
    Raised when a malformed grammar is used.

    Examples:
    - Explicit variable outside of any binder
    - Implicit variable index out of range
    - Recursive reference to a missing type name
    - Apply whose base never reaches a binder
    """

    pass


class UnboundExplicitVarError(GrammarError):
    """An ExplicitVar with no enclosing ExplicitBind covering its index."""

    pass


class UnboundImplicitVarError(GrammarError):
    """An ImplicitVar whose index is outside the generic group's implicit vars."""

    pass


class ArityMismatchError(GrammarError):
    """Argument count differs from the number of slots it should fill."""

    pass


class UnknownRecursiveRefError(GrammarError):
    """A RecursiveRef naming a type absent from the enclosing generic group."""

    pass


class RecognitionDepthError(GrammarError):
    """Recognition exceeded the configured maximum depth without consuming input."""

    pass


class GrammarValidationError(SexpGrammarError):
    """Raised by ``assert_valid`` when a grammar has error-level violations."""

    def __init__(self, violations: list[GrammarViolation]):
        self.violations = violations
        lines = [f"{len(violations)} grammar violation(s):"]
        lines.extend(f"  - {v.format()}" for v in violations)
        super().__init__("\n".join(lines))


class SexpParseError(SexpGrammarError):
    """Raised when S-expression text cannot be parsed."""

    def __init__(self, message: str, pos: int):
        self.pos = pos
        super().__init__(f"{message} at offset {pos}")


@dataclass
class ErrorContext:
    """
    Where in a grammar an error was found.

    Attributes:
        type_name: Name of the family member being traversed, if known
        origin: Human-readable provenance of the group, if known
    """

    type_name: str | None = None
    origin: str | None = None

    def format(self) -> str:
        """
        Format error context as a human-readable string.

        Returns:
            Formatted string like: "type t (from lib/foo.ml:12)"
        """
        parts = []
        if self.type_name:
            parts.append(f"type {self.type_name}")
        if self.origin:
            parts.append(f"(from {self.origin})")
        return " ".join(parts) or "<grammar>"
