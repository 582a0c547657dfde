"""
Atom classifier types for grammar IR.

An atom classifier describes which scalar (non-list) S-expressions a grammar
accepts at a given position.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AtomKind(StrEnum):
    """Recognized atomic value shapes."""

    STRING = "string"  # any atom
    BOOL = "bool"  # true, false, True, False
    CHAR = "char"  # a single-character atom
    FLOAT = "float"
    INT = "int"
    THIS = "this"  # exactly one literal


class Atom(BaseModel):
    """
    An atom classifier.

    ``THIS`` carries the literal it accepts. With ``ignore_capitalization``
    the literal also matches with its first character's case toggled, which
    mirrors how derived converters print constructor names.

    Examples:
        - Atom(kind=AtomKind.INT)
        - Atom(kind=AtomKind.THIS, literal="Foo", ignore_capitalization=True)
    """

    kind: AtomKind
    literal: str | None = Field(default=None, description="Accepted literal for THIS")
    ignore_capitalization: bool = False

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_literal(self) -> Atom:
        if self.kind == AtomKind.THIS and self.literal is None:
            raise ValueError("THIS atoms require a literal")
        if self.kind != AtomKind.THIS and self.literal is not None:
            raise ValueError(f"{self.kind} atoms do not take a literal")
        return self

    @classmethod
    def this(cls, literal: str, ignore_capitalization: bool = False) -> Atom:
        """Shorthand for a THIS classifier."""
        return cls(
            kind=AtomKind.THIS, literal=literal, ignore_capitalization=ignore_capitalization
        )


STRING = Atom(kind=AtomKind.STRING)
BOOL = Atom(kind=AtomKind.BOOL)
CHAR = Atom(kind=AtomKind.CHAR)
FLOAT = Atom(kind=AtomKind.FLOAT)
INT = Atom(kind=AtomKind.INT)
