"""
Grammar AST, generic groups and groups.

A ``GrammarType`` classifies S-expressions; it corresponds to a non-terminal
in a context-free grammar. Sequence types classify runs of S-expressions,
either a whole list or the arguments following a constructor.

The grammars of a mutually recursive family are split in two parts:

- a ``GenericGroup`` that depends only on the textual declarations. It never
  refers to the grammars of other types directly, only to implicit
  variables, so it is the same for every instantiation and can be shared.
- a ``Group`` that binds the implicit variables to concrete grammars.

For instance ``type t = X of u`` is handled as::

    type 'u t_generic = X of 'u
    type t_instance = u t_generic

If ``u`` comes from a functor argument, ``t_generic`` is identical for all
applications of the functor and only the small instance part varies.

Variables are plain indices:
- ``ImplicitVar(i)`` is bound by the ``implicit_vars`` of the enclosing
  generic group.
- ``ExplicitVar(i)`` is bound by the nearest ancestral ``ExplicitBind``.
  These are not de Bruijn indices; an inner binder hides all outer slots.

Every node is a frozen model with a ``kind`` discriminator so grammars can
be loaded from and dumped to JSON. Sequences are tuples so nodes hash and
compare structurally.
"""

from __future__ import annotations

from functools import cache
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from ..ids import GenericGroupId, GroupId, LazyGroupId, compute_generic_group_id
from .atoms import Atom

# ---------------------------------------------------------------------------
# Type nodes
# ---------------------------------------------------------------------------


class AnyType(BaseModel):
    """Any list or atom."""

    kind: Literal["any"] = "any"

    model_config = ConfigDict(frozen=True)


class ApplyType(BaseModel):
    """Assign types to the explicit variables of the binder ``base`` reaches."""

    kind: Literal["apply"] = "apply"
    base: GrammarType
    args: tuple[GrammarType, ...] = ()

    model_config = ConfigDict(frozen=True)


class AtomType(BaseModel):
    """An atom accepted by the given classifier."""

    kind: Literal["atom"] = "atom"
    atom: Atom

    model_config = ConfigDict(frozen=True)


class ExplicitBind(BaseModel):
    """
    Opens ``len(names)`` explicit variable slots scoped to ``body``.

    In ``ExplicitBind(names=("a", "b"), body=ExplicitVar(index=0))`` the
    variable is ``a``. Names are cosmetic.
    """

    kind: Literal["explicit_bind"] = "explicit_bind"
    names: tuple[str, ...]
    body: GrammarType

    model_config = ConfigDict(frozen=True)


class ExplicitVar(BaseModel):
    """Slot of the nearest enclosing ExplicitBind."""

    kind: Literal["explicit_var"] = "explicit_var"
    index: int = Field(ge=0)

    model_config = ConfigDict(frozen=True)


class EmbeddedGrammar(BaseModel):
    """Embeds another grammar (a Ref into some group, or an Inline type)."""

    kind: Literal["grammar"] = "grammar"
    payload: Grammar

    model_config = ConfigDict(frozen=True)


class ImplicitVar(BaseModel):
    """Slot of the enclosing generic group's implicit vars."""

    kind: Literal["implicit_var"] = "implicit_var"
    index: int = Field(ge=0)

    model_config = ConfigDict(frozen=True)


class ListType(BaseModel):
    """A list whose elements match the sequence type ``components``."""

    kind: Literal["list"] = "list"
    components: tuple[Component, ...] = ()

    model_config = ConfigDict(frozen=True)


class OptionType(BaseModel):
    """
    An optional value.

    Absence is ``None`` or ``()``; presence is ``(Some v)`` or ``(v)``.
    """

    kind: Literal["option"] = "option"
    type: GrammarType

    model_config = ConfigDict(frozen=True)


class RecordField(BaseModel):
    """A field in a record: its arguments must match ``args``."""

    optional: bool = False
    args: tuple[Component, ...] = ()

    model_config = ConfigDict(frozen=True)


class RecordType(BaseModel):
    """
    A list of ``(label args...)`` lists in any order.

    For recognition ``RecordType`` is equivalent to a ``ListType`` with a
    single ``Fields`` component.
    """

    kind: Literal["record"] = "record"
    allow_extra_fields: bool = False
    fields: tuple[tuple[str, RecordField], ...] = ()

    model_config = ConfigDict(frozen=True)

    def field(self, label: str) -> RecordField | None:
        """Return the first field declared under ``label``."""
        for name, spec in self.fields:
            if name == label:
                return spec
        return None

    @property
    def required_labels(self) -> frozenset[str]:
        return frozenset(name for name, spec in self.fields if not spec.optional)


class RecursiveRef(BaseModel):
    """A member of the same mutually recursive family, looked up by name."""

    kind: Literal["recursive"] = "recursive"
    name: str

    model_config = ConfigDict(frozen=True)


class UnionType(BaseModel):
    """
    Any S-expression matching one of ``types``.

    ``UnionType(types=())`` is the empty type and matches nothing.
    """

    kind: Literal["union"] = "union"
    types: tuple[GrammarType, ...] = ()

    model_config = ConfigDict(frozen=True)


class VariantType(BaseModel):
    """
    A tagged union.

    A list alternative matches ``(label args...)``; an alternative with an
    empty sequence matches the bare atom ``label`` instead. With
    ``ignore_capitalization`` the label's first character may have either case.
    """

    kind: Literal["variant"] = "variant"
    ignore_capitalization: bool = False
    alternatives: tuple[tuple[str, tuple[Component, ...]], ...] = ()

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Sequence components
# ---------------------------------------------------------------------------


class One(BaseModel):
    """Exactly one S-expression of the given type."""

    kind: Literal["one"] = "one"
    type: GrammarType

    model_config = ConfigDict(frozen=True)


class MaybeOne(BaseModel):
    """One S-expression of the given type, or nothing (the Optional component)."""

    kind: Literal["optional"] = "optional"
    type: GrammarType

    model_config = ConfigDict(frozen=True)


class Many(BaseModel):
    """Any number of S-expressions, each of the given type."""

    kind: Literal["many"] = "many"
    type: GrammarType

    model_config = ConfigDict(frozen=True)


class Fields(BaseModel):
    """A run of field lists, collectively matching ``record``."""

    kind: Literal["fields"] = "fields"
    record: RecordType

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------


@cache
def _types_adapter() -> TypeAdapter[Any]:
    return TypeAdapter(tuple[tuple[str, GrammarType], ...])


class GenericGroup(BaseModel):
    """
    Parameter-free grammar of a mutually recursive family.

    ``types`` is the arena of family members; ``RecursiveRef(name)`` is a
    lookup into it. When ``ggid`` is omitted it is computed from the content.
    """

    implicit_vars: tuple[str, ...] = ()
    ggid: GenericGroupId = ""
    types: tuple[tuple[str, GrammarType], ...] = ()

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _fill_ggid(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("ggid"):
            implicit_vars = tuple(data.get("implicit_vars", ()))
            types = _types_adapter().validate_python(data.get("types", ()))
            data = {
                **data,
                "implicit_vars": implicit_vars,
                "types": types,
                "ggid": compute_generic_group_id(implicit_vars, types),
            }
        return data

    @property
    def arity(self) -> int:
        return len(self.implicit_vars)

    @property
    def type_names(self) -> list[str]:
        return [name for name, _ in self.types]

    def lookup(self, name: str) -> GrammarType | None:
        """Return the first type declared under ``name``."""
        for type_name, type_ in self.types:
            if type_name == name:
                return type_
        return None


class Group(BaseModel):
    """
    A generic group bound to concrete grammars.

    ``apply_implicit[i]`` is the grammar of ``ImplicitVar(i)``. ``gid`` is
    allocated on first observation; ``origin`` is a provenance hint only.
    Equality includes the gid cell, so only the same instantiation site
    compares equal.
    """

    gid: LazyGroupId = Field(default_factory=LazyGroupId, exclude=True)
    generic_group: GenericGroup
    origin: str = ""
    apply_implicit: tuple[Grammar, ...] = ()

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @property
    def gid_value(self) -> GroupId:
        """The instantiation id. Observing it allocates it."""
        return self.gid.force()


class Ref(BaseModel):
    """Reference to the type ``type_name`` of ``group``."""

    kind: Literal["ref"] = "ref"
    type_name: str
    group: Group

    model_config = ConfigDict(frozen=True)


class Inline(BaseModel):
    """A self-contained type with no group indirection."""

    kind: Literal["inline"] = "inline"
    type: GrammarType

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Union types
# ---------------------------------------------------------------------------

GrammarType = Annotated[
    AnyType
    | ApplyType
    | AtomType
    | ExplicitBind
    | ExplicitVar
    | EmbeddedGrammar
    | ImplicitVar
    | ListType
    | OptionType
    | RecordType
    | RecursiveRef
    | UnionType
    | VariantType,
    Field(discriminator="kind"),
]

Component = Annotated[One | MaybeOne | Many | Fields, Field(discriminator="kind")]

Grammar = Annotated[Ref | Inline, Field(discriminator="kind")]

SequenceType = tuple[Component, ...]

# Rebuild models for recursive forward references
for _model in (
    ApplyType,
    ExplicitBind,
    EmbeddedGrammar,
    ListType,
    OptionType,
    RecordField,
    RecordType,
    UnionType,
    VariantType,
    One,
    MaybeOne,
    Many,
    Fields,
    GenericGroup,
    Group,
    Ref,
    Inline,
):
    _model.model_rebuild()
del _model
