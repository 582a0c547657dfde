"""
Name resolution and instantiation.

``resolve`` looks a family member up in its generic group. ``instantiate``
substitutes a group's implicit arguments into one of its types, producing a
tree with no implicit variables that can be recognized without any group
context. Recursive references become embedded ``Ref`` grammars, so cyclic
families stay finite.
"""

from __future__ import annotations

from .errors import (
    ArityMismatchError,
    ErrorContext,
    GrammarError,
    UnboundImplicitVarError,
    UnknownRecursiveRefError,
)
from .ir import (
    EmbeddedGrammar,
    GenericGroup,
    Grammar,
    GrammarType,
    Group,
    ImplicitVar,
    Inline,
    RecursiveRef,
    Ref,
)
from .traversal import embed_grammar, map_type


def resolve(name: str, generic_group: GenericGroup) -> GrammarType:
    """Return the type declared under ``name``.

    Raises:
        UnknownRecursiveRefError: If the group declares no such type.
    """
    type_ = generic_group.lookup(name)
    if type_ is None:
        raise UnknownRecursiveRefError(
            f"Unknown type name '{name}' (declared: {', '.join(generic_group.type_names)})",
            ErrorContext(type_name=name),
        )
    return type_


def check_arity(group: Group) -> None:
    """Raise ArityMismatchError unless apply_implicit matches implicit_vars."""
    expected = group.generic_group.arity
    actual = len(group.apply_implicit)
    if expected != actual:
        raise ArityMismatchError(
            f"Group binds {actual} implicit argument(s), generic group expects {expected}",
            ErrorContext(origin=group.origin or None),
        )


def instantiate(group: Group, type_name: str | None = None) -> GrammarType:
    """Substitute ``group``'s implicit arguments into the type ``type_name``.

    Args:
        group: Instantiation to expand
        type_name: Family member to expand; may be omitted for single-type groups

    Returns:
        A type with no implicit variables. Recursive references are replaced
        by ``EmbeddedGrammar(Ref(name, group))``.
    """
    check_arity(group)
    generic_group = group.generic_group
    if type_name is None:
        if len(generic_group.types) != 1:
            raise GrammarError(
                f"type_name is required for a group of {len(generic_group.types)} types",
                ErrorContext(origin=group.origin or None),
            )
        type_name = generic_group.types[0][0]

    def substitute(type_: GrammarType) -> GrammarType:
        if isinstance(type_, ImplicitVar):
            if type_.index >= len(group.apply_implicit):
                raise UnboundImplicitVarError(
                    f"Implicit variable {type_.index} is not bound",
                    ErrorContext(type_name=type_name, origin=group.origin or None),
                )
            return embed_grammar(group.apply_implicit[type_.index])
        if isinstance(type_, RecursiveRef):
            resolve(type_.name, generic_group)
            return EmbeddedGrammar(payload=Ref(type_name=type_.name, group=group))
        if isinstance(type_, EmbeddedGrammar):
            return type_
        return map_type(type_, substitute)

    return substitute(resolve(type_name, generic_group))


def instantiate_grammar(grammar: Grammar) -> GrammarType:
    """Expand a Ref one level, or return an Inline's type."""
    if isinstance(grammar, Inline):
        return grammar.type
    return instantiate(grammar.group, grammar.type_name)
