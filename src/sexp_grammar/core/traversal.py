"""
Structural helpers over the grammar AST.

``map_type`` rebuilds a node from its rewritten immediate children.
Children are the type positions syntactically inside a node; the payload of
an ``EmbeddedGrammar`` is a separate grammar and is never a child.
Callers decide how to treat ``ExplicitBind`` scopes.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator

from .ir import (
    ApplyType,
    Component,
    EmbeddedGrammar,
    ExplicitBind,
    ExplicitVar,
    Fields,
    Grammar,
    GrammarType,
    Group,
    ImplicitVar,
    Inline,
    ListType,
    OptionType,
    RecordField,
    RecordType,
    RecursiveRef,
    Ref,
    UnionType,
    VariantType,
)

TypeFn = Callable[[GrammarType], GrammarType]


def _map_components(components: tuple[Component, ...], fn: TypeFn) -> tuple[Component, ...]:
    result = []
    for component in components:
        if isinstance(component, Fields):
            record = _map_record(component.record, fn)
            result.append(component.model_copy(update={"record": record}))
        else:
            result.append(component.model_copy(update={"type": fn(component.type)}))
    return tuple(result)


def _map_record(record: RecordType, fn: TypeFn) -> RecordType:
    fields = tuple(
        (label, RecordField(optional=spec.optional, args=_map_components(spec.args, fn)))
        for label, spec in record.fields
    )
    return record.model_copy(update={"fields": fields})


def map_type(type_: GrammarType, fn: TypeFn) -> GrammarType:
    """Rebuild ``type_`` with ``fn`` applied to each immediate child type."""
    if isinstance(type_, ApplyType):
        return type_.model_copy(
            update={"base": fn(type_.base), "args": tuple(fn(arg) for arg in type_.args)}
        )
    if isinstance(type_, ExplicitBind):
        return type_.model_copy(update={"body": fn(type_.body)})
    if isinstance(type_, OptionType):
        return type_.model_copy(update={"type": fn(type_.type)})
    if isinstance(type_, ListType):
        return type_.model_copy(update={"components": _map_components(type_.components, fn)})
    if isinstance(type_, RecordType):
        return _map_record(type_, fn)
    if isinstance(type_, UnionType):
        return type_.model_copy(update={"types": tuple(fn(t) for t in type_.types)})
    if isinstance(type_, VariantType):
        alternatives = tuple(
            (label, _map_components(components, fn))
            for label, components in type_.alternatives
        )
        return type_.model_copy(update={"alternatives": alternatives})
    return type_


def _component_children(components: tuple[Component, ...]) -> Iterator[GrammarType]:
    for component in components:
        if isinstance(component, Fields):
            yield from _record_children(component.record)
        else:
            yield component.type


def _record_children(record: RecordType) -> Iterator[GrammarType]:
    for _, spec in record.fields:
        yield from _component_children(spec.args)


def child_types(type_: GrammarType) -> Iterator[GrammarType]:
    """Yield the immediate child types of ``type_``."""
    if isinstance(type_, ApplyType):
        yield type_.base
        yield from type_.args
    elif isinstance(type_, ExplicitBind):
        yield type_.body
    elif isinstance(type_, OptionType):
        yield type_.type
    elif isinstance(type_, ListType):
        yield from _component_children(type_.components)
    elif isinstance(type_, RecordType):
        yield from _record_children(type_)
    elif isinstance(type_, UnionType):
        yield from type_.types
    elif isinstance(type_, VariantType):
        for _, components in type_.alternatives:
            yield from _component_children(components)


def walk(type_: GrammarType) -> Iterator[GrammarType]:
    """Yield ``type_`` and every descendant, crossing binders but not payloads."""
    stack = [type_]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(child_types(node))


def free_explicit_vars(type_: GrammarType) -> set[int]:
    """Indices of explicit variables not bound inside ``type_``."""
    if isinstance(type_, ExplicitVar):
        return {type_.index}
    if isinstance(type_, ExplicitBind):
        return set()
    found: set[int] = set()
    for child in child_types(type_):
        found |= free_explicit_vars(child)
    return found


def is_self_contained(type_: GrammarType) -> bool:
    """
    True if ``type_`` means the same thing wherever it is placed.

    Such a type has no free explicit variables and no implicit variable or
    recursive reference, which would be captured by the surrounding group.
    """
    if free_explicit_vars(type_):
        return False
    return not any(isinstance(node, ImplicitVar | RecursiveRef) for node in walk(type_))


def embed_grammar(grammar: Grammar) -> GrammarType:
    """Type that recognizes exactly what ``grammar`` recognizes, at any position."""
    if isinstance(grammar, Inline) and is_self_contained(grammar.type):
        return grammar.type
    return EmbeddedGrammar(payload=grammar)


GrammarFn = Callable[[Grammar], Grammar]


def map_payloads(type_: GrammarType, fn: GrammarFn) -> GrammarType:
    """Rebuild ``type_`` with ``fn`` applied to every embedded grammar payload."""
    if isinstance(type_, EmbeddedGrammar):
        payload = fn(type_.payload)
        if payload is type_.payload:
            return type_
        return EmbeddedGrammar(payload=payload)
    return map_type(type_, lambda child: map_payloads(child, fn))


def payloads(type_: GrammarType) -> Iterator[Grammar]:
    """Yield every embedded grammar payload under ``type_``."""
    for node in walk(type_):
        if isinstance(node, EmbeddedGrammar):
            yield node.payload


def grammar_children(grammar: Grammar) -> Iterator[Grammar]:
    """Grammars ``grammar`` refers to directly."""
    if isinstance(grammar, Inline):
        yield from payloads(grammar.type)
        return
    group = grammar.group
    yield from group.apply_implicit
    for _, type_ in group.generic_group.types:
        yield from payloads(type_)


def reachable_groups(grammar: Grammar) -> list[Group]:
    """Every group reachable from ``grammar``, dependencies first.

    Groups are identified by their gid cell, so each instantiation site
    appears once.
    """
    seen: set[int] = set()
    order: list[Group] = []

    def visit(node: Grammar) -> None:
        if isinstance(node, Ref):
            key = id(node.group.gid)
            if key in seen:
                return
            seen.add(key)
        for child in grammar_children(node):
            visit(child)
        if isinstance(node, Ref):
            order.append(node.group)

    visit(grammar)
    return order
