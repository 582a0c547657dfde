"""
Grammar simplification by variable elision.

Raw grammars contain a variable for every type they mention, which is
unpleasant to read. This pass removes the variables that are used at most
once, while leaving the ones used several times alone so that sharing is
preserved:

- an implicit variable used nowhere is dropped;
- an implicit variable used once is replaced by its argument, provided every
  dependent group passes the same argument;
- at ``Apply(ExplicitBind(names, body), args)`` an explicit variable used
  nowhere is dropped, and one used once is replaced by its argument when the
  argument has no free explicit variables. A binder left with no variables
  is replaced by its body.

Remaining variables are renumbered contiguously, and every dependent group
drops the ``apply_implicit`` entries of removed implicit variables. Inlining
can expose new opportunities, so passes repeat until nothing changes. Newly
built generic groups are interned in the content-addressed cache.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Union

from .cache import GenericGroupCache, default_cache
from .environment import GrammarSettings, get_settings
from .errors import ErrorContext, GrammarError, UnboundImplicitVarError
from .ir import (
    ApplyType,
    EmbeddedGrammar,
    ExplicitBind,
    ExplicitVar,
    GenericGroup,
    Grammar,
    GrammarType,
    Group,
    ImplicitVar,
    Inline,
    Ref,
)
from .resolver import check_arity
from .traversal import (
    child_types,
    embed_grammar,
    free_explicit_vars,
    map_payloads,
    map_type,
    reachable_groups,
    walk,
)

logger = logging.getLogger(__name__)

# Per-variable decision: new index if kept, replacement type if inlined,
# None if the variable was unused.
_Decision = Union[int, GrammarType, None]


@dataclass(frozen=True)
class SimplifyResult:
    """
    Outcome of simplifying one generic group.

    Attributes:
        generic_group: The simplified generic group
        groups: The given groups, rewritten to match it (same gid cells)
        kept_indices: Original indices of the implicit variables that remain
    """

    generic_group: GenericGroup
    groups: tuple[Group, ...]
    kept_indices: tuple[int, ...]


def simplify(
    generic_group: GenericGroup,
    groups: Sequence[Group] = (),
    settings: GrammarSettings | None = None,
    cache: GenericGroupCache | None = None,
) -> SimplifyResult:
    """Simplify ``generic_group`` together with every group instantiating it.

    Args:
        generic_group: Group to simplify; it is not modified
        groups: All groups that instantiate it. Single-use implicit variables
            are only inlined when these agree on the argument.
        settings: Optional settings; read from the environment when omitted
        cache: Cache a newly built generic group is interned in; the
            process-wide cache when omitted

    Returns:
        SimplifyResult with the new generic group and rewritten groups

    Raises:
        GrammarError: If a group instantiates a different generic group or
            has the wrong number of arguments.
    """
    settings = settings or get_settings()
    for group in groups:
        if group.generic_group.ggid != generic_group.ggid:
            raise GrammarError(
                f"Group instantiates generic group {group.generic_group.ggid[:12]}, "
                f"not {generic_group.ggid[:12]}",
                ErrorContext(origin=group.origin or None),
            )
        check_arity(group)

    simplified, kept = _elide(generic_group, _common_args(generic_group, groups), settings)
    if simplified is not generic_group:
        simplified = (default_cache() if cache is None else cache).intern(simplified)
    rewritten = tuple(
        group.model_copy(
            update={
                "generic_group": simplified,
                "apply_implicit": tuple(group.apply_implicit[i] for i in kept),
            }
        )
        for group in groups
    )
    return SimplifyResult(generic_group=simplified, groups=rewritten, kept_indices=kept)


def simplify_grammar(
    grammar: Grammar,
    settings: GrammarSettings | None = None,
    cache: GenericGroupCache | None = None,
) -> Grammar:
    """
    Simplify every generic group reachable from ``grammar``.

    All groups sharing a generic group are rewritten together, so the
    ``apply_implicit`` of every dependent group stays in step with it.
    Groups keep their gid cells. Rebuilt generic groups are interned in
    ``cache``.
    """
    settings = settings or get_settings()
    if cache is None:
        cache = default_cache()
    dependents: dict[str, list[Group]] = defaultdict(list)
    for group in reachable_groups(grammar):
        dependents[group.generic_group.ggid].append(group)

    simplified: dict[str, tuple[GenericGroup, tuple[int, ...]]] = {}
    in_progress: set[str] = set()
    rewritten_groups: dict[int, Group] = {}

    def rewrite_grammar(node: Grammar) -> Grammar:
        if isinstance(node, Inline):
            return Inline(type=map_payloads(node.type, rewrite_grammar))
        return Ref(type_name=node.type_name, group=rewrite_group(node.group))

    def rewrite_group(group: Group) -> Group:
        key = id(group.gid)
        if key not in rewritten_groups:
            generic, kept = simplify_generic(group.generic_group)
            rewritten_groups[key] = group.model_copy(
                update={
                    "generic_group": generic,
                    "apply_implicit": tuple(
                        rewrite_grammar(group.apply_implicit[i]) for i in kept
                    ),
                }
            )
        return rewritten_groups[key]

    def simplify_generic(generic: GenericGroup) -> tuple[GenericGroup, tuple[int, ...]]:
        ggid = generic.ggid
        if ggid in simplified:
            return simplified[ggid]
        if ggid in in_progress:
            raise GrammarError(f"Generic group {ggid[:12]} depends on its own instantiation")
        in_progress.add(ggid)
        for group in dependents[ggid]:
            check_arity(group)
        common = [
            None if arg is None else rewrite_grammar(arg)
            for arg in _common_args(generic, dependents[ggid])
        ]
        types = tuple(
            (name, map_payloads(type_, rewrite_grammar)) for name, type_ in generic.types
        )
        original = generic
        if types != generic.types:
            generic = GenericGroup(implicit_vars=generic.implicit_vars, types=types)
        result, kept = _elide(generic, common, settings)
        if result is not original:
            result = cache.intern(result)
        simplified[ggid] = result, kept
        in_progress.discard(ggid)
        return simplified[ggid]

    return rewrite_grammar(grammar)


def _common_args(generic_group: GenericGroup, groups: Sequence[Group]) -> list[Grammar | None]:
    """The argument all groups agree on for each implicit var, else None."""
    common: list[Grammar | None] = []
    for index in range(generic_group.arity):
        if not groups:
            common.append(None)
            continue
        first = groups[0].apply_implicit[index]
        agreed = all(group.apply_implicit[index] == first for group in groups[1:])
        common.append(first if agreed else None)
    return common


def _elide(
    generic_group: GenericGroup, common: list[Grammar | None], settings: GrammarSettings
) -> tuple[GenericGroup, tuple[int, ...]]:
    """Run elision passes to a fixpoint."""
    implicit_vars = list(generic_group.implicit_vars)
    kept = list(range(len(implicit_vars)))
    types = list(generic_group.types)
    changed_any = False

    for _ in range(settings.max_simplify_passes):
        changed = False

        decisions = _implicit_decisions(types, implicit_vars, common)
        if any(decision != index for index, decision in enumerate(decisions)):
            types = [(name, _rewrite_implicit(t, decisions, name)) for name, t in types]
            survivors = [i for i, decision in enumerate(decisions) if isinstance(decision, int)]
            implicit_vars = [implicit_vars[i] for i in survivors]
            kept = [kept[i] for i in survivors]
            common = [common[i] for i in survivors]
            changed = True

        reduced = [(name, _reduce_explicit(t)) for name, t in types]
        if reduced != types:
            types = reduced
            changed = True

        if not changed:
            break
        changed_any = True
    else:
        logger.warning(
            "Simplification of %s stopped after %d passes",
            generic_group.ggid[:12],
            settings.max_simplify_passes,
        )

    if not changed_any:
        return generic_group, tuple(kept)
    return GenericGroup(implicit_vars=tuple(implicit_vars), types=tuple(types)), tuple(kept)


# ---------------------------------------------------------------------------
# Implicit variables
# ---------------------------------------------------------------------------


def _implicit_decisions(
    types: list[tuple[str, GrammarType]],
    implicit_vars: list[str],
    common: list[Grammar | None],
) -> list[_Decision]:
    counts: Counter[int] = Counter()
    for _, type_ in types:
        for node in walk(type_):
            if isinstance(node, ImplicitVar):
                counts[node.index] += 1

    decisions: list[_Decision] = []
    next_index = 0
    for index, name in enumerate(implicit_vars):
        uses = counts[index]
        if uses == 0:
            logger.debug("Dropping unused implicit variable %s", name)
            decisions.append(None)
        elif uses == 1 and common[index] is not None:
            logger.debug("Inlining single-use implicit variable %s", name)
            decisions.append(embed_grammar(common[index]))
        else:
            decisions.append(next_index)
            next_index += 1
    return decisions


def _rewrite_implicit(
    type_: GrammarType, decisions: list[_Decision], type_name: str
) -> GrammarType:
    if isinstance(type_, ImplicitVar):
        if type_.index >= len(decisions):
            raise UnboundImplicitVarError(
                f"Implicit variable {type_.index} is not bound", ErrorContext(type_name=type_name)
            )
        decision = decisions[type_.index]
        if isinstance(decision, int):
            return ImplicitVar(index=decision)
        assert decision is not None  # unused variables have no occurrence
        return decision
    if isinstance(type_, EmbeddedGrammar):
        return type_
    return map_type(type_, lambda child: _rewrite_implicit(child, decisions, type_name))


# ---------------------------------------------------------------------------
# Explicit variables
# ---------------------------------------------------------------------------


def _count_explicit(type_: GrammarType, counts: Counter[int]) -> Counter[int]:
    """Count uses of the current binder's slots, stopping at inner binders."""
    if isinstance(type_, ExplicitVar):
        counts[type_.index] += 1
    elif not isinstance(type_, ExplicitBind):
        for child in child_types(type_):
            _count_explicit(child, counts)
    return counts


def _rewrite_explicit(type_: GrammarType, decisions: dict[int, _Decision]) -> GrammarType:
    if isinstance(type_, ExplicitVar):
        if type_.index not in decisions:
            return type_
        decision = decisions[type_.index]
        if isinstance(decision, int):
            return ExplicitVar(index=decision)
        assert decision is not None  # unused variables have no occurrence
        return decision
    if isinstance(type_, ExplicitBind | EmbeddedGrammar):
        return type_
    return map_type(type_, lambda child: _rewrite_explicit(child, decisions))


def _reduce_explicit(type_: GrammarType) -> GrammarType:
    """Elide explicit variables at every Apply-of-binder redex, innermost first."""
    if isinstance(type_, EmbeddedGrammar):
        return type_
    type_ = map_type(type_, _reduce_explicit)
    if (
        isinstance(type_, ApplyType)
        and isinstance(type_.base, ExplicitBind)
        and len(type_.base.names) == len(type_.args)
    ):
        return _reduce_redex(type_.base, type_.args) or type_
    return type_


def _reduce_redex(
    binder: ExplicitBind, args: tuple[GrammarType, ...]
) -> GrammarType | None:
    """Return the reduced redex, or None when no variable can be elided."""
    counts = _count_explicit(binder.body, Counter())
    decisions: dict[int, _Decision] = {}
    names: list[str] = []
    kept_args: list[GrammarType] = []
    for index, (name, arg) in enumerate(zip(binder.names, args, strict=True)):
        uses = counts[index]
        if uses == 0:
            logger.debug("Dropping unused explicit variable %s", name)
            decisions[index] = None
        elif uses == 1 and not free_explicit_vars(arg):
            logger.debug("Inlining single-use explicit variable %s", name)
            decisions[index] = arg
        else:
            decisions[index] = len(names)
            names.append(name)
            kept_args.append(arg)

    if len(names) == len(binder.names):
        return None
    body = _rewrite_explicit(binder.body, decisions)
    if not names:
        return body
    return ApplyType(
        base=ExplicitBind(names=tuple(names), body=body), args=tuple(kept_args)
    )
