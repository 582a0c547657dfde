"""
Recognizer: does an S-expression match a grammar?

Types are evaluated together with the group whose ``types`` and
``apply_implicit`` are in scope, and the explicit environment bound by the
nearest ``ExplicitBind``. Recursive references are unfolded on demand, never
substituted eagerly, so cyclic families are fine.

Sequence types are matched by computing the set of positions a run of
components can end at. This gives full backtracking semantics, so sequences
such as ``[Many a; Many b]`` are matched correctly.

A value that does not match is not an error. Malformed grammars raise the
``GrammarError`` subclasses when the offending node is reached.

``max_depth`` bounds how often the grammar may be unfolded at one value
node without consuming input, which catches left-recursive grammars. The
nesting depth of the value itself is only bounded by the Python stack,
which is grown to fit the value before recognition starts.
"""

from __future__ import annotations

import logging
import sys
import threading
from collections.abc import Sequence
from dataclasses import dataclass

from .atoms import atom_matches, describe_atom, label_matches
from .environment import GrammarSettings, get_settings
from .errors import (
    ArityMismatchError,
    ErrorContext,
    GrammarError,
    RecognitionDepthError,
    UnboundExplicitVarError,
    UnboundImplicitVarError,
    UnknownRecursiveRefError,
)
from .ir import (
    AnyType,
    ApplyType,
    AtomType,
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
    Many,
    MaybeOne,
    One,
    OptionType,
    RecordType,
    RecursiveRef,
    Ref,
    UnionType,
    VariantType,
)
from .resolver import check_arity, resolve
from .sexp import Sexp, is_atom, is_list, to_string

logger = logging.getLogger(__name__)

Path = tuple[int, ...]

# Python frames used per nesting level of the value, and per unfolding
_FRAMES_PER_LEVEL = 20
_FRAMES_PER_UNFOLD = 4
_BASE_FRAMES = 1000
_RECURSION_CEILING = 50_000

_recursion_lock = threading.Lock()


def _value_depth(value: Sexp) -> int:
    """Nesting depth of ``value``: 0 for an atom."""
    deepest = 0
    stack = [(value, 1)]
    while stack:
        node, level = stack.pop()
        if is_list(node):
            deepest = max(deepest, level)
            stack.extend((item, level + 1) for item in node)
    return deepest


def _reserve_stack(value: Sexp, max_depth: int) -> None:
    """Raise the interpreter recursion limit so ``value`` can be walked.

    The limit is only ever raised, never lowered, and is capped at
    ``_RECURSION_CEILING``; beyond it recognition reports a depth error.
    """
    needed = min(
        _RECURSION_CEILING,
        _BASE_FRAMES
        + _value_depth(value) * _FRAMES_PER_LEVEL
        + max_depth * _FRAMES_PER_UNFOLD,
    )
    with _recursion_lock:
        if sys.getrecursionlimit() < needed:
            logger.debug("Raising recursion limit to %d", needed)
            sys.setrecursionlimit(needed)


@dataclass(frozen=True)
class Mismatch:
    """
    Where and why a value failed to match.

    Attributes:
        path: List indices from the root value to the offending value
        expected: Description of what the grammar wanted there
        actual: The offending value
    """

    path: Path
    expected: str
    actual: Sexp

    def format(self) -> str:
        location = "/".join(str(i) for i in self.path) or "<root>"
        return f"at {location}: expected {self.expected}, got {to_string(self.actual)}"


@dataclass(frozen=True)
class _Closure:
    """An explicit argument, with the scope it must be evaluated in."""

    type: GrammarType
    group: Group | None
    env: Env


# Explicit environment: None outside any binder; a None slot is unbound.
Env = tuple[_Closure | None, ...] | None


def matches(
    grammar: GrammarType | Grammar,
    value: Sexp,
    settings: GrammarSettings | None = None,
) -> bool:
    """Return True if ``value`` matches ``grammar``.

    Args:
        grammar: A type (standalone, no group context) or a Ref/Inline grammar
        value: S-expression: ``str`` atom or list of S-expressions
        settings: Optional settings; read from the environment when omitted

    Raises:
        GrammarError: If a malformed part of the grammar is reached.
    """
    return _Recognizer(settings or get_settings()).run(grammar, value)


def mismatches(
    grammar: GrammarType | Grammar,
    value: Sexp,
    settings: GrammarSettings | None = None,
) -> list[Mismatch]:
    """Explain why ``value`` does not match ``grammar``.

    Returns:
        The failures at the deepest location reached, or an empty list when
        the value matches.
    """
    recognizer = _Recognizer(settings or get_settings())
    if recognizer.run(grammar, value):
        return []
    return recognizer.deepest_failures()


class _Recognizer:
    """One recognition run; collects failures for diagnostics."""

    def __init__(self, settings: GrammarSettings) -> None:
        self.max_depth = settings.max_depth
        # Active match frames per value node (keyed by path)
        self.unfoldings: dict[Path, int] = {}
        self.failures: list[Mismatch] = []

    def run(self, grammar: GrammarType | Grammar, value: Sexp) -> bool:
        _reserve_stack(value, self.max_depth)
        try:
            if isinstance(grammar, Ref | Inline):
                return self.match_grammar(grammar, value, ())
            return self.match(grammar, value, None, None, ())
        except RecursionError as e:
            raise RecognitionDepthError(
                f"Recognition exhausted the Python stack ({sys.getrecursionlimit()} frames)"
            ) from e

    def deepest_failures(self) -> list[Mismatch]:
        if not self.failures:
            return []
        deepest = max(len(f.path) for f in self.failures)
        # Deduplicated by location and expectation, never by comparing values
        result: dict[tuple[Path, str], Mismatch] = {}
        for failure in self.failures:
            if len(failure.path) == deepest:
                result.setdefault((failure.path, failure.expected), failure)
        return list(result.values())

    def fail(self, path: Path, expected: str, actual: Sexp) -> bool:
        self.failures.append(Mismatch(path=path, expected=expected, actual=actual))
        return False

    # -- grammars ----------------------------------------------------------

    def match_grammar(self, grammar: Grammar, value: Sexp, path: Path) -> bool:
        if isinstance(grammar, Inline):
            return self.match(grammar.type, value, None, None, path)
        check_arity(grammar.group)
        type_ = resolve(grammar.type_name, grammar.group.generic_group)
        return self.match(type_, value, grammar.group, None, path)

    # -- types -------------------------------------------------------------

    def match(
        self, type_: GrammarType, value: Sexp, group: Group | None, env: Env, path: Path
    ) -> bool:
        unfoldings = self.unfoldings.get(path, 0) + 1
        if unfoldings > self.max_depth:
            location = "/".join(str(i) for i in path) or "<root>"
            raise RecognitionDepthError(
                f"Grammar unfolded more than {self.max_depth} times at {location} "
                "without consuming input"
            )
        self.unfoldings[path] = unfoldings
        try:
            return self._dispatch(type_, value, group, env, path)
        finally:
            if unfoldings == 1:
                del self.unfoldings[path]
            else:
                self.unfoldings[path] = unfoldings - 1

    def _dispatch(
        self, type_: GrammarType, value: Sexp, group: Group | None, env: Env, path: Path
    ) -> bool:
        if isinstance(type_, AnyType):
            return True

        if isinstance(type_, AtomType):
            if is_atom(value) and atom_matches(type_.atom, value):
                return True
            return self.fail(path, describe_atom(type_.atom), value)

        if isinstance(type_, ListType):
            if not is_list(value):
                return self.fail(path, "a list", value)
            return self.match_sequence(type_.components, value, group, env, path, 0)

        if isinstance(type_, RecordType):
            if not is_list(value):
                return self.fail(path, "a record (list of fields)", value)
            return self.match_sequence((Fields(record=type_),), value, group, env, path, 0)

        if isinstance(type_, OptionType):
            return self._match_option(type_, value, group, env, path)

        if isinstance(type_, VariantType):
            return self._match_variant(type_, value, group, env, path)

        if isinstance(type_, UnionType):
            if not type_.types:
                return self.fail(path, "nothing (empty union)", value)
            for alternative in type_.types:
                if self.match(alternative, value, group, env, path):
                    return True
            return False

        if isinstance(type_, RecursiveRef):
            if group is None:
                raise UnknownRecursiveRefError(
                    f"Recursive reference '{type_.name}' outside of any group",
                    ErrorContext(type_name=type_.name),
                )
            target = resolve(type_.name, group.generic_group)
            return self.match(target, value, group, None, path)

        if isinstance(type_, ImplicitVar):
            return self.match_grammar(self._implicit_arg(type_, group), value, path)

        if isinstance(type_, EmbeddedGrammar):
            return self.match_grammar(type_.payload, value, path)

        if isinstance(type_, ExplicitVar):
            closure = self._explicit_arg(type_, env)
            return self.match(closure.type, value, closure.group, closure.env, path)

        if isinstance(type_, ExplicitBind):
            # Reached without Apply: the slots stay unbound
            return self.match(type_.body, value, group, (None,) * len(type_.names), path)

        if isinstance(type_, ApplyType):
            binder, binder_group = self._resolve_binder(type_.base, group, env)
            if len(binder.names) != len(type_.args):
                raise ArityMismatchError(
                    f"Apply passes {len(type_.args)} argument(s) to a binder "
                    f"of {len(binder.names)} variable(s)"
                )
            new_env = tuple(self._closure(arg, group, env) for arg in type_.args)
            return self.match(binder.body, value, binder_group, new_env, path)

        raise GrammarError(f"Unknown grammar node: {type(type_).__name__}")

    def _implicit_arg(self, type_: ImplicitVar, group: Group | None) -> Grammar:
        if group is None or type_.index >= len(group.apply_implicit):
            raise UnboundImplicitVarError(
                f"Implicit variable {type_.index} is not bound",
                ErrorContext(origin=group.origin or None) if group else None,
            )
        return group.apply_implicit[type_.index]

    def _explicit_arg(self, type_: ExplicitVar, env: Env) -> _Closure:
        closure = None
        if env is not None and type_.index < len(env):
            closure = env[type_.index]
        if closure is None:
            raise UnboundExplicitVarError(f"Explicit variable {type_.index} is not bound")
        return closure

    def _closure(self, arg: GrammarType, group: Group | None, env: Env) -> _Closure:
        # A bound variable passed on is its own closure, so chains stay flat
        if isinstance(arg, ExplicitVar) and env is not None and arg.index < len(env):
            bound = env[arg.index]
            if bound is not None:
                return bound
        return _Closure(type=arg, group=group, env=env)

    def _resolve_binder(
        self, base: GrammarType, group: Group | None, env: Env
    ) -> tuple[ExplicitBind, Group | None]:
        """Unfold ``base`` until it reaches the binder an Apply fills."""
        for _ in range(self.max_depth):
            if isinstance(base, ExplicitBind):
                return base, group
            if isinstance(base, RecursiveRef):
                if group is None:
                    raise UnknownRecursiveRefError(
                        f"Recursive reference '{base.name}' outside of any group",
                        ErrorContext(type_name=base.name),
                    )
                base, env = resolve(base.name, group.generic_group), None
            elif isinstance(base, ImplicitVar | EmbeddedGrammar):
                grammar = (
                    self._implicit_arg(base, group)
                    if isinstance(base, ImplicitVar)
                    else base.payload
                )
                if isinstance(grammar, Inline):
                    base, group, env = grammar.type, None, None
                else:
                    check_arity(grammar.group)
                    group = grammar.group
                    base = resolve(grammar.type_name, group.generic_group)
                    env = None
            elif isinstance(base, ExplicitVar):
                closure = self._explicit_arg(base, env)
                base, group, env = closure.type, closure.group, closure.env
            else:
                raise GrammarError(
                    f"Apply base {type(base).__name__} does not resolve to an explicit binder"
                )
        raise RecognitionDepthError(f"Apply base did not resolve within {self.max_depth} steps")

    def _match_option(
        self, type_: OptionType, value: Sexp, group: Group | None, env: Env, path: Path
    ) -> bool:
        if is_atom(value):
            if label_matches("None", value, True):
                return True
            return self.fail(path, "None, (), (Some _) or (_)", value)
        if not is_list(value):
            return self.fail(path, "an option", value)
        if len(value) == 0:
            return True
        if len(value) == 1:
            return self.match(type_.type, value[0], group, env, path + (0,))
        if len(value) == 2 and is_atom(value[0]) and label_matches("Some", value[0], True):
            return self.match(type_.type, value[1], group, env, path + (1,))
        return self.fail(path, "None, (), (Some _) or (_)", value)

    def _match_variant(
        self, type_: VariantType, value: Sexp, group: Group | None, env: Env, path: Path
    ) -> bool:
        ignore_case = type_.ignore_capitalization
        if is_atom(value):
            for label, components in type_.alternatives:
                if not components and label_matches(label, value, ignore_case):
                    return True
            labels = [label for label, components in type_.alternatives if not components]
            return self.fail(path, f"one of {labels}", value)
        if not is_list(value) or not value or not is_atom(value[0]):
            return self.fail(path, "a constructor application", value)
        head = value[0]
        for label, components in type_.alternatives:
            if components and label_matches(label, head, ignore_case):
                return self.match_sequence(components, value[1:], group, env, path, 1)
        labels = [label for label, components in type_.alternatives if components]
        return self.fail(path + (0,), f"one of {labels}", head)

    # -- sequences ---------------------------------------------------------

    def match_sequence(
        self,
        components: Sequence[Component],
        items: Sequence[Sexp],
        group: Group | None,
        env: Env,
        path: Path,
        offset: int,
    ) -> bool:
        """Match ``items`` against ``components``.

        ``offset`` is the index of ``items[0]`` within the enclosing list,
        used for mismatch paths.
        """
        ends = self._sequence_ends(components, items, group, env, path, offset)
        if len(items) in ends:
            return True
        if ends and max(ends) < len(items):
            index = max(ends)
            return self.fail(path + (index + offset,), "end of list", items[index])
        return False

    def _sequence_ends(
        self,
        components: Sequence[Component],
        items: Sequence[Sexp],
        group: Group | None,
        env: Env,
        path: Path,
        offset: int,
    ) -> set[int]:
        positions = {0}
        for component in components:
            if isinstance(component, Fields):
                reached: set[int] = set()
                for start in sorted(positions):
                    reached |= self._fields_ends(
                        component.record, items, start, group, env, path, offset
                    )
                positions = reached
            else:
                positions = self._component_ends(
                    component, items, positions, group, env, path, offset
                )
            if not positions:
                break
        return positions

    def _component_ends(
        self,
        component: One | MaybeOne | Many,
        items: Sequence[Sexp],
        positions: set[int],
        group: Group | None,
        env: Env,
        path: Path,
        offset: int,
    ) -> set[int]:
        memo: dict[int, bool] = {}

        def item_matches(index: int) -> bool:
            if index not in memo:
                memo[index] = self.match(
                    component.type, items[index], group, env, path + (index + offset,)
                )
            return memo[index]

        reached: set[int] = set()
        for start in positions:
            if isinstance(component, MaybeOne | Many):
                reached.add(start)
            if isinstance(component, Many):
                index = start
                while index < len(items) and item_matches(index):
                    index += 1
                    reached.add(index)
            elif start < len(items):
                if item_matches(start):
                    reached.add(start + 1)
            elif isinstance(component, One):
                self.fail(path, "more list elements", list(items))
        return reached

    def _fields_ends(
        self,
        record: RecordType,
        items: Sequence[Sexp],
        start: int,
        group: Group | None,
        env: Env,
        path: Path,
        offset: int,
    ) -> set[int]:
        """End positions of field runs starting at ``start`` that satisfy ``record``."""
        required = record.required_labels
        seen: set[str] = set()
        ends: set[int] = set()
        if required <= seen:
            ends.add(start)
        index = start
        while index < len(items):
            item = items[index]
            item_path = path + (index + offset,)
            if not is_list(item) or not item or not is_atom(item[0]):
                self.fail(item_path, "a field (label ...)", item)
                break
            label = item[0]
            spec = record.field(label)
            if spec is None:
                if not record.allow_extra_fields:
                    known = [name for name, _ in record.fields]
                    self.fail(item_path + (0,), f"one of fields {known}", label)
                    break
            else:
                if label in seen:
                    self.fail(item_path + (0,), "a field not given before", label)
                    break
                if not self.match_sequence(spec.args, item[1:], group, env, item_path, 1):
                    break
                seen.add(label)
            index += 1
            if required <= seen:
                ends.add(index)
        if not ends:
            missing = sorted(required - seen)
            self.fail(path, f"field(s) {missing}", list(items))
        return ends
