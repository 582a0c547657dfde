"""
Well-formedness validation for grammars.

Validation reports problems as data instead of raising mid-traversal, so a
partially malformed grammar can still be inspected. Errors break the
invariants the traversal operations rely on; warnings flag wasteful or
expensive but sound constructs.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import StrEnum

from .errors import GrammarValidationError
from .ids import compute_generic_group_id
from .ir import (
    ApplyType,
    Component,
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
    RecordType,
    RecursiveRef,
    VariantType,
)
from .traversal import child_types, free_explicit_vars, payloads, reachable_groups


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"


class ViolationKind(StrEnum):
    """Kinds of grammar violations."""

    UNBOUND_EXPLICIT_VAR = "unbound_explicit_var"
    UNBOUND_IMPLICIT_VAR = "unbound_implicit_var"
    ARITY_MISMATCH = "arity_mismatch"
    UNKNOWN_RECURSIVE_REF = "unknown_recursive_ref"
    APPLY_ARITY_MISMATCH = "apply_arity_mismatch"
    GGID_MISMATCH = "ggid_mismatch"
    DUPLICATE_TYPE_NAME = "duplicate_type_name"
    DUPLICATE_LABEL = "duplicate_label"
    UNUSED_EXPLICIT_VAR = "unused_explicit_var"
    BACKTRACKING_SEQUENCE = "backtracking_sequence"


_WARNINGS = frozenset(
    {
        ViolationKind.DUPLICATE_TYPE_NAME,
        ViolationKind.DUPLICATE_LABEL,
        ViolationKind.UNUSED_EXPLICIT_VAR,
        ViolationKind.BACKTRACKING_SEQUENCE,
    }
)


@dataclass(frozen=True)
class GrammarViolation:
    """A single problem found in a grammar."""

    kind: ViolationKind
    message: str
    type_name: str | None = None

    @property
    def severity(self) -> Severity:
        return Severity.WARNING if self.kind in _WARNINGS else Severity.ERROR

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    def format(self) -> str:
        where = f" in type {self.type_name}" if self.type_name else ""
        return f"[{self.severity}] {self.kind}{where}: {self.message}"


class _TypeChecker:
    """Checks one type tree against the scopes it lives in."""

    def __init__(self, generic_group: GenericGroup | None, type_name: str | None) -> None:
        self.generic_group = generic_group
        self.type_name = type_name
        self.arity = generic_group.arity if generic_group else 0
        self.violations: list[GrammarViolation] = []

    def report(self, kind: ViolationKind, message: str) -> None:
        self.violations.append(GrammarViolation(kind, message, self.type_name))

    def check(self, type_: GrammarType, scope: int | None) -> None:
        """``scope`` is the slot count of the nearest binder, None outside any."""
        if isinstance(type_, ExplicitVar):
            if scope is None:
                self.report(
                    ViolationKind.UNBOUND_EXPLICIT_VAR,
                    f"Explicit variable {type_.index} is outside of any binder",
                )
            elif type_.index >= scope:
                self.report(
                    ViolationKind.UNBOUND_EXPLICIT_VAR,
                    f"Explicit variable {type_.index} exceeds its binder's {scope} slot(s)",
                )
        elif isinstance(type_, ImplicitVar):
            if type_.index >= self.arity:
                self.report(
                    ViolationKind.UNBOUND_IMPLICIT_VAR,
                    f"Implicit variable {type_.index} exceeds the group's "
                    f"{self.arity} implicit variable(s)",
                )
        elif isinstance(type_, RecursiveRef):
            if self.generic_group is None or self.generic_group.lookup(type_.name) is None:
                self.report(
                    ViolationKind.UNKNOWN_RECURSIVE_REF,
                    f"Recursive reference to unknown type '{type_.name}'",
                )
        elif isinstance(type_, ExplicitBind):
            used = free_explicit_vars(type_.body)
            for index, name in enumerate(type_.names):
                if index not in used:
                    self.report(
                        ViolationKind.UNUSED_EXPLICIT_VAR,
                        f"Explicit variable '{name}' ({index}) is never used",
                    )
            self.check(type_.body, len(type_.names))
            return
        elif isinstance(type_, ApplyType):
            self._check_apply(type_)
        elif isinstance(type_, ListType):
            self._check_sequence(type_.components)
        elif isinstance(type_, RecordType):
            self._check_record(type_)
        elif isinstance(type_, VariantType):
            self._check_variant(type_)

        for child in child_types(type_):
            self.check(child, scope)

    def _check_apply(self, type_: ApplyType) -> None:
        binder = type_.base
        if isinstance(binder, RecursiveRef) and self.generic_group is not None:
            binder = self.generic_group.lookup(binder.name)
        if isinstance(binder, ExplicitBind) and len(binder.names) != len(type_.args):
            self.report(
                ViolationKind.APPLY_ARITY_MISMATCH,
                f"Apply passes {len(type_.args)} argument(s) to a binder "
                f"of {len(binder.names)} variable(s)",
            )

    def _check_sequence(self, components: tuple[Component, ...]) -> None:
        many_positions = [i for i, c in enumerate(components) if isinstance(c, Many)]
        if len(many_positions) > 1:
            self.report(
                ViolationKind.BACKTRACKING_SEQUENCE,
                f"Sequence has {len(many_positions)} Many components",
            )
        elif many_positions and many_positions[0] != len(components) - 1:
            self.report(
                ViolationKind.BACKTRACKING_SEQUENCE,
                "Many component is followed by other components",
            )
        for component in components:
            if isinstance(component, Fields):
                self._check_record(component.record)

    def _check_record(self, record: RecordType) -> None:
        for label, count in Counter(label for label, _ in record.fields).items():
            if count > 1:
                self.report(
                    ViolationKind.DUPLICATE_LABEL, f"Field '{label}' is declared {count} times"
                )
        for _, spec in record.fields:
            self._check_sequence(spec.args)

    def _check_variant(self, type_: VariantType) -> None:
        keys = Counter((label, not components) for label, components in type_.alternatives)
        for (label, _), count in keys.items():
            if count > 1:
                self.report(
                    ViolationKind.DUPLICATE_LABEL,
                    f"Constructor '{label}' is declared {count} times; the first one wins",
                )
        for _, components in type_.alternatives:
            self._check_sequence(components)


def _check_tree(
    type_: GrammarType, generic_group: GenericGroup | None, type_name: str | None
) -> list[GrammarViolation]:
    checker = _TypeChecker(generic_group, type_name)
    checker.check(type_, None)
    violations = checker.violations
    for payload in payloads(type_):
        if isinstance(payload, Inline):
            violations.extend(_check_tree(payload.type, None, type_name))
    return violations


def validate_type(type_: GrammarType, type_name: str | None = None) -> list[GrammarViolation]:
    """Validate a standalone (Inline) type: no group is in scope."""
    return _check_tree(type_, None, type_name)


def validate(generic_group: GenericGroup) -> list[GrammarViolation]:
    """
    Validate a generic group.

    Returns:
        Violations found, errors and warnings alike, in traversal order
    """
    violations: list[GrammarViolation] = []

    expected = compute_generic_group_id(generic_group.implicit_vars, generic_group.types)
    if generic_group.ggid != expected:
        violations.append(
            GrammarViolation(
                ViolationKind.GGID_MISMATCH,
                f"ggid {generic_group.ggid[:12]} does not match content ({expected[:12]})",
            )
        )

    for name, count in Counter(generic_group.type_names).items():
        if count > 1:
            violations.append(
                GrammarViolation(
                    ViolationKind.DUPLICATE_TYPE_NAME,
                    f"Type '{name}' is declared {count} times; the first one wins",
                    name,
                )
            )

    for name, type_ in generic_group.types:
        violations.extend(_check_tree(type_, generic_group, name))
    return violations


def _check_arity(group: Group) -> list[GrammarViolation]:
    expected = group.generic_group.arity
    actual = len(group.apply_implicit)
    if expected == actual:
        return []
    origin = f" ({group.origin})" if group.origin else ""
    return [
        GrammarViolation(
            ViolationKind.ARITY_MISMATCH,
            f"Group{origin} binds {actual} implicit argument(s), "
            f"generic group expects {expected}",
        )
    ]


def validate_group(group: Group) -> list[GrammarViolation]:
    """Validate a group: its generic part, arity and Inline arguments."""
    violations = validate(group.generic_group)
    violations.extend(_check_arity(group))
    for arg in group.apply_implicit:
        if isinstance(arg, Inline):
            violations.extend(validate_type(arg.type))
    return violations


def validate_grammar(grammar: Grammar) -> list[GrammarViolation]:
    """Validate everything reachable from ``grammar``.

    Each generic group is validated once, however many groups share it.
    """
    violations: list[GrammarViolation] = []
    if isinstance(grammar, Inline):
        violations.extend(validate_type(grammar.type))
    seen_ggids: set[str] = set()
    for group in reachable_groups(grammar):
        if group.generic_group.ggid not in seen_ggids:
            seen_ggids.add(group.generic_group.ggid)
            violations.extend(validate(group.generic_group))
        violations.extend(_check_arity(group))
        for arg in group.apply_implicit:
            if isinstance(arg, Inline):
                violations.extend(validate_type(arg.type))
    return violations


def assert_valid(target: GenericGroup | Group | Grammar) -> None:
    """Raise GrammarValidationError if ``target`` has error-level violations."""
    if isinstance(target, GenericGroup):
        violations = validate(target)
    elif isinstance(target, Group):
        violations = validate_group(target)
    else:
        violations = validate_grammar(target)
    errors = [v for v in violations if v.is_error]
    if errors:
        raise GrammarValidationError(errors)
