"""Shared pytest fixtures for sexp_grammar tests."""

from __future__ import annotations

import pytest

from sexp_grammar.core import ir
from sexp_grammar.core.cache import default_cache
from sexp_grammar.core.environment import MAX_DEPTH_VAR, MAX_SIMPLIFY_PASSES_VAR

INT_T = ir.AtomType(atom=ir.INT)
STRING_T = ir.AtomType(atom=ir.STRING)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tests independent of the caller's environment."""
    monkeypatch.delenv(MAX_DEPTH_VAR, raising=False)
    monkeypatch.delenv(MAX_SIMPLIFY_PASSES_VAR, raising=False)


@pytest.fixture(autouse=True)
def clean_cache():
    """Return the process-wide cache, emptied before and after the test.

    Simplification interns into it, so every test starts empty.
    """
    cache = default_cache()
    cache.clear()
    yield cache
    cache.clear()


@pytest.fixture
def int_grammar() -> ir.Grammar:
    return ir.Inline(type=INT_T)


@pytest.fixture
def list_generic() -> ir.GenericGroup:
    """``type 'a t = 'a list``: one implicit variable used once."""
    return ir.GenericGroup(
        implicit_vars=("a",),
        types=(("t", ir.ListType(components=(ir.Many(type=ir.ImplicitVar(index=0)),))),),
    )


@pytest.fixture
def tree_generic() -> ir.GenericGroup:
    """
    ``type tree = Leaf of elt | Node of forest and forest = tree list``.

    A mutually recursive family whose element type is an implicit variable.
    """
    return ir.GenericGroup(
        implicit_vars=("elt",),
        types=(
            (
                "tree",
                ir.VariantType(
                    alternatives=(
                        ("Leaf", (ir.One(type=ir.ImplicitVar(index=0)),)),
                        ("Node", (ir.One(type=ir.RecursiveRef(name="forest")),)),
                    )
                ),
            ),
            (
                "forest",
                ir.ListType(components=(ir.Many(type=ir.RecursiveRef(name="tree")),)),
            ),
        ),
    )


@pytest.fixture
def tree_grammar(tree_generic: ir.GenericGroup, int_grammar: ir.Grammar) -> ir.Grammar:
    group = ir.Group(generic_group=tree_generic, origin="test_tree", apply_implicit=(int_grammar,))
    return ir.Ref(type_name="tree", group=group)


@pytest.fixture
def pair_binder() -> ir.ExplicitBind:
    """``('a, 'b) pair = ('a 'b)``."""
    return ir.ExplicitBind(
        names=("a", "b"),
        body=ir.ListType(
            components=(
                ir.One(type=ir.ExplicitVar(index=0)),
                ir.One(type=ir.ExplicitVar(index=1)),
            )
        ),
    )
