"""Tests for the content-addressed generic group cache."""

from __future__ import annotations

import logging
import threading

import pytest

from sexp_grammar.core import ir
from sexp_grammar.core.cache import GenericGroupCache, canonicalize, intern_generic_group
from sexp_grammar.core.traversal import reachable_groups

INT_T = ir.AtomType(atom=ir.INT)


def build_generic() -> ir.GenericGroup:
    return ir.GenericGroup(
        implicit_vars=("a",),
        types=(("t", ir.OptionType(type=ir.ImplicitVar(index=0))),),
    )


class TestGenericGroupCache:
    def test_first_registration_is_canonical(self) -> None:
        cache = GenericGroupCache()
        first, second = build_generic(), build_generic()
        assert first is not second

        assert cache.intern(first) is first
        assert cache.intern(second) is first
        assert len(cache) == 1
        assert first.ggid in cache
        assert cache.get(first.ggid) is first
        assert (cache.hits, cache.misses) == (1, 1)

    def test_distinct_content(self) -> None:
        cache = GenericGroupCache()
        cache.intern(build_generic())
        cache.intern(ir.GenericGroup(types=(("t", INT_T),)))
        assert len(cache) == 2

    def test_ggid_collision_not_interned(self, caplog: pytest.LogCaptureFixture) -> None:
        cache = GenericGroupCache()
        original = ir.GenericGroup(ggid="same", types=(("t", INT_T),))
        impostor = ir.GenericGroup(ggid="same", types=(("t", ir.AnyType()),))
        cache.intern(original)
        with caplog.at_level(logging.WARNING, logger="sexp_grammar.core.cache"):
            assert cache.intern(impostor) is impostor
        assert "shared by different content" in caplog.text

    def test_loaded_copies_with_embedded_refs(
        self, tree_grammar: ir.Ref, caplog: pytest.LogCaptureFixture
    ) -> None:
        generic = ir.GenericGroup(
            types=(("t", ir.OptionType(type=ir.EmbeddedGrammar(payload=tree_grammar))),)
        )
        dumped = generic.model_dump_json()
        first = ir.GenericGroup.model_validate_json(dumped)
        second = ir.GenericGroup.model_validate_json(dumped)
        assert first != second

        cache = GenericGroupCache()
        with caplog.at_level(logging.WARNING, logger="sexp_grammar.core.cache"):
            assert cache.intern(first) is first
            assert cache.intern(second) is first
        assert "shared by different content" not in caplog.text
        assert (cache.hits, cache.misses) == (1, 1)

    def test_clear(self) -> None:
        cache = GenericGroupCache()
        cache.intern(build_generic())
        cache.clear()
        assert len(cache) == 0
        assert cache.get(build_generic().ggid) is None

    def test_concurrent_intern_agrees(self) -> None:
        cache = GenericGroupCache()
        candidates = [build_generic() for _ in range(8)]
        results: list[ir.GenericGroup] = []
        barrier = threading.Barrier(len(candidates))

        def worker(generic: ir.GenericGroup) -> None:
            barrier.wait()
            results.append(cache.intern(generic))

        threads = [threading.Thread(target=worker, args=(c,)) for c in candidates]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len({id(r) for r in results}) == 1
        assert len(cache) == 1

    def test_default_cache(self, clean_cache: GenericGroupCache) -> None:
        first = intern_generic_group(build_generic())
        assert intern_generic_group(build_generic()) is first
        assert len(clean_cache) == 1


class TestCanonicalize:
    def test_repeated_instantiations_share_generic_part(
        self, clean_cache: GenericGroupCache
    ) -> None:
        arg = ir.Inline(type=INT_T)
        refs = [
            ir.Ref(
                type_name="t",
                group=ir.Group(generic_group=build_generic(), apply_implicit=(arg,)),
            )
            for _ in range(3)
        ]
        grammar = ir.Inline(
            type=ir.UnionType(types=tuple(ir.EmbeddedGrammar(payload=r) for r in refs))
        )
        canonical = canonicalize(grammar)

        groups = reachable_groups(canonical)
        assert len(groups) == 3
        assert len({id(g.generic_group) for g in groups}) == 1
        assert len(clean_cache) == 1

    def test_keeps_group_identity(self, tree_grammar: ir.Ref) -> None:
        cache = GenericGroupCache()
        canonical = canonicalize(tree_grammar, cache)
        assert canonical.group.gid is tree_grammar.group.gid
        assert canonical.group.generic_group == tree_grammar.group.generic_group
        assert not tree_grammar.group.gid.is_forced

    def test_nested_groups_interned(
        self, list_generic: ir.GenericGroup, tree_grammar: ir.Ref
    ) -> None:
        cache = GenericGroupCache()
        grammar = ir.Ref(
            type_name="t",
            group=ir.Group(generic_group=list_generic, apply_implicit=(tree_grammar,)),
        )
        canonicalize(grammar, cache)
        assert list_generic.ggid in cache
        assert tree_grammar.group.generic_group.ggid in cache
