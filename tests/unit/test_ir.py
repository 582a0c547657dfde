"""Tests for the grammar IR models."""

from __future__ import annotations

import pytest
from pydantic import TypeAdapter, ValidationError

from sexp_grammar.core import ir
from sexp_grammar.core.ids import compute_generic_group_id

GRAMMAR_ADAPTER = TypeAdapter(ir.Grammar)


class TestTypeNodes:
    def test_structural_equality_and_hashing(self) -> None:
        first = ir.ListType(components=(ir.One(type=ir.AtomType(atom=ir.INT)),))
        second = ir.ListType(components=(ir.One(type=ir.AtomType(atom=ir.INT)),))
        assert first == second
        assert hash(first) == hash(second)
        assert len({first, second}) == 1

    def test_nodes_are_frozen(self) -> None:
        node = ir.ExplicitVar(index=0)
        with pytest.raises(ValidationError):
            node.index = 1  # type: ignore[misc]

    def test_negative_indices_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ir.ExplicitVar(index=-1)
        with pytest.raises(ValidationError):
            ir.ImplicitVar(index=-1)

    def test_record_helpers(self) -> None:
        record = ir.RecordType(
            fields=(
                ("a", ir.RecordField(args=(ir.One(type=ir.AtomType(atom=ir.INT)),))),
                ("b", ir.RecordField(optional=True)),
            )
        )
        assert record.required_labels == frozenset({"a"})
        assert record.field("b") is not None
        assert record.field("b").optional
        assert record.field("c") is None

    def test_discriminated_union_from_dict(self) -> None:
        adapter = TypeAdapter(ir.GrammarType)
        node = adapter.validate_python(
            {
                "kind": "list",
                "components": [
                    {"kind": "one", "type": {"kind": "atom", "atom": {"kind": "int"}}},
                    {"kind": "optional", "type": {"kind": "recursive", "name": "t"}},
                ],
            }
        )
        assert node == ir.ListType(
            components=(
                ir.One(type=ir.AtomType(atom=ir.INT)),
                ir.MaybeOne(type=ir.RecursiveRef(name="t")),
            )
        )

    def test_unknown_kind_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TypeAdapter(ir.GrammarType).validate_python({"kind": "bogus"})


class TestGenericGroup:
    def test_ggid_computed_from_content(self, list_generic: ir.GenericGroup) -> None:
        assert list_generic.ggid == compute_generic_group_id(
            list_generic.implicit_vars, list_generic.types
        )

    def test_equal_content_equal_ggid(self) -> None:
        def build() -> ir.GenericGroup:
            return ir.GenericGroup(types=(("t", ir.AtomType(atom=ir.INT)),))

        assert build().ggid == build().ggid
        assert build() == build()

    def test_different_content_different_ggid(self) -> None:
        first = ir.GenericGroup(types=(("t", ir.AtomType(atom=ir.INT)),))
        second = ir.GenericGroup(types=(("t", ir.AtomType(atom=ir.FLOAT)),))
        assert first.ggid != second.ggid

    def test_explicit_ggid_kept(self) -> None:
        group = ir.GenericGroup(ggid="custom", types=(("t", ir.AnyType()),))
        assert group.ggid == "custom"

    def test_arity_and_lookup(self, tree_generic: ir.GenericGroup) -> None:
        assert tree_generic.arity == 1
        assert tree_generic.type_names == ["tree", "forest"]
        assert isinstance(tree_generic.lookup("forest"), ir.ListType)
        assert tree_generic.lookup("missing") is None

    def test_lookup_first_declaration_wins(self) -> None:
        group = ir.GenericGroup(
            types=(("t", ir.AtomType(atom=ir.INT)), ("t", ir.AtomType(atom=ir.FLOAT)))
        )
        assert group.lookup("t") == ir.AtomType(atom=ir.INT)


class TestJsonRoundTrip:
    def test_grammar_survives_json(self, tree_grammar: ir.Grammar) -> None:
        loaded = GRAMMAR_ADAPTER.validate_json(GRAMMAR_ADAPTER.dump_json(tree_grammar))
        assert isinstance(loaded, ir.Ref)
        assert loaded.type_name == "tree"
        assert loaded.group.generic_group == tree_grammar.group.generic_group
        assert loaded.group.apply_implicit == tree_grammar.group.apply_implicit
        assert loaded.group.origin == "test_tree"

    def test_loaded_group_gets_fresh_identity(self, tree_grammar: ir.Grammar) -> None:
        loaded = GRAMMAR_ADAPTER.validate_json(GRAMMAR_ADAPTER.dump_json(tree_grammar))
        assert loaded.group.gid is not tree_grammar.group.gid
        assert not loaded.group.gid.is_forced
