"""Tests for zenlsp.location — resolving validator paths to syntax nodes."""
from __future__ import annotations

from zenlsp.location import Resolution, resolve
from zenlsp.reader import Keyword, NodeKind, Position, Symbol, parse

A, B, C = Keyword('a'), Keyword('b'), Keyword('c')


class TestExactDescent:
    def test_scalar_leaf_span(self):
        loc = resolve(parse('{:a {:b 1}}'), [A, B])
        assert loc.status == Resolution.EXACT
        assert loc.node.value == 1
        assert loc.start == Position(1, 9, 8)
        assert loc.end == Position(1, 10, 9)
        assert loc.matched == (A, B)

    def test_empty_path_is_top_level_form(self):
        tree = parse('{:a 1}')
        loc = resolve(tree, [])
        assert loc.node is tree.forms[0]
        assert loc.status == Resolution.EXACT

    def test_vector_index(self):
        loc = resolve(parse('{:xs [10 20 30]}'), [Keyword('xs'), 2])
        assert loc.node.value == 30

    def test_symbol_keys(self):
        tree = parse('{ns app\n person {:type zen/map}}')
        loc = resolve(tree, [Symbol('person'), Keyword('type')])
        assert loc.node.value == Symbol('zen/map')
        assert loc.start.line == 2

    def test_descends_through_tagged_forms(self):
        loc = resolve(parse('{:a #foo {:b 1}}'), [A, B])
        assert loc.node.value == 1

    def test_duplicate_key_uses_first_occurrence(self):
        loc = resolve(parse('{:a 1 :a 2}'), [A])
        assert loc.node.value == 1


class TestPartialDescent:
    def test_mismatch_stops_at_last_matched_node(self):
        tree = parse('{:a {:b 1}}')
        loc = resolve(tree, [A, Keyword('x'), Keyword('y')])
        assert loc.status == Resolution.PARTIAL
        assert loc.node is tree.forms[0].child(A)
        assert loc.matched == (A,)

    def test_index_out_of_range(self):
        loc = resolve(parse('{:xs [1]}'), [Keyword('xs'), 5])
        assert loc.status == Resolution.PARTIAL
        assert loc.node.kind == NodeKind.VECTOR

    def test_root_mismatch_is_unresolved(self):
        assert resolve(parse('{:a 1}'), [Keyword('zzz')]) is None

    def test_empty_document_is_unresolved(self):
        assert resolve(parse(''), []) is None

    def test_key_of_wrong_type_does_not_match(self):
        assert resolve(parse('{"a" 1}'), [Symbol('a')]) is None


class TestUnknownKey:
    def test_resolves_to_containing_map(self):
        tree = parse('{:a {:b 1}}')
        loc = resolve(tree, [A, C], unknown_key=True)
        assert loc is not None
        assert loc.node is tree.forms[0].child(A)
        assert loc.node.kind == NodeKind.MAP
        assert loc.status == Resolution.EXACT

    def test_single_element_path_resolves_to_top_level_form(self):
        tree = parse('(schema {:a string?} :unknown-field 1)')
        loc = resolve(tree, [Keyword('unknown-field')], unknown_key=True)
        assert loc.node is tree.forms[0]

    def test_unknown_key_with_stale_parent(self):
        tree = parse('{:a {:b 1}}')
        loc = resolve(tree, [A, B, Keyword('x'), C], unknown_key=True)
        assert loc.status == Resolution.PARTIAL
        assert loc.node.value == 1
