"""Tests for zenlsp.ranges — normalising locations into 0-based findings."""
from __future__ import annotations

import pytest
from lsprotocol import types as lsp

from zenlsp.location import resolve
from zenlsp.ranges import (
    Finding,
    Hints,
    char_at,
    severity_for,
    source_lines,
    to_range,
)
from zenlsp.reader import Keyword, parse


class TestSeverity:
    @pytest.mark.parametrize('level, expected', [
        ('info', lsp.DiagnosticSeverity.Information),
        ('warning', lsp.DiagnosticSeverity.Warning),
        ('error', lsp.DiagnosticSeverity.Error),
    ])
    def test_known_levels(self, level, expected):
        assert severity_for(level) == expected

    def test_unknown_and_missing_default_to_warning(self):
        assert severity_for('fatal') == lsp.DiagnosticSeverity.Warning
        assert severity_for(None) == lsp.DiagnosticSeverity.Warning


class TestCharAt:
    def test_in_bounds(self):
        assert char_at(['ab', 'cd'], 1, 1) == 'd'

    def test_out_of_bounds_is_none(self):
        lines = ['ab']
        assert char_at(lines, 0, 2) is None
        assert char_at(lines, 3, 0) is None
        assert char_at(lines, -1, 0) is None

    def test_source_lines_handles_crlf(self):
        assert source_lines('a\r\nb\nc') == ['a', 'b', 'c']


class TestToRange:
    def test_nothing_to_point_at(self):
        assert to_range(None, Hints(), ['x']) is None
        assert to_range(None, Hints(row=1), ['x']) is None

    def test_node_span(self):
        text = '{:a {:b 1}}'
        loc = resolve(parse(text), [Keyword('a'), Keyword('b')])
        finding = to_range(loc, Hints(), source_lines(text), message='bad')
        assert finding == Finding(0, 8, 0, 9, 'bad', lsp.DiagnosticSeverity.Warning)

    def test_hints_take_priority_over_node(self):
        text = '{:a 1}\n{:b 2}'
        loc = resolve(parse(text), [Keyword('a')])
        finding = to_range(loc, Hints(row=2, col=2), source_lines(text))
        assert (finding.start_line, finding.start_col) == (1, 1)
        assert (finding.end_line, finding.end_col) == (1, 1)

    def test_end_hints(self):
        finding = to_range(None, Hints(row=1, col=2, end_row=2, end_col=4), ['abc', 'defg'])
        assert (finding.start_line, finding.start_col, finding.end_line, finding.end_col) == (0, 1, 1, 3)

    def test_coordinates_never_negative(self):
        finding = to_range(None, Hints(row=0, col=0, end_row=-3, end_col=0), ['abc'])
        assert (finding.start_line, finding.start_col, finding.end_line, finding.end_col) == (0, 0, 0, 0)

    def test_expression_heuristic_ignores_end_hints(self):
        lines = source_lines('(foo :bar 1)')
        finding = to_range(None, Hints(row=1, col=1, end_row=3, end_col=10), lines)
        assert (finding.start_line, finding.start_col, finding.end_line, finding.end_col) == (0, 0, 0, 1)

    def test_expression_heuristic_on_multiline_node(self):
        text = '{:a (foo\n     1)}'
        loc = resolve(parse(text), [Keyword('a')])
        assert loc.end.line == 2
        finding = to_range(loc, Hints(), source_lines(text))
        assert (finding.start_line, finding.start_col, finding.end_line, finding.end_col) == (0, 4, 0, 5)

    def test_past_end_of_line_falls_through(self):
        finding = to_range(None, Hints(row=1, col=50), ['abc'])
        assert (finding.start_line, finding.start_col, finding.end_line, finding.end_col) == (0, 49, 0, 49)

    def test_past_last_line_does_not_raise(self):
        finding = to_range(None, Hints(row=9, col=1, end_row=9, end_col=3), ['abc'])
        assert (finding.start_line, finding.end_col) == (8, 2)

    def test_severity_and_message_are_carried(self):
        finding = to_range(None, Hints(row=1, col=1), ['x'], message='m',
                           severity=lsp.DiagnosticSeverity.Error)
        assert finding.message == 'm'
        assert finding.severity == lsp.DiagnosticSeverity.Error
