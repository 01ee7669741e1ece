"""Tests for zenlsp.handlers.diagnostics — findings to LSP diagnostics."""
from __future__ import annotations

from lsprotocol import types as lsp

from zenlsp.handlers.diagnostics import get_diagnostics
from zenlsp.ranges import Finding


class TestGetDiagnostics:
    def test_no_findings(self):
        assert get_diagnostics([]) == []

    def test_range_and_metadata(self):
        [d] = get_diagnostics([
            Finding(1, 2, 3, 4, 'unknown key :x', lsp.DiagnosticSeverity.Warning),
        ])
        assert d.range == lsp.Range(
            start=lsp.Position(line=1, character=2),
            end=lsp.Position(line=3, character=4),
        )
        assert d.message == 'unknown key :x'
        assert d.severity == lsp.DiagnosticSeverity.Warning
        assert d.source == 'zen-lang'

    def test_point_is_widened_to_one_character(self):
        [d] = get_diagnostics([Finding(2, 5, 2, 5, 'm')])
        assert d.range.start == lsp.Position(line=2, character=5)
        assert d.range.end == lsp.Position(line=2, character=6)

    def test_positions_are_zero_based(self):
        diags = get_diagnostics([Finding(0, 0, 0, 1, 'a'), Finding(4, 0, 4, 0, 'b')])
        for d in diags:
            assert d.range.start.line >= 0
            assert d.range.start.character >= 0
