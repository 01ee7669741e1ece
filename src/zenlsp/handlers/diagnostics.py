"""Convert lint findings into LSP Diagnostic objects."""
from __future__ import annotations

from typing import Iterable

from lsprotocol import types as lsp

from zenlsp.ranges import Finding

SOURCE = 'zen-lang'


def get_diagnostics(findings: Iterable[Finding]) -> list[lsp.Diagnostic]:
    """Return an LSP ``Diagnostic`` for every finding.

    Zero-width findings are widened to one character so the editor has
    something to underline.
    """
    diags: list[lsp.Diagnostic] = []
    for f in findings:
        end_col = f.end_col
        if (f.end_line, end_col) == (f.start_line, f.start_col):
            end_col += 1
        diags.append(
            lsp.Diagnostic(
                range=lsp.Range(
                    start=lsp.Position(line=f.start_line, character=f.start_col),
                    end=lsp.Position(line=f.end_line, character=end_col),
                ),
                message=f.message,
                severity=f.severity,
                source=SOURCE,
            )
        )
    return diags
