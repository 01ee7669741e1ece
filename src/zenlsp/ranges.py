"""
Turn a resolved location (or the validator's own row/col hints) into a
:class:`Finding`: a 0-based range plus message and severity.

This is the only place that converts between the 1-based coordinates of the
reader and the validator and the 0-based coordinates of the LSP.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from lsprotocol import types as lsp

from zenlsp.location import ResolvedLocation

logger = logging.getLogger(__name__)

SEVERITIES = {
    'info': lsp.DiagnosticSeverity.Information,
    'warning': lsp.DiagnosticSeverity.Warning,
    'error': lsp.DiagnosticSeverity.Error,
}
DEFAULT_SEVERITY = lsp.DiagnosticSeverity.Warning

_LINE_SPLIT_RE = re.compile(r'\r?\n')


@dataclass(frozen=True)
class Hints:
    """Coordinates supplied directly by the validator (1-based, inclusive)."""
    row: int | None = None
    col: int | None = None
    end_row: int | None = None
    end_col: int | None = None


@dataclass(frozen=True)
class Finding:
    start_line: int   # all 0-based
    start_col: int
    end_line: int
    end_col: int
    message: str
    severity: lsp.DiagnosticSeverity = DEFAULT_SEVERITY


def severity_for(level: str | None) -> lsp.DiagnosticSeverity:
    """Map a validator severity name to an LSP severity (unknown → Warning)."""
    if level in SEVERITIES:
        return SEVERITIES[level]
    if level is not None:
        logger.debug('unknown severity %r, reporting as warning', level)
    return DEFAULT_SEVERITY


def source_lines(text: str) -> list[str]:
    return _LINE_SPLIT_RE.split(text)


def char_at(lines: list[str], line: int, col: int) -> str | None:
    """Return the character at 0-based (*line*, *col*), or None if out of range."""
    if not (0 <= line < len(lines)):
        return None
    text = lines[line]
    if not (0 <= col < len(text)):
        return None
    return text[col]


def _zero_based(value: int) -> int:
    return max(0, value - 1)


def to_range(
    resolved: ResolvedLocation | None,
    hints: Hints,
    lines: list[str],
    message: str = '',
    severity: lsp.DiagnosticSeverity = DEFAULT_SEVERITY,
) -> Finding | None:
    """Build a :class:`Finding`, or None when there is nothing to point at.

    Validator hints take precedence over the node span.  When the start lands
    on an opening parenthesis the range collapses to that single character, so
    a whole multi-line form is not underlined when only its head is at fault.
    """
    if hints.row is not None and hints.col is not None:
        row, col, end_row, end_col = hints.row, hints.col, hints.end_row, hints.end_col
    elif resolved is not None:
        row, col = resolved.start.line, resolved.start.col
        end_row, end_col = resolved.end.line, resolved.end.col
    else:
        return None

    line = _zero_based(row)
    start = _zero_based(col)

    if char_at(lines, line, start) == '(':
        return Finding(line, start, line, start + 1, message, severity)

    end_line = _zero_based(end_row) if end_row is not None else line
    end = _zero_based(end_col) if end_col is not None else start
    return Finding(line, start, end_line, end, message, severity)
