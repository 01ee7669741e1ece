"""
zenlsp command line.

With no arguments the language server talks LSP over stdin/stdout.  ``--check``
runs the same lint cycle once over files on disk and prints one line per
finding, which is handy in CI and for reproducing editor diagnostics:

    zenlsp --check zrc/app.edn --paths zrc
    zrc/app.edn:9:2: warning: unknown key :email
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from lsprotocol import types as lsp

from zenlsp.lint import Linter
from zenlsp.ranges import Finding
from zenlsp.validator import SchemaStore
from zenlsp.workspace import load_workspace_config

_SEVERITY_NAMES = {
    lsp.DiagnosticSeverity.Error: 'error',
    lsp.DiagnosticSeverity.Warning: 'warning',
    lsp.DiagnosticSeverity.Information: 'info',
    lsp.DiagnosticSeverity.Hint: 'hint',
}


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog='zenlsp',
        description='Language server that reports zen schema errors in .edn files.',
    )
    mode = p.add_mutually_exclusive_group()
    mode.add_argument('--stdio', action='store_true', help='Serve LSP over stdin/stdout (default)')
    mode.add_argument('--tcp', metavar='PORT', type=int, help='Serve LSP on 127.0.0.1:PORT')
    mode.add_argument(
        '--check', metavar='FILE', nargs='+', type=Path,
        help='Lint FILE(s) once, print findings and exit non-zero if there are any',
    )
    p.add_argument(
        '--paths', metavar='DIR', nargs='+', default=[],
        help='Directories to preload namespaces from (with --check; added to zen.edn :paths)',
    )
    p.add_argument('--version', action='store_true', help='Print the zenlsp version and exit')
    p.add_argument(
        '--log-level', metavar='LEVEL', default='WARNING',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Logging level written to stderr (default: WARNING)',
    )
    return p


def format_finding(path: str, finding: Finding) -> str:
    """``path:line:col: severity: message`` with 1-based line and column."""
    severity = _SEVERITY_NAMES.get(finding.severity, 'warning')
    return f'{path}:{finding.start_line + 1}:{finding.start_col + 1}: {severity}: {finding.message}'


def check(files: Sequence[Path], paths: Sequence[str] = (), out=None) -> int:
    """Lint *files* and write their findings to *out*; returns the finding count."""
    if out is None:
        out = sys.stdout
    config = load_workspace_config(str(Path.cwd()))
    linter = Linter(SchemaStore(), exclude=config.exclude)
    preload = [*config.paths, *paths]
    if preload:
        linter.preload(preload)

    total = 0
    for path in files:
        try:
            text = path.read_text(encoding='utf-8')
        except OSError as e:
            print(f'{path}: cannot read: {e.strerror or e}', file=sys.stderr)
            total += 1
            continue
        for finding in linter.lint(text, path.resolve().as_uri()):
            print(format_finding(str(path), finding), file=out)
            total += 1
    return total


def zenlsp(argv: list[str] | None = None) -> None:
    """Entry point for the ``zenlsp`` command."""
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(levelname)s %(name)s: %(message)s',
        stream=sys.stderr,
    )

    if args.version:
        from zenlsp import __version__
        print(f'zenlsp {__version__}')
        sys.exit(0)

    if args.check:
        sys.exit(1 if check(args.check, args.paths) else 0)

    from zenlsp.server import server
    if args.tcp is not None:
        server.start_tcp('127.0.0.1', args.tcp)
    else:
        server.start_io()


if __name__ == '__main__':
    zenlsp()
