"""
The per-document lint cycle.

``Linter.lint`` is run once per open/change notification with the full text
of the document:

1. parse the text into a position-preserving tree,
2. submit the data to the validator and drain its accumulated errors,
3. resolve each error's path to a node and normalise it into a Finding,
4. hand the findings to the publish sink.

The validator keeps its errors in shared mutable state, so submit, read and
clear happen under one lock for every document.  Parsing and resolution are
pure and run outside it.  Nothing raised inside a cycle escapes ``lint``.
"""
from __future__ import annotations

import logging
import threading
import traceback
from fnmatch import fnmatch
from typing import Callable, Iterable, Sequence
from urllib.parse import unquote, urlparse

from lsprotocol import types as lsp

from zenlsp.location import resolve
from zenlsp.ranges import Finding, Hints, severity_for, source_lines, to_range
from zenlsp.reader import ParseError, Symbol, SyntaxNode, parse
from zenlsp.validator import NS, ValidationError, Validator

logger = logging.getLogger(__name__)

# Editor scratch buffers that look like EDN but are not zen namespaces.
DEFAULT_EXCLUDE = (
    '*.calva/output-window/output.calva-repl',
)

UNKNOWN_KEY_MARKER = 'unknown key'

PublishSink = Callable[[str, Sequence[Finding]], None]


def uri_to_path(uri: str) -> str:
    return unquote(urlparse(uri).path)


def error_path(error: ValidationError) -> tuple:
    """The error's path from the top of the document.

    Errors raised inside a definition are reported relative to it; the
    definition's unqualified name is its key in the namespace map.
    """
    path = tuple(error.path)
    if error.resource is not None:
        path = (Symbol(error.resource.name),) + path
    return path


def error_to_finding(tree: SyntaxNode, error: ValidationError, lines: list[str]) -> Finding | None:
    unknown_key = UNKNOWN_KEY_MARKER in error.message
    resolved = resolve(tree, error_path(error), unknown_key=unknown_key)
    hints = Hints(error.row, error.col, error.end_row, error.end_col)
    return to_range(
        resolved, hints, lines,
        message=error.message,
        severity=severity_for(error.severity),
    )


def _document_namespace(data) -> str | None:
    if isinstance(data, dict) and isinstance(data.get(NS), Symbol):
        return data[NS].text
    return None


def _belongs_to(error: ValidationError, namespace: str | None) -> bool:
    if error.resource is None:
        return True
    return namespace is not None and error.resource.namespace == namespace


class Linter:
    """Runs lint cycles against a shared :class:`~zenlsp.validator.Validator`."""

    def __init__(
        self,
        validator: Validator,
        publish: PublishSink | None = None,
        exclude: Iterable[str] = (),
    ):
        self.validator = validator
        self.publish = publish
        self.exclude: list[str] = list(exclude)
        self._lock = threading.Lock()

    def is_excluded(self, uri: str) -> bool:
        return any(fnmatch(uri, pattern) for pattern in (*DEFAULT_EXCLUDE, *self.exclude))

    def preload(self, paths: Iterable[str]) -> None:
        """Load namespaces from *paths* into the validator (if it supports it)."""
        load_paths = getattr(self.validator, 'load_paths', None)
        if load_paths is None:
            return
        with self._lock:
            try:
                load_paths(list(paths))
            except Exception:
                logger.error('preload failed:\n%s', traceback.format_exc())

    def lint(self, text: str, uri: str) -> list[Finding]:
        """Lint *text* as the content of *uri* and publish the findings."""
        if self.is_excluded(uri):
            logger.debug('lint: skipping excluded %s', uri)
            return []

        findings: list[Finding] = []
        try:
            self._run(text, uri, findings)
        except Exception:
            logger.error('lint: cycle failed for %s:\n%s', uri, traceback.format_exc())

        logger.debug('lint: %s → %d findings', uri, len(findings))
        if self.publish is not None:
            try:
                self.publish(uri, findings)
            except Exception:
                logger.error('lint: publishing diagnostics for %s failed', uri, exc_info=True)
        return findings

    def _run(self, text: str, uri: str, findings: list[Finding]) -> None:
        lines = source_lines(text)
        try:
            tree = parse(text)
        except ParseError as e:
            logger.debug('lint: %s does not parse: %s', uri, e)
            finding = to_range(
                None, Hints(e.row, e.col), lines,
                message=e.message,
                severity=lsp.DiagnosticSeverity.Error,
            )
            if finding is not None:
                findings.append(finding)
            return

        data = tree.to_value()
        namespace = _document_namespace(data)

        with self._lock:
            try:
                self.validator.submit(data, {'zen/file': uri_to_path(uri)})
                errors = list(self.validator.read_errors())
            finally:
                self.validator.clear_errors()

        for error in errors:
            if not _belongs_to(error, namespace):
                logger.debug('lint: dropping error for foreign resource %s', error.resource)
                continue
            finding = error_to_finding(tree, error, lines)
            if finding is not None:
                findings.append(finding)
