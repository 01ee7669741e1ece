"""
zenlsp Language Server.

Registers LSP capabilities and wires document notifications to the lint
cycle.  Linting runs on a worker thread; diagnostics and log messages are
handed back to the event loop before they are written to the client.
"""
from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Sequence

from pygls.lsp.server import LanguageServer
from lsprotocol import types as lsp

from zenlsp import __version__
from zenlsp.handlers import get_diagnostics
from zenlsp.lint import Linter
from zenlsp.ranges import Finding
from zenlsp.validator import SchemaStore
from zenlsp.workspace import (
    WorkspaceConfig,
    apply_client_settings,
    load_workspace_config,
    root_from_uri,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Server instance + per-session state
# ---------------------------------------------------------------------------

server = LanguageServer(
    'zenlsp', __version__,
    text_document_sync_kind=lsp.TextDocumentSyncKind.Full,
)

_config = WorkspaceConfig()

# Event loop that owns the client connection, captured on first use.
_loop: asyncio.AbstractEventLoop | None = None

# A single worker: lint cycles share one validator.
_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='zenlsp-lint')


def _call_on_loop(fn, *args) -> None:
    """Run *fn* on the server's event loop (directly if we are already there)."""
    loop = _loop
    if loop is None or not loop.is_running():
        fn(*args)
        return
    try:
        running = asyncio.get_running_loop()
    except RuntimeError:
        running = None
    if running is loop:
        fn(*args)
    else:
        loop.call_soon_threadsafe(fn, *args)


def _send_diagnostics(uri: str, findings: Sequence[Finding]) -> None:
    server.text_document_publish_diagnostics(
        lsp.PublishDiagnosticsParams(uri=uri, diagnostics=get_diagnostics(findings))
    )


def _publish(uri: str, findings: Sequence[Finding]) -> None:
    logger.debug('_publish: %s → %d diagnostics', uri, len(findings))
    _call_on_loop(_send_diagnostics, uri, findings)


_linter = Linter(SchemaStore(), publish=_publish)


# ---------------------------------------------------------------------------
# Logging to the client
# ---------------------------------------------------------------------------

_MESSAGE_TYPES = {
    logging.DEBUG: lsp.MessageType.Log,
    logging.INFO: lsp.MessageType.Info,
    logging.WARNING: lsp.MessageType.Warning,
    logging.ERROR: lsp.MessageType.Error,
    logging.CRITICAL: lsp.MessageType.Error,
}


class ClientLogHandler(logging.Handler):
    """Forward log records to the editor via ``window/logMessage``."""

    def emit(self, record: logging.LogRecord) -> None:
        if record.name.startswith('pygls'):
            return
        try:
            params = lsp.LogMessageParams(
                type=_MESSAGE_TYPES.get(record.levelno, lsp.MessageType.Log),
                message=self.format(record),
            )
            _call_on_loop(server.window_log_message, params)
        except Exception:
            self.handleError(record)


_client_log_handler = ClientLogHandler(level=logging.INFO)


def _apply_log_level(raw: str | None) -> None:
    """Set the root logger level from a string like 'debug', 'warning', etc."""
    if not raw:
        return
    level = getattr(logging, raw.upper(), None)
    if isinstance(level, int):
        logging.getLogger().setLevel(level)


def _apply_config() -> None:
    _linter.exclude = list(_config.exclude)
    _apply_log_level(_config.log_level)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

@server.feature(lsp.INITIALIZE)
def on_initialize(params: lsp.InitializeParams):
    global _config
    _config = load_workspace_config(root_from_uri(params.root_uri))
    apply_client_settings(_config, getattr(params, 'initialization_options', None))
    _apply_config()
    if _config.paths:
        logger.debug('on_initialize: preloading %s', _config.paths)
        _linter.preload(_config.paths)


@server.feature(lsp.INITIALIZED)
def on_initialized(params: lsp.InitializedParams):
    global _loop
    try:
        _loop = asyncio.get_running_loop()
    except RuntimeError:
        _loop = None
    root = logging.getLogger()
    if _client_log_handler not in root.handlers:
        root.addHandler(_client_log_handler)
    logger.info('zen-lsp language server loaded.')


@server.feature(lsp.SHUTDOWN)
def on_shutdown(params=None):
    logger.info('zen-lsp language server shutting down.')
    _executor.shutdown(wait=False)


@server.feature(lsp.WORKSPACE_DID_CHANGE_CONFIGURATION)
def did_change_configuration(params: lsp.DidChangeConfigurationParams):
    """Handle live config changes (the ``zen`` settings section)."""
    settings = getattr(params, 'settings', None) or {}
    if isinstance(settings, dict):
        apply_client_settings(_config, settings.get('zen'))
        _apply_config()


# ---------------------------------------------------------------------------
# Text document synchronisation
# ---------------------------------------------------------------------------

async def _lint_async(uri: str, text: str) -> None:
    global _loop
    _loop = asyncio.get_running_loop()
    await _loop.run_in_executor(_executor, _linter.lint, text, uri)


@server.feature(lsp.TEXT_DOCUMENT_DID_OPEN)
async def did_open(params: lsp.DidOpenTextDocumentParams):
    td = params.text_document
    logger.debug('opened file, linting: %s', td.uri)
    await _lint_async(td.uri, td.text)


@server.feature(lsp.TEXT_DOCUMENT_DID_CHANGE)
async def did_change(params: lsp.DidChangeTextDocumentParams):
    uri = params.text_document.uri
    # Full sync: the last change carries the whole document.
    text = params.content_changes[-1].text
    logger.debug('changed file, linting: %s', uri)
    await _lint_async(uri, text)


@server.feature(lsp.TEXT_DOCUMENT_DID_CLOSE)
def did_close(params: lsp.DidCloseTextDocumentParams):
    uri = params.text_document.uri
    if not _linter.is_excluded(uri):
        _publish(uri, [])
