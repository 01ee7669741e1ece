"""
Workspace configuration for zenlsp.

Settings are layered, later sources overriding earlier ones:

1. Built-in defaults.
2. ``zen.edn`` in the workspace root — its ``:paths`` vector lists the
   directories whose ``*.edn`` namespaces are preloaded into the validator.
3. ``.zenlsp.toml`` in the workspace root (``exclude``, ``paths``,
   ``log_level``).
4. Settings sent by the client, either as ``initializationOptions`` or as the
   ``zen`` section of ``workspace/didChangeConfiguration``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from zenlsp.reader import Keyword, ParseError, read_string

logger = logging.getLogger(__name__)

ZEN_CONFIG = 'zen.edn'
PROJECT_CONFIG = '.zenlsp.toml'

_PATHS = Keyword('paths')


@dataclass
class WorkspaceConfig:
    root: str | None = None
    paths: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    log_level: str | None = None


def _resolve_paths(root: Path, raw) -> list[str]:
    if not isinstance(raw, (list, tuple)):
        return []
    return [str((root / p).resolve()) for p in raw if isinstance(p, str)]


def _read_zen_config(root: Path) -> list[str]:
    """Return the absolute ``:paths`` listed in ``zen.edn``, if any."""
    config_path = root / ZEN_CONFIG
    if not config_path.is_file():
        return []
    try:
        data = read_string(config_path.read_text(encoding='utf-8'))
    except (OSError, ParseError) as e:
        logger.warning('could not read %s: %s', config_path, e)
        return []
    if not isinstance(data, dict):
        return []
    return _resolve_paths(root, data.get(_PATHS))


def _read_project_config(root: Path) -> dict:
    """Parse ``.zenlsp.toml`` in *root*, or return an empty dict."""
    try:
        import tomllib  # Python 3.11+
    except ImportError:
        import tomli as tomllib

    config_path = root / PROJECT_CONFIG
    if not config_path.exists():
        return {}
    try:
        return tomllib.loads(config_path.read_text(encoding='utf-8'))
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning('could not read %s: %s', config_path, e)
        return {}


def root_from_uri(uri: str | None) -> str | None:
    if not uri:
        return None
    if uri.startswith('file://'):
        return uri[7:]
    return uri


def load_workspace_config(root: str | None) -> WorkspaceConfig:
    config = WorkspaceConfig(root=root)
    if not root:
        return config
    root_path = Path(root)
    config.paths = _read_zen_config(root_path)

    project = _read_project_config(root_path)
    if 'paths' in project:
        config.paths = _resolve_paths(root_path, project['paths'])
    exclude = project.get('exclude')
    if isinstance(exclude, list):
        config.exclude = [str(p) for p in exclude]
    if isinstance(project.get('log_level'), str):
        config.log_level = project['log_level']
    return config


def apply_client_settings(config: WorkspaceConfig, settings) -> None:
    """Merge client-sent settings (a dict or a typed object) into *config*."""
    if settings is None:
        return
    if isinstance(settings, dict):
        get = settings.get
    else:
        def get(key, default=None):
            return getattr(settings, key, default)

    exclude = get('exclude')
    if isinstance(exclude, list):
        config.exclude = [str(p) for p in exclude]
    level = get('logLevel')
    if isinstance(level, str):
        config.log_level = level
