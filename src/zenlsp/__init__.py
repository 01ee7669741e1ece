"""zenlsp – zen schema language server."""
try:
    from importlib.metadata import version, PackageNotFoundError
    try:
        __version__ = version('zen-lsp')
    except PackageNotFoundError:
        __version__ = '0.0.0.dev0'
except ImportError:
    __version__ = '0.0.0.dev0'
