"""vgmusic package."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

__all__ = ["MODULE_ID", "__version__"]

# Namespace under which every document flag owned by this package is stored.
MODULE_ID = "vgmusic"

try:
    __version__ = version("vgmusic")
except PackageNotFoundError:  # pragma: no cover - fallback for source checkouts
    __version__ = "0.0.0"
