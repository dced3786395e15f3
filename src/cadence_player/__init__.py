"""cadence-player package."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

__all__ = ["__version__"]

try:
    __version__ = version("cadence-player")
except PackageNotFoundError:  # pragma: no cover - fallback for source checkouts
    from .version import __version__
