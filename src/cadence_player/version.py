"""Project version source of truth."""

from __future__ import annotations

import platform

__all__ = ["__version__", "build_help_epilog"]

# Keep in sync with pyproject.toml.
__version__ = "0.3.0"


def build_help_epilog() -> str:
    return (
        "Keys: space play/pause, n/p next/previous, o order, r repeat.\n"
        f"Platform: {platform.platform()}\n"
        f"Version: {__version__}"
    )
