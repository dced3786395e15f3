"""Runtime configuration normalization helpers.

These keep CLI flag and persisted-state interpretation deterministic.
"""

from __future__ import annotations

from cadence_player.services.playback_state import ORDER, ORDERS, REPEAT, REPEATS

BACKEND_NAMES = ("fake", "vlc")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_ORDER_ALIASES = {"normal": "sequential", "single-repeat": "single"}
_REPEAT_ALIASES = {"off": "none", "track": "one", "playlist": "all"}


def resolve_log_level(*, verbose: bool, quiet: bool, default: str = "INFO") -> str:
    """Resolve effective log level from CLI flags, else the persisted level.

    Precedence is deterministic: --quiet overrides --verbose, and either flag
    overrides `default`. Unknown level names fall back to INFO.
    """
    if quiet:
        return "WARNING"
    if verbose:
        return "DEBUG"
    normalized = default.strip().upper()
    if normalized in LOG_LEVELS:
        return normalized
    return "INFO"


def resolve_backend_name(cli_backend: str | None, state_backend: str) -> str:
    """CLI choice wins over persisted state; unknown names fall back to `fake`."""
    for candidate in (cli_backend, state_backend):
        if candidate is None:
            continue
        normalized = candidate.strip().lower()
        if normalized in BACKEND_NAMES:
            return normalized
    return "fake"


def normalize_order(value: str) -> ORDER:
    normalized = value.strip().lower()
    normalized = _ORDER_ALIASES.get(normalized, normalized)
    for order in ORDERS:
        if order == normalized:
            return order
    return "sequential"


def normalize_repeat(value: str) -> REPEAT:
    normalized = value.strip().lower()
    normalized = _REPEAT_ALIASES.get(normalized, normalized)
    for repeat in REPEATS:
        if repeat == normalized:
            return repeat
    return "none"
