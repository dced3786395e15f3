"""JSON persistence for user preferences and the last playback position.

Invalid or missing values degrade to defaults instead of aborting startup.
"""

from __future__ import annotations

import json
import logging
import math
from contextlib import suppress
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any
from uuid import uuid4

from cadence_player.services.playback_state import DEFAULT_VOLUME, ORDERS, REPEATS

logger = logging.getLogger(__name__)

BACKENDS = ("fake", "vlc")


@dataclass(frozen=True)
class AppState:
    """Persisted application state loaded at startup and saved on exit."""

    volume: int = DEFAULT_VOLUME
    order: str = "sequential"
    repeat: str = "none"
    playback_backend: str = "fake"
    last_track_id: str | None = None
    last_position: float = 0.0
    log_level: str = "INFO"
    api_base_url: str | None = None
    liked_track_ids: tuple[str, ...] = ()


def _coerce_state(data: dict[str, Any]) -> AppState:
    """Coerce an untyped JSON object into `AppState` with safe defaults."""

    def _int_in_range(value: Any, default: int, low: int, high: int) -> int:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return default
        if not math.isfinite(value):
            return default
        return max(low, min(int(value), high))

    def _non_negative_float(value: Any) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return 0.0
        normalized = float(value)
        if not math.isfinite(normalized):
            return 0.0
        return max(0.0, normalized)

    def _choice(value: Any, choices: tuple[str, ...], default: str) -> str:
        if isinstance(value, str) and value in choices:
            return value
        return default

    def _str_or_none(value: Any) -> str | None:
        if isinstance(value, str) and value.strip():
            return value
        return None

    def _track_ids(value: Any) -> tuple[str, ...]:
        if not isinstance(value, list):
            return ()
        ids: list[str] = []
        for item in value:
            if isinstance(item, int) and not isinstance(item, bool):
                item = str(item)
            if isinstance(item, str) and item.strip() and item not in ids:
                ids.append(item)
        return tuple(ids)

    order = _choice(data.get("order"), ORDERS, "sequential")
    repeat = _choice(data.get("repeat"), REPEATS, "none")
    if order == "shuffle":
        repeat = "none"
    last_track_id = data.get("last_track_id")
    if isinstance(last_track_id, int) and not isinstance(last_track_id, bool):
        last_track_id = str(last_track_id)
    return AppState(
        volume=_int_in_range(data.get("volume"), DEFAULT_VOLUME, 0, 100),
        order=order,
        repeat=repeat,
        playback_backend=_choice(data.get("playback_backend"), BACKENDS, "fake"),
        last_track_id=_str_or_none(last_track_id),
        last_position=_non_negative_float(data.get("last_position")),
        log_level=_str_or_none(data.get("log_level")) or "INFO",
        api_base_url=_str_or_none(data.get("api_base_url")),
        liked_track_ids=_track_ids(data.get("liked_track_ids")),
    )


def load_state_with_notice(path: Path) -> tuple[AppState, str | None]:
    """Load state and return an optional user-facing notice."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.info("State file missing at %s; using defaults.", path)
        return AppState(), None
    except OSError as exc:
        logger.warning("Failed to read state file %s: %s; using defaults.", path, exc)
        return (
            AppState(),
            "Settings were reset to defaults.\n"
            "Likely cause: state file is unreadable due to permissions or IO issues.\n"
            f"Next step: verify access to '{path}' and restart.",
        )

    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("State file at %s is invalid JSON; using defaults.", path)
        return (
            AppState(),
            "Settings were reset to defaults.\n"
            "Likely cause: state file is corrupt or partially written.\n"
            f"Next step: remove or repair '{path}' and restart.",
        )

    if not isinstance(data, dict):
        logger.warning("State file at %s is not a JSON object; using defaults.", path)
        return (
            AppState(),
            "Settings were reset to defaults.\n"
            "Likely cause: state file format is invalid for this version.\n"
            f"Next step: remove '{path}' and restart.",
        )

    return _coerce_state(data), None


def load_state(path: Path) -> AppState:
    state, _notice = load_state_with_notice(path)
    return state


def save_state(path: Path, state: AppState) -> None:
    """Persist state atomically via write-then-replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.{uuid4().hex}.tmp")
    payload = json.dumps(asdict(state), indent=2, sort_keys=True)
    try:
        tmp_path.write_text(payload, encoding="utf-8")
        tmp_path.replace(path)
    finally:
        with suppress(OSError):
            tmp_path.unlink()
