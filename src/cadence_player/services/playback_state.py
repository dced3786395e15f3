"""Shared playback state record and its observable store.

`PlaybackStore` is created once at application start and handed by reference
to the engine and every UI consumer. Each mutation replaces the frozen
`PlaybackState` snapshot and synchronously notifies subscribers with the set
of changed fields and the origin of the write, which lets the engine ignore
its own writes while mirroring host intent into the device.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, fields, replace
from functools import cached_property
from typing import Any, Literal

from cadence_player.services.lyrics import (
    LyricLine,
    current_lyric_line,
    lyric_times,
    next_lyric_line,
    parse_lyrics,
    plain_lyrics,
)
from cadence_player.utils.time_format import format_time

logger = logging.getLogger(__name__)

ORDER = Literal["sequential", "shuffle", "single"]
REPEAT = Literal["none", "one", "all"]
STATUS = Literal["empty", "loading", "ready", "playing", "paused", "ended", "error"]
ERROR_KIND = Literal["auth_required", "blocked", "load_error"]

ORDERS: tuple[ORDER, ...] = ("sequential", "shuffle", "single")
REPEATS: tuple[REPEAT, ...] = ("none", "one", "all")
ORDER_LABELS = {
    "sequential": "Sequential",
    "shuffle": "Shuffle",
    "single": "Single repeat",
}
HISTORY_LIMIT = 50
DEFAULT_VOLUME = 80

HOST_ORIGIN = "host"
ENGINE_ORIGIN = "engine"


@dataclass(frozen=True)
class Track:
    """Playable audio item with display metadata and optional lyrics."""

    id: str
    title: str
    artist: str = ""
    album: str = ""
    url: str = ""
    duration: float | None = None
    lyrics: tuple[str, ...] = ()
    cover_url: str | None = None
    requires_auth: bool = True

    def with_duration(self, seconds: float) -> Track:
        return replace(self, duration=seconds)

    @cached_property
    def timed_lyrics(self) -> tuple[LyricLine, ...]:
        return parse_lyrics(self.lyrics)

    @cached_property
    def lyric_times(self) -> tuple[float, ...]:
        return lyric_times(self.timed_lyrics)

    @cached_property
    def untimed_lyrics(self) -> tuple[str, ...]:
        """Plain lines, only when none of the lyrics carry a timestamp."""
        if self.timed_lyrics:
            return ()
        return plain_lyrics(self.lyrics)


@dataclass(frozen=True)
class PlaybackState:
    """Snapshot of playback intent and device-derived progress."""

    current_track: Track | None = None
    playlist: tuple[Track, ...] = ()
    is_playing: bool = False
    position: float = 0.0
    duration: float = 0.0
    volume: int = DEFAULT_VOLUME
    order: ORDER = "sequential"
    repeat: REPEAT = "none"
    queue: tuple[Track, ...] = ()
    history: tuple[Track, ...] = ()
    liked: frozenset[str] = frozenset()
    status: STATUS = "empty"
    pending_play: bool = False
    error: str | None = None
    error_kind: ERROR_KIND | None = None

    @property
    def current_index(self) -> int:
        if self.current_track is None:
            return -1
        return index_of(self.playlist, self.current_track.id)

    @property
    def progress_percentage(self) -> float:
        if self.duration <= 0:
            return 0.0
        return self.position / self.duration * 100

    @property
    def formatted_position(self) -> str:
        return format_time(self.position)

    @property
    def formatted_duration(self) -> str:
        return format_time(self.duration)

    @property
    def order_label(self) -> str:
        return ORDER_LABELS.get(self.order, ORDER_LABELS["sequential"])

    @property
    def has_next(self) -> bool:
        if self.queue:
            return True
        if self.repeat in {"one", "all"}:
            return True
        index = self.current_index
        return index != -1 and index < len(self.playlist) - 1

    @property
    def has_previous(self) -> bool:
        if self.current_index == -1:
            return False
        return self.current_index > 0 or len(self.history) > 1

    def is_liked(self, track_id: str) -> bool:
        return track_id in self.liked

    @property
    def current_lyric(self) -> str:
        track = self.current_track
        if track is None:
            return ""
        return current_lyric_line(track.timed_lyrics, self.position, track.lyric_times)

    @property
    def next_lyric(self) -> str:
        track = self.current_track
        if track is None:
            return ""
        return next_lyric_line(track.timed_lyrics, self.position, track.lyric_times)

    def summary(self) -> str:
        """One-line status used by logs and the terminal host."""
        track = self.current_track
        if track is None:
            return "Not playing"
        status = "Playing" if self.is_playing else "Paused"
        progress = f"{self.formatted_position} / {self.formatted_duration}"
        return f"{track.title} - {status} ({progress}) [{self.order_label}]"


@dataclass(frozen=True)
class StateChange:
    """Notification payload delivered to store subscribers."""

    previous: PlaybackState
    current: PlaybackState
    changed: frozenset[str] = field(default_factory=frozenset)
    origin: str = HOST_ORIGIN


StateListener = Callable[[StateChange], None]

_FIELD_NAMES = frozenset(item.name for item in fields(PlaybackState))


class PlaybackStore:
    """Owns the singleton `PlaybackState` and its subscriber list."""

    def __init__(self, initial: PlaybackState | None = None) -> None:
        self._state = initial or PlaybackState()
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> PlaybackState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def update(self, *, origin: str = HOST_ORIGIN, **changes: Any) -> PlaybackState:
        """Apply field changes, clamp invariants and notify on real changes."""
        unknown = set(changes) - _FIELD_NAMES
        if unknown:
            raise TypeError(f"Unknown playback state fields: {sorted(unknown)}")
        previous = self._state
        candidate = replace(previous, **changes)
        duration = max(0.0, float(candidate.duration))
        position = _clamp(float(candidate.position), 0.0, duration)
        volume = int(_clamp(int(candidate.volume), 0, 100))
        candidate = replace(
            candidate, duration=duration, position=position, volume=volume
        )
        changed = frozenset(
            name
            for name in _FIELD_NAMES
            if getattr(previous, name) != getattr(candidate, name)
        )
        if not changed:
            return previous
        self._state = candidate
        self._notify(StateChange(previous, candidate, changed, origin))
        return candidate

    def set_playlist(self, tracks: Iterable[Track]) -> None:
        """Replace the playlist, selecting its first track if none is current."""
        playlist = tuple(tracks)
        logger.info("Playlist set with %d tracks.", len(playlist))
        if self._state.current_track is None and playlist:
            self.update(playlist=playlist, current_track=playlist[0])
            return
        self.update(playlist=playlist)

    def add_to_playlist(self, track: Track) -> None:
        self.update(playlist=self._state.playlist + (track,))

    def select(self, track: Track) -> None:
        self.update(current_track=track)

    def enqueue(self, track: Track) -> None:
        self.update(queue=self._state.queue + (track,))

    def clear_queue(self) -> None:
        self.update(queue=())

    def set_liked(self, track_ids: Iterable[str]) -> None:
        self.update(liked=frozenset(track_ids))

    def like(self, track_id: str) -> None:
        self.update(liked=self._state.liked | {track_id})

    def unlike(self, track_id: str) -> None:
        self.update(liked=self._state.liked - {track_id})

    def toggle_liked(self, track_id: str) -> bool:
        """Flip the liked flag for `track_id`; returns whether it is now liked."""
        if self._state.is_liked(track_id):
            self.unlike(track_id)
            return False
        self.like(track_id)
        return True

    def set_order(self, order: ORDER) -> None:
        if order not in ORDERS:
            raise ValueError(f"Unsupported play order: {order!r}")
        if order == "shuffle":
            # Shuffle and repeat modes are mutually exclusive.
            self.update(order=order, repeat="none")
            return
        self.update(order=order)

    def cycle_order(self) -> ORDER:
        index = ORDERS.index(self._state.order)
        self.set_order(ORDERS[(index + 1) % len(ORDERS)])
        return self._state.order

    def set_repeat(self, repeat: REPEAT) -> None:
        if repeat not in REPEATS:
            raise ValueError(f"Unsupported repeat mode: {repeat!r}")
        self.update(repeat=repeat)

    def cycle_repeat(self) -> REPEAT:
        index = REPEATS.index(self._state.repeat)
        self.set_repeat(REPEATS[(index + 1) % len(REPEATS)])
        return self._state.repeat

    def set_volume(self, volume: int) -> None:
        self.update(volume=volume)

    def request_play(self) -> None:
        self.update(is_playing=True)

    def request_pause(self) -> None:
        self.update(is_playing=False)

    def toggle_play_pause(self) -> None:
        self.update(is_playing=not self._state.is_playing)

    def _notify(self, change: StateChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception(
                    "State listener failed for fields %s", sorted(change.changed)
                )


def index_of(tracks: Iterable[Track], track_id: str) -> int:
    for index, track in enumerate(tracks):
        if track.id == track_id:
            return index
    return -1


def push_history(history: tuple[Track, ...], track: Track) -> tuple[Track, ...]:
    """Most-recent-first history, deduplicated by id, capped at 50 entries."""
    remaining = tuple(item for item in history if item.id != track.id)
    return ((track,) + remaining)[:HISTORY_LIMIT]


def remove_first(queue: tuple[Track, ...], track_id: str) -> tuple[Track, ...]:
    index = index_of(queue, track_id)
    if index == -1:
        return queue
    return queue[:index] + queue[index + 1 :]


def _clamp(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(value, max_value))
