"""Background media-session integration (OS play/pause/next/previous hooks)."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal

from cadence_player.services.playback_state import Track

logger = logging.getLogger(__name__)

MEDIA_ACTION = Literal["play", "pause", "previoustrack", "nexttrack"]
MEDIA_ACTIONS: tuple[MEDIA_ACTION, ...] = (
    "play",
    "pause",
    "previoustrack",
    "nexttrack",
)
ARTWORK_SIZES = ("512x512", "256x256", "128x128")

ActionHandler = Callable[[], Awaitable[object]]


@dataclass(frozen=True)
class Artwork:
    src: str
    sizes: str
    type: str = "image/jpeg"


@dataclass(frozen=True)
class MediaMetadata:
    """Track metadata shown by lock screens and OS media overlays."""

    title: str
    artist: str
    album: str
    artwork: tuple[Artwork, ...] = ()

    @classmethod
    def from_track(cls, track: Track) -> MediaMetadata:
        artwork: tuple[Artwork, ...] = ()
        if track.cover_url:
            artwork = tuple(Artwork(track.cover_url, size) for size in ARTWORK_SIZES)
        return cls(
            title=track.title,
            artist=track.artist,
            album=track.album,
            artwork=artwork,
        )


class MediaSession:
    """Registry of OS-level action handlers plus the displayed metadata."""

    def __init__(self) -> None:
        self._handlers: dict[MEDIA_ACTION, ActionHandler] = {}
        self.metadata: MediaMetadata | None = None

    @property
    def active(self) -> bool:
        return bool(self._handlers)

    def set_action_handler(
        self, action: MEDIA_ACTION, handler: ActionHandler | None
    ) -> None:
        if action not in MEDIA_ACTIONS:
            raise ValueError(f"Unsupported media action: {action!r}")
        if handler is None:
            self._handlers.pop(action, None)
            return
        self._handlers[action] = handler

    def has_handler(self, action: MEDIA_ACTION) -> bool:
        return action in self._handlers

    async def dispatch(self, action: MEDIA_ACTION) -> bool:
        """Route a hardware/OS media key press; returns whether it was handled."""
        handler = self._handlers.get(action)
        if handler is None:
            logger.debug("Media action %s ignored: no handler registered.", action)
            return False
        await handler()
        return True
