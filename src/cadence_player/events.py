"""Engine events delivered to the host through `emit_event`.

State itself is observed through `PlaybackStore`; these events carry the
conditions a host reacts to beyond plain state (re-login, "track unavailable").
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cadence_player.services.playback_state import Track


@dataclass(frozen=True)
class TrackChanged:
    """A new device was bound for this track."""

    track: Track


@dataclass(frozen=True)
class AuthRequired:
    """Playback needs a fresh credential; the host should ask the user to log in."""

    track: Track


@dataclass(frozen=True)
class PlaybackBlocked:
    """The device refused `play()` for policy reasons (autoplay)."""

    track: Track
    retry_scheduled: bool


@dataclass(frozen=True)
class LoadError:
    """The device could not load or decode the track."""

    track: Track
    message: str


@dataclass(frozen=True)
class PlaybackEnded:
    """Natural end of a track, emitted before the repeat policy is applied."""

    track: Track
