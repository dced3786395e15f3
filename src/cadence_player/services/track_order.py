"""Track-advance policy: queue precedence, then play order over the playlist."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Literal

from cadence_player.services.playback_state import ORDER, PlaybackState, Track

logger = logging.getLogger(__name__)

DIRECTION = Literal["next", "previous"]


@dataclass(frozen=True)
class AdvanceDecision:
    """Track chosen by an advance step."""

    track: Track
    from_queue: bool = False
    restart: bool = False


def pick_index(
    length: int,
    current: int,
    *,
    order: ORDER,
    direction: DIRECTION,
    rng: random.Random,
) -> int:
    """Return the playlist index to play after `current`.

    Shuffle draws a fresh uniform pick excluding `current` for both
    directions; there is no shuffle history to walk back through.
    """
    if length <= 0:
        raise ValueError("playlist is empty")
    if direction not in ("next", "previous"):
        raise ValueError(f"Unsupported direction: {direction!r}")
    if order == "single":
        return current
    if order == "shuffle":
        if length == 1:
            return current
        candidates = [index for index in range(length) if index != current]
        return rng.choice(candidates)
    step = 1 if direction == "next" else -1
    return (current + step) % length


def decide_advance(
    state: PlaybackState, direction: DIRECTION, rng: random.Random
) -> AdvanceDecision | None:
    """Choose the next/previous track, or `None` when there is nothing to play."""
    if direction not in ("next", "previous"):
        raise ValueError(f"Unsupported direction: {direction!r}")
    current = state.current_track
    if direction == "next" and state.queue:
        head = state.queue[0]
        return AdvanceDecision(
            track=head,
            from_queue=True,
            restart=current is not None and current.id == head.id,
        )
    if current is None or not state.playlist:
        logger.debug("Advance %s skipped: no current track or empty playlist.", direction)
        return None
    current_index = state.current_index
    if current_index == -1:
        logger.debug("Advance %s skipped: current track not in playlist.", direction)
        return None
    index = pick_index(
        len(state.playlist),
        current_index,
        order=state.order,
        direction=direction,
        rng=rng,
    )
    track = state.playlist[index]
    return AdvanceDecision(track=track, restart=track.id == current.id)
