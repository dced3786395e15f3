"""Tests for track-advance policy."""

from __future__ import annotations

import random

import pytest

from cadence_player.services.playback_state import PlaybackState, Track
from cadence_player.services.track_order import decide_advance, pick_index

TRACKS = tuple(Track(id=str(index), title=f"T{index}") for index in range(4))


def _state(current: int | None = 0, **kwargs) -> PlaybackState:
    return PlaybackState(
        current_track=TRACKS[current] if current is not None else None,
        playlist=TRACKS,
        **kwargs,
    )


def test_sequential_wraps_in_both_directions() -> None:
    rng = random.Random(1)
    assert pick_index(4, 3, order="sequential", direction="next", rng=rng) == 0
    assert pick_index(4, 0, order="sequential", direction="previous", rng=rng) == 3
    assert pick_index(4, 1, order="sequential", direction="next", rng=rng) == 2


def test_single_order_returns_current_index() -> None:
    rng = random.Random(1)
    assert pick_index(4, 2, order="single", direction="next", rng=rng) == 2
    assert pick_index(4, 2, order="single", direction="previous", rng=rng) == 2


def test_shuffle_excludes_current_and_is_seed_deterministic() -> None:
    picks_a = [
        pick_index(4, 1, order="shuffle", direction="next", rng=rng)
        for rng in [random.Random(5)]
        for _ in range(30)
    ]
    picks_b = [
        pick_index(4, 1, order="shuffle", direction="next", rng=rng)
        for rng in [random.Random(5)]
        for _ in range(30)
    ]
    assert picks_a == picks_b
    assert 1 not in picks_a
    assert set(picks_a) == {0, 2, 3}


def test_shuffle_with_one_track_replays_it() -> None:
    rng = random.Random(1)
    assert pick_index(1, 0, order="shuffle", direction="next", rng=rng) == 0


def test_pick_index_rejects_empty_playlist_and_bad_direction() -> None:
    rng = random.Random(1)
    with pytest.raises(ValueError):
        pick_index(0, 0, order="sequential", direction="next", rng=rng)
    with pytest.raises(ValueError):
        pick_index(3, 0, order="sequential", direction="sideways", rng=rng)  # type: ignore[arg-type]


def test_queue_head_wins_for_next() -> None:
    state = _state(0, queue=(TRACKS[3], TRACKS[2]))
    decision = decide_advance(state, "next", random.Random(1))
    assert decision is not None
    assert decision.track == TRACKS[3]
    assert decision.from_queue is True
    assert decision.restart is False


def test_queue_is_ignored_for_previous() -> None:
    state = _state(0, queue=(TRACKS[3],))
    decision = decide_advance(state, "previous", random.Random(1))
    assert decision is not None
    assert decision.track == TRACKS[3]
    assert decision.from_queue is False


def test_queued_current_track_restarts() -> None:
    state = _state(2, queue=(TRACKS[2],))
    decision = decide_advance(state, "next", random.Random(1))
    assert decision is not None
    assert decision.restart is True
    assert decision.from_queue is True


def test_queue_applies_even_without_current_track() -> None:
    state = _state(None, queue=(TRACKS[1],))
    decision = decide_advance(state, "next", random.Random(1))
    assert decision is not None
    assert decision.track == TRACKS[1]


def test_no_decision_without_current_or_playlist() -> None:
    assert decide_advance(_state(None), "next", random.Random(1)) is None
    stray = PlaybackState(current_track=Track(id="x", title="X"), playlist=TRACKS)
    assert decide_advance(stray, "next", random.Random(1)) is None
    empty = PlaybackState(current_track=TRACKS[0])
    assert decide_advance(empty, "next", random.Random(1)) is None


def test_single_order_decision_restarts() -> None:
    decision = decide_advance(_state(1, order="single"), "next", random.Random(1))
    assert decision is not None
    assert decision.track == TRACKS[1]
    assert decision.restart is True
