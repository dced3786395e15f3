"""Tests for the playback state record and store."""

from __future__ import annotations

import logging

import pytest

from cadence_player.services.playback_state import (
    ENGINE_ORIGIN,
    HISTORY_LIMIT,
    HOST_ORIGIN,
    PlaybackState,
    PlaybackStore,
    StateChange,
    Track,
    push_history,
    remove_first,
)

A = Track(id="a", title="Alpha", artist="Ann", duration=120.0)
B = Track(id="b", title="Beta", duration=60.0)
C = Track(id="c", title="Gamma")


def test_defaults() -> None:
    state = PlaybackState()
    assert state.volume == 80
    assert state.order == "sequential"
    assert state.repeat == "none"
    assert state.status == "empty"
    assert state.current_index == -1
    assert state.summary() == "Not playing"


def test_update_clamps_position_and_volume() -> None:
    store = PlaybackStore()
    store.update(duration=100.0, position=250.0, volume=140)
    assert store.state.position == 100.0
    assert store.state.volume == 100
    store.update(position=-5.0, volume=-3)
    assert store.state.position == 0.0
    assert store.state.volume == 0
    store.update(duration=-10.0)
    assert store.state.duration == 0.0
    assert store.state.position == 0.0


def test_update_rejects_unknown_fields() -> None:
    store = PlaybackStore()
    with pytest.raises(TypeError):
        store.update(speed=2.0)


def test_listeners_get_changed_fields_and_origin() -> None:
    store = PlaybackStore()
    changes: list[StateChange] = []
    unsubscribe = store.subscribe(changes.append)
    store.update(volume=50)
    store.update(origin=ENGINE_ORIGIN, position=0.0)
    store.update(origin=ENGINE_ORIGIN, is_playing=True)
    assert len(changes) == 2
    assert changes[0].changed == frozenset({"volume"})
    assert changes[0].origin == HOST_ORIGIN
    assert changes[1].origin == ENGINE_ORIGIN
    assert changes[1].previous.is_playing is False
    unsubscribe()
    store.update(volume=10)
    assert len(changes) == 2


def test_failing_listener_is_logged_and_others_still_run(caplog) -> None:
    store = PlaybackStore()
    seen: list[StateChange] = []

    def broken(_change: StateChange) -> None:
        raise RuntimeError("boom")

    store.subscribe(broken)
    store.subscribe(seen.append)
    with caplog.at_level(logging.ERROR):
        store.update(volume=20)
    assert len(seen) == 1
    assert any("State listener failed" in record.message for record in caplog.records)


def test_set_playlist_selects_first_track_only_when_empty() -> None:
    store = PlaybackStore()
    store.set_playlist([A, B])
    assert store.state.current_track == A
    store.select(B)
    store.set_playlist([A, B, C])
    assert store.state.current_track == B
    store.add_to_playlist(Track(id="d", title="Delta"))
    assert len(store.state.playlist) == 4


def test_shuffle_resets_repeat() -> None:
    store = PlaybackStore()
    store.set_repeat("all")
    store.set_order("shuffle")
    assert store.state.repeat == "none"
    store.set_repeat("one")
    store.set_order("single")
    assert store.state.repeat == "one"


def test_cycle_order_and_repeat() -> None:
    store = PlaybackStore()
    assert store.cycle_order() == "shuffle"
    assert store.cycle_order() == "single"
    assert store.cycle_order() == "sequential"
    assert store.cycle_repeat() == "one"
    assert store.cycle_repeat() == "all"
    assert store.cycle_repeat() == "none"


def test_invalid_order_and_repeat_rejected() -> None:
    store = PlaybackStore()
    with pytest.raises(ValueError):
        store.set_order("random")  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        store.set_repeat("twice")  # type: ignore[arg-type]


def test_intent_helpers() -> None:
    store = PlaybackStore()
    store.request_play()
    assert store.state.is_playing is True
    store.toggle_play_pause()
    assert store.state.is_playing is False
    store.enqueue(A)
    store.enqueue(B)
    assert store.state.queue == (A, B)
    store.clear_queue()
    assert store.state.queue == ()


def test_derived_properties() -> None:
    state = PlaybackState(
        current_track=A,
        playlist=(A, B),
        position=30.0,
        duration=120.0,
        is_playing=True,
        order="single",
    )
    assert state.current_index == 0
    assert state.progress_percentage == 25.0
    assert state.formatted_position == "00:30"
    assert state.formatted_duration == "02:00"
    assert state.order_label == "Single repeat"
    assert state.has_next is True
    assert state.has_previous is False
    assert state.summary() == "Alpha - Playing (00:30 / 02:00) [Single repeat]"


def test_has_next_respects_repeat_and_queue() -> None:
    last = PlaybackState(current_track=B, playlist=(A, B))
    assert last.has_next is False
    assert PlaybackState(current_track=B, playlist=(A, B), repeat="all").has_next
    assert PlaybackState(current_track=B, playlist=(A, B), queue=(A,)).has_next


def test_current_and_next_lyric() -> None:
    track = Track(
        id="l",
        title="Lyrics",
        lyrics=("[00:10.00] second", "[00:01.50] first", "no timestamp"),
    )
    state = PlaybackState(current_track=track, position=5.0, duration=60.0)
    assert state.current_lyric == "first"
    assert state.next_lyric == "second"
    assert track.untimed_lyrics == ()


def test_untimed_lyrics_fallback() -> None:
    track = Track(id="p", title="Plain", lyrics=("just words", "", "more words"))
    assert track.timed_lyrics == ()
    assert track.untimed_lyrics == ("just words", "more words")


def test_push_history_dedupes_and_caps() -> None:
    history: tuple[Track, ...] = ()
    for index in range(HISTORY_LIMIT + 5):
        history = push_history(history, Track(id=str(index), title=str(index)))
    assert len(history) == HISTORY_LIMIT
    assert history[0].id == str(HISTORY_LIMIT + 4)
    history = push_history(history, Track(id="10", title="10"))
    assert history[0].id == "10"
    assert [track.id for track in history].count("10") == 1


def test_remove_first_only_drops_one_entry() -> None:
    assert remove_first((A, B, A), "a") == (B, A)
    assert remove_first((B,), "a") == (B,)


def test_with_duration_returns_copy() -> None:
    updated = C.with_duration(99.0)
    assert updated.duration == 99.0
    assert C.duration is None
    assert updated.id == C.id


def test_liked_tracks_notify_listeners() -> None:
    store = PlaybackStore()
    changes: list[StateChange] = []
    store.subscribe(changes.append)

    assert store.toggle_liked("a") is True
    assert store.state.is_liked("a")
    assert changes[-1].changed == frozenset({"liked"})

    store.like("b")
    store.like("b")
    assert store.state.liked == frozenset({"a", "b"})
    assert len(changes) == 2

    assert store.toggle_liked("a") is False
    store.unlike("missing")
    assert store.state.liked == frozenset({"b"})
    assert len(changes) == 3

    store.set_liked(["c", "d"])
    assert store.state.liked == frozenset({"c", "d"})
    assert not store.state.is_liked("b")
