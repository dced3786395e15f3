"""Tests for lyric parsing and lookup."""

from __future__ import annotations

from cadence_player.services.lyrics import (
    LyricLine,
    current_lyric_index,
    current_lyric_line,
    lyric_times,
    next_lyric_line,
    parse_lyric_line,
    parse_lyrics,
    plain_lyrics,
)
from cadence_player.services.playback_state import PlaybackState, Track


def test_parse_line_with_and_without_brackets() -> None:
    assert parse_lyric_line("[01:02.50] Hello") == LyricLine(62.5, "Hello")
    assert parse_lyric_line("00:03.07 World") == LyricLine(3.07, "World")


def test_parse_line_rejects_untimed_and_empty_text() -> None:
    assert parse_lyric_line("Just words") is None
    assert parse_lyric_line("[00:05.00]") is None
    assert parse_lyric_line("[00:05.00]    ") is None


def test_parse_lyrics_sorts_and_drops_untimed() -> None:
    lines = ["[00:20.00] c", "intro", "[00:05.00] a", "[00:10.00] b"]
    parsed = parse_lyrics(lines)
    assert [line.text for line in parsed] == ["a", "b", "c"]


def test_current_index_boundaries() -> None:
    lyrics = parse_lyrics(["[00:05.00] a", "[00:10.00] b", "[00:20.00] c"])
    assert current_lyric_index(lyrics, 0.0) == -1
    assert current_lyric_index(lyrics, 5.0) == 0
    assert current_lyric_index(lyrics, 9.99) == 0
    assert current_lyric_index(lyrics, 10.0) == 1
    assert current_lyric_index(lyrics, 500.0) == 2
    assert current_lyric_index((), 3.0) == -1


def test_current_and_next_line_text() -> None:
    lyrics = parse_lyrics(["[00:05.00] a", "[00:10.00] b"])
    assert current_lyric_line(lyrics, 1.0) == ""
    assert next_lyric_line(lyrics, 1.0) == ""
    assert current_lyric_line(lyrics, 6.0) == "a"
    assert next_lyric_line(lyrics, 6.0) == "b"
    assert next_lyric_line(lyrics, 11.0) == ""


def test_plain_lyrics_strips_blank_lines() -> None:
    assert plain_lyrics(["  one ", "", "two"]) == ("one", "two")


def test_lookup_with_precomputed_times_matches_plain_lookup() -> None:
    lines = parse_lyrics(["[00:01.00] one", "[00:04.00] two", "[00:09.00] three"])
    times = lyric_times(lines)
    assert times == (1.0, 4.0, 9.0)
    for position in (0.0, 1.0, 5.5, 12.0):
        assert current_lyric_index(lines, position, times) == current_lyric_index(
            lines, position
        )
    assert current_lyric_line(lines, 5.5, times) == "two"
    assert next_lyric_line(lines, 5.5, times) == "three"


def test_track_caches_lyric_times() -> None:
    track = Track(id="t", title="T", lyrics=("[00:02.00] b", "[00:01.00] a"))
    assert track.lyric_times == (1.0, 2.0)
    assert track.lyric_times is track.lyric_times
    state = PlaybackState(current_track=track, position=1.5)
    assert state.current_lyric == "a"
    assert state.next_lyric == "b"
