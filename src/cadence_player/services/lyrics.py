"""Timestamped lyric parsing and position lookup."""

from __future__ import annotations

import re
from bisect import bisect_right
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

_TIMESTAMP_RE = re.compile(r"^\s*\[?(\d+):(\d+)\.(\d+)\]?\s*")


@dataclass(frozen=True)
class LyricLine:
    """One lyric line and the position (seconds) it starts at."""

    time: float
    text: str


def parse_lyric_line(line: str) -> LyricLine | None:
    """Parse `mm:ss.cc text` (brackets optional); `None` for untimed lines."""
    match = _TIMESTAMP_RE.match(line)
    if match is None:
        return None
    minutes, seconds, hundredths = match.groups()
    text = line[match.end() :].strip()
    if not text:
        return None
    time = int(minutes) * 60 + int(seconds) + int(hundredths) / 100
    return LyricLine(time=time, text=text)


def parse_lyrics(lines: Iterable[str]) -> tuple[LyricLine, ...]:
    """Parse timed lines, dropping untimed/empty ones, sorted by time."""
    parsed = [lyric for lyric in map(parse_lyric_line, lines) if lyric is not None]
    parsed.sort(key=lambda lyric: lyric.time)
    return tuple(parsed)


def plain_lyrics(lines: Iterable[str]) -> tuple[str, ...]:
    """Plain-text fallback for tracks whose lyrics carry no timestamps."""
    return tuple(text for text in (line.strip() for line in lines) if text)


def lyric_times(lyrics: Iterable[LyricLine]) -> tuple[float, ...]:
    return tuple(lyric.time for lyric in lyrics)


def current_lyric_index(
    lyrics: Sequence[LyricLine],
    position: float,
    times: Sequence[float] | None = None,
) -> int:
    """Index of the greatest timestamp <= position, or -1 before the first line.

    Pass precomputed `times` (see `lyric_times`) when looking up repeatedly.
    """
    if not lyrics:
        return -1
    if times is None:
        times = lyric_times(lyrics)
    return bisect_right(times, position) - 1


def current_lyric_line(
    lyrics: Sequence[LyricLine],
    position: float,
    times: Sequence[float] | None = None,
) -> str:
    index = current_lyric_index(lyrics, position, times)
    return lyrics[index].text if index >= 0 else ""


def next_lyric_line(
    lyrics: Sequence[LyricLine],
    position: float,
    times: Sequence[float] | None = None,
) -> str:
    index = current_lyric_index(lyrics, position, times)
    if index < 0 or index >= len(lyrics) - 1:
        return ""
    return lyrics[index + 1].text
