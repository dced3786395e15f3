"""Track sources: JSON playlist files and local audio files read with mutagen."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any
from urllib.parse import urljoin

from mutagen import File as MutagenFile

from cadence_player.services.playback_state import Track

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = frozenset(
    {
        ".aac",
        ".flac",
        ".m4a",
        ".mp3",
        ".ogg",
        ".opus",
        ".wav",
        ".wma",
    }
)
_LINE_SPLIT_RE = re.compile(r"\r?\n")


class TrackSourceError(Exception):
    """Raised when a playlist file cannot be read or is not a track list."""


def is_supported_audio_file(path: Path) -> bool:
    return path.suffix.lower() in AUDIO_EXTENSIONS


def load_playlist_file(path: Path, *, base_url: str | None = None) -> list[Track]:
    """Read a JSON list of track descriptors.

    Each entry uses the catalog API shape (`id`, `title`, `artist`, `album`,
    `url`, `duration`, `lyrics`, `coverUrl`). Relative URLs are resolved
    against `base_url`. Malformed entries are skipped with a warning.
    """
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise TrackSourceError(f"Cannot read playlist {path}: {exc}") from exc
    if isinstance(payload, dict):
        payload = payload.get("tracks", payload.get("songs"))
    if not isinstance(payload, list):
        raise TrackSourceError(f"Playlist {path} does not contain a track list.")
    tracks: list[Track] = []
    for index, entry in enumerate(payload):
        track = track_from_payload(entry, base_url=base_url)
        if track is None:
            logger.warning("Skipping malformed playlist entry %d in %s", index, path)
            continue
        tracks.append(track)
    logger.info("Loaded %d tracks from %s", len(tracks), path)
    return tracks


def track_from_payload(
    entry: Any, *, base_url: str | None = None
) -> Track | None:
    if not isinstance(entry, dict):
        return None
    track_id = entry.get("id")
    url = entry.get("url")
    if track_id is None or not isinstance(url, str) or not url.strip():
        return None
    url = url.strip()
    if base_url and "://" not in url:
        url = urljoin(base_url.rstrip("/") + "/", url.lstrip("/"))
    cover_url = entry.get("coverUrl") or entry.get("cover_url")
    requires_auth = entry.get("requiresAuth", True)
    if not isinstance(requires_auth, bool):
        logger.debug("Ignoring non-boolean requiresAuth for track %s", track_id)
        requires_auth = True
    return Track(
        id=str(track_id),
        title=_text(entry.get("title")) or f"Track {track_id}",
        artist=_text(entry.get("artist")),
        album=_text(entry.get("album")),
        url=url,
        duration=_duration(entry.get("duration")),
        lyrics=_lyrics(entry.get("lyrics")),
        cover_url=cover_url if isinstance(cover_url, str) and cover_url else None,
        requires_auth=requires_auth,
    )


def read_local_track(path: Path) -> Track:
    """Build a `Track` for a local file from its tags and a sidecar `.lrc`."""
    resolved = path.expanduser().resolve()
    title = None
    artist = ""
    album = ""
    duration = None
    try:
        audio = MutagenFile(resolved, easy=True)
    except Exception as exc:
        logger.warning("Failed to read tags for %s: %s", resolved, exc)
        audio = None
    if audio is not None:
        tags = audio.tags or {}
        title = _first_tag(tags, "title")
        artist = _first_tag(tags, "artist") or ""
        album = _first_tag(tags, "album") or ""
        length = getattr(audio.info, "length", None)
        if isinstance(length, (int, float)) and length > 0:
            duration = float(length)
    return Track(
        id=str(resolved),
        title=title or resolved.stem,
        artist=artist,
        album=album,
        url=str(resolved),
        duration=duration,
        lyrics=_read_sidecar_lyrics(resolved),
        requires_auth=False,
    )


def scan_directory(path: Path) -> list[Track]:
    """Local tracks for every supported audio file below `path`, sorted by path."""
    root = path.expanduser()
    if not root.is_dir():
        raise TrackSourceError(f"Not a directory: {root}")
    files = sorted(
        item for item in root.rglob("*") if item.is_file() and is_supported_audio_file(item)
    )
    return [read_local_track(item) for item in files]


def _read_sidecar_lyrics(path: Path) -> tuple[str, ...]:
    sidecar = path.with_suffix(".lrc")
    try:
        text = sidecar.read_text(encoding="utf-8")
    except FileNotFoundError:
        return ()
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Failed to read lyrics %s: %s", sidecar, exc)
        return ()
    return tuple(line for line in _LINE_SPLIT_RE.split(text) if line.strip())


def _first_tag(tags: Any, key: str) -> str | None:
    value = tags.get(key)
    if isinstance(value, list) and value:
        first = value[0]
        return str(first) if first is not None else None
    if isinstance(value, str):
        return value
    return None


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    return ""


def _duration(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value <= 0:
        return None
    return float(value)


def _lyrics(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        return tuple(line for line in _LINE_SPLIT_RE.split(value) if line.strip())
    if isinstance(value, list):
        return tuple(str(line) for line in value if isinstance(line, str))
    return ()
